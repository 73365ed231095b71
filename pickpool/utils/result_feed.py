import logging
import time
from functools import wraps

import requests

from pickpool.engine.errors import PickPoolError
from pickpool.models import Fixture, MatchResultHeader, Pool
from pickpool.services import result_store

logger = logging.getLogger(__name__)

FINISHED_STATUSES = ("FT", "AET", "PEN")
FEED_CORRECTION_REASON = "Automatic correction from result feed"
MAX_IDS_PER_REQUEST = 20


class ResultFeedError(Exception):
    """Feed request failed after retries or returned API-level errors"""


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to handle API rate limiting with exponential backoff
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            for attempt in range(max_retries):
                try:
                    response = func(self, *args, **kwargs)

                    # Check for rate limiting
                    if hasattr(response, "status_code"):
                        if response.status_code == 429:  # Too Many Requests
                            retry_after = float(
                                response.headers.get(
                                    "Retry-After",
                                    base_delay * (backoff_factor**attempt),
                                )
                            )
                            logger.warning(
                                f"Rate limited. Waiting {retry_after}s before retry {attempt + 1}/{max_retries}"
                            )
                            time.sleep(retry_after)
                            continue
                        elif response.status_code >= 500:  # Server errors
                            delay = base_delay * (backoff_factor**attempt)
                            logger.warning(
                                f"Server error {response.status_code}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                            )
                            time.sleep(delay)
                            continue

                    return response

                except requests.exceptions.RequestException as e:
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        time.sleep(delay)
                    else:
                        raise

            raise ResultFeedError(f"Max retries ({max_retries}) exceeded")

        return wrapper

    return decorator


def parse_fixture_result(fixture_data):
    """
    Parse an API-Football fixture into publishable result fields

    Returns:
        dict with external_id, status, is_finished, goals and penalties,
        or None when the fixture carries no score yet
    """
    fixture = fixture_data.get("fixture") or {}
    status = (fixture.get("status") or {}).get("short")
    goals = fixture_data.get("goals") or {}
    penalty = (fixture_data.get("score") or {}).get("penalty") or {}

    is_finished = status in FINISHED_STATUSES
    if not is_finished and goals.get("home") is None:
        return None

    return {
        "external_id": str(fixture.get("id")),
        "status": status,
        "is_finished": is_finished,
        "home_goals": goals.get("home") or 0,
        "away_goals": goals.get("away") or 0,
        "home_penalties": penalty.get("home"),
        "away_penalties": penalty.get("away"),
    }


class ResultFeed:
    """
    Pulls finished fixtures from an API-Football compatible endpoint and
    publishes them through the result store
    """

    def __init__(self, api_base_url=None, api_key=None, max_requests_per_minute=10):
        self.api_base_url = (api_base_url or "https://v3.football.api-sports.io").rstrip("/")
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "PickPool/1.0"})
        if api_key:
            self.session.headers.update({"x-apisports-key": api_key})

        # Rate limiting configuration
        self.request_count = 0
        self.last_request_time = 0
        self.min_request_interval = 0.5  # Minimum 500ms between requests
        self.max_requests_per_minute = max_requests_per_minute
        self.request_timestamps = []

    @classmethod
    def from_config(cls, app_config):
        return cls(
            api_base_url=app_config.get("RESULT_FEED_BASE_URL"),
            api_key=app_config.get("RESULT_FEED_API_KEY"),
        )

    def _enforce_rate_limit(self):
        """Enforce rate limiting before making requests"""
        current_time = time.time()

        # Remove timestamps older than 1 minute
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        if len(self.request_timestamps) >= self.max_requests_per_minute:
            sleep_time = 60 - (current_time - self.request_timestamps[0])
            if sleep_time > 0:
                logger.info(f"Rate limit reached. Sleeping for {sleep_time:.1f}s")
                time.sleep(sleep_time)
                self.request_timestamps = []

        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last)

        self.last_request_time = time.time()
        self.request_timestamps.append(self.last_request_time)
        self.request_count += 1

    @rate_limit_decorator(max_retries=3, base_delay=2.0)
    def _make_api_request(self, endpoint, params=None):
        """Make API request with rate limiting and retry logic"""
        self._enforce_rate_limit()
        return self.session.get(f"{self.api_base_url}{endpoint}", params=params, timeout=30)

    def fetch_fixtures(self, external_ids):
        """Fetch fixtures by id, batching the ids the API accepts per request"""
        fixtures = []
        external_ids = list(external_ids)

        for start in range(0, len(external_ids), MAX_IDS_PER_REQUEST):
            batch = external_ids[start : start + MAX_IDS_PER_REQUEST]
            response = self._make_api_request("/fixtures", params={"ids": "-".join(batch)})

            if response.status_code >= 400:
                raise ResultFeedError(f"HTTP error {response.status_code} for /fixtures")

            data = response.json()
            errors = data.get("errors")
            if errors:
                messages = errors if isinstance(errors, list) else list(errors.values())
                raise ResultFeedError(f"API error: {', '.join(str(m) for m in messages)}")

            fixtures.extend(data.get("response") or [])

        return fixtures

    def sync_pool(self, pool_id):
        """
        Publish every finished fixture of a pool

        Returns:
            dict: counts of created, corrected, unchanged, skipped and failed matches
        """
        stats = {"created": 0, "corrected": 0, "unchanged": 0, "skipped": 0, "failed": 0}

        tracked = {
            f.external_id: f.match_id
            for f in Fixture.query.filter(
                Fixture.pool_id == pool_id, Fixture.external_id.isnot(None)
            ).all()
        }
        if not tracked:
            return stats

        for fixture_data in self.fetch_fixtures(sorted(tracked)):
            parsed = parse_fixture_result(fixture_data)
            if not parsed or not parsed["is_finished"] or parsed["external_id"] not in tracked:
                stats["skipped"] += 1
                continue

            match_id = tracked[parsed["external_id"]]
            outcome = self._publish(pool_id, match_id, parsed)
            stats[outcome] += 1

        logger.info(f"Result feed sync for pool {pool_id}: {stats}")
        return stats

    def _publish(self, pool_id, match_id, parsed):
        header = MatchResultHeader.get(pool_id, match_id)
        latest = header.latest if header else None

        # A manual correction is final for the feed
        if latest is not None and latest.source == result_store.SOURCE_MANUAL and latest.version_number > 1:
            return "skipped"

        try:
            outcome = result_store.publish_result(
                pool_id,
                match_id,
                parsed["home_goals"],
                parsed["away_goals"],
                home_penalties=parsed["home_penalties"],
                away_penalties=parsed["away_penalties"],
                reason=FEED_CORRECTION_REASON if latest is not None else None,
                source=result_store.SOURCE_API,
            )
        except PickPoolError as e:
            logger.warning(f"Result feed could not publish {match_id}: {e.message}")
            return "failed"

        if not outcome.created:
            return "unchanged"
        return "created" if outcome.result.version == 1 else "corrected"

    def sync_all_pools(self):
        """Sync every active pool; returns {pool_id: stats}"""
        return {
            pool.id: self.sync_pool(pool.id)
            for pool in Pool.query.filter_by(is_active=True).order_by(Pool.id).all()
        }

    def get_rate_limit_status(self):
        """Get current rate limit status"""
        current_time = time.time()
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        return {
            "total_requests": self.request_count,
            "requests_last_minute": len(self.request_timestamps),
            "max_requests_per_minute": self.max_requests_per_minute,
        }
