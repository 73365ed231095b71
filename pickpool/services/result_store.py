"""
Persisted result store.

Every publish or correction appends a MatchResultVersion; rows are never
updated or deleted. At most one publish/correct may be in flight per
(pool, match): a second concurrent attempt fails fast with
ConcurrentCorrectionConflict, as does a stale expected_version or losing the
unique (result_id, version_number) race against another process.
"""

import logging
import threading
import weakref
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pickpool import db
from pickpool.engine.errors import (
    ConcurrentCorrectionConflict,
    MissingReason,
    PickPoolError,
    UnknownMatch,
)
from pickpool.models import AuditEvent, Fixture, MatchResultHeader, MatchResultVersion
from pickpool.services import recompute

logger = logging.getLogger(__name__)

SOURCE_MANUAL = "MANUAL"
SOURCE_API = "API"

# Entries vanish once no publish holds a reference to the lock
_locks = weakref.WeakValueDictionary()
_locks_guard = threading.Lock()


def _match_lock(pool_id, match_id):
    with _locks_guard:
        lock = _locks.get((pool_id, match_id))
        if lock is None:
            lock = threading.Lock()
            _locks[(pool_id, match_id)] = lock
        return lock


@dataclass(frozen=True)
class PublishOutcome:
    result: object  # engine MatchResult
    created: bool

    def to_dict(self):
        return {"result": self.result.to_dict(), "created": self.created}


def _require_fixture(pool_id, match_id):
    recompute.get_pool(pool_id)
    fixture = Fixture.get_by_match(pool_id, match_id)
    if fixture is None:
        raise UnknownMatch(f"Match {match_id} is not part of pool {pool_id}", match_id=match_id)
    return fixture


def _get_or_create_header(pool_id, match_id):
    header = MatchResultHeader.get(pool_id, match_id)
    if header is None:
        header = MatchResultHeader(pool_id=pool_id, match_id=match_id, current_version=0)
        db.session.add(header)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConcurrentCorrectionConflict(
                f"Result for {match_id} was created concurrently", match_id=match_id
            )
    return header


def publish_result(
    pool_id,
    match_id,
    home_goals,
    away_goals,
    home_penalties=None,
    away_penalties=None,
    reason=None,
    expected_version=None,
    actor_id=None,
    source=SOURCE_MANUAL,
    published_at_utc=None,
):
    """
    Publish the first result of a match or append a correction.

    Args:
        expected_version: version the caller last read (0 when none); a
            mismatch means someone else published in between

    Returns:
        PublishOutcome; created is False for an identical republish

    Raises:
        UnknownMatch, MissingReason, ConcurrentCorrectionConflict
    """
    _require_fixture(pool_id, match_id)

    lock = _match_lock(pool_id, match_id)
    if not lock.acquire(blocking=False):
        raise ConcurrentCorrectionConflict(
            f"Another result update for {match_id} is in progress", match_id=match_id
        )

    try:
        header = _get_or_create_header(pool_id, match_id)
        history = header.history()

        if expected_version is not None and expected_version != len(history):
            raise ConcurrentCorrectionConflict(
                f"Result for {match_id} is at version {len(history)}, "
                f"expected {expected_version}",
                match_id=match_id,
                current_version=len(history),
            )

        candidate = history.prepare(
            home_goals,
            away_goals,
            home_penalties,
            away_penalties,
            reason=reason,
            published_at_utc=published_at_utc,
        )

        if candidate is history.latest:
            db.session.rollback()
            logger.info(f"Identical result for {match_id} in pool {pool_id}, keeping version {candidate.version}")
            return PublishOutcome(result=candidate, created=False)

        row = MatchResultVersion(
            header=header,
            version_number=candidate.version,
            home_goals=candidate.home_goals,
            away_goals=candidate.away_goals,
            home_penalties=candidate.home_penalties,
            away_penalties=candidate.away_penalties,
            reason=candidate.reason,
            source=source,
            created_by=actor_id,
            published_at_utc=candidate.published_at_utc,
        )
        db.session.add(row)
        header.current_version = candidate.version
        AuditEvent.log_result_version(pool_id, row, match_id, actor_id=actor_id)

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConcurrentCorrectionConflict(
                f"Version {candidate.version} of {match_id} was written concurrently",
                match_id=match_id,
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to store result for {match_id}: {e}")
            raise

    except PickPoolError:
        db.session.rollback()
        raise
    finally:
        lock.release()

    logger.info(
        f"Stored {match_id} v{candidate.version} in pool {pool_id}: "
        f"{candidate.home_goals}-{candidate.away_goals}"
        + (f" reason={candidate.reason!r}" if candidate.reason else "")
    )
    _run_cascade(pool_id, match_id, candidate.version)
    return PublishOutcome(result=candidate, created=True)


def _run_cascade(pool_id, match_id, version):
    # The version is committed; a failed cascade leaves the pool's fingerprint
    # lagging and the scheduler sweep picks it up.
    try:
        recompute.on_result_version(pool_id, match_id, version)
    except Exception as e:
        logger.exception(f"Cascade for {match_id} v{version} failed, queued for sweep: {e}")


def correct_result(pool_id, match_id, home_goals, away_goals, reason, **kwargs):
    """Append a correction to an already published result"""
    if not reason or not reason.strip():
        raise MissingReason(f"A reason is required to correct match {match_id}", match_id=match_id)

    _require_fixture(pool_id, match_id)
    header = MatchResultHeader.get(pool_id, match_id)
    if header is None or not header.versions:
        raise PickPoolError(f"No result published for {match_id} yet", match_id=match_id)

    return publish_result(pool_id, match_id, home_goals, away_goals, reason=reason, **kwargs)


def get_latest(pool_id, match_id):
    _require_fixture(pool_id, match_id)
    header = MatchResultHeader.get(pool_id, match_id)
    if header is None or header.latest is None:
        return None
    return header.latest.to_value(match_id)


def get_history(pool_id, match_id):
    """Ordered version list for a match (empty before the first publish)"""
    _require_fixture(pool_id, match_id)
    header = MatchResultHeader.get(pool_id, match_id)
    if header is None:
        return []
    return [version.to_dict() for version in header.versions]
