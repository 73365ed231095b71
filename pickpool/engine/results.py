"""
Versioned official match results.

Corrections never edit a result in place: every publish appends a new version
to the match's ResultHistory. Version 1 is the original publication; any later
version is an erratum and must carry a reason.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone

from .errors import MissingReason, PickPoolError


@dataclass(frozen=True)
class MatchResult:
    match_id: str
    home_goals: int
    away_goals: int
    home_penalties: int = None
    away_penalties: int = None
    version: int = 1
    reason: str = None
    published_at_utc: datetime = None

    @property
    def has_penalties(self):
        return self.home_penalties is not None and self.away_penalties is not None

    @property
    def is_draw(self):
        """Level after regulation/extra time"""
        return self.home_goals == self.away_goals

    def is_decided(self, allows_draw=False):
        """
        Check whether this result is definitive.

        Group matches (allows_draw=True) are decided as soon as a result exists.
        Knockout matches are decided once the score differs or both penalty
        fields are present.
        """
        if allows_draw:
            return True
        return not self.is_draw or self.has_penalties

    def same_outcome_as(self, other):
        """Compare the published fields, ignoring version metadata"""
        return other is not None and (
            self.home_goals,
            self.away_goals,
            self.home_penalties,
            self.away_penalties,
        ) == (
            other.home_goals,
            other.away_goals,
            other.home_penalties,
            other.away_penalties,
        )

    def to_dict(self):
        return {
            "match_id": self.match_id,
            "home_goals": self.home_goals,
            "away_goals": self.away_goals,
            "home_penalties": self.home_penalties,
            "away_penalties": self.away_penalties,
            "version": self.version,
            "reason": self.reason,
            "published_at_utc": (
                self.published_at_utc.isoformat() if self.published_at_utc else None
            ),
        }


def validate_result_fields(home_goals, away_goals, home_penalties=None, away_penalties=None):
    """Reject negative goals and half-filled penalty shoot-outs"""
    for name, value in (("home_goals", home_goals), ("away_goals", away_goals)):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise PickPoolError(f"{name} must be a non-negative integer", field=name)

    if (home_penalties is None) != (away_penalties is None):
        raise PickPoolError("Penalties must be given for both sides or neither")

    for name, value in (("home_penalties", home_penalties), ("away_penalties", away_penalties)):
        if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value < 0):
            raise PickPoolError(f"{name} must be a non-negative integer", field=name)


class ResultHistory:
    """Append-only version list for one match"""

    def __init__(self, match_id, versions=()):
        self.match_id = match_id
        self._versions = tuple(sorted(versions, key=lambda r: r.version))

        for expected, result in enumerate(self._versions, start=1):
            if result.version != expected:
                raise PickPoolError(
                    f"Result history for {match_id} has a gap at version {expected}"
                )

    def __len__(self):
        return len(self._versions)

    def __iter__(self):
        return iter(self._versions)

    @property
    def latest(self):
        return self._versions[-1] if self._versions else None

    @property
    def next_version(self):
        return len(self._versions) + 1

    def prepare(
        self,
        home_goals,
        away_goals,
        home_penalties=None,
        away_penalties=None,
        reason=None,
        published_at_utc=None,
    ):
        """
        Build the next version without appending it.

        Returns the current latest version unchanged when the fields are identical
        (republishing is idempotent and never bumps the version).
        """
        validate_result_fields(home_goals, away_goals, home_penalties, away_penalties)

        reason = reason.strip() if reason else None
        candidate = MatchResult(
            match_id=self.match_id,
            home_goals=home_goals,
            away_goals=away_goals,
            home_penalties=home_penalties,
            away_penalties=away_penalties,
            version=self.next_version,
            reason=reason,
            published_at_utc=published_at_utc or datetime.now(timezone.utc),
        )

        if candidate.same_outcome_as(self.latest):
            return self.latest

        if candidate.version > 1 and not reason:
            raise MissingReason(
                f"A reason is required to correct match {self.match_id} "
                f"(version {candidate.version})",
                match_id=self.match_id,
                version=candidate.version,
            )
        return candidate

    def append(self, result):
        """Return a new history with result appended (or self for an idempotent republish)"""
        if self.latest is not None and result.same_outcome_as(self.latest):
            return self
        if result.version != self.next_version:
            raise PickPoolError(
                f"Expected version {self.next_version} for {self.match_id}, got {result.version}"
            )
        if result.version > 1 and not result.reason:
            raise MissingReason(
                f"A reason is required to correct match {self.match_id}",
                match_id=self.match_id,
                version=result.version,
            )
        return ResultHistory(self.match_id, self._versions + (replace(result, match_id=self.match_id),))

    def history(self):
        """Ordered audit trail: (version, reason, published_at_utc)"""
        return [(r.version, r.reason, r.published_at_utc) for r in self._versions]
