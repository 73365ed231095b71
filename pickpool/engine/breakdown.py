"""
Itemized per-rule point computation for one pick.

A ScoreBreakdown is always recomputable from (pick, latest result, phase
config) and is never a source of truth.
"""

from dataclasses import dataclass

MATCH = "MATCH"
GROUP_STANDINGS = "GROUP_STANDINGS"
KNOCKOUT_WINNER = "KNOCKOUT_WINNER"
GLOBAL_QUALIFIERS = "GLOBAL_QUALIFIERS"


@dataclass(frozen=True)
class RuleEvaluation:
    type: str
    matched: bool
    points: int

    def to_dict(self):
        return {"type": self.type, "matched": self.matched, "points": self.points}


@dataclass(frozen=True)
class ScoreBreakdown:
    participant_id: str
    subject_id: str  # match id or group id
    kind: str = MATCH
    rules: tuple = ()
    phase_id: str = None
    has_pick: bool = True
    source_version: int = None

    @property
    def total_points(self):
        return sum(rule.points for rule in self.rules if rule.matched)

    @property
    def matched_rules(self):
        return [rule.type for rule in self.rules if rule.matched]

    def to_dict(self):
        return {
            "participant_id": self.participant_id,
            "subject_id": self.subject_id,
            "kind": self.kind,
            "phase_id": self.phase_id,
            "has_pick": self.has_pick,
            "source_version": self.source_version,
            "rules": [rule.to_dict() for rule in self.rules],
            "total_points": self.total_points,
        }


def empty_breakdown(participant_id, subject_id, kind=MATCH, phase_id=None, source_version=None):
    """Breakdown for a missing pick: zero rules matched, not an error"""
    return ScoreBreakdown(
        participant_id=participant_id,
        subject_id=subject_id,
        kind=kind,
        rules=(),
        phase_id=phase_id,
        has_pick=False,
        source_version=source_version,
    )
