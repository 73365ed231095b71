"""
Aggregator

Pure summation of breakdowns into per-phase and pool totals. No business rules
of its own beyond the leaderboard ordering.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Aggregate:
    participant_id: str
    per_phase: dict = field(default_factory=dict, hash=False)
    total: int = 0

    def to_dict(self):
        return {
            "participant_id": self.participant_id,
            "per_phase": dict(self.per_phase),
            "total": self.total,
        }


def aggregate(breakdowns, participant_id=None):
    """
    Sum breakdowns for one participant.

    Returns:
        Aggregate with per_phase {phase_id: points} and total
    """
    per_phase = {}
    total = 0
    for breakdown in breakdowns:
        points = breakdown.total_points
        per_phase[breakdown.phase_id] = per_phase.get(breakdown.phase_id, 0) + points
        total += points
    return Aggregate(participant_id=participant_id, per_phase=per_phase, total=total)


def aggregate_by_participant(breakdowns, participant_ids=()):
    """Aggregate every participant; listed participants without breakdowns get zero"""
    grouped = {participant_id: [] for participant_id in participant_ids}
    for breakdown in breakdowns:
        grouped.setdefault(breakdown.participant_id, []).append(breakdown)
    return {pid: aggregate(items, pid) for pid, items in grouped.items()}


def rank_leaderboard(aggregates):
    """
    Order aggregates by total points (desc), then participant id.

    Returns:
        list of dicts with rank, participant_id, total and per_phase
    """
    ordered = sorted(aggregates, key=lambda a: (-a.total, str(a.participant_id)))
    return [
        {
            "rank": index + 1,
            "participant_id": entry.participant_id,
            "total": entry.total,
            "per_phase": dict(entry.per_phase),
        }
        for index, entry in enumerate(ordered)
    ]
