"""
Knockout Resolver and Knockout Pick Evaluator

A knockout match is decided when the final score differs, or when it is level
and both penalty scores are present and unequal. Anything else is
undetermined (None) and must not propagate through the bracket.
"""

from dataclasses import dataclass, field

from .breakdown import KNOCKOUT_WINNER, RuleEvaluation, ScoreBreakdown, empty_breakdown
from .errors import InvalidPick, ResultNotDecided
from .group_standings import rank_across_groups

SIDES = ("home", "away")


def winning_side(result):
    """'home', 'away', or None when undetermined"""
    if result is None:
        return None
    if result.home_goals > result.away_goals:
        return "home"
    if result.away_goals > result.home_goals:
        return "away"
    if not result.has_penalties or result.home_penalties == result.away_penalties:
        return None
    return "home" if result.home_penalties > result.away_penalties else "away"


def resolve_winner(result, home_team_id, away_team_id):
    """Winning team id, or None when the result is undetermined"""
    side = winning_side(result)
    if side is None:
        return None
    return home_team_id if side == "home" else away_team_id


def resolve_loser(result, home_team_id, away_team_id):
    side = winning_side(result)
    if side is None:
        return None
    return away_team_id if side == "home" else home_team_id


def propagate(fixtures, match_id, winner, loser=None):
    """
    Fan the outcome of match_id out to every fixture that references it.

    Returns:
        dict: {(target_match_id, side): team_id}
    """
    assignments = {}
    if winner is None:
        return assignments

    for fixture in fixtures:
        for side in fixture.depends_on_match(match_id):
            source = fixture.source_for(side)
            if source.kind == "winner":
                assignments[(fixture.match_id, side)] = winner
            elif loser is not None:
                assignments[(fixture.match_id, side)] = loser
    return assignments


@dataclass
class BracketResolution:
    slots: dict = field(default_factory=dict)
    winners: dict = field(default_factory=dict)
    losers: dict = field(default_factory=dict)

    def team(self, match_id, side):
        return self.slots.get((match_id, side))

    def changed_slots(self, fixtures):
        """
        Slots whose resolved team differs from the fixture's stored team.

        A placeholder slot that no longer resolves (e.g. after a correction made
        its source undetermined) is reported as None so the stored team is cleared.
        """
        changed = {}
        for fixture in fixtures:
            for side in SIDES:
                team_id = self.slots.get((fixture.match_id, side))
                if team_id is None and fixture.source_for(side) is None:
                    continue
                if team_id != fixture.team_for(side):
                    changed[(fixture.match_id, side)] = team_id
        return changed


def _resolve_group_source(source, standings, all_groups_ready, ranker):
    if source.kind == "group":
        standing = standings.get(source.ref)
        return standing.team_at(source.position) if standing else None

    if source.kind == "best":
        if not all_groups_ready:
            return None
        ranked = rank_across_groups(
            [standings[g] for g in sorted(standings)], int(source.ref), ranker
        )
        if 1 <= source.position <= len(ranked):
            return ranked[source.position - 1]
    return None


def resolve_bracket(fixtures, results, standings=None, group_ids=(), ranker=None):
    """
    Resolve every placeholder slot to a fixed point.

    Group-sourced slots fill from ready standings, winner/loser slots fill from
    decided knockout results. Re-running with the same inputs always yields the
    same assignment.

    Args:
        fixtures: all Fixture values of the pool
        results: match id -> latest MatchResult
        standings: group id -> GroupStanding (ready groups only)
        group_ids: every group id in the tournament
        ranker: cross-group ranking key for best:<position>:<rank> sources
    """
    standings = standings or {}
    all_groups_ready = bool(group_ids) and all(g in standings for g in group_ids)
    fixtures = sorted(fixtures, key=lambda f: f.match_id)
    resolution = BracketResolution()

    for fixture in fixtures:
        for side in SIDES:
            source = fixture.source_for(side)
            if source is None:
                if fixture.team_for(side) is not None:
                    resolution.slots[(fixture.match_id, side)] = fixture.team_for(side)
            elif source.kind in ("group", "best"):
                team_id = _resolve_group_source(source, standings, all_groups_ready, ranker)
                if team_id is not None:
                    resolution.slots[(fixture.match_id, side)] = team_id

    knockout = [f for f in fixtures if f.is_knockout]
    for _ in range(len(knockout) + 1):
        progressed = False
        for fixture in knockout:
            if fixture.match_id in resolution.winners:
                continue
            home = resolution.team(fixture.match_id, "home")
            away = resolution.team(fixture.match_id, "away")
            if home is None or away is None:
                continue

            result = results.get(fixture.match_id)
            winner = resolve_winner(result, home, away)
            if winner is None:
                continue

            loser = resolve_loser(result, home, away)
            resolution.winners[fixture.match_id] = winner
            resolution.losers[fixture.match_id] = loser
            resolution.slots.update(propagate(fixtures, fixture.match_id, winner, loser))
            progressed = True

        if not progressed:
            break

    return resolution


def evaluate_knockout_pick(pick, resolved_winner, config, participant_id=None, match_id=None, phase_id=None):
    """
    Flat points when the predicted team is the one that advanced.

    Raises:
        ResultNotDecided: the match winner is still undetermined
    """
    if resolved_winner is None:
        raise ResultNotDecided(f"Match {match_id} has no winner yet", match_id=match_id)

    if pick is None:
        return empty_breakdown(participant_id, match_id, KNOCKOUT_WINNER, phase_id)

    if not isinstance(pick, str) or not pick:
        raise InvalidPick("Knockout pick must be a team id", pick=pick)

    matched = pick == resolved_winner
    points = config.points_per_correct_advance
    return ScoreBreakdown(
        participant_id=participant_id,
        subject_id=match_id,
        kind=KNOCKOUT_WINNER,
        rules=(RuleEvaluation(type="CORRECT_ADVANCE", matched=matched, points=points if matched else 0),),
        phase_id=phase_id,
        has_pick=True,
    )
