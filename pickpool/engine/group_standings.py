"""
Group Standings Generator and Evaluator

Standings are all-or-nothing per group: until every match in the group has a
published result the generator returns None ("not ready") and no partial
table is ever produced.

Ordering chain, in priority order:
    1. points (win 3, draw 1, loss 0)
    2. goal difference
    3. goals for
    4. head-to-head mini-table between the tied teams only
    5. team id (deterministic last resort)
"""

import logging
from dataclasses import dataclass, field

from .breakdown import GLOBAL_QUALIFIERS, GROUP_STANDINGS, RuleEvaluation, ScoreBreakdown, empty_breakdown
from .errors import InvalidPick

logger = logging.getLogger(__name__)

POINTS_FOR_WIN = 3
POINTS_FOR_DRAW = 1


@dataclass
class TeamRecord:
    team_id: str
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0

    @property
    def goal_difference(self):
        return self.goals_for - self.goals_against

    @property
    def points(self):
        return self.won * POINTS_FOR_WIN + self.drawn * POINTS_FOR_DRAW

    def record(self, scored, conceded):
        self.played += 1
        self.goals_for += scored
        self.goals_against += conceded
        if scored > conceded:
            self.won += 1
        elif scored < conceded:
            self.lost += 1
        else:
            self.drawn += 1

    def to_dict(self):
        return {
            "played": self.played,
            "won": self.won,
            "drawn": self.drawn,
            "lost": self.lost,
            "goals_for": self.goals_for,
            "goals_against": self.goals_against,
            "goal_difference": self.goal_difference,
            "points": self.points,
        }


@dataclass(frozen=True)
class GroupStanding:
    group_id: str
    ordered_team_ids: tuple
    per_team: dict = field(default_factory=dict, hash=False)
    source_versions: tuple = ()

    def team_at(self, position):
        """Team at a 1-based position (None if out of range)"""
        if 1 <= position <= len(self.ordered_team_ids):
            return self.ordered_team_ids[position - 1]
        return None

    def position_of(self, team_id):
        try:
            return self.ordered_team_ids.index(team_id) + 1
        except ValueError:
            return None

    def to_dict(self):
        return {
            "group_id": self.group_id,
            "ordered_team_ids": list(self.ordered_team_ids),
            "table": [
                dict(team_id=team_id, position=index + 1, **self.per_team[team_id].to_dict())
                for index, team_id in enumerate(self.ordered_team_ids)
            ],
        }


def _tally(team_ids, fixtures, results):
    records = {team_id: TeamRecord(team_id) for team_id in team_ids}

    for fixture in fixtures:
        result = results[fixture.match_id]
        home = records.get(fixture.home_team_id)
        away = records.get(fixture.away_team_id)

        if home is None or away is None:
            logger.warning(
                f"Match {fixture.match_id} references a team outside its group, skipping"
            )
            continue

        home.record(result.home_goals, result.away_goals)
        away.record(result.away_goals, result.home_goals)

    return records


def _primary_key(record):
    return (record.points, record.goal_difference, record.goals_for)


def _head_to_head_order(tied, fixtures, results):
    """Order tied teams by a mini-table of the matches played among them"""
    tied_set = set(tied)
    mutual = [
        f for f in fixtures if f.home_team_id in tied_set and f.away_team_id in tied_set
    ]
    mini = _tally(tied, mutual, results)
    return sorted(
        tied,
        key=lambda team_id: (
            -mini[team_id].points,
            -mini[team_id].goal_difference,
            -mini[team_id].goals_for,
            team_id,
        ),
    )


def order_teams(records, fixtures, results):
    """Total order over a group's teams"""
    clusters = {}
    for team_id in sorted(records):
        clusters.setdefault(_primary_key(records[team_id]), []).append(team_id)

    ordered = []
    for key in sorted(clusters, reverse=True):
        tied = clusters[key]
        if len(tied) > 1:
            tied = _head_to_head_order(tied, fixtures, results)
        ordered.extend(tied)
    return ordered


def generate_group_standing(group_id, team_ids, fixtures, results):
    """
    Build the group table from the latest results.

    Args:
        group_id: Group identifier
        team_ids: Teams in the group
        fixtures: The group's Fixture values
        results: Mapping of match id -> latest MatchResult

    Returns:
        GroupStanding, or None when any group match is still without a result
    """
    fixtures = sorted(fixtures, key=lambda f: f.match_id)

    for fixture in fixtures:
        result = results.get(fixture.match_id)
        if result is None or not result.is_decided(allows_draw=True):
            return None

    records = _tally(sorted(set(team_ids)), fixtures, results)
    ordered = order_teams(records, fixtures, results)

    return GroupStanding(
        group_id=group_id,
        ordered_team_ids=tuple(ordered),
        per_team=records,
        source_versions=tuple((f.match_id, results[f.match_id].version) for f in fixtures),
    )


def validate_order_pick(pick):
    if not isinstance(pick, (list, tuple)) or not all(isinstance(t, str) and t for t in pick):
        raise InvalidPick("Structural pick must be an ordered list of team ids", pick=pick)
    if len(set(pick)) != len(pick):
        raise InvalidPick("Structural pick lists a team more than once", pick=list(pick))
    return list(pick)


def evaluate_group_pick(pick, standing, config, participant_id=None, phase_id=None):
    """
    Score a predicted finishing order against a generated GroupStanding.

    Only exact-index matches earn points. The perfect-group bonus is added once
    when every position matched and the bonus is enabled.
    """
    if pick is None:
        return empty_breakdown(participant_id, standing.group_id, GROUP_STANDINGS, phase_id)

    pick = validate_order_pick(pick)

    rules = []
    positions = min(len(config.position_points), len(standing.ordered_team_ids))
    for index in range(positions):
        predicted = pick[index] if index < len(pick) else None
        matched = predicted is not None and predicted == standing.ordered_team_ids[index]
        points = config.position_points[index]
        rules.append(
            RuleEvaluation(type=f"POSITION_{index + 1}", matched=matched, points=points if matched else 0)
        )

    if config.bonus_perfect_group_enabled:
        perfect = positions > 0 and all(rule.matched for rule in rules)
        rules.append(
            RuleEvaluation(
                type="PERFECT_GROUP",
                matched=perfect,
                points=config.bonus_perfect_group if perfect else 0,
            )
        )

    return ScoreBreakdown(
        participant_id=participant_id,
        subject_id=standing.group_id,
        kind=GROUP_STANDINGS,
        rules=tuple(rules),
        phase_id=phase_id,
        has_pick=True,
    )


# Cross-group ranking (pluggable)


def default_cross_group_key(standing, record):
    return (-record.points, -record.goal_difference, -record.goals_for, standing.group_id)


def rank_across_groups(standings, position, ranker=None):
    """
    Rank the teams finishing at `position` across all groups.

    Args:
        standings: iterable of GroupStanding (all must be ready)
        position: 1-based finishing position to compare
        ranker: optional key function (standing, TeamRecord) -> sortable key

    Returns:
        list of team ids, best first
    """
    ranker = ranker or default_cross_group_key
    candidates = []
    for standing in standings:
        team_id = standing.team_at(position)
        if team_id is not None:
            candidates.append((ranker(standing, standing.per_team[team_id]), team_id))
    return [team_id for _, team_id in sorted(candidates)]


def global_qualifier_order(standings, positions=(1, 2), ranker=None):
    """Qualifiers ordered by finishing position, then cross-group rank"""
    order = []
    for position in positions:
        order.extend(rank_across_groups(standings, position, ranker))
    return order


def evaluate_global_qualifiers_pick(pick, actual_order, points, participant_id=None, phase_id=None):
    """Flat points per qualifier predicted at its exact index"""
    if pick is None:
        return empty_breakdown(participant_id, "global_qualifiers", GLOBAL_QUALIFIERS, phase_id)

    pick = validate_order_pick(pick)
    rules = []
    for index, team_id in enumerate(actual_order):
        matched = index < len(pick) and pick[index] == team_id
        rules.append(
            RuleEvaluation(type=f"QUALIFIER_{index + 1}", matched=matched, points=points if matched else 0)
        )

    return ScoreBreakdown(
        participant_id=participant_id,
        subject_id="global_qualifiers",
        kind=GLOBAL_QUALIFIERS,
        rules=tuple(rules),
        phase_id=phase_id,
        has_pick=True,
    )
