"""
Match Pick Evaluator

Scores one participant's score prediction against one official match result.
Every enabled rule is evaluated independently and its points added when
matched: the evaluator always stacks. Exclusive schemes are expressed in
configuration by disabling the overlapping lower-value rules.
"""

from .breakdown import MATCH, RuleEvaluation, ScoreBreakdown, empty_breakdown
from .errors import InvalidPick
from .pick_config import PickTypeKey


def _sign(value):
    return (value > 0) - (value < 0)


def exact_score(pick_home, pick_away, home, away):
    return pick_home == home and pick_away == away


def goal_difference(pick_home, pick_away, home, away):
    return pick_home - pick_away == home - away


def partial_score(pick_home, pick_away, home, away):
    """Exactly one side matches"""
    return (pick_home == home) != (pick_away == away)


def total_goals(pick_home, pick_away, home, away):
    return pick_home + pick_away == home + away


def match_outcome(pick_home, pick_away, home, away):
    """Win/draw/loss after 90 minutes; shoot-outs never count here"""
    return _sign(pick_home - pick_away) == _sign(home - away)


def home_goals(pick_home, pick_away, home, away):
    return pick_home == home


def away_goals(pick_home, pick_away, home, away):
    return pick_away == away


PREDICATES = {
    PickTypeKey.EXACT_SCORE: exact_score,
    PickTypeKey.GOAL_DIFFERENCE: goal_difference,
    PickTypeKey.PARTIAL_SCORE: partial_score,
    PickTypeKey.TOTAL_GOALS: total_goals,
    PickTypeKey.MATCH_OUTCOME: match_outcome,
    PickTypeKey.HOME_GOALS: home_goals,
    PickTypeKey.AWAY_GOALS: away_goals,
}


def validate_score_pick(pick):
    """Return (home, away) from a score pick payload or raise InvalidPick"""
    if isinstance(pick, dict):
        home = pick.get("home_goals", pick.get("homeGoals"))
        away = pick.get("away_goals", pick.get("awayGoals"))
    elif isinstance(pick, (tuple, list)) and len(pick) == 2:
        home, away = pick
    else:
        raise InvalidPick("Score pick must provide home and away goals")

    for value in (home, away):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise InvalidPick("Score pick goals must be non-negative integers", pick=pick)
    return home, away


def evaluate_match_pick(pick, result, rules, participant_id=None, phase_id=None):
    """
    Evaluate a score pick against a match result.

    Args:
        pick: {"home_goals", "away_goals"} (or a (home, away) pair), None if no pick
        result: MatchResult (callers only invoke this for published results)
        rules: iterable of PickTypeRule; disabled rules are skipped

    Returns:
        ScoreBreakdown with one RuleEvaluation per enabled rule
    """
    if pick is None:
        return empty_breakdown(
            participant_id, result.match_id, MATCH, phase_id, source_version=result.version
        )

    pick_home, pick_away = validate_score_pick(pick)

    evaluations = []
    for rule in rules:
        if not rule.enabled:
            continue
        matched = PREDICATES[rule.key](pick_home, pick_away, result.home_goals, result.away_goals)
        evaluations.append(
            RuleEvaluation(type=rule.key.value, matched=matched, points=rule.points if matched else 0)
        )

    return ScoreBreakdown(
        participant_id=participant_id,
        subject_id=result.match_id,
        kind=MATCH,
        rules=tuple(evaluations),
        phase_id=phase_id,
        has_pick=True,
        source_version=result.version,
    )
