"""
Tests for the match pick evaluator.
"""

import pytest

from pickpool.engine.errors import InvalidPick
from pickpool.engine.match_evaluator import evaluate_match_pick, partial_score
from pickpool.engine.pick_config import PickTypeKey, PickTypeRule
from pickpool.engine.results import MatchResult


def rules(**points):
    return [PickTypeRule(key=PickTypeKey(key), enabled=True, points=value) for key, value in points.items()]


def result(home, away, **kwargs):
    return MatchResult(match_id="M1", home_goals=home, away_goals=away, **kwargs)


def test_exact_pick_stacks_every_matching_rule():
    breakdown = evaluate_match_pick(
        {"home_goals": 2, "away_goals": 1},
        result(2, 1),
        rules(EXACT_SCORE=10, GOAL_DIFFERENCE=5, HOME_GOALS=2, AWAY_GOALS=2),
        participant_id="p1",
    )

    assert breakdown.total_points == 19
    assert sorted(breakdown.matched_rules) == [
        "AWAY_GOALS",
        "EXACT_SCORE",
        "GOAL_DIFFERENCE",
        "HOME_GOALS",
    ]


def test_goal_difference_matches_without_exact_score():
    breakdown = evaluate_match_pick(
        {"home_goals": 2, "away_goals": 1}, result(3, 2), rules(EXACT_SCORE=10, GOAL_DIFFERENCE=5)
    )

    by_type = {rule.type: rule for rule in breakdown.rules}
    assert by_type["GOAL_DIFFERENCE"].matched
    assert by_type["GOAL_DIFFERENCE"].points == 5
    assert not by_type["EXACT_SCORE"].matched
    assert by_type["EXACT_SCORE"].points == 0
    assert breakdown.total_points == 5


def test_partial_score_requires_exactly_one_side():
    assert partial_score(2, 0, 2, 1)
    assert partial_score(0, 1, 2, 1)
    assert not partial_score(2, 1, 2, 1)
    assert not partial_score(0, 0, 2, 1)


def test_match_outcome_ignores_penalties():
    shootout = result(1, 1, home_penalties=5, away_penalties=3)

    draw_pick = evaluate_match_pick({"home_goals": 0, "away_goals": 0}, shootout, rules(MATCH_OUTCOME=3))
    home_win_pick = evaluate_match_pick({"home_goals": 2, "away_goals": 1}, shootout, rules(MATCH_OUTCOME=3))

    assert draw_pick.total_points == 3
    assert home_win_pick.total_points == 0


def test_total_goals():
    breakdown = evaluate_match_pick((3, 0), result(1, 2), rules(TOTAL_GOALS=4))
    assert breakdown.total_points == 4


def test_missing_pick_yields_empty_breakdown():
    breakdown = evaluate_match_pick(None, result(1, 0, version=2), rules(EXACT_SCORE=10), participant_id="p1")

    assert breakdown.has_pick is False
    assert breakdown.rules == ()
    assert breakdown.total_points == 0
    assert breakdown.source_version == 2


def test_disabled_rules_are_skipped():
    rule_set = [
        PickTypeRule(key=PickTypeKey.EXACT_SCORE, enabled=False, points=10),
        PickTypeRule(key=PickTypeKey.HOME_GOALS, enabled=True, points=2),
    ]
    breakdown = evaluate_match_pick((1, 0), result(1, 0), rule_set)

    assert [rule.type for rule in breakdown.rules] == ["HOME_GOALS"]
    assert breakdown.total_points == 2


@pytest.mark.parametrize(
    "pick",
    [
        {"home_goals": -1, "away_goals": 0},
        {"home_goals": 1},
        {"home_goals": "2", "away_goals": 1},
        "2-1",
    ],
)
def test_invalid_picks_are_rejected(pick):
    with pytest.raises(InvalidPick):
        evaluate_match_pick(pick, result(1, 0), rules(EXACT_SCORE=10))


def test_camel_case_pick_payload():
    breakdown = evaluate_match_pick({"homeGoals": 1, "awayGoals": 0}, result(1, 0), rules(EXACT_SCORE=10))
    assert breakdown.total_points == 10


def test_evaluation_is_deterministic():
    rule_set = rules(EXACT_SCORE=10, GOAL_DIFFERENCE=5, PARTIAL_SCORE=3)
    first = evaluate_match_pick((2, 2), result(2, 0), rule_set, "p1", "group_stage")
    second = evaluate_match_pick((2, 2), result(2, 0), rule_set, "p1", "group_stage")

    assert first == second
    assert first.to_dict()["total_points"] == 3
