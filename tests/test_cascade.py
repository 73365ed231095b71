"""
Tests for the full pool recomputation graph.
"""

import pytest

from pickpool.engine.cascade import affected_by, build_pool_snapshot, compute_fingerprint
from pickpool.engine.fixtures import Fixture
from pickpool.engine.pick_config import parse_pool_config
from pickpool.engine.results import MatchResult

GROUP_A = [
    ("G1", "FRA", "ARG", 2, 1),
    ("G2", "FRA", "CRO", 1, 2),
    ("G3", "FRA", "DEN", 0, 1),
    ("G4", "ARG", "CRO", 2, 1),
    ("G5", "ARG", "DEN", 0, 1),
    ("G6", "CRO", "DEN", 0, 0),
]

PHASES = parse_pool_config(
    [
        {
            "phaseId": "group_stage",
            "requiresScore": False,
            "structuralPicks": {
                "type": "GROUP_STANDINGS",
                "config": {"pointsPerPosition": [5, 3, 2, 1], "bonusPerfectGroup": 10},
            },
        },
        {
            "phaseId": "final",
            "requiresScore": True,
            "matchPicks": {
                "types": [
                    {"key": "EXACT_SCORE", "enabled": True, "points": 10},
                    {"key": "MATCH_OUTCOME", "enabled": True, "points": 3},
                ]
            },
        },
    ]
)

PERFECT_PICK = {"groups": {"A": ["DEN", "CRO", "FRA", "ARG"]}}


@pytest.fixture
def fixtures():
    group = [
        Fixture(match_id=mid, phase_id="group_stage", group_id="A", home_team_id=h, away_team_id=a)
        for mid, h, a, _, _ in GROUP_A
    ]
    final = Fixture(match_id="F", phase_id="final", home_source="group:A:1", away_source="group:A:2")
    return group + [final]


@pytest.fixture
def group_results():
    return {mid: MatchResult(match_id=mid, home_goals=hg, away_goals=ag) for mid, _, _, hg, ag in GROUP_A}


def test_pending_group_produces_no_group_breakdowns(fixtures, group_results):
    del group_results["G6"]

    snapshot = build_pool_snapshot(
        PHASES, fixtures, group_results, {}, {("p1", "group_stage"): PERFECT_PICK}
    )

    assert snapshot.pending_groups == ["A"]
    assert snapshot.standings == {}
    assert snapshot.breakdowns == []
    assert snapshot.bracket.team("F", "home") is None
    assert snapshot.aggregates["p1"].total == 0


def test_full_cascade(fixtures, group_results):
    match_picks = {("p1", "F"): {"home_goals": 1, "away_goals": 1}}
    structural = {("p1", "group_stage"): PERFECT_PICK}

    # level final without a shoot-out is not decided yet
    results = dict(group_results, F=MatchResult(match_id="F", home_goals=1, away_goals=1))
    snapshot = build_pool_snapshot(PHASES, fixtures, results, match_picks, structural, participant_ids=["p2"])

    assert snapshot.standings["A"].ordered_team_ids == ("DEN", "CRO", "FRA", "ARG")
    assert snapshot.bracket.team("F", "home") == "DEN"
    assert snapshot.bracket.team("F", "away") == "CRO"
    assert [b.subject_id for b in snapshot.breakdowns_for("p1")] == ["A"]
    assert snapshot.aggregates["p1"].total == 21

    results["F"] = MatchResult(match_id="F", home_goals=1, away_goals=1, home_penalties=4, away_penalties=3)
    snapshot = build_pool_snapshot(PHASES, fixtures, results, match_picks, structural, participant_ids=["p2"])

    final = [b for b in snapshot.breakdowns_for("p1") if b.subject_id == "F"][0]
    assert final.total_points == 13
    assert snapshot.bracket.winners["F"] == "DEN"
    assert snapshot.aggregates["p1"].per_phase == {"group_stage": 21, "final": 13}
    assert snapshot.aggregates["p2"].total == 0
    assert [entry["participant_id"] for entry in snapshot.leaderboard] == ["p1", "p2"]
    assert snapshot.leaderboard[0]["total"] == 34


def test_invalid_stored_pick_is_recorded(fixtures, group_results):
    results = dict(group_results, F=MatchResult(match_id="F", home_goals=2, away_goals=0))
    match_picks = {
        ("p1", "F"): {"home_goals": 2, "away_goals": 0},
        ("p3", "F"): {"home_goals": -1, "away_goals": 0},
    }

    snapshot = build_pool_snapshot(PHASES, fixtures, results, match_picks, {})

    assert snapshot.invalid_picks == [("p3", "F")]
    assert snapshot.aggregates["p1"].total == 13
    assert snapshot.aggregates["p3"].total == 0


def test_global_qualifiers_need_every_group():
    phases = parse_pool_config(
        [
            {
                "phaseId": "group_stage",
                "requiresScore": False,
                "structuralPicks": {
                    "type": "GROUP_STANDINGS",
                    "config": {
                        "pointsPerPosition": [0, 0, 0, 0],
                        "includeGlobalQualifiers": True,
                        "globalQualifiersPoints": 2,
                    },
                },
            }
        ]
    )
    fixtures = [
        Fixture(match_id=mid, phase_id="group_stage", group_id="A", home_team_id=h, away_team_id=a)
        for mid, h, a, _, _ in GROUP_A
    ]
    results = {mid: MatchResult(match_id=mid, home_goals=hg, away_goals=ag) for mid, _, _, hg, ag in GROUP_A}
    structural = {("p1", "group_stage"): {"global_qualifiers": ["DEN", "CRO"]}}

    snapshot = build_pool_snapshot(phases, fixtures, results, {}, structural)

    qualifiers = [b for b in snapshot.breakdowns if b.subject_id == "global_qualifiers"][0]
    assert qualifiers.total_points == 4

    del results["G1"]
    snapshot = build_pool_snapshot(phases, fixtures, results, {}, structural)
    assert not [b for b in snapshot.breakdowns if b.subject_id == "global_qualifiers"]


def test_affected_by_follows_group_into_bracket(fixtures):
    downstream = affected_by(fixtures, "G1")

    assert downstream["groups"] == ["A"]
    assert downstream["matches"] == ["F"]
    assert downstream["phases"] == ["final", "group_stage"]


def test_affected_by_follows_winner_chain():
    fixtures = [
        Fixture(match_id="SF1", phase_id="semi_finals", home_team_id="A", away_team_id="B"),
        Fixture(match_id="SF2", phase_id="semi_finals", home_team_id="C", away_team_id="D"),
        Fixture(match_id="F", phase_id="final", home_source="winner:SF1", away_source="winner:SF2"),
        Fixture(match_id="TP", phase_id="third_place", home_source="loser:SF1", away_source="loser:SF2"),
    ]

    downstream = affected_by(fixtures, "SF1")

    assert sorted(downstream["matches"]) == ["F", "TP"]
    assert downstream["groups"] == []
    assert affected_by(fixtures, "F")["matches"] == []


def test_fingerprint_tracks_versions_and_stamps(group_results):
    base = compute_fingerprint(group_results)
    corrected = dict(
        group_results,
        G1=MatchResult(match_id="G1", home_goals=1, away_goals=1, version=2, reason="VAR"),
    )

    assert compute_fingerprint(group_results) == base
    assert compute_fingerprint(corrected) != base
    assert compute_fingerprint(group_results, ("picks:2",)) != base


def test_snapshot_is_deterministic(fixtures, group_results):
    structural = {("p1", "group_stage"): PERFECT_PICK, ("p2", "group_stage"): {"groups": {"A": ["CRO"]}}}

    first = build_pool_snapshot(PHASES, fixtures, group_results, {}, structural)
    second = build_pool_snapshot(PHASES, list(reversed(fixtures)), group_results, {}, structural)

    assert first.to_dict() == second.to_dict()
    assert [b.to_dict() for b in first.breakdowns] == [b.to_dict() for b in second.breakdowns]
