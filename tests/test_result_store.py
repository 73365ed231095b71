"""
Tests for the persisted result store, the recomputation cascade and
pick intake.
"""

import gc
from datetime import timedelta

import pytest

from pickpool import db
from pickpool.engine.errors import (
    ConcurrentCorrectionConflict,
    InvalidPick,
    MissingReason,
    PickLocked,
    PickPoolError,
    UnknownMatch,
    UnknownPool,
)
from pickpool.models import AuditEvent, Fixture, MatchResultVersion
from pickpool.models.audit_event import RESULT_CORRECTED, RESULT_PUBLISHED, SCORES_RECOMPUTED
from pickpool.services import pick_service, recompute, result_store


def total_for(pool_id, participant_id):
    snapshot = recompute.get_pool_snapshot(pool_id)
    return snapshot.aggregates[participant_id].total


def test_publish_creates_first_version(pool):
    outcome = result_store.publish_result(pool.id, "G1", 2, 1, actor_id="admin")

    assert outcome.created
    assert outcome.result.version == 1
    assert result_store.get_latest(pool.id, "G1").home_goals == 2

    events = AuditEvent.history_for_match(pool.id, "G1")
    assert [e.event_type for e in events] == [RESULT_PUBLISHED]
    assert events[0].actor_id == "admin"


def test_identical_republish_is_a_no_op(pool):
    result_store.publish_result(pool.id, "G1", 2, 1)
    outcome = result_store.publish_result(pool.id, "G1", 2, 1)

    assert not outcome.created
    assert outcome.result.version == 1
    assert MatchResultVersion.query.count() == 1


def test_correction_requires_reason(pool):
    result_store.publish_result(pool.id, "G1", 1, 1)

    with pytest.raises(MissingReason):
        result_store.publish_result(pool.id, "G1", 2, 1)
    with pytest.raises(MissingReason):
        result_store.correct_result(pool.id, "G1", 2, 1, reason="")

    outcome = result_store.correct_result(pool.id, "G1", 2, 1, reason="Goal given after review")
    assert outcome.result.version == 2

    history = result_store.get_history(pool.id, "G1")
    assert [v["version"] for v in history] == [1, 2]
    assert history[1]["reason"] == "Goal given after review"

    events = AuditEvent.history_for_match(pool.id, "G1")
    assert [e.event_type for e in events] == [RESULT_PUBLISHED, RESULT_CORRECTED]


def test_correct_before_publish_fails(pool):
    with pytest.raises(PickPoolError):
        result_store.correct_result(pool.id, "G1", 2, 1, reason="typo")


def test_stale_expected_version_conflicts(pool):
    result_store.publish_result(pool.id, "G1", 1, 1, expected_version=0)

    with pytest.raises(ConcurrentCorrectionConflict):
        result_store.publish_result(pool.id, "G1", 2, 1, reason="typo", expected_version=0)

    outcome = result_store.publish_result(pool.id, "G1", 2, 1, reason="typo", expected_version=1)
    assert outcome.result.version == 2


def test_in_flight_update_conflicts(pool):
    lock = result_store._match_lock(pool.id, "G1")
    lock.acquire()
    try:
        with pytest.raises(ConcurrentCorrectionConflict):
            result_store.publish_result(pool.id, "G1", 1, 0)
    finally:
        lock.release()

    assert result_store.publish_result(pool.id, "G1", 1, 0).created


def test_match_locks_are_released_after_publish(pool):
    held = result_store._match_lock(pool.id, "G2")
    assert result_store._match_lock(pool.id, "G2") is held

    result_store.publish_result(pool.id, "G1", 1, 0)
    del held
    gc.collect()

    assert (pool.id, "G1") not in result_store._locks
    assert (pool.id, "G2") not in result_store._locks


def test_unknown_match_and_pool(pool):
    with pytest.raises(UnknownMatch):
        result_store.publish_result(pool.id, "NOPE", 1, 0)
    with pytest.raises(UnknownPool):
        result_store.publish_result(pool.id + 100, "G1", 1, 0)


def test_invalid_result_fields_store_nothing(pool):
    with pytest.raises(PickPoolError):
        result_store.publish_result(pool.id, "G1", -1, 0)
    with pytest.raises(PickPoolError):
        result_store.publish_result(pool.id, "G1", 1, 1, home_penalties=4)

    assert result_store.get_history(pool.id, "G1") == []


def test_correction_reduces_exact_score_points(pool):
    pick_service.save_match_pick(pool, "p1", "G1", 1, 1)
    result_store.publish_result(pool.id, "G1", 1, 1)

    # EXACT_SCORE 10 + AWAY_GOALS 2
    assert total_for(pool.id, "p1") == 12
    assert pool.scores_fingerprint == recompute.current_fingerprint(pool)

    result_store.correct_result(pool.id, "G1", 2, 1, reason="Home goal wrongly disallowed")

    assert total_for(pool.id, "p1") == 2
    assert pool.scores_fingerprint == recompute.current_fingerprint(pool)


def test_bracket_slots_are_persisted(pool, publish_group):
    publish_group(pool.id)

    final = Fixture.get_by_match(pool.id, "F")
    assert (final.home_team_id, final.away_team_id) == ("DEN", "CRO")

    # re-running leaves the slots alone
    snapshot = recompute.compute_snapshot(pool)
    assert recompute.apply_bracket(pool, snapshot, Fixture.get_for_pool(pool.id)) == 0

    result_store.correct_result(pool.id, "G6", 1, 0, reason="Result entered the wrong way round")
    final = Fixture.get_by_match(pool.id, "F")
    # CRO and DEN both on 6 pts and GD +1, CRO ahead on goals for
    assert (final.home_team_id, final.away_team_id) == ("CRO", "DEN")


def test_knockout_winner_picks_score_after_final(pool, publish_group):
    publish_group(pool.id)
    pick_service.save_structural_pick(pool, "p1", "final", {"matches": {"F": "DEN"}})
    pick_service.save_structural_pick(pool, "p2", "final", {"matches": {"F": "CRO"}})

    result_store.publish_result(pool.id, "F", 0, 0)
    snapshot = recompute.get_pool_snapshot(pool.id)
    assert not [b for b in snapshot.breakdowns if b.subject_id == "F"]

    result_store.correct_result(
        pool.id, "F", 0, 0, reason="Shoot-out result", home_penalties=5, away_penalties=4
    )
    assert total_for(pool.id, "p1") == 7
    assert total_for(pool.id, "p2") == 0


def test_sweep_recomputes_lagging_pool(pool):
    result_store.publish_result(pool.id, "G1", 2, 1)
    assert recompute.find_stale_pools() == []

    pool.scores_fingerprint = None
    db.session.commit()

    assert [p.id for p in recompute.find_stale_pools()] == [pool.id]
    assert recompute.sweep_stale_pools() == [pool.id]
    assert recompute.find_stale_pools() == []


def test_new_pick_makes_pool_stale(pool):
    result_store.publish_result(pool.id, "G1", 2, 1)
    pick_service.save_match_pick(pool, "p1", "G2", 1, 1)

    assert [p.id for p in recompute.find_stale_pools()] == [pool.id]
    # readers never see the old snapshot
    assert "p1" in recompute.get_pool_snapshot(pool.id).aggregates


def test_pick_overwrite_and_lock(pool, kickoff):
    pick_service.save_match_pick(pool, "p1", "G1", 1, 0)
    pick = pick_service.save_match_pick(pool, "p1", "G1", 3, 0)

    assert (pick.home_goals, pick.away_goals) == (3, 0)
    assert pool.participant_ids() == ["p1"]

    with pytest.raises(PickLocked):
        pick_service.save_match_pick(pool, "p1", "G1", 2, 0, now=kickoff - timedelta(minutes=5))


def test_pick_validation(pool):
    with pytest.raises(InvalidPick):
        pick_service.save_match_pick(pool, "p1", "G1", -1, 0)
    with pytest.raises(InvalidPick):
        pick_service.save_match_pick(pool, "p1", "F", 1, 0)
    with pytest.raises(UnknownMatch):
        pick_service.save_match_pick(pool, "p1", "NOPE", 1, 0)
    with pytest.raises(InvalidPick):
        pick_service.save_structural_pick(pool, "p1", "group_stage", {"groups": {}})
    with pytest.raises(InvalidPick):
        pick_service.save_structural_pick(pool, "p1", "final", {"matches": {"G1": "FRA"}})


def test_added_knockout_fixture_is_resolved_by_sweep(pool, publish_group):
    publish_group(pool.id)
    assert recompute.find_stale_pools() == []

    db.session.add(
        Fixture(
            pool_id=pool.id,
            match_id="SF",
            phase_id="final",
            home_source="group:A:1",
            away_source="group:A:2",
        )
    )
    pool.bump_fixtures_revision()
    db.session.commit()

    assert [p.id for p in recompute.find_stale_pools()] == [pool.id]
    assert recompute.sweep_stale_pools() == [pool.id]

    semi = Fixture.get_by_match(pool.id, "SF")
    assert (semi.home_team_id, semi.away_team_id) == ("DEN", "CRO")
    assert recompute.sweep_stale_pools() == []


def test_added_group_fixture_reopens_group(pool, kickoff, publish_group):
    publish_group(pool.id)
    assert "A" in recompute.get_pool_snapshot(pool.id).standings

    db.session.add(
        Fixture(
            pool_id=pool.id,
            match_id="G7",
            phase_id="group_stage",
            group_id="A",
            home_team_id="FRA",
            away_team_id="DEN",
            kickoff_utc=kickoff + timedelta(days=1),
        )
    )
    pool.bump_fixtures_revision()
    db.session.commit()

    assert recompute.sweep_stale_pools() == [pool.id]

    snapshot = recompute.get_pool_snapshot(pool.id)
    assert snapshot.pending_groups == ["A"]
    final = Fixture.get_by_match(pool.id, "F")
    assert (final.home_team_id, final.away_team_id) == (None, None)


def test_recompute_event_records_downstream(pool):
    result_store.publish_result(pool.id, "G1", 2, 1)

    event = AuditEvent.query.filter_by(pool_id=pool.id, event_type=SCORES_RECOMPUTED).one()
    assert event.event_metadata["affected_groups"] == ["A"]
    assert event.event_metadata["affected_matches"] == ["F"]
    assert event.event_metadata["affected_phases"] == ["final", "group_stage"]
