"""
Pool score recomputation.

on_result_version() is the single invalidate-and-recompute entry point run
after every new result version. It rebuilds the whole pool snapshot from the
latest result versions, writes resolved bracket slots back onto the fixtures,
caches the snapshot and only then marks the pool's fingerprint as applied.

get_pool_snapshot() never serves a snapshot built from anything other than
the current inputs: a stale cache entry is recomputed on the spot.
"""

from sqlalchemy.exc import SQLAlchemyError

from pickpool import db
from pickpool.engine.cascade import affected_by, build_pool_snapshot, compute_fingerprint
from pickpool.engine.errors import UnknownPool
from pickpool.models import AuditEvent, Fixture, MatchPick, MatchResultHeader, Pool, StructuralPick
from pickpool.models.audit_event import SCORES_RECOMPUTED
from pickpool.utils.cache_utils import get_cached_snapshot, store_snapshot
from pickpool.utils.logging_config import ContextualLogger

logger = ContextualLogger(__name__)


def get_pool(pool_id):
    pool = db.session.get(Pool, pool_id)
    if pool is None:
        raise UnknownPool(f"Pool {pool_id} not found", pool_id=pool_id)
    return pool


def revision_stamps(pool, participant_ids):
    return (
        f"config:{pool.config_revision}",
        f"picks:{pool.picks_revision}",
        f"fixtures:{pool.fixtures_revision}",
        f"participants:{','.join(sorted(participant_ids))}",
    )


def load_inputs(pool):
    """Read every input of the pool's derived scores in one pass"""
    results = MatchResultHeader.latest_results(pool.id)
    participant_ids = pool.participant_ids()
    return {
        "phases": pool.phases,
        "fixture_rows": Fixture.get_for_pool(pool.id),
        "results": results,
        "match_picks": MatchPick.for_pool(pool.id),
        "structural_picks": StructuralPick.for_pool(pool.id),
        "participant_ids": participant_ids,
        "fingerprint": compute_fingerprint(results, revision_stamps(pool, participant_ids)),
    }


def current_fingerprint(pool):
    results = MatchResultHeader.latest_results(pool.id)
    return compute_fingerprint(results, revision_stamps(pool, pool.participant_ids()))


def compute_snapshot(pool, inputs=None):
    inputs = inputs or load_inputs(pool)
    return build_pool_snapshot(
        phases=inputs["phases"],
        fixtures=[row.to_value() for row in inputs["fixture_rows"]],
        results=inputs["results"],
        match_picks=inputs["match_picks"],
        structural_picks=inputs["structural_picks"],
        participant_ids=inputs["participant_ids"],
        fingerprint=inputs["fingerprint"],
    )


def apply_bracket(pool, snapshot, fixture_rows):
    """
    Write resolved slots onto the stored fixtures.

    Re-running with the same snapshot changes nothing.

    Returns:
        int: number of slots written
    """
    if not pool.auto_advance_enabled:
        return 0

    rows = {row.match_id: row for row in fixture_rows}
    changed = snapshot.bracket.changed_slots([row.to_value() for row in fixture_rows])
    for (match_id, side), team_id in sorted(changed.items()):
        rows[match_id].assign_slot(side, team_id)
        logger.info(f"Bracket slot {match_id}/{side} -> {team_id or 'TBD'}")
    return len(changed)


def recompute_pool(pool, downstream=None):
    """
    Recompute, persist bracket slots, cache and mark the pool as applied.

    downstream is the affected_by() set of the triggering result, recorded on
    the audit event.
    """
    log = logger.bind(pool=pool.id)
    inputs = load_inputs(pool)
    snapshot = compute_snapshot(pool, inputs)

    try:
        slots = apply_bracket(pool, snapshot, inputs["fixture_rows"])
        if pool.scores_fingerprint != snapshot.fingerprint:
            metadata = {"fingerprint": snapshot.fingerprint, "bracket_slots": slots}
            if downstream is not None:
                metadata.update(
                    affected_groups=downstream["groups"],
                    affected_matches=downstream["matches"],
                    affected_phases=downstream["phases"],
                )
            AuditEvent.log_event(
                pool_id=pool.id,
                event_type=SCORES_RECOMPUTED,
                description=f"Scores recomputed for {len(snapshot.aggregates)} participants",
                event_metadata=metadata,
            )
        pool.mark_scores_applied(snapshot.fingerprint)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log.error(f"Failed to persist recomputation: {e}")
        raise

    store_snapshot(pool.id, snapshot)
    log.info(
        f"Recomputed scores: {len(snapshot.breakdowns)} breakdowns, "
        f"{len(snapshot.standings)} groups ready, {slots} bracket slots updated"
    )
    return snapshot


def on_result_version(pool_id, match_id, version):
    """
    Invalidate and recompute everything downstream of one new result version.

    The whole pool is rescored; the downstream set only annotates the audit trail.
    """
    pool = get_pool(pool_id)
    fixtures = [row.to_value() for row in Fixture.get_for_pool(pool_id)]
    downstream = affected_by(fixtures, match_id)

    log = logger.bind(pool=pool_id, match=match_id, version=version)
    log.info(
        f"Result version applied; downstream groups={downstream['groups']} "
        f"matches={downstream['matches']} phases={downstream['phases']}"
    )
    return recompute_pool(pool, downstream=downstream)


def get_pool_snapshot(pool_id):
    """Snapshot at the current fingerprint, recomputed when the cache is stale"""
    pool = get_pool(pool_id)
    inputs = load_inputs(pool)

    snapshot = get_cached_snapshot(pool_id, inputs["fingerprint"])
    if snapshot is not None:
        return snapshot

    snapshot = compute_snapshot(pool, inputs)
    store_snapshot(pool_id, snapshot)
    return snapshot


def find_stale_pools():
    """Active pools whose applied fingerprint lags their inputs"""
    stale = []
    for pool in Pool.query.filter_by(is_active=True).order_by(Pool.id).all():
        if pool.scores_fingerprint != current_fingerprint(pool):
            stale.append(pool)
    return stale


def sweep_stale_pools():
    """Re-run the cascade for every lagging pool; returns the recomputed pool ids"""
    recomputed = []
    for pool in find_stale_pools():
        try:
            recompute_pool(pool)
            recomputed.append(pool.id)
        except SQLAlchemyError as e:
            logger.bind(pool=pool.id).error(f"Sweep failed, will retry: {e}")
    return recomputed
