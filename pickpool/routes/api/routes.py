from functools import wraps

from flask import jsonify, request

from pickpool import limiter
from pickpool.engine.errors import PickPoolError
from pickpool.models import AuditEvent, Fixture
from pickpool.routes.api import bp
from pickpool.services import pick_service, result_store
from pickpool.services.recompute import get_pool, get_pool_snapshot


def add_security_headers(f):
    """Add no-store caching headers to API responses"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = f(*args, **kwargs)
        if hasattr(response, "headers"):
            response.headers["Cache-Control"] = (
                "no-store, no-cache, must-revalidate, max-age=0"
            )
        return response

    return decorated_function


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise PickPoolError("Request body must be a JSON object")
    return data


def _field(data, *names, required=False):
    """First present key among snake_case/camelCase spellings"""
    for name in names:
        if data.get(name) is not None:
            return data[name]
    if required:
        raise PickPoolError(f"{names[0]} is required", field=names[0])
    return None


@bp.route("/pools/<int:pool_id>")
def pool_detail(pool_id):
    """Pool configuration and fixtures"""
    pool = get_pool(pool_id)
    data = pool.to_dict()
    data["fixtures"] = [fixture.to_dict() for fixture in Fixture.get_for_pool(pool_id)]
    return jsonify(data)


@bp.route("/pools/<int:pool_id>/results/<match_id>", methods=["PUT"])
@limiter.limit("30 per minute")
def publish_result(pool_id, match_id):
    """Publish a result or, with a reason, correct it"""
    data = _json_body()

    outcome = result_store.publish_result(
        pool_id,
        match_id,
        _field(data, "home_goals", "homeGoals", required=True),
        _field(data, "away_goals", "awayGoals", required=True),
        home_penalties=_field(data, "home_penalties", "homePenalties"),
        away_penalties=_field(data, "away_penalties", "awayPenalties"),
        reason=_field(data, "reason"),
        expected_version=_field(data, "expected_version", "expectedVersion"),
        actor_id=_field(data, "actor_id", "actorId"),
    )
    return jsonify(outcome.to_dict()), 201 if outcome.created else 200


@bp.route("/pools/<int:pool_id>/results/<match_id>/history")
def result_history(pool_id, match_id):
    """Ordered version list plus the audit trail of a match"""
    versions = result_store.get_history(pool_id, match_id)
    audit = AuditEvent.history_for_match(pool_id, match_id)
    return jsonify(
        {
            "match_id": match_id,
            "versions": versions,
            "audit": [event.to_dict() for event in audit],
        }
    )


@bp.route("/pools/<int:pool_id>/standings")
@add_security_headers
def standings(pool_id):
    """Ready group tables, pending groups and resolved bracket slots"""
    snapshot = get_pool_snapshot(pool_id)
    return jsonify(
        {
            "fingerprint": snapshot.fingerprint,
            "groups": [s.to_dict() for _, s in sorted(snapshot.standings.items())],
            "pending_groups": snapshot.pending_groups,
            "bracket": [
                {"match_id": match_id, "side": side, "team_id": team_id}
                for (match_id, side), team_id in sorted(snapshot.bracket.slots.items())
            ],
            "winners": snapshot.bracket.winners,
        }
    )


@bp.route("/pools/<int:pool_id>/leaderboard")
@add_security_headers
def leaderboard(pool_id):
    snapshot = get_pool_snapshot(pool_id)
    return jsonify({"fingerprint": snapshot.fingerprint, "leaderboard": snapshot.leaderboard})


@bp.route("/pools/<int:pool_id>/participants/<participant_id>/breakdowns")
@add_security_headers
def participant_breakdowns(pool_id, participant_id):
    """Itemized points of one participant"""
    snapshot = get_pool_snapshot(pool_id)
    aggregate = snapshot.aggregates.get(participant_id)
    return jsonify(
        {
            "participant_id": participant_id,
            "fingerprint": snapshot.fingerprint,
            "breakdowns": [b.to_dict() for b in snapshot.breakdowns_for(participant_id)],
            "per_phase": dict(aggregate.per_phase) if aggregate else {},
            "total": aggregate.total if aggregate else 0,
        }
    )


@bp.route("/pools/<int:pool_id>/picks/<match_id>", methods=["PUT"])
def save_match_pick(pool_id, match_id):
    data = _json_body()
    pool = get_pool(pool_id)
    pick = pick_service.save_match_pick(
        pool,
        _field(data, "participant_id", "participantId", required=True),
        match_id,
        _field(data, "home_goals", "homeGoals", required=True),
        _field(data, "away_goals", "awayGoals", required=True),
    )
    return jsonify(pick.to_dict())


@bp.route("/pools/<int:pool_id>/structural-picks/<phase_id>", methods=["PUT"])
def save_structural_pick(pool_id, phase_id):
    data = _json_body()
    pool = get_pool(pool_id)
    pick = pick_service.save_structural_pick(
        pool,
        _field(data, "participant_id", "participantId", required=True),
        phase_id,
        _field(data, "payload", required=True),
    )
    return jsonify(pick.to_dict())


@bp.route("/scheduler")
def scheduler_status():
    from pickpool.services.scheduler_service import scheduler_service

    return jsonify(scheduler_service.get_status())


@bp.route("/scheduler/action", methods=["POST"])
def scheduler_action():
    """Run a background job on demand"""
    from pickpool.services.scheduler_service import scheduler_service

    data = _json_body()
    action = data.get("action")

    if action == "status":
        return jsonify(scheduler_service.get_status())

    if action == "force_sync":
        try:
            success, message = scheduler_service.force_sync(data.get("sync_type", "sweep"))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        if success:
            return jsonify({"message": message})
        return jsonify({"error": message}), 409

    return jsonify({"error": f"Unknown action: {action}"}), 400
