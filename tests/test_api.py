"""
Tests for the JSON API.
"""

from datetime import datetime, timedelta, timezone

from pickpool import db
from pickpool.models import Fixture


def put_result(client, pool_id, match_id, **body):
    return client.put(f"/api/pools/{pool_id}/results/{match_id}", json=body)


def test_pool_detail(client, pool):
    response = client.get(f"/api/pools/{pool.id}")

    assert response.status_code == 200
    data = response.get_json()
    assert data["name"] == "World Cup"
    assert [f["match_id"] for f in data["fixtures"]][-1] == "G6"
    assert len(data["fixtures"]) == 7


def test_unknown_pool(client, app):
    response = client.get("/api/pools/999/leaderboard")

    assert response.status_code == 404
    assert response.get_json()["error"] == "UNKNOWN_POOL"


def test_publish_and_correct(client, pool):
    response = put_result(client, pool.id, "G1", homeGoals=1, awayGoals=1)
    assert response.status_code == 201
    assert response.get_json()["result"]["version"] == 1

    response = put_result(client, pool.id, "G1", home_goals=1, away_goals=1)
    assert response.status_code == 200
    assert response.get_json()["created"] is False

    response = put_result(client, pool.id, "G1", home_goals=2, away_goals=1)
    assert response.status_code == 400
    assert response.get_json()["error"] == "MISSING_REASON"

    response = put_result(client, pool.id, "G1", home_goals=2, away_goals=1, reason="typo", expectedVersion=0)
    assert response.status_code == 409
    assert response.get_json()["error"] == "CONCURRENT_CORRECTION_CONFLICT"

    response = put_result(client, pool.id, "G1", home_goals=2, away_goals=1, reason="typo", expectedVersion=1)
    assert response.status_code == 201

    history = client.get(f"/api/pools/{pool.id}/results/G1/history").get_json()
    assert [v["version"] for v in history["versions"]] == [1, 2]
    assert len(history["audit"]) == 2


def test_publish_validation(client, pool):
    assert put_result(client, pool.id, "NOPE", home_goals=1, away_goals=0).status_code == 404
    assert put_result(client, pool.id, "G1", home_goals=1).status_code == 400
    assert put_result(client, pool.id, "G1", home_goals=-1, away_goals=0).status_code == 400

    response = client.put(f"/api/pools/{pool.id}/results/G1", data="not json")
    assert response.status_code == 400


def test_standings_and_leaderboard(client, pool, publish_group):
    client.put(f"/api/pools/{pool.id}/picks/G6", json={"participant_id": "p1", "home_goals": 0, "away_goals": 0})
    client.put(f"/api/pools/{pool.id}/picks/G6", json={"participant_id": "p2", "home_goals": 2, "away_goals": 0})

    standings = client.get(f"/api/pools/{pool.id}/standings").get_json()
    assert standings["groups"] == []
    assert standings["pending_groups"] == ["A"]

    publish_group(pool.id)

    response = client.get(f"/api/pools/{pool.id}/standings")
    assert response.headers["Cache-Control"].startswith("no-store")
    standings = response.get_json()
    assert standings["pending_groups"] == []
    assert standings["groups"][0]["ordered_team_ids"] == ["DEN", "CRO", "FRA", "ARG"]
    slots = {(s["match_id"], s["side"]): s["team_id"] for s in standings["bracket"]}
    assert slots[("F", "home")] == "DEN"
    assert slots[("F", "away")] == "CRO"

    leaderboard = client.get(f"/api/pools/{pool.id}/leaderboard").get_json()["leaderboard"]
    assert [(e["participant_id"], e["total"]) for e in leaderboard] == [("p1", 12), ("p2", 2)]

    breakdowns = client.get(f"/api/pools/{pool.id}/participants/p1/breakdowns").get_json()
    assert breakdowns["total"] == 12
    assert breakdowns["per_phase"] == {"group_stage": 12}
    g6 = [b for b in breakdowns["breakdowns"] if b["subject_id"] == "G6"][0]
    assert g6["total_points"] == 12


def test_match_pick_endpoint(client, pool):
    response = client.put(
        f"/api/pools/{pool.id}/picks/G1", json={"participantId": "p1", "homeGoals": 2, "awayGoals": 0}
    )
    assert response.status_code == 200
    assert response.get_json()["home_goals"] == 2

    fixture = Fixture.get_by_match(pool.id, "G1")
    fixture.kickoff_utc = datetime.now(timezone.utc) - timedelta(hours=1)
    db.session.commit()

    response = client.put(
        f"/api/pools/{pool.id}/picks/G1", json={"participant_id": "p1", "home_goals": 1, "away_goals": 0}
    )
    assert response.status_code == 400
    assert response.get_json()["error"] == "PICK_LOCKED"

    response = client.put(f"/api/pools/{pool.id}/picks/G2", json={"home_goals": 1, "away_goals": 0})
    assert response.status_code == 400


def test_structural_pick_endpoint(client, pool):
    response = client.put(
        f"/api/pools/{pool.id}/structural-picks/final",
        json={"participant_id": "p1", "payload": {"matches": {"F": "DEN"}}},
    )
    assert response.status_code == 200
    assert response.get_json()["payload"] == {"matches": {"F": "DEN"}}

    response = client.put(
        f"/api/pools/{pool.id}/structural-picks/group_stage",
        json={"participant_id": "p1", "payload": {"groups": {"A": ["DEN"]}}},
    )
    assert response.status_code == 400
    assert response.get_json()["error"] == "INVALID_PICK"

    response = client.put(
        f"/api/pools/{pool.id}/structural-picks/knockouts",
        json={"participant_id": "p1", "payload": {}},
    )
    assert response.status_code == 400
    assert response.get_json()["error"] == "CONFIG_INCONSISTENT"


def test_scheduler_endpoints(client, app):
    status = client.get("/api/scheduler").get_json()
    assert status["is_running"] is False
    assert status["result_feed"] is None

    response = client.post("/api/scheduler/action", json={"action": "force_sync", "sync_type": "sweep"})
    assert response.status_code == 409
    assert response.get_json()["error"] == "Scheduler is not initialized"

    response = client.post("/api/scheduler/action", json={"action": "restart"})
    assert response.status_code == 400
