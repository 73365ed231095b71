from datetime import datetime, timedelta, timezone

import pytest

from pickpool import create_app, db
from pickpool.models import Fixture, Pool
from pickpool.services import result_store

GROUP_A = [
    # match_id, home, away, home_goals, away_goals
    ("G1", "FRA", "ARG", 2, 1),
    ("G2", "FRA", "CRO", 1, 2),
    ("G3", "FRA", "DEN", 0, 1),
    ("G4", "ARG", "CRO", 2, 1),
    ("G5", "ARG", "DEN", 0, 1),
    ("G6", "CRO", "DEN", 0, 0),
]

POOL_PHASES = [
    {
        "phaseId": "group_stage",
        "phaseName": "Group stage",
        "requiresScore": True,
        "matchPicks": {
            "types": [
                {"key": "EXACT_SCORE", "enabled": True, "points": 10},
                {"key": "AWAY_GOALS", "enabled": True, "points": 2},
            ]
        },
    },
    {
        "phaseId": "final",
        "phaseName": "Final",
        "requiresScore": False,
        "structuralPicks": {
            "type": "KNOCKOUT_WINNER",
            "config": {"pointsPerCorrectAdvance": 7},
        },
    },
]


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def kickoff():
    return datetime.now(timezone.utc) + timedelta(days=2)


@pytest.fixture
def pool(app, kickoff):
    """Group A (four teams, six matches) feeding a final between its top two"""
    pool = Pool(name="World Cup", pick_types_config=POOL_PHASES, deadline_minutes_before_kickoff=5)
    db.session.add(pool)
    db.session.flush()

    for index, (match_id, home, away, _, _) in enumerate(GROUP_A):
        db.session.add(
            Fixture(
                pool_id=pool.id,
                match_id=match_id,
                phase_id="group_stage",
                group_id="A",
                home_team_id=home,
                away_team_id=away,
                kickoff_utc=kickoff + timedelta(hours=index),
            )
        )

    db.session.add(
        Fixture(
            pool_id=pool.id,
            match_id="F",
            phase_id="final",
            home_source="group:A:1",
            away_source="group:A:2",
            kickoff_utc=kickoff + timedelta(days=10),
        )
    )
    db.session.commit()
    return pool


@pytest.fixture
def publish_group():
    """Publish every Group A result"""

    def _publish(pool_id):
        for match_id, _, _, home_goals, away_goals in GROUP_A:
            result_store.publish_result(pool_id, match_id, home_goals, away_goals)

    return _publish
