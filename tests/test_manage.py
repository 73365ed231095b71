"""
Tests for the management CLI.
"""

import copy
import json

import pytest
from click.testing import CliRunner

from manage import cli
from pickpool.engine.pick_config import get_preset
from pickpool.models import Fixture, Pool
from pickpool.services import result_store


@pytest.fixture
def runner(app):
    return CliRunner()


def test_pool_create_and_import(runner, tmp_path):
    result = runner.invoke(cli, ["pool", "create", "Euro", "--preset", "SIMPLE", "--deadline-minutes", "15"])
    assert result.exit_code == 0, result.output

    pool = Pool.query.filter_by(name="Euro").one()
    assert pool.deadline_minutes_before_kickoff == 15
    assert pool.get_phase("final").is_structural

    path = tmp_path / "fixtures.json"
    path.write_text(
        json.dumps(
            [
                {
                    "match_id": "G1",
                    "phase_id": "group_stage",
                    "group_id": "A",
                    "home_team_id": "FRA",
                    "away_team_id": "ARG",
                    "kickoff_utc": "2030-06-11T18:00:00",
                },
                {"match_id": "F", "phase_id": "final", "home_source": "group:A:1", "away_source": "group:A:2"},
            ]
        )
    )
    result = runner.invoke(cli, ["pool", "import-fixtures", str(pool.id), str(path)])
    assert result.exit_code == 0, result.output
    assert "Imported 2 fixtures" in result.output
    assert Fixture.get_by_match(pool.id, "G1").kickoff.tzinfo is not None


def test_results_commands(runner, pool):
    result = runner.invoke(cli, ["results", "publish", str(pool.id), "G1", "1", "1"])
    assert "Published G1 v1" in result.output

    result = runner.invoke(cli, ["results", "correct", str(pool.id), "G1", "2", "1"])
    assert result.exit_code != 0

    result = runner.invoke(cli, ["results", "correct", str(pool.id), "G1", "2", "1", "--reason", "typo"])
    assert "Corrected G1 to v2" in result.output
    assert result_store.get_latest(pool.id, "G1").version == 2

    result = runner.invoke(cli, ["results", "history", str(pool.id), "G1"])
    assert "v1 1-1" in result.output
    assert "v2 2-1" in result.output


def test_scores_commands(runner, pool, publish_group):
    publish_group(pool.id)

    result = runner.invoke(cli, ["scores", "standings", str(pool.id)])
    assert "1. DEN" in result.output

    result = runner.invoke(cli, ["scores", "recompute", str(pool.id)])
    assert "Recomputed pool" in result.output

    result = runner.invoke(cli, ["scores", "leaderboard", "999"])
    assert "Pool 999 not found" in result.output


def test_pool_configure(runner, pool, tmp_path):
    phases = [phase.to_dict() for phase in get_preset("CUMULATIVE")]
    path = tmp_path / "phases.json"
    path.write_text(json.dumps(phases))

    result = runner.invoke(cli, ["pool", "configure", str(pool.id), str(path)])

    assert "reconfigured" in result.output
    assert pool.config_revision == 2
    assert pool.get_phase("round_of_16").requires_score

    path.write_text(json.dumps([{"phaseId": "broken"}]))
    result = runner.invoke(cli, ["pool", "configure", str(pool.id), str(path)])
    assert "Invalid pool configuration" in result.output
    assert "phases[0]" in result.output


def test_import_fixtures_resolves_new_bracket_slots(runner, pool, publish_group, tmp_path):
    publish_group(pool.id)

    path = tmp_path / "knockout.json"
    path.write_text(
        json.dumps([{"match_id": "SF", "phase_id": "final", "home_source": "group:A:1", "away_source": "group:A:2"}])
    )
    result = runner.invoke(cli, ["pool", "import-fixtures", str(pool.id), str(path)])

    assert "Scores recomputed" in result.output
    assert pool.fixtures_revision == 1
    semi = Fixture.get_by_match(pool.id, "SF")
    assert (semi.home_team_id, semi.away_team_id) == ("DEN", "CRO")


def test_lock_phase_blocks_configure(runner, pool, tmp_path):
    phases = copy.deepcopy(pool.pick_types_config)
    phases[1]["structuralPicks"]["config"]["pointsPerCorrectAdvance"] = 9
    path = tmp_path / "phases.json"
    path.write_text(json.dumps(phases))

    result = runner.invoke(cli, ["pool", "lock-phase", str(pool.id), "final"])
    assert "Locked phases: final" in result.output

    result = runner.invoke(cli, ["pool", "configure", str(pool.id), str(path)])
    assert "Phase final has started" in result.output
    assert pool.config_revision == 1

    result = runner.invoke(cli, ["pool", "lock-phase", str(pool.id), "final", "--unlock"])
    assert "Locked phases: none" in result.output

    result = runner.invoke(cli, ["pool", "configure", str(pool.id), str(path)])
    assert "reconfigured" in result.output
