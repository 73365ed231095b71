"""
Tests for the background job service (jobs run on demand, scheduler never started).
"""

import pytest

from pickpool import db
from pickpool.services import result_store
from pickpool.services.recompute import find_stale_pools
from pickpool.services.scheduler_service import SchedulerService


@pytest.fixture
def service(app):
    return SchedulerService(app)


def test_scheduler_not_started_when_disabled(service):
    status = service.get_status()

    assert status["is_running"] is False
    assert status["result_feed"] is None


def test_force_sweep_recomputes_lagging_pool(service, pool):
    result_store.publish_result(pool.id, "G1", 2, 1)
    pool.scores_fingerprint = None
    db.session.commit()

    success, message = service.force_sync("sweep")

    assert success
    assert message == "Manual sweep sync completed"
    assert service.sync_stats["pools_recomputed"] == 1
    assert find_stale_pools() == []


def test_force_results_without_feed(service):
    assert service.force_sync("results") == (False, "Result feed is disabled")

    with pytest.raises(ValueError):
        service.force_sync("live")
