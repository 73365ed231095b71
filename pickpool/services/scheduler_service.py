"""
Pick pool background scheduler

Runs the recomputation sweep (retries any pool whose applied scores lag its
inputs) and, when enabled, the result feed sync using APScheduler.
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from pickpool.services.recompute import sweep_stale_pools
from pickpool.utils.result_feed import ResultFeed

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages background jobs for result syncing and score recomputation"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.result_feed = None
        self.is_running = False
        self.sync_stats = {
            "last_sync": None,
            "total_syncs": 0,
            "successful_syncs": 0,
            "failed_syncs": 0,
            "last_error": None,
            "pools_recomputed": 0,
        }

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        if app.config.get("RESULT_FEED_ENABLED"):
            self.result_feed = ResultFeed.from_config(app.config)

        # Register shutdown
        atexit.register(self.shutdown)

        # Start scheduler if enabled
        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            # Clear any existing jobs
            self.scheduler.remove_all_jobs()

            self._add_core_jobs()

            self.scheduler.start()
            self.is_running = True

            logger.info("Scheduler started successfully")

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Scheduler stopped")

        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        """Add core scheduled jobs"""

        self.scheduler.add_job(
            func=self._recompute_sweep,
            trigger=IntervalTrigger(seconds=self.app.config.get("RECOMPUTE_SWEEP_SECONDS", 60)),
            id="recompute_sweep",
            name="Recompute Lagging Pools",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
        )

        if self.result_feed is not None:
            self.scheduler.add_job(
                func=self._sync_results,
                trigger=IntervalTrigger(
                    seconds=self.app.config.get("RESULT_FEED_INTERVAL_SECONDS", 300)
                ),
                id="sync_results",
                name="Sync Results From Feed",
                max_instances=1,
                coalesce=True,
                misfire_grace_time=60,
            )

        logger.info("Core scheduled jobs added")

    def _recompute_sweep(self):
        """Re-run the cascade for pools whose applied fingerprint lags"""
        with self.app.app_context():
            try:
                recomputed = sweep_stale_pools()
                if recomputed:
                    logger.info(f"Sweep recomputed pools {recomputed}")
                    self.sync_stats["pools_recomputed"] += len(recomputed)
            except Exception as e:
                logger.error(f"Error in recompute sweep: {e}")
                self.sync_stats["last_error"] = str(e)

    def _sync_results(self):
        """Pull finished fixtures from the result feed"""
        with self.app.app_context():
            try:
                results = self.result_feed.sync_all_pools()
                self._update_stats(True)
                changed = sum(s["created"] + s["corrected"] for s in results.values())
                if changed:
                    logger.info(f"Result feed published {changed} result versions")
            except Exception as e:
                logger.error(f"Error in result feed sync: {e}")
                self._update_stats(False)
                self.sync_stats["last_error"] = str(e)

    def _update_stats(self, success):
        """Update sync statistics"""
        self.sync_stats["last_sync"] = datetime.now(timezone.utc)
        self.sync_stats["total_syncs"] += 1

        if success:
            self.sync_stats["successful_syncs"] += 1
            self.sync_stats["last_error"] = None
        else:
            self.sync_stats["failed_syncs"] += 1

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        return {
            "is_running": self.is_running,
            "jobs": jobs,
            "stats": self.sync_stats,
            "result_feed": (
                self.result_feed.get_rate_limit_status() if self.result_feed else None
            ),
        }

    def force_sync(self, sync_type="sweep"):
        """Manually trigger a job"""
        if self.app is None:
            return False, "Scheduler is not initialized"

        if sync_type == "sweep":
            self._recompute_sweep()
        elif sync_type == "results":
            if self.result_feed is None:
                return False, "Result feed is disabled"
            self._sync_results()
        else:
            raise ValueError(f"Unknown sync type: {sync_type}")

        return True, f"Manual {sync_type} sync completed"


# Global scheduler instance
scheduler_service = SchedulerService()
