"""
Background scheduler for competition jobs

Runs the competition lifecycle on APScheduler: a daily start job, periodic
finalize and recalculate-all jobs, and one-shot per-competition
recalculations queued by activity writes. Queued recalculations use the job
id `recalculate_<competition_id>`; a request that arrives while that
competition is being recalculated is folded into one follow-up run.
"""

import atexit
import logging
import threading
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from flask import current_app

from fitcomp import db
from fitcomp.services.calculation_service import calculate_competition
from fitcomp.services.competition_lifecycle import (
    finalize_expired_competitions,
    recalculate_started_competitions,
    start_scheduled_competitions,
)

logger = logging.getLogger(__name__)


def _empty_stats():
    return {
        "last_run": None,
        "total_runs": 0,
        "successful_runs": 0,
        "failed_runs": 0,
        "last_error": None,
        "competitions_recalculated": 0,
    }


class SchedulerService:
    """Manages background scheduling for competition jobs"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.job_stats = _empty_stats()
        self._stats_lock = threading.Lock()
        self._runs_lock = threading.Lock()
        self._running = set()
        self._dirty = set()

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

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
        config = self.app.config

        # Daily start of scheduled competitions
        self.scheduler.add_job(
            func=self._start_competitions,
            trigger=CronTrigger(
                hour=config.get("START_COMPETITIONS_CRON_HOUR", 0), minute=0
            ),
            id="start_competitions",
            name="Start Scheduled Competitions",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        self.scheduler.add_job(
            func=self._finalize_competitions,
            trigger=IntervalTrigger(
                minutes=config.get("FINALIZE_COMPETITIONS_INTERVAL_MINUTES", 60)
            ),
            id="finalize_competitions",
            name="Finalize Expired Competitions",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )

        # Safety net for recalculations lost between write and queue
        self.scheduler.add_job(
            func=self._recalculate_started_competitions,
            trigger=IntervalTrigger(
                minutes=config.get("RECALCULATE_ALL_INTERVAL_MINUTES", 30)
            ),
            id="recalculate_started_competitions",
            name="Recalculate Started Competitions",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )

        logger.info("Core scheduled jobs added")

    def _start_competitions(self):
        """Start scheduled competitions whose start day has arrived"""
        with self.app.app_context():
            try:
                result = start_scheduled_competitions()
                self._update_stats(result["failed"] == 0)
                if result["failed"]:
                    self.job_stats["last_error"] = (
                        f"{result['failed']} competitions failed to start"
                    )
            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.job_stats["last_error"] = str(e)
                logger.error(f"Error in competition start job: {e}", exc_info=True)

    def _finalize_competitions(self):
        """Complete started competitions whose window has passed"""
        with self.app.app_context():
            try:
                result = finalize_expired_competitions()
                self._update_stats(result["failed"] == 0, result["finalized"])
                if result["failed"]:
                    self.job_stats["last_error"] = (
                        f"{result['failed']} competitions failed to finalize"
                    )
            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.job_stats["last_error"] = str(e)
                logger.error(f"Error in competition finalize job: {e}", exc_info=True)

    def _recalculate_started_competitions(self):
        """Recalculate every started competition"""
        with self.app.app_context():
            try:
                result = recalculate_started_competitions()
                self._update_stats(result["failed"] == 0, result["recalculated"])
                if result["failed"]:
                    self.job_stats["last_error"] = (
                        f"{result['failed']} competitions failed to recalculate"
                    )
                logger.info(
                    f"Recalculated {result['recalculated']} started competitions, "
                    f"{result['failed']} failed"
                )
            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.job_stats["last_error"] = str(e)
                logger.error(f"Error in recalculate-all job: {e}", exc_info=True)

    def _recalculate_competition(self, competition_id, app=None):
        """
        Recalculate one competition queued by an activity write

        A call arriving while the same competition is already being
        recalculated only marks it dirty and returns; the running call then
        recalculates once more before it finishes.
        """
        with self._runs_lock:
            if competition_id in self._running:
                self._dirty.add(competition_id)
                logger.debug(f"Competition {competition_id} busy, rerun requested")
                return
            self._running.add(competition_id)

        finished = False
        try:
            while not finished:
                self._run_recalculation(competition_id, app or self.app)
                with self._runs_lock:
                    finished = competition_id not in self._dirty
                    self._dirty.discard(competition_id)
                    if finished:
                        self._running.discard(competition_id)
        finally:
            if not finished:
                with self._runs_lock:
                    self._running.discard(competition_id)

    def _run_recalculation(self, competition_id, app):
        with app.app_context():
            try:
                summary = calculate_competition(competition_id)
                self._update_stats(summary.success, 1 if summary.success else 0)
                if summary.success:
                    logger.info(
                        f"Recalculated competition {competition_id}: {summary.message}"
                    )
                else:
                    self.job_stats["last_error"] = summary.message
                    logger.warning(
                        f"Recalculation of competition {competition_id} failed: "
                        f"{summary.message}"
                    )
            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.job_stats["last_error"] = str(e)
                logger.error(
                    f"Error recalculating competition {competition_id}: {e}",
                    exc_info=True,
                )
            finally:
                db.session.remove()

    def queue_recalculation(self, competition_id, delay_seconds=None):
        """
        Queue a recalculation without blocking the caller

        A pending job for the same competition is replaced, so a burst of
        activity writes collapses into a single run. When the scheduler is
        not running the recalculation runs in a background thread instead.
        """
        app = self.app or current_app._get_current_object()
        if delay_seconds is None:
            delay_seconds = app.config.get("RECALCULATION_DELAY_SECONDS", 1)

        if not self.is_running:
            with self._runs_lock:
                if competition_id in self._running:
                    self._dirty.add(competition_id)
                    return f"recalculate_{competition_id}"

            thread = threading.Thread(
                target=self._recalculate_competition,
                args=(competition_id, app),
                name=f"recalculate_{competition_id}",
                daemon=True,
            )
            thread.start()
            logger.debug(f"Scheduler not running, recalculating {competition_id} inline")
            return f"recalculate_{competition_id}"

        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        job = self.scheduler.add_job(
            func=self._recalculate_competition,
            trigger=DateTrigger(run_date=run_date),
            args=[competition_id],
            id=f"recalculate_{competition_id}",
            name=f"Recalculate competition {competition_id}",
            replace_existing=True,
            # A second instance only flags a rerun of the one in progress
            max_instances=2,
            coalesce=True,
            misfire_grace_time=300,
        )
        logger.debug(f"Queued job {job.id} for {run_date.isoformat()}")
        return job.id

    def _update_stats(self, success, competitions_recalculated=0):
        """Update job statistics"""
        with self._stats_lock:
            self.job_stats["last_run"] = datetime.now(timezone.utc)
            self.job_stats["total_runs"] += 1

            if success:
                self.job_stats["successful_runs"] += 1
                self.job_stats["competitions_recalculated"] += competitions_recalculated
                self.job_stats["last_error"] = None
            else:
                self.job_stats["failed_runs"] += 1

            # Keep counters bounded on long-running workers
            if self.job_stats["total_runs"] > 10000:
                last_run = self.job_stats["last_run"]
                self.job_stats = _empty_stats()
                self.job_stats["last_run"] = last_run

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler and self.is_running:
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

        stats = dict(self.job_stats)
        if stats["last_run"]:
            stats["last_run"] = stats["last_run"].isoformat()

        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}

    def force_run(self, job_type):
        """Manually run a core job in the calling thread"""
        jobs = {
            "start": self._start_competitions,
            "finalize": self._finalize_competitions,
            "recalculate": self._recalculate_started_competitions,
        }
        job = jobs.get(job_type)
        if job is None:
            return False, f"Unknown job type: {job_type}"

        if self.app is None:
            self.app = current_app._get_current_object()

        job()
        return True, f"Manual {job_type} run completed"

    def pause_job(self, job_id):
        """Pause a specific job"""
        try:
            self.scheduler.pause_job(job_id)
            return True, f"Job {job_id} paused"
        except Exception as e:
            return False, f"Failed to pause job: {e}"

    def resume_job(self, job_id):
        """Resume a specific job"""
        try:
            self.scheduler.resume_job(job_id)
            return True, f"Job {job_id} resumed"
        except Exception as e:
            return False, f"Failed to resume job: {e}"


# Global scheduler instance
scheduler_service = SchedulerService()
