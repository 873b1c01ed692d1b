"""
Live-update scheduler.

Each league under live updates gets one interval job that refreshes it.
Jobs coalesce missed runs and never overlap with themselves, so a slow
upstream cannot pile up refreshes for the same league.

Scheduler: APScheduler (lightweight, FastAPI-compatible)
"""
import logging
from typing import Awaitable, Callable, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 30


def live_job_id(league_id: str) -> str:
    return f"live:{league_id}"


class LiveUpdateScheduler:
    """
    Owns the AsyncIOScheduler that drives periodic league refreshes.

    Must be started from a running event loop (the app lifespan).
    """

    def __init__(self, interval_seconds: int = DEFAULT_INTERVAL_SECONDS, timezone: str = "UTC"):
        self.interval_seconds = interval_seconds
        self.timezone = timezone
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False

    def start(self) -> None:
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler(
            timezone=self.timezone,
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job
                'misfire_grace_time': self.interval_seconds,
            }
        )
        self.scheduler.start()
        self.running = True
        logger.info(f"Live-update scheduler started (interval {self.interval_seconds}s)")

    def stop(self) -> None:
        """Stop the scheduler and drop every job."""
        if not self.running:
            return

        self.scheduler.shutdown(wait=False)
        self.scheduler = None
        self.running = False
        logger.info("Live-update scheduler stopped")

    def add_league_job(
        self,
        league_id: str,
        job: Callable[[str], Awaitable[None]],
        interval_seconds: Optional[int] = None,
    ) -> str:
        """Schedule ``job(league_id)`` every interval, replacing an existing job for the league."""
        if not self.running:
            self.start()

        job_id = live_job_id(league_id)
        seconds = interval_seconds or self.interval_seconds
        self.scheduler.add_job(
            job,
            trigger=IntervalTrigger(seconds=seconds),
            args=[league_id],
            id=job_id,
            name=f"Live refresh {league_id}",
            replace_existing=True,
        )
        logger.info(f"Scheduled: live refresh for league {league_id} (every {seconds}s)")
        return job_id

    def remove_league_job(self, league_id: str) -> bool:
        """Remove a league's job; False when none was scheduled."""
        if self.scheduler is None:
            return False
        try:
            self.scheduler.remove_job(live_job_id(league_id))
        except JobLookupError:
            return False
        logger.info(f"Unscheduled: live refresh for league {league_id}")
        return True

    def has_league_job(self, league_id: str) -> bool:
        return self.scheduler is not None and self.scheduler.get_job(live_job_id(league_id)) is not None

    def job_ids(self) -> List[str]:
        if self.scheduler is None:
            return []
        return [job.id for job in self.scheduler.get_jobs()]
