"""Background scheduling for deferred and periodic drive jobs.

Wraps an APScheduler ``BackgroundScheduler``. Jobs run on worker threads
outside request handling, so each run closes stale database connections
before and after touching the ORM.
"""

import logging
import threading
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from apscheduler.job import Job
from apscheduler.schedulers.background import BackgroundScheduler
from django.db import close_old_connections
from django.utils import timezone

logger = logging.getLogger(__name__)


def _run_job(func: Callable[..., Any], *args: Any) -> None:
    close_old_connections()
    try:
        func(*args)
    except Exception:
        logger.exception('Scheduled job failed: %s', func.__qualname__)
    finally:
        close_old_connections()


class DriveScheduler:
    """Cancellable one-shot and interval jobs on a background thread."""

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self._scheduler = scheduler or BackgroundScheduler(timezone='UTC')

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info('Drive scheduler started')

    def shutdown(self, wait: bool = True) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info('Drive scheduler stopped')

    def schedule_once(
        self,
        delay_seconds: float,
        func: Callable[..., Any],
        *args: Any,
    ) -> Job:
        """Run ``func(*args)`` once after a delay.

        Args:
            delay_seconds: Delay before the run.
            func: Callable to run.
            args: Positional arguments for the callable.

        Returns:
            APScheduler job; ``job.remove()`` cancels it.
        """
        run_date = timezone.now() + timedelta(seconds=delay_seconds)
        job = self._scheduler.add_job(
            _run_job,
            trigger='date',
            run_date=run_date,
            args=(func, *args),
            misfire_grace_time=None,
        )
        logger.debug(
            'Scheduled %s at %s (job %s)',
            func.__qualname__,
            run_date,
            job.id,
        )
        return job

    def schedule_interval(
        self,
        hours: float,
        func: Callable[..., Any],
        job_id: str,
    ) -> Job:
        """Run ``func()`` every ``hours``, replacing a job with the same id.

        Args:
            hours: Interval between runs.
            func: Callable to run.
            job_id: Stable job identifier.

        Returns:
            APScheduler job.
        """
        job = self._scheduler.add_job(
            _run_job,
            trigger='interval',
            hours=hours,
            args=(func,),
            id=job_id,
            name=func.__qualname__,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        logger.info('Scheduled %s every %s hours', func.__qualname__, hours)
        return job


_scheduler: DriveScheduler | None = None
_scheduler_lock = threading.Lock()


def get_scheduler() -> DriveScheduler:
    """Get the process-wide scheduler, starting it on first use.

    Returns:
        Running DriveScheduler.
    """
    global _scheduler  # noqa: WPS420
    with _scheduler_lock:
        if _scheduler is None:
            _scheduler = DriveScheduler()
        _scheduler.start()
        return _scheduler
