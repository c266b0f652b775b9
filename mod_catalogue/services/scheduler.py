"""Background jobs driving the UpdateService.

Two interval jobs on an asyncio APScheduler:

- ``catalogue_sweep`` (every ``update_interval_hours``): full/incremental
  sweep. A failing sweep is fatal, ``on_fatal`` is called with the exception.
- ``small_update`` (every ``small_update_interval_minutes``): one singular
  refresh, raced against a timer of one interval. When it times out or raises,
  the job pauses itself and resumes after
  ``interval * small_update_cooldown_multiplier``. A refresh that reports
  ``RefreshOutcome.ERRORED`` does not pause the job.
"""
from __future__ import annotations

import asyncio
import logging
import os
from datetime import timezone
from typing import Callable, Optional

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mod_catalogue.config import Settings

from .update_service import RefreshOutcome, UpdateService

logger = logging.getLogger(__name__)


def _exit_process(exc: BaseException) -> None:
    logging.shutdown()
    os._exit(1)


def _drain(task: "asyncio.Task") -> None:
    # a refresh that outlived its timer may still fail later
    if not task.cancelled() and task.exception() is not None:
        logger.warning("Abandoned singular refresh finished with %r", task.exception())


class UpdateScheduler:
    SWEEP_JOB_ID = "catalogue_sweep"
    SMALL_JOB_ID = "small_update"

    def __init__(
        self,
        service: UpdateService,
        settings: Optional[Settings] = None,
        *,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        self.service = service
        self.settings = settings or service.settings
        self.on_fatal = on_fatal or _exit_process
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.small_update_suspended = False
        self._small_job: Optional[Job] = None
        self._resume_handle: Optional[asyncio.TimerHandle] = None
        self._startup_task: Optional["asyncio.Task[None]"] = None

    @property
    def small_interval_seconds(self) -> float:
        return self.settings.small_update_interval_minutes * 60

    # --- Public API ---
    async def start(self) -> None:
        """Register both jobs, start the scheduler and kick off a sweep if the catalogue is stale."""
        self.scheduler.add_job(
            self._run_sweep,
            trigger=IntervalTrigger(hours=self.settings.update_interval_hours),
            id=self.SWEEP_JOB_ID,
            name="Catalogue sweep",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._small_job = self.scheduler.add_job(
            self._run_small_update,
            trigger=IntervalTrigger(minutes=self.settings.small_update_interval_minutes),
            id=self.SMALL_JOB_ID,
            name="Singular refresh",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Update scheduler started")

        if await self.service.needs_startup_update():
            logger.info("Catalogue is stale, running a sweep now")
            self._startup_task = asyncio.create_task(self._run_sweep())

    def shutdown(self) -> None:
        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None
        if self._startup_task is not None and not self._startup_task.done():
            self._startup_task.cancel()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Update scheduler shut down")

    def suspend_small_update(self, reason: str) -> None:
        if self.small_update_suspended:
            return
        cooldown = self.small_interval_seconds * self.settings.small_update_cooldown_multiplier
        logger.warning("Suspending singular refresh for %ds: %s", int(cooldown), reason)
        self.small_update_suspended = True
        if self._small_job is not None:
            self._small_job.pause()
        loop = asyncio.get_running_loop()
        self._resume_handle = loop.call_later(cooldown, self.resume_small_update)

    def resume_small_update(self) -> None:
        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None
        if not self.small_update_suspended:
            return
        self.small_update_suspended = False
        if self._small_job is not None:
            self._small_job.resume()
        logger.info("Singular refresh resumed")

    # --- Jobs ---
    async def _run_sweep(self) -> None:
        try:
            await self.service.perform_update()
        except Exception as exc:
            logger.critical("Catalogue sweep failed", exc_info=True)
            self.on_fatal(exc)

    async def _run_small_update(self) -> Optional[RefreshOutcome]:
        timeout = self.small_interval_seconds
        task = asyncio.ensure_future(self.service.perform_update_singular())
        done, _ = await asyncio.wait({task}, timeout=timeout)

        if not done:
            task.add_done_callback(_drain)
            self.suspend_small_update(f"took longer than {timeout:g}s")
            return None

        exc = task.exception()
        if exc is not None:
            self.suspend_small_update(f"{type(exc).__name__}: {exc}")
            return None

        # ERRORED outcomes are recorded by the service and leave the job scheduled
        return task.result()
