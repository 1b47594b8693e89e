# schedbot/core/scheduler/manager.py
"""APScheduler manager for persistent jobs.

Owns one live timer per enabled job. Timers are re-derived from the job
store at startup and kept in step with every admin mutation. Uses
AsyncIOScheduler so each firing runs as its own task on the bot's loop.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TypeVar
from zoneinfo import ZoneInfo

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.job import Job as TimerHandle
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from schedbot.core.scheduler.errors import (
    DuplicateJobName,
    InvalidSchedule,
    JobNotFound,
    StoreCorrupt,
)
from schedbot.core.scheduler.executor import ExecutionEngine
from schedbot.core.scheduler.models import ExecutionRecord, Job, utc_now_iso
from schedbot.core.scheduler.store import JobStore
from schedbot.core.scheduler.time_parser import build_trigger, format_time, translate

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNSCHEDULABLE_REASON = "Schedule cannot be armed"


class SchedulerManager:
    """Keeps APScheduler timers in step with the job store.

    A job is armed (owns exactly one timer) while it is enabled and has a
    name, a destination and a schedule that builds a trigger. Everything
    that changes the store and the timer map happens inside one store
    transaction, so admin edits and firings never interleave.

    Timer callbacks only carry the job name; every firing re-reads the
    job from the store.
    """

    def __init__(
        self,
        store: JobStore,
        engine: ExecutionEngine,
        timezone: ZoneInfo | None = None,
        misfire_grace_time: int = 60 * 5,
    ) -> None:
        """Initialize the scheduler manager.

        Args:
            store: Job store the timers are derived from.
            engine: Runs each firing.
            timezone: Timezone schedules are evaluated in.
            misfire_grace_time: Seconds a late firing is still run.
        """
        self._store = store
        self._engine = engine
        self._timezone = timezone or ZoneInfo("UTC")
        self._timers: dict[str, TimerHandle] = {}

        self._scheduler = AsyncIOScheduler(
            timezone=self._timezone,
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,  # Only one instance of each job
                "misfire_grace_time": misfire_grace_time,
            },
        )
        self._scheduler.add_listener(
            self._on_job_executed,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR,
        )

        if engine.timezone is None:
            engine.timezone = self._timezone
        engine.set_deactivate(self._deactivate_one_shot)

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def engine(self) -> ExecutionEngine:
        return self._engine

    @property
    def timezone(self) -> ZoneInfo:
        return self._timezone

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._scheduler.running

    def start(self) -> int:
        """Start the scheduler and arm every enabled job in the store.

        Must be called from within the running event loop.

        Returns:
            Number of armed jobs.

        Raises:
            StoreCorrupt: If the job store cannot be loaded.
        """
        jobs = self._store.load()
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started")

        if not jobs:
            logger.info("No scheduled jobs")
            return 0

        logger.info("Arming %d scheduled jobs", len(jobs))
        armed = sum(1 for job in jobs if self._arm(job))
        logger.info("Armed %d of %d jobs", armed, len(jobs))
        return armed

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the scheduler.

        Args:
            wait: Whether to wait for running jobs to complete.
        """
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Scheduler shutdown")
        self._timers.clear()

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _arm(self, job: Job) -> bool:
        """Install the timer for a job, replacing any existing one."""
        self._disarm(job.name)

        if not job.enabled:
            logger.info("Job %s is disabled, not scheduling", job.name)
            return False

        if not job.name or not job.thread_id:
            logger.warning(
                "Job %s is missing required fields, not scheduling",
                job.name or "<unnamed>",
            )
            return False

        try:
            trigger = self._trigger_for(job)
        except InvalidSchedule as e:
            logger.warning("Job %s has an invalid schedule, not scheduling: %s", job.name, e)
            return False

        timer = self._scheduler.add_job(
            self._fire,
            trigger,
            args=[job.name],
            id=job.name,
            name=job.name,
            replace_existing=True,
        )
        self._timers[job.name] = timer

        logger.info(
            "Scheduled job %s (%s), next run: %s",
            job.name,
            job.schedule.cron_expression,
            format_time(self.next_run_time(job.name)),
        )
        return True

    def validate_schedule(self, expression: str | None) -> None:
        """Check that an expression builds a trigger in this timezone.

        Raises:
            InvalidSchedule: If no timer could be installed for it.
        """
        if not expression:
            raise InvalidSchedule(expression)
        build_trigger(expression, self._timezone)

    def _trigger_for(self, job: Job) -> CronTrigger:
        expression = job.schedule.cron_expression
        if not expression and job.schedule.time_format == "human":
            expression = translate(job.schedule.human_time)
            job.schedule.cron_expression = expression
        if not expression:
            raise InvalidSchedule(expression)
        return build_trigger(expression, self._timezone)

    def _disarm(self, name: str) -> bool:
        """Cancel the timer of a job without waiting for in-flight firings."""
        timer = self._timers.pop(name, None)
        if timer is None:
            return False
        try:
            timer.remove()
        except JobLookupError:
            pass
        logger.info("Cancelled timer for job %s", name)
        return True

    def is_armed(self, name: str) -> bool:
        """Whether the job currently owns a live timer."""
        return name in self._timers

    def armed_jobs(self) -> list[str]:
        """Names of all armed jobs."""
        return list(self._timers)

    def next_run_time(self, name: str) -> datetime | None:
        """Next firing time of an armed job, or None."""
        timer = self._timers.get(name)
        if timer is None:
            return None
        # Pending timers (scheduler not started) have no next_run_time yet
        if hasattr(timer, "next_run_time"):
            return timer.next_run_time
        return timer.trigger.get_next_fire_time(None, datetime.now(self._timezone))

    async def _fire(self, name: str) -> None:
        """Timer callback: run one firing of the named job."""
        try:
            job = self._store.get_job(name)
        except StoreCorrupt as e:
            logger.error("Cannot fire job %s: %s", name, e)
            return

        if job is None or not job.enabled:
            logger.info("Job %s no longer active, skipping firing", name)
            return

        await self._engine.execute(job)

    def _mark_unschedulable(self, job: Job) -> None:
        job.enabled = False
        job.disabled_at = utc_now_iso()
        job.disabled_reason = UNSCHEDULABLE_REASON
        logger.warning("Disabled job %s: %s", job.name, UNSCHEDULABLE_REASON)

    async def _deactivate_one_shot(self, name: str) -> bool:
        async with self._store.transaction() as document:
            found = JobStore.disable_one_shot_in(document, name)
            self._disarm(name)
        return found

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def add_job(self, job: Job) -> bool:
        """Persist a new job and arm it.

        Returns:
            True if the job was armed.

        Raises:
            DuplicateJobName: If the name is already used.
        """
        async with self._store.transaction() as document:
            if document.find(job.name) is not None:
                raise DuplicateJobName(job.name)
            document.jobs.append(job)
            armed = self._arm(job)
            if job.enabled and not armed:
                self._mark_unschedulable(job)
        logger.info("Added job %s", job.name)
        return armed

    async def remove_job(self, name: str) -> Job:
        """Cancel a job's timer and delete it from the store.

        Raises:
            JobNotFound: If no job has this name.
        """
        async with self._store.transaction() as document:
            job = document.require(name)
            document.jobs.remove(job)
            self._disarm(name)
        logger.info("Removed job %s", name)
        return job

    async def enable_job(self, name: str) -> bool:
        """Enable a job and arm it.

        A job whose timer cannot be installed is left disabled.

        Returns:
            False if the job was already enabled.

        Raises:
            JobNotFound: If no job has this name.
            InvalidSchedule: If the job cannot be armed.
        """
        async with self._store.transaction() as document:
            job = document.require(name)
            if job.enabled:
                return False
            job.enabled = True
            job.enabled_at = utc_now_iso()
            job.disabled_reason = None
            armed = self._arm(job)
            if not armed:
                self._mark_unschedulable(job)
        if not armed:
            raise InvalidSchedule(job.schedule.cron_expression)
        logger.info("Enabled job %s", name)
        return True

    async def disable_job(self, name: str, reason: str = "Manually disabled") -> bool:
        """Disable a job and cancel its timer.

        Returns:
            False if the job was already disabled.

        Raises:
            JobNotFound: If no job has this name.
        """
        async with self._store.transaction() as document:
            job = document.require(name)
            if not job.enabled:
                return False
            job.enabled = False
            job.disabled_at = utc_now_iso()
            job.disabled_reason = reason
            self._disarm(name)
        logger.info("Disabled job %s", name)
        return True

    async def update_job(self, name: str, mutate: Callable[[Job], T]) -> T:
        """Apply mutate to a job; re-arm it if its schedule changed.

        Re-arming is cancel-then-add, never an in-place timer change.

        Raises:
            JobNotFound: If no job has this name.
            InvalidSchedule: If the new schedule builds no trigger; nothing
                is written and the old timer stays.
        """
        async with self._store.transaction() as document:
            job = document.require(name)
            before = job.schedule.cron_expression
            result = mutate(job)
            if job.enabled and job.schedule.cron_expression != before:
                self._trigger_for(job)
                self._arm(job)
        return result

    async def rename_job(self, name: str, new_name: str) -> Job:
        """Rename a job, moving its timer to the new name.

        Raises:
            JobNotFound: If no job has this name.
            DuplicateJobName: If new_name is already used.
        """
        async with self._store.transaction() as document:
            job = document.require(name)
            if new_name != name and document.find(new_name) is not None:
                raise DuplicateJobName(new_name)
            job.name = new_name
            self._disarm(name)
            if job.enabled:
                self._arm(job)
        logger.info("Renamed job %s to %s", name, new_name)
        return job

    async def run_now(self, name: str) -> ExecutionRecord:
        """Fire a job immediately, bypassing its timer.

        Raises:
            JobNotFound: If no job has this name.
        """
        job = self._store.get_job(name)
        if job is None:
            raise JobNotFound(name)
        return await self._engine.execute(job, manual=True)

    def _on_job_executed(self, event: JobExecutionEvent) -> None:
        """Handle job execution events for logging.

        Args:
            event: Job execution event from APScheduler.
        """
        if event.exception:
            logger.error(
                "Job %s failed: %s",
                event.job_id,
                str(event.exception),
            )
        else:
            logger.debug("Job %s completed", event.job_id)
