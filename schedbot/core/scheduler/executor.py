# schedbot/core/scheduler/executor.py
"""Executor for scheduled jobs.

Runs one firing of a job: fetch remote data, compose the text, resolve
media, dispatch, record stats, deactivate one-shot jobs and finally run
the job's custom handler.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any

from schedbot.core.content.composer import compose
from schedbot.core.content.media import MediaResolver, extract_media_url
from schedbot.core.content.remote import RemoteDataFetcher
from schedbot.core.scheduler.errors import (
    DispatchFailed,
    MediaUnavailable,
    RemoteCallFailed,
)
from schedbot.core.scheduler.handlers import HandlerRegistry, handler_registry
from schedbot.core.scheduler.models import (
    ExecutionOutcome,
    ExecutionRecord,
    Job,
    MessageContent,
    PlainText,
    RichMessage,
)
from schedbot.core.scheduler.notification import DispatchProtocol
from schedbot.core.scheduler.store import JobStore
from schedbot.utils.logging import clear_firing_context, set_firing_context

logger = logging.getLogger(__name__)


@dataclass
class PreviewResult:
    """Dry-run output of a job's remote call.

    Attributes:
        remote_data: Data returned by the call (or its fallback).
        rendered: Text the job would send with this data.
        media_url: Media URL found at the job's api.mediaPath, if any.
    """

    remote_data: Any
    rendered: str | None
    media_url: str | None


def static_context(job: Job) -> dict[str, Any]:
    """Placeholder values every job can use besides the built-ins."""
    return {"jobName": job.name, "threadId": job.thread_id}


def compose_text(
    job: Job, remote_data: Any = None, now: datetime | None = None
) -> str | None:
    """Compose the message text of a job.

    The template wins when remote data is present; otherwise the job text
    is used, with placeholders substituted when dynamic content is on.

    Args:
        job: Job being fired.
        remote_data: Data from the job's remote call, if any.
        now: Firing time in the scheduler timezone.

    Returns:
        The text, or None when the job has none.
    """
    if job.template and remote_data is not None:
        return compose(job.template, static_context(job), remote_data, now)
    if not job.text:
        return None
    if job.use_dynamic_content:
        return compose(job.text, static_context(job), remote_data, now)
    return job.text


def build_content(
    job: Job, text: str | None, attachments: list[str]
) -> MessageContent | None:
    """Build the dispatch content for a firing.

    Returns:
        PlainText for bare text, RichMessage when anything else is set,
        or None when there is nothing to send.
    """
    mentions = job.mentions if job.is_group and job.mentions else None
    if not text and not attachments:
        return None

    is_plain = (
        text
        and not attachments
        and not job.styles
        and not job.urgency
        and not mentions
        and not job.use_rich_text
    )
    if is_plain:
        return PlainText(text=text)

    return RichMessage(
        text=text,
        styles=job.styles or None,
        mentions=mentions,
        attachments=attachments,
        urgency=job.urgency or None,
    )


class ExecutionEngine:
    """Runs the per-firing pipeline for jobs."""

    def __init__(
        self,
        store: JobStore,
        fetcher: RemoteDataFetcher,
        media: MediaResolver,
        dispatcher: DispatchProtocol,
        handlers: HandlerRegistry | None = None,
        deactivate: Callable[[str], Awaitable[Any]] | None = None,
        timezone: tzinfo | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Job store for stats and one-shot deactivation.
            fetcher: Remote data fetcher.
            media: Media resolver.
            dispatcher: Delivers composed messages.
            handlers: Custom handler registry (defaults to the global one).
            deactivate: Disables a one-shot job after it fired. Defaults to
                a store-only update; the scheduler passes one that also
                cancels the timer.
            timezone: Zone the date/time placeholders render in (host
                local time when None).
        """
        self.store = store
        self.fetcher = fetcher
        self.media = media
        self.dispatcher = dispatcher
        self.handlers = handlers if handlers is not None else handler_registry
        self._deactivate = deactivate or store.disable_one_shot
        self.timezone = timezone

    def now(self) -> datetime:
        """Current time in the engine timezone."""
        if self.timezone is None:
            return datetime.now().astimezone()
        return datetime.now(self.timezone)

    def set_deactivate(self, deactivate: Callable[[str], Awaitable[Any]]) -> None:
        """Replace the one-shot deactivation callback."""
        self._deactivate = deactivate

    async def resolve_attachments(self, job: Job) -> list[str]:
        """Resolve every media reference of a job, skipping unusable ones."""
        attachments: list[str] = []
        for reference, kind in job.media_refs():
            try:
                path = await self.media.resolve(reference, kind)
            except MediaUnavailable as e:
                logger.warning("Skipping attachment for job %s: %s", job.name, e)
                continue
            attachments.append(str(path))
        return attachments

    async def _resolve_api_media(self, job: Job, remote_data: Any) -> Path | None:
        if remote_data is None or job.api is None or not job.api.media_path:
            return None
        media_url = extract_media_url(remote_data, job.api.media_path)
        if media_url is None:
            logger.warning(
                "No media URL at %s for job %s", job.api.media_path, job.name
            )
            return None
        return await self.media.resolve(media_url)

    async def execute(self, job: Job, manual: bool = False) -> ExecutionRecord:
        """Run one firing of a job.

        Errors before dispatch end the firing and are logged with the job
        name and stage; they never propagate to the scheduler.

        Args:
            job: Job to fire, as read from the store for this firing.
            manual: True for an immediate run requested by a command; manual
                runs do not consume one-shot jobs.

        Returns:
            ExecutionRecord describing the firing.
        """
        set_firing_context(uuid.uuid4().hex[:8], job.name)
        record = ExecutionRecord(job_name=job.name)
        try:
            logger.info("Executing job: %s%s", job.name, " (manual)" if manual else "")
            await self._run(job, record, manual)
        finally:
            clear_firing_context()
        return record

    async def _run(self, job: Job, record: ExecutionRecord, manual: bool) -> None:
        try:
            record.stage = "fetch"
            if job.has_remote_call:
                try:
                    record.remote_data = await self.fetcher.fetch(job.api, job.name)
                except RemoteCallFailed as e:
                    if e.required:
                        logger.error(
                            "Skipping job %s: required API call failed: %s",
                            job.name,
                            e,
                        )
                        record.outcome = ExecutionOutcome.ABORTED
                        record.error = str(e)
                        return
                    logger.warning(
                        "API call failed for job %s, continuing without data: %s",
                        job.name,
                        e,
                    )

            record.stage = "compose"
            record.text = compose_text(job, record.remote_data, self.now())

            record.stage = "media"
            record.attachments = await self.resolve_attachments(job)

            record.stage = "api_media"
            api_media = await self._resolve_api_media(job, record.remote_data)
            if api_media is not None:
                record.attachments.append(str(api_media))
        except Exception as e:
            logger.exception(
                "Job %s failed at stage %s: %s", job.name, record.stage, e
            )
            record.outcome = ExecutionOutcome.FAILED
            record.error = str(e)
            return

        content = build_content(job, record.text, record.attachments)
        if content is None:
            logger.warning("Job %s has no message content to send", job.name)
            record.outcome = ExecutionOutcome.SKIPPED
            return

        record.stage = "dispatch"
        try:
            await self._dispatch(content, job)
        except DispatchFailed as e:
            logger.exception("Job %s failed at stage dispatch: %s", job.name, e)
            record.outcome = ExecutionOutcome.FAILED
            record.error = str(e)
            return
        record.outcome = ExecutionOutcome.DISPATCHED
        logger.info("Sent scheduled message for job %s", job.name)

        record.stage = "stats"
        try:
            if not await self.store.record_execution(job.name):
                logger.warning("Job %s was removed before stats were recorded", job.name)
        except Exception as e:
            logger.exception("Failed to record stats for job %s: %s", job.name, e)

        if job.one_time and not manual:
            record.stage = "one_shot"
            try:
                await self._deactivate(job.name)
                logger.info("Disabled one-time job: %s", job.name)
            except Exception as e:
                logger.exception("Failed to disable one-time job %s: %s", job.name, e)

        if job.custom_function:
            record.stage = "handler"
            await self._run_handler(job, record.remote_data)

        record.stage = "done"

    async def _dispatch(self, content: MessageContent, job: Job) -> None:
        try:
            await self.dispatcher.dispatch(content, job.thread_id, job.is_group)
        except DispatchFailed:
            raise
        except Exception as e:
            raise DispatchFailed(job.thread_id, str(e)) from e

    async def _run_handler(self, job: Job, remote_data: Any) -> None:
        name = job.custom_function or ""
        try:
            found = await self.handlers.invoke(name, job, remote_data, self.dispatcher)
        except Exception as e:
            logger.exception("Custom handler %s failed for job %s: %s", name, job.name, e)
            return
        if not found:
            logger.warning("Custom handler not found for job %s: %s", job.name, name)
        else:
            logger.info("Ran custom handler %s for job %s", name, job.name)

    async def preview(self, job: Job) -> PreviewResult:
        """Dry-run a job's remote call without dispatching or persisting.

        Args:
            job: Job with a remote call configured.

        Returns:
            PreviewResult with the data and the text it would render.

        Raises:
            RemoteCallFailed: If the call failed without fallback.
            ValueError: If the job has no remote call.
        """
        if not job.has_remote_call:
            raise ValueError(f'Job "{job.name}" has no API configured')

        data = await self.fetcher.fetch(job.api, None)
        if job.template:
            rendered = compose(job.template, static_context(job), data, self.now())
        else:
            rendered = compose_text(job, data, self.now())
        media_url = (
            extract_media_url(data, job.api.media_path) if job.api.media_path else None
        )
        return PreviewResult(remote_data=data, rendered=rendered, media_url=media_url)
