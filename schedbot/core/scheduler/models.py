# schedbot/core/scheduler/models.py
"""Data models for the scheduler module.

Jobs are persisted as camelCase JSON objects inside the job-store
document; the dataclasses here convert to and from that shape. Keys the
models do not know about are kept in ``extra`` so hand-edited documents
round-trip without loss.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

STORE_VERSION = "1.0.0"


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string."""
    return datetime.now().astimezone().isoformat()


@dataclass
class ScheduleSpec:
    """When a job fires.

    Attributes:
        cron_expression: Canonical cron expression (5 or 6 fields).
        time_format: "human" when derived from a phrase, else "cron".
        human_time: The original phrase for human schedules.
    """

    cron_expression: str | None
    time_format: str = "cron"
    human_time: str | None = None

    @property
    def display(self) -> str:
        """The schedule as the user entered it."""
        if self.time_format == "human" and self.human_time:
            return self.human_time
        return self.cron_expression or ""


@dataclass
class RemoteCallSpec:
    """A parameterized outbound call whose result feeds a job's content.

    Attributes:
        url: Address to call.
        method: HTTP verb.
        headers: Optional request headers.
        data: Optional JSON body (POST/PUT/PATCH only).
        params: Optional query parameters.
        required: Abort the firing when the call fails without fallback.
        response_path: Dotted path extracted from the response.
        media_path: Dotted path of a media URL inside the extracted data.
        cache_ttl: Cache lifetime in milliseconds (None for the default).
        fallback: Value used when the call fails.
        timeout: Request timeout in milliseconds.
        save_response: Write each response under media/api_responses.
    """

    url: str
    method: str = "GET"
    headers: dict[str, str] | None = None
    data: Any = None
    params: dict[str, Any] | None = None
    required: bool = False
    response_path: str | None = None
    media_path: str | None = None
    cache_ttl: int | None = None
    fallback: Any = None
    timeout: int | None = None
    save_response: bool = False

    @property
    def cache_ttl_seconds(self) -> float | None:
        """Cache lifetime in seconds, or None when unset."""
        if self.cache_ttl is None:
            return None
        return self.cache_ttl / 1000

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted camelCase shape, omitting unset keys."""
        result: dict[str, Any] = {"url": self.url, "method": self.method}
        optional = {
            "headers": self.headers,
            "data": self.data,
            "params": self.params,
            "responsePath": self.response_path,
            "mediaPath": self.media_path,
            "cacheTTL": self.cache_ttl,
            "fallback": self.fallback,
            "timeout": self.timeout,
        }
        for key, value in optional.items():
            if value is not None:
                result[key] = value
        if self.required:
            result["required"] = True
        if self.save_response:
            result["saveResponse"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteCallSpec:
        """Create from the persisted shape."""
        return cls(
            url=data.get("url", ""),
            method=(data.get("method") or "GET").upper(),
            headers=data.get("headers"),
            data=data.get("data"),
            params=data.get("params"),
            required=bool(data.get("required", False)),
            response_path=data.get("responsePath"),
            media_path=data.get("mediaPath"),
            cache_ttl=data.get("cacheTTL"),
            fallback=data.get("fallback"),
            timeout=data.get("timeout"),
            save_response=bool(data.get("saveResponse", False)),
        )


@dataclass
class JobStats:
    """Execution history of a single job."""

    execution_count: int = 0
    last_executed: str | None = None
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "executionCount": self.execution_count,
            "lastExecuted": self.last_executed,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> JobStats:
        data = data or {}
        return cls(
            execution_count=int(data.get("executionCount", 0)),
            last_executed=data.get("lastExecuted"),
            created_at=data.get("createdAt"),
        )


# Persisted keys handled explicitly by Job.to_dict/from_dict
_JOB_KEYS = {
    "name",
    "enabled",
    "oneTime",
    "cronExpression",
    "timeFormat",
    "humanTime",
    "threadId",
    "isGroup",
    "text",
    "useDynamicContent",
    "useRichText",
    "styles",
    "urgency",
    "mentions",
    "imagePath",
    "videoPath",
    "audioPath",
    "attachments",
    "api",
    "template",
    "customFunction",
    "createdAt",
    "stats",
    "enabledAt",
    "disabledAt",
    "disabledReason",
}


@dataclass
class Job:
    """A named, persistent scheduled job.

    Attributes:
        name: Unique job name.
        schedule: When the job fires.
        thread_id: Opaque destination identifier.
        is_group: Whether the destination is a group/broadcast thread.
        enabled: Whether the job should own a live timer.
        one_time: Disable after the first successful firing.
        text: Message text (may contain {placeholders}).
        use_dynamic_content: Substitute placeholders in text.
        use_rich_text: Always dispatch as a rich message.
        styles: Text style directives passed through to dispatch.
        urgency: Urgency level passed through to dispatch.
        mentions: Mentions passed through to dispatch (group threads only).
        image_path: Image reference (URL, data URI or local path).
        video_path: Video reference.
        audio_path: Audio reference.
        attachments: Additional references.
        api: Optional remote data call.
        template: Text used instead of ``text`` when remote data is present.
        custom_function: Name of a registered post-dispatch handler.
        created_at: Creation timestamp (ISO-8601).
        stats: Execution history.
        enabled_at: Last time the job was enabled.
        disabled_at: Last time the job was disabled.
        disabled_reason: Why the job was disabled.
        extra: Unknown persisted keys, kept verbatim.
    """

    name: str
    schedule: ScheduleSpec
    thread_id: str | None
    is_group: bool = False
    enabled: bool = True
    one_time: bool = False
    text: str | None = None
    use_dynamic_content: bool = False
    use_rich_text: bool = False
    styles: list[Any] | None = None
    urgency: int | None = None
    mentions: list[Any] | None = None
    image_path: str | None = None
    video_path: str | None = None
    audio_path: str | None = None
    attachments: list[str] = field(default_factory=list)
    api: RemoteCallSpec | None = None
    template: str | None = None
    custom_function: str | None = None
    created_at: str | None = None
    stats: JobStats = field(default_factory=JobStats)
    enabled_at: str | None = None
    disabled_at: str | None = None
    disabled_reason: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def has_remote_call(self) -> bool:
        return self.api is not None and bool(self.api.url)

    def media_refs(self) -> list[tuple[str, str | None]]:
        """List media references with the slot they came from.

        Returns:
            (reference, kind) pairs where kind is "images", "videos",
            "audio" or None for generic attachments.
        """
        refs: list[tuple[str, str | None]] = []
        if self.image_path:
            refs.append((self.image_path, "images"))
        if self.video_path:
            refs.append((self.video_path, "videos"))
        if self.audio_path:
            refs.append((self.audio_path, "audio"))
        refs.extend((attachment, None) for attachment in self.attachments)
        return refs

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted camelCase shape."""
        result: dict[str, Any] = dict(self.extra)
        result.update(
            {
                "name": self.name,
                "enabled": self.enabled,
                "oneTime": self.one_time,
                "cronExpression": self.schedule.cron_expression,
                "timeFormat": self.schedule.time_format,
                "humanTime": self.schedule.human_time,
                "threadId": self.thread_id,
                "isGroup": self.is_group,
                "text": self.text,
                "useDynamicContent": self.use_dynamic_content,
                "createdAt": self.created_at,
                "stats": self.stats.to_dict(),
            }
        )
        optional = {
            "useRichText": self.use_rich_text or None,
            "styles": self.styles,
            "urgency": self.urgency,
            "mentions": self.mentions,
            "imagePath": self.image_path,
            "videoPath": self.video_path,
            "audioPath": self.audio_path,
            "attachments": self.attachments or None,
            "api": self.api.to_dict() if self.api else None,
            "template": self.template,
            "customFunction": self.custom_function,
            "enabledAt": self.enabled_at,
            "disabledAt": self.disabled_at,
            "disabledReason": self.disabled_reason,
        }
        for key, value in optional.items():
            if value is not None:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        """Create from the persisted shape.

        Args:
            data: Job object from the store document.

        Returns:
            Job instance.
        """
        api_data = data.get("api")
        attachments = data.get("attachments") or []
        return cls(
            name=data.get("name", ""),
            schedule=ScheduleSpec(
                cron_expression=data.get("cronExpression"),
                time_format=data.get("timeFormat") or "cron",
                human_time=data.get("humanTime"),
            ),
            thread_id=data.get("threadId"),
            is_group=bool(data.get("isGroup", False)),
            enabled=bool(data.get("enabled", False)),
            one_time=bool(data.get("oneTime", False)),
            text=data.get("text"),
            use_dynamic_content=bool(data.get("useDynamicContent", False)),
            use_rich_text=bool(data.get("useRichText", False)),
            styles=data.get("styles"),
            urgency=data.get("urgency"),
            mentions=data.get("mentions"),
            image_path=data.get("imagePath"),
            video_path=data.get("videoPath"),
            audio_path=data.get("audioPath"),
            attachments=list(attachments) if isinstance(attachments, list) else [],
            api=RemoteCallSpec.from_dict(api_data)
            if isinstance(api_data, dict)
            else None,
            template=data.get("template"),
            custom_function=data.get("customFunction"),
            created_at=data.get("createdAt"),
            stats=JobStats.from_dict(data.get("stats")),
            enabled_at=data.get("enabledAt"),
            disabled_at=data.get("disabledAt"),
            disabled_reason=data.get("disabledReason"),
            extra={k: v for k, v in data.items() if k not in _JOB_KEYS},
        )


@dataclass
class PlainText:
    """A message that is only text."""

    text: str


@dataclass
class RichMessage:
    """A message with text plus styles, mentions, attachments or urgency."""

    text: str | None = None
    styles: list[Any] | None = None
    mentions: list[Any] | None = None
    attachments: list[str] = field(default_factory=list)
    urgency: int | None = None


MessageContent = PlainText | RichMessage


class ExecutionOutcome(enum.StrEnum):
    """How a firing ended."""

    DISPATCHED = "dispatched"
    SKIPPED = "skipped"  # Nothing to send
    ABORTED = "aborted"  # Required remote call failed
    FAILED = "failed"


@dataclass
class ExecutionRecord:
    """What a single firing resolved and how it ended.

    Attributes:
        job_name: Name of the fired job.
        text: Composed message text.
        attachments: Resolved local attachment paths.
        remote_data: Data returned by the remote call, if any.
        outcome: How the firing ended.
        stage: Last stage reached (fetch, compose, media, dispatch, ...).
        error: Error message when the firing did not dispatch.
    """

    job_name: str
    text: str | None = None
    attachments: list[str] = field(default_factory=list)
    remote_data: Any = None
    outcome: ExecutionOutcome = ExecutionOutcome.FAILED
    stage: str = "start"
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == ExecutionOutcome.DISPATCHED
