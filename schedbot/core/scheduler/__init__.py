# schedbot/core/scheduler/__init__.py
"""Scheduler module for persistent scheduled jobs.

Provides job scheduling capabilities:
- English / Vietnamese time phrase translation to cron expressions
- JSON document job store with atomic, lock-serialised mutations
- APScheduler integration with one timer per enabled job
  (schedbot.core.scheduler.manager)
- Per-firing execution pipeline with pluggable dispatch
  (schedbot.core.scheduler.executor)

Only modules without content-layer dependencies are re-exported here.
"""

from schedbot.core.scheduler.errors import (
    DuplicateJobName,
    InvalidSchedule,
    JobNotFound,
    MediaUnavailable,
    PathNotFound,
    RemoteCallFailed,
    SchedulerError,
    StoreCorrupt,
)
from schedbot.core.scheduler.handlers import handler_registry, register_handler
from schedbot.core.scheduler.models import (
    Job,
    PlainText,
    RemoteCallSpec,
    RichMessage,
    ScheduleSpec,
)
from schedbot.core.scheduler.notification import DispatchProtocol, LoggingDispatcher
from schedbot.core.scheduler.store import JobStore
from schedbot.core.scheduler.time_parser import translate

__all__ = [
    "DispatchProtocol",
    "DuplicateJobName",
    "InvalidSchedule",
    "Job",
    "JobNotFound",
    "JobStore",
    "LoggingDispatcher",
    "MediaUnavailable",
    "PathNotFound",
    "PlainText",
    "RemoteCallFailed",
    "RemoteCallSpec",
    "RichMessage",
    "ScheduleSpec",
    "SchedulerError",
    "StoreCorrupt",
    "handler_registry",
    "register_handler",
    "translate",
]
