# schedbot/utils/logging.py
"""Structured logging with JSON format and firing context support.

Provides:
- JSON-formatted log output for structured logging
- Firing correlation (firing id + job name) via ContextVar for async-safe tracking
- Centralized logger configuration
"""

import json
import logging
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FiringContext:
    """Identifies the job firing a log record belongs to."""

    firing_id: str
    job_name: str


# Firing correlation for tracking one firing across its async stages
firing_context_var: ContextVar[FiringContext | None] = ContextVar(
    "firing_context", default=None
)


def set_firing_context(firing_id: str, job_name: str) -> None:
    """Set the firing context for the current async context.

    Args:
        firing_id: Unique identifier for this firing.
        job_name: Name of the job being fired.
    """
    firing_context_var.set(FiringContext(firing_id=firing_id, job_name=job_name))


def get_firing_context() -> FiringContext | None:
    """Get the firing context for the current async context.

    Returns:
        Current FiringContext, or None if not inside a firing.
    """
    return firing_context_var.get()


def clear_firing_context() -> None:
    """Clear the firing context for the current async context."""
    firing_context_var.set(None)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs log records as JSON with timestamp, level, logger name,
    message, and the firing id/job name when logged inside a firing.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON-formatted log string.
        """
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = get_firing_context()
        if context is not None:
            log_data["firing_id"] = context.firing_id
            log_data["job"] = context.job_name

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_structured_logging(
    level: int | str = logging.INFO, log_format: str = "json"
) -> None:
    """Configure logging for the application.

    Sets up a StreamHandler with StructuredFormatter (or a plain text
    formatter when log_format is "text") and applies it to the root logger.

    Args:
        level: Logging level (default: logging.INFO).
        log_format: "json" for structured output, "text" for human-readable.
    """
    handler = logging.StreamHandler()
    if log_format == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(level)

    # APScheduler logs every run at INFO; keep it to warnings
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
