# schedbot/core/scheduler/notification.py
"""Dispatch protocol for scheduler.

Provides an abstraction layer for delivering composed job messages,
allowing different chat backends to plug in.
"""

import logging
from typing import Any, Protocol

from schedbot.core.scheduler.models import MessageContent, PlainText, RichMessage

logger = logging.getLogger(__name__)


class DispatchProtocol(Protocol):
    """Protocol for delivering messages from scheduled jobs.

    This protocol defines the interface that chat backends must implement.
    It decouples the scheduler from specific platforms.
    """

    async def dispatch(
        self,
        content: MessageContent,
        destination: str,
        is_group: bool,
    ) -> Any:
        """Deliver a message.

        Args:
            content: PlainText or RichMessage to deliver.
            destination: Opaque thread identifier.
            is_group: Whether the destination is a group/broadcast thread.

        Returns:
            Backend-specific result. Failures must be raised, not returned.
            Anything other than DispatchFailed is wrapped in one.
        """
        ...


def content_to_payload(content: MessageContent) -> dict[str, Any]:
    """Flatten message content into the {text, styles?, ...} dispatch shape.

    Args:
        content: Message to flatten.

    Returns:
        Dictionary with "text" and any rich fields that are set.
    """
    if isinstance(content, PlainText):
        return {"text": content.text}

    payload: dict[str, Any] = {"text": content.text}
    if content.styles:
        payload["styles"] = content.styles
    if content.mentions:
        payload["mentions"] = content.mentions
    if content.attachments:
        payload["attachments"] = list(content.attachments)
    if content.urgency:
        payload["urgency"] = content.urgency
    return payload


class LoggingDispatcher:
    """DispatchProtocol implementation that only logs.

    Used by the command-line entry point when no chat backend is wired in.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[dict[str, Any], str, bool]] = []

    async def dispatch(
        self,
        content: MessageContent,
        destination: str,
        is_group: bool,
    ) -> dict[str, Any]:
        """Log the message and remember it.

        Args:
            content: Message to deliver.
            destination: Thread identifier.
            is_group: Group flag.

        Returns:
            The flattened payload.
        """
        payload = content_to_payload(content)
        self.sent.append((payload, destination, is_group))
        kind = "rich" if isinstance(content, RichMessage) else "plain"
        logger.info(
            "Dispatch (%s) to %s%s: %s",
            kind,
            destination,
            " [group]" if is_group else "",
            (payload.get("text") or "")[:200],
        )
        return payload
