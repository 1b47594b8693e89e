"""Utility modules for schedbot."""

from schedbot.utils.logging import (
    StructuredFormatter,
    clear_firing_context,
    configure_structured_logging,
    get_firing_context,
    set_firing_context,
)

__all__ = [
    "StructuredFormatter",
    "clear_firing_context",
    "configure_structured_logging",
    "get_firing_context",
    "set_firing_context",
]
