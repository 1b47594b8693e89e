"""Content module for composing job messages.

This module provides:
- compose: Placeholder substitution for message templates
- RemoteDataFetcher: Cached outbound calls feeding job content
- MediaResolver: URL / data URI / local path resolution to local files
"""

from schedbot.core.content.composer import compose
from schedbot.core.content.media import MediaResolver
from schedbot.core.content.remote import RemoteDataFetcher

__all__ = [
    "MediaResolver",
    "RemoteDataFetcher",
    "compose",
]
