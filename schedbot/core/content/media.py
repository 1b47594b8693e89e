# schedbot/core/content/media.py
"""Media reference resolution.

Turns the media references stored on a job into local file paths:

- ``default:<name>`` tokens map to bundled placeholder images
- http(s) URLs are downloaded once and de-duplicated by a hash of the URL
- ``data:<mime>;base64,<payload>`` URIs are decoded once, keyed by payload hash
- anything else is a local path, absolute or relative to the media directory

Downloaded files are never refreshed: once a URL is in the index, the
indexed file is returned until invalidate() is called for it.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import json
import logging
import os
import re
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx

from schedbot.core.content.composer import is_missing, lookup
from schedbot.core.scheduler.errors import MediaUnavailable

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "default:"
NOTIFICATION_ASSET = "notification"

# 1x1 transparent PNG used for every bundled placeholder
PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
DEFAULT_ASSETS = {"notification", "image", "video", "audio"}

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/webm": ".webm",
    "audio/mpeg": ".mp3",
    "audio/mp4": ".m4a",
    "audio/aac": ".aac",
    "audio/wav": ".wav",
    "audio/ogg": ".ogg",
    "application/pdf": ".pdf",
    "text/plain": ".txt",
    "application/zip": ".zip",
}
RECOGNIZED_EXTENSIONS = set(MIME_EXTENSIONS.values()) | {
    ".jpeg",
    ".mkv",
    ".doc",
    ".docx",
    ".xls",
    ".xlsx",
}

DATA_URI_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(?:;[^,;]*)*),(?P<payload>.*)$",
    re.DOTALL,
)

INDEX_FILENAME = "index.json"
PARTIAL_SUFFIX = ".part"
DOWNLOAD_CHUNK_SIZE = 64 * 1024


def is_url(value: str) -> bool:
    """Check if a string is an http(s) URL.

    Args:
        value: String to check.

    Returns:
        True for http:// and https:// URLs with a host.
    """
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def reference_hash(reference: str) -> str:
    """Content-address key for a URL or inline payload."""
    return hashlib.sha256(reference.encode("utf-8")).hexdigest()


def extension_for(url: str, content_type: str | None) -> str | None:
    """Pick a recognised file extension for a download.

    Prefers the URL path suffix, then the response Content-Type.

    Returns:
        Extension with leading dot, or None when unrecognised.
    """
    suffix = os.path.splitext(urlparse(url).path)[1].lower()
    if suffix in RECOGNIZED_EXTENSIONS:
        return ".jpg" if suffix == ".jpeg" else suffix
    if content_type:
        mime = content_type.split(";", 1)[0].strip().lower()
        return MIME_EXTENSIONS.get(mime)
    return None


def extract_media_url(data: Any, path: str) -> str | None:
    """Find a media URL inside remote data.

    Args:
        data: Remote data.
        path: Dotted path to the URL field.

    Returns:
        The URL, or None when the path is missing or not an http(s) URL.
    """
    value = lookup(data, path)
    if is_missing(value) or not isinstance(value, str) or not is_url(value):
        return None
    return value


class MediaResolver:
    """Resolves media references to local files under a managed directory.

    Layout of media_dir:
        defaults/       bundled placeholders, generated on first use
        downloads/      files fetched from URLs (<hash><ext>)
        inline/         files decoded from data URIs (<hash><ext>)
        images/, videos/, audio/   user files referenced by relative path
        index.json      hash -> stored file
    """

    def __init__(
        self,
        media_dir: str,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        download_timeout: float = 30.0,
    ) -> None:
        """Initialize the resolver and create the media directories.

        Args:
            media_dir: Managed media directory.
            client_factory: Creates the httpx client per download.
            download_timeout: Timeout in seconds for one download.
        """
        self.media_dir = Path(media_dir)
        self.download_dir = self.media_dir / "downloads"
        self.inline_dir = self.media_dir / "inline"
        self.defaults_dir = self.media_dir / "defaults"
        self._client_factory = client_factory or httpx.AsyncClient
        self._timeout = download_timeout
        self._index_path = self.media_dir / INDEX_FILENAME
        self._index: dict[str, dict[str, Any]] | None = None
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

        for directory in (
            self.download_dir,
            self.inline_dir,
            self.defaults_dir,
            self.media_dir / "images",
            self.media_dir / "videos",
            self.media_dir / "audio",
        ):
            directory.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    def _load_index(self) -> dict[str, dict[str, Any]]:
        if self._index is None:
            try:
                with open(self._index_path, encoding="utf-8") as f:
                    loaded = json.load(f)
                self._index = loaded if isinstance(loaded, dict) else {}
            except FileNotFoundError:
                self._index = {}
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Media index unreadable, starting empty: %s", e)
                self._index = {}
        return self._index

    def _save_index(self) -> None:
        tmp_path = self._index_path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._load_index(), f, indent=2)
        os.replace(tmp_path, self._index_path)

    def _indexed_path(self, key: str) -> Path | None:
        entry = self._load_index().get(key)
        if not entry:
            return None
        path = self.media_dir / entry["path"]
        if not path.exists():
            return None
        return path

    def _record(self, key: str, path: Path, source: str) -> None:
        self._load_index()[key] = {
            "path": path.relative_to(self.media_dir).as_posix(),
            "source": source,
            "createdAt": time.time(),
        }
        self._save_index()

    @asynccontextmanager
    async def _lock_for(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for one media key; dropped once nobody uses it."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    def invalidate(self, reference: str) -> bool:
        """Forget a cached download or decoded payload and delete its file.

        Args:
            reference: The URL or data URI originally resolved.

        Returns:
            True if an index entry was removed.
        """
        key = reference_hash(self._payload_key(reference))
        entry = self._load_index().pop(key, None)
        if entry is None:
            return False
        path = self.media_dir / entry["path"]
        if path.exists():
            path.unlink()
        self._save_index()
        logger.info("Invalidated cached media for %s", reference[:80])
        return True

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(self, reference: str, kind: str | None = None) -> Path:
        """Resolve a media reference to a local file.

        URL and inline references never fail: an unusable download or
        payload degrades to the notification placeholder.

        Args:
            reference: default:<name>, URL, data URI or local path.
            kind: "images", "videos" or "audio" for typed slots; used to
                resolve relative local paths.

        Returns:
            Path of the local file.

        Raises:
            MediaUnavailable: If a local path does not exist or a default
                asset name is unknown.
        """
        reference = reference.strip()
        if reference.startswith(DEFAULT_PREFIX):
            return self.default_asset(reference[len(DEFAULT_PREFIX) :])
        if is_url(reference):
            return await self._resolve_remote(reference)
        if reference.startswith("data:"):
            return await self._resolve_inline(reference)
        return self._resolve_local(reference, kind)

    def default_asset(self, name: str) -> Path:
        """Path of a bundled placeholder, generated if absent.

        Raises:
            MediaUnavailable: If the asset name is unknown.
        """
        name = name.strip().lower()
        if name not in DEFAULT_ASSETS:
            raise MediaUnavailable(f"{DEFAULT_PREFIX}{name}", "unknown default asset")
        path = self.defaults_dir / f"{name}.png"
        if not path.exists():
            path.write_bytes(PLACEHOLDER_PNG)
            logger.info("Generated placeholder asset: %s", path)
        return path

    async def _resolve_remote(self, url: str) -> Path:
        key = reference_hash(url)
        async with self._lock_for(key):
            cached = self._indexed_path(key)
            if cached is not None:
                logger.debug("Media cache hit for %s", url)
                return cached

            try:
                path = await self._download(url, key)
            except (httpx.HTTPError, OSError, MediaUnavailable) as e:
                logger.warning(
                    "Download failed for %s, using placeholder: %s", url, e
                )
                return self.default_asset(NOTIFICATION_ASSET)

            self._record(key, path, "url")
            return path

    async def _download(self, url: str, key: str) -> Path:
        partial = self.download_dir / f"{key}{PARTIAL_SUFFIX}"
        logger.info("Downloading media from %s", url)
        try:
            async with self._client_factory() as client:
                async with client.stream(
                    "GET", url, timeout=self._timeout, follow_redirects=True
                ) as response:
                    response.raise_for_status()
                    extension = extension_for(
                        url, response.headers.get("content-type")
                    )
                    if extension is None:
                        raise MediaUnavailable(url, "unrecognized file type")
                    with open(partial, "wb") as f:
                        async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                            f.write(chunk)

            if partial.stat().st_size == 0:
                raise MediaUnavailable(url, "empty file")

            path = self.download_dir / f"{key}{extension}"
            os.replace(partial, path)
        finally:
            if partial.exists():
                partial.unlink()

        logger.info("Downloaded media: %s", path)
        return path

    @staticmethod
    def _payload_key(reference: str) -> str:
        match = DATA_URI_PATTERN.match(reference)
        return match.group("payload") if match else reference

    async def _resolve_inline(self, reference: str) -> Path:
        match = DATA_URI_PATTERN.match(reference)
        payload = match.group("payload") if match else ""
        key = reference_hash(payload or reference)

        async with self._lock_for(key):
            cached = self._indexed_path(key)
            if cached is not None:
                return cached

            try:
                path = self._decode_inline(match, key)
            except (MediaUnavailable, OSError) as e:
                logger.warning("Inline media unusable, using placeholder: %s", e)
                return self.default_asset(NOTIFICATION_ASSET)

            self._record(key, path, "inline")
            return path

    def _decode_inline(self, match: re.Match[str] | None, key: str) -> Path:
        label = f"data URI {key[:12]}"
        if match is None or ";base64" not in match.group("params"):
            raise MediaUnavailable(label, "not a base64 data URI")

        extension = MIME_EXTENSIONS.get((match.group("mime") or "").lower())
        if extension is None:
            raise MediaUnavailable(label, "unrecognized file type")

        try:
            data = base64.b64decode(match.group("payload"), validate=True)
        except (binascii.Error, ValueError) as e:
            raise MediaUnavailable(label, f"invalid base64: {e}") from e
        if not data:
            raise MediaUnavailable(label, "empty file")

        path = self.inline_dir / f"{key}{extension}"
        path.write_bytes(data)
        logger.info("Decoded inline media: %s (%d bytes)", path, len(data))
        return path

    def _resolve_local(self, reference: str, kind: str | None) -> Path:
        path = Path(reference).expanduser()
        if path.is_absolute():
            if path.is_file():
                return path
            raise MediaUnavailable(reference, "file not found")

        candidates = []
        if kind:
            candidates.append(self.media_dir / kind / path)
        candidates.append(self.media_dir / path)
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        raise MediaUnavailable(reference, "file not found")

    def cleanup_partial_downloads(self, max_age: float = 3600) -> int:
        """Delete interrupted downloads older than max_age seconds.

        Returns:
            Number of files removed.
        """
        now = time.time()
        removed = 0
        for partial in self.download_dir.glob(f"*{PARTIAL_SUFFIX}"):
            try:
                if now - partial.stat().st_mtime > max_age:
                    partial.unlink()
                    removed += 1
            except OSError as e:
                logger.warning("Failed to remove %s: %s", partial, e)
        if removed:
            logger.info("Removed %d stale partial downloads", removed)
        return removed
