# schedbot/core/content/remote.py
"""Remote data fetcher for job content.

Performs the outbound call described by a RemoteCallSpec, caches the
extracted result in memory for the call's TTL and applies the fallback /
required policy on failure.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

import httpx
import tenacity

from schedbot.core.content.composer import is_missing, lookup
from schedbot.core.scheduler.errors import PathNotFound, RemoteCallFailed
from schedbot.core.scheduler.models import RemoteCallSpec

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300.0  # Seconds
BODY_METHODS = {"POST", "PUT", "PATCH"}
DEFAULT_HEADERS = {"Content-Type": "application/json"}

# Failures worth another attempt; HTTP status errors are final
TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.ConnectError)


def cache_key(spec: RemoteCallSpec) -> str:
    """Cache key covering every field of the call spec."""
    return json.dumps(spec.to_dict(), sort_keys=True, default=str)


def extract_path(data: Any, path: str, url: str, required: bool = False) -> Any:
    """Walk a response-extraction path.

    Args:
        data: Decoded response.
        path: Dotted path (bracket indexes allowed).
        url: Called address, for the error message.
        required: Propagated into the raised error.

    Returns:
        The value at the path.

    Raises:
        PathNotFound: If a segment is missing.
    """
    value = lookup(data, path)
    if is_missing(value):
        raise PathNotFound(url, path, required=required)
    return value


class RemoteDataFetcher:
    """Fetches and caches remote data for job content.

    Attributes:
        default_ttl: Cache lifetime in seconds for specs without cacheTTL.
    """

    def __init__(
        self,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        default_ttl: float = DEFAULT_CACHE_TTL,
        default_timeout: float = 10.0,
        retries: int = 3,
        responses_dir: str | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            client_factory: Creates the httpx client per call (tests inject
                a MockTransport-backed client here).
            default_ttl: Cache lifetime in seconds when the call sets none.
            default_timeout: Request timeout in seconds when the call sets none.
            retries: Attempts for transient transport errors.
            responses_dir: Where save_response writes response snapshots.
        """
        self._client_factory = client_factory or httpx.AsyncClient
        self.default_ttl = default_ttl
        self.default_timeout = default_timeout
        self._retries = max(1, retries)
        self._responses_dir = responses_dir
        self._cache: dict[str, tuple[float, Any]] = {}

    def invalidate(self) -> None:
        """Drop every cached response."""
        self._cache.clear()

    def _cached(self, key: str, ttl: float) -> tuple[bool, Any]:
        entry = self._cache.get(key)
        if entry is None:
            return False, None
        stored_at, data = entry
        if time.monotonic() - stored_at >= ttl:
            del self._cache[key]
            return False, None
        return True, data

    async def _request(self, spec: RemoteCallSpec) -> Any:
        method = spec.method.upper()
        kwargs: dict[str, Any] = {
            "headers": spec.headers or DEFAULT_HEADERS,
            "timeout": spec.timeout / 1000 if spec.timeout else self.default_timeout,
        }
        if method in BODY_METHODS and spec.data is not None:
            kwargs["json"] = spec.data
        if spec.params:
            kwargs["params"] = spec.params

        async with self._client_factory() as client:
            async for attempt in tenacity.AsyncRetrying(
                stop=tenacity.stop_after_attempt(self._retries),
                wait=tenacity.wait_exponential(multiplier=0.5, min=0.5, max=5),
                retry=tenacity.retry_if_exception_type(TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    response = await client.request(method, spec.url, **kwargs)
                    response.raise_for_status()

        try:
            return response.json()
        except ValueError:
            return response.text

    def _save_response(self, job_name: str, data: Any) -> None:
        if not self._responses_dir:
            return
        os.makedirs(self._responses_dir, exist_ok=True)
        path = os.path.join(
            self._responses_dir, f"{job_name}_{int(time.time() * 1000)}.json"
        )
        with open(path, "w", encoding="utf-8") as f:
            json.dump(
                {
                    "job": job_name,
                    "timestamp": datetime.now().astimezone().isoformat(),
                    "response": data,
                },
                f,
                indent=2,
                ensure_ascii=False,
            )
        logger.info("Saved API response: %s", path)

    async def fetch(self, spec: RemoteCallSpec, job_name: str | None = None) -> Any:
        """Call the remote endpoint described by spec.

        Args:
            spec: Call description.
            job_name: Job the call belongs to (logging, saved responses).

        Returns:
            The decoded response, narrowed by response_path when set, or
            the call's fallback when it failed.

        Raises:
            RemoteCallFailed: If the call or extraction failed and there is
                no fallback. ``required`` mirrors the call.
        """
        key = cache_key(spec)
        ttl = spec.cache_ttl_seconds
        if ttl is None:
            ttl = self.default_ttl

        hit, data = self._cached(key, ttl)
        if hit:
            logger.info("Using cached response for %s", spec.url)
            return data

        logger.info("Calling API: %s %s", spec.method, spec.url)
        try:
            result = await self._request(spec)
            if spec.response_path:
                result = extract_path(
                    result, spec.response_path, spec.url, required=spec.required
                )
        except (httpx.HTTPError, RemoteCallFailed) as e:
            logger.error("API call failed (%s): %s", spec.url, e)
            if spec.fallback is not None:
                logger.warning(
                    "Using fallback data for %s (job=%s)", spec.url, job_name
                )
                return spec.fallback
            if isinstance(e, RemoteCallFailed):
                raise
            raise RemoteCallFailed(spec.url, str(e), required=spec.required) from e

        self._cache[key] = (time.monotonic(), result)

        if spec.save_response and job_name:
            try:
                self._save_response(job_name, result)
            except OSError as e:
                logger.warning("Failed to save API response for %s: %s", job_name, e)

        return result
