# schedbot/core/scheduler/store.py
"""JSON document store for scheduled jobs.

All jobs and the aggregate execution statistics live in a single JSON
document. Every mutation is a read-modify-write of the whole document,
serialised through one asyncio lock and written atomically.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

from schedbot.core.scheduler.errors import DuplicateJobName, JobNotFound, StoreCorrupt
from schedbot.core.scheduler.models import STORE_VERSION, Job, utc_now_iso

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _empty_metadata() -> dict[str, Any]:
    return {
        "version": STORE_VERSION,
        "lastUpdated": utc_now_iso(),
        "stats": {"totalExecutions": 0, "lastExecution": None},
    }


@dataclass
class StoreDocument:
    """In-memory form of the job-store document.

    Attributes:
        jobs: Jobs in document order.
        metadata: Schema version, lastUpdated and aggregate stats.
    """

    jobs: list[Job] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=_empty_metadata)

    def find(self, name: str) -> Job | None:
        """Find a job by name."""
        for job in self.jobs:
            if job.name == name:
                return job
        return None

    def require(self, name: str) -> Job:
        """Find a job by name.

        Raises:
            JobNotFound: If no job has this name.
        """
        job = self.find(name)
        if job is None:
            raise JobNotFound(name)
        return job

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobs": [job.to_dict() for job in self.jobs],
            "metadata": self.metadata,
        }


class JobStore:
    """Durable store for jobs backed by a single JSON document.

    Reads go straight to disk. Writes must go through transaction() (or
    one of the helpers built on it), which holds the store lock for the
    whole read-modify-write so concurrent firings and admin edits never
    interleave.

    Example:
        >>> store = JobStore("data/schedules.json")
        >>> store.initialize()
        >>> async with store.transaction() as doc:
        ...     doc.require("Ping").enabled = False
    """

    def __init__(self, path: str) -> None:
        """Initialize the JobStore.

        Args:
            path: Path to the JSON document.
        """
        self.path = path
        self._lock = asyncio.Lock()

    @property
    def lock(self) -> asyncio.Lock:
        """The single mutual-exclusion boundary for store mutations."""
        return self._lock

    def initialize(self) -> bool:
        """Create an empty document if none exists.

        Returns:
            True if a new document was written.
        """
        if os.path.exists(self.path):
            return False

        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._write(StoreDocument())
        logger.info("Created new job store at %s", self.path)
        return True

    def read_document(self) -> StoreDocument:
        """Read and validate the whole document.

        Returns:
            The parsed StoreDocument.

        Raises:
            StoreCorrupt: If the file is not a valid job-store document.
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError as e:
            raise StoreCorrupt(self.path, "document does not exist") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StoreCorrupt(self.path, f"invalid JSON: {e}") from e

        if not isinstance(raw, dict):
            raise StoreCorrupt(self.path, "root is not an object")
        jobs = raw.get("jobs")
        if not isinstance(jobs, list):
            raise StoreCorrupt(self.path, '"jobs" is missing or not a list')
        if not all(isinstance(item, dict) for item in jobs):
            raise StoreCorrupt(self.path, '"jobs" contains a non-object entry')

        metadata = raw.get("metadata")
        if not isinstance(metadata, dict):
            metadata = _empty_metadata()
        metadata.setdefault("version", STORE_VERSION)
        stats = metadata.setdefault("stats", {})
        stats.setdefault("totalExecutions", 0)
        stats.setdefault("lastExecution", None)

        return StoreDocument(
            jobs=[Job.from_dict(item) for item in jobs],
            metadata=metadata,
        )

    def _write(self, document: StoreDocument) -> None:
        document.metadata["lastUpdated"] = utc_now_iso()
        directory = os.path.dirname(self.path) or "."
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def load(self) -> list[Job]:
        """Load all jobs.

        Raises:
            StoreCorrupt: If the document is malformed.
        """
        return self.read_document().jobs

    def save(self, jobs: list[Job]) -> None:
        """Replace the job list, keeping the existing metadata.

        Callers must hold the store lock (use transaction() instead where
        possible).
        """
        document = self.read_document()
        document.jobs = list(jobs)
        self._write(document)

    def metadata(self) -> dict[str, Any]:
        """Get the document metadata (version, aggregate stats)."""
        return self.read_document().metadata

    def get_job(self, name: str) -> Job | None:
        """Get a job by name, or None if it does not exist."""
        return self.read_document().find(name)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreDocument]:
        """Hold the store lock and yield the document for mutation.

        The document is written back when the block exits without an
        exception; on exception nothing is written.

        Yields:
            The current StoreDocument.
        """
        async with self._lock:
            document = self.read_document()
            yield document
            self._write(document)

    async def mutate(self, fn: Callable[[StoreDocument], T]) -> T:
        """Apply fn to the document atomically and persist the result.

        Args:
            fn: Function mutating the document; its return value is passed
                through.

        Returns:
            Whatever fn returned.
        """
        async with self.transaction() as document:
            return fn(document)

    async def add_job(self, job: Job) -> Job:
        """Persist a new job.

        Raises:
            DuplicateJobName: If the name is already used.
        """

        def _add(document: StoreDocument) -> Job:
            if document.find(job.name) is not None:
                raise DuplicateJobName(job.name)
            document.jobs.append(job)
            return job

        return await self.mutate(_add)

    async def remove_job(self, name: str) -> Job:
        """Remove a job.

        Raises:
            JobNotFound: If no job has this name.
        """

        def _remove(document: StoreDocument) -> Job:
            job = document.require(name)
            document.jobs.remove(job)
            return job

        return await self.mutate(_remove)

    async def update_job(self, name: str, fn: Callable[[Job], T]) -> T:
        """Apply fn to one job and persist.

        Raises:
            JobNotFound: If no job has this name.
        """
        return await self.mutate(lambda document: fn(document.require(name)))

    async def record_execution(self, name: str) -> bool:
        """Bump the job's and the aggregate execution statistics.

        Args:
            name: Job that was executed.

        Returns:
            False if the job no longer exists (removed mid-firing).
        """

        def _record(document: StoreDocument) -> bool:
            now = utc_now_iso()
            job = document.find(name)
            if job is None:
                return False
            if job.stats.created_at is None:
                job.stats.created_at = job.created_at or now
            job.stats.execution_count += 1
            job.stats.last_executed = now

            stats = document.metadata["stats"]
            stats["totalExecutions"] = int(stats.get("totalExecutions", 0)) + 1
            stats["lastExecution"] = now
            return True

        return await self.mutate(_record)

    async def disable_one_shot(self, name: str) -> bool:
        """Disable a one-shot job after its successful firing.

        Returns:
            False if the job no longer exists.
        """
        async with self.transaction() as document:
            return self.disable_one_shot_in(document, name)

    @staticmethod
    def disable_one_shot_in(document: StoreDocument, name: str) -> bool:
        """Mark a one-shot job disabled inside an open transaction."""
        job = document.find(name)
        if job is None:
            return False
        now = utc_now_iso()
        job.enabled = False
        job.one_time = False
        job.disabled_at = now
        job.disabled_reason = "One-time job completed"
        document.metadata["lastDisabledJob"] = {"name": name, "timestamp": now}
        return True
