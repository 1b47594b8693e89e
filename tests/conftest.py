# tests/conftest.py
"""Shared pytest fixtures for all test modules.

Provides common fixtures for:
- Temporary data directories, job store and media directory
- Fake HTTP endpoints (httpx.MockTransport) for remote calls and downloads
- A mocked dispatcher, execution engine and scheduler manager
"""

import os
import tempfile
from collections.abc import AsyncGenerator, Callable, Generator
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import httpx
import pytest

from schedbot.core.content.media import MediaResolver
from schedbot.core.content.remote import RemoteDataFetcher
from schedbot.core.scheduler.executor import ExecutionEngine
from schedbot.core.scheduler.handlers import HandlerRegistry
from schedbot.core.scheduler.manager import SchedulerManager
from schedbot.core.scheduler.models import Job, JobStats, ScheduleSpec
from schedbot.core.scheduler.store import JobStore
from schedbot.utils.logging import clear_firing_context

Route = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def temp_data_dir() -> Generator[str, None, None]:
    """Create a temporary data directory.

    Yields:
        Path to temporary directory.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def store(temp_data_dir: str) -> JobStore:
    """Initialized job store inside the temporary data directory."""
    job_store = JobStore(os.path.join(temp_data_dir, "schedules.json"))
    job_store.initialize()
    return job_store


@pytest.fixture
def http_routes() -> dict[str, Route]:
    """URL -> response builder map served by the fake HTTP transport."""
    return {}


@pytest.fixture
def http_calls() -> list[httpx.Request]:
    """Every request seen by the fake HTTP transport."""
    return []


@pytest.fixture
def client_factory(
    http_routes: dict[str, Route], http_calls: list[httpx.Request]
) -> Callable[[], httpx.AsyncClient]:
    """Factory for httpx clients backed by http_routes.

    Unknown URLs answer 404.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        http_calls.append(request)
        route = http_routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        return route(request)

    def factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def media(
    temp_data_dir: str, client_factory: Callable[[], httpx.AsyncClient]
) -> MediaResolver:
    """Media resolver over the temporary media directory."""
    return MediaResolver(
        os.path.join(temp_data_dir, "media"), client_factory=client_factory
    )


@pytest.fixture
def fetcher(
    temp_data_dir: str, client_factory: Callable[[], httpx.AsyncClient]
) -> RemoteDataFetcher:
    """Remote data fetcher without retries."""
    return RemoteDataFetcher(
        client_factory=client_factory,
        retries=1,
        responses_dir=os.path.join(temp_data_dir, "media", "api_responses"),
    )


@pytest.fixture
def dispatcher() -> AsyncMock:
    """Mock dispatcher recording every dispatch call."""
    mock = AsyncMock()
    mock.dispatch = AsyncMock(return_value={"ok": True})
    return mock


@pytest.fixture
def handlers() -> HandlerRegistry:
    """Empty handler registry."""
    return HandlerRegistry()


@pytest.fixture
def engine(
    store: JobStore,
    fetcher: RemoteDataFetcher,
    media: MediaResolver,
    dispatcher: AsyncMock,
    handlers: HandlerRegistry,
) -> Generator[ExecutionEngine, None, None]:
    """Execution engine wired to the fixtures above."""
    yield ExecutionEngine(store, fetcher, media, dispatcher, handlers)
    clear_firing_context()


@pytest.fixture
async def manager(
    store: JobStore, engine: ExecutionEngine
) -> AsyncGenerator[SchedulerManager, None]:
    """Scheduler manager in UTC; shut down after the test."""
    scheduler = SchedulerManager(store, engine, timezone=ZoneInfo("UTC"))
    yield scheduler
    scheduler.shutdown(wait=False)


@pytest.fixture
def make_job() -> Callable[..., Job]:
    """Build a job with sensible defaults; keyword arguments override fields."""

    def _make(name: str = "Ping", cron: str | None = "*/1 * * * *", **kwargs) -> Job:
        kwargs.setdefault("thread_id", "thread-1")
        kwargs.setdefault("text", "ping")
        kwargs.setdefault("created_at", "2024-01-01T00:00:00+00:00")
        kwargs.setdefault("stats", JobStats(created_at="2024-01-01T00:00:00+00:00"))
        schedule = kwargs.pop("schedule", None) or ScheduleSpec(cron_expression=cron)
        return Job(name=name, schedule=schedule, **kwargs)

    return _make

