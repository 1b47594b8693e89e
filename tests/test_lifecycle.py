# tests/test_lifecycle.py
"""Tests for service startup and shutdown."""

import os
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from schedbot.core.lifecycle import Service, build_service
from schedbot.core.scheduler.errors import StoreCorrupt


class TestService:
    """Tests for Service."""

    async def test_start_and_stop_order(self):
        """Test steps start in order and stop in reverse order."""
        calls = []
        service = Service()
        service.add_step(
            "first",
            lambda: calls.append("start first"),
            lambda: calls.append("stop first"),
        )
        service.add_step(
            "second",
            AsyncMock(side_effect=lambda: calls.append("start second")),
            AsyncMock(side_effect=lambda: calls.append("stop second")),
        )

        await service.start()
        assert service.running == ["first", "second"]
        await service.stop()

        assert calls == ["start first", "start second", "stop second", "stop first"]
        assert service.running == []

    async def test_start_only_once(self):
        """Test that a second start is ignored."""
        start = MagicMock()
        service = Service()
        service.add_step("c", start)

        await service.start()
        await service.start()

        start.assert_called_once()

    async def test_failed_step_unwinds_started_steps(self):
        """Test that a failing step stops the ones before it and re-raises."""
        stop_first = MagicMock()
        never_started = MagicMock()
        service = Service()
        service.add_step("first", MagicMock(), stop_first)
        service.add_step("broken", MagicMock(side_effect=RuntimeError("bad store")))
        service.add_step("last", never_started)

        with pytest.raises(RuntimeError):
            await service.start()

        stop_first.assert_called_once()
        never_started.assert_not_called()
        assert service.running == []

    async def test_stop_errors_are_logged(self):
        """Test that one failing stop does not stop the others."""
        healthy = MagicMock()
        service = Service()
        service.add_step("healthy", MagicMock(), healthy)
        service.add_step(
            "broken", MagicMock(), MagicMock(side_effect=RuntimeError("boom"))
        )
        await service.start()

        await service.stop()

        healthy.assert_called_once()
        assert service.running == []

    async def test_stop_before_start(self):
        """Test that stop without start does nothing."""
        stop = MagicMock()
        service = Service()
        service.add_step("c", MagicMock(), stop)

        await service.stop()

        stop.assert_not_called()


class TestBuildService:
    """Tests for the serve process steps."""

    async def test_runs_scheduler(self, manager, store, make_job):
        """Test that the service arms jobs and shuts the scheduler down."""
        await store.add_job(make_job())
        service = build_service(manager)

        await service.start()

        assert service.running == ["store", "media", "scheduler"]
        assert manager.is_running
        assert manager.is_armed("Ping")

        await service.stop()

        assert not manager.is_running
        assert manager.armed_jobs() == []

    async def test_removes_stale_partial_downloads(self, manager):
        """Test media housekeeping at startup."""
        stale = manager.engine.media.download_dir / "old.part"
        stale.write_bytes(b"x")
        old = time.time() - 7200
        os.utime(stale, (old, old))

        await build_service(manager).start()

        assert not stale.exists()

    async def test_corrupt_store_starts_nothing(self, manager, store):
        """Test that a malformed document aborts before the scheduler starts."""
        with open(store.path, "w", encoding="utf-8") as f:
            f.write("{not json")
        service = build_service(manager)

        with pytest.raises(StoreCorrupt):
            await service.start()

        assert not manager.is_running
        assert service.running == []
