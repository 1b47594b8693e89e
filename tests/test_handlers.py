# tests/test_handlers.py
"""Tests for the custom handler registry."""

import logging

import pytest

from schedbot.core.scheduler.handlers import HandlerRegistry, load_handler_modules


class TestHandlerRegistry:
    """Tests for HandlerRegistry."""

    def test_register_default_name(self, handlers):
        """Test that the function name is used by default."""

        @handlers.register()
        def archive(job, remote_data, dispatcher):
            pass

        assert handlers.get("archive") is archive
        assert handlers.names() == ["archive"]

    def test_add_rejects_non_callable(self, handlers):
        """Test registering something that cannot be called."""
        with pytest.raises(TypeError):
            handlers.add("bad", "not callable")

    def test_replace_logs_warning(self, handlers, caplog):
        """Test that re-registering a name replaces the handler."""
        handlers.add("x", lambda *args: None)

        with caplog.at_level(logging.WARNING):
            handlers.add("x", print)

        assert handlers.get("x") is print
        assert "Replacing handler" in caplog.text

    async def test_invoke_sync_and_async(self, handlers):
        """Test invoking sync and coroutine handlers."""
        calls = []

        @handlers.register("sync")
        def sync_handler(value):
            calls.append(("sync", value))

        @handlers.register("async")
        async def async_handler(value):
            calls.append(("async", value))

        assert await handlers.invoke("sync", 1) is True
        assert await handlers.invoke("async", 2) is True
        assert await handlers.invoke("missing", 3) is False
        assert calls == [("sync", 1), ("async", 2)]

    def test_clear(self):
        """Test clearing the registry."""
        registry = HandlerRegistry()
        registry.add("x", print)

        registry.clear()

        assert registry.names() == []


def test_load_handler_modules(caplog):
    """Test importing handler modules by dotted path."""
    with caplog.at_level(logging.ERROR):
        loaded = load_handler_modules(["json", "schedbot.no_such_module"])

    assert loaded == 1
    assert "schedbot.no_such_module" in caplog.text
