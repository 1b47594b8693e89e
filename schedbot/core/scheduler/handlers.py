# schedbot/core/scheduler/handlers.py
"""Registry of named post-dispatch handlers.

A job's ``customFunction`` names a handler registered ahead of time. The
handler runs after the job's message was dispatched.

Usage:
    from schedbot.core.scheduler.handlers import register_handler

    @register_handler("archive_weather")
    async def archive_weather(job, remote_data, dispatcher):
        ...

Handler modules listed in SCHEDBOT_HANDLER_MODULES are imported at startup
so their decorators run.
"""

import importlib
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

# handler(job, remote_data, dispatcher), sync or async
Handler = Callable[..., Awaitable[None] | None]
H = TypeVar("H", bound=Handler)


class HandlerRegistry:
    """Maps handler names to callables."""

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def register(self, name: str | None = None) -> Callable[[H], H]:
        """Decorator registering a handler under name (default: function name).

        Args:
            name: Name jobs refer to in customFunction.

        Returns:
            Decorator returning the function unchanged.
        """

        def decorator(func: H) -> H:
            self.add(name or func.__name__, func)
            return func

        return decorator

    def add(self, name: str, func: Handler) -> None:
        """Register func under name, replacing any previous handler."""
        if not callable(func):
            raise TypeError(f"Handler {name!r} is not callable")
        if name in self._handlers:
            logger.warning("Replacing handler: %s", name)
        self._handlers[name] = func
        logger.debug("Registered handler: %s", name)

    def get(self, name: str) -> Handler | None:
        """Get a handler by name."""
        return self._handlers.get(name)

    def names(self) -> list[str]:
        """Registered handler names, sorted."""
        return sorted(self._handlers)

    def clear(self) -> None:
        """Remove all handlers (for testing)."""
        self._handlers.clear()

    async def invoke(self, name: str, *args: Any) -> bool:
        """Run a handler, awaiting it if it is a coroutine function.

        Returns:
            False if no handler has this name.
        """
        handler = self.get(name)
        if handler is None:
            return False
        result = handler(*args)
        if inspect.isawaitable(result):
            await result
        return True


# Default registry used by the application
handler_registry = HandlerRegistry()


def register_handler(name: str | None = None) -> Callable[[H], H]:
    """Register a handler on the default registry."""
    return handler_registry.register(name)


def load_handler_modules(modules: Iterable[str]) -> int:
    """Import handler modules so their @register_handler decorators run.

    Args:
        modules: Dotted module paths.

    Returns:
        Number of modules imported successfully.
    """
    loaded = 0
    for module_name in modules:
        try:
            importlib.import_module(module_name)
            loaded += 1
            logger.info("Loaded handler module: %s", module_name)
        except ImportError as e:
            logger.error("Failed to import handler module %s: %s", module_name, e)
    return loaded
