# schedbot/core/lifecycle.py
"""Ordered startup and shutdown of the `serve` process.

The service is a list of named steps. Each step has a start hook and an
optional stop hook, sync or async. Steps start in order and stop in
reverse. If one fails to start, the steps already running are stopped
before the error propagates, so a corrupt store never leaves a live
scheduler behind.

Example:
    >>> service = build_service(manager)
    >>> await service.start()
    >>> # ... run until interrupted ...
    >>> await service.stop()
"""

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from schedbot.core.scheduler.manager import SchedulerManager

logger = logging.getLogger(__name__)

Hook = Callable[[], Any]


async def _call(hook: Hook) -> None:
    result = hook()
    if inspect.isawaitable(result):
        await result


@dataclass
class ServiceStep:
    """One named startup step and its matching teardown."""

    name: str
    start: Hook
    stop: Hook | None = None


class Service:
    """Runs service steps in order and unwinds them in reverse."""

    def __init__(self) -> None:
        self._steps: list[ServiceStep] = []
        self._running: list[ServiceStep] = []

    def add_step(self, name: str, start: Hook, stop: Hook | None = None) -> None:
        """Append a step; it starts after every step added before it."""
        self._steps.append(ServiceStep(name, start, stop))

    @property
    def running(self) -> list[str]:
        """Names of the steps currently started, in start order."""
        return [step.name for step in self._running]

    async def start(self) -> None:
        """Start every step in order.

        Raises:
            Exception: Whatever the failing step raised, after the steps
                started before it were stopped.
        """
        if self._running:
            logger.debug("Service already started")
            return

        for step in self._steps:
            logger.info("Starting %s", step.name)
            try:
                await _call(step.start)
            except Exception:
                logger.error("Failed to start %s, stopping started steps", step.name)
                await self.stop()
                raise
            self._running.append(step)

    async def stop(self) -> None:
        """Stop started steps in reverse order. Stop errors are logged."""
        while self._running:
            step = self._running.pop()
            if step.stop is None:
                continue
            logger.info("Stopping %s", step.name)
            try:
                await _call(step.stop)
            except Exception as e:
                logger.error("Error stopping %s: %s", step.name, e)


def build_service(manager: SchedulerManager) -> Service:
    """Steps of the `serve` process around one scheduler.

    1. store: validate the job document (StoreCorrupt aborts startup).
    2. media: remove partial downloads left by an interrupted run.
    3. scheduler: arm every enabled job; stopped first on shutdown.
    """
    service = Service()
    service.add_step("store", manager.store.load)
    service.add_step("media", manager.engine.media.cleanup_partial_downloads)
    service.add_step("scheduler", manager.start, manager.shutdown)
    return service
