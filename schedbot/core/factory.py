# schedbot/core/factory.py
"""Factory wiring the scheduled-job engine together from settings."""

import logging
import os

from schedbot.config import Settings, settings
from schedbot.core.content.media import MediaResolver
from schedbot.core.content.remote import RemoteDataFetcher
from schedbot.core.scheduler.executor import ExecutionEngine
from schedbot.core.scheduler.handlers import handler_registry, load_handler_modules
from schedbot.core.scheduler.manager import SchedulerManager
from schedbot.core.scheduler.notification import DispatchProtocol
from schedbot.core.scheduler.store import JobStore

logger = logging.getLogger(__name__)


def build_scheduler(
    dispatcher: DispatchProtocol,
    config: Settings | None = None,
) -> SchedulerManager:
    """Create the store, content services, engine and scheduler.

    Initializes an empty job store if none exists and imports configured
    handler modules. Does not start the scheduler.

    Args:
        dispatcher: Delivers composed messages.
        config: Settings to use (defaults to the global settings).

    Returns:
        A SchedulerManager ready to start().
    """
    config = config or settings

    store = JobStore(config.resolved_store_path)
    store.initialize()

    media_dir = config.resolved_media_dir
    media = MediaResolver(media_dir, download_timeout=config.media_download_timeout)
    fetcher = RemoteDataFetcher(
        default_ttl=config.api_cache_ttl,
        default_timeout=config.api_timeout,
        retries=config.api_retries,
        responses_dir=os.path.join(media_dir, "api_responses"),
    )

    if config.handler_modules:
        load_handler_modules(config.handler_modules)

    engine = ExecutionEngine(store, fetcher, media, dispatcher, handler_registry)
    logger.debug("Built scheduler with store %s", store.path)
    return SchedulerManager(
        store,
        engine,
        timezone=config.tz,
        misfire_grace_time=config.misfire_grace_time,
    )
