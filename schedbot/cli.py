"""Command-line interface."""

import asyncio
import logging
import signal
from typing import Annotated

import typer

from schedbot.config import settings
from schedbot.core.commands.jobs import DEFAULT_DESTINATION, JobCommands
from schedbot.core.factory import build_scheduler
from schedbot.core.lifecycle import build_service
from schedbot.core.scheduler.errors import StoreCorrupt
from schedbot.core.scheduler.notification import LoggingDispatcher
from schedbot.utils.logging import configure_structured_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="schedbot",
    help="Persistent scheduled-message engine",
    no_args_is_help=True,
)


@app.command()
def job(
    tokens: Annotated[
        list[str] | None,
        typer.Argument(help="Job command, e.g. add Ping \"every 1 minute\" ping"),
    ] = None,
    thread: Annotated[
        str,
        typer.Option("--thread", "-t", help="Destination thread for new jobs"),
    ] = DEFAULT_DESTINATION,
    group: Annotated[
        bool,
        typer.Option("--group", help="Destination is a group thread"),
    ] = False,
) -> None:
    """Run one job management command against the job store.

    Examples:
        schedbot job list
        schedbot job add Ping "every 1 minute" ping
        schedbot job update Ping text "{date} ping"
        schedbot job testapi Weather
    """
    configure_structured_logging(settings.log_level, "text")

    async def run_command() -> str:
        manager = build_scheduler(LoggingDispatcher())
        commands = JobCommands(manager)
        return await commands.handle(tokens or [], destination=thread, is_group=group)

    typer.echo(asyncio.run(run_command()))


@app.command()
def serve() -> None:
    """Start the scheduler and run until interrupted."""
    configure_structured_logging(settings.log_level, settings.log_format)

    async def run_server() -> None:
        manager = build_scheduler(LoggingDispatcher())
        service = build_service(manager)
        await service.start()

        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, shutdown_event.set)

        logger.info("Scheduler running with %d armed jobs", len(manager.armed_jobs()))
        try:
            await shutdown_event.wait()
        finally:
            await service.stop()

    try:
        asyncio.run(run_server())
    except StoreCorrupt as e:
        logger.error("Refusing to start: %s", e)
        raise typer.Exit(1) from e
