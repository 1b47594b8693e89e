# schedbot/core/commands/jobs.py
"""Job management commands.

Implements the text command surface (list, add, remove, enable, disable,
update, info, run, configapi, testapi, help) on top of SchedulerManager.
Every operation returns a reply string; domain errors are turned into
messages instead of propagating.
"""

import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from schedbot.core.commands.parser import ParsedCommand, parse_command
from schedbot.core.content.media import NOTIFICATION_ASSET, is_url
from schedbot.core.scheduler.errors import (
    InvalidSchedule,
    RemoteCallFailed,
    SchedulerError,
    StoreCorrupt,
)
from schedbot.core.scheduler.manager import SchedulerManager
from schedbot.core.scheduler.models import (
    Job,
    JobStats,
    RemoteCallSpec,
    ScheduleSpec,
    utc_now_iso,
)
from schedbot.core.scheduler.time_parser import format_time, is_human_phrase, translate

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 2000
DEFAULT_DESTINATION = "cli"

Mutator = Callable[[Job], None]

# Alias -> canonical update field
UPDATE_FIELDS = {
    "time": "time",
    "schedule": "time",
    "cron": "time",
    "lịch": "time",
    "text": "text",
    "message": "text",
    "tin nhắn": "text",
    "nội dung": "text",
    "onetime": "onetime",
    "single": "onetime",
    "một lần": "onetime",
    "dynamic": "dynamic",
    "động": "dynamic",
    "function": "function",
    "hàm": "function",
    "name": "name",
    "tên": "name",
    "imagepath": "imagepath",
    "image": "imagepath",
    "ảnh": "imagepath",
    "videopath": "videopath",
    "video": "videopath",
    "audiopath": "audiopath",
    "audio": "audiopath",
    "âm thanh": "audiopath",
    "attachments": "attachments",
    "attachment": "attachments",
    "đính kèm": "attachments",
    "richtext": "richtext",
    "rich": "richtext",
    "urgency": "urgency",
    "urgent": "urgency",
    "api": "apiurl",
    "apiurl": "apiurl",
    "apimethod": "apimethod",
    "apiheaders": "apiheaders",
    "apidata": "apidata",
    "apibody": "apidata",
    "apiparams": "apiparams",
    "apirequired": "apirequired",
    "apiresponsepath": "apiresponsepath",
    "apimediapath": "apimediapath",
    "apicachettl": "apicachettl",
    "apifallback": "apifallback",
    "template": "template",
}

VALID_FIELDS_TEXT = (
    "time, text, onetime, dynamic, function, name, imagePath, videoPath, "
    "audioPath, attachments, richText, urgency, api, apiUrl, apiMethod, "
    "apiHeaders, apiData, apiParams, apiRequired, apiResponsePath, "
    "apiMediaPath, apiCacheTTL, apiFallback, template"
)

MEDIA_SLOTS = {
    "imagepath": ("image_path", "images"),
    "videopath": ("video_path", "videos"),
    "audiopath": ("audio_path", "audio"),
}

HELP_TEXT = """:clipboard: Scheduled job commands:
- list: List jobs
- add <name> <schedule> <message>: Create a job
- remove <name>: Delete a job
- enable <name>: Enable a job
- disable <name>: Disable a job
- update <name> <field> <value>: Change a job field
- info <name>: Show job details
- run <name>: Fire a job now

:globe_with_meridians: Remote data:
- configapi <name> <url>: Attach a GET call to a job
- testapi <name>: Preview the call without sending anything
- update <name> apiMethod POST
- update <name> apiHeaders {"Authorization": "Bearer token"}
- update <name> apiData {"key": "value"}
- update <name> apiParams {"q": "Hanoi"}
- update <name> apiResponsePath data.results
- update <name> apiMediaPath data.image_url
- update <name> apiCacheTTL 600
- update <name> template "Result: {title}"

:calendar: Schedule examples:
- "daily at 08:00" / "mỗi ngày lúc 08:00"
- "every monday at 09:15" / "mỗi thứ 2 lúc 09:15"
- "every 15th of the month at 10:00" / "mỗi ngày 15 hàng tháng lúc 10:00"
- "every 30 minutes" / "mỗi 30 phút"
- "0 0 8 * * *" (6-field cron: second minute hour day month weekday)

Media from URLs:
- update <name> imagePath https://example.com/image.jpg
- update <name> attachments https://example.com/file.pdf"""


class CommandError(Exception):
    """A command could not be carried out; the message is the reply."""


def _is_true(value: str) -> bool:
    return value.strip().lower() in ("true", "1")


def _parse_json(value: str, label: str) -> Any:
    try:
        return json.loads(value)
    except ValueError as e:
        raise CommandError(f"Error: {label} must be valid JSON") from e


def _api(job: Job) -> RemoteCallSpec:
    if job.api is None:
        job.api = RemoteCallSpec(url="")
    return job.api


class JobCommands:
    """Handles job management commands.

    Attributes:
        manager: Scheduler whose jobs the commands operate on.

    Example:
        >>> commands = JobCommands(manager)
        >>> await commands.handle('add Ping "every 1 minute" ping')
        'Created job "Ping" ...'
    """

    def __init__(self, manager: SchedulerManager) -> None:
        """Initialize the command handler.

        Args:
            manager: SchedulerManager owning the store and the engine.
        """
        self.manager = manager
        self.store = manager.store
        self.engine = manager.engine

    async def handle(
        self,
        command: str | Sequence[str],
        destination: str = DEFAULT_DESTINATION,
        is_group: bool = False,
    ) -> str:
        """Run one job command.

        Args:
            command: Command text or pre-split tokens.
            destination: Thread new jobs are bound to.
            is_group: Whether destination is a group thread.

        Returns:
            Reply text describing the result.
        """
        parsed = parse_command(command)
        if parsed is None:
            return HELP_TEXT

        operations: dict[str, Callable[[ParsedCommand], Awaitable[str]]] = {
            "list": self._list,
            "remove": self._remove,
            "delete": self._remove,
            "enable": self._enable,
            "disable": self._disable,
            "update": self._update,
            "info": self._info,
            "run": self._run,
            "configapi": self._configure_api,
            "setapi": self._configure_api,
            "testapi": self._test_api,
        }

        try:
            if parsed.operation == "add":
                return await self._add(parsed, destination, is_group)
            operation = operations.get(parsed.operation)
            if operation is None:
                return HELP_TEXT
            return await operation(parsed)
        except CommandError as e:
            return str(e)
        except StoreCorrupt as e:
            logger.error("Job command failed: %s", e)
            return f"Error: {e}"
        except SchedulerError as e:
            return f"Error: {e}"
        except Exception as e:
            logger.exception("Job command %s failed: %s", parsed.operation, e)
            return f"Job command failed: {e}"

    @staticmethod
    def _name(parsed: ParsedCommand, usage: str) -> str:
        names, _ = parsed.split(1)
        if not names or not names[0]:
            raise CommandError(f"Missing job name. Usage: {usage}")
        return names[0]

    def _next_run(self, name: str) -> str:
        return format_time(self.manager.next_run_time(name))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def _list(self, parsed: ParsedCommand) -> str:
        jobs = self.store.load()
        if not jobs:
            return "No scheduled jobs."

        lines = [f":clipboard: Scheduled jobs ({len(jobs)}):"]
        for job in jobs:
            status = "on" if job.enabled else "off"
            flags = []
            if job.one_time:
                flags.append("one-time")
            if job.has_remote_call:
                flags.append("api")
            suffix = f" [{', '.join(flags)}]" if flags else ""
            line = f"- {job.name} ({status}) | {job.schedule.display}{suffix}"
            if self.manager.is_armed(job.name):
                line += f"\n  next: {self._next_run(job.name)}"
            lines.append(line)
        return "\n".join(lines)

    async def _add(self, parsed: ParsedCommand, destination: str, is_group: bool) -> str:
        args, message = parsed.split(2)
        if len(args) < 2 or not message:
            raise CommandError(
                "Missing information. Usage: add <name> <schedule> <message>"
            )
        name, schedule = args

        try:
            expression = translate(schedule)
            self.manager.validate_schedule(expression)
        except InvalidSchedule as e:
            raise CommandError(
                "Invalid time format. Use a supported time phrase or a cron expression."
            ) from e

        human = is_human_phrase(schedule, expression)
        now = utc_now_iso()
        job = Job(
            name=name,
            schedule=ScheduleSpec(
                cron_expression=expression,
                time_format="human" if human else "cron",
                human_time=schedule if human else None,
            ),
            thread_id=destination,
            is_group=is_group,
            text=message,
            use_dynamic_content="{" in message and "}" in message,
            created_at=now,
            stats=JobStats(created_at=now),
        )
        armed = await self.manager.add_job(job)

        reply = f'Created job "{name}".\n- Schedule: {job.schedule.display}'
        if armed:
            reply += f"\n- First run: {self._next_run(name)}"
        return reply

    async def _remove(self, parsed: ParsedCommand) -> str:
        name = self._name(parsed, "remove <name>")
        await self.manager.remove_job(name)
        return f'Removed job "{name}".'

    async def _enable(self, parsed: ParsedCommand) -> str:
        name = self._name(parsed, "enable <name>")
        if not await self.manager.enable_job(name):
            return f'Job "{name}" is already enabled.'
        reply = f'Enabled job "{name}".'
        if self.manager.is_armed(name):
            reply += f"\n- Next run: {self._next_run(name)}"
        return reply

    async def _disable(self, parsed: ParsedCommand) -> str:
        name = self._name(parsed, "disable <name>")
        if not await self.manager.disable_job(name):
            return f'Job "{name}" is already disabled.'
        return f'Disabled job "{name}".'

    async def _info(self, parsed: ParsedCommand) -> str:
        name = self._name(parsed, "info <name>")
        job = self.store.get_job(name)
        if job is None:
            raise CommandError(f'Job "{name}" not found.')

        lines = [
            f':information_source: Job "{job.name}"',
            f"- Status: {'enabled' if job.enabled else 'disabled'}",
            f"- Schedule: {job.schedule.display}",
            f"- Cron: {job.schedule.cron_expression or 'N/A'}",
            f"- Thread: {job.thread_id}{' (group)' if job.is_group else ''}",
            f"- One-time: {'yes' if job.one_time else 'no'}",
            f"- Dynamic content: {'yes' if job.use_dynamic_content else 'no'}",
            f"- Text: {job.text or ''}",
        ]
        if job.template:
            lines.append(f"- Template: {job.template}")
        for reference, kind in job.media_refs():
            lines.append(f"- Media ({kind or 'attachment'}): {reference}")
        if job.api is not None and job.api.url:
            lines.append(f"- API: {job.api.method} {job.api.url}")
            if job.api.response_path:
                lines.append(f"  response path: {job.api.response_path}")
            if job.api.media_path:
                lines.append(f"  media path: {job.api.media_path}")
            if job.api.required:
                lines.append("  required: yes")
        if job.custom_function:
            lines.append(f"- Function: {job.custom_function}")
        if not job.enabled and job.disabled_reason:
            lines.append(f"- Disabled: {job.disabled_reason}")
        lines.append(f"- Runs: {job.stats.execution_count}")
        lines.append(f"- Last run: {job.stats.last_executed or 'never'}")
        lines.append(f"- Created: {job.created_at or 'N/A'}")
        if self.manager.is_armed(job.name):
            lines.append(f"- Next run: {self._next_run(job.name)}")
        return "\n".join(lines)

    async def _run(self, parsed: ParsedCommand) -> str:
        name = self._name(parsed, "run <name>")
        record = await self.manager.run_now(name)
        if record.succeeded:
            return f'Ran job "{name}".'
        detail = f": {record.error}" if record.error else ""
        return f'Job "{name}" did not send ({record.outcome.value}){detail}'

    async def _configure_api(self, parsed: ParsedCommand) -> str:
        args, _ = parsed.split(2)
        if len(args) < 2:
            raise CommandError("Missing information. Usage: configapi <name> <url>")
        name, url = args

        def _set(job: Job) -> None:
            spec = _api(job)
            spec.url = url
            spec.method = "GET"

        await self.manager.update_job(name, _set)
        return (
            f'Configured API for job "{name}":\n'
            f"- URL: {url}\n"
            "- Method: GET\n\n"
            "Further settings:\n"
            f"- update {name} apiMethod POST\n"
            f'- update {name} apiHeaders {{"Authorization": "Bearer token"}}\n'
            f"- update {name} apiResponsePath data.results\n"
            f'- update {name} template "Result: {{title}}"\n'
            f"- update {name} apiMediaPath data.image_url\n\n"
            f"Try it with: testapi {name}"
        )

    async def _test_api(self, parsed: ParsedCommand) -> str:
        name = self._name(parsed, "testapi <name>")
        job = self.store.get_job(name)
        if job is None:
            raise CommandError(f'Job "{name}" not found.')
        if not job.has_remote_call:
            raise CommandError(f'Job "{name}" has no API configured.')

        try:
            preview = await self.engine.preview(job)
        except RemoteCallFailed as e:
            return f'API call failed for "{name}":\n{e}'

        body = json.dumps(preview.remote_data, indent=2, ensure_ascii=False, default=str)
        if len(body) > PREVIEW_LIMIT:
            body = body[: PREVIEW_LIMIT - 3] + "..."

        lines = [
            f'API call succeeded for "{name}":',
            f"URL: {job.api.url}",
            f"Response:\n{body}",
        ]
        if job.template:
            lines.append(f"\nMessage preview:\n{preview.rendered}")
        if job.api.media_path:
            if preview.media_url:
                lines.append(f"\nMedia URL: {preview.media_url}")
            else:
                lines.append(f"\nNo valid media URL at path: {job.api.media_path}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # update
    # ------------------------------------------------------------------

    async def _update(self, parsed: ParsedCommand) -> str:
        args, value = parsed.split(2)
        if len(args) < 2 or value == "":
            raise CommandError(
                "Missing information. Usage: update <name> <field> <value>"
            )
        name, field_name = args
        field = UPDATE_FIELDS.get(field_name.lower())
        if field is None:
            raise CommandError(f"Invalid field. Valid fields: {VALID_FIELDS_TEXT}")

        if field == "name":
            await self.manager.rename_job(name, value)
            return f'Renamed job "{name}" to "{value}".'

        notes: list[str] = []
        mutate = await self._prepare_update(field, value, notes)
        await self.manager.update_job(name, mutate)

        reply = f'Updated "{field_name}" of job "{name}".'
        if self.manager.is_armed(name):
            reply += f"\n- Next run: {self._next_run(name)}"
        for note in notes:
            reply += f"\n- {note}"
        return reply

    async def _prefetch_media(self, value: str, kind: str | None, notes: list[str]) -> None:
        if not (is_url(value) or value.startswith("data:")):
            return
        path = await self.engine.media.resolve(value, kind)
        if path == self.engine.media.default_asset(NOTIFICATION_ASSET):
            notes.append("Media could not be fetched; the placeholder will be sent.")
        else:
            notes.append("Media downloaded and cached.")

    async def _prepare_update(self, field: str, value: str, notes: list[str]) -> Mutator:
        """Validate a value and build the mutation applied inside the store lock.

        Network work (media downloads) happens here, before the lock.

        Raises:
            CommandError: If the value is invalid for the field.
        """
        if field == "time":
            try:
                expression = translate(value)
                self.manager.validate_schedule(expression)
            except InvalidSchedule as e:
                raise CommandError(
                    "Invalid time format. Use a supported time phrase or a cron expression."
                ) from e
            human = is_human_phrase(value, expression)
            schedule = ScheduleSpec(
                cron_expression=expression,
                time_format="human" if human else "cron",
                human_time=value if human else None,
            )

            def _set_schedule(job: Job) -> None:
                job.schedule = schedule

            return _set_schedule

        if field == "text":

            def _set_text(job: Job) -> None:
                job.text = value
                job.use_dynamic_content = "{" in value and "}" in value

            return _set_text

        if field in MEDIA_SLOTS:
            attribute, kind = MEDIA_SLOTS[field]
            await self._prefetch_media(value, kind, notes)
            return lambda job: setattr(job, attribute, value)

        if field == "attachments":
            await self._prefetch_media(value, None, notes)
            return lambda job: job.attachments.append(value)

        if field == "urgency":
            urgency = int(value) if value.strip().isdigit() else int(_is_true(value))
            return lambda job: setattr(job, "urgency", urgency)

        flags = {
            "onetime": "one_time",
            "dynamic": "use_dynamic_content",
            "richtext": "use_rich_text",
        }
        if field in flags:
            flag = _is_true(value)
            return lambda job: setattr(job, flags[field], flag)

        if field == "function":
            return lambda job: setattr(job, "custom_function", value)
        if field == "template":
            return lambda job: setattr(job, "template", value)

        return self._prepare_api_update(field, value)

    def _prepare_api_update(self, field: str, value: str) -> Mutator:
        api_value: Any
        if field == "apiurl":
            attribute, api_value = "url", value
        elif field == "apimethod":
            attribute, api_value = "method", value.upper()
        elif field == "apiheaders":
            attribute, api_value = "headers", _parse_json(value, "Headers")
        elif field == "apidata":
            attribute, api_value = "data", _parse_json(value, "Body")
        elif field == "apiparams":
            attribute, api_value = "params", _parse_json(value, "Params")
        elif field == "apirequired":
            attribute, api_value = "required", _is_true(value)
        elif field == "apiresponsepath":
            attribute, api_value = "response_path", value
        elif field == "apimediapath":
            attribute, api_value = "media_path", value
        elif field == "apicachettl":
            try:
                api_value = int(value) * 1000  # Seconds in, milliseconds stored
            except ValueError as e:
                raise CommandError("Error: apiCacheTTL must be a number of seconds") from e
            attribute = "cache_ttl"
        elif field == "apifallback":
            try:
                api_value = json.loads(value)
            except ValueError:
                api_value = value
            attribute = "fallback"
        else:
            raise CommandError(f"Invalid field. Valid fields: {VALID_FIELDS_TEXT}")

        def _set_api(job: Job) -> None:
            setattr(_api(job), attribute, api_value)

        return _set_api
