# tests/test_commands.py
"""Tests for job management commands."""

import re

import httpx
import pytest

from schedbot.core.commands.jobs import HELP_TEXT, PREVIEW_LIMIT, JobCommands
from schedbot.core.content.media import PLACEHOLDER_PNG
from schedbot.core.scheduler.models import RemoteCallSpec

API_URL = "https://api.test/news"
IMAGE_URL = "https://cdn.test/banner.png"


@pytest.fixture
def commands(manager):
    """Command handler over the test scheduler."""
    return JobCommands(manager)


def _news(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200, json={"data": {"title": "Rain tomorrow", "image": IMAGE_URL}}
    )


class TestAdd:
    """Tests for the add operation."""

    async def test_add_from_text(self, commands, store, manager):
        """Test adding a job with a quoted time phrase."""
        reply = await commands.handle('add Ping "every 1 minute" ping')

        assert reply.startswith('Created job "Ping".')
        assert "- Schedule: every 1 minute" in reply
        assert "- First run: " in reply
        job = store.get_job("Ping")
        assert job.schedule.cron_expression == "*/1 * * * *"
        assert job.schedule.time_format == "human"
        assert job.schedule.human_time == "every 1 minute"
        assert job.thread_id == "cli"
        assert job.text == "ping"
        assert job.enabled is True
        assert manager.is_armed("Ping")

    async def test_add_from_tokens(self, commands, store):
        """Test adding a job from pre-split tokens with a cron expression."""
        reply = await commands.handle(
            ["add", "Morning", "0 0 8 * * *", "good", "morning"],
            destination="group-7",
            is_group=True,
        )

        assert reply.startswith('Created job "Morning".')
        job = store.get_job("Morning")
        assert job.schedule.time_format == "cron"
        assert job.schedule.human_time is None
        assert job.text == "good morning"
        assert job.thread_id == "group-7"
        assert job.is_group is True

    async def test_add_dynamic_text(self, commands, store):
        """Test that placeholders in the message turn on dynamic content."""
        await commands.handle('add Ping "every 1 minute" {date} ping')

        job = store.get_job("Ping")
        assert job.text == "{date} ping"
        assert job.use_dynamic_content is True

    async def test_add_duplicate(self, commands):
        """Test that duplicate names are reported."""
        await commands.handle('add Ping "every 1 minute" ping')

        reply = await commands.handle('add Ping "every 5 minutes" pong')

        assert reply == 'Error: Job "Ping" already exists'

    async def test_add_invalid_time(self, commands, store):
        """Test that unknown time phrases are rejected."""
        reply = await commands.handle('add Ping "whenever you like" ping')

        assert reply.startswith("Invalid time format")
        assert store.get_job("Ping") is None

    async def test_add_unschedulable_cron(self, commands, store, manager):
        """Test that a 6-field expression no timer can be built from is rejected."""
        reply = await commands.handle('add Bad "*/0 * * * * *" hello')

        assert reply.startswith("Invalid time format")
        assert store.get_job("Bad") is None
        assert not manager.is_armed("Bad")

    async def test_add_missing_arguments(self, commands):
        """Test usage message when arguments are missing."""
        reply = await commands.handle("add Ping")

        assert reply.startswith("Missing information. Usage: add")


class TestUpdate:
    """Tests for the update operation."""

    @pytest.fixture
    async def job(self, commands):
        await commands.handle('add Ping "every 1 minute" ping')

    async def test_update_text_then_run(self, commands, store, dispatcher, job):
        """Test that {date} ping is sent with today's date."""
        reply = await commands.handle('update Ping text "{date} ping"')

        assert reply.startswith('Updated "text" of job "Ping".')
        assert store.get_job("Ping").use_dynamic_content is True

        assert await commands.handle("run Ping") == 'Ran job "Ping".'
        content = dispatcher.dispatch.await_args.args[0]
        assert re.fullmatch(r"\d{2}/\d{2}/\d{4} ping", content.text)

    async def test_update_time(self, commands, store, manager, job):
        """Test that a new schedule is translated and re-armed."""
        reply = await commands.handle('update Ping time "daily at 07:15"')

        assert "- Next run: " in reply
        job = store.get_job("Ping")
        assert job.schedule.cron_expression == "0 15 7 * * *"
        assert job.schedule.human_time == "daily at 07:15"
        next_run = manager.next_run_time("Ping")
        assert (next_run.hour, next_run.minute) == (7, 15)

    async def test_update_invalid_time(self, commands, store, job):
        """Test that an invalid schedule leaves the job unchanged."""
        reply = await commands.handle("update Ping time never")

        assert reply.startswith("Invalid time format")
        assert store.get_job("Ping").schedule.cron_expression == "*/1 * * * *"

    async def test_update_unschedulable_time(self, commands, store, manager, job):
        """Test that an unschedulable cron keeps the old schedule and timer."""
        reply = await commands.handle('update Ping time "0 0 */0 * * *"')

        assert reply.startswith("Invalid time format")
        assert store.get_job("Ping").schedule.cron_expression == "*/1 * * * *"
        assert manager.is_armed("Ping")

    async def test_update_api_headers(self, commands, store, job):
        """Test that JSON values keep their inner quotes."""
        reply = await commands.handle(
            'update Ping apiHeaders {"Authorization": "Bearer t"}'
        )

        assert reply.startswith('Updated "apiHeaders"')
        assert store.get_job("Ping").api.headers == {"Authorization": "Bearer t"}

    async def test_update_bad_json(self, commands, store, job):
        """Test that invalid JSON is rejected."""
        reply = await commands.handle("update Ping apiHeaders {oops}")

        assert reply == "Error: Headers must be valid JSON"
        assert store.get_job("Ping").api is None

    async def test_update_api_fields(self, commands, store, job):
        """Test method, cache TTL and fallback conversions."""
        await commands.handle("update Ping apiUrl https://api.test/x")
        await commands.handle("update Ping apiMethod post")
        await commands.handle("update Ping apiCacheTTL 600")
        await commands.handle("update Ping apiFallback {\"title\": \"n/a\"}")
        await commands.handle("update Ping apiRequired true")

        api = store.get_job("Ping").api
        assert api.url == "https://api.test/x"
        assert api.method == "POST"
        assert api.cache_ttl == 600_000
        assert api.fallback == {"title": "n/a"}
        assert api.required is True

    async def test_update_bad_cache_ttl(self, commands, job):
        """Test non-numeric cache TTLs."""
        reply = await commands.handle("update Ping apiCacheTTL soon")

        assert reply == "Error: apiCacheTTL must be a number of seconds"

    async def test_update_flags(self, commands, store, job):
        """Test boolean and urgency fields."""
        await commands.handle("update Ping onetime true")
        await commands.handle("update Ping urgency 2")
        await commands.handle("update Ping richText 1")

        job = store.get_job("Ping")
        assert job.one_time is True
        assert job.urgency == 2
        assert job.use_rich_text is True

    async def test_rename(self, commands, store, manager, job):
        """Test renaming a job."""
        reply = await commands.handle("update Ping name Pong")

        assert reply == 'Renamed job "Ping" to "Pong".'
        assert store.get_job("Pong") is not None
        assert manager.is_armed("Pong")

    async def test_unknown_field(self, commands, job):
        """Test that unknown fields list the valid ones."""
        reply = await commands.handle("update Ping color red")

        assert reply.startswith("Invalid field. Valid fields:")

    async def test_unknown_job(self, commands):
        """Test updates of unknown jobs."""
        reply = await commands.handle("update Nope text hi")

        assert reply == 'Error: Job "Nope" not found'

    async def test_image_url_prefetched(self, commands, store, http_routes, http_calls, job):
        """Test that a media URL is downloaded when set and the URL is stored."""
        http_routes[IMAGE_URL] = lambda request: httpx.Response(
            200, content=PLACEHOLDER_PNG, headers={"content-type": "image/png"}
        )

        reply = await commands.handle(f"update Ping imagePath {IMAGE_URL}")

        assert "Media downloaded and cached." in reply
        assert store.get_job("Ping").image_path == IMAGE_URL
        assert len(http_calls) == 1

    async def test_unreachable_image_url(self, commands, store, job):
        """Test that a failed prefetch still stores the URL."""
        reply = await commands.handle(f"update Ping image {IMAGE_URL}")

        assert "the placeholder will be sent" in reply
        assert store.get_job("Ping").image_path == IMAGE_URL

    async def test_attachment_appended(self, commands, store, job):
        """Test that attachments accumulate."""
        await commands.handle("update Ping attachments files/a.pdf")
        await commands.handle("update Ping attachments files/b.pdf")

        assert store.get_job("Ping").attachments == ["files/a.pdf", "files/b.pdf"]


class TestLifecycleCommands:
    """Tests for enable, disable, remove, list, info and run."""

    async def test_disable_enable(self, commands, manager):
        """Test toggling a job."""
        await commands.handle('add Ping "every 1 minute" ping')

        assert await commands.handle("disable Ping") == 'Disabled job "Ping".'
        assert not manager.is_armed("Ping")
        assert await commands.handle("disable Ping") == 'Job "Ping" is already disabled.'

        reply = await commands.handle("enable Ping")
        assert reply.startswith('Enabled job "Ping".')
        assert manager.is_armed("Ping")

    async def test_enable_unschedulable(self, commands, store, manager, make_job):
        """Test that enable reports a job that cannot be armed and keeps it off."""
        await store.add_job(make_job("Bad", cron="*/0 * * * * *", enabled=False))

        reply = await commands.handle("enable Bad")

        assert reply == "Error: Invalid schedule: '*/0 * * * * *'"
        assert store.get_job("Bad").enabled is False
        assert "(off)" in await commands.handle("list")

    async def test_remove(self, commands, store):
        """Test removing a job."""
        await commands.handle('add Ping "every 1 minute" ping')

        assert await commands.handle("remove Ping") == 'Removed job "Ping".'
        assert store.get_job("Ping") is None
        assert await commands.handle("delete Ping") == 'Error: Job "Ping" not found'

    async def test_missing_name(self, commands):
        """Test usage message when the job name is missing."""
        assert await commands.handle("enable").startswith("Missing job name")

    async def test_list(self, commands):
        """Test listing jobs."""
        assert await commands.handle("list") == "No scheduled jobs."

        await commands.handle('add Ping "every 1 minute" ping')
        await commands.handle("add Off \"daily at 08:00\" hi")
        await commands.handle("disable Off")

        reply = await commands.handle("list")

        assert "Scheduled jobs (2)" in reply
        assert "- Ping (on) | every 1 minute" in reply
        assert "- Off (off) | daily at 08:00" in reply

    async def test_info(self, commands):
        """Test job details."""
        await commands.handle('add Ping "every 1 minute" ping')

        reply = await commands.handle("info Ping")

        assert ':information_source: Job "Ping"' in reply
        assert "- Cron: */1 * * * *" in reply
        assert "- Runs: 0" in reply
        assert await commands.handle("info Nope") == 'Job "Nope" not found.'

    async def test_run_aborted(self, commands, store):
        """Test run reports a firing that did not send."""
        await commands.handle('add News "every 1 minute" news')
        await commands.handle(f"configapi News {API_URL}")
        await commands.handle("update News apiRequired true")

        reply = await commands.handle("run News")

        assert reply.startswith('Job "News" did not send (aborted)')

    async def test_help(self, commands):
        """Test that unknown and empty commands show help."""
        assert await commands.handle("frobnicate") == HELP_TEXT
        assert await commands.handle("") == HELP_TEXT
        assert await commands.handle([]) == HELP_TEXT


class TestApiCommands:
    """Tests for configapi and testapi."""

    async def test_configapi(self, commands, store):
        """Test attaching a GET call to a job."""
        await commands.handle('add News "every 1 minute" news')

        reply = await commands.handle(f"configapi News {API_URL}")

        assert reply.startswith('Configured API for job "News":')
        api = store.get_job("News").api
        assert api.url == API_URL
        assert api.method == "GET"

    async def test_testapi_is_read_only(
        self, commands, store, dispatcher, http_routes
    ):
        """Test that testapi previews without dispatching or persisting."""
        http_routes[API_URL] = _news
        await commands.handle('add News "every 1 minute" news')
        await commands.handle(f"configapi News {API_URL}")
        await commands.handle("update News apiResponsePath data")
        await commands.handle('update News template "Today: {title}"')
        await commands.handle("update News apiMediaPath image")
        with open(store.path, encoding="utf-8") as f:
            before = f.read()

        reply = await commands.handle("testapi News")

        assert reply.startswith('API call succeeded for "News":')
        assert "Message preview:\nToday: Rain tomorrow" in reply
        assert f"Media URL: {IMAGE_URL}" in reply
        dispatcher.dispatch.assert_not_awaited()
        with open(store.path, encoding="utf-8") as f:
            assert f.read() == before

    async def test_testapi_truncates(self, commands, store, http_routes):
        """Test long responses are truncated."""
        http_routes[API_URL] = lambda request: httpx.Response(200, json={"x": "y" * 5000})
        await commands.handle('add News "every 1 minute" news')
        await commands.handle(f"configapi News {API_URL}")

        reply = await commands.handle("testapi News")

        body = reply.split("Response:\n", 1)[1]
        assert len(body) == PREVIEW_LIMIT
        assert body.endswith("...")

    async def test_testapi_failure(self, commands, store):
        """Test that a failed call is reported."""
        await commands.handle('add News "every 1 minute" news')
        await store.update_job(
            "News", lambda job: setattr(job, "api", RemoteCallSpec(url=API_URL))
        )

        reply = await commands.handle("testapi News")

        assert reply.startswith('API call failed for "News":')

    async def test_testapi_without_api(self, commands):
        """Test testapi on a job without a remote call."""
        await commands.handle('add Ping "every 1 minute" ping')

        assert await commands.handle("testapi Ping") == 'Job "Ping" has no API configured.'
