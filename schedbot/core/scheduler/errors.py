# schedbot/core/scheduler/errors.py
"""Error kinds raised by the scheduled-job engine."""


class SchedulerError(Exception):
    """Base class for all scheduler errors."""


class InvalidSchedule(SchedulerError):
    """A time phrase or expression could not be turned into a schedule."""

    def __init__(self, value: str | None) -> None:
        self.value = value
        super().__init__(f"Invalid schedule: {value!r}")


class MediaUnavailable(SchedulerError):
    """A media reference could not be resolved to a local file."""

    def __init__(self, reference: str, reason: str = "") -> None:
        self.reference = reference
        self.reason = reason
        message = f"Media unavailable: {reference}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class RemoteCallFailed(SchedulerError):
    """A remote data call failed and no fallback was available."""

    def __init__(self, url: str, reason: str, required: bool = False) -> None:
        self.url = url
        self.reason = reason
        self.required = required
        super().__init__(f"Remote call to {url} failed: {reason}")


class PathNotFound(RemoteCallFailed):
    """A response-extraction path did not exist in the response."""

    def __init__(self, url: str, path: str, required: bool = False) -> None:
        self.path = path
        super().__init__(url, f"path not found: {path}", required=required)


class StoreCorrupt(SchedulerError):
    """The persisted job-store document is malformed."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Job store {path} is corrupt: {reason}")


class JobNotFound(SchedulerError):
    """No job with the given name exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f'Job "{name}" not found')


class DuplicateJobName(SchedulerError):
    """A job with the given name already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f'Job "{name}" already exists')


class DispatchFailed(SchedulerError):
    """The dispatch callback reported a failure."""

    def __init__(self, destination: str | None, reason: str) -> None:
        self.destination = destination
        self.reason = reason
        super().__init__(f"Dispatch to {destination} failed: {reason}")
