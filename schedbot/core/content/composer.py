# schedbot/core/content/composer.py
"""Placeholder substitution for message templates.

Replaces {name} tokens with built-in values (date, time, random numbers,
uuids), static context values and fields of remote data. Unknown tokens
are left in the output untouched so a template written before its data
source existed still renders.
"""

import json
import logging
import random
import re
import time
import uuid
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)

# {name}, {main.temp}, {weather[0].description}, {random 1-10}
TOKEN_PATTERN = re.compile(r"\{([^{}]+)\}")
RANDOM_PATTERN = re.compile(r"^random\s*(-?\d+)\s*-\s*(-?\d+)$")
INDEX_PATTERN = re.compile(r"\[(\d+)\]")

API_PREFIX = "api."

_MISSING = object()


def build_context(now: datetime | None = None) -> dict[str, str]:
    """Built-in placeholder values for one composition.

    Args:
        now: Time to render, already in the scheduler timezone (defaults
            to the local current time).

    Returns:
        Mapping of placeholder name to rendered value.
    """
    now = now or datetime.now().astimezone()
    return {
        "date": now.strftime("%d/%m/%Y"),
        "time": now.strftime("%H:%M:%S"),
        "datetime": now.strftime("%d/%m/%Y %H:%M:%S"),
        "day": now.strftime("%A"),
        "dayOfWeek": now.strftime("%A"),
        "dayOfMonth": str(now.day),
        "month": now.strftime("%m"),
        "monthName": now.strftime("%B"),
        "year": now.strftime("%Y"),
        "hour": now.strftime("%H"),
        "minute": now.strftime("%M"),
        "second": now.strftime("%S"),
        "timestamp": str(int(time.time() * 1000)),
    }


def normalize_path(path: str) -> list[str]:
    """Split a dotted path, turning bracket indexes into segments.

    Examples:
        >>> normalize_path("weather[0].description")
        ['weather', '0', 'description']
    """
    return [segment for segment in INDEX_PATTERN.sub(r".\1", path).split(".") if segment]


def lookup(data: Any, path: str) -> Any:
    """Walk a dotted path through nested dicts and lists.

    Args:
        data: Root value.
        path: Dotted path, bracket indexes allowed.

    Returns:
        The value at the path, or the module-private missing sentinel.
    """
    current = data
    for segment in normalize_path(path):
        if isinstance(current, dict):
            if segment not in current:
                return _MISSING
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def is_missing(value: Any) -> bool:
    """Whether lookup() found nothing."""
    return value is _MISSING


def render_value(value: Any) -> str:
    """Render a looked-up value as template text."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or value is None or isinstance(value, dict | list):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _resolve(
    token: str, context: dict[str, Any], remote_data: Any
) -> Any:
    key = token.strip()
    if not key:
        return _MISSING

    if key == "uuid":
        return str(uuid.uuid4())

    match = RANDOM_PATTERN.match(key)
    if match:
        low, high = int(match.group(1)), int(match.group(2))
        if low > high:
            low, high = high, low
        return str(random.randint(low, high))

    if remote_data is not None:
        if key.startswith(API_PREFIX):
            value = lookup(remote_data, key[len(API_PREFIX) :])
            if not is_missing(value):
                return value
        value = lookup(remote_data, key)
        if not is_missing(value):
            return value

    return lookup(context, key)


def compose(
    template: str | None,
    context: dict[str, Any] | None = None,
    remote_data: Any = None,
    now: datetime | None = None,
) -> str:
    """Substitute placeholders in a template.

    Lookup order for {name}: uuid / random built-ins, remote data fields
    (also reachable as {api.<path>}), static context, date/time built-ins.

    Args:
        template: Text containing {placeholders}.
        context: Static values overlaid on the built-ins.
        remote_data: Data from a remote call, overlaid on everything else.
        now: Time used for the date/time built-ins.

    Returns:
        The rendered text. Never raises; unresolved tokens stay verbatim.

    Examples:
        >>> compose("Hi {who}", {"who": "team"})
        'Hi team'
        >>> compose("{unknown} stays")
        '{unknown} stays'
    """
    if not template:
        return ""

    values: dict[str, Any] = build_context(now)
    if context:
        values.update(context)

    def _substitute(match: re.Match[str]) -> str:
        try:
            value = _resolve(match.group(1), values, remote_data)
        except Exception as e:
            logger.warning("Failed to resolve placeholder %s: %s", match.group(0), e)
            return match.group(0)
        if is_missing(value):
            return match.group(0)
        return render_value(value)

    return TOKEN_PATTERN.sub(_substitute, template)
