"""Quote-aware argument parsing for job commands."""

import re
from collections.abc import Sequence
from dataclasses import dataclass

# A double-quoted group or a run of non-space characters
ARG_PATTERN = re.compile(r'"(.*?)"|(\S+)')


def parse_args(text: str) -> list[str]:
    """Split text into arguments, keeping double-quoted groups together.

    Args:
        text: Raw argument text.

    Returns:
        List of arguments with the surrounding quotes removed.

    Examples:
        >>> parse_args('Ping "every 1 minute" hello there')
        ['Ping', 'every 1 minute', 'hello', 'there']
    """
    return [
        match.group(1) if match.group(1) is not None else match.group(2)
        for match in ARG_PATTERN.finditer(text)
    ]


def split_args(text: str, count: int) -> tuple[list[str], str]:
    """Take the first count arguments and return the untouched remainder.

    The remainder keeps its inner quoting so JSON values survive.

    Args:
        text: Raw argument text.
        count: Number of leading arguments to take.

    Returns:
        (leading arguments, remainder) tuple.

    Examples:
        >>> split_args('Ping apiHeaders {"a": "b"}', 2)
        (['Ping', 'apiHeaders'], '{"a": "b"}')
    """
    leading, rest = _take(text, count)
    return leading, unquote(rest)


def _take(text: str, count: int) -> tuple[list[str], str]:
    leading: list[str] = []
    end = 0
    for match in ARG_PATTERN.finditer(text):
        if len(leading) == count:
            break
        leading.append(match.group(1) if match.group(1) is not None else match.group(2))
        end = match.end()
    return leading, text[end:].strip()


def unquote(value: str) -> str:
    """Strip one pair of double quotes wrapping the whole value."""
    if len(value) >= 2 and value[0] == value[-1] == '"' and value.count('"') == 2:
        return value[1:-1]
    return value


@dataclass
class ParsedCommand:
    """A job command split into its operation and arguments.

    Attributes:
        operation: Operation name (lowercase normalized).
        args: Quote-aware arguments after the operation.
        text: Raw text after the operation, or None when the command was
            given as pre-split tokens (e.g. from a shell).
    """

    operation: str
    args: list[str]
    text: str | None = None

    def split(self, count: int) -> tuple[list[str], str]:
        """Take count leading arguments and the remainder as one value."""
        if self.text is not None:
            return split_args(self.text, count)
        return self.args[:count], unquote(" ".join(self.args[count:]).strip())


def parse_command(command: str | Sequence[str]) -> ParsedCommand | None:
    """Parse a job command from text or pre-split tokens.

    Args:
        command: "update Ping text hello" or ["update", "Ping", "text", "hello"].

    Returns:
        ParsedCommand, or None when the command is empty.

    Examples:
        >>> parse_command('add Ping "every 1 minute" ping').args
        ['Ping', 'every 1 minute', 'ping']

        >>> parse_command(["info", "Morning news"]).args
        ['Morning news']

        >>> parse_command("   ")
        None
    """
    if isinstance(command, str):
        leading, rest = _take(command, 1)
        if not leading:
            return None
        return ParsedCommand(
            operation=leading[0].lower(), args=parse_args(rest), text=rest
        )

    tokens = [token for token in command if token != ""]
    if not tokens:
        return None
    return ParsedCommand(operation=tokens[0].lower(), args=list(tokens[1:]))
