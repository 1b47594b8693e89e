"""Tests for command parsing functionality."""

from schedbot.core.commands.parser import (
    ParsedCommand,
    parse_args,
    parse_command,
    split_args,
    unquote,
)


class TestParser:
    """Test suite for command parser."""

    def test_parse_command_basic(self) -> None:
        """Test basic command parsing with arguments."""
        result = parse_command('add Ping "every 1 minute" ping')
        assert result is not None
        assert result.operation == "add"
        assert result.args == ["Ping", "every 1 minute", "ping"]

    def test_parse_command_no_args(self) -> None:
        """Test command without arguments."""
        result = parse_command("list")
        assert result is not None
        assert result.operation == "list"
        assert result.args == []

    def test_parse_command_empty(self) -> None:
        """Test that blank input returns None."""
        assert parse_command("") is None
        assert parse_command("   ") is None
        assert parse_command([]) is None
        assert parse_command(["", ""]) is None

    def test_parse_command_uppercase(self) -> None:
        """Test that operation names are normalized to lowercase."""
        result = parse_command("INFO Ping")
        assert result is not None
        assert result.operation == "info"
        assert result.args == ["Ping"]

    def test_parse_command_tokens(self) -> None:
        """Test pre-split tokens are taken as they are."""
        result = parse_command(["update", "Morning news", "text", "hello there"])
        assert result == ParsedCommand(
            operation="update", args=["Morning news", "text", "hello there"]
        )

    def test_parse_command_vietnamese(self) -> None:
        """Test non-ASCII arguments."""
        result = parse_command('add "Chào buổi sáng" "mỗi ngày lúc 08:00" Xin chào')
        assert result is not None
        assert result.args[:2] == ["Chào buổi sáng", "mỗi ngày lúc 08:00"]


class TestSplit:
    """Test suite for leading-argument splitting."""

    def test_split_keeps_remainder_verbatim(self) -> None:
        """Test that JSON remainders keep their quotes."""
        leading, rest = split_args('Ping apiHeaders {"a": "b"}', 2)
        assert leading == ["Ping", "apiHeaders"]
        assert rest == '{"a": "b"}'

    def test_split_unquotes_single_value(self) -> None:
        """Test that one quoted remainder loses its quotes."""
        _, rest = split_args('Ping text "{date} ping"', 2)
        assert rest == "{date} ping"

    def test_split_quoted_leading(self) -> None:
        """Test quoted leading arguments."""
        leading, rest = split_args('"Morning news" "daily at 08:00" Good morning', 2)
        assert leading == ["Morning news", "daily at 08:00"]
        assert rest == "Good morning"

    def test_split_short(self) -> None:
        """Test fewer arguments than requested."""
        assert split_args("Ping", 2) == (["Ping"], "")

    def test_parsed_split_from_tokens(self) -> None:
        """Test splitting a token-based command."""
        parsed = parse_command(["add", "Ping", "every 1 minute", "hello", "world"])
        assert parsed.split(2) == (["Ping", "every 1 minute"], "hello world")

    def test_parse_args(self) -> None:
        """Test quote-aware splitting."""
        assert parse_args('a "b c" d') == ["a", "b c", "d"]
        assert parse_args('""') == [""]

    def test_unquote(self) -> None:
        """Test that only a single wrapping pair is removed."""
        assert unquote('"hello"') == "hello"
        assert unquote('"a" and "b"') == '"a" and "b"'
        assert unquote("plain") == "plain"
        assert unquote('"') == '"'
