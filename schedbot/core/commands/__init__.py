"""Command module for job management.

This module provides:
- ParsedCommand: Data model for parsed command input
- parse_command / parse_args: Quote-aware command parsing
- JobCommands: Handler for list/add/remove/enable/disable/update/info/run/
  configapi/testapi
"""

from schedbot.core.commands.jobs import CommandError, JobCommands
from schedbot.core.commands.parser import ParsedCommand, parse_args, parse_command

__all__ = [
    "CommandError",
    "JobCommands",
    "ParsedCommand",
    "parse_args",
    "parse_command",
]
