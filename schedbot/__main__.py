"""Entry point for python -m schedbot."""

from schedbot.cli import app

app()
