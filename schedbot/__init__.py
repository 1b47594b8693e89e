"""Persistent scheduled-message engine for chat bots."""

__version__ = "0.1.0"
