"""Kamui - named, per-project Claude Code sessions."""

__version__ = "0.3.0"
