"""Claude Code integration: transcript scanning, sanitizing, and the CLI client."""

from .base import ExternalProcess
from .client import ClaudeClient
from .sanitizer import remove_sentinel
from .scanner import TranscriptScanner, canonical_path, decode_path, encode_path

__all__ = [
    "ExternalProcess",
    "ClaudeClient",
    "TranscriptScanner",
    "remove_sentinel",
    "canonical_path",
    "decode_path",
    "encode_path",
]
