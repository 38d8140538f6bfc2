"""Removal of the transcript-forcing sentinel message from a Claude transcript."""

import json
import logging
import os
import tempfile
from pathlib import Path

from ..errors import TranscriptAccessFailed, TranscriptNotFound

logger = logging.getLogger(__name__)


def is_user_entry(data: dict) -> bool:
    """True when a transcript entry was written for the local user."""
    if data.get("type") == "user":
        return True
    msg = data.get("message")
    return isinstance(msg, dict) and msg.get("role") == "user"


def is_sentinel_entry(data: dict, sentinel_text: str) -> bool:
    """Check both observed shapes: nested message.content and flat content."""
    if not is_user_entry(data):
        return False
    msg = data.get("message")
    if isinstance(msg, dict) and msg.get("content") == sentinel_text:
        return True
    return data.get("content") == sentinel_text


def remove_sentinel(transcript_path: Path, sentinel_text: str) -> bool:
    """Strip the first user line whose content equals ``sentinel_text``.

    Every other line, parseable or not, is kept byte-for-byte and in order.
    The rewrite goes through a temp file and ``os.replace``. Returns True if
    a line was removed; when nothing matches the file is not touched.
    """
    transcript_path = Path(transcript_path)
    try:
        with open(transcript_path, "rb") as f:
            lines = f.readlines()
    except FileNotFoundError as e:
        raise TranscriptNotFound(
            "transcript file not found",
            context={"path": str(transcript_path)},
        ) from e
    except OSError as e:
        raise TranscriptAccessFailed(
            "failed to read transcript",
            context={"path": str(transcript_path)},
            cause=e,
        ) from e

    removed_at = None
    for index, line in enumerate(lines):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError):
            continue
        if isinstance(data, dict) and is_sentinel_entry(data, sentinel_text):
            removed_at = index
            break

    if removed_at is None:
        logger.debug(f"No sentinel line in {transcript_path}")
        return False

    kept = lines[:removed_at] + lines[removed_at + 1:]
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=transcript_path.parent, prefix=f".{transcript_path.stem}.", suffix=".tmp")
        with os.fdopen(fd, "wb") as f:
            f.writelines(kept)
        os.chmod(tmp_name, transcript_path.stat().st_mode & 0o777)
        os.replace(tmp_name, transcript_path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise TranscriptAccessFailed(
            "failed to rewrite transcript",
            context={"path": str(transcript_path)},
            cause=e,
        ) from e

    logger.info(f"Removed sentinel message from {transcript_path} (line {removed_at + 1})")
    return True
