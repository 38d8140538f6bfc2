"""Read-only enumeration of Claude Code transcript files."""

import logging
import os
from pathlib import Path
from typing import Optional

from ..config import DEFAULT_PROJECTS_ROOT

logger = logging.getLogger(__name__)

TRANSCRIPT_SUFFIX = ".jsonl"


def canonical_path(path) -> str:
    """Resolve symlinks; fall back to the original string if that fails."""
    try:
        return os.path.realpath(os.fspath(path))
    except (OSError, ValueError, TypeError):
        return str(path)


def encode_path(path: str) -> str:
    """Encode a directory the way Claude Code names its project folders."""
    return path.replace("/", "-")


def decode_path(encoded: str) -> str:
    """Decode directory name back to original path."""
    return encoded.replace("-", "/")


class TranscriptScanner:
    """Lists the transcripts Claude Code has written for a working directory.

    Layout: ``<projects_root>/<encoded-working-directory>/<session-id>.jsonl``.
    """

    def __init__(self, projects_root: Optional[Path] = None):
        self.projects_root = Path(projects_root) if projects_root else DEFAULT_PROJECTS_ROOT

    def project_dir(self, working_directory) -> Path:
        return self.projects_root / encode_path(canonical_path(working_directory))

    def transcript_path(self, working_directory, session_id: str) -> Path:
        return self.project_dir(working_directory) / f"{session_id}{TRANSCRIPT_SUFFIX}"

    def transcript_exists(self, working_directory, session_id: str) -> bool:
        if not session_id:
            return False
        return self.transcript_path(working_directory, session_id).is_file()

    def transcript_mtime(self, working_directory, session_id: str) -> Optional[float]:
        try:
            return self.transcript_path(working_directory, session_id).stat().st_mtime
        except OSError:
            return None

    def list_transcripts(self, working_directory) -> list[str]:
        """Return transcript ids for a working directory.

        The order is whatever the directory listing gives; treat it as a set.
        A missing project directory means no transcripts yet. Other listing
        errors propagate as OSError.
        """
        project_dir = self.project_dir(working_directory)
        if not project_dir.is_dir():
            return []

        ids = []
        try:
            with os.scandir(project_dir) as entries:
                for entry in entries:
                    if entry.name.endswith(TRANSCRIPT_SUFFIX) and entry.is_file():
                        ids.append(entry.name[: -len(TRANSCRIPT_SUFFIX)])
        except FileNotFoundError:
            # Removed between the check and the listing.
            return []
        logger.debug(f"Found {len(ids)} transcripts in {project_dir}")
        return ids
