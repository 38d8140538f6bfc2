"""Crash-safe session metadata storage.

One JSON file per session under ``<project>/.claude/kamui-sessions``. All
writes go through a temp file in the same directory followed by
``os.replace``, so a concurrent reader sees either the old file or the new
one, never a partial write.

``save`` itself takes no cross-process lock and is last-writer-wins. Callers
that load, modify and save the same session from several invocations should
wrap the cycle in ``MetadataStore.lock``.
"""

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from .errors import (
    InvalidSessionName,
    SessionCorrupted,
    SessionNotFound,
    StorageCorrupted,
    StoragePermission,
)
from .models import (
    LifecycleState,
    ProjectInfo,
    SessionMeta,
    SessionRecord,
    StateChange,
    parse_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

SESSIONS_SUBDIR = Path(".claude") / "kamui-sessions"
RECORD_SUFFIX = ".json"
LOCK_SUFFIX = ".lock"
DIR_MODE = 0o700
FILE_MODE = 0o600


def validate_session_id(session_id: str) -> None:
    """Reject ids that could escape the sessions directory or collide with temp files."""
    if not session_id or not session_id.strip():
        raise InvalidSessionName("session name must not be empty")
    if "/" in session_id or os.sep in session_id or "\x00" in session_id:
        raise InvalidSessionName("session name contains a path separator", context={"session": session_id})
    if session_id.startswith("."):
        raise InvalidSessionName("session name must not start with '.'", context={"session": session_id})


class MetadataStore:
    """Atomic read/write/delete of SessionRecords keyed by session id."""

    def __init__(self, project_path: Path, sessions_dir: Optional[Path] = None):
        self.project_path = Path(project_path)
        self.sessions_dir = Path(sessions_dir) if sessions_dir else self.project_path / SESSIONS_SUBDIR

    def _record_path(self, session_id: str) -> Path:
        validate_session_id(session_id)
        return self.sessions_dir / f"{session_id}{RECORD_SUFFIX}"

    def initialize(self) -> None:
        """Create the sessions directory, readable only by the owner."""
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
            os.chmod(self.sessions_dir, DIR_MODE)
        except OSError as e:
            raise StoragePermission(
                "failed to create sessions directory",
                context={"path": str(self.sessions_dir)},
                cause=e,
            ) from e

    def create(
        self,
        session_id: str,
        project_path: Optional[Path] = None,
        now: Optional[datetime] = None,
    ) -> SessionRecord:
        """Build a fresh Active record in memory. Nothing is written."""
        validate_session_id(session_id)
        project = Path(project_path or self.project_path)
        now = now or utcnow()
        record = SessionRecord(
            id=session_id,
            project=ProjectInfo(
                name=project.name,
                path=str(project),
                working_directory=str(project),
            ),
            created=now,
            last_accessed=now,
            last_modified=now,
            metadata=SessionMeta(
                description=f"Development session for {project.name}",
                tags=["development"],
            ),
        )
        record.state_history.append(StateChange(state=LifecycleState.ACTIVE, timestamp=now, reason="created"))
        return record

    def _stored_last_modified(self, path: Path):
        try:
            with open(path) as f:
                return parse_timestamp(json.load(f).get("lastModified"))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, IOError, ValueError, AttributeError) as e:
            logger.debug(f"Could not read previous lastModified from {path}: {e}")
            return None

    def save(self, record: SessionRecord) -> None:
        """Persist a record atomically (temp file + rename)."""
        path = self._record_path(record.id)
        self.initialize()

        previous = self._stored_last_modified(path)
        if previous and previous > record.last_modified:
            record.last_modified = previous

        try:
            payload = json.dumps(record.to_dict(), indent=2)
        except (TypeError, ValueError) as e:
            raise StorageCorrupted(
                "failed to serialize session data",
                context={"session": record.id},
                cause=e,
            ) from e

        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.sessions_dir, prefix=f".{record.id}.", suffix=".tmp")
            with os.fdopen(fd, "w") as f:
                f.write(payload)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, FILE_MODE)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoragePermission(
                "failed to save session file",
                context={"session": record.id, "path": str(path)},
                cause=e,
            ) from e
        logger.debug(f"Saved session {record.id} to {path}")

    def load(self, session_id: str) -> SessionRecord:
        path = self._record_path(session_id)
        try:
            with open(path) as f:
                raw = f.read()
        except FileNotFoundError as e:
            raise SessionNotFound(
                f"session '{session_id}' not found",
                context={"path": str(path)},
            ) from e
        except OSError as e:
            raise StoragePermission(
                "failed to read session file",
                context={"session": session_id, "path": str(path)},
                cause=e,
            ) from e

        try:
            record = SessionRecord.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise SessionCorrupted(
                f"failed to parse session '{session_id}'",
                context={"path": str(path)},
                cause=e,
            ) from e

        if record.id != session_id:
            raise SessionCorrupted(
                f"session file for '{session_id}' contains id '{record.id}'",
                context={"path": str(path)},
            )
        return record

    def exists(self, session_id: str) -> bool:
        return self._record_path(session_id).is_file()

    def list(self) -> list[str]:
        """Return the ids of all stored sessions, sorted by name."""
        if not self.sessions_dir.exists():
            return []
        try:
            entries = list(self.sessions_dir.iterdir())
        except OSError as e:
            raise StoragePermission(
                "failed to read sessions directory",
                context={"path": str(self.sessions_dir)},
                cause=e,
            ) from e

        ids = []
        for entry in entries:
            if entry.name.startswith(".") or entry.suffix != RECORD_SUFFIX:
                continue
            if entry.is_file():
                ids.append(entry.stem)
        return sorted(ids)

    def delete(self, session_id: str) -> None:
        path = self._record_path(session_id)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise SessionNotFound(
                f"session '{session_id}' not found",
                context={"path": str(path)},
            ) from e
        except OSError as e:
            raise StoragePermission(
                "failed to delete session file",
                context={"session": session_id, "path": str(path)},
                cause=e,
            ) from e

        lock_path = self.sessions_dir / f"{session_id}{LOCK_SUFFIX}"
        try:
            lock_path.unlink()
        except FileNotFoundError:
            pass
        logger.debug(f"Deleted session {session_id}")

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        """Hold an exclusive advisory lock for a session's load-modify-save cycle."""
        validate_session_id(session_id)
        self.initialize()
        lock_path = self.sessions_dir / f"{session_id}{LOCK_SUFFIX}"
        try:
            lock_fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, FILE_MODE)
        except OSError as e:
            raise StoragePermission(
                "failed to open session lock",
                context={"session": session_id, "path": str(lock_path)},
                cause=e,
            ) from e
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(lock_fd, fcntl.LOCK_UN)
            os.close(lock_fd)
