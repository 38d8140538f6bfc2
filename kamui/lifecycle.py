"""Session lifecycle: create, resume, rebind, and state transitions."""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .claude.base import ExternalProcess
from .claude.client import ClaudeClient
from .claude.scanner import TranscriptScanner
from .config import Settings
from .discovery import SessionDiscovery
from .errors import (
    DiscoveryFailed,
    ExternalProcessUnavailable,
    InvalidTransition,
    KamuiError,
    ProjectNotFound,
)
from .models import LifecycleState, SessionRecord, utcnow
from .storage import MetadataStore

logger = logging.getLogger(__name__)

COMPLETABLE_STATES = (LifecycleState.ACTIVE, LifecycleState.PAUSED)


class SessionManager:
    """Coordinates the metadata store with Claude transcript discovery."""

    def __init__(
        self,
        project_path: Path,
        process: ExternalProcess,
        store: Optional[MetadataStore] = None,
        discovery: Optional[SessionDiscovery] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        project_path = Path(project_path)
        if not project_path.is_dir():
            raise ProjectNotFound("project path does not exist", context={"path": str(project_path)})

        self.project_path = project_path.absolute()
        self.process = process
        self.store = store or MetadataStore(self.project_path)
        self.discovery = discovery or SessionDiscovery(TranscriptScanner(), process)
        self._clock = clock

    @classmethod
    def for_path(cls, project_path: Path, settings: Settings) -> "SessionManager":
        """Build a manager backed by the real ``claude`` binary."""
        client = ClaudeClient.from_settings(settings)
        discovery = SessionDiscovery(
            client.scanner,
            client,
            sentinel_text=settings.sentinel_text,
            settle_interval=settings.settle_interval,
            poll_interval=settings.poll_interval,
            timeout=settings.discovery_timeout,
        )
        return cls(project_path, client, discovery=discovery)

    @property
    def project_name(self) -> str:
        return self.project_path.name

    def _transcript_alive(self, record: SessionRecord) -> bool:
        if not record.external_session_id:
            return False
        try:
            return self.process.session_exists(record.external_session_id, record.working_directory)
        except (KamuiError, OSError) as e:
            logger.warning(f"Could not check Claude session {record.external_session_id}: {e}")
            return False

    def create_or_resume(self, session_id: str, interactive: bool = False) -> tuple[SessionRecord, bool]:
        """Load or create ``session_id`` and make sure it is bound to a live transcript.

        Returns the saved record and whether fresh discovery happened. With
        ``interactive`` the fresh transcript comes from a foreground Claude
        session whose monitor binds it; otherwise a throwaway message is used.
        """
        stored = self.store.exists(session_id)
        if stored:
            record = self.store.load(session_id)
            logger.info(f"Resuming session {session_id}")
        else:
            record = self.store.create(session_id, self.project_path, now=self._clock())
            logger.info(f"Created session {session_id}")

        external_id = None
        if self._transcript_alive(record):
            rediscovered = False
        else:
            rediscovered = True
            if record.external_session_id:
                logger.info(
                    f"Claude session {record.external_session_id} for {session_id} no longer exists, rediscovering"
                )
            try:
                if interactive:
                    self._bind_interactively(record)
                else:
                    external_id = self.discovery.discover_blocking(record.working_directory)
            except KamuiError as e:
                if stored and not e.is_recoverable():
                    self._record_failure(session_id, e)
                raise

        # Discovery can take a while; apply only our changes to the latest copy.
        with self.store.lock(session_id):
            if self.store.exists(session_id):
                record = self.store.load(session_id)
            now = self._clock()
            if external_id is not None:
                record.bind(external_id, now)
            record.last_accessed = now
            record.touch(now)
            self.store.save(record)
        return record, rediscovered

    def _record_failure(self, session_id: str, error: KamuiError) -> None:
        try:
            self.mark_error(session_id, f"rediscovery_failed: {error.code}")
        except KamuiError as e:
            logger.warning(f"Could not mark session {session_id} as failed: {e}")

    def _bind_interactively(self, record: SessionRecord) -> SessionRecord:
        stale_id = record.external_session_id
        # The monitor binds into the stored record, so a new one must exist first.
        with self.store.lock(record.id):
            if not self.store.exists(record.id):
                self.store.save(record)

        status = self.process.launch_foreground(record.working_directory, record.id, self.project_path)
        if status != 0:
            logger.warning(f"Claude exited with status {status} for session {record.id}")

        with self.store.lock(record.id):
            record = self.store.load(record.id)
        if not record.external_session_id or record.external_session_id == stale_id:
            raise DiscoveryFailed(
                "Claude exited before a transcript was bound",
                context={"session": record.id, "cwd": record.project.working_directory},
            )
        return record

    def get(self, session_id: str) -> SessionRecord:
        return self.store.load(session_id)

    def list_sessions(self) -> list[str]:
        return self.store.list()

    def delete(self, session_id: str) -> None:
        self.store.delete(session_id)
        logger.info(f"Deleted session {session_id}")

    def _transition(
        self,
        session_id: str,
        state: LifecycleState,
        reason: str,
        allowed_from: Optional[tuple] = None,
    ) -> SessionRecord:
        with self.store.lock(session_id):
            record = self.store.load(session_id)
            if allowed_from is not None and record.state not in allowed_from:
                raise InvalidTransition(
                    f"cannot move session '{session_id}' from {record.state.value} to {state.value}",
                    context={"session": session_id},
                )
            record.transition(state, reason, self._clock())
            self.store.save(record)
        logger.info(f"Session {session_id} is now {state.value} ({reason})")
        return record

    def complete(self, session_id: str) -> SessionRecord:
        return self._transition(session_id, LifecycleState.COMPLETED, "manually_completed", COMPLETABLE_STATES)

    def pause(self, session_id: str) -> SessionRecord:
        return self._transition(session_id, LifecycleState.PAUSED, "paused", (LifecycleState.ACTIVE,))

    def archive(self, session_id: str, reason: str = "archived") -> SessionRecord:
        return self._transition(session_id, LifecycleState.ARCHIVED, reason)

    def mark_error(self, session_id: str, reason: str) -> SessionRecord:
        return self._transition(session_id, LifecycleState.ERROR, reason)

    def resume_command(self, record: SessionRecord) -> list[str]:
        return self.process.resume_command(record.external_session_id)

    def exec_claude(self, record: SessionRecord) -> None:
        """Replace this process with ``claude`` resuming the session's transcript."""
        args = self.resume_command(record)
        try:
            os.chdir(record.working_directory)
        except OSError as e:
            raise ProjectNotFound(
                "cannot enter session working directory",
                context={"session": record.id, "path": str(record.working_directory)},
                cause=e,
            ) from e
        env = dict(os.environ, KAMUI_SESSION_ID=record.id, KAMUI_CLAUDE_SESSION_ID=record.external_session_id)
        try:
            os.execvpe(args[0], args, env)
        except OSError as e:
            raise ExternalProcessUnavailable(
                "failed to exec claude",
                context={"session": record.id, "command": " ".join(args)},
                cause=e,
            ) from e
