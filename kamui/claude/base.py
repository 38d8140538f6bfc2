"""Capability surface of the external assistant process."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


class ExternalProcess(ABC):
    """What Kamui needs from the assistant CLI it wraps.

    Implementations own the binary and its transcript layout. Every call is
    fallible; callers decide what to retry.
    """

    name: str = ""
    display_name: str = ""

    @abstractmethod
    def session_exists(self, external_id: str, working_dir: Path) -> bool:
        """Check whether the transcript for ``external_id`` is still on disk."""
        ...

    @abstractmethod
    def launch_foreground(
        self,
        working_dir: Path,
        local_session_id: str,
        project_path: Optional[Path] = None,
    ) -> int:
        """Run an interactive session in the foreground and return its exit status.

        Binding the transcript it creates to ``local_session_id`` happens
        concurrently, outside the caller's process.
        """
        ...

    @abstractmethod
    def launch_with_throwaway_message(self, working_dir: Path, sentinel_text: str) -> int:
        """Run one non-interactive turn with ``sentinel_text`` to force a transcript."""
        ...

    @abstractmethod
    def resume_command(self, external_id: str) -> list[str]:
        """Argument vector that resumes a bound transcript interactively."""
        ...
