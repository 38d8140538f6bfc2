"""Claude Code CLI client."""

import json
import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional

from ..config import Settings
from ..errors import DiscoveryFailed, ExternalProcessUnavailable
from .base import ExternalProcess
from .scanner import TranscriptScanner

logger = logging.getLogger(__name__)


class ClaudeClient(ExternalProcess):
    """Drives the ``claude`` binary and reads its transcript directory."""

    name = "claude-code"
    display_name = "Claude Code"

    def __init__(
        self,
        claude_path: str,
        scanner: Optional[TranscriptScanner] = None,
        settings: Optional[Settings] = None,
    ):
        self.claude_path = claude_path
        self.settings = settings or Settings(claude_path=claude_path)
        self.scanner = scanner or TranscriptScanner(self.settings.projects_root)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClaudeClient":
        """Resolve the configured binary on PATH."""
        resolved = shutil.which(settings.claude_path)
        if not resolved:
            raise ExternalProcessUnavailable(
                "claude not found in PATH",
                context={"claude_path": settings.claude_path},
            )
        return cls(resolved, TranscriptScanner(settings.projects_root), settings)

    def session_exists(self, external_id: str, working_dir: Path) -> bool:
        return self.scanner.transcript_exists(working_dir, external_id)

    def resume_command(self, external_id: str) -> list[str]:
        if not external_id:
            return [self.claude_path]
        return [self.claude_path, "--resume", external_id]

    def _run(self, args: list[str], working_dir: Path, **kwargs) -> int:
        try:
            result = subprocess.run(args, cwd=working_dir, **kwargs)
        except OSError as e:
            raise ExternalProcessUnavailable(
                "failed to start claude",
                context={"claude_path": self.claude_path, "cwd": str(working_dir)},
                cause=e,
            ) from e
        return result.returncode

    def launch_with_throwaway_message(self, working_dir: Path, sentinel_text: str) -> int:
        logger.info(f"Creating fresh Claude session in {working_dir}")
        return self._run(
            [self.claude_path, "--print", sentinel_text],
            working_dir,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
        )

    def _monitor_command(self, working_dir: Path, local_session_id: str, project_path: Path) -> list[str]:
        return [
            sys.executable, "-m", "kamui.monitor",
            "--session", local_session_id,
            "--project", str(project_path),
            "--workdir", str(working_dir),
            "--projects-root", str(self.scanner.projects_root),
            "--timeout", str(self.settings.discovery_timeout),
            "--interval", str(self.settings.poll_interval),
        ]

    def launch_foreground(
        self,
        working_dir: Path,
        local_session_id: str,
        project_path: Optional[Path] = None,
    ) -> int:
        """Run ``claude`` interactively while a monitor process binds its transcript.

        The baseline snapshot is taken here, before ``claude`` starts, and
        handed to the monitor on stdin. Once ``claude`` exits the monitor gets
        ``monitor_ceiling`` seconds to finish, then is terminated.
        """
        project_path = Path(project_path or working_dir)
        try:
            baseline = self.scanner.list_transcripts(working_dir)
        except OSError as e:
            raise DiscoveryFailed(
                "failed to list transcripts before launch",
                context={"cwd": str(working_dir)},
                cause=e,
            ) from e

        try:
            monitor = subprocess.Popen(
                self._monitor_command(working_dir, local_session_id, project_path),
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise ExternalProcessUnavailable(
                "failed to start session monitor",
                context={"python": sys.executable, "session": local_session_id},
                cause=e,
            ) from e
        try:
            monitor.stdin.write(json.dumps(baseline).encode())
            monitor.stdin.close()
        except OSError as e:
            logger.warning(f"Could not hand baseline to monitor: {e}")

        env = dict(os.environ, KAMUI_SESSION_ID=local_session_id, KAMUI_ACTIVE="1")
        try:
            status = self._run([self.claude_path], working_dir, env=env)
        finally:
            self._stop_monitor(monitor)
        return status

    def _stop_monitor(self, monitor: subprocess.Popen) -> None:
        try:
            monitor.wait(timeout=self.settings.monitor_ceiling)
            logger.debug(f"Monitor exited with status {monitor.returncode}")
            return
        except subprocess.TimeoutExpired:
            logger.info("Monitor still running after ceiling, terminating")

        monitor.terminate()
        try:
            monitor.wait(timeout=2)
        except subprocess.TimeoutExpired:
            monitor.kill()
            monitor.wait()
