"""Discovery of the transcript a just-launched Claude process created.

Both modes diff two snapshots of the transcript directory: one taken before
the external process starts and one (or many, when polling) taken after.
Nothing here writes session metadata; binding the returned id is the
caller's job.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from .claude.base import ExternalProcess
from .claude.sanitizer import remove_sentinel
from .claude.scanner import TranscriptScanner
from .config import DEFAULT_SENTINEL
from .errors import DiscoveryFailed, ExternalProcessUnavailable, KamuiError

logger = logging.getLogger(__name__)


def new_transcripts(before, after: list[str]) -> list[str]:
    """Ids present in ``after`` but not ``before``, in ``after``'s order."""
    seen = set(before)
    return [sid for sid in after if sid not in seen]


class SessionDiscovery:
    """Snapshot, run, re-snapshot, diff."""

    def __init__(
        self,
        scanner: TranscriptScanner,
        process: Optional[ExternalProcess] = None,
        sentinel_text: str = DEFAULT_SENTINEL,
        settle_interval: float = 1.0,
        poll_interval: float = 0.5,
        timeout: float = 300.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.scanner = scanner
        self.process = process
        self.sentinel_text = sentinel_text
        self.settle_interval = settle_interval
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    def snapshot(self, working_dir: Path) -> list[str]:
        return self.scanner.list_transcripts(working_dir)

    def _checked_snapshot(self, working_dir: Path, stage: str) -> list[str]:
        try:
            return self.snapshot(working_dir)
        except OSError as e:
            raise DiscoveryFailed(
                f"failed to list transcripts {stage} launch",
                context={"cwd": str(working_dir), "dir": str(self.scanner.project_dir(working_dir))},
                cause=e,
            ) from e

    def choose(self, working_dir: Path, candidates: list[str]) -> str:
        """Pick one id when several transcripts appeared at once.

        The newest file wins; equal or unknown mtimes fall back to listing
        order. Concurrent Claude activity in the same directory can still
        fool this, so the ambiguity is always logged.
        """
        if len(candidates) == 1:
            return candidates[0]

        def newest_first(indexed):
            index, sid = indexed
            mtime = self.scanner.transcript_mtime(working_dir, sid)
            return (-(mtime if mtime is not None else float("-inf")), index)

        chosen = sorted(enumerate(candidates), key=newest_first)[0][1]
        logger.warning(
            f"{len(candidates)} new transcripts appeared in {working_dir}: "
            f"{', '.join(candidates)}; binding newest ({chosen})"
        )
        return chosen

    def discover_blocking(self, working_dir: Path) -> str:
        """Force a transcript with a throwaway message and return its id.

        The sentinel line is stripped from the transcript before returning;
        a failure to strip it is logged and otherwise ignored.
        """
        working_dir = Path(working_dir)
        if self.process is None:
            raise ExternalProcessUnavailable("no external process configured for discovery")
        before = self._checked_snapshot(working_dir, "before")
        logger.info(f"Found {len(before)} existing Claude sessions before starting")

        status = self.process.launch_with_throwaway_message(working_dir, self.sentinel_text)
        if status != 0:
            raise DiscoveryFailed(
                f"claude exited with status {status}",
                context={"cwd": str(working_dir)},
            )

        # Let Claude finish flushing its transcript.
        self._sleep(self.settle_interval)

        after = self._checked_snapshot(working_dir, "after")
        candidates = new_transcripts(before, after)
        if not candidates:
            raise DiscoveryFailed(
                "no new transcript created",
                context={"cwd": str(working_dir), "transcripts": len(after)},
            )

        session_id = self.choose(working_dir, candidates)
        self.strip_sentinel(working_dir, session_id)
        return session_id

    def strip_sentinel(self, working_dir: Path, session_id: str) -> bool:
        path = self.scanner.transcript_path(working_dir, session_id)
        try:
            return remove_sentinel(path, self.sentinel_text)
        except (KamuiError, OSError) as e:
            logger.warning(f"Could not clean up init message in {path}: {e}")
            return False

    def poll_for_new_transcript(
        self,
        working_dir: Path,
        before: list[str],
        timeout: Optional[float] = None,
        interval: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """Watch for a transcript not in ``before`` until timeout or cancellation.

        Scan errors are treated as transient and retried on the next tick.
        """
        working_dir = Path(working_dir)
        timeout = self.timeout if timeout is None else timeout
        interval = self.poll_interval if interval is None else interval
        deadline = self._clock() + timeout
        attempts = 0

        while True:
            if cancel is not None and cancel.is_set():
                raise DiscoveryFailed("cancelled", context={"cwd": str(working_dir), "attempts": attempts})

            attempts += 1
            try:
                candidates = new_transcripts(before, self.snapshot(working_dir))
            except OSError as e:
                logger.debug(f"Transcript scan failed (attempt {attempts}), retrying: {e}")
                candidates = []
            if candidates:
                return self.choose(working_dir, candidates)

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise DiscoveryFailed(
                    "timeout",
                    context={"cwd": str(working_dir), "timeout": timeout, "attempts": attempts},
                )
            wait = min(interval, remaining)
            if cancel is not None:
                if cancel.wait(wait):
                    raise DiscoveryFailed("cancelled", context={"cwd": str(working_dir), "attempts": attempts})
            else:
                self._sleep(wait)
