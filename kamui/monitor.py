"""Background monitor that binds an interactive Claude session's transcript.

Spawned by ``ClaudeClient.launch_foreground`` as ``python -m kamui.monitor``
with the pre-launch transcript snapshot (a JSON list) on stdin. It polls the
transcript directory until a new transcript appears, then records its id on
the local session. SIGTERM cancels the poll.
"""

import argparse
import json
import logging
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .claude.scanner import TranscriptScanner
from .discovery import SessionDiscovery
from .errors import KamuiError
from .storage import MetadataStore

logger = logging.getLogger(__name__)

MONITOR_LOG_NAME = "monitor.log"
MONITOR_LOG_MAX_BYTES = 256 * 1024
MONITOR_LOG_BACKUPS = 2


def monitor_log_handler(sessions_dir: Path) -> RotatingFileHandler:
    """Size-capped log file shared by every monitor run in a project."""
    return RotatingFileHandler(
        sessions_dir / MONITOR_LOG_NAME,
        maxBytes=MONITOR_LOG_MAX_BYTES,
        backupCount=MONITOR_LOG_BACKUPS,
    )


def bind_transcript(store: MetadataStore, session_id: str, external_id: str) -> None:
    """Persist a discovered transcript id under the session lock."""
    with store.lock(session_id):
        record = store.load(session_id)
        record.bind(external_id)
        record.touch()
        store.save(record)
    logger.info(f"Bound session {session_id} to Claude session {external_id}")


def run_monitor(
    store: MetadataStore,
    discovery: SessionDiscovery,
    session_id: str,
    working_dir: Path,
    baseline: list[str],
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> Optional[str]:
    """Poll for the new transcript and bind it. Returns the id, or None on failure."""
    try:
        external_id = discovery.poll_for_new_transcript(working_dir, baseline, timeout=timeout, cancel=cancel)
    except KamuiError as e:
        logger.warning(f"Monitor for session {session_id} gave up: {e}")
        return None

    try:
        bind_transcript(store, session_id, external_id)
    except KamuiError as e:
        logger.error(f"Could not bind {external_id} to session {session_id}: {e}")
        return None
    return external_id


def read_baseline(stream) -> list[str]:
    raw = stream.read()
    if not raw.strip():
        return []
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("baseline must be a JSON list")
    return [str(item) for item in data]


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="kamui.monitor", description="Bind a Claude transcript to a Kamui session")
    parser.add_argument("--session", required=True, help="Local session name")
    parser.add_argument("--project", required=True, help="Project path owning the session store")
    parser.add_argument("--workdir", required=True, help="Directory Claude runs in")
    parser.add_argument("--projects-root", help="Claude projects directory")
    parser.add_argument("--timeout", type=float, default=300.0, help="Seconds to wait for a transcript")
    parser.add_argument("--interval", type=float, default=0.5, help="Seconds between scans")
    args = parser.parse_args(argv)

    store = MetadataStore(Path(args.project))
    store.initialize()
    logging.basicConfig(
        handlers=[monitor_log_handler(store.sessions_dir)],
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        baseline = read_baseline(sys.stdin)
    except (json.JSONDecodeError, ValueError) as e:
        logger.error(f"Invalid baseline on stdin: {e}")
        return 2

    cancel = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: cancel.set())

    scanner = TranscriptScanner(Path(args.projects_root) if args.projects_root else None)
    discovery = SessionDiscovery(scanner, poll_interval=args.interval, timeout=args.timeout)
    logger.info(f"Monitoring {args.workdir} for session {args.session} ({len(baseline)} existing transcripts)")

    external_id = run_monitor(store, discovery, args.session, Path(args.workdir), baseline, cancel=cancel)
    return 0 if external_id else 1


if __name__ == "__main__":
    sys.exit(main())
