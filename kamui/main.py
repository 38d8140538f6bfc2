#!/usr/bin/env python3
"""Kamui - Session Manager for Claude Code.

Entry point for the ``kam`` CLI.
"""

import argparse
import logging
import sys
from pathlib import Path

from .errors import KamuiError

logger = logging.getLogger(__name__)

COMMANDS = ("open", "list", "info", "complete", "pause", "archive", "delete")


def _fmt(ts) -> str:
    return ts.astimezone().strftime("%Y-%m-%d %H:%M:%S") if ts else "never"


def _manager(settings, require_claude: bool = True):
    from .claude import ClaudeClient, TranscriptScanner
    from .lifecycle import SessionManager

    project_path = Path.cwd()
    if require_claude:
        return SessionManager.for_path(project_path, settings)
    client = ClaudeClient(settings.claude_path, TranscriptScanner(settings.projects_root), settings)
    return SessionManager(project_path, client)


def _load_records(manager) -> list:
    records = []
    for name in manager.list_sessions():
        try:
            records.append(manager.get(name))
        except KamuiError as e:
            logger.warning(f"Skipping session {name}: {e}")
    return records


def cmd_open(args, settings) -> int:
    """Create or resume a session, then hand the terminal to Claude."""
    manager = _manager(settings)
    interactive = not args.blocking

    if interactive and not manager.store.exists(args.name):
        print("Kamui: Starting fresh Claude session...")
    record, discovered = manager.create_or_resume(args.name, interactive=interactive)

    print(f"Kamui: Session '{record.id}' ready")
    print(f"Kamui: Project: {record.project.name}")
    print(f"Kamui: Path: {record.project.path}")
    print(f"Kamui: Created: {_fmt(record.created)}")
    if record.external_session_id:
        print(f"Kamui: Claude session: {record.external_session_id}")

    if discovered and interactive:
        # Claude already ran in the foreground to create the transcript.
        return 0

    print(f"Kamui: Launching Claude in {record.project.working_directory}...")
    manager.exec_claude(record)
    return 0


def cmd_pick(args, settings) -> int:
    """Show the session picker and open the chosen session."""
    from .app import SessionPicker

    manager = _manager(settings, require_claude=False)
    records = _load_records(manager)
    if not records:
        print(f"Kamui: No sessions found in {manager.project_path}")
        print("Kamui: Create a new session with 'kam <session-name>'")
        return 0

    result = SessionPicker(records, project_name=manager.project_name).run()
    if not result or not isinstance(result, str):
        return 0
    print(f"Kamui: Selected session '{result}'")
    return cmd_open(argparse.Namespace(name=result, blocking=args.blocking), settings)


def cmd_list(args, settings) -> int:
    manager = _manager(settings, require_claude=False)
    records = _load_records(manager)
    if not records:
        print(f"Kamui: No sessions found in {manager.project_path}")
        return 0

    print(f"Sessions in {manager.project_name}:")
    print()
    print(f"{'Name':<24} {'State':<10} {'Last accessed':<20} {'Claude session':<12}")
    print("-" * 70)
    for record in records:
        claude_id = record.external_session_id[:8] + "..." if record.external_session_id else "none"
        print(f"{record.id[:24]:<24} {record.state.value:<10} {_fmt(record.last_accessed):<20} {claude_id:<12}")
    return 0


def cmd_info(args, settings) -> int:
    manager = _manager(settings, require_claude=False)
    record = manager.get(args.name)

    print(f"Session: {record.id}")
    print(f"  State: {record.state.value}")
    print(f"  Project: {record.project.name} ({record.project.path})")
    print(f"  Working directory: {record.project.working_directory}")
    print(f"  Created: {_fmt(record.created)}")
    print(f"  Last accessed: {_fmt(record.last_accessed)}")
    print(f"  Last modified: {_fmt(record.last_modified)}")
    print(f"  Claude session: {record.external_session_id or 'none'}")
    if record.external_session_id:
        print(f"  Resume: {' '.join(manager.resume_command(record))}")
    print("  History:")
    for change in record.state_history:
        print(f"    {_fmt(change.timestamp)}  {change.state.value:<10} {change.reason}")
    return 0


def cmd_transition(args, settings) -> int:
    manager = _manager(settings, require_claude=False)
    if args.command == "complete":
        record = manager.complete(args.name)
    elif args.command == "pause":
        record = manager.pause(args.name)
    else:
        record = manager.archive(args.name)
    print(f"Kamui: Session '{record.id}' is now {record.state.value}")
    return 0


def cmd_delete(args, settings) -> int:
    manager = _manager(settings, require_claude=False)
    if not args.yes:
        answer = input(f"Delete session '{args.name}'? [y/N] ").strip().lower()
        if answer not in ("y", "yes"):
            print("Kamui: Aborted")
            return 0
    manager.delete(args.name)
    print(f"Kamui: Deleted session '{args.name}'")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage named Claude Code sessions per project",
        prog="kam",
    )
    parser.add_argument("--version", "-V", action="store_true", help="Show version")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--config", "-c", type=Path, help="Config file (default ~/.kamui/config.json)")
    parser.add_argument(
        "--blocking",
        action="store_true",
        help="Bind new sessions with a throwaway message instead of the background monitor",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    open_parser = subparsers.add_parser("open", help="Create or resume a session (default)")
    open_parser.add_argument("name", help="Session name")

    subparsers.add_parser("list", help="List sessions in this project")

    info_parser = subparsers.add_parser("info", help="Show session details")
    info_parser.add_argument("name", help="Session name")

    for command, help_text in (
        ("complete", "Mark a session completed"),
        ("pause", "Pause a session"),
        ("archive", "Archive a session"),
    ):
        sub = subparsers.add_parser(command, help=help_text)
        sub.add_argument("name", help="Session name")

    delete_parser = subparsers.add_parser("delete", help="Delete a session's metadata")
    delete_parser.add_argument("name", help="Session name")
    delete_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    return parser


def _normalize_argv(argv: list[str]) -> list[str]:
    """Let ``kam NAME`` stand for ``kam open NAME``."""
    for index, arg in enumerate(argv):
        if arg.startswith("-"):
            continue
        if index > 0 and argv[index - 1] in ("--config", "-c"):
            continue
        if arg not in COMMANDS:
            return argv[:index] + ["open"] + argv[index:]
        break
    return argv


def main(argv=None) -> int:
    """Main entry point for the kam CLI."""
    from .config import load_settings

    argv = sys.argv[1:] if argv is None else list(argv)
    args = build_parser().parse_args(_normalize_argv(argv))

    if args.version:
        from . import __version__
        print(f"kam {__version__}")
        return 0

    try:
        settings = load_settings(args.config)
    except KamuiError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if (args.verbose or settings.verbose) else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    handlers = {
        "open": cmd_open,
        "list": cmd_list,
        "info": cmd_info,
        "complete": cmd_transition,
        "pause": cmd_transition,
        "archive": cmd_transition,
        "delete": cmd_delete,
    }
    handler = handlers.get(args.command, cmd_pick)

    try:
        return handler(args, settings)
    except KamuiError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(f"Hint: {e.recovery_hint()}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print(file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
