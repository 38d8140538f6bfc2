"""Shared fixtures: a fake Claude CLI that writes transcripts into a temp projects root."""

import json
import uuid
from pathlib import Path

import pytest

from kamui.claude.base import ExternalProcess
from kamui.claude.scanner import TranscriptScanner
from kamui.discovery import SessionDiscovery
from kamui.lifecycle import SessionManager
from kamui.storage import MetadataStore


def user_line(content, nested: bool = True) -> str:
    if nested:
        return json.dumps({"type": "user", "message": {"role": "user", "content": content}})
    return json.dumps({"type": "user", "content": content})


def assistant_line(text: str) -> str:
    return json.dumps({
        "type": "assistant",
        "message": {"role": "assistant", "content": [{"type": "text", "text": text}]},
    })


class FakeClaude(ExternalProcess):
    """Stands in for the claude binary by creating transcript files directly."""

    name = "fake"

    def __init__(self, scanner: TranscriptScanner, exit_status: int = 0, create: bool = True):
        self.scanner = scanner
        self.exit_status = exit_status
        self.create = create
        self.created: list[str] = []
        self.throwaway_calls = 0
        self.foreground_calls = 0
        self.on_foreground = None
        self.on_throwaway = None

    def write_transcript(self, working_dir, lines: list[str], session_id: str = "") -> str:
        session_id = session_id or str(uuid.uuid4())
        path = self.scanner.transcript_path(working_dir, session_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(line + "\n" for line in lines))
        self.created.append(session_id)
        return session_id

    def session_exists(self, external_id, working_dir) -> bool:
        return self.scanner.transcript_exists(working_dir, external_id)

    def launch_with_throwaway_message(self, working_dir, sentinel_text) -> int:
        self.throwaway_calls += 1
        if self.on_throwaway:
            self.on_throwaway(working_dir)
        if self.create:
            self.write_transcript(working_dir, [user_line(sentinel_text), assistant_line("Hello!")])
        return self.exit_status

    def launch_foreground(self, working_dir, local_session_id, project_path=None) -> int:
        self.foreground_calls += 1
        if self.on_foreground:
            self.on_foreground(working_dir, local_session_id, project_path)
        return self.exit_status

    def resume_command(self, external_id):
        return ["claude", "--resume", external_id] if external_id else ["claude"]


@pytest.fixture
def projects_root(tmp_path) -> Path:
    root = tmp_path / "claude-projects"
    root.mkdir()
    return root


@pytest.fixture
def project_dir(tmp_path) -> Path:
    project = tmp_path / "webapp"
    project.mkdir()
    return project


@pytest.fixture
def scanner(projects_root) -> TranscriptScanner:
    return TranscriptScanner(projects_root)


@pytest.fixture
def fake_claude(scanner) -> FakeClaude:
    return FakeClaude(scanner)


@pytest.fixture
def discovery(scanner, fake_claude) -> SessionDiscovery:
    return SessionDiscovery(scanner, fake_claude, settle_interval=0, poll_interval=0.01, timeout=1.0)


@pytest.fixture
def store(project_dir) -> MetadataStore:
    return MetadataStore(project_dir)


@pytest.fixture
def manager(project_dir, fake_claude, store, discovery) -> SessionManager:
    return SessionManager(project_dir, fake_claude, store=store, discovery=discovery)
