"""Tests for the background transcript monitor."""

import io
import threading
from logging.handlers import RotatingFileHandler

import pytest

from kamui.monitor import MONITOR_LOG_NAME, bind_transcript, monitor_log_handler, read_baseline, run_monitor

from conftest import user_line


class TestReadBaseline:
    def test_json_list(self):
        assert read_baseline(io.StringIO('["a", "b"]')) == ["a", "b"]

    def test_empty_input(self):
        assert read_baseline(io.StringIO("")) == []

    def test_rejects_non_list(self):
        with pytest.raises(ValueError):
            read_baseline(io.StringIO('{"a": 1}'))


class TestRunMonitor:
    """Polling plus binding, as run in the monitor subprocess."""

    def test_binds_new_transcript(self, store, discovery, fake_claude, project_dir):
        store.save(store.create("Tasks"))
        fake_claude.write_transcript(project_dir, [user_line("old")], session_id="old")
        baseline = discovery.snapshot(project_dir)
        fake_claude.write_transcript(project_dir, [user_line("new")], session_id="new")

        assert run_monitor(store, discovery, "Tasks", project_dir, baseline) == "new"

        record = store.load("Tasks")
        assert record.external_session_id == "new"
        assert record.claude.last_interaction is not None

    def test_timeout_leaves_record_untouched(self, store, discovery, project_dir):
        store.save(store.create("Tasks"))
        before = store.load("Tasks")

        assert run_monitor(store, discovery, "Tasks", project_dir, [], timeout=0.05) is None
        assert store.load("Tasks") == before

    def test_cancel(self, store, discovery, project_dir):
        store.save(store.create("Tasks"))
        cancel = threading.Event()
        cancel.set()

        assert run_monitor(store, discovery, "Tasks", project_dir, [], cancel=cancel) is None

    def test_missing_session(self, store, discovery, fake_claude, project_dir):
        """A transcript found for a deleted session is not bound anywhere."""
        fake_claude.write_transcript(project_dir, [user_line("new")], session_id="new")

        assert run_monitor(store, discovery, "Tasks", project_dir, []) is None
        assert not store.exists("Tasks")


class TestBindTranscript:
    def test_bind_preserves_other_fields(self, store):
        record = store.create("Tasks")
        record.metadata.tags.append("api")
        store.save(record)

        bind_transcript(store, "Tasks", "abc")

        loaded = store.load("Tasks")
        assert loaded.external_session_id == "abc"
        assert loaded.metadata.tags == ["development", "api"]
        assert len(loaded.state_history) == 1


class TestMonitorLog:
    def test_log_is_size_capped(self, store):
        store.initialize()
        handler = monitor_log_handler(store.sessions_dir)
        try:
            assert isinstance(handler, RotatingFileHandler)
            assert handler.baseFilename == str(store.sessions_dir / MONITOR_LOG_NAME)
            assert handler.maxBytes > 0
            assert handler.backupCount >= 1
        finally:
            handler.close()

    def test_rotated_logs_are_not_sessions(self, store):
        store.save(store.create("Tasks"))
        (store.sessions_dir / MONITOR_LOG_NAME).write_text("log\n")
        (store.sessions_dir / f"{MONITOR_LOG_NAME}.1").write_text("old\n")

        assert store.list() == ["Tasks"]
