"""Tests for transcript discovery."""

import os
import threading
from unittest import mock

import pytest

from kamui.discovery import SessionDiscovery, new_transcripts
from kamui.errors import DiscoveryFailed, ExternalProcessUnavailable

from conftest import FakeClaude, assistant_line, user_line


class TestNewTranscripts:
    def test_difference_keeps_after_order(self):
        assert new_transcripts(["a", "b"], ["c", "a", "d", "b"]) == ["c", "d"]

    def test_nothing_new(self):
        assert new_transcripts(["a", "b"], ["b", "a"]) == []


class TestBlockingDiscovery:
    """Throwaway-message discovery against the fake Claude CLI."""

    def test_returns_the_new_transcript(self, discovery, fake_claude, project_dir):
        fake_claude.write_transcript(project_dir, [user_line("old")], session_id="a")
        fake_claude.write_transcript(project_dir, [user_line("old")], session_id="b")

        session_id = discovery.discover_blocking(project_dir)

        assert session_id not in ("a", "b")
        assert session_id == fake_claude.created[-1]
        assert fake_claude.throwaway_calls == 1

    def test_sentinel_is_stripped(self, discovery, scanner, project_dir):
        session_id = discovery.discover_blocking(project_dir)

        lines = scanner.transcript_path(project_dir, session_id).read_text().splitlines()
        assert lines == [assistant_line("Hello!")]

    def test_no_new_transcript(self, scanner, project_dir):
        fake = FakeClaude(scanner, create=False)
        discovery = SessionDiscovery(scanner, fake, settle_interval=0)

        with pytest.raises(DiscoveryFailed) as exc_info:
            discovery.discover_blocking(project_dir)

        assert "no new transcript created" in str(exc_info.value)
        assert exc_info.value.is_recoverable()

    def test_nonzero_exit(self, scanner, project_dir):
        discovery = SessionDiscovery(scanner, FakeClaude(scanner, exit_status=1), settle_interval=0)

        with pytest.raises(DiscoveryFailed) as exc_info:
            discovery.discover_blocking(project_dir)
        assert "status 1" in str(exc_info.value)

    def test_without_process(self, scanner, project_dir):
        with pytest.raises(ExternalProcessUnavailable):
            SessionDiscovery(scanner).discover_blocking(project_dir)

    def test_settle_interval_is_slept(self, scanner, fake_claude, project_dir):
        sleeps = []
        discovery = SessionDiscovery(scanner, fake_claude, settle_interval=2.5, sleep=sleeps.append)

        discovery.discover_blocking(project_dir)

        assert sleeps == [2.5]

    def test_strip_failure_is_not_fatal(self, discovery, fake_claude, project_dir):
        """The id is returned even if the transcript cannot be rewritten."""
        with mock.patch("kamui.discovery.remove_sentinel", side_effect=OSError("read-only")):
            session_id = discovery.discover_blocking(project_dir)
        assert session_id == fake_claude.created[-1]

    def test_unlistable_directory(self, discovery, scanner, fake_claude, project_dir):
        """Blocking mode does not retry scans; the failure names the directory."""
        with mock.patch.object(scanner, "list_transcripts", side_effect=PermissionError(13, "Permission denied")):
            with pytest.raises(DiscoveryFailed) as exc_info:
                discovery.discover_blocking(project_dir)

        assert exc_info.value.context["cwd"] == str(project_dir)
        assert isinstance(exc_info.value.cause, PermissionError)
        assert fake_claude.throwaway_calls == 0


class TestChoose:
    """Ambiguity between several new transcripts."""

    def test_newest_mtime_wins(self, discovery, fake_claude, scanner, project_dir, caplog):
        older = fake_claude.write_transcript(project_dir, [user_line("x")], session_id="older")
        newer = fake_claude.write_transcript(project_dir, [user_line("y")], session_id="newer")
        os.utime(scanner.transcript_path(project_dir, older), (1000, 1000))
        os.utime(scanner.transcript_path(project_dir, newer), (2000, 2000))

        with caplog.at_level("WARNING"):
            assert discovery.choose(project_dir, ["older", "newer"]) == "newer"
        assert "2 new transcripts" in caplog.text

    def test_equal_mtimes_fall_back_to_order(self, discovery, fake_claude, scanner, project_dir):
        for sid in ("first", "second"):
            fake_claude.write_transcript(project_dir, [user_line(sid)], session_id=sid)
            os.utime(scanner.transcript_path(project_dir, sid), (1000, 1000))

        assert discovery.choose(project_dir, ["second", "first"]) == "second"


class TestPolling:
    """poll_for_new_transcript as used by the monitor."""

    def test_finds_transcript_written_later(self, discovery, fake_claude, project_dir):
        before = discovery.snapshot(project_dir)
        timer = threading.Timer(0.05, fake_claude.write_transcript, args=(project_dir, [user_line("hi")], "late"))
        timer.start()
        try:
            assert discovery.poll_for_new_transcript(project_dir, before, timeout=2.0) == "late"
        finally:
            timer.cancel()

    def test_timeout(self, discovery, project_dir):
        with pytest.raises(DiscoveryFailed) as exc_info:
            discovery.poll_for_new_transcript(project_dir, [], timeout=0.05)
        assert "timeout" in str(exc_info.value)

    def test_cancelled_before_start(self, discovery, project_dir):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(DiscoveryFailed) as exc_info:
            discovery.poll_for_new_transcript(project_dir, [], timeout=5.0, cancel=cancel)
        assert "cancelled" in str(exc_info.value)

    def test_cancelled_while_waiting(self, discovery, project_dir):
        cancel = threading.Event()
        timer = threading.Timer(0.05, cancel.set)
        timer.start()
        try:
            with pytest.raises(DiscoveryFailed) as exc_info:
                discovery.poll_for_new_transcript(project_dir, [], timeout=5.0, interval=1.0, cancel=cancel)
        finally:
            timer.cancel()
        assert "cancelled" in str(exc_info.value)

    def test_scan_errors_are_retried(self, scanner, project_dir):
        ticks = iter(range(100))
        discovery = SessionDiscovery(scanner, sleep=lambda _: None, clock=lambda: next(ticks))

        with mock.patch.object(scanner, "list_transcripts", side_effect=[OSError("EIO"), ["a"], ["a", "b"]]):
            assert discovery.poll_for_new_transcript(project_dir, ["a"], timeout=50, interval=1) == "b"

    def test_uses_injected_clock_for_deadline(self, scanner, project_dir):
        now = [0.0]
        sleeps = []

        def sleep(seconds):
            sleeps.append(seconds)
            now[0] += seconds

        discovery = SessionDiscovery(scanner, sleep=sleep, clock=lambda: now[0])

        with pytest.raises(DiscoveryFailed):
            discovery.poll_for_new_transcript(project_dir, [], timeout=1.0, interval=0.375)
        assert sleeps == [0.375, 0.375, 0.25]
