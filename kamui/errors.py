"""Error types for Kamui operations."""

from typing import Any, Optional


class KamuiError(Exception):
    """Base error for all Kamui failures.

    Carries a stable error code and a context dict (session id, paths, ...)
    so a failure can be diagnosed from the message alone.
    """

    code = "UNKNOWN"
    hint = "Check the error message for specific details"
    recoverable = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

    def with_context(self, key: str, value: Any) -> "KamuiError":
        """Attach a diagnostic key/value and return self for chaining."""
        self.context[key] = value
        return self

    def is_recoverable(self) -> bool:
        return self.recoverable

    def recovery_hint(self) -> str:
        return self.hint

    def __str__(self) -> str:
        text = f"[{self.code}] {self.message}"
        if self.context:
            details = ", ".join(f"{k}={v}" for k, v in self.context.items())
            text += f" ({details})"
        if self.cause is not None:
            text += f": {self.cause}"
        return text


class StoragePermission(KamuiError):
    code = "STORAGE_PERMISSION"
    hint = "Check file permissions for the .claude/kamui-sessions directory"


class StorageCorrupted(KamuiError):
    code = "STORAGE_CORRUPTED"
    hint = "Session data could not be serialized; report this as a bug"


class SessionNotFound(KamuiError):
    code = "SESSION_NOT_FOUND"
    hint = "Run 'kam list' to see available sessions"


class SessionCorrupted(KamuiError):
    code = "SESSION_CORRUPTED"
    hint = "Session data may be corrupted, consider creating a new session"


class InvalidSessionName(KamuiError):
    code = "INVALID_INPUT"
    hint = "Session names may not be empty or contain path separators"


class InvalidTransition(KamuiError):
    code = "SESSION_INVALID"
    hint = "Only active or paused sessions can be completed"


class DiscoveryFailed(KamuiError):
    code = "CLAUDE_START_FAILED"
    hint = "Make sure Claude Code can start in this directory, then retry"
    # Timeouts may succeed on a later attempt.
    recoverable = True


class TranscriptNotFound(KamuiError):
    code = "CLAUDE_SESSION_NOT_FOUND"
    hint = "The Claude transcript was moved or deleted"


class ExternalProcessUnavailable(KamuiError):
    code = "CLAUDE_NOT_FOUND"
    hint = "Install Claude Code CLI and make sure 'claude' is on PATH"


class ConfigInvalid(KamuiError):
    code = "CONFIG_INVALID"
    hint = "Check configuration file syntax and values"


class ProjectNotFound(KamuiError):
    code = "PROJECT_NOT_FOUND"
    hint = "Run kam from an existing project directory"


class TranscriptAccessFailed(KamuiError):
    code = "TRANSCRIPT_ACCESS_FAILED"
    hint = "Check permissions on the Claude projects directory (~/.claude/projects)"
