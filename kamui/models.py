"""Session record model and its JSON representation."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

FORMAT_VERSION = "1.0.0"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, accepting a trailing 'Z'."""
    if not value:
        return None
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class LifecycleState(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    ERROR = "error"


@dataclass
class StateChange:
    """One entry of a session's append-only state history."""

    state: LifecycleState
    timestamp: datetime
    reason: str

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "timestamp": format_timestamp(self.timestamp),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StateChange":
        return cls(
            state=LifecycleState(data["state"]),
            timestamp=parse_timestamp(data["timestamp"]),
            reason=data.get("reason", ""),
        )


@dataclass
class ProjectInfo:
    name: str
    path: str  # immutable after creation
    working_directory: str
    git_branch: str = ""


@dataclass
class ClaudeInfo:
    session_id: str = ""  # external transcript id, empty until bound
    resume_command: str = ""
    last_interaction: Optional[datetime] = None


@dataclass
class SessionMeta:
    description: str = ""
    tags: list[str] = field(default_factory=list)
    variant: str = "main"
    custom_data: dict = field(default_factory=dict)


@dataclass
class SessionRecord:
    """A locally-owned Kamui session bound (eventually) to a Claude transcript."""

    # Identity
    id: str
    project: ProjectInfo

    # Timing
    created: datetime = field(default_factory=utcnow)
    last_accessed: datetime = field(default_factory=utcnow)
    last_modified: datetime = field(default_factory=utcnow)

    claude: ClaudeInfo = field(default_factory=ClaudeInfo)
    metadata: SessionMeta = field(default_factory=SessionMeta)

    # Lifecycle
    state: LifecycleState = LifecycleState.ACTIVE
    state_history: list[StateChange] = field(default_factory=list)

    version: str = FORMAT_VERSION

    @property
    def external_session_id(self) -> str:
        return self.claude.session_id

    @property
    def project_path(self) -> Path:
        return Path(self.project.path)

    @property
    def working_directory(self) -> Path:
        return Path(self.project.working_directory)

    def bind(self, external_id: str, when: Optional[datetime] = None) -> None:
        """Record a freshly discovered transcript id."""
        when = when or utcnow()
        self.claude.session_id = external_id
        self.claude.resume_command = f"claude --resume {external_id}" if external_id else ""
        self.claude.last_interaction = when

    def transition(self, state: LifecycleState, reason: str, when: Optional[datetime] = None) -> StateChange:
        """Move to a new state, appending exactly one history entry."""
        when = when or utcnow()
        change = StateChange(state=state, timestamp=when, reason=reason)
        self.state = state
        self.state_history.append(change)
        self.touch(when)
        return change

    def touch(self, when: Optional[datetime] = None) -> None:
        when = when or utcnow()
        if when > self.last_modified:
            self.last_modified = when

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "sessionId": self.id,
            "created": format_timestamp(self.created),
            "lastAccessed": format_timestamp(self.last_accessed),
            "lastModified": format_timestamp(self.last_modified),
            "project": {
                "name": self.project.name,
                "path": self.project.path,
                "workingDirectory": self.project.working_directory,
                "gitBranch": self.project.git_branch,
            },
            "claude": {
                "sessionId": self.claude.session_id,
                "resumeCommand": self.claude.resume_command,
                "lastInteraction": format_timestamp(self.claude.last_interaction),
            },
            "metadata": {
                "description": self.metadata.description,
                "tags": list(self.metadata.tags),
                "variant": self.metadata.variant,
                "customData": dict(self.metadata.custom_data),
            },
            "lifecycle": {
                "state": self.state.value,
                "stateHistory": [c.to_dict() for c in self.state_history],
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionRecord":
        """Build a record from its JSON form.

        Raises KeyError, TypeError or ValueError on malformed input; the
        store translates those into SessionCorrupted.
        """
        project = data["project"]
        claude = data.get("claude") or {}
        meta = data.get("metadata") or {}
        lifecycle = data["lifecycle"]

        return cls(
            id=data["sessionId"],
            version=data.get("version", FORMAT_VERSION),
            created=parse_timestamp(data["created"]),
            last_accessed=parse_timestamp(data["lastAccessed"]),
            last_modified=parse_timestamp(data["lastModified"]),
            project=ProjectInfo(
                name=project.get("name", ""),
                path=project["path"],
                working_directory=project.get("workingDirectory") or project["path"],
                git_branch=project.get("gitBranch", ""),
            ),
            claude=ClaudeInfo(
                session_id=claude.get("sessionId", ""),
                resume_command=claude.get("resumeCommand", ""),
                last_interaction=parse_timestamp(claude.get("lastInteraction")),
            ),
            metadata=SessionMeta(
                description=meta.get("description", ""),
                tags=list(meta.get("tags") or []),
                variant=meta.get("variant", "main"),
                custom_data=dict(meta.get("customData") or {}),
            ),
            state=LifecycleState(lifecycle["state"]),
            state_history=[StateChange.from_dict(c) for c in lifecycle.get("stateHistory") or []],
        )
