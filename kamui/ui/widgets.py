"""UI widgets for the Kamui session picker."""

from typing import Optional

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import ScrollableContainer
from textual.widgets import ListItem, Static

from ..models import LifecycleState, SessionRecord

STATE_STYLES = {
    LifecycleState.ACTIVE: "green",
    LifecycleState.PAUSED: "yellow",
    LifecycleState.COMPLETED: "cyan",
    LifecycleState.ARCHIVED: "dim",
    LifecycleState.ERROR: "bold red",
}


def truncate(text: str, max_len: int = 100) -> str:
    """Truncate text with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + "..."


def short_id(external_id: str) -> str:
    if not external_id:
        return "none"
    return external_id[:8] + "..." if len(external_id) > 8 else external_id


class SessionListItem(ListItem):
    """List item for one local session."""

    def __init__(self, record: SessionRecord):
        super().__init__()
        self.record = record
        self._static: Optional[Static] = None

    def compose(self) -> ComposeResult:
        self._static = Static(self._build_text(100))
        yield self._static

    def on_resize(self, event) -> None:
        """Update text when resized."""
        if self._static:
            self._static.update(self._build_text(self.size.width))

    def _build_text(self, width: int) -> Text:
        record = self.record
        date_str = record.last_accessed.astimezone().strftime("%m-%d %H:%M")
        style = STATE_STYLES.get(record.state, "white")

        text = Text()
        text.append(date_str, style="cyan")
        text.append(" │ ", style="dim")
        text.append(f"{record.state.value:<9}", style=style)
        text.append(" │ ", style="dim")
        name_width = max(12, width - 30)
        text.append(truncate(record.id, name_width), style="bold white")
        return text


class SessionDetailPanel(ScrollableContainer):
    """Details for the highlighted session."""

    def update(self, text: Text) -> None:
        """Replace the panel content."""
        for child in list(self.children):
            child.remove()
        self.mount(Static(text, markup=False))

    def show_record(self, record: SessionRecord) -> None:
        text = Text()
        text.append("━━━ Session Details ━━━\n", style="bold cyan")
        text.append("\n")

        text.append("Name: ", style="bold")
        text.append(f"{record.id}\n", style="cyan bold")
        text.append("State: ", style="bold")
        text.append(f"{record.state.value}\n", style=STATE_STYLES.get(record.state, "white"))
        text.append("Project: ", style="bold")
        text.append(f"{record.project.name}\n", style="green")
        text.append("Path: ", style="bold")
        text.append(f"{record.project.working_directory}\n", style="dim")
        text.append("Created: ", style="bold")
        text.append(f"{record.created.astimezone().strftime('%Y-%m-%d %H:%M:%S')}\n")
        text.append("Last accessed: ", style="bold")
        text.append(f"{record.last_accessed.astimezone().strftime('%Y-%m-%d %H:%M:%S')}\n")
        text.append("Claude session: ", style="bold")
        text.append(f"{short_id(record.external_session_id)}\n", style="yellow")
        text.append("\n")

        text.append("┌─ History ─────────────────────────────\n", style="bold magenta")
        for change in record.state_history[-10:]:
            text.append("│ ", style="magenta")
            text.append(f"{change.timestamp.astimezone().strftime('%m-%d %H:%M')} ", style="dim")
            text.append(f"{change.state.value}", style=STATE_STYLES.get(change.state, "white"))
            text.append(f" ({change.reason})\n", style="dim")
        text.append("└───────────────────────────────────────\n", style="magenta")

        if record.claude.resume_command:
            text.append("\n")
            text.append("━━━ Resume Command ━━━\n", style="bold yellow")
            text.append(f"{record.claude.resume_command}\n")

        self.update(text)
