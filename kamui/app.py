"""Kamui session picker TUI."""

import logging
from typing import Optional

from rich.text import Text
from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header, ListView, Static

from .models import SessionRecord
from .ui import APP_CSS, SessionDetailPanel, SessionListItem

logger = logging.getLogger(__name__)


class SessionPicker(App):
    """Pick a local session to resume. Exits with the chosen session name."""

    CSS = APP_CSS

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("enter", "select_session", "Resume"),
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
    ]

    def __init__(self, records: list[SessionRecord], project_name: str = ""):
        super().__init__()
        # Most recently used first
        self.records = sorted(records, key=lambda r: r.last_accessed, reverse=True)
        self.project_name = project_name
        self.selected: Optional[SessionRecord] = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Horizontal():
            with Vertical(id="list-container"):
                yield Static("[bold]Sessions[/] [dim](most recent first)[/]", classes="list-header")
                yield ListView(*[SessionListItem(r) for r in self.records], id="session-list")
            with Vertical(id="detail-container"):
                yield SessionDetailPanel(id="detail-panel")
        yield Footer()

    def on_mount(self):
        self.title = f"Kamui - {self.project_name}" if self.project_name else "Kamui"
        session_list = self.query_one("#session-list", ListView)
        if not self.records:
            detail = self.query_one("#detail-panel", SessionDetailPanel)
            text = Text()
            text.append("No sessions found!", style="bold red")
            text.append("\n\nCreate one with 'kam <session-name>'\n")
            detail.update(text)
            return
        session_list.index = 0
        session_list.focus()

    @on(ListView.Highlighted, "#session-list")
    def on_session_highlighted(self, event: ListView.Highlighted):
        if isinstance(event.item, SessionListItem):
            self.selected = event.item.record
            self.query_one("#detail-panel", SessionDetailPanel).show_record(self.selected)

    @on(ListView.Selected, "#session-list")
    def on_session_selected(self, event: ListView.Selected):
        if isinstance(event.item, SessionListItem):
            self.exit(result=event.item.record.id)

    def action_select_session(self):
        if self.selected:
            self.exit(result=self.selected.id)

    def action_cursor_down(self):
        self.query_one("#session-list", ListView).action_cursor_down()

    def action_cursor_up(self):
        self.query_one("#session-list", ListView).action_cursor_up()
