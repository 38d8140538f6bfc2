"""UI components for Kamui."""

from .widgets import (
    SessionListItem,
    SessionDetailPanel,
)
from .styles import APP_CSS

__all__ = [
    "SessionListItem",
    "SessionDetailPanel",
    "APP_CSS",
]
