"""CSS styles for the Kamui session picker."""

APP_CSS = """
Screen {
    layout: horizontal;
}

#list-container {
    width: 55%;
    height: 100%;
    border: solid $primary;
}

#detail-container {
    width: 45%;
    height: 100%;
    border: solid $secondary;
    padding: 1;
}

#session-list {
    height: 1fr;
}

.list-header {
    height: auto;
    background: $surface;
    padding: 0 1;
    text-style: bold;
    color: $primary;
}

#detail-panel {
    height: 100%;
    overflow-y: auto;
    scrollbar-gutter: stable;
}

SessionListItem {
    height: 1;
    padding: 0 1;
}

SessionListItem:hover {
    background: $surface-lighten-1;
}

ListView:focus > ListItem.-active {
    background: $primary-darken-1;
}

ListView.-has-focus > ListItem.-active {
    background: $primary;
}

Footer {
    background: $surface;
}
"""
