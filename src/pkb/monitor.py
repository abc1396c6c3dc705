"""Index Monitor - a TUI for watching the index sync and trying searches."""

from __future__ import annotations

from datetime import datetime

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Vertical
from textual.message import Message
from textual.widgets import (
    DataTable,
    Footer,
    Header,
    Input,
    Label,
    Log,
    Rule,
    Static,
)

from pkb.errors import PKBError
from pkb.index import PKB
from pkb.manager import PKBManager
from pkb.models import IndexLogEntry, PKBStats, SearchResult


class StatsPanel(Static):
    """Index size and queue depth."""

    def compose(self) -> ComposeResult:
        yield Static(id="stats-content")

    def update_display(self, stats: PKBStats, root: str, model: str) -> None:
        content = self.query_one("#stats-content", Static)
        status = "[yellow]SYNCING[/]" if stats.queue_depth else "[green]IDLE[/]"
        content.update(f"""[b]STATUS[/b]  {status}

[b]DIRECTORY[/b]
  [cyan]{root}[/]

[b]INDEX[/b]
  Files       [green]{stats.total_files:,}[/]
  Chunks      [magenta]{stats.total_chunks:,}[/]
  Queued      [yellow]{stats.queue_depth:,}[/]

[b]MODEL[/b]
  [dim]{model}[/]""")


class ActivityTable(DataTable):
    """Most recent index operations, newest last."""

    def on_mount(self) -> None:
        self.add_columns("Time", "File", "Chunks")
        self.cursor_type = "row"

    def show(self, entries: list[IndexLogEntry]) -> None:
        self.clear()
        for entry in entries:
            name = entry.file if len(entry.file) <= 40 else entry.file[:37] + "..."
            chunks = "[dim]deleted[/]" if entry.chunk_count == 0 else f"[magenta]{entry.chunk_count}[/]"
            self.add_row(entry.timestamp.strftime("%H:%M:%S"), name, chunks)
        self.scroll_end()


class IndexMonitor(App):
    """Live view of a PKB index while its manager keeps it in sync."""

    class SearchFinished(Message):
        def __init__(self, query: str, results: list[SearchResult]) -> None:
            self.query = query
            self.results = results
            super().__init__()

    class LogMessage(Message):
        def __init__(self, message: str) -> None:
            self.message = message
            super().__init__()

    CSS = """
    Screen {
        background: $surface;
    }

    #main-container {
        layout: horizontal;
        height: 100%;
    }

    #left-panel {
        width: 40;
        background: $surface-darken-1;
        border-right: solid $primary-darken-2;
        padding: 1;
    }

    #center-panel {
        width: 1fr;
        padding: 1;
    }

    StatsPanel {
        height: auto;
        padding: 1;
        background: $surface-darken-2;
        border: round $primary;
        margin-bottom: 1;
    }

    ActivityTable {
        height: 1fr;
        border: round $primary-darken-1;
    }

    #results {
        height: 1fr;
        border: round $accent;
        background: $surface-darken-2;
    }

    #log-panel {
        height: 10;
        border: round $primary-darken-2;
        background: $surface-darken-2;
    }

    .section-title {
        text-style: bold;
        color: $text;
        margin-bottom: 1;
    }
    """

    BINDINGS = [
        Binding("r", "reindex", "Reindex", show=True),
        Binding("q", "quit", "Quit", show=True),
    ]

    TITLE = "PKB Monitor"

    def __init__(self, manager: PKBManager, refresh_interval: float = 1.0):
        super().__init__()
        self.manager = manager
        self.pkb: PKB = manager.pkb
        self.refresh_interval = refresh_interval

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Container(id="main-container"):
            with Vertical(id="left-panel"):
                yield Label("INDEX", classes="section-title")
                yield StatsPanel()
                yield Rule()
                yield Label("RECENT ACTIVITY", classes="section-title")
                yield ActivityTable(id="activity")

            with Vertical(id="center-panel"):
                yield Label("SEARCH", classes="section-title")
                yield Input(placeholder="Search your notes...", id="search-input")
                yield Log(id="results", auto_scroll=False)
                yield Rule()
                yield Label("SYSTEM LOG", classes="section-title")
                yield Log(id="log-panel", highlight=True, auto_scroll=True)

        yield Footer()

    def on_mount(self) -> None:
        self.sub_title = str(self.pkb.root)
        self.start_manager()
        self.set_interval(self.refresh_interval, self.refresh_stats)

    def on_unmount(self) -> None:
        self.manager.stop()

    def _log(self, message: str) -> None:
        timestamp = datetime.now().strftime("%H:%M:%S")
        self.query_one("#log-panel", Log).write_line(f"[{timestamp}] {message}")

    @work(exclusive=True, thread=True, group="manager")
    def start_manager(self) -> None:
        """Load the model and start syncing without blocking the UI."""
        self.post_message(self.LogMessage(f"Loading {self.pkb.embedding_model.model_name}..."))
        try:
            self.manager.start()
        except PKBError as e:
            self.post_message(self.LogMessage(f"ERROR: {e}"))
            return
        self.post_message(self.LogMessage(f"Watching {self.pkb.root}"))

    def refresh_stats(self) -> None:
        # The model loads in start_manager; stats need its dimension.
        if not self.manager.running:
            return
        try:
            stats = self.pkb.get_stats()
        except PKBError as e:
            self._log(f"ERROR: {e}")
            return
        self.query_one(StatsPanel).update_display(
            stats, str(self.pkb.root), self.pkb.embedding_model.model_name
        )
        self.query_one("#activity", ActivityTable).show(stats.recent_activity)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        query = event.value.strip()
        if query:
            self.run_search(query)

    @work(exclusive=True, thread=True, group="search")
    def run_search(self, query: str) -> None:
        try:
            results = self.pkb.search(query, top_k=10)
        except PKBError as e:
            self.post_message(self.LogMessage(f"Search failed: {e}"))
            return
        self.post_message(self.SearchFinished(query, results))

    def action_reindex(self) -> None:
        self.run_reindex()

    @work(exclusive=True, thread=True, group="reindex")
    def run_reindex(self) -> None:
        self.post_message(self.LogMessage("Reindexing..."))
        try:
            result = self.manager.reindex()
        except PKBError as e:
            self.post_message(self.LogMessage(f"Reindex failed: {e}"))
            return
        self.post_message(self.LogMessage(f"Reindexed: {len(result.processed)} operations"))

    def on_index_monitor_log_message(self, event: LogMessage) -> None:
        self._log(event.message)

    def on_index_monitor_search_finished(self, event: SearchFinished) -> None:
        results = self.query_one("#results", Log)
        results.clear()
        if not event.results:
            results.write_line(f"No results for: {event.query}")
            return
        for i, r in enumerate(event.results, 1):
            location = f"{r.file}:{r.start.line}"
            results.write_line(f"{i}. [{r.score:.3f}] {location}")
            if r.heading_context:
                results.write_line(f"   {r.heading_context}")
            snippet = r.text[:200].replace("\n", " ")
            if len(r.text) > 200:
                snippet += "..."
            results.write_line(f"   {snippet}")
            results.write_line("")


def run_monitor(manager: PKBManager) -> None:
    IndexMonitor(manager).run()
