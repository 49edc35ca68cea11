"""sysdash - Main Textual application."""

from collections.abc import Sequence
from functools import partial
from queue import Empty, Queue

import structlog
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Sparkline, Static
from textual.widgets.data_table import CellDoesNotExist

from sysdash.aggregator import MetricsAggregator
from sysdash.config import Config
from sysdash.hardware import PsutilCounters
from sysdash.launchers import LaunchError, open_file_location, search_online
from sysdash.models import MetricsSnapshot, ProcessEntry
from sysdash.monitor import MetricsMonitor, MetricsUpdate, ProcessMonitor, ProcessUpdate
from sysdash.processes import TerminationResult
from sysdash.series import HistorySnapshot

log = structlog.get_logger()


def format_mib(size: float) -> str:
    """Format a MiB figure as a human-readable string."""
    if size >= 1024:
        return f"{size / 1024:6.2f}G"
    return f"{size:6.1f}M"


class MetricCard(Vertical):
    """One metric: a caption line and a sparkline of its history."""

    DEFAULT_CSS = """
    MetricCard {
        width: 1fr;
        height: auto;
        padding: 0 1;
    }

    MetricCard Sparkline {
        height: 3;
    }
    """

    def __init__(self, title: str, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._title = title

    def compose(self) -> ComposeResult:
        yield Static(f"{self._title}: --", classes="caption")
        yield Sparkline([], summary_function=max)

    def update_card(self, caption: str, values: Sequence[float]) -> None:
        self.query_one(".caption", Static).update(f"{self._title}: {caption}")
        self.query_one(Sparkline).data = list(values)


class MetricsPanel(Static):
    """Header widget showing CPU, GPU, memory and network statistics."""

    DEFAULT_CSS = """
    MetricsPanel {
        height: auto;
        padding: 1 0 0 0;
        background: $surface;
    }

    MetricsPanel Horizontal {
        height: auto;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize MetricsPanel."""
        super().__init__(*args, **kwargs)
        self._snapshot: MetricsSnapshot | None = None

    @property
    def snapshot(self) -> MetricsSnapshot | None:
        """The most recently displayed snapshot."""
        return self._snapshot

    def compose(self) -> ComposeResult:
        """Compose the metric cards."""
        yield Horizontal(
            MetricCard("CPU", id="cpu-card"),
            MetricCard("GPU", id="gpu-card"),
            MetricCard("Memory", id="mem-card"),
            MetricCard("Network", id="net-card"),
        )

    def update_metrics(self, snapshot: MetricsSnapshot, history: HistorySnapshot) -> None:
        """Update the cards from a snapshot and the frozen history."""
        self._snapshot = snapshot
        try:
            self.query_one("#cpu-card", MetricCard).update_card(
                f"{snapshot.cpu_usage_percent:5.1f}% {snapshot.cpu_temperature_celsius:4.0f}°C",
                history.cpu,
            )
            self.query_one("#gpu-card", MetricCard).update_card(
                f"{snapshot.gpu_usage_percent:5.1f}% {snapshot.gpu_temperature_celsius:4.0f}°C",
                history.gpu,
            )
            self.query_one("#mem-card", MetricCard).update_card(
                f"{snapshot.memory_used_gib:.1f}/{snapshot.memory_total_gib:.1f}G "
                f"({snapshot.memory_usage_percent:.0f}%)",
                history.memory,
            )
            self.query_one("#net-card", MetricCard).update_card(
                f"↑{snapshot.network_upload_mbps:.2f} ↓{snapshot.network_download_mbps:.2f} MB/s",
                history.network_download,
            )
        except NoMatches:
            pass  # Widget not mounted yet


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._entries: dict[int, ProcessEntry] = {}

    @property
    def pids(self) -> list[int]:
        """PIDs currently shown, in row order."""
        return list(self._entries)

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("Name", key="name", width=28)
        table.add_column("Memory", key="memory", width=9)
        table.add_column("Status", key="status", width=9)
        table.add_column("Path", key="path")

    def update_entries(self, entries: Sequence[ProcessEntry]) -> None:
        """
        Show a published process list.

        Rows are kept in first-seen order: vanished processes are removed,
        surviving rows get their memory cell updated and new processes are
        appended.
        """
        table = self.query_one("#process-table", DataTable)
        incoming = {entry.pid: entry for entry in entries}

        for pid in [pid for pid in self._entries if pid not in incoming]:
            self.remove_entry(pid)

        for pid, entry in incoming.items():
            if pid in self._entries:
                table.update_cell(str(pid), "memory", format_mib(entry.memory_mib))
            else:
                table.add_row(
                    str(pid),
                    entry.name,
                    format_mib(entry.memory_mib),
                    entry.status.value,
                    entry.file_path,
                    key=str(pid),
                )
            self._entries[pid] = entry

    def remove_entry(self, pid: int) -> None:
        """Drop a row right away, e.g. after a confirmed termination."""
        if self._entries.pop(pid, None) is None:
            return
        self.query_one("#process-table", DataTable).remove_row(str(pid))

    def selected_entry(self) -> ProcessEntry | None:
        """Return the entry under the cursor, if it is still listed."""
        table = self.query_one("#process-table", DataTable)
        if table.row_count == 0:
            return None
        try:
            row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        except CellDoesNotExist:
            return None
        if row_key.value is None:
            return None
        return self._entries.get(int(row_key.value))


class SysdashApp(App):
    """Main sysdash application."""

    TITLE = "sysdash"
    SUB_TITLE = "System Telemetry Dashboard"

    CSS = """
    Screen {
        layout: vertical;
    }

    #metrics-panel {
        dock: top;
        height: auto;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("delete", "end_task", "End task"),
        ("o", "open_location", "Open location"),
        ("s", "search_online", "Search online"),
    ]

    def __init__(self, config: Config | None = None) -> None:
        """Initialize the SysdashApp."""
        super().__init__()
        self._config = config or Config()
        sampling = self._config.sampling
        self._metrics_queue: Queue[MetricsUpdate] = Queue()
        self._process_queue: Queue[ProcessUpdate] = Queue()
        self._metrics_monitor = MetricsMonitor(
            self._metrics_queue,
            aggregator=MetricsAggregator(
                PsutilCounters(), network_min_interval=sampling.network_min_interval
            ),
            interval=sampling.metrics_interval,
            history_length=sampling.history_length,
        )
        self._process_monitor = ProcessMonitor(
            self._process_queue, interval=sampling.process_interval
        )

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield MetricsPanel(id="metrics-panel")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start both monitors when the app is mounted."""
        self._metrics_monitor.start()
        self._process_monitor.start()
        self.set_interval(0.25, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain both queues and show only the newest update of each."""
        metrics = _drain(self._metrics_queue)
        if metrics is not None:
            self.query_one("#metrics-panel", MetricsPanel).update_metrics(
                metrics.snapshot, metrics.history
            )

        processes = _drain(self._process_queue)
        if processes is not None:
            self.query_one(ProcessTable).update_entries(processes.entries)

    def _selected(self) -> ProcessEntry | None:
        entry = self.query_one(ProcessTable).selected_entry()
        if entry is None:
            self.notify("No process selected", severity="warning")
        return entry

    def action_end_task(self) -> None:
        """Terminate the selected process on a worker thread.

        Termination waits for any reconciliation in progress, so it is kept
        off the event loop.
        """
        entry = self._selected()
        if entry is None:
            return
        self.run_worker(
            partial(self._end_task, entry), name="end-task", group="end-task", thread=True
        )

    def _end_task(self, entry: ProcessEntry) -> None:
        result = self._process_monitor.terminate(entry.pid)
        self.call_from_thread(self._show_termination, entry, result)

    def _show_termination(self, entry: ProcessEntry, result: TerminationResult) -> None:
        if result.success:
            self.query_one(ProcessTable).remove_entry(entry.pid)
            self.notify(f"Ended {entry.name} ({entry.pid})")
        else:
            self.notify(f"Could not end task: {result.reason}", severity="error")

    def action_open_location(self) -> None:
        """Reveal the selected process's executable in the file manager."""
        entry = self._selected()
        if entry is None:
            return
        try:
            open_file_location(self._process_monitor.resolve_file_location(entry.pid) or "")
        except LaunchError as e:
            self.notify(str(e), severity="error")

    def action_search_online(self) -> None:
        """Search the web for the selected process name."""
        entry = self._selected()
        if entry is None:
            return
        try:
            search_online(entry.name, self._config.processes.search_url)
        except LaunchError as e:
            self.notify(str(e), severity="error")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._metrics_monitor.stop()
        self._process_monitor.stop()
        self.exit()


def _drain(queue: Queue):
    """Return the newest item in ``queue``, discarding older ones."""
    latest = None
    while True:
        try:
            latest = queue.get_nowait()
        except Empty:
            return latest


def run(config: Config | None = None) -> None:
    """Entry point for the sysdash application."""
    log.info("app_starting")
    SysdashApp(config).run()
    log.info("app_stopped")
