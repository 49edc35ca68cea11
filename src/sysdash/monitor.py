"""Periodic sampling tasks for sysdash."""

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from queue import Queue

import structlog

from sysdash.aggregator import MetricsAggregator
from sysdash.hardware import HardwareSource, PsutilCounters, PsutilHardwareSource
from sysdash.models import MetricsSnapshot, ProcessEntry
from sysdash.processes import (
    ProcessControl,
    ProcessRecord,
    ProcessTable,
    ReconcileResult,
    TerminationResult,
    enumerate_processes,
)
from sysdash.series import HistorySnapshot, MetricHistory

log = structlog.get_logger()


@dataclass(slots=True, frozen=True)
class MetricsUpdate:
    """Published after every completed metrics tick."""

    snapshot: MetricsSnapshot
    history: HistorySnapshot


@dataclass(slots=True, frozen=True)
class ProcessUpdate:
    """Published after every reconciliation and every confirmed termination."""

    entries: tuple[ProcessEntry, ...]
    result: ReconcileResult | None = None


class PeriodicTask:
    """
    Runs ``tick`` on a daemon thread every ``interval`` seconds.

    Ticks never overlap: the loop runs them one after another, and a
    ``run_once`` call made while a tick is in flight is skipped. Stopping
    lets the in-flight tick finish.
    """

    name = "PeriodicTask"

    def __init__(self, interval: float) -> None:
        self._interval = max(0.1, interval)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_lock = threading.Lock()

    @property
    def interval(self) -> float:
        """Get the current interval."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the interval."""
        self._interval = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the task thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the task thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, daemon=True, name=self.name)
        self._thread.start()
        log.info("task_started", task=self.name, interval=self._interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop scheduling ticks.

        Args:
            timeout: How long to wait for the in-flight tick to finish (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
            log.info("task_stopped", task=self.name)

    def run_once(self) -> bool:
        """Run one tick now. Returns False if a tick was already in progress."""
        if not self._tick_lock.acquire(blocking=False):
            log.debug("tick_skipped", task=self.name)
            return False
        try:
            self.tick()
        finally:
            self._tick_lock.release()
        return True

    def tick(self) -> None:
        raise NotImplementedError

    def _poll_loop(self) -> None:
        """Main loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                # Abandon this tick, the next one retries
                log.exception("tick_failed", task=self.name)

            self._stop_event.wait(timeout=self._interval)


class MetricsMonitor(PeriodicTask):
    """Samples hardware metrics and publishes MetricsUpdate objects to a queue."""

    name = "MetricsMonitor"

    def __init__(
        self,
        update_queue: Queue[MetricsUpdate],
        source: HardwareSource | None = None,
        aggregator: MetricsAggregator | None = None,
        interval: float = 1.0,
        history_length: int = 60,
    ) -> None:
        """
        Initialize the MetricsMonitor.

        Args:
            update_queue: Thread-safe queue to push updates to.
            source: Hardware readings. Defaults to psutil.
            aggregator: Metric fusion. Defaults to one with psutil fallbacks.
            interval: Seconds between samples. Default 1.0s.
            history_length: Number of samples kept per series.
        """
        super().__init__(interval)
        self._queue = update_queue
        self._source = source if source is not None else PsutilHardwareSource()
        if aggregator is None:
            aggregator = MetricsAggregator(PsutilCounters())
        self._aggregator = aggregator
        self._history = MetricHistory(history_length)
        self._aggregator.subscribe(self._publish)

    @property
    def aggregator(self) -> MetricsAggregator:
        return self._aggregator

    def tick(self) -> None:
        """Read the hardware source once and aggregate it.

        If the source itself fails nothing is published for this tick.
        """
        try:
            units = self._source.read()
        except Exception:
            log.exception("hardware_read_failed")
            return
        self._aggregator.sample(units)

    def _publish(self, snapshot: MetricsSnapshot) -> None:
        self._history.push(snapshot)
        self._queue.put(MetricsUpdate(snapshot=snapshot, history=self._history.freeze()))


class ProcessMonitor(PeriodicTask):
    """Reconciles the process table and publishes ProcessUpdate objects to a queue."""

    name = "ProcessMonitor"

    def __init__(
        self,
        update_queue: Queue[ProcessUpdate],
        interval: float = 3.0,
        enumerator: Callable[[], Iterable[ProcessRecord]] = enumerate_processes,
    ) -> None:
        """
        Initialize the ProcessMonitor.

        Args:
            update_queue: Thread-safe queue to push updates to.
            interval: Seconds between enumerations. Default 3.0s.
            enumerator: Returns the live process records. Defaults to psutil.
        """
        super().__init__(interval)
        self._queue = update_queue
        self._enumerate = enumerator
        self._table = ProcessTable()
        self._control = ProcessControl(self._table)
        # Guards the table against a termination racing a reconciliation
        self._table_lock = threading.Lock()

    def tick(self) -> None:
        """Enumerate processes and reconcile. On enumeration failure the table is kept."""
        try:
            records = list(self._enumerate())
        except Exception:
            log.exception("process_enumeration_failed")
            return

        with self._table_lock:
            result = self._table.reconcile(records)
            entries = self._table.snapshot()
        if result.changed:
            log.debug(
                "processes_reconciled",
                added=len(result.added),
                removed=len(result.removed),
                skipped=len(result.skipped),
            )
        self._queue.put(ProcessUpdate(entries=entries, result=result))

    def lookup(self, pid: int) -> ProcessEntry | None:
        """Return a copy of the tracked entry for ``pid``, or None if it is gone."""
        with self._table_lock:
            entry = self._table.get(pid)
            return replace(entry) if entry is not None else None

    def terminate(self, pid: int) -> TerminationResult:
        """Terminate a tracked process and publish the table without it on success."""
        with self._table_lock:
            entry = self._table.get(pid)
            if entry is None:
                return TerminationResult(
                    pid=pid, success=False, reason="Process is no longer listed"
                )
            result = self._control.terminate(entry)
            entries = self._table.snapshot() if result.success else None
        if entries is not None:
            self._queue.put(ProcessUpdate(entries=entries))
        return result

    def resolve_file_location(self, pid: int) -> str | None:
        entry = self.lookup(pid)
        return self._control.resolve_file_location(entry) if entry is not None else None
