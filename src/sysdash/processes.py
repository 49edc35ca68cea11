"""Process table reconciliation and process control."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace

import psutil
import structlog

from sysdash.models import ProcessEntry

log = structlog.get_logger()

MIB = 1024 * 1024

# Per-process failures: exited mid-enumeration, access denied, zombie
READ_ERRORS = (psutil.Error, OSError)


class ProcessRecord:
    """One process from an OS enumeration; details are read lazily and may fail."""

    __slots__ = ("pid", "_proc")

    def __init__(self, proc: psutil.Process) -> None:
        self.pid = proc.pid
        self._proc = proc

    def read_memory_mib(self) -> float:
        return self._proc.memory_info().rss / MIB

    def read_entry(self) -> ProcessEntry:
        """
        Read everything needed to start tracking the process.

        Raises psutil.Error if the process is gone or its name or memory
        cannot be read. An unreadable executable path only leaves
        ``file_path`` empty.
        """
        with self._proc.oneshot():
            name = self._proc.name()
            memory_mib = self._proc.memory_info().rss / MIB
            try:
                file_path = self._proc.exe() or ""
            except (psutil.AccessDenied, psutil.ZombieProcess):
                file_path = ""
        return ProcessEntry(pid=self.pid, name=name, memory_mib=memory_mib, file_path=file_path)


def enumerate_processes() -> list[ProcessRecord]:
    """Return a record for every live process. Raises if the OS call fails."""
    return [ProcessRecord(proc) for proc in psutil.process_iter()]


@dataclass(slots=True)
class ReconcileResult:
    """PIDs touched by one reconciliation pass."""

    added: list[int] = field(default_factory=list)
    updated: list[int] = field(default_factory=list)
    removed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """True if the set or order of tracked processes changed."""
        return bool(self.added or self.removed)


class ProcessTable:
    """
    Tracked processes keyed by PID, in first-seen order.

    Mutated only by ``reconcile`` and ``remove``; readers should work from
    ``snapshot()`` copies.
    """

    def __init__(self) -> None:
        self._entries: dict[int, ProcessEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, pid: object) -> bool:
        return pid in self._entries

    def __iter__(self) -> Iterator[ProcessEntry]:
        return iter(self._entries.values())

    def get(self, pid: int) -> ProcessEntry | None:
        return self._entries.get(pid)

    def pids(self) -> list[int]:
        """Return tracked PIDs in display order."""
        return list(self._entries)

    def snapshot(self) -> tuple[ProcessEntry, ...]:
        """Return copies of every entry, safe to hand to another thread."""
        return tuple(replace(entry) for entry in self._entries.values())

    def remove(self, pid: int) -> ProcessEntry | None:
        """Stop tracking a process. Returns the removed entry, if any."""
        return self._entries.pop(pid, None)

    def reconcile(self, records: Iterable[ProcessRecord]) -> ReconcileResult:
        """
        Bring the table in line with a fresh enumeration.

        Removals are applied before additions so a PID that vanished and
        came back is appended as a new entry. Existing entries only get
        their memory figure refreshed.
        """
        result = ReconcileResult()

        current: dict[int, ProcessRecord] = {}
        for record in records:
            if record.pid in current:
                log.debug("duplicate_pid_ignored", pid=record.pid)
                continue
            current[record.pid] = record

        result.removed = [pid for pid in self._entries if pid not in current]
        for pid in result.removed:
            del self._entries[pid]

        for pid, record in current.items():
            entry = self._entries.get(pid)
            if entry is not None:
                try:
                    entry.memory_mib = record.read_memory_mib()
                except READ_ERRORS:
                    log.debug("process_memory_unreadable", pid=pid)
                    continue
                result.updated.append(pid)
                continue

            try:
                self._entries[pid] = record.read_entry()
            except READ_ERRORS as e:
                log.debug("process_skipped", pid=pid, reason=type(e).__name__)
                result.skipped.append(pid)
                continue
            result.added.append(pid)

        return result


@dataclass(slots=True, frozen=True)
class TerminationResult:
    """Outcome of a termination request."""

    pid: int
    success: bool
    reason: str = ""
    already_exited: bool = False


class ProcessControl:
    """Termination and inspection of processes tracked in a ProcessTable."""

    def __init__(self, table: ProcessTable) -> None:
        self._table = table

    def terminate(self, entry: ProcessEntry) -> TerminationResult:
        """
        Kill the process and stop tracking it.

        A process that already exited (or whose PID now belongs to another
        program) counts as terminated. On any other failure the table is
        left untouched and the reason is returned for display.
        """
        try:
            proc = psutil.Process(entry.pid)
            if entry.name and proc.name() != entry.name:
                raise psutil.NoSuchProcess(entry.pid, entry.name)
            proc.kill()
        except psutil.NoSuchProcess:
            log.info("terminate_already_exited", pid=entry.pid, name=entry.name)
            self._table.remove(entry.pid)
            return TerminationResult(pid=entry.pid, success=True, already_exited=True)
        except psutil.AccessDenied:
            log.warning("terminate_denied", pid=entry.pid, name=entry.name)
            return TerminationResult(
                pid=entry.pid,
                success=False,
                reason=f"Access denied ending {entry.name} (PID {entry.pid})",
            )
        except READ_ERRORS as e:
            log.warning("terminate_failed", pid=entry.pid, name=entry.name, error=str(e))
            return TerminationResult(
                pid=entry.pid, success=False, reason=str(e) or type(e).__name__
            )

        log.info("terminated", pid=entry.pid, name=entry.name)
        self._table.remove(entry.pid)
        return TerminationResult(pid=entry.pid, success=True)

    @staticmethod
    def resolve_file_location(entry: ProcessEntry) -> str | None:
        """Return the executable path captured when the process was first seen."""
        return entry.file_path or None
