"""Shared test fixtures for sysdash."""

import psutil
import pytest
import structlog

from sysdash.models import HardwareType, HardwareUnit, ProcessEntry, Sensor, SensorType


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCounters:
    """OsCounters with fixed values; a value that is an exception gets raised."""

    def __init__(self, cpu=10.0, available=4.0, total=16.0) -> None:
        self.cpu = cpu
        self.available = available
        self.total = total

    @staticmethod
    def _value(value):
        if isinstance(value, Exception):
            raise value
        return value

    def cpu_percent(self) -> float:
        return self._value(self.cpu)

    def available_memory_gib(self) -> float:
        return self._value(self.available)

    def total_memory_gib(self) -> float:
        return self._value(self.total)


class FakeRecord:
    """Process record whose reads can be made to fail."""

    def __init__(
        self,
        pid: int,
        name: str | None = None,
        memory_mib: float = 10.0,
        file_path: str = "",
        entry_error: Exception | None = None,
        memory_error: Exception | None = None,
    ) -> None:
        self.pid = pid
        self.name = name or f"proc{pid}"
        self.memory_mib = memory_mib
        self.file_path = file_path
        self.entry_error = entry_error
        self.memory_error = memory_error

    def read_memory_mib(self) -> float:
        if self.memory_error is not None:
            raise self.memory_error
        return self.memory_mib

    def read_entry(self) -> ProcessEntry:
        if self.entry_error is not None:
            raise self.entry_error
        return ProcessEntry(
            pid=self.pid, name=self.name, memory_mib=self.memory_mib, file_path=self.file_path
        )


def records(*pids: int) -> list[FakeRecord]:
    """Build an enumeration of well-behaved records."""
    return [FakeRecord(pid) for pid in pids]


def cpu_unit(load: float | None = None, temperature: float | None = None) -> HardwareUnit:
    sensors = []
    if load is not None:
        sensors.append(Sensor("CPU Total", SensorType.LOAD, load))
    if temperature is not None:
        sensors.append(Sensor("CPU Package", SensorType.TEMPERATURE, temperature))
    return HardwareUnit(HardwareType.CPU, "CPU", tuple(sensors))


def gpu_unit(load: float | None = None, temperature: float | None = None) -> HardwareUnit:
    return HardwareUnit(
        HardwareType.GPU,
        "GPU",
        (
            Sensor("GPU Core", SensorType.LOAD, load),
            Sensor("GPU Core", SensorType.TEMPERATURE, temperature),
        ),
    )


def memory_unit(used: float | None = None, available: float | None = None) -> HardwareUnit:
    return HardwareUnit(
        HardwareType.MEMORY,
        "Memory",
        (
            Sensor("Memory Used", SensorType.DATA, used),
            Sensor("Memory Available", SensorType.DATA, available),
        ),
    )


def network_unit(upload: float | None = None, download: float | None = None) -> HardwareUnit:
    return HardwareUnit(
        HardwareType.NETWORK,
        "Network",
        (
            Sensor("Upload Speed", SensorType.THROUGHPUT, upload),
            Sensor("Download Speed", SensorType.THROUGHPUT, download),
        ),
    )


def no_such_process(pid: int = 1) -> psutil.NoSuchProcess:
    return psutil.NoSuchProcess(pid)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def counters() -> FakeCounters:
    return FakeCounters()


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Keep structlog configuration from leaking between tests."""
    yield
    structlog.reset_defaults()
