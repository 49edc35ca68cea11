"""Metric fusion: resolves each logical metric from hardware sensors with fallbacks."""

import time
from collections.abc import Callable, Iterable

import structlog

from sysdash.hardware import OsCounters
from sysdash.models import HardwareType, HardwareUnit, MetricsSnapshot, SensorType

log = structlog.get_logger()

BYTES_PER_MB = 1024 * 1024

Subscriber = Callable[[MetricsSnapshot], None]


class MetricsAggregator:
    """
    Merges raw hardware readings into one MetricsSnapshot per tick.

    Each metric is resolved independently through its fallback chain:
    hardware sensor first, then the OS counter (CPU load and memory only),
    then the last-known value. A failure reading one metric never affects
    the others, so ``sample`` always returns a complete snapshot.
    """

    def __init__(
        self,
        counters: OsCounters | None = None,
        network_min_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the MetricsAggregator.

        Args:
            counters: OS-level fallback counters. None disables the fallbacks.
            network_min_interval: Minimum seconds between network updates.
            clock: Monotonic time source for the network window.
        """
        self._counters = counters
        self._network_min_interval = network_min_interval
        self._clock = clock
        self._last_network_update: float | None = None
        self._subscribers: list[Subscriber] = []

        self._cpu_usage = 0.0
        self._cpu_temperature = 0.0
        self._gpu_usage = 0.0
        self._gpu_temperature = 0.0
        self._memory_used = 0.0
        self._memory_total = 0.0
        self._network_upload = 0.0
        self._network_download = 0.0

    def subscribe(self, callback: Subscriber) -> None:
        """Register a callback invoked with every completed snapshot."""
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        """Remove a previously registered callback. Unknown callbacks are ignored."""
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    def sample(self, units: Iterable[HardwareUnit]) -> MetricsSnapshot:
        """Resolve every metric from one tick of readings and notify subscribers."""
        by_type: dict[HardwareType, list[HardwareUnit]] = {kind: [] for kind in HardwareType}
        for unit in units:
            by_type[unit.hardware_type].append(unit)

        self._guard("cpu", self._resolve_cpu, by_type[HardwareType.CPU])
        self._guard("gpu", self._resolve_gpu, by_type[HardwareType.GPU])
        self._guard("memory", self._resolve_memory, by_type[HardwareType.MEMORY])
        self._guard("network", self._resolve_network, by_type[HardwareType.NETWORK])

        snapshot = MetricsSnapshot(
            cpu_usage_percent=self._cpu_usage,
            cpu_temperature_celsius=self._cpu_temperature,
            gpu_usage_percent=self._gpu_usage,
            gpu_temperature_celsius=self._gpu_temperature,
            memory_used_gib=self._memory_used,
            memory_total_gib=self._memory_total,
            network_upload_mbps=self._network_upload,
            network_download_mbps=self._network_download,
        )
        self._notify(snapshot)
        return snapshot

    def _guard(
        self,
        metric: str,
        resolver: Callable[[list[HardwareUnit]], None],
        units: list[HardwareUnit],
    ) -> None:
        """Run one resolver, keeping last-known values if it fails."""
        try:
            resolver(units)
        except Exception:
            log.warning("metric_read_failed", metric=metric, exc_info=True)

    def _resolve_cpu(self, units: list[HardwareUnit]) -> None:
        usage = _first_reading(units, SensorType.LOAD, "Total")
        if usage is None and self._counters is not None:
            usage = self._read_counter("cpu_usage", self._counters.cpu_percent)
        if usage is not None:
            self._cpu_usage = usage

        temperature = _first_reading(units, SensorType.TEMPERATURE, "Package")
        if temperature is not None:
            self._cpu_temperature = temperature

    def _resolve_gpu(self, units: list[HardwareUnit]) -> None:
        usage = _first_reading(units, SensorType.LOAD, "Core")
        if usage is not None:
            self._gpu_usage = usage

        temperature = _first_reading(units, SensorType.TEMPERATURE, "Core")
        if temperature is not None:
            self._gpu_temperature = temperature

    def _resolve_memory(self, units: list[HardwareUnit]) -> None:
        used = _first_reading(units, SensorType.DATA, "Used")
        available = _first_reading(units, SensorType.DATA, "Available")
        if used is not None and available is not None:
            self._memory_used = used
            self._memory_total = used + available
            return

        if self._counters is None:
            return
        total = self._read_counter("memory_total", self._counters.total_memory_gib)
        available = self._read_counter("memory_available", self._counters.available_memory_gib)
        if total is not None and available is not None:
            self._memory_total = total
            self._memory_used = max(total - available, 0.0)

    def _resolve_network(self, units: list[HardwareUnit]) -> None:
        if not units:
            return
        now = self._clock()
        last = self._last_network_update
        if last is not None and now - last < self._network_min_interval:
            return

        upload = _sum_readings(units, SensorType.THROUGHPUT, "Upload")
        download = _sum_readings(units, SensorType.THROUGHPUT, "Download")
        if upload is not None:
            self._network_upload = upload / BYTES_PER_MB
        if download is not None:
            self._network_download = download / BYTES_PER_MB
        self._last_network_update = now

    def _read_counter(self, name: str, read: Callable[[], float]) -> float | None:
        """Read one OS counter, returning None if it fails."""
        try:
            return float(read())
        except Exception:
            log.warning("counter_read_failed", counter=name, exc_info=True)
            return None

    def _notify(self, snapshot: MetricsSnapshot) -> None:
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                name = getattr(callback, "__qualname__", repr(callback))
                log.exception("subscriber_failed", subscriber=name)


def _first_reading(
    units: list[HardwareUnit], sensor_type: SensorType, name_part: str
) -> float | None:
    """Return the first available reading of a matching sensor across units."""
    for unit in units:
        value = unit.reading(sensor_type, name_part)
        if value is not None:
            return value
    return None


def _sum_readings(
    units: list[HardwareUnit], sensor_type: SensorType, name_part: str
) -> float | None:
    """Sum matching readings across units, None when no unit reports one."""
    values = [unit.reading(sensor_type, name_part) for unit in units]
    present = [value for value in values if value is not None]
    return sum(present) if present else None
