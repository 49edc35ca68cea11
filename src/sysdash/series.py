"""Fixed-length metric history for charting.

Each buffer holds exactly ``capacity`` values (60 = one minute at 1Hz),
pre-filled with zeros, oldest first.
"""

from collections import deque
from dataclasses import dataclass

from sysdash.models import MetricsSnapshot


class SeriesBuffer:
    """Sliding window of the most recent values for one metric."""

    def __init__(self, capacity: int = 60, fill: float = 0.0) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._values: deque[float] = deque([fill] * capacity, maxlen=capacity)

    def __len__(self) -> int:
        return len(self._values)

    @property
    def capacity(self) -> int:
        """Return the fixed number of values the buffer holds."""
        return self._values.maxlen or 0

    @property
    def values(self) -> list[float]:
        """Read-only access to values (returns a copy)."""
        return list(self._values)

    @property
    def latest(self) -> float:
        """Return the most recently pushed value."""
        return self._values[-1]

    def push(self, value: float) -> None:
        """Append a value, evicting the oldest one."""
        self._values.append(value)

    def freeze(self) -> tuple[float, ...]:
        """Return immutable copy of buffer contents."""
        return tuple(self._values)


@dataclass(frozen=True)
class HistorySnapshot:
    """Immutable copy of every metric series, safe to hand to the display thread."""

    cpu: tuple[float, ...]
    gpu: tuple[float, ...]
    memory: tuple[float, ...]
    network_download: tuple[float, ...]
    network_upload: tuple[float, ...]


class MetricHistory:
    """One SeriesBuffer per charted metric."""

    def __init__(self, length: int = 60) -> None:
        self.cpu = SeriesBuffer(length)
        self.gpu = SeriesBuffer(length)
        self.memory = SeriesBuffer(length)
        self.network_download = SeriesBuffer(length)
        self.network_upload = SeriesBuffer(length)

    def push(self, snapshot: MetricsSnapshot) -> None:
        """Append the values of one snapshot to every series."""
        self.cpu.push(snapshot.cpu_usage_percent)
        self.gpu.push(snapshot.gpu_usage_percent)
        self.memory.push(snapshot.memory_usage_percent)
        self.network_download.push(snapshot.network_download_mbps)
        self.network_upload.push(snapshot.network_upload_mbps)

    def freeze(self) -> HistorySnapshot:
        return HistorySnapshot(
            cpu=self.cpu.freeze(),
            gpu=self.gpu.freeze(),
            memory=self.memory.freeze(),
            network_download=self.network_download.freeze(),
            network_upload=self.network_upload.freeze(),
        )
