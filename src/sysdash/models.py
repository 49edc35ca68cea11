"""Data models for sysdash."""

import time
from dataclasses import dataclass, field
from enum import Enum


class HardwareType(Enum):
    """Kind of physical subsystem a hardware unit represents."""

    CPU = "cpu"
    GPU = "gpu"
    MEMORY = "memory"
    NETWORK = "network"


class SensorType(Enum):
    """What a sensor measures."""

    LOAD = "load"  # Percent
    TEMPERATURE = "temperature"  # Celsius
    DATA = "data"  # GiB
    THROUGHPUT = "throughput"  # Bytes per second


@dataclass(slots=True, frozen=True)
class Sensor:
    """A named reading. ``value`` is None when the sensor has nothing this tick."""

    name: str
    sensor_type: SensorType
    value: float | None = None


@dataclass(slots=True, frozen=True)
class HardwareUnit:
    """A physical subsystem and the sensors it exposes."""

    hardware_type: HardwareType
    name: str
    sensors: tuple[Sensor, ...] = ()

    def find(self, sensor_type: SensorType, name_part: str) -> Sensor | None:
        """Return the first sensor of ``sensor_type`` whose name contains ``name_part``."""
        for sensor in self.sensors:
            if sensor.sensor_type is sensor_type and name_part in sensor.name:
                return sensor
        return None

    def reading(self, sensor_type: SensorType, name_part: str) -> float | None:
        """Return the current value of the matching sensor, if it has one."""
        sensor = self.find(sensor_type, name_part)
        return sensor.value if sensor is not None else None


@dataclass(slots=True, frozen=True)
class MetricsSnapshot:
    """Immutable set of resolved metric values for one sampling tick."""

    cpu_usage_percent: float = 0.0  # Not clamped, sources can report slightly over 100
    cpu_temperature_celsius: float = 0.0
    gpu_usage_percent: float = 0.0
    gpu_temperature_celsius: float = 0.0
    memory_used_gib: float = 0.0
    memory_total_gib: float = 0.0
    network_upload_mbps: float = 0.0
    network_download_mbps: float = 0.0
    timestamp: float = field(default_factory=time.time)

    @property
    def memory_usage_percent(self) -> float:
        """Used memory as a percentage of total, 0 when the total is unknown."""
        if self.memory_total_gib <= 0:
            return 0.0
        percent = self.memory_used_gib / self.memory_total_gib * 100
        return min(max(percent, 0.0), 100.0)


class ProcessStatus(Enum):
    """Display status of a tracked process."""

    RUNNING = "Running"


@dataclass(slots=True)
class ProcessEntry:
    """One tracked OS process. Only ``memory_mib`` changes after creation."""

    pid: int
    name: str
    memory_mib: float
    file_path: str = ""  # Empty when the executable path is not readable
    status: ProcessStatus = ProcessStatus.RUNNING
