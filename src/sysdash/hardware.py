"""Hardware sensor sources backed by psutil.

The aggregator only sees ``HardwareUnit`` groups and the ``OsCounters``
fallbacks defined here; anything that can produce them can stand in for
the psutil implementations (tests use in-memory fakes).
"""

import shutil
import subprocess
import time
from typing import Protocol

import psutil
import structlog

from sysdash.models import HardwareType, HardwareUnit, Sensor, SensorType

log = structlog.get_logger()

GIB = 1024**3

# psutil.sensors_temperatures() chip names and the labels that carry the
# package/die temperature on each of them
_PACKAGE_LABELS = {
    "coretemp": ("Package id 0", "Physical id 0"),
    "k10temp": ("Tctl", "Tdie"),
    "zenpower": ("Tdie", "Tctl"),
    "cpu_thermal": ("",),
    "cpu-thermal": ("",),
}


class HardwareSource(Protocol):
    """Provides the per-tick sensor readings grouped by hardware unit."""

    def read(self) -> list[HardwareUnit]: ...


class OsCounters(Protocol):
    """OS-level aggregate counters used when hardware sensors are missing."""

    def cpu_percent(self) -> float: ...

    def available_memory_gib(self) -> float: ...

    def total_memory_gib(self) -> float: ...


class PsutilCounters:
    """OsCounters implementation on top of psutil."""

    def __init__(self) -> None:
        # First call returns 0.0, prime it so the next one is meaningful
        psutil.cpu_percent(interval=None)

    def cpu_percent(self) -> float:
        return float(psutil.cpu_percent(interval=None))

    def available_memory_gib(self) -> float:
        return psutil.virtual_memory().available / GIB

    def total_memory_gib(self) -> float:
        return psutil.virtual_memory().total / GIB


class NvidiaSmiProbe:
    """Reads GPU core load and temperature through ``nvidia-smi``.

    Reports no units when the tool is not installed.
    """

    QUERY = [
        "--query-gpu=name,utilization.gpu,temperature.gpu",
        "--format=csv,noheader,nounits",
    ]

    def __init__(self, executable: str | None = None, timeout: float = 1.0) -> None:
        self._executable = executable or shutil.which("nvidia-smi")
        self._timeout = timeout

    @property
    def available(self) -> bool:
        return self._executable is not None

    def read(self) -> list[HardwareUnit]:
        if self._executable is None:
            return []
        try:
            result = subprocess.run(
                [self._executable, *self.QUERY],
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            log.warning("gpu_probe_failed", error=str(e))
            return []
        return [unit for unit in map(self._parse_line, result.stdout.splitlines()) if unit]

    @staticmethod
    def _parse_line(line: str) -> HardwareUnit | None:
        parts = [part.strip() for part in line.split(",")]
        if len(parts) != 3:
            return None
        name, load, temperature = parts
        return HardwareUnit(
            hardware_type=HardwareType.GPU,
            name=name,
            sensors=(
                Sensor("GPU Core", SensorType.LOAD, _to_float(load)),
                Sensor("GPU Core", SensorType.TEMPERATURE, _to_float(temperature)),
            ),
        )


def _to_float(text: str) -> float | None:
    """Parse a numeric field, treating "[N/A]" and friends as no reading."""
    try:
        return float(text)
    except ValueError:
        return None


class PsutilHardwareSource:
    """HardwareSource that turns psutil readings into hardware units."""

    def __init__(self, gpu_probe: NvidiaSmiProbe | None = None) -> None:
        self._gpu_probe = gpu_probe if gpu_probe is not None else NvidiaSmiProbe()
        self._last_net_io = psutil.net_io_counters()
        self._last_net_time = time.monotonic()
        psutil.cpu_percent(interval=None)

    def read(self) -> list[HardwareUnit]:
        """Collect one reading from every unit psutil can see.

        A unit whose read fails is left out of this tick; the others are
        still reported.
        """
        units = []
        for kind, build in (
            (HardwareType.CPU, self._cpu_unit),
            (HardwareType.MEMORY, self._memory_unit),
            (HardwareType.NETWORK, self._network_unit),
        ):
            try:
                units.append(build())
            except Exception:
                log.warning("hardware_unit_failed", unit=kind.value, exc_info=True)
        try:
            units.extend(self._gpu_probe.read())
        except Exception:
            log.warning("hardware_unit_failed", unit=HardwareType.GPU.value, exc_info=True)
        return units

    def _cpu_unit(self) -> HardwareUnit:
        return HardwareUnit(
            hardware_type=HardwareType.CPU,
            name="CPU",
            sensors=(
                Sensor("CPU Total", SensorType.LOAD, float(psutil.cpu_percent(interval=None))),
                Sensor("CPU Package", SensorType.TEMPERATURE, self._package_temperature()),
            ),
        )

    def _package_temperature(self) -> float | None:
        """Return the CPU package temperature, or None on platforms without it."""
        if not hasattr(psutil, "sensors_temperatures"):
            return None
        try:
            temps = psutil.sensors_temperatures()
        except Exception as e:
            log.warning("temperature_read_failed", error=str(e))
            return None
        for chip, labels in _PACKAGE_LABELS.items():
            for label in labels:
                for reading in temps.get(chip, []):
                    if not label or reading.label == label:
                        return float(reading.current)
        return None

    def _memory_unit(self) -> HardwareUnit:
        mem = psutil.virtual_memory()
        available = mem.available / GIB
        return HardwareUnit(
            hardware_type=HardwareType.MEMORY,
            name="Memory",
            sensors=(
                Sensor("Memory Used", SensorType.DATA, mem.total / GIB - available),
                Sensor("Memory Available", SensorType.DATA, available),
            ),
        )

    def _network_unit(self) -> HardwareUnit:
        """Derive bytes/s from the delta against the previous read."""
        counters = psutil.net_io_counters()
        now = time.monotonic()
        elapsed = now - self._last_net_time
        upload = download = None
        if counters is not None and self._last_net_io is not None and elapsed > 0:
            upload = max(counters.bytes_sent - self._last_net_io.bytes_sent, 0) / elapsed
            download = max(counters.bytes_recv - self._last_net_io.bytes_recv, 0) / elapsed
        self._last_net_io = counters
        self._last_net_time = now
        return HardwareUnit(
            hardware_type=HardwareType.NETWORK,
            name="Network",
            sensors=(
                Sensor("Upload Speed", SensorType.THROUGHPUT, upload),
                Sensor("Download Speed", SensorType.THROUGHPUT, download),
            ),
        )
