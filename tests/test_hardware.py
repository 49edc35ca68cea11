"""Tests for the psutil hardware source and GPU probe."""

import subprocess
from types import SimpleNamespace
from unittest.mock import patch

from structlog.testing import capture_logs

from sysdash.hardware import NvidiaSmiProbe, PsutilCounters, PsutilHardwareSource
from sysdash.models import HardwareType, SensorType


def _source() -> PsutilHardwareSource:
    return PsutilHardwareSource(gpu_probe=NvidiaSmiProbe(executable=None))


def test_read_reports_cpu_memory_network():
    units = _source().read()
    kinds = [unit.hardware_type for unit in units]
    assert kinds == [HardwareType.CPU, HardwareType.MEMORY, HardwareType.NETWORK]


def test_cpu_unit_has_total_load():
    cpu = _source().read()[0]
    load = cpu.reading(SensorType.LOAD, "Total")
    assert load is not None
    assert load >= 0.0


def test_memory_sensors_add_up_to_total():
    memory = _source().read()[1]
    used = memory.reading(SensorType.DATA, "Used")
    available = memory.reading(SensorType.DATA, "Available")
    assert used is not None and available is not None
    assert used + available > 0


def test_network_needs_baseline():
    source = _source()
    network = source.read()[2]
    upload = network.reading(SensorType.THROUGHPUT, "Upload")
    assert upload is None or upload >= 0.0


def test_package_temperature_from_coretemp():
    temps = {
        "coretemp": [
            SimpleNamespace(label="Core 0", current=50.0),
            SimpleNamespace(label="Package id 0", current=57.0),
        ]
    }
    source = _source()
    with patch("sysdash.hardware.psutil.sensors_temperatures", return_value=temps, create=True):
        assert source._package_temperature() == 57.0


def test_package_temperature_missing():
    source = _source()
    with patch("sysdash.hardware.psutil.sensors_temperatures", return_value={}, create=True):
        assert source._package_temperature() is None


def test_counters_report_memory():
    counters = PsutilCounters()
    assert counters.total_memory_gib() > 0
    assert 0 <= counters.available_memory_gib() <= counters.total_memory_gib()
    assert counters.cpu_percent() >= 0.0


class TestNvidiaSmiProbe:
    """Tests for the nvidia-smi GPU probe."""

    def test_unavailable_reports_nothing(self):
        with patch("sysdash.hardware.shutil.which", return_value=None):
            probe = NvidiaSmiProbe()
        assert not probe.available
        assert probe.read() == []

    def test_parses_each_gpu(self):
        output = "NVIDIA GeForce RTX 3080, 37, 64\nNVIDIA T4, [N/A], 41\n"
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout=output)
        probe = NvidiaSmiProbe(executable="/usr/bin/nvidia-smi")

        with patch("sysdash.hardware.subprocess.run", return_value=completed):
            units = probe.read()

        assert [unit.name for unit in units] == ["NVIDIA GeForce RTX 3080", "NVIDIA T4"]
        assert all(unit.hardware_type is HardwareType.GPU for unit in units)
        assert units[0].reading(SensorType.LOAD, "Core") == 37.0
        assert units[0].reading(SensorType.TEMPERATURE, "Core") == 64.0
        assert units[1].reading(SensorType.LOAD, "Core") is None

    def test_failure_reports_nothing(self):
        probe = NvidiaSmiProbe(executable="/usr/bin/nvidia-smi")
        error = subprocess.TimeoutExpired(cmd="nvidia-smi", timeout=1.0)
        with patch("sysdash.hardware.subprocess.run", side_effect=error):
            assert probe.read() == []

    def test_malformed_lines_skipped(self):
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="garbage\n")
        probe = NvidiaSmiProbe(executable="/usr/bin/nvidia-smi")
        with patch("sysdash.hardware.subprocess.run", return_value=completed):
            assert probe.read() == []


def test_network_fault_drops_only_network_unit():
    source = _source()
    with patch("sysdash.hardware.psutil.net_io_counters", side_effect=RuntimeError("gone")):
        with capture_logs() as logs:
            units = source.read()

    assert [unit.hardware_type for unit in units] == [HardwareType.CPU, HardwareType.MEMORY]
    assert any(e["event"] == "hardware_unit_failed" and e["unit"] == "network" for e in logs)


def test_temperature_fault_only_nulls_package_sensor():
    source = _source()
    with patch(
        "sysdash.hardware.psutil.sensors_temperatures",
        side_effect=ValueError("bad sysfs value"),
        create=True,
    ):
        cpu = source.read()[0]

    assert cpu.hardware_type is HardwareType.CPU
    assert cpu.reading(SensorType.LOAD, "Total") is not None
    assert cpu.reading(SensorType.TEMPERATURE, "Package") is None


def test_gpu_probe_fault_keeps_other_units():
    class BrokenProbe:
        def read(self):
            raise RuntimeError("driver crashed")

    source = PsutilHardwareSource(gpu_probe=BrokenProbe())
    kinds = [unit.hardware_type for unit in source.read()]
    assert kinds == [HardwareType.CPU, HardwareType.MEMORY, HardwareType.NETWORK]
