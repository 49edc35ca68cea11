"""Tests for metric history buffers."""

import pytest

from sysdash.models import MetricsSnapshot
from sysdash.series import MetricHistory, SeriesBuffer


def test_buffer_prefilled_with_zeros():
    buffer = SeriesBuffer(5)
    assert len(buffer) == 5
    assert buffer.values == [0.0] * 5
    assert buffer.capacity == 5


def test_buffer_default_capacity_is_one_minute():
    assert len(SeriesBuffer()) == 60


def test_push_evicts_oldest():
    """Each push drops the oldest value and appends at the tail."""
    buffer = SeriesBuffer(3)
    for value in (1.0, 2.0, 3.0, 4.0):
        buffer.push(value)
    assert buffer.values == [2.0, 3.0, 4.0]
    assert buffer.latest == 4.0


@pytest.mark.parametrize("capacity", [1, 2, 7, 60])
def test_length_is_invariant(capacity):
    buffer = SeriesBuffer(capacity)
    for i in range(capacity * 3 + 1):
        buffer.push(float(i))
        assert len(buffer) == capacity


def test_partial_fill_keeps_leading_zeros():
    buffer = SeriesBuffer(4)
    buffer.push(7.0)
    assert buffer.values == [0.0, 0.0, 0.0, 7.0]


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        SeriesBuffer(0)


def test_values_returns_copy():
    buffer = SeriesBuffer(2)
    values = buffer.values
    values.append(99.0)
    assert len(buffer) == 2


def test_freeze_is_immutable_snapshot():
    buffer = SeriesBuffer(2)
    buffer.push(1.0)
    frozen = buffer.freeze()
    buffer.push(2.0)
    assert frozen == (0.0, 1.0)
    assert isinstance(frozen, tuple)


class TestMetricHistory:
    """Tests for MetricHistory."""

    def test_push_fills_every_series(self):
        history = MetricHistory(3)
        history.push(
            MetricsSnapshot(
                cpu_usage_percent=40.0,
                gpu_usage_percent=20.0,
                memory_used_gib=4.0,
                memory_total_gib=8.0,
                network_upload_mbps=0.5,
                network_download_mbps=1.5,
            )
        )
        frozen = history.freeze()
        assert frozen.cpu == (0.0, 0.0, 40.0)
        assert frozen.gpu == (0.0, 0.0, 20.0)
        assert frozen.memory == (0.0, 0.0, 50.0)
        assert frozen.network_download == (0.0, 0.0, 1.5)
        assert frozen.network_upload == (0.0, 0.0, 0.5)

    def test_freeze_is_detached_from_later_pushes(self):
        history = MetricHistory(2)
        frozen = history.freeze()
        history.push(MetricsSnapshot(cpu_usage_percent=10.0))
        assert frozen.cpu == (0.0, 0.0)
