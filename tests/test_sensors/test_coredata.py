"""Tests for CoreSample delta tracking and temperature extraction."""

from __future__ import annotations

from dataclasses import asdict

import pytest

from powerstat_collector.errors import ReadFailureError
from powerstat_collector.sensors.coredata import (
    CoreSample,
    apply_snapshot,
    extract_temperature,
    extract_throttle_temperature,
    wrapping_delta,
)
from powerstat_collector.sensors.msr import (
    APERF,
    C3_RESIDENCY,
    C6_RESIDENCY,
    C7_RESIDENCY,
    MPERF,
    TEMPERATURE,
    THROTTLE_TEMPERATURE,
    TIMESTAMP_COUNTER,
)

_MAX = (1 << 64) - 1


class TestWrappingDelta:
    """Tests for wrapping_delta()."""

    def test_simple_increase(self) -> None:
        assert wrapping_delta(150, 100) == 50

    def test_no_change(self) -> None:
        assert wrapping_delta(7, 7) == 0

    def test_wraparound(self) -> None:
        previous = _MAX - 9
        current = 5
        assert wrapping_delta(current, previous) == 15
        assert wrapping_delta(current, previous) == (current - previous) % (1 << 64)

    def test_never_negative(self) -> None:
        assert wrapping_delta(0, 1) == _MAX


class TestTemperatureExtraction:
    """Tests for the bit-field extractors."""

    def test_throttle_bits_23_16(self) -> None:
        assert extract_throttle_temperature(0x00AB1234) == 0xAB

    def test_temperature_bits_22_16(self) -> None:
        assert extract_temperature(0x00AB1234) == 0xAB & 0x7F

    def test_high_bits_ignored(self) -> None:
        raw = 0xFFFFFFFF_FF000000 | (0x64 << 16)
        assert extract_throttle_temperature(raw) == 0x64
        assert extract_temperature(raw | (1 << 23)) == 0x64


class TestApplySnapshot:
    """Tests for apply_snapshot()."""

    def test_initial_sample_is_zero(self) -> None:
        assert all(v == 0 for v in asdict(CoreSample()).values())

    def test_first_delta_equals_raw(self, registers: dict[int, int]) -> None:
        sample = CoreSample()
        apply_snapshot(sample, registers)
        assert sample.c3 == sample.c3_delta == registers[C3_RESIDENCY]
        assert sample.c6 == sample.c6_delta == registers[C6_RESIDENCY]
        assert sample.c7 == sample.c7_delta == registers[C7_RESIDENCY]
        assert sample.mperf == sample.mperf_delta == registers[MPERF]
        assert sample.aperf == sample.aperf_delta == registers[APERF]
        assert sample.timestamp_counter == registers[TIMESTAMP_COUNTER]
        assert sample.timestamp_counter_delta == registers[TIMESTAMP_COUNTER]

    def test_second_snapshot_deltas(self, registers: dict[int, int]) -> None:
        sample = CoreSample()
        apply_snapshot(sample, registers)
        later = {offset: value + 10 for offset, value in registers.items()}
        later[TIMESTAMP_COUNTER] = registers[TIMESTAMP_COUNTER] + 1000
        apply_snapshot(sample, later)
        assert sample.c3_delta == 10
        assert sample.c6_delta == 10
        assert sample.c7_delta == 10
        assert sample.mperf_delta == 10
        assert sample.aperf_delta == 10
        assert sample.timestamp_counter_delta == 1000
        assert sample.c3 == registers[C3_RESIDENCY] + 10

    def test_wraparound_delta(self, registers: dict[int, int]) -> None:
        sample = CoreSample()
        first = dict(registers)
        first[APERF] = _MAX - 99
        apply_snapshot(sample, first)
        second = dict(registers)
        second[APERF] = 50
        apply_snapshot(sample, second)
        assert sample.aperf_delta == 150
        assert sample.aperf == 50

    def test_temperatures_stored_not_delta_tracked(
        self, registers: dict[int, int]
    ) -> None:
        sample = CoreSample()
        raw = dict(registers)
        raw[THROTTLE_TEMPERATURE] = 0x00AB1234
        raw[TEMPERATURE] = 0x00AB1234
        apply_snapshot(sample, raw)
        apply_snapshot(sample, raw)
        assert sample.throttle_temp == 0xAB
        assert sample.temp == 0x2B
        assert not hasattr(sample, "temp_delta")
        assert not hasattr(sample, "throttle_temp_delta")

    def test_missing_offset_leaves_sample_untouched(
        self, registers: dict[int, int]
    ) -> None:
        sample = CoreSample()
        apply_snapshot(sample, registers)
        before = asdict(sample)
        partial = {k: v + 1 for k, v in registers.items() if k != C7_RESIDENCY}
        with pytest.raises(ReadFailureError) as excinfo:
            apply_snapshot(sample, partial)
        assert excinfo.value.offset == C7_RESIDENCY
        assert asdict(sample) == before
