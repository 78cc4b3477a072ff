"""Shared fixtures: fake sysfs CPU trees and in-memory MSR sources."""

from __future__ import annotations

import errno
import struct
import threading
from pathlib import Path

import pytest

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


def sample_registers(base: int = 1000) -> dict[int, int]:
    """Distinct raw values for every tracked register."""
    return {
        C3_RESIDENCY: base + 3,
        C6_RESIDENCY: base + 6,
        C7_RESIDENCY: base + 7,
        MPERF: base + 100,
        APERF: base + 200,
        TIMESTAMP_COUNTER: base + 300,
        THROTTLE_TEMPERATURE: 0x00640000,  # 100 in bits 23:16
        TEMPERATURE: 0x002A0000,  # 42 in bits 22:16
    }


class FakeMsrSource:
    """In-memory register source keyed by register address.

    Unlike a flat file, neighbouring addresses (0x3FC, 0x3FD, ...) hold
    independent 64-bit values, as they do on the real device.
    """

    def __init__(
        self,
        registers: dict[int, int] | None = None,
        fail_at: set[int] | None = None,
        short_at: set[int] | None = None,
    ) -> None:
        self.registers = dict(registers or {})
        self.fail_at = set(fail_at or ())
        self.short_at = set(short_at or ())
        self.reads: list[int] = []
        self.open_count = 0
        self._lock = threading.Lock()

    def read_at(self, offset: int, size: int) -> bytes:
        with self._lock:
            self.reads.append(offset)
        if offset in self.fail_at or offset not in self.registers:
            raise OSError(errno.EIO, "Input/output error")
        data = struct.pack("<Q", self.registers[offset])
        if offset in self.short_at:
            return data[:3]
        return data[:size]

    def __enter__(self) -> FakeMsrSource:
        self.open_count += 1
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None


@pytest.fixture()
def fake_sysfs(tmp_path: Path) -> Path:
    """Create a fake /sys/devices/system/cpu tree with four cores."""
    root = tmp_path / "cpu"
    for i in range(4):
        freq_dir = root / f"cpu{i}" / "cpufreq"
        freq_dir.mkdir(parents=True)
        (freq_dir / "scaling_cur_freq").write_text(f"{2400000 + i * 100000}\n")

    # Non-core entries should be ignored
    (root / "cpufreq").mkdir()
    (root / "cpuidle").mkdir()
    (root / "online").write_text("0-3\n")

    return root


@pytest.fixture()
def make_source() -> type[FakeMsrSource]:
    """Return the fake register source class for building test sources."""
    return FakeMsrSource


@pytest.fixture()
def registers() -> dict[int, int]:
    """Raw values for every tracked register."""
    return sample_registers()
