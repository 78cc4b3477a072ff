"""Per-core MSR sample state and delta computation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from ..errors import ReadFailureError
from .msr import (
    APERF,
    C3_RESIDENCY,
    C6_RESIDENCY,
    C7_RESIDENCY,
    MPERF,
    TEMPERATURE,
    THROTTLE_TEMPERATURE,
    TIMESTAMP_COUNTER,
    TRACKED_OFFSETS,
)

WORD_MASK = (1 << 64) - 1

# Counter field name -> register offset.  Temperatures are not listed here
# because they are extracted, not delta-tracked.
COUNTER_FIELDS: dict[str, int] = {
    "c3": C3_RESIDENCY,
    "c6": C6_RESIDENCY,
    "c7": C7_RESIDENCY,
    "mperf": MPERF,
    "aperf": APERF,
    "timestamp_counter": TIMESTAMP_COUNTER,
}


def wrapping_delta(current: int, previous: int) -> int:
    """Return ``current - previous`` modulo 2**64.

    Hardware counters wrap at the word boundary, so a smaller current
    value is a wrap, not an error.
    """
    return (current - previous) & WORD_MASK


def extract_throttle_temperature(raw: int) -> int:
    """IA32_TEMPERATURE_TARGET bits 23:16."""
    return (raw >> 16) & 0xFF


def extract_temperature(raw: int) -> int:
    """IA32_THERM_STATUS bits 22:16."""
    return (raw >> 16) & 0x7F


@dataclass
class CoreSample:
    """Latest MSR readings for one core and the deltas since the previous one.

    All fields start at zero, so the first delta equals the first raw
    reading.
    """

    c3: int = 0
    c6: int = 0
    c7: int = 0
    mperf: int = 0
    aperf: int = 0
    timestamp_counter: int = 0
    throttle_temp: int = 0
    temp: int = 0
    c3_delta: int = 0
    c6_delta: int = 0
    c7_delta: int = 0
    mperf_delta: int = 0
    aperf_delta: int = 0
    timestamp_counter_delta: int = 0


def apply_snapshot(sample: CoreSample, raw: Mapping[int, int]) -> None:
    """Fold a complete register snapshot into *sample* in place.

    Raises:
        ReadFailureError: If *raw* lacks any tracked offset.  *sample* is
            not modified in that case.
    """
    for offset in TRACKED_OFFSETS:
        if offset not in raw:
            raise ReadFailureError(offset, "missing from snapshot")

    for name, offset in COUNTER_FIELDS.items():
        new = raw[offset] & WORD_MASK
        setattr(sample, f"{name}_delta", wrapping_delta(new, getattr(sample, name)))
        setattr(sample, name, new)

    sample.throttle_temp = extract_throttle_temperature(raw[THROTTLE_TEMPERATURE])
    sample.temp = extract_temperature(raw[TEMPERATURE])
