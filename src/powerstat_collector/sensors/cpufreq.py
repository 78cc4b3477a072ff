"""Current core frequency from ``cpufreq/scaling_cur_freq``.

The kernel reports kHz; everything here is MHz.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import ClassVar

from ..errors import MsrError, ReadFailureError, ResourceUnavailableError

log = logging.getLogger(__name__)


def cpufreq_path(core: int, sysfs_root: str = "/sys/devices/system/cpu") -> Path:
    """Return the scaling_cur_freq path for *core*."""
    return Path(sysfs_root) / f"cpu{core}" / "cpufreq" / "scaling_cur_freq"


def read_cpu_frequency(core: int, sysfs_root: str = "/sys/devices/system/cpu") -> float:
    """Read the current frequency of *core* in MHz.

    Raises:
        ResourceUnavailableError: If the cpufreq file is missing or unreadable.
        ReadFailureError: If the file does not hold an integer.
    """
    path = cpufreq_path(core, sysfs_root)
    try:
        raw = path.read_text().strip()
    except OSError as exc:
        raise ResourceUnavailableError(
            f"error reading scaling_cur_freq file on path {str(path)!r}: {exc}"
        ) from exc
    try:
        return int(raw) / 1000.0
    except ValueError:
        raise ReadFailureError(
            None, f"invalid frequency {raw!r} in {str(path)!r}"
        ) from None


def discover_cpufreq(
    cores: Iterable[int], sysfs_root: str = "/sys/devices/system/cpu"
) -> list[int]:
    """Return the cores among *cores* that expose ``scaling_cur_freq``."""
    return sorted(
        core for core in cores if cpufreq_path(core, sysfs_root).is_file()
    )


class CpufreqReader:
    """Sampling-loop reader for ``cpu{N}_freq_mhz`` columns.

    A core whose frequency cannot be read reports an empty string.
    """

    COLUMNS: ClassVar[list[str]] = []  # populated per-instance via property

    def __init__(
        self,
        cores: list[int],
        sysfs_root: str = "/sys/devices/system/cpu",
    ) -> None:
        self._sysfs_root = sysfs_root
        self._columns = [(core, f"cpu{core}_freq_mhz") for core in sorted(cores)]

    @property
    def columns(self) -> list[str]:
        return [col for _core, col in self._columns]

    def read(self) -> dict[str, int | float | str]:
        result: dict[str, int | float | str] = {}
        for core, col in self._columns:
            try:
                result[col] = read_cpu_frequency(core, self._sysfs_root)
            except MsrError as exc:
                log.debug("%s", exc)
                result[col] = ""
        return result
