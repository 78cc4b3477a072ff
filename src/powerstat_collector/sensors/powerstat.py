"""Per-core MSR residency, clock and temperature sampling.

:class:`MsrService` owns one :class:`CoreSample` per selected core and
refreshes it from ``/dev/cpu/{N}/msr``.  :class:`PowerstatReader` wraps the
service for the sampling loop and turns the deltas into CSV columns.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from contextlib import AbstractContextManager
from pathlib import Path
from types import MappingProxyType
from typing import ClassVar

from ..errors import CoreReadError, ResourceUnavailableError
from ..ranges import parse_cores
from .coredata import CoreSample, apply_snapshot
from .cpufreq import read_cpu_frequency
from .msr import (
    TRACKED_OFFSETS,
    MsrFile,
    RegisterSource,
    read_named_register,
    read_snapshot,
    resolve_register,
)

log = logging.getLogger(__name__)

SourceOpener = Callable[[int], AbstractContextManager[RegisterSource]]


def discover_cores(sysfs_root: str = "/sys/devices/system/cpu") -> list[int]:
    """Return the indices of all ``cpu{N}`` directories, sorted.

    Raises:
        ResourceUnavailableError: If *sysfs_root* cannot be listed.
    """
    root = Path(sysfs_root)
    try:
        entries = sorted(root.iterdir())
    except OSError as exc:
        raise ResourceUnavailableError(
            f"unable to list CPU cores under {sysfs_root!r}: {exc}"
        ) from exc

    cores: list[int] = []
    for entry in entries:
        if not entry.name.startswith("cpu"):
            continue
        suffix = entry.name[3:]
        if suffix.isascii() and suffix.isdigit():
            cores.append(int(suffix))
    return sorted(cores)


class MsrService:
    """Per-core MSR sample store.

    The set of cores is fixed at construction: every core found under
    *sysfs_root*, narrowed to *cores* when a filter is given.  Filter
    entries with no matching core are dropped silently.

    *opener* maps a core ID to a context manager yielding its register
    source; it defaults to opening ``{msr_root}/{core}/msr``.
    """

    def __init__(
        self,
        cores: list[str] | None = None,
        sysfs_root: str = "/sys/devices/system/cpu",
        msr_root: str = "/dev/cpu",
        opener: SourceOpener | None = None,
    ) -> None:
        self._sysfs_root = sysfs_root
        self._msr_root = msr_root
        self._opener = opener or self._open_msr_file
        self._cpu_cores = parse_cores(cores)
        self._cores_data: dict[int, CoreSample] = {}
        self._locks: dict[int, threading.Lock] = {}

        try:
            available = discover_cores(sysfs_root)
        except ResourceUnavailableError as exc:
            # Not fatal: the service simply has no cores to sample.
            log.error("%s", exc)
            available = []
        if not available:
            log.debug("CPU core data wasn't found under %s", sysfs_root)

        wanted = None if self._cpu_cores is None else set(self._cpu_cores)
        for core in available:
            if wanted is not None and core not in wanted:
                continue
            self._cores_data[core] = CoreSample()
            self._locks[core] = threading.Lock()

    @property
    def cores_data(self) -> Mapping[int, CoreSample]:
        """Read-only view of the per-core samples."""
        return MappingProxyType(self._cores_data)

    @property
    def cores(self) -> list[int]:
        return list(self._cores_data)

    def _open_msr_file(self, core: int) -> MsrFile:
        return MsrFile.for_core(core, self._msr_root)

    def refresh_core(self, core: int) -> None:
        """Read all tracked registers of *core* and update its sample.

        The sample is only touched once every register has been read, so
        on failure the previous reading stays authoritative.

        Raises:
            CoreReadError: Wrapping whatever the opener, the source or the
                snapshot raised.
        """
        sample = self._cores_data.get(core)
        if sample is None:
            cause = ResourceUnavailableError(f"core {core} is not monitored")
            raise CoreReadError(core, cause) from cause

        with self._locks[core]:
            try:
                with self._opener(core) as source:
                    raw = read_snapshot(source, TRACKED_OFFSETS)
                apply_snapshot(sample, raw)
            except Exception as exc:
                raise CoreReadError(core, exc) from exc

    def read_named_register(self, core: int, name: str) -> int:
        """Read one register of *core* by its architectural name.

        Raises:
            UnknownRegisterError: If *name* is not a known register.
            ResourceUnavailableError: If the MSR file cannot be opened.
            ReadFailureError: If the read fails.
        """
        # Resolve first so a bad name never touches the device.
        resolve_register(name)
        with self._opener(core) as source:
            return read_named_register(source, name)

    def is_msr_loaded(self) -> bool:
        """Return True if at least one core's MSR file can be read."""
        for core in self._cores_data:
            try:
                self.refresh_core(core)
            except CoreReadError as exc:
                log.debug("MSR not readable on core %d: %s", core, exc)
                continue
            return True
        return False

    def retrieve_cpu_frequency(self, core: int) -> float:
        """Current frequency of *core* in MHz."""
        return read_cpu_frequency(core, self._sysfs_root)


class PowerstatReader:
    """Sampling-loop reader for MSR deltas and temperatures.

    Each core produces the columns ``msr_cpu{N}_{field}``: six counter
    deltas followed by the two temperature fields.
    A core whose refresh fails reports empty strings for that tick.
    """

    COLUMNS: ClassVar[list[str]] = []  # populated per-instance via property

    _FIELDS: ClassVar[list[tuple[str, str]]] = [
        ("c3_delta", "c3_delta"),
        ("c6_delta", "c6_delta"),
        ("c7_delta", "c7_delta"),
        ("mperf_delta", "mperf_delta"),
        ("aperf_delta", "aperf_delta"),
        ("tsc_delta", "timestamp_counter_delta"),
        ("throttle_temp", "throttle_temp"),
        ("temp", "temp"),
    ]

    def __init__(self, service: MsrService) -> None:
        self._service = service
        self._columns: list[tuple[int, str, str]] = []  # (core, column, attr)
        for core in service.cores:
            for suffix, attr in self._FIELDS:
                self._columns.append((core, f"msr_cpu{core}_{suffix}", attr))

    @property
    def columns(self) -> list[str]:
        """Return the column names for this reader instance."""
        return [col for _core, col, _attr in self._columns]

    def read(self) -> dict[str, int | float | str]:
        """Refresh every core and return the latest deltas.

        Returns:
            Dict mapping column names to integer values, or empty string
            for each column of a core that could not be read.
        """
        failed: set[int] = set()
        for core in self._service.cores:
            try:
                self._service.refresh_core(core)
            except CoreReadError as exc:
                log.warning("%s", exc)
                failed.add(core)

        data = self._service.cores_data
        result: dict[str, int | float | str] = {}
        for core, col, attr in self._columns:
            if core in failed:
                result[col] = ""
            else:
                result[col] = getattr(data[core], attr)
        return result
