"""Model-specific register access through the Linux ``msr`` driver.

Each logical CPU exposes its MSRs as ``/dev/cpu/{N}/msr``; the file offset
is the register address and every register is a 64-bit little-endian word.
Requires the ``msr`` kernel module and, on most systems, root.
"""

from __future__ import annotations

import logging
import os
import struct
import threading
from collections.abc import Iterable, Mapping
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from pathlib import Path
from types import MappingProxyType
from typing import Protocol

from ..errors import (
    CancelledError,
    ReadFailureError,
    ResourceUnavailableError,
    UnknownRegisterError,
)

log = logging.getLogger(__name__)

WORD_FMT = "<Q"
WORD_SIZE = struct.calcsize(WORD_FMT)  # 8 bytes

C3_RESIDENCY = 0x3FC
C6_RESIDENCY = 0x3FD
C7_RESIDENCY = 0x3FE
MPERF = 0xE7  # maximum-frequency clock count
APERF = 0xE8  # actual-frequency clock count
TIMESTAMP_COUNTER = 0x10
THROTTLE_TEMPERATURE = 0x1A2  # IA32_TEMPERATURE_TARGET
TEMPERATURE = 0x19C  # IA32_THERM_STATUS

# Registers sampled on every refresh, keyed by column-friendly name.
TRACKED_REGISTERS: Mapping[str, int] = MappingProxyType(
    {
        "c3_residency": C3_RESIDENCY,
        "c6_residency": C6_RESIDENCY,
        "c7_residency": C7_RESIDENCY,
        "mperf": MPERF,
        "aperf": APERF,
        "timestamp_counter": TIMESTAMP_COUNTER,
        "throttle_temperature": THROTTLE_TEMPERATURE,
        "temperature": TEMPERATURE,
    }
)
TRACKED_OFFSETS: tuple[int, ...] = tuple(TRACKED_REGISTERS.values())
TRACKED_NAMES: Mapping[int, str] = MappingProxyType(
    {offset: name for name, offset in TRACKED_REGISTERS.items()}
)

# Registers available for one-off reads by name.
NAMED_REGISTERS: Mapping[str, int] = MappingProxyType(
    {
        "MSR_TURBO_RATIO_LIMIT": 0x1AD,
        "MSR_TURBO_RATIO_LIMIT1": 0x1AE,
        "MSR_TURBO_RATIO_LIMIT2": 0x1AF,
        "MSR_ATOM_CORE_TURBO_RATIOS": 0x66C,
        "MSR_UNCORE_PERF_STATUS": 0x621,
        "MSR_PLATFORM_INFO": 0xCE,
        "MSR_FSB_FREQ": 0xCD,
    }
)
REGISTER_NAMES: Mapping[int, str] = MappingProxyType(
    {offset: name for name, offset in NAMED_REGISTERS.items()}
)


class RegisterSource(Protocol):
    """Anything that can return *size* bytes starting at *offset*."""

    def read_at(self, offset: int, size: int) -> bytes: ...


def msr_path(core: int, msr_root: str = "/dev/cpu") -> Path:
    """Return the MSR device path for *core*."""
    return Path(msr_root) / str(core) / "msr"


class MsrFile:
    """Read-only handle on one core's MSR device file.

    Reads go through :func:`os.pread`, which never moves the shared file
    position, so any number of threads may read from one handle at once.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fd: int | None = None

    @classmethod
    def for_core(cls, core: int, msr_root: str = "/dev/cpu") -> MsrFile:
        return cls(msr_path(core, msr_root))

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> None:
        try:
            self._fd = os.open(self._path, os.O_RDONLY)
        except FileNotFoundError as exc:
            raise ResourceUnavailableError(
                f"MSR file {str(self._path)!r} does not exist "
                "(is the msr kernel module loaded?)"
            ) from exc
        except OSError as exc:
            raise ResourceUnavailableError(
                f"error opening MSR file on path {str(self._path)!r}: {exc}"
            ) from exc

    def close(self) -> None:
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None

    def read_at(self, offset: int, size: int) -> bytes:
        if self._fd is None:
            raise ResourceUnavailableError(f"MSR file {str(self._path)!r} is not open")
        return os.pread(self._fd, size, offset)

    def __enter__(self) -> MsrFile:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()


def read_register(source: RegisterSource, offset: int) -> int:
    """Read one 64-bit register value at *offset*.

    Raises:
        ReadFailureError: On an I/O error or a short read.
    """
    try:
        data = source.read_at(offset, WORD_SIZE)
    except OSError as exc:
        raise ReadFailureError(offset, str(exc)) from exc
    if len(data) < WORD_SIZE:
        raise ReadFailureError(offset, f"short read ({len(data)} of {WORD_SIZE} bytes)")
    return struct.unpack(WORD_FMT, data[:WORD_SIZE])[0]


def _read_task(source: RegisterSource, offset: int, cancel: threading.Event) -> int:
    if cancel.is_set():
        raise CancelledError(offset)
    value = read_register(source, offset)
    # A sibling may have failed while this read was in flight.
    if cancel.is_set():
        raise CancelledError(offset)
    return value


def read_snapshot(
    source: RegisterSource,
    offsets: Iterable[int] = TRACKED_OFFSETS,
    cancel: threading.Event | None = None,
) -> dict[int, int]:
    """Read every offset concurrently and return ``{offset: value}``.

    One worker per offset reads from *source* in parallel.  The result is
    all-or-nothing: on the first failure the shared *cancel* event is set,
    workers that have not started are cancelled, in-flight workers are not
    waited for, and the failure is raised.

    Args:
        source: Register source shared by all workers.
        offsets: Register addresses to read, in no particular order.
        cancel: Optional event shared with the workers.  Setting it from
            outside abandons the snapshot as well.

    Raises:
        ReadFailureError: If any read fails.
        CancelledError: If *cancel* was set before every read completed.
    """
    offsets = list(dict.fromkeys(offsets))
    if not offsets:
        return {}
    if cancel is None:
        cancel = threading.Event()

    executor = ThreadPoolExecutor(
        max_workers=len(offsets), thread_name_prefix="msr-read"
    )
    futures: dict[Future[int], int] = {}
    try:
        for offset in offsets:
            futures[executor.submit(_read_task, source, offset, cancel)] = offset
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)

        first_error: BaseException | None = None
        for future in done:
            exc = future.exception()
            if exc is None:
                continue
            # Report the root cause rather than a sibling's cancellation.
            if first_error is None or isinstance(first_error, CancelledError):
                first_error = exc
        if first_error is not None:
            cancel.set()
            for future in pending:
                future.cancel()
            log.debug(
                "MSR snapshot abandoned, %d read(s) still pending: %s",
                len(pending),
                first_error,
            )
            raise first_error

        return {futures[future]: future.result() for future in done}
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def resolve_register(name: str) -> int:
    """Return the offset of a named register.

    Raises:
        UnknownRegisterError: If *name* is not in :data:`NAMED_REGISTERS`.
    """
    try:
        return NAMED_REGISTERS[name]
    except KeyError:
        raise UnknownRegisterError(name) from None


def read_named_register(source: RegisterSource, name: str) -> int:
    """Read a single register identified by its architectural name."""
    return read_register(source, resolve_register(name))
