"""Sampling loop.

Discovers the selected cores, builds the column schema and writes one row
per interval until the duration elapses or SIGTERM/SIGINT arrives.
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
import time
from typing import TYPE_CHECKING

from .discovery import discover_machine, print_inventory
from .schema import SensorSchema, build_schema
from .writer import CsvWriter

if TYPE_CHECKING:
    from .config import CollectorConfig

log = logging.getLogger(__name__)

# Rows between progress lines on stderr
PROGRESS_EVERY = 60

_stop = threading.Event()


def _request_stop(signum: int, frame: object) -> None:
    _stop.set()


def collect_row(schema: SensorSchema) -> dict[str, int | float | str]:
    """Read every reader once and merge the results into one row.

    A reader that raises contributes nothing; its columns stay empty.
    """
    row: dict[str, int | float | str] = {}
    for reader in schema.readers:
        try:
            row.update(reader.read())
        except Exception:
            log.warning("%s.read() failed", type(reader).__name__, exc_info=True)
    return row


def _wait_for_tick(next_tick: float, interval: float) -> float:
    """Sleep until *next_tick* and return the deadline after it.

    When sampling ran past one or more deadlines the schedule restarts
    from now instead of firing the missed ticks back to back.
    """
    remaining = next_tick - time.monotonic()
    if remaining > 0:
        _stop.wait(remaining)
        return next_tick + interval
    missed = int(-remaining / interval)
    if missed:
        log.warning("missed %d tick(s), resynchronizing", missed)
    return time.monotonic() + interval


def _sample(schema: SensorSchema, writer: CsvWriter, config: CollectorConfig) -> None:
    started = time.monotonic()
    deadline = started + config.duration if config.duration > 0 else None
    next_tick = started + config.interval

    while not _stop.is_set():
        if deadline is not None and time.monotonic() >= deadline:
            print(f"\nDuration limit reached ({config.duration}s).", file=sys.stderr)
            return

        writer.write_row(collect_row(schema))
        if writer.row_count % PROGRESS_EVERY == 0:
            print(
                f"  [{writer.row_count} rows, "
                f"{time.monotonic() - started:.0f}s elapsed]",
                file=sys.stderr,
            )
        next_tick = _wait_for_tick(next_tick, config.interval)


def run_collector(config: CollectorConfig) -> int:
    """Run discovery and the sampling loop.

    Returns:
        Process exit status: 0 on a normal stop, 1 if nothing can be sampled.
    """
    _stop.clear()
    signal.signal(signal.SIGTERM, _request_stop)
    signal.signal(signal.SIGINT, _request_stop)

    print("Discovering cores...", file=sys.stderr)
    inventory = discover_machine(config)
    print_inventory(inventory)
    if inventory.msr_cores and not inventory.msr_loaded:
        log.warning(
            "MSR files are not readable; load the msr kernel module "
            "(modprobe msr) and run as root to sample MSR counters"
        )

    schema = build_schema(inventory, config)
    if not schema.readers:
        log.error("no readable sources for the selected cores, nothing to collect")
        return 1
    print(f"  Total columns: {len(schema.columns)}", file=sys.stderr)

    writer = CsvWriter(schema.columns, config, cores=inventory.msr_cores)
    started = time.monotonic()
    try:
        with writer:
            print(
                f"\nCollecting to {writer.csv_path}\n"
                f"  Interval: {config.interval}s, "
                f"flush every {config.flush_every} rows",
                file=sys.stderr,
            )
            if config.duration > 0:
                print(f"  Duration: {config.duration}s", file=sys.stderr)
            print("  Press Ctrl+C to stop.\n", file=sys.stderr)
            _sample(schema, writer, config)
    finally:
        print(
            f"\nDone. {writer.row_count} rows in "
            f"{time.monotonic() - started:.1f}s ({writer.csv_path})",
            file=sys.stderr,
        )
    return 0
