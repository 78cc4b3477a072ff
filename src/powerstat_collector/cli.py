"""Command-line interface for the powerstat collector."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import CollectorConfig


def parse_args(argv: list[str] | None = None) -> CollectorConfig:
    """Parse command-line arguments and return a CollectorConfig."""
    parser = argparse.ArgumentParser(
        prog="powerstat-collector",
        description="Sample per-core MSR residency, clock and temperature counters",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=Path.home() / "powerstat_data",
        help="Output directory for CSV and metadata files "
        "(default: ~/powerstat_data)",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=1.0,
        help="Sampling interval in seconds (default: 1.0)",
    )
    parser.add_argument(
        "--flush-every",
        type=int,
        default=60,
        help="Flush CSV every N rows (default: 60)",
    )
    parser.add_argument(
        "-d",
        "--duration",
        type=int,
        default=0,
        help="Run duration in seconds, 0 for unlimited (default: 0)",
    )
    parser.add_argument(
        "-c",
        "--cores",
        action="append",
        default=None,
        metavar="SPEC",
        help=(
            "Cores to sample as IDs and ranges, e.g. '0-3,8'. "
            "May be repeated (default: all cores)"
        ),
    )
    parser.add_argument(
        "--no-cpu-freq",
        action="store_true",
        help="Skip the per-core scaling_cur_freq columns",
    )
    parser.add_argument(
        "--sysfs-root",
        default="/sys/devices/system/cpu",
        help="CPU sysfs directory (default: /sys/devices/system/cpu)",
    )
    parser.add_argument(
        "--msr-root",
        default="/dev/cpu",
        help="MSR device directory (default: /dev/cpu)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    return CollectorConfig(
        output_dir=args.output_dir,
        interval=args.interval,
        flush_every=args.flush_every,
        duration=args.duration,
        cpu_cores=args.cores,
        include_cpu_frequency=not args.no_cpu_freq,
        sysfs_root=args.sysfs_root,
        msr_root=args.msr_root,
        verbose=args.verbose,
    )


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> None:
    """Entry point for the powerstat collector CLI."""
    config = parse_args(argv)
    configure_logging(config.verbose)

    # Import here so --help works on any platform
    from .collector import run_collector

    try:
        status = run_collector(config)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)
    sys.exit(status)
