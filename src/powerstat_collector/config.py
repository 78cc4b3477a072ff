"""Configuration for the powerstat collector."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class CollectorConfig:
    """Runtime configuration for the powerstat collector."""

    # Output directory for CSV and metadata files
    output_dir: Path = field(default_factory=lambda: Path.home() / "powerstat_data")

    # Sampling interval in seconds
    interval: float = 1.0

    # CSV flush interval (flush every N rows)
    flush_every: int = 60

    # Maximum run duration in seconds (0 = unlimited)
    duration: int = 0

    # Core ID specifications, e.g. ["0-3,8"] (None = all cores)
    cpu_cores: list[str] | None = None

    # Whether to add a cpu{N}_freq_mhz column per sampled core
    include_cpu_frequency: bool = True

    # Base path of the per-CPU sysfs directories
    sysfs_root: str = "/sys/devices/system/cpu"

    # Base path of the per-CPU MSR device files
    msr_root: str = "/dev/cpu"

    # Log at DEBUG instead of INFO
    verbose: bool = False

    def __post_init__(self) -> None:
        self.output_dir = Path(self.output_dir)
