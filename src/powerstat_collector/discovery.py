"""Auto-detect available cores and capabilities at startup.

Walks sysfs, probes the MSR driver, and builds an inventory of what this
machine can provide. Used by schema.py to construct the CSV column list.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .sensors.cpufreq import discover_cpufreq
from .sensors.powerstat import MsrService

if TYPE_CHECKING:
    from .config import CollectorConfig


@dataclass
class MachineInventory:
    """Everything discovered about this machine's sampling capabilities."""

    # Per-core MSR store, already narrowed to the configured cores
    msr_service: MsrService | None = None

    # Cores selected for MSR sampling
    msr_cores: list[int] = field(default_factory=list)

    # Whether at least one selected core's MSR file is readable
    msr_loaded: bool = False

    # Selected cores with cpufreq support
    cpufreq_cpus: list[int] = field(default_factory=list)

    is_root: bool = False


def discover_machine(config: CollectorConfig) -> MachineInventory:
    """Run full discovery and return a MachineInventory."""
    inv = MachineInventory()
    inv.is_root = os.geteuid() == 0

    service = MsrService(
        cores=config.cpu_cores,
        sysfs_root=config.sysfs_root,
        msr_root=config.msr_root,
    )
    inv.msr_service = service
    inv.msr_cores = service.cores
    inv.msr_loaded = service.is_msr_loaded()

    if config.include_cpu_frequency:
        inv.cpufreq_cpus = discover_cpufreq(inv.msr_cores, config.sysfs_root)

    return inv


def print_inventory(inv: MachineInventory) -> None:
    """Print a human-readable summary of the discovered inventory."""
    print("=== Machine Inventory ===", file=sys.stderr)
    print(f"  Root: {inv.is_root}", file=sys.stderr)
    print(f"  Selected cores: {len(inv.msr_cores)}", file=sys.stderr)
    print(f"  MSR readable: {inv.msr_loaded}", file=sys.stderr)
    print(f"  cpufreq CPUs: {len(inv.cpufreq_cpus)}", file=sys.stderr)
