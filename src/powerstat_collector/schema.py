"""Turn a MachineInventory into readers and an ordered CSV column list.

MSR columns come first, grouped by core, followed by the optional
frequency columns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from .sensors.cpufreq import CpufreqReader
from .sensors.powerstat import PowerstatReader

if TYPE_CHECKING:
    from .config import CollectorConfig
    from .discovery import MachineInventory


class SensorReader(Protocol):
    """What the sampling loop needs from a reader."""

    @property
    def columns(self) -> list[str]: ...

    def read(self) -> dict[str, int | float | str]: ...


@dataclass
class SensorSchema:
    """Readers in sampling order and the columns they fill."""

    readers: list[SensorReader] = field(default_factory=list)

    @property
    def columns(self) -> list[str]:
        return [col for reader in self.readers for col in reader.columns]


def build_schema(inventory: MachineInventory, config: CollectorConfig) -> SensorSchema:
    """Instantiate a reader for every source the inventory found usable."""
    schema = SensorSchema()

    if inventory.msr_service is not None and inventory.msr_loaded:
        schema.readers.append(PowerstatReader(inventory.msr_service))

    if config.include_cpu_frequency and inventory.cpufreq_cpus:
        schema.readers.append(
            CpufreqReader(inventory.cpufreq_cpus, sysfs_root=config.sysfs_root)
        )

    return schema
