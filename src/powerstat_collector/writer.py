"""CSV output with a JSON metadata sidecar.

Every sampling tick becomes one CSV row.  Next to the CSV sits
``<basename>.meta.json`` describing the run: host, sampled cores, the MSR
addresses behind the columns and the collector configuration.  The sidecar
is rewritten on close with the end time and the number of rows.
"""

from __future__ import annotations

import csv
import json
import os
import platform
import socket
import time
from dataclasses import asdict
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

from .sensors.msr import TRACKED_REGISTERS

if TYPE_CHECKING:
    from .config import CollectorConfig


def output_basename(prefix: str = "powerstat") -> str:
    """``{prefix}_{hostname}_{UTC start time}``, shared by the CSV and sidecar."""
    stamp = time.strftime("%Y%m%d_%H%M%S", time.gmtime())
    return f"{prefix}_{socket.gethostname()}_{stamp}"


def _utc_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def build_metadata(
    config: CollectorConfig,
    columns: list[str],
    cores: list[int],
    csv_name: str,
) -> dict[str, Any]:
    """Describe a run for the sidecar file."""
    settings = asdict(config)
    settings["output_dir"] = str(config.output_dir)
    return {
        "hostname": socket.gethostname(),
        "platform": platform.platform(),
        "kernel": platform.release(),
        "python_version": platform.python_version(),
        "pid": os.getpid(),
        "start_time_utc": _utc_now(),
        "csv_file": csv_name,
        "cores": cores,
        "registers": {
            name: f"0x{addr:X}" for name, addr in TRACKED_REGISTERS.items()
        },
        "columns": columns,
        "column_count": len(columns),
        "interval_s": config.interval,
        "config": settings,
    }


class CsvWriter:
    """Row-buffered CSV writer; fsyncs every ``config.flush_every`` rows."""

    def __init__(
        self,
        columns: list[str],
        config: CollectorConfig,
        cores: list[int] | None = None,
    ) -> None:
        self._columns = list(columns)
        self._config = config
        self._cores = list(cores or [])
        self._flush_every = max(1, config.flush_every)

        out_dir: Path = config.output_dir
        out_dir.mkdir(parents=True, exist_ok=True)
        base = output_basename()
        self._csv_path = out_dir / f"{base}.csv"
        self._meta_path = out_dir / f"{base}.meta.json"

        self._stream: IO[str] | None = None
        self._rows: csv.DictWriter[str] | None = None
        self._row_count = 0
        self._unflushed = 0

    @property
    def csv_path(self) -> Path:
        return self._csv_path

    @property
    def meta_path(self) -> Path:
        return self._meta_path

    @property
    def row_count(self) -> int:
        """Rows written since :meth:`open`."""
        return self._row_count

    def open(self) -> None:
        """Create the CSV with its header row and write the sidecar."""
        self._stream = open(self._csv_path, "w", newline="")  # noqa: SIM115
        self._rows = csv.DictWriter(
            self._stream, fieldnames=self._columns, extrasaction="ignore"
        )
        self._rows.writeheader()
        self._dump_metadata(
            build_metadata(
                self._config, self._columns, self._cores, self._csv_path.name
            )
        )

    def write_row(self, row: dict[str, int | float | str]) -> None:
        """Append *row*; keys outside the column list are dropped."""
        if self._rows is None:
            raise RuntimeError("CsvWriter not opened; call open() first")
        self._rows.writerow(row)
        self._row_count += 1
        self._unflushed += 1
        if self._unflushed >= self._flush_every:
            self.flush()

    def flush(self) -> None:
        if self._stream is None:
            return
        self._stream.flush()
        os.fsync(self._stream.fileno())
        self._unflushed = 0

    def close(self) -> None:
        """Flush the CSV and stamp the sidecar with the final row count."""
        if self._stream is not None:
            self.flush()
            self._stream.close()
            self._stream = None
            self._rows = None

        if not self._meta_path.exists():
            return
        meta = json.loads(self._meta_path.read_text())
        meta["end_time_utc"] = _utc_now()
        meta["total_rows"] = self._row_count
        self._dump_metadata(meta)

    def _dump_metadata(self, meta: dict[str, Any]) -> None:
        self._meta_path.write_text(json.dumps(meta, indent=2) + "\n")

    def __enter__(self) -> CsvWriter:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
