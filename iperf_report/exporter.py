"""CSV export helpers for result rows."""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

from .results.models import METRICS

LEADING_COLUMNS = [
    "iperf_server",
    "bandwidth_direction",
    "concurrency",
    "test_started",
    "test_stopped",
    "transfer",
]
STAT_NAMES = ["min", "max", "mean", "median", "p10", "p25", "p75", "p90", "stdev"]


class CSVExporter:
    def build_csv(self, rows: Sequence[Dict[str, Any]]) -> io.StringIO:
        buffer = io.StringIO()
        header = self._header(rows)
        writer = csv.writer(buffer)
        writer.writerow(header)

        for row in rows:
            writer.writerow([self._cell(row.get(column)) for column in header])

        buffer.seek(0)
        return buffer

    def write(self, path: Path, rows: Sequence[Dict[str, Any]]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(self.build_csv(rows).getvalue())
        return path

    def _header(self, rows: Iterable[Dict[str, Any]]) -> List[str]:
        known = list(LEADING_COLUMNS)
        for metric in METRICS:
            known.extend(f"{metric}_{name}" for name in STAT_NAMES)
        present = set()
        for row in rows:
            present.update(row)
        header = [column for column in known if column in present]
        header.extend(sorted(present - set(header)))
        return header

    @staticmethod
    def _cell(value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return " ".join(str(item) for item in value)
        if isinstance(value, float):
            return round(value, 4)
        return value
