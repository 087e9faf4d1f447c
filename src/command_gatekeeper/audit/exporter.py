"""Audit log exporter.

Exports audit records to CSV or JSON for external analysis or archival.
Records come from :meth:`AuditStats.logs`, so exports are newest first and
honour the same filters as the statistics.

Example
-------
::

    exporter = AuditExporter(AuditStats(audit_logger))
    exporter.to_csv(Path("/tmp/denied.csv"), StatsFilter(decision=Decision.DENY))
    exporter.to_json(Path("/tmp/last-week.json"), StatsFilter(since=parse_since("7d")))
"""
from __future__ import annotations

import csv
import json
from pathlib import Path

from command_gatekeeper.audit.stats import AuditStats, StatsFilter

EXPORT_FIELDS: tuple[str, ...] = (
    "timestamp",
    "session_id",
    "operation",
    "target",
    "params_json",
    "pattern_matched",
    "decision",
    "result_summary",
    "exit_code",
    "duration_ms",
)


class AuditExporter:
    """Exports audit log records to structured file formats.

    Parameters
    ----------
    stats:
        The query layer whose :meth:`~AuditStats.logs` supplies the records.
    """

    def __init__(self, stats: AuditStats) -> None:
        self._stats = stats

    def records(
        self,
        stats_filter: StatsFilter | None = None,
        limit: int = 1000,
    ) -> list[dict[str, object]]:
        """Return the export rows: the :data:`EXPORT_FIELDS` of each record."""
        return [
            {key: record.get(key) for key in EXPORT_FIELDS}
            for record in self._stats.logs(stats_filter, limit=limit)
        ]

    def to_csv(
        self,
        output_path: Path,
        stats_filter: StatsFilter | None = None,
        limit: int = 1000,
    ) -> int:
        """Export matching records to a CSV file with a header row.

        Missing values are written as empty cells.

        Returns
        -------
        int
            Number of records written.
        """
        data = self.records(stats_filter, limit)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=list(EXPORT_FIELDS))
            writer.writeheader()
            for record in data:
                writer.writerow(
                    {key: "" if value is None else value for key, value in record.items()}
                )
        return len(data)

    def to_json(
        self,
        output_path: Path,
        stats_filter: StatsFilter | None = None,
        limit: int = 1000,
        indent: int = 2,
    ) -> int:
        """Export matching records to a JSON array file.

        Returns
        -------
        int
            Number of records written.
        """
        data = self.records(stats_filter, limit)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=indent, default=str)
        return len(data)
