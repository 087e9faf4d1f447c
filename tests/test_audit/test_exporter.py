"""Tests for AuditExporter."""
from __future__ import annotations

import csv
import json
from pathlib import Path

import pytest

from command_gatekeeper.audit.exporter import EXPORT_FIELDS, AuditExporter
from command_gatekeeper.audit.logger import AuditEntry, AuditLogger
from command_gatekeeper.audit.stats import AuditStats, StatsFilter
from command_gatekeeper.permissions.constraints import Domain
from command_gatekeeper.permissions.rules import Decision


@pytest.fixture()
def exporter() -> AuditExporter:
    audit = AuditLogger("sqlite://", Domain.SHELL)
    audit.record_attempt(
        AuditEntry(operation="git status", decision=Decision.ALLOW, pattern_matched="git *")
    )
    audit.record_attempt(
        AuditEntry(operation='echo "a, b"', decision=Decision.DENY, session_id="s-1")
    )
    return AuditExporter(AuditStats(audit))


class TestCsvExport:
    def test_header_and_rows(self, exporter: AuditExporter, tmp_path: Path) -> None:
        out = tmp_path / "audit.csv"
        assert exporter.to_csv(out) == 2
        with out.open(newline="", encoding="utf-8") as fh:
            rows = list(csv.DictReader(fh))
        assert list(rows[0].keys()) == list(EXPORT_FIELDS)
        assert rows[0]["operation"] == 'echo "a, b"'
        assert rows[1]["pattern_matched"] == "git *"

    def test_none_written_as_empty(self, exporter: AuditExporter, tmp_path: Path) -> None:
        out = tmp_path / "audit.csv"
        exporter.to_csv(out)
        with out.open(newline="", encoding="utf-8") as fh:
            rows = list(csv.DictReader(fh))
        assert rows[0]["pattern_matched"] == ""

    def test_filter(self, exporter: AuditExporter, tmp_path: Path) -> None:
        out = tmp_path / "denied.csv"
        assert exporter.to_csv(out, StatsFilter(decision=Decision.DENY)) == 1

    def test_creates_parent_dirs(self, exporter: AuditExporter, tmp_path: Path) -> None:
        out = tmp_path / "a" / "b" / "audit.csv"
        exporter.to_csv(out)
        assert out.exists()


class TestJsonExport:
    def test_array_of_records(self, exporter: AuditExporter, tmp_path: Path) -> None:
        out = tmp_path / "audit.json"
        assert exporter.to_json(out, limit=1) == 1
        data = json.loads(out.read_text(encoding="utf-8"))
        assert isinstance(data, list)
        assert set(data[0]) == set(EXPORT_FIELDS)
        assert data[0]["session_id"] == "s-1"
        assert data[0]["pattern_matched"] is None

    def test_empty_export(self, tmp_path: Path) -> None:
        exporter = AuditExporter(AuditStats(AuditLogger()))
        out = tmp_path / "empty.json"
        assert exporter.to_json(out) == 0
        assert json.loads(out.read_text(encoding="utf-8")) == []
