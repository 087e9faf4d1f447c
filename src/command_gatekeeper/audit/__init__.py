"""Audit trail for gated operations: storage, statistics and export."""
from __future__ import annotations

from command_gatekeeper.audit.exporter import AuditExporter
from command_gatekeeper.audit.logger import AuditEntry, AuditLogger, create_audit_engine
from command_gatekeeper.audit.models import AuditLogModel, Base
from command_gatekeeper.audit.stats import (
    AuditStats,
    HierarchyNode,
    OperationCount,
    OverallStats,
    PatternStats,
    StatsFilter,
    parse_since,
)

__all__ = [
    "AuditEntry",
    "AuditExporter",
    "AuditLogModel",
    "AuditLogger",
    "AuditStats",
    "Base",
    "HierarchyNode",
    "OperationCount",
    "OverallStats",
    "PatternStats",
    "StatsFilter",
    "create_audit_engine",
    "parse_since",
]
