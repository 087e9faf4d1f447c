"""SQLAlchemy models for the gatekeeper audit log."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all audit models."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to a naive datetime read back from SQLite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AuditLogModel(Base):
    """One gated operation: its decision and, once run, its outcome.

    ``target`` holds the container target for container operations and the
    working directory for shell commands.
    """

    __tablename__ = "audit_log"
    __table_args__ = (
        CheckConstraint("decision IN ('allow', 'deny')", name="ck_audit_log_decision"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
    domain = Column(String(16), nullable=False)
    session_id = Column(String(128), nullable=True)
    message_id = Column(String(128), nullable=True)
    operation = Column(Text, nullable=False, index=True)
    target = Column(Text, nullable=True)
    params_json = Column(Text, nullable=True)
    pattern_matched = Column(Text, nullable=True)
    decision = Column(String(8), nullable=False, index=True)
    result_summary = Column(Text, nullable=True)
    exit_code = Column(Integer, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    def to_dict(self) -> dict[str, object]:
        timestamp = as_utc(self.timestamp)
        return {
            "id": self.id,
            "timestamp": timestamp.isoformat() if timestamp else None,
            "domain": self.domain,
            "session_id": self.session_id,
            "message_id": self.message_id,
            "operation": self.operation,
            "target": self.target,
            "params_json": self.params_json,
            "pattern_matched": self.pattern_matched,
            "decision": self.decision,
            "result_summary": self.result_summary,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
        }
