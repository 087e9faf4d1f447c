"""Relational audit logger for gated operations.

Every gated operation produces one row: written when the decision is made
(:meth:`AuditLogger.record_attempt`) and, for allowed operations, updated
once the operation has run (:meth:`AuditLogger.record_outcome`).  The two
writes are correlated only by the row id returned from the first, so a
missing outcome update never corrupts the attempt record.

Writes are serialised with a ``threading.Lock``; reads take no lock.

Example
-------
::

    audit = AuditLogger("sqlite:////tmp/audit.db", Domain.SHELL)
    entry_id = audit.record_attempt(
        AuditEntry(operation="ls -la", decision=Decision.ALLOW, target="/project")
    )
    audit.record_outcome(entry_id, "success", 42, exit_code=0)
"""
from __future__ import annotations

import json
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from command_gatekeeper.audit.models import AuditLogModel, Base
from command_gatekeeper.permissions.constraints import Domain
from command_gatekeeper.permissions.rules import Decision

logger = logging.getLogger(__name__)

_MEMORY_DATABASES: frozenset[str | None] = frozenset({None, "", ":memory:"})


@dataclass(frozen=True)
class AuditEntry:
    """The attempt half of an audit record.

    Attributes
    ----------
    operation:
        The command line, or the container operation type.
    decision:
        The final decision, after constraints.
    session_id, message_id:
        Opaque identifiers of the caller's conversation and request.
    target:
        Container target, or the working directory of a shell command.
    pattern_matched:
        The deciding rule's pattern; ``None`` when the default applied.
    params:
        Request parameters, stored as JSON.
    """

    operation: str
    decision: Decision
    session_id: str | None = None
    message_id: str | None = None
    target: str | None = None
    pattern_matched: str | None = None
    params: Mapping[str, object] | None = None
    result_summary: str | None = None
    exit_code: int | None = None
    duration_ms: int | None = None


def _prepare_url(database_url: str | URL) -> URL:
    """Expand ``~`` in SQLite paths and create the parent directory."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or url.database in _MEMORY_DATABASES:
        return url
    path = Path(url.database).expanduser()  # type: ignore[arg-type]
    path.parent.mkdir(parents=True, exist_ok=True)
    return url.set(database=str(path))


def create_audit_engine(database_url: str | URL) -> Engine:
    """Create an engine for *database_url* and make sure the schema exists."""
    url = _prepare_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database in _MEMORY_DATABASES:
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(url, pool_pre_ping=True)
    Base.metadata.create_all(engine)
    return engine


class AuditLogger:
    """Stores audit records for one domain in a SQL database.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL.  ``sqlite:///~/.gatekeeper/audit.db`` style paths
        are expanded and their directory created.
    domain:
        Stamped on every record written by this logger, and used to scope
        every read.
    """

    def __init__(
        self,
        database_url: str | URL = "sqlite://",
        domain: Domain = Domain.SHELL,
    ) -> None:
        self._engine = create_audit_engine(database_url)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False)
        self._domain = domain
        self._lock = threading.Lock()

    @property
    def domain(self) -> Domain:
        return self._domain

    @property
    def engine(self) -> Engine:
        return self._engine

    def session(self) -> Session:
        """Open a new ORM session bound to the audit database."""
        return self._session_factory()

    def close(self) -> None:
        self._engine.dispose()

    # ------------------------------------------------------------------
    # Write API
    # ------------------------------------------------------------------

    def record_attempt(self, entry: AuditEntry) -> int:
        """Insert one record and return its id.

        Raises
        ------
        sqlalchemy.exc.SQLAlchemyError
            If the database cannot be written.
        """
        row = AuditLogModel(
            domain=self._domain.value,
            session_id=entry.session_id,
            message_id=entry.message_id,
            operation=entry.operation,
            target=entry.target,
            params_json=(
                json.dumps(dict(entry.params), default=str, sort_keys=True)
                if entry.params is not None
                else None
            ),
            pattern_matched=entry.pattern_matched,
            decision=Decision(entry.decision).value,
            result_summary=entry.result_summary,
            exit_code=entry.exit_code,
            duration_ms=entry.duration_ms,
        )
        with self._lock, self.session() as session:
            session.add(row)
            session.commit()
            entry_id = int(row.id)

        logger.debug(
            "Audit %s #%d: %s %r", self._domain.value, entry_id, row.decision, row.operation
        )
        return entry_id

    def record_outcome(
        self,
        entry_id: int,
        summary: str | None = None,
        duration_ms: int | None = None,
        exit_code: int | None = None,
    ) -> bool:
        """Attach the execution outcome to record *entry_id*.

        Only the supplied fields are written.

        Returns
        -------
        bool
            ``False`` when no record with that id exists in this domain.
        """
        with self._lock, self.session() as session:
            row = session.get(AuditLogModel, entry_id)
            if row is None or row.domain != self._domain.value:
                logger.warning("Audit record #%d not found; outcome dropped", entry_id)
                return False
            if summary is not None:
                row.result_summary = summary
            if duration_ms is not None:
                row.duration_ms = int(duration_ms)
            if exit_code is not None:
                row.exit_code = exit_code
            session.commit()
        return True

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get(self, entry_id: int) -> dict[str, object] | None:
        """Return one record as a dict, or ``None``."""
        with self.session() as session:
            row = session.get(AuditLogModel, entry_id)
            if row is None or row.domain != self._domain.value:
                return None
            return row.to_dict()

    def read_all(self) -> list[dict[str, object]]:
        """Return every record of this domain in insertion order."""
        stmt = (
            select(AuditLogModel)
            .where(AuditLogModel.domain == self._domain.value)
            .order_by(AuditLogModel.id)
        )
        with self.session() as session:
            return [row.to_dict() for row in session.scalars(stmt)]

    def last_n(self, n: int) -> list[dict[str, object]]:
        """Return the ``n`` most recent records, oldest first."""
        if n <= 0:
            return []
        stmt = (
            select(AuditLogModel)
            .where(AuditLogModel.domain == self._domain.value)
            .order_by(AuditLogModel.id.desc())
            .limit(n)
        )
        with self.session() as session:
            rows = [row.to_dict() for row in session.scalars(stmt)]
        rows.reverse()
        return rows

    def count(self) -> int:
        """Return the number of records in this domain."""
        stmt = (
            select(func.count())
            .select_from(AuditLogModel)
            .where(AuditLogModel.domain == self._domain.value)
        )
        with self.session() as session:
            return int(session.scalar(stmt) or 0)
