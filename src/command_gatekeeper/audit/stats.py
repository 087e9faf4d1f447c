"""Aggregate queries over the audit log.

AuditStats wraps an :class:`~command_gatekeeper.audit.logger.AuditLogger`
and answers the questions an operator asks of it: how much was allowed,
which rules fire most, what keeps getting denied, and how commands group
by their leading words.

Example
-------
::

    stats = AuditStats(AuditLogger("sqlite:////tmp/audit.db", Domain.SHELL))
    overview = stats.overall(StatsFilter(since=parse_since("7d")))
    print(overview.denied, "denied of", overview.total)
    print(stats.render_hierarchy(stats.hierarchy(min_count=2), min_count=2))
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import Select, case, func, select

from command_gatekeeper.audit.logger import AuditLogger
from command_gatekeeper.audit.models import AuditLogModel, as_utc
from command_gatekeeper.permissions.rules import Decision

logger = logging.getLogger(__name__)

_RELATIVE_RE = re.compile(r"^(\d+)(h|d|w|m)$")
_UNIT_HOURS: dict[str, int] = {"h": 1, "d": 24, "w": 7 * 24, "m": 30 * 24}
_NAMED_PERIODS: dict[str, timedelta] = {
    "hour": timedelta(hours=1),
    "day": timedelta(hours=24),
    "24h": timedelta(hours=24),
    "week": timedelta(days=7),
    "7d": timedelta(days=7),
    "month": timedelta(days=30),
    "30d": timedelta(days=30),
}
_DEFAULT_WINDOW = timedelta(hours=24)


def parse_since(since: str, now: datetime | None = None) -> datetime:
    """Turn a time filter into an absolute UTC datetime.

    Accepts ``<n>h``, ``<n>d``, ``<n>w`` and ``<n>m`` (months of 30 days),
    the names ``hour``, ``day``, ``week`` and ``month``, or an ISO-8601
    date.  Anything else falls back to the last 24 hours.

    Parameters
    ----------
    since:
        The filter text.
    now:
        Reference time; defaults to the current UTC time.

    Examples
    --------
    >>> ref = datetime(2024, 1, 8, tzinfo=timezone.utc)
    >>> parse_since("1w", now=ref).isoformat()
    '2024-01-01T00:00:00+00:00'
    """
    now = now or datetime.now(timezone.utc)

    match = _RELATIVE_RE.match(since)
    if match:
        return now - timedelta(hours=int(match.group(1)) * _UNIT_HOURS[match.group(2)])

    named = _NAMED_PERIODS.get(since.lower())
    if named is not None:
        return now - named

    try:
        parsed = datetime.fromisoformat(since.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unrecognised time filter %r; using the last 24 hours", since)
        return now - _DEFAULT_WINDOW

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatsFilter:
    """Restricts a query to records at or after ``since`` and/or one decision."""

    since: datetime | None = None
    decision: Decision | None = None


@dataclass(frozen=True)
class OverallStats:
    total: int
    allowed: int
    denied: int
    avg_duration_ms: float | None

    @property
    def allowed_pct(self) -> float:
        return self.allowed / self.total * 100 if self.total else 0.0

    @property
    def denied_pct(self) -> float:
        return self.denied / self.total * 100 if self.total else 0.0


@dataclass(frozen=True)
class PatternStats:
    pattern_matched: str | None
    decision: Decision
    count: int


@dataclass(frozen=True)
class OperationCount:
    operation: str
    count: int


@dataclass
class HierarchyNode:
    """A word in the command tree with the counts of commands beneath it."""

    name: str
    total: int = 0
    allowed: int = 0
    denied: int = 0
    children: dict[str, HierarchyNode] = field(default_factory=dict)

    @property
    def deny_rate(self) -> float:
        return self.denied / self.total if self.total else 0.0

    def add(self, decision: str) -> None:
        self.total += 1
        if decision == Decision.ALLOW.value:
            self.allowed += 1
        else:
            self.denied += 1

    def sorted_children(self, min_count: int = 1) -> list[HierarchyNode]:
        """Children with at least *min_count* commands, most-denied first."""
        visible = [child for child in self.children.values() if child.total >= min_count]
        return sorted(visible, key=lambda child: (-child.deny_rate, -child.total))


# ---------------------------------------------------------------------------
# Query layer
# ---------------------------------------------------------------------------


class AuditStats:
    """Read-only aggregate queries over one :class:`AuditLogger`.

    Parameters
    ----------
    logger:
        The audit logger whose database and domain are queried.
    """

    def __init__(self, logger: AuditLogger) -> None:
        self._logger = logger

    @property
    def audit_logger(self) -> AuditLogger:
        return self._logger

    def _scoped(self, stmt: Select, stats_filter: StatsFilter | None = None) -> Select:
        stmt = stmt.where(AuditLogModel.domain == self._logger.domain.value)
        if stats_filter is None:
            return stmt
        if stats_filter.since is not None:
            stmt = stmt.where(AuditLogModel.timestamp >= as_utc(stats_filter.since))
        if stats_filter.decision is not None:
            stmt = stmt.where(AuditLogModel.decision == Decision(stats_filter.decision).value)
        return stmt

    def overall(self, stats_filter: StatsFilter | None = None) -> OverallStats:
        """Totals, allow/deny split and mean duration of allowed operations."""
        is_allow = AuditLogModel.decision == Decision.ALLOW.value
        is_deny = AuditLogModel.decision == Decision.DENY.value
        stmt = self._scoped(
            select(
                func.count(),
                func.sum(case((is_allow, 1), else_=0)),
                func.sum(case((is_deny, 1), else_=0)),
                func.avg(case((is_allow, AuditLogModel.duration_ms), else_=None)),
            ).select_from(AuditLogModel),
            stats_filter,
        )
        with self._logger.session() as session:
            total, allowed, denied, avg_duration = session.execute(stmt).one()

        return OverallStats(
            total=int(total or 0),
            allowed=int(allowed or 0),
            denied=int(denied or 0),
            avg_duration_ms=float(avg_duration) if avg_duration is not None else None,
        )

    def by_pattern(
        self,
        stats_filter: StatsFilter | None = None,
        limit: int = 15,
    ) -> list[PatternStats]:
        """Record counts grouped by matched pattern and decision, busiest first."""
        count = func.count().label("count")
        stmt = self._scoped(
            select(AuditLogModel.pattern_matched, AuditLogModel.decision, count),
            stats_filter,
        )
        stmt = (
            stmt.group_by(AuditLogModel.pattern_matched, AuditLogModel.decision)
            .order_by(count.desc())
            .limit(limit)
        )
        with self._logger.session() as session:
            rows = session.execute(stmt).all()
        return [
            PatternStats(pattern_matched=pattern, decision=Decision(decision), count=int(n))
            for pattern, decision, n in rows
        ]

    def top_denied(self, since: datetime | None = None, limit: int = 10) -> list[OperationCount]:
        """The most frequently denied operations."""
        count = func.count().label("count")
        stmt = self._scoped(
            select(AuditLogModel.operation, count),
            StatsFilter(since=since, decision=Decision.DENY),
        )
        stmt = stmt.group_by(AuditLogModel.operation).order_by(count.desc()).limit(limit)
        with self._logger.session() as session:
            rows = session.execute(stmt).all()
        return [OperationCount(operation=operation, count=int(n)) for operation, n in rows]

    def logs(
        self,
        stats_filter: StatsFilter | None = None,
        limit: int = 1000,
    ) -> list[dict[str, object]]:
        """Records matching *stats_filter*, newest first."""
        stmt = self._scoped(select(AuditLogModel), stats_filter)
        stmt = stmt.order_by(AuditLogModel.timestamp.desc(), AuditLogModel.id.desc()).limit(limit)
        with self._logger.session() as session:
            return [row.to_dict() for row in session.scalars(stmt)]

    def hierarchy(
        self,
        since: datetime | None = None,
        min_count: int = 1,
        depth: int = 3,
    ) -> HierarchyNode:
        """Group operations into a tree keyed by their first *depth* words.

        The returned root counts every record in range.  Nodes below it
        with fewer than *min_count* records are pruned.
        """
        stmt = self._scoped(
            select(AuditLogModel.operation, AuditLogModel.decision),
            StatsFilter(since=since),
        ).order_by(AuditLogModel.id)

        root = HierarchyNode(name="root")
        with self._logger.session() as session:
            for operation, decision in session.execute(stmt):
                root.add(decision)
                node = root
                for word in operation.split()[:depth]:
                    node = node.children.setdefault(word, HierarchyNode(name=word))
                    node.add(decision)

        _prune(root, min_count)
        return root

    @staticmethod
    def render_hierarchy(root: HierarchyNode, min_count: int = 1) -> str:
        """Draw *root*'s descendants as an ASCII tree.

        Each line reads ``name (N total, X.X% denied)``; siblings are
        ordered by denial rate, then by total.
        """
        lines: list[str] = []

        def render(node: HierarchyNode, prefix: str, is_last: bool) -> None:
            connector = "└── " if is_last else "├── "
            lines.append(
                f"{prefix}{connector}{node.name} "
                f"({node.total} total, {node.deny_rate * 100:.1f}% denied)"
            )
            child_prefix = prefix + ("    " if is_last else "│   ")
            children = node.sorted_children(min_count)
            for index, child in enumerate(children):
                render(child, child_prefix, index == len(children) - 1)

        top = root.sorted_children(min_count)
        for index, child in enumerate(top):
            render(child, "", index == len(top) - 1)
        return "\n".join(lines)


def _prune(node: HierarchyNode, min_count: int) -> None:
    node.children = {
        name: child for name, child in node.children.items() if child.total >= min_count
    }
    for child in node.children.values():
        _prune(child, min_count)
