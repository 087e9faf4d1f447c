"""Gatekeeper facade: decide, validate constraints, and audit in one call.

A :class:`Gatekeeper` serves one domain.  For every request it

1. matches the operation string against the rule set,
2. on ``deny`` records the attempt and returns,
3. on ``allow`` checks the matched rule's constraints, recording a
   violation as a denied attempt,
4. otherwise records an allowed attempt and returns its audit id so the
   caller can attach the outcome once the operation has run.

Audit failures are logged and never change a decision.

Example
-------
::

    gatekeeper = Gatekeeper(DecisionEngine(policy), Domain.SHELL, audit=audit)
    decision = gatekeeper.check_command("ls -la src", workdir="/project")
    if not decision.allowed:
        return decision.as_message()
    with gatekeeper.timed(decision):
        run(...)
"""
from __future__ import annotations

import logging
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, replace

from sqlalchemy.exc import SQLAlchemyError

from command_gatekeeper.audit.logger import AuditEntry, AuditLogger
from command_gatekeeper.container.operations import OperationRequest, build_validation_context
from command_gatekeeper.errors import GatekeeperError
from command_gatekeeper.permissions.constraints import Domain
from command_gatekeeper.permissions.engine import DecisionEngine
from command_gatekeeper.permissions.rules import DEFAULT_REASONS, Decision, MatchResult
from command_gatekeeper.permissions.validator import ShellContext, ValidationContext, validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateDecision:
    """The outcome of gating one shell command or container operation.

    Attributes
    ----------
    allowed:
        ``True`` only when a rule allowed the operation and every
        constraint passed.
    decision:
        The final decision.
    operation:
        The string that was matched against the rules.
    domain:
        Shell or container.
    pattern:
        The deciding rule's pattern; ``None`` when the default applied.
    reason:
        The rule's (or default's) reason.
    violation:
        The constraint violation, when a constraint denied the operation.
    is_default:
        ``True`` when no rule matched.
    audit_id:
        Id of the audit record, when one was written.
    """

    allowed: bool
    decision: Decision
    operation: str
    domain: Domain
    pattern: str | None = None
    reason: str | None = None
    violation: str | None = None
    is_default: bool = False
    audit_id: int | None = None

    def as_message(self) -> str | None:
        """Operator-facing error text for a denial; ``None`` when allowed."""
        if self.allowed:
            return None

        label = "Command" if self.domain is Domain.SHELL else "Operation"
        if self.violation is not None:
            reason_info = (
                f"\nReason: {self.reason}"
                if self.reason and self.domain is Domain.SHELL
                else ""
            )
            return (
                f"Error: {self.violation}\nPattern: {self.pattern}{reason_info}"
                f"\n\n{label}: {self.operation}"
            )

        reason = self.reason or DEFAULT_REASONS[self.domain]
        pattern_info = f"\nPattern: {self.pattern}" if self.pattern else ""
        return (
            f"Error: {self.domain.denial_prefix}\nReason: {reason}{pattern_info}"
            f"\n\n{label}: {self.operation}"
        )


class Gatekeeper:
    """Gates operations of one domain against a :class:`DecisionEngine`.

    Parameters
    ----------
    engine:
        Engine holding the domain's rule set.
    domain:
        Which kind of operation this gatekeeper accepts.
    audit:
        Optional audit logger; when omitted nothing is recorded.
    """

    def __init__(
        self,
        engine: DecisionEngine,
        domain: Domain,
        audit: AuditLogger | None = None,
    ) -> None:
        self._engine = engine
        self._domain = domain
        self._audit = audit

    @property
    def engine(self) -> DecisionEngine:
        return self._engine

    @property
    def domain(self) -> Domain:
        return self._domain

    @property
    def audit(self) -> AuditLogger | None:
        return self._audit

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_command(
        self,
        command: str,
        workdir: str,
        session_id: str | None = None,
        message_id: str | None = None,
    ) -> GateDecision:
        """Gate a shell command run in *workdir*.

        Raises
        ------
        GatekeeperError
            If this gatekeeper does not serve the shell domain.
        """
        self._require_domain(Domain.SHELL)
        entry = AuditEntry(
            operation=command,
            decision=Decision.DENY,
            session_id=session_id,
            message_id=message_id,
            target=workdir,
        )
        return self._check(
            operation=command,
            context=ShellContext(command=command, workdir=workdir),
            entry=entry,
        )

    def check_operation(
        self,
        request: OperationRequest,
        session_id: str | None = None,
        message_id: str | None = None,
    ) -> GateDecision:
        """Gate a container operation.

        Raises
        ------
        GatekeeperError
            If this gatekeeper does not serve the container domain.
        """
        self._require_domain(Domain.CONTAINER)
        entry = AuditEntry(
            operation=request.operation,
            decision=Decision.DENY,
            session_id=session_id,
            message_id=message_id,
            target=request.target,
        )
        return self._check(
            operation=request.pattern,
            context=build_validation_context(request),
            entry=entry,
            params=request.to_params(),
        )

    def _check(
        self,
        operation: str,
        context: ValidationContext,
        entry: AuditEntry,
        params: Mapping[str, object] | None = None,
    ) -> GateDecision:
        match = self._engine.decide(operation)

        if not match.allowed:
            audit_id = self._record(entry, match, Decision.DENY)
            logger.info("Denied %s %r: %s", self._domain.value, operation, match.reason)
            return self._result(match, operation, Decision.DENY, audit_id=audit_id)

        if match.rule is not None:
            result = validate(match.rule, context)
            if not result:
                audit_id = self._record(entry, match, Decision.DENY, params)
                logger.info(
                    "Denied %s %r by constraint: %s",
                    self._domain.value,
                    operation,
                    result.violation,
                )
                return self._result(
                    match,
                    operation,
                    Decision.DENY,
                    violation=result.violation,
                    audit_id=audit_id,
                )

        audit_id = self._record(entry, match, Decision.ALLOW, params)
        logger.debug("Allowed %s %r via %r", self._domain.value, operation, match.pattern)
        return self._result(match, operation, Decision.ALLOW, audit_id=audit_id)

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def complete(
        self,
        decision: GateDecision,
        summary: str | None = None,
        duration_ms: int | None = None,
        exit_code: int | None = None,
    ) -> bool:
        """Attach the execution outcome to an allowed decision's audit record.

        Returns
        -------
        bool
            ``True`` if a record was updated.  Denied decisions, decisions
            without an audit record, and audit failures return ``False``.
        """
        if not decision.allowed or decision.audit_id is None or self._audit is None:
            return False
        try:
            return self._audit.record_outcome(
                decision.audit_id,
                summary=summary,
                duration_ms=duration_ms,
                exit_code=exit_code,
            )
        except SQLAlchemyError:
            logger.exception("Failed to record outcome for audit record #%d", decision.audit_id)
            return False

    @contextmanager
    def timed(self, decision: GateDecision) -> Iterator[None]:
        """Time the enclosed block and record it as the decision's outcome.

        A clean exit records ``"success"``; an exception records
        ``"error: <message>"`` and is re-raised.
        """
        start = time.perf_counter()
        try:
            yield
        except Exception as exc:
            self.complete(decision, summary=f"error: {exc}", duration_ms=_elapsed_ms(start))
            raise
        self.complete(decision, summary="success", duration_ms=_elapsed_ms(start))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_domain(self, domain: Domain) -> None:
        if self._domain is not domain:
            raise GatekeeperError(
                f"This gatekeeper serves {self._domain.subject}, not {domain.subject}"
            )

    def _record(
        self,
        entry: AuditEntry,
        match: MatchResult,
        decision: Decision,
        params: Mapping[str, object] | None = None,
    ) -> int | None:
        if self._audit is None:
            return None
        record = replace(entry, decision=decision, pattern_matched=match.pattern, params=params)
        try:
            return self._audit.record_attempt(record)
        except SQLAlchemyError:
            logger.exception("Failed to record audit entry for %r", entry.operation)
            return None

    def _result(
        self,
        match: MatchResult,
        operation: str,
        decision: Decision,
        violation: str | None = None,
        audit_id: int | None = None,
    ) -> GateDecision:
        return GateDecision(
            allowed=decision is Decision.ALLOW,
            decision=decision,
            operation=operation,
            domain=self._domain,
            pattern=match.pattern,
            reason=match.reason,
            violation=violation,
            is_default=match.is_default,
            audit_id=audit_id,
        )


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)
