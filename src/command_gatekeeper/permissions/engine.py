"""First-match decision engine.

:class:`DecisionEngine` evaluates an operation string against an ordered
rule set.  The first rule whose pattern matches the whole (trimmed) string
decides; when nothing matches, the policy's default applies.

Example
-------
::

    engine = DecisionEngine(policy)
    result = engine.decide("git push --force")
    if not result.allowed:
        print(result.reason)
"""
from __future__ import annotations

import logging

from command_gatekeeper.permissions.permission_loader import LazyPolicy
from command_gatekeeper.permissions.rules import (
    MatchResult,
    PolicyConfig,
    TracedMatchResult,
    TraceEntry,
)

logger = logging.getLogger(__name__)


class DecisionEngine:
    """Matches operation strings against a :class:`PolicyConfig`.

    Parameters
    ----------
    policy:
        Either a built config, or a :class:`LazyPolicy` that is resolved on
        the first decision.

    The engine holds no mutable state of its own and may be shared across
    threads.
    """

    def __init__(self, policy: PolicyConfig | LazyPolicy) -> None:
        self._policy = policy

    @property
    def policy(self) -> PolicyConfig:
        if isinstance(self._policy, LazyPolicy):
            return self._policy.get()
        return self._policy

    def decide(self, operation: str) -> MatchResult:
        """Return the decision for *operation*.

        Parameters
        ----------
        operation:
            A shell command line or a container operation pattern such as
            ``"container:create:node:20"``.  Surrounding whitespace is
            ignored.

        Returns
        -------
        MatchResult
            The first matching rule's decision, or the policy default with
            ``pattern=None`` and ``is_default=True``.
        """
        policy = self.policy
        candidate = operation.strip()

        for compiled in policy.rules:
            if compiled.matches(candidate):
                logger.debug(
                    "%r matched %r -> %s", candidate, compiled.pattern, compiled.decision.value
                )
                return MatchResult(
                    decision=compiled.decision,
                    pattern=compiled.pattern,
                    reason=compiled.reason,
                    rule=compiled.rule,
                )

        logger.debug("%r matched no rule -> %s", candidate, policy.default_decision.value)
        return self._default_result(policy)

    def decide_with_trace(self, operation: str) -> TracedMatchResult:
        """Like :meth:`decide`, also recording every rule checked.

        The trace stops at the first match, so its last entry is the
        deciding rule unless the default applied.
        """
        policy = self.policy
        candidate = operation.strip()
        trace: list[TraceEntry] = []

        for index, compiled in enumerate(policy.rules):
            matched = compiled.matches(candidate)
            trace.append(
                TraceEntry(
                    index=index,
                    pattern=compiled.pattern,
                    regex=compiled.matcher.pattern,
                    decision=compiled.decision,
                    reason=compiled.reason,
                    matched=matched,
                )
            )
            if matched:
                result = MatchResult(
                    decision=compiled.decision,
                    pattern=compiled.pattern,
                    reason=compiled.reason,
                    rule=compiled.rule,
                )
                return TracedMatchResult(result=result, trace=tuple(trace))

        return TracedMatchResult(result=self._default_result(policy), trace=tuple(trace))

    @staticmethod
    def _default_result(policy: PolicyConfig) -> MatchResult:
        return MatchResult(
            decision=policy.default_decision,
            pattern=None,
            reason=policy.default_reason,
            is_default=True,
        )
