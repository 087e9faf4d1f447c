"""Rule and policy data model.

A :class:`PolicyConfig` is an ordered tuple of :class:`CompiledRule`
objects plus a default decision.  Rule order is configuration order and is
semantically significant: the first rule whose pattern matches decides,
regardless of how specific later rules are.

All types here are immutable, so a built policy can be shared between
threads without locking.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from command_gatekeeper.permissions.constraints import Constraint, Domain
from command_gatekeeper.permissions.patterns import compile_pattern


class Decision(str, Enum):
    """Outcome of matching an operation against the rule list."""

    ALLOW = "allow"
    DENY = "deny"


DEFAULT_REASONS: dict[Domain, str] = {
    Domain.SHELL: "Command not in allowlist",
    Domain.CONTAINER: "Operation not in allowlist",
}


@dataclass(frozen=True)
class Rule:
    """A single permission rule for one pattern.

    Multi-pattern configuration entries are expanded into one ``Rule`` per
    pattern, all sharing the same decision, reason and constraints.

    Attributes
    ----------
    pattern:
        Glob pattern (``*`` wildcard) matched against the whole operation
        string, case-insensitively.
    decision:
        ``allow`` or ``deny``.
    reason:
        Optional human-readable explanation shown on denial.
    constraints:
        Checks that must all pass after an ``allow`` match.
    """

    pattern: str
    decision: Decision
    reason: str | None = None
    constraints: tuple[Constraint, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CompiledRule:
    """A :class:`Rule` with its pre-built matcher."""

    rule: Rule
    matcher: re.Pattern[str]

    @classmethod
    def compile(cls, rule: Rule) -> CompiledRule:
        return cls(rule=rule, matcher=compile_pattern(rule.pattern))

    @property
    def pattern(self) -> str:
        return self.rule.pattern

    @property
    def decision(self) -> Decision:
        return self.rule.decision

    @property
    def reason(self) -> str | None:
        return self.rule.reason

    def matches(self, operation: str) -> bool:
        """Return True if the whole *operation* string matches the pattern."""
        return self.matcher.match(operation) is not None


@dataclass(frozen=True)
class PolicyConfig:
    """The immutable, ordered rule set for one domain.

    Attributes
    ----------
    rules:
        Compiled rules in evaluation order.
    default_decision:
        Decision applied when no rule matches.
    default_reason:
        Reason reported with the default decision.
    domain:
        Which kind of operation strings the rules describe.
    is_fallback:
        ``True`` when this config replaced one that failed to load.
    """

    rules: tuple[CompiledRule, ...]
    default_decision: Decision = Decision.DENY
    default_reason: str = "Not in allowlist"
    domain: Domain = Domain.SHELL
    is_fallback: bool = False

    @classmethod
    def fallback(cls, domain: Domain) -> PolicyConfig:
        """Return the fail-closed config: no rules, everything denied."""
        return cls(
            rules=(),
            default_decision=Decision.DENY,
            default_reason=(
                f"Permissions file failed to load - all {domain.subject} "
                "denied for safety"
            ),
            domain=domain,
            is_fallback=True,
        )

    @classmethod
    def from_rules(
        cls,
        rules: list[Rule],
        domain: Domain,
        default_decision: Decision = Decision.DENY,
        default_reason: str | None = None,
    ) -> PolicyConfig:
        """Compile *rules* in order into a policy."""
        return cls(
            rules=tuple(CompiledRule.compile(rule) for rule in rules),
            default_decision=default_decision,
            default_reason=(
                DEFAULT_REASONS[domain] if default_reason is None else default_reason
            ),
            domain=domain,
        )

    @property
    def rule_count(self) -> int:
        return len(self.rules)


@dataclass(frozen=True)
class MatchResult:
    """Result of :meth:`DecisionEngine.decide`.

    Attributes
    ----------
    decision:
        The matched rule's decision, or the policy default.
    pattern:
        The matched pattern, or ``None`` for the default.
    reason:
        The matched rule's reason, or the default reason.
    rule:
        The matched rule, used for constraint lookup.
    is_default:
        ``True`` when no rule matched.
    """

    decision: Decision
    pattern: str | None
    reason: str | None = None
    rule: Rule | None = None
    is_default: bool = False

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW


@dataclass(frozen=True)
class TraceEntry:
    """One rule checked while producing a traced match."""

    index: int
    pattern: str
    regex: str
    decision: Decision
    reason: str | None
    matched: bool


@dataclass(frozen=True)
class TracedMatchResult:
    """A :class:`MatchResult` with the rules checked on the way to it."""

    result: MatchResult
    trace: tuple[TraceEntry, ...]
