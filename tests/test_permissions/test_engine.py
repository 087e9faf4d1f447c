"""Tests for DecisionEngine."""
from __future__ import annotations

import pytest

from command_gatekeeper.permissions.constraints import Domain
from command_gatekeeper.permissions.engine import DecisionEngine
from command_gatekeeper.permissions.permission_loader import (
    LazyPolicy,
    PermissionLoader,
    PolicyState,
)
from command_gatekeeper.permissions.rules import Decision, PolicyConfig, Rule


@pytest.fixture()
def engine() -> DecisionEngine:
    policy = PermissionLoader(Domain.SHELL).load_from_dict(
        {
            "rules": [
                {"pattern": "git push --force*", "decision": "deny", "reason": "No force push"},
                {"pattern": "git *", "decision": "allow"},
                {"pattern": "ls*", "decision": "allow"},
                {"pattern": "ls -R*", "decision": "deny", "reason": "Shadowed"},
            ]
        }
    )
    return DecisionEngine(policy)


# ---------------------------------------------------------------------------
# decide
# ---------------------------------------------------------------------------


class TestDecide:
    def test_first_match_wins(self, engine: DecisionEngine) -> None:
        result = engine.decide("git push --force origin main")
        assert result.decision is Decision.DENY
        assert result.pattern == "git push --force*"
        assert result.reason == "No force push"
        assert result.is_default is False

    def test_later_specific_rule_is_shadowed(self, engine: DecisionEngine) -> None:
        result = engine.decide("ls -R /")
        assert result.allowed
        assert result.pattern == "ls*"

    def test_allow_carries_rule(self, engine: DecisionEngine) -> None:
        result = engine.decide("git status")
        assert result.allowed
        assert result.rule is not None
        assert result.rule.pattern == "git *"

    def test_default_deny(self, engine: DecisionEngine) -> None:
        result = engine.decide("curl http://example.com")
        assert result.decision is Decision.DENY
        assert result.pattern is None
        assert result.rule is None
        assert result.is_default is True
        assert result.reason == "Command not in allowlist"

    def test_input_is_trimmed(self, engine: DecisionEngine) -> None:
        assert engine.decide("   git status  ").allowed

    def test_case_insensitive(self, engine: DecisionEngine) -> None:
        assert engine.decide("GIT STATUS").allowed

    def test_idempotent(self, engine: DecisionEngine) -> None:
        assert engine.decide("git log") == engine.decide("git log")

    def test_default_allow(self) -> None:
        policy = PolicyConfig.from_rules([], Domain.SHELL, default_decision=Decision.ALLOW)
        result = DecisionEngine(policy).decide("anything")
        assert result.allowed
        assert result.is_default

    def test_multiline_command_not_matched_by_wildcard(self) -> None:
        policy = PolicyConfig.from_rules(
            [Rule(pattern="echo *", decision=Decision.ALLOW)], Domain.SHELL
        )
        assert not DecisionEngine(policy).decide("echo hi\nrm -rf /").allowed

    def test_fallback_policy_denies_everything(self) -> None:
        engine = DecisionEngine(PolicyConfig.fallback(Domain.SHELL))
        result = engine.decide("ls")
        assert result.decision is Decision.DENY
        assert "failed to load" in (result.reason or "")


# ---------------------------------------------------------------------------
# Lazy policies
# ---------------------------------------------------------------------------


class TestLazyEngine:
    def test_policy_resolved_on_first_decision(self) -> None:
        lazy = LazyPolicy(
            lambda: PolicyConfig.from_rules(
                [Rule(pattern="pwd", decision=Decision.ALLOW)], Domain.SHELL
            )
        )
        engine = DecisionEngine(lazy)
        assert lazy.state is PolicyState.UNINITIALIZED
        assert engine.decide("pwd").allowed
        assert lazy.state is PolicyState.LOADED


# ---------------------------------------------------------------------------
# decide_with_trace
# ---------------------------------------------------------------------------


class TestTrace:
    def test_trace_stops_at_match(self, engine: DecisionEngine) -> None:
        traced = engine.decide_with_trace("git status")
        assert [entry.index for entry in traced.trace] == [0, 1]
        assert [entry.matched for entry in traced.trace] == [False, True]
        assert traced.result == engine.decide("git status")

    def test_trace_covers_all_rules_on_default(self, engine: DecisionEngine) -> None:
        traced = engine.decide_with_trace("whoami")
        assert len(traced.trace) == 4
        assert not any(entry.matched for entry in traced.trace)
        assert traced.result.is_default

    def test_trace_entry_fields(self, engine: DecisionEngine) -> None:
        entry = engine.decide_with_trace("git push --force").trace[0]
        assert entry.pattern == "git push --force*"
        assert entry.decision is Decision.DENY
        assert entry.reason == "No force push"
        assert entry.regex.startswith(r"\A") and entry.regex.endswith(r"\Z")
