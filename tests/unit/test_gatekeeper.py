"""Tests for the Gatekeeper facade."""
from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from command_gatekeeper.audit.logger import AuditLogger
from command_gatekeeper.container.operations import OperationRequest
from command_gatekeeper.errors import GatekeeperError
from command_gatekeeper.gatekeeper import GateDecision, Gatekeeper
from command_gatekeeper.permissions.constraints import Domain
from command_gatekeeper.permissions.engine import DecisionEngine
from command_gatekeeper.permissions.permission_loader import PermissionLoader
from command_gatekeeper.permissions.rules import Decision, PolicyConfig

_SHELL_RULES: dict[str, object] = {
    "rules": [
        {"pattern": "sudo *", "decision": "deny", "reason": "No privilege escalation"},
        {"pattern": "rm *", "decision": "allow", "reason": "Cleanup", "constraints": ["cwd_only"]},
        {"pattern": "ls*", "decision": "allow"},
    ]
}

_CONTAINER_RULES: dict[str, object] = {
    "rules": [
        {"pattern": "container:list", "decision": "allow"},
        {
            "pattern": "container:create:*",
            "decision": "allow",
            "constraints": [
                "no_privileged",
                {"type": "image_pattern", "value": ["node:*"]},
                {"type": "resource_limits", "max_memory": "512m"},
            ],
        },
        {"pattern": "container:stop:*", "decision": "allow",
         "constraints": [{"type": "container_pattern", "value": ["dev-*"]}]},
    ]
}


@pytest.fixture()
def audit() -> AuditLogger:
    return AuditLogger("sqlite://", Domain.SHELL)


@pytest.fixture()
def shell_gate(audit: AuditLogger) -> Gatekeeper:
    policy = PermissionLoader(Domain.SHELL).load_from_dict(_SHELL_RULES)
    return Gatekeeper(DecisionEngine(policy), Domain.SHELL, audit=audit)


@pytest.fixture()
def container_audit() -> AuditLogger:
    return AuditLogger("sqlite://", Domain.CONTAINER)


@pytest.fixture()
def container_gate(container_audit: AuditLogger) -> Gatekeeper:
    policy = PermissionLoader(Domain.CONTAINER).load_from_dict(_CONTAINER_RULES)
    return Gatekeeper(DecisionEngine(policy), Domain.CONTAINER, audit=container_audit)


# ---------------------------------------------------------------------------
# Shell commands
# ---------------------------------------------------------------------------


class TestCheckCommand:
    def test_allowed(self, shell_gate: Gatekeeper, audit: AuditLogger) -> None:
        decision = shell_gate.check_command("ls -la", workdir="/project", session_id="s-1")
        assert decision.allowed
        assert decision.pattern == "ls*"
        assert decision.audit_id is not None
        record = audit.get(decision.audit_id)
        assert record is not None
        assert record["decision"] == "allow"
        assert record["target"] == "/project"
        assert record["session_id"] == "s-1"

    def test_rule_denial(self, shell_gate: Gatekeeper, audit: AuditLogger) -> None:
        decision = shell_gate.check_command("sudo ls", workdir="/project")
        assert not decision.allowed
        assert decision.reason == "No privilege escalation"
        assert audit.get(decision.audit_id)["decision"] == "deny"  # type: ignore[arg-type,index]

    def test_default_denial(self, shell_gate: Gatekeeper, audit: AuditLogger) -> None:
        decision = shell_gate.check_command("curl example.com", workdir="/project")
        assert not decision.allowed
        assert decision.is_default
        record = audit.get(decision.audit_id)  # type: ignore[arg-type]
        assert record is not None
        assert record["pattern_matched"] is None

    def test_constraint_violation(self, shell_gate: Gatekeeper, audit: AuditLogger) -> None:
        decision = shell_gate.check_command("rm /etc/passwd", workdir="/project")
        assert not decision.allowed
        assert decision.decision is Decision.DENY
        assert decision.pattern == "rm *"
        assert decision.violation is not None
        assert "outside working directory" in decision.violation
        record = audit.get(decision.audit_id)  # type: ignore[arg-type]
        assert record is not None
        assert record["decision"] == "deny"
        assert record["pattern_matched"] == "rm *"

    def test_constraint_pass(self, shell_gate: Gatekeeper) -> None:
        assert shell_gate.check_command("rm build/a.o", workdir="/project").allowed

    def test_wrong_domain(self, shell_gate: Gatekeeper) -> None:
        with pytest.raises(GatekeeperError):
            shell_gate.check_operation(OperationRequest(operation="container:list"))

    def test_without_audit(self) -> None:
        policy = PermissionLoader(Domain.SHELL).load_from_dict(_SHELL_RULES)
        gate = Gatekeeper(DecisionEngine(policy), Domain.SHELL)
        decision = gate.check_command("ls", workdir="/project")
        assert decision.allowed
        assert decision.audit_id is None
        assert gate.complete(decision, "success", 1) is False


# ---------------------------------------------------------------------------
# Container operations
# ---------------------------------------------------------------------------


class TestCheckOperation:
    def test_list_allowed(self, container_gate: Gatekeeper) -> None:
        assert container_gate.check_operation(OperationRequest(operation="container:list")).allowed

    def test_create_allowed_with_params(
        self, container_gate: Gatekeeper, container_audit: AuditLogger
    ) -> None:
        request = OperationRequest(
            operation="container:create",
            target="node:20",
            image="node:20",
            memory=256 * 1024**2,
        )
        decision = container_gate.check_operation(request)
        assert decision.allowed
        assert decision.operation == "container:create:node:20"
        record = container_audit.get(decision.audit_id)  # type: ignore[arg-type]
        assert record is not None
        assert record["operation"] == "container:create"
        assert record["target"] == "node:20"
        assert json.loads(str(record["params_json"]))["memory"] == 256 * 1024**2

    def test_privileged_denied(self, container_gate: Gatekeeper) -> None:
        decision = container_gate.check_operation(
            OperationRequest(
                operation="container:create", target="node:20", image="node:20", privileged=True
            )
        )
        assert decision.violation == "Operation denied: Privileged containers are not allowed"

    def test_memory_over_limit(self, container_gate: Gatekeeper) -> None:
        decision = container_gate.check_operation(
            OperationRequest(
                operation="container:create",
                target="node:20",
                image="node:20",
                memory=2 * 1024**3,
            )
        )
        assert decision.violation == (
            "Operation denied: Memory limit 2147483648 exceeds maximum 512m"
        )

    def test_container_name_pattern(self, container_gate: Gatekeeper) -> None:
        ok = container_gate.check_operation(
            OperationRequest(operation="container:stop", target="dev-api")
        )
        bad = container_gate.check_operation(
            OperationRequest(operation="container:stop", target="prod-db")
        )
        assert ok.allowed
        assert not bad.allowed

    def test_unlisted_operation(self, container_gate: Gatekeeper) -> None:
        decision = container_gate.check_operation(
            OperationRequest(operation="image:pull", target="ubuntu")
        )
        assert decision.is_default
        assert decision.reason == "Operation not in allowlist"


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class TestOutcomes:
    def test_complete(self, shell_gate: Gatekeeper, audit: AuditLogger) -> None:
        decision = shell_gate.check_command("ls", workdir="/project")
        assert shell_gate.complete(decision, "success", 12, exit_code=0) is True
        record = audit.get(decision.audit_id)  # type: ignore[arg-type]
        assert record is not None
        assert record["result_summary"] == "success"
        assert record["duration_ms"] == 12

    def test_complete_ignores_denials(self, shell_gate: Gatekeeper) -> None:
        decision = shell_gate.check_command("sudo ls", workdir="/project")
        assert shell_gate.complete(decision, "success", 1) is False

    def test_timed_success(self, shell_gate: Gatekeeper, audit: AuditLogger) -> None:
        decision = shell_gate.check_command("ls", workdir="/project")
        with shell_gate.timed(decision):
            pass
        record = audit.get(decision.audit_id)  # type: ignore[arg-type]
        assert record is not None
        assert record["result_summary"] == "success"
        assert record["duration_ms"] is not None

    def test_timed_error_reraised(self, shell_gate: Gatekeeper, audit: AuditLogger) -> None:
        decision = shell_gate.check_command("ls", workdir="/project")
        with pytest.raises(RuntimeError):
            with shell_gate.timed(decision):
                raise RuntimeError("exit status 2")
        record = audit.get(decision.audit_id)  # type: ignore[arg-type]
        assert record is not None
        assert record["result_summary"] == "error: exit status 2"


# ---------------------------------------------------------------------------
# Audit failures
# ---------------------------------------------------------------------------


class TestAuditFailures:
    def test_write_failure_does_not_change_decision(self) -> None:
        broken = MagicMock(spec=AuditLogger)
        broken.record_attempt.side_effect = OperationalError("INSERT", {}, Exception("disk full"))
        gate = Gatekeeper(
            DecisionEngine(PermissionLoader(Domain.SHELL).load_from_dict(_SHELL_RULES)),
            Domain.SHELL,
            audit=broken,
        )
        decision = gate.check_command("ls", workdir="/project")
        assert decision.allowed
        assert decision.audit_id is None

    def test_fallback_policy_denies(self, audit: AuditLogger) -> None:
        gate = Gatekeeper(DecisionEngine(PolicyConfig.fallback(Domain.SHELL)), Domain.SHELL, audit)
        decision = gate.check_command("ls", workdir="/project")
        assert not decision.allowed
        assert decision.reason == (
            "Permissions file failed to load - all commands denied for safety"
        )


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class TestMessages:
    def test_allowed_has_no_message(self) -> None:
        decision = GateDecision(
            allowed=True, decision=Decision.ALLOW, operation="ls", domain=Domain.SHELL
        )
        assert decision.as_message() is None

    def test_rule_denial_message(self) -> None:
        decision = GateDecision(
            allowed=False,
            decision=Decision.DENY,
            operation="sudo ls",
            domain=Domain.SHELL,
            pattern="sudo *",
            reason="No privilege escalation",
        )
        assert decision.as_message() == (
            "Error: Command denied\nReason: No privilege escalation\nPattern: sudo *"
            "\n\nCommand: sudo ls"
        )

    def test_default_denial_message(self) -> None:
        decision = GateDecision(
            allowed=False,
            decision=Decision.DENY,
            operation="image:pull:ubuntu",
            domain=Domain.CONTAINER,
            is_default=True,
        )
        assert decision.as_message() == (
            "Error: Operation denied\nReason: Operation not in allowlist"
            "\n\nOperation: image:pull:ubuntu"
        )

    def test_shell_violation_message(self) -> None:
        decision = GateDecision(
            allowed=False,
            decision=Decision.DENY,
            operation="rm -f x",
            domain=Domain.SHELL,
            pattern="rm *",
            reason="Cleanup",
            violation="Command denied: Force flag not allowed (-f)",
        )
        assert decision.as_message() == (
            "Error: Command denied: Force flag not allowed (-f)\nPattern: rm *"
            "\nReason: Cleanup\n\nCommand: rm -f x"
        )

    def test_container_violation_message_omits_reason(self) -> None:
        decision = GateDecision(
            allowed=False,
            decision=Decision.DENY,
            operation="container:create:node:20",
            domain=Domain.CONTAINER,
            pattern="container:create:*",
            reason="ignored",
            violation="Operation denied: Privileged containers are not allowed",
        )
        assert decision.as_message() == (
            "Error: Operation denied: Privileged containers are not allowed"
            "\nPattern: container:create:*\n\nOperation: container:create:node:20"
        )
