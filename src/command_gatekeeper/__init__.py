"""command-gatekeeper: allow/deny policy enforcement for agent-issued operations.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import command_gatekeeper as gk
>>> gk.__version__
'0.1.0'
>>> policy = gk.PermissionLoader(gk.Domain.SHELL).load_from_dict(
...     {"rules": [{"pattern": "ls*", "decision": "allow"}]}
... )
>>> gate = gk.Gatekeeper(gk.DecisionEngine(policy), gk.Domain.SHELL)
>>> gate.check_command("ls -la", workdir="/project").allowed
True
"""
from __future__ import annotations

__version__: str = "0.1.0"

from command_gatekeeper.errors import (
    ConstraintConfigError,
    GatekeeperError,
    PermissionConfigError,
)
from command_gatekeeper.gatekeeper import GateDecision, Gatekeeper

# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------
from command_gatekeeper.permissions.constraints import ConstraintResult, Domain
from command_gatekeeper.permissions.engine import DecisionEngine
from command_gatekeeper.permissions.permission_loader import LazyPolicy, PermissionLoader
from command_gatekeeper.permissions.rules import Decision, MatchResult, PolicyConfig, Rule
from command_gatekeeper.permissions.validator import ShellContext, validate

# ---------------------------------------------------------------------------
# Container operations
# ---------------------------------------------------------------------------
from command_gatekeeper.container.config import ContainerConfig, ContainerContext, HostConfig
from command_gatekeeper.container.operations import OperationRequest, OperationType

# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------
from command_gatekeeper.audit.exporter import AuditExporter
from command_gatekeeper.audit.logger import AuditEntry, AuditLogger
from command_gatekeeper.audit.stats import AuditStats, StatsFilter, parse_since

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
from command_gatekeeper.settings import (
    GatekeeperSettings,
    SettingsLoader,
    build_gatekeeper,
    build_policy,
)

__all__ = [
    "__version__",
    "GateDecision",
    "Gatekeeper",
    # Errors
    "ConstraintConfigError",
    "GatekeeperError",
    "PermissionConfigError",
    # Permissions
    "ConstraintResult",
    "Decision",
    "DecisionEngine",
    "Domain",
    "LazyPolicy",
    "MatchResult",
    "PermissionLoader",
    "PolicyConfig",
    "Rule",
    "ShellContext",
    "validate",
    # Container operations
    "ContainerConfig",
    "ContainerContext",
    "HostConfig",
    "OperationRequest",
    "OperationType",
    # Audit
    "AuditEntry",
    "AuditExporter",
    "AuditLogger",
    "AuditStats",
    "StatsFilter",
    "parse_since",
    # Settings
    "GatekeeperSettings",
    "SettingsLoader",
    "build_gatekeeper",
    "build_policy",
]
