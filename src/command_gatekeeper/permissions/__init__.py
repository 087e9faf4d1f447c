"""Rule-based permission system for shell commands and container operations.

Loads ordered allow/deny rules from YAML, matches operation strings against
them first-match-wins, and describes the constraints attached to rules.
Constraint evaluation lives in :mod:`command_gatekeeper.permissions.validator`.

Example
-------
::

    from command_gatekeeper.permissions import DecisionEngine, Domain, PermissionLoader

    policy = PermissionLoader(Domain.SHELL).load_from_dict({
        "rules": [{"pattern": "git status*", "decision": "allow"}],
    })
    result = DecisionEngine(policy).decide("git status --short")
    assert result.allowed
"""
from __future__ import annotations

from command_gatekeeper.permissions.constraints import (
    AllowedMounts,
    Constraint,
    ConstraintResult,
    ContainerPattern,
    CwdOnly,
    Domain,
    ImagePattern,
    MaxDepth,
    NoForce,
    NoHostNetwork,
    NoPrivileged,
    NoRecursive,
    RequireFlag,
    ResourceLimits,
    parse_constraint,
)
from command_gatekeeper.permissions.engine import DecisionEngine
from command_gatekeeper.permissions.patterns import compile_pattern, matches_any_pattern
from command_gatekeeper.permissions.permission_loader import (
    LazyPolicy,
    PermissionLoader,
    PolicyState,
)
from command_gatekeeper.permissions.rules import (
    CompiledRule,
    Decision,
    MatchResult,
    PolicyConfig,
    Rule,
    TracedMatchResult,
    TraceEntry,
)

__all__ = [
    # Rules and policies
    "CompiledRule",
    "Decision",
    "MatchResult",
    "PolicyConfig",
    "Rule",
    "TraceEntry",
    "TracedMatchResult",
    # Constraints
    "AllowedMounts",
    "Constraint",
    "ConstraintResult",
    "ContainerPattern",
    "CwdOnly",
    "Domain",
    "ImagePattern",
    "MaxDepth",
    "NoForce",
    "NoHostNetwork",
    "NoPrivileged",
    "NoRecursive",
    "RequireFlag",
    "ResourceLimits",
    "parse_constraint",
    # Matching
    "DecisionEngine",
    "compile_pattern",
    "matches_any_pattern",
    # Loading
    "LazyPolicy",
    "PermissionLoader",
    "PolicyState",
]
