#!/usr/bin/env python3
"""Example: Quickstart - command-gatekeeper

Minimal working example: load shell rules, gate a few commands, record
their outcomes, and read the audit statistics back.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install command-gatekeeper
"""
from __future__ import annotations

import command_gatekeeper as gk

RULES = """
rules:
  - pattern: "sudo *"
    decision: deny
    reason: "No privilege escalation"
  - patterns: ["rm *", "mv *"]
    decision: allow
    constraints:
      - type: cwd_only
        exclude: [".env", "*.pem"]
      - no_force
  - pattern: "find *"
    decision: allow
    constraints:
      - type: max_depth
        value: 3
  - pattern: "ls*"
    decision: allow
"""


def main() -> None:
    print(f"command-gatekeeper version: {gk.__version__}")

    # Step 1: Load rules and wire a gatekeeper with an in-memory audit log
    policy = gk.PermissionLoader(gk.Domain.SHELL).load_from_yaml_string(RULES)
    audit = gk.AuditLogger("sqlite://", gk.Domain.SHELL)
    gatekeeper = gk.Gatekeeper(gk.DecisionEngine(policy), gk.Domain.SHELL, audit=audit)
    print(f"Loaded {policy.rule_count} rules")

    # Step 2: Gate commands
    commands = [
        "ls -la src",
        "sudo reboot",
        "rm build/output.o",
        "rm -f build/output.o",
        "rm ../other-project/main.py",
        "find . -maxdepth 2 -name '*.py'",
        "find / -name passwd",
        "curl https://example.com",
    ]

    print("\nDecisions:")
    for command in commands:
        decision = gatekeeper.check_command(command, workdir="/project", session_id="demo")
        icon = "ALLOW" if decision.allowed else "DENY"
        print(f"  [{icon}] {command}")
        if decision.allowed:
            with gatekeeper.timed(decision):
                pass
        else:
            print(f"    {decision.violation or decision.reason}")

    # Step 3: Read the audit trail
    stats = gk.AuditStats(audit)
    overall = stats.overall()
    print(f"\nAudit: {overall.total} commands, {overall.denied} denied")
    print(stats.render_hierarchy(stats.hierarchy()))


if __name__ == "__main__":
    main()
