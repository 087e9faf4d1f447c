#!/usr/bin/env python3
"""Example: Container operations - command-gatekeeper

Gate container runtime operations with image, mount and resource
constraints, then export the audit trail.

Usage:
    python examples/02_container_operations.py

Requirements:
    pip install command-gatekeeper
"""
from __future__ import annotations

import tempfile
from pathlib import Path

import command_gatekeeper as gk

RULES = {
    "rules": [
        {"patterns": ["container:list", "image:list"], "decision": "allow"},
        {
            "pattern": "container:create:*",
            "decision": "allow",
            "constraints": [
                "no_privileged",
                "no_host_network",
                {"type": "image_pattern", "value": ["node:*", "python:*"]},
                {"type": "allowed_mounts", "value": ["/project/*"]},
                {"type": "resource_limits", "max_memory": "1g", "max_cpus": 2},
            ],
        },
        {
            "patterns": ["container:stop:*", "container:logs:*"],
            "decision": "allow",
            "constraints": [{"type": "container_pattern", "value": ["dev-*"]}],
        },
        {"pattern": "image:remove:*", "decision": "deny", "reason": "Images are shared"},
    ],
}


def main() -> None:
    policy = gk.PermissionLoader(gk.Domain.CONTAINER).load_from_dict(RULES)
    audit = gk.AuditLogger("sqlite://", gk.Domain.CONTAINER)
    gatekeeper = gk.Gatekeeper(gk.DecisionEngine(policy), gk.Domain.CONTAINER, audit=audit)

    requests = [
        gk.OperationRequest(operation="container:list"),
        gk.OperationRequest(
            operation="container:create",
            target="node:20",
            image="node:20",
            name="dev-web",
            mounts=("/project/src:/app",),
            memory=512 * 1024**2,
        ),
        gk.OperationRequest(
            operation="container:create", target="node:20", image="node:20", privileged=True
        ),
        gk.OperationRequest(
            operation="container:create", target="ubuntu:22.04", image="ubuntu:22.04"
        ),
        gk.OperationRequest(operation="container:stop", target="prod-db"),
        gk.OperationRequest(operation="image:remove", target="node:20"),
    ]

    for request in requests:
        decision = gatekeeper.check_operation(request, session_id="demo")
        if decision.allowed:
            print(f"[ALLOW] {decision.operation}")
        else:
            print(decision.as_message())
        print()

    out = Path(tempfile.gettempdir()) / "gatekeeper-container-audit.json"
    count = gk.AuditExporter(gk.AuditStats(audit)).to_json(out)
    print(f"Exported {count} audit records to {out}")


if __name__ == "__main__":
    main()
