"""Container operation model: requests, operation strings and configs."""
from __future__ import annotations

from command_gatekeeper.container.config import ContainerConfig, ContainerContext, HostConfig
from command_gatekeeper.container.operations import (
    OperationRequest,
    OperationType,
    build_container_config,
    build_operation_pattern,
    build_validation_context,
)

__all__ = [
    "ContainerConfig",
    "ContainerContext",
    "HostConfig",
    "OperationRequest",
    "OperationType",
    "build_container_config",
    "build_operation_pattern",
    "build_validation_context",
]
