"""Container operation requests and their operation strings.

A container operation is matched against the rule set as a single string:
the operation type, optionally followed by ``:`` and the target, e.g.
``container:list``, ``container:create:node:20`` or
``image:pull:ubuntu:22.04``.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum

from command_gatekeeper.container.config import ContainerConfig, ContainerContext, HostConfig


class OperationType(str, Enum):
    """The container runtime operations the gatekeeper knows about."""

    CONTAINER_LIST = "container:list"
    CONTAINER_INSPECT = "container:inspect"
    CONTAINER_CREATE = "container:create"
    CONTAINER_START = "container:start"
    CONTAINER_STOP = "container:stop"
    CONTAINER_REMOVE = "container:remove"
    CONTAINER_LOGS = "container:logs"
    CONTAINER_EXEC = "container:exec"
    IMAGE_LIST = "image:list"
    IMAGE_PULL = "image:pull"
    IMAGE_INSPECT = "image:inspect"
    IMAGE_REMOVE = "image:remove"
    VOLUME_LIST = "volume:list"
    VOLUME_CREATE = "volume:create"
    VOLUME_REMOVE = "volume:remove"
    NETWORK_LIST = "network:list"


def build_operation_pattern(operation: str, target: str | None = None) -> str:
    """Join an operation and its optional target into the string rules match.

    Examples
    --------
    >>> build_operation_pattern("container:list")
    'container:list'
    >>> build_operation_pattern("container:create", "node:20")
    'container:create:node:20'
    """
    if not target:
        return operation
    return f"{operation}:{target}"


@dataclass(frozen=True)
class OperationRequest:
    """A requested container operation with its create-time options.

    Attributes
    ----------
    operation:
        One of the :class:`OperationType` values.
    target:
        Container id/name, image name or volume name, depending on the
        operation.
    image, cmd, env, workdir, mounts, name:
        Options for ``container:create``.  ``mounts`` are bind specs in
        ``source:dest[:opts]`` form.
    memory, cpus, privileged, network_mode:
        Host settings for ``container:create``; ``memory`` is in bytes.
    """

    operation: str
    target: str | None = None
    image: str | None = None
    cmd: tuple[str, ...] = field(default_factory=tuple)
    env: tuple[str, ...] = field(default_factory=tuple)
    workdir: str | None = None
    mounts: tuple[str, ...] = field(default_factory=tuple)
    name: str | None = None
    memory: int | None = None
    cpus: float | None = None
    privileged: bool = False
    network_mode: str | None = None

    @property
    def pattern(self) -> str:
        return build_operation_pattern(self.operation, self.target)

    def to_params(self) -> dict[str, object]:
        """Return the set fields of the request, for the audit log."""
        return {
            key: value
            for key, value in asdict(self).items()
            if value not in (None, (), False)
        }


def build_container_config(request: OperationRequest) -> ContainerConfig:
    """Translate a create request into the config the constraints inspect."""
    host_config = HostConfig(
        privileged=request.privileged,
        network_mode=request.network_mode,
        binds=tuple(request.mounts),
        memory=request.memory or None,
        nano_cpus=int(request.cpus * 1e9) if request.cpus else None,
    )
    return ContainerConfig(
        image=request.image or "",
        cmd=tuple(request.cmd),
        env=tuple(request.env),
        working_dir=request.workdir,
        host_config=host_config,
    )


def build_validation_context(request: OperationRequest) -> ContainerContext:
    """Collect the facts the container constraints need for *request*.

    - ``container:create`` with an image carries the full config, the image
      name and the requested container name.
    - ``image:*`` operations with a target carry the target as image name.
    - Any other operation with a target, except ``container:list`` and
      ``container:create``, carries the target as container name.
    """
    container_config: ContainerConfig | None = None
    image_name: str | None = None
    container_name: str | None = None

    if request.operation == OperationType.CONTAINER_CREATE.value and request.image:
        container_config = build_container_config(request)
        image_name = request.image
        container_name = request.name

    if request.operation.startswith("image:") and request.target:
        image_name = request.target

    if (
        request.operation
        not in (OperationType.CONTAINER_LIST.value, OperationType.CONTAINER_CREATE.value)
        and request.target
    ):
        container_name = request.target

    return ContainerContext(
        container_config=container_config,
        image_name=image_name,
        container_name=container_name,
    )
