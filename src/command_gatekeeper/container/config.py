"""Container configuration as seen by the constraint validator.

Only the fields the container constraints inspect are modelled.  Both
snake_case keys and Docker Engine API casing (``HostConfig.Privileged``,
``HostConfig.NanoCpus``, ...) are accepted by the ``from_dict``
constructors, so a create-request body can be validated as-is.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field


def _pick(raw: Mapping[str, object], *keys: str) -> object:
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def _as_tuple(value: object) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(item) for item in value)  # type: ignore[union-attr]


@dataclass(frozen=True)
class HostConfig:
    """Host-level settings of a container.

    Attributes
    ----------
    privileged:
        Whether privileged mode is requested.
    network_mode:
        Network mode name; ``"host"`` shares the host namespace.
    binds:
        Bind-mount specs in ``source:dest[:opts]`` form.
    memory:
        Requested memory limit in bytes; ``None`` or 0 means unset.
    nano_cpus:
        Requested CPU quota in units of 1e-9 CPUs; ``None`` or 0 means unset.
    """

    privileged: bool = False
    network_mode: str | None = None
    binds: tuple[str, ...] = field(default_factory=tuple)
    memory: int | None = None
    nano_cpus: int | None = None

    @property
    def cpus(self) -> float | None:
        """Requested CPU count, derived from ``nano_cpus``."""
        if not self.nano_cpus:
            return None
        return self.nano_cpus / 1e9

    @classmethod
    def from_dict(cls, raw: Mapping[str, object]) -> HostConfig:
        memory = _pick(raw, "memory", "Memory")
        nano_cpus = _pick(raw, "nano_cpus", "NanoCpus")
        return cls(
            privileged=_pick(raw, "privileged", "Privileged") is True,
            network_mode=_pick(raw, "network_mode", "NetworkMode"),  # type: ignore[arg-type]
            binds=_as_tuple(_pick(raw, "binds", "Binds")),
            memory=int(memory) if memory else None,  # type: ignore[call-overload]
            nano_cpus=int(nano_cpus) if nano_cpus else None,  # type: ignore[call-overload]
        )


@dataclass(frozen=True)
class ContainerConfig:
    """The parts of a container create request that constraints inspect."""

    image: str
    cmd: tuple[str, ...] = field(default_factory=tuple)
    env: tuple[str, ...] = field(default_factory=tuple)
    working_dir: str | None = None
    host_config: HostConfig = field(default_factory=HostConfig)

    @classmethod
    def from_dict(cls, raw: Mapping[str, object]) -> ContainerConfig:
        """Build a config from snake_case or Docker Engine API keys.

        Examples
        --------
        >>> config = ContainerConfig.from_dict(
        ...     {"Image": "node:20", "HostConfig": {"Privileged": True}}
        ... )
        >>> config.host_config.privileged
        True
        """
        host_raw = _pick(raw, "host_config", "HostConfig") or {}
        return cls(
            image=str(_pick(raw, "image", "Image") or ""),
            cmd=_as_tuple(_pick(raw, "cmd", "Cmd")),
            env=_as_tuple(_pick(raw, "env", "Env")),
            working_dir=_pick(raw, "working_dir", "WorkingDir"),  # type: ignore[arg-type]
            host_config=HostConfig.from_dict(host_raw),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class ContainerContext:
    """Facts about a container operation needed to check its constraints.

    Any field may be absent; constraints needing an absent fact pass.
    """

    container_config: ContainerConfig | None = None
    image_name: str | None = None
    container_name: str | None = None
