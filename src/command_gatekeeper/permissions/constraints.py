"""Constraint variants attached to permission rules.

A constraint is a secondary check evaluated only after a rule's pattern
has matched with ``allow``.  Each variant is a frozen dataclass carrying
exactly the parameters it needs.  Variants belong to one of two families:

Container family (operation strings such as ``container:create:node:20``)
    - :class:`NoPrivileged`: ``no_privileged``
    - :class:`NoHostNetwork`: ``no_host_network``
    - :class:`AllowedMounts`: ``allowed_mounts`` (``value``: globs)
    - :class:`ImagePattern`: ``image_pattern`` (``value``: globs)
    - :class:`ContainerPattern`: ``container_pattern`` (``value``: globs)
    - :class:`ResourceLimits`: ``resource_limits`` (``max_memory``, ``max_cpus``)

Shell family (command lines)
    - :class:`CwdOnly`: ``cwd_only`` (``also_allow``, ``exclude``)
    - :class:`NoRecursive`: ``no_recursive``
    - :class:`NoForce`: ``no_force``
    - :class:`MaxDepth`: ``max_depth`` (``value``)
    - :class:`RequireFlag`: ``require_flag`` (``flag``)

Configuration may name a parameterless variant with a bare string
(``"no_force"``).  Naming a parameterised variant that way is a
configuration error reported by :func:`parse_constraint`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Union

from command_gatekeeper.errors import ConstraintConfigError


class Domain(str, Enum):
    """The operation domain a rule set (and its constraints) applies to."""

    SHELL = "shell"
    CONTAINER = "container"

    @property
    def denial_prefix(self) -> str:
        """Prefix used for violation messages in this domain."""
        return "Command denied" if self is Domain.SHELL else "Operation denied"

    @property
    def subject(self) -> str:
        """Plural noun for the things this domain gates."""
        return "commands" if self is Domain.SHELL else "operations"


@dataclass(frozen=True)
class ConstraintResult:
    """Outcome of evaluating one or more constraints.

    Attributes
    ----------
    valid:
        Whether every evaluated constraint passed.
    violation:
        Operator-facing explanation when ``valid`` is ``False``.
    """

    valid: bool
    violation: str | None = None

    def __bool__(self) -> bool:
        return self.valid

    @classmethod
    def ok(cls) -> ConstraintResult:
        return cls(valid=True)

    @classmethod
    def deny(cls, violation: str) -> ConstraintResult:
        return cls(valid=False, violation=violation)


# ---------------------------------------------------------------------------
# Container family
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NoPrivileged:
    """Reject containers requesting privileged mode."""

    constraint_type: ClassVar[str] = "no_privileged"
    family: ClassVar[Domain] = Domain.CONTAINER


@dataclass(frozen=True)
class NoHostNetwork:
    """Reject containers using the host network namespace."""

    constraint_type: ClassVar[str] = "no_host_network"
    family: ClassVar[Domain] = Domain.CONTAINER


@dataclass(frozen=True)
class AllowedMounts:
    """Every bind-mount source must match one of ``patterns``."""

    patterns: tuple[str, ...]

    constraint_type: ClassVar[str] = "allowed_mounts"
    family: ClassVar[Domain] = Domain.CONTAINER


@dataclass(frozen=True)
class ImagePattern:
    """The target image name must match one of ``patterns``."""

    patterns: tuple[str, ...]

    constraint_type: ClassVar[str] = "image_pattern"
    family: ClassVar[Domain] = Domain.CONTAINER


@dataclass(frozen=True)
class ContainerPattern:
    """The target container name must match one of ``patterns``."""

    patterns: tuple[str, ...]

    constraint_type: ClassVar[str] = "container_pattern"
    family: ClassVar[Domain] = Domain.CONTAINER


@dataclass(frozen=True)
class ResourceLimits:
    """Requested memory and CPUs must not exceed the configured maxima.

    Attributes
    ----------
    max_memory:
        Human memory string such as ``"512m"`` or ``"2g"``.
    max_cpus:
        Maximum number of CPUs (may be fractional).
    """

    max_memory: str | None = None
    max_cpus: float | None = None

    constraint_type: ClassVar[str] = "resource_limits"
    family: ClassVar[Domain] = Domain.CONTAINER


# ---------------------------------------------------------------------------
# Shell family
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CwdOnly:
    """Every path argument must resolve inside the working directory.

    Attributes
    ----------
    also_allow:
        Extra directories that are accepted.  ``"~"`` permits home paths.
    exclude:
        Globs matched against the basename and each segment of the
        resolved path; any match is rejected.
    """

    also_allow: tuple[str, ...] = field(default_factory=tuple)
    exclude: tuple[str, ...] = field(default_factory=tuple)

    constraint_type: ClassVar[str] = "cwd_only"
    family: ClassVar[Domain] = Domain.SHELL


@dataclass(frozen=True)
class NoRecursive:
    """Reject ``-r``, ``-R`` and ``--recursive``."""

    constraint_type: ClassVar[str] = "no_recursive"
    family: ClassVar[Domain] = Domain.SHELL


@dataclass(frozen=True)
class NoForce:
    """Reject ``-f`` and ``--force``."""

    constraint_type: ClassVar[str] = "no_force"
    family: ClassVar[Domain] = Domain.SHELL


@dataclass(frozen=True)
class MaxDepth:
    """Require an explicit ``-maxdepth``/``--max-depth`` no greater than ``value``."""

    value: int

    constraint_type: ClassVar[str] = "max_depth"
    family: ClassVar[Domain] = Domain.SHELL


@dataclass(frozen=True)
class RequireFlag:
    """Require ``flag`` to be present on the command line."""

    flag: str

    constraint_type: ClassVar[str] = "require_flag"
    family: ClassVar[Domain] = Domain.SHELL


Constraint = Union[
    NoPrivileged,
    NoHostNetwork,
    AllowedMounts,
    ImagePattern,
    ContainerPattern,
    ResourceLimits,
    CwdOnly,
    NoRecursive,
    NoForce,
    MaxDepth,
    RequireFlag,
]

_PARAMETERLESS: dict[Domain, dict[str, Constraint]] = {
    Domain.CONTAINER: {
        "no_privileged": NoPrivileged(),
        "no_host_network": NoHostNetwork(),
    },
    Domain.SHELL: {
        "no_recursive": NoRecursive(),
        "no_force": NoForce(),
        "cwd_only": CwdOnly(),
    },
}

_PARAMETERISED: dict[Domain, frozenset[str]] = {
    Domain.CONTAINER: frozenset(
        {"allowed_mounts", "image_pattern", "container_pattern", "resource_limits"}
    ),
    Domain.SHELL: frozenset({"max_depth", "require_flag"}),
}


def known_constraint_types(domain: Domain) -> list[str]:
    """Return every constraint tag valid in *domain*, sorted."""
    return sorted(set(_PARAMETERLESS[domain]) | _PARAMETERISED[domain])


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _string_list(raw: object, label: str) -> tuple[str, ...]:
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise ConstraintConfigError(f"{label} must be a list of strings")
    return tuple(raw)


def _optional_string_list(raw: object, label: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConstraintConfigError(f"{label} must be an array")
    return _string_list(raw, label)


def parse_constraint(raw: object, domain: Domain) -> Constraint:
    """Build a constraint variant from its configuration form.

    Parameters
    ----------
    raw:
        Either a bare tag string (parameterless variants only) or a mapping
        with a ``type`` key plus that variant's parameters.
    domain:
        The rule set's domain; tags from the other family are unknown here.

    Returns
    -------
    Constraint

    Raises
    ------
    ConstraintConfigError
        On an unknown tag, a shorthand for a parameterised variant, or
        parameters of the wrong shape.
    """
    if isinstance(raw, str):
        if raw in _PARAMETERLESS[domain]:
            return _PARAMETERLESS[domain][raw]
        if raw in _PARAMETERISED[domain]:
            raise ConstraintConfigError(
                f"Constraint '{raw}' requires object form with parameters"
            )
        raise ConstraintConfigError(f"Invalid constraint type '{raw}'")

    if not isinstance(raw, dict):
        raise ConstraintConfigError("Constraint must be a string or object")

    constraint_type = raw.get("type")
    if not isinstance(constraint_type, str):
        raise ConstraintConfigError("Constraint missing 'type' field")

    if constraint_type not in known_constraint_types(domain):
        raise ConstraintConfigError(f"Unknown constraint type '{constraint_type}'")

    match constraint_type:
        case "no_privileged":
            return NoPrivileged()

        case "no_host_network":
            return NoHostNetwork()

        case "allowed_mounts":
            return AllowedMounts(
                patterns=_string_list(raw.get("value"), "allowed_mounts 'value'")
            )

        case "image_pattern":
            return ImagePattern(
                patterns=_string_list(raw.get("value"), "image_pattern 'value'")
            )

        case "container_pattern":
            return ContainerPattern(
                patterns=_string_list(raw.get("value"), "container_pattern 'value'")
            )

        case "resource_limits":
            max_memory = raw.get("max_memory")
            if max_memory is not None and not isinstance(max_memory, str):
                raise ConstraintConfigError(
                    "resource_limits.max_memory must be a string (e.g., '512m')"
                )
            max_cpus = raw.get("max_cpus")
            if max_cpus is not None and (
                isinstance(max_cpus, bool) or not isinstance(max_cpus, (int, float))
            ):
                raise ConstraintConfigError("resource_limits.max_cpus must be a number")
            return ResourceLimits(
                max_memory=max_memory,
                max_cpus=float(max_cpus) if max_cpus is not None else None,
            )

        case "cwd_only":
            return CwdOnly(
                also_allow=_optional_string_list(raw.get("also_allow"), "cwd_only.also_allow"),
                exclude=_optional_string_list(raw.get("exclude"), "cwd_only.exclude"),
            )

        case "no_recursive":
            return NoRecursive()

        case "no_force":
            return NoForce()

        case "max_depth":
            value = raw.get("value")
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConstraintConfigError("max_depth requires a non-negative 'value'")
            return MaxDepth(value=value)

        case "require_flag":
            flag = raw.get("flag")
            if not isinstance(flag, str) or not flag:
                raise ConstraintConfigError("require_flag requires a non-empty 'flag'")
            return RequireFlag(flag=flag)

        case _:
            # Unreachable: the tag was checked against the domain above.
            raise ConstraintConfigError(f"Unhandled constraint type '{constraint_type}'")
