"""Constraint evaluation for matched ``allow`` rules.

:func:`validate` checks every constraint attached to a rule against a
validation context.  All constraints must pass (AND semantics) and
evaluation stops at the first violation.

Two context shapes exist, one per domain:

- :class:`ShellContext` - the raw command line and the working directory.
- :class:`~command_gatekeeper.container.config.ContainerContext` - the
  container config, image name and container name of a container
  operation.  Constraints whose fact is absent from the context pass.

The individual evaluators are plain functions and can be called directly.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Union

from command_gatekeeper.container.config import ContainerConfig, ContainerContext
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
)
from command_gatekeeper.permissions.patterns import matches_any_pattern
from command_gatekeeper.permissions.rules import Rule
from command_gatekeeper.shell.paths import (
    HOME,
    PREVIOUS_DIR,
    extract_command_paths,
    is_path_within_or_equal,
    matching_exclude_pattern,
    resolve_path,
)
from command_gatekeeper.shell.tokenizer import tokenize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShellContext:
    """Facts about a shell command needed to check its constraints."""

    command: str
    workdir: str


ValidationContext = Union[ShellContext, ContainerContext]


def _deny(domain: Domain, message: str) -> ConstraintResult:
    return ConstraintResult.deny(f"{domain.denial_prefix}: {message}")


# ---------------------------------------------------------------------------
# Shell evaluators
# ---------------------------------------------------------------------------


def _is_home_path(path: str) -> bool:
    return path == HOME or path.startswith(HOME + "/")


def validate_cwd_only(
    command: str,
    workdir: str,
    also_allow: Sequence[str] = (),
    exclude: Sequence[str] = (),
) -> ConstraintResult:
    """Require every path argument of *command* to stay inside *workdir*.

    Parameters
    ----------
    command:
        Raw command line.
    workdir:
        Absolute working directory the command runs in.
    also_allow:
        Extra directories accepted besides *workdir*.  ``"~"`` permits
        paths under the home directory.
    exclude:
        Globs matched against the basename and every segment of each
        resolved path.  Checked before containment.

    Returns
    -------
    ConstraintResult
        Valid when the command has no path arguments.
    """
    paths = extract_command_paths(command)

    for path in paths:
        if path == PREVIOUS_DIR:
            return _deny(Domain.SHELL, "'cd -' not allowed (unknown destination)")

        if _is_home_path(path):
            if HOME in also_allow:
                continue
            return _deny(Domain.SHELL, "Home directory (~) not allowed")

        resolved = resolve_path(path, workdir)

        matched = matching_exclude_pattern(resolved, exclude)
        if matched is not None:
            return _deny(
                Domain.SHELL,
                f"Path '{path}' matches excluded pattern '{matched}'",
            )

        if is_path_within_or_equal(resolved, workdir):
            continue

        if any(
            is_path_within_or_equal(resolved, resolve_path(allowed, workdir))
            for allowed in also_allow
            if allowed != HOME
        ):
            continue

        return _deny(
            Domain.SHELL,
            f"Path '{path}' resolves to '{resolved}' which is outside "
            f"working directory '{workdir}'",
        )

    return ConstraintResult.ok()


def has_short_flag(token: str, flag: str) -> bool:
    """Return True if *token* carries the single-letter *flag*.

    Matches the flag on its own (``-r``) or inside a combined short-flag
    cluster (``-rf``).  Long options never match.

    Examples
    --------
    >>> has_short_flag("-rf", "-f")
    True
    >>> has_short_flag("--force", "-f")
    False
    """
    flag_char = flag[1:] if flag.startswith("-") else flag
    if len(flag_char) != 1:
        return False

    if token == f"-{flag_char}":
        return True

    if token.startswith("-") and not token.startswith("--") and len(token) > 2:
        return flag_char in token

    return False


def validate_no_recursive(command: str) -> ConstraintResult:
    """Reject ``--recursive`` and any ``-r``/``-R`` short flag."""
    for token in tokenize(command):
        if (
            token == "--recursive"
            or has_short_flag(token, "-r")
            or has_short_flag(token, "-R")
        ):
            return _deny(Domain.SHELL, f"Recursive flag not allowed ({token})")
    return ConstraintResult.ok()


def validate_no_force(command: str) -> ConstraintResult:
    """Reject ``--force`` and any ``-f`` short flag."""
    for token in tokenize(command):
        if token == "--force" or has_short_flag(token, "-f"):
            return _deny(Domain.SHELL, f"Force flag not allowed ({token})")
    return ConstraintResult.ok()


_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
_DEPTH_FLAGS: frozenset[str] = frozenset({"-maxdepth", "--max-depth"})


def _parse_leading_int(text: str) -> int | None:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else None


def validate_max_depth(command: str, max_allowed: int) -> ConstraintResult:
    """Require an explicit ``-maxdepth``/``--max-depth`` of at most *max_allowed*.

    Unlike the other constraints this one fails when its flag is absent:
    the point is to force a bound onto traversals such as ``find``.
    Every occurrence of the flag is checked.
    """
    tokens = tokenize(command)
    found = False

    for index, token in enumerate(tokens):
        if token not in _DEPTH_FLAGS:
            continue
        found = True

        if index + 1 >= len(tokens):
            return _deny(Domain.SHELL, f"Missing value for {token}")

        raw_depth = tokens[index + 1]
        depth = _parse_leading_int(raw_depth)
        if depth is None:
            return _deny(Domain.SHELL, f"Invalid depth value '{raw_depth}'")

        if depth > max_allowed:
            return _deny(
                Domain.SHELL,
                f"Depth {depth} exceeds maximum allowed ({max_allowed})",
            )

    if not found:
        return _deny(
            Domain.SHELL,
            f"Must specify -maxdepth (max {max_allowed}) for safety",
        )
    return ConstraintResult.ok()


def validate_require_flag(command: str, required_flag: str) -> ConstraintResult:
    """Require *required_flag* as an exact token or inside a short-flag cluster."""
    tokens = tokenize(command)

    if required_flag in tokens:
        return ConstraintResult.ok()

    is_short = (
        required_flag.startswith("-")
        and not required_flag.startswith("--")
        and len(required_flag) == 2
    )
    if is_short and any(has_short_flag(token, required_flag) for token in tokens):
        return ConstraintResult.ok()

    return _deny(Domain.SHELL, f"Required flag '{required_flag}' not found")


# ---------------------------------------------------------------------------
# Container evaluators
# ---------------------------------------------------------------------------


def validate_no_privileged(config: ContainerConfig) -> ConstraintResult:
    if config.host_config.privileged:
        return _deny(Domain.CONTAINER, "Privileged containers are not allowed")
    return ConstraintResult.ok()


def validate_no_host_network(config: ContainerConfig) -> ConstraintResult:
    if config.host_config.network_mode == "host":
        return _deny(Domain.CONTAINER, "Host network mode is not allowed")
    return ConstraintResult.ok()


def validate_allowed_mounts(
    config: ContainerConfig, allowed_patterns: Sequence[str]
) -> ConstraintResult:
    """Require the source of every bind mount to match an allowed glob."""
    for bind in config.host_config.binds:
        source = bind.split(":")[0]
        if not matches_any_pattern(source, allowed_patterns):
            return _deny(
                Domain.CONTAINER,
                f"Mount source '{source}' not in allowed paths. "
                f"Allowed: {', '.join(allowed_patterns)}",
            )
    return ConstraintResult.ok()


def validate_image_pattern(
    image_name: str, allowed_patterns: Sequence[str]
) -> ConstraintResult:
    if not matches_any_pattern(image_name, allowed_patterns):
        return _deny(
            Domain.CONTAINER,
            f"Image '{image_name}' not in allowed patterns. "
            f"Allowed: {', '.join(allowed_patterns)}",
        )
    return ConstraintResult.ok()


def validate_container_pattern(
    container_name: str, allowed_patterns: Sequence[str]
) -> ConstraintResult:
    """Match the container name, minus the leading ``/`` Docker adds."""
    name = container_name[1:] if container_name.startswith("/") else container_name
    if not matches_any_pattern(name, allowed_patterns):
        return _deny(
            Domain.CONTAINER,
            f"Container '{name}' not in allowed patterns. "
            f"Allowed: {', '.join(allowed_patterns)}",
        )
    return ConstraintResult.ok()


_MEMORY_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([kmgtp]?)b?$")
_MEMORY_MULTIPLIERS: dict[str, int] = {
    "": 1,
    "k": 1024,
    "m": 1024**2,
    "g": 1024**3,
    "t": 1024**4,
    "p": 1024**5,
}


def parse_memory(memory: str) -> int | None:
    """Convert a human memory string to bytes.

    Units are 1024-based and case-insensitive, with an optional trailing
    ``b``.  Returns ``None`` when *memory* is not recognised.

    Examples
    --------
    >>> parse_memory("512m")
    536870912
    >>> parse_memory("1.5G")
    1610612736
    >>> parse_memory("lots") is None
    True
    """
    match = _MEMORY_RE.match(memory.strip().lower())
    if match is None:
        return None
    value = float(match.group(1))
    return int(value * _MEMORY_MULTIPLIERS[match.group(2)])


def validate_resource_limits(
    config: ContainerConfig,
    max_memory: str | None = None,
    max_cpus: float | None = None,
) -> ConstraintResult:
    """Reject requests above the configured memory or CPU maximum.

    Unset requests never fail, and neither does a *max_memory* that
    :func:`parse_memory` cannot read.  Limits are inclusive.
    """
    host = config.host_config

    if max_memory and host.memory:
        max_bytes = parse_memory(max_memory)
        if max_bytes and host.memory > max_bytes:
            return _deny(
                Domain.CONTAINER,
                f"Memory limit {host.memory} exceeds maximum {max_memory}",
            )

    cpus = host.cpus
    if max_cpus and cpus:
        if cpus > max_cpus:
            return _deny(
                Domain.CONTAINER,
                f"CPU limit {cpus:g} exceeds maximum {max_cpus:g}",
            )

    return ConstraintResult.ok()


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def _evaluate_shell(constraint: Constraint, context: ShellContext) -> ConstraintResult:
    command, workdir = context.command, context.workdir
    match constraint:
        case CwdOnly(also_allow=also_allow, exclude=exclude):
            return validate_cwd_only(command, workdir, also_allow, exclude)
        case NoRecursive():
            return validate_no_recursive(command)
        case NoForce():
            return validate_no_force(command)
        case MaxDepth(value=value):
            return validate_max_depth(command, value)
        case RequireFlag(flag=flag):
            return validate_require_flag(command, flag)
        case _:
            return _deny(
                Domain.SHELL,
                f"Unknown constraint type '{_constraint_tag(constraint)}'",
            )


def _evaluate_container(
    constraint: Constraint, context: ContainerContext
) -> ConstraintResult:
    config = context.container_config
    match constraint:
        case NoPrivileged():
            return validate_no_privileged(config) if config else ConstraintResult.ok()
        case NoHostNetwork():
            return validate_no_host_network(config) if config else ConstraintResult.ok()
        case AllowedMounts(patterns=patterns):
            if config is None:
                return ConstraintResult.ok()
            return validate_allowed_mounts(config, patterns)
        case ImagePattern(patterns=patterns):
            if not context.image_name:
                return ConstraintResult.ok()
            return validate_image_pattern(context.image_name, patterns)
        case ContainerPattern(patterns=patterns):
            if not context.container_name:
                return ConstraintResult.ok()
            return validate_container_pattern(context.container_name, patterns)
        case ResourceLimits(max_memory=max_memory, max_cpus=max_cpus):
            if config is None:
                return ConstraintResult.ok()
            return validate_resource_limits(config, max_memory, max_cpus)
        case _:
            return _deny(
                Domain.CONTAINER,
                f"Unknown constraint type '{_constraint_tag(constraint)}'",
            )


def _constraint_tag(constraint: object) -> str:
    return getattr(constraint, "constraint_type", type(constraint).__name__)


def validate(rule: Rule, context: ValidationContext) -> ConstraintResult:
    """Check every constraint of *rule* against *context*.

    Parameters
    ----------
    rule:
        The rule that matched with ``allow``.
    context:
        :class:`ShellContext` for shell rules or
        :class:`~command_gatekeeper.container.config.ContainerContext`
        for container rules.

    Returns
    -------
    ConstraintResult
        The first violation found, or a valid result.  A constraint from
        the other domain is reported as an unknown type.  An evaluator
        that raises is logged and reported as a violation; nothing
        propagates.
    """
    domain = Domain.SHELL if isinstance(context, ShellContext) else Domain.CONTAINER

    for constraint in rule.constraints:
        try:
            if isinstance(context, ShellContext):
                result = _evaluate_shell(constraint, context)
            else:
                result = _evaluate_container(constraint, context)
        except Exception:
            tag = _constraint_tag(constraint)
            logger.exception("Constraint %r failed to evaluate for %r", tag, rule.pattern)
            result = _deny(domain, f"Constraint '{tag}' could not be evaluated")

        if not result:
            logger.debug("Constraint violation for %r: %s", rule.pattern, result.violation)
            return result

    return ConstraintResult.ok()
