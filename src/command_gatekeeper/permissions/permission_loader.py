"""YAML-based permission configuration loader.

PermissionLoader reads permission configs and builds :class:`PolicyConfig`
instances for one domain (shell commands or container operations).

Schema
------
::

    default: deny                      # optional, allow | deny
    default_reason: "Not permitted"    # optional
    rules:
      - pattern: "git status*"
        decision: allow
      - patterns: ["rm *", "rmdir *"]
        decision: allow
        constraints:
          - cwd_only
          - no_force
      - pattern: "sudo *"
        decision: deny
        reason: "No privilege escalation"

Rules are evaluated in file order.  A ``patterns`` list expands in place
into one rule per pattern sharing the same decision, reason and
constraints.

Fail-closed loading
-------------------
:meth:`PermissionLoader.load` raises on any problem.
:meth:`PermissionLoader.load_or_fallback` and :class:`LazyPolicy` never
raise: an unreadable file, a YAML error or a schema error is logged and
the deny-everything fallback config is returned instead.

Example
-------
::

    loader = PermissionLoader(Domain.SHELL)
    policy = loader.load("/path/to/sh-permissions.yaml")
    engine = DecisionEngine(policy)
    assert engine.decide("git status").allowed
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any, cast

import yaml

from command_gatekeeper.errors import ConstraintConfigError, PermissionConfigError
from command_gatekeeper.permissions.constraints import (
    Constraint,
    Domain,
    parse_constraint,
)
from command_gatekeeper.permissions.rules import Decision, PolicyConfig, Rule

logger = logging.getLogger(__name__)

_DECISIONS: frozenset[str] = frozenset(decision.value for decision in Decision)


def _is_decision(value: object) -> bool:
    return isinstance(value, str) and value in _DECISIONS


class PermissionLoader:
    """Loads :class:`PolicyConfig` objects from YAML files, strings or dicts.

    Parameters
    ----------
    domain:
        Which constraint family the rules may use, and which default
        reason applies when the config omits ``default_reason``.

    Examples
    --------
    ::

        loader = PermissionLoader(Domain.CONTAINER)
        policy = loader.load_from_dict({
            "rules": [
                {"pattern": "container:list", "decision": "allow"},
                {
                    "pattern": "container:create:*",
                    "decision": "allow",
                    "constraints": ["no_privileged"],
                },
            ],
        })
        assert policy.rule_count == 2
    """

    def __init__(self, domain: Domain = Domain.SHELL) -> None:
        self._domain = domain

    @property
    def domain(self) -> Domain:
        return self._domain

    def load(self, config_path: str | Path) -> PolicyConfig:
        """Load a policy from a YAML file on disk.

        Parameters
        ----------
        config_path:
            Path to the YAML permission configuration file.

        Returns
        -------
        PolicyConfig

        Raises
        ------
        FileNotFoundError
            If the config file does not exist.
        OSError
            If the path cannot be read, e.g. it is a directory.
        PermissionConfigError
            If the file cannot be parsed or is structurally invalid.
        """
        config_path = Path(config_path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Permission config not found: {config_path}")

        try:
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise PermissionConfigError(
                f"Failed to parse YAML: {exc}", str(config_path)
            ) from exc
        except UnicodeDecodeError as exc:
            raise PermissionConfigError(
                f"Config file is not valid UTF-8: {exc}", str(config_path)
            ) from exc

        return self._build_policy(raw, config_path=str(config_path))

    def load_from_dict(
        self,
        config: dict[str, object],
        config_path: str | None = None,
    ) -> PolicyConfig:
        """Build a policy from an already-parsed config mapping.

        Raises
        ------
        PermissionConfigError
            If the config is structurally invalid.
        """
        return self._build_policy(config, config_path=config_path)

    def load_from_yaml_string(
        self,
        yaml_string: str,
        config_path: str | None = None,
    ) -> PolicyConfig:
        """Build a policy from YAML text.

        Raises
        ------
        PermissionConfigError
            If parsing fails or the config is invalid.
        """
        try:
            raw = yaml.safe_load(yaml_string)
        except yaml.YAMLError as exc:
            raise PermissionConfigError(
                f"Failed to parse YAML string: {exc}", config_path
            ) from exc
        return self._build_policy(raw, config_path=config_path)

    def load_or_fallback(self, config_path: str | Path) -> PolicyConfig:
        """Load *config_path*, substituting the deny-everything config on failure.

        Never raises.  Every problem is logged at ERROR level, one line per
        validation error.
        """
        try:
            return self.load(config_path)
        except PermissionConfigError as exc:
            logger.error("Invalid %s permissions config %s:", self._domain.value, config_path)
            for error in exc.errors:
                logger.error("  - %s", error)
        except OSError as exc:
            logger.error(
                "Failed to load %s permissions from %s: %s",
                self._domain.value,
                config_path,
                exc,
            )
        return PolicyConfig.fallback(self._domain)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build_policy(
        self,
        raw: object,
        config_path: str | None = None,
    ) -> PolicyConfig:
        """Validate *raw* and compile it into a policy."""
        errors = self.validate(raw)
        if errors:
            raise PermissionConfigError(
                f"Invalid permissions config: {'; '.join(errors)}",
                config_path,
                errors=errors,
            )

        config = cast(dict[str, Any], raw)
        rules: list[Rule] = []
        for raw_rule in config["rules"]:
            rules.extend(self._expand_rule(raw_rule))

        default = Decision(config.get("default", Decision.DENY.value))
        policy = PolicyConfig.from_rules(
            rules,
            domain=self._domain,
            default_decision=default,
            default_reason=config.get("default_reason"),
        )

        logger.info(
            "Loaded %d %s permission rules from %s (default=%s)",
            policy.rule_count,
            self._domain.value,
            config_path or "<dict>",
            default.value,
        )
        return policy

    def _expand_rule(self, raw_rule: dict[str, object]) -> list[Rule]:
        if isinstance(raw_rule.get("patterns"), list):
            patterns: list[str] = list(raw_rule["patterns"])  # type: ignore[arg-type]
        else:
            patterns = [raw_rule["pattern"]]  # type: ignore[list-item]

        decision = Decision(raw_rule["decision"])
        reason = raw_rule.get("reason")
        constraints = tuple(
            parse_constraint(item, self._domain)
            for item in raw_rule.get("constraints") or []  # type: ignore[union-attr]
        )
        return [
            Rule(
                pattern=pattern,
                decision=decision,
                reason=reason,  # type: ignore[arg-type]
                constraints=constraints,
            )
            for pattern in patterns
        ]

    def validate(self, raw: object) -> list[str]:
        """Return every structural error in *raw*; empty when it is valid."""
        if not isinstance(raw, dict):
            return ["Config must be an object"]

        rules = raw.get("rules")
        if not isinstance(rules, list):
            return ['Config must have a "rules" array']

        errors: list[str] = []
        for index, raw_rule in enumerate(rules):
            error = self._validate_rule(raw_rule, index)
            if error:
                errors.append(error)

        default = raw.get("default")
        if default is not None and not _is_decision(default):
            errors.append("'default' must be 'allow' or 'deny'")

        default_reason = raw.get("default_reason")
        if default_reason is not None and not isinstance(default_reason, str):
            errors.append("'default_reason' must be a string")

        return errors

    def _validate_rule(self, raw_rule: object, index: int) -> str | None:
        if not isinstance(raw_rule, dict):
            return f"Rule {index}: Must be an object"

        has_pattern = isinstance(raw_rule.get("pattern"), str)
        patterns = raw_rule.get("patterns")
        has_patterns = isinstance(patterns, list) and all(
            isinstance(pattern, str) for pattern in patterns
        )
        if not has_pattern and not has_patterns:
            return f"Rule {index}: Must have 'pattern' (string) or 'patterns' (string array)"

        if not _is_decision(raw_rule.get("decision")):
            return f"Rule {index}: 'decision' must be 'allow' or 'deny'"

        reason = raw_rule.get("reason")
        if reason is not None and not isinstance(reason, str):
            return f"Rule {index}: 'reason' must be a string or null"

        if "constraints" in raw_rule and raw_rule["constraints"] is not None:
            constraints = raw_rule["constraints"]
            if not isinstance(constraints, list):
                return f"Rule {index}: 'constraints' must be an array"
            for item in constraints:
                try:
                    parse_constraint(item, self._domain)
                except ConstraintConfigError as exc:
                    return f"Rule {index}: {exc}"

        return None


# ---------------------------------------------------------------------------
# Lazy, fail-closed policy holder
# ---------------------------------------------------------------------------


class PolicyState(str, Enum):
    """Lifecycle of a :class:`LazyPolicy`."""

    UNINITIALIZED = "uninitialized"
    LOADED = "loaded"
    FALLBACK = "fallback"


class LazyPolicy:
    """Thread-safe, load-once holder for a :class:`PolicyConfig`.

    The loader callable runs at most once, on the first :meth:`get`.
    Concurrent first callers block until it finishes and then all observe
    the same config.  A loader that raises, for any reason, leaves the
    holder in the fallback state; there is no transition back.

    Parameters
    ----------
    loader_fn:
        Zero-argument callable returning a :class:`PolicyConfig`.
    domain:
        Domain used to build the fallback config if ``loader_fn`` raises.

    Examples
    --------
    ::

        loader = PermissionLoader(Domain.SHELL)
        policy = LazyPolicy.from_path(loader, "~/.config/sh-permissions.yaml")
        engine = DecisionEngine(policy)
    """

    def __init__(
        self,
        loader_fn: Callable[[], PolicyConfig],
        domain: Domain = Domain.SHELL,
    ) -> None:
        self._loader_fn = loader_fn
        self._domain = domain
        self._config: PolicyConfig | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_path(cls, loader: PermissionLoader, config_path: str | Path) -> LazyPolicy:
        """Build a holder that loads *config_path* with *loader* on first use."""
        return cls(lambda: loader.load_or_fallback(config_path), domain=loader.domain)

    @property
    def state(self) -> PolicyState:
        config = self._config
        if config is None:
            return PolicyState.UNINITIALIZED
        return PolicyState.FALLBACK if config.is_fallback else PolicyState.LOADED

    def get(self) -> PolicyConfig:
        """Return the config, loading it on the first call."""
        config = self._config
        if config is not None:
            return config

        with self._lock:
            if self._config is None:
                self._config = self._load()
            return self._config

    def _load(self) -> PolicyConfig:
        try:
            return self._loader_fn()
        except Exception:
            logger.exception(
                "Permission loader failed; all %s denied for safety",
                self._domain.subject,
            )
            return PolicyConfig.fallback(self._domain)
