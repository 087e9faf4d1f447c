"""Exception hierarchy for command-gatekeeper.

Only configuration problems are exceptions.  Policy denials are ordinary
results (:class:`~command_gatekeeper.permissions.rules.MatchResult`,
:class:`~command_gatekeeper.permissions.constraints.ConstraintResult`) and
are never raised.
"""
from __future__ import annotations


class GatekeeperError(Exception):
    """Base class for all command-gatekeeper errors."""


class PermissionConfigError(GatekeeperError, ValueError):
    """Raised when a permission configuration is malformed or invalid.

    Attributes
    ----------
    config_path:
        The path to the config file that caused the error, if known.
    errors:
        Every individual validation error that was found.
    """

    def __init__(
        self,
        message: str,
        config_path: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        self.config_path = config_path
        self.errors: list[str] = list(errors) if errors else [message]
        prefix = f"[{config_path}] " if config_path else ""
        super().__init__(f"{prefix}{message}")


class ConstraintConfigError(PermissionConfigError):
    """Raised when a single constraint entry cannot be parsed."""
