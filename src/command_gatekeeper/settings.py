"""Gatekeeper configuration loader with Pydantic v2 validation.

Loads and validates a ``gatekeeper.yaml`` file into a typed
:class:`GatekeeperSettings` object.  Unknown keys are allowed to support
future schema additions without breakage.

Example ``gatekeeper.yaml``::

    shell_permissions: ~/.config/gatekeeper/sh-permissions.yaml
    container_permissions: ~/.config/gatekeeper/docker-permissions.yaml
    audit:
      database_url: sqlite:///~/.gatekeeper/audit.db
    logging:
      level: INFO

Example
-------
::

    settings = SettingsLoader().load(Path("gatekeeper.yaml"))
    gatekeeper = build_gatekeeper(settings, Domain.SHELL)
"""
from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

from command_gatekeeper.audit.logger import AuditLogger
from command_gatekeeper.gatekeeper import Gatekeeper
from command_gatekeeper.permissions.constraints import Domain
from command_gatekeeper.permissions.engine import DecisionEngine
from command_gatekeeper.permissions.permission_loader import LazyPolicy, PermissionLoader
from command_gatekeeper.permissions.rules import PolicyConfig

DEFAULT_DATABASE_URL: str = "sqlite:///~/.gatekeeper/audit.db"

_LOG_LEVELS: frozenset[str] = frozenset(
    {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}
)


class AuditSettings(BaseModel):
    """Configuration for the audit trail."""

    model_config = {"extra": "allow"}

    database_url: str = Field(default=DEFAULT_DATABASE_URL)
    enabled: bool = Field(default=True)


class LoggingSettings(BaseModel):
    """Configuration for the standard library root logger."""

    model_config = {"extra": "allow"}

    level: str = Field(default="WARNING")
    format: str = Field(default="%(asctime)s %(levelname)s %(name)s: %(message)s")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level '{value}'. Valid: {sorted(_LOG_LEVELS)}")
        return level

    def apply(self) -> None:
        """Configure the root logger from these settings."""
        logging.basicConfig(level=getattr(logging, self.level), format=self.format)


class GatekeeperSettings(BaseModel):
    """Top-level gatekeeper configuration schema.

    All sections are optional.  A domain without a permissions file has no
    rules, so every operation in it is denied.
    """

    model_config = {"extra": "allow"}

    shell_permissions: Path | None = Field(default=None)
    container_permissions: Path | None = Field(default=None)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def permissions_path(self, domain: Domain) -> Path | None:
        """Return the permissions file configured for *domain*, ``~`` expanded."""
        path = self.shell_permissions if domain is Domain.SHELL else self.container_permissions
        return path.expanduser() if path is not None else None


class SettingsLoader:
    """Loads and validates gatekeeper YAML configuration."""

    def load(self, config_path: Path) -> GatekeeperSettings:
        """Load and validate a ``gatekeeper.yaml`` file.

        Raises
        ------
        FileNotFoundError:
            When the config file does not exist.
        ValueError:
            When the YAML content fails Pydantic validation.
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Gatekeeper config not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as fh:
            raw: dict[str, object] = yaml.safe_load(fh) or {}

        return GatekeeperSettings.model_validate(raw)

    def load_string(self, yaml_content: str) -> GatekeeperSettings:
        """Load and validate a YAML string directly."""
        raw: dict[str, object] = yaml.safe_load(yaml_content) or {}
        return GatekeeperSettings.model_validate(raw)

    def defaults(self) -> GatekeeperSettings:
        """Return a configuration with all defaults applied."""
        return GatekeeperSettings()


def build_policy(settings: GatekeeperSettings, domain: Domain) -> LazyPolicy:
    """Return a lazy, fail-closed policy for *domain*.

    Without a configured permissions file the policy is the deny-everything
    fallback.
    """
    path = settings.permissions_path(domain)
    if path is None:
        return LazyPolicy(lambda: PolicyConfig.fallback(domain), domain=domain)
    return LazyPolicy.from_path(PermissionLoader(domain), path)


def build_gatekeeper(settings: GatekeeperSettings, domain: Domain) -> Gatekeeper:
    """Wire settings into a :class:`Gatekeeper` for *domain*.

    The permissions file is read on the first check, not here.  The audit
    database is opened here when auditing is enabled.
    """
    audit = (
        AuditLogger(settings.audit.database_url, domain) if settings.audit.enabled else None
    )
    return Gatekeeper(DecisionEngine(build_policy(settings, domain)), domain, audit=audit)
