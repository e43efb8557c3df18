"""Configuration management for diskmon."""

import logging
import os
import stat
from dataclasses import dataclass, field, replace
from email.utils import parseaddr
from pathlib import Path
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
ENV_PREFIX = "DISKMON_"
SECURITY_MODES = ("none", "starttls", "ssl")


class ConfigurationError(Exception):
    """Configuration is missing or invalid. Fatal: the run aborts before probing."""

    def __init__(self, problems: list[str] | str) -> None:
        if isinstance(problems, str):
            self.problems = [problems]
            message = problems
        else:
            self.problems = list(problems)
            message = "Missing or invalid required configuration keys: " + ", ".join(self.problems)
        super().__init__(message)


@dataclass(frozen=True)
class TransportConfig:
    """SMTP transport settings, with credentials already resolved."""

    server: str
    port: int = 587
    security: str = "starttls"
    username: str = ""
    password: str = ""
    email_from: str = ""
    email_to: tuple[str, ...] = ()
    timeout: float = 30.0

    @property
    def use_auth(self) -> bool:
        return bool(self.username.strip() or self.password.strip())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransportConfig":
        return cls(
            server=str(data.get("smtp_server") or ""),
            port=int(data.get("smtp_port") or 0),
            security=str(data.get("smtp_security") or "starttls").lower(),
            username=str(data.get("smtp_user") or ""),
            password=str(data.get("smtp_pass") or ""),
            email_from=str(data.get("email_from") or ""),
            email_to=split_recipients(data.get("email_to")),
            timeout=float(_value(data, "smtp_timeout", 30.0)),
        )


@dataclass(frozen=True)
class Config:
    """Main configuration for diskmon."""

    transport: TransportConfig
    mail_enabled: bool = True
    threshold_percent: float = 10.0
    send_mail_on_unknown_status: bool = False
    debug: bool = False
    health_check_enabled: bool = True
    smart_enabled: bool = True
    friendly_name: str | None = None
    excluded_disks: tuple[str, ...] = ()
    smart_timeout: float = 30.0
    overall_timeout: float = 90.0
    max_workers: int = 8
    warnings: tuple[str, ...] = field(default=(), compare=False)

    @classmethod
    def from_yaml(
        cls,
        path: str | Path,
        environ: Mapping[str, str] | None = None,
    ) -> "Config":
        """Load, validate and apply environment overrides."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        return cls.from_dict(data, environ=environ)

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        environ: Mapping[str, str] | None = None,
    ) -> "Config":
        """Create configuration from dictionary.

        Environment overrides replace the corresponding transport fields
        before validation, so credentials may live outside the file.
        """
        try:
            config = cls(
                transport=TransportConfig.from_dict(data),
                mail_enabled=bool(data.get("mail_enabled", True)),
                threshold_percent=float(_value(data, "threshold_percent", 10.0)),
                send_mail_on_unknown_status=bool(data.get("send_mail_on_unknown_status", False)),
                debug=bool(data.get("debug", False)),
                health_check_enabled=bool(data.get("health_check_enabled", True)),
                smart_enabled=bool(data.get("smart_enabled", True)),
                friendly_name=data.get("friendly_name") or None,
                excluded_disks=tuple(
                    str(d).strip() for d in data.get("excluded_disks") or [] if str(d).strip()
                ),
                smart_timeout=float(_value(data, "smart_timeout", 30.0)),
                overall_timeout=float(_value(data, "overall_timeout", 90.0)),
                max_workers=int(_value(data, "max_workers", 8)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

        config = apply_env_overrides(config, os.environ if environ is None else environ)
        warnings = validate_config(config)
        for warning in warnings:
            logger.warning(f"Config warning: {warning}")

        return replace(config, warnings=tuple(warnings))

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to YAML file, readable by the owner only."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(self._to_dict(), f, default_flow_style=False, sort_keys=False)
        if os.name == "posix":
            path.chmod(0o600)

    def _to_dict(self) -> dict[str, Any]:
        """Convert to the flat dictionary layout of config.yaml."""
        t = self.transport
        data: dict[str, Any] = {
            "mail_enabled": self.mail_enabled,
            "smtp_server": t.server,
            "smtp_port": t.port,
            "smtp_security": t.security,
            "smtp_user": t.username,
            "smtp_pass": t.password,
            "email_from": t.email_from,
            "email_to": ", ".join(t.email_to),
            "threshold_percent": self.threshold_percent,
            "send_mail_on_unknown_status": self.send_mail_on_unknown_status,
            "health_check_enabled": self.health_check_enabled,
            "smart_enabled": self.smart_enabled,
            "debug": self.debug,
            "excluded_disks": list(self.excluded_disks),
            "smart_timeout": self.smart_timeout,
            "overall_timeout": self.overall_timeout,
            "max_workers": self.max_workers,
        }
        if self.friendly_name:
            data["friendly_name"] = self.friendly_name
        return data


def _value(data: dict[str, Any], key: str, default: Any) -> Any:
    value = data.get(key)
    return default if value is None else value


def split_recipients(value: Any) -> tuple[str, ...]:
    """Accept a comma-separated string or a list of addresses."""
    if not value:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = [str(v) for v in value]
    return tuple(a.strip() for a in items if a.strip())


def parse_address(value: str) -> tuple[str, str] | None:
    """Split ``Name <user@host>`` or a bare address into (name, address).

    Returns None when the address part is unusable.
    """
    name, addr = parseaddr(value.strip())
    local, _, domain = addr.rpartition("@")
    if not local or not domain or any(c in addr for c in " \r\n<>,"):
        return None
    return name, addr


def validate_config(config: Config) -> list[str]:
    """Validate configuration.

    Raises:
        ConfigurationError: listing every invalid or missing key.

    Returns:
        Non-fatal warnings.
    """
    problems: list[str] = []
    warnings: list[str] = []
    t = config.transport

    if not t.server.strip():
        problems.append("smtp_server")
    if not t.email_from.strip():
        problems.append("email_from")
    elif parse_address(t.email_from) is None:
        problems.append("email_from (must be a valid email address)")
    if not t.email_to:
        problems.append("email_to (must be a valid email address)")
    elif any(parse_address(addr) is None for addr in t.email_to):
        problems.append("email_to (one or more recipients appear invalid)")
    if not 1 <= t.port <= 65535:
        problems.append("smtp_port (must be 1-65535)")
    if t.security not in SECURITY_MODES:
        problems.append("smtp_security (must be one of: none, starttls, ssl)")
    if not 1.0 <= config.threshold_percent <= 100.0:
        problems.append("threshold_percent (must be between 1.0 and 100.0)")
    if config.smart_timeout <= 0:
        problems.append("smart_timeout (must be positive)")
    if config.overall_timeout <= 0:
        problems.append("overall_timeout (must be positive)")
    if config.max_workers < 1:
        problems.append("max_workers (must be at least 1)")

    if problems:
        raise ConfigurationError(problems)

    if t.security == "none":
        warnings.append("SMTP security is set to 'none'. This is insecure and not recommended.")
    if config.debug:
        warnings.append("Debug mode is enabled. This may expose sensitive information in logs.")
    if not config.health_check_enabled:
        warnings.append("Disk health checks are disabled. Only free space will be monitored.")
    if config.send_mail_on_unknown_status:
        warnings.append(
            "send_mail_on_unknown_status is enabled. Emails will be sent even if SMART status is unknown."
        )
    for disk in config.excluded_disks:
        if os.name == "nt":
            if not (len(disk) == 2 and disk[1] == ":"):
                warnings.append(f"Invalid excluded disk '{disk}': must be a drive letter like 'C:'")
        elif "/" in disk:
            warnings.append(f"Invalid excluded disk '{disk}': must be a device name like 'sda' or 'nvme0n1'")

    return warnings


def apply_env_overrides(config: Config, environ: Mapping[str, str]) -> Config:
    """Override SMTP credentials and addresses from DISKMON_* environment variables."""
    overrides: dict[str, Any] = {}

    user = environ.get(f"{ENV_PREFIX}SMTP_USER", "")
    if user.strip():
        overrides["username"] = user
    password = environ.get(f"{ENV_PREFIX}SMTP_PASS", "")
    if password.strip():
        overrides["password"] = password
    email_from = environ.get(f"{ENV_PREFIX}EMAIL_FROM", "")
    if email_from.strip():
        overrides["email_from"] = email_from.strip()
    email_to = environ.get(f"{ENV_PREFIX}EMAIL_TO", "")
    if email_to.strip():
        overrides["email_to"] = split_recipients(email_to)

    if not overrides:
        return config

    logger.debug(f"Applying environment overrides: {sorted(overrides)}")
    return replace(config, transport=replace(config.transport, **overrides))


def audit_permissions(path: str | Path) -> str | None:
    """Return a warning when the config file is readable by group or others."""
    if os.name != "posix":
        return None
    path = Path(path)
    try:
        mode = path.stat().st_mode
    except OSError:
        return None
    if mode & (stat.S_IRGRP | stat.S_IROTH):
        return (
            f"Configuration file {path} has overly permissive permissions "
            f"(readable by group/others). Consider: chmod 600 {path}"
        )
    return None


def create_example_config() -> Config:
    """Create an example configuration for documentation."""
    return Config(
        transport=TransportConfig(
            server="smtp.example.com",
            port=587,
            security="starttls",
            username="alerts@example.com",
            password="change-me",
            email_from="alerts@example.com",
            email_to=("admin@example.com",),
        ),
        mail_enabled=True,
        threshold_percent=10.0,
        friendly_name="file-server",
        excluded_disks=(),
    )
