"""Plugin settings: helper command templates and health-check budget.

Environment variables:
- NETIFD_TEAM_CONFIG: Path to a YAML settings file
- NETIFD_TEAM_HEALTH_ATTEMPTS: Override the health-check attempt budget
- NETIFD_TEAM_HEALTH_INTERVAL: Override the seconds between health checks
- NETIFD_TEAM_COMMAND_TIMEOUT: Override the per-command timeout

Example settings file:

```yaml
health_attempts: 10
health_interval: 1.0
commands:
  start: "teamd -t $ifname -c $config -d"
runner_commands:
  activebackup:
    start: "teamd -t $ifname -c $config -d -N"
```
"""
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from string import Template
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_ATTEMPTS = 10
DEFAULT_HEALTH_INTERVAL = 1.0
DEFAULT_COMMAND_TIMEOUT = 10.0
DEFAULT_NAME_PREFIX = "tm"


class SettingsError(Exception):
    """Invalid plugin settings."""
    pass


@dataclass(frozen=True)
class CommandTemplates:
    """Helper command templates.

    Placeholders: $ifname (team interface), $port (member port),
    $config (runner JSON document). Templates are split into argv tokens
    before substitution, so substituted values never reach a shell.
    """
    start: str = "teamd -t $ifname -c $config -d"
    stop: str = "teamd -t $ifname -k"
    check: str = "teamd -t $ifname -e"
    port_add: str = "teamdctl $ifname port add $port"
    port_remove: str = "teamdctl $ifname port remove $port"

    def validate(self) -> None:
        """Check every template references the placeholders it needs."""
        required = {
            "start": {"ifname"},
            "stop": {"ifname"},
            "check": {"ifname"},
            "port_add": {"ifname", "port"},
            "port_remove": {"ifname", "port"},
        }
        allowed = {"ifname", "port", "config"}
        for name, needed in required.items():
            template = Template(getattr(self, name))
            if not template.is_valid():
                raise SettingsError(f"Malformed {name} command template: {template.template!r}")
            identifiers = set(template.get_identifiers())
            if not needed <= identifiers:
                raise SettingsError(
                    f"{name} command template must reference {sorted(needed)}: {template.template!r}"
                )
            unknown = identifiers - allowed
            if unknown:
                raise SettingsError(f"{name} command template uses unknown placeholders {sorted(unknown)}")

    @classmethod
    def from_dict(cls, data: dict[str, Any], base: Optional["CommandTemplates"] = None) -> "CommandTemplates":
        """Overlay the given templates on base (default: teamd templates)."""
        base = base or cls()
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise SettingsError(f"Unknown command templates: {sorted(unknown)}")
        templates = replace(base, **{k: str(v) for k, v in data.items()})
        templates.validate()
        return templates


@dataclass
class TeamSettings:
    """Team device plugin settings."""
    commands: CommandTemplates = field(default_factory=CommandTemplates)
    runner_commands: dict[str, CommandTemplates] = field(default_factory=dict)
    health_attempts: int = DEFAULT_HEALTH_ATTEMPTS
    health_interval: float = DEFAULT_HEALTH_INTERVAL
    command_timeout: Optional[float] = DEFAULT_COMMAND_TIMEOUT
    name_prefix: str = DEFAULT_NAME_PREFIX
    reap_stale_helpers: bool = True

    def __post_init__(self):
        if self.health_attempts < 1:
            raise SettingsError(f"health_attempts must be at least 1, got {self.health_attempts}")
        if self.health_interval < 0:
            raise SettingsError(f"health_interval must not be negative, got {self.health_interval}")
        if self.command_timeout is not None and self.command_timeout <= 0:
            raise SettingsError(f"command_timeout must be positive, got {self.command_timeout}")

    def commands_for(self, runner: str) -> CommandTemplates:
        """Get the command templates for a runner mode."""
        return self.runner_commands.get(runner, self.commands)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TeamSettings":
        """Build settings from a parsed YAML document."""
        commands = CommandTemplates.from_dict(data.get("commands") or {})
        runner_commands = {
            runner: CommandTemplates.from_dict(overrides or {}, base=commands)
            for runner, overrides in (data.get("runner_commands") or {}).items()
        }
        try:
            return cls(
                commands=commands,
                runner_commands=runner_commands,
                health_attempts=int(data.get("health_attempts", DEFAULT_HEALTH_ATTEMPTS)),
                health_interval=float(data.get("health_interval", DEFAULT_HEALTH_INTERVAL)),
                command_timeout=_optional_float(data.get("command_timeout", DEFAULT_COMMAND_TIMEOUT)),
                name_prefix=str(data.get("name_prefix", DEFAULT_NAME_PREFIX)),
                reap_stale_helpers=bool(data.get("reap_stale_helpers", True)),
            )
        except (TypeError, ValueError) as e:
            raise SettingsError(f"Invalid settings value: {e}")

    @classmethod
    def from_file(cls, path: Path) -> "TeamSettings":
        """Load settings from a YAML file."""
        if not path.exists():
            logger.warning(f"Team settings file not found: {path}, using defaults")
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise SettingsError(f"Settings file {path} must contain a mapping")

        logger.info(f"Loaded team settings from {path}")
        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> "TeamSettings":
        """Load settings from NETIFD_TEAM_CONFIG plus per-value overrides."""
        path_str = os.environ.get("NETIFD_TEAM_CONFIG")
        settings = cls.from_file(Path(path_str)) if path_str else cls()

        overrides: dict[str, Any] = {}
        try:
            if "NETIFD_TEAM_HEALTH_ATTEMPTS" in os.environ:
                overrides["health_attempts"] = int(os.environ["NETIFD_TEAM_HEALTH_ATTEMPTS"])
            if "NETIFD_TEAM_HEALTH_INTERVAL" in os.environ:
                overrides["health_interval"] = float(os.environ["NETIFD_TEAM_HEALTH_INTERVAL"])
            if "NETIFD_TEAM_COMMAND_TIMEOUT" in os.environ:
                overrides["command_timeout"] = float(os.environ["NETIFD_TEAM_COMMAND_TIMEOUT"])
        except ValueError as e:
            raise SettingsError(f"Invalid settings environment variable: {e}")

        return replace(settings, **overrides) if overrides else settings


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)
