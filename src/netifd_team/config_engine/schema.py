"""Schema definitions for the team config engine.

Defines the declarative team configuration and the diff result types.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

DEFAULT_RUNNER = "lacp"


@dataclass(frozen=True)
class TeamConfig:
    """Desired state for one team device."""
    ports: tuple[str, ...] = ()
    runner: str = DEFAULT_RUNNER
    # Passed through to the runner section of the helper's JSON config.
    # Stored as a read-only view.
    runner_options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "ports", tuple(self.ports))
        object.__setattr__(self, "runner_options", MappingProxyType(dict(self.runner_options)))

    def __hash__(self) -> int:
        return hash((self.ports, self.runner_json()))

    def runner_params(self) -> tuple[str, Mapping[str, Any]]:
        """Everything that is not port membership."""
        return self.runner, self.runner_options

    def runner_json(self) -> str:
        """Render the helper configuration document."""
        runner = {"name": self.runner}
        runner.update(self.runner_options)
        return json.dumps({"runner": runner}, sort_keys=True)


class DiffKind(str, Enum):
    """How a config change must be applied."""
    FULL_RESTART = "full_restart"
    INCREMENTAL = "incremental"
    NO_CHANGE = "no_change"


@dataclass
class ConfigDiff:
    """Result of diffing two team configurations."""
    kind: DiffKind
    add_ports: list[str] = field(default_factory=list)
    remove_ports: list[str] = field(default_factory=list)

    @property
    def no_change(self) -> bool:
        return self.kind == DiffKind.NO_CHANGE

    @property
    def full_restart(self) -> bool:
        return self.kind == DiffKind.FULL_RESTART
