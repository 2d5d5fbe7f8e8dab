"""Config Engine - declarative team configuration handling.

Parses the framework's attribute set and classifies reloads:
- NO_CHANGE: nothing to do
- INCREMENTAL: only member ports changed, add/remove them live
- FULL_RESTART: runner parameters changed, restart the helper

Usage:
    from netifd_team.config_engine import ConfigParser, DiffEngine

    parser = ConfigParser()
    old = parser.parse({"ifname": ["eth0", "eth1"]})
    new = parser.parse({"ifname": ["eth1", "eth2"]})
    diff = DiffEngine().diff(old, new)
    # diff.kind == DiffKind.INCREMENTAL, add_ports == ["eth2"], remove_ports == ["eth0"]
"""

from .schema import TeamConfig, ConfigDiff, DiffKind, DEFAULT_RUNNER
from .parser import (
    ConfigParser,
    ParseError,
    TEAM_ATTRS,
    compute_checksum,
    is_valid_ifname,
)
from .diff import DiffEngine, summarize_diff

__all__ = [
    # Schema classes
    "TeamConfig",
    "ConfigDiff",
    "DiffKind",
    "DEFAULT_RUNNER",
    # Parser
    "ConfigParser",
    "ParseError",
    "TEAM_ATTRS",
    "compute_checksum",
    "is_valid_ifname",
    # Diff
    "DiffEngine",
    "summarize_diff",
]
