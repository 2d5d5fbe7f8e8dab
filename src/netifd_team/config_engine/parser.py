"""Parser for declarative team device attributes.

Converts the attribute set handed over by the device framework into a
strongly-typed TeamConfig.
"""
import hashlib
import json
import logging
import re
from typing import Any

from .schema import DEFAULT_RUNNER, TeamConfig

logger = logging.getLogger(__name__)

# Kernel interface names: at most IFNAMSIZ - 1 characters, no whitespace or
# "/", and no leading "-" so a name never reads as a helper option
IFNAME_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.:@-]{0,14}$")
RUNNER_RE = re.compile(r"^[a-z][a-z0-9_]*$")

# Attributes understood by the team device type; everything else belongs to
# the generic device layer.
TEAM_ATTRS = ("ifname", "runner", "runner_options")


class ParseError(Exception):
    """Error parsing team device attributes."""
    pass


def is_valid_ifname(name: Any) -> bool:
    """Check a name against the interface naming charset."""
    return isinstance(name, str) and bool(IFNAME_RE.match(name))


class ConfigParser:
    """Parse team configuration from an attribute dict."""

    def parse(self, attrs: dict[str, Any] | None) -> TeamConfig:
        """
        Parse device attributes into a TeamConfig.

        Args:
            attrs: Dict with ifname, runner, runner_options

        Returns:
            TeamConfig object

        Raises:
            ParseError: If the attributes are malformed
        """
        if attrs is None:
            attrs = {}
        if not isinstance(attrs, dict):
            raise ParseError(f"Attributes must be a mapping, got {type(attrs).__name__}")

        ignored = sorted(k for k in attrs if k not in TEAM_ATTRS)
        if ignored:
            logger.debug(f"Leaving generic device attributes to the framework: {ignored}")

        return TeamConfig(
            ports=self._parse_ports(attrs.get("ifname")),
            runner=self._parse_runner(attrs.get("runner", DEFAULT_RUNNER)),
            runner_options=self._parse_runner_options(attrs.get("runner_options")),
        )

    def _parse_ports(self, ifnames: list[str] | str | None) -> tuple[str, ...]:
        """
        Parse the member port list.

        Accepts a list or a whitespace-separated string:
            ["eth0", "eth1"] -> ("eth0", "eth1")
            "eth0 eth1" -> ("eth0", "eth1")
        """
        if ifnames is None:
            return ()
        if isinstance(ifnames, str):
            ifnames = ifnames.split()
        if not isinstance(ifnames, (list, tuple)):
            raise ParseError(f"ifname must be a list of interface names, got {type(ifnames).__name__}")

        seen = set()
        for name in ifnames:
            if not is_valid_ifname(name):
                raise ParseError(f"Invalid member interface name: {name!r}")
            if name in seen:
                raise ParseError(f"Duplicate member interface: {name}")
            seen.add(name)

        return tuple(ifnames)

    def _parse_runner(self, runner: Any) -> str:
        if not isinstance(runner, str) or not RUNNER_RE.match(runner):
            raise ParseError(f"Invalid runner: {runner!r}")
        return runner

    def _parse_runner_options(self, options: Any) -> dict[str, Any]:
        if options is None:
            return {}
        if not isinstance(options, dict):
            raise ParseError(f"runner_options must be a mapping, got {type(options).__name__}")
        if "name" in options:
            raise ParseError("runner_options must not override the runner name; use runner")
        try:
            json.dumps(options)
        except (TypeError, ValueError) as e:
            raise ParseError(f"runner_options are not JSON serializable: {e}")
        return dict(options)


def compute_checksum(config: TeamConfig) -> str:
    """
    Compute a short SHA256 fingerprint of a team config.

    Used to correlate log lines across a reload.
    """
    config_str = json.dumps(
        {"ports": list(config.ports), "runner": json.loads(config.runner_json())},
        sort_keys=True,
        separators=(",", ":"),
    )
    hash_bytes = hashlib.sha256(config_str.encode()).hexdigest()
    return f"sha256:{hash_bytes[:16]}"
