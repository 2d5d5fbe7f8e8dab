"""Diff engine for team configuration reloads.

Decides whether a config change needs a helper restart or only port
membership updates.
"""
from typing import Optional

from .schema import ConfigDiff, DiffKind, TeamConfig


class DiffEngine:
    """Calculate differences between the applied and the desired team config."""

    def diff(self, old: Optional[TeamConfig], new: TeamConfig) -> ConfigDiff:
        """
        Classify a config change.

        Args:
            old: Currently applied config, None on first creation
            new: Desired config

        Returns:
            ConfigDiff with the kind and the ports to add/remove
        """
        if old is None:
            return ConfigDiff(
                kind=DiffKind.FULL_RESTART,
                add_ports=list(new.ports),
            )

        # The helper has no live reconfiguration for runner parameters
        if old.runner_params() != new.runner_params():
            return ConfigDiff(
                kind=DiffKind.FULL_RESTART,
                add_ports=list(new.ports),
                remove_ports=list(old.ports),
            )

        old_ports = set(old.ports)
        new_ports = set(new.ports)

        if old_ports == new_ports:
            return ConfigDiff(kind=DiffKind.NO_CHANGE)

        # Keep config order so commands are issued deterministically
        return ConfigDiff(
            kind=DiffKind.INCREMENTAL,
            add_ports=[p for p in new.ports if p not in old_ports],
            remove_ports=[p for p in old.ports if p not in new_ports],
        )


def summarize_diff(diff: ConfigDiff) -> str:
    """
    Create a human-readable summary of a diff.

    Used for reload logging.
    """
    if diff.no_change:
        return "No changes needed - applied config matches desired config"

    lines = []
    if diff.full_restart:
        lines.append("Full restart of the helper required")
    else:
        lines.append("Incremental port membership update")

    for port in diff.remove_ports:
        lines.append(f"  [-] {port}")
    for port in diff.add_ports:
        lines.append(f"  [+] {port}")

    return "\n".join(lines)
