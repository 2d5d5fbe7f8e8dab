"""Member port attach/detach against a running team."""
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..config_engine import TeamConfig
from ..utils.logging_config import timed_section
from .teamd import HelperCommands

logger = logging.getLogger(__name__)


@dataclass
class PortOperation:
    """Outcome of a single port add or remove."""
    port: str
    action: str  # "add" or "remove"
    success: bool
    error: Optional[str] = None


@dataclass
class PortReport:
    """All port operations issued for one membership change."""
    operations: list[PortOperation] = field(default_factory=list)

    @property
    def failures(self) -> list[PortOperation]:
        return [op for op in self.operations if not op.success]

    @property
    def success(self) -> bool:
        return not self.failures


class PortMembershipManager:
    """Issues port add/remove commands through the helper.

    Every operation is awaited before the next one starts. A failing
    operation is recorded and the remaining ones still run.
    """

    def __init__(self, helper: HelperCommands):
        self.helper = helper

    async def add_port(self, device: str, config: TeamConfig, port: str) -> PortOperation:
        return await self._run("add", device, config, port)

    async def remove_port(self, device: str, config: TeamConfig, port: str) -> PortOperation:
        return await self._run("remove", device, config, port)

    async def _run(self, action: str, device: str, config: TeamConfig, port: str) -> PortOperation:
        command = self.helper.port_add if action == "add" else self.helper.port_remove
        try:
            result = await command(device, config, port)
        except (OSError, ValueError) as e:
            logger.warning(f"{device}: port {action} {port} failed: {e}")
            return PortOperation(port=port, action=action, success=False, error=str(e))

        if not result.success:
            error = result.stderr.strip() or f"exit status {result.returncode}"
            logger.warning(f"{device}: port {action} {port} failed: {error}")
            return PortOperation(port=port, action=action, success=False, error=error)

        logger.info(f"{device}: port {action} {port}")
        return PortOperation(port=port, action=action, success=True)

    async def apply(
        self,
        device: str,
        config: TeamConfig,
        members: list[str],
        add: Iterable[str] = (),
        remove: Iterable[str] = (),
    ) -> PortReport:
        """
        Converge the member list towards the desired ports.

        Removals run first, then additions. ``members`` is updated in place
        as each operation succeeds, preserving the order of untouched ports.

        Args:
            device: Team interface name
            config: Config the running helper was started with
            members: Currently attached ports (mutated)
            add: Ports to attach, in order
            remove: Ports to detach

        Returns:
            PortReport with every operation issued
        """
        report = PortReport()
        add = list(add)
        remove = list(remove)

        async with timed_section("port_apply", name=device, add=len(add), remove=len(remove)):
            for port in remove:
                if port not in members:
                    continue
                op = await self.remove_port(device, config, port)
                report.operations.append(op)
                if op.success:
                    members.remove(port)

            for port in add:
                if port in members:
                    continue
                op = await self.add_port(device, config, port)
                report.operations.append(op)
                if op.success:
                    members.append(port)

        return report
