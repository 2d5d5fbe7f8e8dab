"""Helper process command surface.

The state machine only talks to ``HelperCommands``; ``TeamdHelper`` is the
implementation that shells out to teamd/teamdctl. A direct library binding
could implement the same interface.
"""
import logging
import shlex
from abc import ABC, abstractmethod
from string import Template

from ..config.settings import TeamSettings
from ..config_engine import TeamConfig, is_valid_ifname
from ..utils.process import CommandResult, ProcessRunner

logger = logging.getLogger(__name__)


class HelperCommands(ABC):
    """Operations a link-aggregation helper must support."""

    @abstractmethod
    async def start(self, ifname: str, config: TeamConfig) -> CommandResult:
        """Launch the helper. The helper daemonizes itself.

        Raises:
            OSError: If the command cannot be spawned
        """
        pass

    @abstractmethod
    async def stop(self, ifname: str, config: TeamConfig) -> CommandResult:
        """Tell the helper to exit. Does not wait for the exit."""
        pass

    @abstractmethod
    async def health_check(self, ifname: str, config: TeamConfig) -> CommandResult:
        """Check once whether the helper is alive and answering."""
        pass

    @abstractmethod
    async def wait_healthy(
        self,
        ifname: str,
        config: TeamConfig,
        attempts: int,
        interval: float,
    ) -> bool:
        """Poll the health check until success or the budget runs out."""
        pass

    @abstractmethod
    async def port_add(self, ifname: str, config: TeamConfig, port: str) -> CommandResult:
        pass

    @abstractmethod
    async def port_remove(self, ifname: str, config: TeamConfig, port: str) -> CommandResult:
        pass


def render_command(template: str, **values: str) -> list[str]:
    """Split a command template into argv and substitute each token.

    Examples:
        render_command("teamd -t $ifname -k", ifname="tm0") -> ["teamd", "-t", "tm0", "-k"]
    """
    return [Template(token).substitute(values) for token in shlex.split(template)]


class TeamdHelper(HelperCommands):
    """teamd/teamdctl implementation of the helper command surface."""

    def __init__(self, runner: ProcessRunner, settings: TeamSettings):
        self.runner = runner
        self.settings = settings

    def _argv(self, command: str, ifname: str, config: TeamConfig, port: str = "") -> list[str]:
        # Names end up as argv elements, never in a shell, but the helper
        # still only understands valid interface names
        for name in (ifname, port) if port else (ifname,):
            if not is_valid_ifname(name):
                raise ValueError(f"Invalid interface name: {name!r}")

        template = getattr(self.settings.commands_for(config.runner), command)
        return render_command(
            template,
            ifname=ifname,
            port=port,
            config=config.runner_json(),
        )

    async def start(self, ifname: str, config: TeamConfig) -> CommandResult:
        logger.info(f"{ifname}: starting helper (runner {config.runner})")
        # The helper daemonizes and may keep inherited fds open, wait for exit only
        return await self.runner.run(self._argv("start", ifname, config), capture=False)

    async def stop(self, ifname: str, config: TeamConfig) -> CommandResult:
        logger.info(f"{ifname}: stopping helper")
        return await self.runner.run(self._argv("stop", ifname, config))

    async def health_check(self, ifname: str, config: TeamConfig) -> CommandResult:
        return await self.runner.run(self._argv("check", ifname, config))

    async def wait_healthy(
        self,
        ifname: str,
        config: TeamConfig,
        attempts: int,
        interval: float,
    ) -> bool:
        return await self.runner.poll_until_healthy(
            self._argv("check", ifname, config),
            max_attempts=attempts,
            interval=interval,
        )

    async def port_add(self, ifname: str, config: TeamConfig, port: str) -> CommandResult:
        return await self.runner.run(self._argv("port_add", ifname, config, port))

    async def port_remove(self, ifname: str, config: TeamConfig, port: str) -> CommandResult:
        return await self.runner.run(self._argv("port_remove", ifname, config, port))
