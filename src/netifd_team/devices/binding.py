"""Team device type binding for the generic device framework.

Adapts the framework's create/reload/free/set_state contract onto
TeamStateMachine. The generic set_state hook a device starts with is kept
and chained to, so dependents still hear about the link through the
framework's own mechanism.
"""
import functools
import logging
from typing import Optional

from ..config.settings import TeamSettings
from ..config_engine import ConfigParser, ParseError, TEAM_ATTRS, is_valid_ifname
from ..utils.process import ProcessRunner
from .base import DevChange, Device, DeviceType, DeviceTypeRegistry, SetStateHook
from .errors import ReloadBusyError
from .team import TeamStateMachine
from .teamd import HelperCommands, TeamdHelper

logger = logging.getLogger(__name__)

TEAM_TYPE_NAME = "team"


class TeamNetDevice(Device):
    """Framework device record carrying a team state machine."""

    def __init__(self, device_type: DeviceType, ifname: str):
        super().__init__(device_type, ifname)
        self.machine: Optional[TeamStateMachine] = None
        # Hook installed before the team type took over set_state
        self.chained_set_state: SetStateHook = self.set_state


class TeamDeviceType:
    """Device type adapter for team devices."""

    def __init__(
        self,
        settings: Optional[TeamSettings] = None,
        runner: Optional[ProcessRunner] = None,
        helper: Optional[HelperCommands] = None,
    ):
        self.settings = settings if settings is not None else TeamSettings.from_env()
        if helper is None:
            runner = runner or ProcessRunner(timeout=self.settings.command_timeout)
            helper = TeamdHelper(runner, self.settings)
        self.helper = helper
        self.parser = ConfigParser()
        self.descriptor = DeviceType(
            name=TEAM_TYPE_NAME,
            name_prefix=self.settings.name_prefix,
            create=self.create,
            reload=self.reload,
            free=self.free,
            set_state=self.set_state,
            config_params=TEAM_ATTRS,
        )

    def _machine(self, device: Device) -> TeamStateMachine:
        if not isinstance(device, TeamNetDevice) or device.machine is None:
            raise TypeError(f"Not a team device: {device!r}")
        return device.machine

    async def create(self, name: str, attrs: dict) -> TeamNetDevice:
        """Create a team device.

        Raises:
            ParseError: If attrs are malformed; nothing has been started
            ValueError: If name is not a valid interface name
        """
        if not is_valid_ifname(name):
            raise ValueError(f"Invalid team interface name: {name!r}")
        config = self.parser.parse(attrs)

        device = TeamNetDevice(self.descriptor, name)
        device.set_state = functools.partial(self.set_state, device)

        device.machine = TeamStateMachine(
            name,
            config,
            self.helper,
            upstream=functools.partial(self._propagate, device),
            health_attempts=self.settings.health_attempts,
            health_interval=self.settings.health_interval,
        )
        device.machine.init()
        device.set_present(True)

        if self.settings.reap_stale_helpers:
            await device.machine.reap_stale_helper()

        return device

    async def set_state(self, device: Device, up: bool) -> int:
        """Admin state change. Bring-up runs in the background."""
        machine = self._machine(device)
        if up:
            machine.bring_up()
        else:
            await machine.bring_down()
        return 0

    async def _propagate(self, device: TeamNetDevice, up: bool) -> None:
        await device.chained_set_state(up)
        device.broadcast_state(up)

    async def reload(self, device: Device, attrs: dict) -> DevChange:
        machine = self._machine(device)
        try:
            config = self.parser.parse(attrs)
        except ParseError as e:
            logger.error(f"{device.ifname}: invalid team config, keeping current: {e}")
            return DevChange.ERROR

        try:
            result = await machine.reload(config)
        except ReloadBusyError:
            return DevChange.BUSY

        if result.diff.no_change:
            return DevChange.UNCHANGED
        if not result.success:
            return DevChange.ERROR
        return DevChange.APPLIED

    async def free(self, device: Device) -> None:
        await self._machine(device).free()
        device.set_present(False)


def register(
    registry: DeviceTypeRegistry,
    settings: Optional[TeamSettings] = None,
    runner: Optional[ProcessRunner] = None,
) -> TeamDeviceType:
    """Register the team device type. Call once during daemon startup."""
    team = TeamDeviceType(settings=settings, runner=runner)
    registry.add(team.descriptor)
    return team
