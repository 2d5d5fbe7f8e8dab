"""Team device type and the framework contract it plugs into."""
from typing import Optional

from .base import DevChange, Device, DeviceType, DeviceTypeRegistry, create_device
from .binding import TeamDeviceType, TeamNetDevice, register
from .errors import HealthCheckTimeout, HelperLaunchError, ReloadBusyError, TeamError
from .ports import PortMembershipManager, PortOperation, PortReport
from .team import AdminState, OperState, ReloadResult, TeamStateMachine
from .teamd import HelperCommands, TeamdHelper
from ..config.settings import TeamSettings
from ..utils.process import ProcessRunner

__all__ = [
    "DevChange",
    "Device",
    "DeviceType",
    "DeviceTypeRegistry",
    "create_device",
    "TeamDeviceType",
    "TeamNetDevice",
    "register",
    "register_device_types",
    "TeamError",
    "HelperLaunchError",
    "HealthCheckTimeout",
    "ReloadBusyError",
    "PortMembershipManager",
    "PortOperation",
    "PortReport",
    "AdminState",
    "OperState",
    "ReloadResult",
    "TeamStateMachine",
    "HelperCommands",
    "TeamdHelper",
]

# Device types provided by this package
DEVICE_TYPES = {
    "team": register,
}


def register_device_types(
    registry: DeviceTypeRegistry,
    settings: Optional[TeamSettings] = None,
    runner: Optional[ProcessRunner] = None,
) -> DeviceTypeRegistry:
    """Register every device type in this package with the host registry."""
    if settings is None:
        settings = TeamSettings.from_env()
    for register_type in DEVICE_TYPES.values():
        register_type(registry, settings=settings, runner=runner)
    return registry
