"""Generic device framework contract consumed by device type plugins.

The host daemon owns device records and an ordered registry of device
types. Plugins are registered explicitly during process initialization.
"""
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterator, Optional

logger = logging.getLogger(__name__)

SetStateHook = Callable[[bool], Awaitable[int]]
StateListener = Callable[["Device", bool], None]


class DevChange(str, Enum):
    """Outcome of a device reload."""
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    ERROR = "error"
    BUSY = "busy"


class Device:
    """Generic device record owned by the framework.

    ``set_state`` is a replaceable hook: device types may install their own
    and chain to the one they replaced.
    """

    def __init__(self, device_type: "DeviceType", ifname: str):
        self.type = device_type
        self.ifname = ifname
        self.present = False
        self.active = False
        self.set_state: SetStateHook = self._set_state_generic
        self._listeners: list[StateListener] = []

    async def _set_state_generic(self, up: bool) -> int:
        """Default hook: track the link state seen by dependents."""
        self.active = up
        logger.debug(f"{self.ifname}: generic link state {'up' if up else 'down'}")
        return 0

    def set_present(self, present: bool) -> None:
        if self.present == present:
            return
        self.present = present
        logger.info(f"{self.ifname}: device {'present' if present else 'removed'}")

    def add_listener(self, listener: StateListener) -> None:
        """Subscribe a dependent to operational state changes."""
        self._listeners.append(listener)

    def broadcast_state(self, up: bool) -> None:
        """Notify dependents of an operational state change."""
        for listener in list(self._listeners):
            listener(self, up)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.ifname!r}, type={self.type.name!r})"


@dataclass
class DeviceType:
    """Static descriptor of a device type."""
    name: str
    name_prefix: str
    create: Callable[[str, dict], Awaitable[Device]]
    reload: Callable[[Device, dict], Awaitable[DevChange]]
    free: Callable[[Device], Awaitable[None]]
    set_state: Callable[[Device, bool], Awaitable[int]]
    config_params: tuple[str, ...] = ()


class DeviceTypeRegistry:
    """Ordered collection of device types, populated at startup."""

    def __init__(self):
        self._types: dict[str, DeviceType] = {}
        self._counters: dict[str, Iterator[int]] = {}

    def add(self, device_type: DeviceType) -> None:
        if device_type.name in self._types:
            raise ValueError(f"Device type already registered: {device_type.name}")
        self._types[device_type.name] = device_type
        self._counters[device_type.name] = itertools.count()
        logger.debug(f"Registered device type {device_type.name} (prefix {device_type.name_prefix})")

    def get(self, name: str) -> DeviceType:
        if name not in self._types:
            raise KeyError(f"Unknown device type: {name}")
        return self._types[name]

    def names(self) -> list[str]:
        return list(self._types)

    def next_name(self, type_name: str) -> str:
        """Generate an interface name from the type's prefix."""
        device_type = self.get(type_name)
        return f"{device_type.name_prefix}{next(self._counters[type_name])}"

    def __iter__(self) -> Iterator[DeviceType]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)


async def create_device(
    registry: DeviceTypeRegistry,
    type_name: str,
    attrs: Optional[dict[str, Any]] = None,
    name: Optional[str] = None,
) -> Device:
    """Factory function to create device instances."""
    device_type = registry.get(type_name)
    if name is None:
        name = registry.next_name(type_name)
    return await device_type.create(name, attrs or {})
