"""Tests for the team device type binding and the device type registry."""
import pytest

from conftest import spin_until
from netifd_team.config.settings import TeamSettings
from netifd_team.config_engine import ParseError
from netifd_team.devices import (
    DEVICE_TYPES,
    DevChange,
    Device,
    DeviceTypeRegistry,
    TeamDeviceType,
    TeamNetDevice,
    create_device,
    register_device_types,
)
from netifd_team.devices.team import OperState


@pytest.fixture
def registry(runner, settings):
    return register_device_types(DeviceTypeRegistry(), settings=settings, runner=runner)


@pytest.fixture
def team_type(runner, settings):
    return TeamDeviceType(settings=settings, runner=runner)


class TestRegistry:
    """Tests for device type registration."""

    def test_team_registered(self, registry):
        assert registry.names() == ["team"]
        assert len(registry) == 1
        descriptor = registry.get("team")
        assert descriptor.name_prefix == "tm"
        assert descriptor.config_params == ("ifname", "runner", "runner_options")

    def test_device_types_table(self):
        assert list(DEVICE_TYPES) == ["team"]

    def test_duplicate_registration_rejected(self, registry, runner, settings):
        with pytest.raises(ValueError):
            register_device_types(registry, settings=settings, runner=runner)

    def test_unknown_type(self, registry):
        with pytest.raises(KeyError):
            registry.get("bridge")

    @pytest.mark.asyncio
    async def test_create_device_generates_names(self, registry, runner):
        """Devices created without a name get the type prefix."""
        first = await create_device(registry, "team", {"ifname": ["eth0"]})
        second = await create_device(registry, "team")

        assert first.ifname == "tm0"
        assert second.ifname == "tm1"
        assert isinstance(first, TeamNetDevice)
        assert first.present
        assert first.machine.config.ports == ("eth0",)
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_create_device_with_name(self, registry):
        device = await create_device(registry, "team", {}, name="uplink")
        assert device.ifname == "uplink"


class TestCreate:
    """Tests for team device creation."""

    @pytest.mark.asyncio
    async def test_malformed_attrs_rejected(self, team_type, runner):
        """Malformed config fails creation without touching processes."""
        with pytest.raises(ParseError):
            await team_type.create("tm0", {"ifname": "eth0 eth0"})
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_invalid_name_rejected(self, team_type):
        with pytest.raises(ValueError):
            await team_type.create("tm0 && reboot", {})

    @pytest.mark.asyncio
    async def test_reaps_stale_helper(self, runner):
        """A helper still answering for the name is stopped at creation."""
        team_type = TeamDeviceType(
            settings=TeamSettings(health_interval=0, reap_stale_helpers=True),
            runner=runner,
        )
        runner.health = [True]

        device = await team_type.create("tm0", {"ifname": ["eth0"]})

        assert runner.kinds() == ["check", "stop"]
        assert not device.machine.helper_running
        assert device.machine.oper_state == OperState.PRESENT

    @pytest.mark.asyncio
    async def test_no_stale_helper(self, runner):
        team_type = TeamDeviceType(
            settings=TeamSettings(health_interval=0, reap_stale_helpers=True),
            runner=runner,
        )

        await team_type.create("tm0", {})

        assert runner.kinds() == ["check"]


class TestSetState:
    """Tests for admin state changes through the framework hook."""

    @pytest.mark.asyncio
    async def test_up_propagates_through_generic_hook(self, team_type, runner):
        """Going UP reaches the generic hook and state listeners."""
        runner.health = [True]
        device = await team_type.create("tm0", {"ifname": ["eth0"]})
        seen = []
        device.add_listener(lambda dev, up: seen.append((dev.ifname, up)))

        assert await device.set_state(True) == 0
        await device.machine.wait_settled()

        assert device.machine.oper_state == OperState.UP
        assert device.active
        assert seen == [("tm0", True)]

    @pytest.mark.asyncio
    async def test_up_does_not_wait_for_health(self, team_type, runner):
        """set_state(True) returns while the helper is still starting."""
        runner.health_default = False
        device = await team_type.create("tm0", {"ifname": ["eth0"]})

        await device.set_state(True)

        assert device.machine.oper_state == OperState.STARTING
        await device.set_state(False)

    @pytest.mark.asyncio
    async def test_down_propagates(self, team_type, runner):
        runner.health = [True]
        device = await team_type.create("tm0", {"ifname": ["eth0"]})
        seen = []
        device.add_listener(lambda dev, up: seen.append(up))
        await device.set_state(True)
        await device.machine.wait_settled()

        await device.set_state(False)

        assert device.machine.oper_state == OperState.DOWN
        assert not device.active
        assert seen == [True, False]
        assert runner.count("stop") == 1

    @pytest.mark.asyncio
    async def test_failed_start_leaves_inactive(self, runner):
        team_type = TeamDeviceType(
            settings=TeamSettings(health_attempts=2, health_interval=0, reap_stale_helpers=False),
            runner=runner,
        )
        device = await team_type.create("tm0", {"ifname": ["eth0"]})

        await device.set_state(True)
        await device.machine.wait_settled()

        assert device.machine.oper_state == OperState.DOWN
        assert not device.active
        assert runner.count("port_add") == 0


class TestReload:
    """Tests for reload outcome mapping."""

    async def _up_device(self, team_type, runner, ports=("eth0", "eth1")):
        runner.health = [True]
        device = await team_type.create("tm0", {"ifname": list(ports)})
        await device.set_state(True)
        await device.machine.wait_settled()
        return device

    @pytest.mark.asyncio
    async def test_applied(self, team_type, runner):
        device = await self._up_device(team_type, runner)

        change = await team_type.reload(device, {"ifname": ["eth1", "eth2"]})

        assert change == DevChange.APPLIED
        assert device.machine.member_ports == ["eth1", "eth2"]

    @pytest.mark.asyncio
    async def test_unchanged(self, team_type, runner):
        device = await self._up_device(team_type, runner)
        calls = len(runner.calls)

        assert await team_type.reload(device, {"ifname": ["eth0", "eth1"]}) == DevChange.UNCHANGED
        assert len(runner.calls) == calls

    @pytest.mark.asyncio
    async def test_parse_error_keeps_config(self, team_type, runner):
        device = await self._up_device(team_type, runner)

        change = await team_type.reload(device, {"runner": "Not A Runner"})

        assert change == DevChange.ERROR
        assert device.machine.config.ports == ("eth0", "eth1")
        assert device.machine.oper_state == OperState.UP

    @pytest.mark.asyncio
    async def test_port_failure_is_error(self, team_type, runner):
        device = await self._up_device(team_type, runner)
        runner.fail_ports = {"eth2"}

        assert await team_type.reload(device, {"ifname": ["eth0", "eth1", "eth2"]}) == DevChange.ERROR

    @pytest.mark.asyncio
    async def test_busy_while_starting(self, team_type, runner):
        device = await team_type.create("tm0", {"ifname": ["eth0"]})
        await device.set_state(True)

        change = await team_type.reload(device, {"ifname": ["eth1"]})

        assert change == DevChange.BUSY
        await device.set_state(False)

    @pytest.mark.asyncio
    async def test_runner_change_restarts(self, team_type, runner):
        device = await self._up_device(team_type, runner)
        seen = []
        device.add_listener(lambda dev, up: seen.append(up))
        runner.health = [True]

        change = await team_type.reload(device, {"ifname": ["eth0", "eth1"], "runner": "activebackup"})
        await device.machine.wait_settled()

        assert change == DevChange.APPLIED
        assert device.machine.oper_state == OperState.UP
        assert device.machine.config.runner == "activebackup"
        assert seen == [False, True]


class TestFree:
    """Tests for device release."""

    @pytest.mark.asyncio
    async def test_free_up_device(self, team_type, runner):
        runner.health = [True]
        device = await team_type.create("tm0", {"ifname": ["eth0"]})
        await device.set_state(True)
        await device.machine.wait_settled()

        await team_type.free(device)

        assert not device.present
        assert not device.active
        assert device.machine.oper_state == OperState.ABSENT
        assert runner.count("stop") == 1

    @pytest.mark.asyncio
    async def test_free_mid_start(self, team_type, runner):
        """Freeing during the health poll cancels it and stops the helper."""
        device = await team_type.create("tm0", {"ifname": ["eth0"]})
        await device.set_state(True)
        await spin_until(lambda: runner.count("check") >= 1)

        await team_type.free(device)

        assert not device.present
        assert runner.count("stop") == 1
        assert runner.count("port_add") == 0

    @pytest.mark.asyncio
    async def test_free_wrong_device_type(self, team_type):
        plain = Device(team_type.descriptor, "tm9")
        with pytest.raises(TypeError):
            await team_type.free(plain)
