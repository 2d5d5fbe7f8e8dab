"""Shared fixtures: a scripted process runner standing in for teamd/teamdctl."""
import asyncio
from typing import Optional

import pytest

from netifd_team.config.settings import TeamSettings
from netifd_team.config_engine import TeamConfig
from netifd_team.devices.team import TeamStateMachine
from netifd_team.devices.teamd import TeamdHelper
from netifd_team.utils.process import CommandResult, ProcessRunner


def command_kind(argv: list[str]) -> str:
    """Classify an argv rendered from the default teamd templates."""
    if argv[0] == "teamdctl":
        # teamdctl <ifname> port add|remove <port>
        return f"port_{argv[3]}"
    return {"-d": "start", "-k": "stop", "-e": "check"}[argv[-1]]


class FakeRunner(ProcessRunner):
    """Records every command and answers from a script."""

    def __init__(self):
        super().__init__()
        self.calls: list[list[str]] = []
        # Successive health check answers; health_default once exhausted
        self.health: list[bool] = []
        self.health_default = False
        self.fail_ports: set[str] = set()
        self.start_error: Optional[OSError] = None
        self.start_returncode = 0
        self.stop_delay = 0.0
        # capture flag of every call, parallel to calls
        self.captures: list[bool] = []

    async def run(self, argv, timeout=None, capture=True):
        self.calls.append(list(argv))
        self.captures.append(capture)
        await asyncio.sleep(0)
        kind = command_kind(argv)

        if kind == "stop" and self.stop_delay:
            await asyncio.sleep(self.stop_delay)

        if kind == "start":
            if self.start_error is not None:
                raise self.start_error
            return CommandResult(argv, returncode=self.start_returncode)
        if kind == "check":
            healthy = self.health.pop(0) if self.health else self.health_default
            return CommandResult(argv, returncode=0 if healthy else 1)
        if kind in ("port_add", "port_remove") and argv[-1] in self.fail_ports:
            return CommandResult(argv, returncode=1, stderr=f"cannot {kind} {argv[-1]}")
        return CommandResult(argv, returncode=0)

    def kinds(self) -> list[str]:
        return [command_kind(argv) for argv in self.calls]

    def count(self, kind: str) -> int:
        return self.kinds().count(kind)

    def ports(self, kind: str) -> list[str]:
        return [argv[-1] for argv in self.calls if command_kind(argv) == kind]


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def settings():
    return TeamSettings(health_interval=0, reap_stale_helpers=False)


@pytest.fixture
def helper(runner, settings):
    return TeamdHelper(runner, settings)


@pytest.fixture
def upstream_events():
    return []


@pytest.fixture
def make_machine(helper, settings, upstream_events):
    """Build an initialized state machine that records upstream calls."""
    async def upstream(up: bool) -> None:
        upstream_events.append(up)

    def factory(ports=("eth0", "eth1"), runner="lacp", name="tm0", **kwargs) -> TeamStateMachine:
        kwargs.setdefault("health_attempts", settings.health_attempts)
        kwargs.setdefault("health_interval", settings.health_interval)
        machine = TeamStateMachine(
            name,
            TeamConfig(ports=tuple(ports), runner=runner),
            helper,
            upstream=upstream,
            **kwargs,
        )
        machine.init()
        return machine

    return factory


async def spin_until(predicate, rounds: int = 100) -> None:
    """Yield to the event loop until predicate() holds."""
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")
