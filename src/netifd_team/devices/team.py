"""Team device lifecycle state machine.

Drives an external link-aggregation helper through start, health polling,
member port attachment, reload and teardown:

    ABSENT --init--> PRESENT --up--> STARTING --healthy--> UP
                                        |                  |  \\
                                  unhealthy/launch      down   reload
                                        v                  v     |
                                       DOWN <--------------+     +-- incremental: RELOAD_PENDING -> UP
                                                                 +-- full restart: STARTING

Every start, restart and incremental port sequence runs as its own asyncio
task, so a slow health poll never blocks other devices. At most one such
task exists per device; admin-down and free cancel it.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..config.settings import DEFAULT_HEALTH_ATTEMPTS, DEFAULT_HEALTH_INTERVAL
from ..config_engine import (
    ConfigDiff,
    DiffEngine,
    TeamConfig,
    compute_checksum,
    summarize_diff,
)
from ..utils.logging_config import timed
from .errors import HealthCheckTimeout, HelperLaunchError, ReloadBusyError, TeamError
from .ports import PortMembershipManager, PortOperation, PortReport
from .teamd import HelperCommands

logger = logging.getLogger(__name__)

UpstreamCallback = Callable[[bool], Awaitable[None]]


class AdminState(str, Enum):
    """Desired state, set by the framework."""
    DOWN = "down"
    UP = "up"


class OperState(str, Enum):
    """Actual state, owned by the state machine."""
    ABSENT = "absent"
    PRESENT = "present"
    STARTING = "starting"
    UP = "up"
    DOWN = "down"
    RELOAD_PENDING = "reload_pending"


@dataclass
class ReloadResult:
    """Outcome of a reload request."""
    diff: ConfigDiff
    restarted: bool = False
    interrupted: bool = False
    port_report: Optional[PortReport] = None

    @property
    def port_failures(self) -> list[PortOperation]:
        return self.port_report.failures if self.port_report else []

    @property
    def success(self) -> bool:
        return not self.interrupted and not self.port_failures


class TeamStateMachine:
    """State machine for one team device.

    Args:
        name: Team interface name
        config: Initial config
        helper: Helper command surface
        upstream: Awaited with the operational flag on every transition
            into or out of UP. Owned by the caller.
        health_attempts: Health checks before giving up on a start
        health_interval: Seconds between health checks
    """

    def __init__(
        self,
        name: str,
        config: TeamConfig,
        helper: HelperCommands,
        upstream: UpstreamCallback,
        health_attempts: int = DEFAULT_HEALTH_ATTEMPTS,
        health_interval: float = DEFAULT_HEALTH_INTERVAL,
    ):
        self.name = name
        self.config = config
        self.admin_state = AdminState.DOWN
        self.oper_state = OperState.ABSENT
        self.member_ports: list[str] = []
        self.last_error: Optional[str] = None
        self.health_attempts = health_attempts
        self.health_interval = health_interval

        self._helper = helper
        self._ports = PortMembershipManager(helper)
        self._differ = DiffEngine()
        self._upstream = upstream
        self._task: Optional[asyncio.Task] = None
        self._helper_running = False
        self._reported_up: Optional[bool] = None
        # bring_down/free calls currently awaiting cancellation or the stop command
        self._teardowns = 0

    @property
    def busy(self) -> bool:
        """True while a start, restart or port sequence is in flight."""
        if self._task is not None and not self._task.done():
            return True
        return self.oper_state in (OperState.STARTING, OperState.RELOAD_PENDING)

    @property
    def helper_running(self) -> bool:
        """True between issuing the start command and issuing the stop command."""
        return self._helper_running

    def _set_oper(self, state: OperState) -> None:
        if state == self.oper_state:
            return
        logger.debug(f"{self.name}: {self.oper_state.value} -> {state.value}")
        self.oper_state = state

    def _require_present(self) -> None:
        if self.oper_state == OperState.ABSENT:
            raise RuntimeError(f"{self.name}: device is not present")

    def _spawn(self, coro: Awaitable, label: str) -> asyncio.Task:
        self._task = asyncio.create_task(coro, name=f"team-{label}-{self.name}")
        self._task.add_done_callback(self._on_task_done)
        return self._task

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.error(f"{self.name}: {task.get_name()} failed: {error!r}")
        self.last_error = str(error)
        if self.oper_state in (OperState.STARTING, OperState.RELOAD_PENDING):
            self._set_oper(OperState.DOWN)

    async def _report(self, up: bool) -> None:
        if self._reported_up == up:
            return
        self._reported_up = up
        logger.info(f"{self.name}: operational state {'up' if up else 'down'}")
        await self._upstream(up)

    # === Lifecycle ===

    def init(self) -> None:
        """Initialize the device record (ABSENT -> PRESENT)."""
        if self.oper_state != OperState.ABSENT:
            raise RuntimeError(f"{self.name}: already initialized")
        self._set_oper(OperState.PRESENT)
        logger.info(f"{self.name}: team device created with ports {list(self.config.ports)}")

    async def reap_stale_helper(self) -> bool:
        """Stop a helper left running for this interface by an earlier daemon.

        Returns:
            True if a stale helper was found and told to stop
        """
        try:
            result = await self._helper.health_check(self.name, self.config)
        except (OSError, ValueError) as e:
            logger.debug(f"{self.name}: stale helper check failed: {e}")
            return False

        if not result.success:
            return False

        logger.warning(f"{self.name}: found a running helper from a previous instance, stopping it")
        self._helper_running = True
        await self._stop(self.config)
        return True

    def bring_up(self) -> Optional[asyncio.Task]:
        """Admin-up: schedule the start sequence.

        Returns:
            The task driving the device, or None if it is already up or a
            teardown in progress will start it once the stop is issued
        """
        self._require_present()
        self.admin_state = AdminState.UP

        if self._teardowns:
            logger.info(f"{self.name}: admin-up during teardown, starting after stop")
            return None
        if self._task is not None and not self._task.done():
            return self._task
        if self.oper_state == OperState.UP:
            return None

        self._set_oper(OperState.STARTING)
        return self._spawn(self._start_sequence(), "start")

    async def bring_down(self) -> None:
        """Admin-down: interrupt any sequence and stop the helper.

        The device leaves UP before the first await. An admin-up arriving
        while the stop command runs starts the device again once the
        teardown completes. The stop command is issued but the helper's
        exit is not confirmed.
        """
        if self.oper_state == OperState.ABSENT:
            return
        self.admin_state = AdminState.DOWN
        if self.oper_state != OperState.PRESENT:
            self._set_oper(OperState.DOWN)
        self.member_ports.clear()

        self._teardowns += 1
        try:
            await self._cancel_task()
            if self._helper_running:
                await self._stop(self.config)
            if self._reported_up:
                await self._report(False)
        finally:
            self._teardowns -= 1

        if self.oper_state == OperState.ABSENT or self._teardowns:
            return
        if self.admin_state == AdminState.UP:
            self.bring_up()

    async def free(self) -> None:
        """Release the device. The helper is told to stop first."""
        if self.oper_state == OperState.ABSENT:
            return
        self.member_ports.clear()

        self._teardowns += 1
        try:
            await self._cancel_task()
            if self._helper_running:
                await self._stop(self.config)
        finally:
            self._teardowns -= 1

        self.admin_state = AdminState.DOWN
        was_up = self._reported_up
        self._set_oper(OperState.ABSENT)
        if was_up:
            await self._report(False)
        logger.info(f"{self.name}: team device freed")

    async def reload(self, config: TeamConfig) -> ReloadResult:
        """Apply a new config.

        Runner parameter changes restart the helper in a new task; port-only
        changes are applied live and awaited here.

        Raises:
            ReloadBusyError: If a sequence is already in flight
        """
        self._require_present()
        if self.busy:
            logger.warning(f"{self.name}: reload rejected, sequence in flight ({self.oper_state.value})")
            raise ReloadBusyError(self.name)

        diff = self._differ.diff(self.config, config)
        logger.info(
            f"{self.name}: reload {compute_checksum(self.config)} -> {compute_checksum(config)}\n"
            f"{summarize_diff(diff)}"
        )

        if diff.no_change:
            return ReloadResult(diff)

        if self.oper_state != OperState.UP:
            # Nothing running to reconcile, the next start uses the new config
            self.config = config
            return ReloadResult(diff)

        if diff.full_restart:
            self._set_oper(OperState.STARTING)
            self._spawn(self._restart_sequence(config), "restart")
            return ReloadResult(diff, restarted=True)

        self._set_oper(OperState.RELOAD_PENDING)
        task = self._spawn(self._incremental_sequence(config, diff), "ports")
        await asyncio.wait([task])
        if task.cancelled():
            return ReloadResult(diff, interrupted=True)
        return ReloadResult(diff, port_report=task.result())

    async def wait_settled(self) -> None:
        """Wait for the in-flight sequence, if any, to finish."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait([task])

    # === Sequences ===

    async def _cancel_task(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        logger.info(f"{self.name}: interrupting {task.get_name()}")
        task.cancel()
        await asyncio.wait([task])

    @timed("start_sequence")
    async def _start_sequence(self) -> None:
        config = self.config
        self._set_oper(OperState.STARTING)

        try:
            await self._launch(config)
            healthy = await self._helper.wait_healthy(
                self.name, config, self.health_attempts, self.health_interval
            )
            if not healthy:
                raise HealthCheckTimeout(self.name, self.health_attempts)
        except TeamError as e:
            await self._fail(str(e), config)
            return

        report = await self._ports.apply(self.name, config, self.member_ports, add=config.ports)
        if not report.success:
            failed = [op.port for op in report.failures]
            logger.warning(f"{self.name}: up with missing ports {failed}")

        self.last_error = None
        self._set_oper(OperState.UP)
        await self._report(True)

    async def _restart_sequence(self, config: TeamConfig) -> None:
        await self._report(False)
        await self._stop(self.config)
        self.member_ports.clear()
        # Teardown issued, the old config is no longer needed
        self.config = config
        await self._start_sequence()

    async def _incremental_sequence(self, config: TeamConfig, diff: ConfigDiff) -> PortReport:
        report = await self._ports.apply(
            self.name,
            self.config,
            self.member_ports,
            add=diff.add_ports,
            remove=diff.remove_ports,
        )
        self.config = config
        self._set_oper(OperState.UP)
        if not report.success:
            logger.warning(f"{self.name}: {len(report.failures)} port operation(s) failed during reload")
        return report

    async def _launch(self, config: TeamConfig) -> None:
        # Counted as running before the await: the helper daemonizes and may
        # outlive a cancelled start command
        self._helper_running = True
        try:
            result = await self._helper.start(self.name, config)
        except (OSError, ValueError) as e:
            self._helper_running = False
            raise HelperLaunchError(self.name, f"start command failed: {e}") from e

        if not result.success:
            logger.warning(
                f"{self.name}: start command exited {result.returncode}, "
                f"waiting for health check: {result.stderr.strip()}"
            )

    async def _stop(self, config: TeamConfig) -> None:
        self._helper_running = False
        try:
            result = await self._helper.stop(self.name, config)
        except (OSError, ValueError) as e:
            logger.error(f"{self.name}: stop command failed: {e}")
            return
        if not result.success:
            logger.warning(f"{self.name}: stop command exited {result.returncode}: {result.stderr.strip()}")

    async def _fail(self, error: str, config: TeamConfig) -> None:
        logger.error(f"{self.name}: start failed: {error}")
        self.last_error = error
        if self._helper_running:
            await self._stop(config)
        self.member_ports.clear()
        self._set_oper(OperState.DOWN)
        await self._report(False)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "admin_state": self.admin_state.value,
            "oper_state": self.oper_state.value,
            "member_ports": list(self.member_ports),
            "ports": list(self.config.ports),
            "runner": self.config.runner,
            "helper_running": self._helper_running,
            "busy": self.busy,
            "last_error": self.last_error,
        }

    def __repr__(self) -> str:
        return f"TeamStateMachine({self.name!r}, {self.oper_state.value})"
