"""Helper process execution with bounded health polling."""
import asyncio
import logging
from typing import Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)


class CommandResult:
    """Result of running a single helper command."""

    def __init__(
        self,
        argv: list[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
    ):
        self.argv = argv
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.timed_out = timed_out

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def command(self) -> str:
        return " ".join(self.argv)

    def to_dict(self) -> dict:
        return {
            "command": self.command,
            "returncode": self.returncode,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "timed_out": self.timed_out,
        }

    def __repr__(self) -> str:
        status = "OK" if self.success else f"FAILED({self.returncode})"
        return f"CommandResult({status}, command={self.command!r})"


def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill a child that has not exited yet."""
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        pass


class ProcessRunner:
    """Runs helper commands as child processes on the event loop.

    Commands are argv lists and are never passed through a shell. A non-zero
    exit status is returned as data; only a failure to spawn raises.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    async def run(
        self,
        argv: list[str],
        timeout: Optional[float] = None,
        capture: bool = True,
    ) -> CommandResult:
        """Run a command to completion.

        Args:
            argv: Fully materialized command
            timeout: Seconds to wait before killing the child (default: runner timeout)
            capture: Capture stdout/stderr. Without capture the child's output
                goes to /dev/null and only its exit is awaited, so a command
                that leaves a daemon holding inherited fds returns at once.

        Returns:
            CommandResult with the exit status and captured output

        Raises:
            OSError: If the command cannot be spawned
        """
        if timeout is None:
            timeout = self.timeout

        output = asyncio.subprocess.PIPE if capture else asyncio.subprocess.DEVNULL
        logger.debug(f"Running: {' '.join(argv)}")
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=output,
            stderr=output,
        )

        try:
            if capture:
                stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
            else:
                await asyncio.wait_for(proc.wait(), timeout)
                stdout = stderr = b""
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            logger.warning(f"Command timed out after {timeout}s: {' '.join(argv)}")
            return CommandResult(argv, returncode=-1, timed_out=True)
        except asyncio.CancelledError:
            _kill(proc)
            # Reap the child even if cancelled again while waiting
            await asyncio.shield(proc.wait())
            raise

        result = CommandResult(
            argv,
            returncode=proc.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
        if not result.success:
            logger.debug(f"Command exited {result.returncode}: {result.command}: {result.stderr.strip()}")
        return result

    async def poll_until_healthy(
        self,
        argv: list[str],
        max_attempts: int,
        interval: float,
    ) -> bool:
        """Re-run a health check until it succeeds or the budget runs out.

        The wait between attempts is an asyncio sleep, so cancelling the
        calling task interrupts the poll immediately.

        Args:
            argv: Health check command
            max_attempts: Maximum number of checks
            interval: Seconds between checks

        Returns:
            True if a check succeeded within the budget
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(interval),
            retry=(
                retry_if_result(lambda healthy: not healthy)
                | retry_if_exception_type(OSError)
            ),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            retry_error_callback=lambda retry_state: False,
        )
        return await retrying(self._check, argv)

    async def _check(self, argv: list[str]) -> bool:
        result = await self.run(argv)
        return result.success
