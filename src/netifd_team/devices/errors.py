"""Team device errors.

None of these are fatal to the daemon: launch and health failures settle the
device in DOWN, a busy reload is rejected without side effects.
"""


class TeamError(Exception):
    """Base class for team device errors."""

    def __init__(self, device: str, message: str):
        super().__init__(f"{device}: {message}")
        self.device = device


class HelperLaunchError(TeamError):
    """The helper start command could not be spawned."""
    pass


class HealthCheckTimeout(TeamError):
    """The helper never reported healthy within the attempt budget."""

    def __init__(self, device: str, attempts: int):
        super().__init__(device, f"helper not healthy after {attempts} attempts")
        self.attempts = attempts


class ReloadBusyError(TeamError):
    """A start or reload sequence is already in flight for the device."""

    def __init__(self, device: str):
        super().__init__(device, "reload rejected, another sequence is in flight")
