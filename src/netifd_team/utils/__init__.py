"""Utility modules for helper processes and logging."""
from .process import CommandResult, ProcessRunner
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    perf_logger,
)

__all__ = [
    "CommandResult",
    "ProcessRunner",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
]
