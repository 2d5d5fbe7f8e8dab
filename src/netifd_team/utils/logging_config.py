"""Logging configuration for the team device plugin.

Provides:
- Console output for real-time debugging
- File-based logging with rotation
- Timing decorator and context manager for helper sequences

Environment Variables:
    NETIFD_TEAM_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    NETIFD_TEAM_LOG_FILE: Path to log file (default: none, console only)
    NETIFD_TEAM_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    NETIFD_TEAM_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from netifd_team.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at daemon startup

    @timed("start_sequence")
    async def _start_sequence(self):
        ...
"""
import asyncio
import functools
import inspect
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Optional

# Timing logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("netifd_team.perf")

LOG_FORMAT = "%(asctime)s.%(msecs)03d | %(name)-32s | %(levelname)-7s | %(message)s"
PERF_FORMAT = "%(asctime)s.%(msecs)03d | PERF | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("NETIFD_TEAM_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Optional[Path]:
    """Get log file path from environment, if one is configured."""
    path_str = os.environ.get("NETIFD_TEAM_LOG_FILE")
    return Path(path_str) if path_str else None


def setup_logging() -> None:
    """Configure the netifd_team logger tree.

    Sets up:
    - Console handler (respects NETIFD_TEAM_LOG_LEVEL)
    - Rotating file handler at DEBUG level when NETIFD_TEAM_LOG_FILE is set
    - Timing logger on the console, plus netifd-team-perf.log next to the
      log file when one is set
    """
    log_level = get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("NETIFD_TEAM_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("NETIFD_TEAM_LOG_BACKUPS", "5"))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root_logger = logging.getLogger("netifd_team")
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)

    # perf_logger is a child of netifd_team, only its format differs
    perf_handler = logging.StreamHandler()
    perf_handler.setLevel(log_level)
    perf_handler.setFormatter(logging.Formatter(PERF_FORMAT, datefmt=DATE_FORMAT))
    perf_logger.propagate = False
    for handler in perf_logger.handlers[:]:
        perf_logger.removeHandler(handler)
    perf_logger.addHandler(perf_handler)

    perf_log_file = None
    if log_file is not None:
        # Separate file for easy analysis
        perf_log_file = log_file.parent / "netifd-team-perf.log"
        perf_file_handler = RotatingFileHandler(
            perf_log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8"
        )
        perf_file_handler.setLevel(logging.DEBUG)
        perf_file_handler.setFormatter(logging.Formatter(PERF_FORMAT, datefmt=DATE_FORMAT))
        perf_logger.addHandler(perf_file_handler)

    root_logger.info(
        f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file or 'none'}"
    )
    if perf_log_file is not None:
        perf_logger.info(f"Performance logging to: {perf_log_file}")


def _format_timing(operation: str, name: Optional[str], elapsed_ms: float, outcome: str) -> str:
    return f"{operation:20s} | {name or 'N/A':15s} | {elapsed_ms:8.2f}ms | {outcome}"


def timed(operation: str):
    """Decorator to log execution time of a coroutine method.

    The device name is taken from ``self.name`` when present.

    Usage:
        @timed("start_sequence")
        async def _start_sequence(self):
            ...
    """
    def decorator(func: Callable) -> Callable:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"timed() expects a coroutine function, got {func!r}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            name = getattr(args[0], "name", None) if args else None
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except asyncio.CancelledError:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.info(_format_timing(operation, name, elapsed, "CANCELLED"))
                raise
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_format_timing(operation, name, elapsed, f"FAIL: {e}"))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_format_timing(operation, name, elapsed, "OK"))
            return result

        return wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, name: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Usage:
        async with timed_section("port_apply", name="tm0", ports=3):
            ...
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = _format_timing(operation, name, elapsed, f"FAIL: {e}")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise

    elapsed = (time.perf_counter() - start) * 1000
    msg = _format_timing(operation, name, elapsed, "OK")
    if extra_str:
        msg += f" | {extra_str}"
    perf_logger.info(msg)
