# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Logging for caiged.

Every message goes to a rotating log file under ~/.local/share/caiged/logs
(or CAIGED_LOG_FILE). Operator-facing lines are also printed to stderr
through rich, so stdout stays free for command output such as `port`.

    from caiged.utils.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Creating container caiged-qa-app...")
    logger.success("Built caiged:qa")
    logger.debug("docker run kwargs: ...")  # file only unless debug is on

Environment:
    CAIGED_DEBUG=1          Echo debug lines to the console
    CAIGED_LOG_LEVEL=DEBUG  Level for the caiged logger tree
    CAIGED_LOG_FILE=/path   Log file location
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console

LOGGER_ROOT = "caiged"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

SUCCESS_LEVEL = 25
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")

# Console markup per level: (style, symbol)
_CONSOLE_STYLES = {
    logging.DEBUG: ("dim", "[DEBUG]"),
    logging.INFO: ("blue", ""),
    SUCCESS_LEVEL: ("green", "✓"),
    logging.WARNING: ("yellow", "⚠"),
    logging.ERROR: ("red", "✗"),
}

console = Console(stderr=True)

_state = {"configured": False, "debug": False, "log_file": None}


def _env_debug() -> bool:
    return os.environ.get("CAIGED_DEBUG", "").lower() in ("1", "true", "yes")


def is_debug_mode() -> bool:
    return _state["debug"] or _env_debug()


def log_file_path() -> Path:
    """Log file in use (CAIGED_LOG_FILE wins over the default location)."""
    if _state["log_file"] is None:
        override = os.environ.get("CAIGED_LOG_FILE")
        if override:
            _state["log_file"] = Path(override)
        else:
            from caiged.paths import HostPaths

            _state["log_file"] = HostPaths.log_dir() / "caiged.log"
    return _state["log_file"]


def _file_handler(path: Path) -> Optional[logging.Handler]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
        )
    except OSError:
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def configure_logging(
    debug: bool = False,
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> None:
    """Install the file handler on the caiged logger tree.

    Handlers are installed once per process; later calls can still switch
    debug output on.

    Args:
        debug: Echo debug lines to the console
        log_level: Level name, defaults to CAIGED_LOG_LEVEL, then DEBUG/INFO
        log_file: Log file path override
    """
    if debug:
        _state["debug"] = True
    if _state["configured"]:
        return

    if log_file:
        _state["log_file"] = log_file

    level_name = (
        log_level
        or os.environ.get("CAIGED_LOG_LEVEL")
        or ("DEBUG" if is_debug_mode() else "INFO")
    ).upper()

    root = logging.getLogger(LOGGER_ROOT)
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.handlers.clear()
    root.propagate = False

    handler = _file_handler(log_file_path())
    if handler is not None:
        root.addHandler(handler)

    _state["configured"] = True
    root.debug(f"Logging configured: level={level_name}, debug={is_debug_mode()}")


class CaigedLogger:
    """Module logger writing to the log file and, for operator lines, the console."""

    def __init__(self, name: str, output: Optional[Console] = None):
        self.name = name
        self.logger = logging.getLogger(name)
        self.console = output or console

    def _echo(self, level: int, message: str) -> None:
        style, symbol = _CONSOLE_STYLES[level]
        text = f"{symbol} {message}" if symbol else message
        self.console.print(f"[{style}]{text}[/{style}]", highlight=False)

    def debug(self, message: str, console_output: bool = False) -> None:
        """File only, unless console_output is set or debug mode is on."""
        self.logger.debug(message)
        if console_output or is_debug_mode():
            self._echo(logging.DEBUG, message)

    def info(self, message: str, console_output: bool = True) -> None:
        self.logger.info(message)
        if console_output:
            self._echo(logging.INFO, message)

    def success(self, message: str, console_output: bool = True) -> None:
        self.logger.log(SUCCESS_LEVEL, message)
        if console_output:
            self._echo(SUCCESS_LEVEL, message)

    def warning(self, message: str, console_output: bool = True) -> None:
        self.logger.warning(message)
        if console_output:
            self._echo(logging.WARNING, message)

    def error(
        self,
        message: str,
        exc: Optional[BaseException] = None,
        console_output: bool = True,
    ) -> None:
        """Log an error; with exc, the traceback goes to the log file."""
        if exc is not None:
            message = f"{message}: {exc}"
        self.logger.error(message, exc_info=exc)
        if console_output:
            self._echo(logging.ERROR, message)

    def exception(self, message: str, console_output: bool = True) -> None:
        """Call from an except block."""
        self.logger.exception(message)
        if console_output:
            self._echo(logging.ERROR, message)
            if is_debug_mode():
                self.console.print_exception()


def get_logger(name: str) -> CaigedLogger:
    """Logger for a module, namespaced under caiged."""
    if not _state["configured"]:
        configure_logging()
    if not name.startswith(LOGGER_ROOT):
        name = f"{LOGGER_ROOT}.{name}"
    return CaigedLogger(name)


def log_startup_info() -> None:
    """Record interpreter and environment details at debug level."""
    logger = get_logger("caiged.startup")
    logger.debug(f"Python: {sys.version.split()[0]} on {sys.platform}")
    logger.debug(f"CWD: {os.getcwd()}")
    logger.debug(f"Log file: {log_file_path()}")
    for var in ("CAIGED_DEBUG", "CAIGED_LOG_LEVEL", "CAIGED_REPO", "IMAGE_PREFIX"):
        value = os.environ.get(var)
        if value:
            logger.debug(f"ENV {var}={value}")
