"""
Logging setup for fleetmon.

Everything logs through loguru's module-level ``logger``. The CLI installs a
single stderr handler; records below the configured level still pass when
they come from a subsystem named in ``debug_scopes``, so polling can be
traced without the noise of the rest of the package.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable
from enum import StrEnum
from typing import Any, TextIO

from loguru import logger

LOG_FORMAT = "{time:HH:mm:ss.SSS} {level: <7} {name} | {message}"


class LogScope(StrEnum):
    """Subsystems whose DEBUG output can be switched on by itself."""

    DISCOVERY = "discovery"
    SIMULATION = "simulation"
    MONITOR = "monitor"
    CLI = "cli"

    @property
    def module_prefix(self) -> str:
        return f"fleetmon.{self.value}"


def scope_filter(level: str, debug_scopes: Iterable[LogScope | str]):
    """Build a loguru filter: ``level`` and up everywhere, DEBUG in scopes."""
    threshold = logger.level(level.upper()).no
    debug = logger.level("DEBUG").no
    packages = {LogScope(scope).module_prefix for scope in debug_scopes}

    def _filter(record: dict[str, Any]) -> bool:
        level_no = record["level"].no
        if level_no >= threshold:
            return True
        if level_no < debug or not packages:
            return False
        name = record["name"] or ""
        return any(name == p or name.startswith(f"{p}.") for p in packages)

    return _filter


def configure_logging(
    level: str,
    *,
    debug_scopes: Iterable[LogScope | str] = (),
    colorize: bool = False,
    sink: TextIO | None = None,
) -> int:
    """Replace loguru's handlers with one scoped handler; returns its id.

    Unknown scope names raise ``ValueError``.
    """
    record_filter = scope_filter(level, debug_scopes)
    logger.remove()
    return logger.add(
        sys.stderr if sink is None else sink,
        level="DEBUG",
        format=LOG_FORMAT,
        colorize=colorize,
        filter=record_filter,
    )
