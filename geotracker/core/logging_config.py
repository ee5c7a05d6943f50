"""Process logging for geotracker.

Handlers hang off the root logger so aiohttp and asyncio records share the
tracker's format. Components log under ``geotracker.<Component>`` and can be
turned up or down one at a time with a ``log_levels`` setting such as
``Subscription=debug, SerialNMEA=warning``.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .logging_utils import LOGGER_NAMESPACE

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)-7s %(name)s %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 512 * 1024
LOG_BACKUP_COUNT = 5

# Library loggers that are noisy below WARNING
QUIET_LOGGERS = ("aiohttp.access", "asyncio")

_OWNED = "_geotracker_owned"
_component_overrides: set[str] = set()

LevelSpec = Union[int, str]


def coerce_level(level: LevelSpec) -> int:
    if isinstance(level, str):
        value = logging.getLevelName(level.strip().upper())
        if not isinstance(value, int):
            raise ValueError(f"Unknown log level '{level}'")
        return value
    return int(level)


def parse_component_levels(value: Union[str, Mapping[str, LevelSpec], None]) -> Dict[str, int]:
    """Map ``Component=level`` pairs to logger names and numeric levels.

    Accepts the comma-separated config form or an already split mapping.
    Names without the ``geotracker.`` prefix get it.
    """
    if not value:
        return {}

    if isinstance(value, Mapping):
        pairs = list(value.items())
    else:
        pairs = []
        for entry in value.split(","):
            entry = entry.strip()
            if not entry:
                continue
            name, sep, level = entry.partition("=")
            if not sep or not name.strip():
                raise ValueError(f"Expected Component=level, got '{entry}'")
            pairs.append((name.strip(), level))

    levels: Dict[str, int] = {}
    for name, level in pairs:
        if not name.startswith(LOGGER_NAMESPACE):
            name = f"{LOGGER_NAMESPACE}.{name}"
        levels[name] = coerce_level(level)
    return levels


def _build_handlers(console: bool, log_file: Optional[Path]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_file,
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        )
    if not handlers:
        # Keeps the last-resort stderr handler from printing warnings
        handlers.append(logging.NullHandler())
    return handlers


def _remove_owned_handlers(root: logging.Logger) -> None:
    for handler in list(root.handlers):
        if getattr(handler, _OWNED, False):
            root.removeHandler(handler)
            handler.close()


def configure_logging(
    level: LevelSpec = logging.INFO,
    *,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    component_levels: Union[str, Mapping[str, LevelSpec], None] = None,
) -> None:
    """Install the geotracker handlers on the root logger.

    Calling it again replaces the handlers and component levels set by an
    earlier call. Handlers installed by someone else (pytest's capture
    handler, for one) are left in place.

    Raises:
        ValueError: ``level`` or one of ``component_levels`` is not a level name
    """
    numeric = coerce_level(level)
    overrides = parse_component_levels(component_levels)
    root = logging.getLogger()

    _remove_owned_handlers(root)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    for handler in _build_handlers(console, Path(log_file).expanduser() if log_file else None):
        handler.setFormatter(formatter)
        setattr(handler, _OWNED, True)
        root.addHandler(handler)
    root.setLevel(numeric)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, numeric))

    for name in _component_overrides - overrides.keys():
        logging.getLogger(name).setLevel(logging.NOTSET)
    for name, component_level in overrides.items():
        logging.getLogger(name).setLevel(component_level)
    _component_overrides.clear()
    _component_overrides.update(overrides)


def configure_from_config(config: Any) -> None:
    """Apply the logging fields of a ``TrackerConfig``."""
    configure_logging(
        config.log_level,
        console=config.console_output,
        log_file=config.log_file,
        component_levels=config.log_levels,
    )


__all__ = [
    "LOG_FORMAT",
    "coerce_level",
    "configure_from_config",
    "configure_logging",
    "parse_component_levels",
]
