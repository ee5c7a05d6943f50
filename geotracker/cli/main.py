"""Command-line entry point."""

from __future__ import annotations

import argparse
import asyncio
from typing import Optional

from geotracker.config import ConfigError, load_config
from geotracker.core.logging_config import configure_from_config, configure_logging
from geotracker.core.logging_utils import get_module_logger
from geotracker.core.paths import ensure_directories
from geotracker.runtime import TrackerRuntime

from .common import (
    build_parser,
    install_exception_handlers,
    install_signal_handlers,
    log_shutdown,
    log_startup,
)

logger = get_module_logger("Main")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


async def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    try:
        preferences, config = load_config(args.config, args)
    except ConfigError as exc:
        configure_logging("info")
        logger.error("Invalid configuration: %s", exc)
        return 2

    ensure_directories()
    configure_from_config(config)

    loop = asyncio.get_running_loop()
    install_exception_handlers(logger, loop)

    runtime = TrackerRuntime(config, preferences)
    install_signal_handlers(runtime, loop)

    log_startup(
        logger,
        config_file=preferences.config_path,
        platform=runtime.platform.name,
        default_options=config.watch_options().to_dict(),
        api=f"http://{config.api_host}:{config.api_port}" if config.api_enabled else "disabled",
    )
    try:
        await runtime.run()
    finally:
        log_shutdown(logger)
    return 0


__all__ = ["main", "parse_args"]
