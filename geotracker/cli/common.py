from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Optional

from geotracker.config import PLATFORM_CHOICES


LOG_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def _positive_number(value: str, typ: type, name: str):
    """Generic positive number validator for argparse."""
    try:
        parsed = typ(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Value must be a {name}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("Value must be positive")
    return parsed


def positive_int(value: str) -> int:
    return _positive_number(value, int, "integer")


def port_number(value: str) -> int:
    port = positive_int(value)
    if port > 65535:
        raise argparse.ArgumentTypeError("Port must be at most 65535")
    return port


def build_parser() -> argparse.ArgumentParser:
    """Command-line options. Every option defaults to None so config.txt wins unless given."""
    parser = argparse.ArgumentParser(
        prog="geotracker",
        description="Continuous location tracking with automatic recovery",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file (default: the packaged config.txt)",
    )
    parser.add_argument(
        "--platform",
        choices=PLATFORM_CHOICES,
        default=None,
        help="Position source",
    )
    parser.add_argument(
        "--serial-port",
        dest="serial_port",
        type=str,
        default=None,
        help="Serial device of the GPS receiver (e.g., /dev/ttyUSB0)",
    )
    parser.add_argument(
        "--baud-rate",
        dest="baud_rate",
        type=positive_int,
        default=None,
        help="Serial baud rate",
    )
    parser.add_argument(
        "--high-accuracy",
        dest="high_accuracy",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Request high-accuracy fixes",
    )
    parser.add_argument(
        "--timeout-ms",
        dest="timeout_ms",
        type=positive_int,
        default=None,
        help="Per-request sensor timeout in milliseconds",
    )
    parser.add_argument(
        "--api",
        dest="api",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Serve the REST API",
    )
    parser.add_argument(
        "--api-host",
        dest="api_host",
        type=str,
        default=None,
        help="REST API bind address",
    )
    parser.add_argument(
        "--api-port",
        dest="api_port",
        type=port_number,
        default=None,
        help="REST API port",
    )
    parser.add_argument(
        "--log-level",
        choices=sorted(LOG_LEVELS.keys()),
        default=None,
        help="Logging verbosity",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Optional path to write logs (rotated)",
    )
    return parser


def install_exception_handlers(
    logger: Any,
    loop: Optional[asyncio.AbstractEventLoop] = None
) -> None:
    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logger.critical(
            "Uncaught exception",
            exc_info=(exc_type, exc_value, exc_traceback)
        )

    sys.excepthook = handle_exception

    if loop is not None:
        def handle_asyncio_exception(loop, context):
            exception = context.get('exception')
            message = context.get('message', 'Unhandled asyncio exception')
            if exception:
                logger.error("Asyncio exception: %s", message, exc_info=exception)
            else:
                logger.error("Asyncio error: %s, context: %s", message, context)

        loop.set_exception_handler(handle_asyncio_exception)


def install_signal_handlers(runtime: Any, loop: asyncio.AbstractEventLoop) -> None:
    """Wire process signals to the runtime.

    SIGINT/SIGTERM shut down, SIGHUP forces a reset and fresh start, and
    SIGCONT reports the process as visible again after a stop.
    """

    shutdown_event = getattr(runtime, "shutdown_event", None)

    def shutdown_handler():
        if shutdown_event is None or not shutdown_event.is_set():
            asyncio.create_task(runtime.shutdown())

    def reload_handler():
        asyncio.create_task(runtime.restart())

    def resume_handler():
        runtime.resume()

    handlers = [
        (signal.SIGINT, shutdown_handler),
        (signal.SIGTERM, shutdown_handler),
        (getattr(signal, "SIGHUP", None), reload_handler),
        (getattr(signal, "SIGCONT", None), resume_handler),
    ]
    for sig, handler in handlers:
        if sig is None:
            continue
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, handler)


def log_startup(logger: Any, **extra_info: Any) -> None:
    logger.info("=" * 60)
    logger.info("GeoTracker starting")
    for key, value in extra_info.items():
        display_key = key.replace('_', ' ').title()
        logger.info("%s: %s", display_key, value)
    logger.info("=" * 60)


def log_shutdown(logger: Any) -> None:
    logger.info("=" * 60)
    logger.info("GeoTracker stopped")
    logger.info("=" * 60)


__all__ = [
    "LOG_LEVELS",
    "build_parser",
    "install_exception_handlers",
    "install_signal_handlers",
    "log_shutdown",
    "log_startup",
    "port_number",
    "positive_int",
]
