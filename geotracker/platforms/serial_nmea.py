"""Serial NMEA receiver platform.

Exposes a UART GPS receiver (BerryGPS, u-blox USB dongles, ...) through the
``GeolocationPlatform`` contract. One shared reader task feeds every open
request and subscription; the port is closed once the last consumer leaves.

Error codes follow the tracker's platform convention:

    1  the device node exists but cannot be opened (permission)
    2  the port is missing, closed, or delivers sentences without a valid fix
    3  nothing at all arrived within the watch timeout
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import os
import time
from dataclasses import dataclass
from itertools import count
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from geotracker.core.logging_utils import get_module_logger
from geotracker.tracking.constants import (
    PERMISSION_DENIED_CODE,
    POSITION_UNAVAILABLE_CODE,
    TIMEOUT_CODE,
)
from geotracker.tracking.platform import (
    Capabilities,
    ErrorCallback,
    FixCallback,
    GeolocationPlatform,
    PermissionCallback,
)
from geotracker.tracking.types import PermissionState, PlatformError, PositionFix, WatchOptions

from .constants import (
    DEFAULT_BAUD_RATE,
    DEFAULT_HDOP_THRESHOLD,
    DEFAULT_PERMISSION_POLL_INTERVAL,
    DEFAULT_SERIAL_PORT,
)
from .nmea import DEFAULT_UERE_M, NMEAParser, POSITION_SENTENCES

logger = get_module_logger("SerialNMEA")

# Optional import - serial may not be available on all platforms
try:
    import serial_asyncio  # type: ignore
    SERIAL_AVAILABLE = True
except ImportError:
    serial_asyncio = None  # type: ignore
    SERIAL_AVAILABLE = False

OpenConnection = Callable[..., Awaitable[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]]


@dataclass(slots=True)
class _Consumer:
    on_success: FixCallback
    on_error: ErrorCallback
    options: WatchOptions
    one_shot: bool
    watchdog: Optional[asyncio.TimerHandle] = None
    saw_sentence: bool = False


class SerialNMEAPlatform(GeolocationPlatform):
    """GPS receiver streaming NMEA over a serial port."""

    name = "serial-nmea"

    def __init__(
        self,
        port: str = DEFAULT_SERIAL_PORT,
        baudrate: int = DEFAULT_BAUD_RATE,
        *,
        hdop_threshold: float = DEFAULT_HDOP_THRESHOLD,
        uere_m: float = DEFAULT_UERE_M,
        permission_poll_interval: float = DEFAULT_PERMISSION_POLL_INTERVAL,
        open_connection: Optional[OpenConnection] = None,
    ) -> None:
        """Initialize the platform.

        Args:
            port: Serial port path (e.g., '/dev/serial0' or '/dev/ttyUSB0')
            baudrate: Serial baudrate (default 9600 for most GPS)
            hdop_threshold: Largest HDOP accepted by high-accuracy watches
            uere_m: Range error multiplied with HDOP to estimate accuracy
            permission_poll_interval: Seconds between device-node access probes
            open_connection: Stream opener; defaults to serial_asyncio
        """
        self.port = port
        self.baudrate = baudrate
        self.hdop_threshold = hdop_threshold
        self.uere_m = uere_m
        self.permission_poll_interval = permission_poll_interval

        if open_connection is None and SERIAL_AVAILABLE:
            open_connection = serial_asyncio.open_serial_connection
        self._open_connection = open_connection

        self._parser = NMEAParser()
        self._consumers: Dict[int, _Consumer] = {}
        self._consumer_ids = count(1)
        self._reader_task: Optional[asyncio.Task] = None
        self._writer: Optional[asyncio.StreamWriter] = None

        self._last_fix: Optional[PositionFix] = None
        self._last_fix_hdop: Optional[float] = None
        self._last_fix_monotonic = 0.0

        self._permission_watchers: Dict[int, asyncio.Task] = {}
        self._watcher_ids = count(1)

    # ------------------------------------------------------------------
    # Capabilities and permission

    def capabilities(self) -> Capabilities:
        return Capabilities(
            geolocation=self._open_connection is not None,
            permissions_query=True,
            permission_events=True,
        )

    def probe_permission(self) -> PermissionState:
        """Map device-node access to a permission state.

        A missing node reads as ``prompt``: the receiver may still be plugged in.
        """
        if not os.path.exists(self.port):
            return PermissionState.PROMPT
        if os.access(self.port, os.R_OK | os.W_OK):
            return PermissionState.GRANTED
        return PermissionState.DENIED

    async def query_permission(self) -> PermissionState:
        return self.probe_permission()

    def watch_permission(self, callback: PermissionCallback) -> int:
        token = next(self._watcher_ids)
        self._permission_watchers[token] = asyncio.create_task(
            self._poll_permission(callback),
            name=f"serial-permission-{token}",
        )
        return token

    def unwatch_permission(self, handle: Any) -> None:
        task = self._permission_watchers.pop(handle, None)
        if task is not None:
            task.cancel()

    async def _poll_permission(self, callback: PermissionCallback) -> None:
        last = self.probe_permission()
        while True:
            await asyncio.sleep(self.permission_poll_interval)
            current = self.probe_permission()
            if current == last:
                continue
            last = current
            logger.debug("Access to %s is now %s", self.port, current.value)
            try:
                callback(current)
            except Exception:
                logger.exception("Permission callback failed")

    # ------------------------------------------------------------------
    # Requests and subscriptions

    def request(self, on_success: FixCallback, on_error: ErrorCallback, options: WatchOptions) -> Optional[int]:
        cached = self._cached_fix(options)
        if cached is not None:
            asyncio.get_running_loop().call_soon(on_success, cached)
            return None
        return self._add_consumer(on_success, on_error, options, one_shot=True)

    def subscribe(self, on_success: FixCallback, on_error: ErrorCallback, options: WatchOptions) -> int:
        token = self._add_consumer(on_success, on_error, options, one_shot=False)
        cached = self._cached_fix(options)
        if cached is not None:
            asyncio.get_running_loop().call_soon(self._deliver_cached, token, cached)
        return token

    def unsubscribe(self, handle: Any) -> None:
        self._remove_consumer(handle)

    def cancel_request(self, handle: Any) -> None:
        consumer = self._consumers.get(handle)
        if consumer is not None and consumer.one_shot:
            self._remove_consumer(handle)

    def _remove_consumer(self, handle: Any) -> None:
        consumer = self._consumers.pop(handle, None)
        if consumer is None:
            return
        self._cancel_watchdog(consumer)
        if not self._consumers:
            self._stop_reader()

    @property
    def consumer_count(self) -> int:
        return len(self._consumers)

    @property
    def is_reading(self) -> bool:
        return self._reader_task is not None and not self._reader_task.done()

    def _add_consumer(
        self,
        on_success: FixCallback,
        on_error: ErrorCallback,
        options: WatchOptions,
        *,
        one_shot: bool,
    ) -> int:
        token = next(self._consumer_ids)
        consumer = _Consumer(on_success, on_error, options, one_shot)
        self._consumers[token] = consumer
        self._arm_watchdog(token, consumer)
        self._ensure_reader()
        return token

    def _cached_fix(self, options: WatchOptions) -> Optional[PositionFix]:
        fix = self._last_fix
        if fix is None or options.max_fix_age_ms <= 0:
            return None
        age_ms = (time.monotonic() - self._last_fix_monotonic) * 1000.0
        if age_ms > options.max_fix_age_ms:
            return None
        if options.high_accuracy and not self._is_accurate(self._last_fix_hdop):
            return None
        return fix

    def _is_accurate(self, hdop: Optional[float]) -> bool:
        return hdop is not None and hdop <= self.hdop_threshold

    # ------------------------------------------------------------------
    # Watchdogs

    def _arm_watchdog(self, token: int, consumer: _Consumer) -> None:
        self._cancel_watchdog(consumer)
        consumer.saw_sentence = False
        loop = asyncio.get_running_loop()
        consumer.watchdog = loop.call_later(
            max(0, consumer.options.timeout_ms) / 1000.0,
            self._on_watchdog,
            token,
        )

    @staticmethod
    def _cancel_watchdog(consumer: _Consumer) -> None:
        if consumer.watchdog is not None:
            consumer.watchdog.cancel()
            consumer.watchdog = None

    def _on_watchdog(self, token: int) -> None:
        consumer = self._consumers.get(token)
        if consumer is None:
            return
        consumer.watchdog = None
        timeout_ms = consumer.options.timeout_ms
        if consumer.saw_sentence:
            exc = PlatformError(POSITION_UNAVAILABLE_CODE, f"No valid fix from {self.port} within {timeout_ms} ms")
        else:
            exc = PlatformError(TIMEOUT_CODE, f"No data from {self.port} within {timeout_ms} ms")
        self._fail(token, consumer, exc)

    # ------------------------------------------------------------------
    # Delivery

    def _deliver(self, token: int, consumer: _Consumer, fix: PositionFix) -> None:
        if consumer.one_shot:
            self._consumers.pop(token, None)
            self._cancel_watchdog(consumer)
        else:
            self._arm_watchdog(token, consumer)
        try:
            consumer.on_success(fix)
        except Exception:
            logger.exception("Fix callback failed")
        if consumer.one_shot and not self._consumers:
            self._stop_reader()

    def _deliver_cached(self, token: int, fix: PositionFix) -> None:
        consumer = self._consumers.get(token)
        if consumer is not None:
            self._deliver(token, consumer, fix)

    def _fail(self, token: int, consumer: _Consumer, exc: PlatformError) -> None:
        if consumer.one_shot:
            self._consumers.pop(token, None)
            self._cancel_watchdog(consumer)
        else:
            self._arm_watchdog(token, consumer)
        try:
            consumer.on_error(exc)
        except Exception:
            logger.exception("Error callback failed")
        if consumer.one_shot and not self._consumers:
            self._stop_reader()

    def _fail_all(self, exc: PlatformError) -> None:
        logger.warning("%s", exc)
        for token, consumer in list(self._consumers.items()):
            if self._consumers.get(token) is consumer:
                self._fail(token, consumer, exc)

    def _handle_sentence(self, sentence: str) -> None:
        for consumer in self._consumers.values():
            consumer.saw_sentence = True

        data = self._parser.parse_sentence(sentence)
        if data is None or data.get("sentence_type") not in POSITION_SENTENCES:
            return

        state = self._parser.fix
        fix = state.to_position_fix(self.uere_m)
        if fix is None:
            return

        self._last_fix = fix
        self._last_fix_hdop = state.hdop
        self._last_fix_monotonic = time.monotonic()
        accurate = self._is_accurate(state.hdop)

        for token, consumer in list(self._consumers.items()):
            if self._consumers.get(token) is not consumer:
                continue
            if consumer.options.high_accuracy and not accurate:
                continue
            self._deliver(token, consumer, fix)

    # ------------------------------------------------------------------
    # Reader

    def _ensure_reader(self) -> None:
        if self.is_reading:
            return
        self._reader_task = asyncio.create_task(self._read_loop(), name=f"serial-nmea-{self.port}")

    def _stop_reader(self) -> None:
        task = self._reader_task
        self._reader_task = None
        if task is not None and not task.done():
            task.cancel()

    async def _read_loop(self) -> None:
        if self._open_connection is None:
            self._fail_all(PlatformError(POSITION_UNAVAILABLE_CODE, "serial_asyncio is not installed"))
            return

        try:
            reader, writer = await self._open_connection(url=self.port, baudrate=self.baudrate)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if isinstance(exc, PermissionError) or getattr(exc, "errno", None) == errno.EACCES:
                self._fail_all(PlatformError(PERMISSION_DENIED_CODE, f"Access to {self.port} denied: {exc}"))
            else:
                self._fail_all(PlatformError(POSITION_UNAVAILABLE_CODE, f"Cannot open {self.port}: {exc}"))
            return

        self._writer = writer
        self._parser.reset()
        logger.info("Connected to GPS on %s at %d baud", self.port, self.baudrate)

        try:
            while self._consumers:
                line = await reader.readline()
                if not line:
                    self._fail_all(PlatformError(POSITION_UNAVAILABLE_CODE, f"Serial stream ended on {self.port} (EOF)"))
                    break
                sentence = line.decode("ascii", errors="ignore").strip()
                if sentence.startswith("$"):
                    self._handle_sentence(sentence)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._fail_all(PlatformError(POSITION_UNAVAILABLE_CODE, f"Read error on {self.port}: {exc}"))
        finally:
            if self._writer is writer:
                self._writer = None
            await self._close_stream(writer)

    async def _close_stream(self, writer: asyncio.StreamWriter) -> None:
        with contextlib.suppress(Exception):
            writer.close()

        if hasattr(writer, "wait_closed"):
            try:
                await asyncio.wait_for(writer.wait_closed(), timeout=1.0)
            except asyncio.TimeoutError:
                logger.debug("Timeout waiting for serial close on %s", self.port)
            except Exception:
                logger.debug("Error closing serial on %s", self.port)

        logger.info("Disconnected from GPS on %s", self.port)

    async def close(self) -> None:
        for token in list(self._permission_watchers):
            self.unwatch_permission(token)
        for consumer in self._consumers.values():
            self._cancel_watchdog(consumer)
        self._consumers.clear()

        task = self._reader_task
        self._reader_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._writer is not None:
            writer, self._writer = self._writer, None
            await self._close_stream(writer)


__all__ = ["SERIAL_AVAILABLE", "SerialNMEAPlatform"]
