"""Hand-written fakes for the tracker's platform and timer seams."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Callable, Dict, List, Optional, Tuple

from geotracker.tracking import (
    Capabilities,
    GeolocationPlatform,
    PermissionState,
    PlatformError,
    PositionFix,
    WatchOptions,
)


def make_fix(latitude: float = 40.0, longitude: float = -111.0, accuracy_m: float = 5.0) -> PositionFix:
    return PositionFix(latitude=latitude, longitude=longitude, accuracy_m=accuracy_m)


@dataclass
class FakeCall:
    on_success: Callable[[PositionFix], None]
    on_error: Callable[[BaseException], None]
    options: WatchOptions


class FakePlatform(GeolocationPlatform):
    """Records every request and subscription; tests drive the callbacks."""

    name = "fake"

    def __init__(
        self,
        *,
        permission: PermissionState = PermissionState.GRANTED,
        capabilities: Optional[Capabilities] = None,
        query_error: Optional[BaseException] = None,
    ) -> None:
        self.permission = permission
        self.caps = capabilities or Capabilities()
        self.query_error = query_error
        self.subscribe_error: Optional[BaseException] = None

        self.requests: List[FakeCall] = []
        self.cancelled_requests: List[FakeCall] = []
        self.subscriptions: Dict[int, FakeCall] = {}
        self.all_subscriptions: Dict[int, FakeCall] = {}
        self.unsubscribed: List[int] = []
        self.watchers: Dict[int, Callable[[PermissionState], None]] = {}
        self.closed = False
        self._ids = count(1)

    # GeolocationPlatform -------------------------------------------------

    def capabilities(self) -> Capabilities:
        return self.caps

    def request(self, on_success, on_error, options: WatchOptions) -> FakeCall:
        call = FakeCall(on_success, on_error, options)
        self.requests.append(call)
        return call

    def cancel_request(self, handle: Any) -> None:
        self.cancelled_requests.append(handle)

    def subscribe(self, on_success, on_error, options: WatchOptions) -> int:
        if self.subscribe_error is not None:
            raise self.subscribe_error
        handle = next(self._ids)
        call = FakeCall(on_success, on_error, options)
        self.subscriptions[handle] = call
        self.all_subscriptions[handle] = call
        return handle

    def unsubscribe(self, handle: Any) -> None:
        if self.subscriptions.pop(handle, None) is not None:
            self.unsubscribed.append(handle)

    async def query_permission(self) -> PermissionState:
        if self.query_error is not None:
            raise self.query_error
        return self.permission

    def watch_permission(self, callback) -> int:
        token = next(self._ids)
        self.watchers[token] = callback
        return token

    def unwatch_permission(self, handle: Any) -> None:
        self.watchers.pop(handle, None)

    async def close(self) -> None:
        self.closed = True

    # Test drivers --------------------------------------------------------

    @property
    def active_handles(self) -> List[int]:
        return list(self.subscriptions)

    @property
    def latest(self) -> FakeCall:
        handle = max(self.subscriptions)
        return self.subscriptions[handle]

    def emit_fix(self, fix: Optional[PositionFix] = None) -> PositionFix:
        fix = fix or make_fix()
        self.latest.on_success(fix)
        return fix

    def fail(self, code: int, message: str = "") -> None:
        self.latest.on_error(PlatformError(code, message))

    def set_permission(self, state: PermissionState) -> None:
        self.permission = state
        for callback in list(self.watchers.values()):
            callback(state)


@dataclass
class ManualTimer:
    due_ms: int
    delay_ms: int
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False


@dataclass
class ManualTimers:
    """Timers driven by ``advance()`` instead of the event loop."""

    now_ms: int = 0
    timers: List[ManualTimer] = field(default_factory=list)

    def set_timer(self, delay_ms: int, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now_ms + delay_ms, delay_ms, callback)
        self.timers.append(timer)
        return timer

    def cancel_timer(self, handle: Any) -> None:
        handle.cancelled = True

    @property
    def pending(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    @property
    def scheduled_delays(self) -> List[int]:
        return [t.delay_ms for t in self.timers]

    def advance(self, ms: int) -> None:
        self.now_ms += ms
        for timer in sorted(self.pending, key=lambda t: t.due_ms):
            if timer.due_ms <= self.now_ms and not timer.cancelled:
                timer.fired = True
                timer.callback()

    def fire_next(self) -> ManualTimer:
        timer = min(self.pending, key=lambda t: t.due_ms)
        self.advance(timer.due_ms - self.now_ms)
        return timer


# ---------------------------------------------------------------------------
# Serial receiver fakes
# ---------------------------------------------------------------------------


def nmea(payload: str) -> str:
    """Build a sentence with a correct checksum."""
    checksum = 0
    for char in payload:
        checksum ^= ord(char)
    return f"${payload}*{checksum:02X}"


def gga(hdop: float = 0.9, quality: int = 1) -> str:
    return nmea(f"GPGGA,123519,4807.038,N,01131.000,E,{quality},08,{hdop},545.4,M,46.9,M,,")


async def settle(rounds: int = 10) -> None:
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class Recorder:
    """Collects the callbacks a platform invokes."""

    def __init__(self) -> None:
        self.fixes: List[PositionFix] = []
        self.errors: List[PlatformError] = []

    def on_success(self, fix: PositionFix) -> None:
        self.fixes.append(fix)

    def on_error(self, exc: PlatformError) -> None:
        self.errors.append(exc)

    @property
    def codes(self) -> List[int]:
        return [exc.code for exc in self.errors]


class FakeWriter:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None


class FakeSerial:
    """Stands in for serial_asyncio.open_serial_connection."""

    def __init__(self, error: Optional[BaseException] = None) -> None:
        self.error = error
        self.opened: List[Tuple[str, int]] = []
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer = FakeWriter()

    async def open(self, url: str, baudrate: int):
        self.opened.append((url, baudrate))
        if self.error is not None:
            raise self.error
        self.reader = asyncio.StreamReader()
        self.writer = FakeWriter()
        return self.reader, self.writer

    def feed(self, *sentences: str) -> None:
        for sentence in sentences:
            self.reader.feed_data(f"{sentence}\r\n".encode("ascii"))

    def eof(self) -> None:
        self.reader.feed_eof()
