"""Host platform contract consumed by the location tracker.

A platform supplies the position sensor, the permission source and the
timer primitives. All callbacks are invoked on the asyncio loop thread;
nothing here blocks.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from geotracker.core.logging_utils import get_module_logger

from .types import PermissionState, PositionFix, WatchOptions

logger = get_module_logger("Platform")

FixCallback = Callable[[PositionFix], None]
ErrorCallback = Callable[[BaseException], None]
PermissionCallback = Callable[[PermissionState], None]


@dataclass(frozen=True, slots=True)
class Capabilities:
    """What a platform can do, discovered once at startup."""

    geolocation: bool = True
    permissions_query: bool = True
    permission_events: bool = True

    @classmethod
    def unsupported(cls) -> "Capabilities":
        return cls(geolocation=False, permissions_query=False, permission_events=False)


class GeolocationPlatform(ABC):
    """Position, permission and subscription primitives of a host."""

    name: str = "platform"

    def capabilities(self) -> Capabilities:
        return Capabilities()

    @abstractmethod
    def request(self, on_success: FixCallback, on_error: ErrorCallback, options: WatchOptions) -> Optional[Any]:
        """Deliver exactly one fix or one error through the callbacks.

        Returns a handle for ``cancel_request``, or None when the request
        cannot be cancelled.
        """

    @abstractmethod
    def subscribe(self, on_success: FixCallback, on_error: ErrorCallback, options: WatchOptions) -> Any:
        """Open a continuous subscription and return its handle."""

    @abstractmethod
    def unsubscribe(self, handle: Any) -> None:
        """Cancel a subscription. Unknown handles are ignored."""

    def cancel_request(self, handle: Any) -> None:
        """Drop a pending one-shot request. Finished or unknown handles are ignored."""
        return None

    async def query_permission(self) -> PermissionState:
        raise NotImplementedError(f"{self.name} cannot query permissions")

    def watch_permission(self, callback: PermissionCallback) -> Optional[Any]:
        """Subscribe to permission changes; None when unsupported."""
        return None

    def unwatch_permission(self, handle: Any) -> None:
        return None

    async def close(self) -> None:
        """Release platform resources (ports, background tasks)."""
        return None


def discover_capabilities(platform: Optional[GeolocationPlatform]) -> Capabilities:
    """Ask ``platform`` what it supports, treating any failure as unsupported."""
    if platform is None:
        return Capabilities.unsupported()
    try:
        caps = platform.capabilities()
    except Exception as exc:
        logger.warning("Capability discovery failed for %s: %s", platform.name, exc)
        return Capabilities.unsupported()
    logger.debug(
        "%s capabilities: geolocation=%s permissions_query=%s permission_events=%s",
        platform.name, caps.geolocation, caps.permissions_query, caps.permission_events,
    )
    return caps


# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------


class Timers(Protocol):
    def set_timer(self, delay_ms: int, callback: Callable[[], None]) -> Any: ...

    def cancel_timer(self, handle: Any) -> None: ...


class LoopTimers:
    """Single-shot timers on the running asyncio loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def _resolve_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def set_timer(self, delay_ms: int, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._resolve_loop().call_later(max(0, delay_ms) / 1000.0, callback)

    def cancel_timer(self, handle: Any) -> None:
        if handle is not None:
            handle.cancel()


__all__ = [
    "Capabilities",
    "GeolocationPlatform",
    "FixCallback",
    "ErrorCallback",
    "PermissionCallback",
    "discover_capabilities",
    "Timers",
    "LoopTimers",
]
