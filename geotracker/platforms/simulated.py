"""Simulated location platform for demos and bench testing.

Produces a random walk around a starting point. A fault script injects
platform errors, one entry per tick:

    platform = SimulatedPlatform(faults=["ok", "ok", "timeout", "ok"])

Entries are ``ok``, ``unavailable``, ``timeout``, ``denied`` or a raw
numeric code. The script is consumed in order and does not repeat.
"""

from __future__ import annotations

import asyncio
import math
import random
from collections import deque
from itertools import count
from typing import Any, Deque, Dict, Iterable, Optional, Union

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
    DEFAULT_SIM_ACCURACY_M,
    DEFAULT_SIM_INTERVAL,
    DEFAULT_SIM_LATITUDE,
    DEFAULT_SIM_LONGITUDE,
    DEFAULT_SIM_STEP_M,
    METERS_PER_DEGREE_LAT,
)

logger = get_module_logger("SimulatedPlatform")

FAULT_CODES: Dict[str, Optional[int]] = {
    "ok": None,
    "denied": PERMISSION_DENIED_CODE,
    "unavailable": POSITION_UNAVAILABLE_CODE,
    "timeout": TIMEOUT_CODE,
}

FaultEntry = Union[str, int, None]


def parse_fault(entry: FaultEntry) -> Optional[int]:
    """Normalize a fault script entry to a platform error code (None = ok)."""
    if entry is None:
        return None
    if isinstance(entry, int):
        return entry
    key = entry.strip().lower()
    if key in FAULT_CODES:
        return FAULT_CODES[key]
    try:
        return int(key)
    except ValueError:
        raise ValueError(f"Unknown fault entry: {entry!r}") from None


class SimulatedPlatform(GeolocationPlatform):
    """Random-walk position source with scriptable faults and permission."""

    name = "simulated"

    def __init__(
        self,
        latitude: float = DEFAULT_SIM_LATITUDE,
        longitude: float = DEFAULT_SIM_LONGITUDE,
        *,
        interval: float = DEFAULT_SIM_INTERVAL,
        accuracy_m: float = DEFAULT_SIM_ACCURACY_M,
        step_m: float = DEFAULT_SIM_STEP_M,
        faults: Optional[Iterable[FaultEntry]] = None,
        permission: PermissionState = PermissionState.GRANTED,
        seed: Optional[int] = None,
    ) -> None:
        self.latitude = latitude
        self.longitude = longitude
        self.interval = interval
        self.accuracy_m = accuracy_m
        self.step_m = step_m

        self._faults: Deque[Optional[int]] = deque(parse_fault(f) for f in (faults or ()))
        self._permission = permission
        self._rng = random.Random(seed)

        self._subscriptions: Dict[int, asyncio.Task] = {}
        self._pending: set[asyncio.Task] = set()
        self._watchers: Dict[int, PermissionCallback] = {}
        self._ids = count(1)

    # ------------------------------------------------------------------
    # Permission

    def capabilities(self) -> Capabilities:
        return Capabilities(geolocation=True, permissions_query=True, permission_events=True)

    @property
    def permission(self) -> PermissionState:
        return self._permission

    async def query_permission(self) -> PermissionState:
        return self._permission

    def set_permission(self, state: PermissionState) -> None:
        """Change the simulated permission and notify watchers."""
        if state == self._permission:
            return
        self._permission = state
        logger.info("Simulated permission -> %s", state.value)
        for callback in list(self._watchers.values()):
            try:
                callback(state)
            except Exception:
                logger.exception("Permission callback failed")

    def watch_permission(self, callback: PermissionCallback) -> int:
        token = next(self._ids)
        self._watchers[token] = callback
        return token

    def unwatch_permission(self, handle: Any) -> None:
        self._watchers.pop(handle, None)

    def inject_faults(self, entries: Iterable[FaultEntry]) -> None:
        self._faults.extend(parse_fault(entry) for entry in entries)

    # ------------------------------------------------------------------
    # Position source

    def request(self, on_success: FixCallback, on_error: ErrorCallback, options: WatchOptions) -> asyncio.Task:
        task = asyncio.create_task(self._one_shot(on_success, on_error))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def cancel_request(self, handle: Any) -> None:
        if handle in self._pending:
            handle.cancel()

    def subscribe(self, on_success: FixCallback, on_error: ErrorCallback, options: WatchOptions) -> int:
        token = next(self._ids)
        self._subscriptions[token] = asyncio.create_task(
            self._watch(on_success, on_error),
            name=f"simulated-watch-{token}",
        )
        return token

    def unsubscribe(self, handle: Any) -> None:
        task = self._subscriptions.pop(handle, None)
        if task is not None:
            task.cancel()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def _one_shot(self, on_success: FixCallback, on_error: ErrorCallback) -> None:
        await asyncio.sleep(0)
        self._tick(on_success, on_error)

    async def _watch(self, on_success: FixCallback, on_error: ErrorCallback) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self._tick(on_success, on_error)

    def _tick(self, on_success: FixCallback, on_error: ErrorCallback) -> None:
        if self._permission is PermissionState.DENIED:
            code: Optional[int] = PERMISSION_DENIED_CODE
        else:
            code = self._faults.popleft() if self._faults else None

        if code is not None:
            logger.debug("Injecting platform error %d", code)
            callback_args: Any = PlatformError(code, f"simulated fault (code {code})")
            callback = on_error
        else:
            callback_args = self._next_fix()
            callback = on_success

        try:
            callback(callback_args)
        except Exception:
            logger.exception("Simulated platform callback failed")

    def _next_fix(self) -> PositionFix:
        bearing = self._rng.uniform(0.0, 2.0 * math.pi)
        distance = self._rng.uniform(0.0, self.step_m)
        d_north = distance * math.cos(bearing)
        d_east = distance * math.sin(bearing)

        self.latitude += d_north / METERS_PER_DEGREE_LAT
        cos_lat = max(1e-6, math.cos(math.radians(self.latitude)))
        self.longitude += d_east / (METERS_PER_DEGREE_LAT * cos_lat)

        return PositionFix(
            latitude=self.latitude,
            longitude=self.longitude,
            accuracy_m=self.accuracy_m,
            speed_mps=distance / self.interval if self.interval > 0 else 0.0,
            heading_deg=math.degrees(bearing) % 360.0,
        )

    async def close(self) -> None:
        tasks = list(self._subscriptions.values()) + list(self._pending)
        self._subscriptions.clear()
        self._watchers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


__all__ = ["FAULT_CODES", "SimulatedPlatform", "parse_fault"]
