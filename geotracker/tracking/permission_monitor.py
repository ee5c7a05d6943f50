"""Permission monitor: tracks the authorization state of the location sensor."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from geotracker.core.logging_utils import get_module_logger

from .platform import Capabilities, GeolocationPlatform
from .state import TrackerState
from .types import PermissionState

logger = get_module_logger("PermissionMonitor")

PermissionChangeCallback = Callable[[PermissionState, PermissionState], None]


class PermissionMonitor:
    """Query the permission once, then follow its changes until stopped.

    A platform that cannot be queried, or a query that fails, yields
    ``prompt`` so startup proceeds optimistically.
    """

    def __init__(
        self,
        state: TrackerState,
        platform: GeolocationPlatform,
        on_change: PermissionChangeCallback,
    ) -> None:
        self._state = state
        self._platform = platform
        self._on_change = on_change
        self._watch_handle: Optional[Any] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self, capabilities: Capabilities) -> PermissionState:
        self._running = True

        current = PermissionState.PROMPT
        if capabilities.permissions_query:
            try:
                current = await self._platform.query_permission()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Permission query failed, assuming prompt: %s", exc)
                current = PermissionState.PROMPT
        else:
            logger.info("Permission query not supported, assuming prompt")

        if not self._running:
            # Stopped while the query was in flight
            return current

        self._apply(current)

        if capabilities.permission_events:
            try:
                self._watch_handle = self._platform.watch_permission(self._apply)
            except Exception as exc:
                logger.warning("Permission change notifications unavailable: %s", exc)
                self._watch_handle = None

        return current

    def stop(self) -> None:
        self._running = False
        handle = self._watch_handle
        if handle is None:
            return
        self._watch_handle = None
        try:
            self._platform.unwatch_permission(handle)
        except Exception as exc:
            logger.warning("Error removing permission watch: %s", exc)

    def _apply(self, new_state: PermissionState) -> None:
        if not self._running:
            return
        previous = self._state.permission
        if new_state == previous:
            return
        self._state.permission = new_state
        logger.info("Permission %s -> %s", previous.value, new_state.value)
        self._on_change(previous, new_state)


__all__ = ["PermissionMonitor"]
