"""LocationTracker: composes the four tracking components behind one API.

Usage:
    tracker = LocationTracker(SimulatedPlatform())
    remove = tracker.add_listener(lambda snap: print(snap.fix))
    await tracker.start()
    ...
    tracker.retry_now()
    await tracker.close()
"""

from __future__ import annotations

import asyncio
from itertools import count
from typing import Callable, Dict, Optional

from geotracker.core.logging_utils import get_module_logger

from .backoff import BackoffConfig, BackoffScheduler
from .classifier import FailureHandler, classify_error
from .lifecycle import LifecycleReactor, VisibilitySignal
from .permission_monitor import PermissionMonitor
from .platform import Capabilities, GeolocationPlatform, LoopTimers, Timers, discover_capabilities
from .state import TrackerState
from .subscription import SubscriptionController
from .types import (
    CapabilityUnavailable,
    PermissionState,
    PositionFix,
    SensorError,
    SensorErrorRaised,
    TrackerPhase,
    TrackerSnapshot,
    WatchOptions,
)

logger = get_module_logger("LocationTracker")

SnapshotListener = Callable[[TrackerSnapshot], None]


class LocationTracker:
    """Keeps the device position current and recovers from sensor failures."""

    def __init__(
        self,
        platform: GeolocationPlatform,
        *,
        default_options: Optional[WatchOptions] = None,
        backoff_config: Optional[BackoffConfig] = None,
        timers: Optional[Timers] = None,
        visibility: Optional[VisibilitySignal] = None,
    ) -> None:
        self.platform = platform
        self.default_options = default_options or WatchOptions()
        self.visibility = visibility or VisibilitySignal()
        self.capabilities: Optional[Capabilities] = None

        self._state = TrackerState()
        self._listeners: Dict[int, SnapshotListener] = {}
        self._listener_ids = count(1)
        self._running = False

        self._backoff = BackoffScheduler(self._state, timers or LoopTimers(), backoff_config)
        self._controller = SubscriptionController(
            self._state,
            platform,
            self._backoff,
            on_failure=self._on_failure,
            on_change=self._emit,
        )
        self._failures = FailureHandler(self._state, self._controller, self._backoff, on_change=self._emit)
        self._permissions = PermissionMonitor(self._state, platform, self._on_permission_change)
        self._lifecycle = LifecycleReactor(
            self._state,
            self._controller,
            self._backoff,
            default_options=lambda: self.default_options,
            on_change=self._emit,
        )

    # ------------------------------------------------------------------
    # Read-only state

    @property
    def snapshot(self) -> TrackerSnapshot:
        return self._state.snapshot()

    @property
    def phase(self) -> TrackerPhase:
        return self._state.phase

    @property
    def is_running(self) -> bool:
        return self._running

    def is_active(self) -> bool:
        return self._controller.is_active()

    @property
    def backoff_config(self) -> BackoffConfig:
        return self._backoff.config

    def configure(
        self,
        *,
        default_options: Optional[WatchOptions] = None,
        backoff_config: Optional[BackoffConfig] = None,
    ) -> None:
        """Replace defaults used by the next start, retry or restart.

        The running subscription and any pending restart keep their options.
        """
        if default_options is not None:
            self.default_options = default_options
        if backoff_config is not None:
            self._backoff.config = backoff_config
        logger.info(
            "Configured default options %s, backoff %s",
            self.default_options.to_dict(), self._backoff.config,
        )

    # ------------------------------------------------------------------
    # Listeners

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register ``listener`` for snapshots; returns a callable that removes it."""
        token = next(self._listener_ids)
        self._listeners[token] = listener
        return lambda: self._listeners.pop(token, None)

    def _emit(self) -> None:
        snapshot = self._state.snapshot()
        for listener in list(self._listeners.values()):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener failed")

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self) -> None:
        if self._running:
            logger.warning("Tracker already running on %s", self.platform.name)
            return

        self._running = True
        self._state.permission = PermissionState.UNKNOWN
        self.capabilities = discover_capabilities(self.platform)
        self._controller.capabilities = self.capabilities
        logger.info("Location tracking starting on %s", self.platform.name)

        if not self.capabilities.geolocation:
            self._controller.start(self.default_options)
            return

        await self._permissions.start(self.capabilities)
        if not self._running:
            return
        self._lifecycle.attach(self.visibility)

    def stop(self) -> None:
        """Stop tracking and release every timer and subscription. Idempotent."""
        was_running = self._running
        self._running = False
        self._lifecycle.detach()
        self._permissions.stop()
        self._lifecycle.teardown()
        if was_running:
            logger.info("Location tracking stopped")

    async def close(self) -> None:
        self.stop()
        await self.platform.close()

    async def restart(self) -> None:
        """Tear everything down and start afresh (forced reset)."""
        self._lifecycle.on_forced_reset()
        self.stop()
        await self.start()

    def retry_now(self) -> bool:
        """Restart the subscription immediately, whatever the backoff state.

        Returns:
            False if the tracker is not running
        """
        if not self._running:
            logger.warning("Retry requested while tracker is stopped")
            return False

        logger.info("Manual retry requested")
        self._backoff.cancel()
        self._controller.start(self.default_options)
        self._emit()
        return True

    async def request_fix(self, options: Optional[WatchOptions] = None) -> PositionFix:
        """One-shot position query outside the continuous subscription.

        Raises:
            SensorErrorRaised: the query ended in a classified error
        """
        options = options or self.default_options
        capabilities = self.capabilities or discover_capabilities(self.platform)
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def on_success(fix: PositionFix) -> None:
            if not future.done():
                future.set_result(fix)

        def on_error(exc: BaseException) -> None:
            if not future.done():
                future.set_exception(SensorErrorRaised(classify_error(exc)))

        request = None
        if not capabilities.geolocation:
            on_error(CapabilityUnavailable(f"geolocation not supported by {self.platform.name}"))
        else:
            try:
                request = self.platform.request(on_success, on_error, options)
            except Exception as exc:
                on_error(exc)

        try:
            fix = await future
        except SensorErrorRaised as exc:
            self._record_one_shot_error(exc.error)
            raise
        except asyncio.CancelledError:
            if request is not None:
                self.platform.cancel_request(request)
            raise

        self._state.last_fix = fix
        self._state.last_error = None
        self._backoff.reset()
        self._emit()
        return fix

    # ------------------------------------------------------------------
    # Internal wiring

    def _record_one_shot_error(self, error: SensorError) -> None:
        logger.warning("One-shot position query failed: %s", error)
        self._state.last_error = error
        self._emit()

    def _on_failure(self, exc: BaseException) -> None:
        self._failures.handle(exc)

    def _on_permission_change(self, previous: PermissionState, current: PermissionState) -> None:
        if current is PermissionState.DENIED:
            self._backoff.cancel()
            self._controller.stop()
            self._state.phase = TrackerPhase.DENIED
            self._emit()
        elif current.allows_tracking:
            logger.info("Permission %s; starting subscription", current.value)
            self._backoff.cancel()
            self._controller.start(self.default_options)
            self._emit()
        else:
            self._emit()


__all__ = ["LocationTracker", "SnapshotListener"]
