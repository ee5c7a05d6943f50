"""Subscription controller: owns the single active sensor subscription."""

from __future__ import annotations

from functools import partial
from typing import Any, Callable, Optional

from geotracker.core.logging_utils import get_module_logger

from .backoff import BackoffScheduler
from .platform import Capabilities, GeolocationPlatform
from .state import TrackerState
from .types import CapabilityUnavailable, PositionFix, TrackerPhase, WatchOptions

logger = get_module_logger("Subscription")


class SubscriptionController:
    """Start and stop the platform subscription, at most one at a time.

    Every ``start()`` issues a one-shot request and opens a continuous
    subscription; both report through the same generation-bound handlers.
    Reports carrying an older generation come from a superseded subscription
    and are dropped. Stopping also cancels the one-shot request if it is
    still pending.
    """

    def __init__(
        self,
        state: TrackerState,
        platform: GeolocationPlatform,
        backoff: BackoffScheduler,
        *,
        on_failure: Callable[[BaseException], None],
        on_change: Callable[[], None],
    ) -> None:
        self._state = state
        self._platform = platform
        self._backoff = backoff
        self._on_failure = on_failure
        self._on_change = on_change
        self.capabilities = Capabilities()
        self._request_handle: Optional[Any] = None

    def is_active(self) -> bool:
        return self._state.subscription_handle is not None

    def start(self, options: Optional[WatchOptions] = None) -> None:
        state = self._state
        options = options or WatchOptions()

        self.stop()
        state.generation += 1
        generation = state.generation
        state.options = options

        if not self.capabilities.geolocation:
            logger.error("Geolocation not supported by %s", self._platform.name)
            self._on_error(generation, CapabilityUnavailable(f"geolocation not supported by {self._platform.name}"))
            return

        state.phase = TrackerPhase.STARTING

        on_success = partial(self._on_success, generation)
        on_error = partial(self._on_error, generation)

        try:
            self._request_handle = self._platform.request(on_success, on_error, options)
            if generation != state.generation:
                # The one-shot request already failed and the failure path took over
                return
            handle = self._platform.subscribe(on_success, on_error, options)
        except Exception as exc:
            logger.error("Failed to start subscription on %s: %s", self._platform.name, exc)
            self._on_error(generation, exc)
            return

        if generation != state.generation:
            self._platform.unsubscribe(handle)
            return

        state.subscription_handle = handle
        logger.info(
            "Subscription %s started (high_accuracy=%s, max_fix_age=%dms, timeout=%dms)",
            handle,
            options.high_accuracy,
            options.max_fix_age_ms,
            options.timeout_ms,
        )
        self._on_change()

    def stop(self) -> bool:
        """Cancel the active subscription. Safe to call when nothing is active.

        Returns:
            True if a subscription was cancelled
        """
        state = self._state
        handle = state.subscription_handle
        state.generation += 1
        self._cancel_request()
        if handle is None:
            return False

        state.subscription_handle = None
        try:
            self._platform.unsubscribe(handle)
        except Exception as exc:
            logger.warning("Error cancelling subscription %s: %s", handle, exc)
        logger.info("Subscription %s stopped", handle)
        return True

    def _cancel_request(self) -> None:
        request, self._request_handle = self._request_handle, None
        if request is None:
            return
        try:
            self._platform.cancel_request(request)
        except Exception as exc:
            logger.warning("Error cancelling one-shot request %s: %s", request, exc)

    # ------------------------------------------------------------------
    # Platform callbacks

    def _on_success(self, generation: int, fix: PositionFix) -> None:
        state = self._state
        if generation != state.generation:
            logger.debug("Dropping stale fix from generation %d", generation)
            return

        logger.debug(
            "Fix %.6f, %.6f (accuracy %.1fm)",
            fix.latitude,
            fix.longitude,
            fix.accuracy_m,
        )
        state.last_fix = fix
        state.last_error = None
        self._backoff.reset()
        state.phase = TrackerPhase.TRACKING
        self._on_change()

    def _on_error(self, generation: int, exc: BaseException) -> None:
        if generation != self._state.generation:
            logger.debug("Dropping stale error from generation %d: %s", generation, exc)
            return
        self._on_failure(exc)


__all__ = ["SubscriptionController"]
