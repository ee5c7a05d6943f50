"""Lifecycle reactor: visibility changes, forced resets and teardown."""

from __future__ import annotations

from itertools import count
from typing import Callable, Dict, Optional

from geotracker.core.logging_utils import get_module_logger

from .backoff import BackoffScheduler
from .state import TrackerState
from .subscription import SubscriptionController
from .types import PermissionState, TrackerPhase, WatchOptions

logger = get_module_logger("Lifecycle")

VisibilityCallback = Callable[[bool], None]


class VisibilitySignal:
    """Visibility of the hosting environment.

    Listeners hear about transitions only. ``resume()`` always reports a
    transition to visible, for hosts that learn about suspension only once
    execution continues.
    """

    def __init__(self, visible: bool = True) -> None:
        self._visible = visible
        self._listeners: Dict[int, VisibilityCallback] = {}
        self._ids = count(1)

    @property
    def visible(self) -> bool:
        return self._visible

    def connect(self, callback: VisibilityCallback) -> int:
        token = next(self._ids)
        self._listeners[token] = callback
        return token

    def disconnect(self, token: int) -> None:
        self._listeners.pop(token, None)

    def set_visible(self, visible: bool) -> None:
        if visible == self._visible:
            return
        self._visible = visible
        self._notify(visible)

    def resume(self) -> None:
        self._visible = True
        self._notify(True)

    def _notify(self, visible: bool) -> None:
        for callback in list(self._listeners.values()):
            try:
                callback(visible)
            except Exception:
                logger.exception("Visibility listener failed")


class LifecycleReactor:
    """Keep the subscription alive across host suspension, and tear it down once."""

    def __init__(
        self,
        state: TrackerState,
        controller: SubscriptionController,
        backoff: BackoffScheduler,
        *,
        default_options: Callable[[], WatchOptions],
        on_change: Callable[[], None],
    ) -> None:
        self._state = state
        self._controller = controller
        self._backoff = backoff
        self._default_options = default_options
        self._on_change = on_change
        self._signal: Optional[VisibilitySignal] = None
        self._token: Optional[int] = None

    def attach(self, signal: VisibilitySignal) -> None:
        self.detach()
        self._signal = signal
        self._token = signal.connect(self.on_visibility_change)

    def detach(self) -> None:
        if self._signal is not None and self._token is not None:
            self._signal.disconnect(self._token)
        self._signal = None
        self._token = None

    def on_visibility_change(self, visible: bool) -> None:
        if not visible:
            # Background throttling is left to the platform
            logger.debug("Hidden; tracking left running")
            return

        if self._controller.is_active():
            logger.debug("Visible; subscription already active")
            return

        state = self._state
        if state.phase is TrackerPhase.DENIED or state.permission is PermissionState.DENIED:
            logger.info("Visible; not restarting while permission is denied")
            return

        logger.info("Visible with no active subscription; restarting")
        self._backoff.cancel()
        self._controller.start(self._default_options())

    def teardown(self) -> bool:
        """Cancel the pending restart and stop the subscription. Idempotent.

        Returns:
            True if anything was released
        """
        cancelled = self._backoff.cancel()
        stopped = self._controller.stop()
        changed = cancelled or stopped or self._state.phase is not TrackerPhase.IDLE
        self._state.phase = TrackerPhase.IDLE
        if changed:
            logger.info("Tracking torn down")
            self._on_change()
        return changed

    def on_forced_reset(self) -> None:
        logger.info("Forced reset; releasing subscription and timers")
        self.teardown()


__all__ = ["LifecycleReactor", "VisibilitySignal"]
