"""Exponential restart backoff for transient sensor failures."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import count
from typing import Callable, Optional

from geotracker.core.logging_utils import get_module_logger

from .constants import BACKOFF_BASE_MS, BACKOFF_MAX_MS, RETRY_TIMEOUT_CAP_MS
from .platform import Timers
from .state import TrackerState

logger = get_module_logger("Backoff")


@dataclass(frozen=True, slots=True)
class BackoffConfig:
    """Restart delay schedule."""
    base_delay_ms: int = BACKOFF_BASE_MS
    max_delay_ms: int = BACKOFF_MAX_MS
    retry_timeout_cap_ms: int = RETRY_TIMEOUT_CAP_MS

    @classmethod
    def default(cls) -> "BackoffConfig":
        return cls()


def backoff_delay_ms(
    attempts: int,
    base_ms: int = BACKOFF_BASE_MS,
    max_ms: int = BACKOFF_MAX_MS,
) -> int:
    """Delay before restart number ``attempts``: base * 2^(attempts-1), capped."""
    return min(max_ms, base_ms * (2 ** max(0, attempts - 1)))


class BackoffScheduler:
    """Owns the one pending restart timer of a tracker.

    Scheduling always cancels the previous timer before arming the next one,
    within the same synchronous call, so at most one restart is ever pending.
    """

    def __init__(
        self,
        state: TrackerState,
        timers: Timers,
        config: Optional[BackoffConfig] = None,
    ) -> None:
        self._state = state
        self._timers = timers
        self.config = config or BackoffConfig.default()
        self._tokens = count(1)
        self._armed_token: Optional[int] = None

    @property
    def has_pending(self) -> bool:
        return self._state.pending_restart_timer is not None

    def delay_for(self, attempts: int) -> int:
        return backoff_delay_ms(attempts, self.config.base_delay_ms, self.config.max_delay_ms)

    def schedule(self, restart: Callable[[], None]) -> int:
        """Count one more transient failure and arm a restart timer.

        Returns:
            The delay in milliseconds before ``restart`` runs.
        """
        state = self._state
        state.backoff_attempts += 1
        delay = self.delay_for(state.backoff_attempts)

        self.cancel()
        token = next(self._tokens)
        self._armed_token = token
        state.pending_restart_timer = self._timers.set_timer(delay, lambda: self._fire(token, restart))
        state.retry_delay_ms = delay

        logger.info(
            "Restart %d scheduled in %dms",
            state.backoff_attempts,
            delay,
        )
        return delay

    def cancel(self) -> bool:
        """Cancel the pending restart, if any. Returns True when one was pending."""
        state = self._state
        handle = state.pending_restart_timer
        self._armed_token = None
        state.retry_delay_ms = None
        if handle is None:
            return False
        state.pending_restart_timer = None
        self._timers.cancel_timer(handle)
        logger.debug("Pending restart cancelled")
        return True

    def reset(self) -> None:
        if self._state.backoff_attempts:
            logger.debug("Backoff reset after %d attempt(s)", self._state.backoff_attempts)
        self._state.backoff_attempts = 0

    def _fire(self, token: int, restart: Callable[[], None]) -> None:
        if token != self._armed_token:
            logger.debug("Ignoring superseded restart timer")
            return
        self._armed_token = None
        self._state.pending_restart_timer = None
        self._state.retry_delay_ms = None
        logger.info("Restarting subscription, attempt %d", self._state.backoff_attempts)
        restart()


__all__ = ["BackoffConfig", "BackoffScheduler", "backoff_delay_ms"]
