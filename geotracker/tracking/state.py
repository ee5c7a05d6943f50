"""The single mutable record owned by a LocationTracker."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .types import (
    PermissionState,
    PositionFix,
    SensorError,
    TrackerPhase,
    TrackerSnapshot,
    WatchOptions,
)


@dataclass(slots=True)
class TrackerState:
    """Tracker state shared by reference between the sub-components.

    ``subscription_handle`` is set exactly while a sensor subscription is
    active. ``generation`` changes on every start and stop so callbacks from a
    superseded subscription can be recognised and dropped.
    """

    permission: PermissionState = PermissionState.UNKNOWN
    subscription_handle: Optional[Any] = None
    last_fix: Optional[PositionFix] = None
    last_error: Optional[SensorError] = None
    backoff_attempts: int = 0
    pending_restart_timer: Optional[Any] = None
    retry_delay_ms: Optional[int] = None
    generation: int = 0
    options: WatchOptions = field(default_factory=WatchOptions)
    phase: TrackerPhase = TrackerPhase.IDLE

    @property
    def active(self) -> bool:
        return self.subscription_handle is not None

    def snapshot(self) -> TrackerSnapshot:
        return TrackerSnapshot(
            fix=self.last_fix,
            error=self.last_error,
            permission=self.permission,
            phase=self.phase,
            active=self.active,
            backoff_attempts=self.backoff_attempts,
            retry_delay_ms=self.retry_delay_ms if self.pending_restart_timer is not None else None,
        )


__all__ = ["TrackerState"]
