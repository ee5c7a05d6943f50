"""Location tracker data types."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

from .constants import (
    DEFAULT_HIGH_ACCURACY,
    DEFAULT_MAX_FIX_AGE_MS,
    DEFAULT_TIMEOUT_MS,
)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class PermissionState(Enum):
    """Authorization state of the location capability."""
    UNKNOWN = "unknown"
    GRANTED = "granted"
    PROMPT = "prompt"
    DENIED = "denied"

    @property
    def allows_tracking(self) -> bool:
        return self in (PermissionState.GRANTED, PermissionState.PROMPT)


class SensorErrorKind(Enum):
    """Classification of a reported sensor failure."""
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"
    OTHER = "other"

    @property
    def is_transient(self) -> bool:
        return self in (SensorErrorKind.TIMEOUT, SensorErrorKind.POSITION_UNAVAILABLE)


class TrackerPhase(Enum):
    """Position of the tracker in its lifecycle state machine."""
    IDLE = "idle"
    STARTING = "starting"
    TRACKING = "tracking"
    RETRYING = "retrying"
    DENIED = "denied"


@dataclass(frozen=True, slots=True)
class PositionFix:
    """A single reported position. Replaced wholesale by the next one."""

    latitude: float
    longitude: float
    accuracy_m: float
    observed_at: dt.datetime = field(default_factory=_utcnow)
    altitude_m: Optional[float] = None
    speed_mps: Optional[float] = None
    heading_deg: Optional[float] = None

    def age_ms(self, now: Optional[dt.datetime] = None) -> float:
        now = now or _utcnow()
        return max(0.0, (now - self.observed_at).total_seconds() * 1000.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy_m": self.accuracy_m,
            "observed_at": self.observed_at.isoformat(),
            "altitude_m": self.altitude_m,
            "speed_mps": self.speed_mps,
            "heading_deg": self.heading_deg,
        }


@dataclass(frozen=True, slots=True)
class SensorError:
    """A classified sensor failure."""

    kind: SensorErrorKind
    message: str = ""
    code: Optional[int] = None
    occurred_at: dt.datetime = field(default_factory=_utcnow)

    @property
    def is_transient(self) -> bool:
        return self.kind.is_transient

    def __str__(self) -> str:
        label = self.kind.value
        if self.code is not None:
            label = f"{label} (code {self.code})"
        return f"{label}: {self.message}" if self.message else label

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "occurred_at": self.occurred_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class WatchOptions:
    """Per-subscription sensor options."""

    high_accuracy: bool = DEFAULT_HIGH_ACCURACY
    max_fix_age_ms: int = DEFAULT_MAX_FIX_AGE_MS
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    def degraded(self, timeout_cap_ms: int) -> "WatchOptions":
        """Options for an automatic restart: low accuracy, doubled timeout."""
        return replace(
            self,
            high_accuracy=False,
            timeout_ms=min(timeout_cap_ms, self.timeout_ms * 2),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "high_accuracy": self.high_accuracy,
            "max_fix_age_ms": self.max_fix_age_ms,
            "timeout_ms": self.timeout_ms,
        }


@dataclass(frozen=True, slots=True)
class TrackerSnapshot:
    """Read-only view of the tracker handed to renderers."""

    fix: Optional[PositionFix]
    error: Optional[SensorError]
    permission: PermissionState
    phase: TrackerPhase
    active: bool
    backoff_attempts: int
    retry_delay_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fix": self.fix.to_dict() if self.fix else None,
            "error": self.error.to_dict() if self.error else None,
            "permission": self.permission.value,
            "phase": self.phase.value,
            "active": self.active,
            "backoff_attempts": self.backoff_attempts,
            "retry_delay_ms": self.retry_delay_ms,
        }


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class GeoTrackerError(Exception):
    """Base class for geotracker errors."""


class PlatformError(GeoTrackerError):
    """Raw error reported by a platform, identified by a numeric code."""

    def __init__(self, code: int, message: str = "") -> None:
        super().__init__(message or f"platform error {code}")
        self.code = code
        self.message = message


class CapabilityUnavailable(GeoTrackerError):
    """The platform has no usable location capability."""


class SensorErrorRaised(GeoTrackerError):
    """Raised by one-shot queries that end in a classified error."""

    def __init__(self, error: SensorError) -> None:
        super().__init__(str(error))
        self.error = error


__all__ = [
    "PermissionState",
    "SensorErrorKind",
    "TrackerPhase",
    "PositionFix",
    "SensorError",
    "WatchOptions",
    "TrackerSnapshot",
    "GeoTrackerError",
    "PlatformError",
    "CapabilityUnavailable",
    "SensorErrorRaised",
]
