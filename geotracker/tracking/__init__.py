"""Location tracking core - subscription, permission, backoff and lifecycle handling."""

from .constants import (
    BACKOFF_BASE_MS,
    BACKOFF_MAX_MS,
    DEFAULT_MAX_FIX_AGE_MS,
    DEFAULT_TIMEOUT_MS,
    PERMISSION_DENIED_CODE,
    POSITION_UNAVAILABLE_CODE,
    RETRY_TIMEOUT_CAP_MS,
    TIMEOUT_CODE,
)
from .types import (
    CapabilityUnavailable,
    GeoTrackerError,
    PermissionState,
    PlatformError,
    PositionFix,
    SensorError,
    SensorErrorKind,
    SensorErrorRaised,
    TrackerPhase,
    TrackerSnapshot,
    WatchOptions,
)
from .state import TrackerState
from .platform import (
    Capabilities,
    GeolocationPlatform,
    LoopTimers,
    Timers,
    discover_capabilities,
)
from .backoff import BackoffConfig, BackoffScheduler, backoff_delay_ms
from .subscription import SubscriptionController
from .classifier import FailureHandler, classify_error
from .permission_monitor import PermissionMonitor
from .lifecycle import LifecycleReactor, VisibilitySignal
from .tracker import LocationTracker

__all__ = [
    # Constants
    "BACKOFF_BASE_MS",
    "BACKOFF_MAX_MS",
    "DEFAULT_MAX_FIX_AGE_MS",
    "DEFAULT_TIMEOUT_MS",
    "PERMISSION_DENIED_CODE",
    "POSITION_UNAVAILABLE_CODE",
    "RETRY_TIMEOUT_CAP_MS",
    "TIMEOUT_CODE",
    # Types
    "CapabilityUnavailable",
    "GeoTrackerError",
    "PermissionState",
    "PlatformError",
    "PositionFix",
    "SensorError",
    "SensorErrorKind",
    "SensorErrorRaised",
    "TrackerPhase",
    "TrackerSnapshot",
    "WatchOptions",
    "TrackerState",
    # Platform contract
    "Capabilities",
    "GeolocationPlatform",
    "LoopTimers",
    "Timers",
    "discover_capabilities",
    # Components
    "BackoffConfig",
    "BackoffScheduler",
    "backoff_delay_ms",
    "SubscriptionController",
    "FailureHandler",
    "classify_error",
    "PermissionMonitor",
    "LifecycleReactor",
    "VisibilitySignal",
    "LocationTracker",
]
