"""Failure classifier and recovery policy for sensor errors."""

from __future__ import annotations

import asyncio
from typing import Callable

from geotracker.core.logging_utils import get_module_logger

from .backoff import BackoffScheduler
from .constants import PERMISSION_DENIED_CODE, POSITION_UNAVAILABLE_CODE, TIMEOUT_CODE
from .state import TrackerState
from .subscription import SubscriptionController
from .types import (
    CapabilityUnavailable,
    PlatformError,
    SensorError,
    SensorErrorKind,
    TrackerPhase,
)

logger = get_module_logger("FailureHandler")

_CODE_KINDS = {
    PERMISSION_DENIED_CODE: SensorErrorKind.PERMISSION_DENIED,
    POSITION_UNAVAILABLE_CODE: SensorErrorKind.POSITION_UNAVAILABLE,
    TIMEOUT_CODE: SensorErrorKind.TIMEOUT,
}


def classify_error(raw: BaseException) -> SensorError:
    """Return the classified :class:`SensorError` for ``raw``.

    Platform codes take precedence; plain Python exceptions raised by a
    platform are mapped by type. Anything unrecognised is ``other``.
    """
    if isinstance(raw, PlatformError):
        kind = _CODE_KINDS.get(raw.code, SensorErrorKind.OTHER)
        return SensorError(kind=kind, message=raw.message, code=raw.code)

    if isinstance(raw, CapabilityUnavailable):
        kind = SensorErrorKind.UNSUPPORTED
    elif isinstance(raw, PermissionError):
        kind = SensorErrorKind.PERMISSION_DENIED
    elif isinstance(raw, (TimeoutError, asyncio.TimeoutError)):
        kind = SensorErrorKind.TIMEOUT
    else:
        kind = SensorErrorKind.OTHER

    message = str(raw) or type(raw).__name__
    return SensorError(kind=kind, message=message)


class FailureHandler:
    """Apply the recovery policy to each classified sensor error.

    ``permission_denied`` stops tracking until an explicit retry or a
    permission grant. ``timeout`` and ``position_unavailable`` stop the
    subscription and arm a backoff restart with degraded options. Everything
    else is recorded and left alone.
    """

    def __init__(
        self,
        state: TrackerState,
        controller: SubscriptionController,
        backoff: BackoffScheduler,
        *,
        on_change: Callable[[], None],
    ) -> None:
        self._state = state
        self._controller = controller
        self._backoff = backoff
        self._on_change = on_change

    def handle(self, raw: BaseException) -> SensorError:
        state = self._state
        error = classify_error(raw)
        state.last_error = error
        logger.warning("Sensor error: %s", error)

        if error.kind is SensorErrorKind.PERMISSION_DENIED:
            self._backoff.cancel()
            self._controller.stop()
            state.phase = TrackerPhase.DENIED
            logger.warning("Permission denied; tracking suspended until retry or grant")
        elif error.is_transient:
            self._controller.stop()
            self._backoff.schedule(self._restart)
            state.phase = TrackerPhase.RETRYING
        else:
            logger.debug("No automatic recovery for %s", error.kind.value)

        self._on_change()
        return error

    def _restart(self) -> None:
        # Retries keep the degraded options; see DESIGN.md
        options = self._state.options.degraded(self._backoff.config.retry_timeout_cap_ms)
        self._controller.start(options)


__all__ = ["FailureHandler", "classify_error"]
