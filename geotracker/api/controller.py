"""
Tracker API controller.

Thin async facade between the REST routes and the running LocationTracker.
Handlers receive plain dicts; ``None`` means "nothing to report" and is
turned into a 404 by the routes.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Optional

from geotracker import __version__
from geotracker.config import RUNTIME_KEYS, ConfigError, TrackerConfig
from geotracker.core.logging_utils import get_module_logger
from geotracker.core.preferences import ModulePreferences
from geotracker.tracking import LocationTracker, WatchOptions

logger = get_module_logger("TrackerAPIController")

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def _coerce(key: str, value: Any, current: Any) -> Any:
    """Coerce a JSON value to the type of the current config value."""
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ConfigError(f"{key} must be a boolean, got {value!r}")
    if isinstance(current, int):
        if isinstance(value, bool):
            raise ConfigError(f"{key} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be an integer, got {value!r}") from None
    return value


class TrackerAPIController:
    """Exposes tracker state and actions to the REST layer."""

    def __init__(
        self,
        tracker: LocationTracker,
        config: TrackerConfig,
        preferences: Optional[ModulePreferences] = None,
    ) -> None:
        self.tracker = tracker
        self.config = config
        self.preferences = preferences

    # ------------------------------------------------------------------
    # Read-only

    async def get_health(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "platform": self.tracker.platform.name,
            "running": self.tracker.is_running,
        }

    async def get_status(self) -> Dict[str, Any]:
        status = self.tracker.snapshot.to_dict()
        status["running"] = self.tracker.is_running
        status["platform"] = self.tracker.platform.name
        status["default_options"] = self.tracker.default_options.to_dict()
        return status

    async def get_position(self) -> Optional[Dict[str, Any]]:
        fix = self.tracker.snapshot.fix
        if fix is None:
            return None
        position = fix.to_dict()
        position["age_ms"] = round(fix.age_ms())
        return position

    async def get_config(self) -> Dict[str, Any]:
        return self.config.to_dict()

    # ------------------------------------------------------------------
    # Actions

    async def retry(self) -> Dict[str, Any]:
        success = self.tracker.retry_now()
        result: Dict[str, Any] = {"success": success, "snapshot": self.tracker.snapshot.to_dict()}
        if not success:
            result["error"] = "Tracker is not running"
        return result

    async def start_tracking(self) -> Dict[str, Any]:
        already_running = self.tracker.is_running
        if not already_running:
            await self.tracker.start()
        return {
            "success": True,
            "already_running": already_running,
            "snapshot": self.tracker.snapshot.to_dict(),
        }

    async def stop_tracking(self) -> Dict[str, Any]:
        was_running = self.tracker.is_running
        self.tracker.stop()
        return {
            "success": True,
            "was_running": was_running,
            "snapshot": self.tracker.snapshot.to_dict(),
        }

    async def request_one_shot(self, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run a one-shot position query.

        Raises:
            SensorErrorRaised: the query failed; routes map this to 503
        """
        options = self.tracker.default_options
        if overrides:
            options = self._options_with(options, overrides)
        fix = await self.tracker.request_fix(options)
        return {"success": True, "fix": fix.to_dict()}

    async def set_visibility(self, visible: bool) -> Dict[str, Any]:
        self.tracker.visibility.set_visible(visible)
        return {
            "success": True,
            "visible": self.tracker.visibility.visible,
            "snapshot": self.tracker.snapshot.to_dict(),
        }

    async def update_config(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Apply runtime-changeable settings, persist them, and reconfigure the tracker.

        Raises:
            ConfigError: an unknown key or an invalid value
        """
        unknown = sorted(set(updates) - RUNTIME_KEYS)
        if unknown:
            raise ConfigError(f"Cannot change at runtime: {', '.join(unknown)}")

        current = self.config.to_dict()
        coerced = {key: _coerce(key, value, current[key]) for key, value in updates.items()}
        candidate = replace(self.config, **coerced)
        candidate.validate()

        if self.preferences is not None:
            if not await self.preferences.write_async(coerced):
                return {"success": False, "error": "Failed to persist configuration"}

        self.config = candidate
        self.tracker.configure(
            default_options=candidate.watch_options(),
            backoff_config=candidate.backoff_config(),
        )
        logger.info("Runtime configuration updated: %s", coerced)
        return {"success": True, "updated": coerced, "config": candidate.to_dict()}

    @staticmethod
    def _options_with(options: WatchOptions, overrides: Dict[str, Any]) -> WatchOptions:
        allowed = {"high_accuracy", "max_fix_age_ms", "timeout_ms"}
        unknown = sorted(set(overrides) - allowed)
        if unknown:
            raise ConfigError(f"Unknown option(s): {', '.join(unknown)}")
        current = options.to_dict()
        coerced = {key: _coerce(key, value, current[key]) for key, value in overrides.items()}
        if coerced.get("timeout_ms", options.timeout_ms) <= 0:
            raise ConfigError("timeout_ms must be positive")
        return replace(options, **coerced)


__all__ = ["TrackerAPIController"]
