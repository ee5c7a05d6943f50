"""Typed configuration for the location tracker."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from geotracker.core.logging_config import coerce_level, parse_component_levels
from geotracker.core.paths import CONFIG_PATH
from geotracker.core.preferences import ModulePreferences
from geotracker.core.typed_config import (
    SupportsGet,
    get_pref_bool,
    get_pref_float,
    get_pref_int,
    get_pref_path,
    get_pref_str,
)
from geotracker.platforms.constants import (
    DEFAULT_BAUD_RATE,
    DEFAULT_HDOP_THRESHOLD,
    DEFAULT_PERMISSION_POLL_INTERVAL,
    DEFAULT_SERIAL_PORT,
    DEFAULT_SIM_ACCURACY_M,
    DEFAULT_SIM_INTERVAL,
    DEFAULT_SIM_LATITUDE,
    DEFAULT_SIM_LONGITUDE,
)
from geotracker.platforms.nmea import DEFAULT_UERE_M
from geotracker.tracking import (
    BACKOFF_BASE_MS,
    BACKOFF_MAX_MS,
    DEFAULT_MAX_FIX_AGE_MS,
    DEFAULT_TIMEOUT_MS,
    RETRY_TIMEOUT_CAP_MS,
    BackoffConfig,
    GeoTrackerError,
    WatchOptions,
)
from geotracker.tracking.constants import DEFAULT_HIGH_ACCURACY

PLATFORM_CHOICES = ("serial", "simulated")

# Keys that may be changed at runtime through the API
RUNTIME_KEYS = frozenset({
    "high_accuracy",
    "max_fix_age_ms",
    "timeout_ms",
    "backoff_base_ms",
    "backoff_max_ms",
    "retry_timeout_cap_ms",
})


class ConfigError(GeoTrackerError, ValueError):
    """Invalid configuration value."""


@dataclass(slots=True)
class TrackerConfig:
    """Typed configuration for the location tracker."""

    # Platform selection
    platform: str = "serial"

    # Serial receiver
    serial_port: str = DEFAULT_SERIAL_PORT
    baud_rate: int = DEFAULT_BAUD_RATE
    hdop_threshold: float = DEFAULT_HDOP_THRESHOLD
    uere_m: float = DEFAULT_UERE_M
    permission_poll_interval_s: float = DEFAULT_PERMISSION_POLL_INTERVAL

    # Simulated platform
    sim_latitude: float = DEFAULT_SIM_LATITUDE
    sim_longitude: float = DEFAULT_SIM_LONGITUDE
    sim_interval_s: float = DEFAULT_SIM_INTERVAL
    sim_accuracy_m: float = DEFAULT_SIM_ACCURACY_M
    sim_faults: str = ""

    # Watch options
    high_accuracy: bool = DEFAULT_HIGH_ACCURACY
    max_fix_age_ms: int = DEFAULT_MAX_FIX_AGE_MS
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    # Restart backoff
    backoff_base_ms: int = BACKOFF_BASE_MS
    backoff_max_ms: int = BACKOFF_MAX_MS
    retry_timeout_cap_ms: int = RETRY_TIMEOUT_CAP_MS

    # REST API
    api_enabled: bool = True
    api_host: str = "127.0.0.1"
    api_port: int = 8090

    # Logging
    log_level: str = "info"
    log_file: Optional[Path] = None
    console_output: bool = True
    log_levels: str = ""

    @classmethod
    def from_preferences(cls, prefs: SupportsGet, args: Any = None) -> "TrackerConfig":
        """Build config from preferences with optional CLI overrides."""
        defaults = cls()

        config = cls(
            # Platform selection
            platform=get_pref_str(prefs, "platform", defaults.platform),
            # Serial receiver
            serial_port=get_pref_str(prefs, "serial_port", defaults.serial_port),
            baud_rate=get_pref_int(prefs, "baud_rate", defaults.baud_rate),
            hdop_threshold=get_pref_float(prefs, "hdop_threshold", defaults.hdop_threshold),
            uere_m=get_pref_float(prefs, "uere_m", defaults.uere_m),
            permission_poll_interval_s=get_pref_float(
                prefs, "permission_poll_interval_s", defaults.permission_poll_interval_s
            ),
            # Simulated platform
            sim_latitude=get_pref_float(prefs, "sim.latitude", defaults.sim_latitude),
            sim_longitude=get_pref_float(prefs, "sim.longitude", defaults.sim_longitude),
            sim_interval_s=get_pref_float(prefs, "sim.interval_s", defaults.sim_interval_s),
            sim_accuracy_m=get_pref_float(prefs, "sim.accuracy_m", defaults.sim_accuracy_m),
            sim_faults=get_pref_str(prefs, "sim.faults", defaults.sim_faults),
            # Watch options
            high_accuracy=get_pref_bool(prefs, "high_accuracy", defaults.high_accuracy),
            max_fix_age_ms=get_pref_int(prefs, "max_fix_age_ms", defaults.max_fix_age_ms),
            timeout_ms=get_pref_int(prefs, "timeout_ms", defaults.timeout_ms),
            # Restart backoff
            backoff_base_ms=get_pref_int(prefs, "backoff_base_ms", defaults.backoff_base_ms),
            backoff_max_ms=get_pref_int(prefs, "backoff_max_ms", defaults.backoff_max_ms),
            retry_timeout_cap_ms=get_pref_int(prefs, "retry_timeout_cap_ms", defaults.retry_timeout_cap_ms),
            # REST API
            api_enabled=get_pref_bool(prefs, "api.enabled", defaults.api_enabled),
            api_host=get_pref_str(prefs, "api.host", defaults.api_host),
            api_port=get_pref_int(prefs, "api.port", defaults.api_port),
            # Logging
            log_level=get_pref_str(prefs, "log_level", defaults.log_level),
            log_file=get_pref_path(prefs, "log_file", defaults.log_file),
            console_output=get_pref_bool(prefs, "console_output", defaults.console_output),
            log_levels=get_pref_str(prefs, "log_levels", defaults.log_levels),
        )

        # Apply CLI argument overrides if provided
        if args is not None:
            config = config._apply_args_override(args)

        config.validate()
        return config

    def _apply_args_override(self, args: Any) -> "TrackerConfig":
        """Apply CLI argument overrides to config values."""
        values = asdict(self)

        arg_mappings = {
            "platform": "platform",
            "serial_port": "serial_port",
            "baud_rate": "baud_rate",
            "high_accuracy": "high_accuracy",
            "timeout_ms": "timeout_ms",
            "api": "api_enabled",
            "api_host": "api_host",
            "api_port": "api_port",
            "log_level": "log_level",
            "log_file": "log_file",
        }

        for arg_name, config_key in arg_mappings.items():
            if hasattr(args, arg_name):
                val = getattr(args, arg_name)
                if val is not None:
                    values[config_key] = val

        if values["log_file"] is not None:
            values["log_file"] = Path(values["log_file"]).expanduser()

        return TrackerConfig(**values)

    def validate(self) -> None:
        """Raise ConfigError for values the tracker cannot run with."""
        if self.platform not in PLATFORM_CHOICES:
            raise ConfigError(f"platform must be one of {', '.join(PLATFORM_CHOICES)}, got '{self.platform}'")
        if self.timeout_ms <= 0:
            raise ConfigError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.max_fix_age_ms < 0:
            raise ConfigError(f"max_fix_age_ms must not be negative, got {self.max_fix_age_ms}")
        if self.backoff_base_ms <= 0 or self.backoff_max_ms < self.backoff_base_ms:
            raise ConfigError(
                f"backoff requires 0 < backoff_base_ms <= backoff_max_ms "
                f"(got {self.backoff_base_ms}, {self.backoff_max_ms})"
            )
        if self.retry_timeout_cap_ms <= 0:
            raise ConfigError(f"retry_timeout_cap_ms must be positive, got {self.retry_timeout_cap_ms}")
        if not 0 < self.api_port < 65536:
            raise ConfigError(f"api_port out of range: {self.api_port}")
        try:
            coerce_level(self.log_level)
            parse_component_levels(self.log_levels)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

    def watch_options(self) -> WatchOptions:
        return WatchOptions(
            high_accuracy=self.high_accuracy,
            max_fix_age_ms=self.max_fix_age_ms,
            timeout_ms=self.timeout_ms,
        )

    def backoff_config(self) -> BackoffConfig:
        return BackoffConfig(
            base_delay_ms=self.backoff_base_ms,
            max_delay_ms=self.backoff_max_ms,
            retry_timeout_cap_ms=self.retry_timeout_cap_ms,
        )

    def fault_script(self) -> List[str]:
        return [entry.strip() for entry in self.sim_faults.split(",") if entry.strip()]

    def to_dict(self) -> Dict[str, Any]:
        """Export config values as dictionary."""
        values = asdict(self)
        values["log_file"] = str(self.log_file) if self.log_file else None
        return values


def load_config(config_path: Optional[Path] = None, args: Any = None) -> tuple[ModulePreferences, TrackerConfig]:
    """Read ``config_path`` (plus user overrides) into preferences and a typed config."""
    prefs = ModulePreferences(Path(config_path) if config_path else CONFIG_PATH)
    return prefs, TrackerConfig.from_preferences(prefs, args)


__all__ = [
    "ConfigError",
    "PLATFORM_CHOICES",
    "RUNTIME_KEYS",
    "TrackerConfig",
    "load_config",
]
