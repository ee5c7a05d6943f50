"""Process runtime: builds the platform, tracker and API server from config."""

from __future__ import annotations

import asyncio
from typing import Optional

from geotracker.api import APIServer, TrackerAPIController
from geotracker.config import TrackerConfig
from geotracker.core.logging_utils import get_module_logger
from geotracker.core.preferences import ModulePreferences
from geotracker.platforms import SerialNMEAPlatform, SimulatedPlatform
from geotracker.tracking import GeolocationPlatform, LocationTracker, TrackerSnapshot

logger = get_module_logger("Runtime")


def build_platform(config: TrackerConfig) -> GeolocationPlatform:
    if config.platform == "simulated":
        return SimulatedPlatform(
            config.sim_latitude,
            config.sim_longitude,
            interval=config.sim_interval_s,
            accuracy_m=config.sim_accuracy_m,
            faults=config.fault_script(),
        )
    return SerialNMEAPlatform(
        config.serial_port,
        config.baud_rate,
        hdop_threshold=config.hdop_threshold,
        uere_m=config.uere_m,
        permission_poll_interval=config.permission_poll_interval_s,
    )


def format_status(snapshot: TrackerSnapshot) -> str:
    """One-line rendering of a snapshot for the log."""
    parts = [f"phase={snapshot.phase.value}", f"permission={snapshot.permission.value}"]
    if snapshot.fix is not None:
        fix = snapshot.fix
        parts.append(f"fix={fix.latitude:.6f},{fix.longitude:.6f} ±{fix.accuracy_m:.0f}m")
    if snapshot.error is not None:
        parts.append(f"error={snapshot.error}")
    if snapshot.retry_delay_ms is not None:
        parts.append(f"retry_in={snapshot.retry_delay_ms}ms (attempt {snapshot.backoff_attempts})")
    return " ".join(parts)


class StatusReporter:
    """Logs snapshots: state changes at info, repeated fixes at debug."""

    def __init__(self) -> None:
        self._last_key: Optional[tuple] = None

    def __call__(self, snapshot: TrackerSnapshot) -> None:
        key = (snapshot.phase, snapshot.permission, snapshot.error, snapshot.retry_delay_ms)
        line = format_status(snapshot)
        if key != self._last_key:
            self._last_key = key
            logger.info("%s", line)
        else:
            logger.debug("%s", line)


class TrackerRuntime:
    """Owns the tracker and its API server for the lifetime of the process."""

    def __init__(
        self,
        config: TrackerConfig,
        preferences: Optional[ModulePreferences] = None,
        platform: Optional[GeolocationPlatform] = None,
    ) -> None:
        self.config = config
        self.platform = platform or build_platform(config)
        self.tracker = LocationTracker(
            self.platform,
            default_options=config.watch_options(),
            backoff_config=config.backoff_config(),
        )
        self.controller = TrackerAPIController(self.tracker, config, preferences)
        self.api_server: Optional[APIServer] = None
        if config.api_enabled:
            self.api_server = APIServer(self.controller, host=config.api_host, port=config.api_port)

        self.shutdown_event = asyncio.Event()
        self._remove_reporter = self.tracker.add_listener(StatusReporter())

    async def run(self) -> None:
        await self.tracker.start()
        if self.api_server is not None:
            try:
                await self.api_server.start()
            except OSError as exc:
                logger.error("API server could not bind %s:%d: %s", self.config.api_host, self.config.api_port, exc)
                self.api_server = None

        await self.shutdown_event.wait()
        await self._cleanup()

    async def shutdown(self) -> None:
        if self.shutdown_event.is_set():
            return
        logger.info("Shutdown requested")
        self.shutdown_event.set()

    async def restart(self) -> None:
        logger.info("Reload requested; restarting tracker")
        await self.tracker.restart()

    def resume(self) -> None:
        logger.info("Process continued; reporting visible")
        self.tracker.visibility.resume()

    async def _cleanup(self) -> None:
        if self.api_server is not None:
            await self.api_server.stop()
        self._remove_reporter()
        await self.tracker.close()


__all__ = ["StatusReporter", "TrackerRuntime", "build_platform", "format_status"]
