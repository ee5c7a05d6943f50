"""Pytest fixtures for API unit tests.

Provides a real LocationTracker over a FakePlatform and aiohttp test apps,
so routes are exercised end to end without a serial receiver.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine, TypeVar

import pytest
from aiohttp import web

from geotracker.api import TrackerAPIController, create_app
from geotracker.config import TrackerConfig
from geotracker.core.config_manager import ConfigManager
from geotracker.core.preferences import ModulePreferences
from geotracker.tracking import LocationTracker

from tests.unit.fakes import FakePlatform, ManualTimers


T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine synchronously for testing."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def create_test_app(controller: TrackerAPIController) -> web.Application:
    """Create the tracker app with the localhost guard, as the server does."""
    return create_app(controller, localhost_only=True)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def tracker_config() -> TrackerConfig:
    return TrackerConfig(platform="simulated", api_port=18090)


@pytest.fixture
def tracker(platform: FakePlatform, timers: ManualTimers, tracker_config: TrackerConfig) -> LocationTracker:
    return LocationTracker(
        platform,
        default_options=tracker_config.watch_options(),
        backoff_config=tracker_config.backoff_config(),
        timers=timers,
    )


@pytest.fixture
def preferences(write_config, config_manager: ConfigManager) -> ModulePreferences:
    path: Path = write_config({"platform": "simulated", "api.port": 18090})
    return ModulePreferences(path, config_manager=config_manager)


@pytest.fixture
def controller(
    tracker: LocationTracker,
    tracker_config: TrackerConfig,
    preferences: ModulePreferences,
) -> TrackerAPIController:
    return TrackerAPIController(tracker, tracker_config, preferences)
