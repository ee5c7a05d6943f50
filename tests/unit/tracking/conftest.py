"""Fixtures for tracker component tests."""

from __future__ import annotations

import pytest

from geotracker.tracking import LocationTracker, TrackerState, VisibilitySignal

from tests.unit.fakes import FakePlatform, ManualTimers


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def state() -> TrackerState:
    return TrackerState()


@pytest.fixture
def visibility() -> VisibilitySignal:
    return VisibilitySignal()


@pytest.fixture
def tracker(platform: FakePlatform, timers: ManualTimers, visibility: VisibilitySignal) -> LocationTracker:
    return LocationTracker(platform, timers=timers, visibility=visibility)


@pytest.fixture
def snapshots(tracker: LocationTracker) -> list:
    """Every snapshot the tracker emits, in order."""
    received: list = []
    tracker.add_listener(received.append)
    return received
