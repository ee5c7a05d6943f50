"""Checks against a real receiver. Run with --run-hardware [--serial-port PORT]."""

import pytest

from geotracker.platforms import SERIAL_AVAILABLE, SerialNMEAPlatform
from geotracker.tracking import LocationTracker, PermissionState, SensorErrorRaised, WatchOptions

pytestmark = [
    pytest.mark.hardware,
    pytest.mark.slow,
    pytest.mark.skipif(not SERIAL_AVAILABLE, reason="pyserial-asyncio not installed"),
]


@pytest.mark.asyncio
async def test_receiver_is_accessible(serial_port):
    platform = SerialNMEAPlatform(serial_port)

    assert await platform.query_permission() is PermissionState.GRANTED


@pytest.mark.asyncio
async def test_one_shot_fix_or_classified_error(serial_port):
    tracker = LocationTracker(SerialNMEAPlatform(serial_port))
    try:
        fix = await tracker.request_fix(WatchOptions(timeout_ms=30000))
    except SensorErrorRaised as exc:
        # Indoors the receiver streams sentences without a fix
        assert exc.error.is_transient
    else:
        assert -90.0 <= fix.latitude <= 90.0
        assert -180.0 <= fix.longitude <= 180.0
    finally:
        await tracker.close()
