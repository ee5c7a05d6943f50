"""Unit tests for the serial NMEA platform, driven through a fake serial opener."""

import asyncio
import errno

import pytest

from geotracker.platforms import SerialNMEAPlatform
from geotracker.tracking import LocationTracker, PermissionState, WatchOptions

from tests.unit.fakes import FakeSerial, Recorder, gga, nmea, settle


def make_platform(device, **kwargs) -> SerialNMEAPlatform:
    return SerialNMEAPlatform("/dev/ttyFAKE0", 4800, open_connection=device.open, **kwargs)


class TestCapabilities:

    def test_geolocation_available_with_opener(self, serial_device):
        caps = make_platform(serial_device).capabilities()

        assert caps.geolocation
        assert caps.permissions_query
        assert caps.permission_events


class TestPermissionProbe:

    def test_missing_node_is_prompt(self, serial_device, tmp_path):
        platform = SerialNMEAPlatform(str(tmp_path / "ttyMISSING"), open_connection=serial_device.open)

        assert platform.probe_permission() is PermissionState.PROMPT

    def test_accessible_node_is_granted(self, serial_device, tmp_path):
        node = tmp_path / "ttyS0"
        node.write_text("")
        platform = SerialNMEAPlatform(str(node), open_connection=serial_device.open)

        assert platform.probe_permission() is PermissionState.GRANTED

    def test_inaccessible_node_is_denied(self, serial_device, tmp_path, monkeypatch):
        node = tmp_path / "ttyS0"
        node.write_text("")
        monkeypatch.setattr("geotracker.platforms.serial_nmea.os.access", lambda path, mode: False)
        platform = SerialNMEAPlatform(str(node), open_connection=serial_device.open)

        assert platform.probe_permission() is PermissionState.DENIED

    @pytest.mark.asyncio
    async def test_watch_reports_node_appearing(self, serial_device, tmp_path):
        node = tmp_path / "ttyUSB0"
        platform = SerialNMEAPlatform(str(node), open_connection=serial_device.open, permission_poll_interval=0.01)
        seen = []

        assert await platform.query_permission() is PermissionState.PROMPT
        platform.watch_permission(seen.append)
        await asyncio.sleep(0.03)
        node.write_text("")
        await asyncio.sleep(0.05)

        assert seen == [PermissionState.GRANTED]
        await platform.close()

    @pytest.mark.asyncio
    async def test_unwatch_stops_polling(self, serial_device, tmp_path):
        node = tmp_path / "ttyUSB0"
        platform = SerialNMEAPlatform(str(node), open_connection=serial_device.open, permission_poll_interval=0.01)
        seen = []

        handle = platform.watch_permission(seen.append)
        platform.unwatch_permission(handle)
        node.write_text("")
        await asyncio.sleep(0.05)

        assert seen == []
        await platform.close()


class TestSubscriptions:

    @pytest.mark.asyncio
    async def test_subscription_receives_fixes(self, serial_device, recorder):
        platform = make_platform(serial_device)

        platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions())
        await settle()
        serial_device.feed(gga(), gga())
        await settle()

        assert serial_device.opened == [("/dev/ttyFAKE0", 4800)]
        assert len(recorder.fixes) == 2
        assert recorder.fixes[0].latitude == pytest.approx(48.1173)
        assert recorder.fixes[0].accuracy_m == pytest.approx(4.5)
        assert recorder.errors == []
        await platform.close()

    @pytest.mark.asyncio
    async def test_high_accuracy_waits_for_good_hdop(self, serial_device, recorder):
        platform = make_platform(serial_device, hdop_threshold=2.0)
        coarse = Recorder()

        platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions(high_accuracy=True))
        platform.subscribe(coarse.on_success, coarse.on_error, WatchOptions(high_accuracy=False))
        await settle()
        serial_device.feed(gga(hdop=3.5))
        await settle()

        assert recorder.fixes == []
        assert len(coarse.fixes) == 1

        serial_device.feed(gga(hdop=1.2))
        await settle()

        assert len(recorder.fixes) == 1
        await platform.close()

    @pytest.mark.asyncio
    async def test_sentences_without_fix_are_not_delivered(self, serial_device, recorder):
        platform = make_platform(serial_device)

        platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions())
        await settle()
        serial_device.feed(gga(quality=0), nmea("GPGSV,3,1,11,03,03,111,00"), "noise")
        await settle()

        assert recorder.fixes == []
        await platform.close()

    @pytest.mark.asyncio
    async def test_one_reader_is_shared(self, serial_device, recorder):
        platform = make_platform(serial_device)

        platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions())
        platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions())
        await settle()

        assert len(serial_device.opened) == 1
        assert platform.consumer_count == 2
        await platform.close()

    @pytest.mark.asyncio
    async def test_last_unsubscribe_closes_port(self, serial_device, recorder):
        platform = make_platform(serial_device)

        first = platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions())
        second = platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions())
        await settle()
        platform.unsubscribe(first)
        await settle()
        assert platform.is_reading

        platform.unsubscribe(second)
        await settle()

        assert not platform.is_reading
        assert serial_device.writer.closed
        await platform.close()

    @pytest.mark.asyncio
    async def test_unsubscribe_unknown_handle_is_ignored(self, serial_device):
        platform = make_platform(serial_device)

        platform.unsubscribe(42)

        assert platform.consumer_count == 0
        await platform.close()


class TestRequests:

    @pytest.mark.asyncio
    async def test_request_is_answered_once(self, serial_device, recorder):
        platform = make_platform(serial_device)

        platform.request(recorder.on_success, recorder.on_error, WatchOptions())
        await settle()
        serial_device.feed(gga(), gga())
        await settle()

        assert len(recorder.fixes) == 1
        assert platform.consumer_count == 0
        assert not platform.is_reading
        await platform.close()

    @pytest.mark.asyncio
    async def test_fresh_cached_fix_answers_request(self, serial_device, recorder):
        platform = make_platform(serial_device)
        watcher = Recorder()
        platform.subscribe(watcher.on_success, watcher.on_error, WatchOptions())
        await settle()
        serial_device.feed(gga())
        await settle()

        platform.request(recorder.on_success, recorder.on_error, WatchOptions(max_fix_age_ms=5000))
        await settle()

        assert recorder.fixes == watcher.fixes
        assert platform.consumer_count == 1
        await platform.close()

    @pytest.mark.asyncio
    async def test_cache_disabled_by_zero_max_age(self, serial_device, recorder):
        platform = make_platform(serial_device)
        watcher = Recorder()
        platform.subscribe(watcher.on_success, watcher.on_error, WatchOptions())
        await settle()
        serial_device.feed(gga())
        await settle()

        platform.request(recorder.on_success, recorder.on_error, WatchOptions(max_fix_age_ms=0))
        await settle()

        assert recorder.fixes == []
        assert platform.consumer_count == 2
        await platform.close()

    @pytest.mark.asyncio
    async def test_inaccurate_cache_not_used_for_high_accuracy(self, serial_device, recorder):
        platform = make_platform(serial_device)
        watcher = Recorder()
        platform.subscribe(watcher.on_success, watcher.on_error, WatchOptions())
        await settle()
        serial_device.feed(gga(hdop=4.0))
        await settle()

        platform.request(recorder.on_success, recorder.on_error, WatchOptions(high_accuracy=True))
        await settle()

        assert recorder.fixes == []
        assert platform.consumer_count == 2
        await platform.close()

    @pytest.mark.asyncio
    async def test_new_subscription_gets_cached_fix(self, serial_device, recorder):
        platform = make_platform(serial_device)
        watcher = Recorder()
        platform.subscribe(watcher.on_success, watcher.on_error, WatchOptions())
        await settle()
        serial_device.feed(gga())
        await settle()

        platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions())
        await settle()

        assert len(recorder.fixes) == 1
        await platform.close()


    @pytest.mark.asyncio
    async def test_cancelled_request_releases_reader(self, serial_device, recorder):
        platform = make_platform(serial_device)

        handle = platform.request(recorder.on_success, recorder.on_error, WatchOptions(timeout_ms=20))
        await settle()
        platform.cancel_request(handle)
        await asyncio.sleep(0.05)

        assert recorder.fixes == []
        assert recorder.errors == []
        assert platform.consumer_count == 0
        assert not platform.is_reading
        await platform.close()

    @pytest.mark.asyncio
    async def test_cancel_request_ignores_subscription_handles(self, serial_device, recorder):
        platform = make_platform(serial_device)

        handle = platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions())
        platform.cancel_request(handle)
        platform.cancel_request(999)

        assert platform.consumer_count == 1
        await platform.close()


class TestErrors:

    @pytest.mark.asyncio
    async def test_permission_error_on_open(self, recorder):
        device = FakeSerial(PermissionError("access denied"))
        platform = make_platform(device)

        platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions())
        await settle()

        assert recorder.codes[:1] == [1]
        await platform.close()

    @pytest.mark.asyncio
    async def test_eacces_errno_on_open(self, recorder):
        device = FakeSerial(OSError(errno.EACCES, "Permission denied"))
        platform = make_platform(device)

        platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions())
        await settle()

        assert recorder.codes[:1] == [1]
        await platform.close()

    @pytest.mark.asyncio
    async def test_missing_port_is_unavailable(self, recorder):
        device = FakeSerial(FileNotFoundError(errno.ENOENT, "No such file"))
        platform = make_platform(device)

        platform.request(recorder.on_success, recorder.on_error, WatchOptions())
        await settle()

        assert recorder.codes == [2]
        assert platform.consumer_count == 0
        await platform.close()

    @pytest.mark.asyncio
    async def test_eof_is_unavailable(self, serial_device, recorder):
        platform = make_platform(serial_device)

        platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions())
        await settle()
        serial_device.eof()
        await settle()

        assert recorder.codes[:1] == [2]
        assert not platform.is_reading
        assert serial_device.writer.closed
        await platform.close()

    @pytest.mark.asyncio
    async def test_silence_times_out(self, serial_device, recorder):
        platform = make_platform(serial_device)

        platform.request(recorder.on_success, recorder.on_error, WatchOptions(timeout_ms=20))
        await asyncio.sleep(0.06)

        assert recorder.codes == [3]
        assert platform.consumer_count == 0
        await platform.close()

    @pytest.mark.asyncio
    async def test_data_without_fix_is_unavailable(self, serial_device, recorder):
        platform = make_platform(serial_device)

        platform.request(recorder.on_success, recorder.on_error, WatchOptions(timeout_ms=40))
        await settle()
        serial_device.feed(gga(quality=0))
        await asyncio.sleep(0.08)

        assert recorder.codes == [2]
        await platform.close()

    @pytest.mark.asyncio
    async def test_subscription_watchdog_rearms(self, serial_device, recorder):
        platform = make_platform(serial_device)

        platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions(timeout_ms=20))
        await asyncio.sleep(0.07)

        assert len(recorder.codes) >= 2
        assert set(recorder.codes) == {3}
        assert platform.consumer_count == 1
        await platform.close()

    @pytest.mark.asyncio
    async def test_fix_resets_watchdog(self, serial_device, recorder):
        platform = make_platform(serial_device)

        platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions(timeout_ms=50))
        await settle()
        for _ in range(4):
            serial_device.feed(gga())
            await asyncio.sleep(0.02)

        assert recorder.errors == []
        assert len(recorder.fixes) == 4
        await platform.close()


class TestClose:

    @pytest.mark.asyncio
    async def test_close_releases_everything(self, serial_device, recorder):
        platform = make_platform(serial_device)
        platform.watch_permission(lambda state: None)
        platform.subscribe(recorder.on_success, recorder.on_error, WatchOptions(timeout_ms=20))
        await settle()

        await platform.close()
        await asyncio.sleep(0.05)

        assert platform.consumer_count == 0
        assert not platform.is_reading
        assert serial_device.writer.closed
        assert recorder.errors == []


class TestTrackerTeardown:

    @pytest.fixture
    def node(self, tmp_path):
        path = tmp_path / "ttyUSB0"
        path.write_text("")
        return str(path)

    @pytest.mark.asyncio
    async def test_stop_before_first_fix_releases_port(self, serial_device, node):
        platform = SerialNMEAPlatform(node, open_connection=serial_device.open)
        tracker = LocationTracker(platform)

        await tracker.start()
        await settle()
        assert platform.consumer_count == 2
        assert platform.is_reading

        tracker.stop()
        await settle()

        assert platform.consumer_count == 0
        assert not platform.is_reading
        await tracker.close()

    @pytest.mark.asyncio
    async def test_manual_retries_do_not_accumulate_consumers(self, serial_device, node):
        platform = SerialNMEAPlatform(node, open_connection=serial_device.open)
        tracker = LocationTracker(platform)

        await tracker.start()
        await settle()
        tracker.retry_now()
        tracker.retry_now()
        await settle()

        assert platform.consumer_count == 2

        tracker.stop()
        await settle()
        assert platform.consumer_count == 0
        await tracker.close()
