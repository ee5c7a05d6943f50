"""Unit tests for the restart backoff scheduler."""

import pytest

from geotracker.tracking import BackoffConfig, BackoffScheduler, TrackerState, backoff_delay_ms

from tests.unit.fakes import ManualTimers


class TestBackoffDelay:

    @pytest.mark.parametrize(
        "attempts, expected",
        [(0, 2000), (1, 2000), (2, 4000), (3, 8000), (4, 16000), (5, 30000), (10, 30000)],
    )
    def test_default_schedule(self, attempts, expected):
        assert backoff_delay_ms(attempts) == expected

    def test_custom_base_and_cap(self):
        assert backoff_delay_ms(3, base_ms=100, max_ms=250) == 250
        assert backoff_delay_ms(2, base_ms=100, max_ms=250) == 200


class TestBackoffScheduler:

    def _scheduler(self, config=None):
        state = TrackerState()
        timers = ManualTimers()
        return state, timers, BackoffScheduler(state, timers, config)

    def test_schedule_counts_attempts_and_arms_timer(self):
        state, timers, scheduler = self._scheduler()
        restarts = []

        delay = scheduler.schedule(lambda: restarts.append(True))

        assert delay == 2000
        assert state.backoff_attempts == 1
        assert state.retry_delay_ms == 2000
        assert scheduler.has_pending
        assert len(timers.pending) == 1
        assert restarts == []

    def test_fire_clears_pending_and_restarts(self):
        state, timers, scheduler = self._scheduler()
        restarts = []
        scheduler.schedule(lambda: restarts.append(True))

        timers.advance(2000)

        assert restarts == [True]
        assert not scheduler.has_pending
        assert state.retry_delay_ms is None
        assert state.backoff_attempts == 1

    def test_reschedule_replaces_pending_timer(self):
        state, timers, scheduler = self._scheduler()
        restarts = []

        scheduler.schedule(lambda: restarts.append("first"))
        scheduler.schedule(lambda: restarts.append("second"))

        assert len(timers.pending) == 1
        assert timers.timers[0].cancelled
        timers.advance(60000)
        assert restarts == ["second"]

    def test_cancel_reports_whether_timer_was_pending(self):
        _, timers, scheduler = self._scheduler()
        assert scheduler.cancel() is False

        scheduler.schedule(lambda: None)
        assert scheduler.cancel() is True
        assert timers.pending == []
        assert scheduler.cancel() is False

    def test_cancelled_timer_callback_is_ignored(self):
        _, timers, scheduler = self._scheduler()
        restarts = []
        scheduler.schedule(lambda: restarts.append(True))
        handle = timers.timers[0]

        scheduler.cancel()
        handle.callback()

        assert restarts == []

    def test_reset_zeroes_attempts(self):
        state, _, scheduler = self._scheduler()
        scheduler.schedule(lambda: None)
        scheduler.schedule(lambda: None)
        assert state.backoff_attempts == 2

        scheduler.reset()
        assert state.backoff_attempts == 0

    def test_config_controls_delays(self):
        _, _, scheduler = self._scheduler(BackoffConfig(base_delay_ms=500, max_delay_ms=1500))
        delays = [scheduler.schedule(lambda: None) for _ in range(4)]
        assert delays == [500, 1000, 1500, 1500]
