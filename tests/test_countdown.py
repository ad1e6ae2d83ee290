"""Tests for referral countdowns and the shared ticker."""

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from conftest import NOW, make_assignment, make_task
from countdown import (
    CountdownTicker, compute_countdown, countdown_for, deadline_for, format_remaining,
)
from models import AssignmentStatus, TaskType


class TestComputeCountdown:

    def test_remaining_time(self):
        countdown = compute_countdown(NOW + timedelta(hours=25, minutes=3, seconds=7), NOW)

        assert countdown.remaining_ms == (25 * 3600 + 3 * 60 + 7) * 1000
        assert countdown.display == "25:03:07"
        assert not countdown.is_expired
        assert not countdown.is_urgent

    def test_expired(self):
        countdown = compute_countdown(NOW - timedelta(seconds=1), NOW)

        assert countdown.is_expired
        assert countdown.remaining_ms == 0
        assert countdown.display == "00:00:00"

    def test_exactly_at_deadline_is_expired(self):
        assert compute_countdown(NOW, NOW).is_expired

    def test_urgent_threshold(self):
        assert compute_countdown(NOW + timedelta(milliseconds=3_599_000), NOW).is_urgent
        assert not compute_countdown(NOW + timedelta(milliseconds=3_601_000), NOW).is_urgent

    def test_format_remaining(self):
        assert format_remaining(0) == "00:00:00"
        assert format_remaining(59_999) == "00:00:59"
        assert format_remaining(3_600_000) == "01:00:00"


class TestDeadlineFor:

    def test_only_new_user_tasks_have_a_deadline(self):
        assignment = make_assignment(task=make_task(task_type=TaskType.DAILY))
        assert deadline_for(assignment) is None

    def test_task_deadline_is_used(self):
        deadline = NOW + timedelta(hours=2)
        task = make_task(task_type=TaskType.NEW_USER, deadline=deadline)

        assert deadline_for(make_assignment(task=task)) == deadline

    def test_no_deadline_means_no_countdown(self):
        last = NOW - timedelta(minutes=30)
        task = make_task(task_type=TaskType.NEW_USER, last_referral_at=last, referral_timer_minutes=60)
        assignment = make_assignment(task=task, created_at=NOW)

        assert deadline_for(assignment) is None
        assert countdown_for(assignment, NOW) is None

    def test_terminal_assignment_has_no_countdown(self):
        task = make_task(task_type=TaskType.NEW_USER, deadline=NOW + timedelta(hours=2))
        assignment = make_assignment(status=AssignmentStatus.COMPLETED, task=task)

        assert countdown_for(assignment, NOW) is None


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class TestCountdownTicker:
    """The ticker is driven manually; the background interval is long."""

    @pytest.mark.asyncio
    async def test_tick_reports_all_values_once(self):
        clock = FakeClock(NOW)
        listener = MagicMock(return_value=None)
        ticker = CountdownTicker(interval=3600, on_tick=listener, clock=clock)

        ticker.register(1, NOW + timedelta(seconds=10))
        ticker.register(2, NOW + timedelta(hours=2))
        clock.advance(seconds=1)

        values = await ticker.tick()

        listener.assert_called_once()
        assert set(values) == {1, 2}
        assert values[1].remaining_ms == 9000
        assert ticker.latest(2).display == "01:59:59"
        ticker.stop()

    @pytest.mark.asyncio
    async def test_expired_timer_is_reported_once_then_dropped(self):
        clock = FakeClock(NOW)
        ticker = CountdownTicker(interval=3600, clock=clock)
        ticker.register("a", NOW + timedelta(seconds=1))

        clock.advance(seconds=2)
        values = await ticker.tick()

        assert values["a"].is_expired
        assert "a" not in ticker
        assert await ticker.tick() == {}
        assert not ticker.is_running

    @pytest.mark.asyncio
    async def test_register_expired_deadline_does_not_tick(self):
        ticker = CountdownTicker(interval=3600, clock=lambda: NOW)

        value = ticker.register("late", NOW - timedelta(minutes=1))

        assert value.is_expired
        assert len(ticker) == 0
        assert not ticker.is_running

    @pytest.mark.asyncio
    async def test_sync_keeps_only_given_keys(self):
        ticker = CountdownTicker(interval=3600, clock=lambda: NOW)
        ticker.register(1, NOW + timedelta(hours=1))
        ticker.register(2, NOW + timedelta(hours=1))

        ticker.sync({2: NOW + timedelta(hours=3), 3: NOW + timedelta(hours=4)})

        assert 1 not in ticker
        assert ticker.latest(1) is None
        assert ticker.latest(2).display == "03:00:00"
        assert len(ticker) == 2
        ticker.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_background_task(self):
        ticker = CountdownTicker(interval=3600, clock=lambda: NOW)
        ticker.register(1, NOW + timedelta(hours=1))
        assert ticker.is_running

        ticker.stop()
        await asyncio.sleep(0)

        assert not ticker.is_running
        assert len(ticker) == 0

    @pytest.mark.asyncio
    async def test_background_loop_ticks(self):
        clock = FakeClock(NOW)
        ticks = []
        ticker = CountdownTicker(interval=0.01, on_tick=ticks.append, clock=clock)

        ticker.register(1, NOW + timedelta(minutes=5))
        await asyncio.sleep(0.05)
        ticker.stop()

        assert ticks
        assert all(1 in values for values in ticks)

    def test_register_without_loop_does_not_start(self):
        ticker = CountdownTicker(interval=3600, clock=lambda: NOW)

        ticker.register(1, NOW + timedelta(hours=1))

        assert not ticker.is_running
        assert 1 in ticker
