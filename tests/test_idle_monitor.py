# tests/test_idle_monitor.py

from __future__ import annotations

import asyncio
import logging

import pytest

from taskdeck.core.signals import ActivityReset, ActivitySource, ForceLogout
from taskdeck.core.state import IdleMode
from taskdeck.idle.idle_monitor import IdleMonitor
from taskdeck.idle.preferences import IdlePreferences

from .fakes import SignalRecorder


class LogoutSpy:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls = 0
        self.error = error

    async def __call__(self) -> None:
        self.calls += 1
        if self.error is not None:
            raise self.error


def _monitor(bus, scheduler, *, logout=None, minutes=1, stay=False, saved=None) -> IdleMonitor:
    monitor = IdleMonitor(
        bus=bus,
        logout=logout or LogoutSpy(),
        scheduler=scheduler,
        preferences=IdlePreferences(timeout_minutes=minutes, stay_signed_in=stay),
        warning_seconds=60,
        on_preferences_changed=saved.append if saved is not None else None,
    )
    monitor.start()
    return monitor


async def _settle(monitor: IdleMonitor) -> None:
    if monitor.logout_task is not None:
        await monitor.logout_task


@pytest.mark.asyncio
async def test_idle_warning_then_logout_runs_once(bus, scheduler) -> None:
    logout = LogoutSpy()
    monitor = _monitor(bus, scheduler, logout=logout)

    scheduler.advance(59)
    assert monitor.state.mode == IdleMode.ACTIVE

    scheduler.advance(1)
    assert monitor.state.mode == IdleMode.WARNING
    assert monitor.state.remaining_seconds == 60

    scheduler.advance(59)
    assert monitor.state.mode == IdleMode.WARNING
    assert monitor.state.remaining_seconds == 1

    scheduler.advance(1)
    assert monitor.state.mode == IdleMode.LOGGED_OUT
    await _settle(monitor)

    scheduler.advance(600)
    await asyncio.sleep(0)
    assert logout.calls == 1
    assert scheduler.active == []


@pytest.mark.asyncio
async def test_idle_timeout_announces_force_logout(bus, scheduler) -> None:
    recorder = SignalRecorder()
    bus.subscribe(ForceLogout, recorder)
    monitor = _monitor(bus, scheduler)

    scheduler.advance(120)
    await _settle(monitor)

    assert recorder.signals == [ForceLogout(reason="idle-timeout")]


@pytest.mark.asyncio
async def test_stay_signed_in_arms_no_timer(bus, scheduler) -> None:
    logout = LogoutSpy()
    monitor = _monitor(bus, scheduler, logout=logout, stay=True)

    assert scheduler.active == []
    scheduler.advance(3600)

    assert monitor.state.mode == IdleMode.ACTIVE
    assert logout.calls == 0


@pytest.mark.asyncio
async def test_activity_restarts_the_idle_timer(bus, scheduler) -> None:
    monitor = _monitor(bus, scheduler)

    scheduler.advance(50)
    monitor.record_activity()
    scheduler.advance(50)
    assert monitor.state.mode == IdleMode.ACTIVE

    bus.publish(ActivityReset(source=ActivitySource.TASKS))
    scheduler.advance(59)
    assert monitor.state.mode == IdleMode.ACTIVE
    scheduler.advance(1)
    assert monitor.state.mode == IdleMode.WARNING


@pytest.mark.asyncio
async def test_ambient_activity_does_not_dismiss_warning(bus, scheduler) -> None:
    monitor = _monitor(bus, scheduler)
    scheduler.advance(60)
    scheduler.advance(10)

    monitor.record_activity()
    bus.publish(ActivityReset(source=ActivitySource.TASKS))

    assert monitor.state.mode == IdleMode.WARNING
    assert monitor.state.remaining_seconds == 50


@pytest.mark.asyncio
async def test_continue_returns_to_active_with_fresh_timer(bus, scheduler) -> None:
    monitor = _monitor(bus, scheduler)
    scheduler.advance(70)

    monitor.continue_session()

    assert monitor.state.mode == IdleMode.ACTIVE
    assert len(scheduler.active) == 1
    scheduler.advance(59)
    assert monitor.state.mode == IdleMode.ACTIVE
    scheduler.advance(1)
    assert monitor.state.mode == IdleMode.WARNING
    assert monitor.state.remaining_seconds == 60


@pytest.mark.asyncio
async def test_force_logout_and_countdown_zero_log_out_once(bus, scheduler) -> None:
    logout = LogoutSpy()
    monitor = _monitor(bus, scheduler, logout=logout)
    scheduler.advance(60 + 59)
    assert monitor.state.remaining_seconds == 1

    monitor.logout_now()
    bus.publish(ForceLogout(reason="refresh-failed"))
    scheduler.advance(1)
    await _settle(monitor)

    assert monitor.state.mode == IdleMode.LOGGED_OUT
    assert logout.calls == 1


@pytest.mark.asyncio
async def test_stay_signed_in_during_warning_cancels_countdown(bus, scheduler) -> None:
    saved: list[IdlePreferences] = []
    monitor = _monitor(bus, scheduler, saved=saved)
    scheduler.advance(65)

    monitor.set_stay_signed_in(True)

    assert monitor.state.mode == IdleMode.ACTIVE
    assert scheduler.active == []
    assert saved[-1] == IdlePreferences(timeout_minutes=1, stay_signed_in=True)

    monitor.set_stay_signed_in(False)
    assert len(scheduler.active) == 1


@pytest.mark.asyncio
async def test_changing_timeout_rearms_with_new_duration(bus, scheduler) -> None:
    saved: list[IdlePreferences] = []
    monitor = _monitor(bus, scheduler, minutes=2, saved=saved)
    scheduler.advance(60)

    monitor.set_timeout_minutes(1)

    assert saved == [IdlePreferences(timeout_minutes=1, stay_signed_in=False)]
    scheduler.advance(59)
    assert monitor.state.mode == IdleMode.ACTIVE
    scheduler.advance(1)
    assert monitor.state.mode == IdleMode.WARNING


@pytest.mark.asyncio
async def test_timeout_below_one_minute_is_clamped(bus, scheduler) -> None:
    monitor = _monitor(bus, scheduler, minutes=5)

    monitor.set_timeout_minutes(0)

    assert monitor.state.timeout_minutes == 1


@pytest.mark.asyncio
async def test_at_most_one_timer_at_a_time(bus, scheduler) -> None:
    monitor = _monitor(bus, scheduler)

    for _ in range(10):
        monitor.record_activity()
    assert len(scheduler.active) == 1

    scheduler.advance(60)
    for _ in range(5):
        scheduler.advance(1)
        assert len(scheduler.active) == 1
    assert monitor.state.mode == IdleMode.WARNING


@pytest.mark.asyncio
async def test_failing_logout_is_logged_not_raised(bus, scheduler, caplog) -> None:
    logout = LogoutSpy(error=RuntimeError("server down"))
    monitor = _monitor(bus, scheduler, logout=logout)

    with caplog.at_level(logging.ERROR, logger="taskdeck.idle.idle_monitor"):
        monitor.logout_now()
        await _settle(monitor)

    assert logout.calls == 1
    assert monitor.state.mode == IdleMode.LOGGED_OUT
    assert "Logout action failed" in caplog.text


@pytest.mark.asyncio
async def test_restart_releases_the_logout_latch(bus, scheduler) -> None:
    logout = LogoutSpy()
    monitor = _monitor(bus, scheduler, logout=logout)
    monitor.logout_now()
    await _settle(monitor)

    monitor.restart()
    assert monitor.state.mode == IdleMode.ACTIVE

    scheduler.advance(120)
    await _settle(monitor)
    assert logout.calls == 2


@pytest.mark.asyncio
async def test_stop_detaches_from_the_bus(bus, scheduler) -> None:
    logout = LogoutSpy()
    monitor = _monitor(bus, scheduler, logout=logout)

    monitor.stop()
    monitor.logout_now()
    scheduler.advance(600)

    assert monitor.state.mode == IdleMode.ACTIVE
    assert monitor.logout_task is None
    assert scheduler.active == []


@pytest.mark.asyncio
async def test_preference_changes_before_start_arm_nothing(bus, scheduler) -> None:
    logout = LogoutSpy()
    saved: list[IdlePreferences] = []
    monitor = IdleMonitor(bus=bus, logout=logout, scheduler=scheduler, on_preferences_changed=saved.append)

    monitor.set_timeout_minutes(1)
    monitor.set_stay_signed_in(False)
    monitor.record_activity()

    assert not monitor.started
    assert scheduler.active == []
    scheduler.advance(600)
    assert monitor.state.mode == IdleMode.ACTIVE
    assert logout.calls == 0
    assert saved[-1] == IdlePreferences(timeout_minutes=1, stay_signed_in=False)

    monitor.start()
    assert len(scheduler.active) == 1
