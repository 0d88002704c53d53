# src/taskdeck/idle/idle_monitor.py

"""
Idle logout state machine.

    ACTIVE  --(timeout_minutes without activity, stay_signed_in off)-->  WARNING
    WARNING --(explicit continue)-->                                     ACTIVE
    WARNING --(countdown hits 0 | ForceLogout)-->                        LOGGED_OUT

In WARNING only explicit actions count: ambient input (and background task activity)
is ignored, so fiddling with the warning itself cannot dismiss it by accident.
LOGGED_OUT is latched: the logout action runs at most once until restart().
Nothing is armed before start(): preference changes made while signed out only
update the stored values.

At most one idle timer and one countdown timer exist at a time; arming either one
first cancels its predecessor.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..core.ports import LogoutAction, Scheduler, TimerHandle
from ..core.signals import ActivityReset, ActivitySource, ForceLogout, SignalBus
from ..core.state import IdleMode, IdleState, Store
from .preferences import IdlePreferences

logger = logging.getLogger(__name__)


class AsyncioScheduler:
    """Scheduler port backed by the running event loop."""

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay_seconds, callback)


class IdleMonitor:
    def __init__(
        self,
        *,
        bus: SignalBus,
        logout: LogoutAction,
        scheduler: Scheduler | None = None,
        preferences: IdlePreferences | None = None,
        warning_seconds: int = 60,
        on_preferences_changed: Callable[[IdlePreferences], None] | None = None,
    ) -> None:
        prefs = preferences or IdlePreferences()

        self._bus = bus
        self._logout = logout
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._warning_seconds = max(1, int(warning_seconds))
        self._on_preferences_changed = on_preferences_changed

        self.store: Store[IdleState] = Store(
            IdleState(
                mode=IdleMode.ACTIVE,
                remaining_seconds=self._warning_seconds,
                timeout_minutes=max(1, int(prefs.timeout_minutes)),
                stay_signed_in=bool(prefs.stay_signed_in),
            )
        )

        self._idle_timer: TimerHandle | None = None
        self._countdown_timer: TimerHandle | None = None
        self._logged_out = False
        self._logout_task: asyncio.Task[None] | None = None
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def state(self) -> IdleState:
        return self.store.state

    @property
    def started(self) -> bool:
        return bool(self._unsubscribers)

    @property
    def logout_task(self) -> asyncio.Task[None] | None:
        return self._logout_task

    # ---- lifecycle ----

    def start(self) -> None:
        if not self._unsubscribers:
            self._unsubscribers = [
                self._bus.subscribe(ActivityReset, self._on_activity),
                self._bus.subscribe(ForceLogout, self._on_force_logout),
            ]
        if not self._logged_out and self.state.mode == IdleMode.ACTIVE:
            self._arm_idle()
        logger.debug("Idle monitor started (%s)", self.state)

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._clear_timers()

    def restart(self) -> None:
        """New session instance (login): back to ACTIVE with the latch released."""
        self._clear_timers()
        self._logged_out = False
        self.store.update(mode=IdleMode.ACTIVE, remaining_seconds=self._warning_seconds)
        self.start()

    # ---- inputs ----

    def record_activity(self) -> None:
        """Raw user input (keys, pointer, console lines)."""
        self._bus.publish(ActivityReset(source=ActivitySource.INPUT))

    def continue_session(self) -> None:
        """Explicit "stay logged in"."""
        self._bus.publish(ActivityReset(source=ActivitySource.CONTINUE))

    def logout_now(self) -> None:
        self._bus.publish(ForceLogout(reason="user"))

    def set_stay_signed_in(self, value: bool) -> None:
        value = bool(value)
        self.store.update(stay_signed_in=value)
        self._preferences_changed()

        if self._logged_out or not self.started:
            return
        if value:
            self._clear_timers()
            self.store.update(mode=IdleMode.ACTIVE, remaining_seconds=self._warning_seconds)
            logger.info("Stay signed in: idle logout disabled")
        elif self.state.mode != IdleMode.WARNING:
            self._arm_idle()

    def set_timeout_minutes(self, minutes: int) -> None:
        minutes = max(1, int(minutes))
        self.store.update(timeout_minutes=minutes)
        self._preferences_changed()

        if self.started and not self._logged_out and self.state.mode != IdleMode.WARNING:
            self._arm_idle()

    # ---- signal handlers ----

    def _on_activity(self, signal: ActivityReset) -> None:
        mode = self.state.mode
        if mode == IdleMode.LOGGED_OUT:
            return
        if mode == IdleMode.WARNING:
            if not signal.explicit:
                logger.debug("Ignoring %s activity during idle warning", signal.source)
                return
            logger.info("Idle warning dismissed; session continues")
            self.store.update(mode=IdleMode.ACTIVE, remaining_seconds=self._warning_seconds)
        self._arm_idle()

    def _on_force_logout(self, signal: ForceLogout) -> None:
        self._enter_logged_out(signal.reason)

    # ---- timers ----

    def _arm_idle(self) -> None:
        self._clear_timers()
        if self.state.stay_signed_in:
            return
        delay = self.state.timeout_minutes * 60
        self._idle_timer = self._scheduler.call_later(delay, self._open_warning)

    def _open_warning(self) -> None:
        self._idle_timer = None
        if self._logged_out or self.state.mode != IdleMode.ACTIVE or self.state.stay_signed_in:
            return
        self.store.update(mode=IdleMode.WARNING, remaining_seconds=self._warning_seconds)
        logger.info("No activity for %s minute(s); logging out in %ss", self.state.timeout_minutes, self._warning_seconds)
        self._arm_countdown()

    def _arm_countdown(self) -> None:
        if self._countdown_timer is not None:
            self._countdown_timer.cancel()
        self._countdown_timer = self._scheduler.call_later(1.0, self._tick)

    def _tick(self) -> None:
        self._countdown_timer = None
        if self.state.mode != IdleMode.WARNING:
            return
        remaining = self.state.remaining_seconds - 1
        self.store.update(remaining_seconds=max(0, remaining))
        if remaining > 0:
            self._arm_countdown()
            return
        self._enter_logged_out("idle-timeout")
        # Other surfaces (console, host) learn about it the same way as any logout.
        self._bus.publish(ForceLogout(reason="idle-timeout"))

    def _clear_timers(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None
        if self._countdown_timer is not None:
            self._countdown_timer.cancel()
            self._countdown_timer = None

    # ---- logout ----

    def _enter_logged_out(self, reason: str) -> None:
        if self._logged_out:
            logger.debug("Already logged out; ignoring %s", reason)
            return
        self._logged_out = True
        self._clear_timers()
        self.store.update(mode=IdleMode.LOGGED_OUT, remaining_seconds=0)
        logger.info("Logging out (%s)", reason)
        self._logout_task = asyncio.get_running_loop().create_task(self._run_logout())

    async def _run_logout(self) -> None:
        try:
            await self._logout()
        except Exception:
            logger.exception("Logout action failed")

    def _preferences_changed(self) -> None:
        if self._on_preferences_changed is None:
            return
        state = self.state
        self._on_preferences_changed(
            IdlePreferences(timeout_minutes=state.timeout_minutes, stay_signed_in=state.stay_signed_in)
        )
