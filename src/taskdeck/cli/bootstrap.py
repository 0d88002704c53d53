# src/taskdeck/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the signal bus, session client, task cache and idle monitor into AppState,
- hands the idle monitor the host's logout routine.
"""

from __future__ import annotations

import logging

import httpx

from ..config import get_settings
from ..core import lifecycle
from ..core.ports import Scheduler
from ..core.signals import SignalBus
from ..core.state import AppState, SessionState, Store
from ..idle.idle_monitor import IdleMonitor
from ..idle.preferences import IdlePreferences, load_preferences, save_preferences
from ..session.auth import AuthService
from ..session.client import SessionClient
from ..tasks.task_cache import TaskCache

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.preferences_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings=None,
    transport: httpx.AsyncBaseTransport | None = None,
    scheduler: Scheduler | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the HTTP transport / clock) injectable makes the app easier to
    test and avoids hidden global config reads. If settings is None, falls back to
    get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    defaults = IdlePreferences(
        timeout_minutes=settings.idle_timeout_minutes,
        stay_signed_in=settings.stay_signed_in,
    )
    prefs = load_preferences(settings.preferences_path, defaults)

    bus = SignalBus()
    client = SessionClient(
        settings.api_base_url,
        bus=bus,
        timeout_seconds=settings.request_timeout_seconds,
        transport=transport,
    )
    session: Store[SessionState] = Store(SessionState())

    async def _logout() -> None:
        await lifecycle.logout(state)

    idle = IdleMonitor(
        bus=bus,
        logout=_logout,
        scheduler=scheduler,
        preferences=prefs,
        warning_seconds=settings.warning_seconds,
        on_preferences_changed=lambda p: save_preferences(settings.preferences_path, p),
    )

    state = AppState(
        settings=settings,
        bus=bus,
        client=client,
        auth=AuthService(client),
        session=session,
        tasks=TaskCache(client, bus, session),
        idle=idle,
    )
    logger.debug("State ready api=%s prefs=%s", settings.api_base_url, prefs)
    return state


async def shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    state.idle.stop()
    try:
        await state.client.aclose()
    except Exception:
        logger.debug("HTTP client close failed.", exc_info=True)
