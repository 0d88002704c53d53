# src/taskdeck/core/lifecycle.py

"""
Session boundaries seen from the host application.

- login:   authenticate, remember the user, start a fresh idle-monitor instance.
- restore: on startup, ask /auth/me whether the cookies still hold a session.
- logout:  tell the server, then clear identity and cached tasks no matter what.

Logout fails open: if the server call fails we still drop every piece of local session
state, so protected data is never shown after a timeout.
"""

from __future__ import annotations

import logging

from ..errors import TaskdeckError
from .signals import ActivityReset, ActivitySource
from .state import AppState, User

logger = logging.getLogger(__name__)


async def login(state: AppState, username: str, password: str, *, expires_in_minutes: int | None = None) -> User:
    if expires_in_minutes is None:
        expires_in_minutes = int(getattr(state.settings, "login_expires_minutes", 30))

    user = await state.auth.login(username, password, expires_in_minutes=expires_in_minutes)
    state.tasks.clear()
    state.session.update(user=user)
    state.idle.restart()
    state.bus.publish(ActivityReset(source=ActivitySource.LOGIN))
    return user


async def restore_session(state: AppState) -> User | None:
    """Pick up a session left in the cookie jar. Returns None when there is none."""
    try:
        user = await state.auth.me()
    except TaskdeckError as exc:
        logger.info("No live session to restore (%s)", exc)
        return None

    state.session.update(user=user)
    state.idle.restart()
    logger.info("Restored session for user_id=%s", user.id)
    return user


async def logout(state: AppState) -> None:
    """Host teardown: also the IdleMonitor's logout action."""
    user = state.session.state.user
    try:
        await state.auth.logout()
    except Exception:
        logger.exception("Logout request failed; clearing local session anyway")
    finally:
        state.tasks.clear()
        state.session.update(user=None)
        logger.info("Signed out user_id=%s", user.id if user else None)
