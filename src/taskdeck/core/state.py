# src/taskdeck/core/state.py

"""
Explicit application state.

Shared, UI-visible state lives in small Store containers instead of module globals:
each component gets the store it owns (or reads) injected, and renderers subscribe
to changes. AppState is the bag the composition root hands to the console.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from ..idle.idle_monitor import IdleMonitor
    from ..session.auth import AuthService
    from ..session.client import SessionClient
    from ..tasks.task_cache import TaskCache
    from .signals import SignalBus

logger = logging.getLogger(__name__)

S = TypeVar("S")


class Store(Generic[S]):
    """Single-value state container with subscribe/notify."""

    def __init__(self, initial: S) -> None:
        self._state = initial
        self._listeners: list[Callable[[S], None]] = []

    @property
    def state(self) -> S:
        return self._state

    def set(self, new_state: S) -> None:
        if new_state == self._state:
            return
        self._state = new_state
        self._notify()

    def update(self, **changes: Any) -> S:
        """Replace fields of a dataclass state and notify subscribers."""
        self.set(replace(self._state, **changes))  # type: ignore[type-var]
        return self._state

    def subscribe(self, listener: Callable[[S], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("State listener failed")


@dataclass(frozen=True, slots=True)
class User:
    id: int
    username: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    image: str | None = None

    @property
    def display_name(self) -> str:
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or self.username

    @classmethod
    def from_api(cls, data: Any) -> User:
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected user payload: {data!r}")
        return cls(
            id=int(data["id"]),
            username=str(data.get("username") or ""),
            email=data.get("email"),
            first_name=data.get("firstName"),
            last_name=data.get("lastName"),
            image=data.get("image"),
        )


@dataclass(frozen=True, slots=True)
class SessionState:
    user: User | None = None

    @property
    def authenticated(self) -> bool:
        return self.user is not None


class IdleMode(StrEnum):
    ACTIVE = "active"
    WARNING = "warning"
    LOGGED_OUT = "logged_out"


@dataclass(frozen=True, slots=True)
class IdleState:
    mode: IdleMode = IdleMode.ACTIVE
    remaining_seconds: int = 0
    timeout_minutes: int = 2
    stay_signed_in: bool = False

    @property
    def warning_open(self) -> bool:
        return self.mode == IdleMode.WARNING


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    bus: SignalBus
    client: SessionClient
    auth: AuthService
    session: Store[SessionState]
    tasks: TaskCache
    idle: IdleMonitor
