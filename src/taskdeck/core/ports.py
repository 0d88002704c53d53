# src/taskdeck/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the clock and the host's logout routine swappable and makes testing easier.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol


class TimerHandle(Protocol):
    """A single armed timer. Owned by exactly one component; cancel() is idempotent."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """
    Clock port used by the idle monitor.

    The default implementation is asyncio's loop.call_later; tests use a manual clock.
    """

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle: ...


LogoutAction = Callable[[], Awaitable[None]]
# Host-provided session teardown (calls the logout endpoint, clears identity and cache).
