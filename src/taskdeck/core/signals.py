# src/taskdeck/core/signals.py

"""
Process-wide signal bus.

Components that never import each other (task cache, idle monitor, session client,
console) coordinate through a closed set of typed events:

- ActivityReset ("activity-reset"): something the user did should restart the idle timer.
- ForceLogout   ("force-logout"):   the session must be torn down now.

Delivery is synchronous, in subscription order. A failing handler is logged and does
not prevent delivery to the remaining handlers.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar, TypeVar

logger = logging.getLogger(__name__)


class ActivitySource(StrEnum):
    """Where an activity reset came from."""

    INPUT = "input"  # raw keyboard / pointer / console input
    TASKS = "tasks"  # a task cache operation completed
    LOGIN = "login"
    CONTINUE = "continue"  # explicit "stay logged in"


@dataclass(frozen=True, slots=True)
class ActivityReset:
    name: ClassVar[str] = "activity-reset"

    source: ActivitySource = ActivitySource.INPUT

    @property
    def explicit(self) -> bool:
        return self.source == ActivitySource.CONTINUE


@dataclass(frozen=True, slots=True)
class ForceLogout:
    name: ClassVar[str] = "force-logout"

    reason: str = "user"


Signal = ActivityReset | ForceLogout
SIGNAL_TYPES: tuple[type, ...] = (ActivityReset, ForceLogout)

S = TypeVar("S", ActivityReset, ForceLogout)
Unsubscribe = Callable[[], None]


class SignalBus:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable[[Signal], None]]] = {t: [] for t in SIGNAL_TYPES}

    def subscribe(self, signal_type: type[S], handler: Callable[[S], None]) -> Unsubscribe:
        if signal_type not in self._handlers:
            raise TypeError(f"Unknown signal type: {signal_type!r}")
        handlers = self._handlers[signal_type]
        handlers.append(handler)  # type: ignore[arg-type]

        def _unsubscribe() -> None:
            try:
                handlers.remove(handler)  # type: ignore[arg-type]
            except ValueError:
                pass

        return _unsubscribe

    def publish(self, signal: Signal) -> None:
        handlers = self._handlers.get(type(signal))
        if handlers is None:
            raise TypeError(f"Unknown signal: {signal!r}")

        logger.debug("signal %s %s -> %d handler(s)", signal.name, signal, len(handlers))

        # Copy: handlers may unsubscribe (or subscribe) while we deliver.
        for handler in list(handlers):
            try:
                handler(signal)
            except Exception:
                logger.exception("Signal handler failed for %s", signal.name)

    def subscriber_count(self, signal_type: type) -> int:
        return len(self._handlers.get(signal_type, ()))
