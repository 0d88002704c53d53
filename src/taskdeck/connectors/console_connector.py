# src/taskdeck/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.signals import ForceLogout
from ..core.state import AppState, IdleMode, IdleState
from ..errors import ApiError, NotAuthenticated, RefreshFailed, TaskdeckError, TaskNotFound, TransportError

logger = logging.getLogger(__name__)

# Countdown lines are printed at these marks (and every second below 10).
_COUNTDOWN_MARKS = {60, 45, 30, 20, 15, 10}


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def friendly_error_message(err: Exception) -> str:
    if isinstance(err, NotAuthenticated):
        return str(err) or "Not signed in."
    if isinstance(err, RefreshFailed):
        return "Your session has expired. Please /login again."
    if isinstance(err, TaskNotFound):
        return f"No task #{err.task_id}. Use /list to see your tasks."
    if isinstance(err, TransportError):
        return "Cannot reach the server. Check your connection and try again."
    if isinstance(err, ApiError):
        if err.status_code == 401:
            return "Wrong username or password." if err.path == "/auth/login" else "Not authorized."
        return f"Server error (HTTP {err.status_code})."
    return str(err) or err.__class__.__name__


def _render_idle(state: IdleState, previous: list[IdleState]) -> None:
    """Countdown surface: prints the warning and its ticks."""
    prev = previous[0]
    previous[0] = state

    if state.mode == IdleMode.WARNING and prev.mode != IdleMode.WARNING:
        _print_ts(
            f"[IDLE] No activity detected. Logging out in {state.remaining_seconds}s. "
            "Type /continue to stay signed in or /logout to leave now."
        )
        return

    if state.mode == IdleMode.WARNING and state.remaining_seconds != prev.remaining_seconds:
        if state.remaining_seconds in _COUNTDOWN_MARKS or state.remaining_seconds < 10:
            _print_ts(f"[IDLE] Logging out in {state.remaining_seconds}s...")


async def run_console_loop(state: AppState) -> None:
    logger.info("Console started.")
    _print_ts("[CONSOLE] Use /login <username> <password> to sign in, /help for commands, /exit to quit.\n")

    previous = [state.idle.state]

    def _on_force_logout(signal: ForceLogout) -> None:
        if signal.reason != "user":
            _print_ts(f"[SESSION] Signed out ({signal.reason}).")

    unsubscribers = [
        state.idle.store.subscribe(lambda s: _render_idle(s, previous)),
        state.bus.subscribe(ForceLogout, _on_force_logout),
    ]

    try:
        while True:
            try:
                line = (await asyncio.to_thread(input, ">>> ")).strip()
            except (EOFError, KeyboardInterrupt):
                print()
                _print_ts("[CONSOLE] Exit.")
                break

            if not line:
                continue

            if line.lower() in ("/exit", "/quit", "exit", "quit"):
                _print_ts("[CONSOLE] Exit.")
                break

            # Typing counts as activity; it never dismisses an open idle warning.
            state.idle.record_activity()

            if not line.startswith("/"):
                _print_ts("[CONSOLE] Commands start with '/'. Use /help.")
                continue

            try:
                reply = await command_registry.handle(state, line, emit=_print_ts)
            except TaskdeckError as exc:
                logger.debug("Command failed: %s", line.split()[0], exc_info=True)
                reply = friendly_error_message(exc)
            except Exception:
                logger.exception("Command crashed: %s", line.split()[0])
                reply = "Something went wrong. See the log for details."

            if reply:
                print(reply, flush=True)
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()
