# src/taskdeck/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import cast

from ..core import lifecycle
from ..core.state import AppState, IdleMode
from ..errors import NotAuthenticated
from ..tasks.task_models import Task, TaskCollection, TaskOrigin

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], Awaitable[str]]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Slash-command registry used by the console (/help, /list, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return await h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return await h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def format_task(task: Task) -> str:
    mark = "x" if task.completed else " "
    local = "  (local)" if task.origin == TaskOrigin.LOCAL else ""
    return f"[{mark}] #{task.id} {task.text}{local}"


def format_collection(collection: TaskCollection) -> str:
    if not collection.tasks:
        return "No tasks."
    lines = [f"Tasks ({len(collection)} shown, ~{collection.total} total):"]
    lines.extend(f"  {format_task(t)}" for t in collection.tasks)
    return "\n".join(lines)


def _require_user_id(state: AppState) -> int:
    user = state.session.state.user
    if user is None:
        raise NotAuthenticated("Not signed in. Use /login <username> <password>.")
    return user.id


def _parse_id(args: list[str]) -> int | None:
    if not args:
        return None
    try:
        return int(args[0].lstrip("#"))
    except ValueError:
        return None


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_login(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /login <username> <password>             -> default session lifetime
    /login <username> <password> <minutes>   -> custom session lifetime
    """
    if len(args) < 2:
        return "Usage: /login <username> <password> [minutes]"

    minutes: int | None = None
    if len(args) >= 3:
        try:
            minutes = int(args[2])
        except ValueError:
            return "Session lifetime must be a number of minutes."

    if emit:
        emit("Signing in...")
    user = await lifecycle.login(state, args[0], args[1], expires_in_minutes=minutes)
    collection = await state.tasks.list(user.id)
    return f"Welcome, {user.display_name}.\n{format_collection(collection)}"


async def cmd_logout(state: AppState, args: list[str]) -> str:
    if state.session.state.user is None:
        return "Not signed in."
    state.idle.logout_now()
    task = state.idle.logout_task
    if task is not None:
        await task
    return "Signed out."


async def cmd_whoami(state: AppState, args: list[str]) -> str:
    user = state.session.state.user
    if user is None:
        return "Not signed in."
    email = f" <{user.email}>" if user.email else ""
    return f"{user.display_name} (@{user.username}, id={user.id}){email}"


async def cmd_list(state: AppState, args: list[str]) -> str:
    user_id = _require_user_id(state)
    return format_collection(await state.tasks.list(user_id))


async def cmd_add(state: AppState, args: list[str]) -> str:
    text = " ".join(args).strip()
    if not text:
        return "Usage: /add <text>"
    task = await state.tasks.create(text, completed=False)
    return f"Added {format_task(task)}"


async def cmd_done(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args)
    if task_id is None:
        return "Usage: /done <id>"
    return f"Updated {format_task(await state.tasks.update(task_id, {'completed': True}))}"


async def cmd_undo(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args)
    if task_id is None:
        return "Usage: /undo <id>"
    return f"Updated {format_task(await state.tasks.update(task_id, {'completed': False}))}"


async def cmd_edit(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args)
    text = " ".join(args[1:]).strip()
    if task_id is None or not text:
        return "Usage: /edit <id> <text>"
    return f"Updated {format_task(await state.tasks.update(task_id, {'text': text}))}"


async def cmd_rm(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args)
    if task_id is None:
        return "Usage: /rm <id>"
    task = await state.tasks.remove(task_id)
    return f"Deleted #{task.id} {task.text}"


async def cmd_continue(state: AppState, args: list[str]) -> str:
    if state.idle.state.mode != IdleMode.WARNING:
        return "No logout pending."
    state.idle.continue_session()
    return "Staying signed in."


async def cmd_timeout(state: AppState, args: list[str]) -> str:
    """
    /timeout        -> show idle timeout
    /timeout <min>  -> set idle timeout in minutes
    """
    if not args:
        return f"Idle timeout: {state.idle.state.timeout_minutes} minute(s)."
    try:
        minutes = int(args[0])
    except ValueError:
        return "Usage: /timeout <minutes>"
    if minutes < 1:
        return "Idle timeout must be at least 1 minute."
    state.idle.set_timeout_minutes(minutes)
    return f"Idle timeout set to {minutes} minute(s)."


async def cmd_stay(state: AppState, args: list[str]) -> str:
    """
    /stay       -> show status
    /stay on    -> never log out for inactivity
    /stay off   -> log out after the idle timeout
    """
    if not args:
        return f"Stay signed in is {'ON' if state.idle.state.stay_signed_in else 'OFF'}. Use /stay on or /stay off."

    arg = args[0].lower()
    if arg in ("on", "1", "true", "yes"):
        state.idle.set_stay_signed_in(True)
        return "Stay signed in: ON."
    if arg in ("off", "0", "false", "no"):
        state.idle.set_stay_signed_in(False)
        return "Stay signed in: OFF."
    return "Usage: /stay on or /stay off."


async def cmd_status(state: AppState, args: list[str]) -> str:
    user = state.session.state.user
    idle = state.idle.state
    return (
        "Status:\n"
        f"  Signed in: {user.username if user else 'no'}\n"
        f"  Idle: {idle.mode.value} (timeout {idle.timeout_minutes} min, "
        f"stay signed in {'on' if idle.stay_signed_in else 'off'})\n"
        f"  API: {getattr(state.settings, 'api_base_url', '?')}"
    )


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("login", cmd_login, help_text="Sign in: /login <username> <password> [minutes].")
registry.register("logout", cmd_logout, help_text="Sign out now.")
registry.register("whoami", cmd_whoami, help_text="Show the signed-in user.", aliases=["me"])
registry.register("list", cmd_list, help_text="Reload and show your tasks.", aliases=["ls"])
registry.register("add", cmd_add, help_text="Create a task: /add <text>.")
registry.register("done", cmd_done, help_text="Mark a task complete: /done <id>.")
registry.register("undo", cmd_undo, help_text="Mark a task not complete: /undo <id>.")
registry.register("edit", cmd_edit, help_text="Change a task's text: /edit <id> <text>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <id>.", aliases=["del"])
registry.register("continue", cmd_continue, help_text="Stay signed in when the idle warning is shown.")
registry.register("timeout", cmd_timeout, help_text="Show/set the idle timeout: /timeout [minutes].")
registry.register("stay", cmd_stay, help_text="Disable idle logout: /stay on | /stay off.")
registry.register("status", cmd_status, help_text="Show session and idle status.")
