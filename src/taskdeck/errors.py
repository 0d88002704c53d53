# src/taskdeck/errors.py

"""
Error taxonomy.

Which layer recovers what:
- SessionClient recovers a single AuthExpired per request (one refresh attempt).
- TaskCache recovers a 404 on a mutate call (StaleWriteIgnored).
- Everything else surfaces to the caller.
"""

from __future__ import annotations

from typing import Any


class TaskdeckError(Exception):
    """Base class for all errors raised by taskdeck."""


class TransportError(TaskdeckError):
    """Network failure or request timeout. Never triggers a session refresh."""


class ApiError(TaskdeckError):
    """The remote API answered with a non-2xx status."""

    def __init__(self, status_code: int, body: Any = None, *, method: str = "", path: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.method = method
        self.path = path
        super().__init__(f"{method} {path} -> HTTP {status_code}".strip())

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class AuthExpired(ApiError):
    """HTTP 401. Only seen by callers when it cannot be recovered by a refresh."""


class RefreshFailed(TaskdeckError):
    """The refresh call itself failed; the session is over."""


class StaleWriteIgnored(TaskdeckError):
    """
    A mutate call on a server task got 404.

    The remote store does not keep writes, so "not found" does not mean the user's
    change was rejected. Raised and handled inside TaskCache only.
    """

    def __init__(self, task_id: int, method: str) -> None:
        self.task_id = task_id
        self.method = method
        super().__init__(f"{method} task_id={task_id} not found remotely; keeping local state")


class TaskNotFound(TaskdeckError, LookupError):
    """No task with this id in the current user's cached collection."""

    def __init__(self, task_id: int) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} is not in the cache")


class NotAuthenticated(TaskdeckError):
    """An operation needs a signed-in user and there is none."""
