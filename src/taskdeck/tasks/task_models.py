# src/taskdeck/tasks/task_models.py

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar


class TaskOrigin(StrEnum):
    """
    Where a task's state is authoritative.

    Notes:
    - SERVER tasks came from the list endpoint; update/delete go to the remote API.
    - LOCAL tasks were echoed back by the create endpoint but are never stored
      remotely, so they must never be sent to update/delete.
    """

    SERVER = "server"
    LOCAL = "local"


def new_correlation_tag() -> str:
    """Client-side id for duplicate detection: temp_<epoch ms>_<7 random chars>."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"temp_{int(time.time() * 1000)}_{suffix}"


@dataclass(frozen=True, slots=True)
class ServerTask:
    origin: ClassVar[TaskOrigin] = TaskOrigin.SERVER

    id: int
    text: str
    completed: bool
    owner_id: int
    # Set only when the client had to re-key a colliding id from the server.
    correlation_tag: str | None = None


@dataclass(frozen=True, slots=True)
class LocalTask:
    origin: ClassVar[TaskOrigin] = TaskOrigin.LOCAL

    id: int
    text: str
    completed: bool
    owner_id: int
    correlation_tag: str


Task = ServerTask | LocalTask


@dataclass(frozen=True, slots=True)
class TaskCollection:
    owner_id: int
    tasks: tuple[Task, ...] = ()
    # Approximate: the remote total, adjusted by local creates/removes.
    total: int = 0

    def find(self, task_id: int) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def find_by_tag(self, tag: str) -> Task | None:
        for task in self.tasks:
            if task.correlation_tag == tag:
                return task
        return None

    def max_id(self) -> int:
        return max((t.id for t in self.tasks), default=0)

    def __len__(self) -> int:
        return len(self.tasks)


# ---- wire format (remote store field names) ----


def task_from_api(data: Any) -> ServerTask:
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected task payload: {data!r}")
    return ServerTask(
        id=int(data["id"]),
        text=str(data.get("todo") or ""),
        completed=bool(data.get("completed", False)),
        owner_id=int(data.get("userId") or 0),
    )


def patch_to_api(fields: dict[str, Any]) -> dict[str, Any]:
    body: dict[str, Any] = {}
    if "text" in fields:
        body["todo"] = fields["text"]
    if "completed" in fields:
        body["completed"] = fields["completed"]
    return body
