# tests/fakes.py

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

USER = {
    "id": 1,
    "username": "emilys",
    "email": "emily.johnson@x.dummyjson.com",
    "firstName": "Emily",
    "lastName": "Johnson",
    "image": "https://dummyjson.com/icon/emilys/128",
}
PASSWORD = "emilyspass"


def todo(task_id: int, text: str, completed: bool = False, user_id: int = 1) -> dict[str, Any]:
    return {"id": task_id, "todo": text, "completed": completed, "userId": user_id}


@dataclass
class ServedRequest:
    method: str
    path: str
    generation: int


class FakeRemote:
    """
    In-memory stand-in for the auth + task API, mounted behind httpx.MockTransport.

    Behaves like the real remote store:
    - create/update/delete echo the request but never persist anything,
    - update/delete of an id it does not know answer 404,
    - every authenticated call answers 401 while the session is expired.

    Knobs for tests: session_valid, refresh_status, refresh_gate, holds, fail, timeouts.
    """

    def __init__(self, todos: list[dict[str, Any]] | None = None) -> None:
        self.todos: list[dict[str, Any]] = list(todos or [])
        self.session_valid = True
        self.generation = 0  # bumped by every successful refresh

        self.refresh_status = 200
        self.refresh_revives_session = True
        self.refresh_gate: asyncio.Event | None = None
        self.create_id = 255

        self.holds: dict[str, asyncio.Event] = {}  # path -> gate before answering
        self.fail: dict[tuple[str, str], int] = {}  # (method, path) -> status
        self.timeouts: set[tuple[str, str]] = set()

        self.calls: list[tuple[str, str]] = []
        self.served: list[ServedRequest] = []
        self.refresh_calls = 0

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls_to(self, method: str, path: str | None = None) -> int:
        return sum(1 for m, p in self.calls if m == method and (path is None or p == path))

    async def handle(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else None
        self.calls.append((method, path))

        if (method, path) in self.timeouts:
            raise httpx.ReadTimeout("timed out", request=request)

        if path == "/auth/refresh":
            return await self._refresh()
        if path == "/auth/login":
            return self._login(body or {})
        if path == "/auth/logout":
            self.session_valid = False
            failed = self._maybe_fail(method, path)
            return failed if failed is not None else httpx.Response(200, json={"message": "Logged out"})

        valid_on_arrival = self.session_valid
        gate = self.holds.get(path)
        if gate is not None:
            await gate.wait()

        if not valid_on_arrival:
            return httpx.Response(401, json={"message": "Token Expired!"})

        failed = self._maybe_fail(method, path)
        if failed is not None:
            return failed

        self.served.append(ServedRequest(method, path, self.generation))
        return self._route(method, path, body)

    async def _refresh(self) -> httpx.Response:
        self.refresh_calls += 1
        if self.refresh_gate is not None:
            await self.refresh_gate.wait()
        if self.refresh_status != 200:
            return httpx.Response(self.refresh_status, json={"message": "Invalid refresh token"})
        self.generation += 1
        if self.refresh_revives_session:
            self.session_valid = True
        return httpx.Response(200, json={"message": "refreshed"})

    def _login(self, body: dict[str, Any]) -> httpx.Response:
        if body.get("username") != USER["username"] or body.get("password") != PASSWORD:
            return httpx.Response(401, json={"message": "Invalid credentials"})
        self.session_valid = True
        return httpx.Response(200, json=USER)

    def _maybe_fail(self, method: str, path: str) -> httpx.Response | None:
        status = self.fail.get((method, path))
        if status is None:
            return None
        return httpx.Response(status, json={"message": f"injected {status}"})

    def _route(self, method: str, path: str, body: Any) -> httpx.Response:
        parts = [p for p in path.split("/") if p]

        if method == "GET" and parts == ["auth", "me"]:
            return httpx.Response(200, json=USER)

        if method == "GET" and len(parts) == 3 and parts[:2] == ["tasks", "user"]:
            user_id = int(parts[2])
            items = [t for t in self.todos if t["userId"] == user_id]
            return httpx.Response(200, json={"todos": items, "total": len(items), "skip": 0, "limit": 30})

        if method == "POST" and parts == ["tasks"]:
            created = {"id": self.create_id, **(body or {})}
            return httpx.Response(201, json=created)

        if len(parts) == 2 and parts[0] == "tasks":
            task_id = int(parts[1])
            current = next((t for t in self.todos if t["id"] == task_id), None)
            if current is None:
                return httpx.Response(404, json={"message": f"Todo with id '{task_id}' not found"})
            if method == "PATCH":
                return httpx.Response(200, json={**current, **(body or {})})
            if method == "DELETE":
                return httpx.Response(200, json={**current, "isDeleted": True})

        return httpx.Response(404, json={"message": "not found"})


@dataclass
class FakeTimer:
    when: float
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class FakeScheduler:
    """Manual clock for the idle monitor: nothing fires until advance()."""

    now: float = 0.0
    timers: list[FakeTimer] = field(default_factory=list)

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(when=self.now + delay_seconds, callback=callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.active if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.now = timer.when
            timer.fired = True
            timer.callback()
        self.now = target


class SignalRecorder:
    def __init__(self) -> None:
        self.signals: list[Any] = []

    def __call__(self, signal: Any) -> None:
        self.signals.append(signal)


async def wait_until(predicate: Callable[[], bool], *, rounds: int = 200) -> None:
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")
