# src/taskdeck/tasks/task_cache.py

"""
Optimistic per-user task cache.

The remote store answers create/update/delete as if it stored them, but it does not.
The cache compensates:

- list():    fetched ids are made unique (first occurrence wins, repeats are re-keyed
             to max+1); LocalTasks we created survive refetches and stay in front.
- create():  the echoed task becomes a LocalTask with a correlation tag; resubmitting
             the same tag is a no-op.
- update()/remove() on a LocalTask never touch the network.
- update()/remove() on a ServerTask: snapshot -> optimistic apply -> request.
      success -> keep the server-confirmed values of the fields sent,
      404     -> keep the optimistic state (StaleWriteIgnored),
      other   -> restore the snapshot and re-raise.

While a mutation for an owner is outstanding, any refetch for that owner is cancelled
and a refetch that lands anyway does not overwrite the collection.

Only the signed-in user's collection is written. Results that land after clear()
(logout) or for someone who is no longer signed in are dropped.

Every completed operation publishes ActivityReset(source=TASKS).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import weakref
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from ..core.signals import ActivityReset, ActivitySource, SignalBus
from ..core.state import SessionState, Store
from ..errors import ApiError, NotAuthenticated, StaleWriteIgnored, TaskNotFound
from ..session.client import RequestDescriptor, SessionClient, read_json
from .task_models import (
    LocalTask,
    ServerTask,
    Task,
    TaskCollection,
    new_correlation_tag,
    patch_to_api,
    task_from_api,
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"text", "completed"})

CollectionListener = Callable[[TaskCollection], None]


def dedupe_ids(tasks: Sequence[Task]) -> list[Task]:
    """
    Make ids unique, preserving order and length.

    The first occurrence of an id is kept as is; every later occurrence is re-keyed to
    current_max + 1. Re-keyed server tasks get a fresh correlation tag; local tasks keep
    theirs (it is their identity for duplicate detection).
    """
    current_max = max((t.id for t in tasks), default=0)
    seen: set[int] = set()
    out: list[Task] = []

    for task in tasks:
        if task.id in seen:
            current_max += 1
            logger.warning("Duplicate task id %s; re-keyed to %s", task.id, current_max)
            if isinstance(task, LocalTask):
                task = replace(task, id=current_max)
            else:
                task = replace(task, id=current_max, correlation_tag=new_correlation_tag())
        seen.add(task.id)
        out.append(task)

    return out


def _without(collection: TaskCollection, task_id: int) -> TaskCollection:
    return replace(
        collection,
        tasks=tuple(t for t in collection.tasks if t.id != task_id),
        total=max(0, collection.total - 1),
    )


def _with_replaced(collection: TaskCollection, task: Task) -> TaskCollection:
    return replace(collection, tasks=tuple(task if t.id == task.id else t for t in collection.tasks))


def _validate_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update task field(s): {', '.join(sorted(unknown))}")
    changes = dict(fields)
    if "text" in changes:
        changes["text"] = str(changes["text"])
    if "completed" in changes:
        changes["completed"] = bool(changes["completed"])
    return changes


class TaskCache:
    def __init__(self, client: SessionClient, bus: SignalBus, session: Store[SessionState]) -> None:
        self._client = client
        self._bus = bus
        self._session = session

        self._collections: dict[int, TaskCollection] = {}
        self._fetches: dict[int, asyncio.Task[TaskCollection]] = {}
        self._mutations: dict[int, int] = {}  # owner_id -> outstanding mutations
        self._listeners: list[CollectionListener] = []
        # Fetches cancelled by _mutation(); any other cancellation is a real one.
        self._superseded: weakref.WeakSet[asyncio.Task[TaskCollection]] = weakref.WeakSet()
        # Bumped by clear(); work started before a clear never writes back.
        self._epoch = 0

    # ---- read side ----

    def snapshot(self, owner_id: int) -> TaskCollection:
        collection = self._collections.get(owner_id)
        return collection if collection is not None else TaskCollection(owner_id=owner_id)

    def subscribe(self, listener: CollectionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def clear(self) -> None:
        """
        Forget every collection (logout).

        Outstanding fetches are left to finish so their callers still see the real
        outcome (e.g. RefreshFailed); whatever they bring back is not stored.
        """
        self._epoch += 1
        self._fetches.clear()
        self._collections.clear()
        logger.debug("Task cache cleared (epoch=%s)", self._epoch)

    # ---- operations ----

    async def list(self, user_id: int) -> TaskCollection:
        fetch = self._fetches.get(user_id)
        if fetch is None or fetch.done():
            fetch = asyncio.create_task(self._fetch(user_id))
            self._fetches[user_id] = fetch
            fetch.add_done_callback(lambda t, uid=user_id: self._fetch_done(uid, t))

        try:
            # Shielded: callers share one fetch, and a cancelled caller must not cancel it.
            collection = await asyncio.shield(fetch)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if fetch not in self._superseded or (current is not None and current.cancelling()):
                raise
            logger.debug("Refetch for user_id=%s superseded by a mutation", user_id)
            collection = self.snapshot(user_id)

        self._activity()
        return collection

    async def create(self, text: str, completed: bool = False, *, correlation_tag: str | None = None) -> Task:
        owner_id = self._require_user_id()
        tag = correlation_tag or new_correlation_tag()
        epoch = self._epoch

        async with self._mutation(owner_id):
            response = await self._client.post(
                "/tasks",
                {"todo": text, "completed": bool(completed), "userId": owner_id},
            )

        echoed = task_from_api(read_json(response))
        created = LocalTask(
            id=echoed.id,
            text=echoed.text or text,
            completed=echoed.completed,
            owner_id=owner_id,
            correlation_tag=tag,
        )
        task = self._merge_created(created, epoch)
        self._activity()
        return task

    async def update(self, task_id: int, fields: Mapping[str, Any]) -> Task:
        changes = _validate_fields(fields)
        owner_id = self._require_user_id()
        task = self._require_task(owner_id, task_id)

        if isinstance(task, LocalTask):
            updated = replace(task, **changes)
            self._set(_with_replaced(self.snapshot(owner_id), updated))
            logger.debug("Updated local task_id=%s without a request", task_id)
            self._activity()
            return updated

        epoch = self._epoch
        async with self._mutation(owner_id):
            snapshot = self.snapshot(owner_id)
            optimistic = replace(task, **changes)
            self._set(_with_replaced(snapshot, optimistic), epoch=epoch)

            try:
                response = await self._send_mutation("PATCH", task_id, patch_to_api(changes))
            except StaleWriteIgnored as exc:
                logger.info("%s", exc)
                confirmed = optimistic
            except Exception:
                logger.warning("Update of task_id=%s failed; rolling back", task_id)
                self._set(snapshot, epoch=epoch)
                raise
            else:
                current = self.snapshot(owner_id)
                cached = current.find(task_id)
                base = cached if isinstance(cached, ServerTask) else optimistic
                confirmed = _confirmed(base, read_json(response), changes)
                if cached is not None:
                    self._set(_with_replaced(current, confirmed), epoch=epoch)

        self._activity()
        return confirmed

    async def remove(self, task_id: int) -> Task:
        owner_id = self._require_user_id()
        task = self._require_task(owner_id, task_id)

        if isinstance(task, LocalTask):
            self._set(_without(self.snapshot(owner_id), task_id))
            logger.debug("Removed local task_id=%s without a request", task_id)
            self._activity()
            return task

        epoch = self._epoch
        async with self._mutation(owner_id):
            snapshot = self.snapshot(owner_id)
            self._set(_without(snapshot, task_id), epoch=epoch)

            try:
                await self._send_mutation("DELETE", task_id, None)
            except StaleWriteIgnored as exc:
                logger.info("%s", exc)
            except Exception:
                logger.warning("Delete of task_id=%s failed; rolling back", task_id)
                self._set(snapshot, epoch=epoch)
                raise

        self._activity()
        return task

    # ---- internals ----

    async def _fetch(self, user_id: int) -> TaskCollection:
        epoch = self._epoch
        response = await self._client.get(f"/tasks/user/{user_id}")
        data = read_json(response)
        raw = data.get("todos") if isinstance(data, dict) else data
        fetched: list[Task] = [task_from_api(item) for item in (raw or [])]

        if self._mutations.get(user_id):
            logger.info("Discarding refetch for user_id=%s: a mutation is outstanding", user_id)
            return self.snapshot(user_id)

        # The remote never returns what we created locally; keep those, but let the
        # server's ids win a collision (local ids are never sent anywhere).
        local = [t for t in self.snapshot(user_id).tasks if isinstance(t, LocalTask)]
        merged = dedupe_ids([*fetched, *local])
        server_part, local_part = merged[: len(fetched)], merged[len(fetched) :]

        remote_total = data.get("total") if isinstance(data, dict) else None
        total = remote_total if isinstance(remote_total, int) else len(fetched)

        collection = TaskCollection(
            owner_id=user_id,
            tasks=(*local_part, *server_part),
            total=total + len(local_part),
        )
        if not self._set(collection, epoch=epoch):
            return self.snapshot(user_id)
        logger.debug("Fetched %d task(s) for user_id=%s (+%d local)", len(fetched), user_id, len(local_part))
        return collection

    def _fetch_done(self, user_id: int, fetch: asyncio.Task[TaskCollection]) -> None:
        if self._fetches.get(user_id) is fetch:
            del self._fetches[user_id]
        if not fetch.cancelled():
            # Mark retrieved; list() callers re-raise it themselves.
            fetch.exception()

    @contextlib.asynccontextmanager
    async def _mutation(self, owner_id: int) -> AsyncIterator[None]:
        fetch = self._fetches.get(owner_id)
        if fetch is not None and not fetch.done():
            logger.debug("Cancelling refetch for user_id=%s: mutation started", owner_id)
            self._superseded.add(fetch)
            fetch.cancel()

        self._mutations[owner_id] = self._mutations.get(owner_id, 0) + 1
        try:
            yield
        finally:
            left = self._mutations.get(owner_id, 1) - 1
            if left > 0:
                self._mutations[owner_id] = left
            else:
                self._mutations.pop(owner_id, None)

    async def _send_mutation(self, method: str, task_id: int, body: Any) -> Any:
        try:
            return await self._client.send(RequestDescriptor(method, f"/tasks/{task_id}", body))
        except ApiError as exc:
            if exc.is_not_found:
                raise StaleWriteIgnored(task_id, method) from exc
            raise

    def _merge_created(self, created: LocalTask, epoch: int) -> Task:
        current = self.snapshot(created.owner_id)

        existing = current.find_by_tag(created.correlation_tag)
        if existing is not None:
            logger.info("Duplicate submission tag=%s; keeping task_id=%s", created.correlation_tag, existing.id)
            return existing

        if current.find(created.id) is not None:
            new_id = current.max_id() + 1
            logger.warning("Created task id %s already cached; re-keyed to %s", created.id, new_id)
            created = replace(created, id=new_id)

        self._set(replace(current, tasks=(created, *current.tasks), total=current.total + 1), epoch=epoch)
        return created

    def _set(self, collection: TaskCollection, *, epoch: int | None = None) -> bool:
        """Store and announce a collection; False when it is dropped as stale."""
        if epoch is not None and epoch != self._epoch:
            logger.debug("Dropping task collection for user_id=%s: cache cleared meanwhile", collection.owner_id)
            return False
        user = self._session.state.user
        if user is None or user.id != collection.owner_id:
            logger.debug("Dropping task collection for user_id=%s: not the signed-in user", collection.owner_id)
            return False

        self._collections[collection.owner_id] = collection
        for listener in list(self._listeners):
            try:
                listener(collection)
            except Exception:
                logger.exception("Task collection listener failed")
        return True

    def _activity(self) -> None:
        self._bus.publish(ActivityReset(source=ActivitySource.TASKS))

    def _require_user_id(self) -> int:
        user = self._session.state.user
        if user is None:
            raise NotAuthenticated("Sign in first.")
        return user.id

    def _require_task(self, owner_id: int, task_id: int) -> Task:
        task = self.snapshot(owner_id).find(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task


def _confirmed(task: ServerTask, body: Any, changes: Mapping[str, Any]) -> ServerTask:
    """
    Take the echoed values of the fields we sent; everything else stays as cached.

    The echo is built from the remote's stored copy, which never has our earlier edits.
    """
    if not isinstance(body, dict):
        return replace(task, **changes)
    confirmed = dict(changes)
    if "text" in changes and "todo" in body:
        confirmed["text"] = str(body["todo"])
    if "completed" in changes and "completed" in body:
        confirmed["completed"] = bool(body["completed"])
    return replace(task, **confirmed)
