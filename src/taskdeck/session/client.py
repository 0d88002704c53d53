# src/taskdeck/session/client.py

"""
Cookie-credentialed HTTP client with transparent, single-flight session refresh.

How a 401 is handled:
- a request sent before the last refresh finished is first resent once with the new
  cookies (no refresh, retry not used up),
- otherwise the request is marked retried (a descriptor goes through at most one refresh),
- if a refresh is already running, the request waits in a FIFO queue,
- otherwise this request starts the refresh (POST /auth/refresh):
    * success -> queued requests are replayed in arrival order, then this one,
    * failure -> every queued request and this one fail with RefreshFailed,
      and ForceLogout is published.

Session tokens only ever live in the httpx cookie jar; nothing here reads them.
Timeouts and network errors are TransportError and never start a refresh.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any

import httpx

from ..core.signals import ForceLogout, SignalBus
from ..errors import ApiError, AuthExpired, RefreshFailed, TransportError

logger = logging.getLogger(__name__)

REFRESH_PATH = "/auth/refresh"

# A 401 here means bad credentials or an already-dead session, not an expired one.
NO_REFRESH_PATHS = frozenset({REFRESH_PATH, "/auth/login", "/auth/logout"})


@dataclass(slots=True)
class RequestDescriptor:
    method: str
    path: str
    body: Any = None
    retried: bool = False
    resent: bool = False  # replayed once after someone else's refresh

    def describe(self) -> str:
        return f"{self.method} {self.path}"

    @property
    def refreshable(self) -> bool:
        return self.path.split("?", 1)[0] not in NO_REFRESH_PATHS


@dataclass(slots=True)
class _Deferred:
    request: RequestDescriptor
    future: asyncio.Future[httpx.Response]


def read_json(response: httpx.Response) -> Any:
    """Parse a JSON body; None for empty or non-JSON bodies."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


class SessionClient:
    def __init__(
        self,
        base_url: str,
        *,
        bus: SignalBus,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._bus = bus
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )

        self._refresh_in_flight = False
        self._pending: deque[_Deferred] = deque()
        # Bumped after every successful refresh; lets a late 401 from a request sent
        # with pre-refresh cookies replay without refreshing again.
        self._generation = 0
        self._background: set[asyncio.Task[None]] = set()

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_in_flight

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def aclose(self) -> None:
        await self._http.aclose()

    # ---- convenience ----

    async def get(self, path: str) -> httpx.Response:
        return await self.send(RequestDescriptor("GET", path))

    async def post(self, path: str, body: Any = None) -> httpx.Response:
        return await self.send(RequestDescriptor("POST", path, body))

    async def patch(self, path: str, body: Any = None) -> httpx.Response:
        return await self.send(RequestDescriptor("PATCH", path, body))

    async def delete(self, path: str) -> httpx.Response:
        return await self.send(RequestDescriptor("DELETE", path))

    # ---- core ----

    async def send(self, request: RequestDescriptor) -> httpx.Response:
        generation = self._generation
        response = await self._dispatch(request)

        if response.status_code != 401 or request.retried or not request.refreshable:
            return self._check(request, response)

        if generation != self._generation and not self._refresh_in_flight and not request.resent:
            # Sent with pre-refresh cookies: try once more with the current ones. This does
            # not use up the retry, so a session that expired again can still refresh.
            logger.debug("%s got 401 with pre-refresh cookies; resending", request.describe())
            request.resent = True
            return await self.send(request)

        request.retried = True

        if self._refresh_in_flight:
            return await self._enqueue(request)

        return await self._refresh_and_replay(request)

    async def _dispatch(self, request: RequestDescriptor) -> httpx.Response:
        try:
            response = await self._http.request(request.method, request.path, json=request.body)
        except httpx.TimeoutException as exc:
            logger.warning("%s timed out", request.describe())
            raise TransportError(f"{request.describe()} timed out") from exc
        except httpx.TransportError as exc:
            logger.warning("%s failed: %s", request.describe(), exc)
            raise TransportError(f"{request.describe()} failed: {exc}") from exc

        logger.debug("%s -> %s (retried=%s)", request.describe(), response.status_code, request.retried)
        return response

    @staticmethod
    def _check(request: RequestDescriptor, response: httpx.Response) -> httpx.Response:
        if response.is_success:
            return response
        body = read_json(response)
        if response.status_code == 401:
            raise AuthExpired(401, body, method=request.method, path=request.path)
        raise ApiError(response.status_code, body, method=request.method, path=request.path)

    async def _enqueue(self, request: RequestDescriptor) -> httpx.Response:
        future: asyncio.Future[httpx.Response] = asyncio.get_running_loop().create_future()
        self._pending.append(_Deferred(request, future))
        logger.debug("%s queued behind refresh (pending=%d)", request.describe(), len(self._pending))
        return await future

    async def _refresh_and_replay(self, request: RequestDescriptor) -> httpx.Response:
        self._refresh_in_flight = True
        logger.info("Session expired on %s; refreshing", request.describe())

        # The refresh runs in its own task: cancelling the caller that happened to
        # trigger it must not strand the requests queued behind it.
        refresh = self._spawn(self._run_refresh())
        try:
            await asyncio.shield(refresh)
        except Exception as exc:
            raise RefreshFailed(f"Session refresh failed: {exc}") from exc

        return await self.send(request)

    async def _run_refresh(self) -> None:
        try:
            refresh = RequestDescriptor("POST", REFRESH_PATH, {}, retried=True)
            self._check(refresh, await self._dispatch(refresh))
        except asyncio.CancelledError:
            self._refresh_in_flight = False
            self._reject_pending(None)
            raise
        except Exception as exc:
            self._refresh_in_flight = False
            logger.warning("Session refresh failed (%s); %d queued request(s) rejected", exc, len(self._pending))
            self._reject_pending(exc)
            self._bus.publish(ForceLogout(reason="refresh-failed"))
            raise

        self._generation += 1
        self._refresh_in_flight = False
        logger.info("Session refreshed; replaying %d queued request(s)", len(self._pending))
        self._release_pending()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._forget)
        return task

    def _forget(self, task: asyncio.Task[None]) -> None:
        self._background.discard(task)
        if not task.cancelled():
            # Mark retrieved: the awaiting caller may have been cancelled meanwhile.
            task.exception()

    def _release_pending(self) -> None:
        pending, self._pending = self._pending, deque()
        for deferred in pending:
            if deferred.future.done():
                # Caller gave up (cancelled) while waiting.
                continue
            self._spawn(self._replay(deferred))

    def _reject_pending(self, cause: BaseException | None) -> None:
        pending, self._pending = self._pending, deque()
        for deferred in pending:
            if deferred.future.done():
                continue
            if cause is None:
                error = RefreshFailed("Session refresh was cancelled")
            else:
                error = RefreshFailed(f"Session refresh failed: {cause}")
                error.__cause__ = cause
            deferred.future.set_exception(error)

    async def _replay(self, deferred: _Deferred) -> None:
        try:
            response = await self.send(deferred.request)
        except asyncio.CancelledError:
            deferred.future.cancel()
            raise
        except Exception as exc:
            if not deferred.future.done():
                deferred.future.set_exception(exc)
            return
        if not deferred.future.done():
            deferred.future.set_result(response)
