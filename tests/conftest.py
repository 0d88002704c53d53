# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskdeck.cli.bootstrap import create_initial_state
from taskdeck.core.signals import SignalBus
from taskdeck.core.state import AppState, SessionState, Store, User
from taskdeck.session.client import SessionClient
from taskdeck.tasks.task_cache import TaskCache

from .fakes import FakeRemote, FakeScheduler, todo

BASE_URL = "http://testserver/api"


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the composition root.

    A SimpleNamespace instead of real config keeps tests isolated from the
    environment and any local .env file.
    """
    return SimpleNamespace(
        app_name="taskdeck-test",
        log_level="DEBUG",
        api_base_url=BASE_URL,
        request_timeout_seconds=5.0,
        login_expires_minutes=30,
        idle_timeout_minutes=1,
        stay_signed_in=False,
        warning_seconds=60,
        data_dir=tmp_path / "data",
        preferences_path=tmp_path / "data" / "ui_settings.json",
    )


@pytest.fixture()
def remote() -> FakeRemote:
    return FakeRemote(
        todos=[
            todo(1, "Do something nice for someone you care about"),
            todo(2, "Memorize a poem", completed=True),
            todo(3, "Watch a classic movie"),
            todo(40, "Someone else's task", user_id=7),
        ]
    )


@pytest.fixture()
def bus() -> SignalBus:
    return SignalBus()


@pytest.fixture()
def client(remote: FakeRemote, bus: SignalBus) -> SessionClient:
    return SessionClient(BASE_URL, bus=bus, transport=remote.transport())


@pytest.fixture()
def session() -> Store[SessionState]:
    return Store(SessionState(user=User(id=1, username="emilys", first_name="Emily", last_name="Johnson")))


@pytest.fixture()
def cache(client: SessionClient, bus: SignalBus, session: Store[SessionState]) -> TaskCache:
    return TaskCache(client, bus, session)


@pytest.fixture()
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture()
def state(settings: SimpleNamespace, remote: FakeRemote, scheduler: FakeScheduler) -> AppState:
    """Fully wired AppState: real components, fake remote API, manual clock."""
    return create_initial_state(settings=settings, transport=remote.transport(), scheduler=scheduler)
