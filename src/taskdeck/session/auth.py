# src/taskdeck/session/auth.py

from __future__ import annotations

import logging

from ..core.state import User
from .client import SessionClient, read_json

logger = logging.getLogger(__name__)


class AuthService:
    """
    Auth API calls (login / me / logout).

    The server sets and clears the session cookies; we only ever see the user payload.
    """

    def __init__(self, client: SessionClient) -> None:
        self._client = client

    async def login(self, username: str, password: str, *, expires_in_minutes: int = 30) -> User:
        response = await self._client.post(
            "/auth/login",
            {
                "username": username,
                "password": password,
                "expiresInMins": int(expires_in_minutes),
            },
        )
        user = User.from_api(read_json(response))
        logger.info("Logged in user_id=%s username=%s", user.id, user.username)
        return user

    async def me(self) -> User:
        """Current identity; raises AuthExpired/RefreshFailed when there is no live session."""
        response = await self._client.get("/auth/me")
        return User.from_api(read_json(response))

    async def logout(self) -> None:
        await self._client.post("/auth/logout")
        logger.info("Session cookies cleared")
