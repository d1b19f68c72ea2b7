"""In-memory registry of authenticated browser sessions."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable

from geoimage.services.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Session:
    orchestrator: Orchestrator
    created_at: float


class SessionRegistry:
    """Maps opaque session tokens to the orchestrator owning that session's state.

    A session lives for ``max_age`` seconds from login, matching the cookie
    lifetime. Expired sessions are closed and dropped on the next
    :meth:`create` or :meth:`get`.
    """

    def __init__(
        self,
        factory: Callable[[], Orchestrator],
        *,
        max_age: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self._max_age = max_age
        self._clock = clock
        self._sessions: dict[str, _Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self) -> str:
        """Start a session and return its token."""

        await self._evict_expired()
        token = secrets.token_urlsafe(32)
        self._sessions[token] = _Session(self._factory(), self._clock())
        logger.info("Session created (%d active)", len(self._sessions))
        return token

    async def get(self, token: str | None) -> Orchestrator | None:
        await self._evict_expired()
        if not token:
            return None
        session = self._sessions.get(token)
        return session.orchestrator if session is not None else None

    async def discard(self, token: str) -> None:
        """Drop a session and stop its polling."""

        session = self._sessions.pop(token, None)
        if session is not None:
            await session.orchestrator.close()

    async def close_all(self) -> None:
        sessions, self._sessions = self._sessions, {}
        await asyncio.gather(*(session.orchestrator.close() for session in sessions.values()))

    async def _evict_expired(self) -> None:
        cutoff = self._clock() - self._max_age
        expired = [token for token, session in self._sessions.items() if session.created_at <= cutoff]
        if not expired:
            return
        for token in expired:
            await self.discard(token)
        logger.info("Expired %d session(s) (%d active)", len(expired), len(self._sessions))
