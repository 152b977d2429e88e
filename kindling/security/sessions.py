"""Opaque bearer sessions: issue, resolve, refresh, revoke, sweep. No FastAPI."""

import asyncio
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from kindling.security.exceptions import AuthenticationError
from kindling.security.models import Session
from kindling.security.repository import SessionRepository

TOKEN_BYTES = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionService:
    """
    Expired sessions are inert: get_session() treats them as absent whether or not
    they have been physically deleted yet.
    """

    def __init__(
        self,
        repository: SessionRepository,
        ttl: timedelta,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._repository = repository
        self._ttl = ttl
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    async def create_session(
        self,
        user_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Session:
        now = self._clock()
        session = Session(
            id=str(uuid.uuid4()),
            user_id=user_id,
            token=secrets.token_hex(TOKEN_BYTES),
            refresh_token=secrets.token_hex(TOKEN_BYTES),
            expires_at=now + self._ttl,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
        )
        return await self._repository.add_session(session)

    async def get_session(self, token: str) -> Optional[Session]:
        """Return the live session for token, or None. Expired rows are deleted best-effort."""
        session = await self._repository.get_session_by_token(token)
        if session is None:
            return None
        if session.is_expired(self._clock()):
            try:
                await self._repository.delete_session(token)
            except Exception as e:
                self._logger.warning("expired_session_delete_failed", extra={"error": str(e)})
            return None
        return session

    async def refresh_session(self, refresh_token: str) -> Session:
        """Rotate: the old session is revoked and a new one issued for the same user."""
        session = await self._repository.get_session_by_refresh_token(refresh_token)
        if session is None or session.is_expired(self._clock()):
            raise AuthenticationError("Invalid or expired refresh token")
        await self._repository.delete_session(session.token)
        return await self.create_session(session.user_id, session.ip_address, session.user_agent)

    async def revoke_session(self, token: str) -> None:
        await self._repository.delete_session(token)

    async def revoke_user_sessions(self, user_id: str) -> int:
        return await self._repository.delete_user_sessions(user_id)

    async def sweep_expired(self) -> int:
        removed = await self._repository.delete_expired_sessions(self._clock())
        if removed:
            self._logger.info("expired_sessions_swept", extra={"removed": removed})
        return removed


class SessionSweeper:
    """Background loop that periodically deletes expired sessions. Errors are logged, never raised."""

    def __init__(self, sessions: SessionService, interval_seconds: float) -> None:
        self._sessions = sessions
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        logger = logging.getLogger(__name__)
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._sessions.sweep_expired()
            except Exception as e:
                logger.error("session_sweep_failed", extra={"error": str(e)})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
