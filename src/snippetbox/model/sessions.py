"""Server-side session storage.

Provides the SQLAlchemy model for session records and the aiohttp-session storage backed by
it. The cookie carries only an opaque token; the session data lives in the `sessions`
table together with an absolute expiry time. Records past their expiry are invisible to
readers and removed by the cleanup task.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from aiohttp import web
from aiohttp_session import AbstractStorage, Session
from sqlalchemy import JSON, DateTime, Index, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from snippetbox.model.base import Base, str43, utc_now


def generate_token() -> str:
    """Return a new session token: 32 random bytes, URL-safe base64 without padding."""
    return secrets.token_urlsafe(32)


class SessionRecord(Base):
    """Persisted session data keyed by the token presented in the session cookie."""

    __tablename__ = "sessions"

    token: Mapped[str43] = mapped_column(primary_key=True)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    expiry: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("idx_sessions_expiry", "expiry"),)


class DatabaseSessionStore(AbstractStorage):
    """
    aiohttp-session storage keeping session data in the database.

    Lifetimes are absolute: the expiry of a record is fixed when its session is created
    and is not extended by later saves. The cookie's Max-Age is the time remaining until
    that expiry.

    Args:
        session_maker: Factory for database sessions on the shared engine
        max_age: Session lifetime in seconds
        secure: Mark the cookie Secure so that it is only sent over TLS
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        cookie_name: str = "session",
        max_age: int = 12 * 60 * 60,
        secure: bool = False,
        httponly: bool = True,
        samesite: str = "Lax",
        path: str = "/",
        key_factory: Callable[[], str] = generate_token,
    ) -> None:
        super().__init__(
            cookie_name=cookie_name,
            max_age=max_age,
            path=path,
            secure=secure,
            httponly=httponly,
            samesite=samesite,
        )
        self._session_maker = session_maker
        self._key_factory = key_factory

    def expiry_of(self, session: Session) -> datetime:
        created = datetime.fromtimestamp(session.created, timezone.utc).replace(tzinfo=None)
        return created + timedelta(seconds=self.max_age)

    async def load_session(self, request: web.Request) -> Session:
        token = self.load_cookie(request)
        if token is None:
            return Session(None, data=None, new=True, max_age=self.max_age)

        data = await self.load(str(token))
        if data is None:
            return Session(None, data=None, new=True, max_age=self.max_age)

        return Session(str(token), data=data, new=False, max_age=self.max_age)

    async def save_session(
        self, request: web.Request, response: web.StreamResponse, session: Session
    ) -> None:
        previous = self.load_cookie(request)
        token = session.identity

        # A new session replaces whatever token the client presented.
        if previous is not None and previous != token:
            await self.expire(str(previous))

        if session.empty:
            if token is not None:
                await self.expire(str(token))
            if previous is not None or token is not None:
                self.save_cookie(response, "")
        else:
            if token is None:
                token = self._key_factory()
                session.set_new_identity(token)

            expiry = self.expiry_of(session)
            await self.save(str(token), self._get_session_data(session), expiry)

            max_age = max(int((expiry - utc_now()).total_seconds()), 0)
            self.save_cookie(response, str(token), max_age=max_age)

        response.headers.add("Vary", "Cookie")
        response.headers["Cache-Control"] = 'no-cache="Set-Cookie"'

    async def load(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the data stored for `token`, or None if absent or expired."""
        stmt = select(SessionRecord.data).where(
            SessionRecord.token == token,
            SessionRecord.expiry > utc_now(),
        )
        async with self._session_maker() as database_session:
            return (await database_session.scalars(stmt)).first()

    async def save(self, token: str, data: Dict[str, Any], expiry: datetime) -> None:
        """Insert or replace the data stored for `token`."""
        async with self._session_maker() as database_session:
            async with database_session.begin():
                # Upsert by primary key.
                await database_session.merge(
                    SessionRecord(token=token, data=data, expiry=expiry)
                )

    async def expire(self, token: str) -> None:
        """Remove `token`. Removing an unknown token is not an error."""
        async with self._session_maker() as database_session:
            async with database_session.begin():
                await database_session.execute(
                    delete(SessionRecord).where(SessionRecord.token == token)
                )

    async def delete_expired(self) -> int:
        """Remove every record whose expiry has passed and return how many were removed."""
        async with self._session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(
                    delete(SessionRecord).where(SessionRecord.expiry <= utc_now())
                )
                return result.rowcount or 0
