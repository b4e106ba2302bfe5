"""Snippet data models and data access.

Provides the SQLAlchemy model for snippets and the SnippetModel class that handlers use
to insert, fetch and list snippets. Expired snippets are never returned.
"""

from datetime import datetime, timedelta
from typing import List

from sqlalchemy import DateTime, Index, Integer, Text, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from snippetbox.model.base import Base, str100, utc_now


class NoRecordError(Exception):
    """No matching snippet exists, or the snippet has expired."""


class Snippet(Base):
    """A short piece of text with a title and an expiry time."""

    __tablename__ = "snippets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str100]
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("idx_snippets_created", "created"),)


def insert_snippet_stmt(title: str, content: str, expires_days: int):
    now = utc_now()
    return insert(Snippet).values(
        title=title,
        content=content,
        created=now,
        expires=now + timedelta(days=expires_days),
    )


class SnippetModel:
    """
    Data access for snippets.

    Each operation runs in its own short-lived database session taken from the shared
    session factory, so a SnippetModel instance can be used concurrently by any number of
    request handlers.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def insert(self, title: str, content: str, expires_days: int) -> int:
        """Insert a new snippet and return its id."""
        async with self._session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(
                    insert_snippet_stmt(title, content, expires_days)
                )
                return int(result.inserted_primary_key[0])

    async def get(self, snippet_id: int) -> Snippet:
        """
        Return the snippet with the given id.

        Raises:
            NoRecordError: If the snippet does not exist or has expired
        """
        stmt = select(Snippet).where(
            Snippet.id == snippet_id,
            Snippet.expires > utc_now(),
        )
        async with self._session_maker() as database_session:
            snippet = (await database_session.scalars(stmt)).first()
        if snippet is None:
            raise NoRecordError(f"snippet {snippet_id} not found")
        return snippet

    async def latest(self, limit: int = 10) -> List[Snippet]:
        """Return up to `limit` unexpired snippets, newest first."""
        stmt = (
            select(Snippet)
            .where(Snippet.expires > utc_now())
            .order_by(Snippet.id.desc())
            .limit(limit)
        )
        async with self._session_maker() as database_session:
            return list((await database_session.scalars(stmt)).all())
