"""
Unit tests for snippetbox.model.sessions and the session cleanup task

Tests cover the database session store, the aiohttp-session storage lifecycle (issue,
load, destroy, renew, absolute expiry) and the Set-Cookie header written for each case.
"""

import asyncio
from datetime import timedelta

import aiohttp_session
import pytest
import pytest_asyncio
from aiohttp import web
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from snippetbox.app.config import SessionStoreAppKey, SettingsAppKey
from snippetbox.app.handlers.helpers import renew_session
from snippetbox.app.tasks import session_cleanup_task
from snippetbox.model.base import Base, utc_now
from snippetbox.model.sessions import DatabaseSessionStore, SessionRecord, generate_token


@pytest.fixture
def store(session_maker):
    return DatabaseSessionStore(session_maker)


async def handle_put(request: web.Request):
    session = await aiohttp_session.get_session(request)
    session["value"] = request.query["value"]
    return web.Response(text="ok")


async def handle_get(request: web.Request):
    session = await aiohttp_session.get_session(request)
    return web.Response(text=session.get("value", ""))


async def handle_destroy(request: web.Request):
    session = await aiohttp_session.get_session(request)
    session.invalidate()
    return web.Response(text="ok")


async def handle_renew(request: web.Request):
    await renew_session(request)
    return web.Response(text="ok")


@pytest_asyncio.fixture
async def make_session_client(aiohttp_client, session_maker):
    """Factory for a minimal application using the database session storage."""

    async def _make_session_client(**store_options):
        store = DatabaseSessionStore(session_maker, **store_options)
        app = web.Application()
        aiohttp_session.setup(app, store)
        app.router.add_get("/put", handle_put)
        app.router.add_get("/get", handle_get)
        app.router.add_get("/destroy", handle_destroy)
        app.router.add_get("/renew", handle_renew)
        return await aiohttp_client(app), store

    return _make_session_client


async def stored_expiry(session_maker, token):
    async with session_maker() as database_session:
        return await database_session.scalar(
            select(SessionRecord.expiry).where(SessionRecord.token == token)
        )


class TestDatabaseSessionStore:
    """Test suite for the SQL data access of the session store."""

    async def test_save_and_load(self, store):
        """Test saved data is returned until its expiry."""
        await store.save("token-a", {"flash": "hello"}, utc_now() + timedelta(minutes=5))
        assert await store.load("token-a") == {"flash": "hello"}

    async def test_save_replaces(self, store):
        """Test saving an existing token replaces its data."""
        expiry = utc_now() + timedelta(minutes=5)
        await store.save("token-a", {"n": 1}, expiry)
        await store.save("token-a", {"n": 2}, expiry)
        assert await store.load("token-a") == {"n": 2}

    async def test_load_unknown(self, store):
        assert await store.load("missing") is None

    async def test_expired_not_loaded(self, store):
        """Test a record past its expiry is never returned."""
        await store.save("token-a", {"n": 1}, utc_now() - timedelta(seconds=1))
        assert await store.load("token-a") is None

    async def test_expire(self, store):
        """Test expiring a token removes it and expiring an unknown token is harmless."""
        await store.save("token-a", {"n": 1}, utc_now() + timedelta(minutes=5))
        await store.expire("token-a")
        await store.expire("token-a")
        assert await store.load("token-a") is None

    async def test_delete_expired(self, store):
        """Test only expired records are deleted."""
        await store.save("old-1", {}, utc_now() - timedelta(minutes=1))
        await store.save("old-2", {}, utc_now() - timedelta(hours=1))
        await store.save("live", {"n": 1}, utc_now() + timedelta(minutes=5))

        assert await store.delete_expired() == 2
        assert await store.delete_expired() == 0
        assert await store.load("live") is not None

    def test_generate_token(self):
        """Test tokens are 43 URL-safe characters and unique."""
        tokens = {generate_token() for _ in range(100)}
        assert len(tokens) == 100
        for token in tokens:
            assert len(token) == 43
            assert "=" not in token


class TestSessionStorage:
    """Test suite for the session lifecycle through aiohttp-session."""

    async def test_untouched_session_sets_no_cookie(self, make_session_client):
        """Test reading an empty session writes no cookie and stores nothing."""
        client, _ = await make_session_client()
        resp = await client.get("/get")
        assert resp.status == 200
        assert "session" not in resp.cookies
        assert "Vary" not in resp.headers

    async def test_issue_cookie(self, make_session_client):
        """Test the first change issues a token cookie with the configured attributes."""
        client, store = await make_session_client()
        resp = await client.get("/put", params={"value": "x"})

        morsel = resp.cookies["session"]
        assert len(morsel.value) == 43
        assert morsel["httponly"]
        assert not morsel["secure"]
        assert morsel["samesite"] == "Lax"
        assert morsel["path"] == "/"
        assert 12 * 60 * 60 - 5 <= int(morsel["max-age"]) <= 12 * 60 * 60
        assert resp.headers["Vary"] == "Cookie"
        assert resp.headers["Cache-Control"] == 'no-cache="Set-Cookie"'

        assert (await store.load(morsel.value))["session"] == {"value": "x"}

    async def test_data_survives_requests(self, make_session_client):
        client, _ = await make_session_client()
        await client.get("/put", params={"value": "x"})

        resp = await client.get("/get")
        assert await resp.text() == "x"

    async def test_secure_cookie(self, make_session_client):
        """Test the cookie is marked Secure when the server runs over TLS."""
        client, _ = await make_session_client(secure=True)
        resp = await client.get("/put", params={"value": "x"})
        assert resp.cookies["session"]["secure"]

    async def test_unknown_token_gets_new_session(self, make_session_client):
        """Test an unknown token is replaced by a fresh session."""
        client, _ = await make_session_client()
        client.session.cookie_jar.update_cookies({"session": "not-a-real-token"})

        resp = await client.get("/get")
        assert await resp.text() == ""

        resp = await client.get("/put", params={"value": "x"})
        assert resp.cookies["session"].value != "not-a-real-token"

    async def test_lifetime_is_absolute(self, make_session_client, session_maker):
        """Test later saves do not move the expiry fixed at creation."""
        client, _ = await make_session_client()
        token = (await client.get("/put", params={"value": "x"})).cookies["session"].value
        first_expiry = await stored_expiry(session_maker, token)

        await asyncio.sleep(1.1)
        resp = await client.get("/put", params={"value": "y"})

        assert resp.cookies["session"].value == token
        assert await stored_expiry(session_maker, token) == first_expiry

    async def test_expired_session_not_loaded(self, make_session_client, store):
        """Test a session past its expiry is treated as absent."""
        client, _ = await make_session_client()
        token = (await client.get("/put", params={"value": "x"})).cookies["session"].value

        data = await store.load(token)
        await store.save(token, data, utc_now() - timedelta(seconds=1))

        resp = await client.get("/get")
        assert await resp.text() == ""

    async def test_destroy(self, make_session_client, store):
        """Test destroying a session removes it from the store and clears the cookie."""
        client, _ = await make_session_client()
        token = (await client.get("/put", params={"value": "x"})).cookies["session"].value

        resp = await client.get("/destroy")
        morsel = resp.cookies["session"]
        assert morsel.value == ""
        assert morsel["max-age"] == "0"
        assert await store.load(token) is None

        resp = await client.get("/get")
        assert await resp.text() == ""

    async def test_renew(self, make_session_client, store):
        """Test renewing keeps the data under a new token and expires the old one."""
        client, _ = await make_session_client()
        old_token = (await client.get("/put", params={"value": "x"})).cookies["session"].value

        resp = await client.get("/renew")
        new_token = resp.cookies["session"].value

        assert new_token != old_token
        assert await store.load(old_token) is None
        assert (await store.load(new_token))["session"] == {"value": "x"}

        resp = await client.get("/get")
        assert await resp.text() == "x"


class TestSessionCleanupTask:
    """Test suite for the expired session cleanup task."""

    @pytest_asyncio.fixture
    async def file_session_maker(self, tmp_path):
        """A session factory on a file database, which outlives any single connection."""
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/sessions.db")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        await engine.dispose()

    async def test_deletes_expired(self, file_session_maker, settings_factory):
        """Test the task removes expired sessions and keeps live ones."""
        store = DatabaseSessionStore(file_session_maker)
        await store.save("old", {}, utc_now() - timedelta(minutes=1))
        await store.save("live", {"n": 1}, utc_now() + timedelta(minutes=5))

        app = web.Application()
        app[SettingsAppKey] = settings_factory(
            session_cleanup_interval=timedelta(milliseconds=50)
        )
        app[SessionStoreAppKey] = store

        async def count_records() -> int:
            async with file_session_maker() as database_session:
                return await database_session.scalar(
                    select(func.count()).select_from(SessionRecord)
                )

        task = asyncio.create_task(session_cleanup_task(app))
        try:
            for _ in range(100):
                await asyncio.sleep(0.02)
                if await count_records() == 1:
                    break
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert await count_records() == 1
        assert await store.load("live") is not None
