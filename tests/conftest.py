"""
Shared test configuration and fixtures for Snippetbox tests.

Every test runs against its own in-memory SQLite database, so no MySQL server is needed.
The web application fixtures build the same application the server runs, with TLS
disabled and the templates and static assets taken from the repository's ui/ directory.
"""

import os

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from snippetbox.app.config import DatabaseAppKey, Settings
from snippetbox.app.server import engine_options, start_web_server
from snippetbox.model.base import Base

TEST_DSN = "sqlite+aiosqlite://"

UI_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "ui")


def build_settings(**overrides) -> Settings:
    """Settings for a test server: in-memory database, plain HTTP, repository templates."""
    values = {"dsn": TEST_DSN, "tls_enabled": False, "ui_dir": UI_DIR}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings_factory():
    """Build test settings with the given overrides."""
    return build_settings


@pytest.fixture
def ui_dir() -> str:
    return UI_DIR


@pytest_asyncio.fixture(scope="function")
async def engine():
    """Create an async SQLAlchemy engine on a fresh in-memory database with all tables."""
    engine = create_async_engine(TEST_DSN, **engine_options(TEST_DSN))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(engine):
    """Session factory bound to the test engine, configured like the server's."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def make_client(aiohttp_client):
    """
    Factory for test clients.

    Accepts optional settings and extra routes to register before the application starts,
    then creates the schema in the application's database once startup has completed.
    """

    async def _make_client(settings=None, routes=None):
        app = await start_web_server(settings or build_settings())
        for method, path, handler in routes or []:
            app.router.add_route(method, path, handler)

        client = await aiohttp_client(app)

        async with client.server.app[DatabaseAppKey].begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        return client

    return _make_client


@pytest_asyncio.fixture
async def client(make_client):
    """Test client for the default application."""
    return await make_client()
