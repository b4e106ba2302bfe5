import asyncio
import contextlib
import logging
import os
import signal
from typing import Any, Dict, Optional

import aiohttp_jinja2
import aiohttp_session
import jinja2
from aiohttp import web
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
import sentry_sdk
from sentry_sdk.integrations.aiohttp import AioHttpIntegration

from snippetbox.app.config import (
    DatabaseAppKey,
    DatabaseSessionMakerAppKey,
    SessionCleanupTaskAppKey,
    SessionStoreAppKey,
    Settings,
    SettingsAppKey,
    SnippetsAppKey,
    TemplateCacheAppKey,
    parse_address,
)
from snippetbox.app.handlers.helpers import server_error
from snippetbox.app.handlers.internal import handle_ping
from snippetbox.app.handlers.pages import (
    handle_home,
    handle_snippet_create,
    handle_snippet_view,
)
from snippetbox.app.tasks import session_cleanup_task
from snippetbox.app.templates import configure_environment, new_template_cache
from snippetbox.app.tls import FileCertificateProvider, build_ssl_context
from snippetbox.model.sessions import DatabaseSessionStore
from snippetbox.model.snippets import SnippetModel

logger = logging.getLogger(__name__)

SECURE_HEADERS = {
    "Content-Security-Policy": "default-src 'self'; style-src 'self' fonts.googleapis.com; font-src fonts.gstatic.com",
    "Referrer-Policy": "origin-when-cross-origin",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "deny",
    "X-XSS-Protection": "0",
}


def engine_options(dsn: str) -> Dict[str, Any]:
    """Extra engine arguments for the given DSN."""
    if dsn.startswith("sqlite") and (":memory:" in dsn or dsn.endswith("://")):
        # An in-memory SQLite database only exists for the lifetime of its connection.
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {"pool_pre_ping": True}


def new_engine(dsn: str) -> AsyncEngine:
    """Create the connection pool for `dsn`. No connection is made until first use."""
    return create_async_engine(dsn, **engine_options(dsn))


async def ping_database(engine: AsyncEngine) -> None:
    async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))


async def open_database(dsn: str) -> AsyncEngine:
    """
    Create the connection pool for `dsn` and check that the database is reachable.

    Raises:
        Exception: Whatever the driver raises when the pool cannot be created or the
            database does not answer. There is no retry.
    """
    engine = new_engine(dsn)
    try:
        await ping_database(engine)
    except Exception:
        await engine.dispose()
        raise
    return engine


async def background_tasks(app):
    logger.info("Starting up")

    engine = app[DatabaseAppKey]
    try:
        await ping_database(engine)
        app[TemplateCacheAppKey] = new_template_cache(aiohttp_jinja2.get_env(app))
    except Exception:
        await engine.dispose()
        raise

    logger.info("Startup complete")

    app[SessionCleanupTaskAppKey] = asyncio.create_task(session_cleanup_task(app))

    yield

    logger.info("Shutting down background tasks")

    app[SessionCleanupTaskAppKey].cancel()

    with contextlib.suppress(asyncio.exceptions.CancelledError):
        await app[SessionCleanupTaskAppKey]

    await app[DatabaseAppKey].dispose()


@web.middleware
async def log_request_middleware(request: web.Request, handler):
    logger.info(
        "%s - HTTP/%d.%d %s %s",
        request.remote,
        request.version.major,
        request.version.minor,
        request.method,
        request.path_qs,
    )
    return await handler(request)


@web.middleware
async def recover_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        response = server_error(request, e)
        response.headers["Connection"] = "close"
        return response


@web.middleware
async def timeout_middleware(request: web.Request, handler):
    settings = request.app[SettingsAppKey]
    deadline = asyncio.timeout(settings.write_timeout)
    try:
        async with deadline:
            return await handler(request)
    except TimeoutError:
        if not deadline.expired():
            raise
        logger.warning(
            "Handler for %s %s exceeded %.1fs",
            request.method,
            request.path,
            settings.write_timeout,
        )
        raise web.HTTPServiceUnavailable(text="Service Unavailable")


async def secure_headers(request: web.Request, response: web.StreamResponse) -> None:
    for name, value in SECURE_HEADERS.items():
        response.headers.setdefault(name, value)


async def start_web_server(settings: Optional[Settings] = None):

    if settings is None:
        settings = Settings()  # type: ignore
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            send_default_pii=False,
            integrations=[AioHttpIntegration()]
        )
    app = web.Application(
        middlewares=[
            log_request_middleware,
            recover_middleware,
            timeout_middleware,
        ]
    )

    app[SettingsAppKey] = settings

    app.add_routes(
        [
            web.static("/static", os.path.join(settings.ui_dir, "static")),
        ]
    )

    app.add_routes(
        [
            web.get("/", handle_home),
            web.get("/snippet/view", handle_snippet_view),
            web.route("*", "/snippet/create", handle_snippet_create),
            web.get("/ping", handle_ping),
        ]
    )

    env = aiohttp_jinja2.setup(
        app,
        enable_async=True,
        auto_reload=False,
        loader=jinja2.FileSystemLoader(os.path.join(settings.ui_dir, "html")),
    )
    configure_environment(env)

    engine = new_engine(settings.dsn)
    app[DatabaseAppKey] = engine
    database_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    app[DatabaseSessionMakerAppKey] = database_session
    app[SnippetsAppKey] = SnippetModel(database_session)

    store = DatabaseSessionStore(
        database_session,
        cookie_name=settings.session_cookie_name,
        max_age=int(settings.session_lifetime.total_seconds()),
        secure=settings.tls_enabled,
        httponly=True,
        samesite="Lax",
    )
    app[SessionStoreAppKey] = store
    aiohttp_session.setup(app, store)

    app.on_response_prepare.append(secure_headers)
    app.cleanup_ctx.append(background_tasks)

    return app


async def serve(settings: Settings) -> None:
    """
    Run the server until SIGINT or SIGTERM.

    The database is opened and the template cache is built before the socket is bound,
    so a startup failure never leaves a listener behind.

    Raises:
        Exception: Any startup failure (database, templates, TLS material, bind)
    """
    host, port = parse_address(settings.addr)

    app = await start_web_server(settings)
    runner = web.AppRunner(
        app,
        access_log=None,
        keepalive_timeout=settings.idle_timeout,
        max_line_size=settings.max_header_bytes,
        max_field_size=settings.max_header_bytes,
    )
    await runner.setup()

    try:
        ssl_context = None
        if settings.tls_enabled:
            ssl_context = build_ssl_context(
                FileCertificateProvider(settings.tls_cert_file, settings.tls_key_file)
            )

        site = web.TCPSite(runner, host, port, ssl_context=ssl_context)
        await site.start()

        logger.info("Starting server on %s", settings.addr)

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        await stop.wait()
        logger.info("Stopping server")
    finally:
        await runner.cleanup()
