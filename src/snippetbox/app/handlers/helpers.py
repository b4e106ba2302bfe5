import asyncio
from datetime import datetime, timezone
from http import HTTPStatus
import logging
from typing import Any, Dict

from aiohttp import web
from aiohttp_session import Session, get_session, new_session
from multidict import MultiDictProxy
import sentry_sdk

from snippetbox.app.config import SettingsAppKey, TemplateCacheAppKey
from snippetbox.app.templates import render_page

logger = logging.getLogger(__name__)


def server_error(request: web.Request, exc: BaseException) -> web.Response:
    """
    Log an internal error and return a generic 500 response.

    The client never sees the error details; they are written to the error log together
    with the traceback and reported to Sentry when it is configured.
    """
    logger.error(
        "%s %s: %s: %s",
        request.method,
        request.path_qs,
        type(exc).__name__,
        exc,
        exc_info=exc,
    )
    sentry_sdk.capture_exception(exc)
    return web.Response(
        status=HTTPStatus.INTERNAL_SERVER_ERROR,
        text=HTTPStatus.INTERNAL_SERVER_ERROR.phrase,
    )


def client_error(status: int) -> web.Response:
    return web.Response(status=status, text=HTTPStatus(status).phrase)


def not_found() -> web.Response:
    return client_error(HTTPStatus.NOT_FOUND)


async def read_form(request: web.Request) -> MultiDictProxy:
    """
    Read and parse a form body, bounded by the configured read timeout.

    Raises:
        HTTPRequestTimeout: If the body is not received in time
    """
    settings = request.app[SettingsAppKey]
    deadline = asyncio.timeout(settings.read_timeout)
    try:
        async with deadline:
            return await request.post()
    except TimeoutError:
        if not deadline.expired():
            raise
        logger.warning("Timed out reading request body for %s", request.path)
        raise web.HTTPRequestTimeout(text=HTTPStatus.REQUEST_TIMEOUT.phrase)


async def new_template_data(request: web.Request) -> Dict[str, Any]:
    """
    Context shared by every page: the current year for the footer and the one-time flash
    message, which is removed from the session as it is read.
    """
    session = await get_session(request)
    return {
        "current_year": datetime.now(timezone.utc).year,
        "flash": session.pop("flash", ""),
    }


async def renew_session(request: web.Request) -> Session:
    """
    Move the current session data to a new token.

    Call this whenever the privilege level of a session changes. The old token is expired
    when the response is saved, and the new session starts a fresh lifetime.
    """
    data = dict(await get_session(request))
    session = await new_session(request)
    session.update(data)
    return session


async def render(
    request: web.Request,
    page: str,
    data: Dict[str, Any],
    status: int = HTTPStatus.OK,
) -> web.Response:
    """
    Render a cached page into a complete response.

    Any rendering failure is logged and turned into a single 500 response.
    """
    try:
        body = await render_page(request.app[TemplateCacheAppKey], page, **data)
    except Exception as e:
        return server_error(request, e)
    return web.Response(status=status, text=body, content_type="text/html")
