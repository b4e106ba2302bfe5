import asyncio
import logging
from typing import NoReturn

from aiohttp import web
import sentry_sdk

from snippetbox.app.config import SessionStoreAppKey, SettingsAppKey

logger = logging.getLogger(__name__)


async def session_cleanup_task(app: web.Application) -> NoReturn:
    """
    Delete expired sessions from the store at a fixed interval. The first sweep runs one
    interval after startup.
    """

    logger.info("Starting session cleanup task")

    settings = app[SettingsAppKey]
    store = app[SessionStoreAppKey]
    interval = settings.session_cleanup_interval.total_seconds()

    while True:
        await asyncio.sleep(interval)

        try:
            deleted = await store.delete_expired()
            if deleted:
                logger.info("Deleted %d expired sessions", deleted)
        except Exception as e:
            sentry_sdk.capture_exception(e)
            logger.exception("session_cleanup_task: Exception")
