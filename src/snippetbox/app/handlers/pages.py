"""
Snippet Page Handlers

This module implements the user-facing pages of Snippetbox.

The handlers in this module provide the following endpoints:
- GET / - Home page with the latest snippets
- GET /snippet/view?id=N - Display a single snippet
- POST /snippet/create - Create a snippet and redirect to it

Every handler validates its input before touching the database. Validation failures are
answered with a 4xx status and a plain-text body; internal failures are logged and
answered with a generic 500.
"""

from http import HTTPStatus
import logging
from typing import Dict, Optional

from aiohttp import web
from aiohttp_session import get_session

from snippetbox.app.config import SnippetsAppKey
from snippetbox.app.handlers.helpers import (
    client_error,
    new_template_data,
    not_found,
    read_form,
    render,
    server_error,
)
from snippetbox.model.snippets import NoRecordError

logger = logging.getLogger(__name__)

ALLOWED_EXPIRES_DAYS = (1, 7, 365)
DEFAULT_EXPIRES_DAYS = 365
MAX_TITLE_LENGTH = 100


def parse_snippet_id(raw: Optional[str]) -> Optional[int]:
    """
    Parse a snippet id from a query string value.

    Returns None unless the value is a decimal integer greater than or equal to 1. A single
    leading plus sign is accepted.
    """
    if raw and raw.startswith("+"):
        raw = raw[1:]
    if not raw or not raw.isascii() or not raw.isdigit():
        return None
    snippet_id = int(raw)
    if snippet_id < 1:
        return None
    return snippet_id


def validate_snippet_form(
    title: str, content: str, expires: str
) -> Dict[str, str]:
    """Return a mapping of field name to error message; empty when the form is valid."""
    errors: Dict[str, str] = {}

    if not title.strip():
        errors["title"] = "This field cannot be blank"
    elif len(title) > MAX_TITLE_LENGTH:
        errors["title"] = f"This field cannot be more than {MAX_TITLE_LENGTH} characters long"

    if not content.strip():
        errors["content"] = "This field cannot be blank"

    if not expires.isascii() or not expires.isdigit() or int(expires) not in ALLOWED_EXPIRES_DAYS:
        errors["expires"] = "This field must equal 1, 7 or 365"

    return errors


async def handle_home(request: web.Request):
    if request.path != "/":
        return not_found()

    try:
        snippets = await request.app[SnippetsAppKey].latest()
    except Exception as e:
        return server_error(request, e)

    data = await new_template_data(request)
    data["snippets"] = snippets
    return await render(request, "home.tmpl.html", data)


async def handle_snippet_view(request: web.Request):
    snippet_id = parse_snippet_id(request.query.get("id"))
    if snippet_id is None:
        return not_found()

    try:
        snippet = await request.app[SnippetsAppKey].get(snippet_id)
    except NoRecordError:
        return not_found()
    except Exception as e:
        return server_error(request, e)

    logger.info("Display snippet with ID %d", snippet_id)

    data = await new_template_data(request)
    data["snippet"] = snippet
    return await render(request, "view.tmpl.html", data)


async def handle_snippet_create(request: web.Request):
    if request.method != "POST":
        raise web.HTTPMethodNotAllowed(
            request.method,
            ["POST"],
            text=HTTPStatus.METHOD_NOT_ALLOWED.phrase,
        )

    form = await read_form(request)
    title = str(form.get("title", ""))
    content = str(form.get("content", ""))
    expires = str(form.get("expires", DEFAULT_EXPIRES_DAYS))

    errors = validate_snippet_form(title, content, expires)
    if errors:
        logger.info("Rejected snippet form: %s", errors)
        return client_error(HTTPStatus.BAD_REQUEST)

    try:
        snippet_id = await request.app[SnippetsAppKey].insert(
            title, content, int(expires)
        )
    except Exception as e:
        return server_error(request, e)

    logger.info("Created snippet with ID %d", snippet_id)

    session = await get_session(request)
    session["flash"] = "Snippet successfully created!"

    raise web.HTTPSeeOther(f"/snippet/view?id={snippet_id}")
