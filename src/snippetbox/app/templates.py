"""Template cache built once at startup.

Every page is a Jinja2 template under html/pages/ that extends html/base.tmpl.html, which in
turn includes the partials under html/partials/. All of them are compiled eagerly so that a
missing or malformed file stops the process at startup instead of failing a request later.
"""

from datetime import datetime
from typing import Dict

import jinja2

PAGES = ("home.tmpl.html", "view.tmpl.html")
BASE = "base.tmpl.html"
PARTIALS = ("partials/nav.tmpl.html",)


class TemplateNotFoundError(Exception):
    """The requested page is not in the template cache."""


def human_date(value: datetime) -> str:
    if value is None:
        return ""
    return value.strftime("%d %b %Y at %H:%M")


def configure_environment(env: jinja2.Environment) -> jinja2.Environment:
    """Register the filters the page templates rely on."""
    env.filters["human_date"] = human_date
    return env


def new_template_cache(env: jinja2.Environment) -> Dict[str, jinja2.Template]:
    """
    Compile every page, keyed by page file name.

    Raises:
        jinja2.TemplateNotFound: If a page, the base layout or a partial is missing
        jinja2.TemplateSyntaxError: If any of them fails to parse
    """
    # {% extends %} and {% include %} are resolved at render time, so the shared files are
    # loaded here explicitly.
    env.get_template(BASE)
    for partial in PARTIALS:
        env.get_template(partial)

    cache: Dict[str, jinja2.Template] = {}
    for page in PAGES:
        cache[page] = env.get_template(f"pages/{page}")
    return cache


async def render_page(
    cache: Dict[str, jinja2.Template], page: str, **context
) -> str:
    """
    Render a cached page to a string.

    Nothing is written to the client until the whole page has rendered.

    Raises:
        TemplateNotFoundError: If the page is not in the cache
    """
    template = cache.get(page)
    if template is None:
        raise TemplateNotFoundError(f"the template {page} does not exist")
    return await template.render_async(**context)
