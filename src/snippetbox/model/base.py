from datetime import datetime, timezone

from sqlalchemy import String, orm

from typing_extensions import Annotated

str43 = Annotated[str, 43]
str100 = Annotated[str, 100]


class Base(orm.DeclarativeBase):
    type_annotation_map = {
        str43: String(43),
        str100: String(100),
    }


def utc_now() -> datetime:
    """Current time as a naive UTC datetime, matching how DATETIME columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
