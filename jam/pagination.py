import logging
import time
from typing import Callable, List, Sequence, Tuple

from fastapi import Query
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jam.schemas import Page

logger = logging.getLogger(__name__)

MAX_LIMIT = 100


class PageParams:
    """limit/offset query parameters with a per-endpoint default limit."""

    def __init__(self, limit: int, offset: int) -> None:
        self.limit = limit
        self.offset = offset


def page_params(default_limit: int) -> Callable[..., PageParams]:
    def dependency(
        limit: int = Query(default_limit, ge=1, le=MAX_LIMIT),
        offset: int = Query(0, ge=0),
    ) -> PageParams:
        return PageParams(limit, offset)

    return dependency


def build_page(data: Sequence, limit: int, offset: int, total: int) -> Page:
    return Page(data=list(data), limit=limit, offset=offset, total=total, has_more=offset + limit < total)


def empty_page(limit: int, offset: int) -> Page:
    return build_page([], limit, offset, 0)


def limit_statement_time(db: Session) -> None:
    """Cap statements for the rest of the current transaction."""
    timeout = db.info.get("read_timeout")
    if not timeout or db.get_bind().dialect.name != "postgresql":
        return
    # SET takes no bind parameters; the value is always an int
    db.execute(text(f"SET LOCAL statement_timeout = {int(timeout * 1000)}"))


def read_page(
    db: Session,
    name: str,
    params: PageParams,
    fetch: Callable[[], Tuple[List, int]],
) -> Page:
    """Run a paginated read, degrading to an empty page when the datastore fails.

    ``fetch`` returns ``(items, total)``. Domain errors raised inside it are
    not caught. On Postgres the read is bounded by the session's
    ``read_timeout``.
    """
    started = time.monotonic()
    try:
        limit_statement_time(db)
        data, total = fetch()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("%s failed after %.0fms, returning empty page: %s",
                       name, (time.monotonic() - started) * 1000, exc)
        return empty_page(params.limit, params.offset)
    logger.debug("%s returned %d of %d rows in %.0fms",
                 name, len(data), total, (time.monotonic() - started) * 1000)
    return build_page(data, params.limit, params.offset, total)
