"""
Paginated full-scan reader.

The backing store truncates unpaginated reads at a fixed row limit, so every
aggregation in the review core reads whole tables through fetch_all(), which
keeps requesting fixed-size pages until a short page comes back.

Pages are keyset pages: each request asks for the rows sorting after the last
row already read. A row that leaves the filtered set mid-scan (a pending
recording resolved by another reviewer) therefore never shifts later rows
out of view, which OFFSET paging would do.
"""

from typing import Any, AsyncIterator, Optional, Sequence

import structlog
from sqlalchemy import Select, and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from voicereview.config import settings
from voicereview.observability.metrics import full_scan_pages_total, full_scan_rows
from voicereview.review.errors import StoreUnavailable

logger = structlog.get_logger(__name__)


def _after(keys: Sequence[Any], last: Sequence[Any]):
    """Rows whose (key1, key2, ...) sorts strictly after `last`."""
    clauses = []
    for i, key in enumerate(keys):
        ties = [keys[j] == last[j] for j in range(i)]
        clauses.append(and_(*ties, key > last[i]))
    return or_(*clauses)


async def iter_pages(
    session: AsyncSession,
    stmt: Select,
    keys: Sequence[Any],
    page_size: Optional[int] = None,
    scalars: bool = True,
    label: str = "scan",
) -> AsyncIterator[list[Any]]:
    """
    Yield successive pages of `stmt`, ordered by `keys`, until exhausted.

    `keys` are non-null columns that together identify a row, most
    significant first; the reader adds the ORDER BY itself, so `stmt` must
    not carry one. In row mode (`scalars=False`) the key columns must be part
    of the select list.

    A failed page request raises StoreUnavailable and ends the iteration;
    nothing read so far is reported as complete.
    """
    keys = list(keys)
    if not keys:
        raise ValueError("at least one ordering key is required")
    size = settings.SCAN_PAGE_SIZE if page_size is None else page_size
    if size < 1:
        raise ValueError(f"page_size must be positive, got {size}")

    ordered = stmt.order_by(*keys)
    if scalars:
        ordered = ordered.add_columns(*(k.label(f"page_key_{i}") for i, k in enumerate(keys)))

    page = 0
    last = None
    while True:
        paged = ordered if last is None else ordered.where(_after(keys, last))
        try:
            result = await session.execute(paged.limit(size))
            rows = list(result.all())
        except SQLAlchemyError as e:
            logger.error("full_scan_page_failed", label=label, page=page, error=str(e))
            raise StoreUnavailable(f"page {page} of {label} scan failed: {e}") from e

        full_scan_pages_total.labels(label=label).inc()
        if scalars:
            records = [row[0] for row in rows]
            if rows:
                last = tuple(rows[-1][-len(keys):])
        else:
            records = rows
            if rows:
                last = tuple(getattr(rows[-1], k.key) for k in keys)

        if records:
            yield records
        if len(records) < size:
            return
        page += 1


async def fetch_all(
    session: AsyncSession,
    stmt: Select,
    keys: Sequence[Any],
    page_size: Optional[int] = None,
    scalars: bool = True,
    label: str = "scan",
) -> list[Any]:
    """Return the complete result of `stmt` in `keys` order, read page by page."""
    records: list[Any] = []
    pages = 0
    async for rows in iter_pages(
        session, stmt, keys, page_size=page_size, scalars=scalars, label=label
    ):
        records.extend(rows)
        pages += 1

    full_scan_rows.labels(label=label).observe(len(records))
    logger.debug("full_scan_completed", label=label, pages=pages, rows=len(records))
    return records
