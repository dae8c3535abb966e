"""Helpers for SoundCloud's ``linked_partitioning`` pagination.

List endpoints return pages shaped like::

    {"collection": [...], "next_href": "https://api.soundcloud.com/...?cursor=..."}

A missing, null or empty ``next_href`` is the only end-of-stream signal. Pages
are fetched strictly one after another, and only when the consumer asks for
more, so item order always matches the API's delivery order.
"""

from contextlib import aclosing
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

Page = Dict[str, Any]
FirstPage = Callable[[], Awaitable[Page]]
FetchNext = Callable[[str], Awaitable[Page]]


def _items(page: Optional[Page]) -> List[Any]:
    collection = (page or {}).get("collection")
    return list(collection) if isinstance(collection, list) else []


def _next_href(page: Optional[Page]) -> Optional[str]:
    href = (page or {}).get("next_href")
    return str(href) if href else None


async def paginate(first_page: FirstPage, fetch_next: FetchNext) -> AsyncIterator[List[Any]]:
    """Yield each page's ``collection``, following ``next_href`` until it runs out."""

    page = await first_page()
    yield _items(page)

    next_href = _next_href(page)
    while next_href:
        page = await fetch_next(next_href)
        yield _items(page)
        next_href = _next_href(page)


async def paginate_items(first_page: FirstPage, fetch_next: FetchNext) -> AsyncIterator[Any]:
    """Yield individual items across all pages, in page order."""

    async with aclosing(paginate(first_page, fetch_next)) as pages:
        async for items in pages:
            for item in items:
                yield item


async def fetch_all(
    first_page: FirstPage,
    fetch_next: FetchNext,
    *,
    max_items: Optional[int] = None,
) -> List[Any]:
    """Collect every item into one list.

    max_items:
      Optional cap. Collection stops as soon as it is reached, so no further
      page is requested once enough items are in hand.
    """

    result: List[Any] = []
    if max_items is not None and int(max_items) <= 0:
        return result

    async with aclosing(paginate_items(first_page, fetch_next)) as items:
        async for item in items:
            result.append(item)
            if max_items is not None and len(result) >= int(max_items):
                break

    return result
