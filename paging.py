"""Exhaustive pagination over Spotify listing endpoints.

Both walkers are generators: items come out page by page, and a sweep is
one-shot. Starting over means calling again.
"""

import time

from retry import with_backoff

DELAY_BETWEEN_PAGES = 0.1  # seconds; keeps sequential sweeps under the rate limit


def paginate(fetch_page, limit, on_page=None, delay=None):
    """Walk an offset-paged listing until it is exhausted.

    fetch_page(limit=..., offset=...) must return a Spotify paging object
    ({"items": [...], "total": N, ...}). The walk stops on a short page, or
    once offset + limit reaches a reported total. A full page with no total
    is always followed by one more fetch.

    on_page(n) is called after each page with the number of items so far.
    """
    if delay is None:
        delay = DELAY_BETWEEN_PAGES
    offset = 0
    seen = 0
    while True:
        page = with_backoff(lambda: fetch_page(limit=limit, offset=offset))
        items = page.get("items") or []
        seen += len(items)
        yield from items
        if on_page:
            on_page(seen)

        if len(items) < limit:
            break
        total = page.get("total")
        if total is not None and offset + limit >= total:
            break
        offset += limit
        time.sleep(delay)


def paginate_cursor(fetch_page, limit, key, on_page=None, delay=None):
    """Walk a cursor-paged listing (e.g. followed artists).

    fetch_page(limit=..., after=...) returns {key: {"items", "next", "cursors"}}.
    The walk ends when the listing reports no next page.
    """
    if delay is None:
        delay = DELAY_BETWEEN_PAGES
    after = None
    seen = 0
    while True:
        page = with_backoff(lambda: fetch_page(limit=limit, after=after))
        listing = page.get(key) or {}
        items = listing.get("items") or []
        seen += len(items)
        yield from items
        if on_page:
            on_page(seen)

        if not listing.get("next") or not items:
            break
        after = (listing.get("cursors") or {}).get("after") or items[-1]["id"]
        time.sleep(delay)
