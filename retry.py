"""Bounded exponential-backoff retry around single Spotify calls.

Every page fetch and every write batch goes through with_backoff(). Only
rate limiting (429) and gateway/service unavailability (502, 503) are
retried; anything else, including auth failures and malformed requests,
reaches the caller on the first attempt.
"""

import time

import spotipy.exceptions

from log_setup import get_logger

MAX_RETRIES = 3
BASE_DELAY = 1.0  # seconds
TRANSIENT_STATUSES = frozenset({429, 502, 503})

log = get_logger("retry")


def is_transient(exc):
    """True if exc is a Spotify error worth retrying."""
    return (
        isinstance(exc, spotipy.exceptions.SpotifyException)
        and exc.http_status in TRANSIENT_STATUSES
    )


def with_backoff(call, max_retries=MAX_RETRIES, base_delay=BASE_DELAY):
    """Run call() and retry transient failures.

    Waits base_delay * 2**attempt seconds (attempt counts from 0) before each
    retry. The last failure, or the first non-transient one, is re-raised
    unchanged.
    """
    for attempt in range(max_retries):
        try:
            return call()
        except spotipy.exceptions.SpotifyException as e:
            if not is_transient(e) or attempt == max_retries - 1:
                raise
            wait = base_delay * 2 ** attempt
            log.warning(f"  Retry {attempt + 1}/{max_retries} after {wait:g}s (HTTP {e.http_status})")
            time.sleep(wait)
