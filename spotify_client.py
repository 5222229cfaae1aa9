"""Spotify client and OAuth manager setup.

Every collection or migration run gets its own spotipy.Spotify built from
one access token. Clients are never shared between the source and target
accounts or between runs.
"""

import os

import requests as _requests
import spotipy
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOAuth

from config import CLIENT_ID, CLIENT_SECRET, DIR, REDIRECT_URI

API_BASE = "https://api.spotify.com/v1"
REQUEST_TIMEOUT = 5  # seconds, same as spotipy's default

SCOPES = " ".join([
    "user-library-read",
    "user-library-modify",
    "playlist-read-private",
    "playlist-read-collaborative",
    "playlist-modify-public",
    "playlist-modify-private",
    "user-follow-read",
    "user-follow-modify",
])


def _no_retry_session():
    """A requests session that never retries on its own; retry.py decides that."""
    session = _requests.Session()
    session.mount("https://", _requests.adapters.HTTPAdapter(max_retries=0))
    return session


def create_oauth(cache_path=None):
    """Return a SpotifyOAuth manager.

    Args:
        cache_path: Token cache file (CLI use). Without it tokens are kept in
                    memory only, which is what the web app wants: the browser
                    session is the only place tokens live between requests.
    """
    if cache_path:
        cache = {"cache_path": cache_path}
    else:
        cache = {"cache_handler": MemoryCacheHandler()}
    return SpotifyOAuth(
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_uri=REDIRECT_URI,
        scope=SCOPES,
        open_browser=False,
        **cache,
    )


def create_client(access_token):
    """Create a spotipy.Spotify bound to a single access token."""
    return spotipy.Spotify(auth=access_token, requests_session=_no_retry_session())


def create_cli_client(role):
    """Create a client for the CLI, caching the role's token next to the code.

    Each role has its own cache file so the source and target logins never
    overwrite each other.
    """
    cache_path = os.path.join(DIR, f".spotify_token_cache_{role}")
    return spotipy.Spotify(
        auth_manager=create_oauth(cache_path=cache_path),
        requests_session=_no_retry_session(),
    )


def access_token_of(sp):
    """Return the bearer token a client is using."""
    if sp.auth_manager is not None:
        return sp.auth_manager.get_access_token(as_dict=False)
    return sp._auth


def save_albums(sp, album_ids):
    """Save albums to the library using PUT /me/albums directly.

    The ids go in the `ids` query parameter as one literal comma-joined
    string, not in a JSON body like the other library writes.
    """
    token = access_token_of(sp)
    r = _requests.put(
        f"{API_BASE}/me/albums",
        headers={"Authorization": f"Bearer {token}"},
        params={"ids": ",".join(album_ids)},
        timeout=REQUEST_TIMEOUT,
    )
    if r.status_code not in (200, 201):
        raise spotipy.exceptions.SpotifyException(
            r.status_code, -1, f"{r.url}: {r.text}", headers=r.headers,
        )
