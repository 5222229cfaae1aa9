"""Per-account OAuth tokens and the authorization-code round trip.

Tokens live in the caller's session (the web app passes Flask's signed,
http-only session cookie), three fields per role:

    <role>_access_token, <role>_refresh_token, <role>_expires_at (epoch ms)

The OAuth `state` carries the role and UI mode through the redirect as
"<role>_<mode|none>_<epoch-ms>".
"""

import time

import requests
from spotipy.oauth2 import SpotifyOauthError

from errors import InvalidState
from log_setup import get_logger
from spotify_client import create_oauth

ROLES = ("source", "target")
STATE_SEPARATOR = "_"
NO_MODE = "none"

REFRESH_TOKEN_MAX_AGE = 60 * 60 * 24 * 30  # 30 days, seconds
REFRESH_SKEW_MS = 5 * 60 * 1000  # refresh when less than 5 minutes remain

log = get_logger("credentials")


def _now_ms():
    return int(time.time() * 1000)


def _fields(role):
    return f"{role}_access_token", f"{role}_refresh_token", f"{role}_expires_at"


def check_role(role):
    if role not in ROLES:
        raise InvalidState(f"unknown account role: {role!r}")
    return role


# --- OAuth state ---

def build_state(role, mode=None, now_ms=None):
    check_role(role)
    stamp = now_ms if now_ms is not None else _now_ms()
    return STATE_SEPARATOR.join([role, mode or NO_MODE, str(stamp)])


def parse_state(state):
    """Split a state string back into (role, mode or None, timestamp ms).

    Raises InvalidState for anything that did not come from build_state().
    """
    parts = (state or "").split(STATE_SEPARATOR)
    if len(parts) != 3:
        raise InvalidState(f"malformed state: {state!r}")
    role, mode, stamp = parts
    check_role(role)
    try:
        stamp = int(stamp)
    except ValueError:
        raise InvalidState(f"malformed state timestamp: {stamp!r}") from None
    return role, (None if mode == NO_MODE else mode), stamp


def authorize_url(role, mode=None):
    return create_oauth().get_authorize_url(state=build_state(role, mode))


def exchange_code(code):
    """Trade an authorization code for a token_info dict."""
    return create_oauth().get_access_token(code, as_dict=True, check_cache=False)


# --- Session storage ---

def save_tokens(session, role, token_info, now_ms=None):
    """Store a token_info from the token endpoint under role's three fields."""
    check_role(role)
    access_key, refresh_key, expires_key = _fields(role)
    now = now_ms if now_ms is not None else _now_ms()
    session[access_key] = token_info["access_token"]
    if token_info.get("refresh_token"):
        session[refresh_key] = token_info["refresh_token"]
    session[expires_key] = now + int(token_info.get("expires_in", 3600)) * 1000


def clear_tokens(session, role):
    """Forget role's tokens. Local only; nothing is revoked remotely."""
    check_role(role)
    for key in _fields(role):
        session.pop(key, None)


def _refresh(session, role, refresh_token, now_ms):
    log.info(f"Refreshing {role} access token...")
    try:
        token_info = create_oauth().refresh_access_token(refresh_token)
    except (SpotifyOauthError, requests.RequestException) as e:
        log.warning(f"  {role} token refresh failed: {e}")
        return None
    save_tokens(session, role, token_info, now_ms)
    log.info(f"✓ {role} token refreshed")
    return token_info["access_token"]


def get_access_token(session, role, now_ms=None):
    """Return a usable access token for role, or None.

    An access token past its expiry counts as absent. When it is expired or
    about to expire and a refresh token is stored, it is refreshed first.
    """
    check_role(role)
    access_key, refresh_key, expires_key = _fields(role)
    now = now_ms if now_ms is not None else _now_ms()

    token = session.get(access_key)
    refresh_token = session.get(refresh_key)
    expires_at = session.get(expires_key)

    if token and expires_at and now + REFRESH_SKEW_MS < expires_at:
        return token
    if refresh_token:
        refreshed = _refresh(session, role, refresh_token, now)
        if refreshed:
            return refreshed
    if token and expires_at and now < expires_at:
        return token
    return None


def is_connected(session, role):
    access_key, refresh_key, _ = _fields(check_role(role))
    return bool(session.get(access_key) or session.get(refresh_key))
