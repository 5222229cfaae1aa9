"""
Web app for moving a Spotify library between two accounts.

Flow: connect the source account → fetch its library (progress streamed,
result kept by the browser) → connect the target account → migrate.
Alternatively, merge the source library into one new playlist.

Long-running endpoints stream Server-Sent Events by default; add ?stream=0
to get a single JSON response with an HTTP error status instead.
"""

from datetime import timedelta
from urllib.parse import urlencode

import requests
import spotipy.exceptions
from flask import Flask, Response, jsonify, redirect, request, session
from spotipy.oauth2 import SpotifyOauthError

import credentials
from config import COOKIE_SECURE, PORT, REDIRECT_URI, SECRET_KEY
from errors import EmptyLibrary, InvalidState, MissingMigrationData, NotAuthenticated
from library_fetch import MODE_FULL, MODE_LIKED_ONLY, collect_library
from library_migrate import build_liked_songs_playlist, build_mega_playlist, replicate_library
from log_setup import attach_library_loggers, get_logger
from models import LibrarySnapshot
from progress import SSE_HEADERS, SSE_MIMETYPE, LogReporter, ProgressStream, describe_failure
from spotify_client import create_client

# Modes the browser can pick; they travel through the OAuth state.
UI_MODES = ("full-migration", "mega-playlist", "liked-songs-playlist")

log = get_logger("app")
attach_library_loggers()

app = Flask(__name__)
app.secret_key = SECRET_KEY
app.config.update(
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_SECURE=COOKIE_SECURE,
    PERMANENT_SESSION_LIFETIME=timedelta(seconds=credentials.REFRESH_TOKEN_MAX_AGE),
)


# ============================================================================
# HELPERS
# ============================================================================

def _base_url():
    """Where the browser UI lives: the redirect URI without /api/callback."""
    suffix = "/api/callback"
    if REDIRECT_URI.endswith(suffix):
        return REDIRECT_URI[:-len(suffix)]
    return request.host_url.rstrip("/")


def _role_arg(value):
    return value if value in credentials.ROLES else None


def _client_for(role):
    """A fresh client for role's account, or None when it is not connected."""
    token = credentials.get_access_token(session, role)
    return create_client(token) if token else None


def collection_mode(ui_mode):
    return MODE_LIKED_ONLY if ui_mode == "liked-songs-playlist" else MODE_FULL


def _wants_stream():
    return request.args.get("stream", "1").lower() not in ("0", "false", "no")


def _respond(name, job):
    """Run job(report) -> payload dict, as an SSE stream or a JSON response."""
    if _wants_stream():
        stream = ProgressStream(name).start(job)
        return Response(stream, mimetype=SSE_MIMETYPE, headers=SSE_HEADERS)

    try:
        payload = job(LogReporter(log))
    except NotAuthenticated as e:
        return jsonify({"error": str(e)}), 401
    except (MissingMigrationData, EmptyLibrary) as e:
        return jsonify({"error": str(e)}), 400
    except spotipy.exceptions.SpotifyException as e:
        log.error(f"{name} failed: {e}")
        if e.http_status == 401:
            return jsonify({"error": "Not authenticated"}), 401
        return jsonify({"error": f"{name} failed", "details": describe_failure(e)}), 500
    except Exception as e:
        log.error(f"{name} failed: {e}", exc_info=True)
        return jsonify({"error": f"{name} failed", "details": describe_failure(e)}), 500
    return jsonify({"success": True, **payload})


def _parse_snapshot(raw):
    if not raw:
        return None
    try:
        return LibrarySnapshot.from_dict(raw)
    except (ValueError, TypeError, AttributeError) as e:
        raise MissingMigrationData(f"Invalid migration data: {e}") from e


# ============================================================================
# OAUTH ENDPOINTS
# ============================================================================

@app.route("/api/auth")
def auth():
    account = _role_arg(request.args.get("account"))
    if not account:
        return jsonify({"error": "Invalid account parameter"}), 400
    mode = request.args.get("mode")
    if mode not in UI_MODES:
        mode = None
    log.info(f"Starting OAuth for {account} account (mode={mode})")
    return redirect(credentials.authorize_url(account, mode))


@app.route("/api/callback")
def callback():
    code = request.args.get("code")
    state = request.args.get("state")
    error = request.args.get("error")
    base = _base_url()

    if error:
        log.warning(f"Spotify authorization failed: {error}")
        return redirect(f"{base}/?{urlencode({'error': error})}")
    if not code or not state:
        return redirect(f"{base}/?error=missing_params")

    try:
        role, mode, _ = credentials.parse_state(state)
    except InvalidState as e:
        log.warning(f"Rejected OAuth callback: {e}")
        return redirect(f"{base}/?error=invalid_state")

    try:
        token_info = credentials.exchange_code(code)
    except (SpotifyOauthError, requests.RequestException, KeyError) as e:
        log.error(f"Error getting tokens for {role}: {e}")
        return redirect(f"{base}/?error=auth_failed")

    session.permanent = True
    credentials.save_tokens(session, role, token_info)
    log.info(f"✓ {role} account connected")

    params = {"account": role, "status": "connected"}
    if mode:
        params["mode"] = mode
        params["step"] = "fetch-data" if role == "source" else "migrate"
    return redirect(f"{base}/?{urlencode(params)}")


@app.route("/api/logout", methods=["POST"])
def logout():
    body = request.get_json(silent=True) or {}
    account = _role_arg(body.get("account"))
    if not account:
        return jsonify({"error": "Invalid account parameter"}), 400
    credentials.clear_tokens(session, account)
    log.info(f"{account} account disconnected")
    return jsonify({"success": True})


@app.route("/api/user")
def user():
    account = _role_arg(request.args.get("account"))
    if not account:
        return jsonify({"error": "Invalid account parameter"}), 400
    if not credentials.is_connected(session, account):
        return jsonify({"error": "Not authenticated"}), 401

    sp = _client_for(account)
    if sp is None:
        return jsonify({"error": "Not authenticated"}), 401

    try:
        me = sp.current_user()
    except spotipy.exceptions.SpotifyException as e:
        log.error(f"Error fetching {account} user: {e}")
        return jsonify({
            "error": "Failed to fetch user data",
            "details": e.msg,
            "statusCode": e.http_status,
        }), 500

    return jsonify({
        "id": me.get("id"),
        "displayName": me.get("display_name"),
        "email": me.get("email"),
        "images": me.get("images") or [],
    })


# ============================================================================
# LIBRARY ENDPOINTS
# ============================================================================

@app.route("/api/fetch-data", methods=["POST"])
def fetch_data():
    body = request.get_json(silent=True) or {}
    mode = collection_mode(body.get("mode"))
    sp = _client_for("source")

    def job(report):
        snapshot = collect_library(sp, mode, report)
        return {"data": snapshot.to_dict(), "counts": snapshot.counts()}

    return _respond("fetch-data", job)


@app.route("/api/migrate", methods=["POST"])
def migrate():
    body = request.get_json(silent=True) or {}
    raw = body.get("migrationData")
    sp = _client_for("target")

    def job(report):
        result = replicate_library(sp, _parse_snapshot(raw), report)
        return {"results": result.to_dict()}

    return _respond("migrate", job)


def _consolidate(name, build):
    body = request.get_json(silent=True) or {}
    account = _role_arg(body.get("account", "source"))
    if not account:
        return jsonify({"error": "Invalid account parameter"}), 400
    source_sp = _client_for("source")
    target_sp = source_sp if account == "source" else _client_for(account)

    def job(report):
        return build(source_sp, target_sp, report).to_dict()

    return _respond(name, job)


@app.route("/api/create-mega-playlist", methods=["POST"])
def create_mega_playlist():
    return _consolidate("create-mega-playlist", build_mega_playlist)


@app.route("/api/create-liked-songs-playlist", methods=["POST"])
def create_liked_songs_playlist():
    return _consolidate("create-liked-songs-playlist", build_liked_songs_playlist)


if __name__ == "__main__":
    app.run(port=PORT, threaded=True)
