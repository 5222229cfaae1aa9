"""Tests for credentials.py — OAuth state and per-role session tokens."""

import os
import sys
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from spotipy.oauth2 import SpotifyOauthError

import credentials
from errors import InvalidState

NOW = 1_700_000_000_000
HOUR_MS = 3600 * 1000


def saved_session(role="source", expires_in=3600, refresh_token="refresh-1", now=NOW):
    session = {}
    credentials.save_tokens(session, role, {
        "access_token": "access-1",
        "refresh_token": refresh_token,
        "expires_in": expires_in,
    }, now_ms=now)
    return session


# ---------------------------------------------------------------------------
# OAuth state
# ---------------------------------------------------------------------------

class TestState:
    def test_build(self):
        assert credentials.build_state("source", "mega-playlist", now_ms=123) == "source_mega-playlist_123"

    def test_build_without_mode(self):
        assert credentials.build_state("target", now_ms=5) == "target_none_5"

    def test_round_trip(self):
        state = credentials.build_state("target", "full-migration", now_ms=NOW)
        assert credentials.parse_state(state) == ("target", "full-migration", NOW)

    def test_none_mode_parses_to_none(self):
        assert credentials.parse_state("source_none_42") == ("source", None, 42)

    @pytest.mark.parametrize("state", [
        "",
        None,
        "source",
        "source_full-migration",
        "admin_none_1",
        "source_none_notanumber",
        "source_liked_songs_playlist_1",
    ])
    def test_rejects_bad_state(self, state):
        with pytest.raises(InvalidState):
            credentials.parse_state(state)

    def test_build_rejects_unknown_role(self):
        with pytest.raises(InvalidState):
            credentials.build_state("admin")

    @patch.object(credentials, "create_oauth")
    def test_authorize_url_carries_state(self, mock_oauth):
        mock_oauth.return_value.get_authorize_url.return_value = "https://accounts.spotify.com/authorize?x=1"
        assert credentials.authorize_url("source", "liked-songs-playlist") == (
            "https://accounts.spotify.com/authorize?x=1"
        )
        state = mock_oauth.return_value.get_authorize_url.call_args.kwargs["state"]
        assert state.startswith("source_liked-songs-playlist_")

    @patch.object(credentials, "create_oauth")
    def test_exchange_code(self, mock_oauth):
        mock_oauth.return_value.get_access_token.return_value = {"access_token": "a"}
        assert credentials.exchange_code("the-code") == {"access_token": "a"}
        mock_oauth.return_value.get_access_token.assert_called_once_with(
            "the-code", as_dict=True, check_cache=False,
        )


# ---------------------------------------------------------------------------
# Session storage
# ---------------------------------------------------------------------------

class TestSessionTokens:
    def test_save_tokens(self):
        session = saved_session()
        assert session == {
            "source_access_token": "access-1",
            "source_refresh_token": "refresh-1",
            "source_expires_at": NOW + HOUR_MS,
        }

    def test_roles_kept_apart(self):
        session = saved_session("source")
        credentials.save_tokens(session, "target", {"access_token": "t", "expires_in": 60}, now_ms=NOW)
        assert session["source_access_token"] == "access-1"
        assert session["target_access_token"] == "t"
        assert "target_refresh_token" not in session

    def test_clear_tokens_one_role(self):
        session = saved_session("source")
        credentials.save_tokens(session, "target", {"access_token": "t", "expires_in": 60}, now_ms=NOW)
        credentials.clear_tokens(session, "source")
        assert not credentials.is_connected(session, "source")
        assert credentials.is_connected(session, "target")

    def test_clear_when_absent(self):
        session = {}
        credentials.clear_tokens(session, "target")
        assert session == {}

    def test_unknown_role(self):
        with pytest.raises(InvalidState):
            credentials.get_access_token({}, "admin")


# ---------------------------------------------------------------------------
# get_access_token()
# ---------------------------------------------------------------------------

class TestGetAccessToken:
    @patch.object(credentials, "create_oauth")
    def test_valid_token_returned_without_refresh(self, mock_oauth):
        session = saved_session()
        assert credentials.get_access_token(session, "source", now_ms=NOW + 1000) == "access-1"
        mock_oauth.assert_not_called()

    def test_nothing_stored(self):
        assert credentials.get_access_token({}, "source", now_ms=NOW) is None

    @patch.object(credentials, "create_oauth")
    def test_expired_token_refreshed(self, mock_oauth):
        mock_oauth.return_value.refresh_access_token.return_value = {
            "access_token": "access-2", "expires_in": 3600,
        }
        session = saved_session()
        later = NOW + 2 * HOUR_MS
        assert credentials.get_access_token(session, "source", now_ms=later) == "access-2"
        mock_oauth.return_value.refresh_access_token.assert_called_once_with("refresh-1")
        assert session["source_access_token"] == "access-2"
        assert session["source_expires_at"] == later + HOUR_MS
        assert session["source_refresh_token"] == "refresh-1"

    @patch.object(credentials, "create_oauth")
    def test_token_near_expiry_refreshed(self, mock_oauth):
        mock_oauth.return_value.refresh_access_token.return_value = {
            "access_token": "access-2", "expires_in": 3600,
        }
        session = saved_session()
        almost = NOW + HOUR_MS - 60 * 1000
        assert credentials.get_access_token(session, "source", now_ms=almost) == "access-2"

    def test_expired_without_refresh_token(self):
        session = saved_session(refresh_token=None)
        assert credentials.get_access_token(session, "source", now_ms=NOW + 2 * HOUR_MS) is None

    @patch.object(credentials, "create_oauth")
    def test_refresh_failure_on_expired_token(self, mock_oauth):
        mock_oauth.return_value.refresh_access_token.side_effect = SpotifyOauthError("invalid_grant")
        session = saved_session()
        assert credentials.get_access_token(session, "source", now_ms=NOW + 2 * HOUR_MS) is None

    @patch.object(credentials, "create_oauth")
    def test_refresh_failure_falls_back_to_unexpired_token(self, mock_oauth):
        mock_oauth.return_value.refresh_access_token.side_effect = SpotifyOauthError("invalid_grant")
        session = saved_session()
        almost = NOW + HOUR_MS - 60 * 1000
        assert credentials.get_access_token(session, "source", now_ms=almost) == "access-1"
