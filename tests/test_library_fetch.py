"""Tests for library_fetch.py — mocked Spotify account, no network."""

import os
import sys
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

import library_fetch
import paging
from errors import NotAuthenticated
from models import LibrarySnapshot, PlaylistSnapshot


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def paged(items):
    """side_effect for an offset-paged spotipy listing method."""
    def fetch(*args, limit=50, offset=0, **kwargs):
        return {"items": items[offset:offset + limit], "total": len(items)}
    return fetch


def paged_by_key(listings):
    """side_effect for playlist_items/album_tracks: first positional arg picks the listing."""
    def fetch(key, limit=50, offset=0, **kwargs):
        items = listings.get(key, [])
        return {"items": items[offset:offset + limit], "total": len(items)}
    return fetch


def track_item(tid):
    return {"track": {"id": tid, "name": f"Song {tid}"}}


def make_account(liked=(), playlists=(), albums=(), artists=()):
    """Build a MagicMock Spotify client.

    playlists: list of (id, name, track_ids, public, description)
    albums:    list of (id, name, track_ids)
    """
    sp = MagicMock()
    sp.current_user_saved_tracks.side_effect = paged([track_item(t) for t in liked])
    sp.current_user_playlists.side_effect = paged([
        {"id": pid, "name": name, "public": public, "description": description}
        for pid, name, _, public, description in playlists
    ])
    sp.playlist_items.side_effect = paged_by_key({
        pid: [track_item(t) for t in tracks] for pid, _, tracks, _, _ in playlists
    })
    sp.current_user_saved_albums.side_effect = paged([
        {"album": {"id": aid, "name": name}} for aid, name, _ in albums
    ])
    sp.album_tracks.side_effect = paged_by_key({
        aid: [{"id": t} for t in tracks] for aid, _, tracks in albums
    })
    sp.current_user_followed_artists.return_value = {
        "artists": {"items": [{"id": a} for a in artists], "next": None, "cursors": {"after": None}},
    }
    return sp


@pytest.fixture(autouse=True)
def no_delays(monkeypatch):
    monkeypatch.setattr(paging, "DELAY_BETWEEN_PAGES", 0)


@pytest.fixture
def road_trip_account():
    return make_account(
        liked=["A", "B", "C"],
        playlists=[("pl1", "Road Trip", ["X", "Y"], True, "")],
        albums=[("alb1", "Album One", ["T1", "T2", "T3"])],
        artists=["art1"],
    )


# ---------------------------------------------------------------------------
# collect_library(): structured mode
# ---------------------------------------------------------------------------

class TestCollectLibrary:
    def test_full_snapshot(self, road_trip_account):
        snapshot = library_fetch.collect_library(road_trip_account)
        assert snapshot == LibrarySnapshot(
            saved_tracks=["A", "B", "C"],
            playlists=[PlaylistSnapshot(
                id="pl1", name="Road Trip", description="", tracks=["X", "Y"], is_public=True,
            )],
            saved_albums=["alb1"],
            followed_artists=["art1"],
        )
        assert snapshot.counts() == {"likedSongs": 3, "playlists": 1, "albums": 1, "artists": 1}

    def test_album_tracks_not_fetched(self, road_trip_account):
        library_fetch.collect_library(road_trip_account)
        road_trip_account.album_tracks.assert_not_called()

    def test_no_cross_category_dedup(self):
        sp = make_account(
            liked=["T"],
            playlists=[
                ("p1", "One", ["T", "U"], False, ""),
                ("p2", "Two", ["T"], False, ""),
            ],
        )
        snapshot = library_fetch.collect_library(sp)
        assert snapshot.saved_tracks == ["T"]
        assert [p.tracks for p in snapshot.playlists] == [["T", "U"], ["T"]]

    def test_playlist_keeps_order_and_duplicates(self):
        sp = make_account(playlists=[("p1", "Loop", ["B", "A", "B"], False, "")])
        snapshot = library_fetch.collect_library(sp)
        assert snapshot.playlists[0].tracks == ["B", "A", "B"]

    def test_missing_description_and_visibility(self):
        sp = make_account(playlists=[("p1", "Quiet", ["A"], None, None)])
        pl = library_fetch.collect_library(sp).playlists[0]
        assert pl.description == ""
        assert pl.is_public is False

    def test_local_and_removed_tracks_skipped(self):
        sp = make_account()
        sp.current_user_saved_tracks.side_effect = paged([
            track_item("A"), {"track": None}, {"track": {"id": None, "name": "local"}}, track_item("B"),
        ])
        assert library_fetch.collect_library(sp).saved_tracks == ["A", "B"]

    def test_playlist_tracks_fetched_with_track_type(self):
        sp = make_account(playlists=[("p1", "One", ["A"], False, "")])
        library_fetch.collect_library(sp)
        _, kwargs = sp.playlist_items.call_args
        assert kwargs["additional_types"] == ("track",)
        assert kwargs["limit"] == library_fetch.PLAYLIST_TRACKS_PAGE

    def test_large_playlist_paginated(self):
        tracks = [f"t{i}" for i in range(230)]
        sp = make_account(playlists=[("p1", "Big", tracks, False, "")])
        snapshot = library_fetch.collect_library(sp)
        assert snapshot.playlists[0].tracks == tracks
        assert sp.playlist_items.call_count == 3

    def test_empty_account(self):
        snapshot = library_fetch.collect_library(make_account())
        assert snapshot == LibrarySnapshot()

    def test_liked_only_mode(self, road_trip_account):
        snapshot = library_fetch.collect_library(road_trip_account, library_fetch.MODE_LIKED_ONLY)
        assert snapshot == LibrarySnapshot(saved_tracks=["A", "B", "C"])
        road_trip_account.current_user_playlists.assert_not_called()
        road_trip_account.current_user_saved_albums.assert_not_called()
        road_trip_account.current_user_followed_artists.assert_not_called()

    def test_not_authenticated(self):
        with pytest.raises(NotAuthenticated):
            library_fetch.collect_library(None)

    def test_unknown_mode(self, road_trip_account):
        with pytest.raises(ValueError):
            library_fetch.collect_library(road_trip_account, "everything")

    def test_progress_stages(self, road_trip_account):
        report = MagicMock()
        library_fetch.collect_library(road_trip_account, report=report)
        stages = [c.args[0] for c in report.call_args_list]
        assert stages[0] == "Starting..."
        assert "Playlist: Road Trip" in stages
        assert report.call_args_list[stages.index("Liked songs fetched")].args[1] == 3
        assert stages[-1] == "Followed artists fetched"


# ---------------------------------------------------------------------------
# fetch_followed_artists(): cursor pagination
# ---------------------------------------------------------------------------

class TestFollowedArtists:
    def test_walks_cursor_pages(self):
        sp = MagicMock()
        sp.current_user_followed_artists.side_effect = [
            {"artists": {"items": [{"id": "a1"}, {"id": "a2"}], "next": "http://next",
                         "cursors": {"after": "a2"}}},
            {"artists": {"items": [{"id": "a3"}], "next": None, "cursors": {"after": None}}},
        ]
        assert library_fetch.fetch_followed_artists(sp) == ["a1", "a2", "a3"]
        second = sp.current_user_followed_artists.call_args_list[1]
        assert second.kwargs == {"limit": library_fetch.FOLLOWED_ARTISTS_PAGE, "after": "a2"}


# ---------------------------------------------------------------------------
# collect_pooled_tracks() / collect_liked_tracks()
# ---------------------------------------------------------------------------

class TestPooledTracks:
    def test_dedup_across_categories(self):
        sp = make_account(
            liked=["T", "A"],
            playlists=[("p1", "One", ["T", "B"], False, ""), ("p2", "Two", ["B", "T"], False, "")],
            albums=[("alb1", "Album", ["C", "T"])],
        )
        assert library_fetch.collect_pooled_tracks(sp) == ["T", "A", "B", "C"]

    def test_road_trip_pool(self, road_trip_account):
        pooled = library_fetch.collect_pooled_tracks(road_trip_account)
        assert pooled == ["A", "B", "C", "X", "Y", "T1", "T2", "T3"]
        road_trip_account.current_user_followed_artists.assert_not_called()

    def test_empty(self):
        assert library_fetch.collect_pooled_tracks(make_account()) == []

    def test_not_authenticated(self):
        with pytest.raises(NotAuthenticated):
            library_fetch.collect_pooled_tracks(None)


class TestLikedTracks:
    def test_keeps_library_order(self):
        sp = make_account(liked=["C", "A", "B"], playlists=[("p1", "One", ["Z"], False, "")])
        assert library_fetch.collect_liked_tracks(sp) == ["C", "A", "B"]
        sp.current_user_playlists.assert_not_called()

    def test_not_authenticated(self):
        with pytest.raises(NotAuthenticated):
            library_fetch.collect_liked_tracks(None)
