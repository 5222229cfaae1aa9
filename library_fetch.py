"""Collect a Spotify account's library: liked songs, playlists, albums, artists.

All reads are sequential (one listing at a time, nested playlist/album
track listings done immediately) so a whole run stays under one rate limit.
Progress goes to a report(stage, count=0, total=None) callable.
"""

from errors import NotAuthenticated
from log_setup import get_logger
from models import LibrarySnapshot, PlaylistSnapshot
from paging import paginate, paginate_cursor

MODE_FULL = "full"
MODE_LIKED_ONLY = "liked-only"
MODES = (MODE_FULL, MODE_LIKED_ONLY)

SAVED_TRACKS_PAGE = 50
PLAYLISTS_PAGE = 50
PLAYLIST_TRACKS_PAGE = 100
SAVED_ALBUMS_PAGE = 50
ALBUM_TRACKS_PAGE = 50
FOLLOWED_ARTISTS_PAGE = 50

log = get_logger("fetch")


def _noop(stage, count=0, total=None):
    pass


def _require(sp):
    if sp is None:
        raise NotAuthenticated("Not authenticated")


def _track_id(item):
    """Track id of a saved-track or playlist-item entry, or None for local/removed tracks."""
    track = item.get("track") if item else None
    return track.get("id") if track else None


# --- Single listings ---

def fetch_saved_tracks(sp, report=_noop):
    """Return liked track ids, newest first."""
    report("Fetching liked songs...", 0)
    ids = []
    for item in paginate(
        sp.current_user_saved_tracks, SAVED_TRACKS_PAGE,
        on_page=lambda n: report("Fetching liked songs...", n),
    ):
        tid = _track_id(item)
        if tid:
            ids.append(tid)
    log.info(f"  Fetched {len(ids)} liked songs")
    return ids


def fetch_playlist_tracks(sp, playlist_id):
    """Return a playlist's track ids in playlist order, duplicates included."""
    def fetch_page(limit, offset):
        return sp.playlist_items(playlist_id, limit=limit, offset=offset, additional_types=("track",))

    return [tid for tid in map(_track_id, paginate(fetch_page, PLAYLIST_TRACKS_PAGE)) if tid]


def fetch_playlist_listing(sp):
    """Return the raw playlist objects of the current user (owned and followed)."""
    return [pl for pl in paginate(sp.current_user_playlists, PLAYLISTS_PAGE) if pl]


def fetch_playlists(sp, report=_noop):
    """Return a PlaylistSnapshot for every playlist, tracks fully fetched."""
    report("Fetching playlists...", 0)
    listing = fetch_playlist_listing(sp)
    log.info(f"  Found {len(listing)} playlists, fetching tracks...")

    snapshots = []
    for i, pl in enumerate(listing):
        report(f"Playlist: {pl.get('name', '')}", i, len(listing))
        tracks = fetch_playlist_tracks(sp, pl["id"])
        public = pl.get("public")
        snapshots.append(PlaylistSnapshot(
            id=pl["id"],
            name=pl.get("name") or "",
            description=pl.get("description") or "",
            tracks=tracks,
            is_public=bool(public) if public is not None else False,
        ))
        log.debug(f"  {pl.get('name')}: {len(tracks)} tracks")
    report("All playlists processed", len(snapshots), len(listing))
    return snapshots


def fetch_saved_album_listing(sp):
    """Return the raw album objects of the user's saved albums."""
    return [item["album"] for item in paginate(sp.current_user_saved_albums, SAVED_ALBUMS_PAGE)
            if item and item.get("album")]


def fetch_saved_albums(sp, report=_noop):
    """Return saved album ids."""
    report("Fetching albums...", 0)
    ids = [a["id"] for a in fetch_saved_album_listing(sp) if a.get("id")]
    report("Albums fetched", len(ids))
    log.info(f"  Fetched {len(ids)} saved albums")
    return ids


def fetch_album_tracks(sp, album_id):
    """Return every track id on an album."""
    def fetch_page(limit, offset):
        return sp.album_tracks(album_id, limit=limit, offset=offset)

    return [t["id"] for t in paginate(fetch_page, ALBUM_TRACKS_PAGE) if t and t.get("id")]


def fetch_followed_artists(sp, report=_noop):
    """Return followed artist ids (cursor-paged listing)."""
    report("Fetching followed artists...", 0)

    def fetch_page(limit, after):
        return sp.current_user_followed_artists(limit=limit, after=after)

    ids = [a["id"] for a in paginate_cursor(
        fetch_page, FOLLOWED_ARTISTS_PAGE, "artists",
        on_page=lambda n: report("Fetching followed artists...", n),
    ) if a and a.get("id")]
    log.info(f"  Fetched {len(ids)} followed artists")
    return ids


# --- Whole-library runs ---

def collect_library(sp, mode=MODE_FULL, report=_noop):
    """Collect a structured LibrarySnapshot for replay into another account.

    No deduplication across categories: a track that is liked and sits in two
    playlists appears once in saved_tracks and once in each playlist.
    In liked-only mode the other categories stay empty.
    """
    _require(sp)
    if mode not in MODES:
        raise ValueError(f"unknown collection mode: {mode!r}")

    log.info(f"=== Collecting library ({mode}) ===")
    report("Starting...", 0)

    saved_tracks = fetch_saved_tracks(sp, report)
    report("Liked songs fetched", len(saved_tracks))
    if mode == MODE_LIKED_ONLY:
        return LibrarySnapshot(saved_tracks=saved_tracks)

    playlists = fetch_playlists(sp, report)
    saved_albums = fetch_saved_albums(sp, report)
    followed_artists = fetch_followed_artists(sp, report)
    report("Followed artists fetched", len(followed_artists))

    snapshot = LibrarySnapshot(
        saved_tracks=saved_tracks,
        playlists=playlists,
        saved_albums=saved_albums,
        followed_artists=followed_artists,
    )
    counts = snapshot.counts()
    log.info(
        f"Collected {counts['likedSongs']} liked songs, {counts['playlists']} playlists, "
        f"{counts['albums']} albums, {counts['artists']} artists"
    )
    return snapshot


def collect_pooled_tracks(sp, report=_noop):
    """Collect one deduplicated list of track ids from liked songs, playlists and albums.

    First-seen order is kept: liked songs, then playlists in listing order,
    then album tracks.
    """
    _require(sp)
    log.info("=== Collecting pooled tracks ===")
    report("Starting...", 0)

    pool = {}

    def add(ids):
        for tid in ids:
            pool.setdefault(tid, None)

    add(fetch_saved_tracks(sp, report))
    report("Liked songs fetched", len(pool))

    report("Fetching playlists...", len(pool))
    listing = fetch_playlist_listing(sp)
    report(f"Fetching tracks from {len(listing)} playlists...", len(pool))
    for pl in listing:
        report(f"Playlist: {pl.get('name', '')}", len(pool), len(listing))
        add(fetch_playlist_tracks(sp, pl["id"]))
    log.info(f"  Total unique tracks after playlists: {len(pool)}")
    report("All playlists processed", len(pool))

    report("Fetching albums...", len(pool))
    for album in fetch_saved_album_listing(sp):
        report(f"Album: {album.get('name', '')}", len(pool))
        add(fetch_album_tracks(sp, album["id"]))
    log.info(f"  Total unique tracks after albums: {len(pool)}")
    report("All albums processed", len(pool))

    return list(pool)


def collect_liked_tracks(sp, report=_noop):
    """Collect liked track ids only, in library order."""
    _require(sp)
    log.info("=== Collecting liked songs ===")
    report("Starting...", 0)
    ids = fetch_saved_tracks(sp, report)
    report("All liked songs fetched", len(ids))
    return ids
