"""
Write a collected library into a target Spotify account.

Replays liked songs, playlists, saved albums and followed artists, or merges
tracks into one new playlist. Add-only and non-transactional: a failure
stops the category it happened in, and whatever was already written stays.

Per-call caps come from the Web API and differ by endpoint:
liked songs 50, playlist items 100, saved albums 20, followed artists 50.
"""

import time
from datetime import datetime

import spotipy.exceptions

from errors import EmptyLibrary, MissingMigrationData, NotAuthenticated
from library_fetch import collect_liked_tracks, collect_pooled_tracks
from log_setup import get_logger
from models import ConsolidatedPlaylist, MigrationResult
from retry import with_backoff
from spotify_client import save_albums

LIKED_SONGS_BATCH_SIZE = 50
PLAYLIST_ADD_BATCH_SIZE = 100
ALBUM_BATCH_SIZE = 20
ARTIST_BATCH_SIZE = 50

DELAY_BETWEEN_BATCHES = 0.1  # seconds

log = get_logger("migrate")


class CategoryFailed(Exception):
    """A write was rejected for good; later batches of the category were not sent."""

    def __init__(self, category, written, cause):
        super().__init__(f"{category}: {cause}")
        self.category = category
        self.written = written
        self.cause = cause


def _noop(stage, count=0, total=None):
    pass


def _valid(ids):
    return [i for i in ids if i]


def write_batches(category, ids, batch_size, write, report=_noop, stage=None):
    """Send ids through write() in sequential batches of at most batch_size.

    Each batch is retried on transient errors. Returns the number written.
    Raises NotAuthenticated on 401 and CategoryFailed on any other rejection.
    """
    written = 0
    total_batches = (len(ids) + batch_size - 1) // batch_size
    for n, start in enumerate(range(0, len(ids), batch_size), 1):
        batch = ids[start:start + batch_size]
        if start:
            time.sleep(DELAY_BETWEEN_BATCHES)
        try:
            with_backoff(lambda: write(batch))
        except spotipy.exceptions.SpotifyException as e:
            if e.http_status == 401:
                raise NotAuthenticated("Not authenticated") from e
            log.error(f"  {category}: batch {n}/{total_batches} rejected: {e}")
            raise CategoryFailed(category, written, e) from e
        written += len(batch)
        log.debug(f"  {category}: batch {n}/{total_batches} ({written}/{len(ids)})")
        if stage:
            report(stage, written, len(ids))
    return written


def _current_user_id(sp):
    return with_backoff(sp.current_user)["id"]


def _create_playlist(sp, user_id, name, public, description):
    try:
        return with_backoff(lambda: sp.user_playlist_create(
            user_id, name, public=public, description=description,
        ))
    except spotipy.exceptions.SpotifyException as e:
        if e.http_status == 401:
            raise NotAuthenticated("Not authenticated") from e
        raise


# --- Categories ---

def migrate_liked_songs(sp, track_ids, report=_noop):
    ids = _valid(track_ids)
    log.info(f"Liking {len(ids)} tracks...")
    report("Migrating liked songs...", 0, len(ids))
    return write_batches(
        "liked songs", ids, LIKED_SONGS_BATCH_SIZE,
        lambda batch: sp.current_user_saved_tracks_add(tracks=batch),
        report, "Migrating liked songs...",
    )


def migrate_playlists(sp, playlists, report=_noop):
    """Recreate each playlist with at least one valid track. Returns playlists created.

    Playlists whose tracks are all invalid are skipped and not counted.
    """
    if not playlists:
        return 0
    try:
        user_id = _current_user_id(sp)
    except spotipy.exceptions.SpotifyException as e:
        if e.http_status == 401:
            raise NotAuthenticated("Not authenticated") from e
        log.error(f"  Could not look up the target user: {e}")
        raise CategoryFailed("playlists", 0, e) from e
    created = 0
    report("Migrating playlists...", 0, len(playlists))

    for pl in playlists:
        tracks = _valid(pl.tracks)
        if not tracks:
            log.info(f"  {pl.name}: no valid tracks, skipping")
            continue

        try:
            new_pl = _create_playlist(sp, user_id, pl.name, pl.is_public, pl.description)
        except spotipy.exceptions.SpotifyException as e:
            log.error(f"  Failed to create playlist '{pl.name}': {e}")
            raise CategoryFailed("playlists", created, e) from e

        try:
            write_batches(
                f"playlist '{pl.name}'", tracks, PLAYLIST_ADD_BATCH_SIZE,
                lambda batch: sp.playlist_add_items(new_pl["id"], batch),
            )
        except CategoryFailed as e:
            raise CategoryFailed("playlists", created, e.cause) from e

        created += 1
        log.info(f"  → created '{pl.name}' with {len(tracks)} tracks")
        report(f"Playlist: {pl.name}", created, len(playlists))
        time.sleep(DELAY_BETWEEN_BATCHES)

    return created


def migrate_albums(sp, album_ids, report=_noop):
    ids = _valid(album_ids)
    log.info(f"Saving {len(ids)} albums...")
    report("Migrating albums...", 0, len(ids))
    return write_batches(
        "albums", ids, ALBUM_BATCH_SIZE,
        lambda batch: save_albums(sp, batch),
        report, "Migrating albums...",
    )


def migrate_artists(sp, artist_ids, report=_noop):
    ids = _valid(artist_ids)
    log.info(f"Following {len(ids)} artists...")
    report("Migrating artists...", 0, len(ids))
    return write_batches(
        "artists", ids, ARTIST_BATCH_SIZE,
        lambda batch: sp.user_follow_artists(ids=batch),
        report, "Migrating artists...",
    )


def replicate_library(sp, snapshot, report=_noop):
    """Replay a LibrarySnapshot into the account behind sp.

    Categories run in order: liked songs, playlists, albums, artists. A
    failed category is recorded in result.errors with what it managed to
    write, and the next category still runs.
    """
    if sp is None:
        raise NotAuthenticated("Not authenticated")
    if snapshot is None:
        raise MissingMigrationData(
            "No migration data found. Please fetch data from source account first."
        )

    log.info("=== Migrating library ===")
    result = MigrationResult()
    steps = [
        ("liked_songs", "liked songs", migrate_liked_songs, snapshot.saved_tracks),
        ("playlists", "playlists", migrate_playlists, snapshot.playlists),
        ("albums", "albums", migrate_albums, snapshot.saved_albums),
        ("artists", "artists", migrate_artists, snapshot.followed_artists),
    ]
    for attr, label, migrate, items in steps:
        if not items:
            continue
        try:
            setattr(result, attr, migrate(sp, items, report))
        except CategoryFailed as e:
            setattr(result, attr, e.written)
            result.errors[label] = str(e.cause)
            log.warning(f"  {label}: stopped after {e.written} ({e.cause})")
            report(f"Failed to migrate {label}: {e.cause}", e.written)

    counts = result.to_dict()
    log.info(
        f"Migrated {counts['likedSongs']} liked songs, {counts['playlists']} playlists, "
        f"{counts['albums']} albums, {counts['artists']} artists"
    )
    return result


# --- Consolidation ---

def create_consolidated_playlist(sp, track_ids, name, description, report=_noop, public=True):
    """Create one playlist on sp's account and fill it with track_ids, 100 per call."""
    ids = _valid(track_ids)
    report("Creating playlist...", len(ids))
    new_pl = _create_playlist(sp, _current_user_id(sp), name, public, description)
    log.info(f"✓ Playlist created: {new_pl.get('name', name)} ({new_pl['id']})")
    report("Playlist created, adding tracks...", len(ids))

    write_batches(
        "playlist tracks", ids, PLAYLIST_ADD_BATCH_SIZE,
        lambda batch: sp.playlist_add_items(new_pl["id"], batch),
        report, "Adding tracks...",
    )
    url = (new_pl.get("external_urls") or {}).get("spotify")
    log.info(f"Playlist URL: {url}")
    return ConsolidatedPlaylist(id=new_pl["id"], url=url, total_tracks=len(ids))


def mega_playlist_labels(total, now=None):
    now = now or datetime.now()
    return (
        f"🎵 My Complete Library - {now:%Y-%m-%d}",
        f"All songs from liked songs, playlists, and albums. "
        f"Created on {now:%Y-%m-%d %H:%M}. Total: {total} unique tracks.",
    )


def liked_playlist_labels(total, now=None):
    now = now or datetime.now()
    return (
        f"❤️ My Liked Songs - {now:%Y-%m-%d}",
        f"All my liked songs exported on {now:%Y-%m-%d %H:%M}. Total: {total} tracks.",
    )


def build_mega_playlist(source_sp, target_sp, report=_noop):
    """Pool every track of the source library and write it as one playlist on target."""
    if target_sp is None:
        raise NotAuthenticated("Not authenticated")
    track_ids = collect_pooled_tracks(source_sp, report)
    if not track_ids:
        raise EmptyLibrary("No tracks found")
    name, description = mega_playlist_labels(len(track_ids))
    return create_consolidated_playlist(target_sp, track_ids, name, description, report)


def build_liked_songs_playlist(source_sp, target_sp, report=_noop):
    """Copy the source's liked songs, in order, into one playlist on target."""
    if target_sp is None:
        raise NotAuthenticated("Not authenticated")
    track_ids = collect_liked_tracks(source_sp, report)
    if not track_ids:
        raise EmptyLibrary("No liked songs found")
    name, description = liked_playlist_labels(len(track_ids))
    return create_consolidated_playlist(target_sp, track_ids, name, description, report)
