"""Value records passed between the collector, the migrator and the browser.

Wire dicts use the camelCase keys the browser stores between steps
(savedTracks, isPublic, likedSongs, ...).
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class PlaylistSnapshot:
    name: str
    description: str = ""
    tracks: List[str] = field(default_factory=list)  # order and duplicates kept
    is_public: bool = False
    id: Optional[str] = None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "tracks": list(self.tracks),
            "isPublic": self.is_public,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data.get("id"),
            name=data.get("name") or "",
            description=data.get("description") or "",
            tracks=list(data.get("tracks") or []),
            is_public=bool(data.get("isPublic", False)),
        )


@dataclass(frozen=True)
class LibrarySnapshot:
    """Everything collected from a source account in one run."""

    saved_tracks: List[str] = field(default_factory=list)
    playlists: List[PlaylistSnapshot] = field(default_factory=list)
    saved_albums: List[str] = field(default_factory=list)
    followed_artists: List[str] = field(default_factory=list)

    def counts(self):
        return {
            "likedSongs": len(self.saved_tracks),
            "playlists": len(self.playlists),
            "albums": len(self.saved_albums),
            "artists": len(self.followed_artists),
        }

    def to_dict(self):
        return {
            "savedTracks": list(self.saved_tracks),
            "playlists": [p.to_dict() for p in self.playlists],
            "savedAlbums": list(self.saved_albums),
            "followedArtists": list(self.followed_artists),
        }

    @classmethod
    def from_dict(cls, data):
        """Rebuild a snapshot from its wire dict. Missing categories are empty."""
        if not isinstance(data, dict):
            raise ValueError("migration data must be a JSON object")
        return cls(
            saved_tracks=list(data.get("savedTracks") or []),
            playlists=[PlaylistSnapshot.from_dict(p) for p in data.get("playlists") or []],
            saved_albums=list(data.get("savedAlbums") or []),
            followed_artists=list(data.get("followedArtists") or []),
        )


@dataclass(frozen=True)
class ProgressRecord:
    stage: str
    count: int = 0
    total: Optional[int] = None

    def to_dict(self):
        d = {"stage": self.stage, "count": self.count}
        if self.total is not None:
            d["total"] = self.total
        return d


@dataclass
class MigrationResult:
    """Counts of items actually written to the target account."""

    liked_songs: int = 0
    playlists: int = 0
    albums: int = 0
    artists: int = 0
    errors: dict = field(default_factory=dict)  # category -> message

    def to_dict(self):
        d = {
            "likedSongs": self.liked_songs,
            "playlists": self.playlists,
            "albums": self.albums,
            "artists": self.artists,
        }
        if self.errors:
            d["errors"] = dict(self.errors)
        return d


@dataclass(frozen=True)
class ConsolidatedPlaylist:
    id: str
    url: Optional[str]
    total_tracks: int

    def to_dict(self):
        return {
            "playlistId": self.id,
            "playlistUrl": self.url,
            "totalTracks": self.total_tracks,
        }
