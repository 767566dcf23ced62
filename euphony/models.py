"""
Data models for euphony.

Defines typed dataclasses for all entities used throughout the application.
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

# Delimiters separating collaborating artists in an artist field
_ARTIST_DELIMITERS = re.compile(r",|&|ft\.")


def primary_artist(artist: str) -> str:
    """Return the first listed artist of a possibly multi-artist string."""
    return _ARTIST_DELIMITERS.split(artist, maxsplit=1)[0].strip()


def parse_year(release_year: Optional[str], default: int = 0) -> int:
    """Parse a release year the lenient way (leading digits, else default)."""
    if release_year is None:
        return default
    match = re.match(r"\s*[+-]?\d+", str(release_year))
    if not match:
        return default
    value = int(match.group(0))
    return value if value != 0 else default


@dataclass(frozen=True)
class Song:
    """Immutable catalog entry."""

    id: str
    name: str
    artist: str
    album: str
    release_year: str  # Free text, not guaranteed numeric
    genre: str  # Mood label, e.g. "Romantic"
    language: str
    duration: int = 0  # Seconds
    image_url: Optional[str] = None
    preview_url: Optional[str] = None

    @property
    def primary_artist(self) -> str:
        return primary_artist(self.artist)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the camelCase keys of the stored snapshots."""
        return {
            "id": self.id,
            "name": self.name,
            "artist": self.artist,
            "album": self.album,
            "releaseYear": self.release_year,
            "genre": self.genre,
            "language": self.language,
            "duration": self.duration,
            "imageUrl": self.image_url,
            "previewUrl": self.preview_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Song":
        """Build a Song from a stored snapshot (camelCase or snake_case keys)."""
        duration = data.get("duration") or 0
        try:
            duration = max(0, int(duration))
        except (TypeError, ValueError):
            duration = 0
        return cls(
            id=str(data["id"]),
            name=data.get("name", "Unknown"),
            artist=data.get("artist", "Unknown Artist"),
            album=data.get("album", "Unknown Album"),
            release_year=str(data.get("releaseYear", data.get("release_year", "Unknown Year"))),
            genre=data.get("genre", "Unknown Genre"),
            language=data.get("language", "Unknown Language"),
            duration=duration,
            image_url=data.get("imageUrl", data.get("image_url")),
            preview_url=data.get("previewUrl", data.get("preview_url")),
        )


@dataclass
class Playlist:
    """User playlist; never contains the same song id twice."""

    id: str
    name: str
    songs: List[Song] = field(default_factory=list)

    def contains(self, song_id: str) -> bool:
        return any(song.id == song_id for song in self.songs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "songs": [song.to_dict() for song in self.songs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Playlist":
        playlist = cls(id=str(data["id"]), name=data.get("name", ""))
        for song_data in data.get("songs", []):
            song = Song.from_dict(song_data)
            if not playlist.contains(song.id):
                playlist.songs.append(song)
        return playlist


@dataclass
class MoodCategory:
    """Songs grouped under a mood label."""

    id: str
    name: str
    songs: List[Song]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "songs": [s.to_dict() for s in self.songs]}


@dataclass
class ArtistRecommendation:
    """An artist surfaced on the home view with a sample of their songs."""

    id: str
    name: str
    description: str
    songs: List[Song]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["songs"] = [s.to_dict() for s in self.songs]
        return data


@dataclass
class SearchResult:
    """Full search results plus type-ahead suggestions."""

    results: List[Song]
    suggestions: List[Song]


@dataclass
class ConfigEntry:
    """Configuration entry."""

    key: str
    value: str
    updated_at: Optional[str] = None
