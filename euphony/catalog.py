"""
Song catalog for euphony.

Holds the per-session song list and answers every read query against it:
artist and mood lookups, search with type-ahead suggestions, and the
mood/artist groupings shown on the home view. Also loads the catalog from a
CSV export merged with a built-in sample dataset.
"""

import csv
import logging
import random
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import ArtistRecommendation, MoodCategory, SearchResult, Song

logger = logging.getLogger(__name__)

SUGGESTION_LIMIT = 5

# (mood id, display name) pairs shown on the home view
MOODS = [
    ("romantic", "ROMANTIC"),
    ("sad", "SAD"),
    ("happy", "HAPPY"),
    ("energetic", "ENERGETIC"),
    ("party", "PARTY"),
    ("chill", "RELAXED"),
]


class CatalogStore:
    """Immutable snapshot of the session's songs with read-only queries."""

    def __init__(self, songs: Iterable[Song]):
        self._songs: Tuple[Song, ...] = tuple(songs)
        self._by_id: Dict[str, Song] = {song.id: song for song in self._songs}
        self._index_by_id: Dict[str, int] = {
            song.id: index for index, song in enumerate(self._songs)
        }

    def __len__(self) -> int:
        return len(self._songs)

    def all(self) -> List[Song]:
        return list(self._songs)

    def get(self, song_id: str) -> Optional[Song]:
        return self._by_id.get(song_id)

    def index_of(self, song_id: str) -> int:
        """Position of a song in catalog order, or -1 if absent."""
        return self._index_by_id.get(song_id, -1)

    def by_artist(self, name: str) -> List[Song]:
        """Songs whose artist field contains name (case-insensitive)."""
        needle = name.lower()
        return [song for song in self._songs if needle in song.artist.lower()]

    def by_genre(self, mood: str) -> List[Song]:
        """Songs whose genre contains mood (case-insensitive)."""
        needle = mood.lower()
        return [song for song in self._songs if needle in song.genre.lower()]

    def search(self, query: str) -> SearchResult:
        """
        Search the catalog.

        Args:
            query: Free text; blank queries match nothing

        Returns:
            SearchResult with substring matches over name, artist, album and
            genre, plus up to five name/artist prefix matches for type-ahead
        """
        if not query or not query.strip():
            return SearchResult(results=[], suggestions=[])

        needle = query.lower()
        results = [
            song
            for song in self._songs
            if needle in song.name.lower()
            or needle in song.artist.lower()
            or needle in song.album.lower()
            or needle in song.genre.lower()
        ]
        suggestions = [
            song
            for song in self._songs
            if song.name.lower().startswith(needle) or song.artist.lower().startswith(needle)
        ][:SUGGESTION_LIMIT]
        return SearchResult(results=results, suggestions=suggestions)

    def mood_categories(self, limit: int = 20) -> List[MoodCategory]:
        """Group songs into the home view's mood categories."""
        categories = []
        for mood_id, mood_name in MOODS:
            songs = [
                song
                for song in self._songs
                if mood_id in song.genre.lower() or song.genre.lower() == mood_name.lower()
            ][:limit]
            categories.append(MoodCategory(id=mood_id, name=mood_name, songs=songs))
        return categories

    def top_artists(self, count: int = 10, songs_per_artist: int = 10) -> List[ArtistRecommendation]:
        """Primary artists with the most songs, each with a sample of their songs."""
        counts = Counter(song.primary_artist for song in self._songs)
        recommendations = []
        for artist, _ in counts.most_common(count):
            songs = self.by_artist(artist)[:songs_per_artist]
            description = "Artist"
            if songs:
                description = (
                    "Indian singer" if songs[0].language == "Hindi" else "International artist"
                )
            recommendations.append(
                ArtistRecommendation(
                    id="-".join(artist.lower().split()),
                    name=artist,
                    description=description,
                    songs=songs,
                )
            )
        return recommendations


# =========================================================================
# Catalog Loading
# =========================================================================


def load_catalog_csv(path: str, rng: Optional[random.Random] = None) -> List[Song]:
    """
    Load songs from a CSV export.

    Expected columns: Song Name, Artist, Album, Year of Release, Mood Category,
    Language and optionally Duration. Rows without a song name or artist are
    skipped.

    Args:
        path: Path to the CSV file
        rng: Random source for songs without a stated duration

    Returns:
        List of songs in file order
    """
    rng = rng or random.Random()
    songs: List[Song] = []
    with open(Path(path).expanduser(), newline="", encoding="utf-8") as handle:
        for index, row in enumerate(csv.DictReader(handle)):
            name = (row.get("Song Name") or "").strip()
            artist = (row.get("Artist") or "").strip()
            if not name or not artist:
                continue

            duration = _parse_duration(row.get("Duration"))
            if duration is None:
                duration = rng.randrange(120, 240)

            songs.append(
                Song(
                    id=f"song-csv-{index}",
                    name=name,
                    artist=artist,
                    album=row.get("Album") or "Unknown Album",
                    release_year=row.get("Year of Release") or "Unknown Year",
                    genre=row.get("Mood Category") or "Unknown Genre",
                    language=row.get("Language") or "Unknown Language",
                    duration=duration,
                )
            )
    logger.info("Loaded %s songs from %s", len(songs), path)
    return songs


def _parse_duration(value: Optional[str]) -> Optional[int]:
    if value is None or not str(value).strip():
        return None
    try:
        return max(0, int(float(value)))
    except ValueError:
        return None


def build_catalog(primary: Sequence[Song], fallback: Sequence[Song]) -> List[Song]:
    """
    Merge two song lists, dropping duplicates by (artist, name).

    Entries from primary win over entries from fallback.
    """
    unique: Dict[Tuple[str, str], Song] = {}
    for song in list(primary) + list(fallback):
        key = (song.artist, song.name)
        if key not in unique:
            unique[key] = song
    return list(unique.values())


# =========================================================================
# Built-in Sample Dataset
# =========================================================================

SAMPLE_ARTIST_SONGS = {
    "Arijit Singh": [
        "Tum Hi Ho", "Channa Mereya", "Ae Dil Hai Mushkil", "Raabta", "Gerua",
        "Agar Tum Saath Ho", "Kabira", "Ilahi", "Muskurane", "Hawayein",
    ],
    "Vishal Mishra": [
        "Kaise Hua", "Aaj Bhi", "Pehla Pyaar", "Teri Hogaiyaan", "Manjha",
    ],
    "Shreya Ghoshal": ["Sun Raha Hai", "Teri Meri", "Deewani Mastani", "Ghoomar"],
    "Ed Sheeran": [
        "Shape of You", "Perfect", "Thinking Out Loud", "Photograph", "Castle on the Hill",
        "Bad Habits", "Shivers", "Galway Girl",
    ],
    "Taylor Swift": ["Love Story", "Blank Space", "Anti-Hero", "Cruel Summer"],
    "The Weeknd": ["Blinding Lights", "Save Your Tears", "Starboy"],
    "Dua Lipa": ["Levitating", "Don't Start Now", "New Rules"],
    "A.R. Rahman": ["Jai Ho", "Kun Faya Kun", "Tere Bina"],
    "Diljit Dosanjh": ["Lover", "Born to Shine", "G.O.A.T."],
    "Rihanna": ["Diamonds", "Umbrella", "Only Girl (In the World)", "We Found Love"],
    "Coldplay": ["Yellow", "Viva la Vida", "Fix You", "Paradise"],
}

SAMPLE_ALBUMS = [
    "Love Songs 2025", "Party Anthems", "Chill Vibes", "Romantic Hits", "Sad Songs Collection",
    "Energetic Beats", "Bollywood Classics", "Pop Sensations", "Dance Floor Hits",
]

SAMPLE_MOODS = [
    "Happy", "Sad", "Romantic", "Energetic", "Party", "Relaxed", "Chill", "Dance", "Nostalgic",
]

SAMPLE_YEARS = ["2020", "2021", "2022", "2023", "2024", "2025"]

_HINDI_MARKERS = ("Singh", "Mishra", "Rahman", "Ghoshal")


def generate_sample_catalog(rng: Optional[random.Random] = None) -> List[Song]:
    """Build the built-in sample dataset used when no CSV is configured."""
    rng = rng or random.Random()
    songs = []
    for artist, titles in SAMPLE_ARTIST_SONGS.items():
        if artist.startswith("Diljit"):
            language = "Punjabi"
        elif any(marker in artist for marker in _HINDI_MARKERS):
            language = "Hindi"
        else:
            language = "English"
        for title in titles:
            song_number = len(songs) + 1
            songs.append(
                Song(
                    id=f"song-{song_number}",
                    name=title,
                    artist=artist,
                    album=rng.choice(SAMPLE_ALBUMS),
                    release_year=rng.choice(SAMPLE_YEARS),
                    genre=rng.choice(SAMPLE_MOODS),
                    language=language,
                    duration=rng.randrange(120, 240),
                )
            )
    return songs
