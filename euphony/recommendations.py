"""
Recommendation engine for euphony.

Ranks catalog songs against a recency-weighted profile of the listening
history (primary artist, genre, language), and provides the trending,
similar-song and personalized variants used by the home and now-playing
views.
"""

from __future__ import annotations

import logging
import random
import threading
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence

from .models import Song, parse_year

if TYPE_CHECKING:
    from .catalog import CatalogStore
    from .history import HistoryManager
    from .library import LibraryManager

# Produces uniform draws in [0, 1)
RandomFn = Callable[[], float]

TOP_ARTISTS = 5
TOP_GENRES = 3
TOP_LANGUAGES = 2

ARTIST_MATCH_SCORE = 5
GENRE_MATCH_SCORE = 3
LANGUAGE_MATCH_SCORE = 2

EXCLUDE_RECENT = 20
DEFAULT_LIMIT = 20
SIMILAR_LIMIT = 10


def shuffled(songs: Sequence[Song], random_fn: RandomFn) -> List[Song]:
    """Fisher-Yates shuffle driven by random_fn."""
    result = list(songs)
    for i in range(len(result) - 1, 0, -1):
        j = int(random_fn() * (i + 1))
        result[i], result[j] = result[j], result[i]
    return result


def _top_keys(weights: Dict[str, float], count: int) -> List[str]:
    # sorted() is stable, so equal weights keep first-seen order
    ranked = sorted(weights.items(), key=lambda item: item[1], reverse=True)
    return [key for key, _ in ranked[:count]]


def build_profile(history: Sequence[Song]) -> Dict[str, List[str]]:
    """
    Build the preference profile of a listening history.

    Entry ``index`` (0 = most recent) of an ``N``-entry history contributes
    ``1 + (N - index) / N`` to its primary artist, genre and language.

    Returns:
        Dict with 'artists' (top 5), 'genres' (top 3) and 'languages' (top 2)
    """
    artists: Dict[str, float] = {}
    genres: Dict[str, float] = {}
    languages: Dict[str, float] = {}

    total = len(history)
    for index, song in enumerate(history):
        weight = 1 + (total - index) / total
        artist = song.primary_artist
        artists[artist] = artists.get(artist, 0) + weight
        genres[song.genre] = genres.get(song.genre, 0) + weight
        languages[song.language] = languages.get(song.language, 0) + weight

    return {
        "artists": _top_keys(artists, TOP_ARTISTS),
        "genres": _top_keys(genres, TOP_GENRES),
        "languages": _top_keys(languages, TOP_LANGUAGES),
    }


def score(
    catalog: Sequence[Song], history: Sequence[Song], limit: int = DEFAULT_LIMIT
) -> List[Song]:
    """
    Rank catalog songs against the listening history.

    Songs among the 20 most recent history entries are excluded. Each
    candidate earns +5 for a top artist, +3 for a top genre, +2 for a top
    language, plus (release year - 2000) / 100. Ties keep catalog order.

    Returns:
        Up to ``limit`` songs, best first; empty when history is empty
    """
    if not history:
        return []

    profile = build_profile(history)
    top_artists = set(profile["artists"])
    top_genres = set(profile["genres"])
    top_languages = set(profile["languages"])
    recent_ids = {song.id for song in history[:EXCLUDE_RECENT]}

    scored = []
    for song in catalog:
        if song.id in recent_ids:
            continue
        value = 0.0
        if song.primary_artist in top_artists:
            value += ARTIST_MATCH_SCORE
        if song.genre in top_genres:
            value += GENRE_MATCH_SCORE
        if song.language in top_languages:
            value += LANGUAGE_MATCH_SCORE
        value += (parse_year(song.release_year, default=2000) - 2000) / 100
        scored.append((value, song))

    scored.sort(key=lambda item: item[0], reverse=True)
    return [song for _, song in scored[:limit]]


def trending(catalog: Sequence[Song], limit: int = DEFAULT_LIMIT) -> List[Song]:
    """Newest songs first by parsed release year (unparseable years sort last)."""
    ranked = sorted(catalog, key=lambda song: parse_year(song.release_year), reverse=True)
    return ranked[:limit]


def similar_to(
    song: Song,
    catalog: Sequence[Song],
    random_fn: RandomFn = random.random,
    limit: int = SIMILAR_LIMIT,
) -> List[Song]:
    """Songs sharing the seed's genre or exact artist, in random order."""
    candidates = [
        other
        for other in catalog
        if other.id != song.id and (other.genre == song.genre or other.artist == song.artist)
    ]
    return shuffled(candidates, random_fn)[:limit]


def personalized(
    catalog: Sequence[Song],
    liked: Sequence[Song],
    recent: Sequence[Song],
    random_fn: RandomFn = random.random,
    limit: int = DEFAULT_LIMIT,
) -> List[Song]:
    """
    Songs sharing a genre or primary artist with liked or recent songs.

    Falls back to trending when there are no liked or recent songs.
    """
    if not liked and not recent:
        return trending(catalog, limit)

    known = list(liked) + list(recent)
    genres = {song.genre for song in known}
    artists = {song.primary_artist for song in known}
    known_ids = {song.id for song in known}

    candidates = [
        song
        for song in catalog
        if song.id not in known_ids and (song.genre in genres or song.primary_artist in artists)
    ]
    return shuffled(candidates, random_fn)[:limit]


class RecommendationService:
    """Keeps the latest history-based recommendations for the UI."""

    def __init__(
        self,
        catalog: "CatalogStore",
        history_manager: "HistoryManager",
        library_manager: Optional["LibraryManager"] = None,
        random_fn: RandomFn = random.random,
        limit: int = DEFAULT_LIMIT,
    ):
        """
        Initialize RecommendationService.

        Args:
            catalog: Song catalog
            history_manager: Source of the listening history
            library_manager: Source of liked songs (for the personalized mix)
            random_fn: Uniform random source for shuffled variants
            limit: Number of songs in each list
        """
        self.catalog = catalog
        self.history = history_manager
        self.library = library_manager
        self.random_fn = random_fn
        self.limit = limit
        self.logger = logging.getLogger(__name__)
        self.lock = threading.Lock()
        self._recommendations: List[Song] = []
        self.refresh()

    def refresh(self) -> List[Song]:
        """Recompute recommendations from the current listening history."""
        history = self.history.get_listening_history()
        recommendations = score(self.catalog.all(), history, self.limit) if history else []
        with self.lock:
            self._recommendations = recommendations
        self.logger.debug("Refreshed %s recommendations", len(recommendations))
        return list(recommendations)

    def get_recommendations(self) -> List[Song]:
        with self.lock:
            return list(self._recommendations)

    def get_trending(self) -> List[Song]:
        return trending(self.catalog.all(), self.limit)

    def get_similar(self, song: Song) -> List[Song]:
        return similar_to(song, self.catalog.all(), self.random_fn)

    def get_personalized(self) -> List[Song]:
        liked = self.library.get_liked_songs() if self.library else []
        recent = self.history.get_recently_played()
        return personalized(self.catalog.all(), liked, recent, self.random_fn, self.limit)

    def get_for_mood(self, mood: str) -> List[Song]:
        """Songs whose genre matches a mood label."""
        return self.catalog.by_genre(mood)
