"""
Unit tests for the recommendation engine.
"""

from unittest.mock import Mock

import pytest

from euphony.catalog import CatalogStore
from euphony.models import Song
from euphony.recommendations import (
    RecommendationService,
    build_profile,
    personalized,
    score,
    shuffled,
    similar_to,
    trending,
)


def make_song(song_id, artist="Artist", genre="Pop", language="English", year="2020"):
    return Song(
        id=song_id,
        name=f"Name {song_id}",
        artist=artist,
        album="Album",
        release_year=year,
        genre=genre,
        language=language,
        duration=180,
    )


class SequenceRandom:
    """Deterministic random source cycling through fixed draws."""

    def __init__(self, values):
        self.values = list(values)
        self.index = 0

    def __call__(self):
        value = self.values[self.index % len(self.values)]
        self.index += 1
        return value


def test_build_profile_weights_recent_plays():
    history = [
        make_song("a", artist="X", genre="Pop"),
        make_song("b", artist="Y", genre="Rock"),
        make_song("c", artist="Y", genre="Rock"),
    ]
    profile = build_profile(history)
    # X: 2.0; Y: 1.667 + 1.333 = 3.0
    assert profile["artists"] == ["Y", "X"]
    assert profile["genres"] == ["Rock", "Pop"]
    assert profile["languages"] == ["English"]


def test_build_profile_uses_primary_artist():
    history = [make_song("a", artist="X & Y"), make_song("b", artist="X, Z")]
    assert build_profile(history)["artists"] == ["X"]


def test_build_profile_ties_keep_first_seen_order():
    history = [make_song(str(n), artist=f"A{n}") for n in range(7)]
    # Weights strictly decrease with index, so order is history order
    assert build_profile(history)["artists"] == ["A0", "A1", "A2", "A3", "A4"]


def test_score_artist_match_beats_genre_match():
    history = [
        make_song("a", artist="X", genre="Pop", language="English"),
        make_song("b", artist="Y", genre="Pop", language="English"),
    ]
    catalog = [
        make_song("d", artist="Z", genre="Pop", language="Hindi"),
        make_song("c", artist="X", genre="Rock", language="Hindi"),
    ]
    ranked = score(catalog, history)
    assert [s.id for s in ranked] == ["c", "d"]


def test_score_excludes_recent_history():
    history = [make_song(f"h{n}") for n in range(25)]
    catalog = history + [make_song("new")]
    ids = [s.id for s in score(catalog, history)]
    assert "new" in ids
    assert not any(f"h{n}" in ids for n in range(20))
    # Older history entries are still candidates
    assert "h24" in ids


def test_score_year_tie_breaker():
    history = [make_song("a", artist="Q", genre="Jazz", language="French")]
    catalog = [
        make_song("old", year="2001"),
        make_song("unknown", year="Unknown Year"),
        make_song("new", year="2024"),
    ]
    assert [s.id for s in score(catalog, history)] == ["new", "old", "unknown"]


def test_score_is_deterministic():
    history = [make_song(f"h{n}", artist=f"A{n % 3}", genre=f"G{n % 4}") for n in range(10)]
    catalog = [
        make_song(f"c{n}", artist=f"A{n % 5}", genre=f"G{n % 6}", year=str(2000 + n % 7))
        for n in range(60)
    ]
    first = [s.id for s in score(catalog, history)]
    assert first == [s.id for s in score(catalog, history)]
    assert len(first) == 20


def test_score_empty_history():
    assert score([make_song("a")], []) == []


def test_trending_orders_by_year():
    catalog = [make_song("a", year="2020"), make_song("b", year="2023"), make_song("c", year="2019")]
    assert [s.release_year for s in trending(catalog)] == ["2023", "2020", "2019"]


def test_trending_unparseable_years_last():
    catalog = [make_song("a", year="Unknown Year"), make_song("b", year="2001")]
    assert [s.id for s in trending(catalog)] == ["b", "a"]


def test_trending_limit():
    catalog = [make_song(str(n), year=str(2000 + n)) for n in range(30)]
    result = trending(catalog)
    assert len(result) == 20
    assert result[0].id == "29"


def test_shuffled_with_fixed_draws():
    songs = [make_song(str(n)) for n in range(4)]
    # A draw of 0.0 always swaps with position 0
    assert [s.id for s in shuffled(songs, lambda: 0.0)] == ["1", "2", "3", "0"]
    assert [s.id for s in shuffled(songs, lambda: 0.999)] == ["0", "1", "2", "3"]


def test_similar_to():
    seed = make_song("seed", artist="X", genre="Pop")
    catalog = [
        seed,
        make_song("same-genre", artist="Y", genre="Pop"),
        make_song("same-artist", artist="X", genre="Rock"),
        make_song("featured", artist="X & Y", genre="Rock"),
        make_song("unrelated", artist="Z", genre="Jazz"),
    ]
    result = similar_to(seed, catalog, random_fn=lambda: 0.999)
    assert [s.id for s in result] == ["same-genre", "same-artist"]


def test_similar_to_limit():
    seed = make_song("seed", genre="Pop")
    catalog = [seed] + [make_song(str(n), genre="Pop") for n in range(15)]
    assert len(similar_to(seed, catalog, random_fn=SequenceRandom([0.3, 0.7, 0.1]))) == 10


def test_personalized_falls_back_to_trending():
    catalog = [make_song("a", year="2019"), make_song("b", year="2024")]
    assert [s.id for s in personalized(catalog, [], [])] == ["b", "a"]


def test_personalized_excludes_known_songs():
    liked = make_song("liked", artist="X", genre="Pop")
    recent = make_song("recent", artist="Y", genre="Rock")
    catalog = [
        liked,
        recent,
        make_song("pop", artist="Z", genre="Pop"),
        make_song("by-y", artist="Y ft. W", genre="Jazz"),
        make_song("other", artist="Z", genre="Jazz"),
    ]
    result = personalized(catalog, [liked], [recent], random_fn=lambda: 0.999)
    assert [s.id for s in result] == ["pop", "by-y"]


@pytest.fixture
def catalog():
    return CatalogStore(
        [
            make_song("song-1", artist="X", genre="Pop", year="2020"),
            make_song("song-2", artist="X", genre="Rock", year="2021"),
            make_song("song-3", artist="Y", genre="Pop", year="2022"),
            make_song("song-4", artist="Z", genre="Jazz", year="2023"),
        ]
    )


@pytest.fixture
def history_manager():
    manager = Mock()
    manager.get_listening_history.return_value = []
    manager.get_recently_played.return_value = []
    return manager


def test_service_empty_history(catalog, history_manager):
    service = RecommendationService(catalog, history_manager)
    assert service.get_recommendations() == []
    assert [s.id for s in service.get_trending()] == ["song-4", "song-3", "song-2", "song-1"]


def test_service_refresh_uses_listening_history(catalog, history_manager):
    service = RecommendationService(catalog, history_manager)
    history_manager.get_listening_history.return_value = [catalog.get("song-1")]

    refreshed = service.refresh()

    assert refreshed[0].id == "song-2"
    assert [s.id for s in service.get_recommendations()] == [s.id for s in refreshed]
    assert "song-1" not in [s.id for s in refreshed]


def test_service_personalized_uses_liked_songs(catalog, history_manager):
    library = Mock()
    library.get_liked_songs.return_value = [catalog.get("song-4")]
    service = RecommendationService(catalog, history_manager, library, random_fn=lambda: 0.5)
    assert service.get_personalized() == []

    library.get_liked_songs.return_value = [catalog.get("song-3")]
    assert {s.id for s in service.get_personalized()} == {"song-1"}


def test_service_similar_and_mood(catalog, history_manager):
    service = RecommendationService(catalog, history_manager, random_fn=lambda: 0.999)
    assert [s.id for s in service.get_similar(catalog.get("song-1"))] == ["song-2", "song-3"]
    assert [s.id for s in service.get_for_mood("pop")] == ["song-1", "song-3"]
