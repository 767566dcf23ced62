"""
Unit tests for data models.
"""

from euphony.models import Playlist, Song, parse_year, primary_artist


def test_primary_artist_single():
    assert primary_artist("Arijit Singh") == "Arijit Singh"


def test_primary_artist_delimiters():
    assert primary_artist("Arijit Singh, Shreya Ghoshal") == "Arijit Singh"
    assert primary_artist("Arijit Singh & Alka Yagnik") == "Arijit Singh"
    assert primary_artist("Ed Sheeran ft. Beyonce") == "Ed Sheeran"


def test_primary_artist_first_delimiter_wins():
    assert primary_artist("A & B, C") == "A"


def test_parse_year():
    assert parse_year("2023") == 2023
    assert parse_year("2019 (Remastered)") == 2019
    assert parse_year("Unknown Year") == 0
    assert parse_year("Unknown Year", default=2000) == 2000
    assert parse_year(None, default=2000) == 2000


def test_song_round_trip_uses_camel_case():
    song = Song(
        id="song-1",
        name="Tum Hi Ho",
        artist="Arijit Singh",
        album="Aashiqui 2",
        release_year="2013",
        genre="Romantic",
        language="Hindi",
        duration=262,
        image_url="https://example.com/cover.jpg",
    )
    data = song.to_dict()
    assert data["releaseYear"] == "2013"
    assert data["imageUrl"] == "https://example.com/cover.jpg"
    assert "release_year" not in data
    assert Song.from_dict(data) == song


def test_song_from_dict_defaults():
    song = Song.from_dict({"id": 7, "name": "Untitled", "duration": "abc"})
    assert song.id == "7"
    assert song.artist == "Unknown Artist"
    assert song.duration == 0


def test_song_from_dict_negative_duration_clamped():
    song = Song.from_dict({"id": "x", "duration": -5})
    assert song.duration == 0


def test_playlist_from_dict_drops_duplicates():
    song = {"id": "song-1", "name": "A"}
    playlist = Playlist.from_dict({"id": "playlist-1", "name": "Mix", "songs": [song, song]})
    assert len(playlist.songs) == 1
    assert playlist.contains("song-1")
    assert not playlist.contains("song-2")
