"""
Library management for euphony.

Owns the user's liked songs, saved library and playlists. Every mutation
writes the full updated collection back to storage right away.
"""

import logging
import threading
import uuid
from typing import Any, List, Optional

from .database import PersistenceError, StorageRepository
from .models import Playlist, Song

LIKED_SONGS_KEY = "likedSongs"
PLAYLISTS_KEY = "playlists"
USER_LIBRARY_KEY = "userLibrary"


class LibraryManager:
    """Manages liked songs, the user library, and playlists."""

    def __init__(self, storage: StorageRepository):
        """
        Initialize LibraryManager.

        Args:
            storage: Storage repository for persistence
        """
        self.storage = storage
        self.logger = logging.getLogger(__name__)
        self.lock = threading.Lock()

        self._liked_songs = self._load_songs(LIKED_SONGS_KEY)
        self._user_library = self._load_songs(USER_LIBRARY_KEY)
        self._playlists = self._load_playlists()

    # =========================================================================
    # Loading and Persistence
    # =========================================================================

    def _load_songs(self, key: str) -> List[Song]:
        songs: List[Song] = []
        for data in self.storage.load(key, default=[]) or []:
            try:
                song = Song.from_dict(data)
            except (KeyError, TypeError) as e:
                self.logger.warning("Skipping malformed %s entry: %s", key, e)
                continue
            if not any(s.id == song.id for s in songs):
                songs.append(song)
        return songs

    def _load_playlists(self) -> List[Playlist]:
        playlists: List[Playlist] = []
        for data in self.storage.load(PLAYLISTS_KEY, default=[]) or []:
            try:
                playlists.append(Playlist.from_dict(data))
            except (KeyError, TypeError) as e:
                self.logger.warning("Skipping malformed playlist: %s", e)
        return playlists

    def _persist(self, key: str, value: Any):
        try:
            self.storage.save(key, value)
        except PersistenceError as e:
            self.logger.error("Could not persist %s: %s", key, e)

    def _persist_liked(self):
        self._persist(LIKED_SONGS_KEY, [s.to_dict() for s in self._liked_songs])

    def _persist_library(self):
        self._persist(USER_LIBRARY_KEY, [s.to_dict() for s in self._user_library])

    def _persist_playlists(self):
        self._persist(PLAYLISTS_KEY, [p.to_dict() for p in self._playlists])

    # =========================================================================
    # Liked Songs
    # =========================================================================

    def toggle_like(self, song: Song) -> bool:
        """
        Like a song, or unlike it if already liked.

        Returns:
            True if the song is liked after the call
        """
        with self.lock:
            if any(s.id == song.id for s in self._liked_songs):
                self._liked_songs = [s for s in self._liked_songs if s.id != song.id]
                liked = False
            else:
                self._liked_songs.append(song)
                liked = True
            self._persist_liked()
        self.logger.info("%s %s", "Liked" if liked else "Unliked", song.name)
        return liked

    def is_liked(self, song_id: str) -> bool:
        with self.lock:
            return any(s.id == song_id for s in self._liked_songs)

    def get_liked_songs(self) -> List[Song]:
        with self.lock:
            return list(self._liked_songs)

    # =========================================================================
    # User Library
    # =========================================================================

    def add_to_library(self, song: Song) -> bool:
        """Add a song to the library. Returns False if it was already there."""
        with self.lock:
            if any(s.id == song.id for s in self._user_library):
                return False
            self._user_library.append(song)
            self._persist_library()
            return True

    def remove_from_library(self, song_id: str) -> bool:
        """Remove a song from the library. Returns False if it was not there."""
        with self.lock:
            remaining = [s for s in self._user_library if s.id != song_id]
            removed = len(remaining) != len(self._user_library)
            self._user_library = remaining
            self._persist_library()
            return removed

    def get_library(self) -> List[Song]:
        with self.lock:
            return list(self._user_library)

    # =========================================================================
    # Playlists
    # =========================================================================

    def create_playlist(self, name: str) -> Optional[Playlist]:
        """
        Create an empty playlist.

        Args:
            name: Playlist name; blank names are rejected

        Returns:
            The new playlist, or None if the name was blank
        """
        if not name or not name.strip():
            self.logger.warning("Refusing to create playlist with blank name")
            return None

        playlist = Playlist(id=f"playlist-{uuid.uuid4().hex}", name=name.strip())
        with self.lock:
            self._playlists.append(playlist)
            self._persist_playlists()
        self.logger.info("Created playlist %s (%s)", playlist.name, playlist.id)
        return self._copy(playlist)

    def _find(self, playlist_id: str) -> Optional[Playlist]:
        for playlist in self._playlists:
            if playlist.id == playlist_id:
                return playlist
        return None

    @staticmethod
    def _copy(playlist: Playlist) -> Playlist:
        return Playlist(id=playlist.id, name=playlist.name, songs=list(playlist.songs))

    def add_to_playlist(self, playlist_id: str, song: Song) -> bool:
        """
        Append a song to a playlist.

        Returns:
            True if added; False if the playlist does not exist or already has the song
        """
        with self.lock:
            playlist = self._find(playlist_id)
            if playlist is None or playlist.contains(song.id):
                return False
            playlist.songs.append(song)
            self._persist_playlists()
            return True

    def remove_from_playlist(self, playlist_id: str, song_id: str) -> bool:
        with self.lock:
            playlist = self._find(playlist_id)
            if playlist is None:
                return False
            remaining = [s for s in playlist.songs if s.id != song_id]
            removed = len(remaining) != len(playlist.songs)
            playlist.songs = remaining
            self._persist_playlists()
            return removed

    def remove_playlist(self, playlist_id: str) -> bool:
        with self.lock:
            remaining = [p for p in self._playlists if p.id != playlist_id]
            removed = len(remaining) != len(self._playlists)
            self._playlists = remaining
            self._persist_playlists()
        if removed:
            self.logger.info("Removed playlist %s", playlist_id)
        return removed

    def get_playlist(self, playlist_id: str) -> Optional[Playlist]:
        with self.lock:
            playlist = self._find(playlist_id)
            return self._copy(playlist) if playlist else None

    def get_playlists(self) -> List[Playlist]:
        with self.lock:
            return [self._copy(p) for p in self._playlists]
