"""
Playback history management.

Maintains two bounded, most-recent-first lists of played songs: the short
"recently played" shelf and the longer listening history that feeds
recommendations. Both survive restarts through the storage repository.
"""

import logging
import threading
from typing import List

from .database import PersistenceError, StorageRepository
from .models import Song

RECENTLY_PLAYED_KEY = "recentlyPlayed"
LISTENING_HISTORY_KEY = "listening_history"


class HistoryManager:
    """
    Manages recently-played and listening history.

    A song already present is moved to the front instead of being duplicated.
    """

    def __init__(
        self,
        storage: StorageRepository,
        recently_played_limit: int = 20,
        listening_history_limit: int = 50,
    ):
        """
        Initialize history manager.

        Args:
            storage: Storage repository for persistence
            recently_played_limit: Maximum entries in the recently-played list
            listening_history_limit: Maximum entries in the listening history
        """
        self.storage = storage
        self.recently_played_limit = recently_played_limit
        self.listening_history_limit = listening_history_limit
        self.logger = logging.getLogger(__name__)
        self.lock = threading.Lock()

        self._recently_played = self._load(RECENTLY_PLAYED_KEY, recently_played_limit)
        self._listening_history = self._load(LISTENING_HISTORY_KEY, listening_history_limit)

    def _load(self, key: str, limit: int) -> List[Song]:
        songs: List[Song] = []
        seen = set()
        for data in self.storage.load(key, default=[]) or []:
            try:
                song = Song.from_dict(data)
            except (KeyError, TypeError) as e:
                self.logger.warning("Skipping malformed %s entry: %s", key, e)
                continue
            if song.id not in seen:
                seen.add(song.id)
                songs.append(song)
        return songs[:limit]

    @staticmethod
    def _push_front(songs: List[Song], song: Song, limit: int) -> List[Song]:
        return ([song] + [s for s in songs if s.id != song.id])[:limit]

    def record_play(self, song: Song):
        """
        Record a play at the front of both lists and persist them.

        Persistence failures are logged; the in-memory lists keep the play.
        """
        with self.lock:
            self._recently_played = self._push_front(
                self._recently_played, song, self.recently_played_limit
            )
            self._listening_history = self._push_front(
                self._listening_history, song, self.listening_history_limit
            )
            self._persist(RECENTLY_PLAYED_KEY, self._recently_played)
            self._persist(LISTENING_HISTORY_KEY, self._listening_history)
        self.logger.debug("Recorded play: %s by %s", song.name, song.artist)

    def _persist(self, key: str, songs: List[Song]):
        try:
            self.storage.save(key, [s.to_dict() for s in songs])
        except PersistenceError as e:
            self.logger.error("Could not persist %s: %s", key, e)

    def get_recently_played(self) -> List[Song]:
        with self.lock:
            return list(self._recently_played)

    def get_listening_history(self) -> List[Song]:
        with self.lock:
            return list(self._listening_history)
