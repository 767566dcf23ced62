"""
Playback controller for euphony.

Orchestrates playback, manages state transitions, runs the progress clock,
and decides which song plays next under shuffle and repeat.
"""

from __future__ import annotations

import logging
import random
import threading
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from .audio import AudioSessionDriver, TimerFactory, default_timer_factory
from .models import Song

if TYPE_CHECKING:
    from .catalog import CatalogStore
    from .history import HistoryManager
    from .recommendations import RecommendationService
    from .resolver import ResourceResolver


class PlaybackState(Enum):
    """Playback state enumeration."""

    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"


class PlaybackController:
    """
    Orchestrates playback and manages state.

    A track's end may be reported by the progress clock, by the audio
    backend, or by the driver's watchdog. Each loaded resource is identified
    by the driver's token, and only the first end report for a token
    advances to the next song.
    """

    EVENTS = ("track_changed", "state_changed", "ended", "error")

    def __init__(
        self,
        catalog: "CatalogStore",
        driver: AudioSessionDriver,
        resolver: "ResourceResolver",
        history_manager: "HistoryManager",
        recommendation_service: Optional["RecommendationService"] = None,
        timer_factory: Optional[TimerFactory] = None,
        random_fn: Callable[[], float] = random.random,
        fallback_duration_seconds: int = 180,
        restart_threshold_seconds: float = 3,
        shuffle_exclusion_count: int = 10,
        volume: float = 0.7,
    ):
        """
        Initialize PlaybackController.

        Args:
            catalog: Song catalog used for track selection
            driver: AudioSessionDriver owning the audio resource
            resolver: Maps songs to playable resources
            history_manager: Records every played song
            recommendation_service: Refreshed after every play (optional)
            timer_factory: Creates progress clock timers (defaults to daemon threading.Timer)
            random_fn: Uniform random source for shuffle
            fallback_duration_seconds: Duration used for songs without one
            restart_threshold_seconds: Past this position, previous() restarts the song
            shuffle_exclusion_count: Number of recently played songs shuffle avoids
            volume: Initial volume in [0, 1]
        """
        self.catalog = catalog
        self.driver = driver
        self.resolver = resolver
        self.history = history_manager
        self.recommendations = recommendation_service
        self.timer_factory = timer_factory or default_timer_factory
        self.random_fn = random_fn
        self.fallback_duration_seconds = fallback_duration_seconds
        self.restart_threshold_seconds = restart_threshold_seconds
        self.shuffle_exclusion_count = shuffle_exclusion_count

        self.logger = logging.getLogger(__name__)
        self.lock = threading.RLock()

        self.state = PlaybackState.IDLE
        self.current_song: Optional[Song] = None
        self.progress_seconds: float = 0
        self.duration_seconds: float = 0
        self.shuffle = False
        self.repeat = False
        self.last_error: Optional[str] = None
        self.volume = self.driver.set_volume(volume)

        # Progress clock
        self._clock: Any = None
        self._clock_generation = 0

        # Token of the resource whose end has already been handled
        self._handled_end_token: Optional[int] = None

        self._listeners: Dict[str, List[Callable[..., None]]] = {name: [] for name in self.EVENTS}

        self.driver.set_callbacks(
            on_ended=self.on_song_end,
            on_error=self.on_audio_error,
            on_started=self.on_deferred_start,
        )

    # =========================================================================
    # Events
    # =========================================================================

    def subscribe(self, event: str, callback: Callable[..., None]):
        """
        Register a listener.

        Events: track_changed(song), state_changed(state), ended(song), error(message).
        """
        if event not in self._listeners:
            raise ValueError(f"Unknown playback event: {event}")
        self._listeners[event].append(callback)

    def _emit(self, event: str, *args):
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception as e:
                self.logger.error("Error in %s listener: %s", event, e, exc_info=True)

    def _set_state(self, state: PlaybackState):
        if state != self.state:
            self.logger.debug("State %s -> %s", self.state.value, state.value)
            self.state = state
            self._emit("state_changed", state)

    @property
    def is_playing(self) -> bool:
        return self.state == PlaybackState.PLAYING

    # =========================================================================
    # Transport
    # =========================================================================

    def play(self, song: Song) -> bool:
        """
        Play a song from the beginning.

        The song becomes current, is recorded in history, and recommendations
        are refreshed even when the audio backend refuses to start.

        Returns:
            True if audio started, False if it is blocked or failed
        """
        with self.lock:
            return self._play_song(song)

    def _play_song(self, song: Song) -> bool:
        self.logger.info("Playing: %s by %s", song.name, song.artist)
        started = self._load_current(song)

        self.history.record_play(song)
        if self.recommendations:
            try:
                self.recommendations.refresh()
            except Exception as e:
                self.logger.error("Could not refresh recommendations: %s", e, exc_info=True)

        self._emit("track_changed", song)
        return started

    def _load_current(self, song: Song) -> bool:
        """Make song current at position 0 and hand it to the driver."""
        self._stop_clock()
        self.current_song = song
        self.duration_seconds = song.duration or self.fallback_duration_seconds
        self.progress_seconds = 0
        self.last_error = None
        self._handled_end_token = None

        started = self.driver.load_and_play(self.resolver.resolve(song), self.duration_seconds)
        if started:
            self._set_state(PlaybackState.PLAYING)
            self._start_clock()
        else:
            if self.last_error is None:
                self.logger.info("Audio not started for %s, waiting for user interaction", song.name)
            self._set_state(PlaybackState.PAUSED)
        return started

    def pause(self) -> bool:
        """
        Pause playback.

        Returns:
            True if paused, False if not playing
        """
        with self.lock:
            if self.state != PlaybackState.PLAYING:
                self.logger.debug("Not playing, cannot pause")
                return False

            self.logger.info("Pausing playback")
            self._stop_clock()
            self.driver.pause()
            self._set_state(PlaybackState.PAUSED)
            return True

    def resume(self) -> bool:
        """
        Resume a paused song.

        Reloads the resource at the current position if the driver no
        longer holds it (e.g. after a resource error). A song that already
        reached its end starts again from the beginning.

        Returns:
            True if playing afterwards, False otherwise
        """
        with self.lock:
            if self.current_song is None or self.state != PlaybackState.PAUSED:
                self.logger.debug("Nothing paused, cannot resume")
                return False

            if self.progress_seconds >= self.duration_seconds:
                self.logger.info("Song already finished, restarting %s", self.current_song.name)
                return self._load_current(self.current_song)

            self.logger.info("Resuming playback")
            if self.driver.is_loaded:
                started = self.driver.resume()
            else:
                self._handled_end_token = None
                started = self.driver.load_and_play(
                    self.resolver.resolve(self.current_song), self.duration_seconds
                )
                if started and self.progress_seconds > 0:
                    self.driver.seek(self.progress_seconds)

            if not started:
                return False
            self.last_error = None
            self._set_state(PlaybackState.PLAYING)
            self._start_clock()
            return True

    def stop(self) -> bool:
        """
        Stop playback, release the audio resource and return to idle.

        Returns:
            True if stopped, False if already idle
        """
        with self.lock:
            if self.current_song is None and self.state == PlaybackState.IDLE:
                self.logger.debug("Already idle, nothing to stop")
                return False

            self.logger.info("Stopping playback")
            self._stop_clock()
            self.driver.release()
            self.current_song = None
            self.progress_seconds = 0
            self.duration_seconds = 0
            self._set_state(PlaybackState.IDLE)
            return True

    def seek(self, position_seconds: float) -> float:
        """
        Move the playback position.

        Args:
            position_seconds: Target position; clamped to [0, duration]

        Returns:
            The clamped position
        """
        with self.lock:
            position = max(0.0, min(float(position_seconds), float(self.duration_seconds)))
            self.progress_seconds = position
            self.driver.seek(position)
            self.logger.debug("Seeked to %ss", position)
            return position

    def set_volume(self, level: float) -> float:
        """Set volume, clamped to [0, 1]. Returns the applied level."""
        with self.lock:
            self.volume = self.driver.set_volume(level)
            return self.volume

    def toggle_shuffle(self) -> bool:
        with self.lock:
            self.shuffle = not self.shuffle
            self.logger.info("Shuffle %s", "on" if self.shuffle else "off")
            return self.shuffle

    def toggle_repeat(self) -> bool:
        with self.lock:
            self.repeat = not self.repeat
            self.logger.info("Repeat %s", "on" if self.repeat else "off")
            return self.repeat

    # =========================================================================
    # Navigation
    # =========================================================================

    def next(self) -> bool:
        """
        Advance according to shuffle/repeat.

        Returns:
            True if audio is playing afterwards, False otherwise
        """
        with self.lock:
            self.logger.info("Skipping to next song")
            return self._advance()

    def previous(self) -> bool:
        """
        Go back.

        Restarts the current song when past the restart threshold; otherwise
        plays the previously played song (shuffle) or the catalog predecessor.

        Returns:
            True if audio is playing afterwards, False otherwise
        """
        with self.lock:
            songs = self.catalog.all()

            if self.current_song is None:
                if not songs:
                    self.logger.info("Catalog is empty, nothing to play")
                    return False
                return self._play_song(songs[0])

            if self.progress_seconds > self.restart_threshold_seconds:
                self.logger.info("Restarting current song")
                self.seek(0)
                return self.is_playing

            if self.shuffle:
                recent = self.history.get_recently_played()
                if len(recent) >= 2:
                    return self._play_song(recent[1])

            if not songs:
                return False
            index = self.catalog.index_of(self.current_song.id)
            if index < 0:
                return self._play_song(songs[0])
            return self._play_song(songs[(index - 1) % len(songs)])

    def _advance(self) -> bool:
        """Apply the advance policy: repeat, else shuffle pick, else sequential."""
        if self.repeat and self.current_song is not None:
            self.logger.info("Repeating %s", self.current_song.name)
            return self._load_current(self.current_song)

        next_song = self._choose_next()
        if next_song is None:
            self.logger.info("Catalog is empty, nothing to advance to")
            return False
        return self._play_song(next_song)

    def _choose_next(self) -> Optional[Song]:
        songs = self.catalog.all()
        if not songs:
            return None
        if self.current_song is None:
            return songs[0]

        if self.shuffle:
            recent_ids = {
                song.id
                for song in self.history.get_recently_played()[: self.shuffle_exclusion_count]
            }
            pool = [
                song
                for song in songs
                if song.id not in recent_ids and song.id != self.current_song.id
            ]
            if not pool:
                pool = songs
            return pool[min(int(self.random_fn() * len(pool)), len(pool) - 1)]

        index = self.catalog.index_of(self.current_song.id)
        if index < 0:
            return songs[0]
        return songs[(index + 1) % len(songs)]

    # =========================================================================
    # Progress Clock
    # =========================================================================

    def _start_clock(self):
        self._stop_clock()
        self._schedule_tick(self._clock_generation)

    def _stop_clock(self):
        if self._clock is not None:
            self._clock.cancel()
            self._clock = None
        # Invalidates any tick already in flight
        self._clock_generation += 1

    def _schedule_tick(self, generation: int):
        self._clock = self.timer_factory(1.0, lambda: self._on_tick(generation))
        self._clock.start()

    def _on_tick(self, generation: int):
        with self.lock:
            if generation != self._clock_generation or self.state != PlaybackState.PLAYING:
                return
            self._clock = None

            # Prefer the resource's own clock when the backend reports one
            position = self.driver.get_position()
            if position is None:
                position = self.progress_seconds + 1
            self.progress_seconds = max(0.0, min(float(position), float(self.duration_seconds)))

            if self.progress_seconds >= self.duration_seconds:
                self._on_track_finished(self.driver.token, "progress clock")
                return
            self._schedule_tick(generation)

    # =========================================================================
    # Driver Notifications
    # =========================================================================

    def on_song_end(self, token: int):
        """Called by the driver when a resource finishes (naturally or by watchdog)."""
        with self.lock:
            self._on_track_finished(token, "audio driver")

    def _on_track_finished(self, token: int, source: str):
        if token != self.driver.token:
            self.logger.debug("Ignoring end of released resource %s (%s)", token, source)
            return
        if self._handled_end_token == token:
            self.logger.debug("End of resource %s already handled (%s)", token, source)
            return
        self._handled_end_token = token

        self._stop_clock()
        self.progress_seconds = self.duration_seconds
        finished = self.current_song
        if finished is not None:
            self.logger.info("Song ended (%s): %s", source, finished.name)
            self._emit("ended", finished)

        if not self._advance():
            self._set_state(PlaybackState.PAUSED if finished else PlaybackState.IDLE)

    def on_audio_error(self, token: int, message: str):
        """Called by the driver on resource errors; keeps the song selected without advancing."""
        with self.lock:
            if token != self.driver.token:
                self.logger.debug("Ignoring error from released resource %s", token)
                return
            song_name = self.current_song.name if self.current_song else "unknown"
            self.logger.error("Playback error for %s: %s", song_name, message)
            self._stop_clock()
            self.last_error = message
            self._set_state(PlaybackState.PAUSED if self.current_song else PlaybackState.IDLE)
            self._emit("error", message)

    def on_deferred_start(self, token: int):
        """Called by the driver when blocked playback starts after a user gesture."""
        with self.lock:
            if token != self.driver.token or self.current_song is None:
                return
            self.logger.info("Audio started for %s", self.current_song.name)
            self._set_state(PlaybackState.PLAYING)
            self._start_clock()

    def notify_user_interaction(self, kind: str = "pointer") -> bool:
        """Forward a user gesture to the driver to unblock deferred playback."""
        return self.driver.notify_user_interaction(kind)

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> Dict[str, Any]:
        """
        Get current playback status.

        Returns:
            Dictionary with playback state and current song info
        """
        with self.lock:
            return {
                "state": self.state.value,
                "is_playing": self.is_playing,
                "current_song": self.current_song.to_dict() if self.current_song else None,
                "progress_seconds": self.progress_seconds,
                "duration_seconds": self.duration_seconds,
                "shuffle": self.shuffle,
                "repeat": self.repeat,
                "volume": self.volume,
                "awaiting_interaction": self.driver.retry_pending,
                "last_error": self.last_error,
            }

    def shutdown(self):
        """Stop the progress clock and release the audio resource."""
        self.logger.info("Shutting down playback controller")
        with self.lock:
            self._stop_clock()
            self.driver.release()
            self._set_state(PlaybackState.IDLE)
        self.logger.info("Playback controller shut down")
