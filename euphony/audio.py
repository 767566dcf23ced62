"""
Audio session driver for euphony.

Owns the single playable resource of the application. Loading a new resource
always releases the previous one (timers, pending retries, backend handles)
first. Reports natural end-of-track and resource errors to its owner and
runs a watchdog that forces end-of-track handling when a backend never
delivers its own end-of-stream notification.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

# Defer GStreamer imports until a GStreamer backend is actually created
_Gst = None

TimerFactory = Callable[[float, Callable[[], None]], Any]


class PlaybackBlocked(Exception):
    """Raised by a backend that refuses to start audio without a user gesture."""

    pass


class AudioResourceError(Exception):
    """Raised when a resource cannot be opened (decode or network failure)."""

    pass


def default_timer_factory(interval: float, callback: Callable[[], None]) -> threading.Timer:
    """Create a daemon threading.Timer (not started)."""
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    return timer


def _get_gst():
    """Lazily import GStreamer so the silent backend works without it."""
    global _Gst
    if _Gst is not None:
        return _Gst

    try:
        import gi

        gi.require_version("Gst", "1.0")
        from gi.repository import Gst as _Gst_module

        if not _Gst_module.is_initialized():
            _Gst_module.init(None)
        _Gst = _Gst_module
        return _Gst
    except Exception as e:
        logging.getLogger(__name__).error("Failed to import GStreamer: %s", e)
        raise


# =========================================================================
# Backends
# =========================================================================


class AudioBackend(ABC):
    """Abstract base class for audio output backends."""

    def set_callbacks(
        self,
        on_eos: Callable[[], None],
        on_error: Callable[[str], None],
    ):
        """Register end-of-stream and error callbacks."""
        self._on_eos = on_eos
        self._on_error = on_error

    def _emit_eos(self):
        callback = getattr(self, "_on_eos", None)
        if callback:
            callback()

    def _emit_error(self, message: str):
        callback = getattr(self, "_on_error", None)
        if callback:
            callback(message)

    @abstractmethod
    def open(self, uri: str):
        """
        Prepare a resource for playback.

        Raises:
            AudioResourceError: If the resource cannot be opened
        """
        ...

    @abstractmethod
    def play(self):
        """
        Start or continue playback of the open resource.

        Raises:
            PlaybackBlocked: If the environment refuses to start audio
        """
        ...

    @abstractmethod
    def pause(self):
        """Pause playback."""
        ...

    @abstractmethod
    def stop(self):
        """Stop playback and release the open resource."""
        ...

    @abstractmethod
    def seek(self, position_seconds: float) -> bool:
        """Seek to a position in seconds."""
        ...

    @abstractmethod
    def set_volume(self, level: float):
        """Set output volume in [0, 1]."""
        ...

    @abstractmethod
    def get_position(self) -> Optional[float]:
        """Current position in seconds, or None if the backend cannot tell."""
        ...


class NullAudioBackend(AudioBackend):
    """Silent backend; playback is purely simulated by the progress clock."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.uri: Optional[str] = None
        self.state = "idle"
        self.volume = 1.0

    def open(self, uri: str):
        self.uri = uri
        self.state = "ready"

    def play(self):
        self.state = "playing"

    def pause(self):
        self.state = "paused"

    def stop(self):
        self.uri = None
        self.state = "idle"

    def seek(self, position_seconds: float) -> bool:
        return self.uri is not None

    def set_volume(self, level: float):
        self.volume = level

    def get_position(self) -> Optional[float]:
        return None


class GstAudioBackend(AudioBackend):
    """GStreamer playbin backend; one pipeline per opened resource."""

    def __init__(self, sink_name: str = "autoaudiosink"):
        self.sink_name = sink_name
        self.logger = logging.getLogger(__name__)
        self.playbin: Any = None
        self._volume = 1.0
        self._bus_poll_running = False
        self._bus_poll_thread: Optional[threading.Thread] = None

    def open(self, uri: str):
        Gst = _get_gst()
        self.stop()

        playbin = Gst.ElementFactory.make("playbin", None)
        if playbin is None:
            raise AudioResourceError("Failed to create playbin element")

        audio_sink = Gst.ElementFactory.make(self.sink_name, None)
        if audio_sink is None:
            raise AudioResourceError(f"Audio sink {self.sink_name} is not available")
        playbin.set_property("audio-sink", audio_sink)

        video_sink = Gst.ElementFactory.make("fakesink", None)
        if video_sink is not None:
            playbin.set_property("video-sink", video_sink)

        playbin.set_property("uri", uri)
        playbin.set_property("volume", self._volume)
        self.playbin = playbin
        self._start_bus_polling()
        self.logger.info("Opened %s", uri)

    def play(self):
        if self.playbin is None:
            return
        Gst = _get_gst()
        ret = self.playbin.set_state(Gst.State.PLAYING)
        if ret == Gst.StateChangeReturn.FAILURE:
            self.playbin.set_state(Gst.State.PAUSED)
            raise PlaybackBlocked("Audio sink refused to start playback")

        ret, state, pending = self.playbin.get_state(5 * Gst.SECOND)
        if ret == Gst.StateChangeReturn.FAILURE:
            self.playbin.set_state(Gst.State.PAUSED)
            raise PlaybackBlocked("Pipeline failed to reach PLAYING state")

    def pause(self):
        if self.playbin is None:
            return
        Gst = _get_gst()
        self.playbin.set_state(Gst.State.PAUSED)

    def stop(self):
        self._stop_bus_polling()
        if self.playbin is not None:
            Gst = _get_gst()
            self.playbin.set_state(Gst.State.NULL)
            self.playbin = None

    def seek(self, position_seconds: float) -> bool:
        if self.playbin is None:
            return False
        Gst = _get_gst()
        position_ns = int(position_seconds * Gst.SECOND)
        return self.playbin.seek_simple(
            Gst.Format.TIME, Gst.SeekFlags.FLUSH | Gst.SeekFlags.KEY_UNIT, position_ns
        )

    def set_volume(self, level: float):
        self._volume = level
        if self.playbin is not None:
            self.playbin.set_property("volume", level)

    def get_position(self) -> Optional[float]:
        if self.playbin is None:
            return None
        try:
            Gst = _get_gst()
            success, position = self.playbin.query_position(Gst.Format.TIME)
            if success:
                return position / Gst.SECOND
            return None
        except Exception as e:
            self.logger.warning("Could not get playback position: %s", e)
            return None

    # Bus polling (no GLib main loop in the server process)

    def _start_bus_polling(self):
        self._bus_poll_running = True
        playbin = self.playbin

        def poll_bus():
            Gst = _get_gst()
            bus = playbin.get_bus()
            while self._bus_poll_running and self.playbin is playbin:
                msg = bus.timed_pop(100 * Gst.MSECOND)
                if not msg:
                    continue
                if not self._bus_poll_running or self.playbin is not playbin:
                    break
                if msg.type == Gst.MessageType.EOS:
                    self.logger.info("End of stream reached")
                    self._emit_eos()
                elif msg.type == Gst.MessageType.ERROR:
                    err, debug = msg.parse_error()
                    self.logger.error("GStreamer error: %s (%s)", err, debug)
                    self._emit_error(str(err))

        self._bus_poll_thread = threading.Thread(target=poll_bus, daemon=True, name="GstBusPoll")
        self._bus_poll_thread.start()

    def _stop_bus_polling(self):
        self._bus_poll_running = False
        thread = self._bus_poll_thread
        self._bus_poll_thread = None
        # The poll thread itself may trigger a reload through the EOS callback
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=1)


def create_backend(name: Optional[str], sink_name: Optional[str] = None) -> AudioBackend:
    """Create the backend named in configuration ('null' or 'gstreamer')."""
    if name == "gstreamer":
        return GstAudioBackend(sink_name or "autoaudiosink")
    if name not in (None, "", "null"):
        logging.getLogger(__name__).warning("Unknown audio backend %s, using silent backend", name)
    return NullAudioBackend()


# =========================================================================
# Session Driver
# =========================================================================


class AudioSessionDriver:
    """
    Owns at most one active audio resource at a time.

    Every loaded resource gets a new token. Notifications carry the token of
    the resource they concern, and notifications for a released resource are
    dropped, so the owner never sees events from a previous track.
    """

    USER_INPUT_KINDS = ("pointer", "key", "touch")

    def __init__(
        self,
        backend: AudioBackend,
        timer_factory: Optional[TimerFactory] = None,
        watchdog_grace_seconds: float = 2,
    ):
        """
        Initialize AudioSessionDriver.

        Args:
            backend: Audio output backend
            timer_factory: Creates watchdog timers (defaults to daemon threading.Timer)
            watchdog_grace_seconds: Time allowed past the track duration before forcing an end
        """
        self.backend = backend
        self.timer_factory = timer_factory or default_timer_factory
        self.watchdog_grace_seconds = watchdog_grace_seconds
        self.logger = logging.getLogger(__name__)
        self.lock = threading.RLock()

        self.token = 0
        self.volume = 1.0
        self._loaded = False
        self._paused = False
        self._ended = False
        self._duration = 0.0
        self._watchdog: Any = None
        self._retry_pending = False

        self._ended_callback: Optional[Callable[[int], None]] = None
        self._error_callback: Optional[Callable[[int, str], None]] = None
        self._started_callback: Optional[Callable[[int], None]] = None

        self._bind_backend(self.token)

    def set_callbacks(
        self,
        on_ended: Callable[[int], None],
        on_error: Callable[[int, str], None],
        on_started: Optional[Callable[[int], None]] = None,
    ):
        """
        Register the owner's notifications.

        Args:
            on_ended: Called with the resource token when a track finishes
            on_error: Called with the token and a message on resource errors
            on_started: Called with the token when deferred playback finally starts
        """
        self._ended_callback = on_ended
        self._error_callback = on_error
        self._started_callback = on_started

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def retry_pending(self) -> bool:
        return self._retry_pending

    # Resource lifecycle

    def load_and_play(self, uri: str, duration_seconds: float) -> bool:
        """
        Release the current resource, load a new one, and try to start it.

        Args:
            uri: Playable resource reference
            duration_seconds: Stated track length, used by the watchdog

        Returns:
            True if audio started, False if playback was blocked (a retry is
            registered for the next user input) or the resource failed to open
        """
        error_message = None
        with self.lock:
            self.release()
            self.token += 1
            token = self.token
            self._bind_backend(token)
            self._duration = float(duration_seconds)

            try:
                self.backend.open(uri)
            except AudioResourceError as e:
                self.logger.error("Could not open %s: %s", uri, e)
                error_message = str(e)
            else:
                self._loaded = True
                self.backend.set_volume(self.volume)
                try:
                    self.backend.play()
                except PlaybackBlocked as e:
                    self.logger.warning(
                        "Playback blocked (%s), will retry on next user interaction", e
                    )
                    self._paused = True
                    self._retry_pending = True
                    return False

                self._paused = False
                self._arm_watchdog(self._duration + self.watchdog_grace_seconds)
                self.logger.info("Started resource %s (token %s)", uri, token)
                return True

        self._emit_error(token, error_message)
        return False

    def release(self):
        """Stop and free the held resource, its watchdog and any pending retry."""
        with self.lock:
            self._cancel_watchdog()
            self._retry_pending = False
            if self._loaded:
                try:
                    self.backend.stop()
                except Exception as e:
                    self.logger.error("Error releasing audio resource: %s", e, exc_info=True)
            self._loaded = False
            self._paused = False
            self._ended = False

    def notify_user_interaction(self, kind: str = "pointer") -> bool:
        """
        Signal a user gesture; retries blocked playback once if one is pending.

        Returns:
            True if deferred playback started because of this gesture
        """
        if kind not in self.USER_INPUT_KINDS:
            self.logger.debug("Ignoring unknown interaction kind %s", kind)
            return False

        with self.lock:
            if not self._retry_pending or not self._loaded:
                return False
            token = self.token
            try:
                self.backend.play()
            except PlaybackBlocked as e:
                self.logger.warning("Playback still blocked after %s input: %s", kind, e)
                return False
            self._retry_pending = False
            self._paused = False
            self._arm_remaining_watchdog()
            self.logger.info("Deferred playback started after %s input", kind)

        if self._started_callback:
            self._started_callback(token)
        return True

    # Transport

    def pause(self) -> bool:
        with self.lock:
            if not self._loaded:
                return False
            self._retry_pending = False
            self.backend.pause()
            self._paused = True
            return True

    def resume(self) -> bool:
        """
        Resume the held resource.

        Returns:
            True if audio is playing, False if nothing is loaded or playback is blocked
        """
        with self.lock:
            if not self._loaded:
                return False
            try:
                self.backend.play()
            except PlaybackBlocked as e:
                self.logger.warning("Resume blocked (%s), will retry on next user interaction", e)
                self._retry_pending = True
                return False
            self._retry_pending = False
            self._paused = False
            if self._watchdog is None and not self._ended:
                self._arm_remaining_watchdog()
            return True

    def seek(self, position_seconds: float) -> bool:
        with self.lock:
            if not self._loaded:
                return False
            success = self.backend.seek(position_seconds)
            if self._watchdog is not None:
                self._arm_watchdog(
                    max(0.0, self._duration - position_seconds) + self.watchdog_grace_seconds
                )
            return bool(success)

    def set_volume(self, level: float) -> float:
        level = max(0.0, min(1.0, float(level)))
        with self.lock:
            self.volume = level
            if self._loaded:
                self.backend.set_volume(level)
        return level

    def get_position(self) -> Optional[float]:
        with self.lock:
            if not self._loaded:
                return None
            return self.backend.get_position()

    # Watchdog

    def _arm_watchdog(self, delay: float):
        self._cancel_watchdog()
        token = self.token
        self._watchdog = self.timer_factory(delay, lambda: self._on_watchdog(token))
        self._watchdog.start()

    def _arm_remaining_watchdog(self):
        position = self.backend.get_position() or 0
        self._arm_watchdog(max(0.0, self._duration - position) + self.watchdog_grace_seconds)

    def _cancel_watchdog(self):
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _on_watchdog(self, token: int):
        with self.lock:
            if token != self.token or not self._loaded or self._ended:
                return
            self._watchdog = None
            if self._paused:
                self.logger.debug("Watchdog fired while paused, ignoring")
                return
            self.logger.warning("Track did not report its end in time, forcing stop")
            self.backend.pause()
            self._paused = True
            self._ended = True
        self._emit_ended(token)

    # Backend notifications

    def _bind_backend(self, token: int):
        """Route backend notifications to the resource identified by token."""
        self.backend.set_callbacks(
            on_eos=lambda: self._on_backend_eos(token),
            on_error=lambda message: self._on_backend_error(token, message),
        )

    def _on_backend_eos(self, token: int):
        with self.lock:
            if token != self.token:
                self.logger.debug("Dropping end of stream from released resource %s", token)
                return
            if not self._loaded or self._ended:
                return
            self._ended = True
            self._cancel_watchdog()
        self._emit_ended(token)

    def _on_backend_error(self, token: int, message: str):
        with self.lock:
            if token != self.token:
                self.logger.debug("Dropping error from released resource %s: %s", token, message)
                return
            if not self._loaded:
                return
            self._cancel_watchdog()
            self._paused = True
        self._emit_error(token, message)

    def _emit_ended(self, token: int):
        if self._ended_callback:
            self._ended_callback(token)

    def _emit_error(self, token: int, message: Optional[str]):
        if self._error_callback:
            self._error_callback(token, message or "Error playing track")
