"""
Unit tests for the audio session driver and backends.

Timers are faked so watchdog behavior is deterministic.
"""

import threading
import time
from unittest.mock import Mock

import pytest

from euphony.audio import (
    AudioBackend,
    AudioResourceError,
    AudioSessionDriver,
    GstAudioBackend,
    NullAudioBackend,
    PlaybackBlocked,
    create_backend,
)


class FakeTimer:
    """Timer that only runs when fired by the test."""

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    @property
    def active(self):
        return self.started and not self.cancelled and not self.fired

    def fire(self):
        if self.active:
            self.fired = True
            self.callback()


class FakeTimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, callback):
        timer = FakeTimer(interval, callback)
        self.timers.append(timer)
        return timer

    def active(self):
        return [t for t in self.timers if t.active]


class ScriptedBackend(AudioBackend):
    """Backend whose failures are switched on by the test."""

    def __init__(self):
        self.block = False
        self.fail_open = False
        self.position = None
        self.calls = []
        self.volume = None

    def open(self, uri):
        self.calls.append(("open", uri))
        if self.fail_open:
            raise AudioResourceError("decode failed")

    def play(self):
        self.calls.append(("play",))
        if self.block:
            raise PlaybackBlocked("autoplay refused")

    def pause(self):
        self.calls.append(("pause",))

    def stop(self):
        self.calls.append(("stop",))

    def seek(self, position_seconds):
        self.calls.append(("seek", position_seconds))
        return True

    def set_volume(self, level):
        self.volume = level

    def get_position(self):
        return self.position


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def backend():
    return ScriptedBackend()


@pytest.fixture
def callbacks():
    return {"ended": Mock(), "error": Mock(), "started": Mock()}


@pytest.fixture
def driver(backend, timers, callbacks):
    driver = AudioSessionDriver(backend, timer_factory=timers, watchdog_grace_seconds=2)
    driver.set_callbacks(
        on_ended=callbacks["ended"],
        on_error=callbacks["error"],
        on_started=callbacks["started"],
    )
    return driver


def test_load_and_play_starts_and_arms_watchdog(driver, backend, timers):
    assert driver.load_and_play("a.mp3", 200) is True
    assert driver.token == 1
    assert driver.is_loaded
    assert ("open", "a.mp3") in backend.calls
    assert [t.interval for t in timers.active()] == [202]


def test_loading_releases_previous_resource(driver, backend, timers):
    driver.load_and_play("a.mp3", 200)
    first_watchdog = timers.active()[0]

    driver.load_and_play("b.mp3", 100)

    assert first_watchdog.cancelled
    assert backend.calls.count(("stop",)) == 1
    assert driver.token == 2
    assert [t.interval for t in timers.active()] == [102]


def test_open_failure_reports_error_and_driver_stays_usable(driver, backend, callbacks):
    backend.fail_open = True
    assert driver.load_and_play("broken.mp3", 200) is False
    callbacks["error"].assert_called_once_with(1, "decode failed")
    assert not driver.is_loaded

    backend.fail_open = False
    assert driver.load_and_play("ok.mp3", 200) is True


def test_blocked_playback_retries_on_user_interaction(driver, backend, timers, callbacks):
    backend.block = True
    assert driver.load_and_play("a.mp3", 200) is False
    assert driver.retry_pending
    assert timers.active() == []

    backend.block = False
    assert driver.notify_user_interaction("pointer") is True
    callbacks["started"].assert_called_once_with(1)
    assert not driver.retry_pending
    assert [t.interval for t in timers.active()] == [202]


def test_retry_is_not_duplicated(driver, backend, callbacks):
    backend.block = True
    driver.load_and_play("a.mp3", 200)
    backend.block = False

    assert driver.notify_user_interaction("key") is True
    assert driver.notify_user_interaction("touch") is False
    assert driver.notify_user_interaction("pointer") is False
    assert callbacks["started"].call_count == 1


def test_still_blocked_keeps_retry_pending(driver, backend, callbacks):
    backend.block = True
    driver.load_and_play("a.mp3", 200)

    assert driver.notify_user_interaction("pointer") is False
    assert driver.retry_pending
    callbacks["started"].assert_not_called()


def test_unknown_interaction_kind_ignored(driver, backend):
    backend.block = True
    driver.load_and_play("a.mp3", 200)
    backend.block = False

    assert driver.notify_user_interaction("scroll") is False
    assert driver.retry_pending


def test_new_load_cancels_pending_retry(driver, backend, callbacks):
    backend.block = True
    driver.load_and_play("a.mp3", 200)
    backend.block = False
    assert driver.load_and_play("b.mp3", 200) is True

    assert not driver.retry_pending
    assert driver.notify_user_interaction("pointer") is False
    callbacks["started"].assert_not_called()


def test_watchdog_forces_end(driver, backend, timers, callbacks):
    driver.load_and_play("a.mp3", 200)
    timers.active()[0].fire()

    callbacks["ended"].assert_called_once_with(1)
    assert ("pause",) in backend.calls


def test_watchdog_ignored_while_paused(driver, timers, callbacks):
    driver.load_and_play("a.mp3", 200)
    watchdog = timers.active()[0]
    driver.pause()
    watchdog.fire()

    callbacks["ended"].assert_not_called()


def test_resume_rearms_watchdog_after_paused_fire(driver, backend, timers, callbacks):
    driver.load_and_play("a.mp3", 200)
    driver.pause()
    timers.active()[0].fire()

    backend.position = 150
    assert driver.resume() is True
    assert [t.interval for t in timers.active()] == [52]


def test_stale_watchdog_ignored(driver, timers, callbacks):
    driver.load_and_play("a.mp3", 200)
    stale = timers.active()[0]
    driver.load_and_play("b.mp3", 200)

    # Simulate a timer that had already started running when it was cancelled
    stale.callback()

    callbacks["ended"].assert_not_called()


def test_backend_eos_reports_end_once(driver, backend, timers, callbacks):
    driver.load_and_play("a.mp3", 200)
    watchdog = timers.active()[0]

    backend._emit_eos()
    backend._emit_eos()
    watchdog.fire()

    callbacks["ended"].assert_called_once_with(1)
    assert watchdog.cancelled


def test_backend_error_reports_error_without_end(driver, backend, callbacks):
    driver.load_and_play("a.mp3", 200)
    backend._emit_error("network lost")

    callbacks["error"].assert_called_once_with(1, "network lost")
    callbacks["ended"].assert_not_called()
    assert driver.is_paused


class InFlightEndBackend(ScriptedBackend):
    """Backend whose poll thread reports the old resource while it is being stopped."""

    def __init__(self, emit="eos"):
        super().__init__()
        self.emit = emit
        self.threads = []

    def stop(self):
        super().stop()
        if self.emit == "eos":
            on_eos = self._on_eos
            thread = threading.Thread(target=on_eos)
        else:
            on_error = self._on_error
            thread = threading.Thread(target=on_error, args=("stream reset",))
        thread.start()
        self.threads.append(thread)
        # Give up on the poll thread like a join timeout would
        time.sleep(0.05)


@pytest.mark.parametrize("emit", ["eos", "error"])
def test_in_flight_notification_from_released_resource_dropped(timers, callbacks, emit):
    backend = InFlightEndBackend(emit)
    driver = AudioSessionDriver(backend, timer_factory=timers, watchdog_grace_seconds=2)
    driver.set_callbacks(
        on_ended=callbacks["ended"],
        on_error=callbacks["error"],
        on_started=callbacks["started"],
    )

    driver.load_and_play("old.mp3", 200)
    driver.load_and_play("new.mp3", 100)
    for thread in backend.threads:
        thread.join(timeout=1)

    callbacks["ended"].assert_not_called()
    callbacks["error"].assert_not_called()
    assert driver.token == 2
    assert not driver.is_paused
    assert [t.interval for t in timers.active()] == [102]

    # The new resource still reports its own end
    backend._emit_eos()
    callbacks["ended"].assert_called_once_with(2)


def test_resume_after_blocked_load_clears_retry(driver, backend, timers, callbacks):
    backend.block = True
    driver.load_and_play("a.mp3", 200)
    backend.block = False
    backend.position = 150

    assert driver.resume() is True
    assert not driver.retry_pending
    assert [t.interval for t in timers.active()] == [52]

    assert driver.notify_user_interaction("pointer") is False
    callbacks["started"].assert_not_called()
    assert backend.calls.count(("play",)) == 2
    assert [t.interval for t in timers.active()] == [52]


def test_user_interaction_arms_watchdog_for_remaining_time(driver, backend, timers):
    backend.block = True
    driver.load_and_play("a.mp3", 200)
    backend.block = False
    backend.position = 150

    assert driver.notify_user_interaction("touch") is True
    assert [t.interval for t in timers.active()] == [52]


def test_transport_noops_without_resource(driver, backend):
    assert driver.pause() is False
    assert driver.resume() is False
    assert driver.seek(10) is False
    assert driver.get_position() is None
    assert backend.calls == []


def test_seek_rearms_watchdog(driver, backend, timers):
    driver.load_and_play("a.mp3", 100)
    assert driver.seek(90) is True
    assert ("seek", 90) in backend.calls
    assert [t.interval for t in timers.active()] == [12]


def test_set_volume_clamps(driver, backend):
    assert driver.set_volume(1.5) == 1.0
    assert driver.set_volume(-1) == 0.0
    driver.load_and_play("a.mp3", 100)
    assert backend.volume == 0.0
    driver.set_volume(0.3)
    assert backend.volume == 0.3


def test_release_stops_backend_and_watchdog(driver, backend, timers):
    driver.load_and_play("a.mp3", 100)
    driver.release()
    assert not driver.is_loaded
    assert timers.active() == []
    assert ("stop",) in backend.calls


def test_null_backend():
    backend = NullAudioBackend()
    backend.open("a.mp3")
    backend.play()
    assert backend.state == "playing"
    assert backend.get_position() is None
    backend.stop()
    assert backend.uri is None


def test_create_backend():
    assert isinstance(create_backend("null"), NullAudioBackend)
    assert isinstance(create_backend(None), NullAudioBackend)
    assert isinstance(create_backend("bogus"), NullAudioBackend)
    assert isinstance(create_backend("gstreamer"), GstAudioBackend)


@pytest.mark.gstreamer
def test_gst_backend_open_and_stop():
    backend = GstAudioBackend(sink_name="fakesink")
    assert backend.get_position() is None
    backend.open("file:///nonexistent/euphony-test.mp3")
    assert backend.playbin is not None
    backend.stop()
    assert backend.playbin is None
