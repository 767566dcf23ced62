"""
Pytest configuration for euphony tests.

Provides:
- @pytest.mark.gstreamer marker for tests that drive a real GStreamer pipeline
- Auto-skip of those tests when PyGObject or GStreamer is unavailable
"""

import pytest


def _gstreamer_available():
    """Check whether GStreamer can be initialized through PyGObject."""
    try:
        import gi

        gi.require_version("Gst", "1.0")
        from gi.repository import Gst

        Gst.init(None)
        return True
    except (ImportError, ValueError):
        return False


GSTREAMER_AVAILABLE = _gstreamer_available()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "gstreamer: test needs GStreamer audio output (skipped if unavailable)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip GStreamer tests when the bindings are missing."""
    if GSTREAMER_AVAILABLE:
        return

    skip = pytest.mark.skip(reason="GStreamer not available (PyGObject missing)")
    for item in items:
        if "gstreamer" in item.keywords:
            item.add_marker(skip)
