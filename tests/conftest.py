"""Pytest configuration helpers for the NC viewer tests."""

import os
import sys
from pathlib import Path

import pytest

# Ensure the project root is importable without requiring an editable install.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Widgets are created without a display.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Each test starts without the viewer's environment overrides."""
    monkeypatch.delenv("NCVIEWER_VERBOSE_LOG", raising=False)
    monkeypatch.delenv("NCVIEWER_LEXER_DEBUG", raising=False)


@pytest.fixture(scope="session")
def qapp():
    """Provide a ``QApplication`` instance for UI-oriented tests."""
    widgets = pytest.importorskip("PySide6.QtWidgets")
    app = widgets.QApplication.instance()
    if app is None:
        app = widgets.QApplication([])
    yield app


@pytest.fixture
def channel():
    """A bridge channel that is stopped after the test."""
    from bridge.channel import BridgeChannel

    bridge = BridgeChannel()
    yield bridge
    bridge.stop()


@pytest.fixture
def started_channel(channel):
    """A bridge channel serving on an ephemeral loopback port."""
    channel.start()
    return channel


@pytest.fixture
def published():
    """Decode every message currently buffered in a channel, oldest first."""
    return _published_messages


def _published_messages(channel):
    from core.messages import decode

    messages, version = [], 0
    while True:
        envelope = channel.buffer.next_after(version)
        if envelope is None:
            return messages
        messages.append(decode(envelope.message))
        version = envelope.version
