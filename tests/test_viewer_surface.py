"""Tests for the rendering-surface viewer session."""

import pytest

from core import messages
from core.selection import SelectionEngine, SelectionRange
from viewer_surface import ViewerSurface

PATH = "G0 X10 Y0\nG1 X10 Y10\n"


@pytest.fixture
def posted():
    return []


@pytest.fixture
def updates():
    return []


@pytest.fixture
def surface(posted, updates):
    return ViewerSurface(posted.append, SelectionEngine(),
                         on_update=lambda kind, result: updates.append((kind, result)))


def _of_type(posted, kind):
    return [m for m in posted if m["type"] == kind]


def test_ready_posts_webview_ready(surface, posted):
    surface.ready()
    assert posted[0] == {"type": "webviewReady"}


def test_debug_messages_wait_for_connection(surface, posted):
    surface.handle_payload(messages.load_gcode(PATH, {}))
    assert _of_type(posted, "bridgeDebug") == []

    surface.connected()
    debug = [m["debugMessage"] for m in _of_type(posted, "bridgeDebug")]
    assert debug[0] == "[bridge] incoming message type=loadGCode"
    assert debug[-1] == "[bridge] HTTP bridge connected"


def test_load_requests_reframe(surface, updates):
    surface.handle_payload(messages.encode(messages.load_gcode(PATH, {"excludeCodes": ["G53"]})))
    kind, result = updates[-1]
    assert kind == "load"
    assert result.reframe and result.segment_count == 2
    assert surface.engine.exclude_codes == ["G53"]


def test_content_change_keeps_framing(surface, updates):
    surface.handle_payload(messages.load_gcode(PATH, {}))
    surface.handle_payload(messages.content_changed(PATH + "G1 X0\n", {}))
    kind, result = updates[-1]
    assert kind == "content"
    assert not result.reframe
    assert surface.engine.segment_count == 3


def test_missing_settings_use_fallback_excludes(surface):
    surface.handle_payload({"type": "loadGCode", "ncText": "G90\nG0 X5 Y0\n"})
    assert surface.engine.segment_count == 1
    assert "G90" in surface.engine.exclude_codes


def test_cursor_position_selects_line(surface, updates):
    surface.handle_payload(messages.load_gcode(PATH, {}))
    surface.handle_payload(messages.cursor_position_changed(2))
    assert surface.engine.selection == SelectionRange(1, 1)
    assert updates[-1] == ("selection", None)


def test_cursor_on_line_without_motion_changes_nothing(surface, updates):
    surface.handle_payload(messages.load_gcode(PATH, {}))
    count = len(updates)
    surface.handle_payload(messages.cursor_position_changed(9))
    assert len(updates) == count


def test_scrub_posts_highlight_line(surface, posted):
    surface.handle_payload(messages.load_gcode(PATH, {}))
    assert surface.scrub(1) == 2
    assert _of_type(posted, "highlightLine") == [{"type": "highlightLine", "lineNumber": 2}]


def test_scrub_out_of_range_posts_nothing(surface, posted):
    surface.handle_payload(messages.load_gcode(PATH, {}))
    assert surface.scrub(5) is None
    assert _of_type(posted, "highlightLine") == []


def test_click_hit_and_miss(surface, posted):
    surface.handle_payload(messages.load_gcode(PATH, {}))
    assert surface.click((5, 0, 10), (0, 0, -1), 0.5) == 1
    assert surface.click((50, 50, 10), (0, 0, -1), 0.5) is None
    assert _of_type(posted, "highlightLine") == [{"type": "highlightLine", "lineNumber": 1}]
    assert surface.engine.selection == SelectionRange(1, 1)


def test_bad_payload_is_reported(surface, posted, caplog):
    surface.connected()
    surface.handle_payload("{broken")
    assert "Failed to parse incoming payload" in caplog.text
    assert _of_type(posted, "bridgeDebug")[-1]["debugMessage"] == \
        "[bridge] failed to parse incoming payload"


def test_load_without_text_is_ignored(surface, updates):
    surface.handle_payload({"type": "loadGCode"})
    assert updates == []


def test_theme_change_notifies(surface, updates):
    surface.set_theme("light")
    assert surface.engine.theme == "light"
    assert updates[-1] == ("theme", None)
