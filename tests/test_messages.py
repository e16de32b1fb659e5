"""Tests for bridge message helpers."""

import json

import pytest

from core import messages
from utils.errors import MessageError


def test_builders_use_wire_names():
    assert messages.load_gcode("G0 X1", {"excludeCodes": ["G90"]}) == {
        "type": "loadGCode", "ncText": "G0 X1", "settings": {"excludeCodes": ["G90"]}}
    assert messages.cursor_position_changed(4) == {"type": "cursorPositionChanged", "lineNumber": 4}
    assert messages.highlight_line(2) == {"type": "highlightLine", "lineNumber": 2}
    assert messages.webview_ready() == {"type": "webviewReady"}
    assert messages.bridge_debug("hi") == {"type": "bridgeDebug", "debugMessage": "hi"}


def test_encode_is_compact_json():
    encoded = messages.encode(messages.highlight_line(3))
    assert " " not in encoded
    assert json.loads(encoded) == {"type": "highlightLine", "lineNumber": 3}


@pytest.mark.parametrize("payload", [
    '{"type": "webviewReady"}',
    b'{"type": "webviewReady"}',
    {"type": "webviewReady"},
])
def test_decode_accepts_text_bytes_and_objects(payload):
    assert messages.decode(payload)["type"] == "webviewReady"


@pytest.mark.parametrize("payload", [
    "not json",
    "[1, 2]",
    '{"lineNumber": 1}',
    '{"type": 5}',
    None,
])
def test_decode_rejects_bad_payloads(payload):
    with pytest.raises(MessageError):
        messages.decode(payload)


@pytest.mark.parametrize("value, expected", [
    (3, 3),
    (3.0, 3),
    (2.5, None),
    ("3", None),
    (True, None),
    (None, None),
])
def test_line_number_of(value, expected):
    assert messages.line_number_of({"type": "highlightLine", "lineNumber": value}) == expected


def test_exclude_codes_of_falls_back():
    fallback = ["G10"]
    assert messages.exclude_codes_of({"type": "loadGCode"}, fallback) == ["G10"]
    assert messages.exclude_codes_of({"settings": {"excludeCodes": []}}, fallback) == ["G10"]
    assert messages.exclude_codes_of({"settings": {"excludeCodes": ["M30"]}}, fallback) == ["M30"]
