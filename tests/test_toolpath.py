"""Tests for toolpath extraction."""

import math

import pytest

from core.lexer import tokenize
from core.toolpath import ORIGIN, ToolpathExtractor, extract_toolpath, normalize_command
from utils.errors import ErrorType


def test_basic_extraction():
    result = extract_toolpath("G0 X10 Y0\nG1 X10 Y10\n")
    assert [m.as_tuple() for m in result.movements] == [
        (0, 0, 0, "", 0),
        (10, 0, 0, "G0", 1),
        (10, 10, 0, "G1", 2),
    ]
    assert result.segment_count == 2
    assert not result.truncated


def test_first_movement_is_origin():
    assert extract_toolpath("").movements == [ORIGIN]
    assert extract_toolpath("(only a comment)\n").movements == [ORIGIN]


def test_excluded_command_contributes_nothing():
    result = extract_toolpath("G90\nG0 X5 Y0\n", exclude_codes=["G90"])
    assert len(result.movements) == 2
    assert result.movements[1].as_tuple() == (5, 0, 0, "G0", 2)


def test_excluded_line_with_axes_does_not_move():
    result = extract_toolpath("G0 X1\nG28 X0 Y0\nG1 Y3\n", exclude_codes=["G28"])
    assert [m.position() for m in result.movements] == [(0, 0, 0), (1, 0, 0), (1, 3, 0)]


def test_exclusion_matches_zero_padded_codes():
    result = extract_toolpath("G00 X5\n", exclude_codes=["G0"])
    assert result.movements == [ORIGIN]


def test_modal_axes_persist():
    result = extract_toolpath("G0 X10\nG0 Y5\n")
    assert result.movements[2].position() == (10, 5, 0)


def test_modal_motion_applies_to_axis_only_lines():
    result = extract_toolpath("G1 X1\nX2\nY4 Z-1\n")
    assert [m.as_tuple() for m in result.movements[1:]] == [
        (1, 0, 0, "G1", 1),
        (2, 0, 0, "G1", 2),
        (2, 4, -1, "G1", 3),
    ]


def test_axis_words_without_motion_are_reported():
    result = extract_toolpath("X5\n")
    assert result.movements == [ORIGIN]
    errors = result.diagnostics.get_errors_for_line(1)
    assert errors and errors[0].error_type is ErrorType.SEMANTIC


def test_non_motion_command_does_not_move():
    result = extract_toolpath("G1 X1\nG92 X5\n")
    assert len(result.movements) == 2


def test_command_without_axes_does_not_move():
    result = extract_toolpath("G0\nG1 F100\n")
    assert result.movements == [ORIGIN]


def test_zero_padded_commands_are_normalized():
    result = extract_toolpath("G00 X1\nG01 Y1\n")
    assert [m.command for m in result.movements[1:]] == ["G0", "G1"]
    assert normalize_command("m03") == "M3"


def test_comments_are_ignored():
    result = extract_toolpath("G1 X1 (X9 Y9)\nG1 Y2 ; X7\n")
    assert [m.position() for m in result.movements[1:]] == [(1, 0, 0), (1, 2, 0)]


def test_merged_command_matches_nothing():
    result = extract_toolpath("G0X10 Y5\n")
    assert result.movements == [ORIGIN]
    errors = result.diagnostics.get_errors_for_line(1)
    assert errors[0].error_type is ErrorType.SYNTAX
    assert (errors[0].char_start, errors[0].char_end) == (0, 5)


def test_invalid_axis_value_is_reported_and_skipped():
    result = extract_toolpath("G1 X1\nG1 X1.2.3 Y4\n")
    assert result.movements[2].position() == (1, 4, 0)
    assert result.diagnostics.error_lines() == [2]


def test_lowercase_input():
    result = extract_toolpath("g1 x3 y4\n")
    assert result.movements[1].as_tuple() == (3, 4, 0, "G1", 1)


def test_crlf_line_endings():
    result = extract_toolpath("G0 X1\r\nG0 X2\r\n")
    assert [m.line_number for m in result.movements] == [0, 1, 2]


def test_precomputed_tokens_are_accepted():
    text = "G0 X1 Y2\n"
    result = ToolpathExtractor().extract(text, tokenize(text))
    assert result.movements[1].position() == (1, 2, 0)


def test_arc_is_tessellated_on_its_line():
    result = extract_toolpath("G2 X10 Y0 I5 J0\n")
    chords = result.movements[1:]
    assert len(chords) == 32
    assert all(m.line_number == 1 and m.command == "G2" for m in chords)
    assert chords[-1].position() == (10, 0, 0)
    for m in chords:
        assert math.hypot(m.x - 5, m.y) == pytest.approx(5)
    # Clockwise from the left of the circle passes over the top
    assert chords[15].y > 0


def test_counterclockwise_arc_passes_below():
    result = extract_toolpath("G3 X10 Y0 I5 J0\n")
    assert result.movements[16].y < 0


def test_radius_arc():
    result = extract_toolpath("G1 X0 Y0\nG2 X10 Y0 R5\n")
    arc = [m for m in result.movements if m.line_number == 2]
    assert arc[-1].position() == (10, 0, 0)
    for m in arc:
        assert math.hypot(m.x - 5, m.y) == pytest.approx(5)


def test_helical_arc_interpolates_normal_axis():
    result = extract_toolpath("G2 X10 Y0 Z-4 I5 J0\n")
    zs = [m.z for m in result.movements[1:]]
    assert zs == sorted(zs, reverse=True)
    assert zs[-1] == -4


def test_full_circle():
    result = extract_toolpath("G0 X5\nG2 X5 Y0 I5 J0\n")
    arc = [m for m in result.movements if m.line_number == 2]
    assert len(arc) == 64
    assert arc[-1].position() == (5, 0, 0)


def test_arc_in_xz_plane():
    result = extract_toolpath("G18\nG2 X10 Z0 I5 K0\n")
    arc = result.movements[1:]
    assert all(m.y == 0 for m in arc)
    assert any(abs(m.z) > 1 for m in arc)


def test_arc_without_center_degrades_to_line():
    result = extract_toolpath("G2 X10 Y0\n")
    assert [m.as_tuple() for m in result.movements[1:]] == [(10, 0, 0, "G2", 1)]
    assert result.diagnostics.error_lines() == [1]


def test_movement_cap_keeps_prefix():
    text = "".join(f"G1 X{i}\n" for i in range(1, 11))
    result = extract_toolpath(text, max_movements=5)
    assert len(result.movements) == 5
    assert result.dropped == 6
    assert result.truncated
    assert [m.x for m in result.movements] == [0, 1, 2, 3, 4]


def test_extractor_is_reusable():
    extractor = ToolpathExtractor()
    extractor.extract("G0 X9\n")
    result = extractor.extract("G0 Y1\n")
    assert result.movements[1].position() == (0, 1, 0)
