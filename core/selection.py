"""
Segment/line synchronization and selection.

Owns the extracted movements of one loaded document together with the
renderable line buffers derived from them, and keeps the three-way
selection coloring (before / selected / after) up to date.
"""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from core.toolpath import Movement, ToolpathExtractor
from utils.errors import ErrorCollector
from utils.geometry import ray_segment_distance

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float]
Vec3 = Tuple[float, float, float]

COLOR_THEMES = {
    "dark": {
        "feed": 0x50fa7b,
        "rapid": 0xff5555,
        "selected": 0xff79c6,
        "after_selected": 0x6272a4,
        "background": 0x282a36,
    },
    "light": {
        "feed": 0x2f9e44,
        "rapid": 0xd7263d,
        "selected": 0x5f3dc4,
        "after_selected": 0x94a2b8,
        "background": 0xf5f7fb,
    },
}


def hex_to_rgb(value: int) -> Color:
    """0xRRGGBB -> (r, g, b) floats in [0, 1]."""
    return (((value >> 16) & 0xff) / 255.0,
            ((value >> 8) & 0xff) / 255.0,
            (value & 0xff) / 255.0)


class EngineState(Enum):
    EMPTY = "empty"
    LOADED = "loaded"


@dataclass(frozen=True)
class SelectionRange:
    """Inclusive range of segment indices."""
    start: int
    end: int

    def __contains__(self, index: int) -> bool:
        return self.start <= index <= self.end


@dataclass(frozen=True)
class LoadResult:
    segment_count: int
    dropped: int
    reframe: bool


class SelectionEngine:
    """Maps source lines to toolpath segments and back, and colors the path."""

    def __init__(self, exclude_codes: Iterable[str] = (),
                 max_movements: Optional[int] = None,
                 arc_divisions: int = 64,
                 theme: str = "dark",
                 lexer_debug: bool = False):
        self.exclude_codes = list(exclude_codes)
        self.max_movements = max_movements
        self.arc_divisions = arc_divisions
        self.lexer_debug = lexer_debug
        self.theme = theme if theme in COLOR_THEMES else "dark"

        self.state = EngineState.EMPTY
        self.movements: List[Movement] = []
        self.dropped = 0
        self.diagnostics = ErrorCollector()
        self.positions: List[float] = []
        self.colors: List[float] = []
        self.segment_commands: List[str] = []
        self.selection: Optional[SelectionRange] = None
        self.scrubber = 0
        self._line_ranges: Dict[int, SelectionRange] = {}

    # Loading

    def load(self, text: str, exclude_codes: Optional[Iterable[str]] = None) -> LoadResult:
        """Initial load: rebuild everything and ask for the camera to be re-framed."""
        return self._rebuild(text, exclude_codes, reframe=True)

    def content_changed(self, text: str, exclude_codes: Optional[Iterable[str]] = None) -> LoadResult:
        """Edit while viewing: rebuild everything but keep the current framing."""
        return self._rebuild(text, exclude_codes, reframe=False)

    def _rebuild(self, text: str, exclude_codes: Optional[Iterable[str]], reframe: bool) -> LoadResult:
        if exclude_codes is not None:
            self.exclude_codes = list(exclude_codes)
        extractor = ToolpathExtractor(self.exclude_codes, self.max_movements,
                                      self.arc_divisions, self.lexer_debug)
        result = extractor.extract(text)

        self.movements = result.movements
        self.dropped = result.dropped
        self.diagnostics = result.diagnostics
        self._line_ranges = {}
        self.positions = []
        self.segment_commands = []
        for index in range(self.segment_count):
            start, end = self.movements[index], self.movements[index + 1]
            self.positions.extend((start.x, start.y, start.z, end.x, end.y, end.z))
            self.segment_commands.append(end.command)
            found = self._line_ranges.get(end.line_number)
            if found is None:
                self._line_ranges[end.line_number] = SelectionRange(index, index)
            else:
                self._line_ranges[end.line_number] = SelectionRange(found.start, index)

        self.state = EngineState.LOADED
        self.scrubber = 0
        if self.segment_count:
            self.select(0, 0)
        else:
            self.selection = None
            self.colors = []

        logger.info("Parsed movements: %d (%d segments%s)", len(self.movements), self.segment_count,
                    f", {self.dropped} dropped" if self.dropped else "")
        return LoadResult(self.segment_count, self.dropped, reframe)

    @property
    def segment_count(self) -> int:
        return max(0, len(self.movements) - 1)

    # Line <-> segment mapping

    def segment_range_for_line(self, line_number: int) -> Optional[SelectionRange]:
        """Segments drawn by ``line_number``, or None if the line did not move the tool."""
        return self._line_ranges.get(line_number)

    def line_number_for_segment(self, index: int) -> Optional[int]:
        if 0 <= index < self.segment_count:
            return self.movements[index + 1].line_number
        return None

    # Selection

    def cursor_position_changed(self, line_number: int) -> Optional[SelectionRange]:
        """Select the segments of the caret's line; lines without motion change nothing."""
        found = self.segment_range_for_line(line_number)
        if found is None:
            return None
        self.scrubber = found.end
        return self.select(found.start, found.end)

    def select(self, start: int, end: int) -> Optional[SelectionRange]:
        """Select ``[start, end]`` clamped to the available segments."""
        if self.segment_count == 0:
            self.selection = None
            self.colors = []
            return None
        last = self.segment_count - 1
        clamped_start = max(0, min(start, last))
        clamped_end = max(clamped_start, min(end, last))
        self.selection = SelectionRange(clamped_start, clamped_end)
        self._recolor()
        return self.selection

    def scrub_to(self, index: int) -> Optional[int]:
        """Move the scrubber; returns the line to highlight in the editor."""
        if not 0 <= index < self.segment_count:
            return None
        self.scrubber = index
        self.select(index, index)
        return self.line_number_for_segment(index)

    def hit_test(self, origin: Sequence[float], direction: Sequence[float],
                 threshold: float) -> Optional[int]:
        """Index of the nearest segment the ray passes within ``threshold`` of."""
        best_index = None
        best_t = math.inf
        best_distance = math.inf
        p = self.positions
        for index in range(self.segment_count):
            base = index * 6
            distance, t = ray_segment_distance(origin, direction,
                                               (p[base], p[base + 1], p[base + 2]),
                                               (p[base + 3], p[base + 4], p[base + 5]))
            if distance > threshold:
                continue
            if t < best_t or (t == best_t and distance < best_distance):
                best_index, best_t, best_distance = index, t, distance
        return best_index

    def click(self, origin: Sequence[float], direction: Sequence[float],
              threshold: float) -> Optional[int]:
        """
        Resolve a click in the view.
        A hit selects the whole line of the segment and returns that line;
        a miss marks the whole path as done and returns None.
        """
        index = self.hit_test(origin, direction, threshold)
        if index is None:
            if self.segment_count:
                self.scrubber = self.segment_count - 1
                self.select(self.segment_count, self.segment_count)
            return None
        line_number = self.line_number_for_segment(index)
        found = self.segment_range_for_line(line_number)
        self.select(found.start, found.end)
        self.scrubber = index
        return line_number

    # Colors

    def set_theme(self, theme: str):
        if theme not in COLOR_THEMES:
            raise ValueError(f"Unknown theme: {theme}")
        self.theme = theme
        self._recolor()

    def palette(self) -> Dict[str, Color]:
        return {name: hex_to_rgb(value) for name, value in COLOR_THEMES[self.theme].items()}

    def segment_color(self, index: int) -> Color:
        palette = COLOR_THEMES[self.theme]
        selection = self.selection
        if selection is None or index < selection.start:
            return hex_to_rgb(palette["feed"])
        if index <= selection.end:
            return hex_to_rgb(palette["selected"])
        return hex_to_rgb(palette["after_selected"])

    def _recolor(self):
        colors = []
        for index in range(self.segment_count):
            colors.extend(self.segment_color(index) * 2)
        self.colors = colors

    # Readouts

    def markers(self) -> Optional[Tuple[Vec3, Vec3]]:
        """Start and end points of the selection."""
        if self.selection is None:
            return None
        return (self.movements[self.selection.start].position(),
                self.movements[self.selection.end + 1].position())

    def position_readout(self) -> Vec3:
        found = self.markers()
        return found[1] if found else (0.0, 0.0, 0.0)

    def bounds(self) -> Tuple[Vec3, Vec3]:
        """Bounding box of the path; a unit box around the origin when there is none."""
        if self.segment_count == 0:
            return (-1.0, -1.0, -1.0), (1.0, 1.0, 1.0)
        xs = [m.x for m in self.movements]
        ys = [m.y for m in self.movements]
        zs = [m.z for m in self.movements]
        return (min(xs), min(ys), min(zs)), (max(xs), max(ys), max(zs))

    def framing(self) -> Tuple[Vec3, float]:
        """Center and diagonal size of the bounding box."""
        low, high = self.bounds()
        center = tuple((a + b) / 2.0 for a, b in zip(low, high))
        size = math.sqrt(sum((b - a) ** 2 for a, b in zip(low, high)))
        return center, size

    def click_threshold(self, zoom: float = 1.0) -> float:
        _, size = self.framing()
        return size / 100.0 / (zoom or 1.0)
