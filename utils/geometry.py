"""
Utility functions for geometric calculations, primarily for arcs.

Arc math works on the two in-plane coordinates (``a``, ``b``) of the active
plane; the caller maps them back to X/Y/Z.
"""
import math
from typing import List, Optional, Tuple

TINY = 1e-12
FULL_TURN = 2 * math.pi

Point2D = Tuple[float, float]


def arc_center_from_radius(clockwise: bool, a1: float, b1: float,
                           a2: float, b2: float, radius: float) -> Optional[Point2D]:
    """
    Calculates the arc center for R-format arcs.
    A positive radius picks the shorter arc, a negative one the longer arc.
    Returns None when the arc is impossible.
    """
    abs_radius = abs(radius)
    if abs_radius < TINY:
        return None
    half_dist = math.hypot(a2 - a1, b2 - b1) / 2.0
    if half_dist < TINY:
        return None

    if half_dist > abs_radius:
        if (half_dist - abs_radius) / abs_radius > 1e-6:
            return None
        half_dist = abs_radius  # Allow for small floating point error for semicircles

    offset = math.sqrt(max(0.0, abs_radius ** 2 - half_dist ** 2))
    mid_a, mid_b = (a1 + a2) / 2.0, (b1 + b2) / 2.0
    angle = math.atan2(b2 - b1, a2 - a1)

    # G2 with R+ or G3 with R- means shorter arc
    if clockwise == (radius > 0):
        center_angle = angle - math.pi / 2.0
    else:
        center_angle = angle + math.pi / 2.0

    return (mid_a + offset * math.cos(center_angle),
            mid_b + offset * math.sin(center_angle))


def arc_sweep(clockwise: bool, start: Point2D, end: Point2D, center: Point2D) -> float:
    """Signed sweep angle from start to end around center (negative is clockwise).

    Coincident start and end points describe a full circle.
    """
    start_angle = math.atan2(start[1] - center[1], start[0] - center[0])
    end_angle = math.atan2(end[1] - center[1], end[0] - center[0])
    sweep = end_angle - start_angle
    full_circle = math.isclose(start[0], end[0], abs_tol=1e-9) and \
        math.isclose(start[1], end[1], abs_tol=1e-9)

    if full_circle:
        return -FULL_TURN if clockwise else FULL_TURN
    if clockwise and sweep >= 0:
        sweep -= FULL_TURN
    elif not clockwise and sweep <= 0:
        sweep += FULL_TURN
    return sweep


def tessellate_arc(clockwise: bool, start: Point2D, end: Point2D, center: Point2D,
                   divisions_per_turn: int) -> List[Tuple[Point2D, float]]:
    """
    Split an arc into chords.

    Returns the chord end points as ``((a, b), fraction)`` pairs, where
    fraction runs from just above 0 to exactly 1 and can be used to
    interpolate the axis normal to the plane (helical moves). The final
    point is ``end`` itself so no rounding drift accumulates.
    """
    sweep = arc_sweep(clockwise, start, end, center)
    radius = math.hypot(start[0] - center[0], start[1] - center[1])
    pieces = max(1, math.ceil(max(1, divisions_per_turn) * abs(sweep) / FULL_TURN))
    start_angle = math.atan2(start[1] - center[1], start[0] - center[0])

    points = []
    for i in range(1, pieces):
        fraction = i / pieces
        angle = start_angle + sweep * fraction
        points.append(((center[0] + radius * math.cos(angle),
                        center[1] + radius * math.sin(angle)), fraction))
    points.append((end, 1.0))
    return points


def ray_segment_distance(origin, direction, p0, p1) -> Tuple[float, float]:
    """
    Closest approach between a ray and a segment, both given as 3-tuples.

    Returns ``(distance, t)`` where ``t`` is the distance along the ray to the
    closest point. A zero-length direction never hits anything.
    """
    ux, uy, uz = direction
    norm = math.sqrt(ux * ux + uy * uy + uz * uz)
    if norm < TINY:
        return math.inf, math.inf
    ux, uy, uz = ux / norm, uy / norm, uz / norm

    vx, vy, vz = p1[0] - p0[0], p1[1] - p0[1], p1[2] - p0[2]
    wx, wy, wz = origin[0] - p0[0], origin[1] - p0[1], origin[2] - p0[2]

    b = ux * vx + uy * vy + uz * vz
    c = vx * vx + vy * vy + vz * vz
    d = ux * wx + uy * wy + uz * wz
    e = vx * wx + vy * wy + vz * wz
    denom = c - b * b

    if c < TINY:
        s = 0.0
    elif denom < TINY:
        # Parallel to the ray
        s = min(1.0, max(0.0, e / c))
    else:
        s = min(1.0, max(0.0, (e - b * d) / denom))

    t = max(0.0, s * b - d)
    if c >= TINY:
        # Project the (possibly clamped) ray point back onto the segment.
        s = min(1.0, max(0.0, (e + t * b) / c))
        t = max(0.0, s * b - d)

    qx, qy, qz = p0[0] + s * vx, p0[1] + s * vy, p0[2] + s * vz
    rx, ry, rz = origin[0] + t * ux, origin[1] + t * uy, origin[2] + t * uz
    distance = math.sqrt((rx - qx) ** 2 + (ry - qy) ** 2 + (rz - qz) ** 2)
    return distance, t
