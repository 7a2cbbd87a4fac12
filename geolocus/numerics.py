"""Numeric evaluators for primitive and composite constructions.

These helpers compute the current coordinates of derived elements from the
coordinates of their parents.  They run on every interactive drag, so they stay
in plain Python floats and never raise for degenerate input: whenever a
denominator drops below :data:`EPS` the result is :data:`INFINITE_POINT`, and
any infinite input propagates to an infinite output.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

Point = Tuple[float, float]
LineValue = Tuple[Point, Point]
CircleValue = Tuple[Point, float]

EPS = 1e-12
INFINITE_POINT: Point = (math.inf, math.inf)


def is_infinite(pt: Optional[Sequence[float]]) -> bool:
    """Return ``True`` for the point-at-infinity sentinel (or any non-finite point)."""

    if pt is None:
        return True
    return not (math.isfinite(pt[0]) and math.isfinite(pt[1]))


def safe_div(num: float, den: float) -> float:
    if abs(den) < EPS:
        return math.inf
    return num / den


def safe_div_point(x: float, y: float, den: float) -> Point:
    """Divide both components by ``den``; tiny denominators give the sentinel."""

    if abs(den) < EPS:
        return INFINITE_POINT
    return (x / den, y / den)


def _as_point(pt: Sequence[float]) -> Point:
    return (float(pt[0]), float(pt[1]))


def _sub(a: Sequence[float], b: Sequence[float]) -> Point:
    return (float(a[0]) - float(b[0]), float(a[1]) - float(b[1]))


def _add(a: Sequence[float], b: Sequence[float]) -> Point:
    return (float(a[0]) + float(b[0]), float(a[1]) + float(b[1]))


def _scale(vec: Sequence[float], factor: float) -> Point:
    return (float(vec[0]) * factor, float(vec[1]) * factor)


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return float(a[0]) * float(b[0]) + float(a[1]) * float(b[1])


def _cross(a: Sequence[float], b: Sequence[float]) -> float:
    return float(a[0]) * float(b[1]) - float(a[1]) * float(b[0])


def _norm_sq(vec: Sequence[float]) -> float:
    return _dot(vec, vec)


def _norm(vec: Sequence[float]) -> float:
    return math.sqrt(_norm_sq(vec))


def _any_infinite(*points: Sequence[float]) -> bool:
    return any(is_infinite(pt) for pt in points)


def midpoint(A: Sequence[float], B: Sequence[float]) -> Point:
    """Return the midpoint between ``A`` and ``B``."""

    if _any_infinite(A, B):
        return INFINITE_POINT
    ax, ay = _as_point(A)
    bx, by = _as_point(B)
    return ((ax + bx) * 0.5, (ay + by) * 0.5)


def foot(P: Sequence[float], A: Sequence[float], B: Sequence[float]) -> Point:
    """Return the orthogonal projection of ``P`` onto line ``AB``."""

    if _any_infinite(P, A, B):
        return INFINITE_POINT
    ab = _sub(B, A)
    t = safe_div(_dot(_sub(P, A), ab), _norm_sq(ab))
    if math.isinf(t):
        return INFINITE_POINT
    return _add(A, _scale(ab, t))


def reflection(P: Sequence[float], A: Sequence[float], B: Sequence[float]) -> Point:
    """Return the mirror image of ``P`` across line ``AB``."""

    f = foot(P, A, B)
    if is_infinite(f):
        return INFINITE_POINT
    return (2.0 * f[0] - float(P[0]), 2.0 * f[1] - float(P[1]))


def parallel_point(A: Sequence[float], B: Sequence[float], C: Sequence[float]) -> Point:
    """Return ``C + (B - A)``."""

    if _any_infinite(A, B, C):
        return INFINITE_POINT
    return _add(C, _sub(B, A))


def mirror_point(center: Sequence[float], P: Sequence[float]) -> Point:
    """Return ``P`` rotated by pi around ``center``."""

    if _any_infinite(center, P):
        return INFINITE_POINT
    return (2.0 * float(center[0]) - float(P[0]), 2.0 * float(center[1]) - float(P[1]))


def circumcenter(A: Sequence[float], B: Sequence[float], C: Sequence[float]) -> Point:
    """Return the circumcenter of triangle ``ABC``."""

    if _any_infinite(A, B, C):
        return INFINITE_POINT
    ax, ay = _as_point(A)
    bx, by = _as_point(B)
    cx, cy = _as_point(C)
    d = 2.0 * (ax * (by - cy) + bx * (cy - ay) + cx * (ay - by))
    sa = ax * ax + ay * ay
    sb = bx * bx + by * by
    sc = cx * cx + cy * cy
    ux = sa * (by - cy) + sb * (cy - ay) + sc * (ay - by)
    uy = sa * (cx - bx) + sb * (ax - cx) + sc * (bx - ax)
    return safe_div_point(ux, uy, d)


def bisector_point(A: Sequence[float], B: Sequence[float], C: Sequence[float]) -> Point:
    """Return the point at unit distance from ``B`` on the bisector of angle ``ABC``."""

    if _any_infinite(A, B, C):
        return INFINITE_POINT
    ba = _sub(A, B)
    bc = _sub(C, B)
    na = _norm(ba)
    nc = _norm(bc)
    if na < EPS or nc < EPS:
        return INFINITE_POINT
    ua = (ba[0] / na, ba[1] / na)
    uc = (bc[0] / nc, bc[1] / nc)
    direction = (ua[0] + uc[0], ua[1] + uc[1])
    length = _norm(direction)
    if length < EPS:
        # straight angle: the bisector is the normal of BA
        direction = (-ua[1], ua[0])
        length = 1.0
    return (float(B[0]) + direction[0] / length, float(B[1]) + direction[1] / length)


def line_intersection(line1: LineValue, line2: LineValue) -> Point:
    """Return the intersection of two lines given by their defining point pairs."""

    (a, b), (c, d) = line1, line2
    if _any_infinite(a, b, c, d):
        return INFINITE_POINT
    d1 = _sub(b, a)
    d2 = _sub(d, c)
    t = safe_div(_cross(_sub(c, a), d2), _cross(d1, d2))
    if math.isinf(t):
        return INFINITE_POINT
    return _add(a, _scale(d1, t))


def project_to_line(P: Sequence[float], A: Sequence[float], B: Sequence[float]) -> Point:
    """Project ``P`` onto ``AB``; a collapsed line pins the result to ``A``."""

    if _any_infinite(A, B):
        return INFINITE_POINT
    if is_infinite(P):
        return _as_point(A)
    projected = foot(P, A, B)
    if is_infinite(projected):
        return _as_point(A)
    return projected


def project_to_circle(P: Sequence[float], center: Sequence[float], radius: float) -> Point:
    """Project ``P`` radially onto the circle."""

    if is_infinite(center) or not math.isfinite(radius):
        return INFINITE_POINT
    if is_infinite(P):
        return (float(center[0]) + radius, float(center[1]))
    vec = _sub(P, center)
    norm = _norm(vec)
    if norm < EPS:
        return (float(center[0]) + radius, float(center[1]))
    return _add(center, _scale(vec, radius / norm))


def circle_through(center: Sequence[float], through: Sequence[float]) -> CircleValue:
    if _any_infinite(center, through):
        return INFINITE_POINT, math.inf
    return _as_point(center), _norm(_sub(through, center))


__all__ = [
    "EPS",
    "INFINITE_POINT",
    "Point",
    "LineValue",
    "CircleValue",
    "bisector_point",
    "circle_through",
    "circumcenter",
    "foot",
    "is_infinite",
    "line_intersection",
    "midpoint",
    "mirror_point",
    "parallel_point",
    "project_to_circle",
    "project_to_line",
    "reflection",
    "safe_div",
    "safe_div_point",
]
