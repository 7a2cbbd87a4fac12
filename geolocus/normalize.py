"""Coordinate-frame normalization for locus systems.

Two free ancestors anchor the frame: the first moves to the origin and the
second onto the positive x-axis.  The symbolic system loses three parameters
(both coordinates of the origin anchor and the y of the axis anchor); the
numeric side gets a rigid :class:`Transform` with the same effect, and
:func:`bind_parameters` evaluates every surviving parameter through it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import sympy

from .graph import ConstructionGraph
from .model import ElementId
from .numerics import EPS, Point
from .symbolic import ConstraintSystem

logger = logging.getLogger(__name__)

Anchors = Tuple[ElementId, Optional[ElementId]]
PointSelector = Callable[[ConstructionGraph, ElementId, Sequence[ElementId]], Optional[Anchors]]


@dataclass(frozen=True)
class Transform:
    """``T(p) = R(theta) (p - origin)``; hashable so it can key curve caches."""

    origin: Point = (0.0, 0.0)
    theta: float = 0.0

    @classmethod
    def identity(cls) -> "Transform":
        return cls()

    @classmethod
    def from_points(cls, p0: Sequence[float], p1: Optional[Sequence[float]] = None) -> "Transform":
        origin = (float(p0[0]), float(p0[1]))
        if p1 is None:
            return cls(origin, 0.0)
        dx = float(p1[0]) - origin[0]
        dy = float(p1[1]) - origin[1]
        if math.hypot(dx, dy) < EPS:
            return cls(origin, 0.0)
        return cls(origin, -math.atan2(dy, dx))

    def _rotation(self, angle: float) -> np.ndarray:
        c, s = math.cos(angle), math.sin(angle)
        return np.array([[c, -s], [s, c]], dtype=float)

    def apply(self, points: np.ndarray) -> np.ndarray:
        """Map an ``(n, 2)`` array into the normalized frame."""

        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        return (pts - np.asarray(self.origin)) @ self._rotation(self.theta).T

    def inverse(self, points: np.ndarray) -> np.ndarray:
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        return pts @ self._rotation(-self.theta).T + np.asarray(self.origin)

    def apply_point(self, point: Sequence[float]) -> Point:
        x, y = self.apply(np.array([point], dtype=float))[0]
        return (float(x), float(y))

    def inverse_point(self, point: Sequence[float]) -> Point:
        x, y = self.inverse(np.array([point], dtype=float))[0]
        return (float(x), float(y))


def first_free_points(
    graph: ConstructionGraph, target: ElementId, free_ids: Sequence[ElementId]
) -> Optional[Anchors]:
    """Pick the two earliest-created free ancestors."""

    ordered = sorted(free_ids)
    if not ordered:
        return None
    return ordered[0], (ordered[1] if len(ordered) > 1 else None)


def designated_points(to_origin: ElementId, to_x_axis: Optional[ElementId] = None) -> PointSelector:
    """Selector honouring a user choice; falls back to :func:`first_free_points`."""

    def select(
        graph: ConstructionGraph, target: ElementId, free_ids: Sequence[ElementId]
    ) -> Optional[Anchors]:
        if to_origin not in free_ids:
            logger.info(
                "Point %s is not a free ancestor of %s; using the default anchors", to_origin, target
            )
            return first_free_points(graph, target, free_ids)
        if to_x_axis is not None and to_x_axis in free_ids and to_x_axis != to_origin:
            return to_origin, to_x_axis
        others = sorted(ref for ref in free_ids if ref != to_origin)
        return to_origin, (others[0] if others else None)

    return select


@dataclass
class NormalizedSystem:
    anchors: Tuple[Optional[ElementId], Optional[ElementId]]
    equations: List[sympy.Expr]
    eliminate: List[sympy.Symbol]
    parameters: List[sympy.Symbol]
    # parameter name -> (free point id, axis index)
    parameter_sources: Dict[str, Tuple[ElementId, int]] = field(default_factory=dict)


def normalize_system(
    graph: ConstructionGraph,
    system: ConstraintSystem,
    selector: Optional[PointSelector] = None,
) -> NormalizedSystem:
    """Rewrite ``system`` into the frame anchored at the selected free points."""

    free_ids = list(system.parameter_points)
    choice = (selector or first_free_points)(graph, system.target, free_ids)
    p0, p1 = choice if choice is not None else (None, None)

    subs: Dict[sympy.Symbol, int] = {}
    if p0 is not None:
        sx, sy = system.parameter_points[p0]
        subs[sx] = 0
        subs[sy] = 0
    if p1 is not None:
        subs[system.parameter_points[p1][1]] = 0

    equations = []
    for eq in system.equations:
        rewritten = sympy.expand(eq.subs(subs)) if subs else sympy.expand(eq)
        if rewritten != 0:
            equations.append(rewritten)

    sources: Dict[str, Tuple[ElementId, int]] = {}
    survivors: List[sympy.Symbol] = []
    for ref, pair in system.parameter_points.items():
        for axis, sym in enumerate(pair):
            if sym in subs:
                continue
            survivors.append(sym)
            sources[sym.name] = (ref, axis)

    logger.debug("Normalized with anchors %s, %s; %d parameter(s) remain", p0, p1, len(survivors))
    return NormalizedSystem(
        anchors=(p0, p1),
        equations=equations,
        eliminate=list(system.eliminate),
        parameters=survivors,
        parameter_sources=sources,
    )


def transform_for(
    graph: ConstructionGraph, anchors: Tuple[Optional[ElementId], Optional[ElementId]]
) -> Transform:
    p0, p1 = anchors
    if p0 is None:
        return Transform.identity()
    return Transform.from_points(
        graph.get(p0).value, graph.get(p1).value if p1 is not None else None
    )


def bind_parameters(
    graph: ConstructionGraph,
    transform: Transform,
    sources: Dict[str, Tuple[ElementId, int]],
) -> Dict[str, float]:
    """Numeric value of each surviving parameter: its free point seen through ``transform``."""

    values: Dict[str, float] = {}
    for name in sorted(sources):
        ref, axis = sources[name]
        values[name] = transform.apply_point(graph.get(ref).value)[axis]
    return values


__all__ = [
    "NormalizedSystem",
    "PointSelector",
    "Transform",
    "bind_parameters",
    "designated_points",
    "first_free_points",
    "normalize_system",
    "transform_for",
]
