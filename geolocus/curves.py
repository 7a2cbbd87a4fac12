"""Reconstruction of drawable curves from implicit locus equations.

Tracing happens in the normalized frame.  Seeds come from sign changes of
``f`` on a regular grid, refined with ``brentq``; each seed is continued in
both tangent directions with a predictor step along the tangent followed by a
Newton correction back onto ``f = 0``.  The resulting polylines are mapped
back through the inverse transform and split wherever they leave the
viewport.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Sequence, Set, Tuple

import numpy as np
import sympy
from scipy.optimize import brentq

from .config import TracingConfig, get_tracing_config
from .logging_utils import apply_debug_logging
from .model import BoundingBox, ImplicitPolynomial, SampledCurve
from .normalize import Transform
from .polynomials import parse_polynomial

logger = logging.getLogger(__name__)

_GRADIENT_FLOOR = 1e-12

Cell = Tuple[int, int]


def _vectorized(func: Callable) -> Callable:
    def call(x, y):
        value = func(x, y)
        if np.ndim(x) == 0:
            return float(value)
        return np.broadcast_to(np.asarray(value, dtype=float), np.shape(x)).copy()

    return call


@dataclass
class ImplicitField:
    """``f`` and its partial derivatives compiled to numpy."""

    expr: sympy.Expr
    f: Callable
    fx: Callable
    fy: Callable

    @classmethod
    def compile(cls, expr: sympy.Expr, x: sympy.Symbol, y: sympy.Symbol) -> "ImplicitField":
        return cls(
            expr=expr,
            f=_vectorized(sympy.lambdify((x, y), expr, "numpy")),
            fx=_vectorized(sympy.lambdify((x, y), sympy.diff(expr, x), "numpy")),
            fy=_vectorized(sympy.lambdify((x, y), sympy.diff(expr, y), "numpy")),
        )

    def gradient(self, x: float, y: float) -> Tuple[float, float]:
        return self.fx(x, y), self.fy(x, y)

    def distance_estimate(self, x: float, y: float) -> float:
        gx, gy = self.gradient(x, y)
        return abs(self.f(x, y)) / max(math.hypot(gx, gy), _GRADIENT_FLOOR)


def compile_fields(
    polynomial: ImplicitPolynomial, parameters: Optional[Mapping[str, float]] = None
) -> List[ImplicitField]:
    """Bind parameters and compile every non-trivial equation, lowest degree first."""

    table = {}
    x = table.setdefault(polynomial.keep[0], sympy.Symbol(polynomial.keep[0]))
    y = table.setdefault(polynomial.keep[1], sympy.Symbol(polynomial.keep[1]))
    values = dict(parameters or {})

    candidates = []
    for index, text in enumerate(polynomial.equations):
        expr = parse_polynomial(text, table)
        subs = {sym: values[sym.name] for sym in expr.free_symbols if sym.name in values}
        if subs:
            expr = sympy.expand(expr.subs(subs))
        if not expr.free_symbols & {x, y}:
            continue
        unbound = expr.free_symbols - {x, y}
        if unbound:
            raise ValueError(
                "unbound parameter(s) " + ", ".join(sorted(s.name for s in unbound))
            )
        degree = sympy.Poly(expr, x, y).total_degree()
        candidates.append((degree, index, expr))

    candidates.sort(key=lambda item: (item[0], item[1]))
    return [ImplicitField.compile(expr, x, y) for _, _, expr in candidates]


class _Grid:
    def __init__(self, region: BoundingBox, size: int):
        self.region = region
        self.size = size
        self.xs = np.linspace(region.xmin, region.xmax, size + 1)
        self.ys = np.linspace(region.ymin, region.ymax, size + 1)
        self.cw = (region.xmax - region.xmin) / size
        self.ch = (region.ymax - region.ymin) / size

    def cell(self, x: float, y: float) -> Cell:
        i = int((x - self.region.xmin) / self.cw)
        j = int((y - self.region.ymin) / self.ch)
        return (min(max(i, 0), self.size - 1), min(max(j, 0), self.size - 1))

    def cover(self, covered: Set[Cell], points: np.ndarray, radius: float) -> None:
        for x, y in points:
            for dx in (-radius, radius):
                for dy in (-radius, radius):
                    covered.add(self.cell(x + dx, y + dy))
            covered.add(self.cell(x, y))


def find_seeds(field: ImplicitField, grid: _Grid) -> List[Tuple[float, float]]:
    """Roots of ``f`` on the grid edges, in row-major order."""

    X, Y = np.meshgrid(grid.xs, grid.ys)  # X[j, i]
    F = field.f(X, Y)
    seeds: List[Tuple[float, float]] = []
    n = grid.size
    for j in range(n + 1):
        y = float(grid.ys[j])
        for i in range(n + 1):
            x = float(grid.xs[i])
            here = F[j, i]
            if not np.isfinite(here):
                continue
            if here == 0.0:
                seeds.append((x, y))
                continue
            if i < n and np.isfinite(F[j, i + 1]) and here * F[j, i + 1] < 0:
                root = brentq(lambda s: field.f(s, y), x, float(grid.xs[i + 1]))
                seeds.append((float(root), y))
            if j < n and np.isfinite(F[j + 1, i]) and here * F[j + 1, i] < 0:
                root = brentq(lambda s: field.f(x, s), y, float(grid.ys[j + 1]))
                seeds.append((x, float(root)))
    return seeds


def _correct(
    field: ImplicitField, x: float, y: float, config: TracingConfig, tol: float
) -> Optional[Tuple[float, float]]:
    for _ in range(config.newton_iterations):
        value = field.f(x, y)
        gx, gy = field.gradient(x, y)
        norm_sq = gx * gx + gy * gy
        if not math.isfinite(value) or norm_sq < _GRADIENT_FLOOR**2:
            return None
        dx = value * gx / norm_sq
        dy = value * gy / norm_sq
        x -= dx
        y -= dy
        if math.hypot(dx, dy) <= tol:
            return (x, y)
    return None


def march(
    field: ImplicitField,
    start: Tuple[float, float],
    orientation: float,
    region: BoundingBox,
    step: float,
    config: TracingConfig,
) -> Tuple[List[Tuple[float, float]], bool]:
    """Follow the curve from ``start``; returns the points and whether the loop closed."""

    tol = config.newton_tol * max(region.diagonal, 1.0)
    points = [start]
    x, y = start
    previous: Optional[Tuple[float, float]] = None
    for n in range(config.max_steps):
        gx, gy = field.gradient(x, y)
        norm = math.hypot(gx, gy)
        if not math.isfinite(norm) or norm < _GRADIENT_FLOOR:
            break
        tx, ty = -gy / norm * orientation, gx / norm * orientation
        if previous is not None and tx * previous[0] + ty * previous[1] < 0:
            tx, ty = -tx, -ty
        previous = (tx, ty)

        corrected = _correct(field, x + step * tx, y + step * ty, config, tol)
        if corrected is None:
            break
        if math.hypot(corrected[0] - x, corrected[1] - y) > 2.0 * step:
            break
        x, y = corrected
        if n >= 3 and math.hypot(x - start[0], y - start[1]) < step:
            points.append(start)
            return points, True
        points.append((x, y))
        if not (region.xmin <= x <= region.xmax and region.ymin <= y <= region.ymax):
            break
    return points, False


def trace_field(field: ImplicitField, region: BoundingBox, config: TracingConfig) -> List[np.ndarray]:
    """All branches of ``f = 0`` inside ``region``, in the field's own frame."""

    grid = _Grid(region, config.grid_size)
    step = config.step_fraction * region.diagonal
    covered: Set[Cell] = set()
    branches: List[np.ndarray] = []
    for seed in find_seeds(field, grid):
        if grid.cell(*seed) in covered:
            continue
        start = _correct(field, seed[0], seed[1], config, config.newton_tol * max(region.diagonal, 1.0))
        if start is None:
            start = seed
        forward, closed = march(field, start, 1.0, region, step, config)
        if closed:
            points = forward
        else:
            backward, _ = march(field, start, -1.0, region, step, config)
            points = backward[:0:-1] + forward
        branch = np.asarray(points, dtype=float)
        grid.cover(covered, branch, 0.5 * step)
        if len(branch) >= 2:
            branches.append(branch)
    logger.debug("Traced %d branch(es) from %d cell(s)", len(branches), len(covered))
    return branches


def split_runs(branch: np.ndarray, mask: np.ndarray) -> List[np.ndarray]:
    """Split ``branch`` into the maximal runs where ``mask`` holds; drops single points."""

    runs: List[np.ndarray] = []
    start: Optional[int] = None
    for index, keep in enumerate(mask):
        if keep and start is None:
            start = index
        elif not keep and start is not None:
            if index - start >= 2:
                runs.append(branch[start:index])
            start = None
    if start is not None and len(mask) - start >= 2:
        runs.append(branch[start:])
    return runs


def build(
    polynomial: ImplicitPolynomial,
    transform: Transform,
    viewport: BoundingBox,
    *,
    parameters: Optional[Mapping[str, float]] = None,
    config: Optional[TracingConfig] = None,
) -> SampledCurve:
    """Sample the locus described by ``polynomial`` inside ``viewport``.

    ``polynomial`` lives in the normalized frame given by ``transform``;
    ``parameters`` binds its surviving free-point symbols.  The first
    (lowest-degree) equation is traced and the remaining ones filter its
    points.
    """

    config = config or get_tracing_config()
    fields = compile_fields(polynomial, parameters)
    if not fields:
        logger.info("No equation depends on the kept variables; empty curve")
        return SampledCurve.empty()

    region = BoundingBox.from_points(transform.apply(viewport.corners()))
    step = config.step_fraction * region.diagonal
    primary, others = fields[0], fields[1:]
    branches = trace_field(primary, region, config)

    if others:
        filtered: List[np.ndarray] = []
        for branch in branches:
            mask = np.array(
                [all(g.distance_estimate(x, y) <= 2.0 * step for g in others) for x, y in branch],
                dtype=bool,
            )
            filtered.extend(split_runs(branch, mask))
        branches = filtered

    margin = config.clip_margin * viewport.diagonal
    pieces: List[np.ndarray] = []
    for branch in branches:
        user = transform.inverse(branch)
        mask = viewport.contains(user[:, 0], user[:, 1], margin)
        pieces.extend(split_runs(user, mask))

    curve = SampledCurve.from_branches(pieces)
    logger.info("Built curve with %d point(s) in %d branch(es)", len(curve), len(pieces))
    return curve


__all__ = [
    "ImplicitField",
    "build",
    "compile_fields",
    "find_seeds",
    "march",
    "split_runs",
    "trace_field",
]

apply_debug_logging(globals(), logger=logger, skip={"ImplicitField"})
