from __future__ import annotations

import asyncio
import math
import multiprocessing
import time
from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np
import pytest
import sympy

from geolocus import BoundingBox, SympyEliminationEngine, load_scene, parse_polynomial
from geolocus.elimination import eliminate_polynomials, sympy_engine
from geolocus.errors import ComputationTimeout, DegenerateSystem, PolynomialSyntaxError

VIEWPORT = [-10, -10, 10, 10]


class CountingEngine(SympyEliminationEngine):
    def __init__(self, timeout: float = 60.0):
        super().__init__(timeout)
        self.calls = 0

    async def eliminate(self, polynomials, eliminate_vars, keep_vars=("x", "y")):
        self.calls += 1
        return await super().eliminate(polynomials, eliminate_vars, keep_vars)


@dataclass
class LocusCase:
    case_id: str
    elements: List[dict]
    # (center, radius) of the expected circle, or (point, normal) of the expected line
    circle: Tuple[Tuple[float, float], float] = None
    line: Tuple[Tuple[float, float], Tuple[float, float]] = None
    moves: List[Tuple[str, float, float]] = field(default_factory=list)
    # the expected curve is only one component of the traced locus
    component: bool = False


BASE = [
    {"type": "point", "parents": [0, 0], "name": "A"},
    {"type": "point", "parents": [2, 0], "name": "P"},
    {"type": "circle", "parents": ["A", "P"], "name": "c"},
    {"type": "glider", "parents": [0, 2, "c"], "name": "G"},
]

CASES = [
    LocusCase(
        "glider_itself",
        BASE + [{"type": "locus", "parents": ["G"], "name": "L"}],
        circle=((0.0, 0.0), 2.0),
    ),
    LocusCase(
        "midpoint_of_glider",
        BASE
        + [
            {"type": "point", "parents": [4, 0], "name": "B"},
            {"type": "midpoint", "parents": ["G", "B"], "name": "M"},
            {"type": "locus", "parents": ["M"], "name": "L"},
        ],
        circle=((2.0, 0.0), 1.0),
    ),
    LocusCase(
        "reflected_glider",
        BASE
        + [
            {"type": "point", "parents": [0, 3], "name": "C"},
            {"type": "point", "parents": [1, 3], "name": "D"},
            {"type": "line", "parents": ["C", "D"], "name": "m"},
            {"type": "reflection", "parents": ["m", "G"], "name": "R"},
            {"type": "locus", "parents": ["R"], "name": "L"},
        ],
        circle=((0.0, 6.0), 2.0),
    ),
    LocusCase(
        "midpoint_on_line",
        [
            {"type": "point", "parents": [0, 0], "name": "A"},
            {"type": "point", "parents": [4, 0], "name": "B"},
            {"type": "point", "parents": [0, 2], "name": "C"},
            {"type": "line", "parents": ["A", "B"], "name": "l"},
            {"type": "glider", "parents": [1, 0, "l"], "name": "G"},
            {"type": "midpoint", "parents": ["G", "C"], "name": "M"},
            {"type": "locus", "parents": ["M"], "name": "L"},
        ],
        line=((0.0, 1.0), (0.0, 1.0)),
    ),
    LocusCase(
        "foot_on_rotating_line",
        BASE
        + [
            {"type": "point", "parents": [4, 0], "name": "Q"},
            {"type": "line", "parents": ["A", "G"], "name": "l"},
            {"type": "perpendicularpoint", "parents": ["l", "Q"], "name": "F"},
            {"type": "locus", "parents": ["F"], "name": "L"},
        ],
        circle=((2.0, 0.0), 2.0),
    ),
    LocusCase(
        "circumcenter_with_glider",
        BASE
        + [
            {"type": "point", "parents": [4, 0], "name": "B"},
            {"type": "point", "parents": [4, 2], "name": "C"},
            {"type": "circumcenter", "parents": ["B", "C", "G"], "name": "O"},
            {"type": "locus", "parents": ["O"], "name": "L"},
        ],
        line=((0.0, 1.0), (0.0, 1.0)),
    ),
    LocusCase(
        # the collinear configurations add the line through A and B
        "parallelogram_vertex",
        BASE
        + [
            {"type": "point", "parents": [4, 0], "name": "B"},
            {"type": "parallelpoint", "parents": ["A", "G", "B"], "name": "T"},
            {"type": "locus", "parents": ["T"], "name": "L"},
        ],
        circle=((4.0, 0.0), 2.0),
        component=True,
    ),
    LocusCase(
        "intersection_with_fixed_line",
        BASE
        + [
            {"type": "point", "parents": [0, 3], "name": "C"},
            {"type": "point", "parents": [1, 3], "name": "D"},
            {"type": "line", "parents": ["A", "G"], "name": "l"},
            {"type": "line", "parents": ["C", "D"], "name": "m"},
            {"type": "intersection", "parents": ["l", "m"], "name": "X"},
            {"type": "locus", "parents": ["X"], "name": "L"},
        ],
        line=((0.0, 3.0), (0.0, 1.0)),
    ),
    LocusCase(
        "bisector_point_of_turning_angle",
        BASE
        + [
            {"type": "bisectorpoint", "parents": ["P", "A", "G"], "name": "T"},
            {"type": "locus", "parents": ["T"], "name": "L"},
        ],
        circle=((0.0, 0.0), 1.0),
    ),
]


def _residuals(points: np.ndarray, case: LocusCase) -> np.ndarray:
    if case.circle is not None:
        (cx, cy), radius = case.circle
        return np.hypot(points[:, 0] - cx, points[:, 1] - cy) - radius
    (px, py), (nx, ny) = case.line
    return (points[:, 0] - px) * nx + (points[:, 1] - py) * ny


def _assert_equations_vanish_on_circle(result, circle):
    (cx, cy), radius = circle
    angles = np.linspace(0.0, 2 * np.pi, 12, endpoint=False)
    ring = np.column_stack([cx + radius * np.cos(angles), cy + radius * np.sin(angles)])
    local = result.transform.apply(ring)
    x, y = sympy.symbols("x y")
    for text in result.polynomial:
        expr = parse_polynomial(text).subs(dict(result.parameters))
        values = sympy.lambdify((x, y), expr, "numpy")(local[:, 0], local[:, 1])
        np.testing.assert_allclose(np.broadcast_to(values, (len(ring),)), 0.0, atol=1e-6)


@pytest.mark.parametrize("case", CASES, ids=lambda case: case.case_id)
def test_locus_matches_expected_curve(case):
    engine = CountingEngine()
    try:
        board = load_scene({"viewport": VIEWPORT, "elements": case.elements}, engine)
        curve = board.refresh("L")
        state = board.locus_state("L")
        assert state.last_error is None, state.last_error
        assert not state.is_stale()

        points = curve.points()
        assert len(points) > 20
        residuals = _residuals(points, case)
        if case.component:
            assert np.count_nonzero(np.abs(residuals) < 1e-6) > 10
            _assert_equations_vanish_on_circle(board.result("L"), case.circle)
        else:
            np.testing.assert_allclose(residuals, 0.0, atol=1e-6)
        assert engine.calls == 1
    finally:
        engine.close()


def test_moving_a_parameter_point_reuses_the_polynomial():
    engine = CountingEngine()
    try:
        elements = CASES[1].elements
        board = load_scene({"viewport": VIEWPORT, "elements": elements}, engine)
        first = board.refresh("L")
        signature = board.result("L").signature

        board.move("B", 4, 2)
        second = board.refresh("L")

        assert engine.calls == 1
        assert board.result("L").signature == signature
        assert second is not first
        points = second.points()
        np.testing.assert_allclose(
            np.hypot(points[:, 0] - 2.0, points[:, 1] - 1.0), 1.0, atol=1e-6
        )

        # anchors move too: the frame follows A and P
        board.move("P", 0, 2)
        third = board.refresh("L")
        assert engine.calls == 1
        points = third.points()
        np.testing.assert_allclose(
            np.hypot(points[:, 0] - 2.0, points[:, 1] - 1.0), 1.0, atol=1e-6
        )
    finally:
        engine.close()


def test_viewport_clips_the_sampled_curve():
    engine = CountingEngine()
    try:
        board = load_scene({"viewport": VIEWPORT, "elements": CASES[3].elements}, engine)
        curve = board.refresh("L", BoundingBox(-3.0, -3.0, 3.0, 3.0))
        xs = curve.points()[:, 0]
        margin = 0.02 * math.hypot(6.0, 6.0) + 1e-9
        assert xs.min() >= -3.0 - margin
        assert xs.max() <= 3.0 + margin
    finally:
        engine.close()


def test_eliminate_circle_parametrization():
    result = eliminate_polynomials(["u1^2 + u2^2 - r^2", "x - u1", "y - u2"], ["u1", "u2"])

    x, y, r = sympy.symbols("x y r")
    (equation,) = result.equations
    assert sympy.expand(parse_polynomial(equation) - (x**2 + y**2 - r**2)) == 0
    assert result.parameters == ("r",)
    assert result.keep == ("x", "y")


def test_eliminate_drops_parameter_only_factors():
    result = eliminate_polynomials(["a*x - a*u1", "y - u1^2"], ["u1"])

    x, y = sympy.symbols("x y")
    assert any(
        sympy.expand(parse_polynomial(eq) - (x**2 - y)) == 0 for eq in result.equations
    )
    assert all("a" not in eq for eq in result.equations)


@pytest.mark.parametrize(
    "polynomials, eliminate",
    [
        (["u1 - 1", "u1 - 2"], ["u1"]),
        (["x - u1 - u2"], ["u1", "u2"]),
    ],
)
def test_degenerate_systems_raise(polynomials, eliminate):
    with pytest.raises(DegenerateSystem):
        eliminate_polynomials(polynomials, eliminate)


def test_glider_on_a_traced_locus():
    engine = CountingEngine()
    try:
        elements = CASES[1].elements + [
            {"type": "glider", "parents": [3, 0.5, "L"], "name": "H"},
            {"type": "point", "parents": [2, 4], "name": "Q"},
            {"type": "midpoint", "parents": ["H", "Q"], "name": "N"},
            {"type": "locus", "parents": ["N"], "name": "LN"},
        ]
        board = load_scene({"viewport": VIEWPORT, "elements": elements}, engine)
        board.refresh("L")
        hx, hy = board.value("H")
        assert math.hypot(hx - 2.0, hy) == pytest.approx(1.0, abs=1e-6)

        curve = board.refresh("LN")
        state = board.locus_state("LN")
        assert state.last_error is None, state.last_error
        points = curve.points()
        assert len(points) > 20
        np.testing.assert_allclose(
            np.hypot(points[:, 0] - 2.0, points[:, 1] - 2.0), 0.5, atol=1e-6
        )
        assert engine.calls == 2
    finally:
        engine.close()


class Stall:
    """Stands in for the Groebner step; blocks while ``active`` is set."""

    def __init__(self, original):
        self.original = original
        self.active = True

    def __call__(self, polynomials, eliminate_vars, keep_vars=("x", "y")):
        if self.active:
            time.sleep(60)
        return self.original(polynomials, eliminate_vars, keep_vars)


needs_fork = pytest.mark.skipif(
    "fork" not in multiprocessing.get_all_start_methods(), reason="needs the fork start method"
)


def _stalled_engine(monkeypatch):
    # forked children see the patched function and the flag as they were at fork time
    stall = Stall(sympy_engine.eliminate_polynomials)
    monkeypatch.setattr(sympy_engine, "eliminate_polynomials", stall)
    return stall, SympyEliminationEngine(timeout=0.5, start_method="fork")


@needs_fork
def test_timed_out_elimination_is_killed(monkeypatch):
    stall, engine = _stalled_engine(monkeypatch)

    async def scenario():
        with pytest.raises(ComputationTimeout):
            await engine.eliminate(["x - u1", "y - u1"], ["u1"])
        stall.active = False
        engine.timeout = 30.0
        started = time.perf_counter()
        result = await engine.eliminate(["x - u1", "y - u1"], ["u1"])
        return result, time.perf_counter() - started

    try:
        result, elapsed = asyncio.run(scenario())
    finally:
        engine.close()

    assert result.equations == ("x - y",)
    assert elapsed < 10.0
    assert not [p for p in multiprocessing.active_children() if p.name == "geolocus-elim"]


@needs_fork
def test_locus_recovers_after_a_timed_out_elimination(monkeypatch):
    stall, engine = _stalled_engine(monkeypatch)
    try:
        board = load_scene({"viewport": VIEWPORT, "elements": CASES[1].elements}, engine)
        state = board.locus_state("L")
        board.refresh("L")
        assert isinstance(state.last_error, ComputationTimeout)
        assert state.is_stale()

        stall.active = False
        engine.timeout = 30.0
        started = time.perf_counter()
        curve = board.refresh("L")
        assert time.perf_counter() - started < 10.0
        assert state.last_error is None
        assert len(curve) > 20
    finally:
        engine.close()


def test_worker_errors_keep_their_type():
    engine = SympyEliminationEngine(timeout=30.0)
    try:
        with pytest.raises(DegenerateSystem):
            asyncio.run(engine.eliminate(["u1 - 1", "u1 - 2"], ["u1"]))
        with pytest.raises(PolynomialSyntaxError):
            asyncio.run(engine.eliminate(["x -"], []))
    finally:
        engine.close()
