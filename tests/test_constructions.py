import math

import pytest

from geolocus import Construction
from geolocus.errors import InvalidParentTypes
from geolocus.numerics import is_infinite


class _NullClient:
    async def eliminate(self, polynomials, eliminate_vars, keep_vars=("x", "y")):
        raise AssertionError("not expected to eliminate")


@pytest.fixture
def board():
    return Construction(_NullClient())


def _direction(line_value):
    (ax, ay), (bx, by) = line_value
    return (bx - ax, by - ay)


def _cross(u, v):
    return u[0] * v[1] - u[1] * v[0]


def test_wrong_parent_kinds_are_named(board):
    A = board.point(0, 0)
    B = board.point(1, 0)
    c = board.circle(A, B)

    with pytest.raises(InvalidParentTypes) as excinfo:
        board.create("midpoint", [c, A])

    message = str(excinfo.value)
    assert "'circle', 'free_point'" in message
    assert "Possible parent types: [point,point], [line]" in message
    assert len(board.graph) == 3


def test_parent_order_is_accepted_both_ways(board):
    A = board.point(0, 0)
    B = board.point(4, 0)
    P = board.point(1, 3)
    line = board.line(A, B)

    f1 = board.create("perpendicularpoint", [line, P])
    f2 = board.create("perpendicularpoint", [P, line])

    assert board.value(f1) == pytest.approx((1.0, 0.0))
    assert board.value(f2) == pytest.approx((1.0, 0.0))
    assert board.graph.get(f2).parents == (line, P)


def test_perpendicular_returns_line_and_foot(board):
    A = board.point(0, 0)
    B = board.point(4, 0)
    P = board.point(1, 3)
    base = board.line(A, B)

    line, foot = board.create("perpendicular", [P, base])

    assert board.value(foot) == pytest.approx((1.0, 0.0))
    assert _cross(_direction(board.value(line)), (0.0, 1.0)) == pytest.approx(0.0)


def test_perpendicular_through_point_on_line_is_not_degenerate(board):
    A = board.point(0, 0)
    B = board.point(4, 0)
    P = board.point(2, 0)
    base = board.line(A, B)
    line, _ = board.create("perpendicular", [base, P])
    d = _direction(board.value(line))
    assert math.hypot(*d) > 0
    assert d[0] == pytest.approx(0.0)


def test_parallel_line(board):
    A = board.point(0, 0)
    B = board.point(2, 1)
    P = board.point(0, 3)
    line = board.create("parallel", [board.line(A, B), P])
    value = board.value(line)
    assert value[0] == pytest.approx((0.0, 3.0))
    assert _cross(_direction(value), (2.0, 1.0)) == pytest.approx(0.0)


def test_circumcircle_returns_center_and_circle(board):
    A = board.point(0, 0)
    B = board.point(4, 0)
    C = board.point(0, 3)
    center, circle = board.create("circumcircle", [A, B, C])
    assert board.value(center) == pytest.approx((2.0, 1.5))
    (cx, cy), radius = board.value(circle)
    assert radius == pytest.approx(2.5)


def test_bisector_line_passes_through_vertex(board):
    A = board.point(3, 0)
    B = board.point(0, 0)
    C = board.point(0, 3)
    line = board.create("bisector", [A, B, C])
    start, end = board.value(line)
    assert start == pytest.approx((0.0, 0.0))
    assert end[0] == pytest.approx(end[1])


def test_normal_to_circle_goes_through_center(board):
    M = board.point(1, 1)
    R = board.point(3, 1)
    P = board.point(1, 4)
    circle = board.circle(M, R)
    line = board.create("normal", [circle, P])
    assert board.value(line) == ((1.0, 4.0), (1.0, 1.0))


def test_midpoint_of_line(board):
    A = board.point(0, 0)
    B = board.point(4, 2)
    M = board.create("midpoint", [board.line(A, B)])
    assert board.value(M) == pytest.approx((2.0, 1.0))


def test_intersection_follows_moves(board):
    A = board.point(0, 0)
    B = board.point(2, 2)
    C = board.point(0, 2)
    D = board.point(2, 0)
    X = board.create("intersection", [board.line(A, B), board.line(C, D)])
    assert board.value(X) == pytest.approx((1.0, 1.0))

    board.move(B, 2, 0)
    assert is_infinite(board.value(X)) is False
    board.move(C, 0, 1)
    board.move(D, 2, 1)
    assert is_infinite(board.value(X))


def test_glider_stays_on_its_line(board):
    A = board.point(0, 0)
    B = board.point(4, 0)
    line = board.line(A, B)
    G = board.glider(line, 1, 3)
    assert board.value(G) == pytest.approx((1.0, 0.0))

    board.move(B, 0, 4)
    gx, gy = board.value(G)
    assert gx == pytest.approx(0.0)


def test_glider_on_circle(board):
    M = board.point(0, 0)
    R = board.point(2, 0)
    G = board.glider(board.circle(M, R), 0, 5)
    assert board.value(G) == pytest.approx((0.0, 2.0))
    board.slide(G, -7, 0)
    assert board.value(G) == pytest.approx((-2.0, 0.0))


def test_names_resolve(board):
    board.point(0, 0, "A")
    board.point(2, 0, "B")
    M = board.create("midpoint", ["A", "B"], name="M")
    assert board.resolve("M") == M
    assert board.value("M") == pytest.approx((1.0, 0.0))


def test_locus_needs_a_dependent_point(board):
    A = board.point(0, 0)
    with pytest.raises(InvalidParentTypes):
        board.locus(A)


def test_unknown_construction(board):
    with pytest.raises(ValueError, match="unknown construction"):
        board.create("spiral", [])
