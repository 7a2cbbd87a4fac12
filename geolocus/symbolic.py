"""Symbolic constraint generation for locus discovery.

Each point ancestor of a locus target is bound to a pair of sympy expressions
for the duration of one request:

* free points become parameters ``p{id}_x``/``p{id}_y``;
* gliders and implicitly defined points get fresh auxiliary symbols ``u1, u2,
  ...`` plus the polynomial constraints of their construction;
* closed-form points are expressed directly in their parents' symbols.

Generators are plain functions looked up by construction name.  They receive
the graph and the parent ids at call time and never capture elements.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence, Tuple

import sympy

from .errors import ComputationError, GeolocusError, InvalidParentTypes
from .graph import ConstructionGraph
from .logging_utils import apply_debug_logging
from .model import ElementId
from .polynomials import format_polynomial, parse_polynomial

logger = logging.getLogger(__name__)

X, Y = sympy.symbols("x y")

SymbolicPair = Tuple[sympy.Expr, sympy.Expr]
Bindings = Dict[ElementId, SymbolicPair]

# (graph, parent ids, bindings, own pair) -> equations
ConstraintGenerator = Callable[
    [ConstructionGraph, Sequence[ElementId], Bindings, SymbolicPair], List[sympy.Expr]
]
# (graph, parent ids, bindings) -> pair
ClosedForm = Callable[[ConstructionGraph, Sequence[ElementId], Bindings], SymbolicPair]


@dataclass
class ConstraintSystem:
    """Polynomial system describing one locus target."""

    target: ElementId
    equations: List[sympy.Expr] = field(default_factory=list)
    eliminate: List[sympy.Symbol] = field(default_factory=list)
    parameters: List[sympy.Symbol] = field(default_factory=list)
    bindings: Bindings = field(default_factory=dict)
    parameter_points: Dict[ElementId, Tuple[sympy.Symbol, sympy.Symbol]] = field(
        default_factory=dict
    )
    keep: Tuple[sympy.Symbol, sympy.Symbol] = (X, Y)

    def wire(self) -> List[str]:
        return [format_polynomial(eq) for eq in self.equations]


def _point(bindings: Bindings, ref: ElementId) -> SymbolicPair:
    try:
        return bindings[ref]
    except KeyError:
        raise GeolocusError(f"element {ref} has no symbolic coordinates") from None


def _line_points(
    graph: ConstructionGraph, bindings: Bindings, ref: ElementId
) -> Tuple[SymbolicPair, SymbolicPair]:
    line = graph.get(ref)
    if line.kind != "line":
        raise GeolocusError(f"element {ref} is a {line.kind}, expected a line")
    a, b = line.parents[:2]
    return _point(bindings, a), _point(bindings, b)


def _circle_points(
    graph: ConstructionGraph, bindings: Bindings, ref: ElementId
) -> Tuple[SymbolicPair, SymbolicPair]:
    circle = graph.get(ref)
    if circle.kind != "circle":
        raise GeolocusError(f"element {ref} is a {circle.kind}, expected a circle")
    center, through = circle.parents[:2]
    return _point(bindings, center), _point(bindings, through)


def _segment(
    graph: ConstructionGraph, parents: Sequence[ElementId], bindings: Bindings
) -> Tuple[SymbolicPair, SymbolicPair]:
    if len(parents) == 1:
        return _line_points(graph, bindings, parents[0])
    return _point(bindings, parents[0]), _point(bindings, parents[1])


def collinear(a: SymbolicPair, t: SymbolicPair, b: SymbolicPair) -> sympy.Expr:
    """Vanishes when ``t`` lies on line ``ab``."""

    a1, a2 = a
    t1, t2 = t
    b1, b2 = b
    return a2 * t1 - a2 * b1 + t2 * b1 - a1 * t2 + a1 * b2 - t1 * b2


def equidistant(t: SymbolicPair, a: SymbolicPair, b: SymbolicPair) -> sympy.Expr:
    t1, t2 = t
    a1, a2 = a
    b1, b2 = b
    return (t1 - a1) ** 2 + (t2 - a2) ** 2 - (t1 - b1) ** 2 - (t2 - b2) ** 2


def midpoint_constraints(graph, parents, bindings, t):
    a, b = _segment(graph, parents, bindings)
    a1, a2 = a
    b1, b2 = b
    t1, t2 = t
    return [
        collinear(a, t, b),
        a1**2 - 2 * a1 * t1 + a2**2 - 2 * a2 * t2 - b1**2 + 2 * b1 * t1 - b2**2 + 2 * b2 * t2,
    ]


def perpendicular_point_constraints(graph, parents, bindings, t):
    line, point = parents
    a, b = _line_points(graph, bindings, line)
    p1, p2 = _point(bindings, point)
    a1, a2 = a
    b1, b2 = b
    t1, t2 = t
    return [
        collinear(a, t, b),
        p2 * a2 - p2 * b2 - t2 * a2 + t2 * b2 + p1 * a1 - p1 * b1 - t1 * a1 + t1 * b1,
    ]


def parallel_point_constraints(graph, parents, bindings, t):
    if len(parents) == 2:
        (a, b), c = _line_points(graph, bindings, parents[0]), _point(bindings, parents[1])
    else:
        a, b, c = (_point(bindings, ref) for ref in parents)
    a1, a2 = a
    b1, b2 = b
    c1, c2 = c
    t1, t2 = t
    return [
        b2 * t1 - b2 * c1 - a2 * t1 + a2 * c1 - t2 * b1 + t2 * a1 + c2 * b1 - c2 * a1,
        t2 * a1 - t2 * c1 - b2 * a1 + b2 * c1 - t1 * a2 + t1 * c2 + b1 * a2 - b1 * c2,
    ]


def reflection_constraints(graph, parents, bindings, r):
    line, point = parents
    (a1, a2), (b1, b2) = _line_points(graph, bindings, line)
    p1, p2 = _point(bindings, point)
    r1, r2 = r
    return [
        (r2 - p2) * (a2 - b2) + (a1 - b1) * (r1 - p1),
        (r1 - a1) ** 2 + (r2 - a2) ** 2 - (p1 - a1) ** 2 - (p2 - a2) ** 2,
    ]


def circumcenter_constraints(graph, parents, bindings, t):
    a, b, c = (_point(bindings, ref) for ref in parents)
    return [equidistant(t, a, b), equidistant(t, a, c)]


def bisector_point_constraints(graph, parents, bindings, t):
    """``t`` at unit distance from the vertex on either bisector of angle ABC.

    With ``u = t - b``, ``v = a - b`` and ``w = c - b`` read as complex numbers,
    ``u`` is on a bisector exactly when ``u^2 * conj(v * w)`` is real.
    """

    (a1, a2), (b1, b2), (c1, c2) = (_point(bindings, ref) for ref in parents)
    t1, t2 = t
    u1, u2 = t1 - b1, t2 - b2
    v1, v2 = a1 - b1, a2 - b2
    w1, w2 = c1 - b1, c2 - b2
    return [
        2 * u1 * u2 * (v1 * w1 - v2 * w2) - (u1**2 - u2**2) * (v1 * w2 + v2 * w1),
        u1**2 + u2**2 - 1,
    ]


def glider_constraints(graph, parents, bindings, g):
    (host,) = parents
    kind = graph.get(host).kind
    if kind == "line":
        a, b = _line_points(graph, bindings, host)
        return [collinear(a, g, b)]
    if kind == "circle":
        (c1, c2), (r1, r2) = _circle_points(graph, bindings, host)
        g1, g2 = g
        return [(g1 - c1) ** 2 + (g2 - c2) ** 2 - (r1 - c1) ** 2 - (r2 - c2) ** 2]
    if kind == "locus":
        return locus_glider_constraints(graph, host, bindings, g)
    raise GeolocusError(f"glider on a {kind} has no polynomial form")


def _host_result(graph: ConstructionGraph, host: ElementId):
    element = graph.get(host)
    result = element.locus.result if element.locus is not None else None
    if result is None:
        raise ComputationError(f"locus {element.label()} has no equation yet")
    return result


def locus_glider_constraints(graph, host, bindings, g):
    """Equations of a computed locus, carried from its own frame onto ``g``.

    The locus keeps its equations in the frame where its origin anchor sits at
    ``(0, 0)`` and its axis anchor at ``(d, 0)``.  With ``v = p - origin`` and
    ``(dx, dy) = axis - origin`` a point has frame coordinates
    ``(dx*v1 + dy*v2, dx*v2 - dy*v1) / d``.  After substitution only even
    powers of ``d`` remain, since a half turn of the whole configuration
    turns the locus with it; they are replaced by powers of ``dx^2 + dy^2``.
    """

    result = _host_result(graph, host)
    origin_ref, axis_ref = result.anchors
    o1, o2 = _point(bindings, origin_ref) if origin_ref is not None else (0, 0)
    if axis_ref is not None:
        a1, a2 = _point(bindings, axis_ref)
        d1, d2 = a1 - o1, a2 - o2
    else:
        d1, d2 = 1, 0
    norm = d1**2 + d2**2
    scale = sympy.Dummy("scale")

    def frame(p: SymbolicPair) -> SymbolicPair:
        v1, v2 = p[0] - o1, p[1] - o2
        return (scale * (d1 * v1 + d2 * v2), scale * (d1 * v2 - d2 * v1))

    kx, ky = result.implicit.keep
    gx, gy = frame(g)
    targets = {kx: gx, ky: gy}
    for name, ref, axis in result.sources:
        targets[name] = frame(_point(bindings, ref))[axis]

    table: Dict[str, sympy.Symbol] = {}
    equations = []
    for text in result.polynomial:
        expr = parse_polynomial(text, table)
        unknown = sorted(s.name for s in expr.free_symbols if s.name not in targets)
        if unknown:
            raise ComputationError(f"locus equation mentions unknown symbol(s) {', '.join(unknown)}")
        rewritten = sympy.expand(expr.xreplace({s: targets[s.name] for s in expr.free_symbols}))
        if rewritten == 0:
            continue
        poly = sympy.Poly(rewritten, scale)
        top = poly.degree()
        total = sympy.Integer(0)
        for (power,), coeff in poly.terms():
            if (top - power) % 2:
                raise ComputationError(
                    f"equation of {graph.get(host).label()} is not symmetric under a half turn"
                )
            total += coeff * norm ** ((top - power) // 2)
        equations.append(sympy.expand(total))
    return equations


def intersection_constraints(graph, parents, bindings, t):
    first, second = parents
    a, b = _line_points(graph, bindings, first)
    c, d = _line_points(graph, bindings, second)
    return [collinear(a, t, b), collinear(c, t, d)]


def mirror_point_form(graph, parents, bindings):
    (c1, c2), (p1, p2) = (_point(bindings, ref) for ref in parents)
    return (2 * c1 - p1, 2 * c2 - p2)


CONSTRAINTS: Dict[str, ConstraintGenerator] = {
    "midpoint": midpoint_constraints,
    "perpendicularpoint": perpendicular_point_constraints,
    "parallelpoint": parallel_point_constraints,
    "reflection": reflection_constraints,
    "circumcenter": circumcenter_constraints,
    "bisectorpoint": bisector_point_constraints,
    "glider": glider_constraints,
    "intersection": intersection_constraints,
}

CLOSED_FORMS: Dict[str, ClosedForm] = {
    "mirrorpoint": mirror_point_form,
}

_PASSIVE_KINDS = frozenset({"line", "circle"})


def _symbolic_inputs(graph: ConstructionGraph, ref: ElementId) -> Sequence[ElementId]:
    element = graph.get(ref)
    if element.construction == "glider" and graph.get(element.parents[0]).kind == "locus":
        result = _host_result(graph, element.parents[0])
        refs = {anchor for anchor in result.anchors if anchor is not None}
        refs.update(source for _, source, _ in result.sources)
        return sorted(refs)
    return element.parents


def symbolic_ancestors(graph: ConstructionGraph, target: ElementId) -> List[ElementId]:
    """Elements whose symbols the system of ``target`` needs, oldest first.

    A glider on a locus depends on the free points of that locus's equations,
    not on the construction the locus was traced from.
    """

    needed = set()
    stack = list(_symbolic_inputs(graph, target))
    while stack:
        ref = stack.pop()
        if ref in needed:
            continue
        needed.add(ref)
        stack.extend(_symbolic_inputs(graph, ref))
    # parents are always created before their children
    return sorted(needed)


def collect_system(graph: ConstructionGraph, target: ElementId) -> ConstraintSystem:
    """Bind every point ancestor of ``target`` and gather their constraints.

    The target's own pair is tied to the kept variables through ``x - t1`` and
    ``y - t2``.
    """

    target_el = graph.get(target)
    if not target_el.is_point or target_el.is_free:
        raise InvalidParentTypes("locus", [target_el.kind], [("glider",), ("derived_point",)])

    system = ConstraintSystem(target=target)
    fresh = (sympy.Symbol(f"u{n}") for n in itertools.count(1))

    for ref in symbolic_ancestors(graph, target) + [target]:
        element = graph.get(ref)
        if element.kind in _PASSIVE_KINDS:
            continue
        if element.is_free:
            pair = (sympy.Symbol(f"p{ref}_x"), sympy.Symbol(f"p{ref}_y"))
            system.parameters.extend(pair)
            system.parameter_points[ref] = pair
        elif element.construction in CLOSED_FORMS:
            pair = CLOSED_FORMS[element.construction](graph, element.parents, system.bindings)
        elif element.construction in CONSTRAINTS:
            pair = (next(fresh), next(fresh))
            system.eliminate.extend(pair)
            generator = CONSTRAINTS[element.construction]
            system.equations.extend(generator(graph, element.parents, system.bindings, pair))
        else:
            raise GeolocusError(
                f"{element.construction} {element.label()} has no symbolic representation"
            )
        system.bindings[ref] = pair

    t1, t2 = system.bindings[target]
    system.equations.extend([X - t1, Y - t2])
    logger.info(
        "Collected %d equation(s) for %s: %d to eliminate, %d parameter(s)",
        len(system.equations),
        target_el.label(),
        len(system.eliminate),
        len(system.parameters),
    )
    return system


__all__ = [
    "CLOSED_FORMS",
    "CONSTRAINTS",
    "ConstraintSystem",
    "SymbolicPair",
    "X",
    "Y",
    "collect_system",
    "collinear",
    "equidistant",
    "locus_glider_constraints",
    "symbolic_ancestors",
]

apply_debug_logging(globals(), logger=logger)
