"""Construction registry and the :class:`Construction` facade.

Every construction name maps to a :class:`ConstructionSpec` listing the parent
signatures it accepts (``point``, ``line``, ``circle``) and a builder that adds
the resulting elements to the graph.  Parents are matched in the given order
first; constructions flagged ``any_order`` also accept two parents swapped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .config import LocusOptions, TracingConfig
from .elimination.base import EliminationClient
from .elimination.sympy_engine import SympyEliminationEngine
from .errors import InvalidParentTypes
from .graph import ConstructionGraph
from .locus import LocusResult, LocusState
from .model import BoundingBox, ElementId, SampledCurve
from .numerics import (
    EPS,
    INFINITE_POINT,
    bisector_point,
    circle_through,
    circumcenter,
    foot,
    is_infinite,
    line_intersection,
    midpoint,
    mirror_point,
    parallel_point,
    project_to_circle,
    project_to_line,
    reflection,
)
from .scheduler import DEFAULT_VIEWPORT, UpdateScheduler

logger = logging.getLogger(__name__)

ParentRef = Union[ElementId, str]
Signature = Tuple[str, ...]
Builder = Callable[["Construction", Tuple[ElementId, ...], Tuple[float, ...], Dict[str, Any]], Any]


@dataclass(frozen=True)
class ConstructionSpec:
    name: str
    signatures: Tuple[Signature, ...]
    build: Builder
    any_order: bool = False
    # number of leading numeric parents (coordinates)
    coordinates: int = 0

    def accepted(self) -> List[Signature]:
        out = list(self.signatures)
        if self.any_order:
            for sig in self.signatures:
                if len(sig) == 2 and sig[::-1] not in out:
                    out.append(sig[::-1])
        return out


def capability(kind: str) -> str:
    if kind in ("free_point", "glider", "derived_point"):
        return "point"
    return kind


# -- numeric evaluators bound to parent layouts -------------------------------


def _line_value(vals, prev):
    return (tuple(vals[0]), tuple(vals[1]))


def _perpendicular_line_value(vals, prev):
    # parents: point, foot, base line
    p, f, (a, b) = vals
    if is_infinite(p) or is_infinite(f):
        return (INFINITE_POINT, INFINITE_POINT)
    if abs(p[0] - f[0]) < EPS and abs(p[1] - f[1]) < EPS:
        return (tuple(p), (p[0] - (b[1] - a[1]), p[1] + (b[0] - a[0])))
    return (tuple(p), tuple(f))


def _circle_value(vals, prev):
    return circle_through(vals[0], vals[1])


def _midpoint_value(vals, prev):
    if len(vals) == 1:
        return midpoint(*vals[0])
    return midpoint(vals[0], vals[1])


def _foot_value(vals, prev):
    (a, b), p = vals
    return foot(p, a, b)


def _parallel_point_value(vals, prev):
    if len(vals) == 2:
        (a, b), c = vals
        return parallel_point(a, b, c)
    return parallel_point(*vals)


def _reflection_value(vals, prev):
    (a, b), p = vals
    return reflection(p, a, b)


def _intersection_value(vals, prev):
    return line_intersection(vals[0], vals[1])


def _glider_on_line(vals, prev):
    a, b = vals[0]
    return project_to_line(prev if prev is not None else a, a, b)


def _glider_on_circle(vals, prev):
    center, radius = vals[0]
    return project_to_circle(prev if prev is not None else INFINITE_POINT, center, radius)


def _glider_on_locus(vals, prev):
    curve = vals[0]
    if prev is None:
        points = curve.points()
        return (float(points[0][0]), float(points[0][1])) if len(points) else INFINITE_POINT
    nearest = curve.nearest(prev)
    return prev if nearest is None else nearest


def _keep_value(vals, prev):
    return prev


# -- builders ----------------------------------------------------------------


def _build_point(board, parents, coords, attrs):
    if len(coords) != 2:
        raise ValueError("point needs two coordinates")
    return board.graph.add_element(
        "free_point", (), construction="point", name=attrs.get("name"), value=(coords[0], coords[1])
    )


def _build_line(board, parents, coords, attrs):
    return board.graph.add_element(
        "line", parents, _line_value, construction="line", name=attrs.get("name")
    )


def _build_circle(board, parents, coords, attrs):
    return board.graph.add_element(
        "circle", parents, _circle_value, construction="circle", name=attrs.get("name")
    )


def _derived(construction: str, evaluator) -> Builder:
    def build(board, parents, coords, attrs):
        return board.graph.add_element(
            "derived_point",
            parents,
            evaluator,
            construction=construction,
            name=attrs.get("name"),
            visible=attrs.get("visible", True),
        )

    return build


GLIDER_EVALUATORS = {"line": _glider_on_line, "circle": _glider_on_circle, "locus": _glider_on_locus}


def _build_glider(board, parents, coords, attrs):
    (host,) = parents
    evaluator = GLIDER_EVALUATORS[board.graph.get(host).kind]
    start = (coords[0], coords[1]) if coords else None
    return board.graph.add_element(
        "glider", parents, evaluator, construction="glider", name=attrs.get("name"), value=start
    )


def _build_locus(board, parents, coords, attrs):
    (target,) = parents
    target_el = board.graph.get(target)
    if target_el.is_free:
        raise InvalidParentTypes("locus", [target_el.kind], [("glider",), ("derived_point",)])
    ref = board.graph.add_element(
        "locus",
        parents,
        _keep_value,
        construction="locus",
        name=attrs.get("name"),
        value=SampledCurve.empty(),
    )
    options = attrs.get("options") or LocusOptions(
        to_origin=board.resolve_optional(attrs.get("to_origin")),
        to_x_axis=board.resolve_optional(attrs.get("to_x_axis")),
        selector=attrs.get("selector"),
        timeout=attrs.get("timeout", LocusOptions.timeout),
    )
    board.graph.get(ref).locus = LocusState(ref, target, options)
    return ref


def _build_perpendicular(board, parents, coords, attrs):
    line, point = parents
    foot_id = _derived("perpendicularpoint", _foot_value)(board, (line, point), (), {})
    line_id = board.graph.add_element(
        "line",
        (point, foot_id, line),
        _perpendicular_line_value,
        construction="perpendicular",
        name=attrs.get("name"),
    )
    return [line_id, foot_id]


def _build_parallel(board, parents, coords, attrs):
    line, point = parents
    helper = _derived("parallelpoint", _parallel_point_value)(
        board, (line, point), (), {"visible": False}
    )
    return board.graph.add_element(
        "line", (point, helper, line), _line_value, construction="parallel", name=attrs.get("name")
    )


def _build_circumcircle(board, parents, coords, attrs):
    center = _derived("circumcenter", lambda vals, prev: circumcenter(*vals))(board, parents, (), {})
    circle = board.graph.add_element(
        "circle",
        (center, parents[0]),
        _circle_value,
        construction="circumcircle",
        name=attrs.get("name"),
    )
    return [center, circle]


def _build_bisector(board, parents, coords, attrs):
    helper = _derived("bisectorpoint", lambda vals, prev: bisector_point(*vals))(
        board, parents, (), {"visible": False}
    )
    return board.graph.add_element(
        "line", (parents[1], helper), _line_value, construction="bisector", name=attrs.get("name")
    )


def _build_normal(board, parents, coords, attrs):
    host, point = parents
    host_el = board.graph.get(host)
    if host_el.kind == "line":
        helper = _derived("perpendicularpoint", _foot_value)(
            board, (host, point), (), {"visible": False}
        )
        return board.graph.add_element(
            "line",
            (point, helper, host),
            _perpendicular_line_value,
            construction="normal",
            name=attrs.get("name"),
        )
    center = host_el.parents[0]
    return board.graph.add_element(
        "line", (point, center, host), _line_value, construction="normal", name=attrs.get("name")
    )


SPECS: Dict[str, ConstructionSpec] = {}


def register(spec: ConstructionSpec) -> ConstructionSpec:
    SPECS[spec.name] = spec
    return spec


register(ConstructionSpec("point", ((),), _build_point, coordinates=2))
register(ConstructionSpec("line", (("point", "point"),), _build_line))
register(ConstructionSpec("circle", (("point", "point"),), _build_circle))
register(ConstructionSpec("midpoint", (("point", "point"), ("line",)), _derived("midpoint", _midpoint_value)))
register(
    ConstructionSpec(
        "perpendicularpoint",
        (("line", "point"),),
        _derived("perpendicularpoint", _foot_value),
        any_order=True,
    )
)
register(
    ConstructionSpec(
        "parallelpoint",
        (("line", "point"), ("point", "point", "point")),
        _derived("parallelpoint", _parallel_point_value),
        any_order=True,
    )
)
register(
    ConstructionSpec(
        "reflection", (("line", "point"),), _derived("reflection", _reflection_value), any_order=True
    )
)
register(
    ConstructionSpec(
        "mirrorpoint",
        (("point", "point"),),
        _derived("mirrorpoint", lambda vals, prev: mirror_point(vals[0], vals[1])),
    )
)
register(
    ConstructionSpec(
        "circumcenter",
        (("point", "point", "point"),),
        _derived("circumcenter", lambda vals, prev: circumcenter(*vals)),
    )
)
register(
    ConstructionSpec(
        "bisectorpoint",
        (("point", "point", "point"),),
        _derived("bisectorpoint", lambda vals, prev: bisector_point(*vals)),
    )
)
register(
    ConstructionSpec(
        "intersection", (("line", "line"),), _derived("intersection", _intersection_value)
    )
)
register(ConstructionSpec("glider", (("line",), ("circle",), ("locus",)), _build_glider, coordinates=2))
register(ConstructionSpec("locus", (("point",),), _build_locus))
register(ConstructionSpec("perpendicular", (("line", "point"),), _build_perpendicular, any_order=True))
register(ConstructionSpec("parallel", (("line", "point"),), _build_parallel, any_order=True))
register(ConstructionSpec("circumcircle", (("point", "point", "point"),), _build_circumcircle))
register(ConstructionSpec("bisector", (("point", "point", "point"),), _build_bisector))
register(
    ConstructionSpec(
        "normal", (("line", "point"), ("circle", "point")), _build_normal, any_order=True
    )
)


class Construction:
    """A construction board: graph, elimination backend and scheduler together."""

    def __init__(
        self,
        client: Optional[EliminationClient] = None,
        *,
        viewport: BoundingBox = DEFAULT_VIEWPORT,
        tracing: Optional[TracingConfig] = None,
    ):
        if client is None:
            client = SympyEliminationEngine()
        self.graph = ConstructionGraph()
        self.scheduler = UpdateScheduler(self.graph, client, viewport=viewport, tracing=tracing)

    @property
    def client(self) -> EliminationClient:
        return self.scheduler.client

    def resolve(self, ref: ParentRef) -> ElementId:
        if isinstance(ref, str):
            return self.graph.find(ref).id
        self.graph.get(ref)
        return ref

    def resolve_optional(self, ref: Optional[ParentRef]) -> Optional[ElementId]:
        return None if ref is None else self.resolve(ref)

    def _match(self, spec: ConstructionSpec, refs: Sequence[ElementId]) -> Tuple[ElementId, ...]:
        kinds = [capability(self.graph.get(ref).kind) for ref in refs]
        for sig in spec.signatures:
            if list(sig) == kinds:
                return tuple(refs)
            if spec.any_order and len(sig) == 2 and list(sig[::-1]) == kinds:
                return (refs[1], refs[0])
        raise InvalidParentTypes(spec.name, [self.graph.get(ref).kind for ref in refs], spec.accepted())

    def create(self, kind: str, parents: Sequence[Any] = (), **attrs: Any) -> Any:
        """Create ``kind`` from ``parents``; returns an id or, for some composites, a list of ids."""

        spec = SPECS.get(kind)
        if spec is None:
            raise ValueError(f"unknown construction {kind!r}")
        parents = list(parents)
        coords: Tuple[float, ...] = ()
        if spec.coordinates and len(parents) > max(len(sig) for sig in spec.signatures):
            leading, parents = parents[: spec.coordinates], parents[spec.coordinates :]
            if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in leading):
                raise ValueError(f"{kind} expects {spec.coordinates} leading coordinates, got {leading!r}")
            coords = tuple(float(v) for v in leading)
        refs = [self.resolve(ref) for ref in parents]
        canonical = self._match(spec, refs)
        created = spec.build(self, canonical, coords, attrs)
        logger.debug("create %s%s -> %s", kind, list(canonical), created)
        return created

    def point(self, x: float, y: float, name: Optional[str] = None) -> ElementId:
        return self.create("point", [x, y], name=name)

    def line(self, a: ParentRef, b: ParentRef, name: Optional[str] = None) -> ElementId:
        return self.create("line", [a, b], name=name)

    def circle(self, center: ParentRef, through: ParentRef, name: Optional[str] = None) -> ElementId:
        return self.create("circle", [center, through], name=name)

    def glider(self, host: ParentRef, x: Optional[float] = None, y: Optional[float] = None, name: Optional[str] = None) -> ElementId:
        if x is None or y is None:
            return self.create("glider", [host], name=name)
        return self.create("glider", [x, y, host], name=name)

    def locus(self, target: ParentRef, name: Optional[str] = None, **options: Any) -> ElementId:
        return self.create("locus", [target], name=name, **options)

    def value(self, ref: ParentRef) -> Any:
        return self.graph.get(self.resolve(ref)).value

    def move(self, point: ParentRef, x: float, y: float) -> List[ElementId]:
        return self.scheduler.move(self.resolve(point), x, y)

    def slide(self, glider: ParentRef, x: float, y: float) -> List[ElementId]:
        return self.scheduler.slide(self.resolve(glider), x, y)

    def remove(self, ref: ParentRef) -> List[ElementId]:
        return self.graph.remove_element(self.resolve(ref))

    def locus_state(self, ref: ParentRef) -> LocusState:
        return self.scheduler.state(self.resolve(ref))

    async def locus_pass(self, locus: ParentRef, viewport: Optional[BoundingBox] = None) -> SampledCurve:
        return await self.scheduler.locus_pass(self.resolve(locus), viewport)

    def refresh(self, locus: ParentRef, viewport: Optional[BoundingBox] = None) -> SampledCurve:
        return self.scheduler.refresh(self.resolve(locus), viewport)

    def result(self, locus: ParentRef) -> Optional[LocusResult]:
        return self.locus_state(locus).result


__all__ = ["Construction", "ConstructionSpec", "SPECS", "capability", "register"]
