"""Per-locus state: last result, staleness, and the symbolic and curve caches."""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Hashable, Optional, Sequence, Tuple, TypeVar

from .config import LocusOptions, TracingConfig
from .curves import build
from .errors import ComputationError, DegenerateSystem, PolynomialSyntaxError, Unreachable
from .graph import ConstructionGraph
from .model import BoundingBox, ElementId, ImplicitPolynomial, SampledCurve
from .normalize import (
    NormalizedSystem,
    PointSelector,
    Transform,
    bind_parameters,
    designated_points,
    first_free_points,
    normalize_system,
    transform_for,
)
from .polynomials import format_polynomial, parse_polynomial
from .symbolic import collect_system, symbolic_ancestors

logger = logging.getLogger(__name__)

CURVE_CACHE_SIZE = 32
PLAN_CACHE_SIZE = 32
POLYNOMIAL_CACHE_SIZE = 32

CurveKey = Tuple[str, Transform, Tuple[float, float, float, float], Tuple[Tuple[str, float], ...]]
# (parameter name, free point id, axis index)
ParameterSource = Tuple[str, ElementId, int]

V = TypeVar("V")


def _remember(cache: "OrderedDict[Hashable, V]", key: Hashable, value: V, limit: int) -> None:
    cache[key] = value
    cache.move_to_end(key)
    while len(cache) > limit:
        cache.popitem(last=False)


def _recall(cache: "OrderedDict[Hashable, V]", key: Hashable) -> Optional[V]:
    value = cache.get(key)
    if value is not None:
        cache.move_to_end(key)
    return value


def compute_signature(
    wire: Sequence[str],
    eliminate: Sequence[str],
    keep: Sequence[str],
    anchors: Tuple[Optional[ElementId], Optional[ElementId]],
) -> str:
    """SHA-1 over the canonical polynomials, variable names and anchors."""

    digest = hashlib.sha1()
    for text in wire:
        digest.update(text.encode("utf-8"))
        digest.update(b"\n")
    digest.update(("eliminate:" + ",".join(eliminate) + "\n").encode("utf-8"))
    digest.update(("keep:" + ",".join(keep) + "\n").encode("utf-8"))
    digest.update(("anchors:" + ",".join(str(a) for a in anchors) + "\n").encode("utf-8"))
    return digest.hexdigest()


@dataclass(frozen=True)
class LocusPlan:
    """Normalized system of a locus together with its signature."""

    signature: str
    wire: Tuple[str, ...]
    eliminate: Tuple[str, ...]
    keep: Tuple[str, str]
    normalized: NormalizedSystem = field(compare=False)
    # ids whose survival the result depends on
    bound_ids: Tuple[ElementId, ...] = ()

    @property
    def anchors(self) -> Tuple[Optional[ElementId], Optional[ElementId]]:
        return self.normalized.anchors

    @property
    def sources(self) -> Tuple[ParameterSource, ...]:
        return tuple(
            (name, ref, axis)
            for name, (ref, axis) in sorted(self.normalized.parameter_sources.items())
        )


@dataclass(frozen=True)
class LocusResult:
    """Finished locus: equations in the normalized frame plus the sampled curve."""

    signature: str
    implicit: ImplicitPolynomial
    curve: SampledCurve
    transform: Transform
    parameters: Tuple[Tuple[str, float], ...] = ()
    # frame of ``implicit``: origin and axis anchors, and where each parameter comes from
    anchors: Tuple[Optional[ElementId], Optional[ElementId]] = (None, None)
    sources: Tuple[ParameterSource, ...] = ()

    @property
    def elapsed(self) -> float:
        return self.implicit.elapsed

    @property
    def polynomial(self) -> Tuple[str, ...]:
        """Wire-grammar equations; coordinates are ``transform``-normalized."""

        return self.implicit.equations


def check_reply(plan: LocusPlan, implicit: ImplicitPolynomial) -> None:
    """Reject replies that are not in the wire grammar or use foreign symbols."""

    if not implicit.equations:
        raise DegenerateSystem("elimination returned no equation")
    allowed = set(plan.keep) | set(plan.normalized.parameter_sources)
    for text in implicit.equations:
        try:
            expr = parse_polynomial(text)
        except PolynomialSyntaxError as exc:
            raise Unreachable(f"malformed equation {text!r}: {exc}") from exc
        foreign = sorted(s.name for s in expr.free_symbols if s.name not in allowed)
        if foreign:
            raise Unreachable(f"equation {text!r} uses unknown symbol(s) {', '.join(foreign)}")


def _structure_key(graph: ConstructionGraph, target: ElementId) -> Tuple:
    refs = graph.ancestors(target) + [target]
    entries = []
    for ref in refs:
        element = graph.get(ref)
        extra = None
        if element.kind == "locus" and element.locus is not None and element.locus.result is not None:
            extra = element.locus.result.signature
        entries.append((ref, element.kind, element.construction, element.parents, extra))
    return tuple(entries)


class LocusState:
    """Everything a locus element remembers between passes."""

    def __init__(self, element_id: ElementId, target: ElementId, options: Optional[LocusOptions] = None):
        self.element_id = element_id
        self.target = target
        self.options = options or LocusOptions()
        self.result: Optional[LocusResult] = None
        self.last_error: Optional[ComputationError] = None
        self.stale = False
        self.removed = False
        self.in_flight = False
        self.dirty = False
        self.pending_viewport: Optional[BoundingBox] = None
        self._plans: "OrderedDict[Tuple, LocusPlan]" = OrderedDict()
        self._polynomials: "OrderedDict[str, ImplicitPolynomial]" = OrderedDict()
        self._curves: "OrderedDict[CurveKey, SampledCurve]" = OrderedDict()

    def current_curve(self) -> SampledCurve:
        if self.result is None:
            return SampledCurve.empty()
        return self.result.curve

    def is_stale(self) -> bool:
        return self.stale

    def invalidate(self) -> None:
        self.removed = True
        self.result = None
        self._plans.clear()
        self._polynomials.clear()
        self._curves.clear()

    def mark_failed(self, exc: ComputationError) -> None:
        self.last_error = exc
        self.stale = True

    def selector(self) -> Optional[PointSelector]:
        if self.options.selector is not None:
            return self.options.selector
        if self.options.to_origin is not None:
            return designated_points(self.options.to_origin, self.options.to_x_axis)
        return None

    def plan(self, graph: ConstructionGraph) -> LocusPlan:
        """Binder and normalizer output, memoized on the ancestor structure and anchors."""

        structure = _structure_key(graph, self.target)
        free_ids = [ref for ref in symbolic_ancestors(graph, self.target) if graph.get(ref).is_free]
        choice = (self.selector() or first_free_points)(graph, self.target, free_ids)
        anchors = tuple(choice) if choice is not None else None
        key = (structure, anchors)
        plan = _recall(self._plans, key)
        if plan is not None:
            return plan
        system = collect_system(graph, self.target)
        normalized = normalize_system(graph, system, lambda *_: anchors)
        wire = tuple(format_polynomial(eq) for eq in normalized.equations)
        eliminate = tuple(sym.name for sym in normalized.eliminate)
        keep = (system.keep[0].name, system.keep[1].name)
        plan = LocusPlan(
            signature=compute_signature(wire, eliminate, keep, normalized.anchors),
            wire=wire,
            eliminate=eliminate,
            keep=keep,
            normalized=normalized,
            bound_ids=tuple(entry[0] for entry in structure),
        )
        _remember(self._plans, key, plan, PLAN_CACHE_SIZE)
        return plan

    def cached_polynomial(self, signature: str) -> Optional[ImplicitPolynomial]:
        return _recall(self._polynomials, signature)

    def store_polynomial(self, signature: str, implicit: ImplicitPolynomial) -> None:
        _remember(self._polynomials, signature, implicit, POLYNOMIAL_CACHE_SIZE)

    def complete(
        self,
        graph: ConstructionGraph,
        plan: LocusPlan,
        implicit: ImplicitPolynomial,
        viewport: BoundingBox,
        config: Optional[TracingConfig] = None,
    ) -> LocusResult:
        """Trace (or fetch) the curve for the current positions and store the result.

        Tracing failures surface as :class:`ComputationError`; the previous
        result is left untouched in that case.
        """

        transform = transform_for(graph, plan.anchors)
        values = bind_parameters(graph, transform, plan.normalized.parameter_sources)
        bound = tuple(sorted(values.items()))
        key: CurveKey = (plan.signature, transform, viewport.as_tuple(), bound)

        curve = _recall(self._curves, key)
        if curve is not None:
            logger.info("Curve cache hit for locus %d", self.element_id)
        else:
            try:
                curve = build(implicit, transform, viewport, parameters=dict(bound), config=config)
            except (ArithmeticError, SyntaxError, TypeError, ValueError) as exc:
                raise ComputationError(f"cannot trace locus {self.element_id}: {exc}") from exc
            _remember(self._curves, key, curve, CURVE_CACHE_SIZE)

        if self.result is not None and self.result.curve is curve:
            result = self.result
        else:
            result = LocusResult(
                signature=plan.signature,
                implicit=implicit,
                curve=curve,
                transform=transform,
                parameters=bound,
                anchors=plan.anchors,
                sources=plan.sources,
            )
        self.result = result
        self.stale = False
        self.last_error = None
        return result

    def bound_alive(self, graph: ConstructionGraph, ids: Sequence[ElementId]) -> bool:
        return not self.removed and all(graph.is_alive(ref) for ref in ids)


__all__ = [
    "CurveKey",
    "LocusPlan",
    "LocusResult",
    "LocusState",
    "check_reply",
    "compute_signature",
]
