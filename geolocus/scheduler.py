"""Update scheduling: cheap numeric passes and on-demand locus passes."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional

from .config import TracingConfig
from .elimination.base import EliminationClient
from .errors import ComputationError, ComputationTimeout, GeolocusError
from .graph import ConstructionGraph
from .locus import LocusPlan, LocusState, check_reply
from .model import BoundingBox, ElementId, ImplicitPolynomial, SampledCurve
from .numerics import project_to_circle, project_to_line

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT = BoundingBox(-10.0, -10.0, 10.0, 10.0)


class UpdateScheduler:
    """Drives numeric propagation and the asynchronous locus pipeline."""

    def __init__(
        self,
        graph: ConstructionGraph,
        client: EliminationClient,
        *,
        viewport: BoundingBox = DEFAULT_VIEWPORT,
        tracing: Optional[TracingConfig] = None,
    ):
        self.graph = graph
        self.client = client
        self.viewport = viewport
        self.tracing = tracing

    def numeric_pass(self, roots: Iterable[ElementId]) -> List[ElementId]:
        return self.graph.update(roots)

    def move(self, point: ElementId, x: float, y: float) -> List[ElementId]:
        element = self.graph.get(point)
        if not element.is_free:
            raise GeolocusError(f"{element.label()} is not a free point")
        element.value = (float(x), float(y))
        return self.numeric_pass([point])

    def slide(self, glider: ElementId, x: float, y: float) -> List[ElementId]:
        """Move a glider towards ``(x, y)``, staying on its host."""

        element = self.graph.get(glider)
        if element.kind != "glider":
            raise GeolocusError(f"{element.label()} is not a glider")
        host = self.graph.get(element.parents[0])
        if host.kind == "line":
            a, b = host.value
            element.value = project_to_line((x, y), a, b)
        elif host.kind == "locus":
            nearest = host.value.nearest((x, y))
            if nearest is None:
                raise ComputationError(f"{host.label()} has no traced curve to slide on")
            element.value = nearest
        else:
            center, radius = host.value
            element.value = project_to_circle((x, y), center, radius)
        return self.numeric_pass([glider])

    def state(self, locus: ElementId) -> LocusState:
        element = self.graph.get(locus)
        if element.kind != "locus" or element.locus is None:
            raise GeolocusError(f"{element.label()} is not a locus")
        return element.locus

    async def locus_pass(self, locus: ElementId, viewport: Optional[BoundingBox] = None) -> SampledCurve:
        """Bring ``locus`` up to date; returns its current curve.

        A call that arrives while the locus has a request in flight only marks
        it dirty; the running pass then repeats once with the newest viewport.
        """

        state = self.state(locus)
        state.pending_viewport = viewport or state.pending_viewport or self.viewport
        if state.in_flight:
            state.dirty = True
            logger.debug("Locus %d busy; marked dirty", locus)
            return state.current_curve()

        state.in_flight = True
        try:
            while True:
                state.dirty = False
                await self._run(state, state.pending_viewport or self.viewport)
                if not state.dirty or state.removed:
                    break
                logger.info("Re-running coalesced locus pass for %d", locus)
        finally:
            state.in_flight = False
        return state.current_curve()

    async def _eliminate(self, state: LocusState, plan: LocusPlan) -> ImplicitPolynomial:
        timeout = state.options.timeout
        try:
            return await asyncio.wait_for(
                self.client.eliminate(plan.wire, plan.eliminate, plan.keep), timeout
            )
        except asyncio.TimeoutError as exc:
            raise ComputationTimeout(f"locus {state.element_id} gave up after {timeout:.1f}s") from exc

    async def _run(self, state: LocusState, viewport: BoundingBox) -> None:
        try:
            plan = state.plan(self.graph)
        except GeolocusError as exc:
            logger.warning("Locus %d has no symbolic form: %s", state.element_id, exc)
            state.mark_failed(exc if isinstance(exc, ComputationError) else ComputationError(str(exc)))
            return

        implicit = state.cached_polynomial(plan.signature)
        fresh = implicit is None
        if implicit is not None:
            logger.info("Signature cache hit for locus %d", state.element_id)
        else:
            logger.info(
                "Eliminating %d variable(s) from %d polynomial(s) for locus %d",
                len(plan.eliminate),
                len(plan.wire),
                state.element_id,
            )

        try:
            if implicit is None:
                implicit = await self._eliminate(state, plan)
                if not state.bound_alive(self.graph, plan.bound_ids):
                    logger.info("Locus %d removed during elimination; discarding reply", state.element_id)
                    return
                logger.info("Elimination for locus %d took %.3fs", state.element_id, implicit.elapsed)
                check_reply(plan, implicit)
            result = state.complete(self.graph, plan, implicit, viewport, self.tracing)
        except ComputationError as exc:
            if not state.bound_alive(self.graph, plan.bound_ids):
                logger.info("Locus %d removed during elimination; dropping error", state.element_id)
                return
            logger.warning("Locus %d kept its previous curve: %s", state.element_id, exc)
            state.mark_failed(exc)
            return

        if fresh:
            state.store_polynomial(plan.signature, implicit)
        element = self.graph.get(state.element_id)
        element.value = result.curve
        if element.children:
            self.numeric_pass([state.element_id])

    def refresh(self, locus: ElementId, viewport: Optional[BoundingBox] = None) -> SampledCurve:
        return asyncio.run(self.locus_pass(locus, viewport))

    async def refresh_all(self, viewport: Optional[BoundingBox] = None) -> List[SampledCurve]:
        """Run every visible locus concurrently; loci do not share state."""

        loci = [el.id for el in self.graph if el.kind == "locus" and el.visible]
        return list(await asyncio.gather(*(self.locus_pass(ref, viewport) for ref in loci)))


__all__ = ["DEFAULT_VIEWPORT", "UpdateScheduler"]
