"""Construction dependency graph with incremental numeric update propagation.

Elements live in an arena indexed by stable integer ids.  ``Element.parents``
is the ordered tuple of evaluator inputs fixed at creation; ``Element.children``
holds the propagation edges and is only touched through :meth:`add_edge` and
:meth:`remove_element`.
"""

from __future__ import annotations

import heapq
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set

from .errors import CyclicDependency
from .model import Element, ElementId, ElementKind, Evaluator

logger = logging.getLogger(__name__)


class ConstructionGraph:
    """Arena of elements plus the parent -> child edge relation."""

    def __init__(self) -> None:
        self._arena: List[Optional[Element]] = []

    def __len__(self) -> int:
        return sum(1 for el in self._arena if el is not None)

    def __contains__(self, ref: object) -> bool:
        return isinstance(ref, int) and self.is_alive(ref)

    def __iter__(self) -> Iterator[Element]:
        return (el for el in self._arena if el is not None)

    def is_alive(self, ref: ElementId) -> bool:
        return 0 <= ref < len(self._arena) and self._arena[ref] is not None

    def get(self, ref: ElementId) -> Element:
        if not self.is_alive(ref):
            raise KeyError(f"unknown element id {ref}")
        element = self._arena[ref]
        assert element is not None
        return element

    def find(self, name: str) -> Element:
        for element in self:
            if element.name == name:
                return element
        raise KeyError(f"no element named {name!r}")

    def free_points(self) -> List[ElementId]:
        return [el.id for el in self if el.is_free]

    def add_element(
        self,
        kind: ElementKind,
        parents: Sequence[ElementId],
        evaluator: Optional[Evaluator] = None,
        *,
        construction: Optional[str] = None,
        name: Optional[str] = None,
        value: Any = None,
        visible: bool = True,
    ) -> ElementId:
        """Create an element after its parents and evaluate it once."""

        for ref in parents:
            self.get(ref)
        element = Element(
            id=len(self._arena),
            kind=kind,
            construction=construction or kind,
            parents=tuple(parents),
            evaluator=evaluator,
            value=value,
            name=name,
            visible=visible,
        )
        self._arena.append(element)
        for ref in element.parents:
            self.add_edge(ref, element.id)
        if evaluator is not None:
            self._evaluate(element)
        logger.debug(
            "Added %s %s with parents=%s", element.kind, element.label(), list(element.parents)
        )
        return element.id

    def add_edge(self, parent: ElementId, child: ElementId) -> None:
        """Record that ``child`` must be recomputed whenever ``parent`` changes."""

        parent_el = self.get(parent)
        self.get(child)
        if parent == child or self._reaches(child, parent):
            raise CyclicDependency(parent, child)
        if child not in parent_el.children:
            parent_el.children.append(child)

    def remove_element(self, ref: ElementId) -> List[ElementId]:
        """Remove ``ref`` and every descendant; returns the removed ids."""

        doomed = [ref] + self.descendants(ref)
        doomed_set = set(doomed)
        for el_id in doomed:
            element = self.get(el_id)
            element.removed = True
            if element.locus is not None:
                element.locus.invalidate()
        for el_id in doomed:
            self._arena[el_id] = None
        for element in self:
            if any(child in doomed_set for child in element.children):
                element.children = [c for c in element.children if c not in doomed_set]
        logger.info("Removed %d element(s) starting at id %d", len(doomed), ref)
        return doomed

    def descendants(self, ref: ElementId) -> List[ElementId]:
        seen: Set[ElementId] = set()
        order: List[ElementId] = []
        stack = list(reversed(self.get(ref).children))
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            order.append(node)
            stack.extend(reversed(self.get(node).children))
        return order

    def ancestors(self, ref: ElementId) -> List[ElementId]:
        """Return the input ancestors of ``ref``, parents before children."""

        order: List[ElementId] = []
        seen: Set[ElementId] = set()
        stack = [(ref, iter(self.get(ref).parents))]
        while stack:
            node, pending = stack[-1]
            for parent in pending:
                if parent not in seen:
                    seen.add(parent)
                    stack.append((parent, iter(self.get(parent).parents)))
                    break
            else:
                stack.pop()
                if node != ref:
                    order.append(node)
        return order

    def update(self, roots: Iterable[ElementId]) -> List[ElementId]:
        """Recompute ``roots`` and all transitive descendants in one topological pass.

        Every affected element is visited exactly once, after all of its affected
        parents.  Free points keep their stored value.  Returns the visit order.
        """

        affected: Set[ElementId] = set()
        for root in roots:
            self.get(root)
            affected.add(root)
            affected.update(self.descendants(root))

        indegree: Dict[ElementId, int] = {node: 0 for node in affected}
        for node in affected:
            for child in self.get(node).children:
                if child in indegree:
                    indegree[child] += 1

        heap = [node for node, deg in indegree.items() if deg == 0]
        heapq.heapify(heap)
        order: List[ElementId] = []
        while heap:
            node = heapq.heappop(heap)
            order.append(node)
            element = self.get(node)
            if not element.is_free:
                self._evaluate(element)
            for child in element.children:
                if child in indegree:
                    indegree[child] -= 1
                    if indegree[child] == 0:
                        heapq.heappush(heap, child)

        logger.debug("Numeric update visited %d element(s)", len(order))
        return order

    def _evaluate(self, element: Element) -> None:
        if element.evaluator is None:
            return
        inputs = [self.get(parent).value for parent in element.parents]
        element.value = element.evaluator(inputs, element.value)

    def _reaches(self, src: ElementId, dst: ElementId) -> bool:
        stack = [src]
        seen: Set[ElementId] = set()
        while stack:
            node = stack.pop()
            if node == dst:
                return True
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self.get(node).children)
        return False


__all__ = ["ConstructionGraph"]
