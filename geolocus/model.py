"""Core data structures shared by the construction graph and the locus pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, List, Literal, Optional, Sequence, Tuple

import numpy as np

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .locus import LocusState

ElementId = int

ElementKind = Literal[
    "free_point",
    "glider",
    "derived_point",
    "line",
    "circle",
    "curve",
    "locus",
]

POINT_KINDS = frozenset({"free_point", "glider", "derived_point"})

# (parent_values, previous_value) -> value
Evaluator = Callable[[Sequence[Any], Any], Any]


@dataclass
class Element:
    """Node of the construction graph.

    ``parents`` are back-references by id; the element owns only its ``children``
    list, which the graph mutates through its edge operations.
    """

    id: ElementId
    kind: ElementKind
    construction: str
    parents: Tuple[ElementId, ...]
    evaluator: Optional[Evaluator] = None
    value: Any = None
    name: Optional[str] = None
    children: List[ElementId] = field(default_factory=list)
    visible: bool = True
    removed: bool = False
    locus: Optional["LocusState"] = None

    @property
    def is_point(self) -> bool:
        return self.kind in POINT_KINDS

    @property
    def is_free(self) -> bool:
        return self.kind == "free_point"

    def label(self) -> str:
        return self.name or f"{self.construction}#{self.id}"

    def __repr__(self) -> str:
        return (
            f"Element(id={self.id}, kind={self.kind!r}, construction={self.construction!r}, "
            f"parents={self.parents}, value={self.value!r})"
        )


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned viewport in user coordinates."""

    xmin: float
    ymin: float
    xmax: float
    ymax: float

    def __post_init__(self) -> None:
        if not (self.xmin < self.xmax and self.ymin < self.ymax):
            raise ValueError(f"degenerate bounding box {self.as_tuple()}")

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.xmin, self.ymin, self.xmax, self.ymax)

    def corners(self) -> np.ndarray:
        return np.array(
            [
                [self.xmin, self.ymin],
                [self.xmax, self.ymin],
                [self.xmax, self.ymax],
                [self.xmin, self.ymax],
            ],
            dtype=float,
        )

    @property
    def diagonal(self) -> float:
        return math.hypot(self.xmax - self.xmin, self.ymax - self.ymin)

    def contains(self, xs: np.ndarray, ys: np.ndarray, margin: float = 0.0) -> np.ndarray:
        return (
            (xs >= self.xmin - margin)
            & (xs <= self.xmax + margin)
            & (ys >= self.ymin - margin)
            & (ys <= self.ymax + margin)
        )

    @classmethod
    def from_points(cls, points: np.ndarray) -> "BoundingBox":
        lo = points.min(axis=0)
        hi = points.max(axis=0)
        return cls(float(lo[0]), float(lo[1]), float(hi[0]), float(hi[1]))


@dataclass(frozen=True, eq=False)
class SampledCurve:
    """Ordered, possibly disconnected polyline; NaN entries separate branches."""

    xs: np.ndarray
    ys: np.ndarray

    @classmethod
    def empty(cls) -> "SampledCurve":
        return cls(np.zeros(0, dtype=float), np.zeros(0, dtype=float))

    @classmethod
    def from_branches(cls, branches: Sequence[np.ndarray]) -> "SampledCurve":
        pieces: List[np.ndarray] = []
        for branch in branches:
            if len(branch) == 0:
                continue
            if pieces:
                pieces.append(np.array([[np.nan, np.nan]], dtype=float))
            pieces.append(np.asarray(branch, dtype=float).reshape(-1, 2))
        if not pieces:
            return cls.empty()
        stacked = np.vstack(pieces)
        return cls(np.ascontiguousarray(stacked[:, 0]), np.ascontiguousarray(stacked[:, 1]))

    def branches(self) -> List[np.ndarray]:
        if self.xs.size == 0:
            return []
        points = np.column_stack([self.xs, self.ys])
        breaks = np.flatnonzero(np.isnan(self.xs))
        out: List[np.ndarray] = []
        start = 0
        for stop in list(breaks) + [len(points)]:
            if stop > start:
                out.append(points[start:stop])
            start = stop + 1
        return out

    def points(self) -> np.ndarray:
        mask = ~np.isnan(self.xs)
        return np.column_stack([self.xs[mask], self.ys[mask]])

    def nearest(self, point: Sequence[float]) -> Optional[Tuple[float, float]]:
        """Closest sample to ``point``; ``None`` for an empty curve."""

        pts = self.points()
        if len(pts) == 0:
            return None
        dist = np.hypot(pts[:, 0] - float(point[0]), pts[:, 1] - float(point[1]))
        x, y = pts[int(np.nanargmin(dist))]
        return (float(x), float(y))

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def __len__(self) -> int:
        return int(np.count_nonzero(~np.isnan(self.xs)))

    def tobytes(self) -> bytes:
        return self.xs.tobytes() + self.ys.tobytes()


@dataclass(frozen=True)
class ImplicitPolynomial:
    """Equations in the kept variables returned by the elimination engine."""

    equations: Tuple[str, ...]
    keep: Tuple[str, str] = ("x", "y")
    parameters: Tuple[str, ...] = ()
    elapsed: float = 0.0


__all__ = [
    "BoundingBox",
    "Element",
    "ElementId",
    "ElementKind",
    "Evaluator",
    "ImplicitPolynomial",
    "POINT_KINDS",
    "SampledCurve",
]
