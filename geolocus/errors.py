"""Exception taxonomy for construction and locus computation."""

from __future__ import annotations

from typing import Sequence, Tuple


class GeolocusError(Exception):
    """Base class for all geolocus errors."""


class CyclicDependency(GeolocusError):
    """Raised when an edge would introduce a cycle into the construction graph."""

    def __init__(self, parent: int, child: int):
        super().__init__(f"edge {parent} -> {child} would create a dependency cycle")
        self.parent = parent
        self.child = child


class InvalidParentTypes(GeolocusError):
    """Raised when a construction is called with parents of the wrong kinds."""

    def __init__(self, construction: str, kinds: Sequence[str], accepted: Sequence[Tuple[str, ...]]):
        given = ", ".join(f"'{kind}'" for kind in kinds) or "(none)"
        possible = ", ".join("[" + ",".join(sig) + "]" for sig in accepted)
        super().__init__(
            f"can't create {construction} with parent types {given}.\n"
            f"Possible parent types: {possible}"
        )
        self.construction = construction
        self.kinds = tuple(kinds)
        self.accepted = tuple(tuple(sig) for sig in accepted)


class ComputationError(GeolocusError):
    """Failure of the symbolic locus pass; absorbed at the locus boundary."""


class ComputationTimeout(ComputationError):
    """The elimination engine did not answer in time."""


class Unreachable(ComputationError):
    """The elimination service could not be reached or answered garbage."""


class DegenerateSystem(ComputationError):
    """Elimination produced no nontrivial equation in the kept variables."""


class PolynomialSyntaxError(SyntaxError):
    """Raised for text that does not follow the polynomial wire grammar."""


__all__ = [
    "GeolocusError",
    "CyclicDependency",
    "InvalidParentTypes",
    "ComputationError",
    "ComputationTimeout",
    "Unreachable",
    "DegenerateSystem",
    "PolynomialSyntaxError",
]
