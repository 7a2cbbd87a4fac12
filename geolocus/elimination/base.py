"""Contract shared by every elimination backend."""

from __future__ import annotations

from typing import Protocol, Sequence, Tuple, runtime_checkable

from ..model import ImplicitPolynomial


@runtime_checkable
class EliminationClient(Protocol):
    """Eliminates variables from a polynomial ideal.

    ``polynomials`` are wire-grammar strings.  Implementations raise a
    :class:`~geolocus.errors.ComputationError` subclass on failure and never
    return a partial result.
    """

    async def eliminate(
        self,
        polynomials: Sequence[str],
        eliminate_vars: Sequence[str],
        keep_vars: Tuple[str, str] = ("x", "y"),
    ) -> ImplicitPolynomial:
        ...


__all__ = ["EliminationClient"]
