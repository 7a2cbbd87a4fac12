"""Local elimination through sympy's Groebner bases, one child process per request."""

from __future__ import annotations

import asyncio
import logging
import multiprocessing
import time
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import sympy

from ..errors import ComputationError, ComputationTimeout, DegenerateSystem, PolynomialSyntaxError
from ..logging_utils import debug_log_call
from ..model import ImplicitPolynomial
from ..polynomials import format_polynomial, parse_polynomials

logger = logging.getLogger(__name__)


def _symbol(table: Dict[str, sympy.Symbol], name: str) -> sympy.Symbol:
    sym = table.get(name)
    if sym is None:
        sym = sympy.Symbol(name)
        table[name] = sym
    return sym


def _canonical(factor: sympy.Expr, gens: Sequence[sympy.Symbol]) -> sympy.Expr:
    poly = sympy.Poly(factor, *gens)
    _, poly = poly.clear_denoms()
    _, poly = poly.primitive()
    if poly.LC() < 0:
        poly = -poly
    return poly.as_expr()


@debug_log_call(logger)
def eliminate_polynomials(
    polynomials: Sequence[str],
    eliminate_vars: Sequence[str],
    keep_vars: Tuple[str, str] = ("x", "y"),
) -> ImplicitPolynomial:
    """Compute the elimination ideal with a lex Groebner basis.

    Generators are ordered eliminated variables first, then ``keep_vars``, then
    every other symbol as a parameter.  Basis elements free of eliminated
    variables are factored; factors without a kept variable are dropped.
    """

    start = time.perf_counter()
    table: Dict[str, sympy.Symbol] = {}
    exprs = [eq for eq in parse_polynomials(polynomials, table) if eq != 0]
    if not exprs:
        raise DegenerateSystem("empty polynomial system")

    elim = [_symbol(table, name) for name in eliminate_vars]
    keep = [_symbol(table, name) for name in keep_vars]
    known = set(elim) | set(keep)
    params = sorted(
        (sym for sym in set().union(*(eq.free_symbols for eq in exprs)) if sym not in known),
        key=lambda s: s.name,
    )
    gens = elim + keep + params

    basis = sympy.groebner(exprs, *gens, order="lex")
    if any(g.is_Number for g in basis.exprs):
        raise DegenerateSystem("the constraint system is inconsistent")

    elim_set = set(elim)
    keep_set = set(keep)
    equations: List[str] = []
    param_set = set(params)
    used_params = set()
    for element in basis.exprs:
        symbols = element.free_symbols
        if symbols & elim_set or not symbols & keep_set:
            continue
        _, factors = sympy.factor_list(element, *gens)
        kept = [
            _canonical(factor, gens) for factor, _ in factors if factor.free_symbols & keep_set
        ]
        if not kept:
            continue
        product = sympy.Mul(*kept)
        text = format_polynomial(product)
        if text not in equations:
            equations.append(text)
            used_params.update(sym.name for sym in product.free_symbols if sym in param_set)

    if not equations:
        raise DegenerateSystem(f"no equation in {', '.join(keep_vars)} survives elimination")

    elapsed = time.perf_counter() - start
    logger.info("Elimination produced %d equation(s) in %.3fs", len(equations), elapsed)
    return ImplicitPolynomial(
        equations=tuple(equations),
        keep=(keep_vars[0], keep_vars[1]),
        parameters=tuple(sorted(used_params)),
        elapsed=elapsed,
    )


_TIMED_OUT = object()
_DIED = object()

_FORWARDED = {
    "DegenerateSystem": DegenerateSystem,
    "PolynomialSyntaxError": PolynomialSyntaxError,
}


def _worker(sender, polynomials, eliminate_vars, keep_vars) -> None:
    try:
        result = eliminate_polynomials(polynomials, eliminate_vars, keep_vars)
    except Exception as exc:
        sender.send((False, type(exc).__name__, str(exc)))
    else:
        sender.send((True, result))
    finally:
        sender.close()


def _receive(receiver, timeout: float):
    try:
        if not receiver.poll(timeout):
            return _TIMED_OUT
        return receiver.recv()
    except EOFError:
        return _DIED
    finally:
        receiver.close()


def _stop(process) -> None:
    if process.is_alive():
        process.terminate()
        process.join(1.0)
        if process.is_alive():
            process.kill()
    process.join()


def _default_start_method() -> str:
    if "forkserver" in multiprocessing.get_all_start_methods():
        return "forkserver"
    return "spawn"


class SympyEliminationEngine:
    """Runs :func:`eliminate_polynomials` in a child process per request.

    A request that outlives ``timeout`` has its process terminated, so an
    abandoned Groebner computation never delays the next request.
    """

    def __init__(self, timeout: float = 10.0, start_method: Optional[str] = None):
        self.timeout = timeout
        self._context = multiprocessing.get_context(start_method or _default_start_method())
        if self._context.get_start_method() == "forkserver":
            self._context.set_forkserver_preload([__name__])
        self._running: Set[Any] = set()

    async def eliminate(
        self,
        polynomials: Sequence[str],
        eliminate_vars: Sequence[str],
        keep_vars: Tuple[str, str] = ("x", "y"),
    ) -> ImplicitPolynomial:
        receiver, sender = self._context.Pipe(duplex=False)
        process = self._context.Process(
            target=_worker,
            args=(sender, list(polynomials), list(eliminate_vars), tuple(keep_vars)),
            name="geolocus-elim",
            daemon=True,
        )
        process.start()
        sender.close()
        self._running.add(process)
        logger.debug("Started elimination process pid=%s", process.pid)
        loop = asyncio.get_running_loop()
        try:
            reply = await loop.run_in_executor(None, _receive, receiver, self.timeout)
        finally:
            self._running.discard(process)
            _stop(process)

        if reply is _TIMED_OUT:
            logger.warning("Elimination process pid=%s killed after %.1fs", process.pid, self.timeout)
            raise ComputationTimeout(f"elimination exceeded {self.timeout:.1f}s")
        if reply is _DIED:
            raise ComputationError(f"elimination process exited with code {process.exitcode}")
        if reply[0]:
            return reply[1]
        _, kind, message = reply
        exc_type = _FORWARDED.get(kind)
        if exc_type is None:
            raise ComputationError(f"{kind}: {message}")
        raise exc_type(message)

    def close(self) -> None:
        """Terminate every elimination process still running."""

        for process in list(self._running):
            _stop(process)
        self._running.clear()


__all__ = ["SympyEliminationEngine", "eliminate_polynomials"]
