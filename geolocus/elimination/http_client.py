"""aiohttp client for a remote elimination service."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence, Tuple

import aiohttp

from ..errors import (
    ComputationError,
    ComputationTimeout,
    DegenerateSystem,
    PolynomialSyntaxError,
    Unreachable,
)
from ..model import ImplicitPolynomial
from ..polynomials import parse_polynomial

logger = logging.getLogger(__name__)

_ERROR_KINDS = {
    "timeout": ComputationTimeout,
    "degenerate": DegenerateSystem,
    "invalid": ComputationError,
}


def decode_reply(data: Any, keep_vars: Tuple[str, str]) -> ImplicitPolynomial:
    """Turn a JSON reply into a result or raise the matching error."""

    if not isinstance(data, dict):
        raise Unreachable(f"malformed reply: expected an object, got {type(data).__name__}")
    error = data.get("error")
    if error is not None:
        if not isinstance(error, dict):
            raise Unreachable(f"malformed error reply: {error!r}")
        exc_type = _ERROR_KINDS.get(error.get("kind"))
        if exc_type is None:
            raise Unreachable(f"unknown error kind {error.get('kind')!r}")
        raise exc_type(str(error.get("message", "")))

    polynomials = data.get("polynomials")
    if not isinstance(polynomials, list) or not all(isinstance(p, str) for p in polynomials):
        raise Unreachable(f"malformed reply: polynomials={polynomials!r}")
    if not polynomials:
        raise DegenerateSystem("service returned no polynomials")
    try:
        elapsed = float(data.get("elapsed", 0.0))
    except (TypeError, ValueError):
        raise Unreachable(f"malformed reply: elapsed={data.get('elapsed')!r}") from None
    parameters = data.get("parameters", [])
    if not isinstance(parameters, list):
        raise Unreachable(f"malformed reply: parameters={parameters!r}")
    parameters = [str(p) for p in parameters]
    allowed = set(keep_vars) | set(parameters)
    for text in polynomials:
        try:
            expr = parse_polynomial(text)
        except PolynomialSyntaxError as exc:
            raise Unreachable(f"malformed equation {text!r}: {exc}") from exc
        foreign = sorted(sym.name for sym in expr.free_symbols if sym.name not in allowed)
        if foreign:
            raise Unreachable(f"equation {text!r} uses undeclared symbol(s) {', '.join(foreign)}")
    return ImplicitPolynomial(
        equations=tuple(polynomials),
        keep=keep_vars,
        parameters=tuple(parameters),
        elapsed=elapsed,
    )


class HttpEliminationClient:
    """POSTs elimination requests as JSON to ``url``.

    A fresh ``aiohttp.ClientSession`` is opened per request unless one is
    supplied, so the client can be driven from successive ``asyncio.run``
    calls.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._session = session
        logger.info("HttpEliminationClient using %s", self.url)

    async def _post(self, session: aiohttp.ClientSession, payload: Dict[str, Any]) -> Any:
        client_timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with session.post(self.url, json=payload, timeout=client_timeout) as resp:
            logger.debug("Elimination service answered status=%d", resp.status)
            if resp.status >= 500:
                raise Unreachable(f"elimination service failed with HTTP {resp.status}")
            try:
                return await resp.json(content_type=None)
            except ValueError as exc:
                raise Unreachable(f"elimination service sent invalid JSON: {exc}") from exc

    async def eliminate(
        self,
        polynomials: Sequence[str],
        eliminate_vars: Sequence[str],
        keep_vars: Tuple[str, str] = ("x", "y"),
    ) -> ImplicitPolynomial:
        payload = {
            "polynomials": list(polynomials),
            "eliminate": list(eliminate_vars),
            "keep": list(keep_vars),
        }
        try:
            if self._session is not None:
                data = await self._post(self._session, payload)
            else:
                async with aiohttp.ClientSession() as session:
                    data = await self._post(session, payload)
        except asyncio.TimeoutError as exc:
            raise ComputationTimeout(f"no reply from {self.url} within {self.timeout:.1f}s") from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise Unreachable(f"cannot reach {self.url}: {exc}") from exc
        return decode_reply(data, (keep_vars[0], keep_vars[1]))


__all__ = ["HttpEliminationClient", "decode_reply"]
