"""aiohttp application exposing an elimination engine over HTTP."""

from __future__ import annotations

import logging
from typing import Any, Dict

from aiohttp import web

from ..errors import ComputationError, ComputationTimeout, DegenerateSystem, PolynomialSyntaxError
from .base import EliminationClient

logger = logging.getLogger(__name__)

ENGINE_KEY = web.AppKey("engine", EliminationClient)


def _error(kind: str, message: str, status: int) -> web.Response:
    return web.json_response({"error": {"kind": kind, "message": message}}, status=status)


def _string_list(payload: Dict[str, Any], key: str) -> list:
    value = payload.get(key)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"'{key}' must be a list of strings")
    return value


async def handle_eliminate(request: web.Request) -> web.Response:
    try:
        payload = await request.json()
    except ValueError:
        return _error("invalid", "request body is not JSON", 400)
    if not isinstance(payload, dict):
        return _error("invalid", "request body must be a JSON object", 400)

    try:
        polynomials = _string_list(payload, "polynomials")
        eliminate = _string_list(payload, "eliminate")
        keep = _string_list(payload, "keep") if "keep" in payload else ["x", "y"]
        if len(keep) != 2:
            raise ValueError("'keep' must name exactly two variables")
    except ValueError as exc:
        return _error("invalid", str(exc), 400)

    engine = request.app[ENGINE_KEY]
    try:
        result = await engine.eliminate(polynomials, eliminate, (keep[0], keep[1]))
    except PolynomialSyntaxError as exc:
        return _error("invalid", str(exc), 400)
    except ComputationTimeout as exc:
        logger.warning("Elimination timed out: %s", exc)
        return _error("timeout", str(exc), 408)
    except DegenerateSystem as exc:
        return _error("degenerate", str(exc), 422)
    except ComputationError as exc:
        return _error("invalid", str(exc), 400)

    logger.info("Served elimination of %d polynomial(s) in %.3fs", len(polynomials), result.elapsed)
    return web.json_response(
        {
            "polynomials": list(result.equations),
            "parameters": list(result.parameters),
            "elapsed": result.elapsed,
        }
    )


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


def create_app(engine: EliminationClient) -> web.Application:
    app = web.Application()
    app[ENGINE_KEY] = engine
    app.add_routes(
        [
            web.post("/eliminate", handle_eliminate),
            web.get("/health", handle_health),
        ]
    )
    return app


def run_service(engine: EliminationClient, host: str = "127.0.0.1", port: int = 8765) -> None:
    logger.info("Starting elimination service on http://%s:%d", host, port)
    web.run_app(create_app(engine), host=host, port=port, print=None)


__all__ = ["ENGINE_KEY", "create_app", "handle_eliminate", "handle_health", "run_service"]
