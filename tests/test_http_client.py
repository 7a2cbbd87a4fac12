import asyncio

import aiohttp
import pytest
from aiohttp import web

from geolocus.elimination import HttpEliminationClient, create_app
from geolocus.elimination.http_client import decode_reply
from geolocus.errors import (
    ComputationError,
    ComputationTimeout,
    DegenerateSystem,
    PolynomialSyntaxError,
    Unreachable,
)
from geolocus.model import ImplicitPolynomial


class ScriptedEngine:
    def __init__(self):
        self.requests = []

    async def eliminate(self, polynomials, eliminate_vars, keep_vars=("x", "y")):
        self.requests.append((list(polynomials), list(eliminate_vars), keep_vars))
        if polynomials[0] == "degenerate":
            raise DegenerateSystem("nothing left in x, y")
        if polynomials[0] == "slow":
            raise ComputationTimeout("too slow")
        if polynomials[0] == "bad":
            raise PolynomialSyntaxError("[col 1] unexpected character '!'")
        return ImplicitPolynomial(
            equations=("x^2 + y^2 - p1_x^2",),
            keep=keep_vars,
            parameters=("p1_x",),
            elapsed=0.25,
        )


async def _serve(app):
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    host, port = runner.addresses[0][:2]
    return runner, f"http://{host}:{port}"


def _with_service(app, scenario):
    async def main():
        runner, base = await _serve(app)
        try:
            return await scenario(base)
        finally:
            await runner.cleanup()

    return asyncio.run(main())


def test_successful_elimination_round_trip():
    engine = ScriptedEngine()

    async def scenario(base):
        client = HttpEliminationClient(base + "/eliminate", timeout=5.0)
        return await client.eliminate(["x - u1", "u1^2 + y^2 - p1_x^2"], ["u1"])

    result = _with_service(create_app(engine), scenario)

    assert result.equations == ("x^2 + y^2 - p1_x^2",)
    assert result.parameters == ("p1_x",)
    assert result.keep == ("x", "y")
    assert result.elapsed == pytest.approx(0.25)
    assert engine.requests == [(["x - u1", "u1^2 + y^2 - p1_x^2"], ["u1"], ("x", "y"))]


@pytest.mark.parametrize(
    "first, error",
    [
        ("degenerate", DegenerateSystem),
        ("slow", ComputationTimeout),
        ("bad", ComputationError),
    ],
)
def test_service_errors_map_to_typed_exceptions(first, error):
    async def scenario(base):
        client = HttpEliminationClient(base + "/eliminate", timeout=5.0)
        with pytest.raises(error):
            await client.eliminate([first], [])

    _with_service(create_app(ScriptedEngine()), scenario)


def test_server_failure_is_unreachable():
    async def broken(request):
        return web.Response(status=500, text="boom")

    app = web.Application()
    app.router.add_post("/eliminate", broken)

    async def scenario(base):
        client = HttpEliminationClient(base + "/eliminate", timeout=5.0)
        with pytest.raises(Unreachable, match="HTTP 500"):
            await client.eliminate(["x"], [])

    _with_service(app, scenario)


def test_non_json_reply_is_unreachable():
    async def chatty(request):
        return web.Response(text="<html>not json</html>")

    app = web.Application()
    app.router.add_post("/eliminate", chatty)

    async def scenario(base):
        client = HttpEliminationClient(base + "/eliminate", timeout=5.0)
        with pytest.raises(Unreachable, match="invalid JSON"):
            await client.eliminate(["x"], [])

    _with_service(app, scenario)


def test_slow_service_times_out():
    async def sleepy(request):
        await asyncio.sleep(0.5)
        return web.json_response({"polynomials": ["x"]})

    app = web.Application()
    app.router.add_post("/eliminate", sleepy)

    async def scenario(base):
        client = HttpEliminationClient(base + "/eliminate", timeout=0.05)
        with pytest.raises(ComputationTimeout):
            await client.eliminate(["x"], [])

    _with_service(app, scenario)


def test_closed_port_is_unreachable():
    async def main():
        runner, base = await _serve(web.Application())
        await runner.cleanup()
        client = HttpEliminationClient(base + "/eliminate", timeout=2.0)
        with pytest.raises(Unreachable, match="cannot reach"):
            await client.eliminate(["x"], [])

    asyncio.run(main())


def test_service_rejects_malformed_requests():
    async def scenario(base):
        async with aiohttp.ClientSession() as session:
            async with session.post(base + "/eliminate", data="{not json") as resp:
                first = (resp.status, await resp.json())
            async with session.post(base + "/eliminate", json={"polynomials": "x"}) as resp:
                second = (resp.status, await resp.json())
            async with session.post(
                base + "/eliminate", json={"polynomials": ["x"], "eliminate": [], "keep": ["x"]}
            ) as resp:
                third = (resp.status, await resp.json())
            async with session.get(base + "/health") as resp:
                health = (resp.status, await resp.json())
        return first, second, third, health

    first, second, third, health = _with_service(create_app(ScriptedEngine()), scenario)

    assert first[0] == 400 and first[1]["error"]["kind"] == "invalid"
    assert second[0] == 400 and "polynomials" in second[1]["error"]["message"]
    assert third[0] == 400 and "exactly two" in third[1]["error"]["message"]
    assert health == (200, {"status": "ok"})


@pytest.mark.parametrize(
    "data",
    [
        ["x"],
        {"polynomials": "x"},
        {"polynomials": ["x"], "elapsed": "soon"},
        {"error": "boom"},
        {"error": {"kind": "exploded", "message": "?"}},
    ],
)
def test_malformed_replies_are_unreachable(data):
    with pytest.raises(Unreachable):
        decode_reply(data, ("x", "y"))


def test_empty_polynomial_list_is_degenerate():
    with pytest.raises(DegenerateSystem):
        decode_reply({"polynomials": []}, ("x", "y"))


@pytest.mark.parametrize(
    "data, message",
    [
        ({"polynomials": ["x^2 + y^2 - 1 +"]}, "malformed equation"),
        ({"polynomials": ["x^2 + zz"], "parameters": []}, "undeclared symbol"),
        ({"polynomials": ["x - p1_x", "y + p2_y"], "parameters": ["p1_x"]}, "p2_y"),
    ],
)
def test_replies_with_unusable_equations_are_unreachable(data, message):
    with pytest.raises(Unreachable, match=message):
        decode_reply(data, ("x", "y"))


def test_declared_parameters_may_appear_in_equations():
    result = decode_reply({"polynomials": ["x^2 + y^2 - p1_x^2"], "parameters": ["p1_x"]}, ("x", "y"))

    assert result.equations == ("x^2 + y^2 - p1_x^2",)
    assert result.parameters == ("p1_x",)


def test_garbled_service_reply_surfaces_as_unreachable():
    async def garbled(request):
        return web.json_response({"polynomials": ["x^^2"], "parameters": []})

    app = web.Application()
    app.router.add_post("/eliminate", garbled)

    async def scenario(base):
        client = HttpEliminationClient(base + "/eliminate", timeout=5.0)
        with pytest.raises(Unreachable, match="malformed equation"):
            await client.eliminate(["x - u1", "y - u1"], ["u1"])

    _with_service(app, scenario)
