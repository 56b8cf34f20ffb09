from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

import aiohttp
import pytest
from aiohttp import test_utils, web

from ticketgate._transport import HttpTransport
from ticketgate.exceptions import AuthError, RemoteError


async def _echo(request: web.Request) -> web.Response:
    return web.json_response(
        {
            "authorization": request.headers.get("authorization"),
            "query": dict(request.query),
        }
    )


async def _status(request: web.Request) -> web.Response:
    return web.Response(status=int(request.match_info["code"]), text="nope")


async def _not_json(request: web.Request) -> web.Response:
    return web.Response(text="<html>maintenance</html>")


async def _slow(request: web.Request) -> web.Response:
    await asyncio.sleep(1)
    return web.json_response({})


async def _token(request: web.Request) -> web.Response:
    form = await request.post()
    if form.get("refresh_token") != "good":
        return web.json_response({"error": "invalid_grant"}, status=400)
    return web.json_response({"access_token": "at", "grant_type": form.get("grant_type")})


@contextlib.asynccontextmanager
async def _server(timeout: float = 5) -> AsyncIterator[tuple[HttpTransport, test_utils.TestServer]]:
    app = web.Application()
    app.router.add_get("/echo", _echo)
    app.router.add_get("/status/{code}", _status)
    app.router.add_get("/html", _not_json)
    app.router.add_get("/slow", _slow)
    app.router.add_post("/tokens", _token)
    async with test_utils.TestServer(app) as server, aiohttp.ClientSession() as session:
        yield HttpTransport(session, timeout=timeout), server


@pytest.mark.asyncio
async def test_get_json_sends_bearer_and_params() -> None:
    async with _server() as (transport, server):
        body = await transport.get_json(str(server.make_url("/echo")), bearer="at-1", params={"from": 0, "size": 2})

    assert body == {"authorization": "Bearer at-1", "query": {"from": "0", "size": "2"}}


@pytest.mark.asyncio
@pytest.mark.parametrize("code", [401, 403])
async def test_rejected_token_raises_auth_error(code: int) -> None:
    async with _server() as (transport, server):
        with pytest.raises(AuthError):
            await transport.get_json(str(server.make_url(f"/status/{code}")), bearer="at-1")


@pytest.mark.asyncio
async def test_server_error_raises_remote_error() -> None:
    async with _server() as (transport, server):
        with pytest.raises(RemoteError) as exc_info:
            await transport.get_json(str(server.make_url("/status/503")), bearer="at-1")

    assert exc_info.value.status_code == 503
    assert exc_info.value.endpoint.endswith("/status/503")


@pytest.mark.asyncio
async def test_non_json_body_raises_remote_error() -> None:
    async with _server() as (transport, server):
        with pytest.raises(RemoteError, match="Invalid JSON"):
            await transport.get_json(str(server.make_url("/html")), bearer="at-1")


@pytest.mark.asyncio
async def test_timeout_raises_remote_error() -> None:
    async with _server(timeout=0.05) as (transport, server):
        with pytest.raises(RemoteError, match="timed out"):
            await transport.get_json(str(server.make_url("/slow")), bearer="at-1")


@pytest.mark.asyncio
async def test_post_form_hands_back_status() -> None:
    async with _server() as (transport, server):
        url = str(server.make_url("/tokens"))
        ok = await transport.post_form(url, {"grant_type": "refresh_token", "refresh_token": "good"})
        refused = await transport.post_form(url, {"grant_type": "refresh_token", "refresh_token": "bad"})

    assert ok == (200, {"access_token": "at", "grant_type": "refresh_token"})
    assert refused == (400, {"error": "invalid_grant"})
