"""Tests for FlareSolverrClient."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from resolvarr.domain.entities.challenge import SolveStatus
from resolvarr.domain.exceptions import NetworkError, RequestTimeout
from resolvarr.infrastructure.challenge.solver_client import FlareSolverrClient

_SOLVER = "http://solver.test:8191"
_ENDPOINT = f"{_SOLVER}/v1"
_PAGE = "https://hubcloud.example/drive/abc"


def _ok(body: str = "<html><body>real page</body></html>", **solution) -> dict:
    data = {
        "url": _PAGE,
        "status": 200,
        "response": body,
        "cookies": [{"name": "cf_clearance", "value": "tok"}, {"name": "sid", "value": "1"}],
        "userAgent": "SolverAgent/1.0",
    }
    data.update(solution)
    return {"status": "ok", "message": "", "solution": data}


class TestSolve:
    @respx.mock
    async def test_solved(self) -> None:
        route = respx.post(_ENDPOINT).respond(200, json=_ok())
        async with httpx.AsyncClient() as client:
            solver = FlareSolverrClient(http_client=client, base_url=_SOLVER + "/")
            result = await solver.solve(_PAGE, session_id="r_hubcloud_example")

        assert result.status is SolveStatus.SOLVED
        assert result.cookie_header == "cf_clearance=tok; sid=1"
        assert result.user_agent == "SolverAgent/1.0"
        assert result.url == _PAGE
        payload = json.loads(route.calls.last.request.content)
        assert payload["cmd"] == "request.get"
        assert payload["session"] == "r_hubcloud_example"
        assert payload["maxTimeout"] == 45000

    @respx.mock
    async def test_proxy_and_user_agent_sent(self) -> None:
        route = respx.post(_ENDPOINT).respond(200, json=_ok())
        async with httpx.AsyncClient() as client:
            solver = FlareSolverrClient(http_client=client, base_url=_SOLVER)
            await solver.solve(_PAGE, proxy_url="http://proxy:8080", user_agent="UA/1")

        payload = json.loads(route.calls.last.request.content)
        assert payload["proxy"] == {"url": "http://proxy:8080"}
        assert payload["userAgent"] == "UA/1"
        assert "session" not in payload

    @respx.mock
    async def test_still_challenged(self) -> None:
        respx.post(_ENDPOINT).respond(200, json=_ok("<title>Just a moment...</title>"))
        async with httpx.AsyncClient() as client:
            result = await FlareSolverrClient(http_client=client, base_url=_SOLVER).solve(_PAGE)
        assert result.status is SolveStatus.BLOCKED

    @respx.mock
    async def test_empty_body(self) -> None:
        respx.post(_ENDPOINT).respond(200, json=_ok(""))
        async with httpx.AsyncClient() as client:
            result = await FlareSolverrClient(http_client=client, base_url=_SOLVER).solve(_PAGE)
        assert result.status is SolveStatus.EMPTY

    @respx.mock
    async def test_error_status(self) -> None:
        respx.post(_ENDPOINT).respond(
            500, json={"status": "error", "message": "Error solving the challenge."}
        )
        async with httpx.AsyncClient() as client:
            result = await FlareSolverrClient(http_client=client, base_url=_SOLVER).solve(_PAGE)
        assert result.status is SolveStatus.BLOCKED

    @respx.mock
    async def test_server_error_without_body(self) -> None:
        respx.post(_ENDPOINT).respond(502, text="bad gateway")
        async with httpx.AsyncClient() as client:
            with pytest.raises(NetworkError):
                await FlareSolverrClient(http_client=client, base_url=_SOLVER).solve(_PAGE)

    @respx.mock
    async def test_timeout(self) -> None:
        respx.post(_ENDPOINT).mock(side_effect=httpx.ReadTimeout)
        async with httpx.AsyncClient() as client:
            with pytest.raises(RequestTimeout):
                await FlareSolverrClient(http_client=client, base_url=_SOLVER).solve(_PAGE)

    @respx.mock
    async def test_unreachable(self) -> None:
        respx.post(_ENDPOINT).mock(side_effect=httpx.ConnectError)
        async with httpx.AsyncClient() as client:
            with pytest.raises(NetworkError):
                await FlareSolverrClient(http_client=client, base_url=_SOLVER).solve(_PAGE)


class TestSessions:
    @respx.mock
    async def test_list(self) -> None:
        respx.post(_ENDPOINT).respond(200, json={"status": "ok", "sessions": ["a", "b"]})
        async with httpx.AsyncClient() as client:
            sessions = await FlareSolverrClient(
                http_client=client, base_url=_SOLVER
            ).list_sessions()
        assert sessions == ["a", "b"]

    @respx.mock
    async def test_create(self) -> None:
        route = respx.post(_ENDPOINT).respond(200, json={"status": "ok"})
        async with httpx.AsyncClient() as client:
            created = await FlareSolverrClient(
                http_client=client, base_url=_SOLVER
            ).create_session("s1", proxy_url="http://proxy:8080")

        assert created is True
        payload = json.loads(route.calls.last.request.content)
        assert payload == {
            "cmd": "sessions.create",
            "session": "s1",
            "proxy": {"url": "http://proxy:8080"},
        }

    @respx.mock
    async def test_create_already_exists(self) -> None:
        respx.post(_ENDPOINT).respond(
            500, json={"status": "error", "message": "Session already exists."}
        )
        async with httpx.AsyncClient() as client:
            assert await FlareSolverrClient(
                http_client=client, base_url=_SOLVER
            ).create_session("s1") is True

    @respx.mock
    async def test_create_failed(self) -> None:
        respx.post(_ENDPOINT).respond(500, json={"status": "error", "message": "boom"})
        async with httpx.AsyncClient() as client:
            assert await FlareSolverrClient(
                http_client=client, base_url=_SOLVER
            ).create_session("s1") is False
