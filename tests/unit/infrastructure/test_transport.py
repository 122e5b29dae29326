"""Tests for HttpTransport (single request, byte cap, cancellation)."""

from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from resolvarr.domain.exceptions import (
    NetworkError,
    RequestCancelled,
    RequestTimeout,
    ResponseTooLarge,
)
from resolvarr.infrastructure.config.schema import DEFAULT_USER_AGENT, HUB_USER_AGENT
from resolvarr.infrastructure.http.policy import HostPolicy
from resolvarr.infrastructure.http.transport import HttpTransport, RequestOptions

_URL = "https://mirror.example/page"


class _EndlessStream(httpx.AsyncByteStream):
    """Response body that never ends; counts what it handed out."""

    def __init__(self, chunk_size: int) -> None:
        self._chunk = b"x" * chunk_size
        self.chunks_sent = 0
        self.closed = False

    async def __aiter__(self):
        while True:
            self.chunks_sent += 1
            yield self._chunk

    async def aclose(self) -> None:
        self.closed = True


def _transport(client: httpx.AsyncClient, **kwargs) -> HttpTransport:
    return HttpTransport(client, policy=HostPolicy(), **kwargs)


class TestByteCap:
    async def test_endless_body_is_aborted_at_cap(self) -> None:
        stream = _EndlessStream(chunk_size=8 * 1024)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=stream)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ResponseTooLarge) as exc_info:
                await _transport(client).send(_URL, RequestOptions(max_bytes=64 * 1024))

        assert exc_info.value.limit == 64 * 1024
        # 8 chunks fit exactly; the 9th crosses the cap and nothing more is read.
        assert stream.chunks_sent == 9
        assert stream.closed is True

    @respx.mock
    async def test_declared_length_over_cap_rejected_early(self) -> None:
        respx.get(_URL).respond(200, content=b"x" * 500)
        async with httpx.AsyncClient() as client:
            with pytest.raises(ResponseTooLarge):
                await _transport(client).send(_URL, RequestOptions(max_bytes=100))

    @respx.mock
    async def test_body_within_cap_is_returned(self) -> None:
        respx.get(_URL).respond(200, text="small body")
        async with httpx.AsyncClient() as client:
            result = await _transport(client).send(_URL, RequestOptions(max_bytes=100))
        assert result.body == "small body"
        assert result.status_code == 200


class TestResponse:
    @respx.mock
    async def test_html_is_parsed(self) -> None:
        respx.get(_URL).respond(200, html="<html><a id='download' href='/x'>x</a></html>")
        async with httpx.AsyncClient() as client:
            result = await _transport(client).send(_URL, RequestOptions())
        assert result.document is not None
        assert result.document.select_one("a#download")["href"] == "/x"

    @respx.mock
    async def test_parse_can_be_disabled(self) -> None:
        respx.get(_URL).respond(200, html="<html></html>")
        async with httpx.AsyncClient() as client:
            result = await _transport(client).send(_URL, RequestOptions(parse_html=False))
        assert result.document is None

    @respx.mock
    async def test_redirect_is_not_followed(self) -> None:
        respx.get(_URL).respond(302, headers={"Location": "/elsewhere"})
        async with httpx.AsyncClient() as client:
            result = await _transport(client).send(_URL, RequestOptions())
        assert result.status_code == 302
        assert result.redirect_target == "/elsewhere"

    @respx.mock
    async def test_invalid_utf8_is_replaced(self) -> None:
        respx.get(_URL).respond(200, content=b"ok \xff\xfe")
        async with httpx.AsyncClient() as client:
            result = await _transport(client).send(_URL, RequestOptions(parse_html=False))
        assert result.body.startswith("ok ")


class TestHeaders:
    @respx.mock
    async def test_default_user_agent(self) -> None:
        route = respx.get(_URL).respond(200, text="ok")
        async with httpx.AsyncClient() as client:
            await _transport(client).send(_URL, RequestOptions())
        assert route.calls.last.request.headers["user-agent"] == DEFAULT_USER_AGENT

    @respx.mock
    async def test_hub_hosts_get_hub_user_agent(self) -> None:
        url = "https://hubcloud.example/drive/1"
        route = respx.get(url).respond(200, text="ok")
        async with httpx.AsyncClient() as client:
            await _transport(client).send(url, RequestOptions())
        assert route.calls.last.request.headers["user-agent"] == HUB_USER_AGENT

    @respx.mock
    async def test_caller_headers_win(self) -> None:
        route = respx.get(_URL).respond(200, text="ok")
        async with httpx.AsyncClient() as client:
            await _transport(client).send(
                _URL,
                RequestOptions(headers={"User-Agent": "Custom/1.0", "Referer": "https://r.example"}),
            )
        request = route.calls.last.request
        assert request.headers["user-agent"] == "Custom/1.0"
        assert request.headers["referer"] == "https://r.example"


class TestErrorMapping:
    @respx.mock
    async def test_timeout(self) -> None:
        respx.get(_URL).mock(side_effect=httpx.ReadTimeout)
        async with httpx.AsyncClient() as client:
            with pytest.raises(RequestTimeout) as exc_info:
                await _transport(client).send(_URL, RequestOptions())
        assert exc_info.value.url == _URL

    @respx.mock
    async def test_connect_error(self) -> None:
        respx.get(_URL).mock(side_effect=httpx.ConnectError)
        async with httpx.AsyncClient() as client:
            with pytest.raises(NetworkError):
                await _transport(client).send(_URL, RequestOptions())


class TestCancellation:
    @respx.mock
    async def test_already_cancelled_issues_no_request(self) -> None:
        route = respx.get(_URL).respond(200, text="ok")
        cancel = asyncio.Event()
        cancel.set()
        async with httpx.AsyncClient() as client:
            with pytest.raises(RequestCancelled):
                await _transport(client).send(_URL, RequestOptions(cancel=cancel))
        assert route.called is False

    async def test_cancel_in_flight_tears_down_request(self) -> None:
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200, text="late")

        cancel = asyncio.Event()

        async def trigger() -> None:
            await started.wait()
            cancel.set()

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            trigger_task = asyncio.create_task(trigger())
            with pytest.raises(RequestCancelled):
                await asyncio.wait_for(
                    _transport(client).send(_URL, RequestOptions(cancel=cancel)),
                    timeout=2,
                )
            await trigger_task

    @respx.mock
    async def test_unset_signal_does_not_interfere(self) -> None:
        respx.get(_URL).respond(200, text="ok")
        async with httpx.AsyncClient() as client:
            result = await _transport(client).send(
                _URL, RequestOptions(cancel=asyncio.Event())
            )
        assert result.body == "ok"


class TestProxyRouting:
    @respx.mock
    async def test_use_proxy_selects_proxy_client(self) -> None:
        respx.get(_URL).respond(200, text="ok")
        async with httpx.AsyncClient() as direct, httpx.AsyncClient() as proxied:
            sent: list[str] = []
            proxied.event_hooks["request"] = [lambda r: _record(sent, "proxy")]
            direct.event_hooks["request"] = [lambda r: _record(sent, "direct")]
            transport = HttpTransport(direct, proxy_client=proxied, policy=HostPolicy())
            await transport.send(_URL, RequestOptions(use_proxy=True))
            await transport.send(_URL, RequestOptions(use_proxy=False))
        assert sent == ["proxy", "direct"]

    @respx.mock
    async def test_use_proxy_without_proxy_client_falls_back(self) -> None:
        respx.get(_URL).respond(200, text="ok")
        async with httpx.AsyncClient() as client:
            result = await _transport(client).send(_URL, RequestOptions(use_proxy=True))
        assert result.status_code == 200


async def _record(sent: list[str], label: str) -> None:
    sent.append(label)
