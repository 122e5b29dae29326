"""Single-attempt HTTP execution with a hard byte cap and cancellation.

``HttpTransport.send`` performs exactly one request (no redirects, no
retries).  The body is streamed and accumulated chunk by chunk; once the
configured cap is crossed the connection is dropped and
``ResponseTooLarge`` is raised, so a media file fetched by mistake can
never be buffered whole.
"""

from __future__ import annotations

import asyncio
import codecs
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass, field

import httpx
import structlog
from bs4 import BeautifulSoup

from resolvarr.domain.exceptions import (
    NetworkError,
    RequestCancelled,
    RequestTimeout,
    ResponseTooLarge,
)
from resolvarr.infrastructure.common.html_selectors import looks_like_html, parse_html
from resolvarr.infrastructure.http.policy import HostPolicy

log = structlog.get_logger(__name__)

_REDIRECT_STATUS = frozenset({301, 302, 307, 308})


@dataclass(frozen=True)
class RequestOptions:
    """Per-call request configuration."""

    method: str = "GET"
    headers: Mapping[str, str] | None = None
    content: bytes | None = None
    timeout: float = 8.0
    max_bytes: int = 2 * 1024 * 1024
    follow_redirects: bool = True
    use_proxy: bool = False
    parse_html: bool = True
    cancel: asyncio.Event | None = field(default=None, compare=False)


@dataclass(frozen=True)
class FetchResult:
    """One completed logical request."""

    status_code: int
    headers: httpx.Headers
    body: str
    url: str
    document: BeautifulSoup | None = field(default=None, compare=False, repr=False)

    @property
    def redirect_target(self) -> str | None:
        """``Location`` of a followable redirect, else ``None``."""
        if self.status_code not in _REDIRECT_STATUS:
            return None
        return self.headers.get("location") or None


def _decode(raw: bytes, charset: str | None) -> str:
    encoding = "utf-8"
    if charset:
        try:
            encoding = codecs.lookup(charset).name
        except LookupError:
            pass
    return raw.decode(encoding, errors="replace")


class HttpTransport:
    """Executes one HTTP request through a shared ``httpx.AsyncClient``.

    Routing through the proxy is the caller's decision (``use_proxy``);
    without a configured proxy client the direct client is used.

    Args:
        client: Direct client (injected, not owned).
        proxy_client: Client configured with the upstream proxy.
        policy: Supplies the default User-Agent per host.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        proxy_client: httpx.AsyncClient | None = None,
        policy: HostPolicy | None = None,
    ) -> None:
        self._client = client
        self._proxy_client = proxy_client
        self._policy = policy or HostPolicy()

    async def send(self, url: str, options: RequestOptions) -> FetchResult:
        cancel = options.cancel
        if cancel is not None and cancel.is_set():
            raise RequestCancelled("cancelled before request", url=url)
        if cancel is None:
            return await self._send(url, options)

        request_task = asyncio.ensure_future(self._send(url, options))
        cancel_task = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait(
                {request_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_task.cancel()
            if not request_task.done():
                # Tears down the in-flight connection via the stream context.
                request_task.cancel()
                with suppress(asyncio.CancelledError):
                    await request_task
        if request_task.cancelled():
            log.debug("http_request_cancelled", url=url)
            raise RequestCancelled("cancelled during request", url=url)
        return request_task.result()

    def _client_for(self, options: RequestOptions, url: str) -> httpx.AsyncClient:
        if options.use_proxy:
            if self._proxy_client is not None:
                return self._proxy_client
            log.debug("http_proxy_unavailable", url=url)
        return self._client

    def _headers(self, url: str, options: RequestOptions) -> dict[str, str]:
        headers = {
            "User-Agent": self._policy.user_agent_for(url),
            "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
        }
        if options.headers:
            headers.update(options.headers)
        return headers

    async def _send(self, url: str, options: RequestOptions) -> FetchResult:
        client = self._client_for(options, url)
        try:
            async with client.stream(
                options.method,
                url,
                headers=self._headers(url, options),
                content=options.content,
                timeout=options.timeout,
                follow_redirects=False,
            ) as response:
                raw = await self._read_capped(response, url, options.max_bytes)
                status = response.status_code
                headers = response.headers
                final_url = str(response.url)
                charset = response.charset_encoding
        except httpx.TimeoutException as e:
            raise RequestTimeout(f"timed out after {options.timeout}s", url=url) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(str(e) or type(e).__name__, url=url) from e

        body = _decode(raw, charset)
        document = None
        if options.parse_html and body and looks_like_html(
            body, headers.get("content-type", "")
        ):
            document = parse_html(body)

        log.debug("http_response", url=url, status=status, size_bytes=len(raw))
        return FetchResult(
            status_code=status,
            headers=headers,
            body=body,
            url=final_url,
            document=document,
        )

    async def _read_capped(
        self, response: httpx.Response, url: str, max_bytes: int
    ) -> bytes:
        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > max_bytes:
            log.warning("http_response_too_large", url=url, limit=max_bytes, declared=declared)
            raise ResponseTooLarge(
                f"declared size {declared} exceeds {max_bytes}", url=url, limit=max_bytes
            )

        chunks: list[bytes] = []
        total = 0
        async for chunk in response.aiter_bytes():
            total += len(chunk)
            if total > max_bytes:
                log.warning("http_response_too_large", url=url, limit=max_bytes)
                raise ResponseTooLarge(
                    f"body exceeded {max_bytes} bytes", url=url, limit=max_bytes
                )
            chunks.append(chunk)
        return b"".join(chunks)
