"""Retry and redirect wrapper around ``HttpTransport``."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any
from urllib.parse import urljoin

import structlog

from resolvarr.domain.exceptions import NetworkError, RequestTimeout, TransportError
from resolvarr.infrastructure.config.schema import HttpConfig
from resolvarr.infrastructure.http.transport import (
    FetchResult,
    HttpTransport,
    RequestOptions,
)

log = structlog.get_logger(__name__)

_RETRYABLE_ERRORS = (NetworkError, RequestTimeout)


class RetryingFetcher:
    """Performs one logical request: bounded retries + redirect following.

    **Retry:** on ``NetworkError``/``RequestTimeout`` the whole request is
    re-issued after a fixed delay, ``max_retries`` times at most; the last
    error is raised when every attempt failed.  Size-exceeded and
    cancellation errors are never retried.

    **Redirects:** 301/302/307/308 with a ``Location`` header are followed
    (unless ``follow_redirects=False``) by re-issuing the request against
    the absolute target; ``FetchResult.url`` is the last target.
    """

    def __init__(
        self,
        transport: HttpTransport,
        *,
        defaults: RequestOptions | None = None,
        max_retries: int = 1,
        retry_delay: float = 0.8,
        max_redirects: int = 10,
    ) -> None:
        self._transport = transport
        self._defaults = defaults or RequestOptions()
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._max_redirects = max_redirects

    @classmethod
    def from_config(cls, transport: HttpTransport, config: HttpConfig) -> RetryingFetcher:
        return cls(
            transport,
            defaults=RequestOptions(
                timeout=config.timeout_seconds,
                max_bytes=config.max_response_bytes,
            ),
            max_retries=config.max_retries,
            retry_delay=config.retry_delay_seconds,
            max_redirects=config.max_redirects,
        )

    @property
    def defaults(self) -> RequestOptions:
        return self._defaults

    async def fetch(
        self,
        url: str,
        options: RequestOptions | None = None,
        **overrides: Any,
    ) -> FetchResult:
        """Fetch *url*; keyword *overrides* replace fields of the defaults."""
        opts = options or self._defaults
        if overrides:
            opts = replace(opts, **overrides)

        current = url
        for hop in range(self._max_redirects + 1):
            result = await self._send_with_retry(current, opts)
            target = result.redirect_target
            if not opts.follow_redirects or target is None:
                return result
            current = urljoin(current, target)
            log.debug("http_redirect", url=url, target=current, hop=hop + 1)

        raise NetworkError(f"more than {self._max_redirects} redirects", url=url)

    async def _send_with_retry(self, url: str, opts: RequestOptions) -> FetchResult:
        last_error: TransportError | None = None

        for attempt in range(1 + self._max_retries):
            try:
                return await self._transport.send(url, opts)
            except _RETRYABLE_ERRORS as e:
                last_error = e
                if attempt == self._max_retries:
                    break
                log.info(
                    "http_retry",
                    url=url,
                    attempt=attempt + 1,
                    delay=self._retry_delay,
                    error=str(e),
                )
                await asyncio.sleep(self._retry_delay)

        assert last_error is not None
        log.warning("http_request_failed", url=url, attempts=1 + self._max_retries)
        raise last_error
