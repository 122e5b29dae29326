"""FlareSolverr v1 API client.

All commands are POSTed to ``<base>/v1`` as JSON::

    {"cmd": "request.get", "url": ..., "maxTimeout": ms, "session": ...}

A response with ``status == "ok"`` carries ``solution.response`` (body),
``solution.cookies`` and ``solution.userAgent``.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from resolvarr.domain.entities.challenge import SolveResult, SolveStatus
from resolvarr.domain.exceptions import NetworkError, RequestTimeout
from resolvarr.infrastructure.challenge.markers import is_challenge_page
from resolvarr.infrastructure.config.schema import SolverConfig

log = structlog.get_logger(__name__)

# Extra headroom on top of the solver's own maxTimeout.
_HTTP_GRACE_SECONDS = 10.0


class FlareSolverrClient:
    """Implements ``ChallengeSolverPort`` over the FlareSolverr HTTP API.

    Args:
        http_client: Shared client (not owned).
        base_url: Solver URL, e.g. ``http://flaresolverr:8191``.
        timeout_seconds: Browser solve budget (``maxTimeout``).
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        base_url: str,
        timeout_seconds: float = 45.0,
    ) -> None:
        self._client = http_client
        self._endpoint = base_url.rstrip("/") + "/v1"
        self._timeout = timeout_seconds

    @classmethod
    def from_config(
        cls, http_client: httpx.AsyncClient, config: SolverConfig
    ) -> FlareSolverrClient:
        return cls(
            http_client=http_client,
            base_url=config.url or "",
            timeout_seconds=config.timeout_seconds,
        )

    async def _command(self, payload: dict[str, Any], *, timeout: float) -> dict[str, Any]:
        try:
            resp = await self._client.post(self._endpoint, json=payload, timeout=timeout)
        except httpx.TimeoutException as e:
            raise RequestTimeout("solver timed out", url=self._endpoint) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"solver unreachable: {e}", url=self._endpoint) from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if resp.status_code >= 500 and not data:
            raise NetworkError(f"solver returned HTTP {resp.status_code}", url=self._endpoint)
        return data

    async def list_sessions(self) -> list[str]:
        data = await self._command({"cmd": "sessions.list"}, timeout=10.0)
        sessions = data.get("sessions") or []
        return [str(s) for s in sessions]

    async def create_session(self, session_id: str, *, proxy_url: str | None = None) -> bool:
        payload: dict[str, Any] = {"cmd": "sessions.create", "session": session_id}
        if proxy_url:
            payload["proxy"] = {"url": proxy_url}
        data = await self._command(payload, timeout=30.0)
        if data.get("status") == "ok":
            return True
        message = str(data.get("message", ""))
        # A concurrent creator already made it: still usable.
        return "already exists" in message.lower()

    async def solve(
        self,
        url: str,
        *,
        session_id: str | None = None,
        proxy_url: str | None = None,
        user_agent: str | None = None,
    ) -> SolveResult:
        payload: dict[str, Any] = {
            "cmd": "request.get",
            "url": url,
            "maxTimeout": int(self._timeout * 1000),
        }
        if session_id:
            payload["session"] = session_id
        if proxy_url:
            payload["proxy"] = {"url": proxy_url}
        if user_agent:
            payload["userAgent"] = user_agent

        data = await self._command(payload, timeout=self._timeout + _HTTP_GRACE_SECONDS)
        return _parse_solution(data)


def _parse_solution(data: dict[str, Any]) -> SolveResult:
    if data.get("status") != "ok":
        log.info("solver_not_ok", message=data.get("message", ""))
        return SolveResult(status=SolveStatus.BLOCKED)

    solution = data.get("solution") or {}
    body = str(solution.get("response") or "")
    cookies = tuple(
        (str(c.get("name")), str(c.get("value", "")))
        for c in solution.get("cookies") or []
        if isinstance(c, dict) and c.get("name")
    )
    if not body:
        status = SolveStatus.EMPTY
    elif is_challenge_page(body):
        status = SolveStatus.BLOCKED
    else:
        status = SolveStatus.SOLVED

    return SolveResult(
        status=status,
        url=str(solution.get("url") or ""),
        body=body,
        status_code=int(solution.get("status") or 0),
        cookies=cookies,
        user_agent=str(solution.get("userAgent") or ""),
    )
