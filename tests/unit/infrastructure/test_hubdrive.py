"""Tests for HubDrive mirror-link discovery and recursion."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import httpx

from resolvarr.domain.entities.links import LinkCandidate
from resolvarr.domain.exceptions import NetworkError
from resolvarr.infrastructure.common.html_selectors import parse_html
from resolvarr.infrastructure.extraction.hubdrive import HubDriveExtractor, find_mirror_link
from resolvarr.infrastructure.http.transport import FetchResult

_URL = "https://hubdrive.example/file/123"


def _find(html: str) -> str:
    return find_mirror_link(parse_html(html), _URL)


class TestFindMirrorLink:
    def test_primary_selector(self) -> None:
        html = (
            '<a class="btn btn-primary btn-user btn-success1 m-1" '
            'href="https://hubcloud.example/drive/x">HubCloud</a>'
            '<a class="btn" href="https://other.example/y">Other</a>'
        )
        assert _find(html) == "https://hubcloud.example/drive/x"

    def test_download_onclick(self) -> None:
        html = "<button id=\"download\" onclick=\"location.href='/go/hub'\">Go</button>"
        assert _find(html) == "https://hubdrive.example/go/hub"

    def test_alternative_selector(self) -> None:
        html = '<a class="btn btn-primary" href="https://gamerxyt.example/hubcloud.php?id=1">Go</a>'
        assert _find(html) == "https://gamerxyt.example/hubcloud.php?id=1"

    def test_file_host_scan_prefers_vcloud(self) -> None:
        html = (
            '<a href="https://filebee.example/x">FileBee</a>'
            '<a href="https://vcloud.example/y">VCloud</a>'
        )
        assert _find(html) == "https://vcloud.example/y"

    def test_skips_share_and_javascript(self) -> None:
        html = (
            '<a class="btn" href="https://t.me/share/url?u=x">Share</a>'
            '<a class="btn" href="javascript:void(0)">Nope</a>'
        )
        assert _find(html) == ""


class TestExtract:
    async def test_dispatches_one_level_deeper(self) -> None:
        body = '<a class="btn btn-primary" href="https://hubcloud.example/drive/x">Go</a>'
        bypass = AsyncMock()
        bypass.fetch_page = AsyncMock(
            return_value=FetchResult(200, httpx.Headers(), body, _URL, parse_html(body))
        )
        expected = [LinkCandidate(url="https://cdn.example/f.mkv")]
        dispatch = AsyncMock(return_value=expected)
        cancel = asyncio.Event()

        result = await HubDriveExtractor(bypass=bypass, dispatch=dispatch).extract(
            _URL, depth=1, cancel=cancel
        )

        assert result == expected
        dispatch.assert_awaited_once_with(
            "https://hubcloud.example/drive/x", referer=_URL, depth=2, cancel=cancel
        )

    async def test_no_link(self) -> None:
        body = "<p>File not found</p>"
        bypass = AsyncMock()
        bypass.fetch_page = AsyncMock(
            return_value=FetchResult(200, httpx.Headers(), body, _URL, parse_html(body))
        )
        dispatch = AsyncMock()

        assert await HubDriveExtractor(bypass=bypass, dispatch=dispatch).extract(_URL) == []
        dispatch.assert_not_awaited()

    async def test_fetch_failure(self) -> None:
        bypass = AsyncMock()
        bypass.fetch_page = AsyncMock(side_effect=NetworkError("reset"))
        dispatch = AsyncMock()
        assert await HubDriveExtractor(bypass=bypass, dispatch=dispatch).extract(_URL) == []
