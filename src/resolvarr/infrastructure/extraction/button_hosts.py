"""Single-button file hosts (FileBee, DropGalaxy/DGDrive).

These pages carry one download button; its target is the candidate.
"""

from __future__ import annotations

import asyncio

import structlog

from resolvarr.domain.entities.links import LinkCandidate
from resolvarr.domain.exceptions import (
    ChallengeUnresolved,
    RequestCancelled,
    SolverUnavailable,
    TransportError,
)
from resolvarr.domain.ports.link_validator import LinkValidatorPort
from resolvarr.infrastructure.challenge.bypass import ChallengeBypass
from resolvarr.infrastructure.common.html_selectors import (
    absolute_url,
    extract_text,
    first_attr,
    select_items,
)
from resolvarr.infrastructure.extraction.classify import classify
from resolvarr.infrastructure.extraction.follow_through import title_from_url

log = structlog.get_logger(__name__)

_BUTTON_SELECTOR = ".download-btn, .btn-download, a.download, button.download, .js-download"
_FALLBACK_MARKERS = ("download", ".mkv", ".mp4")


def find_download_target(document, page_url: str) -> tuple[str, str]:
    """``(absolute url, button text)`` of the download button, or ``("", "")``."""
    for el in select_items(document, _BUTTON_SELECTOR):
        href = first_attr(el, "href", "data-url", "data-href")
        if href:
            return absolute_url(page_url, href), el.get_text(" ", strip=True)

    for el in document.select("a[href]"):
        href = first_attr(el, "href")
        text = el.get_text(" ", strip=True)
        if any(m in href.lower() for m in _FALLBACK_MARKERS) or "download" in text.lower():
            return absolute_url(page_url, href), text
    return "", ""


class ButtonHostExtractor:
    """Fetches a single-button host page and emits its target."""

    def __init__(
        self,
        *,
        name: str,
        bypass: ChallengeBypass,
        validator: LinkValidatorPort,
    ) -> None:
        self._name = name
        self._bypass = bypass
        self._validator = validator

    @property
    def name(self) -> str:
        return self._name

    async def extract(
        self,
        url: str,
        *,
        referer: str = "",
        depth: int = 0,
        cancel: asyncio.Event | None = None,
    ) -> list[LinkCandidate]:
        headers = {"Referer": referer} if referer else {}
        try:
            page = await self._bypass.fetch_page(url, headers=headers, cancel=cancel)
        except RequestCancelled:
            raise
        except (ChallengeUnresolved, SolverUnavailable, TransportError) as e:
            log.warning("button_host_fetch_failed", host=self._name, url=url, error=str(e))
            return []

        if page.document is None:
            return []
        target, text = find_download_target(page.document, page.url)
        if not target:
            log.info("button_host_no_button", host=self._name, url=url)
            return []

        cls = classify(target, text)
        header = extract_text(page.document, "title")
        candidate = LinkCandidate(
            url=cls.link,
            title=title_from_url(cls.link, header),
            server_type=cls.server_type,
            priority=cls.priority,
            display_name=f"{self._name} {cls.server_type}".strip(),
        )
        return await self._validator.validate_candidates([candidate])
