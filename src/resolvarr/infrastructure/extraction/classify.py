"""Server-type classification of discovered links.

``SERVER_RULES`` is evaluated top to bottom; the first matching rule
decides the server type and its priority.  Priority only drives final
ordering (higher first).
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urlparse


@dataclass(frozen=True)
class LinkFacts:
    """Inputs a rule may look at."""

    link: str
    text: str
    element_id: str = ""
    style: str = ""

    @property
    def lower_link(self) -> str:
        return self.link.lower()

    @property
    def lower_text(self) -> str:
        return self.text.lower()


@dataclass(frozen=True)
class ServerRule:
    server_type: str
    priority: int
    matches: Callable[[LinkFacts], bool]


@dataclass(frozen=True)
class Classification:
    server_type: str
    priority: int
    link: str


_FILE_EXTENSIONS = (".mkv", ".mp4")
_MEGA_HOSTS = ("mega.nz", "mega.co", "mega.io")


def _is_cf_worker(f: LinkFacts) -> bool:
    return ".dev" in f.lower_link and "/?id=" not in f.lower_link


def _is_fsl_v2(f: LinkFacts) -> bool:
    text = f.lower_text
    return (
        f.element_id == "s3"
        or "#2d50e2" in f.style.lower()
        or "fslv2" in text
        or "fsl v2" in text
    )


def _is_direct_file(f: LinkFacts) -> bool:
    path = urlparse(f.link).path.lower()
    return path.endswith(_FILE_EXTENSIONS) or any(e in f.lower_link for e in _FILE_EXTENSIONS)


SERVER_RULES: tuple[ServerRule, ...] = (
    ServerRule("Cf Worker", 75, _is_cf_worker),
    ServerRule("Pixeldrain", 95, lambda f: "pixeld" in f.lower_link),
    ServerRule(
        "HubCloud", 85, lambda f: "hubcloud" in f.lower_link or "/?id=" in f.lower_link
    ),
    ServerRule("CfStorage", 80, lambda f: "cloudflarestorage" in f.lower_link),
    ServerRule(
        "FastDl", 90, lambda f: "fastdl" in f.lower_link or "fsl." in f.lower_link
    ),
    ServerRule(
        "HubCdn", 85, lambda f: "hubcdn" in f.lower_link and "/?id=" not in f.lower_link
    ),
    ServerRule("FSL V2", 100, _is_fsl_v2),
    ServerRule(
        "FSL", 90, lambda f: f.element_id == "fsl" or "fsl server" in f.lower_text
    ),
    ServerRule(
        "Mega",
        80,
        lambda f: "mega" in f.lower_text or any(h in f.lower_link for h in _MEGA_HOSTS),
    ),
    ServerRule(
        "PixelServer",
        70,
        lambda f: "pixelserver" in f.lower_text
        or "pixeldrain" in f.lower_text
        or "pixeldrain" in f.lower_link,
    ),
    ServerRule("R2", 88, lambda f: "r2.dev" in f.lower_link),
)

_PIXELDRAIN_TOKEN = re.compile(r"^/(?:u|file)/([A-Za-z0-9]+)/?$")


def normalize_pixeldrain(link: str) -> str:
    """Rewrite a single-file share link to the direct API download form.

    Anything else (list pages, API links) is returned unchanged.
    """
    match = _PIXELDRAIN_TOKEN.match(urlparse(link).path)
    if match is None:
        return link
    return f"https://pixeldrain.dev/api/file/{match.group(1)}?download"


def classify(
    link: str,
    text: str = "",
    *,
    element_id: str = "",
    style: str = "",
) -> Classification:
    """Classify *link* (with its anchor *text*) into a server type.

    Pure: no I/O, no shared state.  Pixeldrain share links are rewritten
    to the API download URL; every other link is returned unchanged.
    """
    facts = LinkFacts(link=link, text=text, element_id=element_id, style=style)
    for rule in SERVER_RULES:
        if rule.matches(facts):
            out = normalize_pixeldrain(link) if rule.server_type == "Pixeldrain" else link
            return Classification(rule.server_type, rule.priority, out)

    if _is_direct_file(facts):
        host = urlparse(link).hostname or "direct"
        return Classification(host.replace(".", " "), 60, link)
    return Classification("other", 0, link)
