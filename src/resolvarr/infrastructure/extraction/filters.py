"""Candidate filters: dead hosts, decoys, spam/obfuscation and duplicates."""

from __future__ import annotations

import re
from urllib.parse import urldefrag

from resolvarr.domain.entities.links import LinkCandidate

DEAD_MIRROR_DOMAINS: frozenset[str] = frozenset(
    {"hubcloud.ink", "hubcloud.co", "hubcloud.cc", "hubcloud.me", "hubcloud.xyz"}
)

_BLOCKED_HOST_FRAGMENTS = ("googleusercontent.com",)
_DECOY_FILES = (
    "v-cloudxt.mp4",
    "tutorial.mp4",
    "howto.mp4",
    "instructions.mp4",
    "sample.mp4",
    "demo.mp4",
)
_SPAM_HOSTS = ("ampproject.org", "hashhackers.com", "bloggingvector.shop")
_TRUSTED_BASE64_HOSTS = ("workers.dev", "hubcdn.fans", "pixeldrain")
_INLINE_BASE64 = re.compile(r"[A-Za-z0-9+/=]{100,}")


def is_dead_mirror(url: str) -> bool:
    lower = url.lower()
    return any(domain in lower for domain in DEAD_MIRROR_DOMAINS)


def rejection_reason(url: str) -> str | None:
    """Why *url* must be dropped, or ``None`` if it is acceptable."""
    lower = url.lower()
    if any(h in lower for h in _BLOCKED_HOST_FRAGMENTS):
        return "blocked_host"
    if any(d in lower for d in _DECOY_FILES):
        return "decoy"
    if any(h in lower for h in _SPAM_HOSTS):
        return "spam_host"
    if _INLINE_BASE64.search(url) and not any(h in lower for h in _TRUSTED_BASE64_HOSTS):
        return "base64_spam"
    return None


def dedupe_key(url: str) -> str:
    """Normalized identity of *url*: no fragment, no trailing slash."""
    return urldefrag(url.strip())[0].rstrip("/")


def dedupe(candidates: list[LinkCandidate]) -> list[LinkCandidate]:
    """Keep the first candidate per normalized URL (discovery order)."""
    seen: set[str] = set()
    out: list[LinkCandidate] = []
    for cand in candidates:
        key = dedupe_key(cand.url)
        if key in seen:
            continue
        seen.add(key)
        out.append(cand)
    return out


def filter_candidates(candidates: list[LinkCandidate]) -> tuple[list[LinkCandidate], dict[str, int]]:
    """Drop rejected and duplicate candidates.

    Returns the survivors and a per-reason drop count for logging.
    """
    dropped: dict[str, int] = {}
    kept: list[LinkCandidate] = []
    for cand in candidates:
        reason = rejection_reason(cand.url)
        if reason is not None:
            dropped[reason] = dropped.get(reason, 0) + 1
            continue
        kept.append(cand)
    unique = dedupe(kept)
    if len(unique) < len(kept):
        dropped["duplicate"] = len(kept) - len(unique)
    return unique, dropped


def rank(candidates: list[LinkCandidate]) -> list[LinkCandidate]:
    """Sort by descending priority; ``sorted`` is stable so ties keep order."""
    return sorted(candidates, key=lambda c: c.priority, reverse=True)
