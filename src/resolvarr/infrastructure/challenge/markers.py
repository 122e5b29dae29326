"""Anti-bot challenge detection by body marker scan.

Markers are matched case-insensitively against the raw body.  A bare
mention of "cloudflare" (footer branding) is not a challenge on its own;
"security check" only counts together with it.
"""

from __future__ import annotations

_BLOCKING_MARKERS: tuple[str, ...] = (
    "cf-mitigated",
    "just a moment",
    "cf_chl",
    "challenge-platform",
    "cf-turnstile",
    "verify_turnstile",
)

_PAIRED_MARKER = ("security check", "cloudflare")


def challenge_markers(body: str | None) -> list[str]:
    """Return every challenge marker present in *body* (lower-cased)."""
    if not body:
        return []
    lower = body.lower()
    found = [m for m in _BLOCKING_MARKERS if m in lower]
    if all(m in lower for m in _PAIRED_MARKER):
        found.append(_PAIRED_MARKER[0])
    return found


def is_challenge_page(body: str | None) -> bool:
    """True when *body* is an anti-bot interstitial rather than content."""
    return bool(challenge_markers(body))
