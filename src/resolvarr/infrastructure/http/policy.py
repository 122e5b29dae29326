"""Per-host routing decisions: proxy use and User-Agent selection."""

from __future__ import annotations

from urllib.parse import urlparse

from resolvarr.infrastructure.config.schema import (
    DEFAULT_USER_AGENT,
    HUB_USER_AGENT,
    HttpConfig,
)


def hostname(url: str) -> str:
    """Lower-cased hostname of *url*, ``""`` when unparseable."""
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


class HostPolicy:
    """Decides proxy routing and User-Agent per URL.

    Hosts matching a bypass fragment never go through the general proxy
    unless the caller forces it (e.g. a credential won through the proxy).
    """

    def __init__(
        self,
        *,
        proxy_configured: bool = False,
        proxy_by_default: bool = False,
        bypass_fragments: tuple[str, ...] = ("hubcloud", "hubdrive", "hubcdn"),
        user_agent: str = DEFAULT_USER_AGENT,
        hub_user_agent: str = HUB_USER_AGENT,
    ) -> None:
        self.proxy_configured = proxy_configured
        self._proxy_by_default = proxy_by_default
        self._bypass = bypass_fragments
        self._user_agent = user_agent
        self._hub_user_agent = hub_user_agent

    @classmethod
    def from_config(cls, config: HttpConfig) -> HostPolicy:
        return cls(
            proxy_configured=bool(config.proxy_url),
            proxy_by_default=config.proxy_by_default,
            bypass_fragments=config.proxy_bypass_fragments,
            user_agent=config.user_agent,
            hub_user_agent=config.hub_user_agent,
        )

    def is_hub_host(self, url: str) -> bool:
        lower = url.lower()
        return any(fragment in lower for fragment in self._bypass)

    def use_proxy(self, url: str, *, force: bool = False) -> bool:
        if not self.proxy_configured:
            return False
        if force:
            return True
        return self._proxy_by_default and not self.is_hub_host(url)

    def user_agent_for(self, url: str) -> str:
        return self._hub_user_agent if self.is_hub_host(url) else self._user_agent
