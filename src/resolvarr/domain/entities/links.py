"""Link candidates emitted by the extraction engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any


@dataclass(frozen=True)
class LinkCandidate:
    """A discovered, classified download link.

    ``priority`` only drives final ordering (higher first); ties keep
    discovery order.
    """

    url: str
    title: str = ""
    quality_label: str = ""
    size_label: str = ""
    server_type: str = "other"
    priority: int = 0
    display_name: str = ""

    def with_url(self, url: str, *, suffix: str = "") -> LinkCandidate:
        """Return a copy pointing at *url*, optionally tagging the name."""
        name = f"{self.display_name} {suffix}".strip() if suffix else self.display_name
        return replace(self, url=url, display_name=name)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LinkCandidate:
        return cls(
            url=data["url"],
            title=data.get("title", ""),
            quality_label=data.get("quality_label", ""),
            size_label=data.get("size_label", ""),
            server_type=data.get("server_type", "other"),
            priority=int(data.get("priority", 0)),
            display_name=data.get("display_name", ""),
        )
