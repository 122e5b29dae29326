from .dispatcher import RecursiveDispatcher, Route, is_bare_domain, normalize_url
from .visited import VisitedUrls

__all__ = [
    "RecursiveDispatcher",
    "Route",
    "VisitedUrls",
    "is_bare_domain",
    "normalize_url",
]
