"""HTTP transport, retry/redirect wrapper and host policy."""

from .fetcher import RetryingFetcher
from .policy import HostPolicy, hostname
from .transport import FetchResult, HttpTransport, RequestOptions

__all__ = [
    "FetchResult",
    "HostPolicy",
    "HttpTransport",
    "RequestOptions",
    "RetryingFetcher",
    "hostname",
]
