"""Link discovery, classification, follow-through and host extractors."""

from .button_hosts import ButtonHostExtractor
from .classify import SERVER_RULES, Classification, classify
from .discovery import RawLink, discover_links, enumerate_buttons, page_labels
from .filters import dedupe, filter_candidates, rank
from .follow_through import FollowThrough
from .hubdrive import HubDriveExtractor
from .mirror_page import MirrorPageExtractor

__all__ = [
    "ButtonHostExtractor",
    "Classification",
    "FollowThrough",
    "HubDriveExtractor",
    "MirrorPageExtractor",
    "RawLink",
    "SERVER_RULES",
    "classify",
    "dedupe",
    "discover_links",
    "enumerate_buttons",
    "filter_candidates",
    "page_labels",
    "rank",
]
