"""Recipient search over the accumulated corpus."""

from .filter import filter_messages, looks_like_address, matches, resembles_known_domain
from .service import REAUTHORIZATION_NOTICE, SearchResponse, SearchService

__all__ = [
    "REAUTHORIZATION_NOTICE",
    "SearchResponse",
    "SearchService",
    "filter_messages",
    "looks_like_address",
    "matches",
    "resembles_known_domain",
]
