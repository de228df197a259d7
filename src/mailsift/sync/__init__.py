"""Mailbox synchronization: candidate listing, detail fetch, merge and scheduling."""

from .fetcher import FetchBatch, MessageFetcher, build_query, clamp_days_back
from .scheduler import SyncScheduler
from .service import SyncReport, SyncService, SyncStatus

__all__ = [
    "FetchBatch",
    "MessageFetcher",
    "SyncReport",
    "SyncScheduler",
    "SyncService",
    "SyncStatus",
    "build_query",
    "clamp_days_back",
]
