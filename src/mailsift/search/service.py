"""Search entry point over the stored corpus."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import structlog
from pydantic import BaseModel, Field

from mailsift.config import Settings
from mailsift.models import Message
from mailsift.search.filter import filter_messages
from mailsift.store import CorpusRepository, CredentialRepository

logger = structlog.get_logger()

REAUTHORIZATION_NOTICE = (
    "Mailbox access needs to be re-authorized; results may be out of date "
    "until an operator completes the Google consent flow again."
)


class SearchResponse(BaseModel):
    """Ordered search results plus any operator notice."""

    query: str = Field(description="Query as given")
    messages: list[Message] = Field(default_factory=list, description="Matches, newest first")
    total_matches: int = Field(description="Matches before the display limit")
    reauthorization_required: bool = Field(default=False)
    notice: str | None = Field(default=None)
    searched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SearchService:
    """Read-only search over a snapshot of the corpus."""

    def __init__(
        self,
        corpus: CorpusRepository,
        credentials: CredentialRepository,
        settings: Settings | None = None,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        from mailsift.config import get_settings

        self.settings = settings or get_settings()
        self._corpus = corpus
        self._credentials = credentials
        self._clock = clock

    def search(
        self,
        query: str,
        *,
        days_back: int | None = None,
        limit: int | None = None,
        include_hidden: bool = False,
    ) -> SearchResponse:
        """Search stored messages by recipient pattern.

        Args:
            query: Free-text pattern (address, alias, domain).
            days_back: Only consider messages dated within this many days.
            limit: Maximum number of messages returned.
            include_hidden: Also return messages flagged hidden.

        Returns:
            SearchResponse with messages newest first.
        """

        snapshot = self._corpus.load_all()
        if not include_hidden:
            snapshot = [m for m in snapshot if not m.is_hidden]
        if days_back is not None:
            cutoff = self._clock() - timedelta(days=days_back)
            snapshot = [m for m in snapshot if m.date is not None and m.date >= cutoff]

        found = filter_messages(snapshot, query, self.settings.known_sender_domains)

        active = self._credentials.get_active()
        needs_reauth = bool(active and active.needs_reauthorization)

        logger.info(
            "search_completed",
            query=query,
            matches=len(found),
            corpus_size=len(snapshot),
            reauthorization_required=needs_reauth,
        )

        return SearchResponse(
            query=query,
            messages=found if limit is None else found[:limit],
            total_matches=len(found),
            reauthorization_required=needs_reauth,
            notice=REAUTHORIZATION_NOTICE if needs_reauth else None,
        )
