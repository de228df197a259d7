"""Candidate listing and bounded-concurrency detail retrieval."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from mailsift.config import Settings
from mailsift.exceptions import PartialFetchFailure
from mailsift.gmail.client import GmailClient

logger = structlog.get_logger()

MIN_LOOKBACK_DAYS = 1
MAX_LOOKBACK_DAYS = 30


def clamp_days_back(days_back: int) -> int:
    return max(MIN_LOOKBACK_DAYS, min(int(days_back), MAX_LOOKBACK_DAYS))


def build_query(
    days_back: int,
    *,
    include_read: bool = False,
    extra_query: str | None = None,
    now: datetime | None = None,
) -> str:
    """Build the Gmail search query for one sync window.

    Args:
        days_back: Lookback window in days, clamped to 1..30.
        include_read: If False, only unread messages are listed.
        extra_query: Additional Gmail search terms.
        now: Reference time (defaults to the current UTC time).

    Returns:
        Query such as ``after:2024/05/01 is:unread``.
    """

    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=clamp_days_back(days_back))
    parts = [f"after:{since:%Y/%m/%d}"]
    if not include_read:
        parts.append("is:unread")
    if extra_query and extra_query.strip():
        parts.append(extra_query.strip())
    return " ".join(parts)


@dataclass
class FetchBatch:
    """Details retrieved in one pass, plus the ids that could not be fetched."""

    messages: list[dict[str, Any]] = field(default_factory=list)
    failures: list[PartialFetchFailure] = field(default_factory=list)


class MessageFetcher:
    """Lists candidate ids for a window and retrieves their full details."""

    def __init__(
        self,
        client: GmailClient,
        settings: Settings | None = None,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        from mailsift.config import get_settings

        self.settings = settings or get_settings()
        self._client = client
        self._clock = clock

    async def fetch_candidates(self, access_token: str, days_back: int | None = None) -> list[str]:
        """List candidate message ids, duplicates removed, provider order kept."""

        query = build_query(
            self.settings.sync_lookback_days if days_back is None else days_back,
            include_read=self.settings.sync_include_read,
            extra_query=self.settings.sync_extra_query,
            now=self._clock(),
        )
        ids = await self._client.list_candidate_ids(
            access_token,
            query=query,
            max_results=self.settings.sync_max_candidates,
        )
        unique = list(dict.fromkeys(i for i in ids if i))
        logger.info("candidates_listed", query=query, candidate_count=len(unique))
        return unique

    async def fetch_detail(self, access_token: str, message_id: str) -> dict[str, Any]:
        """Retrieve one message in full format.

        Raises:
            PartialFetchFailure: If the message could not be retrieved.
        """

        try:
            return await self._client.get_message(access_token, message_id)
        except Exception as exc:  # noqa: BLE001
            raise PartialFetchFailure(message_id, str(exc)) from exc

    async def fetch_all(self, access_token: str, message_ids: list[str]) -> FetchBatch:
        """Retrieve details for every id with at most ``fetch_concurrency`` in flight.

        A failed id is logged and skipped; it never aborts the batch.
        """

        semaphore = asyncio.Semaphore(max(1, self.settings.fetch_concurrency))

        async def _one(message_id: str) -> dict[str, Any] | PartialFetchFailure:
            async with semaphore:
                try:
                    return await self.fetch_detail(access_token, message_id)
                except PartialFetchFailure as failure:
                    logger.warning(
                        "message_fetch_skipped",
                        message_id=failure.message_id,
                        reason=failure.reason,
                    )
                    return failure

        results = await asyncio.gather(*(_one(i) for i in message_ids))

        batch = FetchBatch()
        for result in results:
            if isinstance(result, PartialFetchFailure):
                batch.failures.append(result)
            else:
                batch.messages.append(result)

        logger.info(
            "message_details_fetched",
            requested=len(message_ids),
            fetched=len(batch.messages),
            failed=len(batch.failures),
        )
        return batch
