"""One sync cycle: token, candidates, details, processing, merge, persist."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog
from pydantic import ValidationError

from mailsift.config import Settings
from mailsift.exceptions import ReauthorizationRequired, TransientNetworkError
from mailsift.gmail.auth import TokenRefresher
from mailsift.gmail.parsing import message_to_domain
from mailsift.models import Message
from mailsift.store import CorpusRepository, CredentialRepository, changed_messages, merge
from mailsift.sync.fetcher import MessageFetcher

logger = structlog.get_logger()


class SyncStatus(str, Enum):
    """Outcome of a sync cycle."""

    OK = "ok"
    NO_CREDENTIAL = "no_credential"
    REAUTHORIZATION_REQUIRED = "reauthorization_required"
    TRANSIENT_ERROR = "transient_error"


@dataclass(frozen=True)
class SyncReport:
    """Counts describing what one cycle did."""

    status: SyncStatus
    candidates: int = 0
    fetched: int = 0
    failed: int = 0
    inserted: int = 0
    updated: int = 0
    corpus_size: int = 0


class SyncService:
    """Runs sync cycles against the active credential.

    A cycle never raises for expected upstream conditions; they are reported
    through ``SyncReport.status`` and the next cycle starts fresh.
    """

    def __init__(
        self,
        credentials: CredentialRepository,
        corpus: CorpusRepository,
        refresher: TokenRefresher,
        fetcher: MessageFetcher,
        settings: Settings | None = None,
    ) -> None:
        from mailsift.config import get_settings

        self.settings = settings or get_settings()
        self._credentials = credentials
        self._corpus = corpus
        self._refresher = refresher
        self._fetcher = fetcher

    async def run_cycle(self, days_back: int | None = None) -> SyncReport:
        """Run one full sync cycle.

        Args:
            days_back: Override the configured lookback window.

        Returns:
            SyncReport with the cycle's status and counts.
        """

        credential = self._credentials.get_active()
        if credential is None:
            logger.warning("sync_skipped_no_credential")
            return SyncReport(status=SyncStatus.NO_CREDENTIAL)

        try:
            access_token = await self._refresher.ensure_valid_token(credential)
        except ReauthorizationRequired as exc:
            logger.error("sync_reauthorization_required", credential_id=credential.id, error=str(exc))
            return SyncReport(status=SyncStatus.REAUTHORIZATION_REQUIRED)
        except TransientNetworkError as exc:
            logger.warning("sync_token_unavailable", credential_id=credential.id, error=str(exc))
            return SyncReport(status=SyncStatus.TRANSIENT_ERROR)

        try:
            candidate_ids = await self._fetcher.fetch_candidates(access_token, days_back)
        except TransientNetworkError as exc:
            logger.warning("sync_listing_failed", error=str(exc))
            return SyncReport(status=SyncStatus.TRANSIENT_ERROR)

        batch = await self._fetcher.fetch_all(access_token, candidate_ids)
        processed = self._process(batch.messages)

        existing = {m.id: m for m in self._corpus.load_all()}
        merged = merge(existing, processed)
        changed = changed_messages(existing, merged)
        self._corpus.save_all(changed)

        inserted = sum(1 for m in changed if m.id not in existing)
        report = SyncReport(
            status=SyncStatus.OK,
            candidates=len(candidate_ids),
            fetched=len(batch.messages),
            failed=len(batch.failures) + (len(batch.messages) - len(processed)),
            inserted=inserted,
            updated=len(changed) - inserted,
            corpus_size=len(merged),
        )
        logger.info(
            "sync_cycle_completed",
            candidates=report.candidates,
            fetched=report.fetched,
            failed=report.failed,
            inserted=report.inserted,
            updated=report.updated,
            corpus_size=report.corpus_size,
        )
        return report

    def _process(self, raw_messages: list[dict]) -> list[Message]:
        processed: list[Message] = []
        for raw in raw_messages:
            try:
                message = message_to_domain(raw)
            except (ValidationError, ValueError, TypeError) as exc:
                logger.warning("message_processing_failed", message_id=raw.get("id"), error=str(exc))
                continue
            if not message.id:
                logger.warning("message_without_id_skipped")
                continue
            processed.append(message)
        return processed
