"""Idempotent merge of freshly fetched messages into the stored corpus."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Mapping

import structlog

from mailsift.models import Message

logger = structlog.get_logger()


def fingerprint(message: Message) -> str:
    """Content fingerprint used to detect upstream changes (subject + body)."""

    digest = hashlib.sha256()
    digest.update(message.subject.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(message.body.encode("utf-8"))
    return digest.hexdigest()


def merge(existing: Mapping[str, Message], new_messages: Iterable[Message]) -> dict[str, Message]:
    """Combine new messages into a corpus keyed by message id.

    Missing ids are inserted. An existing id is replaced only when its
    fingerprint changed, and the stored local flags (``is_read``,
    ``is_hidden``) are kept. Entries are never dropped, and merging the same
    batch twice yields the same corpus as merging it once.

    Args:
        existing: Current corpus. Not modified.
        new_messages: Freshly fetched and processed messages.

    Returns:
        The updated corpus as a new dict.
    """

    merged = dict(existing)
    inserted = updated = 0

    for message in new_messages:
        current = merged.get(message.id)
        if current is None:
            merged[message.id] = message
            inserted += 1
            continue

        if fingerprint(current) == fingerprint(message):
            continue

        merged[message.id] = message.model_copy(
            update={"is_read": current.is_read, "is_hidden": current.is_hidden}
        )
        updated += 1

    logger.debug("corpus_merged", inserted=inserted, updated=updated, total=len(merged))
    return merged


def changed_messages(before: Mapping[str, Message], after: Mapping[str, Message]) -> list[Message]:
    """Messages in ``after`` that are new or differ from ``before``."""

    return [m for key, m in after.items() if before.get(key) is not m]
