"""SQLite-backed message corpus.

Messages are addressed by provider id. Each row also records the sender
domain so the corpus can be reported on per domain; lookups never depend on it.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from mailsift.models import ExtractedSubMessage, Message
from mailsift.store.database import Database

logger = structlog.get_logger()


@dataclass(frozen=True)
class DomainBucket:
    """Aggregate stats for a single sender domain."""

    sender_domain: str
    total_messages: int
    unread_messages: int


@dataclass(frozen=True)
class CorpusStats:
    """High-level summary stats for the corpus."""

    total_messages: int
    unread_messages: int
    forwarded_messages: int
    min_date: datetime | None
    max_date: datetime | None


class CorpusRepository:
    """Repository for storing and loading the message corpus."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def load_all(self) -> list[Message]:
        """Load every stored message in a single read."""

        with self._db.connect() as conn:
            rows = conn.execute("SELECT * FROM messages").fetchall()
        return [self._row_to_message(row) for row in rows]

    def save_all(self, messages: list[Message]) -> None:
        """Upsert messages by id."""

        if not messages:
            return

        now_iso = datetime.now(timezone.utc).isoformat()

        with self._db.connect() as conn:
            conn.executemany(
                """
                INSERT INTO messages (
                    id,
                    thread_id,
                    sender_domain,
                    from_raw,
                    to_raw,
                    subject,
                    date_iso,
                    body,
                    is_read,
                    is_hidden,
                    labels_json,
                    raw_headers,
                    recipient_headers_json,
                    extracted_json,
                    recipients_json,
                    updated_at_iso
                )
                VALUES (
                    :id,
                    :thread_id,
                    :sender_domain,
                    :from_raw,
                    :to_raw,
                    :subject,
                    :date_iso,
                    :body,
                    :is_read,
                    :is_hidden,
                    :labels_json,
                    :raw_headers,
                    :recipient_headers_json,
                    :extracted_json,
                    :recipients_json,
                    :updated_at_iso
                )
                ON CONFLICT(id) DO UPDATE SET
                    thread_id=excluded.thread_id,
                    sender_domain=excluded.sender_domain,
                    from_raw=excluded.from_raw,
                    to_raw=excluded.to_raw,
                    subject=excluded.subject,
                    date_iso=excluded.date_iso,
                    body=excluded.body,
                    is_read=excluded.is_read,
                    is_hidden=excluded.is_hidden,
                    labels_json=excluded.labels_json,
                    raw_headers=excluded.raw_headers,
                    recipient_headers_json=excluded.recipient_headers_json,
                    extracted_json=excluded.extracted_json,
                    recipients_json=excluded.recipients_json,
                    updated_at_iso=excluded.updated_at_iso
                """,
                [
                    {
                        "id": m.id,
                        "thread_id": m.thread_id,
                        "sender_domain": m.sender_domain,
                        "from_raw": m.from_,
                        "to_raw": m.to,
                        "subject": m.subject,
                        "date_iso": m.date.isoformat() if m.date else None,
                        "body": m.body,
                        "is_read": 1 if m.is_read else 0,
                        "is_hidden": 1 if m.is_hidden else 0,
                        "labels_json": json.dumps(m.labels),
                        "raw_headers": m.raw_headers,
                        "recipient_headers_json": json.dumps(m.recipient_headers),
                        "extracted_json": json.dumps(
                            [e.model_dump(mode="json", by_alias=True) for e in m.extracted]
                        ),
                        "recipients_json": json.dumps(m.recipients),
                        "updated_at_iso": now_iso,
                    }
                    for m in messages
                ],
            )
            conn.commit()

        logger.info("corpus_saved", message_count=len(messages))

    def get(self, message_id: str) -> Message | None:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
        return self._row_to_message(row) if row else None

    def set_flags(
        self,
        message_id: str,
        *,
        is_read: bool | None = None,
        is_hidden: bool | None = None,
    ) -> bool:
        """Update the local-only display flags of one message."""

        assignments: list[str] = []
        params: list[object] = []
        if is_read is not None:
            assignments.append("is_read = ?")
            params.append(1 if is_read else 0)
        if is_hidden is not None:
            assignments.append("is_hidden = ?")
            params.append(1 if is_hidden else 0)
        if not assignments:
            return False

        with self._db.connect() as conn:
            cursor = conn.execute(
                f"UPDATE messages SET {', '.join(assignments)} WHERE id = ?",
                (*params, message_id),
            )
            conn.commit()
        return cursor.rowcount > 0

    def count(self) -> int:
        with self._db.connect() as conn:
            (total,) = conn.execute("SELECT COUNT(*) FROM messages").fetchone()
        return int(total or 0)

    def clear(self) -> int:
        """Delete the whole corpus. Returns the number of removed messages."""

        with self._db.connect() as conn:
            cursor = conn.execute("DELETE FROM messages")
            conn.commit()
        logger.warning("corpus_cleared", removed=cursor.rowcount)
        return int(cursor.rowcount)

    def overall_stats(self) -> CorpusStats:
        """Compute high-level corpus stats."""

        with self._db.connect() as conn:
            total, unread = conn.execute(
                """
                SELECT COUNT(*), SUM(CASE WHEN is_read = 0 THEN 1 ELSE 0 END)
                FROM messages;
                """
            ).fetchone()

            (forwarded,) = conn.execute(
                """
                SELECT COUNT(*)
                FROM messages
                WHERE extracted_json != '[]';
                """
            ).fetchone()

            min_iso, max_iso = conn.execute(
                """
                SELECT MIN(date_iso), MAX(date_iso)
                FROM messages;
                """
            ).fetchone()

        return CorpusStats(
            total_messages=int(total or 0),
            unread_messages=int(unread or 0),
            forwarded_messages=int(forwarded or 0),
            min_date=datetime.fromisoformat(min_iso) if min_iso else None,
            max_date=datetime.fromisoformat(max_iso) if max_iso else None,
        )

    def domain_buckets(self, limit: int = 25) -> list[DomainBucket]:
        """Return sender domains by message count."""

        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT
                    sender_domain,
                    COUNT(*) AS total_messages,
                    SUM(CASE WHEN is_read = 0 THEN 1 ELSE 0 END) AS unread_messages
                FROM messages
                GROUP BY sender_domain
                ORDER BY total_messages DESC, sender_domain
                LIMIT ?;
                """,
                (limit,),
            ).fetchall()

        return [
            DomainBucket(
                sender_domain=row[0],
                total_messages=int(row[1] or 0),
                unread_messages=int(row[2] or 0),
            )
            for row in rows
        ]

    def _row_to_message(self, row: sqlite3.Row) -> Message:
        date = datetime.fromisoformat(row["date_iso"]) if row["date_iso"] else None

        return Message(
            id=row["id"],
            thread_id=row["thread_id"],
            from_=row["from_raw"],
            to=row["to_raw"],
            subject=row["subject"],
            date=date,
            body=row["body"],
            is_read=bool(row["is_read"]),
            is_hidden=bool(row["is_hidden"]),
            labels=json.loads(row["labels_json"]),
            raw_headers=row["raw_headers"],
            recipient_headers=json.loads(row["recipient_headers_json"]),
            extracted=[ExtractedSubMessage.model_validate(e) for e in json.loads(row["extracted_json"])],
            recipients=json.loads(row["recipients_json"]),
        )
