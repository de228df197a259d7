"""Helpers for parsing Gmail API messages into internal models."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from mailsift.extraction import reprocess
from mailsift.extraction.recipients import RECIPIENT_HEADERS
from mailsift.gmail.mime import decode_body
from mailsift.models import Message


def _headers(message: dict[str, Any]) -> list[tuple[str, str]]:
    payload = message.get("payload") or {}
    result: list[tuple[str, str]] = []
    for h in payload.get("headers") or []:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            result.append((name, value))
    return result


def _header_map(headers: list[tuple[str, str]]) -> dict[str, str]:
    result: dict[str, str] = {}
    for name, value in headers:
        # Gmail can include duplicates (Delivered-To especially); keep the first.
        result.setdefault(name.lower(), value)
    return result


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_date(value: str | None, internal_date: Any) -> datetime | None:
    if value:
        try:
            return _as_utc(parsedate_to_datetime(value))
        except (TypeError, ValueError, OverflowError, IndexError):
            pass

    try:
        internal_ms = int(internal_date) if internal_date is not None else None
    except (TypeError, ValueError):
        internal_ms = None
    if internal_ms is None:
        return None
    return datetime.fromtimestamp(internal_ms / 1000.0, tz=timezone.utc)


def message_to_domain(message: dict[str, Any]) -> Message:
    """Convert a Gmail API message (format=full) to a processed Message.

    The body is decoded, forwarded content extracted and the RecipientSet
    resolved before the model is returned.

    Args:
        message: Gmail API message dict.

    Returns:
        Message: Parsed message with derived fields populated.
    """

    headers = _headers(message)
    hm = _header_map(headers)

    label_ids = message.get("labelIds") or []
    if not isinstance(label_ids, list):
        label_ids = []
    labels = [str(x) for x in label_ids if isinstance(x, str)]

    recipient_headers = {
        name: hm[name.lower()] for name in RECIPIENT_HEADERS if hm.get(name.lower())
    }

    parsed = Message(
        id=str(message.get("id") or ""),
        thread_id=str(message.get("threadId") or "") or None,
        from_=hm.get("from") or "",
        to=hm.get("to") or "",
        subject=hm.get("subject") or "",
        date=_parse_date(hm.get("date"), message.get("internalDate")),
        body=decode_body(message.get("payload")),
        is_read="UNREAD" not in labels,
        labels=labels,
        raw_headers="\r\n".join(f"{name}: {value}" for name, value in headers) or None,
        recipient_headers=recipient_headers,
    )
    return reprocess(parsed)
