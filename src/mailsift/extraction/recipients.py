"""Collect every addressee-like value of a message into a normalized set."""

from __future__ import annotations

import re
from collections.abc import Iterable

from mailsift.models import ExtractedSubMessage, Message

# Headers besides To that can carry the address a message was delivered to.
RECIPIENT_HEADERS: tuple[str, ...] = (
    "Cc",
    "Bcc",
    "Delivered-To",
    "X-Forwarded-To",
    "Return-Path",
)

ADDRESS_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9._-]+\.[a-zA-Z0-9_-]+")


def find_addresses(value: str | None) -> list[str]:
    """Return every address found in a raw header value, lower-cased, in order."""

    if not value:
        return []
    return [m.lower() for m in ADDRESS_RE.findall(value)]


def _sub_message_values(extracted: Iterable[ExtractedSubMessage]) -> Iterable[str | None]:
    for sub in extracted:
        yield sub.to
        yield sub.cc
        yield sub.bcc


def resolve_recipients(message: Message) -> list[str]:
    """Build the RecipientSet of a message.

    The set covers the message's own To and delivery headers plus the
    addressee fields of every extracted sub-message, so addresses that only
    appear inside forwarded content are still searchable.

    Returns:
        Sorted list of unique lower-cased addresses.
    """

    values: list[str | None] = [message.to]
    values.extend(message.recipient_headers.values())
    values.extend(_sub_message_values(message.extracted))

    found: set[str] = set()
    for value in values:
        found.update(find_addresses(value))
    return sorted(found)
