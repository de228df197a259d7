"""Recipient-pattern filtering over the stored corpus."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone

from mailsift.models import Message

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _domain_part(pattern: str) -> str:
    return pattern.rsplit("@", 1)[-1].strip(". ")


def resembles_known_domain(pattern: str, known_sender_domains: Sequence[str]) -> bool:
    """True if ``pattern`` names (or sits under) one of the known sender domains."""

    candidate = _domain_part(pattern)
    if not candidate:
        return False
    for domain in known_sender_domains:
        domain = domain.lower().strip()
        if not domain:
            continue
        if candidate == domain or candidate.endswith("." + domain):
            return True
        if candidate == domain.split(".", 1)[0]:
            return True
    return False


def looks_like_address(pattern: str, known_sender_domains: Sequence[str] = ()) -> bool:
    """True for full addresses and address-like identifiers such as ``alias42@`` or ``@domain``."""

    if not pattern or any(ch.isspace() for ch in pattern):
        return False
    if "@" in pattern:
        return True
    return any(
        pattern.endswith(d.lower().strip()) for d in known_sender_domains if d.strip()
    )


def _sort_key(message: Message) -> tuple[bool, datetime]:
    return (message.date is not None, message.date or _OLDEST)


def matches(message: Message, pattern: str, known_sender_domains: Sequence[str] = ()) -> bool:
    """Apply the matching policy to one message. ``pattern`` must already be lower-cased."""

    if pattern in message.to.lower():
        return True
    if any(pattern in address for address in message.recipients):
        return True
    if resembles_known_domain(pattern, known_sender_domains) and pattern in message.from_.lower():
        return True
    if looks_like_address(pattern, known_sender_domains) and pattern in message.body.lower():
        return True
    return False


def filter_messages(
    corpus: Mapping[str, Message] | Iterable[Message],
    pattern: str,
    known_sender_domains: Sequence[str] = (),
) -> list[Message]:
    """Return messages matching ``pattern``, newest first.

    A message matches on a case-insensitive substring of its To header or of
    any address in its RecipientSet. The From header is also checked when the
    pattern resembles a known sender domain, and the body when the pattern
    looks like an address. No result limit is applied.

    Args:
        corpus: Messages to search, as a mapping by id or any iterable.
        pattern: Free-text query.
        known_sender_domains: Domains that make the From header searchable.

    Returns:
        Matching messages ordered by date, newest first; undated last.
    """

    needle = (pattern or "").strip().lower()
    if not needle:
        return []

    messages = corpus.values() if isinstance(corpus, Mapping) else corpus
    found = [m for m in messages if matches(m, needle, known_sender_domains)]
    return sorted(found, key=_sort_key, reverse=True)
