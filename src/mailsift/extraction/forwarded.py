"""Heuristic extraction of messages embedded in another message's body.

Two strategies run in order and their results are accumulated:

* header-block: two or more consecutive header lines followed by a blank line;
  the text after the blank line, up to the next ``From:`` line, is the body.
* marker: a forwarding banner ("---------- Forwarded message ---------" and
  friends) followed by headers in any order.

A forwarded message may be found by both strategies. Results are tagged with
the strategy that produced them and are not deduplicated here.

Both strategies scan the body line by line, so the cost stays linear in the
body size however many header-like lines it holds.
"""

from __future__ import annotations

import re

import structlog

from mailsift.extraction.text import normalize_body_text
from mailsift.models import ExtractedSubMessage, ExtractionStrategy

logger = structlog.get_logger()

_HEADER_NAMES = "From|To|Subject|Date|Cc|Bcc|Sent"

# One header-like line, optionally quote-prefixed and with markdown-style bold names.
_HEADER_LINE_RE = re.compile(rf"[ \t>]*\*?({_HEADER_NAMES})\*?:(.*)", re.IGNORECASE)

_FROM_LINE_RE = re.compile(r"[ \t>]*\*?From\*?:", re.IGNORECASE)

# Folded header value: an indented line directly under a header line.
_CONTINUATION_RE = re.compile(r"[ \t]+\S")

_MARKER_RE = re.compile(
    r"[ \t>]*(?:-{2,}[ \t]*Forwarded message[ \t]*-{2,}"
    r"|Begin forwarded message:"
    r"|-{2,}[ \t]*Original Message[ \t]*-{2,})[ \t]*$",
    re.IGNORECASE,
)


def _is_blank(line: str) -> bool:
    return not line.strip(" \t>")


def _read_headers(lines: list[str], start: int, stop: int) -> tuple[dict[str, str], int, int]:
    """Read the run of header lines beginning at ``start``.

    Returns:
        The parsed fields, the number of header lines in the run and the index
        of the first line after it.
    """

    values: list[tuple[str, str]] = []
    index = start
    while index < stop:
        line = lines[index]
        match = _HEADER_LINE_RE.match(line)
        if match:
            values.append((match.group(1).lower(), match.group(2).strip()))
        elif values and _CONTINUATION_RE.match(line):
            name, value = values[-1]
            values[-1] = (name, f"{value} {line.strip()}".strip())
        else:
            break
        index += 1

    fields: dict[str, str] = {}
    for name, value in values:
        key = "date" if name == "sent" else name
        if value:
            fields.setdefault(key, value)
    return fields, len(values), index


def _build(fields: dict[str, str], body: str, strategy: ExtractionStrategy) -> ExtractedSubMessage:
    text = body.strip()
    return ExtractedSubMessage(
        from_=fields.get("from"),
        to=fields.get("to"),
        cc=fields.get("cc"),
        bcc=fields.get("bcc"),
        subject=fields.get("subject"),
        date=fields.get("date"),
        body=text or None,
        strategy=strategy,
    )


def _extract_header_blocks(lines: list[str]) -> list[ExtractedSubMessage]:
    results: list[ExtractedSubMessage] = []
    # The last element has no line break after it, so it cannot close a header run.
    terminated = len(lines) - 1
    index = 0
    while index < terminated:
        fields, count, end = _read_headers(lines, index, terminated)
        if count < 2 or end >= terminated or not _is_blank(lines[end]):
            # Every later start inside this run ends at the same line, so skip past it.
            index = max(end, index + 1)
            continue

        body_end = end + 1
        while body_end < len(lines) and not _FROM_LINE_RE.match(lines[body_end]):
            body_end += 1
        if fields:
            body = "\n".join(lines[end + 1 : body_end])
            results.append(_build(fields, body, ExtractionStrategy.HEADER_BLOCK))
        index = body_end
    return results


def _extract_marked(lines: list[str]) -> list[ExtractedSubMessage]:
    markers = [index for index, line in enumerate(lines) if _MARKER_RE.match(line)]
    results: list[ExtractedSubMessage] = []
    for position, marker in enumerate(markers):
        stop = markers[position + 1] if position + 1 < len(markers) else len(lines)
        start = marker + 1
        while start < stop and not lines[start].strip():
            start += 1
        fields, count, end = _read_headers(lines, start, stop)
        if count == 0 or "from" not in fields:
            continue
        results.append(_build(fields, "\n".join(lines[end:stop]), ExtractionStrategy.MARKER))
    return results


def extract_forwarded(body: str) -> list[ExtractedSubMessage]:
    """Find messages embedded in ``body`` as forwarded or quoted text.

    Args:
        body: Decoded message body, plain text or HTML.

    Returns:
        Zero or more extracted sub-messages, header-block results first.
    """

    text = normalize_body_text(body)
    if not text.strip():
        return []

    lines = text.split("\n")
    extracted = _extract_header_blocks(lines) + _extract_marked(lines)
    if extracted:
        logger.debug(
            "forwarded_content_extracted",
            count=len(extracted),
            strategies=sorted({e.strategy.value for e in extracted}),
        )
    return extracted


def distinct_sub_messages(extracted: list[ExtractedSubMessage]) -> list[ExtractedSubMessage]:
    """Collapse sub-messages sharing a (from, subject, date) identity, keeping the first."""

    seen: set[tuple[str, str, str]] = set()
    unique: list[ExtractedSubMessage] = []
    for sub in extracted:
        key = (
            (sub.from_ or "").strip().lower(),
            (sub.subject or "").strip().lower(),
            (sub.date or "").strip().lower(),
        )
        if key in seen:
            continue
        seen.add(key)
        unique.append(sub)
    return unique
