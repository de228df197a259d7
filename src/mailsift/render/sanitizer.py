"""Display-time transformation of message bodies into render-ready markup.

This is a best-effort cleanup for showing mailbox content inside the app, not
an allowlist sanitizer: unknown tags and most attributes pass through.
"""

from __future__ import annotations

import html
import re
from datetime import datetime

import structlog
from bs4 import BeautifulSoup
from bs4.element import PreformattedString

from mailsift.exceptions import MalformedBody
from mailsift.gmail.mime import decode_base64url
from mailsift.models import Message

logger = structlog.get_logger()

DEFAULT_MIN_MARKUP_CHARS = 20
PREVIEW_CHARS = 5000

_REMOVED_TAGS = ("script", "iframe")

_HIDING_STYLES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"display\s*:\s*none", re.IGNORECASE), "display: inline-block !important"),
    (re.compile(r"visibility\s*:\s*hidden", re.IGNORECASE), "visibility: visible !important"),
    (re.compile(r"opacity\s*:\s*0(?:\.0+)?(?![\d.])", re.IGNORECASE), "opacity: 1 !important"),
)

# Last line of defence after serialization; also catches unterminated tags.
_LEFTOVER_TAG_RE = re.compile(r"<\s*/?\s*(?:script|iframe)\b[^>]*>?", re.IGNORECASE)

_FILLER_ENTITIES_RE = re.compile(r"&#8199;|&#847;|&shy;", re.IGNORECASE)
_FILLER_CHARS_RE = re.compile("[\u2007\u034f\u00ad\u200b\u200c\u200d\ufeff]")
_BASE64_BODY_RE = re.compile(r"^(?:PG|ey)[A-Za-z0-9+/_=-]+$")
# Browsers drop ASCII whitespace and control characters inside a URL scheme.
_SCHEME_NOISE_RE = re.compile(r"[\x00-\x20\x7f]+")
# Tags and comments; bracketed addresses like <bob@example.com> are not markup.
_TAG_RE = re.compile(r"<(?:[a-zA-Z][a-zA-Z0-9]*(?:\s[^<>]*)?/?|/[a-zA-Z][a-zA-Z0-9]*\s*|!--.*?--)>", re.DOTALL)

_CONTAINER_STYLE = "max-width: 100%; overflow-x: hidden; word-wrap: break-word;"
_PLAIN_TEXT_STYLE = "white-space: pre-wrap; font-family: Arial, sans-serif; line-height: 1.6;"


def _unwrap_base64(body: str) -> str:
    compact = "".join(body.split())
    if len(compact) < 16 or not _BASE64_BODY_RE.match(compact):
        return body
    try:
        decoded = decode_base64url(compact)
    except MalformedBody:
        return body
    if len(decoded) <= 10 or "\ufffd" in decoded:
        return body
    return decoded


def _strip_fillers(body: str) -> str:
    # UTF-8 non-breaking spaces mis-decoded as Latin-1.
    body = body.replace("\u00c2\u00a0", " ")
    body = _FILLER_ENTITIES_RE.sub("", body)
    return _FILLER_CHARS_RE.sub("", body)


def _is_markup(body: str) -> bool:
    return _TAG_RE.search(body) is not None


def _plain_text_markup(body: str) -> str:
    escaped = html.escape(body).replace("\n", "<br>")
    return f'<div style="{_PLAIN_TEXT_STYLE}">{escaped}</div>'


def _unhide(style: str) -> str:
    for pattern, replacement in _HIDING_STYLES:
        style = pattern.sub(replacement, style)
    return style


def _clean_markup(markup: str) -> str:
    soup = BeautifulSoup(markup, "html.parser")

    # One at a time: decomposing a parent also destroys any nested matches.
    while (tag := soup.find(_REMOVED_TAGS)) is not None:
        tag.decompose()

    # Comments, CDATA and declarations serialize verbatim and could carry tags.
    for node in soup.find_all(string=lambda s: isinstance(s, PreformattedString)):
        node.extract()

    while (tag := soup.find("style")) is not None:
        tag.decompose()

    for tag in soup.find_all(True):
        for attr in [a for a in tag.attrs if a.lower().startswith("on")]:
            del tag[attr]

    for link in soup.find_all("a", href=True):
        if _SCHEME_NOISE_RE.sub("", link["href"]).lower().startswith("javascript:"):
            link["href"] = "#"
        link["target"] = "_blank"
        link["rel"] = "noopener noreferrer"

    for tag in soup.find_all(style=True):
        tag["style"] = _unhide(tag["style"])

    return str(soup)


def _remove_leftover_tags(markup: str) -> str:
    previous = None
    while previous != markup:
        previous = markup
        markup = _LEFTOVER_TAG_RE.sub("", markup)
    return markup


def _field(value: str | None, default: str) -> str:
    return html.escape(value) if value else default


def _format_date(value: datetime | None) -> str:
    return html.escape(value.strftime("%Y-%m-%d %H:%M %Z").strip()) if value else "Unknown Date"


def fallback_view(message: Message | None, body: str) -> str:
    """Structured view built from the message's header fields."""

    preview = body if len(body) <= PREVIEW_CHARS else body[:PREVIEW_CHARS] + "..."
    subject = _field(message.subject if message else None, "No Subject")
    sender = _field(message.from_ if message else None, "Unknown Sender")
    recipient = _field(message.to if message else None, "Unknown Recipient")
    date = _format_date(message.date if message else None)

    rows = [
        f"<p><strong>Email Subject:</strong> {subject}</p>",
        f"<p><strong>From:</strong> {sender}</p>",
        f"<p><strong>To:</strong> {recipient}</p>",
        f"<p><strong>Date:</strong> {date}</p>",
    ]
    if message is not None and message.is_forwarded:
        rows.append("<p><strong>Contains Forwarded Content:</strong> Yes</p>")
    if message is not None and message.recipients:
        rows.append(f"<p><strong>Contains {len(message.recipients)} Recipients</strong></p>")

    notice = (
        '<div class="mailsift-notice">'
        "<h3>Email Content Issue</h3>"
        "<p>The email content appears to be incomplete or empty.</p>"
        "</div>"
    )
    details = (
        '<div class="mailsift-fallback">'
        + "".join(rows)
        + "<div><p><strong>Content Preview:</strong></p>"
        + f'<div style="{_PLAIN_TEXT_STYLE}">{html.escape(preview)}</div></div>'
        + "</div>"
    )
    return _remove_leftover_tags(notice + details)


def sanitize(
    raw_body: str | None,
    message: Message | None = None,
    *,
    min_markup_chars: int = DEFAULT_MIN_MARKUP_CHARS,
) -> str:
    """Turn a raw or decoded body into safe, render-ready markup.

    Steps, in order: remove ``<script>`` and ``<iframe>`` elements, remove
    ``<style>`` blocks, make every link open in a new context without a
    referrer, and force inline-hidden elements visible. When the result is
    implausibly short (and has no image) a fallback view built from the
    message's header fields is returned instead.

    Args:
        raw_body: Body text or HTML. If None, ``message.body`` is used.
        message: Message supplying header fields for the fallback view.
        min_markup_chars: Content shorter than this triggers the fallback.

    Returns:
        Markup containing no ``<script>`` or ``<iframe>`` tags.
    """

    body = raw_body if raw_body is not None else (message.body if message else "")
    body = _strip_fillers(_unwrap_base64(body or ""))

    if _is_markup(body):
        content = _clean_markup(body)
    else:
        content = _plain_text_markup(body)
    content = _remove_leftover_tags(content).strip()

    visible = BeautifulSoup(content, "html.parser")
    if (len(content) < min_markup_chars or not visible.get_text(strip=True)) and not visible.find("img"):
        logger.info("sanitizer_fallback_used", message_id=message.id if message else None)
        return fallback_view(message, body)

    return f'<div style="{_CONTAINER_STYLE}">{content}</div>'
