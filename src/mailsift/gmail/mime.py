"""Body selection and transport decoding for Gmail message payloads."""

from __future__ import annotations

import base64
import binascii
from typing import Any

import structlog

from mailsift.exceptions import MalformedBody

logger = structlog.get_logger()


def decode_base64url(data: str) -> str:
    """Decode Gmail's base64url body data into text.

    Raises:
        MalformedBody: If the data is not valid base64.
    """

    normalized = "".join(data.split()).replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        raw = base64.b64decode(normalized, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedBody(str(exc)) from exc
    return raw.decode("utf-8", errors="replace")


def _mime(part: dict[str, Any]) -> str:
    return (part.get("mimeType") or "").lower()


def _inline_data(part: dict[str, Any]) -> str | None:
    body = part.get("body") or {}
    data = body.get("data")
    return data if isinstance(data, str) and data else None


def _decode_part(part: dict[str, Any]) -> str:
    data = _inline_data(part)
    if data is None:
        return ""
    try:
        return decode_base64url(data)
    except MalformedBody as exc:
        logger.warning("mime_body_malformed", mime_type=_mime(part), error=str(exc))
        return ""


def decode_body(part: dict[str, Any] | None) -> str:
    """Select and decode the textual body of a Gmail message part.

    A leaf with inline data is decoded directly. For multipart parts a direct
    ``text/plain`` child wins; otherwise children are walked in order and the
    first ``text/html`` leaf or non-empty nested multipart result is used.

    Returns:
        The decoded body, or an empty string when nothing usable is found.
    """

    if not part:
        return ""

    if _inline_data(part) is not None:
        return _decode_part(part)

    children = part.get("parts") or []
    if not children:
        return ""

    for child in children:
        if _mime(child) == "text/plain" and _inline_data(child) is not None:
            text = _decode_part(child)
            if text:
                return text

    for child in children:
        if _mime(child) == "text/html" and _inline_data(child) is not None:
            html = _decode_part(child)
            if html:
                return html
        if child.get("parts"):
            nested = decode_body(child)
            if nested:
                return nested

    return ""
