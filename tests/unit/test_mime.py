"""Unit tests for Gmail payload decoding."""

import base64

import pytest

from mailsift.exceptions import MalformedBody
from mailsift.gmail.mime import decode_base64url, decode_body


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _leaf(mime_type: str, text: str) -> dict:
    return {"mimeType": mime_type, "body": {"data": _b64url(text.encode("utf-8"))}}


class TestDecodeBase64Url:
    """Test suite for decode_base64url."""

    def test_url_safe_alphabet_without_padding(self) -> None:
        """Test URL-safe characters and stripped padding are restored."""
        text = "Grüße ??>> from the <div> side~"
        encoded = _b64url(text.encode("utf-8"))
        assert "=" not in encoded

        assert decode_base64url(encoded) == text

    def test_whitespace_is_ignored(self) -> None:
        """Test that line-wrapped data still decodes."""
        encoded = _b64url(b"a fairly long line of text that gets wrapped")
        wrapped = encoded[:10] + "\r\n" + encoded[10:20] + "\n " + encoded[20:]

        assert decode_base64url(wrapped) == "a fairly long line of text that gets wrapped"

    def test_invalid_utf8_is_replaced(self) -> None:
        """Test that undecodable bytes become replacement characters."""
        assert "\ufffd" in decode_base64url(_b64url(b"\xff\xfeabc"))

    def test_invalid_base64_raises(self) -> None:
        """Test that non-base64 input is reported as MalformedBody."""
        with pytest.raises(MalformedBody):
            decode_base64url("!!!not*base64")


class TestDecodeBody:
    """Test suite for decode_body."""

    def test_single_part_message(self) -> None:
        """Test decoding a message with inline data on the payload itself."""
        assert decode_body(_leaf("text/plain", "Hello there")) == "Hello there"

    def test_prefers_plain_text_child(self) -> None:
        """Test that text/plain wins even when HTML comes first."""
        payload = {
            "mimeType": "multipart/alternative",
            "parts": [_leaf("text/html", "<p>HTML</p>"), _leaf("text/plain", "Plain")],
        }

        assert decode_body(payload) == "Plain"

    def test_html_only_multipart(self) -> None:
        """Test that an HTML-only multipart yields the HTML."""
        payload = {
            "mimeType": "multipart/alternative",
            "parts": [_leaf("text/html", "<p>Only HTML</p>")],
        }

        assert decode_body(payload) == "<p>Only HTML</p>"

    def test_nested_multipart(self) -> None:
        """Test that nested multiparts are searched in order."""
        payload = {
            "mimeType": "multipart/mixed",
            "parts": [
                {"mimeType": "application/pdf", "body": {"attachmentId": "att-1", "size": 1000}},
                {
                    "mimeType": "multipart/alternative",
                    "parts": [_leaf("text/html", "<div>Nested</div>")],
                },
            ],
        }

        assert decode_body(payload) == "<div>Nested</div>"

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            {},
            {"mimeType": "text/plain", "body": {"size": 0}},
            {"mimeType": "multipart/mixed", "parts": []},
            {"mimeType": "multipart/mixed", "parts": [{"mimeType": "image/png", "body": {"attachmentId": "x"}}]},
        ],
    )
    def test_nothing_usable_returns_empty(self, payload) -> None:
        """Test that empty or attachment-only payloads decode to an empty body."""
        assert decode_body(payload) == ""

    def test_malformed_body_returns_empty(self) -> None:
        """Test that invalid base64 is logged and never raised."""
        payload = {"mimeType": "text/plain", "body": {"data": "!!!not*base64"}}

        assert decode_body(payload) == ""
