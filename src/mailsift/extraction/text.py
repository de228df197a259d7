"""Plain-text views of message bodies for the regex heuristics."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

_HTML_HINT_RE = re.compile(r"<(?:html|body|div|p|br|table|span|blockquote)\b", re.IGNORECASE)

_BLOCK_TAGS = ("p", "div", "tr", "li", "blockquote", "h1", "h2", "h3", "h4", "h5", "h6")


def looks_like_html(body: str) -> bool:
    return bool(_HTML_HINT_RE.search(body or ""))


def html_to_text(body: str) -> str:
    """Flatten HTML into text keeping line structure.

    ``<br>`` and block elements become line breaks so that header lines like
    ``From: <b>Name</b> &lt;addr&gt;<br>`` stay on a single line.
    """

    soup = BeautifulSoup(body, "html.parser")
    for tag in soup(["script", "style", "head"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(_BLOCK_TAGS):
        block.append("\n")

    text = soup.get_text()
    text = text.replace("\r\n", "\n").replace("\xa0", " ")
    return re.sub(r"\n{3,}", "\n\n", text)


def normalize_body_text(body: str) -> str:
    """Return a newline-normalized text view of a body (HTML flattened)."""

    if not body:
        return ""
    if looks_like_html(body):
        return html_to_text(body)
    return body.replace("\r\n", "\n").replace("\r", "\n")
