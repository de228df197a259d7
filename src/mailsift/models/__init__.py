"""Data models for mailsift.

This module contains Pydantic models for data validation and serialization.
"""

from __future__ import annotations

from datetime import datetime
from email.utils import parseaddr
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ExtractionStrategy(str, Enum):
    """Heuristic that produced an extracted sub-message."""

    HEADER_BLOCK = "header_block"
    MARKER = "marker"


class Credential(BaseModel):
    """OAuth client registration plus the current token pair."""

    id: int | None = Field(default=None, description="Store-assigned record id")
    client_id: str = Field(description="OAuth client id")
    client_secret: str = Field(description="OAuth client secret")
    access_token: str | None = Field(default=None, description="Current access token")
    refresh_token: str | None = Field(default=None, description="Long-lived refresh token")
    expiry: datetime | None = Field(default=None, description="Access token expiry (UTC)")
    active: bool = Field(default=False, description="Whether this credential is used for sync")
    needs_reauthorization: bool = Field(
        default=False,
        description="Set when the provider rejected the refresh grant",
    )


class ExtractedSubMessage(BaseModel):
    """A best-effort reconstruction of a message embedded in another message's body."""

    model_config = ConfigDict(populate_by_name=True)

    from_: str | None = Field(default=None, alias="from", description="From header value")
    to: str | None = Field(default=None, description="To header value")
    cc: str | None = Field(default=None, description="Cc header value")
    bcc: str | None = Field(default=None, description="Bcc header value")
    subject: str | None = Field(default=None, description="Subject header value")
    date: str | None = Field(default=None, description="Date header value, unparsed")
    body: str | None = Field(default=None, description="Embedded body text")
    strategy: ExtractionStrategy = Field(description="Heuristic that produced this record")


class Message(BaseModel):
    """A fetched mailbox message plus its derived extraction data."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Provider-assigned message id")
    thread_id: str | None = Field(default=None, description="Provider thread id")
    from_: str = Field(default="", alias="from", description="Raw From header")
    to: str = Field(default="", description="Raw To header")
    subject: str = Field(default="", description="Subject header")
    date: datetime | None = Field(default=None, description="Message date (UTC aware)")
    body: str = Field(default="", description="Decoded text or HTML body")
    is_read: bool = Field(default=False, description="Local read flag")
    is_hidden: bool = Field(default=False, description="Local hidden flag")
    labels: list[str] = Field(default_factory=list, description="Provider label ids")
    raw_headers: str | None = Field(default=None, description="Header block as text")

    # Raw values of addressee-like headers other than To (Cc, Bcc, Delivered-To, ...).
    recipient_headers: dict[str, str] = Field(default_factory=dict)

    extracted: list[ExtractedSubMessage] = Field(
        default_factory=list,
        description="Messages found embedded in the body",
    )
    recipients: list[str] = Field(
        default_factory=list,
        description="Sorted, lower-cased addresses from headers and extracted messages",
    )

    @property
    def sender_domain(self) -> str:
        _, addr = parseaddr(self.from_ or "")
        if "@" in addr:
            return addr.rsplit("@", 1)[1].strip().lower() or "unknown"
        return "unknown"

    @property
    def is_forwarded(self) -> bool:
        return bool(self.extracted)


__all__ = [
    "Credential",
    "ExtractedSubMessage",
    "ExtractionStrategy",
    "Message",
]
