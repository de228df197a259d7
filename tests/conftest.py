"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from mailsift.config import Settings
from mailsift.exceptions import TransientNetworkError
from mailsift.gmail.auth import TokenGrant
from mailsift.models import Credential
from mailsift.store import CorpusRepository, CredentialRepository, Database

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)

FORWARDED_BODY = """Hi team, see below.

---------- Forwarded message ---------
From: Bob Partner <bob@partner.org>
Date: Mon, 6 May 2024 at 10:00
Subject: Contract draft
To: Alice <alice@example.com>

Please review the attached contract.
"""


def b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def make_gmail_message(
    message_id: str,
    *,
    subject: str = "Hello",
    sender: str = "Sender <sender@example.com>",
    to: str = "me@mailbox.test",
    body: str = "Plain body text",
    html: str | None = None,
    labels: tuple[str, ...] = ("INBOX", "UNREAD"),
    date: str | None = "Mon, 06 May 2024 10:00:00 +0000",
    extra_headers: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build a Gmail API message (format=full) with base64url-encoded parts."""

    headers = [
        {"name": "From", "value": sender},
        {"name": "To", "value": to},
        {"name": "Subject", "value": subject},
    ]
    if date is not None:
        headers.append({"name": "Date", "value": date})
    for name, value in (extra_headers or {}).items():
        headers.append({"name": name, "value": value})

    parts = [{"mimeType": "text/plain", "body": {"data": b64url(body)}}]
    if html is not None:
        parts.append({"mimeType": "text/html", "body": {"data": b64url(html)}})

    return {
        "id": message_id,
        "threadId": f"thread-{message_id}",
        "labelIds": list(labels),
        "internalDate": "1715000000000",
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": headers,
            "parts": parts,
        },
    }


class FakeGmailClient:
    """In-memory stand-in for GmailClient."""

    def __init__(self, messages: list[dict[str, Any]] | None = None) -> None:
        self.messages: dict[str, dict[str, Any]] = {m["id"]: m for m in messages or []}
        self.failing_ids: set[str] = set()
        self.list_error: Exception | None = None
        self.queries: list[str | None] = []
        self.max_results: list[int | None] = []
        self.tokens: list[str] = []

    async def list_candidate_ids(
        self,
        access_token: str,
        query: str | None = None,
        max_results: int | None = None,
    ) -> list[str]:
        self.tokens.append(access_token)
        self.queries.append(query)
        self.max_results.append(max_results)
        if self.list_error is not None:
            raise self.list_error
        ids = list(self.messages)
        return ids if max_results is None else ids[:max_results]

    async def get_message(self, access_token: str, message_id: str) -> dict[str, Any]:
        if message_id in self.failing_ids:
            raise TransientNetworkError(f"HTTP 500 for {message_id}")
        return self.messages[message_id]


class FakeTokenExchange:
    """Callable token endpoint that returns a fixed grant or raises."""

    def __init__(self, access_token: str = "refreshed-token", expires_in: int = 3600) -> None:
        self.grant = TokenGrant(access_token=access_token, expires_in_seconds=expires_in)
        self.error: Exception | None = None
        self.calls = 0

    def __call__(self, credential: Credential) -> TokenGrant:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.grant


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Provide isolated settings for testing."""
    return Settings(
        _env_file=None,
        db_path=tmp_path / "mailsift.sqlite3",
        known_sender_domains=["example.com"],
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def database(settings: Settings) -> Database:
    db = Database(settings.db_path)
    db.initialize()
    return db


@pytest.fixture
def credentials(database: Database) -> CredentialRepository:
    return CredentialRepository(database)


@pytest.fixture
def corpus(database: Database) -> CorpusRepository:
    return CorpusRepository(database)


@pytest.fixture
def active_credential(credentials: CredentialRepository) -> Credential:
    """An active credential whose access token is valid for another hour."""
    return credentials.add(
        Credential(
            client_id="client-123.apps.googleusercontent.com",
            client_secret="secret",
            access_token="valid-token",
            refresh_token="refresh-token",
            expiry=NOW + timedelta(hours=1),
        )
    )


@pytest.fixture
def gmail_message_factory():
    """Provide the Gmail API message builder."""
    return make_gmail_message


@pytest.fixture
def forwarded_gmail_message() -> dict[str, Any]:
    """A message whose only mention of alice@example.com is inside forwarded content."""
    return make_gmail_message(
        "msg-fwd",
        subject="Fwd: Contract draft",
        sender="Carol <carol@example.com>",
        to="team@mailbox.test",
        body=FORWARDED_BODY,
    )


@pytest.fixture
def fake_gmail() -> FakeGmailClient:
    return FakeGmailClient()


@pytest.fixture
def token_exchange() -> FakeTokenExchange:
    return FakeTokenExchange()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def forwarded_body() -> str:
    return FORWARDED_BODY
