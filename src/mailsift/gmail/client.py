"""Gmail API client implementation.

This module provides a client for the two Gmail operations the sync pipeline
consumes: listing candidate message ids and retrieving a full message.

Notes:
    The Google API client is synchronous. This project wraps those calls using
    `asyncio.to_thread` so the rest of the codebase can remain async-friendly.
    httplib2 connections are not thread-safe, so every request executes on its
    own timeout-bound transport authorized with the caller's access token.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from mailsift.config import Settings
from mailsift.exceptions import TransientNetworkError

logger = structlog.get_logger()


class GmailClient:
    """Gmail API client for message listing and retrieval."""

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize Gmail client.

        Args:
            settings: Application settings. If None, uses default settings.
        """
        from mailsift.config import get_settings

        self.settings = settings or get_settings()
        self._service: Any | None = None
        logger.info("gmail_client_initialized")

    async def list_candidate_ids(
        self,
        access_token: str,
        query: str | None = None,
        max_results: int | None = None,
    ) -> list[str]:
        """List message ids matching a Gmail search query.

        Args:
            access_token: Valid OAuth access token.
            query: Gmail search query string.
            max_results: Maximum number of ids to return.

        Returns:
            Message ids, newest first as returned by Gmail.

        Raises:
            TransientNetworkError: If the API request fails.
        """

        logger.info("listing_messages", max_results=max_results, query=query)

        try:
            return await asyncio.to_thread(self._list_ids_sync, access_token, query, max_results)
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_list_messages_failed", error=str(exc))
            raise TransientNetworkError(str(exc)) from exc

    async def get_message(self, access_token: str, message_id: str) -> dict[str, Any]:
        """Get a specific message by ID in ``full`` format.

        Args:
            access_token: Valid OAuth access token.
            message_id: The Gmail message ID.

        Returns:
            Message data dictionary.

        Raises:
            TransientNetworkError: If the API request fails.
        """

        logger.debug("getting_message", message_id=message_id)

        try:
            return await asyncio.to_thread(self._get_message_sync, access_token, message_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("gmail_get_message_failed", message_id=message_id, error=str(exc))
            raise TransientNetworkError(str(exc)) from exc

    def _get_service(self) -> Any:
        if self._service is None:
            # Imported lazily to keep import-time cost low and tests fast.
            import httplib2
            from googleapiclient.discovery import build

            # The discovery document ships with the client; no request is made here.
            self._service = build(
                "gmail",
                "v1",
                http=httplib2.Http(timeout=self.settings.http_timeout_seconds),
                cache_discovery=False,
            )
        return self._service

    def _authorized_http(self, access_token: str) -> Any:
        import httplib2
        from google.oauth2.credentials import Credentials
        from google_auth_httplib2 import AuthorizedHttp

        return AuthorizedHttp(
            Credentials(token=access_token),
            http=httplib2.Http(timeout=self.settings.http_timeout_seconds),
        )

    def _list_ids_sync(
        self,
        access_token: str,
        query: str | None,
        max_results: int | None,
    ) -> list[str]:
        service = self._get_service()
        user_id = self.settings.gmail_user_id
        ids: list[str] = []

        page_token: str | None = None
        while True:
            if max_results is not None and len(ids) >= max_results:
                break

            remaining = None if max_results is None else max_results - len(ids)
            per_page = 500 if remaining is None else min(500, remaining)

            request = (
                service.users()
                .messages()
                .list(userId=user_id, maxResults=per_page, q=query, pageToken=page_token)
            )
            response = request.execute(http=self._authorized_http(access_token))
            for msg in response.get("messages", []) or []:
                msg_id = msg.get("id")
                if msg_id:
                    ids.append(str(msg_id))
            page_token = response.get("nextPageToken")
            if page_token is None:
                break

        return ids if max_results is None else ids[:max_results]

    def _get_message_sync(self, access_token: str, message_id: str) -> dict[str, Any]:
        service = self._get_service()
        request = (
            service.users()
            .messages()
            .get(userId=self.settings.gmail_user_id, id=message_id, format="full")
        )
        return request.execute(http=self._authorized_http(access_token))
