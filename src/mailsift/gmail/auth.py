"""OAuth2 credential lifecycle for the Gmail API.

Two concerns live here:

* keeping a valid access token available before every sync (proactive refresh
  through a refresh-token grant), and
* the initial authorization flow that produces the refresh token.

The refresh grant goes through ``google-auth``; the authorization flow through
``google-auth-oauthlib``.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from mailsift.config import Settings
from mailsift.exceptions import ReauthorizationRequired, TransientNetworkError
from mailsift.models import Credential
from mailsift.store.credentials import CredentialRepository

logger = structlog.get_logger()

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"

# Error codes from the token endpoint that no retry can fix.
_TERMINAL_GRANT_ERRORS = ("invalid_grant", "invalid_client", "unauthorized_client")


@dataclass(frozen=True)
class TokenGrant:
    """Result of a refresh-token grant."""

    access_token: str
    expires_in_seconds: int


TokenExchange = Callable[[Credential], TokenGrant]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        # google-auth reports expiry as naive UTC.
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def needs_refresh(credential: Credential, now: datetime, margin: timedelta) -> bool:
    """Return True when the access token is missing or expires within ``margin``."""

    if not credential.access_token:
        return True
    expiry = _as_utc(credential.expiry)
    if expiry is None:
        return False
    return now + margin >= expiry


class GoogleTokenExchange:
    """Refresh-token grant against Google's token endpoint."""

    def __init__(self, timeout_seconds: float = 30.0) -> None:
        self._timeout = timeout_seconds

    def __call__(self, credential: Credential) -> TokenGrant:
        from google.auth.exceptions import RefreshError, TransportError
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials

        if not credential.refresh_token:
            raise ReauthorizationRequired("No refresh token stored for this credential")
        if not credential.client_secret:
            raise ReauthorizationRequired("Client secret missing; cannot refresh")

        creds = Credentials(
            token=None,
            refresh_token=credential.refresh_token,
            client_id=credential.client_id,
            client_secret=credential.client_secret,
            token_uri=TOKEN_URI,
        )
        request = functools.partial(Request(), timeout=self._timeout)

        try:
            creds.refresh(request)
        except RefreshError as exc:
            if any(code in str(exc) for code in _TERMINAL_GRANT_ERRORS):
                raise ReauthorizationRequired(str(exc)) from exc
            raise TransientNetworkError(str(exc)) from exc
        except TransportError as exc:
            raise TransientNetworkError(str(exc)) from exc

        expiry = _as_utc(creds.expiry)
        expires_in = 3600 if expiry is None else int((expiry - _utcnow()).total_seconds())
        return TokenGrant(access_token=creds.token, expires_in_seconds=expires_in)


class TokenRefresher:
    """Ensures a valid access token is available before any API call.

    Only one refresh per credential runs at a time; callers that arrive while
    a refresh is in flight wait for it and reuse the stored result.
    """

    def __init__(
        self,
        store: CredentialRepository,
        exchange: TokenExchange | None = None,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        from mailsift.config import get_settings

        self.settings = settings or get_settings()
        self._store = store
        self._exchange = exchange or GoogleTokenExchange(self.settings.http_timeout_seconds)
        self._clock = clock
        self._margin = timedelta(seconds=self.settings.token_refresh_margin_seconds)
        self._locks: dict[int | None, asyncio.Lock] = {}
        self._locks_loop: asyncio.AbstractEventLoop | None = None

    async def ensure_valid_token(self, credential: Credential) -> str:
        """Return a usable access token, refreshing it first if needed.

        A rejected grant marks the stored credential as needing
        reauthorization before the error propagates.

        Raises:
            ReauthorizationRequired: The refresh grant was rejected or is impossible.
            TransientNetworkError: The token endpoint could not be reached.
        """

        if credential.needs_reauthorization:
            raise ReauthorizationRequired("Credential is waiting for a new authorization")

        if not needs_refresh(credential, self._clock(), self._margin):
            assert credential.access_token is not None
            return credential.access_token

        async with self._lock_for(credential.id):
            current = self._reload(credential)
            if current.needs_reauthorization:
                raise ReauthorizationRequired("Credential is waiting for a new authorization")
            if not needs_refresh(current, self._clock(), self._margin):
                assert current.access_token is not None
                return current.access_token

            logger.info("token_refresh_started", credential_id=current.id)
            try:
                grant = await asyncio.to_thread(self._exchange, current)
            except ReauthorizationRequired as exc:
                logger.error("token_refresh_rejected", credential_id=current.id, error=str(exc))
                if current.id is not None:
                    self._store.mark_reauthorization_required(current.id)
                raise
            except TransientNetworkError as exc:
                logger.warning("token_refresh_failed", credential_id=current.id, error=str(exc))
                raise

            expiry = self._clock() + timedelta(seconds=grant.expires_in_seconds)
            if current.id is not None:
                self._store.update_token(current.id, grant.access_token, expiry)
            logger.info("token_refresh_completed", credential_id=current.id, expiry=expiry.isoformat())
            return grant.access_token

    def _reload(self, credential: Credential) -> Credential:
        if credential.id is None:
            return credential
        return self._store.get(credential.id) or credential

    def _lock_for(self, credential_id: int | None) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if loop is not self._locks_loop:
            # Locks bind to the loop that first waits on them; each sync cycle may run on a new loop.
            self._locks = {}
            self._locks_loop = loop
        return self._locks.setdefault(credential_id, asyncio.Lock())


def _client_config(credential: Credential, kind: str, redirect_uri: str | None = None) -> dict[str, Any]:
    config: dict[str, Any] = {
        "client_id": credential.client_id,
        "client_secret": credential.client_secret,
        "auth_uri": AUTH_URI,
        "token_uri": TOKEN_URI,
    }
    if redirect_uri:
        config["redirect_uris"] = [redirect_uri]
    return {kind: config}


def _with_oauth_tokens(credential: Credential, creds: Any) -> Credential:
    return credential.model_copy(
        update={
            "access_token": creds.token,
            "refresh_token": creds.refresh_token or credential.refresh_token,
            "expiry": _as_utc(creds.expiry),
            "needs_reauthorization": False,
        }
    )


def build_authorization_url(
    credential: Credential,
    *,
    redirect_uri: str,
    scope: str,
    state: str | None = None,
) -> str:
    """Build the consent URL an operator opens to authorize offline Gmail access."""

    from google_auth_oauthlib.flow import Flow

    flow = Flow.from_client_config(
        _client_config(credential, "web", redirect_uri),
        scopes=[scope],
        redirect_uri=redirect_uri,
        autogenerate_code_verifier=False,
    )
    url, _ = flow.authorization_url(access_type="offline", prompt="consent", state=state)
    return url


def exchange_authorization_code(
    credential: Credential,
    code: str,
    *,
    redirect_uri: str,
    scope: str,
    timeout_seconds: float = 30.0,
) -> Credential:
    """Exchange the code returned to the redirect URI for a token pair.

    Args:
        credential: Client registration the code was issued to.
        code: Authorization code from the redirect.
        redirect_uri: Redirect URI used for the consent URL.
        scope: Gmail scope requested at consent.
        timeout_seconds: Timeout for the token endpoint request.

    Returns:
        The credential with fresh tokens and the reauthorization flag cleared.

    Raises:
        ReauthorizationRequired: If the provider rejects the code.
    """

    from google_auth_oauthlib.flow import Flow

    flow = Flow.from_client_config(
        _client_config(credential, "web", redirect_uri),
        scopes=[scope],
        redirect_uri=redirect_uri,
        autogenerate_code_verifier=False,
    )
    try:
        flow.fetch_token(code=code, timeout=timeout_seconds)
    except Exception as exc:  # noqa: BLE001
        logger.exception("authorization_code_exchange_failed", error=str(exc))
        raise ReauthorizationRequired(f"Authorization code exchange failed: {exc}") from exc

    logger.info("authorization_code_exchanged", credential_id=credential.id)
    return _with_oauth_tokens(credential, flow.credentials)


def authorize_local(credential: Credential, *, scope: str) -> Credential:
    """Run the interactive local-server consent flow and return the authorized credential."""

    from google_auth_oauthlib.flow import InstalledAppFlow

    flow = InstalledAppFlow.from_client_config(
        _client_config(credential, "installed"),
        scopes=[scope],
    )
    creds = flow.run_local_server(port=0, access_type="offline", prompt="consent")
    logger.info("local_authorization_completed", credential_id=credential.id)
    return _with_oauth_tokens(credential, creds)
