"""Per-user Google OAuth client cache.

One `ClientHandle` per WhatsApp user holds that user's in-memory Google
credentials. Client id, secret, redirect URI and scopes are process-wide and
come from settings; only the tokens vary per user.

The registry is an explicit object created by the app factory and passed to
the components that need it, so each test can start from an empty cache.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from datetime import datetime

from google.auth.exceptions import GoogleAuthError, RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from vitalsbot.config import Settings
from vitalsbot.domain.errors import ExternalServiceError
from vitalsbot.domain.identity import sanitize_user_id
from vitalsbot.google.models import OAuthCredential
from vitalsbot.google.services import http_status, sheets_service
from vitalsbot.infra.blocking import run_blocking
from vitalsbot.infra.time import epoch_millis, from_epoch_millis
from vitalsbot.observability.logging import get_logger
from vitalsbot.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Treat a token as expired this long before Google does
EXPIRY_SKEW_MS = 5 * 60 * 1000

RefreshListener = Callable[[OAuthCredential], Awaitable[None]]


def is_expired(credential: OAuthCredential, now_ms: int | None = None) -> bool:
    """True if there is no expiry or it falls within the skew window."""
    if not credential.expiry_date:
        return True
    now = now_ms if now_ms is not None else int(time.time() * 1000)
    return now >= credential.expiry_date - EXPIRY_SKEW_MS


def credential_from_google(creds: Credentials) -> OAuthCredential:
    """Snapshot a google-auth Credentials object."""
    return OAuthCredential(
        access_token=creds.token,
        refresh_token=creds.refresh_token,
        scope=" ".join(creds.scopes) if creds.scopes else None,
        token_type="Bearer",
        expiry_date=epoch_millis(creds.expiry) if creds.expiry else None,
    )


class ClientHandle:
    """In-memory OAuth state for one user."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        self.credentials: Credentials | None = None
        self._refresh_listener: RefreshListener | None = None
        self._seen_access_token: str | None = None

    @property
    def is_authorized(self) -> bool:
        return self.credentials is not None and bool(self.credentials.token)

    @property
    def has_refresh_listener(self) -> bool:
        return self._refresh_listener is not None

    def current_credential(self) -> OAuthCredential | None:
        if self.credentials is None:
            return None
        return credential_from_google(self.credentials)

    def require_credentials(self) -> Credentials:
        if self.credentials is None:
            raise ExternalServiceError("google_oauth", "no credentials applied for this user")
        return self.credentials

    def set_refresh_listener(self, callback: RefreshListener) -> None:
        self._refresh_listener = callback

    def mark_seen(self) -> None:
        """Record the current access token as already persisted."""
        self._seen_access_token = self.credentials.token if self.credentials else None

    async def notice_refresh(self) -> bool:
        """Deliver a token refresh the transport performed silently.

        google-auth refreshes expired credentials inside unrelated API calls.
        Call this after every such call; when the access token changed, the
        registered listener receives the new credential.

        Returns:
            True if a refresh was detected.
        """
        if self.credentials is None or self.credentials.token == self._seen_access_token:
            return False

        self.mark_seen()
        credential = credential_from_google(self.credentials)
        logger.info(
            "silent token refresh detected",
            extra={
                "extra_fields": safe_log_context(
                    user_hash=hash_identifier(self.user_id),
                    has_listener=self._refresh_listener is not None,
                )
            },
        )
        if self._refresh_listener is not None:
            await self._refresh_listener(credential)
        return True


class OAuthClientRegistry:
    """Bounded LRU cache of `ClientHandle` keyed by sanitized user id."""

    def __init__(self, settings: Settings, max_size: int | None = None) -> None:
        self._settings = settings
        self._max_size = max_size or settings.oauth_client_cache_size
        self._handles: OrderedDict[str, ClientHandle] = OrderedDict()

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, user_id: str) -> bool:
        return sanitize_user_id(user_id) in self._handles

    def get_or_create(self, user_id: str) -> ClientHandle:
        key = sanitize_user_id(user_id)
        handle = self._handles.get(key)
        if handle is not None:
            self._handles.move_to_end(key)
            return handle

        handle = ClientHandle(key)
        self._handles[key] = handle
        if len(self._handles) > self._max_size:
            evicted, _ = self._handles.popitem(last=False)
            logger.info(
                "oauth client evicted",
                extra={"extra_fields": safe_log_context(user_hash=hash_identifier(evicted))},
            )
        return handle

    def remove(self, user_id: str) -> None:
        self._handles.pop(sanitize_user_id(user_id), None)

    def clear(self) -> None:
        self._handles.clear()

    # -- authorization ------------------------------------------------------

    def _client_config(self) -> dict:
        self._settings.require_google()
        return {
            "web": {
                "client_id": self._settings.google_client_id,
                "client_secret": self._settings.google_client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [self._settings.google_redirect_uri],
            }
        }

    def _flow(self) -> Flow:
        # No PKCE: the code exchange must not depend on the process that built the URL
        return Flow.from_client_config(
            self._client_config(),
            scopes=list(self._settings.google_scopes),
            redirect_uri=self._settings.google_redirect_uri,
            autogenerate_code_verifier=False,
        )

    def build_authorization_url(self, handle: ClientHandle, state: str) -> str:
        """Consent URL with offline access; `state` is passed through as-is."""
        url, _ = self._flow().authorization_url(
            access_type="offline",
            prompt="consent",
            state=state,
        )
        logger.info(
            "authorization url built",
            extra={"extra_fields": safe_log_context(user_hash=hash_identifier(handle.user_id))},
        )
        return url

    async def exchange_code(self, handle: ClientHandle, code: str) -> OAuthCredential:
        """Exchange an authorization code for tokens.

        Raises:
            ExternalServiceError: If Google rejects the code or the call fails.
        """
        flow = self._flow()
        try:
            await run_blocking(
                flow.fetch_token,
                code=code,
                service="google_oauth",
                timeout=self._settings.external_call_timeout,
            )
        except ExternalServiceError:
            raise
        except Exception as e:
            logger.warning(
                "authorization code exchange failed",
                extra={
                    "extra_fields": safe_log_context(
                        user_hash=hash_identifier(handle.user_id),
                        error_type=type(e).__name__,
                    )
                },
            )
            raise ExternalServiceError("google_oauth", "code exchange rejected") from e

        return credential_from_google(flow.credentials)

    def set_credentials(self, handle: ClientHandle, credential: OAuthCredential) -> None:
        """Apply tokens to the handle so later calls on it are authorized."""
        expiry: datetime | None = None
        if credential.expiry_date:
            # google-auth compares against naive UTC datetimes
            expiry = from_epoch_millis(credential.expiry_date).replace(tzinfo=None)

        handle.credentials = Credentials(
            token=credential.access_token,
            refresh_token=credential.refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=self._settings.google_client_id,
            client_secret=self._settings.google_client_secret,
            scopes=credential.scope.split() if credential.scope else None,
            expiry=expiry,
        )
        handle.mark_seen()

    def on_token_refresh(self, handle: ClientHandle, callback: RefreshListener) -> None:
        """Register the refresh listener, replacing any previous one."""
        handle.set_refresh_listener(callback)

    # -- token lifecycle ----------------------------------------------------

    async def refresh_if_needed(
        self, handle: ClientHandle
    ) -> tuple[OAuthCredential | None, bool]:
        """Refresh the handle's token when it is expired.

        Returns:
            (credential, refreshed). The caller persists the credential when
            `refreshed` is True; the listener is not invoked for this refresh.

        Raises:
            ExternalServiceError: If Google refuses the refresh token.
        """
        current = handle.current_credential()
        if current is None or not is_expired(current) or not current.refresh_token:
            return current, False

        creds = handle.require_credentials()
        try:
            await run_blocking(
                creds.refresh,
                Request(),
                service="google_oauth",
                timeout=self._settings.external_call_timeout,
            )
        except RefreshError as e:
            raise ExternalServiceError("google_oauth", "refresh token rejected") from e
        except GoogleAuthError as e:
            raise ExternalServiceError("google_oauth", "token refresh failed") from e

        handle.mark_seen()
        refreshed = credential_from_google(creds)
        logger.info(
            "token refreshed",
            extra={"extra_fields": safe_log_context(user_hash=hash_identifier(handle.user_id))},
        )
        return refreshed, True

    async def probe_liveness(self, handle: ClientHandle, spreadsheet_id: str) -> bool:
        """Cheap authenticated call to confirm Google still accepts the token.

        Fail-closed: 401/403 and every other error count as "not live".
        """
        if handle.credentials is None:
            return False

        def _probe() -> None:
            service = sheets_service(handle.credentials)
            service.spreadsheets().get(
                spreadsheetId=spreadsheet_id, fields="spreadsheetId"
            ).execute()

        try:
            await run_blocking(
                _probe,
                service="google_sheets",
                timeout=self._settings.external_call_timeout,
            )
        except Exception as e:
            status = http_status(e)
            logger.warning(
                "liveness probe failed",
                extra={
                    "extra_fields": safe_log_context(
                        user_hash=hash_identifier(handle.user_id),
                        status=status,
                        auth_rejected=status in (401, 403),
                        error_type=type(e).__name__,
                    )
                },
            )
            return False

        await handle.notice_refresh()
        return True
