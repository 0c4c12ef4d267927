"""Google authorization flow started from a WhatsApp link.

`begin` turns the opaque ``state`` from the link into the Google consent URL.
`complete` handles the OAuth callback: exchange the code, provision the
user's spreadsheet on first connection, store the (spreadsheet, tokens) pair
and tell the user on WhatsApp how it went.
"""

from __future__ import annotations

from dataclasses import dataclass

from vitalsbot.config import Settings
from vitalsbot.domain.connect import ConnectStep, send_connect_step
from vitalsbot.domain.errors import ExternalServiceError
from vitalsbot.domain.identity import decode_state
from vitalsbot.google.credential_store import CredentialStore
from vitalsbot.google.oauth_registry import OAuthClientRegistry
from vitalsbot.observability.logging import get_logger
from vitalsbot.observability.redaction import hash_identifier, safe_log_context
from vitalsbot.whatsapp.meta_sender import MetaSender

logger = get_logger(__name__)


@dataclass(frozen=True)
class CallbackOutcome:
    """HTTP answer for the OAuth callback."""

    status_code: int
    message: str

    @property
    def ok(self) -> bool:
        return self.status_code == 200


class AuthorizationService:
    def __init__(
        self,
        settings: Settings,
        registry: OAuthClientRegistry,
        store: CredentialStore,
        gateway: MetaSender,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._store = store
        self._gateway = gateway

    def begin(self, state: str) -> str:
        """Consent URL for the user encoded in `state`.

        Raises:
            StateDecodeError: If `state` does not decode to a user id.
        """
        user_id = decode_state(state)
        handle = self._registry.get_or_create(user_id)
        return self._registry.build_authorization_url(handle, state)

    async def complete(self, code: str | None, state: str) -> CallbackOutcome:
        """Finish the OAuth dance for the user encoded in `state`.

        Raises:
            StateDecodeError: If `state` does not decode to a user id; there
                is then nobody to notify.
        """
        user_id = decode_state(state)
        user_hash = hash_identifier(user_id)

        if not code:
            logger.warning(
                "oauth callback without code",
                extra={"extra_fields": safe_log_context(user_hash=user_hash)},
            )
            await self._notify(user_id, ConnectStep.FAILED)
            return CallbackOutcome(400, "Authorization code is missing.")

        handle = self._registry.get_or_create(user_id)
        try:
            credential = await self._registry.exchange_code(handle, code)
            self._registry.set_credentials(handle, credential)

            spreadsheet_id = await self._store.find_spreadsheet_id(user_id, handle)
            if not spreadsheet_id:
                spreadsheet_id = await self._store.create_spreadsheet(user_id, handle)
            if not spreadsheet_id:
                await self._notify(user_id, ConnectStep.FAILED)
                return CallbackOutcome(500, "Failed to create spreadsheet.")

            result = await self._store.write_credential_blob(
                handle, user_id, spreadsheet_id, credential
            )
            if not result.ok:
                await self._notify(user_id, ConnectStep.FAILED)
                return CallbackOutcome(500, f"Failed to update tokens: {result.message}")
        except Exception as e:
            logger.exception(
                "oauth callback failed",
                extra={
                    "extra_fields": safe_log_context(
                        user_hash=user_hash, error_type=type(e).__name__
                    )
                },
            )
            await self._notify(user_id, ConnectStep.FAILED)
            return CallbackOutcome(500, "Authentication failed! Please retry again.")

        logger.info(
            "google account connected",
            extra={"extra_fields": safe_log_context(user_hash=user_hash)},
        )
        await self._notify(user_id, ConnectStep.FINISHED)
        return CallbackOutcome(200, "Authentication successful! You can close this window.")

    async def _notify(self, user_id: str, step: ConnectStep) -> None:
        # The wa_id is the user's number, so it is also the reply address
        try:
            await send_connect_step(
                self._gateway, self._settings.public_base_url, user_id, user_id, step
            )
        except ExternalServiceError as e:
            logger.error(
                "connection status not delivered",
                extra={
                    "extra_fields": safe_log_context(
                        user_hash=hash_identifier(user_id), step=step.value, status=e.status
                    )
                },
            )
