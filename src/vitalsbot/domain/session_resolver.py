"""Session resolution for a WhatsApp user.

Combines the credential store and the OAuth registry to decide, for every
inbound message, whether the user's stored Google credential is usable:

    no spreadsheet / no stored tokens     -> NO_SESSION
    token live                            -> VALID
    token not live                        -> REVOKED
    expired, refresh ok and probe ok      -> EXPIRED_WITH_REFRESH
    expired, refresh or probe fails       -> REVOKED
    expired, no refresh token             -> EXPIRED_NO_REFRESH

`resolve` never raises: any unexpected failure yields NO_SESSION with
``needs_reauthorization`` set, so ambiguity always means "reconnect".
"""

from __future__ import annotations

from vitalsbot.domain.errors import ExternalServiceError
from vitalsbot.domain.identity import sanitize_user_id
from vitalsbot.domain.session import SessionRecord, SessionState
from vitalsbot.google.credential_store import CredentialStore
from vitalsbot.google.models import OAuthCredential
from vitalsbot.google.oauth_registry import ClientHandle, OAuthClientRegistry, is_expired
from vitalsbot.observability.logging import get_logger
from vitalsbot.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)


class SessionResolver:
    def __init__(self, registry: OAuthClientRegistry, store: CredentialStore) -> None:
        self._registry = registry
        self._store = store

    async def resolve(self, user_id: str) -> SessionRecord:
        clean_id = sanitize_user_id(user_id)
        user_hash = hash_identifier(clean_id)
        try:
            record = await self._resolve(clean_id)
        except Exception:
            logger.exception(
                "session check failed",
                extra={"extra_fields": safe_log_context(user_hash=user_hash)},
            )
            return SessionRecord.no_session()

        logger.info(
            "session resolved",
            extra={
                "extra_fields": safe_log_context(
                    user_hash=user_hash,
                    state=record.state.value,
                    needs_reauthorization=record.needs_reauthorization,
                )
            },
        )
        return record

    async def can_proceed(self, user_id: str) -> bool:
        record = await self.resolve(user_id)
        return not record.needs_reauthorization

    async def _resolve(self, user_id: str) -> SessionRecord:
        handle = self._registry.get_or_create(user_id)

        spreadsheet_id = await self._store.find_spreadsheet_id(user_id, handle)
        if not spreadsheet_id:
            return SessionRecord.no_session()

        stored = await self._store.read_credential_blob(user_id, spreadsheet_id, handle)
        if stored is None or not stored.access_token:
            return SessionRecord.no_session(spreadsheet_id)

        credential = stored.credential
        self._registry.set_credentials(handle, credential)
        self._registry.on_token_refresh(
            handle, self._persist_refreshed(handle, user_id, spreadsheet_id)
        )

        if not is_expired(credential):
            if await self._registry.probe_liveness(handle, spreadsheet_id):
                return SessionRecord(
                    state=SessionState.VALID,
                    needs_reauthorization=False,
                    credential=handle.current_credential() or credential,
                    spreadsheet_id=spreadsheet_id,
                )
            return self._revoked(spreadsheet_id)

        if not credential.refresh_token:
            return SessionRecord(
                state=SessionState.EXPIRED_NO_REFRESH,
                needs_reauthorization=True,
                spreadsheet_id=spreadsheet_id,
            )

        try:
            refreshed_credential, refreshed = await self._registry.refresh_if_needed(handle)
        except ExternalServiceError as e:
            logger.warning(
                "token refresh failed",
                extra={
                    "extra_fields": safe_log_context(
                        user_hash=hash_identifier(user_id), error=str(e)
                    )
                },
            )
            return self._revoked(spreadsheet_id)

        if not await self._registry.probe_liveness(handle, spreadsheet_id):
            return self._revoked(spreadsheet_id)

        current = handle.current_credential() or refreshed_credential or credential
        if refreshed:
            await self._persist(handle, user_id, spreadsheet_id, current)

        return SessionRecord(
            state=SessionState.EXPIRED_WITH_REFRESH,
            needs_reauthorization=False,
            credential=current,
            spreadsheet_id=spreadsheet_id,
        )

    @staticmethod
    def _revoked(spreadsheet_id: str) -> SessionRecord:
        return SessionRecord(
            state=SessionState.REVOKED,
            needs_reauthorization=True,
            spreadsheet_id=spreadsheet_id,
        )

    def _persist_refreshed(self, handle: ClientHandle, user_id: str, spreadsheet_id: str):
        async def _listener(credential: OAuthCredential) -> None:
            await self._persist(handle, user_id, spreadsheet_id, credential)

        return _listener

    async def _persist(
        self,
        handle: ClientHandle,
        user_id: str,
        spreadsheet_id: str,
        credential: OAuthCredential,
    ) -> None:
        # Best-effort: a failed write keeps the previous refresh token
        result = await self._store.write_credential_blob(handle, user_id, spreadsheet_id, credential)
        if not result.ok:
            logger.warning(
                "refreshed credential not persisted",
                extra={
                    "extra_fields": safe_log_context(
                        user_hash=hash_identifier(user_id), message=result.message
                    )
                },
            )
