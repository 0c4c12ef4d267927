"""Conversation dispatch for inbound WhatsApp events.

Decides, from the event and the user's resolved session, which messages to
send back and whether to save a reading. Outbound sends are best-effort: a
failed send is logged and the request still completes.
"""

from __future__ import annotations

from vitalsbot.config import Settings
from vitalsbot.domain.classifier import classify
from vitalsbot.domain.connect import ConnectStep, send_connect_step
from vitalsbot.domain.errors import ExternalServiceError
from vitalsbot.domain.session import SessionRecord, SessionState
from vitalsbot.domain.session_resolver import SessionResolver
from vitalsbot.google.credential_store import CredentialStore
from vitalsbot.google.oauth_registry import OAuthClientRegistry
from vitalsbot.infra.time import local_now
from vitalsbot.observability.logging import get_logger
from vitalsbot.observability.redaction import hash_identifier, safe_log_context
from vitalsbot.whatsapp.meta_sender import MetaSender
from vitalsbot.whatsapp.models import InboundEvent, InteractiveEvent, StatusEvent, TextEvent
from vitalsbot.whatsapp.templates import render, step_one, step_two

logger = get_logger(__name__)

# Canonical "start over" message; never consults the stored session
GREETING_TOKEN = "Hi"


class ConversationDispatcher:
    def __init__(
        self,
        settings: Settings,
        resolver: SessionResolver,
        registry: OAuthClientRegistry,
        store: CredentialStore,
        gateway: MetaSender,
    ) -> None:
        self._settings = settings
        self._resolver = resolver
        self._registry = registry
        self._store = store
        self._gateway = gateway

    async def dispatch(self, event: InboundEvent) -> None:
        if isinstance(event, TextEvent):
            await self.handle_text(event)
        elif isinstance(event, InteractiveEvent):
            await self.handle_interactive(event)
        elif isinstance(event, StatusEvent):
            await self.handle_status(event)
        else:
            logger.info(
                "no actionable event type",
                extra={"extra_fields": safe_log_context(event_type=type(event).__name__)},
            )

    async def handle_text(self, event: TextEvent) -> None:
        user_hash = hash_identifier(event.user_id)
        logger.info(
            "text message received",
            extra={"extra_fields": safe_log_context(user_hash=user_hash, text_len=len(event.text))},
        )

        if event.text == GREETING_TOKEN:
            session = SessionRecord.no_session()
        else:
            session = await self._resolver.resolve(event.user_id)

        if session.can_proceed:
            await self._handle_authenticated_text(event, session)
        elif session.state == SessionState.NO_SESSION:
            await self._send_text(event.sender, render("welcome"))
            await self._send_connect(event, ConnectStep.STARTED)
        else:
            await self._send_text(event.sender, render("session_expired"))
            await self._send_connect(event, ConnectStep.STARTED)

    async def handle_interactive(self, event: InteractiveEvent) -> None:
        logger.info(
            "interactive message received",
            extra={
                "extra_fields": safe_log_context(
                    user_hash=hash_identifier(event.user_id), selection=event.selection
                )
            },
        )

        session = await self._resolver.resolve(event.user_id)
        if not session.can_proceed:
            await self._send_text(event.sender, render("connect_first"))
            await self._send_connect(event, ConnectStep.STARTED)
            return

        await self._send_menu(event.sender, step_one(event.selection))

    async def handle_status(self, event: StatusEvent) -> None:
        logger.info(
            "message status received",
            extra={
                "extra_fields": safe_log_context(
                    user_hash=hash_identifier(event.recipient_id),
                    status=event.status,
                )
            },
        )

    async def _handle_authenticated_text(self, event: TextEvent, session: SessionRecord) -> None:
        reading = classify(event.text, now=local_now(self._settings.readings_timezone))
        if reading is None:
            await self._send_menu(event.sender, step_one("none"))
            return

        handle = self._registry.get_or_create(event.user_id)
        try:
            await self._store.append_reading(reading, session.spreadsheet_id or "", handle)
        except ExternalServiceError as e:
            logger.error(
                "saving reading failed",
                extra={
                    "extra_fields": safe_log_context(
                        user_hash=hash_identifier(event.user_id),
                        kind=reading.kind.value,
                        error=str(e),
                    )
                },
            )
            await self._send_text(event.sender, render("save_failed"))
            return

        await self._send_menu(event.sender, step_two(reading))

    async def _send_text(self, to: str, body: str) -> None:
        try:
            await self._gateway.send_text(to, body)
        except ExternalServiceError as e:
            self._log_send_failure("text", to, e)

    async def _send_menu(self, to: str, menu) -> None:
        try:
            await self._gateway.send_menu(to, menu)
        except ExternalServiceError as e:
            self._log_send_failure("interactive", to, e)

    async def _send_connect(self, event: TextEvent | InteractiveEvent, step: ConnectStep) -> None:
        try:
            await send_connect_step(
                self._gateway, self._settings.public_base_url, event.sender, event.user_id, step
            )
        except ExternalServiceError as e:
            self._log_send_failure(step.value, event.sender, e)

    @staticmethod
    def _log_send_failure(message_type: str, to: str, error: ExternalServiceError) -> None:
        logger.error(
            "outbound message not delivered",
            extra={
                "extra_fields": safe_log_context(
                    to_hash=hash_identifier(to),
                    message_type=message_type,
                    status=error.status,
                )
            },
        )
