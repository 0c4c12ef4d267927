"""Tests for the conversation dispatcher.

Session resolution, the credential store and the gateway are all mocked.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from vitalsbot.domain.dispatcher import GREETING_TOKEN, ConversationDispatcher
from vitalsbot.domain.errors import ExternalServiceError
from vitalsbot.domain.readings import (
    BloodPressureReading,
    BloodSugarReading,
    MeasurementType,
    ReadingKind,
)
from vitalsbot.domain.session import SessionRecord, SessionState
from vitalsbot.domain.session_resolver import SessionResolver
from vitalsbot.whatsapp.models import InteractiveEvent, StatusEvent, TextEvent
from vitalsbot.whatsapp.templates import STEP_ONE, render

from .helpers import TEST_SPREADSHEET_ID, TEST_WA_ID

_NOW = datetime(2026, 1, 7, 14, 30, tzinfo=timezone.utc)

_VALID = SessionRecord(
    state=SessionState.VALID,
    needs_reauthorization=False,
    spreadsheet_id=TEST_SPREADSHEET_ID,
)
_REVOKED = SessionRecord(
    state=SessionState.REVOKED,
    needs_reauthorization=True,
    spreadsheet_id=TEST_SPREADSHEET_ID,
)


def _text(body: str) -> TextEvent:
    return TextEvent(
        message_id="wamid.1",
        sender=TEST_WA_ID,
        user_id=TEST_WA_ID,
        text=body,
        received_at=_NOW,
    )


def _button(selection: str) -> InteractiveEvent:
    return InteractiveEvent(
        message_id="wamid.2",
        sender=TEST_WA_ID,
        user_id=TEST_WA_ID,
        selection=selection,
        received_at=_NOW,
    )


@pytest.fixture
def resolver():
    resolver = AsyncMock(spec=SessionResolver)
    resolver.resolve.return_value = _VALID
    return resolver


@pytest.fixture
def dispatcher(settings, resolver, registry, store, gateway):
    return ConversationDispatcher(settings, resolver, registry, store, gateway)


class TestGreeting:
    @pytest.mark.asyncio
    async def test_new_user_gets_welcome_and_link(self, dispatcher, resolver, store, gateway):
        await dispatcher.dispatch(_text(GREETING_TOKEN))

        resolver.resolve.assert_not_awaited()
        store.create_spreadsheet.assert_not_awaited()
        store.append_reading.assert_not_awaited()
        gateway.send_text.assert_awaited_once_with(TEST_WA_ID, render("welcome"))

        to, body, display_text, url = gateway.send_call_to_action_link.await_args.args
        assert to == TEST_WA_ID
        assert display_text == "Continue"
        assert url.startswith("https://bot.example.com/auth/")

    @pytest.mark.asyncio
    async def test_greeting_ignores_valid_session(self, dispatcher, resolver, gateway):
        resolver.resolve.return_value = _VALID

        await dispatcher.dispatch(_text(GREETING_TOKEN))

        resolver.resolve.assert_not_awaited()
        gateway.send_text.assert_awaited_once_with(TEST_WA_ID, render("welcome"))
        gateway.send_menu.assert_not_awaited()


class TestAuthenticatedText:
    @pytest.mark.asyncio
    async def test_blood_sugar_saved_and_confirmed(self, dispatcher, store, gateway):
        await dispatcher.dispatch(_text("110 f"))

        store.append_reading.assert_awaited_once()
        reading, spreadsheet_id, handle = store.append_reading.await_args.args
        assert isinstance(reading, BloodSugarReading)
        assert reading.measurement_type == MeasurementType.FASTING
        assert reading.value == 110
        assert spreadsheet_id == TEST_SPREADSHEET_ID
        assert handle.user_id == TEST_WA_ID

        to, menu = gateway.send_menu.await_args.args
        assert to == TEST_WA_ID
        assert "110 mg/dL" in menu.body
        assert "Fasting" in menu.body
        assert menu.buttons == (("none", "Start Again"),)

    @pytest.mark.asyncio
    async def test_blood_pressure_confirmation(self, dispatcher, store, gateway):
        await dispatcher.dispatch(_text("120/80 72"))

        reading = store.append_reading.await_args.args[0]
        assert isinstance(reading, BloodPressureReading)

        menu = gateway.send_menu.await_args.args[1]
        assert "120/80 mmHg" in menu.body
        assert "72 bpm" in menu.body
        assert "bpm bpm" not in menu.body

    @pytest.mark.asyncio
    async def test_unrecognized_text_shows_menu(self, dispatcher, store, gateway):
        await dispatcher.dispatch(_text("hello there"))

        store.append_reading.assert_not_awaited()
        gateway.send_menu.assert_awaited_once_with(TEST_WA_ID, STEP_ONE[ReadingKind.NONE])

    @pytest.mark.asyncio
    async def test_save_failure_reported_to_user(self, dispatcher, store, gateway):
        store.append_reading.side_effect = ExternalServiceError("google_sheets", "append failed")

        await dispatcher.dispatch(_text("F 95"))

        gateway.send_text.assert_awaited_once_with(TEST_WA_ID, render("save_failed"))
        gateway.send_menu.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_with_refresh_proceeds(self, dispatcher, resolver, store):
        resolver.resolve.return_value = SessionRecord(
            state=SessionState.EXPIRED_WITH_REFRESH,
            needs_reauthorization=False,
            spreadsheet_id=TEST_SPREADSHEET_ID,
        )

        await dispatcher.dispatch(_text("F 95"))

        store.append_reading.assert_awaited_once()


class TestUnauthenticatedText:
    @pytest.mark.asyncio
    async def test_no_session_gets_welcome(self, dispatcher, resolver, store, gateway):
        resolver.resolve.return_value = SessionRecord.no_session()

        await dispatcher.dispatch(_text("F 95"))

        store.append_reading.assert_not_awaited()
        gateway.send_text.assert_awaited_once_with(TEST_WA_ID, render("welcome"))
        gateway.send_call_to_action_link.assert_awaited_once()

    @pytest.mark.parametrize("state", [SessionState.REVOKED, SessionState.EXPIRED_NO_REFRESH])
    @pytest.mark.asyncio
    async def test_lost_session_gets_expired_notice(
        self, dispatcher, resolver, store, gateway, state
    ):
        resolver.resolve.return_value = SessionRecord(state=state, needs_reauthorization=True)

        await dispatcher.dispatch(_text("F 95"))

        store.append_reading.assert_not_awaited()
        gateway.send_text.assert_awaited_once_with(TEST_WA_ID, render("session_expired"))
        gateway.send_call_to_action_link.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_send_failure_does_not_raise(self, dispatcher, resolver, gateway):
        resolver.resolve.return_value = _REVOKED
        gateway.send_text.side_effect = ExternalServiceError("meta", "send rejected", status=400)

        await dispatcher.dispatch(_text("F 95"))

        gateway.send_call_to_action_link.assert_awaited_once()


class TestInteractive:
    @pytest.mark.parametrize(
        ("selection", "kind"),
        [("bs", ReadingKind.BLOOD_SUGAR), ("bp", ReadingKind.BLOOD_PRESSURE), ("none", ReadingKind.NONE)],
    )
    @pytest.mark.asyncio
    async def test_selection_prompts(self, dispatcher, gateway, selection, kind):
        await dispatcher.dispatch(_button(selection))

        gateway.send_menu.assert_awaited_once_with(TEST_WA_ID, STEP_ONE[kind])

    @pytest.mark.asyncio
    async def test_unknown_selection_shows_main_menu(self, dispatcher, gateway):
        await dispatcher.dispatch(_button("something-else"))

        gateway.send_menu.assert_awaited_once_with(TEST_WA_ID, STEP_ONE[ReadingKind.NONE])

    @pytest.mark.asyncio
    async def test_requires_connection(self, dispatcher, resolver, gateway):
        resolver.resolve.return_value = _REVOKED

        await dispatcher.dispatch(_button("bs"))

        gateway.send_menu.assert_not_awaited()
        gateway.send_text.assert_awaited_once_with(TEST_WA_ID, render("connect_first"))
        gateway.send_call_to_action_link.assert_awaited_once()


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_is_logged_only(self, dispatcher, resolver, gateway):
        await dispatcher.dispatch(
            StatusEvent(
                message_id="wamid.out",
                status="read",
                recipient_id=TEST_WA_ID,
                received_at=_NOW,
            )
        )

        resolver.resolve.assert_not_awaited()
        assert gateway.method_calls == []
