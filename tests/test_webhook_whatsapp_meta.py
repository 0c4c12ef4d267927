"""Tests for the WhatsApp Meta webhook endpoint.

Does NOT call Meta or Google: the dispatcher is mocked.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from vitalsbot.api.container import build_services
from vitalsbot.api.factory import create_app
from vitalsbot.domain.dispatcher import ConversationDispatcher
from vitalsbot.whatsapp.models import InteractiveEvent, StatusEvent, TextEvent

from .helpers import (
    TEST_APP_SECRET,
    TEST_VERIFY_TOKEN,
    TEST_WA_ID,
    dumps,
    make_settings,
    meta_button_payload,
    meta_status_payload,
    meta_text_payload,
    sign,
)


def _client(**overrides):
    services = build_services(make_settings(**overrides))
    services.dispatcher = AsyncMock(spec=ConversationDispatcher)
    return TestClient(create_app(services=services)), services.dispatcher


@pytest.fixture
def client_and_dispatcher():
    return _client()


@pytest.fixture
def client(client_and_dispatcher):
    return client_and_dispatcher[0]


@pytest.fixture
def dispatcher(client_and_dispatcher):
    return client_and_dispatcher[1]


class TestVerification:
    def test_matching_token_echoes_challenge(self, client):
        response = client.get(
            "/webhook",
            params={
                "hub.mode": "subscribe",
                "hub.verify_token": TEST_VERIFY_TOKEN,
                "hub.challenge": "1158201444",
            },
        )

        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_wrong_token_rejected(self, client):
        response = client.get(
            "/webhook",
            params={
                "hub.mode": "subscribe",
                "hub.verify_token": "wrong",
                "hub.challenge": "1158201444",
            },
        )

        assert response.status_code == 403
        assert "1158201444" not in response.text

    def test_wrong_mode_rejected(self, client):
        response = client.get(
            "/webhook",
            params={
                "hub.mode": "unsubscribe",
                "hub.verify_token": TEST_VERIFY_TOKEN,
                "hub.challenge": "1158201444",
            },
        )

        assert response.status_code == 403

    def test_unconfigured_token_rejects_everything(self):
        client, _ = _client(webhook_verify_token="")

        response = client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "", "hub.challenge": "x"},
        )

        assert response.status_code == 403


class TestDelivery:
    def test_text_message_dispatched(self, client, dispatcher):
        response = client.post("/webhook", json=meta_text_payload("110 f"))

        assert response.status_code == 200
        event = dispatcher.dispatch.await_args.args[0]
        assert isinstance(event, TextEvent)
        assert event.text == "110 f"
        assert event.user_id == TEST_WA_ID

    def test_button_reply_dispatched(self, client, dispatcher):
        response = client.post("/webhook", json=meta_button_payload("bp"))

        assert response.status_code == 200
        event = dispatcher.dispatch.await_args.args[0]
        assert isinstance(event, InteractiveEvent)
        assert event.selection == "bp"

    def test_status_dispatched(self, client, dispatcher):
        response = client.post("/webhook", json=meta_status_payload())

        assert response.status_code == 200
        assert isinstance(dispatcher.dispatch.await_args.args[0], StatusEvent)

    def test_unactionable_payload_acknowledged(self, client, dispatcher):
        response = client.post("/webhook", json={"object": "page", "entry": []})

        assert response.status_code == 200
        assert response.text == "ignored"
        dispatcher.dispatch.assert_not_awaited()

    def test_invalid_json(self, client, dispatcher):
        response = client.post(
            "/webhook", content=b"not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        dispatcher.dispatch.assert_not_awaited()

    def test_processing_failure_returns_500(self, client, dispatcher):
        dispatcher.dispatch.side_effect = RuntimeError("boom")

        response = client.post("/webhook", json=meta_text_payload("110 f"))

        assert response.status_code == 500

    def test_correlation_id_echoed(self, client):
        response = client.post(
            "/webhook",
            json=meta_status_payload(),
            headers={"X-Correlation-ID": "cid-123"},
        )

        assert response.headers["X-Correlation-ID"] == "cid-123"


class TestSignature:
    """Signature is enforced once META_APP_SECRET is configured."""

    def test_valid_signature_accepted(self):
        client, dispatcher = _client(meta_app_secret=TEST_APP_SECRET)
        body = dumps(meta_text_payload("F 95"))

        response = client.post(
            "/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Hub-Signature-256": sign(body)},
        )

        assert response.status_code == 200
        dispatcher.dispatch.assert_awaited_once()

    def test_bad_signature_rejected(self):
        client, dispatcher = _client(meta_app_secret=TEST_APP_SECRET)
        body = dumps(meta_text_payload("F 95"))

        response = client.post(
            "/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Hub-Signature-256": "sha256=bad"},
        )

        assert response.status_code == 403
        dispatcher.dispatch.assert_not_awaited()

    def test_missing_signature_rejected(self):
        client, dispatcher = _client(meta_app_secret=TEST_APP_SECRET)

        response = client.post("/webhook", json=meta_text_payload("F 95"))

        assert response.status_code == 403
        dispatcher.dispatch.assert_not_awaited()
