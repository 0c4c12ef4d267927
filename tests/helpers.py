"""Shared test helper functions for vitalsbot tests.

Regular functions, not fixtures, so test modules can import them directly.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock

from googleapiclient.errors import HttpError

from vitalsbot.config import Settings
from vitalsbot.google.models import OAuthCredential

TEST_APP_SECRET = "test-meta-secret"
TEST_VERIFY_TOKEN = "test_verify_token"
TEST_WA_ID = "919876543210"
TEST_SPREADSHEET_ID = "sheet-abc123"


def make_settings(**overrides: Any) -> Settings:
    """Settings with every integration configured."""
    values: dict[str, Any] = {
        "webhook_verify_token": TEST_VERIFY_TOKEN,
        "meta_access_token": "meta-access-token",
        "meta_phone_number_id": "123456789",
        "google_client_id": "client-id.apps.googleusercontent.com",
        "google_client_secret": "client-secret",
        "google_redirect_uri": "https://bot.example.com/oauth2callback",
        "public_base_url": "https://bot.example.com",
        "testing_number": "15550001111",
        "external_call_timeout": 2.0,
    }
    values.update(overrides)
    return Settings(**values)


def make_credential(
    *,
    expires_in_ms: int = 60 * 60 * 1000,
    access_token: str = "ya29.access-token",
    refresh_token: str | None = "1//refresh-token",
) -> OAuthCredential:
    """Credential expiring `expires_in_ms` from now (negative = already expired)."""
    return OAuthCredential(
        access_token=access_token,
        refresh_token=refresh_token,
        scope="https://www.googleapis.com/auth/spreadsheets",
        token_type="Bearer",
        expiry_date=int(time.time() * 1000) + expires_in_ms,
    )


def make_http_error(status: int) -> HttpError:
    """googleapiclient HttpError carrying `status`."""
    resp = MagicMock()
    resp.status = status
    resp.reason = "error"
    return HttpError(resp, b'{"error": {"message": "error"}}')


def fixed_moment() -> datetime:
    return datetime(2026, 1, 7, 14, 30, tzinfo=timezone.utc)


def meta_text_payload(
    text: str,
    wa_id: str = TEST_WA_ID,
    message_id: str = "wamid.TEXT0001",
) -> dict:
    """Meta webhook payload carrying one text message."""
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WHATSAPP_BUSINESS_ACCOUNT_ID",
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {
                                "display_phone_number": "15550001111",
                                "phone_number_id": "123456789",
                            },
                            "contacts": [{"profile": {"name": "Test User"}, "wa_id": wa_id}],
                            "messages": [
                                {
                                    "from": wa_id,
                                    "id": message_id,
                                    "timestamp": "1767796200",
                                    "type": "text",
                                    "text": {"body": text},
                                }
                            ],
                        },
                        "field": "messages",
                    }
                ],
            }
        ],
    }


def meta_button_payload(
    reply_id: str,
    wa_id: str = TEST_WA_ID,
    message_id: str = "wamid.BUTTON0001",
) -> dict:
    """Meta webhook payload carrying one reply-button selection."""
    payload = meta_text_payload("", wa_id=wa_id, message_id=message_id)
    message = payload["entry"][0]["changes"][0]["value"]["messages"][0]
    del message["text"]
    message["type"] = "interactive"
    message["interactive"] = {
        "type": "button_reply",
        "button_reply": {"id": reply_id, "title": "Blood Sugar"},
    }
    return payload


def meta_status_payload(status: str = "delivered", wa_id: str = TEST_WA_ID) -> dict:
    """Meta webhook payload carrying one delivery receipt."""
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"phone_number_id": "123456789"},
                            "statuses": [
                                {
                                    "id": "wamid.OUT0001",
                                    "status": status,
                                    "timestamp": "1767796200",
                                    "recipient_id": wa_id,
                                }
                            ],
                        },
                        "field": "messages",
                    }
                ]
            }
        ],
    }


def sign(payload_bytes: bytes, secret: str = TEST_APP_SECRET) -> str:
    """X-Hub-Signature-256 header value for `payload_bytes`."""
    digest = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def dumps(payload: dict) -> bytes:
    return json.dumps(payload).encode()
