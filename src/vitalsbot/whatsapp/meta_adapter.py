"""Meta Cloud API adapter - validate and normalize webhook payloads.

Handles WhatsApp Business webhook payloads, including signature
verification and conversion into `TextEvent` / `InteractiveEvent` /
`StatusEvent`.
"""

from datetime import datetime, timezone
import hashlib
import hmac
from typing import Any

from .models import InboundEvent, InteractiveEvent, StatusEvent, TextEvent

WHATSAPP_BUSINESS_ACCOUNT = "whatsapp_business_account"


class InvalidPayloadError(Exception):
    """Raised when Meta payload has invalid shape."""

    pass


class SignatureVerificationError(Exception):
    """Raised when HMAC signature verification fails."""

    pass


def verify_signature(payload_bytes: bytes, signature_header: str, app_secret: str) -> None:
    """Verify Meta webhook signature (HMAC-SHA256, ``sha256=<hex>``).

    Raises:
        SignatureVerificationError: If signature is invalid or missing.
    """
    if not signature_header:
        raise SignatureVerificationError("missing signature header")

    if not signature_header.startswith("sha256="):
        raise SignatureVerificationError("invalid signature format")

    expected_sig = signature_header[7:]

    computed_sig = hmac.new(
        key=app_secret.encode("utf-8"),
        msg=payload_bytes,
        digestmod=hashlib.sha256,
    ).hexdigest()

    if not hmac.compare_digest(computed_sig, expected_sig):
        raise SignatureVerificationError("signature mismatch")


def verify_subscription(mode: str | None, token: str | None, expected_token: str) -> bool:
    """Webhook subscription handshake check.

    An unconfigured verify token never matches.
    """
    if not expected_token:
        return False
    return mode == "subscribe" and token is not None and hmac.compare_digest(token, expected_token)


def normalize(payload: dict[str, Any]) -> InboundEvent:
    """Turn a Meta webhook payload into one inbound event.

    Only the first change of the first entry is considered, as Meta sends
    one message per delivery for this integration.

    Raises:
        InvalidPayloadError: If the payload is not an actionable message or
            status update.
    """
    if payload.get("object") != WHATSAPP_BUSINESS_ACCOUNT:
        raise InvalidPayloadError("not a whatsapp_business_account payload")

    change = _first_change(payload)
    if change is None or change.get("field") != "messages":
        raise InvalidPayloadError("no messages change in payload")

    value = change.get("value") or {}
    messages = value.get("messages") or []
    received_at = datetime.now(timezone.utc)

    if messages:
        message = messages[0]
        message_id = message.get("id")
        if not message_id or not isinstance(message_id, str):
            raise InvalidPayloadError("missing or invalid message_id")

        sender = message.get("from", "")
        if not sender:
            raise InvalidPayloadError("missing sender phone number")

        user_id = _contact_wa_id(value) or sender
        message_type = message.get("type")

        if message_type == "text":
            text_obj = message.get("text") or {}
            body = text_obj.get("body") if isinstance(text_obj, dict) else None
            if body is None:
                raise InvalidPayloadError("text message without body")
            return TextEvent(
                message_id=message_id,
                sender=sender,
                user_id=user_id,
                text=body,
                received_at=received_at,
            )

        if message_type == "interactive":
            selection = _interactive_reply_id(message.get("interactive") or {})
            if selection is None:
                raise InvalidPayloadError("interactive message without reply id")
            return InteractiveEvent(
                message_id=message_id,
                sender=sender,
                user_id=user_id,
                selection=selection,
                received_at=received_at,
            )

        raise InvalidPayloadError(f"unsupported message type: {message_type}")

    statuses = value.get("statuses") or []
    if statuses:
        status = statuses[0]
        return StatusEvent(
            message_id=str(status.get("id", "")),
            status=str(status.get("status", "unknown")),
            recipient_id=str(status.get("recipient_id", "")),
            received_at=received_at,
        )

    raise InvalidPayloadError("no message or status in payload")


def get_phone_number_id(payload: dict[str, Any]) -> str | None:
    """Extract the business phone_number_id from a Meta payload."""
    change = _first_change(payload)
    if change is None:
        return None
    value = change.get("value") or {}
    metadata = value.get("metadata") or {}
    return metadata.get("phone_number_id")


def _first_change(payload: dict[str, Any]) -> dict[str, Any] | None:
    """First change of the first entry.

    {
      "object": "whatsapp_business_account",
      "entry": [{"changes": [{"value": {...}, "field": "messages"}]}]
    }
    """
    try:
        entry = payload.get("entry", [])
        if not entry:
            return None
        changes = entry[0].get("changes", [])
        if not changes:
            return None
        return changes[0]
    except (IndexError, KeyError, TypeError, AttributeError):
        return None


def _contact_wa_id(value: dict[str, Any]) -> str | None:
    contacts = value.get("contacts") or []
    if contacts and isinstance(contacts[0], dict):
        return contacts[0].get("wa_id") or None
    return None


def _interactive_reply_id(interactive: dict[str, Any]) -> str | None:
    # {"type": "button_reply", "button_reply": {"id": "bs", "title": "..."}}
    reply_type = interactive.get("type")
    reply = interactive.get(reply_type) if reply_type else None
    if isinstance(reply, dict) and reply.get("id"):
        return str(reply["id"])
    return None
