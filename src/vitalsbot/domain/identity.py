"""User identity helpers.

WhatsApp ``wa_id`` values may arrive wrapped in quoting artifacts (the OAuth
``state`` carries a JSON-quoted id), so every lookup key and every
cross-service marker is built from the sanitized form.
"""

import base64
import binascii
import json
import re

from vitalsbot.domain.errors import StateDecodeError

_QUOTE_CHARS = re.compile(r"['\"\\]")

BOT_IDENTIFIER_KEY = "bot_identifier"
BOT_IDENTIFIER_PREFIX = "whatsapp_bot_"


def sanitize_user_id(user_id: str) -> str:
    """Strip quote and backslash characters."""
    return _QUOTE_CHARS.sub("", user_id)


def bot_identifier(user_id: str) -> str:
    """Deterministic Drive appProperties marker for a user's spreadsheet."""
    return f"{BOT_IDENTIFIER_PREFIX}{sanitize_user_id(user_id)}"


def encode_state(user_id: str) -> str:
    """OAuth ``state`` for a user: urlsafe base64 of the JSON-quoted id."""
    raw = json.dumps(sanitize_user_id(user_id)).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_state(state: str) -> str:
    """Decode an OAuth ``state`` back to a sanitized user id.

    Accepts both the urlsafe and the standard base64 alphabet, with or
    without padding.

    Raises:
        StateDecodeError: If the value is empty or not valid base64 text.
    """
    cleaned = (state or "").strip().lstrip(":")
    if not cleaned:
        raise StateDecodeError("empty state")

    padded = cleaned + "=" * (-len(cleaned) % 4)
    try:
        decoded = base64.b64decode(padded, altchars=b"-_", validate=False).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise StateDecodeError("state is not valid base64") from e

    user_id = sanitize_user_id(decoded).strip()
    if not user_id:
        raise StateDecodeError("state decodes to an empty identity")
    return user_id
