"""Normalized inbound WhatsApp events."""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Union


@dataclass(frozen=True)
class TextEvent:
    """A plain text message.

    `sender` is the number to reply to; `user_id` is the ``wa_id`` used as
    the session key. Both are PII: never log them unhashed.
    """

    message_id: str
    sender: str
    user_id: str
    text: str
    received_at: datetime

    kind: Literal["text"] = "text"


@dataclass(frozen=True)
class InteractiveEvent:
    """A button or list reply; `selection` is the reply id (``bs``, ``bp``...)."""

    message_id: str
    sender: str
    user_id: str
    selection: str
    received_at: datetime

    kind: Literal["interactive"] = "interactive"


@dataclass(frozen=True)
class StatusEvent:
    """Delivery/read receipt for a message we sent."""

    message_id: str
    status: str
    recipient_id: str
    received_at: datetime

    kind: Literal["status"] = "status"


InboundEvent = Union[TextEvent, InteractiveEvent, StatusEvent]
