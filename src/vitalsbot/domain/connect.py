"""Messages that move a user through the Google connection flow."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from vitalsbot.domain.identity import encode_state
from vitalsbot.whatsapp.templates import (
    CONNECT_DISPLAY_TEXT,
    RETRY_DISPLAY_TEXT,
    START_BUTTONS,
    render,
)

if TYPE_CHECKING:
    from vitalsbot.whatsapp.meta_sender import MetaSender


class ConnectStep(str, Enum):
    STARTED = "auth_started"
    FINISHED = "auth_finished"
    FAILED = "auth_failed"


def authorization_start_url(public_base_url: str, user_id: str) -> str:
    """Link that starts the OAuth dance for `user_id`."""
    return f"{public_base_url}/auth/{encode_state(user_id)}"


async def send_connect_step(
    gateway: MetaSender,
    public_base_url: str,
    to: str,
    user_id: str,
    step: ConnectStep,
) -> None:
    """Send the call-to-action (or confirmation) for a connection step."""
    if step is ConnectStep.FINISHED:
        await gateway.send_reply_buttons(to, render(step.value), START_BUTTONS)
        return

    display_text = CONNECT_DISPLAY_TEXT if step is ConnectStep.STARTED else RETRY_DISPLAY_TEXT
    await gateway.send_call_to_action_link(
        to,
        render(step.value),
        display_text,
        authorization_start_url(public_base_url, user_id),
    )
