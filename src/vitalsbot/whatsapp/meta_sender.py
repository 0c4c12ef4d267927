"""Outbound WhatsApp messaging via Meta Cloud API.

Security: NEVER log recipient numbers or message text. Only log hashes,
lengths and message types.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from typing import Any

from vitalsbot.config import Settings
from vitalsbot.domain.errors import ExternalServiceError
from vitalsbot.infra.blocking import run_blocking
from vitalsbot.observability.correlation import get_correlation_id
from vitalsbot.observability.logging import get_logger
from vitalsbot.observability.redaction import hash_identifier, safe_log_context

from .templates import ButtonMenu

logger = get_logger(__name__)


def _do_request(url: str, data: bytes, headers: dict[str, str], timeout: float) -> dict[str, Any]:
    """Execute HTTP POST request. Raises on error."""
    req = urllib.request.Request(url, data=data, headers=headers, method="POST")
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        return json.loads(resp.read().decode() or "{}")


def _reply_buttons(buttons: tuple[tuple[str, str], ...] | list[tuple[str, str]]) -> list[dict]:
    return [{"type": "reply", "reply": {"id": bid, "title": title}} for bid, title in buttons]


class MetaSender:
    """Message gateway for the WhatsApp Cloud API.

    Each send is attempted once. Failures raise `ExternalServiceError`;
    callers decide whether a failed send matters.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def messages_url(self) -> str:
        s = self._settings
        return f"{s.meta_graph_api_base}/{s.meta_graph_api_version}/{s.meta_phone_number_id}/messages"

    def _envelope(self, to: str, message_type: str) -> dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to or self._settings.testing_number,
            "type": message_type,
        }

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        self._settings.require_meta()

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._settings.meta_access_token}",
        }
        data = json.dumps(payload).encode("utf-8")

        log_ctx = safe_log_context(
            correlationId=get_correlation_id(),
            to_hash=hash_identifier(payload["to"]),
            message_type=payload["type"],
            interactive_type=payload.get("interactive", {}).get("type"),
            payload_len=len(data),
            provider="meta",
        )
        logger.info("sending outbound message via meta", extra={"extra_fields": log_ctx})

        try:
            response = await run_blocking(
                _do_request,
                self.messages_url,
                data,
                headers,
                self._settings.external_call_timeout,
                service="meta",
                timeout=self._settings.external_call_timeout + 1,
            )
        except ExternalServiceError as e:
            logger.error(
                "outbound send via meta timed out",
                extra={"extra_fields": safe_log_context(**log_ctx, error=str(e))},
            )
            raise
        except urllib.error.HTTPError as e:
            logger.error(
                "outbound send via meta rejected",
                extra={"extra_fields": safe_log_context(**log_ctx, status=e.code)},
            )
            raise ExternalServiceError("meta", "send rejected", status=e.code) from e
        except (urllib.error.URLError, OSError, ValueError) as e:
            logger.error(
                "outbound send via meta failed",
                extra={"extra_fields": safe_log_context(**log_ctx, error_type=type(e).__name__)},
            )
            raise ExternalServiceError("meta", f"send failed: {type(e).__name__}") from e

        logger.info("outbound message sent via meta", extra={"extra_fields": log_ctx})
        return response

    async def send_text(self, to: str, body: str) -> dict[str, Any]:
        payload = self._envelope(to, "text")
        payload["text"] = {"body": body}
        return await self._post(payload)

    async def send_interactive_buttons(
        self,
        to: str,
        header: str,
        body: str,
        footer: str,
        buttons: tuple[tuple[str, str], ...] | list[tuple[str, str]],
    ) -> dict[str, Any]:
        payload = self._envelope(to, "interactive")
        payload["interactive"] = {
            "type": "button",
            "header": {"type": "text", "text": header},
            "body": {"text": body},
            "footer": {"text": footer},
            "action": {"buttons": _reply_buttons(buttons)},
        }
        return await self._post(payload)

    async def send_reply_buttons(
        self,
        to: str,
        body: str,
        buttons: tuple[tuple[str, str], ...] | list[tuple[str, str]],
    ) -> dict[str, Any]:
        """Reply buttons without header or footer."""
        payload = self._envelope(to, "interactive")
        payload["interactive"] = {
            "type": "button",
            "body": {"text": body},
            "action": {"buttons": _reply_buttons(buttons)},
        }
        return await self._post(payload)

    async def send_menu(self, to: str, menu: ButtonMenu) -> dict[str, Any]:
        return await self.send_interactive_buttons(
            to, menu.header, menu.body, menu.footer, menu.buttons
        )

    async def send_call_to_action_link(
        self, to: str, body_text: str, display_text: str, url: str
    ) -> dict[str, Any]:
        payload = self._envelope(to, "interactive")
        payload["interactive"] = {
            "type": "cta_url",
            "body": {"text": body_text},
            "action": {
                "name": "cta_url",
                "parameters": {"display_text": display_text, "url": url},
            },
        }
        return await self._post(payload)
