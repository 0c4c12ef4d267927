"""WhatsApp webhook routes - Meta Cloud API integration.

Security:
- Sender numbers and message text exist only in memory during processing
- Logs carry a short hash of the user identity, never the number or text
- Signature (X-Hub-Signature-256) checked when META_APP_SECRET is configured
"""

from typing import Any

from fastapi import APIRouter, Depends, Header, Query, Request, Response

from vitalsbot.api.container import Services, get_services
from vitalsbot.observability.correlation import get_correlation_id
from vitalsbot.observability.logging import get_logger
from vitalsbot.observability.redaction import safe_log_context
from vitalsbot.whatsapp.meta_adapter import (
    InvalidPayloadError,
    SignatureVerificationError,
    get_phone_number_id,
    normalize,
    verify_signature,
    verify_subscription,
)

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)


@router.get("/webhook")
async def meta_webhook_verify(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
    services: Services = Depends(get_services),
) -> Response:
    """Meta webhook verification endpoint.

    Returns:
        200 with hub.challenge if mode is "subscribe" and the token matches.
        403 otherwise.
    """
    expected_token = services.settings.webhook_verify_token

    if verify_subscription(hub_mode, hub_verify_token, expected_token):
        logger.info(
            "meta webhook verification successful",
            extra={"extra_fields": safe_log_context(hub_mode=hub_mode)},
        )
        return Response(status_code=200, content=hub_challenge or "", media_type="text/plain")

    logger.warning(
        "meta webhook verification failed",
        extra={
            "extra_fields": safe_log_context(
                hub_mode=hub_mode or "missing",
                token_configured=bool(expected_token),
            )
        },
    )
    return Response(status_code=403, content="UNAUTHORIZED: Verification failed")


@router.post("/webhook")
async def meta_webhook(
    request: Request,
    x_hub_signature_256: str | None = Header(None, alias="X-Hub-Signature-256"),
    services: Services = Depends(get_services),
) -> Response:
    """Receive a Meta Cloud API webhook delivery.

    Returns:
        200 once the event was handled, or when the payload is not actionable
        (Meta retries non-2xx responses).
        400 for a body that is not JSON.
        403 when the signature does not verify.
        500 when processing failed unexpectedly.
    """
    correlation_id = get_correlation_id()

    body_bytes = await request.body()

    app_secret = services.settings.meta_app_secret
    if app_secret:
        try:
            verify_signature(body_bytes, x_hub_signature_256 or "", app_secret)
        except SignatureVerificationError as e:
            logger.warning(
                "meta signature verification failed",
                extra={
                    "extra_fields": safe_log_context(correlationId=correlation_id, error=str(e))
                },
            )
            return Response(status_code=403, content="invalid signature")

    try:
        payload: dict[str, Any] = await request.json()
    except ValueError:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid json")

    if not isinstance(payload, dict):
        return Response(status_code=400, content="invalid json")

    try:
        event = normalize(payload)
    except InvalidPayloadError as e:
        logger.info(
            "no actionable message in webhook",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    object_type=payload.get("object") or "missing",
                    reason=str(e),
                )
            },
        )
        return Response(status_code=200, content="ignored")

    logger.info(
        "meta webhook received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                kind=event.kind,
                phone_number_id=get_phone_number_id(payload) or "missing",
                message_id_prefix=event.message_id[:12],
            )
        },
    )

    try:
        await services.dispatcher.dispatch(event)
    except Exception:
        logger.exception(
            "meta webhook processing failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, kind=event.kind)},
        )
        return Response(
            status_code=500,
            content="INTERNAL_SERVER_ERROR: Error while processing webhook",
        )

    return Response(status_code=200, content="Data Received!")
