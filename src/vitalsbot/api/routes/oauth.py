"""Google OAuth routes.

/auth/{state} sends the browser to Google's consent screen.
/oauth2callback receives the authorization code and finishes the connection.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, RedirectResponse, Response

from vitalsbot.api.container import Services, get_services
from vitalsbot.domain.errors import StateDecodeError
from vitalsbot.observability.correlation import get_correlation_id
from vitalsbot.observability.logging import get_logger
from vitalsbot.observability.redaction import safe_log_context

router = APIRouter(tags=["oauth"])

logger = get_logger(__name__)


@router.get("/auth/{state}")
def start_authorization(state: str, services: Services = Depends(get_services)) -> Response:
    """Redirect to the Google consent screen for the user in `state`.

    Returns:
        307 redirect to Google.
        400 if state does not decode.
        500 if the Google client is not configured.
    """
    try:
        url = services.authorization.begin(state)
    except StateDecodeError:
        logger.warning(
            "auth link with invalid state",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        return JSONResponse(status_code=400, content={"message": "Invalid state parameter."})
    except RuntimeError as e:
        logger.error(
            "oauth not configured",
            extra={"extra_fields": safe_log_context(error=str(e))},
        )
        return JSONResponse(status_code=500, content={"message": "OAuth is not configured."})

    return RedirectResponse(url=url, status_code=307)


@router.get("/oauth2callback")
async def oauth_callback(
    code: str | None = Query(None),
    state: str | None = Query(None),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Finish the OAuth flow.

    Returns:
        200 once tokens are stored in the user's spreadsheet.
        400 if code or state is missing, or state does not decode.
        500 on any failure while connecting.
    """
    correlation_id = get_correlation_id()

    if not state:
        logger.warning(
            "oauth callback without state",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return JSONResponse(status_code=400, content={"message": "State parameter is missing."})

    try:
        outcome = await services.authorization.complete(code, state)
    except StateDecodeError:
        logger.warning(
            "oauth callback with invalid state",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return JSONResponse(status_code=400, content={"message": "Invalid state parameter."})
    except RuntimeError as e:
        logger.error(
            "oauth callback misconfigured",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, error=str(e))},
        )
        return JSONResponse(
            status_code=500, content={"message": "Authentication failed! Please retry again."}
        )

    logger.info(
        "oauth callback handled",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id, status_code=outcome.status_code
            )
        },
    )
    return JSONResponse(status_code=outcome.status_code, content={"message": outcome.message})
