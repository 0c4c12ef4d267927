"""FastAPI application factory."""

from fastapi import FastAPI, Request, Response

from vitalsbot.config import Settings
from vitalsbot.observability.correlation import CORRELATION_ID_HEADER, correlation_scope

from .container import Services, build_services
from .routes import health, oauth, webhooks_whatsapp_meta


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Create the FastAPI app.

    Args:
        settings: Explicit settings. If None, read from the environment.
        services: Pre-built services (tests inject fakes here). Built from
            `settings` when omitted.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="vitalsbot",
        docs_url=None,
        redoc_url=None,
    )
    app.state.services = services or build_services(settings)

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response

    app.include_router(health.router)
    app.include_router(webhooks_whatsapp_meta.router)
    app.include_router(oauth.router)

    return app
