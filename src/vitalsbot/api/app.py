"""ASGI entry point: ``uvicorn vitalsbot.api.app:app``."""

from .factory import create_app

app = create_app()
