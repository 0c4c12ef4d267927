"""Environment-backed settings.

Values are read from ``os.environ`` each time `get_settings()` is called, so a
test can ``monkeypatch.setenv`` and build a fresh app without reloading
modules. Required keys are only enforced by the component that needs them
(see `Settings.require_meta` / `Settings.require_google`).
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

DEFAULT_GRAPH_API_VERSION = "v24.0"
DEFAULT_GRAPH_API_BASE = "https://graph.facebook.com"
DEFAULT_GOOGLE_SCOPES = (
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/spreadsheets",
)
DEFAULT_EXTERNAL_CALL_TIMEOUT = 10.0
DEFAULT_OAUTH_CLIENT_CACHE_SIZE = 1024


@dataclass(frozen=True)
class Settings:
    """Process configuration."""

    webhook_verify_token: str = ""
    meta_app_secret: str = ""
    meta_access_token: str = ""
    meta_phone_number_id: str = ""
    meta_graph_api_version: str = DEFAULT_GRAPH_API_VERSION
    meta_graph_api_base: str = DEFAULT_GRAPH_API_BASE
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = ""
    google_scopes: tuple[str, ...] = field(default=DEFAULT_GOOGLE_SCOPES)
    public_base_url: str = ""
    testing_number: str = ""
    readings_timezone: str = "UTC"
    external_call_timeout: float = DEFAULT_EXTERNAL_CALL_TIMEOUT
    oauth_client_cache_size: int = DEFAULT_OAUTH_CLIENT_CACHE_SIZE

    def require_meta(self) -> None:
        """Raise if outbound WhatsApp sending is not configured."""
        if not self.meta_phone_number_id or not self.meta_access_token:
            raise RuntimeError(
                "Missing Meta config: META_PHONE_NUMBER_ID and META_ACCESS_TOKEN required"
            )

    def require_google(self) -> None:
        """Raise if the Google OAuth client is not configured."""
        if not (self.google_client_id and self.google_client_secret and self.google_redirect_uri):
            raise RuntimeError(
                "Missing Google config: GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET "
                "and GOOGLE_REDIRECT_URI required"
            )


def parse_scopes(raw: str) -> tuple[str, ...]:
    """Split a scope string on whitespace or commas."""
    return tuple(s for s in re.split(r"[\s,]+", raw.strip()) if s)


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def get_settings() -> Settings:
    """Load settings from the environment."""
    env = os.environ
    scopes = parse_scopes(env.get("GOOGLE_SCOPES", "")) or DEFAULT_GOOGLE_SCOPES

    return Settings(
        webhook_verify_token=env.get("WEBHOOK_VERIFY_TOKEN", ""),
        meta_app_secret=env.get("META_APP_SECRET", ""),
        meta_access_token=env.get("META_ACCESS_TOKEN", ""),
        meta_phone_number_id=env.get("META_PHONE_NUMBER_ID", ""),
        meta_graph_api_version=env.get("META_GRAPH_API_VERSION", DEFAULT_GRAPH_API_VERSION),
        meta_graph_api_base=env.get("META_GRAPH_API_BASE", DEFAULT_GRAPH_API_BASE).rstrip("/"),
        google_client_id=env.get("GOOGLE_CLIENT_ID", ""),
        google_client_secret=env.get("GOOGLE_CLIENT_SECRET", ""),
        google_redirect_uri=env.get("GOOGLE_REDIRECT_URI", ""),
        google_scopes=scopes,
        public_base_url=env.get("PUBLIC_BASE_URL", "").rstrip("/"),
        testing_number=env.get("TESTING_NUMBER", ""),
        readings_timezone=env.get("READINGS_TIMEZONE", "UTC"),
        external_call_timeout=_float_env("EXTERNAL_CALL_TIMEOUT", DEFAULT_EXTERNAL_CALL_TIMEOUT),
        oauth_client_cache_size=_int_env("OAUTH_CLIENT_CACHE_SIZE", DEFAULT_OAUTH_CLIENT_CACHE_SIZE),
    )
