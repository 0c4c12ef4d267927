"""Google API service builders.

Kept in one place so tests can patch ``vitalsbot.google.services.build``.
"""

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError


def sheets_service(credentials: Credentials):
    """Google Sheets API v4 service for a user's credentials."""
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


def drive_service(credentials: Credentials):
    """Google Drive API v3 service for a user's credentials."""
    return build("drive", "v3", credentials=credentials, cache_discovery=False)


def http_status(error: Exception) -> int | None:
    """HTTP status of a googleapiclient error, if it carries one."""
    if isinstance(error, HttpError):
        return error.resp.status if error.resp is not None else None
    return None
