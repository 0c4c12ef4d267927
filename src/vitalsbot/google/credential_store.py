"""Google Sheets/Drive adapter for per-user credentials and readings.

Each user owns one spreadsheet, found by a Drive ``appProperties`` marker.
Its ``User Profiles!A1`` cell holds the serialized (spreadsheet id, tokens)
pair; the ``Blood Sugar`` and ``Blood Pressure`` sheets collect readings.

Absence (no document, empty cell, unknown range) is a normal state and comes
back as ``None``. Only `append_reading` raises, because the user has to be
told when a reading was not saved.
"""

from __future__ import annotations

from dataclasses import dataclass

import pydantic

from vitalsbot.config import Settings
from vitalsbot.domain.errors import ExternalServiceError, NotFoundCondition
from vitalsbot.domain.identity import BOT_IDENTIFIER_KEY, bot_identifier, sanitize_user_id
from vitalsbot.domain.readings import Reading, ReadingKind
from vitalsbot.google.models import OAuthCredential, StoredCredential
from vitalsbot.google.oauth_registry import ClientHandle
from vitalsbot.google.services import drive_service, http_status, sheets_service
from vitalsbot.google.sheet_template import (
    BLOOD_PRESSURE_RANGE,
    BLOOD_SUGAR_RANGE,
    CREDENTIAL_CELL,
    new_spreadsheet_body,
)
from vitalsbot.infra.blocking import run_blocking
from vitalsbot.observability.logging import get_logger
from vitalsbot.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

# Sheets answers 400 for an unknown sheet/range and 404 for an unknown document
_ABSENT_STATUSES = (400, 404)


@dataclass(frozen=True)
class WriteResult:
    ok: bool
    message: str


class CredentialStore:
    """Reads and writes a user's spreadsheet through their own OAuth handle."""

    def __init__(self, settings: Settings) -> None:
        self._timeout = settings.external_call_timeout

    async def _call(self, fn, *, service: str, handle: ClientHandle):
        result = await run_blocking(fn, service=service, timeout=self._timeout)
        await handle.notice_refresh()
        return result

    async def find_spreadsheet_id(self, user_id: str, handle: ClientHandle) -> str | None:
        """First non-trashed spreadsheet tagged for this user, or None.

        Searching needs the user's own authorization; a handle that never had
        credentials applied cannot search and yields None.
        """
        user_hash = hash_identifier(sanitize_user_id(user_id))
        if not handle.is_authorized:
            logger.info(
                "no credentials to search for spreadsheet",
                extra={"extra_fields": safe_log_context(user_hash=user_hash)},
            )
            return None

        query = (
            f"appProperties has {{ key='{BOT_IDENTIFIER_KEY}' and "
            f"value='{bot_identifier(user_id)}' }} and trashed = false"
        )

        def _list() -> dict:
            return (
                drive_service(handle.credentials)
                .files()
                .list(q=query, fields="files(id, name)", spaces="drive")
                .execute()
            )

        try:
            response = await self._call(_list, service="google_drive", handle=handle)
        except Exception as e:
            logger.error(
                "spreadsheet search failed",
                extra={
                    "extra_fields": safe_log_context(
                        user_hash=user_hash,
                        status=http_status(e),
                        error_type=type(e).__name__,
                    )
                },
            )
            return None

        files = response.get("files") or []
        return files[0].get("id") if files else None

    async def read_credential_blob(
        self, user_id: str, spreadsheet_id: str, handle: ClientHandle
    ) -> StoredCredential | None:
        """Read the stored pair from the credential cell, or None if absent."""
        user_hash = hash_identifier(sanitize_user_id(user_id))
        if handle.credentials is None:
            return None

        def _get() -> dict:
            return (
                sheets_service(handle.credentials)
                .spreadsheets()
                .values()
                .get(spreadsheetId=spreadsheet_id, range=CREDENTIAL_CELL)
                .execute()
            )

        try:
            response = await self._call(_get, service="google_sheets", handle=handle)
            raw = _first_cell(response)
            return StoredCredential.from_cell_value(raw)
        except NotFoundCondition:
            logger.info(
                "no tokens stored in sheet",
                extra={"extra_fields": safe_log_context(user_hash=user_hash)},
            )
            return None
        except pydantic.ValidationError:
            logger.warning(
                "stored credential cell is malformed",
                extra={"extra_fields": safe_log_context(user_hash=user_hash)},
            )
            return None
        except Exception as e:
            status = http_status(e)
            if status in _ABSENT_STATUSES:
                logger.info(
                    "sheet or range not found",
                    extra={"extra_fields": safe_log_context(user_hash=user_hash, status=status)},
                )
            else:
                logger.error(
                    "reading stored credential failed",
                    extra={
                        "extra_fields": safe_log_context(
                            user_hash=user_hash,
                            status=status,
                            error_type=type(e).__name__,
                        )
                    },
                )
            return None

    async def write_credential_blob(
        self,
        handle: ClientHandle,
        user_id: str,
        spreadsheet_id: str,
        credential: OAuthCredential,
    ) -> WriteResult:
        """Overwrite the credential cell with the (spreadsheet id, tokens) pair."""
        user_hash = hash_identifier(sanitize_user_id(user_id))
        blob = StoredCredential.pair(spreadsheet_id, credential)

        def _update() -> dict:
            return (
                sheets_service(handle.require_credentials())
                .spreadsheets()
                .values()
                .update(
                    spreadsheetId=spreadsheet_id,
                    range=CREDENTIAL_CELL,
                    valueInputOption="RAW",
                    body={"values": [[blob.to_cell_value()]]},
                )
                .execute()
            )

        try:
            response = await run_blocking(_update, service="google_sheets", timeout=self._timeout)
        except Exception as e:
            logger.error(
                "storing credential failed",
                extra={
                    "extra_fields": safe_log_context(
                        user_hash=user_hash,
                        status=http_status(e),
                        error_type=type(e).__name__,
                    )
                },
            )
            return WriteResult(ok=False, message=f"Error updating spreadsheet: {type(e).__name__}")

        # A refresh during the write is persisted by the listener
        await handle.notice_refresh()
        logger.info(
            "credential stored",
            extra={
                "extra_fields": safe_log_context(
                    user_hash=user_hash,
                    updated_cells=response.get("updatedCells"),
                )
            },
        )
        return WriteResult(ok=True, message="OK")

    async def create_spreadsheet(self, user_id: str, handle: ClientHandle) -> str | None:
        """Create and tag a new spreadsheet for the user, or None on failure."""
        clean_id = sanitize_user_id(user_id)
        user_hash = hash_identifier(clean_id)

        def _create() -> str:
            creds = handle.require_credentials()
            created = (
                sheets_service(creds)
                .spreadsheets()
                .create(body=new_spreadsheet_body(), fields="spreadsheetId")
                .execute()
            )
            spreadsheet_id = created["spreadsheetId"]
            drive_service(creds).files().update(
                fileId=spreadsheet_id,
                body={
                    "appProperties": {BOT_IDENTIFIER_KEY: bot_identifier(clean_id)},
                    "copyRequiresWriterPermission": True,
                    "writersCanShare": False,
                },
            ).execute()
            return spreadsheet_id

        try:
            spreadsheet_id = await self._call(_create, service="google_sheets", handle=handle)
        except Exception as e:
            logger.error(
                "creating spreadsheet failed",
                extra={
                    "extra_fields": safe_log_context(
                        user_hash=user_hash,
                        status=http_status(e),
                        error_type=type(e).__name__,
                    )
                },
            )
            return None

        logger.info(
            "spreadsheet created",
            extra={"extra_fields": safe_log_context(user_hash=user_hash)},
        )
        return spreadsheet_id

    async def append_reading(
        self, reading: Reading, spreadsheet_id: str, handle: ClientHandle
    ) -> None:
        """Append the reading as one row to its sheet.

        Raises:
            ExternalServiceError: If the append fails.
        """
        target = BLOOD_SUGAR_RANGE if reading.kind == ReadingKind.BLOOD_SUGAR else BLOOD_PRESSURE_RANGE

        def _append() -> dict:
            return (
                sheets_service(handle.require_credentials())
                .spreadsheets()
                .values()
                .append(
                    spreadsheetId=spreadsheet_id,
                    range=target,
                    valueInputOption="USER_ENTERED",
                    body={"values": [reading.to_row()]},
                )
                .execute()
            )

        try:
            await self._call(_append, service="google_sheets", handle=handle)
        except ExternalServiceError:
            raise
        except Exception as e:
            raise ExternalServiceError(
                "google_sheets", f"append to {target} failed", status=http_status(e)
            ) from e

        logger.info(
            "reading saved",
            extra={
                "extra_fields": safe_log_context(
                    user_hash=hash_identifier(handle.user_id),
                    kind=reading.kind.value,
                )
            },
        )


def _first_cell(response: dict) -> str:
    values = response.get("values") or []
    if not values or not values[0] or not values[0][0]:
        raise NotFoundCondition("credential cell is empty")
    return values[0][0]
