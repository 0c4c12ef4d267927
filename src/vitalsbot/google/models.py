"""Google credential models.

`StoredCredential` is the exact JSON value kept in ``User Profiles!A1`` of a
user's spreadsheet: the OAuth tokens and the spreadsheet id travel together
as one value, so a read yields either nothing or a consistent pair.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class OAuthCredential(BaseModel):
    """OAuth token bundle. ``expiry_date`` is epoch milliseconds."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str | None = None
    refresh_token: str | None = None
    scope: str | None = None
    token_type: str | None = None
    expiry_date: int | None = None


class StoredCredential(BaseModel):
    """Persisted (spreadsheet id, credential) pair."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    spreadsheet_id: str = Field(alias="spreadsheetId")
    access_token: str | None = None
    refresh_token: str | None = None
    scope: str | None = None
    token_type: str | None = None
    expiry_date: int | None = None

    @classmethod
    def pair(cls, spreadsheet_id: str, credential: OAuthCredential) -> StoredCredential:
        return cls(spreadsheet_id=spreadsheet_id, **credential.model_dump())

    @classmethod
    def from_cell_value(cls, raw: str) -> StoredCredential:
        """Parse the cell text. Raises pydantic.ValidationError on bad JSON."""
        return cls.model_validate_json(raw)

    def to_cell_value(self) -> str:
        return self.model_dump_json(by_alias=True)

    @property
    def credential(self) -> OAuthCredential:
        return OAuthCredential(**self.model_dump(exclude={"spreadsheet_id"}))
