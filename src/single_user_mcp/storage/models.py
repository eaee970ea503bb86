"""Pydantic models for OAuth entity storage.

These models define the records persisted in the snapshot file: clients,
users, authorization codes, access tokens, and refresh tokens. Attributes
are snake_case in Python and camelCase on disk.
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class StoredRecord(BaseModel):
    """Base for every persisted record."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("*", mode="after")
    @classmethod
    def _assume_utc(cls, value: Any) -> Any:
        # Snapshots written by other tools may carry naive timestamps
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class OAuthClient(StoredRecord):
    """OAuth client, registered statically or through DCR."""

    id: str
    secret: str | None = None
    name: str | None = None
    type: Literal["public", "confidential"] = "confidential"
    redirect_uris: list[str] = Field(default_factory=list)
    scopes: list[str] = Field(default_factory=list)
    grant_types: list[str] = Field(
        default_factory=lambda: ["authorization_code", "refresh_token"]
    )
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class OAuthUser(StoredRecord):
    """End user known to the authorization server."""

    id: str
    username: str
    name: str | None = None
    email: str | None = None
    scopes: list[str] = Field(default_factory=list)
    profile: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AuthorizationCode(StoredRecord):
    """Single-use authorization code."""

    code: str
    client_id: str
    user_id: str
    redirect_uri: str
    redirect_uri_provided_explicitly: bool = True
    scope: str = ""
    resource: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)


class AccessToken(StoredRecord):
    """Bearer access token."""

    token: str
    client_id: str
    user_id: str
    scope: str = ""
    resource: str | None = None
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)


class RefreshToken(StoredRecord):
    """Refresh token bound to the access token it was issued with."""

    token: str
    access_token_id: str
    client_id: str
    user_id: str
    scope: str = ""
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)


class StoreStats(BaseModel):
    """Record count per table."""

    clients: int = 0
    users: int = 0
    authorization_codes: int = 0
    access_tokens: int = 0
    refresh_tokens: int = 0
