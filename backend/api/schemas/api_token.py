"""
API token management schemas.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.scopes import unknown_scopes


class ApiTokenCreateRequest(BaseModel):
    """Request to mint a new API token."""

    name: str = Field(..., min_length=1, max_length=100)
    scopes: list[str] = Field(..., min_length=1)
    expires_in_days: int | None = Field(None, ge=1, le=365)

    @field_validator("scopes")
    @classmethod
    def validate_scopes(cls, v: list[str]) -> list[str]:
        unknown = unknown_scopes(v)
        if unknown:
            raise ValueError(f"Unknown scopes: {', '.join(unknown)}")
        # De-duplicate, keep order
        return list(dict.fromkeys(v))


class ApiTokenResponse(BaseModel):
    """Token metadata; never includes the secret."""

    id: str
    name: str
    token_prefix: str
    scopes: list[str]
    expires_at: datetime | None = None
    last_used: datetime | None = None
    created_at: datetime
    is_expired: bool = False

    model_config = ConfigDict(from_attributes=True)


class ApiTokenCreatedResponse(ApiTokenResponse):
    """Returned once at creation; ``token`` is the only copy of the secret."""

    token: str


class ApiTokenListResponse(BaseModel):
    tokens: list[ApiTokenResponse]
    total: int


class EndpointCount(BaseModel):
    endpoint: str
    count: int


class StatusCodeCount(BaseModel):
    status_code: int
    count: int


class UsageStatsResponse(BaseModel):
    """Request counts over a trailing window."""

    total_requests: int
    by_endpoint: list[EndpointCount]
    by_status_code: list[StatusCodeCount]
    window: str
