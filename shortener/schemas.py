"""Pydantic schemas for request/response validation in the short-link API.

Schema Hierarchy
=================
::
    LinkCreate (Input)
    ├─ url: str (validated, normalized)
    ├─ owner_id: UUID
    ├─ max_clicks: int | None (>= 1)
    └─ expiration_hours: int | None (>= 1)

    ClickLimitUpdate / ExpiryExtension / OwnerAction (Input)
    └─ owner_id: UUID (+ new_limit / additional_hours)

    LinkResponse / LinkStats (Output)
    ├─ short_code, short_url, original_url, owner_id
    ├─ clicks, max_clicks, status
    └─ created_at, expires_at

    OwnerResponse, NotificationsResponse, StatisticsResponse,
    DeactivateResponse, ErrorResponse, HealthResponse (Output)

Key Behaviours
===============
- URL validation uses the validators library; a missing scheme becomes https.
- Positive limits are enforced here and again in the lifecycle engine.
- All datetime fields are timezone-aware.
"""

import datetime
import uuid

from pydantic import BaseModel, Field, field_validator

from shortener.domain import ShortLink
from shortener.enums import AccessDenial, ErrorKind, HealthStatus, LinkStatus
from shortener.urls import is_valid_url, normalize_url

__all__ = [
    "LinkCreate",
    "ClickLimitUpdate",
    "ExpiryExtension",
    "OwnerAction",
    "LinkResponse",
    "LinkStats",
    "OwnerResponse",
    "NotificationsResponse",
    "StatisticsResponse",
    "DeactivateResponse",
    "ErrorResponse",
    "HealthResponse",
]


class LinkCreate(BaseModel):
    url: str
    owner_id: uuid.UUID
    max_clicks: int | None = Field(None, ge=1, description="Click budget; defaults to DEFAULT_MAX_CLICKS")
    expiration_hours: int | None = Field(None, ge=1, description="Lifetime in hours; defaults to DEFAULT_EXPIRATION_HOURS")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not is_valid_url(v):
            raise ValueError("Invalid URL provided")
        return normalize_url(v)


class OwnerAction(BaseModel):
    owner_id: uuid.UUID


class ClickLimitUpdate(OwnerAction):
    new_limit: int = Field(..., ge=1)


class ExpiryExtension(OwnerAction):
    additional_hours: int = Field(..., ge=1)


class LinkResponse(BaseModel):
    short_code: str
    short_url: str
    original_url: str
    owner_id: uuid.UUID
    clicks: int
    max_clicks: int
    status: LinkStatus
    created_at: datetime.datetime
    expires_at: datetime.datetime

    @classmethod
    def from_link(cls, link: ShortLink, base_url: str) -> "LinkResponse":
        return cls(
            short_code=link.code,
            short_url=link.short_url(base_url),
            original_url=link.target_url,
            owner_id=link.owner_id,
            clicks=link.click_count,
            max_clicks=link.max_clicks,
            status=link.status,
            created_at=link.created_at,
            expires_at=link.expires_at,
        )


class LinkStats(LinkResponse):
    accessible: bool


class OwnerResponse(BaseModel):
    owner_id: uuid.UUID


class NotificationsResponse(BaseModel):
    owner_id: uuid.UUID
    notifications: list[str]


class StatisticsResponse(BaseModel):
    total_links: int
    total_owners: int
    active_links: int


class DeactivateResponse(BaseModel):
    short_code: str
    deactivated: bool


class ErrorResponse(BaseModel):
    error: ErrorKind
    reason: AccessDenial | None = None
    message: str


class HealthResponse(BaseModel):
    status: HealthStatus
    storage: HealthStatus
    notifier: HealthStatus
