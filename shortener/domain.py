"""Domain records and operation results for the short-link lifecycle.

Record Layout
=============
::
    ShortLink
    ├─ code: str            (immutable, unique, 7 chars)
    ├─ target_url: str      (immutable, normalized)
    ├─ owner_id: UUID       (immutable)
    ├─ click_count: int     (0 .. max_clicks)
    ├─ max_clicks: int      (positive)
    ├─ created_at: datetime (immutable, UTC)
    ├─ expires_at: datetime
    ├─ status: LinkStatus
    └─ version: int         (bumped by every stored write)

    Result[T]
    ├─ value: T | None
    ├─ error: ErrorKind | None
    ├─ reason: AccessDenial | None  (only for NOT_ACCESSIBLE)
    └─ message: str

Key Behaviours
===============
- Stores hand out copies of ``ShortLink``; mutating a fetched record never
  changes stored state until it is written back with ``put``, which only
  succeeds while the stored ``version`` still matches the copy.
- Lifecycle operations return ``Result`` values instead of raising for
  domain errors. ``StorageError`` is the one exception collaborators raise.

Classes:
    ShortLink:  The central mutable record.
    Result:  Success or failure outcome of a lifecycle operation.
    AccessGrant:  Payload returned by a successful access.
    LinkStatistics:  Storage-wide counters.
    StorageError:  Wrapped persistence failure.
"""

import dataclasses
import datetime
import uuid
from dataclasses import dataclass
from typing import Generic, TypeVar

from shortener.enums import AccessDenial, ErrorKind, LinkStatus

__all__ = ["ShortLink", "Result", "AccessGrant", "LinkStatistics", "StorageError", "utcnow"]

T = TypeVar("T")


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class StorageError(Exception):
    """Raised by storage collaborators when the backend fails."""


@dataclass
class ShortLink:
    code: str
    target_url: str
    owner_id: uuid.UUID
    max_clicks: int
    expires_at: datetime.datetime
    created_at: datetime.datetime = dataclasses.field(default_factory=utcnow)
    click_count: int = 0
    status: LinkStatus = LinkStatus.ACTIVE
    version: int = 0

    def copy(self) -> "ShortLink":
        return dataclasses.replace(self)

    def is_expired(self, now: datetime.datetime) -> bool:
        return now > self.expires_at

    def is_click_limit_reached(self) -> bool:
        return self.click_count >= self.max_clicks

    def short_url(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}/{self.code}"


@dataclass(frozen=True)
class AccessGrant:
    target_url: str
    click_count: int
    max_clicks: int
    status: LinkStatus


@dataclass(frozen=True)
class LinkStatistics:
    total_links: int
    total_owners: int
    active_links: int


@dataclass(frozen=True)
class Result(Generic[T]):
    value: T | None = None
    error: ErrorKind | None = None
    reason: AccessDenial | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, message: str, reason: AccessDenial | None = None) -> "Result[T]":
        return cls(error=error, reason=reason, message=message)

    def __repr__(self) -> str:
        if self.ok:
            return f"<Result(ok, value={self.value!r})>"
        return f"<Result(error={self.error}, reason={self.reason}, message='{self.message}')>"
