"""SQLAlchemy ORM models for the short-link service.

Data Model Layout
=================
::
    short_links table
    ├─ code (VARCHAR(16) PRIMARY KEY)
    ├─ target_url (TEXT NOT NULL)
    ├─ owner_id (UUID, INDEXED)
    ├─ click_count (INTEGER DEFAULT 0)
    ├─ max_clicks (INTEGER NOT NULL)
    ├─ status (VARCHAR(20), INDEXED)
    ├─ created_at (TIMESTAMPTZ)
    ├─ expires_at (TIMESTAMPTZ, INDEXED)
    └─ version (INTEGER DEFAULT 0)

    owners table
    ├─ id (UUID PRIMARY KEY)
    └─ created_at (TIMESTAMPTZ)

Key Behaviours
===============
- ``code`` is the primary key, so a duplicate insert fails with IntegrityError;
  the store uses that as its atomic check-and-reserve.
- ``status`` and ``expires_at`` are indexed for the expiry sweep scan.
- ``version`` guards every update: a write only applies to the version it was
  read at, so concurrent writers from any process cannot overwrite each other.
- Rows never carry live references to each other; the owner index is the
  ``owner_id`` column only.

Classes:
    ShortLinkRow:  Persistent form of ``shortener.domain.ShortLink``.
    OwnerRow:  Registered owner identity.
"""

import datetime
import uuid

from sqlalchemy import DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from shortener.database import Base
from shortener.domain import ShortLink, utcnow
from shortener.enums import LinkStatus

__all__ = ["ShortLinkRow", "OwnerRow"]


class ShortLinkRow(Base):
    __tablename__ = "short_links"

    code: Mapped[str] = mapped_column(String(16), primary_key=True)
    target_url: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    click_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_clicks: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), index=True, default=LinkStatus.ACTIVE.value, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @classmethod
    def from_link(cls, link: ShortLink) -> "ShortLinkRow":
        return cls(
            code=link.code,
            target_url=link.target_url,
            owner_id=link.owner_id,
            click_count=link.click_count,
            max_clicks=link.max_clicks,
            status=link.status.value,
            created_at=link.created_at,
            expires_at=link.expires_at,
            version=link.version,
        )

    def to_link(self) -> ShortLink:
        return ShortLink(
            code=self.code,
            target_url=self.target_url,
            owner_id=self.owner_id,
            click_count=self.click_count,
            max_clicks=self.max_clicks,
            status=LinkStatus(self.status),
            created_at=_as_utc(self.created_at),
            expires_at=_as_utc(self.expires_at),
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<ShortLinkRow(code='{self.code}', status='{self.status}', clicks={self.click_count}/{self.max_clicks})>"


class OwnerRow(Base):
    __tablename__ = "owners"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    # SQLite drops tzinfo on the way back.
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value
