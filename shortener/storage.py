"""Storage collaborators for short links.

Two implementations of the ``LinkStore`` protocol are provided: an in-process
map used for tests and single-node deployments, and a SQLAlchemy async store
backed by PostgreSQL.

Store Layout
============
::
    InMemoryLinkStore
    ├─ _links:  code -> ShortLink        (single authoritative record)
    ├─ _by_owner: owner_id -> [code]     (keys only, no record copies)
    └─ _owners: {owner_id}

    SqlLinkStore
    ├─ short_links (PK code)
    └─ owners      (PK id)

Key Behaviours
===============
- ``insert`` is the atomic check-and-reserve: it returns False when the code
  already exists instead of overwriting.
- Every read returns a copy; writes go through ``put``, a compare-and-swap on
  ``version``. A False return means another writer got there first (or the
  code is gone) and the caller must re-read.
- ``scan`` filters by status and expiry inside the backend, so the sweep
  never loads records it will not touch.
- Backend failures surface as ``StorageError``; stores do not retry.
"""

import datetime
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortener.domain import ShortLink, StorageError
from shortener.enums import LinkStatus
from shortener.models import OwnerRow, ShortLinkRow

__all__ = ["LinkStore", "InMemoryLinkStore", "SqlLinkStore"]


class LinkStore(Protocol):
    async def exists(self, code: str) -> bool: ...

    async def get(self, code: str) -> ShortLink | None: ...

    async def insert(self, link: ShortLink) -> bool: ...

    async def put(self, link: ShortLink) -> bool: ...

    async def scan(
        self, status: LinkStatus | None = None, expires_before: datetime.datetime | None = None
    ) -> list[ShortLink]: ...

    async def list_by_owner(self, owner_id: uuid.UUID) -> list[ShortLink]: ...

    async def register_owner(self, owner_id: uuid.UUID) -> None: ...

    async def count_links(self) -> int: ...

    async def count_owners(self) -> int: ...

    async def count_by_status(self, status: LinkStatus) -> int: ...

    async def ping(self) -> None: ...


class InMemoryLinkStore:
    """Process-local store. Single-statement operations are atomic on the event loop."""

    def __init__(self) -> None:
        self._links: dict[str, ShortLink] = {}
        self._by_owner: dict[uuid.UUID, list[str]] = {}
        self._owners: set[uuid.UUID] = set()

    async def exists(self, code: str) -> bool:
        return code in self._links

    async def get(self, code: str) -> ShortLink | None:
        link = self._links.get(code)
        return link.copy() if link is not None else None

    async def insert(self, link: ShortLink) -> bool:
        if link.code in self._links:
            return False
        self._links[link.code] = link.copy()
        self._by_owner.setdefault(link.owner_id, []).append(link.code)
        self._owners.add(link.owner_id)
        return True

    async def put(self, link: ShortLink) -> bool:
        current = self._links.get(link.code)
        if current is None or current.version != link.version:
            return False
        link.version += 1
        self._links[link.code] = link.copy()
        return True

    async def scan(
        self, status: LinkStatus | None = None, expires_before: datetime.datetime | None = None
    ) -> list[ShortLink]:
        return [
            link.copy()
            for link in list(self._links.values())
            if (status is None or link.status is status)
            and (expires_before is None or link.expires_at < expires_before)
        ]

    async def list_by_owner(self, owner_id: uuid.UUID) -> list[ShortLink]:
        return [self._links[code].copy() for code in self._by_owner.get(owner_id, [])]

    async def register_owner(self, owner_id: uuid.UUID) -> None:
        self._owners.add(owner_id)

    async def count_links(self) -> int:
        return len(self._links)

    async def count_owners(self) -> int:
        return len(self._owners)

    async def count_by_status(self, status: LinkStatus) -> int:
        return sum(1 for link in self._links.values() if link.status is status)

    async def ping(self) -> None:
        return None


class SqlLinkStore:
    """SQLAlchemy async store. Uniqueness of ``code`` is enforced by the primary key."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], logger: logging.Logger | None = None) -> None:
        self._session_factory = session_factory
        self._logger = logger or logging.getLogger("shortener")

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
            except SQLAlchemyError as exc:
                await session.rollback()
                self._logger.error(f"Storage operation failed: {exc}")
                raise StorageError(str(exc)) from exc

    async def exists(self, code: str) -> bool:
        async with self._session() as session:
            result = await session.execute(select(ShortLinkRow.code).where(ShortLinkRow.code == code))
            return result.scalar_one_or_none() is not None

    async def get(self, code: str) -> ShortLink | None:
        async with self._session() as session:
            row = await session.get(ShortLinkRow, code)
            return row.to_link() if row is not None else None

    async def insert(self, link: ShortLink) -> bool:
        async with self._session() as session:
            # Link and owner rows commit together.
            await session.merge(OwnerRow(id=link.owner_id))
            session.add(ShortLinkRow.from_link(link))
            try:
                await session.commit()
            except IntegrityError:
                # Taken code, or the owner row was created concurrently. Either
                # way nothing was written and the caller regenerates.
                await session.rollback()
                self._logger.warning(f"Insert rejected for code {link.code}")
                return False
        return True

    async def put(self, link: ShortLink) -> bool:
        async with self._session() as session:
            result = await session.execute(
                update(ShortLinkRow)
                .where(ShortLinkRow.code == link.code, ShortLinkRow.version == link.version)
                .values(
                    click_count=link.click_count,
                    max_clicks=link.max_clicks,
                    status=link.status.value,
                    expires_at=link.expires_at,
                    version=ShortLinkRow.version + 1,
                )
            )
            if result.rowcount == 0:
                await session.rollback()
                return False
            await session.commit()
        link.version += 1
        return True

    async def scan(
        self, status: LinkStatus | None = None, expires_before: datetime.datetime | None = None
    ) -> list[ShortLink]:
        query = select(ShortLinkRow)
        if status is not None:
            query = query.where(ShortLinkRow.status == status.value)
        if expires_before is not None:
            query = query.where(ShortLinkRow.expires_at < expires_before)
        async with self._session() as session:
            result = await session.execute(query.order_by(ShortLinkRow.expires_at))
            return [row.to_link() for row in result.scalars().all()]

    async def list_by_owner(self, owner_id: uuid.UUID) -> list[ShortLink]:
        async with self._session() as session:
            result = await session.execute(
                select(ShortLinkRow).where(ShortLinkRow.owner_id == owner_id).order_by(ShortLinkRow.created_at)
            )
            return [row.to_link() for row in result.scalars().all()]

    async def register_owner(self, owner_id: uuid.UUID) -> None:
        async with self._session() as session:
            if await session.get(OwnerRow, owner_id) is not None:
                return
            session.add(OwnerRow(id=owner_id))
            try:
                await session.commit()
            except IntegrityError:
                # Registered concurrently.
                await session.rollback()

    async def count_links(self) -> int:
        async with self._session() as session:
            result = await session.execute(select(func.count()).select_from(ShortLinkRow))
            return int(result.scalar_one())

    async def count_owners(self) -> int:
        async with self._session() as session:
            result = await session.execute(select(func.count()).select_from(OwnerRow))
            return int(result.scalar_one())

    async def count_by_status(self, status: LinkStatus) -> int:
        async with self._session() as session:
            result = await session.execute(
                select(func.count()).select_from(ShortLinkRow).where(ShortLinkRow.status == status.value)
            )
            return int(result.scalar_one())

    async def ping(self) -> None:
        async with self._session() as session:
            await session.execute(select(1))
