"""Storage tests for the in-memory and SQLAlchemy link stores."""

import asyncio
import datetime
import uuid
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from shortener.database import close_db, create_db_engine, create_session_factory, init_db
from shortener.domain import ShortLink, StorageError
from shortener.enums import AccessDenial, LinkStatus
from shortener.lifecycle import LinkLifecycleEngine
from shortener.notifications import InMemoryNotifier
from shortener.storage import InMemoryLinkStore, SqlLinkStore

NOW = datetime.datetime(2026, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
HOUR = datetime.timedelta(hours=1)


def _link(code: str = "abcdefg", owner: uuid.UUID | None = None, **overrides) -> ShortLink:
    fields = dict(
        code=code,
        target_url=f"https://{code}.example.com",
        owner_id=owner or uuid.uuid4(),
        max_clicks=5,
        created_at=NOW,
        expires_at=NOW + 24 * HOUR,
    )
    fields.update(overrides)
    return ShortLink(**fields)


@pytest_asyncio.fixture(scope="function")
async def sql_store() -> AsyncGenerator[SqlLinkStore, None]:
    db_engine = create_db_engine("sqlite+aiosqlite:///:memory:")
    await init_db(db_engine)
    yield SqlLinkStore(create_session_factory(db_engine))
    await close_db(db_engine)


@pytest.fixture(params=["memory", "sql"])
def any_store(request, sql_store):
    if request.param == "memory":
        return InMemoryLinkStore()
    return sql_store


# ============================================================================
# SHARED BEHAVIOUR
# ============================================================================


@pytest.mark.asyncio
async def test_insert_and_get(any_store) -> None:
    link = _link()

    assert await any_store.insert(link)
    assert await any_store.exists("abcdefg")
    assert not await any_store.exists("missing")

    stored = await any_store.get("abcdefg")
    assert stored == link
    assert stored.created_at.tzinfo is not None
    assert stored.expires_at == NOW + 24 * HOUR
    assert await any_store.get("missing") is None


@pytest.mark.asyncio
async def test_duplicate_insert_is_rejected(any_store) -> None:
    original = _link()
    assert await any_store.insert(original)

    assert not await any_store.insert(_link(target_url="https://other.example.com"))
    assert (await any_store.get("abcdefg")).target_url == original.target_url
    assert await any_store.count_links() == 1


@pytest.mark.asyncio
async def test_put_updates_mutable_fields(any_store) -> None:
    link = _link()
    await any_store.insert(link)

    link.click_count = 5
    link.max_clicks = 5
    link.status = LinkStatus.LIMIT_EXCEEDED
    link.expires_at = NOW + 48 * HOUR
    assert await any_store.put(link)

    stored = await any_store.get("abcdefg")
    assert stored.click_count == 5
    assert stored.status is LinkStatus.LIMIT_EXCEEDED
    assert stored.expires_at == NOW + 48 * HOUR


@pytest.mark.asyncio
async def test_put_unknown_code_is_rejected(any_store) -> None:
    assert not await any_store.put(_link("missing"))


@pytest.mark.asyncio
async def test_put_with_stale_version_is_rejected(any_store) -> None:
    await any_store.insert(_link())
    first = await any_store.get("abcdefg")
    second = await any_store.get("abcdefg")

    first.click_count = 1
    assert await any_store.put(first)
    assert first.version == 1

    second.status = LinkStatus.INACTIVE
    assert not await any_store.put(second)

    stored = await any_store.get("abcdefg")
    assert stored.click_count == 1
    assert stored.status is LinkStatus.ACTIVE
    assert stored.version == 1


@pytest.mark.asyncio
async def test_reads_return_copies(any_store) -> None:
    await any_store.insert(_link())

    fetched = await any_store.get("abcdefg")
    fetched.click_count = 4

    assert (await any_store.get("abcdefg")).click_count == 0


@pytest.mark.asyncio
async def test_scan_filters_by_status_and_expiry(any_store) -> None:
    await any_store.insert(_link("expired1", expires_at=NOW - HOUR))
    await any_store.insert(_link("fresh01"))
    await any_store.insert(_link("limited", expires_at=NOW - HOUR, status=LinkStatus.LIMIT_EXCEEDED))

    expired = await any_store.scan(status=LinkStatus.ACTIVE, expires_before=NOW)
    assert [link.code for link in expired] == ["expired1"]

    past_due = await any_store.scan(expires_before=NOW)
    assert {link.code for link in past_due} == {"expired1", "limited"}

    everything = await any_store.scan()
    assert {link.code for link in everything} == {"expired1", "fresh01", "limited"}


@pytest.mark.asyncio
async def test_list_by_owner_and_counts(any_store) -> None:
    owner, other = uuid.uuid4(), uuid.uuid4()
    await any_store.insert(_link("first01", owner, created_at=NOW))
    await any_store.insert(_link("second1", owner, created_at=NOW + HOUR))
    await any_store.insert(_link("other01", other, status=LinkStatus.INACTIVE))

    assert [link.code for link in await any_store.list_by_owner(owner)] == ["first01", "second1"]
    assert await any_store.list_by_owner(uuid.uuid4()) == []
    assert await any_store.count_links() == 3
    assert await any_store.count_owners() == 2
    assert await any_store.count_by_status(LinkStatus.ACTIVE) == 2
    assert await any_store.count_by_status(LinkStatus.INACTIVE) == 1


@pytest.mark.asyncio
async def test_register_owner_is_idempotent(any_store) -> None:
    owner = uuid.uuid4()

    await any_store.register_owner(owner)
    await any_store.register_owner(owner)
    await any_store.insert(_link(owner=owner))

    assert await any_store.count_owners() == 1


@pytest.mark.asyncio
async def test_ping(any_store) -> None:
    assert await any_store.ping() is None


# ============================================================================
# SQL STORE
# ============================================================================


@pytest.mark.asyncio
async def test_sql_errors_are_wrapped_as_storage_error() -> None:
    session = MagicMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    session.get = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("connection refused")))
    session.rollback = AsyncMock()
    store = SqlLinkStore(MagicMock(return_value=session))

    with pytest.raises(StorageError, match="connection refused"):
        await store.get("abcdefg")

    session.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_engine_lifecycle_over_sql_store(sql_store: SqlLinkStore, settings) -> None:
    engine = LinkLifecycleEngine(sql_store, InMemoryNotifier(), settings=settings, clock=lambda: NOW)
    owner = uuid.uuid4()

    code = (await engine.shorten("https://example.com", owner, max_clicks=2, expiration_hours=1)).value.code
    assert (await engine.access(code)).ok
    last = await engine.access(code)
    assert last.value.status is LinkStatus.LIMIT_EXCEEDED
    assert (await engine.access(code)).reason is AccessDenial.LIMIT_EXCEEDED

    other = (await engine.shorten("https://example.org", owner, expiration_hours=1)).value.code
    assert await engine.sweep_expired(NOW + 2 * HOUR) == 1
    assert (await sql_store.get(other)).status is LinkStatus.EXPIRED

    stats = (await engine.statistics()).value
    assert (stats.total_links, stats.total_owners, stats.active_links) == (2, 1, 0)


@pytest.mark.asyncio
async def test_rejected_insert_registers_no_owner(any_store) -> None:
    await any_store.insert(_link())

    assert not await any_store.insert(_link(owner=uuid.uuid4()))
    assert await any_store.count_owners() == 1


@pytest.mark.asyncio
async def test_sql_sweep_only_loads_due_records(sql_store: SqlLinkStore, settings) -> None:
    engine = LinkLifecycleEngine(sql_store, InMemoryNotifier(), settings=settings, clock=lambda: NOW)
    await sql_store.insert(_link("overdue", expires_at=NOW - HOUR))
    await sql_store.insert(_link("fresh01"))
    await sql_store.insert(_link("later01", expires_at=NOW + HOUR))

    assert [link.code for link in await sql_store.scan(status=LinkStatus.ACTIVE, expires_before=NOW)] == ["overdue"]
    assert await engine.sweep_expired(NOW) == 1
    assert (await sql_store.get("overdue")).status is LinkStatus.EXPIRED
    assert (await sql_store.get("later01")).status is LinkStatus.ACTIVE


@pytest_asyncio.fixture(scope="function")
async def shared_db_engines(tmp_path, settings) -> AsyncGenerator[list[LinkLifecycleEngine], None]:
    """Two engines with their own store and connection over one database file."""
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'links.db'}"
    db_engines = [create_db_engine(database_url) for _ in range(2)]
    await init_db(db_engines[0])
    yield [
        LinkLifecycleEngine(
            SqlLinkStore(create_session_factory(db_engine)), InMemoryNotifier(), settings=settings, clock=lambda: NOW
        )
        for db_engine in db_engines
    ]
    for db_engine in db_engines:
        await close_db(db_engine)


@pytest.mark.asyncio
async def test_click_limit_holds_across_engines_sharing_a_database(
    shared_db_engines: list[LinkLifecycleEngine],
) -> None:
    first, second = shared_db_engines
    code = (await first.shorten("https://example.com", uuid.uuid4(), max_clicks=5)).value.code

    results = await asyncio.gather(*(engine.access(code) for _ in range(10) for engine in (first, second)))

    granted = [result for result in results if result.ok]
    assert len(granted) == 5
    assert all(result.reason is AccessDenial.LIMIT_EXCEEDED for result in results if not result.ok)
    stored = await second.store.get(code)
    assert stored.click_count == 5
    assert stored.status is LinkStatus.LIMIT_EXCEEDED


@pytest.mark.asyncio
async def test_access_cannot_revive_a_link_expired_by_another_engine(
    shared_db_engines: list[LinkLifecycleEngine],
) -> None:
    first, second = shared_db_engines
    link = _link("overdue", expires_at=NOW - HOUR)
    await first.store.insert(link)

    await asyncio.gather(second.sweep_expired(NOW), first.access("overdue", now=NOW - 2 * HOUR))

    stored = await first.store.get("overdue")
    assert stored.status is LinkStatus.EXPIRED
