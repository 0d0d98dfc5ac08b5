"""Short-link lifecycle engine - core business logic.

The engine owns every state change of a ``ShortLink`` after creation: click
accounting on access, owner management operations and the periodic expiry
sweep. Collaborators (store, notifier, code generator) are injected through
the constructor; there is no module-level service state.

State Machine
=============
::
                        access() reaches max_clicks
              ┌────────────────────────────────────────► LIMIT_EXCEEDED
              │
    ┌─────────┴──┐      sweep_expired(), expires_at < now
    │   ACTIVE   ├─────────────────────────────────────► EXPIRED
    └─────────┬──┘
              │         deactivate() by owner
              └────────────────────────────────────────► INACTIVE

    All non-ACTIVE states are terminal. Records are never deleted.

Access Flow
===========
::
    ┌─────────────┐
    │ access(code)│
    └──────┬──────┘
           ▼
    ┌─────────────┐  malformed   ┌───────────────┐
    │ valid code? ├─────────────►│ INVALID_INPUT │
    └──────┬──────┘              └───────────────┘
           ▼
    ┌─────────────┐  missing     ┌───────────────┐
    │ read record ├─────────────►│ NOT_FOUND     │
    └──────┬──────┘              └───────────────┘
           ▼
    ┌─────────────┐  no          ┌───────────────────────┐
    │ accessible? ├─────────────►│ NOT_ACCESSIBLE(reason)│
    └──────┬──────┘              │ (state untouched)     │
           ▼ yes                 └───────────────────────┘
    ┌─────────────┐
    │ click += 1  │
    │ limit hit → │
    │ LIMIT_EXC.  │
    └──────┬──────┘
           ▼
    ┌─────────────┐  version     ┌───────────────┐
    │ put (CAS)   ├─────────────►│ re-read, retry│
    └──────┬──────┘  changed     └───────────────┘
           ▼
    ┌─────────────┐
    │ grant       │
    └─────────────┘

How to Use
===========
**Step 1 — Wire collaborators**::
    store = InMemoryLinkStore()
    engine = LinkLifecycleEngine(store, InMemoryNotifier(), settings=settings)

**Step 2 — Shorten and access**::
    created = await engine.shorten("https://example.com", owner_id, max_clicks=3)
    result = await engine.access(created.value.code)
    if result.ok:
        redirect_to(result.value.target_url)

**Step 3 — Sweep periodically**::
    expired_count = await engine.sweep_expired()

Key Behaviours
===============
- ``is_accessible`` is evaluated fresh on each access from status, clock and
  click budget, so decisions never depend on sweep timing.
- Only the sweep moves ACTIVE to EXPIRED. Access attempts on a time-expired
  record report EXPIRED but leave the stored status alone.
- Every read-modify-write of a record ends in a versioned compare-and-swap
  ``put``. A lost race re-reads and decides again, so concurrent accesses from
  any number of processes sharing a store can never overshoot ``max_clicks``.
- Domain failures are returned as ``Result`` values. Storage failures become
  ``STORAGE_FAILURE`` results and are not retried here.
"""

import datetime
import functools
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Histogram

from shortener.config import Settings, get_settings
from shortener.domain import AccessGrant, LinkStatistics, Result, ShortLink, StorageError, utcnow
from shortener.enums import AccessDenial, AccessOutcome, ErrorKind, LinkStatus
from shortener.generator import CodeGenerator, is_valid_short_code
from shortener.notifications import Notifier
from shortener.storage import LinkStore
from shortener.urls import is_valid_url, normalize_url

__all__ = ["LinkLifecycleEngine", "is_accessible", "denial_reason"]

P = ParamSpec("P")
R = TypeVar("R")

LINK_CREATION_REQUESTS_TOTAL = Counter(
    "shortener_link_creation_requests_total",
    "Total short link creation requests",
    ["status"],
)
LINK_CREATION_DURATION = Histogram(
    "shortener_link_creation_duration_seconds",
    "Time taken to create short links",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)
LINK_ACCESS_TOTAL = Counter(
    "shortener_link_access_total",
    "Short link access attempts by outcome",
    ["outcome"],
)
LINK_MANAGEMENT_TOTAL = Counter(
    "shortener_link_management_total",
    "Owner management operations by operation and status",
    ["operation", "status"],
)
SWEEP_EXPIRED_TOTAL = Counter(
    "shortener_sweep_expired_total",
    "Links transitioned to EXPIRED by the sweep",
)
SWEEP_DURATION = Histogram(
    "shortener_sweep_duration_seconds",
    "Time taken by one expiry sweep",
    buckets=[0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0],
)


def is_accessible(link: ShortLink, now: datetime.datetime) -> bool:
    return link.status is LinkStatus.ACTIVE and now <= link.expires_at and link.click_count < link.max_clicks


def denial_reason(link: ShortLink, now: datetime.datetime) -> AccessDenial | None:
    """Return why ``link`` is not accessible at ``now``, or None if it is."""
    if link.status is LinkStatus.INACTIVE:
        return AccessDenial.INACTIVE
    if link.status is LinkStatus.EXPIRED or link.is_expired(now):
        return AccessDenial.EXPIRED
    if link.status is LinkStatus.LIMIT_EXCEEDED or link.is_click_limit_reached():
        return AccessDenial.LIMIT_EXCEEDED
    return None


def _storage_guarded(func: Callable[P, Awaitable[Result[R]]]) -> Callable[P, Awaitable[Result[R]]]:
    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> Result[R]:
        try:
            return await func(*args, **kwargs)
        except StorageError as exc:
            engine = args[0]
            engine._logger.error(f"{func.__name__} failed with storage error: {exc}")
            return Result.failure(ErrorKind.STORAGE_FAILURE, f"Storage failure: {exc}")

    return wrapper


class LinkLifecycleEngine:
    """Owns accessibility decisions and state transitions for short links.

    Args:
        store: Authoritative link storage.
        notifier: Fire-and-forget owner notification sink.
        generator: Short code generator; built over ``store`` when omitted.
        settings: Lifecycle defaults and generation constants.
        logger: Logger for operational messages.
        clock: Source of the current UTC time.
    """

    def __init__(
        self,
        store: LinkStore,
        notifier: Notifier,
        generator: CodeGenerator | None = None,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._settings = settings or get_settings()
        self._logger = logger or logging.getLogger("shortener")
        self._generator = generator or CodeGenerator(store, self._settings, logger=self._logger)
        self._clock = clock

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def store(self) -> LinkStore:
        return self._store

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    # ========================================================================
    # ACCESSIBILITY
    # ========================================================================

    def is_accessible(self, link: ShortLink, now: datetime.datetime | None = None) -> bool:
        return is_accessible(link, now or self._clock())

    # ========================================================================
    # CREATION
    # ========================================================================

    @_storage_guarded
    async def register_owner(self) -> Result[uuid.UUID]:
        owner_id = uuid.uuid4()
        await self._store.register_owner(owner_id)
        self._logger.info(f"Owner registered: {owner_id}")
        return Result.success(owner_id)

    @_storage_guarded
    async def shorten(
        self,
        target_url: str,
        owner_id: uuid.UUID,
        max_clicks: int | None = None,
        expiration_hours: int | None = None,
        now: datetime.datetime | None = None,
    ) -> Result[ShortLink]:
        """Create a short link for ``target_url`` owned by ``owner_id``.

        Returns:
            Result[ShortLink]: the stored link, INVALID_INPUT for a malformed URL
            or non-positive limits, STORAGE_FAILURE if no code could be reserved.
        """
        start_time = time.perf_counter()
        max_clicks = self._settings.DEFAULT_MAX_CLICKS if max_clicks is None else max_clicks
        expiration_hours = self._settings.DEFAULT_EXPIRATION_HOURS if expiration_hours is None else expiration_hours

        if not is_valid_url(target_url):
            LINK_CREATION_REQUESTS_TOTAL.labels(status=ErrorKind.INVALID_INPUT).inc()
            return Result.failure(ErrorKind.INVALID_INPUT, f"Invalid URL format: {target_url}")
        if max_clicks <= 0:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=ErrorKind.INVALID_INPUT).inc()
            return Result.failure(ErrorKind.INVALID_INPUT, "Max clicks must be positive")
        if expiration_hours <= 0:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=ErrorKind.INVALID_INPUT).inc()
            return Result.failure(ErrorKind.INVALID_INPUT, "Expiration hours must be positive")

        normalized_url = normalize_url(target_url)
        now = now or self._clock()

        for _ in range(self._settings.RESERVE_ATTEMPTS):
            code = await self._generator.generate(normalized_url, owner_id)
            link = ShortLink(
                code=code,
                target_url=normalized_url,
                owner_id=owner_id,
                max_clicks=max_clicks,
                created_at=now,
                expires_at=now + datetime.timedelta(hours=expiration_hours),
            )
            if await self._store.insert(link):
                break
            self._logger.warning(f"Short code {code} was reserved concurrently, regenerating")
        else:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=ErrorKind.STORAGE_FAILURE).inc()
            return Result.failure(ErrorKind.STORAGE_FAILURE, "Could not reserve a unique short code")

        self._notifier.notify(
            owner_id,
            f"Short URL created: {self._short_url(link)} -> {link.target_url} "
            f"(click limit {link.max_clicks}, expires {link.expires_at:%Y-%m-%d %H:%M})",
        )
        duration = time.perf_counter() - start_time
        LINK_CREATION_DURATION.observe(duration)
        LINK_CREATION_REQUESTS_TOTAL.labels(status="success").inc()
        self._logger.info(f"Short link created: {link.code} for owner {owner_id} in {duration:.3f}s")
        return Result.success(link)

    # ========================================================================
    # ACCESS
    # ========================================================================

    @_storage_guarded
    async def access(self, code: str, now: datetime.datetime | None = None) -> Result[AccessGrant]:
        """Spend one click of ``code`` and return its target URL."""
        if not is_valid_short_code(code):
            LINK_ACCESS_TOTAL.labels(outcome=AccessOutcome.INVALID).inc()
            return Result.failure(ErrorKind.INVALID_INPUT, f"Invalid short code format: {code}")

        now = now or self._clock()
        while True:
            link = await self._store.get(code)
            if link is None:
                LINK_ACCESS_TOTAL.labels(outcome=AccessOutcome.NOT_FOUND).inc()
                return self._not_found(code)

            reason = denial_reason(link, now)
            if reason is not None:
                LINK_ACCESS_TOTAL.labels(outcome=AccessOutcome.DENIED).inc()
                self._notifier.notify(
                    link.owner_id,
                    f"Access denied to {self._short_url(link)}: {reason.message} "
                    f"(status {link.status}, clicks {link.click_count}/{link.max_clicks})",
                )
                self._logger.info(f"Access denied for {code}: {reason}")
                return Result.failure(ErrorKind.NOT_ACCESSIBLE, reason.message, reason=reason)

            link.click_count += 1
            limit_reached = link.click_count >= link.max_clicks
            if limit_reached:
                link.status = LinkStatus.LIMIT_EXCEEDED
            if await self._store.put(link):
                break
            self._logger.debug(f"Concurrent write on {code}, re-reading")

        if limit_reached:
            LINK_ACCESS_TOTAL.labels(outcome=AccessOutcome.LIMIT_REACHED).inc()
            self._notifier.notify(
                link.owner_id,
                f"Your short URL {self._short_url(link)} reached its click limit of {link.max_clicks} "
                f"and is no longer accessible",
            )
            self._logger.info(f"Click limit reached for {code} ({link.max_clicks} clicks)")
        else:
            LINK_ACCESS_TOTAL.labels(outcome=AccessOutcome.GRANTED).inc()

        self._logger.debug(f"Access granted for {code}: {link.click_count}/{link.max_clicks}")
        return Result.success(
            AccessGrant(
                target_url=link.target_url,
                click_count=link.click_count,
                max_clicks=link.max_clicks,
                status=link.status,
            )
        )

    # ========================================================================
    # EXPIRY SWEEP
    # ========================================================================

    async def sweep_expired(self, now: datetime.datetime | None = None) -> int:
        """Move every ACTIVE link whose expiry has passed to EXPIRED.

        Returns the number of links transitioned. Storage errors propagate to
        the caller (the scheduler logs them and tries again next interval).
        """
        now = now or self._clock()
        start_time = time.perf_counter()

        def expire(link: ShortLink) -> Result | None:
            if link.status is not LinkStatus.ACTIVE or not link.expires_at < now:
                return Result.failure(ErrorKind.INVALID_STATE, "No longer expirable")
            link.status = LinkStatus.EXPIRED
            return None

        candidates = await self._store.scan(status=LinkStatus.ACTIVE, expires_before=now)
        transitioned = 0
        for candidate in candidates:
            result = await self._compare_and_set(candidate.code, expire)
            if not result.ok:
                continue
            link = result.value
            transitioned += 1
            self._notifier.notify(
                link.owner_id,
                f"Your short URL {self._short_url(link)} has expired and is no longer accessible "
                f"(clicks used {link.click_count}/{link.max_clicks})",
            )

        duration = time.perf_counter() - start_time
        SWEEP_DURATION.observe(duration)
        SWEEP_EXPIRED_TOTAL.inc(transitioned)
        if transitioned:
            self._logger.info(f"Expiry sweep transitioned {transitioned} links in {duration:.3f}s")
        else:
            self._logger.debug(f"Expiry sweep found nothing to expire in {duration:.3f}s")
        return transitioned

    # ========================================================================
    # OWNER MANAGEMENT
    # ========================================================================

    @_storage_guarded
    async def raise_click_limit(self, code: str, owner_id: uuid.UUID, new_limit: int) -> Result[ShortLink]:
        if new_limit <= 0:
            return self._management_failure("raise_click_limit", ErrorKind.INVALID_INPUT, "Click limit must be positive")

        def raise_limit(link: ShortLink) -> Result | None:
            denied = self._authorize("raise_click_limit", link, owner_id)
            if denied is not None:
                return denied
            if new_limit <= link.click_count:
                return Result.failure(
                    ErrorKind.INVALID_INPUT, f"Click limit must exceed the {link.click_count} clicks already used"
                )
            link.max_clicks = new_limit
            return None

        result = await self._compare_and_set(code, raise_limit)
        if not result.ok:
            return self._management_failure("raise_click_limit", result.error, result.message)

        link = result.value
        LINK_MANAGEMENT_TOTAL.labels(operation="raise_click_limit", status="success").inc()
        self._notifier.notify(owner_id, f"Click limit updated for {self._short_url(link)} to {new_limit} clicks")
        self._logger.info(f"Click limit for {code} set to {new_limit}")
        return Result.success(link)

    @_storage_guarded
    async def extend_expiry(self, code: str, owner_id: uuid.UUID, extra: datetime.timedelta) -> Result[ShortLink]:
        if extra <= datetime.timedelta(0):
            return self._management_failure("extend_expiry", ErrorKind.INVALID_INPUT, "Expiry extension must be positive")

        def extend(link: ShortLink) -> Result | None:
            denied = self._authorize("extend_expiry", link, owner_id)
            if denied is None:
                link.expires_at = link.expires_at + extra
            return denied

        result = await self._compare_and_set(code, extend)
        if not result.ok:
            return self._management_failure("extend_expiry", result.error, result.message)

        link = result.value
        LINK_MANAGEMENT_TOTAL.labels(operation="extend_expiry", status="success").inc()
        self._notifier.notify(
            owner_id,
            f"Expiration extended for {self._short_url(link)}. New expiration: {link.expires_at:%Y-%m-%d %H:%M}",
        )
        self._logger.info(f"Expiry for {code} extended by {extra} to {link.expires_at.isoformat()}")
        return Result.success(link)

    @_storage_guarded
    async def deactivate(self, code: str, owner_id: uuid.UUID) -> Result[bool]:
        """Permanently disable ``code``. Returns False when it was already inactive."""

        def disable(link: ShortLink) -> Result | None:
            denied = self._authorize("deactivate", link, owner_id)
            if denied is None:
                link.status = LinkStatus.INACTIVE
            return denied

        result = await self._compare_and_set(code, disable)
        if result.error is ErrorKind.INVALID_STATE:
            LINK_MANAGEMENT_TOTAL.labels(operation="deactivate", status="noop").inc()
            return Result.success(False)
        if not result.ok:
            return self._management_failure("deactivate", result.error, result.message)

        LINK_MANAGEMENT_TOTAL.labels(operation="deactivate", status="success").inc()
        self._notifier.notify(owner_id, f"URL deactivated: {self._short_url(result.value)}")
        self._logger.info(f"Short link {code} deactivated by owner")
        return Result.success(True)

    # ========================================================================
    # QUERIES
    # ========================================================================

    @_storage_guarded
    async def get_link(self, code: str) -> Result[ShortLink]:
        if not is_valid_short_code(code):
            return Result.failure(ErrorKind.INVALID_INPUT, f"Invalid short code format: {code}")
        link = await self._store.get(code)
        if link is None:
            return self._not_found(code)
        return Result.success(link)

    @_storage_guarded
    async def list_owner_links(self, owner_id: uuid.UUID) -> Result[list[ShortLink]]:
        return Result.success(await self._store.list_by_owner(owner_id))

    @_storage_guarded
    async def statistics(self) -> Result[LinkStatistics]:
        return Result.success(
            LinkStatistics(
                total_links=await self._store.count_links(),
                total_owners=await self._store.count_owners(),
                active_links=await self._store.count_by_status(LinkStatus.ACTIVE),
            )
        )

    async def pending_notifications(self, owner_id: uuid.UUID) -> list[str]:
        return await self._notifier.drain(owner_id)

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _compare_and_set(self, code: str, change: Callable[[ShortLink], Result | None]) -> Result[ShortLink]:
        """Apply ``change`` to a fresh copy of ``code`` and write it back.

        ``change`` mutates the copy and returns None to have it stored, or
        returns a failure to stop without writing. When another writer bumps
        the version first, the record is re-read and ``change`` runs again on
        the new state. A retry only happens after someone else committed a
        write to the record.
        """
        while True:
            link = await self._store.get(code)
            if link is None:
                return self._not_found(code)
            refused = change(link)
            if refused is not None:
                return refused
            if await self._store.put(link):
                return Result.success(link)
            self._logger.debug(f"Concurrent write on {code}, re-reading")

    def _authorize(self, operation: str, link: ShortLink, owner_id: uuid.UUID) -> Result | None:
        if link.owner_id != owner_id:
            self._logger.warning(f"{operation} on {link.code} refused: owner mismatch")
            return Result.failure(ErrorKind.FORBIDDEN, "Only the owner can modify this URL")
        if link.status is not LinkStatus.ACTIVE:
            return Result.failure(ErrorKind.INVALID_STATE, f"Cannot modify a link in status {link.status}")
        return None

    def _management_failure(self, operation: str, error: ErrorKind, message: str) -> Result:
        LINK_MANAGEMENT_TOTAL.labels(operation=operation, status=error).inc()
        return Result.failure(error, message)

    def _not_found(self, code: str) -> Result:
        return Result.failure(ErrorKind.NOT_FOUND, f"Short URL not found: {code}")

    def _short_url(self, link: ShortLink) -> str:
        return link.short_url(self._settings.BASE_URL)
