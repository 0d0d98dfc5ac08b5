"""Service wiring and FastAPI dependency functions.

The ``ServiceContainer`` builds the storage and notification collaborators
selected in settings, hands them to the lifecycle engine and owns the sweep
scheduler. One container is created per application in the lifespan handler
and stored on ``app.state``; dependency functions read it from there, so
tests can install a container built over in-memory collaborators.
"""

import logging
from dataclasses import dataclass, field

import redis.asyncio as redis
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from shortener.config import Settings, get_settings
from shortener.database import close_db, create_db_engine, create_session_factory, init_db
from shortener.lifecycle import LinkLifecycleEngine
from shortener.notifications import InMemoryNotifier, Notifier, RedisNotifier
from shortener.scheduler import SweepScheduler
from shortener.storage import InMemoryLinkStore, LinkStore, SqlLinkStore

__all__ = ["ServiceContainer", "setup_logger", "get_container", "get_engine"]


def setup_logger(settings: Settings) -> logging.Logger:
    """Setup the service logger once."""
    logger = logging.getLogger("shortener")
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(settings.LOG_LEVEL)
    return logger


@dataclass
class ServiceContainer:
    """Explicitly constructed collaborators for one application instance."""

    settings: Settings
    logger: logging.Logger
    store: LinkStore
    notifier: Notifier
    engine: LinkLifecycleEngine
    scheduler: SweepScheduler
    db_engine: AsyncEngine | None = None
    cache: redis.Redis | None = None
    _started: bool = field(default=False, repr=False)

    @classmethod
    def build(cls, settings: Settings | None = None) -> "ServiceContainer":
        settings = settings or get_settings()
        logger = setup_logger(settings)

        db_engine: AsyncEngine | None = None
        store: LinkStore
        if settings.STORAGE_BACKEND == "sql":
            db_engine = create_db_engine(settings.DATABASE_URL, echo=(settings.APP_ENV == "development"))
            store = SqlLinkStore(create_session_factory(db_engine), logger=logger)
        else:
            store = InMemoryLinkStore()

        cache: redis.Redis | None = None
        notifier: Notifier
        if settings.NOTIFIER_BACKEND == "redis":
            cache = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
            notifier = RedisNotifier(cache, key_prefix=settings.NOTIFICATION_KEY_PREFIX, logger=logger)
        else:
            notifier = InMemoryNotifier()

        engine = LinkLifecycleEngine(store, notifier, settings=settings, logger=logger)
        scheduler = SweepScheduler(engine, settings.SWEEP_INTERVAL_SECONDS, logger=logger)
        return cls(
            settings=settings,
            logger=logger,
            store=store,
            notifier=notifier,
            engine=engine,
            scheduler=scheduler,
            db_engine=db_engine,
            cache=cache,
        )

    async def startup(self) -> None:
        if self._started:
            return
        if self.db_engine is not None:
            await init_db(self.db_engine)
        if isinstance(self.notifier, RedisNotifier):
            await self.notifier.start()
        self.scheduler.start()
        self._started = True
        self.logger.info(
            f"{self.settings.APP_NAME} started (storage={self.settings.STORAGE_BACKEND}, "
            f"notifier={self.settings.NOTIFIER_BACKEND})"
        )

    async def shutdown(self) -> None:
        if not self._started:
            return
        await self.scheduler.stop()
        if isinstance(self.notifier, RedisNotifier):
            await self.notifier.stop()
        if self.cache is not None:
            await self.cache.aclose()
        if self.db_engine is not None:
            await close_db(self.db_engine)
        self._started = False
        self.logger.info(f"{self.settings.APP_NAME} stopped")


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_engine(request: Request) -> LinkLifecycleEngine:
    return get_container(request).engine
