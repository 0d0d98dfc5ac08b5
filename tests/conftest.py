"""Shared pytest fixtures for engine, storage and API tests."""

import datetime
import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shortener.config import Settings
from shortener.dependencies import ServiceContainer
from shortener.lifecycle import LinkLifecycleEngine
from shortener.main import app
from shortener.notifications import InMemoryNotifier
from shortener.storage import InMemoryLinkStore

NOW = datetime.datetime(2026, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        STORAGE_BACKEND="memory",
        NOTIFIER_BACKEND="memory",
        BASE_URL="clck.ru",
        DEFAULT_MAX_CLICKS=100,
        DEFAULT_EXPIRATION_HOURS=24,
        SWEEP_INTERVAL_SECONDS=3600,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def now() -> datetime.datetime:
    return NOW


@pytest.fixture
def store() -> InMemoryLinkStore:
    return InMemoryLinkStore()


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def engine(store: InMemoryLinkStore, notifier: InMemoryNotifier, settings: Settings) -> LinkLifecycleEngine:
    return LinkLifecycleEngine(store, notifier, settings=settings, clock=lambda: NOW)


@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def container(settings: Settings) -> ServiceContainer:
    return ServiceContainer.build(settings)


@pytest_asyncio.fixture(scope="function")
async def client(container: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    app.state.container = container

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    del app.state.container


@pytest_asyncio.fixture(scope="function")
async def api_owner(client: AsyncClient) -> str:
    response = await client.post("/api/owners")
    return response.json()["owner_id"]
