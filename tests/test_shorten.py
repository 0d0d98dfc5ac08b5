"""Shorten endpoint behavior tests."""

import uuid

import pytest
from httpx import AsyncClient

from shortener.enums import LinkStatus


@pytest.mark.asyncio
async def test_create_owner(client: AsyncClient) -> None:
    response = await client.post("/api/owners")
    assert response.status_code == 201
    assert uuid.UUID(response.json()["owner_id"])


@pytest.mark.asyncio
async def test_shorten_valid_url(client: AsyncClient, api_owner: str) -> None:
    response = await client.post("/api/shorten", json={"url": "https://www.google.com", "owner_id": api_owner})
    assert response.status_code == 201
    data = response.json()
    assert data["original_url"] == "https://www.google.com"
    assert data["owner_id"] == api_owner
    assert len(data["short_code"]) == 7
    assert data["short_url"] == f"clck.ru/{data['short_code']}"
    assert data["clicks"] == 0
    assert data["max_clicks"] == 100
    assert data["status"] == LinkStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_shorten_with_limits(client: AsyncClient, api_owner: str) -> None:
    response = await client.post(
        "/api/shorten",
        json={"url": "www.github.com", "owner_id": api_owner, "max_clicks": 3, "expiration_hours": 2},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["original_url"] == "https://www.github.com"
    assert data["max_clicks"] == 3


@pytest.mark.asyncio
async def test_shorten_invalid_url(client: AsyncClient, api_owner: str) -> None:
    response = await client.post("/api/shorten", json={"url": "not-a-url", "owner_id": api_owner})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_empty_url(client: AsyncClient, api_owner: str) -> None:
    response = await client.post("/api/shorten", json={"url": "", "owner_id": api_owner})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_requires_owner(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "https://www.google.com"})
    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["max_clicks", "expiration_hours"])
async def test_shorten_non_positive_limits(client: AsyncClient, api_owner: str, field: str) -> None:
    response = await client.post(
        "/api/shorten",
        json={"url": "https://www.google.com", "owner_id": api_owner, field: 0},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_multiple_urls(client: AsyncClient, api_owner: str) -> None:
    urls = [
        "https://www.google.com",
        "https://www.github.com",
        "https://www.python.org",
    ]
    codes = set()
    for url in urls:
        response = await client.post("/api/shorten", json={"url": url, "owner_id": api_owner})
        assert response.status_code == 201
        codes.add(response.json()["short_code"])
    # All codes should be unique
    assert len(codes) == 3
