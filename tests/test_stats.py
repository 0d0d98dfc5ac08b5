"""Stats endpoint behavior tests."""

import uuid

import pytest
from httpx import AsyncClient

from shortener.enums import LinkStatus


async def _create(client: AsyncClient, owner_id: str, url: str, **limits) -> str:
    response = await client.post("/api/shorten", json={"url": url, "owner_id": owner_id, **limits})
    return response.json()["short_code"]


@pytest.mark.asyncio
async def test_stats_valid_code(client: AsyncClient, api_owner: str) -> None:
    short_code = await _create(client, api_owner, "https://www.google.com")

    response = await client.get(f"/api/stats/{short_code}")
    assert response.status_code == 200
    data = response.json()
    assert data["short_code"] == short_code
    assert data["original_url"] == "https://www.google.com"
    assert data["clicks"] == 0
    assert data["accessible"] is True
    assert "short_url" in data
    assert "created_at" in data
    assert "expires_at" in data


@pytest.mark.asyncio
async def test_stats_unknown_code(client: AsyncClient) -> None:
    response = await client.get("/api/stats/nonexistent")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_stats_after_clicks(client: AsyncClient, api_owner: str) -> None:
    short_code = await _create(client, api_owner, "https://www.example.com", max_clicks=5)

    for _ in range(5):
        await client.get(f"/{short_code}", follow_redirects=False)

    response = await client.get(f"/api/stats/{short_code}")
    assert response.status_code == 200
    data = response.json()
    assert data["clicks"] == 5
    assert data["status"] == LinkStatus.LIMIT_EXCEEDED.value
    assert data["accessible"] is False


@pytest.mark.asyncio
async def test_statistics_counts(client: AsyncClient, api_owner: str) -> None:
    await _create(client, api_owner, "https://www.google.com")
    other = await _create(client, api_owner, "https://www.github.com")
    await client.post(f"/api/links/{other}/deactivate", json={"owner_id": api_owner})

    response = await client.get("/api/statistics")

    assert response.status_code == 200
    assert response.json() == {"total_links": 2, "total_owners": 1, "active_links": 1}


@pytest.mark.asyncio
async def test_owner_links_listing(client: AsyncClient, api_owner: str) -> None:
    codes = [await _create(client, api_owner, url) for url in ("https://a.example.com", "https://b.example.com")]

    response = await client.get(f"/api/owners/{api_owner}/links")
    assert response.status_code == 200
    assert [link["short_code"] for link in response.json()] == codes

    empty = await client.get(f"/api/owners/{uuid.uuid4()}/links")
    assert empty.json() == []


@pytest.mark.asyncio
async def test_owner_notifications_are_drained(client: AsyncClient, api_owner: str) -> None:
    short_code = await _create(client, api_owner, "https://www.google.com", max_clicks=1)
    await client.get(f"/{short_code}", follow_redirects=False)

    response = await client.get(f"/api/owners/{api_owner}/notifications")
    assert response.status_code == 200
    notifications = response.json()["notifications"]
    assert len(notifications) == 2
    assert notifications[0].startswith("Short URL created")
    assert "click limit" in notifications[1]

    again = await client.get(f"/api/owners/{api_owner}/notifications")
    assert again.json()["notifications"] == []
