"""FastAPI route definitions for the short-link REST API.

API Endpoint Overview
=====================
::
    GET   /health
        └─ HealthResponse (200)

    POST  /api/owners
        └─ OwnerResponse (201)

    POST  /api/shorten
        ├─ LinkCreate (request body)
        └─ LinkResponse (201) or 422/503

    GET   /api/stats/:short_code
        └─ LinkStats (200) or 404/422

    GET   /api/statistics
        └─ StatisticsResponse (200)

    GET   /api/owners/:owner_id/links
    GET   /api/owners/:owner_id/notifications

    PATCH /api/links/:short_code/limit       ClickLimitUpdate
    PATCH /api/links/:short_code/expiry      ExpiryExtension
    POST  /api/links/:short_code/deactivate  OwnerAction
        └─ 200 or 403/404/409/422

    GET   /:short_code
        └─ 307 Redirect or 404/410/422

Key Behaviours
===============
- Lifecycle operations return ``Result`` values; ``_raise_for`` maps the error
  kind to an HTTP status in one place.
- A link that exists but is not accessible answers 410 with the denial reason.
- 307 redirects preserve the HTTP method.
"""

import datetime
import uuid

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from shortener.dependencies import ServiceContainer, get_container, get_engine
from shortener.domain import Result
from shortener.enums import ErrorKind, HealthStatus
from shortener.lifecycle import LinkLifecycleEngine
from shortener.schemas import (
    ClickLimitUpdate,
    DeactivateResponse,
    ErrorResponse,
    ExpiryExtension,
    HealthResponse,
    LinkCreate,
    LinkResponse,
    LinkStats,
    NotificationsResponse,
    OwnerAction,
    OwnerResponse,
    StatisticsResponse,
)

__all__ = ["router", "STATUS_BY_ERROR"]

router = APIRouter()

STATUS_BY_ERROR: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NOT_ACCESSIBLE: 410,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.STORAGE_FAILURE: 503,
}


def _raise_for(result: Result) -> None:
    if result.ok:
        return
    detail = ErrorResponse(error=result.error, reason=result.reason, message=result.message)
    raise HTTPException(status_code=STATUS_BY_ERROR[result.error], detail=detail.model_dump(mode="json"))


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(container: ServiceContainer = Depends(get_container)) -> HealthResponse:
    logger = container.logger
    storage_status = HealthStatus.HEALTHY
    notifier_status = HealthStatus.HEALTHY

    try:
        await container.store.ping()
    except Exception as e:
        logger.error(f"Storage health check failed: {e}")
        storage_status = HealthStatus.UNHEALTHY

    try:
        await container.notifier.ping()
    except Exception as e:
        logger.error(f"Notifier health check failed: {e}")
        notifier_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if storage_status is HealthStatus.HEALTHY and notifier_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, storage=storage_status, notifier=notifier_status)


@router.post("/api/owners", response_model=OwnerResponse, status_code=201, tags=["owners"])
async def create_owner(engine: LinkLifecycleEngine = Depends(get_engine)) -> OwnerResponse:
    result = await engine.register_owner()
    _raise_for(result)
    return OwnerResponse(owner_id=result.value)


@router.post("/api/shorten", response_model=LinkResponse, status_code=201, tags=["links"])
async def shorten_url(payload: LinkCreate, engine: LinkLifecycleEngine = Depends(get_engine)) -> LinkResponse:
    result = await engine.shorten(
        payload.url,
        payload.owner_id,
        max_clicks=payload.max_clicks,
        expiration_hours=payload.expiration_hours,
    )
    _raise_for(result)
    return LinkResponse.from_link(result.value, engine.settings.BASE_URL)


@router.get("/api/stats/{short_code}", response_model=LinkStats, tags=["links"])
async def get_stats(short_code: str, engine: LinkLifecycleEngine = Depends(get_engine)) -> LinkStats:
    result = await engine.get_link(short_code)
    _raise_for(result)
    link = result.value
    return LinkStats(
        **LinkResponse.from_link(link, engine.settings.BASE_URL).model_dump(),
        accessible=engine.is_accessible(link),
    )


@router.get("/api/statistics", response_model=StatisticsResponse, tags=["links"])
async def get_statistics(engine: LinkLifecycleEngine = Depends(get_engine)) -> StatisticsResponse:
    result = await engine.statistics()
    _raise_for(result)
    stats = result.value
    return StatisticsResponse(
        total_links=stats.total_links,
        total_owners=stats.total_owners,
        active_links=stats.active_links,
    )


@router.get("/api/owners/{owner_id}/links", response_model=list[LinkStats], tags=["owners"])
async def list_owner_links(owner_id: uuid.UUID, engine: LinkLifecycleEngine = Depends(get_engine)) -> list[LinkStats]:
    result = await engine.list_owner_links(owner_id)
    _raise_for(result)
    return [
        LinkStats(
            **LinkResponse.from_link(link, engine.settings.BASE_URL).model_dump(),
            accessible=engine.is_accessible(link),
        )
        for link in result.value
    ]


@router.get("/api/owners/{owner_id}/notifications", response_model=NotificationsResponse, tags=["owners"])
async def drain_notifications(
    owner_id: uuid.UUID, engine: LinkLifecycleEngine = Depends(get_engine)
) -> NotificationsResponse:
    messages = await engine.pending_notifications(owner_id)
    return NotificationsResponse(owner_id=owner_id, notifications=messages)


@router.patch("/api/links/{short_code}/limit", response_model=LinkResponse, tags=["links"])
async def update_click_limit(
    short_code: str, payload: ClickLimitUpdate, engine: LinkLifecycleEngine = Depends(get_engine)
) -> LinkResponse:
    result = await engine.raise_click_limit(short_code, payload.owner_id, payload.new_limit)
    _raise_for(result)
    return LinkResponse.from_link(result.value, engine.settings.BASE_URL)


@router.patch("/api/links/{short_code}/expiry", response_model=LinkResponse, tags=["links"])
async def extend_expiry(
    short_code: str, payload: ExpiryExtension, engine: LinkLifecycleEngine = Depends(get_engine)
) -> LinkResponse:
    extra = datetime.timedelta(hours=payload.additional_hours)
    result = await engine.extend_expiry(short_code, payload.owner_id, extra)
    _raise_for(result)
    return LinkResponse.from_link(result.value, engine.settings.BASE_URL)


@router.post("/api/links/{short_code}/deactivate", response_model=DeactivateResponse, tags=["links"])
async def deactivate_link(
    short_code: str, payload: OwnerAction, engine: LinkLifecycleEngine = Depends(get_engine)
) -> DeactivateResponse:
    result = await engine.deactivate(short_code, payload.owner_id)
    _raise_for(result)
    return DeactivateResponse(short_code=short_code, deactivated=result.value)


@router.get("/{short_code}", tags=["redirect"])
async def redirect_to_url(short_code: str, engine: LinkLifecycleEngine = Depends(get_engine)) -> RedirectResponse:
    result = await engine.access(short_code)
    _raise_for(result)
    return RedirectResponse(url=result.value.target_url, status_code=307)
