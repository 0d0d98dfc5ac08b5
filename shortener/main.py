"""FastAPI application entry point for the short-link service.

Application Lifecycle Diagram
===========================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌──────────────────┐
    │ lifespan()       │
    │ ServiceContainer │
    │ .build()         │
    └──────┬───────────┘
           ▼
    ┌──────────────────┐
    │ startup: tables, │
    │ notifier flusher,│
    │ sweep scheduler  │
    └──────┬───────────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    └──────┬──────┘
           ▼
    ┌──────────────────┐
    │ shutdown: stop   │
    │ sweeps, flush,   │
    │ close clients    │
    └──────────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn shortener.main:app --host 0.0.0.0 --port 8000

**Step 2 — Run without PostgreSQL/Redis**::
    STORAGE_BACKEND=memory NOTIFIER_BACKEND=memory uvicorn shortener.main:app

**Step 3 — Make API calls**::
    curl -X POST http://localhost:8000/api/owners
    curl -X POST http://localhost:8000/api/shorten \
         -H "Content-Type: application/json" \
         -d '{"url": "https://example.com", "owner_id": "<uuid>", "max_clicks": 3}'

Key Behaviours
===============
- Collaborators are built per application in the lifespan handler, never at import.
- The expiry sweep runs every SWEEP_INTERVAL_SECONDS until shutdown.
- Prometheus metrics are exposed at /metrics.
"""

__all__ = ["app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from shortener.config import get_settings
from shortener.dependencies import ServiceContainer
from shortener.routes import router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    container = ServiceContainer.build(settings)
    await container.startup()
    app.state.container = container
    yield
    # Shutdown
    await container.shutdown()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Short links with click limits and expiry",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

app.include_router(router)
