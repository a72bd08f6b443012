from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI

from app.core.config import settings
from app.core.cors import EdgeCORSMiddleware
from app.core.errors import register_exception_handlers
from app.modules.extraction.router import router as extraction_router
from app.modules.messages.router import router as messages_router
from app.modules.reports.router import router as reports_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Starting Pitch Fork API", api_prefix=settings.api_prefix)
    yield
    logger.info("Shutting down Pitch Fork API")


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
)

app.add_middleware(EdgeCORSMiddleware)
register_exception_handlers(app)

# Mount routers
app.include_router(extraction_router, prefix=settings.api_prefix)
app.include_router(reports_router, prefix=settings.api_prefix)
app.include_router(messages_router, prefix=settings.api_prefix)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
