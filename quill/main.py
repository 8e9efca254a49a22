"""
Quill API

Thin FastAPI backend serving blog posts and comments.
"""

import logging
import time
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quill.config import get_settings
from quill.middleware import (
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
    configure_logging,
)
from quill.routers import blog
from quill.services.repository import StorageError
from quill.services.storage import get_repository, get_store

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.debug)

# Health check cache: (result_dict, timestamp)
_health_cache: tuple[dict[str, Any], float] | None = None
_HEALTH_CACHE_TTL = 30  # seconds


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: load the post cache at startup."""
    try:
        await get_repository().get_posts()
    except (StorageError, ValueError):
        logger.warning("Post cache warm-up failed", exc_info=True)
    yield


app = FastAPI(
    title="Quill API",
    description="Personal blog engine: posts, comments, categories and tags",
    version="0.1.0",
    lifespan=lifespan,
)

# Request ID (runs first, outermost middleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Editor-Key", "X-Request-ID"],
)

# Routers
app.include_router(blog.router, prefix="/api/quill")
app.include_router(blog.legacy_router, prefix="/api/quill")


def _check_config() -> str:
    """Verify required configuration is loaded. Returns 'ok' or 'fail'."""
    s = get_settings()
    if s.storage_backend == "file" and s.content_root:
        return "ok"
    if s.storage_backend == "blob" and s.azure_storage_account:
        return "ok"
    return "fail"


def _check_storage() -> str:
    try:
        return "ok" if get_store().check_connectivity() else "fail"
    except ValueError:
        logger.warning("Storage backend is misconfigured", exc_info=True)
        return "fail"


def _run_health_checks() -> dict[str, Any]:
    """Run all health checks, returning the full response body."""
    global _health_cache
    now = time.time()
    if _health_cache is not None:
        cached_result, cached_at = _health_cache
        if now - cached_at < _HEALTH_CACHE_TTL:
            return cached_result

    checks = {"config": _check_config(), "storage": _check_storage()}
    failed = [k for k, v in checks.items() if v != "ok"]

    if failed:
        overall = "degraded"
        logger.warning("Health check degraded, failed: %s", ", ".join(failed))
    else:
        overall = "ok"

    result: dict[str, Any] = {
        "status": overall,
        "service": "quill-api",
        "version": "0.1.0",
        "checks": checks,
    }
    _health_cache = (result, now)
    return result


@app.get("/api/quill/health")
async def health_check() -> JSONResponse:
    """Health check verifying service dependencies."""
    result = _run_health_checks()
    status_code = 200 if result["status"] in ("ok", "degraded") else 503
    return JSONResponse(content=result, status_code=status_code)
