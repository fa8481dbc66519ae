"""
FastAPI Application - Drift Market Cache API

Serves a continuously refreshed cache of Drift perpetual markets (24h volume
and open interest) to many concurrent readers.

Endpoints:
    - GET  /drift/markets                 Cached markets, most active first
    - GET  /drift/cron/update-markets     Scheduled refresh (Bearer CRON_SECRET)
    - POST /drift/cron/update-markets     Health check (same as GET /health)
    - POST /drift/markets/refresh         Manual refresh when the cache is empty
    - POST /drift/markets                 Debug info (non-production)
    - GET|POST /drift/markets/clear       Clear cached markets (non-production)
    - GET  /health                        Cache + upstream health

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 8000

Docs:
    - Swagger: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

import hmac
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import settings, validate_configuration
from core.logging import logger
from exchanges.drift import DriftMarketSource
from services import build_services
from storage import create_cache_store
from storage.keys import CacheKeys


# Global service set (one cache, one upstream source)
keys = CacheKeys()
services = build_services(create_cache_store(keys), DriftMarketSource(), keys)


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    # Startup
    logger.info("=== Application Starting ===")
    try:
        validate_configuration()
        await services.source.initialize()
        if settings.enable_internal_scheduler:
            await services.scheduler.start()
        logger.info("=== Started Successfully ===")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    # Shutdown
    logger.info("=== Shutting Down ===")
    try:
        await services.scheduler.stop()
        await services.source.shutdown()
        await services.cache.close()
        logger.info("=== Shutdown Complete ===")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# ============================================
# FastAPI Application
# ============================================

app = FastAPI(
    title="Drift Market Cache API",
    description=(
        "Cached Drift perpetual market data (24h volume, open interest).\n\n"
        "## Endpoints\n"
        "- `GET /drift/markets` - All cached markets sorted by 24h quote volume\n"
        "- `GET /drift/cron/update-markets` - Scheduled refresh (requires `Authorization: Bearer <CRON_SECRET>`)\n"
        "- `POST /drift/cron/update-markets` - Health check\n"
        "- `POST /drift/markets/refresh` - Refresh now if the cache is empty\n"
        "- `GET /health` - Cache and upstream health\n\n"
        "Debug endpoints (`POST /drift/markets`, `/drift/markets/clear`) "
        "are not available in production."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


# ============================================
# Dependencies
# ============================================

def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Reject the request unless it carries ``Bearer <CRON_SECRET>``."""
    expected = f"Bearer {settings.cron_secret}"
    if not settings.cron_secret or not authorization or not hmac.compare_digest(
        authorization.encode(), expected.encode()
    ):
        logger.warning("Unauthorized cron request rejected")
        raise HTTPException(status_code=401, detail="Unauthorized")


def require_non_production() -> None:
    """Debug tooling is hidden in production."""
    if settings.is_production:
        raise HTTPException(status_code=404, detail="Not available in production")


# ============================================
# System Endpoints
# ============================================

@app.get("/", tags=["System"])
async def root():
    """API information."""
    return {
        "name": "Drift Market Cache API",
        "version": "1.0.0",
        "status": "operational",
        "docs": "/docs",
        "environment": settings.environment,
        "cache": services.cache.name,
        "source": services.source.name,
    }


@app.get("/health", tags=["System"])
async def health_check():
    """Cache and upstream health plus the current UpdateStatus (503 when unhealthy)."""
    report, status_code = await services.status_tracker.get_health()
    return JSONResponse(content=report.to_wire(), status_code=status_code)


# ============================================
# Cron Endpoints
# ============================================

@app.get("/drift/cron/update-markets", tags=["Cron"], dependencies=[Depends(require_cron_secret)])
async def update_markets():
    """Run the full refresh job. 200 on success, 500 on failure."""
    result = await services.refresh_job.run()
    return JSONResponse(content=result.to_wire(), status_code=200 if result.success else 500)


@app.post("/drift/cron/update-markets", tags=["Cron"])
async def update_markets_health():
    """Health check for the cron target."""
    return await health_check()


# ============================================
# Market Endpoints
# ============================================

@app.get("/drift/markets", tags=["Markets"])
async def get_markets():
    """All cached markets, most active first. Refreshes inline when the cache is empty."""
    result = await services.reader.get_markets()
    return JSONResponse(content=result.body, status_code=result.status_code, headers=result.headers)


@app.post("/drift/markets/refresh", tags=["Markets"])
async def refresh_markets():
    """Trigger a refresh, but only if no markets are cached."""
    body, status_code = await services.reader.manual_refresh()
    return JSONResponse(content=body, status_code=status_code)


@app.post("/drift/markets", tags=["Debug"], dependencies=[Depends(require_non_production)])
async def markets_debug():
    """Cache diagnostics (non-production)."""
    try:
        return {"success": True, "debug": await services.reader.debug_info()}
    except Exception as e:
        logger.error(f"Debug info failed: {e}")
        return JSONResponse(content={"success": False, "error": str(e)}, status_code=500)


@app.api_route("/drift/markets/clear", methods=["GET", "POST"], tags=["Debug"],
               dependencies=[Depends(require_non_production)])
async def clear_markets():
    """Delete every cached market (non-production), e.g. to exercise the inline refresh."""
    try:
        cleared = await services.reader.clear_markets()
    except Exception as e:
        logger.error(f"Failed to clear market data: {e}")
        return JSONResponse(
            content={"success": False, "error": str(e), "message": "Failed to clear market data"},
            status_code=500
        )
    return {"success": True, "message": f"Cleared {cleared} market records", "clearedCount": cleared}
