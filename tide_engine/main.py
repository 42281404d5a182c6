import logging
import uuid
from datetime import date as date_type
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from timezonefinder import TimezoneFinder

from .config import ALGORITHM_VERSION, load_settings
from .errors import InitializationError, NotInitializedError
from .models import Coordinate, HealthStatus
from .tide_service import TideCalculationService

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        return response


app = FastAPI(
    title="Tide Engine API",
    description="Harmonic tide predictions with regional station correction",
    version="1.0.0",
)

# Set up rate limiter
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

# Initialize services
tide_service = TideCalculationService(settings=load_settings())
try:
    tide_service.initialize()
except InitializationError:
    # /health reports the failure; calculations answer 503
    logger.exception("Tide service failed to start")

# Cache TimezoneFinder instance (loads data on first use)
_tz_finder = TimezoneFinder()


def _get_timezone(lat: float, lon: float) -> ZoneInfo:
    """Timezone at the coordinates, UTC when none is found."""
    timezone_str = _tz_finder.timezone_at(lat=lat, lng=lon) or "UTC"
    try:
        return ZoneInfo(timezone_str)
    except (ValueError, KeyError):
        return ZoneInfo("UTC")


def _resolve_start(lat: float, lon: float, date: Optional[str]) -> datetime:
    """
    Window start for a `date` query value.

    A plain YYYY-MM-DD (or no date, meaning today) is local midnight at the
    coordinates; a full ISO-8601 instant is used as is, naive values as UTC.
    """
    tz = _get_timezone(lat, lon)
    if not date:
        return datetime.now(tz).replace(hour=0, minute=0, second=0, microsecond=0)

    if len(date) == 10:
        day = date_type.fromisoformat(date)
        return datetime(day.year, day.month, day.day, tzinfo=tz)

    start = datetime.fromisoformat(date)
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    return start


@app.get("/api/v1/tides")
@limiter.limit("120/minute")
async def get_tides(
    request: Request,
    lat: float = Query(..., description="Latitude in degrees (-90 to 90)"),
    lon: float = Query(..., description="Longitude in degrees (-180 to 180)"),
    date: Optional[str] = Query(
        None,
        description="Optional day (YYYY-MM-DD, local midnight at the location) or ISO 8601 instant. "
                    "If not provided, today is used.",
    ),
):
    """
    Get a 24 hour tide prediction for a location.

    Returns the sampled tide levels (cm, 15 minute grid), the high/low tides
    inside the window, the state at the window start, the moon-age tide type
    and an accuracy/confidence assessment.

    Points near a calibrated regional station report high accuracy; open
    ocean points still get a prediction, with low accuracy and confidence.
    """
    try:
        coordinate = Coordinate(lat, lon).validated()
        try:
            start = _resolve_start(lat, lon, date)
        except ValueError:
            raise HTTPException(
                400, "Invalid date format. Please use ISO 8601 format (YYYY-MM-DD)"
            )

        info = await run_in_threadpool(tide_service.calculate_tide_info, coordinate, start)
        return info.to_dict()
    except HTTPException:
        raise
    except NotInitializedError as e:
        raise HTTPException(503, detail=str(e))
    except ValueError as e:
        # InvalidCoordinateError is a ValueError
        raise HTTPException(400, detail=str(e))
    except Exception:
        error_id = uuid.uuid4().hex[:8]
        logger.exception(f"Error {error_id} in get_tides")
        raise HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.get("/api/v1/cache/stats")
async def get_cache_stats():
    """Hit/miss/dedupe/eviction counters of the tide cache."""
    try:
        return tide_service.cache_stats().to_dict()
    except NotInitializedError as e:
        raise HTTPException(503, detail=str(e))


@app.get("/health")
async def health():
    report = tide_service.health_check()
    body = {
        **report.to_dict(),
        "stations": tide_service.station_count,
        "algorithm_version": ALGORITHM_VERSION,
    }
    status_code = 503 if report.status is HealthStatus.UNHEALTHY else 200
    return JSONResponse(content=body, status_code=status_code)


if __name__ == "__main__":
    uvicorn.run(
        "tide_engine.main:app",
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
