import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

from . import config
from .astronomy_service import AstronomyService, calculate_moon_phase
from .tide_service import TideService


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
    title="Hood Canal Information Hub API",
    description="Tide predictions, tide charts, sun times and moon phase for Hood Canal",
    version="1.0.0",
)

# Set up rate limiter
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(SecurityHeadersMiddleware)

# Initialize services
tide_service = TideService.from_config()
astronomy_service = AstronomyService(ephemeris_file=config.EPHEMERIS_FILE)


def _parse_date(date: Optional[str]) -> Optional[datetime]:
    """Parse an optional YYYY-MM-DD query value as a station-local date."""
    if not date:
        return None
    try:
        parsed = datetime.fromisoformat(date)
    except ValueError:
        raise HTTPException(
            400, "Invalid date format. Please use ISO 8601 format (YYYY-MM-DD)"
        )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tide_service.station.tz)
    return parsed


def _internal_error(endpoint: str) -> HTTPException:
    error_id = uuid.uuid4().hex[:8]
    logger.exception(f"Error {error_id} in {endpoint}")
    return HTTPException(500, detail=f"Internal error (ref: {error_id})")


@app.get("/api/v1/tides")
async def get_tides(
    days: int = Query(3, ge=1, le=7, description="Number of days of high/low tides"),
):
    """
    Get high/low tide events for the station, starting today.

    When NOAA is unavailable, synthetic tides are returned with `is_mock` set.
    """
    try:
        return tide_service.get_tides(days=days)
    except Exception:
        raise _internal_error("get_tides")


@app.get("/api/v1/tides/table")
async def get_tide_table(
    days: int = Query(3, ge=1, le=7, description="Number of days of high/low tides"),
):
    """Get high/low tide events grouped by local date."""
    try:
        return tide_service.get_tides_by_date(days=days)
    except Exception:
        raise _internal_error("get_tide_table")


@app.get("/api/v1/tides/curve")
async def get_tide_curve(
    days: int = Query(3, ge=1, le=7, description="Number of days in the display window"),
    steps: int = Query(
        config.TIDE_CURVE_STEPS, ge=1, le=200,
        description="Interpolated sub-intervals between consecutive tide events",
    ),
):
    """
    Get a smooth interpolated tide curve through the high/low events,
    together with the axis scale of the display window.
    """
    try:
        return tide_service.get_curve(days=days, steps_per_segment=steps)
    except Exception:
        raise _internal_error("get_tide_curve")


@app.get("/api/v1/tides/chart")
@limiter.limit("30/minute")
async def get_tide_chart(
    request: Request,
    steps: int = Query(
        config.TIDE_CURVE_STEPS, ge=1, le=200,
        description="Interpolated sub-intervals between consecutive tide events",
    ),
):
    """
    Get the full tide chart layout: curve path, labelled markers, grid,
    time ticks and the current-time indicator.

    Rate limited to 30 requests per minute per IP.
    """
    try:
        return tide_service.get_chart(days=config.TIDE_DISPLAY_DAYS, steps_per_segment=steps)
    except Exception:
        raise _internal_error("get_tide_chart")


@app.get("/api/v1/tides/next")
async def get_next_tide():
    """Get the next high or low tide after the current time."""
    try:
        tide = tide_service.get_next_tide()
    except Exception:
        raise _internal_error("get_next_tide")
    if tide is None:
        raise HTTPException(404, "No upcoming tide available")
    return tide


@app.get("/api/v1/moon")
async def get_moon(
    date: Optional[str] = Query(
        None,
        description="Optional date (YYYY-MM-DD). If not provided, the current time is used.",
    ),
):
    """Get moon phase, age, illumination and the next full/new moon dates."""
    when = _parse_date(date) or datetime.now(tide_service.station.tz)
    try:
        return calculate_moon_phase(when)
    except Exception:
        raise _internal_error("get_moon")


@app.get("/api/v1/sun")
async def get_sun(
    days: int = Query(1, ge=1, le=7, description="Number of days to calculate"),
    date: Optional[str] = Query(
        None,
        description="Optional start date (YYYY-MM-DD). If not provided, today is used.",
    ),
):
    """
    Get civil dawn, sunrise, solar noon, sunset and civil dusk at the station.

    All times are returned in ISO 8601 format with the station's timezone.
    """
    station = tide_service.station
    start = _parse_date(date) or datetime.now(station.tz)
    try:
        return astronomy_service.get_sun_events(station.lat, station.lon, start, station.tz, days)
    except Exception:
        raise _internal_error("get_sun")


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "station": tide_service.station.station_id,
        "astronomy": "Skyfield",
    }
