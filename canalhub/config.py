"""
Service configuration.

Values come from environment variables, optionally loaded from a `.env` file
in the project root. Bad numeric values fall back to the defaults.
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)


def _get_float_env(key: str, default: float) -> float:
    """Get a float value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            pass
    return default


def _get_int_env(key: str, default: int) -> int:
    """Get an int value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            pass
    return default


# =============================================================================
# Tide Station
# =============================================================================

# NOAA CO-OPS station used for predictions (Union, Hood Canal)
NOAA_STATION_ID = os.environ.get('NOAA_STATION_ID', '9445478')
NOAA_STATION_NAME = os.environ.get('NOAA_STATION_NAME', 'Union, Hood Canal')

STATION_LAT = _get_float_env('STATION_LAT', 47.3583)
STATION_LON = _get_float_env('STATION_LON', -123.0983)

# IANA timezone of the station. Auto-detected from the coordinates when unset.
STATION_TIMEZONE: Optional[str] = os.environ.get('STATION_TIMEZONE') or None

# Height unit for every tide record: 'ft' (NOAA "english") or 'm' (NOAA "metric")
TIDE_HEIGHT_UNIT = os.environ.get('TIDE_HEIGHT_UNIT', 'ft')
if TIDE_HEIGHT_UNIT not in ('ft', 'm'):
    TIDE_HEIGHT_UNIT = 'ft'


# =============================================================================
# Upstream API
# =============================================================================

NOAA_API_URL = os.environ.get(
    'NOAA_API_URL', 'https://api.tidesandcurrents.noaa.gov/api/prod/datagetter'
)

# Timeout for NOAA requests (in seconds)
NOAA_API_TIMEOUT = _get_int_env('NOAA_API_TIMEOUT', 10)


# =============================================================================
# Chart Settings
# =============================================================================

# Interpolated sub-intervals between consecutive tide events
TIDE_CURVE_STEPS = _get_int_env('TIDE_CURVE_STEPS', 40)

# Number of days shown on the tide chart (today included)
TIDE_DISPLAY_DAYS = _get_int_env('TIDE_DISPLAY_DAYS', 3)


# =============================================================================
# Astronomy
# =============================================================================

# JPL ephemeris used by Skyfield (downloaded on first use if missing)
EPHEMERIS_FILE = os.environ.get('EPHEMERIS_FILE', 'de421.bsp')
