"""
Tide event sources.

A tide source produces the sorted high/low TideEvent sequence consumed by the
curve engine. Two interchangeable implementations are provided:

- NOAATideSource: NOAA CO-OPS high/low predictions for a station
- SyntheticTideSource: generated stand-in data used when NOAA is unavailable

FallbackTideSource combines them so a failed upstream fetch degrades to
synthetic data (flagged as mock) instead of an error.
"""
import json
import logging
import random
import re
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, NamedTuple, Optional

from zoneinfo import ZoneInfo

from timezonefinder import TimezoneFinder

from . import config
from .tide_curve import TideEvent, TideKind

logger = logging.getLogger(__name__)

# Maximum response size accepted from NOAA (1 MB)
MAX_RESPONSE_SIZE = 1 * 1024 * 1024

_HEIGHT_PATTERN = re.compile(r'^\s*([-+]?\d+(?:\.\d+)?)')

_tz_finder: Optional[TimezoneFinder] = None


class TideSourceError(Exception):
    """Raised when a tide source cannot produce events."""


def resolve_timezone(lat: float, lon: float, timezone_str: Optional[str] = None) -> ZoneInfo:
    """
    Get timezone for coordinates, with auto-detection if not specified.

    Args:
        lat: Latitude in degrees
        lon: Longitude in degrees
        timezone_str: Optional timezone string (e.g., 'America/Los_Angeles')

    Returns:
        ZoneInfo object for the timezone (UTC when unknown)
    """
    global _tz_finder
    if timezone_str is None:
        if _tz_finder is None:
            _tz_finder = TimezoneFinder()
        timezone_str = _tz_finder.timezone_at(lat=lat, lng=lon)
        if timezone_str is None:
            timezone_str = 'UTC'
    try:
        return ZoneInfo(timezone_str)
    except (ValueError, KeyError):
        return ZoneInfo('UTC')


@dataclass(frozen=True)
class Station:
    """A tide prediction station."""
    station_id: str
    name: str
    lat: float
    lon: float
    tz: ZoneInfo

    def to_dict(self) -> Dict:
        return {
            'id': self.station_id,
            'name': self.name,
            'lat': self.lat,
            'lon': self.lon,
            'timezone': self.tz.key,
        }


def default_station() -> Station:
    """Build the configured station."""
    return Station(
        station_id=config.NOAA_STATION_ID,
        name=config.NOAA_STATION_NAME,
        lat=config.STATION_LAT,
        lon=config.STATION_LON,
        tz=resolve_timezone(config.STATION_LAT, config.STATION_LON, config.STATION_TIMEZONE),
    )


def local_midnight(moment: datetime, tz: ZoneInfo) -> datetime:
    """Start of the local day containing `moment` (naive values are taken as local)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=tz)
    local = moment.astimezone(tz)
    return datetime(local.year, local.month, local.day, tzinfo=tz)


def parse_height(value) -> float:
    """
    Parse a tide height, accepting an optional unit suffix ("10.52 ft").

    Raises:
        ValueError: If no number can be read
    """
    if isinstance(value, (int, float)):
        return float(value)
    match = _HEIGHT_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"Invalid tide height: {value!r}")
    return float(match.group(1))


def safe_read_response(response, max_size: int = MAX_RESPONSE_SIZE) -> bytes:
    """
    Read an HTTP response body, refusing anything larger than max_size.

    Raises:
        ValueError: If response exceeds size limit
    """
    content_length = response.headers.get('Content-Length')
    if content_length and int(content_length) > max_size:
        raise ValueError(f"Response too large: {content_length} bytes (max: {max_size})")

    # Read one extra byte to detect overflow
    data = response.read(max_size + 1)
    if len(data) > max_size:
        raise ValueError(f"Response exceeded size limit of {max_size} bytes")

    return data


class TideFetchResult(NamedTuple):
    events: List[TideEvent]
    is_mock: bool


class TideSource:
    """Interface for anything that produces tide events for a date range."""

    def fetch(self, start: datetime, days: int) -> List[TideEvent]:
        """
        Return tide events from the local day of `start` through `days` days,
        sorted by timestamp ascending.
        """
        raise NotImplementedError

    def fetch_with_status(self, start: datetime, days: int) -> TideFetchResult:
        """Fetch events along with whether they are stand-in (mock) data."""
        return TideFetchResult(self.fetch(start, days), False)


class NOAATideSource(TideSource):
    """High/low tide predictions from the NOAA CO-OPS data API."""

    def __init__(
        self,
        station: Station,
        unit: str = 'ft',
        timeout: int = 10,
        base_url: str = 'https://api.tidesandcurrents.noaa.gov/api/prod/datagetter',
    ):
        self.station = station
        self.unit = unit
        self.timeout = timeout
        self.base_url = base_url

    def build_url(self, start: datetime, days: int) -> str:
        begin = local_midnight(start, self.station.tz)
        end = begin + timedelta(days=days)
        params = {
            'product': 'predictions',
            'application': 'HoodCanalInfo',
            'begin_date': begin.strftime('%Y%m%d'),
            'end_date': end.strftime('%Y%m%d'),
            'datum': 'MLLW',
            'station': self.station.station_id,
            'time_zone': 'lst_ldt',
            'units': 'english' if self.unit == 'ft' else 'metric',
            'interval': 'hilo',
            'format': 'json',
        }
        return f"{self.base_url}?{urllib.parse.urlencode(params)}"

    def parse_predictions(self, data: Dict) -> List[TideEvent]:
        """
        Convert a NOAA predictions payload into sorted tide events.

        Prediction times are station local time ('YYYY-MM-DD HH:MM').

        Raises:
            TideSourceError: On an error payload, no predictions or a bad record
        """
        if 'error' in data:
            message = data['error'].get('message', 'unknown error') if isinstance(data['error'], dict) else data['error']
            raise TideSourceError(f"NOAA returned an error: {message}")

        predictions = data.get('predictions') or []
        if not predictions:
            raise TideSourceError("No tide prediction data available")
        if not isinstance(predictions, list):
            raise TideSourceError(f"Unexpected NOAA predictions format: {type(predictions).__name__}")

        events = []
        for entry in predictions:
            if not isinstance(entry, dict):
                raise TideSourceError(f"Malformed NOAA prediction {entry!r}")
            tide_type = str(entry.get('type', '')).upper()
            if tide_type not in ('H', 'L'):
                continue
            try:
                when = datetime.strptime(entry['t'], '%Y-%m-%d %H:%M').replace(tzinfo=self.station.tz)
                height = parse_height(entry['v'])
            except (KeyError, TypeError, ValueError) as e:
                raise TideSourceError(f"Malformed NOAA prediction {entry!r}: {e}") from e
            events.append(TideEvent(
                kind=TideKind.HIGH if tide_type == 'H' else TideKind.LOW,
                timestamp=when,
                height=height,
            ))

        if not events:
            raise TideSourceError("No high/low predictions in NOAA response")

        events.sort(key=lambda e: e.timestamp)
        return events

    def fetch(self, start: datetime, days: int) -> List[TideEvent]:
        url = self.build_url(start, days)
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as response:
                data = json.loads(safe_read_response(response).decode())
        except (urllib.error.URLError, OSError, ValueError) as e:
            raise TideSourceError(f"Failed to fetch tide data from NOAA: {e}") from e

        if not isinstance(data, dict):
            raise TideSourceError("Unexpected NOAA response format")
        return self.parse_predictions(data)


class SyntheticTideSource(TideSource):
    """
    Generated tide events for when real predictions are unavailable.

    Four tides per day (Low 03:00, High 09:00, Low 15:00, High 21:00) with
    random heights: highs in [10, 12), lows in [1, 3).
    """

    TIDE_SCHEDULE = [
        (TideKind.LOW, 3),
        (TideKind.HIGH, 9),
        (TideKind.LOW, 15),
        (TideKind.HIGH, 21),
    ]

    def __init__(self, tz: ZoneInfo, rng: Optional[random.Random] = None):
        self.tz = tz
        self.rng = rng or random.Random()

    def fetch(self, start: datetime, days: int) -> List[TideEvent]:
        first_day = local_midnight(start, self.tz)
        events = []
        for day_offset in range(days):
            day = first_day + timedelta(days=day_offset)
            for kind, hour in self.TIDE_SCHEDULE:
                base = 10.0 if kind == TideKind.HIGH else 1.0
                events.append(TideEvent(
                    kind=kind,
                    timestamp=day.replace(hour=hour),
                    height=round(self.rng.random() * 2 + base, 2),
                ))
        return events


class FallbackTideSource(TideSource):
    """Use `primary`, falling back to `fallback` (flagged as mock) when it fails."""

    def __init__(self, primary: TideSource, fallback: TideSource):
        self.primary = primary
        self.fallback = fallback

    def fetch_with_status(self, start: datetime, days: int) -> TideFetchResult:
        try:
            return TideFetchResult(self.primary.fetch(start, days), False)
        except TideSourceError as e:
            logger.warning(f"Tide fetch failed, using synthetic data: {e}")
            return TideFetchResult(self.fallback.fetch(start, days), True)

    def fetch(self, start: datetime, days: int) -> List[TideEvent]:
        return self.fetch_with_status(start, days).events
