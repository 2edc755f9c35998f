"""
Tide Service - station tide predictions, curves and chart layout

Runs one fetch-then-compute cycle per call:
1. fetch high/low events from the configured source (NOAA, falling back to
   synthetic data when NOAA is unavailable)
2. interpolate a smooth curve and compute the chart scale
3. shape the result for the API

Nothing is cached between calls; clients poll for fresh data.
"""
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional

from . import config
from .tide_chart import build_chart, display_window, format_height, format_time, scale_to_dict
from .tide_curve import TideEvent, compute_axis_scale, interpolate
from .tide_sources import (
    FallbackTideSource,
    NOAATideSource,
    Station,
    SyntheticTideSource,
    TideFetchResult,
    TideSource,
    default_station,
)


class TideService:
    """Service for tide predictions at a single station."""

    def __init__(self, source: TideSource, station: Station, unit: str = 'ft'):
        """
        Args:
            source: Where tide events come from
            station: Station the events belong to
            unit: Height unit of the source data ('ft' or 'm')
        """
        self.source = source
        self.station = station
        self.unit = unit

    @classmethod
    def from_config(cls) -> 'TideService':
        """Build the NOAA-backed service (with synthetic fallback) from configuration."""
        station = default_station()
        noaa = NOAATideSource(
            station,
            unit=config.TIDE_HEIGHT_UNIT,
            timeout=config.NOAA_API_TIMEOUT,
            base_url=config.NOAA_API_URL,
        )
        source = FallbackTideSource(noaa, SyntheticTideSource(station.tz))
        return cls(source, station, unit=config.TIDE_HEIGHT_UNIT)

    def _now(self, now: Optional[datetime]) -> datetime:
        if now is None:
            return datetime.now(self.station.tz)
        if now.tzinfo is None:
            return now.replace(tzinfo=self.station.tz)
        return now

    def _fetch(self, start: datetime, days: int) -> TideFetchResult:
        return self.source.fetch_with_status(start, days)

    def _event_to_dict(self, event: TideEvent) -> Dict:
        local = event.timestamp.astimezone(self.station.tz)
        return {
            'type': event.kind.value,
            'datetime': local.replace(microsecond=0).isoformat(),
            'time': format_time(local),
            'height': round(event.height, 3),
            'height_label': format_height(event.height, self.unit),
            'unit': self.unit,
        }

    def get_tides(self, days: int = 3, now: Optional[datetime] = None) -> Dict:
        """
        Get high/low tide events starting at the local day of `now`.

        Returns:
            Dictionary with keys:
            - station: station metadata
            - is_mock: True when synthetic fallback data was used
            - unit: height unit
            - tides: list of events (type, datetime, time, height, height_label, unit)
        """
        now = self._now(now)
        result = self._fetch(now, days)
        return {
            'station': self.station.to_dict(),
            'is_mock': result.is_mock,
            'unit': self.unit,
            'tides': [self._event_to_dict(e) for e in result.events],
        }

    def get_curve(
        self,
        days: int = 3,
        steps_per_segment: int = 40,
        now: Optional[datetime] = None,
    ) -> Dict:
        """
        Get the interpolated tide curve and its axis scale for the display window.

        Returns:
            Dictionary with station, is_mock, unit, scale (None without events)
            and points (list of {datetime, height}).
        """
        now = self._now(now)
        result = self._fetch(now, days)
        start, end = display_window(now, self.station.tz, days)

        points = interpolate(result.events, steps_per_segment)
        scale = compute_axis_scale(result.events, start, end) if result.events else None

        return {
            'station': self.station.to_dict(),
            'is_mock': result.is_mock,
            'unit': self.unit,
            'scale': scale_to_dict(scale) if scale else None,
            'points': [
                {
                    'datetime': p.time.astimezone(self.station.tz).isoformat(),
                    'height': round(p.height, 3),
                }
                for p in points
            ],
        }

    def get_chart(
        self,
        days: int = 3,
        steps_per_segment: int = 40,
        now: Optional[datetime] = None,
    ) -> Dict:
        """
        Get the complete tide chart layout plus a short summary of upcoming tides.
        """
        now = self._now(now)
        result = self._fetch(now, days)
        chart = build_chart(
            result.events,
            now,
            self.station.tz,
            steps_per_segment=steps_per_segment,
            days=days,
            unit=self.unit,
        )
        return {
            'station': self.station.to_dict(),
            'is_mock': result.is_mock,
            'unit': self.unit,
            'chart': chart,
            'summary': [self._event_to_dict(e) for e in result.events[:4]],
        }

    def get_next_tide(self, now: Optional[datetime] = None) -> Optional[Dict]:
        """
        Get the first tide strictly after `now`, looking through tomorrow.

        Returns:
            Tide event dictionary with an added 'is_mock' flag, or None
        """
        now = self._now(now)
        result = self._fetch(now, 2)
        for event in result.events:
            if event.timestamp > now:
                tide = self._event_to_dict(event)
                tide['is_mock'] = result.is_mock
                return tide
        return None

    def get_tides_by_date(self, days: int = 3, now: Optional[datetime] = None) -> Dict[str, List[Dict]]:
        """Group tide events by local date (YYYY-MM-DD), in time order."""
        now = self._now(now)
        result = self._fetch(now, days)
        grouped: Dict[str, List[Dict]] = OrderedDict()
        for event in result.events:
            day = event.timestamp.astimezone(self.station.tz).strftime('%Y-%m-%d')
            grouped.setdefault(day, []).append(self._event_to_dict(event))
        return grouped
