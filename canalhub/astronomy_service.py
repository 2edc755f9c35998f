"""
Astronomy Service for sun times and moon phase.

This module provides:
- Civil dawn, sunrise, solar noon, sunset and civil dusk (Skyfield)
- Moon phase, age and illumination from a simple synodic-month model

Sun times are returned in the station's local timezone.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from zoneinfo import ZoneInfo

from skyfield import almanac
from skyfield.api import load, wgs84

# Reference new moon (2000-01-06 18:14 UTC) and mean synodic month in days
KNOWN_NEW_MOON = datetime(2000, 1, 6, 18, 14, tzinfo=timezone.utc)
LUNAR_CYCLE_DAYS = 29.53

# Upper bound of moon age (days) for each phase, in cycle order
PHASE_BOUNDARIES = [
    (1.0, "New Moon"),
    (7.38, "Waxing Crescent"),
    (8.38, "First Quarter"),
    (14.77, "Waxing Gibbous"),
    (15.77, "Full Moon"),
    (22.15, "Waning Gibbous"),
    (23.15, "Last Quarter"),
]


def moon_age(when: datetime) -> float:
    """Days since the most recent new moon (0 to LUNAR_CYCLE_DAYS)."""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    days_since_known = (when - KNOWN_NEW_MOON).total_seconds() / 86400.0
    return days_since_known % LUNAR_CYCLE_DAYS


def moon_phase_name(age: float) -> str:
    """Convert moon age in days to a descriptive phase name."""
    for upper, name in PHASE_BOUNDARIES:
        if age < upper:
            return name
    return "Waning Crescent"


def moon_illumination(age: float) -> int:
    """
    Approximate illuminated percentage for a moon age.

    Piecewise linear between the phase boundaries; this is the same coarse
    model the dashboard widget has always displayed.
    """
    if age < 1:
        illumination = age * 50
    elif age < 7.38:
        illumination = 50 * (1 + (age - 1) / 6.38)
    elif age < 8.38:
        illumination = 50
    elif age < 14.77:
        illumination = 50 + 50 * ((age - 8.38) / 6.39)
    elif age < 15.77:
        illumination = 100
    elif age < 22.15:
        illumination = 100 - 50 * ((age - 15.77) / 6.38)
    elif age < 23.15:
        illumination = 50
    else:
        illumination = 50 * (1 - (age - 23.15) / 6.38)
    return int(math.floor(illumination + 0.5))


def calculate_moon_phase(when: datetime) -> Dict[str, Any]:
    """
    Calculate lunar phase information for a moment in time.

    Args:
        when: Moment to evaluate (naive values are taken as UTC)

    Returns:
        Dictionary with keys:
        - phase: phase name (e.g. 'Waxing Gibbous')
        - illumination: illuminated percentage (0-100)
        - age: days since new moon, one decimal
        - next_full_moon: ISO date of the next full moon
        - next_new_moon: ISO date of the next new moon
    """
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    age = moon_age(when)

    days_to_full = (15.77 - age + LUNAR_CYCLE_DAYS) % LUNAR_CYCLE_DAYS
    days_to_new = (LUNAR_CYCLE_DAYS - age) % LUNAR_CYCLE_DAYS

    return {
        "phase": moon_phase_name(age),
        "illumination": moon_illumination(age),
        "age": round(age, 1),
        "next_full_moon": (when + timedelta(days=days_to_full)).date().isoformat(),
        "next_new_moon": (when + timedelta(days=days_to_new)).date().isoformat(),
    }


class AstronomyService:
    """Service for calculating sun events at a location."""

    def __init__(self, ephemeris_file: str = "de421.bsp"):
        self.ephemeris_file = ephemeris_file
        self._eph = None
        self._ts = None

    def _ensure_loaded(self):
        # Ephemeris is downloaded on first use when not already present
        if self._eph is None:
            self._eph = load(self.ephemeris_file)
            self._ts = load.timescale()
        return self._eph, self._ts

    def _civil_twilight_function(self, eph, location):
        """Return a find_discrete function that is True while the sun is above -6 degrees."""
        earth, sun = eph["earth"], eph["sun"]

        def is_sun_up(t):
            alt, _, _ = (earth + location).at(t).observe(sun).apparent().altaz()
            return alt.degrees > -6.0

        is_sun_up.step_days = 0.125
        return is_sun_up

    def _format_time(self, skyfield_time, tz: ZoneInfo) -> str:
        return skyfield_time.astimezone(tz).replace(microsecond=0).isoformat()

    def get_sun_events(
        self, lat: float, lon: float, date: datetime, tz: ZoneInfo, days: int = 1
    ) -> List[Dict[str, Optional[str]]]:
        """
        Calculate sun events for the given location and date range.

        Args:
            lat: Latitude in degrees
            lon: Longitude in degrees
            date: Starting date (only the calendar date is used)
            tz: Timezone for day boundaries and returned times
            days: Number of days to calculate (default: 1)

        Returns:
            List of dictionaries, one per day, with date, civil_dawn, sunrise,
            solar_noon, sunset and civil_dusk (None when the event does not occur)
        """
        eph, ts = self._ensure_loaded()
        location = wgs84.latlon(lat, lon)

        start_local = datetime(date.year, date.month, date.day, tzinfo=tz)
        t0 = ts.from_datetime(start_local)
        t1 = ts.from_datetime(start_local + timedelta(days=days))

        sun_times, sun_events = almanac.find_discrete(t0, t1, almanac.sunrise_sunset(eph, location))
        civil_times, civil_events = almanac.find_discrete(
            t0, t1, self._civil_twilight_function(eph, location)
        )

        results = []
        for day_offset in range(days):
            day = start_local + timedelta(days=day_offset)
            results.append({
                "date": day.strftime("%Y-%m-%d"),
                "civil_dawn": None,
                "sunrise": None,
                "solar_noon": None,
                "sunset": None,
                "civil_dusk": None,
            })

        def day_index(t) -> int:
            return (t.utc_datetime().astimezone(tz).date() - start_local.date()).days

        for t, event in zip(sun_times, sun_events):
            idx = day_index(t)
            if 0 <= idx < days:
                key = "sunrise" if event == 1 else "sunset"
                results[idx][key] = self._format_time(t, tz)

        for t, event in zip(civil_times, civil_events):
            idx = day_index(t)
            if 0 <= idx < days:
                key = "civil_dawn" if event else "civil_dusk"
                if results[idx][key] is None:
                    results[idx][key] = self._format_time(t, tz)

        # Solar noon approximated as the midpoint between sunrise and sunset
        for day_result in results:
            if day_result["sunrise"] and day_result["sunset"]:
                sunrise = datetime.fromisoformat(day_result["sunrise"])
                sunset = datetime.fromisoformat(day_result["sunset"])
                noon = sunrise + (sunset - sunrise) / 2
                day_result["solar_noon"] = noon.replace(microsecond=0).isoformat()

        return results
