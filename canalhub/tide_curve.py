"""
Tide Curve Engine - smooth tide curves from sparse high/low events

Turns a handful of predicted tide extrema (high and low water) into a dense,
smooth sequence of (time, height) points, and computes the axis scaling needed
to project those points onto a fixed-size drawing surface.

Key properties:
- Catmull-Rom style cubic blend between consecutive events
- Boundary exact: every input event is reproduced exactly in the output
- Deterministic: no randomness, identical input gives identical output
- Pure functions, no I/O and no shared state

Note: the cubic blend uses a uniform parameter (mu = step / steps) for every
segment, so it does not correct for the unequal spacing of real tide events.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, Sequence

import numpy as np


class TideKind(str, Enum):
    """Type of tide extremum."""
    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class TideEvent:
    """A predicted or observed high/low water extremum."""
    kind: TideKind
    timestamp: datetime
    height: float


@dataclass(frozen=True)
class CurvePoint:
    time: datetime
    height: float


@dataclass(frozen=True)
class AxisScale:
    """Bounding box used to map (time, height) into drawing coordinates."""
    min_height: float
    max_height: float
    time_start: datetime
    time_end: datetime


@dataclass(frozen=True)
class DrawingBounds:
    width: float
    height: float
    padding_left: float = 0.0
    padding_right: float = 0.0
    padding_top: float = 0.0
    padding_bottom: float = 0.0

    @property
    def inner_width(self) -> float:
        return self.width - self.padding_left - self.padding_right

    @property
    def inner_height(self) -> float:
        return self.height - self.padding_top - self.padding_bottom


@dataclass(frozen=True)
class PixelPoint:
    x: float
    y: float


# Padding (in height units) added below the lowest and above the highest event
HEIGHT_PADDING = 1


def _cubic_blend(p0: float, p1: float, p2: float, p3: float, mu: np.ndarray) -> np.ndarray:
    """
    Evaluate the cubic blend through p1 and p2 at every mu (vectorized).

    height(mu) = a0*mu^3 + a1*mu^2 + a2*mu + a3
    """
    a0 = p3 - p2 - p0 + p1
    a1 = p0 - p1 - a0
    a2 = p2 - p0
    a3 = p1
    mu2 = mu * mu
    return a0 * mu * mu2 + a1 * mu2 + a2 * mu + a3


def _as_instant(moment: datetime) -> datetime:
    # Aware datetimes sharing a tzinfo subtract by wall clock; UTC keeps DST days exact
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc)


def _to_zone(moment: datetime, tz) -> datetime:
    if tz is None:
        return moment
    return moment.astimezone(tz)


def _seconds_between(start: datetime, end: datetime) -> float:
    return (_as_instant(end) - _as_instant(start)).total_seconds()


def interpolate(events: Sequence[TideEvent], steps_per_segment: int) -> List[CurvePoint]:
    """
    Produce a smooth tide curve through a sorted sequence of tide events.

    Each segment between consecutive events contributes its start event plus
    `steps_per_segment - 1` interpolated points; the final event closes the
    curve. Control heights outside the sequence are clamped to the nearest
    real event (no extrapolation).

    Args:
        events: Tide events sorted by timestamp ascending. Sorting is the
                caller's responsibility and is not checked.
        steps_per_segment: Number of sub-intervals per segment (>= 1)

    Returns:
        List of CurvePoint with length 1 + (len(events) - 1) * steps_per_segment,
        or an empty list when fewer than 2 events are given.

    Raises:
        ValueError: If steps_per_segment is less than 1
    """
    if steps_per_segment < 1:
        raise ValueError("steps_per_segment must be at least 1")

    n = len(events)
    if n < 2:
        return []

    heights = [float(e.height) for e in events]
    mu = np.arange(1, steps_per_segment, dtype=float) / steps_per_segment

    points: List[CurvePoint] = []
    for i in range(n - 1):
        start, end = events[i], events[i + 1]
        p0 = heights[i - 1] if i > 0 else heights[i]
        p1 = heights[i]
        p2 = heights[i + 1]
        p3 = heights[i + 2] if i + 2 < n else heights[i + 1]

        points.append(CurvePoint(time=start.timestamp, height=p1))

        origin = _as_instant(start.timestamp)
        span = _as_instant(end.timestamp) - origin
        blended = _cubic_blend(p0, p1, p2, p3, mu)
        for m, h in zip(mu, blended):
            moment = _to_zone(origin + span * float(m), start.timestamp.tzinfo)
            points.append(CurvePoint(time=moment, height=float(h)))

    last = events[-1]
    points.append(CurvePoint(time=last.timestamp, height=heights[-1]))
    return points


def compute_axis_scale(
    events: Sequence[TideEvent],
    time_window_start: datetime,
    time_window_end: datetime,
) -> AxisScale:
    """
    Compute the chart bounding box for a set of tide events.

    Heights are padded one unit beyond the floor/ceiling of the extremes so the
    curve and point labels never touch the chart border. The time window is the
    caller's display window and is passed through untouched; events outside it
    are tolerated, not filtered.

    Raises:
        ValueError: If events is empty
    """
    if not events:
        raise ValueError("Cannot compute an axis scale without tide events")

    heights = [e.height for e in events]
    return AxisScale(
        min_height=math.floor(min(heights)) - HEIGHT_PADDING,
        max_height=math.ceil(max(heights)) + HEIGHT_PADDING,
        time_start=time_window_start,
        time_end=time_window_end,
    )


def project_to_pixels(point: CurvePoint, scale: AxisScale, bounds: DrawingBounds) -> PixelPoint:
    """
    Map a curve point into drawing-surface coordinates (y grows downward).

    A degenerate range (all heights equal, or an empty time window) uses a
    divisor of 1 so the result is a flat line instead of NaN/Infinity.
    """
    time_range = _seconds_between(scale.time_start, scale.time_end) or 1
    height_range = (scale.max_height - scale.min_height) or 1

    elapsed = _seconds_between(scale.time_start, point.time)
    x = bounds.padding_left + (elapsed / time_range) * bounds.inner_width

    inner_height = bounds.inner_height
    y = bounds.padding_top + inner_height - ((point.height - scale.min_height) / height_range) * inner_height

    return PixelPoint(x=x, y=y)
