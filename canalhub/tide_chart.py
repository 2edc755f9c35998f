"""
Tide chart layout.

Builds everything a client needs to draw the multi-day tide chart: the SVG
path of the interpolated curve, labelled markers for each high/low event,
grid lines, time ticks and the "now" indicator. All coordinates are in the
chart's own pixel space (see CHART_BOUNDS).
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from zoneinfo import ZoneInfo

from .tide_curve import (
    AxisScale,
    CurvePoint,
    DrawingBounds,
    TideEvent,
    TideKind,
    compute_axis_scale,
    interpolate,
    project_to_pixels,
)
from .tide_sources import local_midnight

# Compact chart sized for a wall display
CHART_BOUNDS = DrawingBounds(
    width=800,
    height=200,
    padding_left=35,
    padding_right=15,
    padding_top=20,
    padding_bottom=40,
)

# Marker label box (placed above highs, below lows)
LABEL_WIDTH = 70
LABEL_HEIGHT = 42

TICK_HOURS = (0, 6, 12, 18)


def display_window(today: datetime, tz: ZoneInfo, days: int = 3):
    """
    Chart time window: local midnight of `today` through the last
    millisecond of the final displayed day.
    """
    start = local_midnight(today, tz)
    end = start + timedelta(days=days) - timedelta(milliseconds=1)
    return start, end


def build_path(points: Sequence[CurvePoint], scale: AxisScale, bounds: DrawingBounds) -> str:
    """SVG path data ("M x y L x y ...") for the curve, empty for no points."""
    commands = []
    for index, point in enumerate(points):
        pixel = project_to_pixels(point, scale, bounds)
        commands.append(f"{'M' if index == 0 else 'L'} {pixel.x:.2f} {pixel.y:.2f}")
    return ' '.join(commands)


def format_height(height: float, unit: str) -> str:
    return f"{height:.2f} {unit}"


def format_time(moment: datetime) -> str:
    return moment.strftime('%I:%M %p')


def _tick_label(tick: datetime) -> str:
    if tick.hour == 0:
        return f"{tick:%a}, {tick:%b} {tick.day}"
    return {6: '6 AM', 12: 'Noon', 18: '6 PM'}.get(tick.hour, '')


def scale_to_dict(scale: AxisScale) -> Dict[str, Any]:
    return {
        'min_height': scale.min_height,
        'max_height': scale.max_height,
        'time_start': scale.time_start.isoformat(),
        'time_end': scale.time_end.isoformat(),
    }


def _build_markers(
    events: Sequence[TideEvent],
    scale: AxisScale,
    bounds: DrawingBounds,
    tz: ZoneInfo,
    unit: str,
) -> List[Dict[str, Any]]:
    markers = []
    for event in events:
        pixel = project_to_pixels(CurvePoint(event.timestamp, event.height), scale, bounds)
        is_high = event.kind == TideKind.HIGH
        markers.append({
            'type': event.kind.value,
            'x': round(pixel.x, 2),
            'y': round(pixel.y, 2),
            'height_label': format_height(event.height, unit),
            'time_label': format_time(event.timestamp.astimezone(tz)),
            'label_box': {
                'x': round(pixel.x - LABEL_WIDTH / 2, 2),
                'y': round(pixel.y - 52 if is_high else pixel.y + 12, 2),
                'width': LABEL_WIDTH,
                'height': LABEL_HEIGHT,
            },
            'height_label_y': round(pixel.y - 30 if is_high else pixel.y + 28, 2),
            'time_label_y': round(pixel.y - 15 if is_high else pixel.y + 43, 2),
        })
    return markers


def _build_gridlines(scale: AxisScale, bounds: DrawingBounds) -> List[Dict[str, Any]]:
    # One horizontal line per whole height unit, top (max) to bottom (min)
    height_range = int(scale.max_height - scale.min_height) or 1
    step = bounds.inner_height / height_range
    return [
        {
            'y': round(bounds.padding_top + step * index, 2),
            'label': f"{scale.max_height - index:.1f}",
        }
        for index in range(height_range + 1)
    ]


def build_chart(
    events: Sequence[TideEvent],
    now: datetime,
    tz: ZoneInfo,
    steps_per_segment: int = 40,
    days: int = 3,
    unit: str = 'ft',
    bounds: DrawingBounds = CHART_BOUNDS,
) -> Dict[str, Any]:
    """
    Lay out the tide chart for the `days` days starting at the local day of `now`.

    Args:
        events: Tide events sorted by timestamp ascending
        now: Current time; also selects the first displayed day
        tz: Station timezone used for day boundaries and labels
        steps_per_segment: Curve density between consecutive events
        days: Number of days displayed
        unit: Height unit used in marker labels
        bounds: Chart size and padding

    Returns:
        JSON-ready dictionary describing the chart
    """
    start, end = display_window(now, tz, days)

    # Time-only mapping for ticks and indicators, independent of the data
    time_scale = AxisScale(min_height=0, max_height=1, time_start=start, time_end=end)

    def time_x(moment: datetime) -> float:
        return round(project_to_pixels(CurvePoint(moment, 0), time_scale, bounds).x, 2)

    x_ticks = []
    for day in range(days):
        day_start = start + timedelta(days=day)
        for hour in TICK_HOURS:
            tick = day_start.replace(hour=hour)
            x_ticks.append({
                'x': time_x(tick),
                'major': hour == 0,
                'label': _tick_label(tick),
            })

    day_labels = []
    for day in range(days):
        if day == 0:
            text = 'Today'
        elif day == 1:
            text = 'Tomorrow'
        else:
            text = f"{start + timedelta(days=day):%a}"
        day_labels.append({
            'x': round(bounds.padding_left + bounds.inner_width * (2 * day + 1) / (2 * days), 2),
            'text': text,
        })

    now_local = now if now.tzinfo is not None else now.replace(tzinfo=tz)
    now_x: Optional[float] = time_x(now_local) if start <= now_local <= end else None

    chart: Dict[str, Any] = {
        'width': bounds.width,
        'height': bounds.height,
        'path': '',
        'scale': None,
        'markers': [],
        'y_gridlines': [],
        'x_ticks': x_ticks,
        'day_separators': [time_x(start + timedelta(days=day)) for day in range(1, days)],
        'day_labels': day_labels,
        'now_x': now_x,
    }

    if not events:
        return chart

    scale = compute_axis_scale(events, start, end)
    points = interpolate(events, steps_per_segment)

    chart.update({
        'path': build_path(points, scale, bounds),
        'scale': scale_to_dict(scale),
        'markers': _build_markers(events, scale, bounds, tz, unit),
        'y_gridlines': _build_gridlines(scale, bounds),
    })
    return chart
