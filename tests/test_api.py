"""
API endpoint tests for FastAPI application.
"""
import random
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from canalhub import main
from canalhub.tide_service import TideService
from canalhub.tide_sources import (
    FallbackTideSource,
    Station,
    SyntheticTideSource,
    TideSource,
    TideSourceError,
)

PACIFIC = ZoneInfo("America/Los_Angeles")


class DownSource(TideSource):
    def fetch(self, start, days):
        raise TideSourceError("NOAA unavailable")


class BrokenSource(TideSource):
    def fetch(self, start, days):
        raise RuntimeError("unexpected")


class EmptySource(TideSource):
    def fetch(self, start, days):
        return []


class StubAstronomyService:
    """Returns fixed sun events without loading an ephemeris."""

    def __init__(self):
        self.calls = []

    def get_sun_events(self, lat, lon, date, tz, days=1):
        self.calls.append((lat, lon, date, tz, days))
        return [{"date": date.strftime("%Y-%m-%d"), "sunrise": "05:12", "sunset": "21:10"}] * days


@pytest.fixture
def station():
    return Station(station_id="9445478", name="Union, Hood Canal", lat=47.3583, lon=-123.0983, tz=PACIFIC)


@pytest.fixture
def use_source(monkeypatch, station):
    """Swap the app's tide service for one backed by the given source."""

    def install(source):
        monkeypatch.setattr(main, "tide_service", TideService(source, station))

    return install


@pytest.fixture
def client(use_source):
    """Create a test client whose tides come from seeded synthetic data."""
    use_source(SyntheticTideSource(PACIFIC, rng=random.Random(3)))
    main.limiter.reset()
    return TestClient(main.app)


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_returns_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["station"] == "9445478"

    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestTidesEndpoint:
    """Tests for the /api/v1/tides endpoint."""

    def test_tides_returns_data(self, client):
        response = client.get("/api/v1/tides?days=1")
        assert response.status_code == 200
        data = response.json()
        assert data["is_mock"] is False
        assert data["station"]["name"] == "Union, Hood Canal"
        assert len(data["tides"]) == 4

    def test_tides_default_days(self, client):
        """Tides endpoint should default to 3 days."""
        data = client.get("/api/v1/tides").json()
        assert len(data["tides"]) == 12

    def test_tides_event_structure(self, client):
        tide = client.get("/api/v1/tides?days=1").json()["tides"][0]
        assert tide["type"] in ["high", "low"]
        for key in ["datetime", "time", "height", "height_label", "unit"]:
            assert key in tide

    def test_tides_fallback_is_flagged(self, client, use_source):
        use_source(FallbackTideSource(DownSource(), SyntheticTideSource(PACIFIC)))
        data = client.get("/api/v1/tides?days=1").json()
        assert data["is_mock"] is True
        assert len(data["tides"]) == 4

    def test_tides_invalid_days(self, client):
        assert client.get("/api/v1/tides?days=8").status_code == 422
        assert client.get("/api/v1/tides?days=0").status_code == 422

    def test_tides_internal_error(self, client, use_source):
        use_source(BrokenSource())
        response = client.get("/api/v1/tides")
        assert response.status_code == 500
        assert "Internal error (ref:" in response.json()["detail"]

    def test_tide_table(self, client):
        data = client.get("/api/v1/tides/table?days=2").json()
        assert len(data) == 2
        assert all(len(day) == 4 for day in data.values())


class TestCurveEndpoint:
    """Tests for the /api/v1/tides/curve endpoint."""

    def test_curve_default_steps(self, client):
        data = client.get("/api/v1/tides/curve").json()
        # 12 events at 40 steps
        assert len(data["points"]) == 1 + 11 * 40
        assert data["scale"]["min_height"] < data["scale"]["max_height"]

    def test_curve_custom_steps(self, client):
        data = client.get("/api/v1/tides/curve", params={"days": 1, "steps": 20}).json()
        assert len(data["points"]) == 1 + 3 * 20

    def test_curve_invalid_steps(self, client):
        assert client.get("/api/v1/tides/curve?steps=0").status_code == 422
        assert client.get("/api/v1/tides/curve?steps=1000").status_code == 422

    def test_curve_without_events(self, client, use_source):
        use_source(EmptySource())
        data = client.get("/api/v1/tides/curve").json()
        assert data["points"] == []
        assert data["scale"] is None


class TestChartEndpoint:
    """Tests for the /api/v1/tides/chart endpoint."""

    def test_chart_layout(self, client):
        response = client.get("/api/v1/tides/chart")
        assert response.status_code == 200
        data = response.json()
        chart = data["chart"]
        assert chart["width"] == 800
        assert chart["path"].startswith("M ")
        assert len(chart["markers"]) == 12
        assert len(chart["x_ticks"]) == 12
        assert chart["now_x"] is not None
        assert len(data["summary"]) == 4

    def test_chart_steps(self, client):
        chart = client.get("/api/v1/tides/chart?steps=20").json()["chart"]
        assert chart["path"].count("L ") == 11 * 20

    def test_chart_rate_limited(self, client):
        statuses = [client.get("/api/v1/tides/chart?steps=1").status_code for _ in range(31)]
        assert statuses[:30] == [200] * 30
        assert statuses[30] == 429


class TestNextTideEndpoint:
    """Tests for the /api/v1/tides/next endpoint."""

    def test_next_tide(self, client):
        response = client.get("/api/v1/tides/next")
        assert response.status_code == 200
        data = response.json()
        assert data["type"] in ["high", "low"]
        assert "is_mock" in data

    def test_no_next_tide(self, client, use_source):
        use_source(EmptySource())
        assert client.get("/api/v1/tides/next").status_code == 404


class TestMoonEndpoint:
    """Tests for the /api/v1/moon endpoint."""

    def test_moon_current(self, client):
        data = client.get("/api/v1/moon").json()
        for key in ["phase", "illumination", "age", "next_full_moon", "next_new_moon"]:
            assert key in data

    def test_moon_with_date(self, client):
        data = client.get("/api/v1/moon?date=2000-01-16").json()
        assert data["phase"] == "Waxing Gibbous"

    def test_moon_invalid_date(self, client):
        response = client.get("/api/v1/moon?date=invalid")
        assert response.status_code == 400
        assert "Invalid date format" in response.json()["detail"]


class TestSunEndpoint:
    """Tests for the /api/v1/sun endpoint."""

    @pytest.fixture
    def astronomy(self, monkeypatch):
        stub = StubAstronomyService()
        monkeypatch.setattr(main, "astronomy_service", stub)
        return stub

    def test_sun_uses_station(self, client, astronomy):
        response = client.get("/api/v1/sun?date=2024-06-21&days=2")
        assert response.status_code == 200
        assert len(response.json()) == 2
        lat, lon, date, tz, days = astronomy.calls[0]
        assert (lat, lon) == (47.3583, -123.0983)
        assert date.strftime("%Y-%m-%d") == "2024-06-21"
        assert tz.key == "America/Los_Angeles"
        assert days == 2

    def test_sun_invalid_date(self, client, astronomy):
        response = client.get("/api/v1/sun?date=bad")
        assert response.status_code == 400
        assert "date" in response.json()["detail"].lower()

    def test_sun_invalid_days(self, client, astronomy):
        assert client.get("/api/v1/sun?days=30").status_code == 422


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
