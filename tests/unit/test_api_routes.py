"""
Unit Tests for the HTTP Routes

Uses FastAPI's TestClient against the app with the global service set
replaced by one built on InMemoryCacheStore and FakeMarketSource.

Run with:
    pytest tests/unit/test_api_routes.py -v
"""

import pytest
from fastapi.testclient import TestClient

import app.main as main
from core.config import settings


SECRET = "test-cron-secret"


@pytest.fixture
def client(services, monkeypatch):
    monkeypatch.setattr(main, "services", services)
    monkeypatch.setattr(settings, "cron_secret", SECRET)
    monkeypatch.setattr(settings, "environment", "development")
    return TestClient(main.app)


def auth(secret: str = SECRET) -> dict:
    return {"Authorization": f"Bearer {secret}"}


class TestSystemRoutes:
    """Tests for / and /health"""

    def test_root(self, client):
        """Verify service info is returned"""
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json()["cache"] == "memory"

    def test_health_ok(self, client):
        """Verify /health returns 200 when cache and upstream are healthy"""
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["healthy"] is True

    def test_health_unhealthy(self, client, source):
        """Verify /health returns 503 when the upstream is down"""
        source.healthy = False
        resp = client.get("/health")
        assert resp.status_code == 503
        assert resp.json()["upstreamHealthy"] is False

    def test_cron_post_is_health_check(self, client):
        """Verify POST on the cron route is the health check"""
        resp = client.post("/drift/cron/update-markets")
        assert resp.status_code == 200
        assert "cacheHealthy" in resp.json()


class TestCronRoute:
    """Tests for the scheduled refresh endpoint"""

    def test_missing_token_rejected_before_work(self, client, source):
        """Verify no Authorization header means 401 and no upstream call"""
        resp = client.get("/drift/cron/update-markets")
        assert resp.status_code == 401
        assert source.health_calls == 0
        assert source.fetch_calls == 0

    def test_wrong_token_rejected(self, client, source):
        """Verify a wrong secret is rejected"""
        resp = client.get("/drift/cron/update-markets", headers=auth("nope"))
        assert resp.status_code == 401
        assert source.fetch_calls == 0

    def test_empty_configured_secret_rejects_everything(self, client, monkeypatch):
        """Verify an unset CRON_SECRET cannot be matched by 'Bearer '"""
        monkeypatch.setattr(settings, "cron_secret", "")
        resp = client.get("/drift/cron/update-markets", headers={"Authorization": "Bearer "})
        assert resp.status_code == 401

    def test_valid_token_runs_refresh(self, client):
        """Verify an authorized call refreshes and returns the result"""
        resp = client.get("/drift/cron/update-markets", headers=auth())
        body = resp.json()
        assert resp.status_code == 200
        assert body["success"] is True
        assert body["marketsUpdated"] == 3
        assert body["duration"] >= 0

    def test_failed_refresh_returns_500(self, client, source):
        """Verify a failed refresh is reported with 500"""
        source.healthy = False
        resp = client.get("/drift/cron/update-markets", headers=auth())
        assert resp.status_code == 500
        assert resp.json()["error"] == "Drift API health check failed"


class TestMarketsRoute:
    """Tests for GET /drift/markets"""

    def test_empty_cache_self_heals(self, client):
        """Verify the first read refreshes inline"""
        resp = client.get("/drift/markets")
        body = resp.json()
        assert resp.status_code == 200
        assert body["refreshed"] is True
        assert [m["quoteVolume"] for m in body["markets"]] == [50.0, 5.0, 1.0]
        assert resp.headers["X-Data-Source"] == "drift-api"

    def test_cached_read_headers(self, client):
        """Verify cache headers on a normal read"""
        client.get("/drift/cron/update-markets", headers=auth())
        resp = client.get("/drift/markets")
        assert resp.headers["X-Data-Source"] == "redis-cache"
        assert resp.headers["X-Markets-Count"] == "3"
        assert "s-maxage=30" in resp.headers["Cache-Control"]


class TestManualRefreshRoute:
    """Tests for POST /drift/markets/refresh"""

    def test_refresh_on_empty_cache(self, client):
        """Verify the manual refresh runs when nothing is cached"""
        resp = client.post("/drift/markets/refresh")
        assert resp.status_code == 200
        assert resp.json()["refreshed"] is True

    def test_refresh_skipped_when_cached(self, client):
        """Verify the manual refresh is a no-op when markets exist"""
        client.post("/drift/markets/refresh")
        resp = client.post("/drift/markets/refresh")
        assert resp.json()["refreshed"] is False
        assert resp.json()["count"] == 3


class TestDebugRoutes:
    """Tests for the non-production routes"""

    def test_debug_info_in_development(self, client):
        """Verify POST /drift/markets returns diagnostics outside production"""
        resp = client.post("/drift/markets")
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert "totalMarkets" in resp.json()["debug"]

    @pytest.mark.parametrize("method", ["get", "post"])
    def test_clear(self, client, method):
        """Verify both GET and POST clear cached markets"""
        client.get("/drift/cron/update-markets", headers=auth())
        resp = getattr(client, method)("/drift/markets/clear")
        assert resp.status_code == 200
        assert resp.json()["clearedCount"] == 3

    @pytest.mark.parametrize("method,path", [
        ("post", "/drift/markets"),
        ("get", "/drift/markets/clear"),
        ("post", "/drift/markets/clear"),
    ])
    def test_hidden_in_production(self, client, monkeypatch, method, path):
        """Verify debug routes 404 in production"""
        monkeypatch.setattr(settings, "environment", "production")
        resp = getattr(client, method)(path)
        assert resp.status_code == 404


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
