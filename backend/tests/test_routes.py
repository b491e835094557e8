"""
Gravatar Cache API route tests
"""

import importlib

import pytest
from fastapi.testclient import TestClient

from conftest import FakeDownloader
from gravatar_cache import resolver
from gravatar_cache.app import create_app
from gravatar_cache.resolver import GravatarCache

BASE_URL = "https://example.org/wp-content/gravatars"


@pytest.fixture
def client(cache):
    app = create_app(cache=cache)
    yield TestClient(app)
    resolver.set_gravatar_cache(None)


# ============================================
# Resolve
# ============================================

class TestResolveEndpoint:

    def test_resolve_single(self, client, cache_dir):
        response = client.get("/api/gravatars", params={"url": "https://gravatar.com/avatar/abcd1234"})

        assert response.status_code == 200
        assert response.json() == {
            "original_url": "https://gravatar.com/avatar/abcd1234",
            "url": f"{BASE_URL}/abcd1234.png",
            "cached": True,
        }
        assert (cache_dir / "abcd1234.png").exists()

    def test_resolve_untrusted(self, client, downloader):
        response = client.get("/api/gravatars", params={"url": "https://evil.com/gravatar.com/avatar/x"})

        assert response.status_code == 200
        assert response.json()["url"] == ""
        assert response.json()["cached"] is False
        assert downloader.calls == []

    def test_url_required(self, client):
        assert client.get("/api/gravatars").status_code == 422

    def test_batch_resolve(self, client, downloader):
        response = client.post("/api/gravatars/resolve", json={"urls": [
            "https://gravatar.com/avatar/aaaa",
            "https://evil.com/avatar/bbbb",
            "https://secure.gravatar.com/avatar/aaaa?s=192",
        ]})

        data = response.json()
        assert response.status_code == 200
        assert data["total_requested"] == 3
        assert data["total_cached"] == 2
        assert data["budget_exhausted"] is False
        assert [r["url"] for r in data["results"]] == [
            f"{BASE_URL}/aaaa.png",
            "",
            f"{BASE_URL}/aaaa.png",
        ]
        assert len(downloader.calls) == 1


# ============================================
# Rewrite
# ============================================

class TestRewriteEndpoint:

    def test_rewrite(self, client):
        html = "<img src='https://secure.gravatar.com/avatar/abcd1234?s=96' class='avatar'/>"

        response = client.post("/api/gravatars/rewrite", json={"html": html})

        assert response.status_code == 200
        assert response.json()["html"] == f"<img src='{BASE_URL}/abcd1234.png' class='avatar'/>"


# ============================================
# Cleanup / purge / health
# ============================================

class TestMaintenanceEndpoints:

    def test_cleanup_wipes_cache(self, client, cache_dir):
        client.get("/api/gravatars", params={"url": "https://gravatar.com/avatar/abcd1234"})
        assert cache_dir.exists()

        response = client.post("/api/gravatars/cleanup")

        assert response.json()["success"] is True
        assert not cache_dir.exists()

    def test_purge_when_empty(self, client):
        response = client.delete("/api/gravatars/purge")

        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_health(self, client, cache_dir):
        data = client.get("/api/gravatars/health").json()

        assert data["status"] == "healthy"
        assert data["cache_dir"] == str(cache_dir)
        assert data["cleanup_scheduled"] is False


# ============================================
# Lifespan
# ============================================

class TestLifespan:

    def test_startup_registers_schedule(self, cache):
        app = create_app(cache=cache, poll_seconds=3600)
        try:
            with TestClient(app) as client:
                data = client.get("/api/gravatars/health").json()
                assert data["cleanup_scheduled"] is True
        finally:
            resolver.set_gravatar_cache(None)

        # Schedule outlives the process
        assert cache.scheduler.is_scheduled()

    def test_static_files_served(self, cache, tmp_path, png_bytes):
        cache.config.base_url = "/gravatars"
        app = create_app(cache=cache)
        try:
            client = TestClient(app)
            local_url = client.get(
                "/api/gravatars", params={"url": "https://gravatar.com/avatar/abcd1234"}
            ).json()["url"]

            assert local_url == "/gravatars/abcd1234.png"
            response = client.get(local_url)
            assert response.status_code == 200
            assert response.content == png_bytes
        finally:
            resolver.set_gravatar_cache(None)


# ============================================
# Per-request time budget
# ============================================

@pytest.fixture
def slow_client(tmp_path, config, png_bytes, clock):
    """Every download takes six (fake) seconds, over the five second budget"""
    downloader = FakeDownloader(
        tmp_path / "slow", default=png_bytes, clock=clock, seconds_per_download=6.0
    )
    cache = GravatarCache(config, downloader=downloader, clock=clock)
    yield TestClient(create_app(cache=cache)), downloader
    resolver.set_gravatar_cache(None)


class TestRequestBudget:

    def test_each_request_gets_a_fresh_budget(self, slow_client):
        client, downloader = slow_client

        first = client.get("/api/gravatars", params={"url": "https://gravatar.com/avatar/aaaa"})
        second = client.get("/api/gravatars", params={"url": "https://gravatar.com/avatar/bbbb"})

        assert first.json()["url"] == f"{BASE_URL}/aaaa.png"
        assert second.json()["url"] == f"{BASE_URL}/bbbb.png"
        assert len(downloader.calls) == 2

    def test_budget_shared_within_a_request(self, slow_client):
        client, downloader = slow_client

        data = client.post("/api/gravatars/resolve", json={"urls": [
            "https://gravatar.com/avatar/aaaa",
            "https://gravatar.com/avatar/bbbb",
        ]}).json()

        assert [r["url"] for r in data["results"]] == [f"{BASE_URL}/aaaa.png", ""]
        assert data["budget_exhausted"] is True
        assert len(downloader.calls) == 1

    def test_rewrite_shares_request_budget(self, slow_client):
        client, downloader = slow_client
        html = (
            "<img src='https://gravatar.com/avatar/aaaa?s=96' "
            "srcset='https://gravatar.com/avatar/bbbb?s=192 2x' class='avatar'/>"
        )

        result = client.post("/api/gravatars/rewrite", json={"html": html}).json()["html"]

        assert f"srcset='{BASE_URL}/bbbb.png 2x'" in result
        assert "src='https://gravatar.com/avatar/aaaa?s=96'" in result
        assert len(downloader.calls) == 1


# ============================================
# Module import
# ============================================

class TestAppModule:

    def test_import_has_no_side_effects(self):
        from gravatar_cache import app as app_module

        resolver.set_gravatar_cache(None)
        importlib.reload(app_module)

        assert resolver._default_cache is None
        assert not hasattr(app_module, "app")
