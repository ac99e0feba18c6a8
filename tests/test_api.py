"""
Black-box tests of the HTTP API through FastAPI's TestClient.

Every response must carry the envelope:
    {"success": true, "data": ...}  or  {"success": false, "error": {"code", "message"}}
"""
import pytest
from fastapi.testclient import TestClient

from manga_reader.api.server import create_app
from manga_reader.caching import cache_policy
from manga_reader.core.entities import StatsPeriod, SubjectKind

from conftest import ADMIN_PASSWORD


def assert_error(resp, status, code):
    assert resp.status_code == status, resp.text
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == code
    assert body["error"]["message"]
    return body["error"]


# ── Health ───────────────────────────────────────────────────────────────

class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["service"] == "healthy"
        assert body["database"] == "healthy"
        assert body["cache"] == "healthy"
        assert "hit_rate_pct" in body["cache_stats"]

    def test_degraded_without_cache(self, config, broken_store, session_factory):
        app = create_app(config=config, store=broken_store, session_factory=session_factory)
        with TestClient(app) as c:
            body = c.get("/health").json()
        assert body["cache"].startswith("unhealthy")
        assert body["service"] == "degraded"


# ── Manga ────────────────────────────────────────────────────────────────

class TestMangaEndpoints:
    def test_list_envelope_and_meta(self, client, catalog):
        resp = client.get("/api/v1/manga", params={"limit": 1})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert [m["title"] for m in body["data"]] == ["Berserk"]
        assert body["meta"]["per_page"] == 1
        assert body["meta"]["current_page"] == 1

    def test_list_filters(self, client, catalog):
        resp = client.get("/api/v1/manga", params={"genres": "action, dark fantasy", "status": "ongoing"})
        assert [m["title"] for m in resp.json()["data"]] == ["Berserk"]
        resp = client.get("/api/v1/manga", params={"title": "yotsu"})
        assert [m["title"] for m in resp.json()["data"]] == ["Yotsuba"]

    def test_get_manga(self, client, catalog, app):
        manga_id = catalog["manga"][0]
        resp = client.get(f"/api/v1/manga/{manga_id}")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["title"] == "Berserk"
        assert data["genres"] == ["action", "dark fantasy"]
        assert app.state.services.analytics.get_views(SubjectKind.MANGA, manga_id) == 1

    def test_get_missing_manga(self, client):
        assert_error(client.get("/api/v1/manga/999"), 404, "MANGA_NOT_FOUND")

    def test_non_numeric_id_is_validation_error(self, client):
        error = assert_error(client.get("/api/v1/manga/abc"), 400, "VALIDATION_ERROR")
        assert error["details"]

    def test_manga_chapters(self, client, catalog):
        resp = client.get(f"/api/v1/manga/{catalog['manga'][0]}/chapters")
        assert [c["title"] for c in resp.json()["data"]] == ["The Black Swordsman", "The Brand"]

    def test_popular(self, client, catalog):
        berserk, yotsuba = catalog["manga"]
        for _ in range(2):
            client.get(f"/api/v1/manga/{yotsuba}")
        client.get(f"/api/v1/manga/{berserk}")

        resp = client.get("/api/v1/manga/popular", params={"period": "daily", "limit": 5})
        assert resp.status_code == 200
        assert [(s["manga_id"], s["views"]) for s in resp.json()["data"]] == [(yotsuba, 2), (berserk, 1)]

    def test_popular_invalid_period(self, client):
        error = assert_error(client.get("/api/v1/manga/popular", params={"period": "yearly"}), 400,
                             "VALIDATION_ERROR")
        assert "all_time" in error["details"]["allowed"]


class TestMangaAdmin:
    def test_write_requires_token(self, client):
        assert_error(client.post("/api/v1/manga", json={"title": "X"}), 401, "UNAUTHORIZED")

    def test_malformed_authorization_header(self, client):
        resp = client.post("/api/v1/manga", json={"title": "X"}, headers={"Authorization": "Token abc"})
        assert_error(resp, 401, "UNAUTHORIZED")

    def test_garbage_token(self, client):
        resp = client.post("/api/v1/manga", json={"title": "X"}, headers={"Authorization": "Bearer abc"})
        error = assert_error(resp, 401, "JWT_INVALID")
        assert error["details"]["reason"] == "malformed"

    def test_expired_token(self, client, admin_headers, clock):
        clock.advance(hours=25)
        assert_error(client.post("/api/v1/manga", json={"title": "X"}, headers=admin_headers), 401, "JWT_EXPIRED")

    def test_write_requires_admin(self, client, user_headers):
        assert_error(client.post("/api/v1/manga", json={"title": "X"}, headers=user_headers), 403, "FORBIDDEN")

    def test_crud(self, client, admin_headers, store):
        resp = client.post("/api/v1/manga", json={"title": "Vagabond", "genres": ["samurai"]},
                           headers=admin_headers)
        assert resp.status_code == 201
        manga_id = resp.json()["data"]["id"]

        client.get(f"/api/v1/manga/{manga_id}")
        assert store.exists(cache_policy.manga_key(manga_id))

        resp = client.put(f"/api/v1/manga/{manga_id}", json={"title": "Vagabond (VIZBIG)", "status": "hiatus"},
                          headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "hiatus"
        assert client.get(f"/api/v1/manga/{manga_id}").json()["data"]["title"] == "Vagabond (VIZBIG)"

        resp = client.delete(f"/api/v1/manga/{manga_id}", headers=admin_headers)
        assert resp.status_code == 204
        assert_error(client.get(f"/api/v1/manga/{manga_id}"), 404, "MANGA_NOT_FOUND")

    def test_unknown_field_rejected(self, client, admin_headers):
        resp = client.post("/api/v1/manga", json={"title": "X", "rating": 5}, headers=admin_headers)
        assert_error(resp, 400, "VALIDATION_ERROR")

    def test_empty_title_rejected(self, client, admin_headers):
        resp = client.post("/api/v1/manga", json={"title": ""}, headers=admin_headers)
        assert_error(resp, 400, "VALIDATION_ERROR")


# ── Chapters and pages ───────────────────────────────────────────────────

class TestChapterAndPageEndpoints:
    def test_chapter_reports_prior_views(self, client, catalog):
        chapter_id = catalog["chapters"][0]
        assert client.get(f"/api/v1/chapters/{chapter_id}").json()["data"]["views"] == 0
        assert client.get(f"/api/v1/chapters/{chapter_id}").json()["data"]["views"] == 1

    def test_chapter_pages(self, client, catalog):
        resp = client.get(f"/api/v1/chapters/{catalog['chapters'][1]}/pages")
        assert [p["number"] for p in resp.json()["data"]] == [1, 2]

    def test_missing_chapter_and_page(self, client):
        assert_error(client.get("/api/v1/chapters/404"), 404, "CHAPTER_NOT_FOUND")
        assert_error(client.get("/api/v1/pages/404"), 404, "PAGE_NOT_FOUND")

    def test_chapter_crud(self, client, catalog, admin_headers):
        manga_id = catalog["manga"][1]
        resp = client.post("/api/v1/chapters", json={"manga_id": manga_id, "number": 1, "title": "Yotsuba & Moving"},
                           headers=admin_headers)
        assert resp.status_code == 201
        chapter_id = resp.json()["data"]["id"]
        assert [c["id"] for c in client.get(f"/api/v1/manga/{manga_id}/chapters").json()["data"]] == [chapter_id]

        resp = client.put(f"/api/v1/chapters/{chapter_id}",
                          json={"manga_id": manga_id, "number": 1, "title": "Yotsuba & Global Warming"},
                          headers=admin_headers)
        assert resp.json()["data"]["title"] == "Yotsuba & Global Warming"

        assert client.delete(f"/api/v1/chapters/{chapter_id}", headers=admin_headers).status_code == 204
        assert client.get(f"/api/v1/manga/{manga_id}/chapters").json()["data"] == []

    def test_duplicate_chapter_number_conflicts(self, client, catalog, admin_headers):
        resp = client.post("/api/v1/chapters", json={"manga_id": catalog["manga"][0], "number": 1, "title": "Dup"},
                           headers=admin_headers)
        assert_error(resp, 409, "CONFLICT")

    @pytest.mark.parametrize("number", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_chapter_number_rejected(self, client, catalog, admin_headers, number):
        body = '{"manga_id": %d, "number": %s, "title": "x"}' % (catalog["manga"][0], number)
        resp = client.post("/api/v1/chapters", content=body,
                           headers={"Content-Type": "application/json", **admin_headers})
        assert_error(resp, 400, "VALIDATION_ERROR")

    def test_page_crud(self, client, catalog, admin_headers):
        chapter_id = catalog["chapters"][0]
        resp = client.post("/api/v1/pages", json={"chapter_id": chapter_id, "number": 3, "image_path": "/img/3.png"},
                           headers=admin_headers)
        assert resp.status_code == 201
        page_id = resp.json()["data"]["id"]
        assert client.get(f"/api/v1/pages/{page_id}").json()["data"]["image_path"] == "/img/3.png"

        resp = client.put(f"/api/v1/pages/{page_id}",
                          json={"chapter_id": chapter_id, "number": 3, "image_path": "/img/3-hq.png"},
                          headers=admin_headers)
        assert resp.json()["data"]["image_path"] == "/img/3-hq.png"
        assert client.get(f"/api/v1/pages/{page_id}").json()["data"]["image_path"] == "/img/3-hq.png"

        assert client.delete(f"/api/v1/pages/{page_id}", headers=admin_headers).status_code == 204
        assert_error(client.delete(f"/api/v1/pages/{page_id}", headers=admin_headers), 404, "PAGE_NOT_FOUND")


# ── Analytics ────────────────────────────────────────────────────────────

class TestAnalyticsEndpoints:
    def test_top_lists(self, client, catalog):
        client.get(f"/api/v1/chapters/{catalog['chapters'][1]}")
        client.get(f"/api/v1/pages/{catalog['pages'][3]}")

        chapters = client.get("/api/v1/analytics/chapters/top").json()["data"]
        assert [c["chapter_id"] for c in chapters] == [catalog["chapters"][1]]
        pages = client.get("/api/v1/analytics/pages/top", params={"period": "weekly"}).json()["data"]
        assert [p["page_id"] for p in pages] == [catalog["pages"][3]]
        assert client.get("/api/v1/analytics/manga/top").json()["data"] == []

    def test_reset(self, client, catalog, admin_headers, store):
        client.get(f"/api/v1/manga/{catalog['manga'][0]}")
        client.get("/api/v1/analytics/manga/top", params={"period": "daily"})

        resp = client.post("/api/v1/analytics/reset/daily", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["data"] == {"period": "daily", "sets_removed": 1}
        assert not store.exists(cache_policy.popular_key(SubjectKind.MANGA, StatsPeriod.DAILY, 10))
        assert client.get("/api/v1/analytics/manga/top", params={"period": "daily"}).json()["data"] == []
        assert len(client.get("/api/v1/analytics/manga/top", params={"period": "weekly"}).json()["data"]) == 1

    def test_reset_invalid_period(self, client, admin_headers):
        assert_error(client.post("/api/v1/analytics/reset/yearly", headers=admin_headers), 400, "VALIDATION_ERROR")

    def test_reset_requires_admin(self, client, user_headers):
        assert_error(client.post("/api/v1/analytics/reset/daily"), 401, "UNAUTHORIZED")
        assert_error(client.post("/api/v1/analytics/reset/daily", headers=user_headers), 403, "FORBIDDEN")

    def test_stats(self, client, catalog, admin_headers):
        client.get(f"/api/v1/manga/{catalog['manga'][0]}")
        data = client.get("/api/v1/analytics/stats", headers=admin_headers).json()["data"]
        assert data["manga"][0]["lifetime_views"] == 1
        assert data["chapters"] == []

    def test_reads_survive_store_outage(self, config, broken_store, session_factory, catalog):
        app = create_app(config=config, store=broken_store, session_factory=session_factory)
        with TestClient(app) as c:
            resp = c.get(f"/api/v1/manga/{catalog['manga'][0]}")
            assert resp.status_code == 200
            assert resp.json()["data"]["title"] == "Berserk"
            assert_error(c.get("/api/v1/analytics/manga/top"), 500, "INTERNAL_ERROR")


# ── Users ────────────────────────────────────────────────────────────────

class TestUserEndpoints:
    def register(self, client, username="alice", email="alice@example.com", password="wonderland"):
        return client.post("/api/v1/users/register",
                           json={"username": username, "email": email, "password": password})

    def test_register(self, client):
        resp = self.register(client)
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["username"] == "alice"
        assert data["role"] == "user"
        assert "password_hash" not in data

    def test_register_duplicate(self, client):
        self.register(client)
        assert_error(self.register(client), 409, "USER_ALREADY_EXISTS")

    def test_register_missing_field(self, client):
        resp = client.post("/api/v1/users/register", json={"username": "alice"})
        assert_error(resp, 400, "VALIDATION_ERROR")

    def test_login_refresh_and_profile(self, client, clock):
        self.register(client)
        resp = client.post("/api/v1/users/login", json={"username": "alice@example.com", "password": "wonderland"})
        assert resp.status_code == 200
        pair = resp.json()["data"]
        headers = {"Authorization": f"Bearer {pair['access_token']}"}
        assert client.get("/api/v1/users/me", headers=headers).json()["data"]["email"] == "alice@example.com"

        clock.advance(days=2)
        assert_error(client.get("/api/v1/users/me", headers=headers), 401, "JWT_EXPIRED")

        resp = client.post("/api/v1/users/refresh", json={"refresh_token": pair["refresh_token"]})
        assert resp.status_code == 200
        headers = {"Authorization": f"Bearer {resp.json()['data']['access_token']}"}
        assert client.get("/api/v1/users/me", headers=headers).json()["data"]["username"] == "alice"

    def test_refresh_with_access_token(self, client):
        self.register(client)
        pair = client.post("/api/v1/users/login", json={"username": "alice", "password": "wonderland"}).json()["data"]
        resp = client.post("/api/v1/users/refresh", json={"refresh_token": pair["access_token"]})
        error = assert_error(resp, 401, "JWT_INVALID")
        assert error["details"]["reason"] == "bad_signature"

    def test_login_wrong_password(self, client):
        self.register(client)
        resp = client.post("/api/v1/users/login", json={"username": "alice", "password": "nope-nope"})
        assert_error(resp, 401, "INVALID_CREDENTIALS")

    def test_update_profile_and_password(self, client, user_headers):
        resp = client.put("/api/v1/users/me", json={"email": "reader@manga.example.com"}, headers=user_headers)
        assert resp.json()["data"]["email"] == "reader@manga.example.com"

        resp = client.post("/api/v1/users/me/password",
                           json={"old_password": "reader-password", "new_password": "new-password"},
                           headers=user_headers)
        assert resp.status_code == 200
        resp = client.post("/api/v1/users/login", json={"username": "reader", "password": "new-password"})
        assert resp.status_code == 200

    def test_logout(self, client, user_headers):
        resp = client.post("/api/v1/users/logout", headers=user_headers)
        assert resp.json() == {"success": True, "data": {"message": "Logged out"}}

    def test_admin_login(self, client, admin_headers):
        resp = client.post("/api/v1/users/login", json={"username": "admin", "password": ADMIN_PASSWORD})
        assert resp.status_code == 200


# ── Error rendering ──────────────────────────────────────────────────────

class TestErrorRendering:
    def test_unknown_route(self, client):
        assert_error(client.get("/api/v1/nothing-here"), 404, "NOT_FOUND")

    def test_method_not_allowed(self, client):
        resp = client.patch("/api/v1/manga/1")
        assert resp.status_code == 405
        assert resp.json()["success"] is False

    def test_unhandled_exception_is_generic(self, app):
        @app.get("/boom")
        def boom():
            raise RuntimeError("secret connection string")

        with TestClient(app, raise_server_exceptions=False) as c:
            resp = c.get("/boom")
        error = assert_error(resp, 500, "INTERNAL_ERROR")
        assert "secret" not in error["message"]
