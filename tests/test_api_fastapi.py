from __future__ import annotations

from pathlib import Path
import sys

from fastapi.testclient import TestClient


def _reset_runtime_caches():
    import core.db as db_mod
    from core.config import get_settings

    get_settings.cache_clear()
    db_mod._engine = None
    db_mod._SessionLocal = None


def _purge_api_modules() -> None:
    for name in [
        "api.main",
        "api.routes",
        "api.ratelimit",
        "api.auth",
    ]:
        sys.modules.pop(name, None)


def _seed():
    from core.db import session_scope
    from core.models import User
    from core.security import hash_password
    from db.seed import seed_drill_types, seed_drills

    with session_scope() as s:
        s.add(User(id=1, username="coach1", password_hash=hash_password("CoachPass!234"), role="coach"))
        s.add(User(id=2, username="coach2", password_hash=hash_password("CoachPass!234"), role="coach"))
        s.add(User(id=3, username="viewer", password_hash=hash_password("ViewerPass!234"), role="viewer"))
    seed_drill_types()
    seed_drills(created_by=1)


def _create_schema():
    import core.models  # noqa: F401
    from core.db import Base, get_engine

    Base.metadata.create_all(bind=get_engine())


def _build_client(tmp_path: Path, monkeypatch, env_overrides: dict[str, str] | None = None) -> TestClient:
    db_path = tmp_path / "api_test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{db_path}")
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:5173")
    if env_overrides:
        for key, value in env_overrides.items():
            monkeypatch.setenv(key, value)

    _reset_runtime_caches()
    _purge_api_modules()
    _create_schema()
    _seed()

    from api.main import create_app

    return TestClient(create_app())


def _auth_headers(client: TestClient, username: str, password: str) -> dict[str, str]:
    resp = client.post("/api/v1/auth/token", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    token = resp.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


def _drill_id(client: TestClient, headers: dict[str, str], name: str) -> int:
    drills = client.get("/api/v1/drills", headers=headers).json()
    return next(d["id"] for d in drills if d["name"] == name)


def test_health_echoes_or_generates_request_id_header(tmp_path, monkeypatch):
    with _build_client(tmp_path, monkeypatch) as client:
        custom_request_id = "req-test-123"
        resp = client.get("/api/v1/health", headers={"X-Request-ID": custom_request_id})
        assert resp.status_code == 200, resp.text
        assert resp.json() == {"status": "ok", "env": "test"}
        assert resp.headers["X-Request-ID"] == custom_request_id

        generated = client.get("/api/v1/health")
        assert generated.status_code == 200, generated.text
        assert generated.headers.get("X-Request-ID")


def test_auth_token_rate_limit_returns_429_when_enabled(tmp_path, monkeypatch):
    env = {
        "APP_ENV": "dev",
        "RATE_LIMIT_ENABLED": "true",
        "AUTH_TOKEN_RATE_LIMIT": "2/minute",
    }
    with _build_client(tmp_path, monkeypatch, env_overrides=env) as client:
        for _ in range(2):
            resp = client.post("/api/v1/auth/token", json={"username": "nobody", "password": "wrong"})
            assert resp.status_code == 401
        limited = client.post("/api/v1/auth/token", json={"username": "nobody", "password": "wrong"})
        assert limited.status_code == 429, limited.text
        assert limited.json()["detail"]["code"] == "RATE_LIMITED"


def test_endpoints_require_coach_token(tmp_path, monkeypatch):
    with _build_client(tmp_path, monkeypatch) as client:
        missing = client.get("/api/v1/drills")
        assert missing.status_code == 401
        assert missing.json()["detail"]["code"] == "AUTH_REQUIRED"

        bogus = client.get("/api/v1/drills", headers={"Authorization": "Bearer not.a.token"})
        assert bogus.status_code == 401
        assert bogus.json()["detail"]["code"] == "INVALID_TOKEN"

        viewer = _auth_headers(client, "viewer", "ViewerPass!234")
        forbidden = client.get("/api/v1/drills", headers=viewer)
        assert forbidden.status_code == 403
        assert forbidden.json()["detail"]["code"] == "FORBIDDEN_ROLE"


def test_login_rejects_bad_password(tmp_path, monkeypatch):
    with _build_client(tmp_path, monkeypatch) as client:
        resp = client.post("/api/v1/auth/token", json={"username": "coach1", "password": "nope"})
        assert resp.status_code == 401
        assert resp.json()["detail"]["code"] == "INVALID_CREDENTIALS"


def test_catalog_and_drill_type_colors(tmp_path, monkeypatch):
    with _build_client(tmp_path, monkeypatch) as client:
        headers = _auth_headers(client, "coach1", "CoachPass!234")
        drills = client.get("/api/v1/drills", headers=headers)
        assert drills.status_code == 200, drills.text
        assert len(drills.json()) == 10

        colors = client.get("/api/v1/drill-types", headers=headers)
        assert colors.status_code == 200
        assert colors.json()["Defense"] == "bg-rose-300"


def test_practice_plan_crud_and_timeline(tmp_path, monkeypatch):
    with _build_client(tmp_path, monkeypatch) as client:
        headers = _auth_headers(client, "coach1", "CoachPass!234")
        weave = _drill_id(client, headers, "3-Man Weave")
        shell = _drill_id(client, headers, "Shell Drill")

        created = client.post(
            "/api/v1/practice-plans",
            headers=headers,
            json={
                "name": "Tuesday",
                "start_time": "17:30",
                "end_time": "19:00",
                "items": [
                    {"item_type": "drill", "drill_id": weave, "duration": 15, "order_index": 0},
                    {"item_type": "break", "duration": 5, "order_index": 1},
                    {"item_type": "drill", "drill_id": shell, "duration": 20, "order_index": 2},
                ],
            },
        )
        assert created.status_code == 201, created.text
        plan = created.json()
        plan_id = plan["id"]
        assert [i["order_index"] for i in plan["items"]] == [0, 1, 2]

        listed = client.get("/api/v1/practice-plans", headers=headers)
        assert listed.status_code == 200
        assert listed.json()[0]["total_minutes"] == 40

        other = _auth_headers(client, "coach2", "CoachPass!234")
        assert client.get("/api/v1/practice-plans", headers=other).json() == []

        timeline = client.get(f"/api/v1/practice-plans/{plan_id}/timeline", headers=headers)
        assert timeline.status_code == 200, timeline.text
        view = timeline.json()
        assert view["plan_id"] == plan_id
        assert view["available_time"] == 50
        assert [e["start_label"] for e in view["entries"]] == ["5:30 PM", "5:45 PM", "5:50 PM"]
        assert [m["label"] for m in view["markers"]] == ["5:30 PM", "5:45 PM", "6:00 PM"]

        updated = client.put(
            f"/api/v1/practice-plans/{plan_id}",
            headers=headers,
            json={
                "name": "Tuesday v2",
                "start_time": "17:30",
                "end_time": "18:30",
                "items": [{"item_type": "drill", "drill_id": shell, "duration": 30, "order_index": 0}],
            },
        )
        assert updated.status_code == 200, updated.text
        fetched = client.get(f"/api/v1/practice-plans/{plan_id}", headers=headers).json()
        assert fetched["name"] == "Tuesday v2"
        assert fetched["end_time"] == "18:30"
        assert len(fetched["items"]) == 1

        deleted = client.delete(f"/api/v1/practice-plans/{plan_id}", headers=headers)
        assert deleted.status_code == 200
        missing = client.get(f"/api/v1/practice-plans/{plan_id}", headers=headers)
        assert missing.status_code == 404
        assert missing.json()["detail"]["code"] == "PLAN_NOT_FOUND"


def test_practice_plan_validation_errors(tmp_path, monkeypatch):
    with _build_client(tmp_path, monkeypatch) as client:
        headers = _auth_headers(client, "coach1", "CoachPass!234")
        gaps = client.post(
            "/api/v1/practice-plans",
            headers=headers,
            json={
                "name": "Gappy",
                "start_time": "17:30",
                "end_time": "19:00",
                "items": [{"item_type": "break", "duration": 5, "order_index": 2}],
            },
        )
        assert gaps.status_code == 422

        blank = client.post(
            "/api/v1/practice-plans",
            headers=headers,
            json={"name": "   ", "start_time": "17:30", "end_time": "19:00", "items": []},
        )
        assert blank.status_code == 422

        unknown_drill = client.post(
            "/api/v1/practice-plans",
            headers=headers,
            json={
                "name": "Ghost drill",
                "start_time": "17:30",
                "end_time": "19:00",
                "items": [{"item_type": "drill", "drill_id": 9999, "duration": 5, "order_index": 0}],
            },
        )
        assert unknown_drill.status_code == 503
        assert unknown_drill.json()["detail"]["code"] == "STORAGE_ERROR"


def test_other_coach_cannot_delete_plan(tmp_path, monkeypatch):
    with _build_client(tmp_path, monkeypatch) as client:
        owner = _auth_headers(client, "coach1", "CoachPass!234")
        created = client.post(
            "/api/v1/practice-plans",
            headers=owner,
            json={"name": "Private", "start_time": "17:30", "end_time": "19:00", "items": []},
        )
        plan_id = created.json()["id"]
        other = _auth_headers(client, "coach2", "CoachPass!234")
        resp = client.delete(f"/api/v1/practice-plans/{plan_id}", headers=other)
        assert resp.status_code == 404


def test_other_coach_cannot_read_or_update_plan(tmp_path, monkeypatch):
    with _build_client(tmp_path, monkeypatch) as client:
        owner = _auth_headers(client, "coach1", "CoachPass!234")
        created = client.post(
            "/api/v1/practice-plans",
            headers=owner,
            json={"name": "Private", "start_time": "17:30", "end_time": "19:00", "items": []},
        )
        plan_id = created.json()["id"]
        other = _auth_headers(client, "coach2", "CoachPass!234")

        read = client.get(f"/api/v1/practice-plans/{plan_id}", headers=other)
        assert read.status_code == 404
        assert read.json()["detail"]["code"] == "PLAN_NOT_FOUND"

        timeline = client.get(f"/api/v1/practice-plans/{plan_id}/timeline", headers=other)
        assert timeline.status_code == 404

        overwrite = client.put(
            f"/api/v1/practice-plans/{plan_id}",
            headers=other,
            json={"name": "Taken", "start_time": "06:00", "end_time": "07:00", "items": []},
        )
        assert overwrite.status_code == 404
        assert overwrite.json()["detail"]["code"] == "PLAN_NOT_FOUND"

        mine = client.get(f"/api/v1/practice-plans/{plan_id}", headers=owner)
        assert mine.status_code == 200
        assert mine.json()["name"] == "Private"
        assert mine.json()["start_time"] == "17:30"
