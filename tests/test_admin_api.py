# tests/test_admin_api.py
from sqlalchemy import text

AUTH = {"Authorization": "Bearer test-token"}

EVENT = {
    "title": "Norway Chess",
    "location": "Stavanger, Norway",
    "start_datetime": "2025-05-26T00:00:00",
    "end_datetime": "2025-06-06T00:00:00",
    "url": "https://norwaychess.no",
    "continent": "Europe",
}


def _create(client, **fields):
    r = client.post("/api/events", json={**EVENT, **fields}, headers=AUTH)
    assert r.status_code == 201, r.text
    return r.json()["id"]


def test_writes_require_token(client):
    assert client.post("/api/events", json=EVENT).status_code == 401
    assert client.post("/api/events", json=EVENT, headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.delete("/api/events/1").status_code == 401
    assert client.get("/api/admin/backups").status_code == 401
    assert client.get("/api/events").json()["total"] == 0


def test_unauthorized_uses_error_envelope(client):
    r = client.post("/api/events", json=EVENT, headers={"Authorization": "Bearer wrong"})
    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Unauthorized", "code": "unauthorized"}


def test_no_configured_token_denies_admin(settings):
    from dataclasses import replace
    from fastapi.testclient import TestClient
    from chesscal.main import create_app

    with TestClient(create_app(replace(settings, admin_token=None))) as tc:
        assert tc.post("/api/events", json=EVENT, headers={"Authorization": "Bearer "}).status_code == 401


def test_create_validation_error_body(client):
    r = client.post("/api/events", json={"location": "Nowhere"}, headers=AUTH)
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False and body["code"] == "validation_error"
    assert {d["field"] for d in body["details"]} >= {"title", "url"}


def test_batch_create(client):
    r = client.post("/api/events/batch", json={"events": [EVENT, {**EVENT, "title": "Norway Chess Women"}]}, headers=AUTH)
    assert r.status_code == 201
    assert len(r.json()["ids"]) == 2

    r = client.post("/api/events/batch", json={"events": [EVENT, {"title": "no url"}]}, headers=AUTH)
    assert r.status_code == 400
    assert client.get("/api/events").json()["total"] == 2

    assert client.post("/api/events/batch", json={"rows": []}, headers=AUTH).status_code == 400
    assert client.post("/api/events/batch", json={"events": []}, headers=AUTH).status_code == 400


def test_update(client):
    new_id = _create(client)
    r = client.put(f"/api/events/{new_id}", json={"rounds": 10, "players": "Carlsen, Caruana"}, headers=AUTH)
    assert r.status_code == 200 and r.json()["success"] is True
    assert client.get(f"/api/events/{new_id}").json()["data"]["rounds"] == 10

    for payload in ({}, {"deleted_at": None}, {"created_at": "2020-01-01T00:00:00"}, {"url": "nope"}):
        r = client.put(f"/api/events/{new_id}", json=payload, headers=AUTH)
        assert r.status_code == 400, payload
        assert r.json()["code"] == "validation_error"

    assert client.put("/api/events/9999", json={"rounds": 1}, headers=AUTH).status_code == 404


def test_delete_restore_permanent(client):
    new_id = _create(client)

    assert client.delete(f"/api/events/{new_id}", headers=AUTH).status_code == 200
    assert client.get(f"/api/events/{new_id}").status_code == 404
    assert client.delete(f"/api/events/{new_id}", headers=AUTH).status_code == 404

    assert client.post(f"/api/events/{new_id}/restore", headers=AUTH).status_code == 200
    assert client.get(f"/api/events/{new_id}").status_code == 200

    r = client.delete(f"/api/events/{new_id}", params={"permanent": "true"}, headers=AUTH)
    assert r.status_code == 200 and "permanently" in r.json()["message"]
    assert client.post(f"/api/events/{new_id}/restore", headers=AUTH).status_code == 404


def test_unique_violation_is_conflict(client):
    store = client.app.state.store
    with store.engine.begin() as conn:
        conn.execute(text("CREATE UNIQUE INDEX ux_url ON calendar_events(url)"))
    _create(client)
    r = client.post("/api/events", json=EVENT, headers=AUTH)
    assert r.status_code == 409
    assert r.json()["code"] == "duplicate_constraint"


def test_duplicates_routes(client):
    keep = _create(client)
    _create(client)
    _create(client, title="NORWAY CHESS")

    body = client.get("/api/admin/duplicates", headers=AUTH).json()
    assert body["total"] == 1
    assert body["data"][0]["ids"][0] == keep

    r = client.post("/api/admin/duplicates/delete", params={"mode": "manual"}, headers=AUTH)
    assert r.status_code == 400 and r.json()["code"] == "unsupported_mode"

    r = client.post("/api/admin/duplicates/delete", headers=AUTH)
    body = r.json()
    assert r.status_code == 200
    assert body["deleted"] == 2 and body["groups"] == 1
    assert body["backup"].startswith("duplicate-deletion_")
    assert [e["id"] for e in client.get("/api/events").json()["data"]] == [keep]


def test_backup_routes(client):
    _create(client)
    r = client.post("/api/admin/backups", json={"reason": "before edits"}, headers=AUTH)
    assert r.status_code == 201
    name = r.json()["data"]["name"]
    assert name.startswith("before-edits_")

    _create(client, title="Sinquefield Cup")
    assert client.get("/api/events").json()["total"] == 2

    r = client.post(f"/api/admin/backups/{name}/restore", headers=AUTH)
    assert r.status_code == 200
    assert r.json()["restored"] == name
    safety = r.json()["safety_backup"]
    assert client.get("/api/events").json()["total"] == 1

    listed = client.get("/api/admin/backups", headers=AUTH).json()
    assert listed["total"] == 2
    assert {b["name"] for b in listed["data"]} == {name, safety}

    assert client.delete(f"/api/admin/backups/{name}", headers=AUTH).status_code == 200
    assert client.delete(f"/api/admin/backups/{name}", headers=AUTH).status_code == 404
    assert client.post(f"/api/admin/backups/{name}/restore", headers=AUTH).status_code == 404

    assert client.post("/api/admin/backups", headers=AUTH).json()["data"]["reason"] == "manual"


def test_exports_regenerate_after_write(settings, tmp_path):
    from dataclasses import replace
    from fastapi.testclient import TestClient
    from chesscal.main import create_app

    with TestClient(create_app(replace(settings, exports_enabled=True))) as tc:
        _create(tc)
        tc.app.state.exports.join()
        assert (settings.export_dir / "events.json").is_file()
        assert (settings.export_dir / "europe-events.json").is_file()


def test_exports_regenerate_after_backup_restore(settings, tmp_path):
    import json
    from dataclasses import replace
    from fastapi.testclient import TestClient
    from chesscal.main import create_app

    with TestClient(create_app(replace(settings, exports_enabled=True))) as tc:
        _create(tc)
        name = tc.post("/api/admin/backups", headers=AUTH).json()["data"]["name"]
        _create(tc, title="Sinquefield Cup")
        _create(tc, title="Tata Steel Masters")
        tc.app.state.exports.join()
        before = json.loads((settings.export_dir / "events.json").read_text(encoding="utf-8"))
        assert before["total"] == 3

        runs = tc.app.state.exports.runs
        assert tc.post(f"/api/admin/backups/{name}/restore", headers=AUTH).status_code == 200
        tc.app.state.exports.join()
        after = json.loads((settings.export_dir / "events.json").read_text(encoding="utf-8"))
        assert tc.app.state.exports.runs > runs
        assert after["total"] == 1
        assert [e["title"] for e in after["data"]] == ["Norway Chess"]
