# tests/test_read_api.py
AUTH = {"Authorization": "Bearer test-token"}


def _post(client, **fields):
    body = {
        "title": "Tata Steel Masters",
        "location": "Wijk aan Zee, Netherlands",
        "start_datetime": "2025-01-17T00:00:00",
        "end_datetime": "2025-02-02T00:00:00",
        "url": "https://tatasteelchess.com",
        "format": "Classical",
        "continent": "Europe",
    }
    body.update(fields)
    r = client.post("/api/events", json=body, headers=AUTH)
    assert r.status_code == 201, r.text
    return r.json()["id"]


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200 and r.json()["status"] == "ok"


def test_list_and_filters(client):
    tata = _post(client, special="yes")
    _post(client, title="Titled Tuesday", location="Online", format="Blitz", continent=None,
          start_datetime="2025-03-04T17:00:00Z", end_datetime="2025-03-04T21:00:00Z")
    _post(client, title="Tashkent Open", location="Tashkent", continent="Asia",
          start_datetime="2025-03-10T00:00:00", end_datetime="2025-03-18T00:00:00")

    r = client.get("/api/events")
    body = r.json()
    assert r.status_code == 200 and body["success"] is True
    assert body["total"] == 3 and body["returned"] == 3
    assert [e["title"] for e in body["data"]] == ["Tata Steel Masters", "Titled Tuesday", "Tashkent Open"]

    special = client.get("/api/events", params={"special": "yes"}).json()
    assert [e["id"] for e in special["data"]] == [tata]
    assert client.get("/api/events", params={"special": "no"}).json()["total"] == 3

    assert client.get("/api/events", params={"continent": "ASIA"}).json()["total"] == 1
    assert client.get("/api/events", params={"format": "blitz"}).json()["total"] == 1
    assert client.get("/api/events", params={"search": "tues"}).json()["total"] == 1
    assert client.get("/api/events", params={"location": "wijk"}).json()["total"] == 1

    window = client.get("/api/events", params={
        "start_date": "2025-03-01T00:00:00", "end_date": "2025-03-05T00:00:00",
    }).json()
    assert [e["title"] for e in window["data"]] == ["Titled Tuesday"]

    page = client.get("/api/events", params={"limit": 1, "offset": 1}).json()
    assert page["total"] == 3 and page["returned"] == 1
    assert page["data"][0]["title"] == "Titled Tuesday"


def test_bad_paging_params(client):
    assert client.get("/api/events", params={"limit": 0}).status_code == 400
    assert client.get("/api/events", params={"offset": -1}).status_code == 400


def test_get_event_and_not_found(client):
    new_id = _post(client)
    r = client.get(f"/api/events/{new_id}")
    assert r.status_code == 200
    assert r.json()["data"]["url"] == "https://tatasteelchess.com"

    r = client.get("/api/events/9999")
    assert r.status_code == 404
    assert r.json() == {"success": False, "error": "Event 9999 not found", "code": "not_found", "details": {"id": 9999}}


def test_stats(client):
    _post(client)
    _post(client, title="Tashkent Open", continent="Asia", format="Rapid")
    body = client.get("/api/stats").json()
    assert body["success"] is True
    assert body["total_events"] == 2
    assert {"value": "Asia", "count": 1} in body["by_continent"]
    assert {row["value"] for row in body["by_format"]} == {"Classical", "Rapid"}


def test_upcoming_route(client):
    _post(client, start_datetime="2099-01-01T00:00:00", end_datetime="2099-01-02T00:00:00")
    _post(client, title="Old")
    body = client.get("/api/events/upcoming").json()
    assert [e["title"] for e in body["data"]] == ["Tata Steel Masters"]
    assert client.get("/api/events/upcoming", params={"days": 30}).json()["returned"] == 0


def test_players_filter_and_search_route(client):
    _post(client, players="Carlsen, Gukesh")
    _post(client, title="Carlsen Invitational", location="Online", players="Nakamura")

    assert client.get("/api/events", params={"search": "carlsen"}).json()["total"] == 2
    assert client.get("/api/events", params={"players": "carlsen"}).json()["total"] == 1

    r = client.get("/api/players/search", params={"name": "NAKA"})
    body = r.json()
    assert r.status_code == 200 and body["success"] is True
    assert body["total"] == 1
    assert body["data"][0]["title"] == "Carlsen Invitational"

    r = client.get("/api/players/search")
    assert r.status_code == 400 and r.json()["code"] == "validation_error"
