import os
import time
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

from signage.main import create_app


def _add_url(client, player_id, url, **extra):
    return client.post(f"/api/media/{player_id}", data={"type": "url", "url": url, **extra})


def _wait_for_subscriber(app, player_id):
    deadline = time.monotonic() + 2
    while app.state.bus.subscriber_count(player_id) == 0:
        assert time.monotonic() < deadline, "subscriber never registered"
        time.sleep(0.01)


def test_root_and_health(client):
    assert client.get("/").json()["ok"] is True
    assert client.get("/healthz").json()["ok"] is True


def test_player_registry_crud(client):
    assert client.get("/api/players").json() == []
    assert client.post("/api/players", json={"id": "lobby", "name": "Lobby"}).status_code == 201
    assert client.post("/api/players", json={"id": "lobby", "name": "Main Lobby"}).status_code == 201
    assert client.get("/api/players").json() == [{"id": "lobby", "name": "Main Lobby"}]

    renamed = client.put("/api/players/lobby", json={"name": "Front Desk"})
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Front Desk"
    assert client.put("/api/players/ghost", json={"name": "Nobody"}).status_code == 404


def test_player_id_with_separator_is_rejected(client):
    assert client.post("/api/players", json={"id": "a/b", "name": "Bad"}).status_code == 400


def test_manifest_of_unknown_player_is_empty(client):
    response = client.get("/api/media/lobby")
    assert response.status_code == 200
    assert response.json() == []


def test_upload_file_and_fetch_it(client, settings):
    response = client.post(
        "/api/media/lobby",
        data={"type": "image", "displayDuration": "8", "expirationDateTime": "2030-01-01T00:00"},
        files={"file": ("promo.png", b"png-bytes", "image/png")},
    )
    assert response.status_code == 200
    item = response.json()
    assert item["type"] == "image"
    assert item["displayDurationSeconds"] == 8
    assert item["expiresAt"].startswith("2030-01-01T00:00:00")
    assert os.path.isfile(os.path.join(settings.upload_dir, item["identifier"]))
    assert client.get(f"/uploads/{item['identifier']}").content == b"png-bytes"
    assert client.get("/api/media/lobby").json() == [item]


def test_file_type_without_file_is_rejected(client):
    response = client.post("/api/media/lobby", data={"type": "video"})
    assert response.status_code == 400


def test_rejected_upload_leaves_no_file(client, settings):
    response = client.post(
        "/api/media/lobby",
        data={"type": "image", "expirationDateTime": "whenever"},
        files={"file": ("promo.png", b"png-bytes", "image/png")},
    )
    assert response.status_code == 400
    assert os.listdir(settings.upload_dir) == []
    assert client.get("/api/media/lobby").json() == []


def test_report_pages_and_defaults(client):
    first = client.post("/api/media/lobby", data={"type": "embeddedReport", "url": "R1", "pageName": "P1"}).json()
    second = client.post(
        "/api/media/lobby", data={"type": "embeddedReport", "url": "R1", "pageName": "P2", "displayDuration": "abc"}
    ).json()
    assert first["identifier"] == "R1_P1"
    assert second["identifier"] == "R1_P2"
    assert second["sourceRef"] == "R1"
    assert second["displayDurationSeconds"] == 15
    assert [item["identifier"] for item in client.get("/api/media/lobby").json()] == ["R1_P1", "R1_P2"]


def test_reorder_and_delete(client):
    for name in ["A", "B", "C"]:
        assert _add_url(client, "lobby", name).status_code == 200

    response = client.post("/api/media/lobby/reorder", json={"orderedIdentifiers": ["C", "A"]})
    assert [item["identifier"] for item in response.json()] == ["C", "A"]

    assert client.delete("/api/media/lobby/nope").status_code == 200
    assert client.delete("/api/media/lobby/C").status_code == 200
    assert [item["identifier"] for item in client.get("/api/media/lobby").json()] == ["A"]
    assert client.delete("/api/media/other/C").status_code == 404


def test_delete_url_identifier_with_slashes(client):
    _add_url(client, "lobby", "https://example.com/dash/board")
    identifier = quote("https://example.com/dash/board", safe="")
    assert client.delete(f"/api/media/lobby/{identifier}").status_code == 200
    assert client.get("/api/media/lobby").json() == []


def test_update_expiry(client):
    _add_url(client, "lobby", "A")
    _add_url(client, "lobby", "B")

    response = client.post("/api/media/lobby/expiry", json={"identifier": "B", "newExpiry": "2031-01-01T00:00:00Z"})
    assert response.status_code == 200
    manifest = client.get("/api/media/lobby").json()
    assert manifest[0]["expiresAt"] is None
    assert manifest[1]["expiresAt"].startswith("2031-01-01T00:00:00")

    assert client.post("/api/media/lobby/expiry", json={"identifier": "B", "newExpiry": "garbage"}).status_code == 400
    assert client.post("/api/media/lobby/expiry", json={"identifier": "Z", "newExpiry": "2031-01-01"}).status_code == 404
    assert client.post("/api/media/ghost/expiry", json={"identifier": "A", "newExpiry": "2031-01-01"}).status_code == 404


def test_delete_player_cascades(client, settings):
    client.post("/api/players", json={"id": "lobby", "name": "Lobby"})
    item = client.post(
        "/api/media/lobby", data={"type": "video"}, files={"file": ("clip.mp4", b"mp4", "video/mp4")}
    ).json()

    assert client.delete("/api/players/lobby").json() == {"ok": True}
    assert client.delete("/api/players/lobby").json() == {"ok": True}
    assert client.get("/api/players").json() == []
    assert client.get("/api/media/lobby").json() == []
    assert not os.path.exists(os.path.join(settings.upload_dir, item["identifier"]))


def test_display_is_signalled_on_change(app, client):
    with client.websocket_connect("/ws/players/lobby") as websocket:
        _wait_for_subscriber(app, "lobby")
        _add_url(client, "other", "X")
        _add_url(client, "lobby", "A")
        assert websocket.receive_text() == "mediaUpdate:lobby"


def test_api_key_is_enforced(settings):
    settings.api_key = "secret"
    app = create_app(settings)
    try:
        with TestClient(app) as client:
            assert client.get("/api/players").status_code == 401
            assert client.get("/api/players", headers={"X-API-Key": "wrong"}).status_code == 401
            assert client.get("/api/players", headers={"X-API-Key": "secret"}).status_code == 200
            assert client.get("/healthz").status_code == 200
    finally:
        app.state.engine.dispose()


@pytest.mark.parametrize("path", ["/api/media/lobby/reorder", "/api/media/lobby/expiry"])
def test_malformed_bodies_are_rejected(client, path):
    assert client.post(path, json={}).status_code == 422


def test_player_id_with_nul_byte_is_rejected(client):
    assert client.get("/api/media/bad%00id").status_code == 400
    assert client.post("/api/players", json={"id": "bad\x00id", "name": "Bad"}).status_code == 400


def test_expiry_body_without_new_expiry_clears_it(client):
    _add_url(client, "lobby", "A", expirationDateTime="2030-01-01T00:00:00Z")
    response = client.post("/api/media/lobby/expiry", json={"identifier": "A"})
    assert response.status_code == 200
    assert response.json()["expiresAt"] is None


def test_out_of_range_expiry_is_a_bad_request(client):
    _add_url(client, "lobby", "A")
    response = client.post("/api/media/lobby/expiry", json={"identifier": "A", "newExpiry": "0001-01-01T00:00:00+01:00"})
    assert response.status_code == 400
