import pytest
from fastapi.testclient import TestClient

from main import app

DATA = {
    "event": "2024txhou",
    "entries": [{"team": 2000 + i, "match": i, "defense": i % 3} for i in range(50)],
}


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def create_broadcast(client, **body) -> dict:
    response = client.post("/api/broadcasts", json={"data": DATA, **body})
    assert response.status_code == 200
    return response.json()["broadcast"]


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.parametrize("profile", ["fast", "reliable"])
def test_broadcast_then_scan(client, profile):
    broadcast = create_broadcast(client, profile=profile)
    session_id = broadcast["session_id"]

    frames = client.get(
        f"/api/broadcasts/{session_id}/frames", params={"start": 0, "count": 30 * broadcast["k"] + 100}
    ).json()["frames"]

    state = None
    for frame in frames:
        body = client.post("/api/scans", json={"raw": frame}).json()
        state = body["progress"]["state"]
        if state == "complete":
            break
    assert state == "complete"

    response = client.get(f"/api/scans/{session_id}/payload")
    assert response.status_code == 200
    assert response.json()["data"] == DATA

    scans = client.get("/api/scans").json()["scans"]
    assert session_id in [s["session_id"] for s in scans]

    assert client.delete(f"/api/scans/{session_id}").status_code == 200
    assert client.get(f"/api/scans/{session_id}").status_code == 404


def test_cycle(client):
    broadcast = create_broadcast(client)
    response = client.get(f"/api/broadcasts/{broadcast['session_id']}/cycle")

    assert response.status_code == 200
    assert len(response.json()["frames"]) == broadcast["target_packets"]


def test_broadcast_listing_and_stop(client):
    broadcast = create_broadcast(client, wire_format="legacy")
    session_id = broadcast["session_id"]
    assert broadcast["wire_format"] == "legacy"

    listed = client.get("/api/broadcasts").json()["broadcasts"]
    assert session_id in [b["session_id"] for b in listed]
    assert client.get(f"/api/broadcasts/{session_id}").status_code == 200

    assert client.delete(f"/api/broadcasts/{session_id}").status_code == 200
    assert client.get(f"/api/broadcasts/{session_id}").status_code == 404
    assert client.delete(f"/api/broadcasts/{session_id}").status_code == 404


def test_bad_broadcast_requests(client):
    assert client.post("/api/broadcasts", json={"data": None}).status_code == 400
    assert client.post("/api/broadcasts", json={"data": {"team": 1}}).status_code == 400
    assert client.post("/api/broadcasts", json={"data": DATA, "data_type": "bad type"}).status_code == 422
    assert client.post("/api/broadcasts", json={"data": DATA, "profile": "turbo"}).status_code == 422


def test_frame_window_validation(client):
    session_id = create_broadcast(client)["session_id"]
    assert client.get(f"/api/broadcasts/{session_id}/frames", params={"count": 0}).status_code == 400
    assert client.get(f"/api/broadcasts/{session_id}/frames", params={"start": -1}).status_code == 400
    assert client.get("/api/broadcasts/nope/frames").status_code == 404
    assert client.get("/api/broadcasts/nope/cycle").status_code == 404


def test_unusable_scan_is_not_accepted(client):
    body = client.post("/api/scans", json={"raw": "https://example.com"}).json()
    assert body == {"accepted": False, "progress": None}


def test_payload_before_completion(client):
    broadcast = create_broadcast(client, profile="reliable")
    session_id = broadcast["session_id"]
    frame = client.get(f"/api/broadcasts/{session_id}/frames", params={"count": 1}).json()["frames"][0]
    client.post("/api/scans", json={"raw": frame})

    assert client.get(f"/api/scans/{session_id}/payload").status_code == 409
    assert client.get("/api/scans/unknown/payload").status_code == 404
    assert client.delete("/api/scans/unknown").status_code == 404


def test_websocket_receives_events(client):
    with client.websocket_connect("/ws") as ws:
        broadcast = create_broadcast(client)
        message = ws.receive_json()

    assert message["event"] == "broadcast_started"
    assert message["data"]["session_id"] == broadcast["session_id"]
