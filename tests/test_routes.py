"""
HTTP and WebSocket surface tests.

All routes run against the in-memory store; callers authenticate with the
X-User-ID header accepted in mock mode.
"""

import pytest
from starlette.websockets import WebSocketDisconnect

from tests.conftest import CITIZEN_ID, COUNCIL_ID, OTHER_CITIZEN_ID, as_user


async def create_report(client, payload, uid=CITIZEN_ID):
    response = await client.post("/reports", json=payload, headers=as_user(uid))
    assert response.status_code == 201, response.text
    return response.json()


# ── Health / root ────────────────────────────────────────────────────────────

async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["service"] == "EcoWatch"


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_health_db(client):
    response = await client.get("/health/db")
    data = response.json()
    assert response.status_code == 200
    assert data["backend"] == "memory"
    assert data["connected"] is True


async def test_health_db_unavailable(client, store, monkeypatch):
    async def broken_ping():
        raise RuntimeError("connection refused")

    monkeypatch.setattr(store, "ping", broken_ping)

    response = await client.get("/health/db")
    assert response.status_code == 503


# ── Reports ──────────────────────────────────────────────────────────────────

async def test_submit_report(client, draft_payload):
    data = await create_report(client, draft_payload)

    assert data["status"] == "Submitted"
    assert data["userId"] == CITIZEN_ID
    assert data["severity"] == 3
    assert data["coords"] == {"latitude": -1.29, "longitude": 36.82}
    assert data["images"] == []
    assert data["version"] == 1


async def test_submit_requires_authentication(client, draft_payload):
    response = await client.post("/reports", json=draft_payload)
    assert response.status_code == 401


async def test_submit_incomplete_draft(client):
    response = await client.post("/reports", json={"title": "Smoke"}, headers=as_user(CITIZEN_ID))

    assert response.status_code == 422
    fields = {e["field"] for e in response.json()["errors"]}
    assert fields == {"description", "category", "severity", "coords"}


async def test_my_reports_only_lists_own(client, draft_payload):
    mine = await create_report(client, draft_payload)
    await create_report(client, draft_payload, uid=OTHER_CITIZEN_ID)

    response = await client.get("/reports/mine", headers=as_user(CITIZEN_ID))

    assert response.status_code == 200
    assert [r["id"] for r in response.json()] == [mine["id"]]


async def test_my_reports_rejects_unknown_status(client):
    response = await client.get("/reports/mine", params={"status": "Pending"}, headers=as_user(CITIZEN_ID))
    assert response.status_code == 422


async def test_get_report_permissions(client, draft_payload):
    report = await create_report(client, draft_payload)

    assert (await client.get(f"/reports/{report['id']}", headers=as_user(CITIZEN_ID))).status_code == 200
    assert (await client.get(f"/reports/{report['id']}", headers=as_user(COUNCIL_ID))).status_code == 200
    assert (await client.get(f"/reports/{report['id']}", headers=as_user(OTHER_CITIZEN_ID))).status_code == 403
    assert (await client.get("/reports/missing", headers=as_user(CITIZEN_ID))).status_code == 404


async def test_upload_images_partial_success(client, draft_payload, object_storage):
    report = await create_report(client, draft_payload)

    response = await client.post(
        f"/reports/{report['id']}/images",
        files=[
            ("files", ("river.jpg", b"\xff\xd8\xff" * 10, "image/jpeg")),
            ("files", ("notes.txt", b"hello", "text/plain")),
        ],
        headers=as_user(CITIZEN_ID),
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert len(data["uploaded"]) == 1
    assert data["uploaded"][0]["contentType"] == "image/jpeg"
    assert data["failed"] == [{"filename": "notes.txt", "reason": "Unsupported content type 'text/plain'"}]
    assert len(data["report"]["images"]) == 1
    assert len(object_storage.blobs) == 1


async def test_upload_images_owner_only(client, draft_payload):
    report = await create_report(client, draft_payload)

    response = await client.post(
        f"/reports/{report['id']}/images",
        files=[("files", ("river.jpg", b"\xff" * 10, "image/jpeg"))],
        headers=as_user(OTHER_CITIZEN_ID),
    )

    assert response.status_code == 403


# ── Council ──────────────────────────────────────────────────────────────────

async def test_council_endpoints_require_council_role(client):
    response = await client.get("/council/reports", headers=as_user(CITIZEN_ID))
    assert response.status_code == 403


async def test_council_reports_with_stats(client, draft_payload):
    await create_report(client, draft_payload)
    await create_report(client, {**draft_payload, "category": "air_pollution", "severity": 1})

    response = await client.get("/council/reports", params={"status": "unresolved"}, headers=as_user(COUNCIL_ID))

    data = response.json()
    assert response.status_code == 200
    assert len(data["reports"]) == 2
    assert data["stats"]["total"] == 2
    assert data["stats"]["byStatus"] == {"Submitted": 2}
    assert data["stats"]["byCategory"] == {"waste_dumping": 1, "air_pollution": 1}


async def test_council_stats(client, draft_payload):
    await create_report(client, draft_payload)

    response = await client.get("/council/stats", headers=as_user(COUNCIL_ID))

    assert response.json()["total"] == 1


async def test_status_update_flow(client, draft_payload):
    report = await create_report(client, draft_payload)
    url = f"/council/reports/{report['id']}/status"

    response = await client.patch(url, json={"status": "In Review", "note": "Inspector assigned"}, headers=as_user(COUNCIL_ID))
    assert response.status_code == 200
    assert response.json()["status"] == "In Review"
    assert response.json()["reviewedAt"] is not None

    response = await client.get(f"/council/reports/{report['id']}/allowed-transitions", headers=as_user(COUNCIL_ID))
    assert response.json()["allowed_transitions"] == ["Resolved", "Archived"]

    response = await client.patch(url, json={"status": "Submitted"}, headers=as_user(COUNCIL_ID))
    assert response.status_code == 422


async def test_status_update_by_citizen_is_forbidden(client, store, draft_payload):
    report = await create_report(client, draft_payload)

    response = await client.patch(
        f"/council/reports/{report['id']}/status",
        json={"status": "Resolved"},
        headers=as_user(CITIZEN_ID),
    )

    assert response.status_code == 403
    assert (await store.get(report["id"])).status.value == "Submitted"


async def test_status_update_version_conflict(client, draft_payload):
    report = await create_report(client, draft_payload)
    url = f"/council/reports/{report['id']}/status"

    await client.patch(url, json={"status": "In Review"}, headers=as_user(COUNCIL_ID))
    response = await client.patch(url, json={"status": "Resolved", "expectedVersion": 1}, headers=as_user(COUNCIL_ID))

    assert response.status_code == 409
    assert response.json()["actualVersion"] == 2


async def test_status_update_unknown_report(client):
    response = await client.patch("/council/reports/nope/status", json={"status": "Resolved"}, headers=as_user(COUNCIL_ID))
    assert response.status_code == 404


# ── Map ──────────────────────────────────────────────────────────────────────

async def test_map_reports_hide_archived(client, draft_payload):
    visible = await create_report(client, draft_payload)
    archived = await create_report(client, draft_payload)
    await client.patch(
        f"/council/reports/{archived['id']}/status",
        json={"status": "Archived"},
        headers=as_user(COUNCIL_ID),
    )

    response = await client.get("/map/reports")

    data = response.json()
    assert response.status_code == 200
    assert [r["id"] for r in data] == [visible["id"]]
    assert data[0]["severityLabel"] == "High"
    assert "userId" not in data[0]


async def test_map_environment(client):
    response = await client.get("/map/environment", params={"lat": -1.29, "lng": 36.82})

    data = response.json()
    assert response.status_code == 200
    assert data["temperature"] == 22.5
    assert data["windSpeed"] == 11.2


async def test_map_environment_unavailable_returns_null(client, environment_provider):
    from ecowatch.core.errors import NetworkError

    environment_provider.error = NetworkError("offline")

    response = await client.get("/map/environment")

    assert response.status_code == 200
    assert response.json() is None


async def test_map_environment_rejects_bad_latitude(client):
    response = await client.get("/map/environment", params={"lat": 123, "lng": 0})
    assert response.status_code == 422


# ── Council live feed ────────────────────────────────────────────────────────

def test_council_feed_streams_snapshots(sync_client, store, draft_payload):
    with sync_client.websocket_connect("/council/feed", headers=as_user(COUNCIL_ID)) as websocket:
        initial = websocket.receive_json()
        assert initial["reports"] == []
        assert initial["stats"]["total"] == 0

        response = sync_client.post("/reports", json=draft_payload, headers=as_user(CITIZEN_ID))
        assert response.status_code == 201

        update = websocket.receive_json()
        assert [r["id"] for r in update["reports"]] == [response.json()["id"]]
        assert update["stats"]["byStatus"] == {"Submitted": 1}

    assert store.listener_count == 0


def test_council_feed_rejects_citizens(sync_client):
    with pytest.raises(WebSocketDisconnect):
        with sync_client.websocket_connect("/council/feed", headers=as_user(CITIZEN_ID)) as websocket:
            websocket.receive_json()


def test_council_feed_rejects_anonymous(sync_client):
    with pytest.raises(WebSocketDisconnect):
        with sync_client.websocket_connect("/council/feed") as websocket:
            websocket.receive_json()


def test_council_feed_ignores_binary_frames(sync_client, store, draft_payload):
    with sync_client.websocket_connect("/council/feed", headers=as_user(COUNCIL_ID)) as websocket:
        assert websocket.receive_json()["reports"] == []

        websocket.send_bytes(b"\x00")
        websocket.send_text("ping")

        response = sync_client.post("/reports", json=draft_payload, headers=as_user(CITIZEN_ID))
        update = websocket.receive_json()
        assert [r["id"] for r in update["reports"]] == [response.json()["id"]]

    assert store.listener_count == 0


def test_council_feed_applies_status_projection(sync_client, draft_payload):
    url = "/council/feed?status=unresolved"
    with sync_client.websocket_connect(url, headers=as_user(COUNCIL_ID)) as websocket:
        websocket.receive_json()

        created = sync_client.post("/reports", json=draft_payload, headers=as_user(CITIZEN_ID)).json()
        assert [r["id"] for r in websocket.receive_json()["reports"]] == [created["id"]]

        sync_client.patch(
            f"/council/reports/{created['id']}/status",
            json={"status": "Resolved"},
            headers=as_user(COUNCIL_ID),
        )
        resolved = websocket.receive_json()
        assert resolved["reports"] == []
        assert resolved["stats"]["byStatus"] == {"Resolved": 1}


# ── Citizen and map live feeds ───────────────────────────────────────────────

def test_my_reports_feed_streams_own_reports(sync_client, store, draft_payload):
    with sync_client.websocket_connect("/reports/mine/feed", headers=as_user(CITIZEN_ID)) as websocket:
        initial = websocket.receive_json()
        assert initial["reports"] == []

        first = sync_client.post("/reports", json=draft_payload, headers=as_user(CITIZEN_ID)).json()
        assert [r["id"] for r in websocket.receive_json()["reports"]] == [first["id"]]

        sync_client.post("/reports", json=draft_payload, headers=as_user(OTHER_CITIZEN_ID))
        second = sync_client.post("/reports", json=draft_payload, headers=as_user(CITIZEN_ID)).json()

        update = websocket.receive_json()
        assert {r["id"] for r in update["reports"]} == {first["id"], second["id"]}
        assert update["stats"]["total"] == 2

    assert store.listener_count == 0


def test_my_reports_feed_requires_authentication(sync_client):
    with pytest.raises(WebSocketDisconnect):
        with sync_client.websocket_connect("/reports/mine/feed") as websocket:
            websocket.receive_json()


def test_map_feed_tracks_active_reports(sync_client, store, draft_payload):
    with sync_client.websocket_connect("/map/feed") as websocket:
        assert websocket.receive_json() == {"reports": []}

        created = sync_client.post("/reports", json=draft_payload, headers=as_user(CITIZEN_ID)).json()
        pins = websocket.receive_json()["reports"]
        assert [p["id"] for p in pins] == [created["id"]]
        assert pins[0]["severityLabel"] == "High"
        assert "userId" not in pins[0]

        sync_client.patch(
            f"/council/reports/{created['id']}/status",
            json={"status": "Archived"},
            headers=as_user(COUNCIL_ID),
        )
        assert websocket.receive_json() == {"reports": []}

    assert store.listener_count == 0
