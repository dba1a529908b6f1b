import pytest
from fastapi.testclient import TestClient

from suvidha.kiosk_app import create_app


@pytest.fixture
def client(runtime):
    return TestClient(create_app(runtime))


def send(client, type_, **fields):
    return client.post("/api/session/events", json={"type": type_, **fields})


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "mode": "unknown"}


def test_status_snapshot(client):
    data = client.get("/api/status").json()
    assert data["kiosk_id"] == "TEST-KIOSK"
    assert data["session"]["screen"] == "idle"
    assert data["pending_count"] == 0


def test_guest_bill_payment_end_to_end(client, scheduler):
    assert send(client, "start").json()["screen"] == "gateway"
    assert send(client, "select_path", path="guest").json()["screen"] == "guest"
    assert send(client, "navigate", route="/bill/electricity").json()["active_route"] == "bill/electricity"

    client.post("/api/bill/consumer-id", json={"value": "PSEB-999999"})
    fetched = client.post("/api/bill/fetch", json={}).json()
    assert fetched["ok"] is True
    assert fetched["workflow"]["bill"]["amount"] > 0

    client.post("/api/bill/confirm", json={})
    paid = client.post("/api/bill/pay", json={"value": "upi"}).json()
    assert paid["workflow"]["processing"] is True

    scheduler.advance(2)
    state = client.get("/api/bill").json()
    assert state["step"] == "success"
    assert state["receipt"]["offline"] is True

    queue = client.get("/api/queue").json()
    assert queue["pending_count"] == 1
    assert queue["records"][0]["kind"] == "payment"


def test_validation_errors_stay_inline(client):
    send(client, "start")
    send(client, "select_path", path="guest")
    send(client, "navigate", route="complaint")

    response = client.post("/api/complaint/proceed", json={})
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is False
    assert body["workflow"]["error"]
    assert body["workflow"]["step"] == "category"


def test_complaint_voice_flow(client):
    send(client, "start")
    send(client, "select_path", path="citizen")
    send(client, "dev_override", screen="citizen-dashboard", route="complaint")

    client.post("/api/complaint/voice", json={"value": "street light not working"})
    client.post("/api/complaint/proceed", json={})
    done = client.post("/api/complaint/submit", json={}).json()

    assert done["ok"] is True
    assert done["workflow"]["step"] == "done"
    assert done["workflow"]["category"] == "Street Light"


def test_unknown_event_and_action(client):
    assert send(client, "teleport").status_code == 400
    assert send(client, "select_path", path="vip").status_code == 400
    assert client.post("/api/bill/refund", json={}).status_code == 404


def test_action_without_workflow_is_conflict(client):
    assert client.post("/api/bill/fetch", json={}).status_code == 409
    assert client.get("/api/complaint").status_code == 409


def test_otp_login(client, scheduler):
    assert client.post("/api/auth/otp/verify", json={"code": "482916"}).status_code == 409

    send(client, "start")
    send(client, "select_path", path="citizen")
    client.post("/api/auth/otp/send")

    wrong = client.post("/api/auth/otp/verify", json={"code": "000000"}).json()
    assert wrong["ok"] is False
    assert wrong["auth"]["error"]

    right = client.post("/api/auth/otp/verify", json={"code": "482916"}).json()
    assert right["ok"] is True

    scheduler.advance(1)
    session = client.get("/api/status").json()["session"]
    assert session["screen"] == "citizen-dashboard"
    assert session["citizen"]["name"] == "Vivek Kumar"


def test_network_signals(client):
    assert client.post("/api/network/offline").json()["mode"] == "offline"
    assert client.post("/api/sync").status_code == 409
    assert client.post("/api/network/sideways").status_code == 400
    assert client.post("/api/network/online").json()["is_online"] is True


def test_activity_endpoint(client):
    assert client.post("/api/activity", json={"kind": "touch"}).json()["accepted"] is True
    assert client.post("/api/activity", json={"kind": "scroll"}).json()["accepted"] is False


def test_voice_endpoint(client):
    send(client, "start")
    send(client, "select_path", path="guest")
    body = client.post("/api/voice", json={"transcript": "gas booking"}).json()
    assert body["command"]["route"] == "bill/gas"
    assert body["session"]["active_route"] == "bill/gas"


def test_operator_views(client):
    send(client, "start")
    history = client.get("/api/session/history").json()["history"]
    assert history[0]["to"] == "gateway"

    client.post("/api/network/offline")
    logs = client.get("/api/logs", params={"limit": 5}).json()["logs"]
    assert logs[0]["event_type"] == "mode_change"

    assert client.get("/api/sync").json()["state"] == "idle"


def test_dev_override_requires_dev_panel(client, runtime):
    runtime.settings.DEV_PANEL_ENABLED = False
    assert send(client, "dev_override", screen="guest").status_code == 403
