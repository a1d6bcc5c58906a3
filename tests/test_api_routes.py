"""Tests for the dashboard HTTP endpoints."""

import json

from fire_monitor.telemetry_parser import parse_telemetry


def test_index_renders(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert b"Home Fire Safety Monitor" in resp.data


def test_status(client):
    resp = client.get("/api/status")
    assert resp.status_code == 200
    assert resp.get_json()["stage"] == "provisioning"


def test_provision_validation_error(client, mock_websocket):
    resp = client.post("/api/provision", json={
        "address": "192.168.4.1", "ssid": "HomeNet", "password": "hunter22", "threshold": "150",
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Temperature threshold must be between 0 and 100."
    mock_websocket.assert_not_called()


def test_provision_starts_session(client, mock_websocket):
    resp = client.post("/api/provision", json={
        "address": "192.168.4.1", "ssid": "HomeNet", "password": "hunter22", "threshold": "45",
    })
    assert resp.status_code == 200
    assert resp.get_json()["is_flashing"] is True
    assert mock_websocket.call_args[0][0] == "ws://192.168.4.1:81"


def test_provision_accepts_form_post(client, mock_websocket):
    resp = client.post("/api/provision", data={
        "address": "192.168.4.1", "ssid": "HomeNet", "password": "hunter22", "threshold": "45",
    })
    assert resp.status_code == 200


def test_cancel_provision(client, mock_websocket):
    client.post("/api/provision", json={
        "address": "192.168.4.1", "ssid": "HomeNet", "password": "hunter22", "threshold": "45",
    })
    resp = client.post("/api/provision/cancel")
    assert resp.get_json()["is_flashing"] is False


def test_full_flow(client, screen, mock_websocket, subscriber_factory):
    client.post("/api/provision", json={
        "address": "192.168.4.1", "ssid": "HomeNet", "password": "hunter22", "threshold": "45",
    })
    ws = mock_websocket.return_value
    session = screen._session
    session._on_open(ws)
    assert json.loads(ws.send.call_args[0][0])["tempThre"] == "45"
    session._on_close(ws, 1000, "")

    resp = client.post("/api/wifi", json={"ssid": "PhoneNet", "password": ""})
    assert resp.status_code == 400

    resp = client.post("/api/wifi", json={"ssid": "PhoneNet", "password": "secret"})
    assert resp.get_json()["stage"] == "monitoring"

    screen.handle_reading(*parse_telemetry('{"temperature": 21, "gasValue": 10}'))
    reading = client.get("/api/reading").get_json()
    assert reading["data_loaded"] is True
    assert reading["reading"]["temperature"] == 21
    assert reading["alert"] is False

    resp = client.post("/api/wifi/disconnect")
    assert resp.get_json()["stage"] == "wifi_setup"
    subscriber_factory.return_value.stop.assert_called_once()


def test_provision_null_field_rejected(client, mock_websocket):
    resp = client.post("/api/provision", json={
        "address": None, "ssid": "HomeNet", "password": "hunter22", "threshold": "45",
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Please enter connection IP, SSID, password and sensor alert."
    mock_websocket.assert_not_called()


def test_wifi_null_field_rejected(client, screen, mock_websocket, subscriber_factory):
    client.post("/api/provision", json={
        "address": "192.168.4.1", "ssid": "HomeNet", "password": "hunter22", "threshold": "45",
    })
    screen._session._on_close(mock_websocket.return_value, 1000, "")

    resp = client.post("/api/wifi", json={"ssid": "PhoneNet", "password": None})
    assert resp.status_code == 400
    subscriber_factory.assert_not_called()
