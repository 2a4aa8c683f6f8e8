import pytest

from heimdall.web_server import HeimdallServer


@pytest.fixture()
def server(panel):
    server = HeimdallServer(panel)
    server.setup_flask_app()
    server.app.config["TESTING"] = True
    return server


@pytest.fixture()
def client(server):
    return server.app.test_client()


def _add(client, **fields):
    body = {"name": "Office", "ip_address": "10.0.0.5", "protocol": "vnc"}
    body.update(fields)
    return client.post("/api/devices", json=body)


def test_index_serves_ui(client):
    response = client.get("/")
    assert response.status_code == 200
    assert b"Heimdall" in response.data


def test_ui_renders_device_fields_as_text(client):
    html = client.get("/").get_data(as_text=True)
    assert "row.innerHTML" not in html
    assert "${device.protocol" not in html
    assert "cell.textContent = text" in html


def test_server_color_can_be_disabled(panel):
    assert HeimdallServer(panel, color=False).color_logs is False


def test_list_devices_empty(client):
    response = client.get("/api/devices")
    assert response.status_code == 200
    assert response.get_json() == {"success": True, "data": []}


def test_add_device_generates_id(client):
    response = _add(client)
    assert response.status_code == 201
    body = response.get_json()
    assert body["success"] is True
    assert body["data"]["id"] == "pc2"
    assert body["data"]["protocol"] == "vnc"


def test_add_device_invalid_payload(client):
    response = client.post("/api/devices", data="not json", content_type="application/json")
    assert response.status_code == 400
    assert response.get_json()["success"] is False


def test_add_device_bad_port_type(client):
    response = _add(client, port="abc")
    assert response.status_code == 400
    assert "port" in response.get_json()["error"]


def test_add_duplicate_id_conflicts(client):
    _add(client, id="office")
    response = _add(client, id="office")
    assert response.status_code == 409
    assert "office" in response.get_json()["error"]


def test_get_device(client):
    device_id = _add(client).get_json()["data"]["id"]
    response = client.get(f"/api/devices/{device_id}")
    assert response.status_code == 200
    assert response.get_json()["data"]["name"] == "Office"


def test_get_unknown_device(client):
    response = client.get("/api/devices/missing")
    assert response.status_code == 404
    assert response.get_json() == {"success": False, "error": "Device with ID missing not found"}


def test_update_device_uses_url_id(client):
    device_id = _add(client).get_json()["data"]["id"]
    response = client.put(f"/api/devices/{device_id}", json={
        "id": "ignored", "name": "Renamed", "ip_address": "10.0.0.6", "protocol": "rdp",
    })
    assert response.status_code == 200
    assert response.get_json()["data"]["id"] == device_id
    assert client.get(f"/api/devices/{device_id}").get_json()["data"]["name"] == "Renamed"


def test_update_unknown_device(client):
    response = client.put("/api/devices/missing", json={"name": "x"})
    assert response.status_code == 404


def test_delete_device_clears_auto_start(client, panel):
    device_id = _add(client).get_json()["data"]["id"]
    client.put("/api/config", json={"connection": {"auto_start": True, "auto_start_id": device_id}})

    response = client.delete(f"/api/devices/{device_id}")

    assert response.status_code == 200
    assert response.get_json() == {"success": True}
    config = client.get("/api/config").get_json()["data"]
    assert config["connection"]["auto_start_id"] == ""
    assert panel.list_devices() == []


def test_get_config_nested(client, settings):
    data = client.get("/api/config").get_json()["data"]
    assert data == {
        "server": {"port": 8080},
        "connection": {"auto_start": False, "auto_start_id": ""},
        "clients": {
            "vnc_viewer": "vncviewer",
            "vnc_password_file": settings.vnc_password_file,
            "rdp_viewer": "xfreerdp",
        },
    }


def test_put_config_partial_update(client):
    response = client.put("/api/config", json={"server": {"port": 9000}})
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["server"]["port"] == 9000
    assert data["clients"]["rdp_viewer"] == "xfreerdp"


@pytest.mark.parametrize("port", [0, 70000])
def test_put_config_rejects_bad_port(client, port):
    response = client.put("/api/config", json={"server": {"port": port}})
    assert response.status_code == 400
    assert client.get("/api/config").get_json()["data"]["server"]["port"] == 8080


def test_put_config_rejects_dangling_auto_start(client):
    response = client.put("/api/config", json={"connection": {"auto_start": True, "auto_start_id": "pcX"}})
    assert response.status_code == 400


def test_put_config_rejects_non_object_section(client):
    response = client.put("/api/config", json={"server": 9000})
    assert response.status_code == 400


def test_connect_and_status(client, launcher):
    device_id = _add(client).get_json()["data"]["id"]

    response = client.post(f"/connect/{device_id}")

    assert response.status_code == 200
    assert response.get_json()["data"] == {"current_device": device_id}
    assert client.get("/api/status").get_json()["data"] == {"current_device": device_id}
    assert len(launcher.running()) == 1


def test_connect_unknown_device(client):
    assert client.post("/connect/missing").status_code == 404


def test_connect_unsupported_protocol(client):
    device_id = _add(client, protocol="telnet").get_json()["data"]["id"]
    response = client.post(f"/connect/{device_id}")
    assert response.status_code == 400
    assert "telnet" in response.get_json()["error"]


def test_connect_launch_failure(client, launcher):
    device_id = _add(client).get_json()["data"]["id"]
    launcher.fail_with = FileNotFoundError("vncviewer")

    response = client.post(f"/connect/{device_id}")

    assert response.status_code == 500
    assert response.get_json()["success"] is False
    assert client.get("/api/status").get_json()["data"] == {"current_device": None}


def test_disconnect_is_idempotent(client):
    assert client.post("/disconnect").get_json() == {"success": True}
    assert client.post("/disconnect").get_json() == {"success": True}


def test_connect_requires_post(client):
    response = client.get("/connect/pc2")
    assert response.status_code == 405
    assert response.get_json() == {"success": False, "error": "Method not allowed"}


def test_cors_headers_present(client):
    response = client.get("/api/devices")
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert "PUT" in response.headers["Access-Control-Allow-Methods"]


def test_options_preflight(client):
    response = client.options("/api/devices")
    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_socketio_pushes_connection_status(server, client):
    sio = server.socketio.test_client(server.app)
    received = sio.get_received()
    names = [event["name"] for event in received]
    assert "connected" in names
    assert {"name": "connection_status", "args": [{"device_id": None}], "namespace": "/"} in received

    device_id = _add(client).get_json()["data"]["id"]
    client.post(f"/connect/{device_id}")
    client.post("/disconnect")

    statuses = [event["args"][0]["device_id"] for event in sio.get_received()
                if event["name"] == "connection_status"]
    assert statuses == [device_id, None]
    sio.disconnect()
