"""
Heimdall Web Server - HTTP API and Browser UI

This is a thin web layer that:
1. Serves the HTML/CSS/JS control panel to browsers
2. Maps the JSON API onto ControlPanel operations
3. Pushes connection status changes via Socket.IO
4. Does NOT contain business logic
"""

import logging
import time
from typing import Any, Dict, Optional, Tuple

from flask import Flask, Response, g, jsonify, render_template_string, request
from flask_socketio import SocketIO, emit

from .control import ControlPanel
from .errors import (
    DuplicateIDError,
    HeimdallError,
    NotFoundError,
    UnsupportedProtocolError,
    ValidationError,
)
from .logging_setup import format_request_line, use_color
from .models import Device, Settings

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("heimdall.access")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS, PUT, DELETE",
    "Access-Control-Allow-Headers": "Accept, Content-Type, Content-Length, Accept-Encoding",
}


def status_for(error: HeimdallError) -> int:
    """HTTP status code for a control panel error."""
    if isinstance(error, DuplicateIDError):
        return 409
    if isinstance(error, (ValidationError, UnsupportedProtocolError)):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    return 500


def ok(data: Any = None, status: int = 200) -> Tuple[Response, int]:
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    return jsonify(body), status


def fail(message: str, status: int) -> Tuple[Response, int]:
    return jsonify({"success": False, "error": message}), status


def settings_view(settings: Settings) -> Dict[str, Any]:
    """Nested settings shape used by the API and the browser UI."""
    return {
        "server": {"port": settings.listen_port},
        "connection": {
            "auto_start": settings.auto_start,
            "auto_start_id": settings.auto_start_id,
        },
        "clients": {
            "vnc_viewer": settings.vnc_viewer,
            "vnc_password_file": settings.vnc_password_file,
            "rdp_viewer": settings.rdp_viewer,
        },
    }


def merge_settings(current: Settings, update: Dict[str, Any]) -> Settings:
    """Apply a (possibly partial) nested settings update on top of `current`."""
    flat = current.to_dict()
    sections = {
        "server": {"port": "listen_port"},
        "connection": {"auto_start": "auto_start", "auto_start_id": "auto_start_id"},
        "clients": {
            "vnc_viewer": "vnc_viewer",
            "vnc_password_file": "vnc_password_file",
            "rdp_viewer": "rdp_viewer",
        },
    }
    for section, fields in sections.items():
        values = update.get(section)
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValidationError(f"{section} must be a JSON object")
        for key, target in fields.items():
            if key in values:
                flat[target] = values[key]
    return Settings.from_dict(flat)


class HeimdallServer:
    """
    Web server for one ControlPanel.

    `setup_flask_app()` builds the Flask app and Socket.IO server; `run()`
    serves them and tears down the active viewer on the way out.
    """

    def __init__(self, panel: ControlPanel, host: str = "127.0.0.1", port: Optional[int] = None,
                 color: bool = True):
        self.panel = panel
        self.host = host
        self.port = port
        self.app: Optional[Flask] = None
        self.socketio: Optional[SocketIO] = None
        self.running = False
        self.color_logs = use_color(color)

    def setup_flask_app(self) -> Flask:
        """Initialize Flask app and SocketIO."""
        self.app = Flask(__name__)
        self.app.config['SECRET_KEY'] = 'heimdall'
        self.socketio = SocketIO(self.app, cors_allowed_origins="*", async_mode="threading")

        self.panel.supervisor.add_listener(self._broadcast_status)

        self._register_hooks()
        self._register_device_routes()
        self._register_config_routes()
        self._register_connection_routes()
        self._register_socket_events()
        return self.app

    # ---------- hooks & errors ----------

    def _register_hooks(self):
        app = self.app

        @app.before_request
        def start_timer():
            g.start_time = time.perf_counter()

        @app.after_request
        def finish_request(response):
            for key, value in CORS_HEADERS.items():
                response.headers[key] = value
            started = g.get("start_time")
            duration_ms = (time.perf_counter() - started) * 1000 if started else 0.0
            access_logger.info(format_request_line(
                request.method, request.path, response.status_code, duration_ms, color=self.color_logs
            ))
            return response

        @app.errorhandler(HeimdallError)
        def handle_heimdall_error(e):
            status = status_for(e)
            if status >= 500:
                logger.error(f"{request.method} {request.path} failed: {e}")
            return fail(str(e), status)

        @app.errorhandler(404)
        def handle_not_found(e):
            return fail("Not found", 404)

        @app.errorhandler(405)
        def handle_method_not_allowed(e):
            return fail("Method not allowed", 405)

    def _json_body(self) -> Dict[str, Any]:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Invalid request payload")
        return data

    # ---------- routes ----------

    def _register_device_routes(self):
        app = self.app

        @app.route('/')
        def index():
            return render_template_string(WEB_UI_HTML_TEMPLATE)

        @app.route('/api/devices', methods=['GET'])
        def api_list_devices():
            return ok([device.to_dict() for device in self.panel.list_devices()])

        @app.route('/api/devices', methods=['POST'])
        def api_add_device():
            device = Device.from_dict(self._json_body())
            added = self.panel.add_device(device)
            return ok(added.to_dict(), 201)

        @app.route('/api/devices/<device_id>', methods=['GET'])
        def api_get_device(device_id):
            return ok(self.panel.get_device(device_id).to_dict())

        @app.route('/api/devices/<device_id>', methods=['PUT'])
        def api_update_device(device_id):
            device = Device.from_dict(self._json_body(), device_id=device_id)
            return ok(self.panel.update_device(device).to_dict())

        @app.route('/api/devices/<device_id>', methods=['DELETE'])
        def api_delete_device(device_id):
            self.panel.delete_device(device_id)
            return ok()

    def _register_config_routes(self):
        app = self.app

        @app.route('/api/config', methods=['GET'])
        def api_get_config():
            return ok(settings_view(self.panel.get_settings()))

        @app.route('/api/config', methods=['PUT'])
        def api_update_config():
            settings = merge_settings(self.panel.get_settings(), self._json_body())
            return ok(settings_view(self.panel.update_settings(settings)))

    def _register_connection_routes(self):
        app = self.app

        @app.route('/connect/<device_id>', methods=['POST'])
        def api_connect(device_id):
            device = self.panel.connect(device_id)
            return ok({"current_device": device.id})

        @app.route('/disconnect', methods=['POST'])
        def api_disconnect():
            self.panel.disconnect()
            return ok()

        @app.route('/api/status', methods=['GET'])
        def api_get_status():
            return ok(self.panel.status())

    # ---------- Socket.IO ----------

    def _register_socket_events(self):
        @self.socketio.on('connect')
        def handle_connect():
            logger.info("Client connected to Heimdall UI")
            emit('connected', {'status': 'Connected to Heimdall'})
            emit('connection_status', {'device_id': self.panel.current_device()})

        @self.socketio.on('disconnect')
        def handle_disconnect(*args):
            logger.info("Client disconnected from Heimdall UI")

    def _broadcast_status(self, device_id: Optional[str]):
        if self.socketio is not None:
            self.socketio.emit('connection_status', {'device_id': device_id})

    # ---------- lifecycle ----------

    def run(self):
        """Start the web server. Blocks until the server stops."""
        if self.running:
            logger.warning("Heimdall server is already running")
            return

        if self.app is None:
            self.setup_flask_app()

        port = self.port or self.panel.get_settings().listen_port
        logger.info(f"Starting Heimdall on port {port}")
        self.panel.auto_start()

        try:
            self.running = True
            logger.info(f"🌐 Access at: http://{self.host}:{port}")
            self.socketio.run(self.app, host=self.host, port=port, debug=False,
                              allow_unsafe_werkzeug=True)
        except Exception as e:
            logger.error(f"Failed to start Heimdall server: {e}")
            raise
        finally:
            self.running = False
            self.panel.shutdown()


# HTML Template - device list with connect/disconnect controls
WEB_UI_HTML_TEMPLATE = '''
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Heimdall</title>
    <script src="https://cdnjs.cloudflare.com/ajax/libs/socket.io/4.0.1/socket.io.js"></script>
    <style>
        * {
            margin: 0;
            padding: 0;
            box-sizing: border-box;
        }

        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
            min-height: 100vh;
            display: flex;
            align-items: center;
            justify-content: center;
            color: #333;
        }

        .container {
            background: white;
            border-radius: 20px;
            box-shadow: 0 20px 40px rgba(0,0,0,0.1);
            padding: 40px;
            max-width: 900px;
            width: 90%;
        }

        h1 {
            color: #4a5568;
            margin-bottom: 10px;
            font-size: 2.5em;
            font-weight: 300;
            text-align: center;
        }

        .status-display {
            margin: 20px 0;
            padding: 20px;
            background: #f7fafc;
            border-radius: 10px;
            border-left: 4px solid #667eea;
        }

        .btn {
            background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
            color: white;
            border: none;
            padding: 8px 20px;
            border-radius: 50px;
            cursor: pointer;
            transition: all 0.3s ease;
        }

        .btn:hover {
            transform: translateY(-2px);
            box-shadow: 0 10px 20px rgba(0,0,0,0.2);
        }

        .btn.stop {
            background: linear-gradient(135deg, #fc8181 0%, #f56565 100%);
        }

        table {
            width: 100%;
            border-collapse: collapse;
            margin: 20px 0;
        }

        th, td {
            text-align: left;
            padding: 10px;
            border-bottom: 1px solid #e2e8f0;
        }

        tr.active {
            background: #ebf4ff;
        }

        form {
            display: grid;
            grid-template-columns: repeat(3, 1fr);
            gap: 10px;
        }

        input, select {
            padding: 8px;
            border: 1px solid #e2e8f0;
            border-radius: 5px;
        }

        .error {
            color: #e53e3e;
            margin: 10px 0;
            min-height: 1.2em;
        }
    </style>
</head>
<body>
    <div class="container">
        <h1>Heimdall</h1>
        <div class="status-display">
            <span id="status">Not connected</span>
            <button class="btn stop" onclick="disconnectDevice()">Disconnect</button>
        </div>
        <div class="error" id="error"></div>
        <table>
            <thead>
                <tr><th>Name</th><th>Address</th><th>Protocol</th><th></th></tr>
            </thead>
            <tbody id="devices"></tbody>
        </table>
        <form id="add-form" onsubmit="addDevice(event)">
            <input name="name" placeholder="Name" required>
            <input name="ip_address" placeholder="IP address" required>
            <select name="protocol">
                <option value="vnc">VNC</option>
                <option value="rdp">RDP</option>
            </select>
            <input name="port" type="number" placeholder="Port (0 = default)" min="0" max="65535">
            <input name="username" placeholder="Username">
            <label><input name="full_screen" type="checkbox"> Full screen</label>
            <button class="btn" type="submit">Add Device</button>
        </form>
    </div>

    <script>
        let currentDevice = null;
        let devices = [];

        async function call(method, url, body) {
            const response = await fetch(url, {
                method: method,
                headers: {'Content-Type': 'application/json'},
                body: body ? JSON.stringify(body) : null
            });
            const json = await response.json();
            if (!json.success) {
                throw new Error(json.error || 'Request failed');
            }
            return json.data;
        }

        function showError(err) {
            document.getElementById('error').textContent = err ? err.message : '';
        }

        function render() {
            const tbody = document.getElementById('devices');
            tbody.innerHTML = '';
            for (const device of devices) {
                const row = document.createElement('tr');
                if (device.id === currentDevice) {
                    row.className = 'active';
                }
                const address = device.port ? `${device.ip_address}:${device.port}` : device.ip_address;
                for (const text of [device.name, address, String(device.protocol).toUpperCase(), '']) {
                    const cell = document.createElement('td');
                    cell.textContent = text;
                    row.appendChild(cell);
                }
                const connectBtn = document.createElement('button');
                connectBtn.className = 'btn';
                connectBtn.textContent = 'Connect';
                connectBtn.onclick = () => connectDevice(device.id);
                const deleteBtn = document.createElement('button');
                deleteBtn.className = 'btn stop';
                deleteBtn.textContent = 'Delete';
                deleteBtn.onclick = () => deleteDevice(device.id);
                row.cells[3].append(connectBtn, ' ', deleteBtn);
                tbody.appendChild(row);
            }
            const active = devices.find(d => d.id === currentDevice);
            document.getElementById('status').textContent =
                active ? `Connected to ${active.name}` : 'Not connected';
        }

        async function loadDevices() {
            try {
                devices = await call('GET', '/api/devices');
                render();
            } catch (err) {
                showError(err);
            }
        }

        async function connectDevice(id) {
            try {
                showError(null);
                await call('POST', `/connect/${encodeURIComponent(id)}`);
            } catch (err) {
                showError(err);
            }
        }

        async function disconnectDevice() {
            try {
                showError(null);
                await call('POST', '/disconnect');
            } catch (err) {
                showError(err);
            }
        }

        async function deleteDevice(id) {
            try {
                showError(null);
                await call('DELETE', `/api/devices/${encodeURIComponent(id)}`);
                await loadDevices();
            } catch (err) {
                showError(err);
            }
        }

        async function addDevice(event) {
            event.preventDefault();
            const form = event.target;
            const device = {
                name: form.name.value,
                ip_address: form.ip_address.value,
                protocol: form.protocol.value,
                port: parseInt(form.port.value || '0', 10),
                username: form.username.value,
                full_screen: form.full_screen.checked
            };
            try {
                showError(null);
                await call('POST', '/api/devices', device);
                form.reset();
                await loadDevices();
            } catch (err) {
                showError(err);
            }
        }

        const socket = io();
        socket.on('connection_status', (data) => {
            currentDevice = data.device_id;
            render();
        });

        loadDevices();
    </script>
</body>
</html>
'''
