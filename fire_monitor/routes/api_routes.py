"""
API Routes for Fire Safety Monitor Dashboard
Handles the setup steps and live reading endpoints
"""

import logging

from flask import jsonify, render_template, request

from ..provisioning import ValidationError

logger = logging.getLogger(__name__)


def _request_data():
    """Accept both JSON bodies and HTML form posts"""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form


def _field(data, name):
    value = data.get(name)
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def register_routes(app, screen):
    """
    Register all Flask routes for the dashboard

    Args:
        app: Flask application instance
        screen: MonitorScreen holding the flow state
    """

    @app.route("/")
    def index():
        """Serve the dashboard page"""
        return render_template("index.html", state=screen.snapshot())

    @app.route("/api/status")
    def get_status():
        """Return the full screen state"""
        return jsonify(screen.snapshot())

    @app.route("/api/reading")
    def get_reading():
        """Return the latest reading and derived alert"""
        state = screen.snapshot()
        return jsonify({
            "data_loaded": state["data_loaded"],
            "reading": state["reading"],
            "alert": state["alert"],
            "connection_lost": state["connection_lost"],
            "decode_error": state["decode_error"],
        })

    @app.route("/api/provision", methods=["POST"])
    def provision():
        """Send Wi-Fi credentials and threshold to the device"""
        data = _request_data()
        try:
            screen.submit_provisioning(
                _field(data, "address"),
                _field(data, "ssid"),
                _field(data, "password"),
                _field(data, "threshold"),
            )
        except ValidationError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify(screen.snapshot())

    @app.route("/api/provision/cancel", methods=["POST"])
    def cancel_provision():
        screen.cancel_provisioning()
        return jsonify(screen.snapshot())

    @app.route("/api/wifi", methods=["POST"])
    def connect_wifi():
        """Record the phone Wi-Fi and start receiving readings"""
        data = _request_data()
        try:
            screen.connect_wifi(_field(data, "ssid"), _field(data, "password"))
        except ValidationError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify(screen.snapshot())

    @app.route("/api/wifi/disconnect", methods=["POST"])
    def disconnect_wifi():
        screen.disconnect_wifi()
        return jsonify(screen.snapshot())
