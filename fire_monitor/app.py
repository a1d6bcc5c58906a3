"""
Flask Dashboard for Home Fire Safety Monitor

Step 1 provisions the ESP32 over ws://<device-ip>:81
Step 2 records the phone Wi-Fi
Step 3 subscribes to the cloud telemetry topic and shows live readings
"""

import logging
from typing import Optional

from flask import Flask

from .config import Config, load_config
from .routes.api_routes import register_routes
from .screen import MonitorScreen

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def create_app(config: Optional[Config] = None, screen: Optional[MonitorScreen] = None) -> Flask:
    """
    Build the dashboard application

    Nothing connects until the user submits the setup forms.

    Args:
        config: Loaded configuration; defaults are used if None
        screen: Screen state to serve; a new MonitorScreen if None
    """
    if config is None:
        config = Config()
    if screen is None:
        screen = MonitorScreen(config)

    app = Flask(__name__)
    register_routes(app, screen)
    return app


def main():
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    config = load_config()
    logging.getLogger().setLevel(config.logging.log_level.upper())

    screen = MonitorScreen(config)
    app = create_app(config, screen)

    logger.info("=" * 50)
    logger.info("Home Fire Safety Monitor")
    logger.info(f"Telemetry topic: {config.mqtt.topic} @ {config.mqtt.endpoint}")
    logger.info("=" * 50)

    try:
        # debug=False so the reloader does not start network clients twice
        app.run(host=config.dashboard.host, port=config.dashboard.port, debug=False)
    finally:
        screen.close()


if __name__ == "__main__":
    main()
