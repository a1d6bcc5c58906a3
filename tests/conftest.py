"""Pytest configuration and fixtures for Fire Safety Monitor tests."""

from unittest.mock import MagicMock, patch

import pytest

from fire_monitor.app import create_app
from fire_monitor.config import Config
from fire_monitor.screen import MonitorScreen


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def mock_websocket():
    """Patch WebSocketApp and the timeout timer so no socket or timer is created."""
    with patch("fire_monitor.provisioning.websocket.WebSocketApp") as ws_app_class, \
         patch("fire_monitor.provisioning.threading.Timer") as timer_class:
        ws_app = MagicMock()
        ws_app_class.return_value = ws_app
        ws_app_class.timer_class = timer_class
        yield ws_app_class


@pytest.fixture
def subscriber_factory():
    """Factory returning a MagicMock subscriber, keeping the callbacks it was given."""
    factory = MagicMock()
    factory.return_value = MagicMock()
    return factory


@pytest.fixture
def screen(config, mock_websocket, subscriber_factory) -> MonitorScreen:
    return MonitorScreen(config, subscriber_factory=subscriber_factory)


@pytest.fixture
def client(config, screen):
    app = create_app(config, screen)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def sample_payload() -> bytes:
    return b'{"temperature": 24.5, "gasValue": 310, "flameAlert": false, "gasAlert": false, "tempAlert": false}'
