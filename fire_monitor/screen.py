"""
Monitor Screen State for Fire Safety Monitor
Three-step flow: provision the sensor, enter Wi-Fi, watch live readings
"""

import enum
import logging
import threading
from typing import Any, Callable, Dict, Optional

from .config import Config
from .mqtt.mqtt_client import SubscriptionError, TelemetrySubscriber
from .provisioning import (
    ProvisioningSession,
    SessionState,
    ValidationError,
    validate_credentials,
)
from .telemetry_parser import SensorReading, TelemetryDecodeError

logger = logging.getLogger(__name__)

MSG_CHECK_OLED = "Please check the device OLED to confirm set up is successfully"
MSG_PROVISION_FAILED = "Could not configure the device. Check the IP address and try again."
MSG_PROVISION_TIMEOUT = "The device did not respond in time. Check the IP address and try again."
MSG_WIFI_MISSING = "Please enter Wi-Fi SSID and password."
MSG_CONNECTION_LOST = "Connection lost. Please reconnect."
MSG_DECODE_ERROR = "Received an unreadable sensor message."
MSG_RISK = "Risk detected"


class Stage(enum.Enum):
    PROVISIONING = "provisioning"
    WIFI_SETUP = "wifi_setup"
    MONITORING = "monitoring"


class MonitorScreen:
    """
    State behind the dashboard page

    Network callbacks arrive on the WebSocket and paho threads, so every
    mutation happens under one lock. At most one provisioning session and
    one telemetry subscriber are alive at a time.
    """

    def __init__(self, config: Config,
                 session_factory: Optional[Callable[..., ProvisioningSession]] = None,
                 subscriber_factory: Optional[Callable[..., TelemetrySubscriber]] = None):
        self.config = config
        self.session_factory = session_factory or ProvisioningSession
        self.subscriber_factory = subscriber_factory or TelemetrySubscriber

        self._lock = threading.RLock()

        self.stage = Stage.PROVISIONING
        self.is_flashing = False
        self.flashed = False
        self.wifi_connected = False
        self.wifi_ssid: Optional[str] = None

        self.data_loaded = False
        self.reading = SensorReading()
        self.alert = False
        self.connection_lost: Optional[str] = None
        self.decode_error: Optional[str] = None
        self.notice: Optional[str] = None

        self._session: Optional[ProvisioningSession] = None
        self._subscriber: Optional[TelemetrySubscriber] = None

    # ============== Step 1: provisioning ==============

    def submit_provisioning(self, target_address: str, device_ssid: str,
                            device_password: str, temperature_threshold: str) -> ProvisioningSession:
        """
        Validate input and start a new provisioning session

        Raises:
            ValidationError: Input rejected; no connection is opened
        """
        credentials = validate_credentials(
            target_address.strip(), device_ssid, device_password, temperature_threshold
        )

        with self._lock:
            if self.stage is not Stage.PROVISIONING:
                raise ValidationError("The device is already set up.")

            previous = self._session
            session = self.session_factory(
                credentials,
                port=self.config.provisioning.port,
                timeout_seconds=self.config.provisioning.timeout_seconds,
                on_state_change=self._on_session_state,
            )
            self._session = session
            self.is_flashing = True
            self.flashed = False
            self.notice = None

        if previous is not None and previous.is_active:
            previous.cancel("superseded")

        session.start()
        return session

    def cancel_provisioning(self):
        """Give up on a session stuck in Configuring"""
        with self._lock:
            session = self._session
        if session is not None:
            session.cancel("cancelled")

    def _on_session_state(self, session: ProvisioningSession, state: SessionState):
        with self._lock:
            # Superseded sessions may still report; only the current one counts
            if session is not self._session:
                return

            if state is SessionState.CLOSED_SUCCESS:
                self.is_flashing = False
                self.flashed = True
                self.stage = Stage.WIFI_SETUP
                self.notice = MSG_CHECK_OLED
                self._session = None
            elif state is SessionState.CLOSED_ERROR:
                self.is_flashing = False
                self.flashed = False
                self.stage = Stage.PROVISIONING
                if session.error == "timeout":
                    self.notice = MSG_PROVISION_TIMEOUT
                elif session.error == "cancelled":
                    self.notice = None
                else:
                    self.notice = MSG_PROVISION_FAILED
                self._session = None

    # ============== Step 2: phone Wi-Fi ==============

    def connect_wifi(self, ssid: str, password: str):
        """
        Record that the phone is on Wi-Fi and start the telemetry subscription

        The credentials are not used to join a network.
        """
        if not ssid or not password:
            raise ValidationError(MSG_WIFI_MISSING)

        with self._lock:
            if self.stage is Stage.PROVISIONING:
                raise ValidationError("Set up the device first.")
            if self.wifi_connected:
                return

            self.wifi_connected = True
            self.wifi_ssid = ssid
            self.stage = Stage.MONITORING
            self.notice = None
            self._reset_readings()

            subscriber = self.subscriber_factory(
                self.config.mqtt,
                on_reading=self.handle_reading,
                on_error=self.handle_subscription_error,
                on_decode_error=self.handle_decode_error,
            )
            self._subscriber = subscriber

        subscriber.start()

    def disconnect_wifi(self):
        """Revoke the Wi-Fi assertion; tears the subscription down"""
        with self._lock:
            if not self.wifi_connected:
                return
            self.wifi_connected = False
            self.wifi_ssid = None
            self.stage = Stage.WIFI_SETUP
            subscriber = self._subscriber
            self._subscriber = None

        if subscriber is not None:
            subscriber.stop()

    def close(self):
        """Screen teardown: release the subscription and any open session"""
        with self._lock:
            subscriber = self._subscriber
            self._subscriber = None
            session = self._session
            self._session = None

        if subscriber is not None:
            subscriber.stop()
        if session is not None:
            session.cancel("closed")

    # ============== Step 3: live readings ==============

    def handle_reading(self, reading: SensorReading, alert: bool):
        with self._lock:
            if not self.wifi_connected:
                return
            self.reading = reading
            self.alert = alert
            self.data_loaded = True
            self.decode_error = None
            self.notice = MSG_RISK if alert else None

        if alert:
            logger.warning(f"Risk detected: {reading}")

    def handle_subscription_error(self, error: SubscriptionError):
        with self._lock:
            self.connection_lost = str(error) or MSG_CONNECTION_LOST
        logger.error(f"Telemetry subscription lost: {error}")

    def handle_decode_error(self, error: TelemetryDecodeError):
        with self._lock:
            self.decode_error = str(error)

    def _reset_readings(self):
        self.data_loaded = False
        self.reading = SensorReading()
        self.alert = False
        self.connection_lost = None
        self.decode_error = None

    def snapshot(self) -> Dict[str, Any]:
        """Return a JSON-ready copy of the screen state"""
        with self._lock:
            return {
                "stage": self.stage.value,
                "is_flashing": self.is_flashing,
                "flashed": self.flashed,
                "wifi_connected": self.wifi_connected,
                "wifi_ssid": self.wifi_ssid,
                "data_loaded": self.data_loaded,
                "reading": self.reading.to_dict(),
                "alert": self.alert,
                "connection_lost": self.connection_lost is not None,
                "connection_error": self.connection_lost,
                "connection_message": MSG_CONNECTION_LOST if self.connection_lost else None,
                "decode_error": self.decode_error is not None,
                "decode_message": MSG_DECODE_ERROR if self.decode_error else None,
                "notice": self.notice,
            }
