"""
MQTT Client Module for Fire Safety Monitor
Handles the cloud connection, the telemetry subscription and message decoding
"""

import logging
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from ..config import MqttConfig
from ..telemetry_parser import SensorReading, TelemetryDecodeError, parse_telemetry

logger = logging.getLogger(__name__)


class SubscriptionError(Exception):
    """The telemetry subscription failed or the broker connection dropped"""


class TelemetrySubscriber:
    """Owns exactly one subscription to the telemetry topic; never reconnects on its own"""

    def __init__(self, config: MqttConfig,
                 on_reading: Callable[[SensorReading, bool], None],
                 on_error: Callable[[SubscriptionError], None],
                 on_decode_error: Optional[Callable[[TelemetryDecodeError], None]] = None):
        """
        Initialize telemetry subscriber

        Args:
            config: Broker endpoint, topic and TLS settings
            on_reading: Called with (reading, alert) for every decoded message
            on_error: Called once when the subscription is lost
            on_decode_error: Called when a message payload is not a JSON object
        """
        self.config = config
        self.on_reading = on_reading
        self.on_error = on_error
        self.on_decode_error = on_decode_error

        self.subscribed = False
        self._started = False
        self._stopping = False
        self._failed = False

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            transport=config.transport,
        )
        self.client.on_connect = self._on_connect
        self.client.on_connect_fail = self._on_connect_fail
        self.client.on_disconnect = self._on_disconnect
        self.client.on_subscribe = self._on_subscribe
        self.client.on_message = self._on_message

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Called when connected to MQTT broker"""
        if reason_code.is_failure:
            self._fail(f"Broker refused connection: {reason_code}")
            return

        logger.info(f"[MQTT] Connected to {self.config.endpoint} ({reason_code})")
        client.subscribe(self.config.topic, qos=self.config.qos)

    def _on_connect_fail(self, client, userdata):
        self._fail(f"Could not reach broker {self.config.endpoint}:{self.config.port}")

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties):
        if any(rc.is_failure for rc in reason_code_list):
            self._fail(f"Subscription to {self.config.topic} rejected: {reason_code_list}")
            return

        self.subscribed = True
        logger.info(f"[MQTT] Subscribed to {self.config.topic}")

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        """Called when disconnected from MQTT broker"""
        self.subscribed = False
        if self._stopping:
            logger.info("[MQTT] Disconnected")
            return
        self._fail(f"Connection lost: {reason_code}")

    def _on_message(self, client, userdata, msg):
        """Process incoming telemetry"""
        if self._stopping:
            return

        logger.debug(f"[MQTT] Message on {msg.topic}: {msg.payload!r}")
        try:
            reading, alert = parse_telemetry(msg.payload)
        except TelemetryDecodeError as e:
            logger.warning(f"Malformed telemetry dropped: {e}")
            if self.on_decode_error is not None:
                self.on_decode_error(e)
            return

        logger.info(
            f"Telemetry | Temp={reading.temperature} Gas={reading.gas_value} "
            f"Flame={reading.flame_alert} Alert={alert}"
        )
        self.on_reading(reading, alert)

    def _fail(self, message: str):
        if self._stopping or self._failed:
            return
        self._failed = True
        self.subscribed = False
        logger.error(f"[MQTT] {message}")

        # Stop paho's own reconnect loop; a new subscription needs a user action
        self._stopping = True
        self.client.disconnect()
        self.on_error(SubscriptionError(message))

    def start(self):
        """Connect and subscribe in background thread"""
        if self._started:
            return
        self._started = True

        try:
            if self.config.use_tls:
                self.client.tls_set(
                    ca_certs=self.config.ca_certs,
                    certfile=self.config.certfile,
                    keyfile=self.config.keyfile,
                )
            self.client.connect_async(self.config.endpoint, self.config.port, self.config.keepalive)
            self.client.loop_start()
            logger.info("[MQTT] Client started")
        except (OSError, ValueError) as e:
            self._fail(f"Connection failed: {e}")

    def stop(self):
        """Unsubscribe and disconnect; safe to call more than once"""
        if not self._started:
            return
        self._started = False
        self._stopping = True

        if self.subscribed:
            self.client.unsubscribe(self.config.topic)
            self.subscribed = False
        self.client.disconnect()
        self.client.loop_stop()
        logger.info("[MQTT] Client stopped")

    @property
    def failed(self) -> bool:
        return self._failed

    def __repr__(self) -> str:
        return f"TelemetrySubscriber(endpoint={self.config.endpoint!r}, topic={self.config.topic!r})"
