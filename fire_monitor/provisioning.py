"""
Provisioning Module for Fire Safety Monitor
Sends Wi-Fi credentials and the buzzer temperature threshold to the ESP32
over its local WebSocket (port 81) while it runs as an access point
"""

import enum
import json
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import websocket

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_PORT = 81
DEFAULT_TIMEOUT_SECONDS = 15.0

THRESHOLD_MIN = 0
THRESHOLD_MAX = 100

MSG_MISSING_FIELDS = "Please enter connection IP, SSID, password and sensor alert."
MSG_THRESHOLD_RANGE = "Temperature threshold must be between 0 and 100."


class ValidationError(ValueError):
    """User input rejected before any network action"""


class SessionState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONFIGURING = "configuring"
    CLOSED_SUCCESS = "closed_success"
    CLOSED_ERROR = "closed_error"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.CLOSED_SUCCESS, SessionState.CLOSED_ERROR)


# Allowed transitions; terminal states accept nothing
_TRANSITIONS = {
    SessionState.IDLE: {SessionState.CONNECTING, SessionState.CLOSED_ERROR},
    SessionState.CONNECTING: {
        SessionState.CONFIGURING,
        SessionState.CLOSED_SUCCESS,
        SessionState.CLOSED_ERROR,
    },
    SessionState.CONFIGURING: {SessionState.CLOSED_SUCCESS, SessionState.CLOSED_ERROR},
    SessionState.CLOSED_SUCCESS: set(),
    SessionState.CLOSED_ERROR: set(),
}


@dataclass(frozen=True)
class ProvisioningCredentials:
    """What the device needs to join Wi-Fi; never persisted"""
    target_address: str
    device_ssid: str
    device_password: str
    temperature_threshold: str

    def __repr__(self) -> str:
        return (
            f"ProvisioningCredentials(target_address={self.target_address!r}, "
            f"device_ssid={self.device_ssid!r}, device_password='***', "
            f"temperature_threshold={self.temperature_threshold!r})"
        )


def filter_threshold_input(text: str) -> str:
    """Strip everything but digits from threshold input"""
    return "".join(ch for ch in text if ch in "0123456789")


def validate_credentials(target_address: str, device_ssid: str,
                         device_password: str, temperature_threshold: str) -> ProvisioningCredentials:
    """
    Validate provisioning input

    Args:
        target_address: Device IP address shown on its OLED
        device_ssid: Wi-Fi network the device should join
        device_password: Password for that network
        temperature_threshold: Buzzer threshold in degrees C, digits only

    Returns:
        Validated credentials

    Raises:
        ValidationError: If a field is empty or the threshold is not an integer in [0, 100]
    """
    if not target_address or not device_ssid or not device_password or not temperature_threshold:
        raise ValidationError(MSG_MISSING_FIELDS)

    if filter_threshold_input(temperature_threshold) != temperature_threshold:
        raise ValidationError(MSG_THRESHOLD_RANGE)

    threshold = int(temperature_threshold)
    if threshold < THRESHOLD_MIN or threshold > THRESHOLD_MAX:
        raise ValidationError(MSG_THRESHOLD_RANGE)

    return ProvisioningCredentials(
        target_address=target_address,
        device_ssid=device_ssid,
        device_password=device_password,
        temperature_threshold=temperature_threshold,
    )


def build_provisioning_payload(credentials: ProvisioningCredentials) -> str:
    """Build the JSON message the firmware expects; tempThre stays a string"""
    return json.dumps({
        "ssid": credentials.device_ssid,
        "password": credentials.device_password,
        "tempThre": credentials.temperature_threshold,
    })


class ProvisioningSession:
    """
    A single connection attempt to a device awaiting configuration

    The device closes the socket after applying the credentials and shows
    the result on its OLED, so close is the only success signal available.
    State only moves forward; events arriving after a terminal state are ignored.
    """

    def __init__(self, credentials: ProvisioningCredentials,
                 port: int = DEFAULT_DEVICE_PORT,
                 timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
                 on_state_change: Optional[Callable[["ProvisioningSession", SessionState], None]] = None):
        self.credentials = credentials
        self.port = port
        self.timeout_seconds = timeout_seconds
        self.on_state_change = on_state_change

        self.state = SessionState.IDLE
        self.error: Optional[str] = None
        self.payload_sent = False

        self._lock = threading.Lock()
        self._ws: Optional[websocket.WebSocketApp] = None
        self._thread: Optional[threading.Thread] = None
        self._timer: Optional[threading.Timer] = None

    @property
    def url(self) -> str:
        return f"ws://{self.credentials.target_address}:{self.port}"

    @property
    def is_active(self) -> bool:
        return self.state in (SessionState.CONNECTING, SessionState.CONFIGURING)

    def start(self):
        """Open the connection in a background thread"""
        if not self._transition(SessionState.CONNECTING):
            raise RuntimeError(f"Session cannot start from state {self.state.value}")

        logger.info(f"[PROVISION] Connecting to {self.url}")
        self._ws = websocket.WebSocketApp(
            self.url,
            on_open=self._on_open,
            on_close=self._on_close,
            on_error=self._on_error,
        )

        self._timer = threading.Timer(self.timeout_seconds, self._on_timeout)
        self._timer.daemon = True
        self._timer.start()

        self._thread = threading.Thread(
            target=self._ws.run_forever,
            name="provisioning-ws",
            daemon=True,
        )
        self._thread.start()

    def cancel(self, reason: str = "cancelled"):
        """Explicitly close the connection and end the session as failed"""
        if self._transition(SessionState.CLOSED_ERROR, reason):
            logger.info(f"[PROVISION] Session to {self.url} {reason}")
            self._close_socket()

    def _on_open(self, ws):
        payload = build_provisioning_payload(self.credentials)
        try:
            ws.send(payload)
        except (websocket.WebSocketException, OSError) as e:
            logger.error(f"[PROVISION] Failed to send credentials: {e}")
            self._fail(str(e))
            return

        self.payload_sent = True
        if self._transition(SessionState.CONFIGURING):
            logger.info(
                f"[PROVISION] Credentials sent to {self.url} "
                f"(ssid={self.credentials.device_ssid}, tempThre={self.credentials.temperature_threshold})"
            )

    def _on_close(self, ws, close_status_code, close_msg):
        if self._transition(SessionState.CLOSED_SUCCESS):
            logger.info(
                f"[PROVISION] Device closed connection (code={close_status_code}, "
                f"sent={self.payload_sent})"
            )

    def _on_error(self, ws, error):
        # websocket-client reports the device closing the socket as an error before on_close
        if isinstance(error, websocket.WebSocketConnectionClosedException):
            self._on_close(ws, None, str(error))
            return

        logger.warning(f"[PROVISION] WebSocket error: {error}")
        self._fail(str(error) or error.__class__.__name__)

    def _on_timeout(self):
        if self._transition(SessionState.CLOSED_ERROR, "timeout"):
            logger.warning(
                f"[PROVISION] No response from {self.url} after {self.timeout_seconds}s"
            )
            self._close_socket()

    def _fail(self, error: str):
        if self._transition(SessionState.CLOSED_ERROR, error):
            self._close_socket()

    def _close_socket(self):
        if self._ws is not None:
            self._ws.close()

    def _transition(self, new_state: SessionState, error: Optional[str] = None) -> bool:
        with self._lock:
            if new_state not in _TRANSITIONS[self.state]:
                logger.debug(
                    f"[PROVISION] Ignoring {new_state.value} in state {self.state.value}"
                )
                return False
            self.state = new_state
            if error is not None:
                self.error = error
            timer = self._timer if new_state.is_terminal else None

        if timer is not None:
            timer.cancel()

        if self.on_state_change is not None:
            self.on_state_change(self, new_state)
        return True
