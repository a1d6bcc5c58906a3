"""
Telemetry Parser for Fire Safety Monitor
Decodes JSON readings the ESP32 publishes to the cloud topic
"""

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

# Gas sensor raw value at or above which a reading counts as a risk
GAS_ALERT_THRESHOLD = 1000

# Wire keys (payload) -> display fields
KEY_TEMPERATURE = "temperature"
KEY_GAS_VALUE = "gasValue"
KEY_FLAME_ALERT = "flameAlert"
KEY_GAS_ALERT = "gasAlert"
KEY_TEMP_ALERT = "tempAlert"


class TelemetryDecodeError(ValueError):
    """Raised when an inbound message is not a JSON object"""


@dataclass(frozen=True)
class SensorReading:
    """Latest sensor snapshot; None means the field was not reported"""
    temperature: Optional[float] = None
    gas_value: Optional[float] = None
    flame_alert: Optional[bool] = None
    gas_detected: Optional[bool] = None
    high_temperature: Optional[bool] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SensorReading":
        # gasAlert/tempAlert are displayed as gas_detected/high_temperature
        return cls(
            temperature=payload.get(KEY_TEMPERATURE),
            gas_value=payload.get(KEY_GAS_VALUE),
            flame_alert=payload.get(KEY_FLAME_ALERT),
            gas_detected=payload.get(KEY_GAS_ALERT),
            high_temperature=payload.get(KEY_TEMP_ALERT),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def decode_payload(payload: Union[bytes, str, Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Decode an inbound message payload into a dictionary

    Args:
        payload: Raw MQTT payload (bytes), JSON text, or an already decoded mapping

    Returns:
        The decoded JSON object

    Raises:
        TelemetryDecodeError: If the payload is not valid UTF-8 JSON or not an object
    """
    if isinstance(payload, Mapping):
        return dict(payload)

    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TelemetryDecodeError(f"Payload is not valid UTF-8: {e}") from e

    if not isinstance(payload, str):
        raise TelemetryDecodeError(f"Unsupported payload type: {type(payload).__name__}")

    try:
        decoded = json.loads(payload)
    except json.JSONDecodeError as e:
        raise TelemetryDecodeError(f"Payload is not valid JSON: {e}") from e

    if not isinstance(decoded, dict):
        raise TelemetryDecodeError(
            f"Payload must be a JSON object, got {type(decoded).__name__}"
        )

    return decoded


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _flag_set(value: Any) -> bool:
    # Firmware may send 1/0 instead of true/false
    if isinstance(value, bool):
        return value
    return _is_number(value) and value == 1


def compute_alert(payload: Mapping[str, Any]) -> bool:
    """
    Derive the risk indicator from a single decoded message

    Only the fields of this message are considered, never a previous reading.

    Args:
        payload: Decoded telemetry object

    Returns:
        True if gas is at or above the threshold or any alert flag is set
    """
    gas_value = payload.get(KEY_GAS_VALUE)
    if _is_number(gas_value) and gas_value >= GAS_ALERT_THRESHOLD:
        return True

    return (
        _flag_set(payload.get(KEY_FLAME_ALERT))
        or _flag_set(payload.get(KEY_GAS_ALERT))
        or _flag_set(payload.get(KEY_TEMP_ALERT))
    )


def parse_telemetry(payload: Union[bytes, str, Mapping[str, Any]]) -> Tuple[SensorReading, bool]:
    """Decode a message and return (reading, alert)"""
    decoded = decode_payload(payload)
    reading = SensorReading.from_payload(decoded)
    alert = compute_alert(decoded)

    logger.debug(
        f"Parsed telemetry: temp={reading.temperature}, gas={reading.gas_value}, "
        f"flame={reading.flame_alert}, alert={alert}"
    )

    return reading, alert
