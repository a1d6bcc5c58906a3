"""Configuration management for the Fire Safety Monitor.

Loads configuration from config.ini (if present) with fallback to environment variables.
Config.ini takes precedence over environment variables.
"""
import logging
import os
from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# AWS IoT endpoint the sensor firmware publishes to
DEFAULT_MQTT_ENDPOINT = "a1gls53ytefhcl-ats.iot.us-east-1.amazonaws.com"
DEFAULT_MQTT_TOPIC = "esp32/pub"


@dataclass
class ProvisioningConfig:
    """Local WebSocket provisioning settings."""
    port: int = 81
    timeout_seconds: float = 15.0


@dataclass
class MqttConfig:
    """Cloud MQTT subscription settings."""
    endpoint: str = DEFAULT_MQTT_ENDPOINT
    port: int = 8883
    topic: str = DEFAULT_MQTT_TOPIC
    client_id: str = "fire-monitor-dashboard"
    transport: str = "tcp"  # tcp or websockets
    keepalive: int = 60
    qos: int = 1
    ca_certs: Optional[str] = None
    certfile: Optional[str] = None
    keyfile: Optional[str] = None

    @property
    def use_tls(self) -> bool:
        return bool(self.ca_certs)


@dataclass
class DashboardConfig:
    """Flask dashboard settings."""
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class LoggingConfig:
    """Logging configuration."""
    log_level: str = "INFO"


@dataclass
class Config:
    """Main configuration container."""
    provisioning: ProvisioningConfig = field(default_factory=ProvisioningConfig)
    mqtt: MqttConfig = field(default_factory=MqttConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from config.ini or environment variables.

    Priority:
    1. config.ini (if exists)
    2. Environment variables
    3. Default values

    Args:
        config_path: Path to config.ini file. If None, uses FIRE_MONITOR_CONFIG
            or config.ini in the current directory.

    Returns:
        Config object with all settings.

    Raises:
        ValueError: If a setting cannot be converted or is out of range.
    """
    if config_path is None:
        config_path = os.getenv("FIRE_MONITOR_CONFIG", "config.ini")

    config_file = Path(config_path)
    parser = ConfigParser()

    if config_file.exists():
        logger.info(f"Loading configuration from {config_file}")
        parser.read(config_file)
    else:
        logger.info("No config.ini found, using environment variables and defaults")

    # config.ini > env var > default
    def get_value(section: str, key: str, env_var: str, default=None, value_type=str):
        if parser.has_section(section) and parser.has_option(section, key):
            if value_type == bool:
                return parser.getboolean(section, key)
            elif value_type == int:
                return parser.getint(section, key)
            elif value_type == float:
                return parser.getfloat(section, key)
            return parser.get(section, key)

        env_value = os.getenv(env_var)
        if env_value is not None:
            if value_type == bool:
                return env_value.lower() in ('true', '1', 'yes')
            elif value_type == int:
                return int(env_value)
            elif value_type == float:
                return float(env_value)
            return env_value

        return default

    provisioning = ProvisioningConfig(
        port=get_value("provisioning", "port", "PROVISION_PORT", 81, int),
        timeout_seconds=get_value("provisioning", "timeout_seconds", "PROVISION_TIMEOUT", 15.0, float),
    )
    if provisioning.timeout_seconds <= 0:
        raise ValueError("provisioning timeout_seconds must be positive")

    mqtt = MqttConfig(
        endpoint=get_value("mqtt", "endpoint", "MQTT_ENDPOINT", DEFAULT_MQTT_ENDPOINT, str),
        port=get_value("mqtt", "port", "MQTT_PORT", 8883, int),
        topic=get_value("mqtt", "topic", "MQTT_TOPIC", DEFAULT_MQTT_TOPIC, str),
        client_id=get_value("mqtt", "client_id", "MQTT_CLIENT_ID", "fire-monitor-dashboard", str),
        transport=get_value("mqtt", "transport", "MQTT_TRANSPORT", "tcp", str),
        keepalive=get_value("mqtt", "keepalive", "MQTT_KEEPALIVE", 60, int),
        qos=get_value("mqtt", "qos", "MQTT_QOS", 1, int),
        ca_certs=get_value("mqtt", "ca_certs", "MQTT_CA_CERTS", None, str),
        certfile=get_value("mqtt", "certfile", "MQTT_CERTFILE", None, str),
        keyfile=get_value("mqtt", "keyfile", "MQTT_KEYFILE", None, str),
    )
    if mqtt.transport not in ("tcp", "websockets"):
        raise ValueError(f"Invalid MQTT transport: {mqtt.transport}. Valid: tcp, websockets")
    if mqtt.qos not in (0, 1, 2):
        raise ValueError(f"Invalid MQTT qos: {mqtt.qos}")

    dashboard = DashboardConfig(
        host=get_value("dashboard", "host", "DASHBOARD_HOST", "0.0.0.0", str),
        port=get_value("dashboard", "port", "DASHBOARD_PORT", 8080, int),
    )

    logging_config = LoggingConfig(
        log_level=get_value("logging", "log_level", "LOG_LEVEL", "INFO", str),
    )

    return Config(
        provisioning=provisioning,
        mqtt=mqtt,
        dashboard=dashboard,
        logging=logging_config,
    )
