"""
Home Fire Safety Monitor

Provisions an ESP32 fire/gas/temperature sensor over its local WebSocket
and shows live readings received from the cloud MQTT topic.
"""

__version__ = "1.0.0"
