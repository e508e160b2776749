"""Ultrasonic distance monitor driving a siren relay over MQTT control."""

__version__ = "1.0.0"
