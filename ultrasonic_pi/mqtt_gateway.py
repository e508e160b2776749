# ultrasonic_pi/mqtt_gateway.py

import json
import logging
import threading
from typing import Callable

import paho.mqtt.client as mqtt

log = logging.getLogger(__name__)


def _topic(base: str, suffix: str) -> str:
    base = base.rstrip("/")
    suffix = suffix.lstrip("/")
    return f"{base}/{suffix}" if suffix else base


class MqttGateway:
    """Publishes telemetry/status under the base topic and forwards `<base>/cmd/...` messages.

    Inbound messages are handed to on_command(category, payload_text) on the
    paho network thread, one at a time.
    """

    def __init__(
        self,
        host: str,
        port: int,
        keepalive_sec: int,
        base_topic: str,
        client_id: str,
        on_command: Callable[[str, str], object],
        qos: int = 0,
    ):
        self._host = host
        self._port = port
        self._keepalive = keepalive_sec
        self._base = base_topic.rstrip("/")
        self._on_command = on_command
        self._qos = qos

        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        self._client.enable_logger(log)

        self._client.will_set(self.topic("availability"), payload="offline", qos=self._qos, retain=True)
        self._client.on_connect = self._on_connect
        self._client.on_message = self._on_message
        self._client.on_disconnect = self._on_disconnect
        self._client.reconnect_delay_set(min_delay=1, max_delay=10)

        self._started = False
        self._lock = threading.Lock()

    def topic(self, suffix: str = "") -> str:
        return _topic(self._base, suffix)

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True

        # loop_start keeps retrying in the background if the first attempt fails.
        try:
            self._client.connect_async(self._host, self._port, self._keepalive)
            self._client.loop_start()
        except (OSError, ValueError) as e:
            log.error(f"[MQTT] Cannot start client for {self._host}:{self._port}: {e}")

    def stop(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._started = False
        self._publish(self.topic("availability"), "offline", retain=True)
        self._client.disconnect()
        self._client.loop_stop()

    def publish_telemetry(self, payload: dict) -> None:
        self._publish(self.topic(), json.dumps(payload))

    def publish_status(self, payload: dict) -> None:
        self._publish(self.topic("status"), json.dumps(payload), retain=True)

    def _publish(self, topic: str, payload: str, retain: bool = False) -> None:
        try:
            info = self._client.publish(topic, payload, qos=self._qos, retain=retain)
        except (OSError, ValueError) as e:
            log.warning(f"[MQTT] Publish to {topic} failed: {e}")
            return
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            log.warning(f"[MQTT] Publish to {topic} failed: {mqtt.error_string(info.rc)}")

    def _on_connect(self, client, _userdata, _flags, reason_code, _properties=None):
        if reason_code.is_failure:
            log.error(f"[MQTT] Connect to {self._host}:{self._port} failed: {reason_code}")
            return
        log.info(f"[MQTT] Connected to {self._host}:{self._port}")
        client.publish(self.topic("availability"), payload="online", qos=self._qos, retain=True)
        client.subscribe(self.topic("cmd/#"), qos=self._qos)

    def _on_disconnect(self, _client, _userdata, _flags, reason_code, _properties=None):
        if reason_code.is_failure:
            log.warning(f"[MQTT] Disconnected: {reason_code} (will retry)")

    def _on_message(self, _client, _userdata, msg):
        base_cmd = self.topic("cmd/")
        if not msg.topic.startswith(base_cmd):
            return

        category = msg.topic[len(base_cmd):].strip("/")
        if not category:
            return

        payload = msg.payload.decode("utf-8", errors="replace")
        try:
            self._on_command(category, payload)
        except Exception:
            # Never let a handler error kill the network thread.
            log.exception(f"[MQTT] Command handler error for {msg.topic}")
