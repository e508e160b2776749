# ultrasonic_pi/main.py

import argparse
import logging
import signal
import sys
import threading

from . import config
from .acquisition import AcquisitionLoop, SampleLog
from .arbiter import Arbiter
from .commands import CommandRouter
from .distance_sensor import IioDistanceSensor, Mcp3008DistanceSensor
from .mqtt_gateway import MqttGateway
from .patterns import PatternTiming
from .relay import DryRunRelay, GpioRelay, ModbusRelay
from .system_state import SystemState
from .thresholds import ThresholdFile, ThresholdStore

log = logging.getLogger("ultrasonic_pi")


def make_relay(kind: str):
    if kind == "modbus":
        return ModbusRelay(
            config.RELAY_PORT,
            baudrate=config.RELAY_BAUDRATE,
            slave=config.RELAY_SLAVE,
            coil=config.RELAY_COIL,
            timeout_sec=config.RELAY_TIMEOUT_SEC,
        )
    if kind == "gpio":
        relay = GpioRelay(config.RELAY_GPIO_PIN, active_low=config.RELAY_GPIO_ACTIVE_LOW)
        relay.setup()
        return relay
    return DryRunRelay()


def make_sensor(kind: str):
    if kind == "mcp3008":
        return Mcp3008DistanceSensor(config.MCP3008_CHANNEL)
    return IioDistanceSensor(config.SENSOR_DIR, channel=config.SENSOR_CHANNEL, scale=config.SENSOR_SCALE)


def shutdown(loop, arbiter, gateway, relay, sensor) -> None:
    loop.stop(timeout=config.MEASUREMENT_INTERVAL + 1.0)
    arbiter.shutdown()
    gateway.publish_status(arbiter.status())
    gateway.stop()
    relay.close()
    sensor.close()
    log.info("[MAIN] Stopped.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Ultrasonic distance siren controller")
    parser.add_argument("--actuator", choices=["modbus", "gpio", "dry-run"], default="modbus")
    parser.add_argument("--sensor", choices=["iio", "mcp3008"], default="iio")
    parser.add_argument("--web", action=argparse.BooleanOptionalAction, default=True, help="serve the local HTTP API")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    problems = config.validate()
    if problems:
        for problem in problems:
            log.error(f"[CONFIG] {problem}")
        sys.exit(1)

    state = SystemState()
    store = ThresholdStore(state, ThresholdFile(config.THRESHOLDS_FILE))
    store.load()

    relay = make_relay(args.actuator)
    sensor = make_sensor(args.sensor)
    arbiter = Arbiter(state, relay, PatternTiming.from_config())

    # The router needs the gateway to publish status, the gateway needs the router for commands.
    gateway: MqttGateway
    router = CommandRouter(state, arbiter, store, publish_status=lambda status: gateway.publish_status(status))
    gateway = MqttGateway(
        host=config.MQTT_BROKER,
        port=config.MQTT_PORT,
        keepalive_sec=config.MQTT_KEEPALIVE_SEC,
        base_topic=config.MQTT_TOPIC,
        client_id=config.MQTT_CLIENT_ID,
        on_command=router.handle,
        qos=config.MQTT_QOS,
    )

    loop = AcquisitionLoop(
        state,
        sensor,
        arbiter,
        publish=gateway.publish_telemetry,
        interval_sec=config.MEASUREMENT_INTERVAL,
        device_id=config.MQTT_CLIENT_ID,
        sample_log=SampleLog(config.OUTPUT_FILE),
    )

    log.info("[MAIN] Starting ultrasonic sensor monitoring...")
    log.info(f"[MAIN] Sensor: {args.sensor}, relay: {args.actuator}")
    log.info(f"[MAIN] MQTT broker: {config.MQTT_BROKER}:{config.MQTT_PORT}, topic: {config.MQTT_TOPIC}")

    gateway.start()
    loop.start()

    if args.web:
        from .web.server import create_app, run

        app = create_app(arbiter, router)
        threading.Thread(target=run, args=(app, config.WEB_HOST, config.WEB_PORT), name="WEB", daemon=True).start()

    stop = threading.Event()

    def on_signal(signum, _frame):
        log.info(f"[MAIN] Signal {signum}, shutting down")
        stop.set()

    signal.signal(signal.SIGTERM, on_signal)
    signal.signal(signal.SIGINT, on_signal)

    try:
        while not stop.wait(1.0):
            pass
    finally:
        shutdown(loop, arbiter, gateway, relay, sensor)


if __name__ == "__main__":
    main()
