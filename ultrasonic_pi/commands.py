# ultrasonic_pi/commands.py

import functools
import json
import logging
import math
import threading
from typing import Callable, Dict, Optional, Union

from . import config
from .arbiter import Arbiter
from .system_state import Mode, SystemState
from .thresholds import FIELDS, ThresholdStore, parse_value

log = logging.getLogger(__name__)

DEFAULT_OVERRIDE_REASON = "remote_command"


def parse_switch(payload: str) -> Optional[bool]:
    p = payload.strip().lower()
    if p in {"1", "true", "on", "yes"}:
        return True
    if p in {"0", "false", "off", "no"}:
        return False
    return None


def _parse_json_object(payload: str) -> Optional[dict]:
    try:
        obj = json.loads(payload)
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


class CommandRouter:
    """Dispatches control messages by category, one at a time in arrival order.

    Categories are topic suffixes such as "mode", "relay" or "threshold/alert".
    A rejected message leaves all state untouched.
    """

    def __init__(
        self,
        state: SystemState,
        arbiter: Arbiter,
        store: ThresholdStore,
        publish_status: Optional[Callable[[dict], None]] = None,
        reboot_pulse_sec: float = config.REBOOT_PULSE_SEC,
    ):
        self._state = state
        self._arbiter = arbiter
        self._store = store
        self._publish_status = publish_status
        self._reboot_pulse_sec = reboot_pulse_sec
        self._lock = threading.Lock()

        self._handlers: Dict[str, Callable[[str], bool]] = {
            "mode": self._on_mode,
            "relay": self._on_relay,
            "debug/distance": self._on_debug_distance,
            "reboot": self._on_reboot,
            "override": self._on_override,
            "override/clear": self._on_override_clear,
            "control": self._on_control,
            "status": self._on_status,
        }
        for name in FIELDS:
            self._handlers[f"threshold/{name}"] = functools.partial(self._on_threshold, name)

    @property
    def categories(self):
        return sorted(self._handlers)

    def handle(self, category: str, payload: Union[str, bytes]) -> bool:
        """Handle one message. Returns True if it was accepted."""
        key = category.strip("/").lower()
        handler = self._handlers.get(key)
        if handler is None:
            log.warning(f"[CMD] Unknown command {category!r} discarded")
            return False

        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")

        with self._lock:
            log.info(f"[CMD] {key} <- {payload[:200]!r}")
            try:
                return handler(payload.strip())
            except Exception:
                log.exception(f"[CMD] {key} handler error")
                return False

    def _on_mode(self, text: str) -> bool:
        try:
            mode = Mode(text.upper())
        except ValueError:
            log.warning(f"[CMD] Unknown mode {text!r} rejected")
            return False
        self._arbiter.set_mode(mode)
        return True

    def _on_relay(self, text: str) -> bool:
        on = parse_switch(text)
        if on is None:
            log.warning(f"[CMD] Invalid relay command {text!r} rejected")
            return False
        self._arbiter.manual(on)
        return True

    def _on_threshold(self, name: str, text: str) -> bool:
        value = parse_value(text)
        if value is None:
            log.warning(
                f"[CMD] Threshold {name}={text!r} rejected "
                f"(expected a number in {config.THRESHOLD_MIN_M}..{config.THRESHOLD_MAX_M})"
            )
            return False
        self._store.update(name, value)
        return True

    def _on_debug_distance(self, text: str) -> bool:
        if text.lower() in {"", "off", "clear", "none"}:
            with self._state.lock:
                self._state.debug_distance = None
            log.info("[DEBUG] Distance override cleared, using live sensor")
            return True

        try:
            value = float(text)
        except ValueError:
            value = math.nan
        if not math.isfinite(value) or value < 0:
            log.warning(f"[CMD] Invalid debug distance {text!r} rejected")
            return False

        with self._state.lock:
            self._state.debug_distance = value
        log.info(f"[DEBUG] Distance override set to {value}")
        return True

    def _on_reboot(self, text: str) -> bool:
        if text.upper() not in {"1", "REBOOT"}:
            log.warning(f"[CMD] Invalid reboot payload {text!r} rejected")
            return False
        return self._arbiter.pulse(self._reboot_pulse_sec)

    def _on_override(self, text: str) -> bool:
        reason = DEFAULT_OVERRIDE_REASON
        obj = _parse_json_object(text)
        if obj is not None:
            on = parse_switch(str(obj.get("relay", "")))
            reason = str(obj.get("reason") or reason)
        else:
            on = parse_switch(text)

        if on is None:
            log.warning(f"[CMD] Invalid override {text!r} rejected")
            return False
        self._arbiter.set_override(on, reason)
        return True

    def _on_override_clear(self, _text: str) -> bool:
        if not self._arbiter.clear_override():
            log.info("[OVERRIDE] No override active")
        return True

    def _on_control(self, text: str) -> bool:
        # Remote control channel: {"relay": "on"}, {"mode": "auto"}, {"status": "request"}
        obj = _parse_json_object(text)
        if obj is None:
            log.warning(f"[CMD] Control message is not a JSON object: {text[:200]!r}")
            return False

        if "relay" in obj:
            on = parse_switch(str(obj["relay"]))
            if on is None:
                log.warning(f"[CMD] Invalid control relay value {obj['relay']!r} rejected")
                return False
            self._arbiter.set_override(on, str(obj.get("reason") or DEFAULT_OVERRIDE_REASON))
            return True

        if str(obj.get("mode", "")).lower() == "auto":
            if not self._arbiter.clear_override():
                log.info("[OVERRIDE] Already in automatic control")
            return True

        if str(obj.get("status", "")).lower() == "request":
            return self._on_status("")

        log.warning(f"[CMD] Unknown control message {text[:200]!r} discarded")
        return False

    def _on_status(self, _text: str) -> bool:
        status = self._arbiter.status()
        if status["override"]:
            log.info(f"[STATUS] Override active: {status['override']}")
        else:
            log.info(f"[STATUS] {status['mode']} mode, level={status['level']}, relay={status['actuator_on']}")
        if self._publish_status is not None:
            self._publish_status(status)
        return True
