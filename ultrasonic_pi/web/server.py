# ultrasonic_pi/web/server.py

import logging

from flask import Flask, jsonify, request

from ..arbiter import Arbiter
from ..commands import CommandRouter

log = logging.getLogger(__name__)


def create_app(arbiter: Arbiter, router: CommandRouter) -> Flask:
    app = Flask(__name__)

    @app.route("/api/state")
    def api_state():
        return jsonify(arbiter.status())

    @app.route("/api/cmd/<path:category>", methods=["POST"])
    def api_cmd(category: str):
        body = request.get_json(silent=True)
        if isinstance(body, dict) and "value" in body:
            value = body["value"]
            payload = value if isinstance(value, str) else str(value)
        else:
            payload = request.get_data(as_text=True)

        if category.strip("/").lower() not in router.categories:
            return jsonify({"error": f"unknown command {category!r}"}), 404

        accepted = router.handle(category, payload)
        if not accepted:
            return jsonify({"accepted": False, "error": "command rejected"}), 400
        return jsonify({"accepted": True, "state": arbiter.status()})

    return app


def run(app: Flask, host: str, port: int) -> None:
    log.info(f"[WEB] Serving on http://{host}:{port}")
    app.run(host=host, port=port, debug=False, use_reloader=False)
