"""
Mock alert webhook for running the delivery engine locally.

Routes:
- POST /alerts          -> records the alert (or fails it, see /_fail)
- GET  /_alerts         -> recorded alerts, optional ?type=DELIVERY_FAILURE
- POST /_fail           -> {"count": N, "status": 503}: reject the next N alerts
- POST /_reset          -> forget alerts and pending failures
- GET  /_health

Run with ALERT_WEBHOOK_URL=http://localhost:8080/alerts. When
ALERT_WEBHOOK_TOKEN is set, alerts without a matching Authorization header
are refused with 401, like a real gateway would.
"""
import argparse
import json
import logging
import os
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlsplit

logger = logging.getLogger("mock_alert_gateway")


class AlertStore:
    """Received alerts plus a queue of forced failures, shared by handler threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self.alerts = []
        self.failures = []

    def record(self, alert: dict) -> None:
        with self._lock:
            self.alerts.append(alert)

    def take_failure(self):
        with self._lock:
            return self.failures.pop(0) if self.failures else None

    def fail_next(self, count: int, status_code: int) -> None:
        with self._lock:
            self.failures.extend([status_code] * count)

    def matching(self, alert_type=None) -> list:
        with self._lock:
            return [a for a in self.alerts if alert_type in (None, a["payload"].get("type"))]

    def reset(self) -> None:
        with self._lock:
            self.alerts.clear()
            self.failures.clear()


STORE = AlertStore()


class AlertGatewayHandler(BaseHTTPRequestHandler):
    token = os.getenv("ALERT_WEBHOOK_TOKEN", "")

    def _reply(self, status_code: int, body: dict) -> None:
        encoded = json.dumps(body, default=str).encode("utf-8")
        self.send_response(status_code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _json_body(self) -> dict:
        length = int(self.headers.get("Content-Length") or 0)
        if not length:
            return {}
        return json.loads(self.rfile.read(length))

    def do_GET(self):  # noqa: N802
        url = urlsplit(self.path)
        if url.path == "/_health":
            self._reply(200, {"status": "ok", "alerts": len(STORE.alerts)})
        elif url.path == "/_alerts":
            alert_type = parse_qs(url.query).get("type", [None])[0]
            self._reply(200, {"alerts": STORE.matching(alert_type)})
        else:
            self._reply(404, {"error": "not_found"})

    def do_POST(self):  # noqa: N802
        route = {
            "/alerts": self._receive_alert,
            "/_fail": self._schedule_failures,
            "/_reset": self._reset,
        }.get(urlsplit(self.path).path)
        if route is None:
            self._reply(404, {"error": "not_found"})
            return

        try:
            body = self._json_body()
        except ValueError:
            self._reply(400, {"error": "invalid_json"})
            return
        route(body)

    def _receive_alert(self, alert: dict) -> None:
        if self.token and self.headers.get("Authorization") != self.token:
            logger.warning("Refused alert with bad or missing Authorization header")
            self._reply(401, {"error": "unauthorized"})
            return

        forced = STORE.take_failure()
        if forced:
            logger.info(f"Failing {alert.get('type')} with forced status {forced}")
            self._reply(forced, {"error": "forced_failure"})
            return

        STORE.record({
            "authorization": self.headers.get("Authorization"),
            "payload": alert,
        })
        logger.info(f"{alert.get('type')}: {alert.get('subject')}")
        self._reply(200, {"status": "received"})

    def _schedule_failures(self, body: dict) -> None:
        count = int(body.get("count", 1))
        status_code = int(body.get("status", 500))
        STORE.fail_next(count, status_code)
        self._reply(200, {"status": "scheduled", "count": count, "failure_status": status_code})

    def _reset(self, _body: dict) -> None:
        STORE.reset()
        self._reply(200, {"status": "reset"})

    def log_message(self, format, *args):  # noqa: A003
        logger.debug(format, *args)


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock alert webhook for local delivery runs")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--verbose", action="store_true", help="log every request line")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="{levelname} {asctime} {message}",
        style="{",
    )
    server = ThreadingHTTPServer((args.host, args.port), AlertGatewayHandler)
    logger.info(f"Alert gateway listening on http://{args.host}:{args.port}/alerts")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
