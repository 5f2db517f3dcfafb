"""Health check endpoint."""

from http.server import BaseHTTPRequestHandler
import json

from fieldtrack.utils.config import TrackingConfig


def health_payload() -> dict:
    """Liveness info plus the tracking settings this deployment runs with."""
    return {
        "status": "ok",
        "service": "fieldtrack-backend",
        "store": TrackingConfig.STORE_BACKEND,
        "sample_interval_seconds": TrackingConfig.sample_interval(),
        "timezone": TrackingConfig.TIMEZONE,
    }


class handler(BaseHTTPRequestHandler):
    """Health check handler for serverless deployment."""

    def do_GET(self):
        body = json.dumps(health_payload()).encode('utf-8')
        self.send_response(200)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_POST(self):
        self.do_GET()
