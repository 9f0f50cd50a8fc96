"""
Local HTTP endpoint for the browser agent.

POST /cache    - append one telemetry batch to the segment log
GET  /status   - health and state snapshot
OPTIONS *      - CORS preflight

Anything else answers 404.

Every response carries permissive CORS headers since the agent posts
from extension pages.
"""

import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlparse

from .daemon_logging import BaseDaemonLogger
from .errors import IngestParseError, StorageError
from .segment_log import SegmentLog


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def parse_batch(body: bytes) -> Any:
    """Decode a POST body into a telemetry batch.

    Raises:
        IngestParseError: if the body is not valid UTF-8 JSON
    """
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise IngestParseError(str(e)) from e


class IngestServer(HTTPServer):
    """HTTPServer that carries the collaborators its handlers need."""

    def __init__(
        self,
        server_address,
        segment_log: SegmentLog,
        status_provider: Callable[[], Dict[str, Any]],
        log: BaseDaemonLogger,
    ):
        self.segment_log = segment_log
        self.status_provider = status_provider
        self.log = log
        super().__init__(server_address, IngestHandler)

    @property
    def port(self) -> int:
        return self.server_address[1]


class IngestHandler(BaseHTTPRequestHandler):
    """Request handler for the ingestion endpoint."""

    server: IngestServer

    # Seconds a client may stall mid-request before its socket is dropped
    timeout = 10

    def _send_json_response(self, data: dict, status: int = 200) -> None:
        body = json.dumps(data, default=str).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        for name, value in CORS_HEADERS.items():
            self.send_header(name, value)
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _send_json_error(self, status: int, message: str) -> None:
        self._send_json_response({"status": "error", "message": message}, status=status)

    def _not_found(self) -> None:
        self._send_json_error(404, "Not found")

    def _read_body(self) -> bytes:
        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            length = 0
        if length <= 0:
            return b""
        return self.rfile.read(length)

    def do_OPTIONS(self) -> None:
        self.send_response(204)
        for name, value in CORS_HEADERS.items():
            self.send_header(name, value)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_POST(self) -> None:
        if urlparse(self.path).path != "/cache":
            self._not_found()
            return
        self._handle_cache()

    def do_GET(self) -> None:
        if urlparse(self.path).path != "/status":
            self._not_found()
            return
        self._send_json_response(self.server.status_provider())

    def do_PUT(self) -> None:
        self._not_found()

    def do_DELETE(self) -> None:
        self._not_found()

    def do_PATCH(self) -> None:
        self._not_found()

    def do_HEAD(self) -> None:
        self._not_found()

    def do_TRACE(self) -> None:
        self._not_found()

    def do_CONNECT(self) -> None:
        self._not_found()

    def _handle_cache(self) -> None:
        log = self.server.log
        try:
            body = self._read_body()
        except TimeoutError:
            log.warn(f"Timed out reading cache request from {self.address_string()}")
            self.close_connection = True
            return
        try:
            batch = parse_batch(body)
            self.server.segment_log.append(batch)
        except IngestParseError as e:
            log.warn(f"Error handling cache request: {e}")
            self._send_json_error(e.status, str(e))
            return
        except StorageError as e:
            log.error(f"Error storing cache request: {e}")
            self._send_json_error(e.status, str(e))
            return

        self._send_json_response({
            "status": "ok",
            "message": "Data cached successfully",
        })

    def log_message(self, format: str, *args) -> None:
        """Route access lines to the daemon log file instead of stderr."""
        self.server.log.debug(f"[http] {self.address_string()} {format % args}")


def start_ingest_server(
    segment_log: SegmentLog,
    status_provider: Callable[[], Dict[str, Any]],
    log: BaseDaemonLogger,
    host: str = "127.0.0.1",
    port: int = 9080,
) -> Tuple[IngestServer, threading.Thread]:
    """Bind the server and run serve_forever on a daemon thread.

    Raises:
        OSError: if the port cannot be bound
    """
    server = IngestServer((host, port), segment_log, status_provider, log)
    thread = threading.Thread(
        target=server.serve_forever,
        name="ingest-server",
        daemon=True,
    )
    thread.start()
    log.info(f"Cache server listening on {host}:{server.port}")
    log.info("POST /cache - Store data to JSON")
    log.info("GET /status - Health check")
    return server, thread


def stop_ingest_server(server: Optional[IngestServer]) -> None:
    if server is None:
        return
    server.shutdown()
    server.server_close()
