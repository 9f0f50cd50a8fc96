"""Tests for ingest_server module."""

import http.client
import json
import socket
from unittest.mock import patch

import pytest

from mellowmon.errors import IngestParseError, StorageError
from mellowmon.ingest_server import (
    CORS_HEADERS,
    IngestHandler,
    parse_batch,
    start_ingest_server,
    stop_ingest_server,
)


@pytest.fixture
def running_server(segment_log, log):
    def status():
        return {"status": "ok", "currentJsonVersion": segment_log.current_version}

    server, thread = start_ingest_server(segment_log, status, log, host="127.0.0.1", port=0)
    yield server
    stop_ingest_server(server)
    thread.join(timeout=5)


def request(server, method, path, body=None, headers=None):
    conn = http.client.HTTPConnection("127.0.0.1", server.port, timeout=5)
    try:
        conn.request(method, path, body=body, headers=headers or {})
        resp = conn.getresponse()
        data = resp.read()
        return resp.status, dict(resp.getheaders()), data
    finally:
        conn.close()


class TestParseBatch:
    """Tests for parse_batch."""

    def test_object(self):
        assert parse_batch(b'{"a": 1}') == {"a": 1}

    def test_any_json_value(self):
        assert parse_batch(b"[1, 2]") == [1, 2]

    def test_invalid_json(self):
        with pytest.raises(IngestParseError):
            parse_batch(b"{not json")

    def test_empty_body(self):
        with pytest.raises(IngestParseError):
            parse_batch(b"")

    def test_invalid_utf8(self):
        with pytest.raises(IngestParseError):
            parse_batch(b"\xff\xfe")


class TestPostCache:
    """POST /cache."""

    def test_batch_appended_to_current_segment(self, running_server, cache_dir):
        status, headers, body = request(
            running_server, "POST", "/cache",
            body=b'{"a": 1}', headers={"Content-Type": "application/json"},
        )

        assert status == 200
        assert json.loads(body) == {"status": "ok", "message": "Data cached successfully"}
        assert json.loads((cache_dir / "cache_1.json").read_text()) == [{"a": 1}]

        status, _, body = request(running_server, "GET", "/status")
        assert status == 200
        assert json.loads(body)["currentJsonVersion"] == 1

    def test_batches_accumulate_in_order(self, running_server, cache_dir):
        for n in range(3):
            request(running_server, "POST", "/cache", body=json.dumps({"n": n}).encode())

        assert json.loads((cache_dir / "cache_1.json").read_text()) == [{"n": 0}, {"n": 1}, {"n": 2}]

    def test_invalid_json_is_400(self, running_server, cache_dir):
        status, headers, body = request(running_server, "POST", "/cache", body=b"{oops")

        assert status == 400
        assert json.loads(body)["status"] == "error"
        assert headers["Access-Control-Allow-Origin"] == "*"
        assert not (cache_dir / "cache_1.json").exists()

    def test_storage_failure_is_500(self, running_server, segment_log):
        with patch.object(segment_log, "append", side_effect=StorageError("disk full")):
            status, _, body = request(running_server, "POST", "/cache", body=b'{"a": 1}')

        assert status == 500
        assert json.loads(body) == {"status": "error", "message": "disk full"}

    def test_query_string_ignored(self, running_server, cache_dir):
        status, _, _ = request(running_server, "POST", "/cache?src=ext", body=b"[]")

        assert status == 200
        assert json.loads((cache_dir / "cache_1.json").read_text()) == [[]]

    def test_stalled_body_does_not_block_server(self, running_server, cache_dir, log, monkeypatch):
        monkeypatch.setattr(IngestHandler, "timeout", 0.5)
        stalled = socket.create_connection(("127.0.0.1", running_server.port), timeout=5)
        try:
            stalled.sendall(
                b"POST /cache HTTP/1.1\r\nHost: localhost\r\n"
                b"Content-Length: 100\r\n\r\n{}"
            )

            status, _, body = request(running_server, "GET", "/status")

            assert status == 200
            assert json.loads(body)["status"] == "ok"
        finally:
            stalled.close()

        assert "Timed out reading cache request" in log.log_file.read_text()
        assert not (cache_dir / "cache_1.json").exists()


class TestOtherRoutes:
    """CORS preflight, status and unknown routes."""

    def test_options_preflight(self, running_server):
        status, headers, body = request(running_server, "OPTIONS", "/cache")

        assert status == 204
        assert body == b""
        for name, value in CORS_HEADERS.items():
            assert headers[name] == value

    def test_status_has_cors_headers(self, running_server):
        status, headers, body = request(running_server, "GET", "/status")

        assert status == 200
        assert headers["Content-Type"] == "application/json"
        assert headers["Access-Control-Allow-Origin"] == "*"
        assert json.loads(body)["status"] == "ok"

    @pytest.mark.parametrize("method,path", [
        ("GET", "/"),
        ("GET", "/cache"),
        ("POST", "/status"),
        ("POST", "/upload"),
        ("PUT", "/cache"),
        ("DELETE", "/cache"),
        ("PATCH", "/cache"),
    ])
    def test_unknown_routes_are_404(self, running_server, method, path):
        status, headers, body = request(running_server, method, path, body=b"{}")

        assert status == 404
        assert json.loads(body) == {"status": "error", "message": "Not found"}
        assert headers["Access-Control-Allow-Origin"] == "*"

    @pytest.mark.parametrize("path", ["/status", "/cache"])
    def test_head_is_404_without_body(self, running_server, path):
        status, headers, body = request(running_server, "HEAD", path)

        assert status == 404
        assert body == b""
        assert headers["Access-Control-Allow-Origin"] == "*"

    def test_trace_is_404(self, running_server):
        status, _, body = request(running_server, "TRACE", "/status")

        assert status == 404
        assert json.loads(body) == {"status": "error", "message": "Not found"}

    def test_access_lines_go_to_log_file(self, running_server, log):
        request(running_server, "GET", "/status")

        assert "[http]" in log.log_file.read_text()
