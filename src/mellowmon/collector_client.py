"""
HTTPS client for the remote collector.

The collector listens on a small pool of ports on one host; every
request picks one at random. Two calls are used: a multipart upload of
a segment file and a freshness query returning the newest timestamp the
collector has seen for a user.
"""

import json
import random
import socket
import time
import urllib.error
import urllib.parse
import urllib.request
import uuid
from typing import Any, Dict, Optional, Sequence

from .errors import FreshnessQueryError, UploadTransportError
from .monitor_core import build_upload_filename, parse_freshness_response
from .settings import COLLECTOR


class CollectorClient:
    """Talks to the collector over HTTPS using urllib."""

    def __init__(
        self,
        host: str = COLLECTOR.host,
        ports: Sequence[int] = COLLECTOR.ports,
        scheme: str = COLLECTOR.scheme,
        timeout: float = COLLECTOR.timeout,
        rng: Optional[random.Random] = None,
    ):
        if not ports:
            raise ValueError("Collector needs at least one port")
        self.host = host
        self.ports = list(ports)
        self.scheme = scheme
        self.timeout = timeout
        self.rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: Dict[str, Any], rng: Optional[random.Random] = None) -> "CollectorClient":
        return cls(
            host=config["host"],
            ports=config["ports"],
            scheme=config["scheme"],
            timeout=config["timeout"],
            rng=rng,
        )

    def pick_port(self) -> int:
        return self.rng.choice(self.ports)

    def base_url(self, port: Optional[int] = None) -> str:
        if port is None:
            port = self.pick_port()
        return f"{self.scheme}://{self.host}:{port}"

    def upload_url(self, port: Optional[int] = None) -> str:
        return self.base_url(port) + COLLECTOR.upload_path

    def query_url(self, user_id: str, port: Optional[int] = None) -> str:
        query = urllib.parse.urlencode({"userId": user_id})
        return f"{self.base_url(port)}{COLLECTOR.query_path}?{query}"

    def upload_segment(self, user_id: str, version: int, content: bytes,
                       timestamp_ms: Optional[int] = None) -> str:
        """POST one segment as multipart/form-data field "file".

        Returns:
            Response body on 2xx

        Raises:
            UploadTransportError: on network failure or non-2xx status
        """
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        filename = build_upload_filename(user_id, version, timestamp_ms)
        body, content_type = encode_multipart_file("file", filename, content)

        req = urllib.request.Request(
            self.upload_url(),
            data=body,
            method="POST",
            headers={
                "Content-Type": content_type,
                "Content-Length": str(len(body)),
            },
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                status = resp.status
                text = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            raise UploadTransportError(f"HTTP {e.code}", status_code=e.code) from e
        except (urllib.error.URLError, socket.timeout, OSError) as e:
            raise UploadTransportError(str(e)) from e

        if not 200 <= status < 300:
            raise UploadTransportError(f"HTTP {status}", status_code=status)
        return text

    def query_latest_timestamp(self, user_id: str) -> int:
        """GET the collector's newest timestamp (epoch ms) for user_id.

        Raises:
            FreshnessQueryError: on network failure or malformed reply
        """
        url = self.query_url(user_id)
        req = urllib.request.Request(url, headers={"Accept": "application/json"})
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read().decode("utf-8", errors="replace")
        except (urllib.error.URLError, socket.timeout, OSError) as e:
            raise FreshnessQueryError(f"Error querying server: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise FreshnessQueryError(f"Error parsing server response: {e}") from e

        timestamp = parse_freshness_response(data)
        if timestamp is None:
            raise FreshnessQueryError(f"Invalid response from server: {raw[:200]}")
        return timestamp


def encode_multipart_file(field: str, filename: str, content: bytes):
    """Build a single-file multipart/form-data body.

    Returns:
        (body bytes, Content-Type header value)
    """
    boundary = "----FormBoundary" + uuid.uuid4().hex
    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{field}"; filename="{filename}"\r\n'
        "Content-Type: application/json\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + content + tail, f"multipart/form-data; boundary={boundary}"
