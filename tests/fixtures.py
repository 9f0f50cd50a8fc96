"""
Mock implementations of protocol interfaces for testing.

These mocks record every call and let tests script the outcome of each
operation without touching real processes or the network.
"""

from typing import Any, Dict, List, Optional, Tuple

from mellowmon.errors import DiagnosticsError, FreshnessQueryError, UploadTransportError


class MockProcessController:
    """Mock implementation of ProcessController."""

    def __init__(self, running: bool = False):
        self.running = running
        self.calls: List[Tuple[str, ...]] = []
        self.opened_urls: List[str] = []
        self.spawn_result = True
        self.open_result = True
        # Called inside spawn/terminate_all, lets tests observe mid-operation state
        self.on_spawn = None
        self.on_terminate = None

    def spawn(self) -> bool:
        self.calls.append(("spawn",))
        if self.on_spawn is not None:
            self.on_spawn()
        if self.spawn_result:
            self.running = True
        return self.spawn_result

    def open_url(self, url: str) -> bool:
        self.calls.append(("open_url", url))
        self.opened_urls.append(url)
        return self.open_result

    def terminate_all(self) -> bool:
        self.calls.append(("terminate_all",))
        if self.on_terminate is not None:
            self.on_terminate()
        was_running = self.running
        self.running = False
        return was_running

    def is_running(self) -> bool:
        self.calls.append(("is_running",))
        return self.running

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]


class MockConnectivityProbe:
    """Mock implementation of ConnectivityProbe."""

    def __init__(
        self,
        ip_info: Optional[Dict[str, Any]] = None,
        connection: str = "ethernet",
        speedtest_result: Optional[Tuple[str, Dict[str, Any]]] = None,
    ):
        self.ip_info = ip_info
        self.connection = connection
        self.speedtest_result = speedtest_result
        self.ip_calls = 0
        self.speedtest_calls = 0

    def public_ip_info(self) -> Dict[str, Any]:
        self.ip_calls += 1
        if self.ip_info is None:
            raise DiagnosticsError("no network")
        return dict(self.ip_info)

    def connection_type(self) -> str:
        return self.connection

    def speedtest(self) -> Tuple[str, Dict[str, Any]]:
        self.speedtest_calls += 1
        if self.speedtest_result is None:
            raise DiagnosticsError("speedtest-cli could not be run")
        return self.speedtest_result


class MockCollector:
    """Mock implementation of CollectorInterface.

    Upload outcomes are keyed by version; anything not listed succeeds.
    """

    def __init__(self):
        self.uploads: List[Tuple[str, int, bytes]] = []
        self.failures: Dict[int, UploadTransportError] = {}
        self.latest_timestamp: Optional[int] = None
        self.query_error: Optional[str] = None
        self.queries: List[str] = []

    def fail_version(self, version: int, status_code: Optional[int] = 503) -> None:
        self.failures[version] = UploadTransportError(
            f"Upload failed with status {status_code}", status_code=status_code,
        )

    def upload_segment(self, user_id: str, version: int, content: bytes,
                       timestamp_ms: Optional[int] = None) -> str:
        self.uploads.append((user_id, version, content))
        if version in self.failures:
            raise self.failures[version]
        return "ok"

    def query_latest_timestamp(self, user_id: str) -> int:
        self.queries.append(user_id)
        if self.query_error is not None:
            raise FreshnessQueryError(self.query_error)
        if self.latest_timestamp is None:
            raise FreshnessQueryError("Invalid response from server")
        return self.latest_timestamp

    def uploaded_versions(self) -> List[int]:
        return [v for _, v, _ in self.uploads]
