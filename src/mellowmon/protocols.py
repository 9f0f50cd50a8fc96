"""
Protocol definitions for external dependencies.

These interfaces allow dependency injection for testing, enabling us to
swap real implementations (subprocess calls to the browser and OS
network tools, HTTPS calls to the collector) with mock implementations
in tests.
"""

from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class ProcessController(Protocol):
    """Interface for controlling the supervised browser process."""

    def spawn(self) -> bool:
        """Launch a new browser window detached from this process.

        Returns:
            True if the launch command was issued
        """
        ...

    def open_url(self, url: str) -> bool:
        """Ask the running browser to open url."""
        ...

    def terminate_all(self) -> bool:
        """Kill every browser instance.

        Returns:
            True if something was killed, False if nothing was running
        """
        ...

    def is_running(self) -> bool:
        """Check whether any browser instance is running."""
        ...


@runtime_checkable
class ConnectivityProbe(Protocol):
    """Interface for network diagnostics."""

    def public_ip_info(self) -> Dict[str, Any]:
        """Public IP and geolocation.

        Returns:
            Dict with 'ip', 'city', 'region', 'country', 'location', 'org'

        Raises:
            DiagnosticsError: if the lookup fails
        """
        ...

    def connection_type(self) -> str:
        """Return 'wifi', 'ethernet' or 'unknown'."""
        ...

    def speedtest(self) -> Tuple[str, Dict[str, Any]]:
        """Run the platform speed-test tool.

        Returns:
            Tuple of (flavor, parsed JSON output) where flavor is
            'speedtest-cli' or 'ookla'

        Raises:
            DiagnosticsError: if the tool fails or its output is not JSON
        """
        ...


@runtime_checkable
class CollectorInterface(Protocol):
    """Interface for the remote collector."""

    def upload_segment(self, user_id: str, version: int, content: bytes,
                       timestamp_ms: Optional[int] = None) -> str:
        """Upload one segment as a multipart form.

        Returns:
            Response body on 2xx

        Raises:
            UploadTransportError: on network failure or non-2xx status
        """
        ...

    def query_latest_timestamp(self, user_id: str) -> int:
        """Fetch the remote's last-seen data timestamp (epoch ms).

        Raises:
            FreshnessQueryError: on network failure or malformed reply
        """
        ...
