"""
Periodic shipment of sealed segments to the collector.

A cycle snapshots the segment list, rotates the write target away from
everything in that snapshot and then uploads each version in ascending
order. A segment is deleted only after a 2xx reply, or when it holds an
empty array. Anything else is left on disk for the next cycle.
"""

import json
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .daemon_logging import BaseDaemonLogger
from .errors import StorageError, UploadContentError, UploadTransportError
from .monitor_core import format_versions, segment_filename
from .protocols import CollectorInterface
from .segment_log import SegmentLog


@dataclass
class UploadCycleResult:
    """Outcome of one upload cycle."""

    skipped: bool = False
    uploaded: List[int] = field(default_factory=list)
    emptied: List[int] = field(default_factory=list)
    retained: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "skipped": self.skipped,
            "uploaded": self.uploaded,
            "emptied": self.emptied,
            "retained": self.retained,
        }


def check_segment_content(content: bytes) -> int:
    """Number of entries in a segment's raw bytes.

    Raises:
        UploadContentError: if the bytes are not a JSON array
    """
    try:
        data = json.loads(content)
    except (UnicodeDecodeError, ValueError) as e:
        raise UploadContentError(f"Invalid JSON: {e}") from e
    if not isinstance(data, list):
        raise UploadContentError(f"Expected a JSON array, got {type(data).__name__}")
    return len(data)


class Uploader:
    """Drains the segment log into the collector."""

    def __init__(
        self,
        segment_log: SegmentLog,
        collector: CollectorInterface,
        user_id: str,
        log: BaseDaemonLogger,
        clock_ms: Optional[Callable[[], int]] = None,
    ):
        self.segment_log = segment_log
        self.collector = collector
        self.user_id = user_id
        self.log = log
        self._clock_ms = clock_ms
        self.last_result: Optional[UploadCycleResult] = None

    def run_cycle(self) -> UploadCycleResult:
        """Run one upload cycle. Never runs concurrently with another."""
        try:
            versions = self.segment_log.begin_upload()
        except StorageError as e:
            self.log.error(f"Upload cycle aborted: {e}")
            return UploadCycleResult(skipped=True)

        if versions is None:
            self.log.info("Upload already in progress, skipping this cycle")
            return UploadCycleResult(skipped=True)

        self.log.section("PERIODIC UPLOAD")
        if not versions:
            self.log.info("No JSON files to upload")
            result = UploadCycleResult()
            self.last_result = result
            return result

        self.log.info(f"Found {len(versions)} file(s) to upload: {format_versions(versions)}")
        result = UploadCycleResult()
        try:
            for version in versions:
                self._process(version, result)
        finally:
            self.segment_log.end_upload()

        self.log.info(
            f"Upload cycle complete: {len(result.uploaded)} uploaded, "
            f"{len(result.emptied)} empty, {len(result.retained)} retained"
        )
        self.last_result = result
        return result

    def _process(self, version: int, result: UploadCycleResult) -> None:
        try:
            content = self.segment_log.read_segment(version)
        except FileNotFoundError:
            self.log.warn(f"JSON file for version {version} no longer exists, skipping")
            return
        except StorageError as e:
            self.log.error(f"Failed to read version {version}: {e}")
            result.retained.append(version)
            return

        try:
            count = check_segment_content(content)
        except UploadContentError as e:
            self.log.error(f"Version {version} not uploaded, file kept for inspection: {e}")
            result.retained.append(version)
            return

        if count == 0:
            self.log.info(f"JSON file at version {version} has no data, deleting")
            self._delete(version)
            result.emptied.append(version)
            return

        self.log.info(f"Uploading version {version} with {count} entries...")
        timestamp_ms = self._clock_ms() if self._clock_ms else None
        try:
            reply = self.collector.upload_segment(self.user_id, version, content, timestamp_ms)
        except UploadTransportError as e:
            self.log.warn(f"Failed to upload version {version}, will retry next cycle: {e}")
            result.retained.append(version)
            return

        self.log.success(f"Upload successful for version {version}: {reply}")
        self._delete(version)
        result.uploaded.append(version)

    def _delete(self, version: int) -> None:
        try:
            if self.segment_log.delete(version):
                self.log.info(f"Deleted uploaded JSON file: {segment_filename(version)}")
        except StorageError as e:
            self.log.error(str(e))
