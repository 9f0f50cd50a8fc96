"""
Versioned append log of telemetry batches.

Batches are buffered in numbered segment files (cache_<version>.json),
each holding a JSON array. Exactly one version is the current write
target. Rotation advances that version without touching older files, so
the uploader can read sealed segments while ingestion keeps writing to a
fresh one.

Version numbers only grow. On startup the directory is scanned and the
write version resumes at max(existing) + 1, so a restart never reopens a
segment that may already be queued for upload.

The HTTP server and the timer jobs run on different threads. A single
lock serializes every operation that touches the current version or a
segment file, which keeps each append a whole-batch read-modify-write.
"""

import json
import threading
from pathlib import Path
from typing import Any, List, Optional, Tuple

from .daemon_logging import BaseDaemonLogger
from .errors import StorageError
from .monitor_core import (
    next_write_version,
    parse_segment_version,
    segment_filename,
)
from .monitor_state import UploadState


class SegmentLog:
    """Durable, rotating buffer of telemetry batches."""

    def __init__(self, cache_dir: Path, log: BaseDaemonLogger):
        self.cache_dir = Path(cache_dir)
        self.log = log
        self.upload = UploadState()
        self._lock = threading.RLock()

        if not self.cache_dir.exists():
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.log.info(f"Created cache directory: {self.cache_dir}")

        self._current_version = next_write_version(self.list_segments())
        self.log.info(f"Initialized segment version to: {self._current_version}")

    @property
    def current_version(self) -> int:
        return self._current_version

    def path_for(self, version: int) -> Path:
        return self.cache_dir / segment_filename(version)

    def list_segments(self) -> List[int]:
        """All segment versions currently on disk, ascending."""
        try:
            names = [p.name for p in self.cache_dir.iterdir() if p.is_file()]
        except OSError as e:
            raise StorageError(f"Cannot list {self.cache_dir}: {e}") from e
        versions = [v for v in (parse_segment_version(n) for n in names) if v is not None]
        return sorted(versions)

    def rotate(self) -> int:
        """Advance the write target. Returns the new current version."""
        with self._lock:
            self._current_version += 1
            return self._current_version

    def append(self, batch: Any) -> Tuple[int, int]:
        """Append one batch to the current segment.

        If an upload cycle started from the current version, rotate first
        so the uploader never reads a segment that is still growing.

        Returns:
            (version written, total entries in that segment)

        Raises:
            StorageError: if the segment cannot be read or written
        """
        with self._lock:
            if self.upload.active and self.upload.version == self._current_version:
                self.rotate()
                self.log.info(f"Upload in progress, rotated to new version: {self._current_version}")

            version = self._current_version
            path = self.path_for(version)
            entries = self._read_entries(path)
            if entries is None:
                # Leave the corrupt file for inspection, never overwrite it
                self.rotate()
                self.log.warn(f"{path.name} is corrupt, rotated to version {self._current_version}")
                version = self._current_version
                path = self.path_for(version)
                entries = []
            entries.append(batch)
            self._write_entries(path, entries)

        self.log.debug(f"Appended data to {path.name} (total entries: {len(entries)})")
        return version, len(entries)

    def read_segment(self, version: int) -> bytes:
        """Raw bytes of one segment.

        Raises:
            FileNotFoundError: if the segment no longer exists
            StorageError: on any other read failure
        """
        with self._lock:
            path = self.path_for(version)
            try:
                return path.read_bytes()
            except FileNotFoundError:
                raise
            except OSError as e:
                raise StorageError(f"Cannot read {path.name}: {e}") from e

    def delete(self, version: int) -> bool:
        """Remove a segment file. Returns False if it was already gone."""
        with self._lock:
            path = self.path_for(version)
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise StorageError(f"Cannot delete {path.name}: {e}") from e
        return True

    # -----------------------------------------------------------------
    # Upload coordination
    # -----------------------------------------------------------------

    def begin_upload(self) -> Optional[List[int]]:
        """Start an upload cycle.

        Atomically checks that no cycle is running, snapshots the segment
        list, records the current version as being uploaded and rotates.

        Returns:
            None if a cycle is already active, [] if there is nothing to
            upload (no cycle started), otherwise the versions to process
        """
        with self._lock:
            if self.upload.active:
                return None
            versions = self.list_segments()
            if not versions:
                return []
            self.upload.active = True
            self.upload.version = self._current_version
            self.rotate()
            self.log.info(f"Rotated to new version {self._current_version} for incoming requests")
            return versions

    def end_upload(self) -> None:
        with self._lock:
            self.upload.active = False
            self.upload.version = None

    @property
    def upload_in_progress(self) -> bool:
        return self.upload.active

    # -----------------------------------------------------------------
    # File helpers (caller holds the lock)
    # -----------------------------------------------------------------

    def _read_entries(self, path: Path) -> Optional[list]:
        """Entries of a segment; [] if missing, None if corrupt."""
        if not path.exists():
            return []
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return None
        except OSError as e:
            raise StorageError(f"Cannot read {path.name}: {e}") from e
        try:
            data = json.loads(content)
        except ValueError:
            return None
        if not isinstance(data, list):
            return None
        return data

    def _write_entries(self, path: Path, entries: list) -> None:
        # Write via temp file so readers never see a half-written segment
        temp_path = path.with_suffix(".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2)
            temp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Cannot write {path.name}: {e}") from e
