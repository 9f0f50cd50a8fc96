"""Tests for pid_utils module."""

import os
import signal
from unittest.mock import patch

from mellowmon.pid_utils import (
    acquire_daemon_lock,
    get_process_pid,
    is_process_running,
    remove_pid_file,
    stop_process,
    write_pid_file,
)


class TestGetProcessPid:

    def test_no_file(self, tmp_path):
        assert get_process_pid(tmp_path / "x.pid") is None

    def test_live_process(self, tmp_path):
        pid_file = tmp_path / "x.pid"
        pid_file.write_text(str(os.getpid()))

        assert get_process_pid(pid_file) == os.getpid()
        assert is_process_running(pid_file) is True

    def test_garbage_content(self, tmp_path):
        pid_file = tmp_path / "x.pid"
        pid_file.write_text("not-a-pid")

        assert get_process_pid(pid_file) is None

    def test_dead_process(self, tmp_path):
        pid_file = tmp_path / "x.pid"
        pid_file.write_text("12345")

        with patch("mellowmon.pid_utils.os.kill", side_effect=ProcessLookupError):
            assert get_process_pid(pid_file) is None


class TestPidFile:

    def test_write_and_remove(self, tmp_path):
        pid_file = tmp_path / "sub" / "x.pid"

        write_pid_file(pid_file)
        assert pid_file.read_text() == str(os.getpid())

        remove_pid_file(pid_file)
        assert not pid_file.exists()

    def test_remove_missing_is_quiet(self, tmp_path):
        remove_pid_file(tmp_path / "x.pid")


class TestAcquireDaemonLock:

    def test_acquires_fresh_lock(self, tmp_path):
        pid_file = tmp_path / "x.pid"

        assert acquire_daemon_lock(pid_file) == (True, None)
        assert pid_file.read_text() == str(os.getpid())

    def test_replaces_stale_file(self, tmp_path):
        pid_file = tmp_path / "x.pid"
        pid_file.write_text("garbage")

        assert acquire_daemon_lock(pid_file) == (True, None)

    def test_held_by_other_process(self, tmp_path):
        pid_file = tmp_path / "x.pid"
        pid_file.write_text(str(os.getppid()))

        assert acquire_daemon_lock(pid_file) == (False, os.getppid())


class TestStopProcess:

    def test_not_running(self, tmp_path):
        pid_file = tmp_path / "x.pid"
        pid_file.write_text("garbage")

        assert stop_process(pid_file) is False
        assert not pid_file.exists()

    def test_sends_sigterm(self, tmp_path):
        pid_file = tmp_path / "x.pid"
        pid_file.write_text("4321")

        with patch("mellowmon.pid_utils.get_process_pid", return_value=4321), \
                patch("mellowmon.pid_utils.os.kill") as mock_kill:
            assert stop_process(pid_file) is True

        mock_kill.assert_called_once_with(4321, signal.SIGTERM)
        assert not pid_file.exists()
