"""Tests for daemon_logging module."""

import threading

from mellowmon.daemon_logging import BaseDaemonLogger, create_monitor_logger
from mellowmon.settings import get_log_path


class TestBaseDaemonLogger:
    """Tests for BaseDaemonLogger."""

    def test_creates_parent_directory(self, tmp_path):
        BaseDaemonLogger(tmp_path / "nested" / "dir" / "monitor.log")

        assert (tmp_path / "nested" / "dir").is_dir()

    def test_levels_written_to_file(self, log):
        log.info("hello")
        log.warn("careful")
        log.error("broken")
        log.success("done")
        log.browser("launched")

        lines = log.log_file.read_text().splitlines()
        assert "[INFO] hello" in lines[0]
        assert "[WARN] careful" in lines[1]
        assert "[ERROR] broken" in lines[2]
        assert "[INFO] done" in lines[3]
        assert "[INFO] launched" in lines[4]

    def test_debug_only_goes_to_file(self, log, capsys):
        log.debug("quiet")

        assert "[DEBUG] quiet" in log.log_file.read_text()
        assert "quiet" not in capsys.readouterr().out

    def test_info_goes_to_console(self, log, capsys):
        log.info("visible")

        assert "visible" in capsys.readouterr().out

    def test_section(self, log):
        log.section("UPLOAD")

        assert "=== UPLOAD ===" in log.log_file.read_text()

    def test_concurrent_writers_do_not_interleave(self, log):
        def write(n):
            for i in range(50):
                log.debug(f"thread-{n}-line-{i}")

        threads = [threading.Thread(target=write, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = log.log_file.read_text().splitlines()
        assert len(lines) == 200
        assert all(line.startswith("[") and "[DEBUG] thread-" in line for line in lines)


class TestCreateMonitorLogger:

    def test_default_path(self, isolated_state_dir):
        logger = create_monitor_logger()

        assert logger.log_file == get_log_path()
        assert isolated_state_dir.is_dir()

    def test_explicit_path(self, tmp_path):
        logger = create_monitor_logger(tmp_path / "x.log")

        assert logger.log_file == tmp_path / "x.log"
