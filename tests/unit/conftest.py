"""
Unit test configuration for Mellowmon.

Every test gets its own state directory so nothing touches ~/.mellowmon.
"""

import random

import pytest

from mellowmon import config
from mellowmon.daemon_logging import BaseDaemonLogger
from mellowmon.segment_log import SegmentLog


@pytest.fixture(autouse=True)
def isolated_state_dir(tmp_path, monkeypatch):
    """Point MELLOWMON_STATE_DIR and the config file at a temp directory."""
    state_dir = tmp_path / "state"
    monkeypatch.setenv("MELLOWMON_STATE_DIR", str(state_dir))
    monkeypatch.setattr(config, "CONFIG_PATH", state_dir / "config.yaml")
    return state_dir


@pytest.fixture
def log(tmp_path):
    return BaseDaemonLogger(tmp_path / "logs" / "monitor.log")


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache_data"


@pytest.fixture
def segment_log(cache_dir, log):
    return SegmentLog(cache_dir, log)


@pytest.fixture
def sleeps():
    """Recorder standing in for time.sleep."""

    class _Sleeps(list):
        def __call__(self, seconds):
            self.append(seconds)

    return _Sleeps()


@pytest.fixture
def rng():
    return random.Random(1234)
