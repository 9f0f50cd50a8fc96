"""Tests for supervisor module."""

from datetime import datetime, timedelta

import pytest

from mellowmon.monitor_state import RestartSchedule
from mellowmon.supervisor import BrowserSupervisor
from tests.fixtures import MockProcessController


URLS = ["https://a.test/", "https://b.test/", "https://c.test/"]


@pytest.fixture
def controller():
    return MockProcessController()


@pytest.fixture
def supervisor(controller, log, sleeps, rng):
    return BrowserSupervisor(
        controller,
        URLS,
        log,
        schedule=RestartSchedule(restart_hour=2),
        sleep=sleeps,
        rng=rng,
    )


class TestStartCloseNavigate:
    """Basic lifecycle operations."""

    def test_start_with_url_waits_then_opens(self, supervisor, controller, sleeps):
        assert supervisor.start("https://a.test/") is True

        assert controller.call_names() == ["spawn", "open_url"]
        assert controller.opened_urls == ["https://a.test/"]
        assert sleeps == [3.0]
        assert supervisor.is_busy is False

    def test_start_without_url_short_delay(self, supervisor, controller, sleeps):
        assert supervisor.start() is True

        assert controller.call_names() == ["spawn"]
        assert sleeps == [0.5]

    def test_start_spawn_failure_skips_navigation(self, supervisor, controller, sleeps):
        controller.spawn_result = False

        assert supervisor.start("https://a.test/") is True

        assert controller.opened_urls == []
        assert sleeps == []

    def test_failed_open_is_not_raised(self, supervisor, controller):
        controller.open_result = False

        assert supervisor.start("https://a.test/") is True
        assert supervisor.is_busy is False

    def test_close_when_nothing_running(self, supervisor, controller):
        assert supervisor.close() is True
        assert controller.call_names() == ["terminate_all"]

    def test_close_kills_running_browser(self, supervisor, controller):
        controller.running = True

        assert supervisor.close() is True
        assert controller.running is False

    def test_navigate_closes_waits_and_starts(self, supervisor, controller, sleeps):
        controller.running = True

        assert supervisor.navigate("https://b.test/") is True

        assert controller.call_names() == ["terminate_all", "spawn", "open_url"]
        assert controller.opened_urls == ["https://b.test/"]
        assert sleeps == [5.0, 3.0]

    def test_lock_released_after_controller_error(self, supervisor, controller):
        def explode():
            raise RuntimeError("spawn blew up")

        controller.on_spawn = explode

        with pytest.raises(RuntimeError):
            supervisor.start()

        assert supervisor.is_busy is False
        assert supervisor.current_operation is None

    def test_random_url_from_candidates(self, supervisor):
        urls = {supervisor.random_url() for _ in range(30)}

        assert urls <= set(URLS)

    def test_requires_candidates(self, controller, log):
        with pytest.raises(ValueError):
            BrowserSupervisor(controller, [], log)


class TestFailFast:
    """Operations issued while another is in flight are dropped."""

    def test_close_rejected_during_start(self, supervisor, controller):
        results = []
        controller.on_spawn = lambda: results.append(supervisor.close())

        supervisor.start()

        assert results == [False]
        assert "terminate_all" not in controller.call_names()

    def test_navigate_rejected_during_close(self, supervisor, controller):
        results = []
        controller.running = True
        controller.on_terminate = lambda: results.append(supervisor.navigate("https://c.test/"))

        supervisor.close()

        assert results == [False]
        assert controller.call_names() == ["terminate_all"]
        assert controller.opened_urls == []

    def test_scheduled_restart_rejected_during_navigate(self, supervisor, controller):
        results = []
        controller.on_spawn = lambda: results.append(supervisor.scheduled_restart())

        supervisor.navigate("https://a.test/")

        assert results == [False]
        assert supervisor.schedule.skip_next_liveness is False
        assert controller.call_names().count("terminate_all") == 1

    def test_start_rejected_during_start(self, supervisor, controller):
        results = []
        controller.on_spawn = lambda: results.append(supervisor.start("https://b.test/"))

        supervisor.start()

        assert results == [False]
        assert controller.call_names().count("spawn") == 1

    def test_busy_reflects_operation(self, supervisor, controller):
        seen = []
        controller.on_terminate = lambda: seen.append((supervisor.is_busy, supervisor.current_operation))

        supervisor.close()

        assert seen == [(True, "close")]
        assert supervisor.is_busy is False


class TestScheduledRestart:
    """Daily restart and the liveness skip that follows it."""

    def test_fires_in_restart_hour(self, supervisor, controller):
        controller.running = True
        now = datetime(2024, 5, 1, 2, 0, 30)

        assert supervisor.check_scheduled_restart(now) is True

        assert controller.running is False
        assert supervisor.schedule.last_restart_date == now.date()
        assert supervisor.schedule.skip_next_liveness is True

    def test_does_not_fire_outside_restart_hour(self, supervisor, controller):
        assert supervisor.check_scheduled_restart(datetime(2024, 5, 1, 3, 0)) is False
        assert controller.calls == []

    def test_fires_once_per_day(self, supervisor):
        first = datetime(2024, 5, 1, 2, 0)

        assert supervisor.check_scheduled_restart(first) is True
        assert supervisor.check_scheduled_restart(first + timedelta(minutes=1)) is False
        assert supervisor.check_scheduled_restart(first + timedelta(minutes=59)) is False
        assert supervisor.check_scheduled_restart(first + timedelta(days=1)) is True

    def test_busy_restart_is_skipped_for_the_day(self, supervisor, controller):
        now = datetime(2024, 5, 1, 2, 0)
        results = []
        controller.on_spawn = lambda: results.append(supervisor.check_scheduled_restart(now))

        supervisor.start()

        assert results == [False]
        assert supervisor.schedule.last_restart_date == now.date()
        assert supervisor.check_scheduled_restart(now + timedelta(minutes=1)) is False
        assert "terminate_all" not in controller.call_names()
        assert supervisor.check_scheduled_restart(now + timedelta(days=1)) is True

    def test_liveness_after_restart_skipped_exactly_once(self, supervisor, controller):
        controller.running = True
        now = datetime(2024, 5, 1, 2, 0)

        # Same minute: restart check first, then the liveness check
        supervisor.check_scheduled_restart(now)
        assert supervisor.liveness_check() is False
        assert "spawn" not in controller.call_names()

        assert supervisor.liveness_check() is True
        assert controller.call_names().count("spawn") == 1
        assert controller.opened_urls[0] in URLS


class TestLiveness:
    """Tests for BrowserSupervisor.liveness_check."""

    def test_running_browser_left_alone(self, supervisor, controller):
        controller.running = True

        assert supervisor.liveness_check() is False
        assert controller.call_names() == ["is_running"]

    def test_dead_browser_relaunched_on_candidate(self, supervisor, controller):
        assert supervisor.liveness_check() is True

        assert controller.call_names() == ["is_running", "spawn", "open_url"]
        assert controller.opened_urls[0] in URLS

    def test_skipped_while_busy(self, supervisor, controller):
        results = []
        controller.on_terminate = lambda: results.append(supervisor.liveness_check())

        supervisor.close()

        assert results == [False]
        assert "is_running" not in controller.call_names()
