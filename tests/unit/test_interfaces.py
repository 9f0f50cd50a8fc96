"""
Tests that real and mock implementations satisfy the protocols.
"""

from mellowmon.collector_client import CollectorClient
from mellowmon.implementations import RealConnectivityProbe, select_process_controller
from mellowmon.protocols import CollectorInterface, ConnectivityProbe, ProcessController
from tests.fixtures import MockCollector, MockConnectivityProbe, MockProcessController


class TestProtocolConformance:

    def test_process_controllers(self):
        assert isinstance(MockProcessController(), ProcessController)
        for platform in ("win32", "darwin", "linux"):
            assert isinstance(select_process_controller(platform), ProcessController)

    def test_connectivity_probes(self):
        assert isinstance(MockConnectivityProbe(), ConnectivityProbe)
        assert isinstance(RealConnectivityProbe(platform="linux"), ConnectivityProbe)

    def test_collectors(self):
        assert isinstance(MockCollector(), CollectorInterface)
        assert isinstance(CollectorClient(), CollectorInterface)


class TestMockProcessController:

    def test_records_calls(self):
        controller = MockProcessController()

        controller.spawn()
        controller.open_url("https://a.test/")
        controller.is_running()
        controller.terminate_all()

        assert controller.call_names() == ["spawn", "open_url", "is_running", "terminate_all"]
        assert controller.opened_urls == ["https://a.test/"]
        assert controller.running is False

    def test_terminate_reports_previous_state(self):
        controller = MockProcessController(running=True)

        assert controller.terminate_all() is True
        assert controller.terminate_all() is False
