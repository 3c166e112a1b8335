"""Tests for the inspectr poll loop."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from helpers import make_result
from inspectr.config import settings
from inspectr.detector import DetectionError
from inspectr.k8s_client import SnapshotFetchError
from inspectr.models import WorkloadContainer
from inspectr.monitor import InspectrMonitor
from inspectr.schedule import AlertSchedule

KEY = "proj:clus:nginx:web:app"

# Tuesday 2024-01-02
IN_WINDOW = datetime(2024, 1, 2, 14, 32, tzinfo=timezone.utc)
OUT_OF_WINDOW = datetime(2024, 1, 2, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_k8s():
    k8s = MagicMock()
    k8s.list_workload_containers = AsyncMock(
        return_value=[
            WorkloadContainer("default", "Running", "web-123-abc", "app", "nginx:1.0"),
            WorkloadContainer("default", "Running", "web-123-def", "app", "nginx:1.0"),
        ]
    )
    return k8s


@pytest.fixture
def mock_detector():
    detector = MagicMock()
    detector.detect = AsyncMock(
        return_value={KEY: [make_result("1.0", "default", ["1.1"], name="nginx", quantity=2)]}
    )
    return detector


@pytest.fixture
def clock():
    return MagicMock(return_value=OUT_OF_WINDOW)


@pytest.fixture
def monitor(mock_k8s, mock_detector, clock, settings_env, monkeypatch):
    monkeypatch.setattr(settings, "project_name", "proj")
    monkeypatch.setattr(settings, "cluster_name", "clus")
    return InspectrMonitor(
        k8s=mock_k8s,
        detector=mock_detector,
        schedule=AlertSchedule.parse("TUESDAY|1430"),
        tz=timezone.utc,
        clock=clock,
    )


@pytest.fixture(autouse=True)
def output():
    with patch("inspectr.monitor.output_results", new=AsyncMock(return_value=True)) as out:
        yield out


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_groups_snapshot_before_detection(self, monitor, mock_detector):
        await monitor.run_cycle()

        groups = mock_detector.detect.await_args.args[0]
        assert list(groups) == [KEY]
        assert groups[KEY][0].quantity == 2

    @pytest.mark.asyncio
    async def test_outside_window(self, monitor, output):
        assert await monitor.run_cycle() == 60

        announced = output.await_args.args[0]
        assert list(announced) == [KEY]
        assert output.await_args.args[1] is False
        assert monitor.cache.get(KEY) == {"1.0|default"}

    @pytest.mark.asyncio
    async def test_repeat_not_announced(self, monitor, output):
        await monitor.run_cycle()
        await monitor.run_cycle()

        assert output.await_args.args[0] == {}

    @pytest.mark.asyncio
    async def test_within_window_reports_everything(self, monitor, output, clock):
        await monitor.run_cycle()
        clock.return_value = IN_WINDOW

        assert await monitor.run_cycle() == 360
        assert list(output.await_args.args[0]) == [KEY]
        assert output.await_args.args[1] is True

    @pytest.mark.asyncio
    async def test_snapshot_failure_uses_fallback_sleep(self, monitor, mock_k8s, mock_detector, output):
        mock_k8s.list_workload_containers.side_effect = SnapshotFetchError("forbidden")

        assert await monitor.run_cycle() == 300
        mock_detector.detect.assert_not_awaited()
        output.assert_not_awaited()
        assert monitor.get_status()["last_result"] == "failure"

    @pytest.mark.asyncio
    async def test_detection_failure_uses_fallback_sleep(self, monitor, mock_detector, output):
        mock_detector.detect.side_effect = DetectionError("boom")

        assert await monitor.run_cycle() == 300
        output.assert_not_awaited()
        assert len(monitor.cache) == 0

    @pytest.mark.asyncio
    async def test_failed_cycle_observes_duration(self, monitor, mock_k8s):
        mock_k8s.list_workload_containers.side_effect = SnapshotFetchError("forbidden")

        with patch("inspectr.monitor.inspectr_cycle_duration_seconds") as histogram:
            await monitor.run_cycle()

        histogram.observe.assert_called_once()

    @pytest.mark.asyncio
    async def test_unknown_identity_retried(self, monitor, mock_detector):
        with patch(
            "inspectr.monitor.cluster_name", new=AsyncMock(side_effect=["UNK", "clus", "other"])
        ) as lookup:
            await monitor.run_cycle()
            assert list(mock_detector.detect.await_args.args[0]) == ["proj:UNK:nginx:web:app"]

            await monitor.run_cycle()
            await monitor.run_cycle()

        assert list(mock_detector.detect.await_args.args[0]) == [KEY]
        assert lookup.await_count == 2

    @pytest.mark.asyncio
    async def test_jira_gets_announced_groups_only(self, monitor):
        jira = MagicMock()
        jira.report = AsyncMock(return_value=0)
        monitor._jira = jira

        await monitor.run_cycle()
        await monitor.run_cycle()

        jira.report.assert_awaited_once()
        assert list(jira.report.await_args.args[0]) == [KEY]


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_after_cycle(self, monitor):
        await monitor.run_cycle()

        status = monitor.get_status()
        assert status["cycles"] == 1
        assert status["last_result"] == "success"
        assert status["next_sleep_seconds"] == 60
        assert status["groups_with_upgrades"] == 1
        assert status["registered_groups"] == 1

    @pytest.mark.asyncio
    async def test_upgrades_view(self, monitor):
        await monitor.run_cycle()

        assert monitor.get_upgrades() == {
            KEY: [
                {
                    "name": "nginx",
                    "namespace": "default",
                    "quantity": 2,
                    "version": "1.0",
                    "upgrades": ["1.1"],
                }
            ]
        }

    def test_initial_state(self, monitor):
        status = monitor.get_status()
        assert status["running"] is False
        assert status["cycles"] == 0
        assert monitor.get_upgrades() == {}


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_stop(self, monitor):
        monitor.run_cycle = AsyncMock(return_value=3600)

        await monitor.start()
        assert monitor.get_status()["running"] is True
        await monitor.stop()

        assert monitor.get_status()["running"] is False
