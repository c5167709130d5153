"""
Tests for DriftDetector count checks and auto-sync.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from replica_core.models.config import CountMonitorConfig, FullSyncConfig
from replica_core.models.results import FullSyncResult
from replica_core.monitor.drift import DriftDetector
from replica_core.sync.full_sync import FullSyncDriver


def monitor_config(**overrides) -> CountMonitorConfig:
    settings = {"verification_delay_seconds": 0, "auto_sync_threshold": 5, "sample_size": 3}
    settings.update(overrides)
    return CountMonitorConfig(**settings)


@pytest.fixture
def mock_full_sync():
    driver = Mock(spec=FullSyncDriver)
    driver.run = AsyncMock(return_value=FullSyncResult())
    return driver


class TestCountCheck:
    """Count comparison results."""

    @pytest.mark.asyncio
    async def test_matching_counts_do_nothing(self, make_source, target, documents, mock_full_sync):
        docs = documents(10)
        source = make_source(docs)
        await target.bulk_upsert(docs)
        detector = DriftDetector(source, target, mock_full_sync, monitor_config())

        result = await detector.check_counts()

        assert result.is_match is True
        assert result.difference == 0
        assert result.auto_sync_triggered is False
        mock_full_sync.run.assert_not_called()
        assert detector.stats.checks_performed == 1
        assert detector.stats.mismatches_detected == 0

    @pytest.mark.asyncio
    async def test_difference_is_absolute(self, make_source, target, documents, mock_full_sync):
        await target.bulk_upsert(documents(8))
        detector = DriftDetector(make_source(documents(5)), target, mock_full_sync, monitor_config())

        result = await detector.check_counts(allow_auto_sync=False)

        assert result.difference == 3
        assert result.source_higher is False
        assert detector.stats.mismatches_detected == 1

    @pytest.mark.asyncio
    async def test_count_failure_is_raised_and_counted(self, source, target, mock_full_sync):
        target.count_documents = AsyncMock(side_effect=ConnectionError("cluster down"))
        detector = DriftDetector(source, target, mock_full_sync, monitor_config())

        with pytest.raises(ConnectionError):
            await detector.check_counts()

        assert detector.stats.errors == 1
        assert detector.stats.checks_performed == 0

    @pytest.mark.asyncio
    async def test_mismatch_samples_source_documents(self, make_source, target, documents, mock_full_sync):
        source = make_source(documents(10))
        target.document_exists = AsyncMock(return_value=False)
        detector = DriftDetector(source, target, mock_full_sync, monitor_config(auto_sync_enabled=False))

        await detector.check_counts()

        assert target.document_exists.await_count == 3


class TestAutoSync:
    """Automatic full sync on large mismatches."""

    @pytest.mark.asyncio
    async def test_large_mismatch_triggers_sync_and_verification(self, make_source, target, documents):
        source = make_source(documents(20))
        full_sync = FullSyncDriver(source, target, FullSyncConfig(page_delay_seconds=0))
        detector = DriftDetector(source, target, full_sync, monitor_config(auto_sync_batch_size=7))

        result = await detector.check_counts()
        assert result.auto_sync_triggered is True
        assert result.difference == 20

        await detector.wait_for_auto_sync()

        assert len(target.documents) == 20
        assert [len(call) for call in target.bulk_calls] == [7, 7, 6]
        assert detector.stats.auto_sync_triggered == 1
        assert detector.stats.checks_performed == 2
        assert detector.last_result.is_match is True

    @pytest.mark.asyncio
    async def test_difference_at_threshold_does_not_trigger(self, make_source, documents, target, mock_full_sync):
        detector = DriftDetector(make_source(documents(5)), target, mock_full_sync, monitor_config())

        result = await detector.check_counts()

        assert result.difference == 5
        assert result.auto_sync_triggered is False
        mock_full_sync.run.assert_not_called()

    @pytest.mark.asyncio
    async def test_disabled_auto_sync_does_not_trigger(self, make_source, documents, target, mock_full_sync):
        detector = DriftDetector(make_source(documents(50)), target, mock_full_sync, monitor_config())
        detector.set_auto_sync_enabled(False)

        result = await detector.check_counts()

        assert result.auto_sync_triggered is False
        mock_full_sync.run.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_auto_sync_is_counted(self, make_source, documents, target, mock_full_sync):
        mock_full_sync.run.side_effect = RuntimeError("source went away")
        detector = DriftDetector(make_source(documents(50)), target, mock_full_sync, monitor_config())

        await detector.check_counts()
        await detector.wait_for_auto_sync()

        assert detector.stats.errors == 1
        assert detector.stats.checks_performed == 1
        assert detector.auto_sync_in_progress is False

    @pytest.mark.asyncio
    async def test_stop_cancels_running_auto_sync(self, make_source, documents, target):
        source = make_source(documents(30))
        full_sync = FullSyncDriver(source, target, FullSyncConfig(batch_size=5, page_delay_seconds=1.0))
        detector = DriftDetector(source, target, full_sync, monitor_config())

        await detector.check_counts()
        assert detector.auto_sync_in_progress is True

        await detector.stop()

        assert detector.auto_sync_in_progress is False
        assert full_sync.is_running is False


class TestRuntimeConfiguration:
    """Runtime auto-sync settings."""

    def test_threshold_update(self, source, target, mock_full_sync):
        detector = DriftDetector(source, target, mock_full_sync, monitor_config())

        detector.set_auto_sync_threshold(250)

        assert detector.get_auto_sync_config()["threshold"] == 250

    def test_negative_threshold_rejected(self, source, target, mock_full_sync):
        detector = DriftDetector(source, target, mock_full_sync, monitor_config())

        with pytest.raises(ValueError):
            detector.set_auto_sync_threshold(-1)

    def test_auto_sync_config_snapshot(self, source, target, mock_full_sync):
        detector = DriftDetector(source, target, mock_full_sync, monitor_config(auto_sync_enabled=False))

        config = detector.get_auto_sync_config()

        assert config == {
            "enabled": False,
            "threshold": 5,
            "triggered": 0,
            "last_triggered": None,
            "in_progress": False
        }

    def test_stats_include_timer(self, source, target, mock_full_sync):
        detector = DriftDetector(source, target, mock_full_sync, monitor_config())

        stats = detector.get_stats()

        assert stats["timer"]["name"] == "count-monitor"
        assert stats["is_running"] is False
