"""Unit tests for the periodic sync driver."""

import asyncio
import threading

from mailsift.sync import SyncReport, SyncScheduler, SyncStatus


class BlockingService:
    """Sync service whose cycle waits until released."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    async def run_cycle(self) -> SyncReport:
        self.calls += 1
        self.started.set()
        await asyncio.to_thread(self.release.wait, 5)
        return SyncReport(status=SyncStatus.OK, corpus_size=3)


class SlowService:
    async def run_cycle(self) -> SyncReport:
        await asyncio.sleep(5)
        return SyncReport(status=SyncStatus.OK)


class TestSyncScheduler:
    """Test suite for SyncScheduler."""

    def test_run_once_returns_report(self, settings) -> None:
        service = BlockingService()
        service.release.set()
        scheduler = SyncScheduler(service, settings)

        report = scheduler.run_once()

        assert report is not None
        assert report.status is SyncStatus.OK
        assert service.calls == 1

    def test_overlapping_tick_is_skipped(self, settings) -> None:
        """A tick that arrives while a cycle runs does nothing."""
        service = BlockingService()
        scheduler = SyncScheduler(service, settings)
        results = []
        worker = threading.Thread(target=lambda: results.append(scheduler.run_once()))

        worker.start()
        assert service.started.wait(5)
        skipped = scheduler.run_once()
        service.release.set()
        worker.join(5)

        assert skipped is None
        assert service.calls == 1
        assert results[0].corpus_size == 3

    def test_cycle_timeout_is_abandoned(self, settings) -> None:
        settings.sync_cycle_timeout_seconds = 0.05
        scheduler = SyncScheduler(SlowService(), settings)

        assert scheduler.run_once() is None
        assert scheduler.run_once() is None

    def test_start_and_stop(self, settings) -> None:
        settings.sync_interval_seconds = 3600
        service = BlockingService()
        service.release.set()
        scheduler = SyncScheduler(service, settings)

        scheduler.start(run_immediately=False)
        scheduler.start(run_immediately=False)
        assert scheduler.running is True

        scheduler.stop()
        assert scheduler.running is False
        assert service.calls == 0
