"""
Tests for the poll cycle, on-demand meter checks and scheduler wiring.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gridwatch.exceptions import MeterNotFoundError, NoReadingError
from gridwatch.meters.schemas import ActiveMeter
from gridwatch.monitoring.poller import CycleSummary, MeterPoller
from gridwatch.monitoring.scheduler import (
    METER_CHECK_JOB_ID,
    _run_scheduled_cycle,
    check_meter_abnormalities,
    setup_apscheduler,
)

from tests.conftest import make_reading

HEALTHY = ActiveMeter(id=1, dtr_number="DTR-001", meter_number="M-001")
FAULTY = ActiveMeter(id=2, dtr_number="DTR-002", meter_number="M-002")
SILENT = ActiveMeter(id=3, dtr_number="DTR-003", meter_number="M-003")


@pytest.fixture
def fleet(reading_repo):
    reading_repo.add_meter(HEALTHY, make_reading(meter_id=HEALTHY.id))
    reading_repo.add_meter(FAULTY, make_reading(meter_id=FAULTY.id, current_r=0.0))
    reading_repo.add_meter(SILENT, None)
    return reading_repo


class TestRunCycle:
    """One tick over all active meters."""

    @pytest.mark.asyncio
    async def test_summary_counts(self, poller, fleet, notification_repo):
        summary = await poller.run_cycle()

        assert summary.total_meters == 3
        assert summary.meters_with_abnormalities == 1
        assert summary.alerts_sent == 1
        assert summary.errors == []
        assert summary.skipped is False
        assert {row.meter_id for row in notification_repo.rows} == {FAULTY.id}

    @pytest.mark.asyncio
    async def test_persisting_fault_does_not_alert_again(self, poller, fleet, notification_repo):
        await poller.run_cycle()
        rows_after_first = len(notification_repo.rows)

        summary = await poller.run_cycle()

        assert summary.meters_with_abnormalities == 1
        assert summary.alerts_sent == 0
        assert len(notification_repo.rows) == rows_after_first

    @pytest.mark.asyncio
    async def test_recovery_resolves_batch(self, poller, fleet, notification_repo, engine):
        await poller.run_cycle()
        fleet.set_reading(FAULTY.id, make_reading(meter_id=FAULTY.id))

        summary = await poller.run_cycle()

        assert summary.meters_with_abnormalities == 0
        assert all(row.status == "resolved" for row in notification_repo.rows)
        assert engine.pending_timers(FAULTY.id) == []

    @pytest.mark.asyncio
    async def test_meter_failure_is_isolated(self, poller, fleet):
        fleet.failing_meters.add(HEALTHY.id)

        summary = await poller.run_cycle()

        assert summary.total_meters == 3
        assert summary.alerts_sent == 1
        assert summary.errors == [{"meter_id": HEALTHY.id, "error": "reading query failed for meter 1"}]

    @pytest.mark.asyncio
    async def test_meter_list_failure_propagates(self, poller, fleet):
        fleet.fail_active_meters = True

        with pytest.raises(ConnectionError):
            await poller.run_cycle()

        # The overlap guard is released for the next tick
        fleet.fail_active_meters = False
        summary = await poller.run_cycle()
        assert summary.skipped is False

    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self, poller, fleet):
        release = asyncio.Event()
        original = fleet.active_meters

        async def slow_active_meters():
            await release.wait()
            return await original()

        fleet.active_meters = slow_active_meters

        first = asyncio.create_task(poller.run_cycle())
        await asyncio.sleep(0)
        second = await poller.run_cycle()
        release.set()
        first_summary = await first

        assert second.skipped is True
        assert second.total_meters == 0
        assert first_summary.skipped is False
        assert first_summary.total_meters == 3

    @pytest.mark.asyncio
    async def test_status_reports_last_run(self, poller, fleet, clock):
        assert poller.get_status() == {"running": False, "last_run": None, "last_summary": None}

        await poller.run_cycle()
        status = poller.get_status()

        assert status["running"] is False
        assert status["last_run"] == clock.now().isoformat()
        assert status["last_summary"]["alerts_sent"] == 1

    def test_summary_to_dict(self):
        summary = CycleSummary(total_meters=2, meters_with_abnormalities=1, alerts_sent=1, timestamp="t")

        assert summary.to_dict() == {
            "total_meters": 2,
            "meters_with_abnormalities": 1,
            "alerts_sent": 1,
            "timestamp": "t",
            "skipped": False,
            "errors": [],
        }


class TestCheckSpecificMeter:
    """On-demand analysis without escalation side effects."""

    @pytest.mark.asyncio
    async def test_reports_flags_and_power_data(self, poller, fleet, notification_repo, notifier):
        result = await poller.check_specific_meter(FAULTY.id)

        assert result.meter_number == "M-002"
        assert result.dtr_number == "DTR-002"
        assert result.feeder_name == "Feeder 1"
        assert result.has_abnormalities is True
        assert result.abnormality_summary == ["LT Fuse Blown (R - Phase)"]
        assert result.power_data["c_r_ph"] == "0.000"
        assert result.error_signature == "LT Fuse Blown (R - Phase):0.000;"

        assert notification_repo.rows == []
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_unknown_meter(self, poller, fleet):
        with pytest.raises(MeterNotFoundError):
            await poller.check_specific_meter(999)

    @pytest.mark.asyncio
    async def test_meter_without_readings(self, poller, fleet):
        with pytest.raises(NoReadingError):
            await poller.check_specific_meter(SILENT.id)


class TestScheduler:

    def test_setup_apscheduler_registers_single_instance_job(self, poller):
        scheduler = MagicMock()

        returned = setup_apscheduler(scheduler, poller=poller, interval_seconds=30)

        assert returned is poller
        scheduler.add_job.assert_called_once()
        args, kwargs = scheduler.add_job.call_args
        assert args[0] is _run_scheduled_cycle
        assert args[1] == "interval"
        assert kwargs["seconds"] == 30
        assert kwargs["args"] == [poller]
        assert kwargs["id"] == METER_CHECK_JOB_ID
        assert kwargs["max_instances"] == 1
        assert kwargs["coalesce"] is True

    @pytest.mark.asyncio
    async def test_scheduled_cycle_swallows_cycle_failure(self):
        poller = MagicMock()
        poller.run_cycle = AsyncMock(side_effect=ConnectionError("database unavailable"))

        await _run_scheduled_cycle(poller)

        poller.run_cycle.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_check_meter_abnormalities_returns_summary_dict(self, poller, fleet):
        with patch("gridwatch.monitoring.scheduler.get_poller", return_value=poller):
            result = await check_meter_abnormalities()

        assert result["total_meters"] == 3
        assert result["meters_with_abnormalities"] == 1
        assert result["alerts_sent"] == 1
        assert "timestamp" in result
