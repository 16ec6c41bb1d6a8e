"""
Meter Poller

Fixed-cadence driver for the escalation engine. Once per tick it:
1. Loads every ACTIVE, in-use meter
2. Fetches each meter's latest reading (meters with none are skipped)
3. Hands the reading to the EscalationEngine
4. Returns a cycle summary

A failure on one meter is logged and the cycle moves on. A failure loading
the meter list aborts the cycle and propagates to the scheduler, which
simply tries again on the next tick.

Uses APScheduler for job scheduling.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from gridwatch.detection.analyzer import analyze, has_abnormalities, abnormality_summary, format_power_data
from gridwatch.detection.signature import generate_error_signature
from gridwatch.escalation.engine import EscalationEngine, EvaluationOutcome
from gridwatch.escalation.timers import Clock
from gridwatch.exceptions import MeterNotFoundError, NoReadingError
from gridwatch.meters.repository import ReadingRepository

logger = logging.getLogger(__name__)

ABNORMAL_OUTCOMES = (
    EvaluationOutcome.DUPLICATE,
    EvaluationOutcome.SUPPRESSED,
    EvaluationOutcome.ESCALATED,
)


@dataclass
class CycleSummary:
    """Result of one poll cycle."""
    total_meters: int
    meters_with_abnormalities: int
    alerts_sent: int
    timestamp: str
    skipped: bool = False
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MeterCheckResult:
    """On-demand analysis of one meter's latest reading."""
    meter_id: int
    meter_number: str
    serial_number: Optional[str]
    dtr_number: str
    feeder_name: str
    reading_date: str
    abnormalities: Dict[str, bool]
    has_abnormalities: bool
    abnormality_summary: List[str]
    power_data: Dict[str, str]
    error_signature: str

    def to_dict(self) -> dict:
        return asdict(self)


class MeterPoller:
    """
    Runs poll cycles over all active meters.

    Cycles never overlap: if a tick arrives while the previous cycle is
    still running, the new tick is skipped.
    """

    def __init__(
        self,
        readings: ReadingRepository,
        engine: EscalationEngine,
        clock: Optional[Clock] = None,
    ):
        self.readings = readings
        self.engine = engine
        self.clock = clock or engine.clock
        self._running = False
        self._last_run = None
        self._last_summary: Optional[CycleSummary] = None

    async def run_cycle(self) -> CycleSummary:
        if self._running:
            logger.warning("Previous meter check still running, skipping this tick")
            return CycleSummary(
                total_meters=0,
                meters_with_abnormalities=0,
                alerts_sent=0,
                timestamp=self.clock.now().isoformat(),
                skipped=True,
            )

        self._running = True
        try:
            summary = await self._run_cycle()
        finally:
            self._running = False

        self._last_summary = summary
        return summary

    async def _run_cycle(self) -> CycleSummary:
        logger.info("Starting meter abnormality check")
        self._last_run = self.clock.now()

        meters = await self.readings.active_meters()
        logger.info(f"Found {len(meters)} active meters to check")

        meters_with_abnormalities = 0
        alerts_sent = 0
        errors = []

        for meter in meters:
            try:
                reading = await self.readings.latest_reading(meter.id)
                if reading is None:
                    logger.info(f"No readings found for meter {meter.meter_number}")
                    continue

                outcome = await self.engine.evaluate(meter, reading)
                if outcome in ABNORMAL_OUTCOMES:
                    meters_with_abnormalities += 1
                if outcome == EvaluationOutcome.ESCALATED:
                    alerts_sent += 1

            except Exception as e:
                logger.error(f"Error processing meter {meter.meter_number}: {e}")
                errors.append({"meter_id": meter.id, "error": str(e)})

        summary = CycleSummary(
            total_meters=len(meters),
            meters_with_abnormalities=meters_with_abnormalities,
            alerts_sent=alerts_sent,
            timestamp=self.clock.now().isoformat(),
            errors=errors,
        )
        logger.info(
            f"Meter abnormality check completed: {meters_with_abnormalities} meters with abnormalities, "
            f"{alerts_sent} alerts sent, {len(errors)} errors"
        )
        return summary

    async def check_specific_meter(self, meter_id: int) -> MeterCheckResult:
        """
        Analyze one meter's latest reading without touching escalation state.

        Raises MeterNotFoundError / NoReadingError.
        """
        meter = await self.readings.get_meter(meter_id)
        if meter is None:
            raise MeterNotFoundError(f"Meter {meter_id} not found")

        reading = await self.readings.latest_reading(meter_id)
        if reading is None:
            raise NoReadingError(f"No readings found for meter {meter_id}")

        flags = analyze(reading)
        return MeterCheckResult(
            meter_id=meter.id,
            meter_number=meter.meter_number,
            serial_number=meter.serial_number,
            dtr_number=meter.dtr_number,
            feeder_name=meter.feeder_name,
            reading_date=reading.timestamp.isoformat(),
            abnormalities=flags,
            has_abnormalities=has_abnormalities(flags),
            abnormality_summary=abnormality_summary(flags),
            power_data=format_power_data(reading),
            error_signature=generate_error_signature(flags, reading),
        )

    def get_status(self) -> dict:
        """Poller status including last run time."""
        return {
            "running": self._running,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "last_summary": self._last_summary.to_dict() if self._last_summary else None,
        }
