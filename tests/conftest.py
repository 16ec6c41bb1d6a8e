"""Shared test fixtures and in-memory collaborators for gridwatch tests."""
import itertools
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from gridwatch.escalation.engine import EscalationEngine
from gridwatch.escalation.levels import EscalationContact, EscalationLevel
from gridwatch.escalation.repository import NotificationRepository, normalize_fields
from gridwatch.escalation.timers import ManualClock, ManualTimerService
from gridwatch.meters.repository import ReadingRepository
from gridwatch.meters.schemas import ActiveMeter, MeterDetails, MeterReading
from gridwatch.monitoring.poller import MeterPoller
from gridwatch.notifications.notifier import ContactOutcome


START = datetime(2025, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# Readings
# =============================================================================

def make_reading(meter_id: int = 42, **overrides) -> MeterReading:
    """A healthy three-phase reading; override fields to inject faults."""
    values = dict(
        meter_id=meter_id,
        timestamp=START,
        voltage_r=230.0,
        voltage_y=231.0,
        voltage_b=229.0,
        current_r=5.0,
        current_y=5.2,
        current_b=5.1,
        power_factor=0.95,
        neutral_current=2.0,
        frequency=50.0,
    )
    values.update(overrides)
    return MeterReading(**values)


class StubReadingRepository(ReadingRepository):
    def __init__(self):
        self.meters: List[ActiveMeter] = []
        self.readings: Dict[int, Optional[MeterReading]] = {}
        self.details: Dict[int, MeterDetails] = {}
        self.failing_meters = set()
        self.fail_active_meters = False

    def add_meter(self, meter: ActiveMeter, reading: Optional[MeterReading] = None) -> None:
        self.meters.append(meter)
        self.readings[meter.id] = reading
        self.details[meter.id] = MeterDetails(
            id=meter.id,
            dtr_number=meter.dtr_number,
            meter_number=meter.meter_number,
            serial_number=meter.serial_number,
            feeder_name="Feeder 1",
        )

    def set_reading(self, meter_id: int, reading: Optional[MeterReading]) -> None:
        self.readings[meter_id] = reading

    async def active_meters(self) -> List[ActiveMeter]:
        if self.fail_active_meters:
            raise ConnectionError("database unavailable")
        return list(self.meters)

    async def latest_reading(self, meter_id: int) -> Optional[MeterReading]:
        if meter_id in self.failing_meters:
            raise RuntimeError(f"reading query failed for meter {meter_id}")
        return self.readings.get(meter_id)

    async def get_meter(self, meter_id: int) -> Optional[MeterDetails]:
        return self.details.get(meter_id)


# =============================================================================
# Notifications
# =============================================================================

class InMemoryNotificationRepository(NotificationRepository):
    def __init__(self):
        self.rows = []
        self._ids = itertools.count(1)

    async def create(self, notification):
        notification.id = next(self._ids)
        self.rows.append(notification)
        return notification

    async def update_by_id(self, notification_id, fields):
        for row in self.rows:
            if row.id == notification_id:
                for key, value in normalize_fields(fields).items():
                    setattr(row, key, value)

    async def update_many(self, criteria, fields):
        matched = [row for row in self.rows if criteria.matches(row)]
        for row in matched:
            for key, value in normalize_fields(fields).items():
                setattr(row, key, value)
        return len(matched)

    async def find_many(self, criteria):
        return [row for row in self.rows if criteria.matches(row)]

    def for_level(self, level: int):
        return [row for row in self.rows if row.level == level]


class RecordingNotifier:
    """Notifier double that records every fan-out."""

    def __init__(self, succeed: bool = True):
        self.calls = []
        self.succeed = succeed

    async def send(self, contacts, template_vars, level_name="Alert"):
        self.calls.append({"contacts": list(contacts), "vars": template_vars, "level_name": level_name})
        return [
            ContactOutcome(recipient=c.phone or c.email, channel="sms", success=self.succeed)
            for c in contacts
        ]

    def levels_sent(self) -> List[str]:
        return [call["level_name"] for call in self.calls]


# =============================================================================
# Fixtures
# =============================================================================

TEST_LEVELS = (
    EscalationLevel(0, "Created", 0, (EscalationContact("LM", "Line Manager", phone="910000000000"),)),
    EscalationLevel(1, "Level 1", 15, (EscalationContact("LI", "Line Inspector", phone="910000000001"),)),
    EscalationLevel(2, "Level 2", 20, (EscalationContact("AE", "Assistant Engineer", phone="910000000002"),)),
)


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def timers(clock):
    return ManualTimerService(clock)


@pytest.fixture
def notification_repo():
    return InMemoryNotificationRepository()


@pytest.fixture
def reading_repo():
    return StubReadingRepository()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def meter():
    return ActiveMeter(id=42, dtr_number="DTR-002", meter_number="23010587", location_id=7, serial_number="SN-42")


@pytest.fixture
def engine(notification_repo, reading_repo, notifier, timers, clock):
    return EscalationEngine(
        notifications=notification_repo,
        readings=reading_repo,
        notifier=notifier,
        levels=TEST_LEVELS,
        timers=timers,
        clock=clock,
        alert_timezone="UTC",
    )


@pytest.fixture
def poller(reading_repo, engine):
    return MeterPoller(reading_repo, engine)
