"""
Tests for escalation levels, notification status lifecycle and timers.
"""

import asyncio
from datetime import timedelta

import pytest

from gridwatch.escalation.levels import (
    ESCALATION_LEVELS,
    EscalationContact,
    EscalationLevel,
    validate_levels,
)
from gridwatch.escalation.models import EscalationNotification, NotificationStatus, transition
from gridwatch.escalation.repository import NotificationFilter, normalize_fields
from gridwatch.escalation.timers import AsyncioTimerService, ManualClock, ManualTimerService
from gridwatch.exceptions import EscalationConfigError, InvalidTransitionError

from tests.conftest import START


class TestEscalationLevels:

    def test_default_chain(self):
        assert [level.delay_minutes for level in ESCALATION_LEVELS] == [0, 15, 20, 30, 45, 60]
        assert [level.contacts[0].role for level in ESCALATION_LEVELS] == [
            "LM", "LI", "AE", "ADE", "DE", "Management",
        ]
        assert validate_levels(ESCALATION_LEVELS) == ESCALATION_LEVELS

    def test_delay_seconds(self):
        assert ESCALATION_LEVELS[1].delay_seconds == 900.0

    @pytest.mark.parametrize("levels", [
        (),
        (EscalationLevel(0, "Created", 10),),
        (EscalationLevel(0, "Created", 0), EscalationLevel(2, "Level 2", 20)),
        (EscalationLevel(0, "Created", 0), EscalationLevel(1, "Level 1", -5)),
    ])
    def test_invalid_tables_rejected(self, levels):
        with pytest.raises(EscalationConfigError):
            validate_levels(levels)


class TestStatusTransitions:
    """active -> sent -> resolved, active -> resolved; resolved is terminal."""

    @pytest.mark.parametrize("current,target", [
        ("active", "sent"),
        ("active", "resolved"),
        ("sent", "resolved"),
    ])
    def test_allowed(self, current, target):
        assert transition(current, target) == NotificationStatus(target)

    @pytest.mark.parametrize("current,target", [
        ("sent", "active"),
        ("resolved", "sent"),
        ("resolved", "active"),
        ("active", "active"),
        ("resolved", "resolved"),
    ])
    def test_rejected(self, current, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(current, target)

        assert exc_info.value.current == current
        assert exc_info.value.target == target


class TestNotificationFilter:

    def _notification(self, **overrides):
        values = dict(
            id=1, meter_id=42, abnormality_type="Unbalanced Load", level=0, message="m",
            status="active", created_at=START, scheduled_for=START, resolved_at=None,
        )
        values.update(overrides)
        return EscalationNotification(**values)

    def test_open_filter(self):
        criteria = NotificationFilter(
            meter_id=42,
            statuses=(NotificationStatus.ACTIVE, NotificationStatus.SENT),
            unresolved_only=True,
        )

        assert criteria.matches(self._notification())
        assert criteria.matches(self._notification(status="sent"))
        assert not criteria.matches(self._notification(status="resolved"))
        assert not criteria.matches(self._notification(meter_id=7))
        assert not criteria.matches(self._notification(resolved_at=START))

    def test_id_and_level_filter(self):
        criteria = NotificationFilter(ids=[1, 2], level=3)

        assert criteria.matches(self._notification(level=3))
        assert not criteria.matches(self._notification(level=2))
        assert not criteria.matches(self._notification(id=9, level=3))

    def test_normalize_fields_stores_enum_values(self):
        assert normalize_fields({"status": NotificationStatus.SENT, "level": 2}) == {"status": "sent", "level": 2}

    def test_to_dict(self):
        data = self._notification(dtr_number="DTR-1", meter_number="M-1").to_dict()

        assert data["status"] == "active"
        assert data["created_at"] == START.isoformat()
        assert data["sent_at"] is None


class TestManualTimers:

    @pytest.mark.asyncio
    async def test_fires_in_due_order_with_clock_at_fire_time(self):
        clock = ManualClock(START)
        timers = ManualTimerService(clock)
        fired = []

        def record(name):
            async def callback():
                fired.append((name, clock.now()))
            return callback

        timers.schedule((1, 2), 1200, record("late"))
        timers.schedule((1, 1), 900, record("early"))

        assert await timers.advance(1000) == 1
        assert fired == [("early", START + timedelta(seconds=900))]
        assert clock.now() == START + timedelta(seconds=1000)

        assert await timers.run_until_idle() == 1
        assert fired[-1] == ("late", START + timedelta(seconds=1200))

    @pytest.mark.asyncio
    async def test_cancelled_timer_never_fires(self):
        clock = ManualClock(START)
        timers = ManualTimerService(clock)
        fired = []

        async def callback():
            fired.append(True)

        timers.schedule((1, 1), 60, callback)
        assert timers.cancel((1, 1)) is True
        assert timers.cancel((1, 1)) is False

        assert await timers.advance(120) == 0
        assert fired == []

    @pytest.mark.asyncio
    async def test_rescheduling_replaces_existing_timer(self):
        clock = ManualClock(START)
        timers = ManualTimerService(clock)
        fired = []

        async def first():
            fired.append("first")

        async def second():
            fired.append("second")

        timers.schedule((1, 1), 60, first)
        timers.schedule((1, 1), 90, second)

        await timers.run_until_idle()
        assert fired == ["second"]

    def test_clock_cannot_move_backwards(self):
        clock = ManualClock(START)

        with pytest.raises(ValueError):
            clock.set(START - timedelta(seconds=1))


class TestAsyncioTimers:

    @pytest.mark.asyncio
    async def test_fires_on_event_loop(self):
        timers = AsyncioTimerService()
        done = asyncio.Event()

        async def callback():
            done.set()

        timers.schedule((1, 1), 0.01, callback)
        await asyncio.wait_for(done.wait(), timeout=1)

        assert timers.pending_keys() == []

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        timers = AsyncioTimerService()
        fired = []

        async def callback():
            fired.append(True)

        timers.schedule((1, 1), 0.05, callback)
        timers.schedule((2, 1), 0.05, callback)

        assert timers.cancel_all() == 2
        await asyncio.sleep(0.1)
        assert fired == []


def test_contact_defaults():
    contact = EscalationContact(role="LM", name="Line Manager")

    assert contact.phone is None
    assert contact.email is None
