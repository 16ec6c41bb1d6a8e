"""
Escalation Engine

Turns per-meter fault observations into staged notifications.

Per-meter state:
- Idle: no signature tracked
- Abnormal(signature): a fault was seen; its signature is remembered so an
  unchanged fault does not alert again

On fault onset (new signature, no open batch) one notification is created
per (raised flag, escalation level). Level 0 is dispatched immediately; each
later level is put on a timer that re-reads the meter when it fires and
either dispatches (fault persists) or resolves that level (fault gone).
When a poll sees the meter healthy again the whole open batch is resolved
and every pending timer for the meter is cancelled.

Poll evaluations and timer firings for the same meter are serialized by a
per-meter asyncio.Lock.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import timedelta
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set

from gridwatch.detection.analyzer import analyze, has_abnormalities, abnormality_summary
from gridwatch.detection.signature import generate_error_signature
from gridwatch.meters.repository import ReadingRepository
from gridwatch.meters.schemas import ActiveMeter, MeterReading
from gridwatch.notifications.templates import (
    DEFAULT_TIMEZONE,
    build_notification_message,
    build_template_vars,
)
from gridwatch.exceptions import InvalidTransitionError
from .levels import EscalationLevel, ESCALATION_LEVELS, validate_levels
from .models import EscalationNotification, NotificationStatus, OPEN_STATUSES, transition
from .repository import NotificationRepository, NotificationFilter
from .timers import Clock, SystemClock, TimerService, AsyncioTimerService

logger = logging.getLogger(__name__)


class EvaluationOutcome(str, Enum):
    """What a single poll evaluation did for a meter."""
    CLEAR = "clear"            # Healthy, nothing tracked
    RESOLVED = "resolved"      # Fault cleared; open batch resolved
    DUPLICATE = "duplicate"    # Same signature as last seen
    SUPPRESSED = "suppressed"  # New signature, but an open batch already exists
    ESCALATED = "escalated"    # New batch created and level 0 dispatched


class EscalationEngine:
    """
    Owns per-meter fault memory and the pending escalation timers.

    All collaborators are injected so each engine instance (and each test)
    has its own state.
    """

    def __init__(
        self,
        notifications: NotificationRepository,
        readings: ReadingRepository,
        notifier,
        levels: Sequence[EscalationLevel] = ESCALATION_LEVELS,
        timers: Optional[TimerService] = None,
        clock: Optional[Clock] = None,
        alert_timezone: str = DEFAULT_TIMEZONE,
    ):
        self.notifications = notifications
        self.readings = readings
        self.notifier = notifier
        self.levels = validate_levels(levels)
        self.timers = timers or AsyncioTimerService()
        self.clock = clock or SystemClock()
        self.alert_timezone = alert_timezone

        self._signatures: Dict[int, str] = {}
        self._pending: Dict[int, Set[int]] = defaultdict(set)
        self._locks: Dict[int, asyncio.Lock] = {}

    def _lock_for(self, meter_id: int) -> asyncio.Lock:
        lock = self._locks.get(meter_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[meter_id] = lock
        return lock

    # =========================================================================
    # Introspection
    # =========================================================================

    def tracked_signature(self, meter_id: int) -> Optional[str]:
        return self._signatures.get(meter_id)

    def pending_timers(self, meter_id: int) -> List[int]:
        """Levels still waiting to fire for a meter."""
        return sorted(self._pending.get(meter_id, ()))

    # =========================================================================
    # Poll-driven evaluation
    # =========================================================================

    async def evaluate(self, meter: ActiveMeter, reading: MeterReading) -> EvaluationOutcome:
        """Advance the meter's state machine for one fresh reading."""
        flags = analyze(reading)

        async with self._lock_for(meter.id):
            if has_abnormalities(flags):
                signature = generate_error_signature(flags, reading)
                return await self._handle_abnormal(meter, abnormality_summary(flags), signature)
            return await self._handle_clear(meter)

    async def _handle_abnormal(
        self,
        meter: ActiveMeter,
        abnormalities: List[str],
        signature: str,
    ) -> EvaluationOutcome:
        if self._signatures.get(meter.id) == signature:
            logger.debug(f"Meter {meter.meter_number}: fault unchanged, skipping duplicate alert")
            return EvaluationOutcome.DUPLICATE

        open_batch = await self.notifications.find_many(self._open_filter(meter.id))
        if open_batch:
            logger.info(
                f"Meter {meter.meter_number}: {len(open_batch)} open notifications already exist, "
                f"not starting a new batch"
            )
            self._signatures[meter.id] = signature
            return EvaluationOutcome.SUPPRESSED

        logger.info(f"Meter {meter.meter_number}: abnormalities detected {abnormalities}")
        await self._open_batch(meter, abnormalities)
        self._signatures[meter.id] = signature
        return EvaluationOutcome.ESCALATED

    async def _handle_clear(self, meter: ActiveMeter) -> EvaluationOutcome:
        if meter.id not in self._signatures:
            return EvaluationOutcome.CLEAR

        # In-memory state is dropped even if the resolve write below fails.
        del self._signatures[meter.id]
        cancelled = self._cancel_timers(meter.id)
        if cancelled:
            logger.info(f"Meter {meter.meter_number}: cancelled {cancelled} scheduled escalation levels")

        try:
            count = await self.notifications.update_many(
                self._open_filter(meter.id),
                {"status": NotificationStatus.RESOLVED, "resolved_at": self.clock.now()},
            )
            logger.info(f"Meter {meter.meter_number}: fault cleared, resolved {count} notifications")
        except Exception as e:
            logger.error(f"Failed to resolve notifications for meter {meter.meter_number}: {e}")

        return EvaluationOutcome.RESOLVED

    @staticmethod
    def _open_filter(meter_id: int) -> NotificationFilter:
        return NotificationFilter(meter_id=meter_id, statuses=OPEN_STATUSES, unresolved_only=True)

    # =========================================================================
    # Batch creation
    # =========================================================================

    async def _open_batch(self, meter: ActiveMeter, abnormalities: List[str]) -> None:
        now = self.clock.now()
        by_level: Dict[int, List[EscalationNotification]] = defaultdict(list)
        created_ids: List[int] = []

        try:
            for abnormality in abnormalities:
                for level in self.levels:
                    notification = EscalationNotification(
                        meter_id=meter.id,
                        abnormality_type=abnormality,
                        level=level.level,
                        message=build_notification_message(
                            level.level, abnormality, meter.dtr_number, meter.meter_number
                        ),
                        status=NotificationStatus.ACTIVE.value,
                        created_at=now,
                        scheduled_for=now + timedelta(minutes=level.delay_minutes),
                        dtr_number=meter.dtr_number,
                        meter_number=meter.meter_number,
                    )
                    created = await self.notifications.create(notification)
                    created_ids.append(created.id)
                    by_level[level.level].append(created)
        except Exception:
            # Rows from a failed batch must not stay open.
            await self._discard_partial_batch(meter, created_ids)
            raise

        logger.info(f"Meter {meter.meter_number}: created {len(created_ids)} escalation notifications")

        # Timers are registered before any level-0 send so each level fires at scheduled_for.
        immediate = []
        for level in self.levels:
            records = by_level[level.level]
            if not records:
                continue
            if level.delay_minutes == 0:
                immediate.append((level, records))
            else:
                self._schedule_level(meter, level, [n.id for n in records])

        for level, records in immediate:
            for notification in records:
                await self._dispatch(notification, level)

    async def _discard_partial_batch(self, meter: ActiveMeter, created_ids: List[int]) -> None:
        if not created_ids:
            return
        try:
            count = await self.notifications.update_many(
                NotificationFilter(ids=created_ids),
                {"status": NotificationStatus.RESOLVED, "resolved_at": self.clock.now()},
            )
            logger.warning(
                f"Meter {meter.meter_number}: batch creation failed, resolved {count} partial notifications"
            )
        except Exception as e:
            logger.error(f"Failed to discard partial batch for meter {meter.meter_number}: {e}")

    def _schedule_level(self, meter: ActiveMeter, level: EscalationLevel, notification_ids: List[int]) -> None:
        async def fire() -> None:
            await self._on_level_due(meter, level, notification_ids)

        self.timers.schedule((meter.id, level.level), level.delay_seconds, fire)
        self._pending[meter.id].add(level.level)

    def _cancel_timers(self, meter_id: int) -> int:
        levels = self._pending.pop(meter_id, set())
        cancelled = 0
        for level in levels:
            if self.timers.cancel((meter_id, level)):
                cancelled += 1
        return cancelled

    # =========================================================================
    # Timer-driven escalation
    # =========================================================================

    async def _on_level_due(self, meter: ActiveMeter, level: EscalationLevel, notification_ids: List[int]) -> None:
        async with self._lock_for(meter.id):
            pending = self._pending.get(meter.id)
            if not pending or level.level not in pending:
                logger.debug(f"Meter {meter.meter_number}: level {level.level} timer no longer pending")
                return
            pending.discard(level.level)
            if not pending:
                self._pending.pop(meter.id, None)

            records = await self.notifications.find_many(
                NotificationFilter(
                    ids=notification_ids,
                    statuses=(NotificationStatus.ACTIVE,),
                    unresolved_only=True,
                )
            )

            if await self._is_still_abnormal(meter.id):
                for notification in records:
                    await self._dispatch(notification, level)
            else:
                logger.info(f"Meter {meter.meter_number}: fault cleared, skipping {level.name}")
                for notification in records:
                    await self._resolve(notification)

    async def _is_still_abnormal(self, meter_id: int) -> bool:
        """Re-read the meter now; a missing reading or a read failure counts as cleared."""
        try:
            reading = await self.readings.latest_reading(meter_id)
        except Exception as e:
            logger.error(f"Error checking abnormality status for meter {meter_id}: {e}")
            return False
        if reading is None:
            return False
        return has_abnormalities(analyze(reading))

    # =========================================================================
    # Status changes
    # =========================================================================

    async def _dispatch(self, notification: EscalationNotification, level: EscalationLevel) -> bool:
        """Send one notification to its level's contacts and mark it sent."""
        try:
            transition(notification.status, NotificationStatus.SENT)
        except InvalidTransitionError as e:
            logger.warning(f"Not dispatching notification {notification.id}: {e}")
            return False

        template_vars = build_template_vars(
            notification.dtr_number,
            notification.meter_number,
            notification.abnormality_type,
            self.clock.now(),
            self.alert_timezone,
        )
        outcomes = await self.notifier.send(level.contacts, template_vars, level.name)
        delivered = sum(1 for outcome in outcomes if outcome.success)
        logger.info(
            f"{level.name} alert for meter {notification.meter_number} "
            f"({notification.abnormality_type}): {delivered}/{len(outcomes)} delivered"
        )

        sent_at = self.clock.now()
        try:
            await self.notifications.update_by_id(
                notification.id,
                {"status": NotificationStatus.SENT, "sent_at": sent_at},
            )
        except Exception as e:
            logger.error(f"Failed to mark notification {notification.id} as sent: {e}")
            return True

        notification.status = NotificationStatus.SENT.value
        notification.sent_at = sent_at
        return True

    async def _resolve(self, notification: EscalationNotification) -> None:
        transition(notification.status, NotificationStatus.RESOLVED)
        resolved_at = self.clock.now()
        try:
            await self.notifications.update_by_id(
                notification.id,
                {"status": NotificationStatus.RESOLVED, "resolved_at": resolved_at},
            )
        except Exception as e:
            logger.error(f"Failed to resolve notification {notification.id}: {e}")
            return
        notification.status = NotificationStatus.RESOLVED.value
        notification.resolved_at = resolved_at

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def shutdown(self) -> int:
        """Cancel every pending timer. Escalations in flight are lost."""
        self._pending.clear()
        cancelled = self.timers.cancel_all()
        if cancelled:
            logger.warning(f"Shutdown cancelled {cancelled} pending escalation timers")
        return cancelled
