"""
Escalation Models

Persisted escalation notifications and their status lifecycle.

    active ──> sent ──> resolved
       └───────────────────^

resolved is terminal.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet

from sqlalchemy import Column, String, DateTime, Integer, Index

from gridwatch.database import Base
from gridwatch.exceptions import InvalidTransitionError


class NotificationStatus(str, Enum):
    """Status of an escalation notification."""
    ACTIVE = "active"        # Created, waiting for its level to fire
    SENT = "sent"            # Dispatched to the level's contacts
    RESOLVED = "resolved"    # Fault cleared; never reopened


OPEN_STATUSES = (NotificationStatus.ACTIVE, NotificationStatus.SENT)

ALLOWED_TRANSITIONS: Dict[NotificationStatus, FrozenSet[NotificationStatus]] = {
    NotificationStatus.ACTIVE: frozenset({NotificationStatus.SENT, NotificationStatus.RESOLVED}),
    NotificationStatus.SENT: frozenset({NotificationStatus.RESOLVED}),
    NotificationStatus.RESOLVED: frozenset(),
}


def transition(current, target) -> NotificationStatus:
    """
    Validate a status change and return the new status.

    Raises InvalidTransitionError for anything the lifecycle does not allow,
    e.g. sent -> active or resolved -> sent.
    """
    current = NotificationStatus(current)
    target = NotificationStatus(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
    return target


class EscalationNotification(Base):
    """
    One (abnormality, level) notification within a meter's escalation batch.

    A batch is every row for a meter created by the same fault onset; the
    batch is open while any of its rows is active or sent with no resolved_at.
    """
    __tablename__ = "escalation_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    meter_id = Column(Integer, nullable=False)

    abnormality_type = Column(String, nullable=False)
    level = Column(Integer, nullable=False)
    message = Column(String, nullable=False)
    status = Column(String, nullable=False, default=NotificationStatus.ACTIVE.value)

    # Timing
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    # Context for message rendering
    dtr_number = Column(String, nullable=True)
    meter_number = Column(String, nullable=True)

    __table_args__ = (
        Index("ix_escalation_notifications_meter_status", "meter_id", "status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "meter_id": self.meter_id,
            "abnormality_type": self.abnormality_type,
            "level": self.level,
            "message": self.message,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "scheduled_for": self.scheduled_for.isoformat() if self.scheduled_for else None,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "dtr_number": self.dtr_number,
            "meter_number": self.meter_number,
        }
