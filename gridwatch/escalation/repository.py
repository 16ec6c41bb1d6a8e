"""
Notification Repository

Create / update / query escalation notification rows.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from .models import EscalationNotification, NotificationStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationFilter:
    """Row filter shared by find_many and update_many."""
    meter_id: Optional[int] = None
    statuses: Sequence[NotificationStatus] = ()
    unresolved_only: bool = False
    level: Optional[int] = None
    ids: Sequence[int] = ()

    def matches(self, notification: EscalationNotification) -> bool:
        if self.meter_id is not None and notification.meter_id != self.meter_id:
            return False
        if self.statuses and notification.status not in {s.value for s in self.statuses}:
            return False
        if self.unresolved_only and notification.resolved_at is not None:
            return False
        if self.level is not None and notification.level != self.level:
            return False
        if self.ids and notification.id not in self.ids:
            return False
        return True

    def where_clauses(self) -> list:
        clauses = []
        if self.meter_id is not None:
            clauses.append(EscalationNotification.meter_id == self.meter_id)
        if self.statuses:
            clauses.append(EscalationNotification.status.in_([s.value for s in self.statuses]))
        if self.unresolved_only:
            clauses.append(EscalationNotification.resolved_at.is_(None))
        if self.level is not None:
            clauses.append(EscalationNotification.level == self.level)
        if self.ids:
            clauses.append(EscalationNotification.id.in_(list(self.ids)))
        return clauses


def normalize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Store enum members by value."""
    return {key: value.value if isinstance(value, Enum) else value for key, value in fields.items()}


class NotificationRepository(ABC):
    """Persistence for escalation notifications."""

    @abstractmethod
    async def create(self, notification: EscalationNotification) -> EscalationNotification:
        """Persist a new notification and return it with its id assigned."""

    @abstractmethod
    async def update_by_id(self, notification_id: int, fields: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def update_many(self, criteria: NotificationFilter, fields: Dict[str, Any]) -> int:
        """Apply fields to every matching row. Returns the number of rows changed."""

    @abstractmethod
    async def find_many(self, criteria: NotificationFilter) -> List[EscalationNotification]:
        pass


class SqlNotificationRepository(NotificationRepository):
    """NotificationRepository on SQLAlchemy, one short session per call."""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def create(self, notification: EscalationNotification) -> EscalationNotification:
        async with self.session_maker() as db:
            db.add(notification)
            await db.commit()
            await db.refresh(notification)
            return notification

    async def update_by_id(self, notification_id: int, fields: Dict[str, Any]) -> None:
        async with self.session_maker() as db:
            await db.execute(
                update(EscalationNotification)
                .where(EscalationNotification.id == notification_id)
                .values(**normalize_fields(fields))
            )
            await db.commit()

    async def update_many(self, criteria: NotificationFilter, fields: Dict[str, Any]) -> int:
        async with self.session_maker() as db:
            result = await db.execute(
                update(EscalationNotification)
                .where(*criteria.where_clauses())
                .values(**normalize_fields(fields))
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount or 0

    async def find_many(self, criteria: NotificationFilter) -> List[EscalationNotification]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(EscalationNotification)
                .where(*criteria.where_clauses())
                .order_by(EscalationNotification.id)
            )
            return list(result.scalars().all())
