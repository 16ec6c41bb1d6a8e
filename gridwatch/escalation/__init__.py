# Escalation Module
# Staged, cancellable alerting for meters with abnormal readings
#
# Components:
# - levels.py: static escalation level table (contacts + delays)
# - models.py: EscalationNotification and its status lifecycle
# - repository.py: NotificationRepository interface and SQLAlchemy implementation
# - timers.py: Clock / TimerService abstractions (event loop or virtual time)
# - engine.py: EscalationEngine state machine

from .levels import EscalationContact, EscalationLevel, ESCALATION_LEVELS, validate_levels
from .models import (
    EscalationNotification,
    NotificationStatus,
    OPEN_STATUSES,
    ALLOWED_TRANSITIONS,
    transition,
)
from .repository import NotificationFilter, NotificationRepository, SqlNotificationRepository
from .timers import (
    Clock,
    SystemClock,
    ManualClock,
    TimerService,
    AsyncioTimerService,
    ManualTimerService,
)
from .engine import EscalationEngine, EvaluationOutcome

__all__ = [
    # Levels
    "EscalationContact",
    "EscalationLevel",
    "ESCALATION_LEVELS",
    "validate_levels",
    # Models
    "EscalationNotification",
    "NotificationStatus",
    "OPEN_STATUSES",
    "ALLOWED_TRANSITIONS",
    "transition",
    # Persistence
    "NotificationFilter",
    "NotificationRepository",
    "SqlNotificationRepository",
    # Timers
    "Clock",
    "SystemClock",
    "ManualClock",
    "TimerService",
    "AsyncioTimerService",
    "ManualTimerService",
    # Engine
    "EscalationEngine",
    "EvaluationOutcome",
]
