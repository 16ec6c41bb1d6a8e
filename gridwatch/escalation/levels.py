"""
Escalation Levels

Static, ordered contact chain. Level 0 fires as soon as a fault is seen;
each later level fires after its delay if the fault is still present.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from gridwatch.exceptions import EscalationConfigError


@dataclass(frozen=True)
class EscalationContact:
    role: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class EscalationLevel:
    level: int
    name: str
    delay_minutes: int
    contacts: Tuple[EscalationContact, ...] = field(default_factory=tuple)

    @property
    def delay_seconds(self) -> float:
        return self.delay_minutes * 60.0


ESCALATION_LEVELS: Tuple[EscalationLevel, ...] = (
    EscalationLevel(
        level=0,
        name="Created",
        delay_minutes=0,
        contacts=(EscalationContact(role="LM", name="Line Manager", phone="916303457002"),),
    ),
    EscalationLevel(
        level=1,
        name="Level 1",
        delay_minutes=15,
        contacts=(EscalationContact(role="LI", name="Line Inspector", phone="916303457002"),),
    ),
    EscalationLevel(
        level=2,
        name="Level 2",
        delay_minutes=20,
        contacts=(EscalationContact(role="AE", name="Assistant Engineer", phone="916303457002"),),
    ),
    EscalationLevel(
        level=3,
        name="Level 3",
        delay_minutes=30,
        contacts=(EscalationContact(role="ADE", name="Assistant Divisional Engineer", phone="916303457002"),),
    ),
    EscalationLevel(
        level=4,
        name="Level 4",
        delay_minutes=45,
        contacts=(EscalationContact(role="DE", name="Divisional Engineer", phone="916303457002"),),
    ),
    EscalationLevel(
        level=5,
        name="Level 5",
        delay_minutes=60,
        contacts=(EscalationContact(role="Management", name="Senior Management", phone="916303457002"),),
    ),
)


def validate_levels(levels: Sequence[EscalationLevel]) -> Tuple[EscalationLevel, ...]:
    """
    Check a level table and return it as a tuple.

    Levels must start at 0, be numbered contiguously in order, have
    non-negative delays, and level 0 must have no delay.
    """
    if not levels:
        raise EscalationConfigError("At least one escalation level is required")

    for index, level in enumerate(levels):
        if level.level != index:
            raise EscalationConfigError(
                f"Escalation levels must be ordered 0..n, got level {level.level} at position {index}"
            )
        if level.delay_minutes < 0:
            raise EscalationConfigError(f"Level {level.level} has a negative delay")

    if levels[0].delay_minutes != 0:
        raise EscalationConfigError("Level 0 must fire immediately (delay 0)")

    return tuple(levels)

