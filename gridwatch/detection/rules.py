"""
Abnormality Rules

One declarative table drives both the analyzer (which flags are raised)
and the signature generator (which reading value is recorded per flag).
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from gridwatch.meters.schemas import MeterReading

ZERO_TOLERANCE = 0.001
NEUTRAL_CURRENT_LIMIT = 15.0
LOW_PF_BAND = (-0.8, 0.8)
LOW_VOLTAGE_LIMIT = 180.0

PHASES = ("R", "Y", "B")


def is_zero(value: float) -> bool:
    return abs(value) < ZERO_TOLERANCE


def is_negative(value: float) -> bool:
    return value < 0


def is_load_imbalance(neutral_current: float) -> bool:
    return neutral_current > NEUTRAL_CURRENT_LIMIT


def is_low_power_factor(power_factor: float) -> bool:
    # Inclusive band: a zero PF is both "low" and a power fail.
    low, high = LOW_PF_BAND
    return low <= power_factor <= high


def is_low_voltage(voltage: float) -> bool:
    return voltage < LOW_VOLTAGE_LIMIT


@dataclass(frozen=True)
class AbnormalityRule:
    """A named fault condition over one reading field."""
    name: str
    predicate: Callable[[float], bool]
    value_of: Callable[[MeterReading], Optional[float]]

    def matches(self, reading: MeterReading) -> bool:
        value = self.value_of(reading)
        if value is None:
            return False
        return self.predicate(value)


def phase_power_factor(phase: str) -> Callable[[MeterReading], Optional[float]]:
    """Per-phase PF, falling back to the aggregate PF when the phase is not reported."""
    field = f"{phase.lower()}ph_power_factor"

    def value_of(reading: MeterReading) -> Optional[float]:
        value = getattr(reading, field)
        if value is None:
            return reading.power_factor
        return value

    return value_of


def reading_field(field: str) -> Callable[[MeterReading], Optional[float]]:
    def value_of(reading: MeterReading) -> Optional[float]:
        return getattr(reading, field)

    return value_of


def _phase_label(phase: str) -> str:
    return f"{phase} - Phase"


def _build_rules() -> Tuple[AbnormalityRule, ...]:
    rules = []

    # Power factor reads zero: the meter has lost supply on that phase
    for phase in PHASES:
        rules.append(AbnormalityRule(
            name=f"Meter Power Fail ({_phase_label(phase)})",
            predicate=is_zero,
            value_of=phase_power_factor(phase),
        ))

    # Phase missing
    for phase in PHASES:
        rules.append(AbnormalityRule(
            name=f"{phase}_PH Missing",
            predicate=is_zero,
            value_of=reading_field(f"voltage_{phase.lower()}"),
        ))

    # No current on a phase: LT fuse blown
    for phase in PHASES:
        rules.append(AbnormalityRule(
            name=f"LT Fuse Blown ({_phase_label(phase)})",
            predicate=is_zero,
            value_of=reading_field(f"current_{phase.lower()}"),
        ))

    # Negative current: CT wired backwards
    for phase in PHASES:
        rules.append(AbnormalityRule(
            name=f"{phase}_PH CT Reversed",
            predicate=is_negative,
            value_of=reading_field(f"current_{phase.lower()}"),
        ))

    rules.append(AbnormalityRule(
        name="Unbalanced Load",
        predicate=is_load_imbalance,
        value_of=reading_field("neutral_current"),
    ))

    for phase in PHASES:
        rules.append(AbnormalityRule(
            name=f"Low PF ({_phase_label(phase)})",
            predicate=is_low_power_factor,
            value_of=phase_power_factor(phase),
        ))

    # Low voltage: HT side fuse blown
    for phase in PHASES:
        rules.append(AbnormalityRule(
            name=f"HT Fuse Blown ({_phase_label(phase)})",
            predicate=is_low_voltage,
            value_of=reading_field(f"voltage_{phase.lower()}"),
        ))

    return tuple(rules)


ABNORMALITY_RULES: Tuple[AbnormalityRule, ...] = _build_rules()

RULES_BY_NAME: Dict[str, AbnormalityRule] = {rule.name: rule for rule in ABNORMALITY_RULES}
