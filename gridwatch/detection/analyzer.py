"""
Abnormality Analyzer

Pure functions that turn one meter reading into a set of named fault flags.
"""

from typing import Dict, List, Optional

from gridwatch.meters.schemas import MeterReading
from .rules import ABNORMALITY_RULES, RULES_BY_NAME

AbnormalityFlags = Dict[str, bool]


def analyze(reading: MeterReading) -> AbnormalityFlags:
    """Evaluate every rule against the reading. Keys follow rule-table order."""
    return {rule.name: rule.matches(reading) for rule in ABNORMALITY_RULES}


def has_abnormalities(flags: AbnormalityFlags) -> bool:
    return any(flags.values())


def abnormality_summary(flags: AbnormalityFlags) -> List[str]:
    """Names of the flags that are currently raised."""
    return [name for name, raised in flags.items() if raised]


def _fmt(value: Optional[float]) -> str:
    return f"{value:.3f}" if value is not None else "0.000"


def format_power_data(reading: MeterReading) -> dict:
    """
    Alert-friendly snapshot of the electrical values behind each flag.

    Values are rendered with three decimals; unreported fields show 0.000.
    """
    return {
        "power_factor": _fmt(RULES_BY_NAME["Low PF (R - Phase)"].value_of(reading)),
        "pf_y_ph": _fmt(RULES_BY_NAME["Low PF (Y - Phase)"].value_of(reading)),
        "pf_b_ph": _fmt(RULES_BY_NAME["Low PF (B - Phase)"].value_of(reading)),
        "v_r_ph": _fmt(reading.voltage_r),
        "v_y_ph": _fmt(reading.voltage_y),
        "v_b_ph": _fmt(reading.voltage_b),
        "c_r_ph": _fmt(reading.current_r),
        "c_y_ph": _fmt(reading.current_y),
        "c_b_ph": _fmt(reading.current_b),
        "neutral_current": _fmt(reading.neutral_current),
        "frequency": _fmt(reading.frequency),
        "reading_time": reading.timestamp.isoformat(),
    }
