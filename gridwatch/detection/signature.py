"""
Error Signature

Fingerprint of the active fault combination and the values that triggered
it. Two readings with the same signature are treated as the same ongoing
fault, which is what suppresses repeat alerts.
"""

from typing import Optional

from gridwatch.meters.schemas import MeterReading
from .analyzer import AbnormalityFlags
from .rules import RULES_BY_NAME


def _render(value: Optional[float]) -> str:
    if value is None:
        return "0.000"
    return f"{value:.3f}"


def generate_error_signature(flags: AbnormalityFlags, reading: MeterReading) -> str:
    """
    Build "<flag>:<value>;" for every raised flag, in sorted flag-name order.

    Flags without an entry in the rule table are rendered with 0.000.
    """
    signature = ""

    for name in sorted(flags):
        if not flags[name]:
            continue
        rule = RULES_BY_NAME.get(name)
        value = rule.value_of(reading) if rule else None
        signature += f"{name}:{_render(value)};"

    return signature
