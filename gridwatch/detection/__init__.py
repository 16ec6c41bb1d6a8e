# Detection Module
# Rule-based fault detection over a single meter reading
#
# Components:
# - rules.py: declarative rule table (flag name, predicate, reading field)
# - analyzer.py: reading -> abnormality flags
# - signature.py: flags + reading -> deduplication fingerprint

from .rules import AbnormalityRule, ABNORMALITY_RULES, RULES_BY_NAME
from .analyzer import (
    AbnormalityFlags,
    analyze,
    has_abnormalities,
    abnormality_summary,
    format_power_data,
)
from .signature import generate_error_signature

__all__ = [
    "AbnormalityRule",
    "ABNORMALITY_RULES",
    "RULES_BY_NAME",
    "AbnormalityFlags",
    "analyze",
    "has_abnormalities",
    "abnormality_summary",
    "format_power_data",
    "generate_error_signature",
]
