"""
Monitoring Module

Poll cycle orchestration and scheduling.
"""

from .poller import MeterPoller, CycleSummary, MeterCheckResult
from .scheduler import (
    build_poller,
    get_poller,
    check_meter_abnormalities,
    setup_apscheduler,
)

__all__ = [
    "MeterPoller",
    "CycleSummary",
    "MeterCheckResult",
    "build_poller",
    "get_poller",
    "check_meter_abnormalities",
    "setup_apscheduler",
]
