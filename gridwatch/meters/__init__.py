# Meters Module
# Read-side access to meters and their telemetry.
#
# Components:
# - models.py: ORM mappings of the meters / dtrs / locations / meter_readings tables
# - schemas.py: MeterReading and ActiveMeter snapshots handed to the engine
# - repository.py: ReadingRepository interface and its SQLAlchemy implementation

from .schemas import MeterReading, ActiveMeter, MeterDetails
from .repository import ReadingRepository, SqlReadingRepository

__all__ = [
    "MeterReading",
    "ActiveMeter",
    "MeterDetails",
    "ReadingRepository",
    "SqlReadingRepository",
]
