"""
Reading Repository

Read-only access to in-service meters and their latest telemetry.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from .models import Meter, MeterReadingRecord, Location
from .schemas import MeterReading, ActiveMeter, MeterDetails

logger = logging.getLogger(__name__)

UNKNOWN_DTR = "Unknown DTR"
UNKNOWN_METER = "Unknown Meter"
UNKNOWN_FEEDER = "Unknown Feeder"


def resolve_dtr_number(meter: Meter) -> str:
    """
    Work out which DTR a meter reports under.

    Order of preference:
    1. The meter's own DTR
    2. The first DTR at the meter's location
    3. A synthetic "DTR-<id>" from the raw dtr_id column
    """
    if meter.dtr is not None and meter.dtr.dtr_number:
        return meter.dtr.dtr_number

    if meter.location is not None and meter.location.dtrs:
        first = meter.location.dtrs[0]
        if first.dtr_number:
            return first.dtr_number

    if meter.dtr_id:
        return f"DTR-{meter.dtr_id}"

    return UNKNOWN_DTR


class ReadingRepository(ABC):
    """Source of meters and telemetry consumed by the poller and engine."""

    @abstractmethod
    async def active_meters(self) -> List[ActiveMeter]:
        """Meters that are ACTIVE and currently in use."""

    @abstractmethod
    async def latest_reading(self, meter_id: int) -> Optional[MeterReading]:
        """Most recent reading for a meter, or None if it has never reported."""

    async def recent_readings(self, meter_id: int, limit: int = 10) -> List[MeterReading]:
        reading = await self.latest_reading(meter_id)
        return [reading] if reading else []

    @abstractmethod
    async def get_meter(self, meter_id: int) -> Optional[MeterDetails]:
        """Descriptive details for one meter, or None if it does not exist."""


class SqlReadingRepository(ReadingRepository):
    """ReadingRepository backed by the shared relational schema."""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def active_meters(self) -> List[ActiveMeter]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(Meter)
                .where(Meter.status == "ACTIVE")
                .where(Meter.is_in_use == True)  # noqa: E712
                .options(
                    selectinload(Meter.dtr),
                    selectinload(Meter.location).selectinload(Location.dtrs),
                )
                .order_by(Meter.id)
            )
            meters = result.scalars().all()

            return [
                ActiveMeter(
                    id=meter.id,
                    dtr_number=resolve_dtr_number(meter),
                    meter_number=meter.meter_number or UNKNOWN_METER,
                    location_id=meter.location_id,
                    serial_number=meter.serial_number,
                )
                for meter in meters
            ]

    async def latest_reading(self, meter_id: int) -> Optional[MeterReading]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(MeterReadingRecord)
                .where(MeterReadingRecord.meter_id == meter_id)
                .order_by(MeterReadingRecord.reading_date.desc())
                .limit(1)
            )
            record = result.scalar_one_or_none()
            return MeterReading.from_record(record) if record else None

    async def recent_readings(self, meter_id: int, limit: int = 10) -> List[MeterReading]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(MeterReadingRecord)
                .where(MeterReadingRecord.meter_id == meter_id)
                .order_by(MeterReadingRecord.reading_date.desc())
                .limit(limit)
            )
            return [MeterReading.from_record(r) for r in result.scalars().all()]

    async def get_meter(self, meter_id: int) -> Optional[MeterDetails]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(Meter)
                .where(Meter.id == meter_id)
                .options(
                    selectinload(Meter.dtr),
                    selectinload(Meter.location).selectinload(Location.dtrs),
                )
            )
            meter = result.scalar_one_or_none()
            if meter is None:
                return None

            feeder_name = UNKNOWN_FEEDER
            if meter.location is not None and meter.location.name:
                feeder_name = meter.location.name

            return MeterDetails(
                id=meter.id,
                dtr_number=resolve_dtr_number(meter),
                meter_number=meter.meter_number or UNKNOWN_METER,
                serial_number=meter.serial_number,
                feeder_name=feeder_name,
            )
