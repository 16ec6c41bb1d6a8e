"""
Meter snapshots passed between the repository, analyzer and engine.

These are plain frozen dataclasses so the detection code never holds on to
a live ORM session.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class MeterReading:
    """Immutable telemetry snapshot for one meter."""
    meter_id: int
    timestamp: datetime
    voltage_r: Optional[float] = None
    voltage_y: Optional[float] = None
    voltage_b: Optional[float] = None
    current_r: Optional[float] = None
    current_y: Optional[float] = None
    current_b: Optional[float] = None
    power_factor: Optional[float] = None
    rph_power_factor: Optional[float] = None
    yph_power_factor: Optional[float] = None
    bph_power_factor: Optional[float] = None
    neutral_current: Optional[float] = None
    frequency: Optional[float] = None
    kwh: Optional[float] = None
    kvah: Optional[float] = None

    @classmethod
    def from_record(cls, record) -> "MeterReading":
        return cls(
            meter_id=record.meter_id,
            timestamp=record.reading_date,
            voltage_r=record.voltage_r,
            voltage_y=record.voltage_y,
            voltage_b=record.voltage_b,
            current_r=record.current_r,
            current_y=record.current_y,
            current_b=record.current_b,
            power_factor=record.power_factor,
            rph_power_factor=record.rph_power_factor,
            yph_power_factor=record.yph_power_factor,
            bph_power_factor=record.bph_power_factor,
            neutral_current=record.neutral_current,
            frequency=record.frequency,
            kwh=record.kwh,
            kvah=record.kvah,
        )


@dataclass(frozen=True)
class ActiveMeter:
    """A meter that is in service and should be polled."""
    id: int
    dtr_number: str
    meter_number: str
    location_id: Optional[int] = None
    serial_number: Optional[str] = None


@dataclass(frozen=True)
class MeterDetails:
    """ActiveMeter plus descriptive fields used by on-demand checks."""
    id: int
    dtr_number: str
    meter_number: str
    serial_number: Optional[str]
    feeder_name: str
