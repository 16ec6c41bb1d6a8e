"""
Meter Models

ORM mappings for the tables written by the asset management system.
Gridwatch only reads from these tables.
"""

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Float, ForeignKey
from sqlalchemy.orm import relationship

from gridwatch.database import Base


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=True)

    dtrs = relationship("DTR", back_populates="location", order_by="DTR.id")


class DTR(Base):
    """Distribution transformer that a group of meters reports under."""
    __tablename__ = "dtrs"

    id = Column(Integer, primary_key=True)
    dtr_number = Column(String, nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)

    location = relationship("Location", back_populates="dtrs")


class Meter(Base):
    __tablename__ = "meters"

    id = Column(Integer, primary_key=True)
    meter_number = Column(String, nullable=True)
    serial_number = Column(String, nullable=True)
    status = Column(String, nullable=False, default="ACTIVE")
    is_in_use = Column(Boolean, nullable=False, default=True)
    dtr_id = Column(Integer, ForeignKey("dtrs.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)

    dtr = relationship("DTR")
    location = relationship("Location")


class MeterReadingRecord(Base):
    """One telemetry sample as stored by the ingestion pipeline."""
    __tablename__ = "meter_readings"

    id = Column(Integer, primary_key=True)
    meter_id = Column(Integer, ForeignKey("meters.id"), nullable=False, index=True)
    reading_date = Column(DateTime(timezone=True), nullable=False)

    # Phase voltages / currents
    voltage_r = Column(Float, nullable=True)
    voltage_y = Column(Float, nullable=True)
    voltage_b = Column(Float, nullable=True)
    current_r = Column(Float, nullable=True)
    current_y = Column(Float, nullable=True)
    current_b = Column(Float, nullable=True)
    neutral_current = Column(Float, nullable=True)

    # Power factor (aggregate and per phase)
    power_factor = Column(Float, nullable=True)
    rph_power_factor = Column(Float, nullable=True)
    yph_power_factor = Column(Float, nullable=True)
    bph_power_factor = Column(Float, nullable=True)

    frequency = Column(Float, nullable=True)

    # Energy counters
    kwh = Column(Float, nullable=True)
    kvah = Column(Float, nullable=True)
