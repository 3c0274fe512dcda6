# models.py
"""
Database models for tank gauging.

Tanks are stored as rows; everything else about a tank (its calibration
table among it) lives in key/value attributes, the calibration table as a
JSON blob under ``strappingTable``.
"""

from datetime import datetime

from sqlalchemy import (
    Column, Integer, Float, String, DateTime, Text,
    ForeignKey, Enum as SAEnum, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship, declarative_base

from strapping_models import TankShape

Base = declarative_base()


# ============================================================================
# TANKS
# ============================================================================

class Tank(Base):
    __tablename__ = "tanks"

    id = Column(String(64), primary_key=True)
    tag = Column(String(100), nullable=False, unique=True)
    height_m = Column(Float, nullable=False, default=0.0)
    diameter_m = Column(Float, nullable=False, default=0.0)
    shape = Column(SAEnum(TankShape), default=TankShape.VERTICAL, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, onupdate=datetime.utcnow)

    # Relationships
    attributes = relationship("TankAttribute", back_populates="tank", lazy="dynamic", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Tank(id='{self.id}', tag='{self.tag}')>"


class TankAttribute(Base):
    """Server-side attribute of a tank (string key -> text value)"""
    __tablename__ = "tank_attributes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tank_id = Column(String(64), ForeignKey("tanks.id"), nullable=False)
    key = Column(String(100), nullable=False)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("tank_id", "key", name="uq_tank_attribute_key"),
        Index("idx_tank_attribute_tank", "tank_id"),
    )

    # Relationship
    tank = relationship("Tank", back_populates="attributes")

    def __repr__(self):
        return f"<TankAttribute(tank='{self.tank_id}', key='{self.key}')>"
