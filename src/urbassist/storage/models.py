"""SQLAlchemy ORM models for decisions and compliance runs."""

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class DecisionRecord(Base):
    """An authoritative DP / PC decision computed for a project."""

    __tablename__ = "decision_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(String(100), nullable=False, index=True)
    project_category = Column(String(50))
    determination = Column(String(30), nullable=False)
    rule = Column(String(50))
    zone_code = Column(String(50))
    citycode = Column(String(10), index=True)
    is_urban_zone = Column(Boolean, default=False)
    dp_threshold = Column(Integer, default=20)
    is_rnu = Column(Boolean, default=False)
    requires_dpc11 = Column(Boolean, default=False)
    created_floor_area = Column(Float, default=0.0)
    total_floor_area_after = Column(Float, default=0.0)
    detail = Column(Text)
    payload = Column(JSONB)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ComplianceRun(Base):
    """Findings of one compliance check over a site plan."""

    __tablename__ = "compliance_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(String(100), nullable=False, index=True)
    zone_code = Column(String(50))
    parcel_area_m2 = Column(Float)
    total = Column(Integer, default=0)
    violations = Column(Integer, default=0)
    warnings = Column(Integer, default=0)
    is_compliant = Column(Boolean, default=True)
    checks = Column(JSONB)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
