# services/exam_management/models/grading.py
from sqlalchemy import Column, String, Float, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shared.db import Base
import uuid


class GradingSystem(Base):
    __tablename__ = "grading_systems"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(String, ForeignKey("schools.id"), nullable=True)  # null for shared presets
    name = Column(String(100), nullable=False)  # e.g., "KCSE Grading System"
    is_default = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bands = relationship(
        "GradeBand",
        back_populates="grading_system",
        cascade="all, delete-orphan",
        order_by="GradeBand.lower_bound.desc()",
    )


class GradeBand(Base):
    __tablename__ = "grade_bands"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    grading_system_id = Column(UUID(as_uuid=True), ForeignKey("grading_systems.id", ondelete="CASCADE"), nullable=False)
    lower_bound = Column(Float, nullable=False)
    upper_bound = Column(Float, nullable=False)
    grade = Column(String(5), nullable=False)  # e.g., "A-", "B+"
    points = Column(Float, default=0)
    remarks = Column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("grading_system_id", "grade", name="uq_grading_system_grade"),
    )

    grading_system = relationship("GradingSystem", back_populates="bands")
