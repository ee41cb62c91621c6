# services/exam_management/models/exams.py
from sqlalchemy import (
    Column, String, Text, Date, DateTime, Integer, Float, Boolean, Enum,
    ForeignKey, UniqueConstraint, Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shared.db import Base
from services.exam_management.engine.records import ExamStatus, ScopeType, SubjectScopeType
import uuid


def _values(enum_cls):
    return [member.value for member in enum_cls]


class Exam(Base):
    __tablename__ = "exams"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False)
    name = Column(String(150), nullable=False)  # e.g., "Term 1 Opener 2024"
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    scope_type = Column(Enum(ScopeType, name="exam_scope_type", values_callable=_values), nullable=False)
    subject_scope_type = Column(
        Enum(SubjectScopeType, name="exam_subject_scope_type", values_callable=_values), nullable=False
    )
    # is_published is derived from this column, never stored
    exam_status = Column(
        Enum(ExamStatus, name="exam_status", values_callable=_values),
        nullable=False,
        default=ExamStatus.DRAFT,
    )
    grading_system_id = Column(UUID(as_uuid=True), ForeignKey("grading_systems.id"), nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("school_users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index("ix_exam_school_status", "school_id", "exam_status"),
    )

    classes = relationship("ExamClass", cascade="all, delete-orphan")
    subject_settings = relationship("ExamSubjectSetting", back_populates="exam", cascade="all, delete-orphan")


class ExamClass(Base):
    __tablename__ = "exam_classes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    exam_id = Column(UUID(as_uuid=True), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False)
    class_id = Column(UUID(as_uuid=True), ForeignKey("school_classes.id"), nullable=False)

    __table_args__ = (
        UniqueConstraint("exam_id", "class_id", name="uq_exam_class"),
    )


class ExamSubjectSetting(Base):
    __tablename__ = "exam_subject_settings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    exam_id = Column(UUID(as_uuid=True), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("school_subjects.id"), nullable=False)
    total_marks = Column(Float, nullable=False, default=100)
    pass_mark = Column(Float, nullable=False, default=40)
    has_papers = Column(Boolean, default=False)
    paper_count = Column(Integer, default=1)

    __table_args__ = (
        UniqueConstraint("exam_id", "subject_id", name="uq_exam_subject_setting"),
    )

    exam = relationship("Exam", back_populates="subject_settings")
    papers = relationship(
        "ExamPaper",
        back_populates="setting",
        cascade="all, delete-orphan",
        order_by="ExamPaper.paper_number",
    )


# A single-paper subject still gets one row here (Paper 1, weight 100)
class ExamPaper(Base):
    __tablename__ = "exam_papers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    setting_id = Column(UUID(as_uuid=True), ForeignKey("exam_subject_settings.id", ondelete="CASCADE"), nullable=False)
    exam_id = Column(UUID(as_uuid=True), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("school_subjects.id"), nullable=False)
    paper_number = Column(Integer, nullable=False)
    paper_name = Column(String(100), nullable=False)  # e.g., "Paper 1", "Practical"
    marks = Column(Float, nullable=False)
    pass_mark = Column(Float, nullable=False)
    percentage_weight = Column(Float, nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    instructions = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("setting_id", "paper_number", name="uq_setting_paper_number"),
        Index("ix_exam_paper_exam_subject", "exam_id", "subject_id"),
    )

    setting = relationship("ExamSubjectSetting", back_populates="papers")
