# services/exam_management/models/results.py
from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shared.db import Base
import uuid


class ExamResult(Base):
    __tablename__ = "exam_results"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    exam_id = Column(UUID(as_uuid=True), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("school_subjects.id"), nullable=False)
    student_id = Column(UUID(as_uuid=True), ForeignKey("school_users.id"), nullable=False)
    is_absent = Column(Boolean, default=False, nullable=False)
    total_marks = Column(Float, nullable=True)
    grade = Column(String(5), nullable=True)   # "ABS" for absent students
    points = Column(Float, nullable=True)
    position = Column(Integer, nullable=True)
    entered_by = Column(UUID(as_uuid=True), ForeignKey("school_users.id"), nullable=True)
    entered_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    verified_by = Column(UUID(as_uuid=True), ForeignKey("school_users.id"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("exam_id", "subject_id", "student_id", name="uq_exam_subject_student_result"),
        Index("ix_exam_result_exam_subject", "exam_id", "subject_id"),
    )

    paper_results = relationship("PaperResult", back_populates="result", cascade="all, delete-orphan")


class PaperResult(Base):
    __tablename__ = "exam_paper_results"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    result_id = Column(UUID(as_uuid=True), ForeignKey("exam_results.id", ondelete="CASCADE"), nullable=False)
    paper_id = Column(UUID(as_uuid=True), ForeignKey("exam_papers.id"), nullable=False)
    marks = Column(Float, nullable=True)
    is_absent = Column(Boolean, default=False, nullable=False)  # mirrors the parent result

    __table_args__ = (
        UniqueConstraint("result_id", "paper_id", name="uq_result_paper"),
    )

    result = relationship("ExamResult", back_populates="paper_results")
    paper = relationship("ExamPaper")
