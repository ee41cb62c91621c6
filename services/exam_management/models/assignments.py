# services/exam_management/models/assignments.py
from sqlalchemy import Column, Boolean, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from shared.db import Base
import uuid


# Teacher -> subject -> stream. The only thing that lets a teacher touch a subject.
class SubjectTeacherStream(Base):
    __tablename__ = "subject_teacher_streams"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("school_users.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("school_subjects.id", ondelete="CASCADE"), nullable=False)
    stream_id = Column(UUID(as_uuid=True), ForeignKey("streams.id", ondelete="CASCADE"), nullable=False)
    can_enter_results = Column(Boolean, default=True, nullable=False)
    can_view_analytics = Column(Boolean, default=False, nullable=False)
    assigned_by = Column(UUID(as_uuid=True), ForeignKey("school_users.id"), nullable=True)
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("teacher_id", "subject_id", "stream_id", name="uq_teacher_subject_stream"),
        Index("ix_assignment_teacher", "teacher_id"),
    )
