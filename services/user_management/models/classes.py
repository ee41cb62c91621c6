# services/user_management/models/classes.py
from sqlalchemy import Column, String, Integer, ForeignKey, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from shared.db import Base
import uuid

class SchoolClass(Base):
    __tablename__ = "school_classes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False)
    class_name = Column(String, nullable=False)   # E.g., "Form 1", "Grade 7"
    level = Column(Integer, nullable=True)        # E.g., 1 for Form 1

    __table_args__ = (
        UniqueConstraint("school_id", "class_name", name="uq_school_class_name"),
        Index("ix_school_class_school_id", "school_id"),
    )

    school = relationship("School", back_populates="classes")
    streams = relationship("Stream", back_populates="school_class", cascade="all, delete-orphan")
    students = relationship("SchoolUser", back_populates="student_class", foreign_keys="SchoolUser.class_id")


# A subdivision of a class, e.g. "Form 1 East". Teacher assignments are per stream.
class Stream(Base):
    __tablename__ = "streams"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False)
    class_id = Column(UUID(as_uuid=True), ForeignKey("school_classes.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)         # E.g., "East", "West"

    __table_args__ = (
        UniqueConstraint("class_id", "name", name="uq_class_stream_name"),
        Index("ix_stream_school_id", "school_id"),
    )

    school_class = relationship("SchoolClass", back_populates="streams")
