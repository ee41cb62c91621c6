# services/user_management/models/users.py
from sqlalchemy import Column, String, ForeignKey, DateTime, Boolean, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from shared.db import Base
import uuid

class SchoolUser(Base):
    __tablename__ = "school_users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    # Set of role tags, e.g. ["teacher", "hod"]
    roles = Column(JSONB, nullable=False, default=list)
    school_id = Column(String, ForeignKey('schools.id'), nullable=True)  # null for global roles
    class_id = Column(UUID(as_uuid=True), ForeignKey("school_classes.id"), nullable=True)
    stream_id = Column(UUID(as_uuid=True), ForeignKey("streams.id"), nullable=True)
    admission_number = Column(String(30), nullable=True)
    profile_data = Column(JSONB, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    school = relationship("School", back_populates="users")
    student_class = relationship("SchoolClass", back_populates="students", foreign_keys=[class_id])
    stream = relationship("Stream", foreign_keys=[stream_id])

    __table_args__ = (
    Index('idx_user_email', 'email'),  # login and unique checks
    Index('idx_user_school', 'school_id'),  # school-level access
    Index('idx_user_class_stream', 'class_id', 'stream_id'),  # students of an exam's classes
    )

    def has_role(self, tag: str) -> bool:
        return tag in (self.roles or [])
