# services/user_management/models/subjects.py

from sqlalchemy import Column, String, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from shared.db import Base
import uuid

# Subject offered by a school
class SchoolSubject(Base):
    __tablename__ = "school_subjects"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False)
    name = Column(String, nullable=False)  # e.g., "Mathematics", "Chemistry"
    code = Column(String(10), nullable=True)  # e.g., "121"
    department = Column(String, nullable=True)  # e.g., "Sciences"

    __table_args__ = (
        UniqueConstraint("school_id", "name", name="uq_school_subject_name"),
    )

    school = relationship("School", backref="subjects")
