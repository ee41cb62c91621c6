# services/exam_management/engine/records.py
"""
Plain records the engine works on.

The repository maps ORM rows into these so the engine never touches a
session. Everything here is immutable once built for a request.
"""

import enum
import uuid
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Optional, Tuple


class Role(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    COMPANY_ADMIN = "company_admin"
    SCHOOL_ADMIN = "school_admin"
    ADMIN = "admin"
    HOD = "hod"
    TEACHER = "teacher"
    STUDENT = "student"
    ACCOUNTANT = "accountant"
    LIBRARIAN = "librarian"
    RECEPTIONIST = "receptionist"
    IT_OFFICER = "it_officer"
    SECURITY = "security"
    PARENT = "parent"


# Roles that cross the tenancy boundary.
GLOBAL_ROLES = frozenset({Role.SUPER_ADMIN, Role.COMPANY_ADMIN})


class ExamStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    PUBLISHED = "published"


class ScopeType(str, enum.Enum):
    ALL_SCHOOL = "all_school"
    SELECTED_CLASSES = "selected_classes"
    SINGLE_CLASS = "single_class"


class SubjectScopeType(str, enum.Enum):
    ALL_SUBJECTS = "all_subjects"
    SELECTED_SUBJECTS = "selected_subjects"
    SINGLE_SUBJECT = "single_subject"


@dataclass(frozen=True)
class Actor:
    user_id: uuid.UUID
    school_id: Optional[str]
    roles: FrozenSet[Role]
    # Student record the actor owns, if any.
    student_id: Optional[uuid.UUID] = None

    @classmethod
    def from_tags(cls, user_id, school_id, tags: Iterable[str], student_id=None) -> "Actor":
        """Build an actor from raw role tags. Unknown tags raise ValueError."""
        return cls(
            user_id=user_id,
            school_id=school_id,
            roles=frozenset(Role(tag) for tag in tags),
            student_id=student_id,
        )

    def has_role(self, *roles: Role) -> bool:
        return any(role in self.roles for role in roles)

    @property
    def is_global(self) -> bool:
        return bool(self.roles & GLOBAL_ROLES)

    def in_school(self, school_id: str) -> bool:
        return self.school_id is not None and self.school_id == school_id


@dataclass(frozen=True)
class AssignmentRow:
    teacher_id: uuid.UUID
    subject_id: uuid.UUID
    stream_id: uuid.UUID
    can_enter_results: bool = True
    can_view_analytics: bool = False
    id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class PaperConfig:
    paper_number: int
    paper_name: str
    marks: float
    pass_mark: float
    percentage_weight: float
    duration_minutes: Optional[int] = None
    instructions: Optional[str] = None


@dataclass(frozen=True)
class SubjectConfig:
    subject_id: uuid.UUID
    total_marks: float
    pass_mark: float
    has_papers: bool = False
    paper_count: int = 1
    papers: Tuple[PaperConfig, ...] = ()

    def effective_papers(self) -> Tuple[PaperConfig, ...]:
        """The papers results are entered against.

        A subject without explicit papers is one implicit paper worth the
        whole subject.
        """
        if self.has_papers:
            return self.papers
        return (
            PaperConfig(
                paper_number=1,
                paper_name="Paper 1",
                marks=self.total_marks,
                pass_mark=self.pass_mark,
                percentage_weight=100.0,
            ),
        )


def find_subject(subjects, subject_id) -> Optional[SubjectConfig]:
    for setting in subjects:
        if setting.subject_id == subject_id:
            return setting
    return None


@dataclass(frozen=True)
class ExamConfig:
    """A validated exam configuration, ready to persist."""
    name: str
    scope_type: ScopeType
    subject_scope_type: SubjectScopeType
    class_ids: Tuple[uuid.UUID, ...]
    subjects: Tuple[SubjectConfig, ...]
    grading_system_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    start_date: Optional[object] = None
    end_date: Optional[object] = None

    def subject(self, subject_id) -> Optional[SubjectConfig]:
        return find_subject(self.subjects, subject_id)


@dataclass(frozen=True)
class ExamRecord:
    id: uuid.UUID
    school_id: str
    name: str
    status: ExamStatus
    scope_type: ScopeType = ScopeType.ALL_SCHOOL
    subject_scope_type: SubjectScopeType = SubjectScopeType.ALL_SUBJECTS
    class_ids: Tuple[uuid.UUID, ...] = ()
    subjects: Tuple[SubjectConfig, ...] = ()
    grading_system_id: Optional[uuid.UUID] = None
    result_count: int = 0

    @property
    def is_published(self) -> bool:
        return self.status == ExamStatus.PUBLISHED

    @property
    def subject_ids(self) -> FrozenSet[uuid.UUID]:
        return frozenset(setting.subject_id for setting in self.subjects)

    def subject(self, subject_id) -> Optional[SubjectConfig]:
        return find_subject(self.subjects, subject_id)


@dataclass(frozen=True)
class SubjectRef:
    id: uuid.UUID
    school_id: str


@dataclass(frozen=True)
class StudentRef:
    id: uuid.UUID
    name: str
    school_id: str
    class_id: Optional[uuid.UUID] = None
    stream_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class GradeBand:
    lower: float
    upper: float
    label: str
    points: float = 0
    remarks: Optional[str] = None


@dataclass
class ResultRecord:
    id: uuid.UUID
    exam_id: uuid.UUID
    subject_id: uuid.UUID
    student_id: uuid.UUID
    is_absent: bool
    total_marks: Optional[float]
    grade: Optional[str]
    entered_by: Optional[uuid.UUID]
    points: Optional[float] = None
    position: Optional[int] = None
    paper_marks: Dict[int, Optional[float]] = field(default_factory=dict)
    verified_by: Optional[uuid.UUID] = None


@dataclass
class ComputedResult:
    """What the aggregator hands to the repository for one student."""
    is_absent: bool
    paper_marks: Dict[int, Optional[float]]
    total_marks: float
    grade: str
    points: float


ABSENT_GRADE = "ABS"

