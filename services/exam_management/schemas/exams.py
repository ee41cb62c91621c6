# services/exam_management/schemas/exams.py

from pydantic import BaseModel, FiniteFloat
from typing import Optional, List
from datetime import date
from uuid import UUID

from services.exam_management.engine.records import (
    ExamStatus,
    PaperConfig,
    ScopeType,
    SubjectConfig,
    SubjectScopeType,
)


class PaperIn(BaseModel):
    paper_number: Optional[int] = None   # defaults to position in the list
    paper_name: Optional[str] = None     # defaults to "Paper <n>"
    marks: FiniteFloat
    pass_mark: FiniteFloat
    percentage_weight: FiniteFloat
    duration_minutes: Optional[int] = None
    instructions: Optional[str] = None


class SubjectSettingIn(BaseModel):
    subject_id: UUID
    total_marks: FiniteFloat = 100
    pass_mark: FiniteFloat = 40
    has_papers: bool = False
    paper_count: Optional[int] = None
    papers: List[PaperIn] = []

    def to_config(self) -> SubjectConfig:
        papers = []
        for index, paper in enumerate(self.papers, start=1):
            number = paper.paper_number or index
            papers.append(PaperConfig(
                paper_number=number,
                paper_name=paper.paper_name or f"Paper {number}",
                marks=paper.marks,
                pass_mark=paper.pass_mark,
                percentage_weight=paper.percentage_weight,
                duration_minutes=paper.duration_minutes,
                instructions=paper.instructions,
            ))

        paper_count = self.paper_count
        if paper_count is None:
            paper_count = len(papers) if self.has_papers else 1

        return SubjectConfig(
            subject_id=self.subject_id,
            total_marks=self.total_marks,
            pass_mark=self.pass_mark,
            has_papers=self.has_papers,
            paper_count=paper_count,
            papers=tuple(papers),
        )


class ExamUpdate(BaseModel):
    name: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    scope_type: ScopeType = ScopeType.ALL_SCHOOL
    subject_scope_type: SubjectScopeType = SubjectScopeType.ALL_SUBJECTS
    class_ids: List[UUID] = []
    subject_ids: List[UUID] = []
    subjects: List[SubjectSettingIn] = []
    grading_system_id: Optional[UUID] = None
    auto_balance: bool = False   # rescale paper weights to sum to 100

    def settings(self) -> List[SubjectConfig]:
        return [subject.to_config() for subject in self.subjects]

    def build_options(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "scope_type": self.scope_type,
            "subject_scope_type": self.subject_scope_type,
            "selected_class_ids": self.class_ids,
            "selected_subject_ids": self.subject_ids,
            "grading_system_id": self.grading_system_id,
            "auto_balance": self.auto_balance,
        }


class ExamCreate(ExamUpdate):
    school_id: str


class ExamCreated(BaseModel):
    id: UUID
    status: ExamStatus = ExamStatus.DRAFT


class ExamStatusUpdate(BaseModel):
    status: ExamStatus


class PaperOut(BaseModel):
    paper_number: int
    paper_name: str
    marks: float
    pass_mark: float
    percentage_weight: float
    duration_minutes: Optional[int] = None

    class Config:
        from_attributes = True


class SubjectSettingOut(BaseModel):
    subject_id: UUID
    total_marks: float
    pass_mark: float
    has_papers: bool
    paper_count: int
    papers: List[PaperOut]

    class Config:
        from_attributes = True


class ExamOut(BaseModel):
    id: UUID
    school_id: str
    name: str
    status: ExamStatus
    is_published: bool
    scope_type: ScopeType
    subject_scope_type: SubjectScopeType
    class_ids: List[UUID]
    subjects: List[SubjectSettingOut]
    grading_system_id: Optional[UUID] = None
    result_count: int

    class Config:
        from_attributes = True


class EligibleStudentOut(BaseModel):
    id: UUID
    name: str
    class_id: Optional[UUID] = None
    stream_id: Optional[UUID] = None

    class Config:
        from_attributes = True
