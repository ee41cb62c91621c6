# services/exam_management/schemas/results.py

from pydantic import BaseModel, FiniteFloat
from typing import Optional, List, Dict
from uuid import UUID

from services.exam_management.engine.coordinator import EntryRow


class ResultRowIn(BaseModel):
    student_id: UUID
    is_absent: bool = False
    paper_marks: Dict[int, Optional[FiniteFloat]] = {}   # paper_number -> marks

    def to_entry(self) -> EntryRow:
        return EntryRow(
            student_id=self.student_id,
            is_absent=self.is_absent,
            paper_marks=dict(self.paper_marks),
        )


class SaveResultsRequest(BaseModel):
    results: List[ResultRowIn]


class StudentOutcomeOut(BaseModel):
    student_id: UUID
    status: str   # "saved" or "rejected"
    result_id: Optional[UUID] = None
    total_marks: Optional[float] = None
    grade: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    paper_number: Optional[int] = None

    class Config:
        from_attributes = True


class SaveResultsResponse(BaseModel):
    saved: int
    rejected: int
    outcomes: List[StudentOutcomeOut]


class ResultUpdate(BaseModel):
    is_absent: bool = False
    paper_marks: Dict[int, Optional[FiniteFloat]] = {}


class ResultOut(BaseModel):
    id: UUID
    exam_id: UUID
    subject_id: UUID
    student_id: UUID
    is_absent: bool
    total_marks: Optional[float] = None
    grade: Optional[str] = None
    points: Optional[float] = None
    position: Optional[int] = None
    paper_marks: Dict[int, Optional[float]] = {}
    entered_by: Optional[UUID] = None
    verified_by: Optional[UUID] = None

    class Config:
        from_attributes = True
