# services/exam_management/schemas/assignments.py

from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class AssignmentCreate(BaseModel):
    teacher_id: UUID
    subject_id: UUID
    stream_id: UUID
    can_enter_results: bool = True
    can_view_analytics: bool = False


class AssignmentOut(BaseModel):
    id: UUID
    teacher_id: UUID
    subject_id: UUID
    stream_id: UUID
    can_enter_results: bool
    can_view_analytics: bool

    class Config:
        from_attributes = True


class GateDecisionOut(BaseModel):
    gate: str
    allowed: bool
    reason: Optional[str] = None
