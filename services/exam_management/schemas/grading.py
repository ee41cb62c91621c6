# services/exam_management/schemas/grading.py

from pydantic import BaseModel, FiniteFloat
from typing import Optional, List
from uuid import UUID

from services.exam_management.engine.records import GradeBand


class GradeBandIn(BaseModel):
    lower: FiniteFloat
    upper: FiniteFloat
    grade: str
    points: FiniteFloat = 0
    remarks: Optional[str] = None

    def to_band(self) -> GradeBand:
        return GradeBand(self.lower, self.upper, self.grade, self.points, self.remarks)


class GradingSystemCreate(BaseModel):
    school_id: Optional[str] = None   # defaults to the caller's school
    name: Optional[str] = None
    preset: Optional[str] = None      # "kcse" or "primary"
    bands: List[GradeBandIn] = []


class GradeBandOut(BaseModel):
    lower: float
    upper: float
    grade: str
    points: float
    remarks: Optional[str] = None


class GradingSystemOut(BaseModel):
    id: UUID
    name: str
    school_id: Optional[str] = None
    bands: List[GradeBandOut]
