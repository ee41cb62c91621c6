from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import Optional
from uuid import UUID

from shared.auth import get_current_actor
from services.exam_management.repository import ExamRepository, get_repository
from services.exam_management.engine.assignments import AssignmentRegistry
from services.exam_management.engine.authorization import (
    AuthorizationEngine,
    Gate,
    EXAM_GATES,
    SCHOOL_GATES,
    SUBJECT_GATES,
)
from services.exam_management.engine.errors import NotFound
from services.exam_management.engine.records import Actor
from services.exam_management.schemas.assignments import GateDecisionOut

router = APIRouter(prefix="/gates", tags=["Authorization"])


# --- EVALUATE A NAMED GATE FOR THE CALLER ---
# /gates/enter-subject-results?subject_id=...
@router.get("/{gate_name}", response_model=GateDecisionOut)
async def check_gate(
    gate_name: str,
    school_id: Optional[str] = Query(None, description="Defaults to the caller's school"),
    subject_id: Optional[UUID] = Query(None),
    exam_id: Optional[UUID] = Query(None),
    result_id: Optional[UUID] = Query(None),
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    gate = Gate.parse(gate_name)
    engine = AuthorizationEngine(AssignmentRegistry(await repository.get_assignments(actor.user_id)))

    if gate in SCHOOL_GATES:
        decision = engine.evaluate(gate, actor, school_id or actor.school_id)

    elif gate in SUBJECT_GATES:
        if subject_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{gate.value} needs subject_id")
        subject = await repository.get_subject(subject_id)
        if subject is None:
            raise NotFound(f"Subject {subject_id} not found")
        decision = engine.evaluate(gate, actor, subject)

    elif gate in EXAM_GATES:
        if exam_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{gate.value} needs exam_id")
        exam = await repository.get_exam(exam_id)
        if exam is None:
            raise NotFound(f"Exam {exam_id} not found")
        if gate == Gate.ENTER_EXAM_RESULTS and subject_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{gate.value} needs subject_id")
        decision = engine.evaluate(gate, actor, exam, subject_id)

    else:
        # result gates: the result plus its exam
        if result_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{gate.value} needs result_id")
        result = await repository.get_result(result_id)
        if result is None:
            raise NotFound(f"Result {result_id} not found")
        exam = await repository.get_exam(result.exam_id)
        decision = engine.evaluate(gate, actor, result, exam)

    return GateDecisionOut(
        gate=gate.value,
        allowed=decision.allowed,
        reason=decision.reason.value if decision.reason else None,
    )
