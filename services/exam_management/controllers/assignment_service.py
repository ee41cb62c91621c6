from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from typing import List
from uuid import UUID
import logging

from shared.auth import get_current_actor
from services.exam_management.repository import ExamRepository, get_repository
from services.exam_management.engine.authorization import authorize_admin
from services.exam_management.engine.errors import NotFound
from services.exam_management.engine.records import Actor, AssignmentRow
from services.exam_management.schemas.assignments import (
    AssignmentCreate,
    AssignmentOut,
)

router = APIRouter(prefix="/assignments", tags=["Assignments"])
logger = logging.getLogger(__name__)


# --- ASSIGN TEACHER TO SUBJECT + STREAM ---
@router.post("", response_model=AssignmentOut, status_code=status.HTTP_201_CREATED)
async def create_assignment(
    payload: AssignmentCreate,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    row = AssignmentRow(
        teacher_id=payload.teacher_id,
        subject_id=payload.subject_id,
        stream_id=payload.stream_id,
        can_enter_results=payload.can_enter_results,
        can_view_analytics=payload.can_view_analytics,
    )
    school_id = await repository.assignment_school(row)
    if school_id is None:
        raise NotFound(f"Subject {payload.subject_id} not found")
    authorize_admin(actor, school_id)

    try:
        created = await repository.create_assignment(row, assigned_by=actor.user_id)
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Teacher is already assigned to this subject and stream"
        )
    logger.info("Teacher %s assigned to subject %s stream %s", row.teacher_id, row.subject_id, row.stream_id)
    return AssignmentOut.model_validate(created)


# --- MY ASSIGNMENTS ---
@router.get("/mine", response_model=List[AssignmentOut])
async def get_my_assignments(
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    rows = await repository.get_assignments(actor.user_id)
    return [AssignmentOut.model_validate(row) for row in rows]


# --- REVOKE ASSIGNMENT ---
@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_assignment(
    assignment_id: UUID,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    row = await repository.get_assignment(assignment_id)
    if row is None:
        raise NotFound(f"Assignment {assignment_id} not found")
    authorize_admin(actor, await repository.assignment_school(row))
    await repository.delete_assignment(assignment_id)
    logger.info("Assignment %s revoked by %s", assignment_id, actor.user_id)
