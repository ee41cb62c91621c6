from fastapi import APIRouter, Depends, status
from uuid import UUID

from shared.auth import get_current_actor
from services.exam_management.repository import ExamRepository, get_repository
from services.exam_management.engine.coordinator import ResultsEntryCoordinator
from services.exam_management.engine.records import Actor
from services.exam_management.schemas.results import ResultUpdate, ResultOut

router = APIRouter(prefix="/results", tags=["Exam Results"])


# --- GET ONE RESULT ---
# Students only see their own results, and only once the exam is published
@router.get("/{result_id}", response_model=ResultOut)
async def get_result(
    result_id: UUID,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    result = await ResultsEntryCoordinator(repository).view_result(actor, result_id)
    return ResultOut.model_validate(result)


# --- CORRECT ONE RESULT ---
@router.put("/{result_id}", response_model=ResultOut)
async def update_result(
    result_id: UUID,
    payload: ResultUpdate,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    result = await ResultsEntryCoordinator(repository).update_result(
        actor, result_id, payload.is_absent, dict(payload.paper_marks)
    )
    return ResultOut.model_validate(result)


# --- DELETE ONE RESULT ---
@router.delete("/{result_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_result(
    result_id: UUID,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    await ResultsEntryCoordinator(repository).delete_result(actor, result_id)


# --- VERIFY ONE RESULT (ADMIN / HOD) ---
@router.post("/{result_id}/verify", response_model=ResultOut)
async def verify_result(
    result_id: UUID,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    result = await ResultsEntryCoordinator(repository).verify_result(actor, result_id)
    return ResultOut.model_validate(result)
