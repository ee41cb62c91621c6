from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse
from typing import List, Dict
from uuid import UUID
import openpyxl
from openpyxl.styles import Font, Alignment
import tempfile
import os
import re
from starlette.background import BackgroundTask

from shared.auth import get_current_actor
from services.exam_management.repository import ExamRepository, get_repository
from services.exam_management.engine.authorization import AuthorizationEngine, Gate
from services.exam_management.engine.coordinator import ResultsEntryCoordinator
from services.exam_management.engine.errors import NotFound
from services.exam_management.engine.manager import ExamManager
from services.exam_management.engine.records import Actor, ExamRecord
from services.exam_management.schemas.exams import (
    ExamCreate,
    ExamCreated,
    ExamUpdate,
    ExamStatusUpdate,
    ExamOut,
    EligibleStudentOut,
)
from services.exam_management.schemas.results import (
    SaveResultsRequest,
    SaveResultsResponse,
    StudentOutcomeOut,
)

router = APIRouter(prefix="/exams", tags=["Exams"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# --- CREATE EXAM ---
@router.post("", response_model=ExamCreated, status_code=status.HTTP_201_CREATED)
async def create_exam(
    payload: ExamCreate,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    exam_id = await ExamManager(repository).create_exam(
        actor, payload.school_id, payload.settings(), **payload.build_options()
    )
    return ExamCreated(id=exam_id)


# --- GET EXAM ---
@router.get("/{exam_id}", response_model=ExamOut)
async def get_exam(
    exam_id: UUID,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    exam = await ExamManager(repository).get_exam(actor, exam_id)
    return ExamOut.model_validate(exam)


# --- RECONFIGURE EXAM ---
@router.put("/{exam_id}", response_model=ExamOut)
async def update_exam(
    exam_id: UUID,
    payload: ExamUpdate,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    exam = await ExamManager(repository).update_exam(
        actor, exam_id, payload.settings(), **payload.build_options()
    )
    return ExamOut.model_validate(exam)


# --- MOVE EXAM THROUGH ITS LIFECYCLE ---
# draft -> active -> completed -> published
@router.post("/{exam_id}/status", response_model=ExamOut)
async def update_exam_status(
    exam_id: UUID,
    payload: ExamStatusUpdate,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    exam = await ExamManager(repository).update_exam_status(actor, exam_id, payload.status)
    return ExamOut.model_validate(exam)


# --- DELETE DRAFT EXAM ---
@router.delete("/{exam_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_exam(
    exam_id: UUID,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    await ExamManager(repository).delete_exam(actor, exam_id)


# --- SAVE RESULTS FOR ONE SUBJECT (BATCH) ---
@router.post("/{exam_id}/subjects/{subject_id}/results", response_model=SaveResultsResponse)
async def save_results(
    exam_id: UUID,
    subject_id: UUID,
    payload: SaveResultsRequest,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    outcomes = await ResultsEntryCoordinator(repository).save_results(
        actor, exam_id, subject_id, [row.to_entry() for row in payload.results]
    )
    saved = sum(1 for outcome in outcomes if outcome.ok)
    return SaveResultsResponse(
        saved=saved,
        rejected=len(outcomes) - saved,
        outcomes=[StudentOutcomeOut.model_validate(outcome) for outcome in outcomes],
    )


# --- STUDENTS WHO SIT A SUBJECT ---
@router.get("/{exam_id}/subjects/{subject_id}/students", response_model=List[EligibleStudentOut])
async def get_eligible_students(
    exam_id: UUID,
    subject_id: UUID,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    students = await ExamManager(repository).eligible_students(actor, exam_id, subject_id)
    return [EligibleStudentOut.model_validate(student) for student in students]


# --- PER-SUBJECT STATISTICS ---
@router.get("/{exam_id}/statistics", response_model=Dict[str, dict])
async def get_statistics(
    exam_id: UUID,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    return await ExamManager(repository).statistics(actor, exam_id)


def _results_workbook(exam: ExamRecord, subject_id, results, students):
    setting = exam.subject(subject_id)
    papers = setting.effective_papers()

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Results"

    headers = ["Position", "Student Name"] + [paper.paper_name for paper in papers] + ["Total", "Grade", "Points"]
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center")

    for result in results:
        student = students.get(result.student_id)
        row = [result.position or "-", student.name if student else str(result.student_id)]
        for paper in papers:
            mark = result.paper_marks.get(paper.paper_number)
            row.append("ABS" if result.is_absent else mark)
        row.extend([
            None if result.is_absent else result.total_marks,
            result.grade,
            result.points,
        ])
        ws.append(row)

    return wb


# --- EXPORT SUBJECT RESULTS TO EXCEL ---
@router.get("/{exam_id}/subjects/{subject_id}/results/export")
async def export_results_excel(
    exam_id: UUID,
    subject_id: UUID,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    exam = await repository.get_exam(exam_id)
    if exam is None:
        raise NotFound(f"Exam {exam_id} not found")
    if exam.subject(subject_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subject is not part of this exam"
        )

    AuthorizationEngine().authorize(Gate.EXPORT_RESULTS, actor, exam.school_id)

    results = await repository.list_results(exam_id, subject_id)
    students = await repository.get_students([result.student_id for result in results])
    wb = _results_workbook(exam, subject_id, results, students)

    # Save to temp file
    with tempfile.NamedTemporaryFile(delete=False, suffix=".xlsx") as tmp:
        wb.save(tmp.name)
        tmp_path = tmp.name

    safe_name = re.sub(r"[^\w\- ]+", "_", exam.name)
    return FileResponse(
        tmp_path,
        filename=f"{safe_name}_results.xlsx",
        media_type=XLSX_MEDIA_TYPE,
        background=BackgroundTask(os.remove, tmp_path),
    )
