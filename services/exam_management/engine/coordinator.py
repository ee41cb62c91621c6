# services/exam_management/engine/coordinator.py
"""
Results entry for one (exam, subject).

A batch is a sequence of independent per-student upserts. One bad row is
reported in its own outcome and never stops the others from being saved.
Concurrent saves of the same (exam, subject, student) are last-write-wins
at the row level; there is no optimistic locking.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from services.exam_management.engine.aggregator import compute_result, rank_positions
from services.exam_management.engine.assignments import AssignmentRegistry, Capability
from services.exam_management.engine.authorization import AuthorizationEngine, Gate, is_elevated
from services.exam_management.engine.errors import NotFound, RowRejected, StudentNotEligible
from services.exam_management.engine.grading import validate_bands
from services.exam_management.engine.lifecycle import ExamLifecycle
from services.exam_management.engine.records import Actor, ExamRecord, ResultRecord, StudentRef

logger = logging.getLogger(__name__)

SAVED = "saved"
REJECTED = "rejected"


@dataclass
class EntryRow:
    student_id: uuid.UUID
    is_absent: bool = False
    paper_marks: Dict[int, Optional[float]] = field(default_factory=dict)


@dataclass
class StudentOutcome:
    student_id: uuid.UUID
    status: str
    result_id: Optional[uuid.UUID] = None
    total_marks: Optional[float] = None
    grade: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    paper_number: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == SAVED


class ResultsEntryCoordinator:

    def __init__(self, repository):
        self.repository = repository

    async def _load_exam(self, exam_id) -> ExamRecord:
        exam = await self.repository.get_exam(exam_id)
        if exam is None:
            raise NotFound(f"Exam {exam_id} not found")
        return exam

    async def _load_result(self, result_id) -> ResultRecord:
        result = await self.repository.get_result(result_id)
        if result is None:
            raise NotFound(f"Result {result_id} not found")
        return result

    async def _engine_for(self, actor: Actor) -> AuthorizationEngine:
        rows = await self.repository.get_assignments(actor.user_id)
        return AuthorizationEngine(AssignmentRegistry(rows))

    async def _refresh_positions(self, exam_id, subject_id):
        results = await self.repository.list_results(exam_id, subject_id)
        await self.repository.update_positions(rank_positions(results))

    def _check_eligible(self, student: Optional[StudentRef], exam: ExamRecord, allowed_streams):
        if student is None or student.school_id != exam.school_id:
            raise StudentNotEligible("Student not found in this school")
        if student.class_id not in exam.class_ids:
            raise StudentNotEligible("Student's class is not part of this exam")
        if allowed_streams is not None and student.stream_id not in allowed_streams:
            raise StudentNotEligible("Student is outside your assigned streams for this subject")

    async def save_results(
        self,
        actor: Actor,
        exam_id: uuid.UUID,
        subject_id: uuid.UUID,
        rows: Sequence[EntryRow],
    ) -> List[StudentOutcome]:
        exam = await self._load_exam(exam_id)
        ExamLifecycle.ensure_not_frozen(exam)

        setting = exam.subject(subject_id)
        if setting is None:
            raise NotFound(f"Subject {subject_id} is not part of this exam")

        # One authorization check covers the whole batch
        engine = await self._engine_for(actor)
        engine.authorize(Gate.ENTER_EXAM_RESULTS, actor, exam, subject_id)

        bands = validate_bands(await self.repository.get_grade_bands(exam.grading_system_id))

        allowed_streams = None
        if not is_elevated(actor, exam.school_id):
            allowed_streams = engine.registry.streams_for_subject(
                actor.user_id, subject_id, Capability.ENTER_RESULTS
            )

        students = await self.repository.get_students([row.student_id for row in rows])

        outcomes = []
        for row in rows:
            try:
                self._check_eligible(students.get(row.student_id), exam, allowed_streams)
                computed = compute_result(setting, bands, row.is_absent, row.paper_marks)
                record = await self.repository.upsert_result(
                    exam.id, subject_id, row.student_id, computed, entered_by=actor.user_id
                )
            except RowRejected as exc:
                outcomes.append(StudentOutcome(
                    student_id=row.student_id,
                    status=REJECTED,
                    error=exc.code,
                    message=exc.message,
                    paper_number=exc.paper_number,
                ))
                continue

            outcomes.append(StudentOutcome(
                student_id=row.student_id,
                status=SAVED,
                result_id=record.id,
                total_marks=record.total_marks,
                grade=record.grade,
            ))

        saved = sum(1 for outcome in outcomes if outcome.ok)
        if saved:
            await self._refresh_positions(exam.id, subject_id)

        logger.info(
            "Saved %d/%d results for exam %s subject %s by %s",
            saved, len(outcomes), exam.id, subject_id, actor.user_id,
        )
        return outcomes

    async def view_result(self, actor: Actor, result_id) -> ResultRecord:
        result = await self._load_result(result_id)
        exam = await self._load_exam(result.exam_id)
        engine = await self._engine_for(actor)
        engine.authorize(Gate.VIEW_RESULT, actor, result, exam)
        return result

    async def update_result(self, actor: Actor, result_id, is_absent: bool, paper_marks) -> ResultRecord:
        result = await self._load_result(result_id)
        exam = await self._load_exam(result.exam_id)
        ExamLifecycle.ensure_not_frozen(exam)

        engine = await self._engine_for(actor)
        engine.authorize(Gate.UPDATE_RESULT, actor, result, exam)

        setting = exam.subject(result.subject_id)
        if setting is None:
            raise NotFound(f"Subject {result.subject_id} is no longer part of this exam")
        bands = validate_bands(await self.repository.get_grade_bands(exam.grading_system_id))

        computed = compute_result(setting, bands, is_absent, paper_marks)
        # Ownership stays with whoever first entered the result
        record = await self.repository.upsert_result(
            exam.id, result.subject_id, result.student_id, computed, entered_by=result.entered_by
        )
        await self._refresh_positions(exam.id, result.subject_id)
        logger.info("Result %s updated by %s", result_id, actor.user_id)
        return await self.repository.get_result(record.id) or record

    async def delete_result(self, actor: Actor, result_id) -> None:
        result = await self._load_result(result_id)
        exam = await self._load_exam(result.exam_id)
        ExamLifecycle.ensure_not_frozen(exam)

        engine = await self._engine_for(actor)
        engine.authorize(Gate.DELETE_RESULT, actor, result, exam)

        await self.repository.delete_result(result_id)
        await self._refresh_positions(exam.id, result.subject_id)
        logger.info("Result %s deleted by %s", result_id, actor.user_id)

    async def verify_result(self, actor: Actor, result_id) -> ResultRecord:
        result = await self._load_result(result_id)
        exam = await self._load_exam(result.exam_id)
        ExamLifecycle.ensure_not_frozen(exam)

        engine = await self._engine_for(actor)
        engine.authorize(Gate.VERIFY_RESULT, actor, result, exam)

        record = await self.repository.mark_verified(result_id, actor.user_id)
        logger.info("Result %s verified by %s", result_id, actor.user_id)
        return record
