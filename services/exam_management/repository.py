# services/exam_management/repository.py
"""
SQLAlchemy persistence for the exam engine.

Maps ORM rows to the plain records in engine/records.py so the engine never
sees a session. Each write commits on its own; a batch of results is a
series of independent per-student commits.
"""

import logging
from typing import Dict, Iterable, List, Optional

from fastapi import Depends
from sqlalchemy import delete, distinct, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from services.exam_management.engine.errors import NotFound, PersistenceFailed
from services.exam_management.engine.grading import KCSE_BANDS
from services.exam_management.engine.records import (
    AssignmentRow,
    ComputedResult,
    ExamConfig,
    ExamRecord,
    ExamStatus,
    GradeBand,
    PaperConfig,
    ResultRecord,
    StudentRef,
    SubjectConfig,
    SubjectRef,
)
from services.exam_management.models.assignments import SubjectTeacherStream
from services.exam_management.models.exams import Exam, ExamClass, ExamPaper, ExamSubjectSetting
from services.exam_management.models.grading import GradeBand as GradeBandRow
from services.exam_management.models.grading import GradingSystem
from services.exam_management.models.results import ExamResult, PaperResult
from services.user_management.models.classes import SchoolClass
from services.user_management.models.subjects import SchoolSubject
from services.user_management.models.users import SchoolUser
from shared.db import get_db

logger = logging.getLogger(__name__)

STUDENT_ROLE = "student"


def _subject_config(setting: ExamSubjectSetting) -> SubjectConfig:
    papers = ()
    if setting.has_papers:
        papers = tuple(
            PaperConfig(
                paper_number=paper.paper_number,
                paper_name=paper.paper_name,
                marks=paper.marks,
                pass_mark=paper.pass_mark,
                percentage_weight=paper.percentage_weight,
                duration_minutes=paper.duration_minutes,
                instructions=paper.instructions,
            )
            for paper in setting.papers
        )
    return SubjectConfig(
        subject_id=setting.subject_id,
        total_marks=setting.total_marks,
        pass_mark=setting.pass_mark,
        has_papers=bool(setting.has_papers),
        paper_count=setting.paper_count or 1,
        papers=papers,
    )


def _result_record(result: ExamResult, paper_numbers: Dict) -> ResultRecord:
    return ResultRecord(
        id=result.id,
        exam_id=result.exam_id,
        subject_id=result.subject_id,
        student_id=result.student_id,
        is_absent=result.is_absent,
        total_marks=result.total_marks,
        grade=result.grade,
        entered_by=result.entered_by,
        points=result.points,
        position=result.position,
        paper_marks={paper_numbers[pr.paper_id]: pr.marks for pr in result.paper_results},
        verified_by=result.verified_by,
    )


def _student_ref(user: SchoolUser) -> StudentRef:
    return StudentRef(
        id=user.id,
        name=user.name,
        school_id=user.school_id,
        class_id=user.class_id,
        stream_id=user.stream_id,
    )


def _setting_row(exam_id, setting: SubjectConfig) -> ExamSubjectSetting:
    row = ExamSubjectSetting(
        exam_id=exam_id,
        subject_id=setting.subject_id,
        total_marks=setting.total_marks,
        pass_mark=setting.pass_mark,
        has_papers=setting.has_papers,
        paper_count=setting.paper_count if setting.has_papers else 1,
    )
    # Single-paper subjects persist their implicit paper too
    for paper in setting.effective_papers():
        row.papers.append(ExamPaper(
            exam_id=exam_id,
            subject_id=setting.subject_id,
            paper_number=paper.paper_number,
            paper_name=paper.paper_name,
            marks=paper.marks,
            pass_mark=paper.pass_mark,
            percentage_weight=paper.percentage_weight,
            duration_minutes=paper.duration_minutes,
            instructions=paper.instructions,
        ))
    return row


class ExamRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- exams ---

    async def _exam_row(self, exam_id) -> Optional[Exam]:
        result = await self.db.execute(
            select(Exam)
            .options(
                selectinload(Exam.classes),
                selectinload(Exam.subject_settings).selectinload(ExamSubjectSetting.papers),
            )
            .where(Exam.id == exam_id)
        )
        return result.scalars().first()

    async def get_exam(self, exam_id) -> Optional[ExamRecord]:
        exam = await self._exam_row(exam_id)
        if exam is None:
            return None
        result_count = await self.db.scalar(
            select(func.count(ExamResult.id)).where(ExamResult.exam_id == exam_id)
        )
        return ExamRecord(
            id=exam.id,
            school_id=exam.school_id,
            name=exam.name,
            status=ExamStatus(exam.exam_status),
            scope_type=exam.scope_type,
            subject_scope_type=exam.subject_scope_type,
            class_ids=tuple(row.class_id for row in exam.classes),
            subjects=tuple(_subject_config(setting) for setting in exam.subject_settings),
            grading_system_id=exam.grading_system_id,
            result_count=result_count or 0,
        )

    async def create_exam(self, school_id: str, config: ExamConfig, created_by=None):
        exam = Exam(
            school_id=school_id,
            name=config.name,
            description=config.description,
            start_date=config.start_date,
            end_date=config.end_date,
            scope_type=config.scope_type,
            subject_scope_type=config.subject_scope_type,
            exam_status=ExamStatus.DRAFT,
            grading_system_id=config.grading_system_id,
            created_by=created_by,
        )
        self.db.add(exam)
        await self.db.flush()

        for class_id in config.class_ids:
            self.db.add(ExamClass(exam_id=exam.id, class_id=class_id))
        for setting in config.subjects:
            self.db.add(_setting_row(exam.id, setting))

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise
        return exam.id

    async def replace_exam_config(self, exam_id, config: ExamConfig):
        exam = await self._exam_row(exam_id)
        if exam is None:
            raise NotFound(f"Exam {exam_id} not found")
        locked = await self.subjects_with_results(exam_id)

        exam.name = config.name
        exam.description = config.description
        exam.start_date = config.start_date
        exam.end_date = config.end_date
        exam.scope_type = config.scope_type
        exam.subject_scope_type = config.subject_scope_type
        exam.grading_system_id = config.grading_system_id
        # Old rows go first; the unique (exam, class) and (exam, subject) keys
        # would otherwise clash with the replacements on flush.
        exam.classes.clear()
        for setting in list(exam.subject_settings):
            if setting.subject_id not in locked:
                exam.subject_settings.remove(setting)
        await self.db.flush()

        for class_id in config.class_ids:
            exam.classes.append(ExamClass(exam_id=exam.id, class_id=class_id))

        for setting in config.subjects:
            if setting.subject_id not in locked:
                exam.subject_settings.append(_setting_row(exam.id, setting))

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise

    async def transition_status(self, exam_id, expected: ExamStatus, target: ExamStatus) -> bool:
        """Conditional update: applies only if the stored status is still `expected`."""
        result = await self.db.execute(
            update(Exam)
            .where(Exam.id == exam_id, Exam.exam_status == expected)
            .values(exam_status=target)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def delete_exam(self, exam_id):
        exam = await self._exam_row(exam_id)
        if exam is None:
            raise NotFound(f"Exam {exam_id} not found")
        await self.db.delete(exam)
        await self.db.commit()

    async def subjects_with_results(self, exam_id) -> set:
        result = await self.db.execute(
            select(distinct(ExamResult.subject_id)).where(ExamResult.exam_id == exam_id)
        )
        return set(result.scalars().all())

    # --- school lookups ---

    async def get_school_subject_ids(self, school_id: str) -> List:
        result = await self.db.execute(select(SchoolSubject.id).where(SchoolSubject.school_id == school_id))
        return list(result.scalars().all())

    async def get_school_class_ids(self, school_id: str) -> List:
        result = await self.db.execute(select(SchoolClass.id).where(SchoolClass.school_id == school_id))
        return list(result.scalars().all())

    async def get_subject(self, subject_id) -> Optional[SubjectRef]:
        subject = await self.db.get(SchoolSubject, subject_id)
        if subject is None:
            return None
        return SubjectRef(id=subject.id, school_id=subject.school_id)

    async def get_students(self, student_ids: Iterable) -> Dict:
        student_ids = list(student_ids)
        if not student_ids:
            return {}
        result = await self.db.execute(
            select(SchoolUser).where(
                SchoolUser.id.in_(student_ids),
                SchoolUser.roles.contains([STUDENT_ROLE]),
            )
        )
        return {user.id: _student_ref(user) for user in result.scalars().all()}

    async def list_students(self, class_ids: Iterable, stream_ids: Iterable = None) -> List[StudentRef]:
        stmt = select(SchoolUser).where(
            SchoolUser.class_id.in_(list(class_ids)),
            SchoolUser.roles.contains([STUDENT_ROLE]),
            SchoolUser.is_active.is_(True),
        )
        if stream_ids is not None:
            stmt = stmt.where(SchoolUser.stream_id.in_(list(stream_ids)))
        result = await self.db.execute(stmt.order_by(SchoolUser.class_id, SchoolUser.name))
        return [_student_ref(user) for user in result.scalars().all()]

    # --- assignments ---

    async def get_assignments(self, teacher_id) -> List[AssignmentRow]:
        result = await self.db.execute(
            select(SubjectTeacherStream).where(SubjectTeacherStream.teacher_id == teacher_id)
        )
        return [
            AssignmentRow(
                id=row.id,
                teacher_id=row.teacher_id,
                subject_id=row.subject_id,
                stream_id=row.stream_id,
                can_enter_results=row.can_enter_results,
                can_view_analytics=row.can_view_analytics,
            )
            for row in result.scalars().all()
        ]

    async def assignment_school(self, row: AssignmentRow) -> Optional[str]:
        """School owning the subject of an assignment, None if the subject is unknown."""
        return await self.db.scalar(select(SchoolSubject.school_id).where(SchoolSubject.id == row.subject_id))

    async def get_assignment(self, assignment_id) -> Optional[AssignmentRow]:
        row = await self.db.get(SubjectTeacherStream, assignment_id)
        if row is None:
            return None
        return AssignmentRow(
            id=row.id,
            teacher_id=row.teacher_id,
            subject_id=row.subject_id,
            stream_id=row.stream_id,
            can_enter_results=row.can_enter_results,
            can_view_analytics=row.can_view_analytics,
        )

    async def create_assignment(self, row: AssignmentRow, assigned_by=None) -> AssignmentRow:
        assignment = SubjectTeacherStream(
            teacher_id=row.teacher_id,
            subject_id=row.subject_id,
            stream_id=row.stream_id,
            can_enter_results=row.can_enter_results,
            can_view_analytics=row.can_view_analytics,
            assigned_by=assigned_by,
        )
        self.db.add(assignment)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise
        return AssignmentRow(
            id=assignment.id,
            teacher_id=assignment.teacher_id,
            subject_id=assignment.subject_id,
            stream_id=assignment.stream_id,
            can_enter_results=assignment.can_enter_results,
            can_view_analytics=assignment.can_view_analytics,
        )

    async def delete_assignment(self, assignment_id):
        await self.db.execute(delete(SubjectTeacherStream).where(SubjectTeacherStream.id == assignment_id))
        await self.db.commit()

    # --- grading systems ---

    async def get_grade_bands(self, grading_system_id) -> List[GradeBand]:
        """Bands of a grading system; the KCSE table when the exam names none."""
        if grading_system_id is None:
            return list(KCSE_BANDS)
        system = await self.get_grading_system(grading_system_id)
        if system is None:
            raise NotFound(f"Grading system {grading_system_id} not found")
        return system[2]

    async def get_grading_system(self, grading_system_id):
        """(name, school_id, bands) or None."""
        result = await self.db.execute(
            select(GradingSystem)
            .options(selectinload(GradingSystem.bands))
            .where(GradingSystem.id == grading_system_id)
        )
        system = result.scalars().first()
        if system is None:
            return None
        bands = [
            GradeBand(
                lower=band.lower_bound,
                upper=band.upper_bound,
                label=band.grade,
                points=band.points or 0,
                remarks=band.remarks,
            )
            for band in system.bands
        ]
        return system.name, system.school_id, bands

    async def create_grading_system(self, school_id, name: str, bands: Iterable[GradeBand], is_default=False):
        system = GradingSystem(school_id=school_id, name=name, is_default=is_default)
        for band in bands:
            system.bands.append(GradeBandRow(
                lower_bound=band.lower,
                upper_bound=band.upper,
                grade=band.label,
                points=band.points,
                remarks=band.remarks,
            ))
        self.db.add(system)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise
        return system.id

    # --- results ---

    async def _paper_numbers(self, exam_id, subject_id) -> Dict:
        result = await self.db.execute(
            select(ExamPaper).where(ExamPaper.exam_id == exam_id, ExamPaper.subject_id == subject_id)
        )
        return {paper.id: paper for paper in result.scalars().all()}

    async def upsert_result(self, exam_id, subject_id, student_id, computed: ComputedResult, entered_by=None):
        """Insert or overwrite one student's result and its paper results in one commit.

        Two concurrent writers for the same student: the last commit wins.
        """
        papers = await self._paper_numbers(exam_id, subject_id)
        by_number = {paper.paper_number: paper for paper in papers.values()}

        try:
            found = await self.db.execute(
                select(ExamResult)
                .options(selectinload(ExamResult.paper_results))
                .where(
                    ExamResult.exam_id == exam_id,
                    ExamResult.subject_id == subject_id,
                    ExamResult.student_id == student_id,
                )
            )
            result = found.scalars().first()
            if result is None:
                result = ExamResult(exam_id=exam_id, subject_id=subject_id, student_id=student_id)
                self.db.add(result)

            result.is_absent = computed.is_absent
            result.total_marks = computed.total_marks
            result.grade = computed.grade
            result.points = computed.points
            result.entered_by = entered_by
            if computed.is_absent:
                result.position = None

            existing = {pr.paper_id: pr for pr in result.paper_results}
            for number, mark in computed.paper_marks.items():
                paper = by_number[number]
                paper_result = existing.get(paper.id)
                if paper_result is None:
                    paper_result = PaperResult(paper_id=paper.id)
                    result.paper_results.append(paper_result)
                paper_result.marks = mark
                paper_result.is_absent = computed.is_absent

            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.warning("Result write failed for student %s: %s", student_id, exc)
            raise PersistenceFailed("Could not save this student's result, please retry") from exc

        numbers = {paper_id: paper.paper_number for paper_id, paper in papers.items()}
        return _result_record(result, numbers)

    def _results_query(self):
        return select(ExamResult).options(
            selectinload(ExamResult.paper_results).selectinload(PaperResult.paper)
        )

    @staticmethod
    def _record(result: ExamResult) -> ResultRecord:
        numbers = {pr.paper_id: pr.paper.paper_number for pr in result.paper_results}
        return _result_record(result, numbers)

    async def get_result(self, result_id) -> Optional[ResultRecord]:
        found = await self.db.execute(self._results_query().where(ExamResult.id == result_id))
        result = found.scalars().first()
        return self._record(result) if result else None

    async def list_results(self, exam_id, subject_id=None) -> List[ResultRecord]:
        stmt = self._results_query().where(ExamResult.exam_id == exam_id)
        if subject_id is not None:
            stmt = stmt.where(ExamResult.subject_id == subject_id)
        found = await self.db.execute(stmt.order_by(ExamResult.position.nulls_last()))
        return [self._record(result) for result in found.scalars().all()]

    async def update_positions(self, positions: Dict):
        for result_id, position in positions.items():
            await self.db.execute(
                update(ExamResult).where(ExamResult.id == result_id).values(position=position)
            )
        await self.db.commit()

    async def delete_result(self, result_id):
        result = await self.db.get(ExamResult, result_id)
        if result is None:
            raise NotFound(f"Result {result_id} not found")
        await self.db.delete(result)
        await self.db.commit()

    async def mark_verified(self, result_id, verified_by) -> ResultRecord:
        await self.db.execute(
            update(ExamResult)
            .where(ExamResult.id == result_id)
            .values(verified_by=verified_by, verified_at=func.now())
        )
        await self.db.commit()
        return await self.get_result(result_id)


def get_repository(db: AsyncSession = Depends(get_db)) -> ExamRepository:
    return ExamRepository(db)
