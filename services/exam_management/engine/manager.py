# services/exam_management/engine/manager.py
"""
Exam-level operations: configure, move through the lifecycle, delete,
list eligible students and summarise results.
"""

import logging
import uuid
from typing import Dict, List, Sequence

from services.exam_management.engine.aggregator import subject_statistics
from services.exam_management.engine.assignments import AssignmentRegistry, Capability
from services.exam_management.engine.authorization import AuthorizationEngine, Gate, is_elevated
from services.exam_management.engine.config import ExamConfigModel
from services.exam_management.engine.errors import (
    AuthError,
    ConfigInvalid,
    ConfigRule,
    DenyReason,
    InvalidTransition,
    NotFound,
)
from services.exam_management.engine.lifecycle import ExamLifecycle
from services.exam_management.engine.records import (
    Actor,
    ExamRecord,
    ExamStatus,
    StudentRef,
    SubjectConfig,
)

logger = logging.getLogger(__name__)


class ExamManager:

    def __init__(self, repository):
        self.repository = repository

    async def _load_exam(self, exam_id) -> ExamRecord:
        exam = await self.repository.get_exam(exam_id)
        if exam is None:
            raise NotFound(f"Exam {exam_id} not found")
        return exam

    async def _engine_for(self, actor: Actor) -> AuthorizationEngine:
        rows = await self.repository.get_assignments(actor.user_id)
        return AuthorizationEngine(AssignmentRegistry(rows))

    async def _config_model(self, school_id: str) -> ExamConfigModel:
        return ExamConfigModel(
            await self.repository.get_school_subject_ids(school_id),
            await self.repository.get_school_class_ids(school_id),
        )

    async def create_exam(
        self,
        actor: Actor,
        school_id: str,
        settings: Sequence[SubjectConfig],
        **options,
    ) -> uuid.UUID:
        """Validate and store a new draft exam. Returns the exam id.

        `options` are the ExamConfigModel.build keywords (name, scope types,
        selected ids, dates, auto_balance, ...).
        """
        AuthorizationEngine().authorize(Gate.CREATE_EXAM, actor, school_id)

        model = await self._config_model(school_id)
        config = model.build(settings=settings, **options)

        if config.grading_system_id is not None:
            # NotFound for a grading system that doesn't exist
            await self.repository.get_grade_bands(config.grading_system_id)

        exam_id = await self.repository.create_exam(school_id, config, created_by=actor.user_id)
        logger.info("Exam %s created in school %s by %s", exam_id, school_id, actor.user_id)
        return exam_id

    async def get_exam(self, actor: Actor, exam_id: uuid.UUID) -> ExamRecord:
        exam = await self._load_exam(exam_id)
        engine = await self._engine_for(actor)
        engine.authorize(Gate.VIEW_EXAM, actor, exam)
        return exam

    async def update_exam(
        self,
        actor: Actor,
        exam_id: uuid.UUID,
        settings: Sequence[SubjectConfig],
        **options,
    ) -> ExamRecord:
        exam = await self._load_exam(exam_id)
        AuthorizationEngine().authorize(Gate.UPDATE_EXAM, actor, exam)

        model = await self._config_model(exam.school_id)
        config = model.build(settings=settings, **options)

        # Subjects that already carry results keep their paper setup
        for subject_id in await self.repository.subjects_with_results(exam.id):
            if config.subject(subject_id) != exam.subject(subject_id):
                raise ConfigInvalid(
                    ConfigRule.RESULTS_EXIST,
                    "Subject already has results and cannot be changed or removed",
                    subject_id,
                )

        await self.repository.replace_exam_config(exam.id, config)
        logger.info("Exam %s reconfigured by %s", exam.id, actor.user_id)
        return await self._load_exam(exam.id)

    async def update_exam_status(self, actor: Actor, exam_id: uuid.UUID, target: ExamStatus) -> ExamRecord:
        exam = await self._load_exam(exam_id)
        try:
            target = ExamStatus(target)
        except ValueError:
            raise InvalidTransition(exam.status, target) from None

        gate = Gate.PUBLISH_EXAM_RESULTS if target == ExamStatus.PUBLISHED else Gate.UPDATE_EXAM
        decision = AuthorizationEngine().evaluate(gate, actor, exam)
        if not decision and decision.reason is not DenyReason.EXAM_LOCKED:
            logger.info("Denied %s for user %s: %s", gate.value, actor.user_id, decision.reason.value)
            raise AuthError(decision.reason)

        # A locked exam is reported as an illegal transition, not an auth failure
        ExamLifecycle.check_transition(exam, target)

        # Compare-and-set on the stored status guards against a concurrent transition
        if not await self.repository.transition_status(exam.id, exam.status, target):
            raise InvalidTransition(exam.status, target, "Exam status was changed by another request")

        logger.info("Exam %s moved %s -> %s by %s", exam.id, exam.status.value, target.value, actor.user_id)
        return await self._load_exam(exam.id)

    async def delete_exam(self, actor: Actor, exam_id: uuid.UUID) -> None:
        exam = await self._load_exam(exam_id)
        AuthorizationEngine().authorize(Gate.DELETE_EXAM, actor, exam)
        await self.repository.delete_exam(exam.id)
        logger.info("Exam %s deleted by %s", exam.id, actor.user_id)

    async def eligible_students(self, actor: Actor, exam_id: uuid.UUID, subject_id: uuid.UUID) -> List[StudentRef]:
        """Students who sit this subject, narrowed to a teacher's own streams."""
        exam = await self._load_exam(exam_id)
        if exam.subject(subject_id) is None:
            raise NotFound(f"Subject {subject_id} is not part of this exam")

        engine = await self._engine_for(actor)
        engine.authorize(Gate.VIEW_EXAM, actor, exam)

        if is_elevated(actor, exam.school_id):
            return await self.repository.list_students(exam.class_ids)

        streams = engine.registry.streams_for_subject(actor.user_id, subject_id, Capability.ENTER_RESULTS)
        if not streams:
            return []
        return await self.repository.list_students(exam.class_ids, stream_ids=streams)

    async def statistics(self, actor: Actor, exam_id: uuid.UUID) -> Dict[str, dict]:
        exam = await self._load_exam(exam_id)
        engine = await self._engine_for(actor)
        engine.authorize(Gate.VIEW_EXAM, actor, exam)

        elevated = is_elevated(actor, exam.school_id)
        stats = {}
        for setting in exam.subjects:
            if not elevated and not engine.registry.has_any_assignment(actor.user_id, setting.subject_id):
                continue
            results = await self.repository.list_results(exam.id, setting.subject_id)
            stats[str(setting.subject_id)] = subject_statistics(results, setting.pass_mark)
        return stats
