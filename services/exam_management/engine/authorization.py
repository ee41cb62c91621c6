# services/exam_management/engine/authorization.py
"""
Named authorization gates for the exam engine.

Each gate is a pure function of (engine, actor, resource, secondary) that
returns a Decision. Gates are registered against a closed Gate enum, so an
unknown gate name fails loudly instead of quietly denying.

Evaluation order inside a gate: role shortcuts first (admin escalation),
assignment lookups second.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from services.exam_management.engine.assignments import AssignmentRegistry, Capability
from services.exam_management.engine.errors import AuthError, DenyReason, UnknownGate
from services.exam_management.engine.lifecycle import ExamLifecycle
from services.exam_management.engine.records import (
    Actor,
    ExamRecord,
    ExamStatus,
    ResultRecord,
    Role,
    SubjectRef,
)

logger = logging.getLogger(__name__)


class Gate(str, enum.Enum):
    # Exam-level predicates
    CREATE_EXAM = "create-exam"
    VIEW_EXAM = "view-exam"
    UPDATE_EXAM = "update-exam"
    DELETE_EXAM = "delete-exam"
    ENTER_EXAM_RESULTS = "enter-exam-results"
    PUBLISH_EXAM_RESULTS = "publish-exam-results"

    # Result-level predicates
    VIEW_RESULT = "view-result"
    UPDATE_RESULT = "update-result"
    DELETE_RESULT = "delete-result"
    VERIFY_RESULT = "verify-result"

    # School-level and subject-level predicates exposed to callers
    GENERATE_REPORTS = "generate-reports"
    EXPORT_RESULTS = "export-results"
    IMPORT_RESULTS = "import-results"
    MANAGE_SUBJECT_RESULTS = "manage-subject-results"
    VIEW_CLASS_REPORTS = "view-class-reports"
    VIEW_SUBJECT_ANALYSIS = "view-subject-analysis"
    ENTER_SUBJECT_RESULTS = "enter-subject-results"
    VIEW_SUBJECT_ANALYTICS = "view-subject-analytics"
    MANAGE_DEPARTMENT_SUBJECTS = "manage-department-subjects"
    APPROVE_RESULTS = "approve-results"

    @classmethod
    def parse(cls, value: Union["Gate", str]) -> "Gate":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownGate(value) from None


# Gates whose resource is a school id.
SCHOOL_GATES = frozenset({
    Gate.CREATE_EXAM,
    Gate.GENERATE_REPORTS,
    Gate.EXPORT_RESULTS,
    Gate.IMPORT_RESULTS,
    Gate.MANAGE_SUBJECT_RESULTS,
    Gate.VIEW_CLASS_REPORTS,
    Gate.VIEW_SUBJECT_ANALYSIS,
    Gate.MANAGE_DEPARTMENT_SUBJECTS,
    Gate.APPROVE_RESULTS,
})

# Gates whose resource is a subject.
SUBJECT_GATES = frozenset({Gate.ENTER_SUBJECT_RESULTS, Gate.VIEW_SUBJECT_ANALYTICS})

# Gates whose resource is an exam (enter-exam-results also takes a subject id).
EXAM_GATES = frozenset({
    Gate.VIEW_EXAM,
    Gate.UPDATE_EXAM,
    Gate.DELETE_EXAM,
    Gate.ENTER_EXAM_RESULTS,
    Gate.PUBLISH_EXAM_RESULTS,
})

# Gates whose resource is a result, with its exam as secondary.
RESULT_GATES = frozenset({Gate.VIEW_RESULT, Gate.UPDATE_RESULT, Gate.DELETE_RESULT, Gate.VERIFY_RESULT})


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None

    def __bool__(self):
        return self.allowed


ALLOW = Decision(True)


def deny(reason: DenyReason) -> Decision:
    return Decision(False, reason)


def is_elevated(actor: Actor, school_id: str) -> bool:
    """school_admin of this school, or a global role anywhere."""
    if actor.is_global:
        return True
    return actor.has_role(Role.SCHOOL_ADMIN) and actor.in_school(school_id)


def _school_roles(actor: Actor, school_id: str, *roles: Role) -> Decision:
    if Role.SCHOOL_ADMIN in roles and actor.is_global:
        return ALLOW
    if not actor.has_role(*roles):
        return deny(DenyReason.WRONG_ROLE)
    if not actor.in_school(school_id):
        return deny(DenyReason.NOT_IN_SCHOOL)
    return ALLOW


def _admin_or_teacher(actor: Actor, school_id: str, teacher_check: Callable[[], bool]) -> Decision:
    if is_elevated(actor, school_id):
        return ALLOW
    if actor.has_role(Role.TEACHER):
        if not actor.in_school(school_id):
            return deny(DenyReason.NOT_IN_SCHOOL)
        return ALLOW if teacher_check() else deny(DenyReason.NO_ASSIGNMENT)
    if actor.has_role(Role.SCHOOL_ADMIN):
        return deny(DenyReason.NOT_IN_SCHOOL)
    return deny(DenyReason.WRONG_ROLE)


_STRATEGIES: Dict[Gate, Callable] = {}


def _gate(*gates: Gate):
    def register(fn):
        for gate in gates:
            _STRATEGIES[gate] = fn
        return fn
    return register


# --- exam gates ---

@_gate(Gate.CREATE_EXAM)
def _create_exam(engine, actor, school_id, secondary=None):
    return _school_roles(actor, school_id, Role.SCHOOL_ADMIN)


@_gate(Gate.VIEW_EXAM)
def _view_exam(engine, actor, exam: ExamRecord, secondary=None):
    registry = engine.registry
    return _admin_or_teacher(
        actor,
        exam.school_id,
        lambda: any(registry.has_any_assignment(actor.user_id, subject_id) for subject_id in exam.subject_ids),
    )


@_gate(Gate.UPDATE_EXAM)
def _update_exam(engine, actor, exam: ExamRecord, secondary=None):
    decision = _school_roles(actor, exam.school_id, Role.SCHOOL_ADMIN)
    if not decision:
        return decision
    if exam.is_published:
        return deny(DenyReason.EXAM_LOCKED)
    return ALLOW


@_gate(Gate.DELETE_EXAM)
def _delete_exam(engine, actor, exam: ExamRecord, secondary=None):
    decision = _school_roles(actor, exam.school_id, Role.SCHOOL_ADMIN)
    if not decision:
        return decision
    if exam.is_published or not ExamLifecycle.can_delete(exam):
        return deny(DenyReason.EXAM_LOCKED)
    return ALLOW


@_gate(Gate.ENTER_EXAM_RESULTS)
def _enter_exam_results(engine, actor, exam: ExamRecord, subject_id=None):
    if is_elevated(actor, exam.school_id):
        if ExamLifecycle.entry_permitted(exam.status, elevated=True):
            return ALLOW
        return deny(DenyReason.EXAM_LOCKED)

    decision = _admin_or_teacher(
        actor,
        exam.school_id,
        lambda: engine.registry.has_capability_in_any_stream(
            actor.user_id, subject_id, Capability.ENTER_RESULTS
        ),
    )
    if not decision:
        return decision
    if not ExamLifecycle.entry_permitted(exam.status, elevated=False):
        return deny(DenyReason.EXAM_LOCKED)
    return ALLOW


@_gate(Gate.PUBLISH_EXAM_RESULTS)
def _publish_exam_results(engine, actor, exam: ExamRecord, secondary=None):
    decision = _school_roles(actor, exam.school_id, Role.SCHOOL_ADMIN)
    if not decision:
        return decision
    if exam.status != ExamStatus.COMPLETED:
        return deny(DenyReason.EXAM_LOCKED)
    return ALLOW


# --- result gates (resource: result, secondary: its exam) ---

@_gate(Gate.VIEW_RESULT)
def _view_result(engine, actor, result: ResultRecord, exam: ExamRecord):
    if is_elevated(actor, exam.school_id):
        return ALLOW
    if actor.has_role(Role.TEACHER) and actor.in_school(exam.school_id):
        if engine.registry.has_any_assignment(actor.user_id, result.subject_id):
            return ALLOW
    if actor.has_role(Role.STUDENT) and actor.in_school(exam.school_id):
        if actor.student_id is not None and actor.student_id == result.student_id:
            return ALLOW if exam.is_published else deny(DenyReason.EXAM_LOCKED)
    if not actor.in_school(exam.school_id):
        return deny(DenyReason.NOT_IN_SCHOOL)
    if actor.has_role(Role.TEACHER):
        return deny(DenyReason.NO_ASSIGNMENT)
    return deny(DenyReason.WRONG_ROLE)


@_gate(Gate.UPDATE_RESULT, Gate.DELETE_RESULT)
def _modify_result(engine, actor, result: ResultRecord, exam: ExamRecord):
    if exam.is_published:
        return deny(DenyReason.EXAM_LOCKED)
    return _admin_or_teacher(
        actor,
        exam.school_id,
        lambda: result.entered_by == actor.user_id
        and engine.registry.has_capability_in_any_stream(actor.user_id, result.subject_id, Capability.ENTER_RESULTS),
    )


@_gate(Gate.VERIFY_RESULT)
def _verify_result(engine, actor, result: ResultRecord, exam: ExamRecord):
    return _school_roles(actor, exam.school_id, Role.SCHOOL_ADMIN, Role.HOD)


# --- school gates ---

@_gate(Gate.GENERATE_REPORTS, Gate.EXPORT_RESULTS, Gate.APPROVE_RESULTS)
def _admin_or_hod(engine, actor, school_id, secondary=None):
    return _school_roles(actor, school_id, Role.SCHOOL_ADMIN, Role.HOD)


@_gate(Gate.IMPORT_RESULTS)
def _import_results(engine, actor, school_id, secondary=None):
    return _school_roles(actor, school_id, Role.SCHOOL_ADMIN)


@_gate(Gate.MANAGE_SUBJECT_RESULTS)
def _manage_subject_results(engine, actor, school_id, secondary=None):
    return _school_roles(actor, school_id, Role.TEACHER, Role.HOD)


@_gate(Gate.VIEW_CLASS_REPORTS, Gate.VIEW_SUBJECT_ANALYSIS)
def _staff_reports(engine, actor, school_id, secondary=None):
    return _school_roles(actor, school_id, Role.SCHOOL_ADMIN, Role.HOD, Role.TEACHER)


@_gate(Gate.MANAGE_DEPARTMENT_SUBJECTS)
def _manage_department_subjects(engine, actor, school_id, secondary=None):
    return _school_roles(actor, school_id, Role.HOD)


# --- subject gates ---

@_gate(Gate.ENTER_SUBJECT_RESULTS)
def _enter_subject_results(engine, actor, subject: SubjectRef, secondary=None):
    return _admin_or_teacher(
        actor,
        subject.school_id,
        lambda: engine.registry.has_capability_in_any_stream(actor.user_id, subject.id, Capability.ENTER_RESULTS),
    )


@_gate(Gate.VIEW_SUBJECT_ANALYTICS)
def _view_subject_analytics(engine, actor, subject: SubjectRef, secondary=None):
    if actor.has_role(Role.HOD) and actor.in_school(subject.school_id):
        return ALLOW
    return _admin_or_teacher(
        actor,
        subject.school_id,
        lambda: engine.registry.has_capability_in_any_stream(actor.user_id, subject.id, Capability.VIEW_ANALYTICS),
    )


class AuthorizationEngine:
    """Evaluates gates for one request's actor against one assignment snapshot."""

    def __init__(self, registry: Optional[AssignmentRegistry] = None):
        self.registry = registry or AssignmentRegistry()

    def evaluate(self, gate, actor: Actor, resource, secondary=None) -> Decision:
        gate = Gate.parse(gate)
        return _STRATEGIES[gate](self, actor, resource, secondary)

    def authorize(self, gate, actor: Actor, resource, secondary=None) -> None:
        gate = Gate.parse(gate)
        decision = self.evaluate(gate, actor, resource, secondary)
        if not decision:
            logger.info(
                "Denied %s for user %s: %s", gate.value, actor.user_id, decision.reason.value
            )
            raise AuthError(decision.reason, f"Not authorized for {gate.value}: {decision.reason.value}")


def authorize_admin(actor: Actor, school_id: str) -> None:
    """Raise AuthError unless the actor administers this school."""
    decision = _school_roles(actor, school_id, Role.SCHOOL_ADMIN)
    if not decision:
        logger.info("Denied school admin action for user %s: %s", actor.user_id, decision.reason.value)
        raise AuthError(decision.reason)
