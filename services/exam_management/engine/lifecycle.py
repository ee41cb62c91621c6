# services/exam_management/engine/lifecycle.py
"""
Exam status machine: draft -> active -> completed -> published.

Strictly linear. Published is terminal.
"""

from typing import Optional

from services.exam_management.engine.errors import InvalidTransition, ResultsFrozen
from services.exam_management.engine.records import ExamRecord, ExamStatus

_ORDER = (
    ExamStatus.DRAFT,
    ExamStatus.ACTIVE,
    ExamStatus.COMPLETED,
    ExamStatus.PUBLISHED,
)

# Statuses in which results may still be written.
ENTRY_STATUSES = frozenset({ExamStatus.DRAFT, ExamStatus.ACTIVE, ExamStatus.COMPLETED})

# Teachers only get to enter once the exam is running.
TEACHER_ENTRY_STATUSES = frozenset({ExamStatus.ACTIVE, ExamStatus.COMPLETED})


class ExamLifecycle:

    @staticmethod
    def next_status(current: ExamStatus) -> Optional[ExamStatus]:
        index = _ORDER.index(ExamStatus(current))
        if index + 1 < len(_ORDER):
            return _ORDER[index + 1]
        return None

    @classmethod
    def check_transition(cls, exam: ExamRecord, target: ExamStatus) -> ExamStatus:
        """Validate a transition request and return the target status.

        Structural guards live here too: an exam cannot go live without a
        single configured subject.
        """
        try:
            target = ExamStatus(target)
        except ValueError:
            raise InvalidTransition(exam.status, target) from None
        if cls.next_status(exam.status) != target:
            raise InvalidTransition(exam.status, target)
        if target == ExamStatus.ACTIVE and not exam.subjects:
            raise InvalidTransition(
                exam.status, target, "Exam needs at least one configured subject before it can be activated"
            )
        return target

    @staticmethod
    def entry_permitted(status: ExamStatus, elevated: bool) -> bool:
        """Whether results may be written in this status.

        Admins may enter while the exam is still a draft; teachers may not.
        Nobody may enter once the exam is published.
        """
        if elevated:
            return status in ENTRY_STATUSES
        return status in TEACHER_ENTRY_STATUSES

    @staticmethod
    def ensure_not_frozen(exam: ExamRecord):
        if exam.is_published:
            raise ResultsFrozen()

    @staticmethod
    def can_delete(exam: ExamRecord) -> bool:
        return exam.status == ExamStatus.DRAFT and exam.result_count == 0
