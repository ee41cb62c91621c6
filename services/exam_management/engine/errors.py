# services/exam_management/engine/errors.py
"""
Error taxonomy of the exam results engine.

Batch-level errors propagate to the caller. Row-level errors (RowRejected
subclasses) are caught by the coordinator and reported per student.
"""

import enum
from typing import Optional


class ExamEngineError(Exception):
    """Base class for every error the engine raises on purpose."""
    code = "exam_engine_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class DenyReason(str, enum.Enum):
    NOT_IN_SCHOOL = "NotInSchool"
    NO_ASSIGNMENT = "NoAssignment"
    EXAM_LOCKED = "ExamLocked"
    WRONG_ROLE = "WrongRole"


class AuthError(ExamEngineError):
    code = "auth_error"

    def __init__(self, reason: DenyReason, message: str = ""):
        super().__init__(message or f"Access denied: {reason.value}")
        self.reason = reason

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason.value
        return data


class ConfigRule(str, enum.Enum):
    WEIGHT_SUM = "weight_sum"
    WEIGHT_RANGE = "weight_range"
    PASS_MARK_EXCEEDS_TOTAL = "pass_mark_exceeds_total"
    NON_POSITIVE_MARKS = "non_positive_marks"
    PAPER_COUNT_MISMATCH = "paper_count_mismatch"
    TOO_MANY_PAPERS = "too_many_papers"
    DUPLICATE_PAPER = "duplicate_paper"
    INVALID_DURATION = "invalid_duration"
    DUPLICATE_SUBJECT = "duplicate_subject"
    SUBJECT_SCOPE = "subject_scope"
    ORPHAN_SUBJECT = "orphan_subject"
    MISSING_SUBJECT = "missing_subject"
    CLASS_SCOPE = "class_scope"
    NO_SUBJECTS = "no_subjects"
    DATE_RANGE = "date_range"
    RESULTS_EXIST = "results_exist"


class ConfigInvalid(ExamEngineError):
    code = "config_invalid"

    def __init__(self, rule: ConfigRule, message: str = "", subject_id=None):
        super().__init__(message or rule.value)
        self.rule = rule
        self.subject_id = subject_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["rule"] = self.rule.value
        data["subject_id"] = str(self.subject_id) if self.subject_id else None
        return data


class GradingSystemInvalid(ExamEngineError):
    code = "grading_system_invalid"


class InvalidTransition(ExamEngineError):
    code = "invalid_transition"

    def __init__(self, current, target, message: str = ""):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(message or f"Cannot move exam from '{current_value}' to '{target_value}'")
        self.current = current
        self.target = target


class ResultsFrozen(ExamEngineError):
    code = "results_frozen"

    def __init__(self, message: str = "Results of a published exam cannot be modified"):
        super().__init__(message)


class NotFound(ExamEngineError):
    code = "not_found"


class UnknownCapability(ExamEngineError):
    code = "unknown_capability"

    def __init__(self, name):
        super().__init__(f"Unknown capability '{name}'")
        self.name = name


class UnknownGate(ExamEngineError):
    code = "unknown_gate"

    def __init__(self, name):
        super().__init__(f"Unknown gate '{name}'")
        self.name = name


# --- Row-level errors ---

class RowRejected(ExamEngineError):
    code = "row_rejected"

    def __init__(self, message: str = "", paper_number: Optional[int] = None):
        super().__init__(message)
        self.paper_number = paper_number


class IncompleteEntry(RowRejected):
    code = "incomplete_entry"


class MarkOutOfRange(RowRejected):
    code = "mark_out_of_range"


class UnknownPaper(RowRejected):
    code = "unknown_paper"


class StudentNotEligible(RowRejected):
    code = "student_not_eligible"


class PersistenceFailed(RowRejected):
    code = "persistence_failed"
