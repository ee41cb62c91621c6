# services/exam_management/engine/config.py
"""
Exam configuration model.

Validates an exam's class scope, subject scope and per-subject paper setup
before anything is stored. Validation is all-or-nothing: the first broken
rule raises ConfigInvalid and nothing is committed.
"""

import math
import uuid
from dataclasses import replace
from typing import Iterable, Optional, Sequence, Tuple

from services.exam_management.engine.errors import ConfigInvalid, ConfigRule
from services.exam_management.engine.records import (
    ExamConfig,
    PaperConfig,
    ScopeType,
    SubjectConfig,
    SubjectScopeType,
)

WEIGHT_TOLERANCE = 0.01
MAX_PAPERS = 5
DEFAULT_TOTAL_MARKS = 100
DEFAULT_PASS_MARK = 40


def normalize_weights(papers: Sequence[PaperConfig]) -> Tuple[PaperConfig, ...]:
    """Rescale paper weights proportionally so they sum to exactly 100.

    All-zero weights are split evenly. Rounding drift lands on the last paper.
    """
    if not papers:
        return ()
    total = sum(paper.percentage_weight for paper in papers)
    if total <= 0:
        raw = [100.0 / len(papers)] * len(papers)
    else:
        raw = [paper.percentage_weight * 100.0 / total for paper in papers]

    weights = [round(weight, 2) for weight in raw[:-1]]
    weights.append(round(100.0 - sum(weights), 2))
    return tuple(replace(paper, percentage_weight=weight) for paper, weight in zip(papers, weights))


def validate_subject(setting: SubjectConfig) -> None:
    subject_id = setting.subject_id

    if not math.isfinite(setting.total_marks) or setting.total_marks <= 0:
        raise ConfigInvalid(ConfigRule.NON_POSITIVE_MARKS, "Subject total marks must be positive", subject_id)
    if not math.isfinite(setting.pass_mark) or setting.pass_mark < 0 or setting.pass_mark > setting.total_marks:
        raise ConfigInvalid(
            ConfigRule.PASS_MARK_EXCEEDS_TOTAL,
            f"Subject pass mark {setting.pass_mark} must lie within 0-{setting.total_marks}",
            subject_id,
        )

    if not setting.has_papers:
        if setting.papers or setting.paper_count != 1:
            raise ConfigInvalid(
                ConfigRule.PAPER_COUNT_MISMATCH,
                "A subject without papers is a single implicit paper",
                subject_id,
            )
        return

    papers = setting.papers
    if setting.paper_count != len(papers):
        raise ConfigInvalid(
            ConfigRule.PAPER_COUNT_MISMATCH,
            f"paper_count is {setting.paper_count} but {len(papers)} papers were supplied",
            subject_id,
        )
    if not papers:
        raise ConfigInvalid(ConfigRule.PAPER_COUNT_MISMATCH, "A multi-paper subject needs papers", subject_id)
    if len(papers) > MAX_PAPERS:
        raise ConfigInvalid(ConfigRule.TOO_MANY_PAPERS, f"At most {MAX_PAPERS} papers per subject", subject_id)

    numbers = [paper.paper_number for paper in papers]
    if len(set(numbers)) != len(numbers):
        raise ConfigInvalid(ConfigRule.DUPLICATE_PAPER, "Paper numbers must be unique", subject_id)

    for paper in papers:
        if not math.isfinite(paper.marks) or paper.marks <= 0:
            raise ConfigInvalid(
                ConfigRule.NON_POSITIVE_MARKS, f"Paper {paper.paper_number} marks must be positive", subject_id
            )
        if not math.isfinite(paper.pass_mark) or paper.pass_mark < 0 or paper.pass_mark > paper.marks:
            raise ConfigInvalid(
                ConfigRule.PASS_MARK_EXCEEDS_TOTAL,
                f"Paper {paper.paper_number} pass mark {paper.pass_mark} must lie within 0-{paper.marks}",
                subject_id,
            )
        if not math.isfinite(paper.percentage_weight) or not 0 <= paper.percentage_weight <= 100:
            raise ConfigInvalid(
                ConfigRule.WEIGHT_RANGE, f"Paper {paper.paper_number} weight must lie within 0-100", subject_id
            )
        if paper.duration_minutes is not None and paper.duration_minutes <= 0:
            raise ConfigInvalid(
                ConfigRule.INVALID_DURATION, f"Paper {paper.paper_number} duration must be positive", subject_id
            )

    total_weight = sum(paper.percentage_weight for paper in papers)
    if abs(total_weight - 100.0) > WEIGHT_TOLERANCE:
        raise ConfigInvalid(
            ConfigRule.WEIGHT_SUM,
            f"Paper weights sum to {round(total_weight, 2)}, expected 100",
            subject_id,
        )


def default_setting(subject_id: uuid.UUID) -> SubjectConfig:
    return SubjectConfig(
        subject_id=subject_id,
        total_marks=DEFAULT_TOTAL_MARKS,
        pass_mark=DEFAULT_PASS_MARK,
    )


class ExamConfigModel:
    """Builds a validated ExamConfig against one school's classes and subjects."""

    def __init__(self, school_subject_ids: Iterable[uuid.UUID], school_class_ids: Iterable[uuid.UUID]):
        self.school_subject_ids = frozenset(school_subject_ids)
        self.school_class_ids = frozenset(school_class_ids)

    def build(
        self,
        *,
        name: str,
        scope_type: ScopeType,
        subject_scope_type: SubjectScopeType,
        settings: Sequence[SubjectConfig],
        selected_subject_ids: Sequence[uuid.UUID] = (),
        selected_class_ids: Sequence[uuid.UUID] = (),
        grading_system_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
        start_date=None,
        end_date=None,
        auto_balance: bool = False,
    ) -> ExamConfig:
        if start_date and end_date and end_date < start_date:
            raise ConfigInvalid(ConfigRule.DATE_RANGE, "end_date must not be before start_date")

        class_ids = self._resolve_classes(ScopeType(scope_type), selected_class_ids)

        if auto_balance:
            settings = [
                replace(setting, papers=normalize_weights(setting.papers)) if setting.has_papers else setting
                for setting in settings
            ]

        subjects = self._resolve_subjects(SubjectScopeType(subject_scope_type), settings, selected_subject_ids)
        for setting in subjects:
            validate_subject(setting)

        return ExamConfig(
            name=name,
            scope_type=ScopeType(scope_type),
            subject_scope_type=SubjectScopeType(subject_scope_type),
            class_ids=class_ids,
            subjects=subjects,
            grading_system_id=grading_system_id,
            description=description,
            start_date=start_date,
            end_date=end_date,
        )

    def _resolve_classes(self, scope_type: ScopeType, selected: Sequence[uuid.UUID]) -> Tuple[uuid.UUID, ...]:
        if scope_type == ScopeType.ALL_SCHOOL:
            if not self.school_class_ids:
                raise ConfigInvalid(ConfigRule.CLASS_SCOPE, "School has no classes to examine")
            return tuple(sorted(self.school_class_ids, key=str))

        selected = tuple(dict.fromkeys(selected))
        if scope_type == ScopeType.SINGLE_CLASS and len(selected) != 1:
            raise ConfigInvalid(ConfigRule.CLASS_SCOPE, "single_class scope needs exactly one class")
        if scope_type == ScopeType.SELECTED_CLASSES and not selected:
            raise ConfigInvalid(ConfigRule.CLASS_SCOPE, "selected_classes scope needs at least one class")
        unknown = [class_id for class_id in selected if class_id not in self.school_class_ids]
        if unknown:
            raise ConfigInvalid(ConfigRule.CLASS_SCOPE, f"Class {unknown[0]} does not belong to this school")
        return selected

    def _resolve_subjects(
        self,
        scope_type: SubjectScopeType,
        settings: Sequence[SubjectConfig],
        selected: Sequence[uuid.UUID],
    ) -> Tuple[SubjectConfig, ...]:
        by_subject = {}
        for setting in settings:
            if setting.subject_id in by_subject:
                raise ConfigInvalid(
                    ConfigRule.DUPLICATE_SUBJECT, "Subject configured more than once", setting.subject_id
                )
            by_subject[setting.subject_id] = setting

        for subject_id in by_subject:
            if subject_id not in self.school_subject_ids:
                raise ConfigInvalid(ConfigRule.ORPHAN_SUBJECT, "Subject does not belong to this school", subject_id)

        if scope_type == SubjectScopeType.SINGLE_SUBJECT:
            if len(by_subject) != 1:
                raise ConfigInvalid(
                    ConfigRule.SUBJECT_SCOPE, f"single_subject scope needs exactly one setting, got {len(by_subject)}"
                )
            if selected and set(selected) != set(by_subject):
                raise ConfigInvalid(
                    ConfigRule.ORPHAN_SUBJECT, "Setting does not match the selected subject", next(iter(by_subject))
                )
            return tuple(by_subject.values())

        if scope_type == SubjectScopeType.SELECTED_SUBJECTS:
            wanted = list(dict.fromkeys(selected))
            if not wanted:
                raise ConfigInvalid(ConfigRule.SUBJECT_SCOPE, "selected_subjects scope needs at least one subject")
            for subject_id in by_subject:
                if subject_id not in wanted:
                    raise ConfigInvalid(ConfigRule.ORPHAN_SUBJECT, "Setting for a subject that was not selected", subject_id)
            for subject_id in wanted:
                if subject_id not in by_subject:
                    raise ConfigInvalid(ConfigRule.MISSING_SUBJECT, "Selected subject has no setting", subject_id)
            return tuple(by_subject[subject_id] for subject_id in wanted)

        # all_subjects: every subject of the school, defaults for the unconfigured
        if not self.school_subject_ids:
            raise ConfigInvalid(ConfigRule.NO_SUBJECTS, "School has no subjects to examine")
        return tuple(
            by_subject.get(subject_id) or default_setting(subject_id)
            for subject_id in sorted(self.school_subject_ids, key=str)
        )
