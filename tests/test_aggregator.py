import uuid

import pytest

from services.exam_management.engine.aggregator import (
    compute_result,
    compute_total,
    grade_for,
    rank_positions,
    subject_statistics,
)
from services.exam_management.engine.errors import IncompleteEntry, MarkOutOfRange, UnknownPaper
from services.exam_management.engine.grading import KCSE_BANDS
from services.exam_management.engine.records import ABSENT_GRADE, ResultRecord


def _record(total, grade="B", is_absent=False):
    return ResultRecord(
        id=uuid.uuid4(),
        exam_id=uuid.uuid4(),
        subject_id=uuid.uuid4(),
        student_id=uuid.uuid4(),
        is_absent=is_absent,
        total_marks=total,
        grade=grade,
        entered_by=None,
    )


def test_weighted_two_paper_total(world):
    result = compute_result(world.math_setting, KCSE_BANDS, False, {1: 80, 2: 70})
    assert result.total_marks == 76.0
    assert result.grade == "A-"
    assert result.points == 11
    assert result.paper_marks == {1: 80.0, 2: 70.0}


def test_total_rounded_to_two_places(world):
    assert compute_total({1: 33.333, 2: 0}, world.math_setting.papers) == 20.0
    assert compute_total({1: 55.555, 2: 44.444}, world.math_setting.papers) == 51.11


def test_single_paper_subject_scores_raw_mark(world):
    result = compute_result(world.english_setting, KCSE_BANDS, False, {1: 64})
    assert result.total_marks == 64.0
    assert result.grade == "B-"


def test_absent_student(world):
    result = compute_result(world.math_setting, KCSE_BANDS, True, {1: 90})
    assert result.is_absent
    assert result.total_marks == 0.0
    assert result.grade == ABSENT_GRADE
    assert result.points == 0
    assert result.paper_marks == {1: None, 2: None}


def test_missing_paper_mark(world):
    with pytest.raises(IncompleteEntry) as excinfo:
        compute_result(world.math_setting, KCSE_BANDS, False, {1: 80})
    assert excinfo.value.paper_number == 2


def test_null_mark_is_incomplete(world):
    with pytest.raises(IncompleteEntry):
        compute_result(world.math_setting, KCSE_BANDS, False, {1: 80, 2: None})


def test_non_numeric_mark(world):
    with pytest.raises(IncompleteEntry):
        compute_result(world.english_setting, KCSE_BANDS, False, {1: "seventy"})
    with pytest.raises(IncompleteEntry):
        compute_result(world.english_setting, KCSE_BANDS, False, {1: True})


def test_non_finite_mark_is_incomplete(world):
    with pytest.raises(IncompleteEntry) as excinfo:
        compute_result(world.math_setting, KCSE_BANDS, False, {1: float("nan"), 2: 70})
    assert excinfo.value.paper_number == 1
    with pytest.raises(IncompleteEntry):
        compute_result(world.english_setting, KCSE_BANDS, False, {1: float("inf")})


def test_mark_above_paper_maximum(world):
    with pytest.raises(MarkOutOfRange) as excinfo:
        compute_result(world.math_setting, KCSE_BANDS, False, {1: 150, 2: 50})
    assert excinfo.value.paper_number == 1


def test_negative_mark(world):
    with pytest.raises(MarkOutOfRange):
        compute_result(world.english_setting, KCSE_BANDS, False, {1: -1})


def test_unknown_paper(world):
    with pytest.raises(UnknownPaper):
        compute_result(world.english_setting, KCSE_BANDS, False, {1: 50, 3: 20})


@pytest.mark.parametrize("total,label", [
    (100, "A"),
    (80, "A"),
    (79.99, "A-"),
    (75, "A-"),
    (74.5, "B+"),
    (30, "D-"),
    (29.99, "E"),
    (0, "E"),
])
def test_kcse_boundaries(total, label):
    assert grade_for(total, KCSE_BANDS).label == label


def test_rank_positions_competition_style():
    first = _record(90)
    tie_a = _record(75)
    tie_b = _record(75)
    last = _record(40)
    absent = _record(0.0, ABSENT_GRADE, is_absent=True)

    positions = rank_positions([last, tie_a, absent, first, tie_b])

    assert positions[first.id] == 1
    assert positions[tie_a.id] == 2
    assert positions[tie_b.id] == 2
    assert positions[last.id] == 4
    assert positions[absent.id] is None


def test_subject_statistics():
    results = [
        _record(80, "A"),
        _record(60, "B-"),
        _record(30, "D-"),
        _record(0.0, ABSENT_GRADE, is_absent=True),
    ]
    stats = subject_statistics(results, pass_mark=40)
    assert stats["students_attempted"] == 3
    assert stats["absent"] == 1
    assert stats["highest"] == 80
    assert stats["lowest"] == 30
    assert stats["average"] == 56.67
    assert stats["pass_rate"] == 66.67
    assert stats["grade_distribution"] == {"A": 1, "B-": 1, "D-": 1, ABSENT_GRADE: 1}


def test_subject_statistics_nobody_sat():
    stats = subject_statistics([_record(0.0, ABSENT_GRADE, is_absent=True)], pass_mark=40)
    assert stats["students_attempted"] == 0
    assert stats["average"] is None
    assert stats["pass_rate"] is None
