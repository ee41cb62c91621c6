import asyncio
import uuid
from dataclasses import replace

import pytest

from services.exam_management.engine.coordinator import EntryRow, ResultsEntryCoordinator
from services.exam_management.engine.errors import (
    AuthError,
    ConfigInvalid,
    ConfigRule,
    DenyReason,
    InvalidTransition,
    NotFound,
)
from services.exam_management.engine.manager import ExamManager
from services.exam_management.engine.records import ExamStatus, ScopeType, SubjectScopeType


@pytest.fixture
def manager(world):
    return ExamManager(world.repo)


def _options(world, **overrides):
    options = dict(
        name="End Term",
        scope_type=ScopeType.SELECTED_CLASSES,
        subject_scope_type=SubjectScopeType.SELECTED_SUBJECTS,
        selected_subject_ids=[world.math, world.english],
        selected_class_ids=[world.form1],
    )
    options.update(overrides)
    return options


def _enter(world, exam_id, subject_id, rows):
    coordinator = ResultsEntryCoordinator(world.repo)
    return asyncio.run(coordinator.save_results(world.admin, exam_id, subject_id, rows))


# --- create ---

def test_create_exam_starts_as_draft(world, manager):
    exam_id = asyncio.run(manager.create_exam(
        world.admin, world.school_id, [world.math_setting, world.english_setting], **_options(world)
    ))
    exam = world.repo.exams[exam_id]
    assert exam.status == ExamStatus.DRAFT
    assert exam.subject_ids == {world.math, world.english}
    assert exam.class_ids == (world.form1,)


def test_create_exam_requires_admin_of_school(world, manager):
    with pytest.raises(AuthError) as excinfo:
        asyncio.run(manager.create_exam(world.teacher, world.school_id, [world.math_setting], **_options(world)))
    assert excinfo.value.reason == DenyReason.WRONG_ROLE

    with pytest.raises(AuthError):
        asyncio.run(manager.create_exam(world.other_admin, world.school_id, [world.math_setting], **_options(world)))


def test_create_exam_with_invalid_config_stores_nothing(world, manager):
    with pytest.raises(ConfigInvalid) as excinfo:
        asyncio.run(manager.create_exam(world.admin, world.school_id, [world.math_setting], **_options(world)))
    assert excinfo.value.rule == ConfigRule.MISSING_SUBJECT
    assert world.repo.exams == {}


def test_create_exam_with_unknown_grading_system(world, manager):
    with pytest.raises(NotFound):
        asyncio.run(manager.create_exam(
            world.admin, world.school_id, [world.math_setting, world.english_setting],
            **_options(world, grading_system_id=uuid.uuid4())
        ))


# --- update ---

def test_update_exam_replaces_config(world, make_exam, manager):
    exam_id = make_exam(status=ExamStatus.DRAFT)
    exam = asyncio.run(manager.update_exam(
        world.admin, exam_id, [world.english_setting],
        **_options(world, name="Renamed", selected_subject_ids=[world.english])
    ))
    assert exam.name == "Renamed"
    assert exam.subject_ids == {world.english}


def test_update_exam_cannot_touch_subject_with_results(world, make_exam, manager):
    exam_id = make_exam()
    _enter(world, exam_id, world.math, [EntryRow(world.alice.id, paper_marks={1: 50, 2: 50})])

    with pytest.raises(ConfigInvalid) as excinfo:
        asyncio.run(manager.update_exam(
            world.admin, exam_id, [world.english_setting],
            **_options(world, selected_subject_ids=[world.english])
        ))
    assert excinfo.value.rule == ConfigRule.RESULTS_EXIST
    assert excinfo.value.subject_id == world.math

    changed = replace(world.math_setting, pass_mark=50)
    with pytest.raises(ConfigInvalid):
        asyncio.run(manager.update_exam(
            world.admin, exam_id, [changed, world.english_setting], **_options(world)
        ))


def test_update_published_exam_denied(world, make_exam, manager):
    exam_id = make_exam(status=ExamStatus.PUBLISHED)
    with pytest.raises(AuthError) as excinfo:
        asyncio.run(manager.update_exam(world.admin, exam_id, [world.math_setting, world.english_setting], **_options(world)))
    assert excinfo.value.reason == DenyReason.EXAM_LOCKED


# --- status ---

def test_walk_through_lifecycle(world, make_exam, manager):
    exam_id = make_exam(status=ExamStatus.DRAFT)
    for target in (ExamStatus.ACTIVE, ExamStatus.COMPLETED, ExamStatus.PUBLISHED):
        exam = asyncio.run(manager.update_exam_status(world.admin, exam_id, target))
        assert exam.status == target
    assert exam.is_published
    assert world.repo.transitions[-1] == (ExamStatus.COMPLETED, ExamStatus.PUBLISHED)


def test_skipping_a_status_is_invalid(world, make_exam, manager):
    exam_id = make_exam(status=ExamStatus.ACTIVE)
    with pytest.raises(InvalidTransition):
        asyncio.run(manager.update_exam_status(world.admin, exam_id, ExamStatus.PUBLISHED))


def test_unknown_status_is_invalid_transition(world, make_exam, manager):
    exam_id = make_exam(status=ExamStatus.DRAFT)
    with pytest.raises(InvalidTransition):
        asyncio.run(manager.update_exam_status(world.admin, exam_id, "archived"))
    assert world.repo.exams[exam_id].status == ExamStatus.DRAFT


def test_publishing_twice_is_invalid_transition(world, make_exam, manager):
    exam_id = make_exam(status=ExamStatus.COMPLETED)
    asyncio.run(manager.update_exam_status(world.admin, exam_id, ExamStatus.PUBLISHED))
    with pytest.raises(InvalidTransition):
        asyncio.run(manager.update_exam_status(world.admin, exam_id, ExamStatus.PUBLISHED))


def test_concurrent_publish_only_one_wins(world, make_exam, manager):
    exam_id = make_exam(status=ExamStatus.COMPLETED)

    async def race():
        return await asyncio.gather(
            manager.update_exam_status(world.admin, exam_id, ExamStatus.PUBLISHED),
            manager.update_exam_status(world.super_admin, exam_id, ExamStatus.PUBLISHED),
            return_exceptions=True,
        )

    outcomes = asyncio.run(race())
    failures = [outcome for outcome in outcomes if isinstance(outcome, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InvalidTransition)
    assert world.repo.transitions == [(ExamStatus.COMPLETED, ExamStatus.PUBLISHED)]


def test_lost_compare_and_set(world, make_exam, manager, monkeypatch):
    exam_id = make_exam(status=ExamStatus.COMPLETED)

    async def stale(exam_id, expected, target):
        return False

    monkeypatch.setattr(world.repo, "transition_status", stale)
    with pytest.raises(InvalidTransition):
        asyncio.run(manager.update_exam_status(world.admin, exam_id, ExamStatus.PUBLISHED))


def test_activation_needs_a_subject(world, make_exam, manager):
    exam_id = make_exam(status=ExamStatus.DRAFT, subjects=[])
    with pytest.raises(InvalidTransition):
        asyncio.run(manager.update_exam_status(world.admin, exam_id, ExamStatus.ACTIVE))


def test_teacher_cannot_change_status(world, make_exam, manager):
    exam_id = make_exam(status=ExamStatus.ACTIVE)
    with pytest.raises(AuthError) as excinfo:
        asyncio.run(manager.update_exam_status(world.teacher, exam_id, ExamStatus.COMPLETED))
    assert excinfo.value.reason == DenyReason.WRONG_ROLE


# --- delete ---

def test_delete_empty_draft(world, make_exam, manager):
    exam_id = make_exam(status=ExamStatus.DRAFT)
    asyncio.run(manager.delete_exam(world.admin, exam_id))
    assert exam_id not in world.repo.exams


def test_delete_draft_with_results_denied(world, make_exam, manager):
    exam_id = make_exam(status=ExamStatus.DRAFT)
    _enter(world, exam_id, world.english, [EntryRow(world.alice.id, paper_marks={1: 50})])
    with pytest.raises(AuthError):
        asyncio.run(manager.delete_exam(world.admin, exam_id))
    assert exam_id in world.repo.exams


def test_get_unknown_exam(world, manager):
    with pytest.raises(NotFound):
        asyncio.run(manager.get_exam(world.admin, uuid.uuid4()))


# --- eligible students ---

def test_admin_sees_every_student_in_exam_classes(world, make_exam, manager):
    exam_id = make_exam()
    students = asyncio.run(manager.eligible_students(world.admin, exam_id, world.math))
    assert [student.name for student in students] == ["Alice", "Brian", "Carol"]


def test_teacher_sees_own_streams(world, make_exam, manager):
    exam_id = make_exam()
    students = asyncio.run(manager.eligible_students(world.teacher, exam_id, world.math))
    assert [student.name for student in students] == ["Alice", "Brian"]


def test_view_only_assignment_gives_no_students(world, make_exam, manager):
    exam_id = make_exam()
    assert asyncio.run(manager.eligible_students(world.teacher, exam_id, world.english)) == []


def test_eligible_students_unassigned_teacher(world, make_exam, manager):
    exam_id = make_exam()
    with pytest.raises(AuthError):
        asyncio.run(manager.eligible_students(world.hod, exam_id, world.math))


# --- statistics ---

def test_statistics_per_subject(world, make_exam, manager):
    exam_id = make_exam()
    _enter(world, exam_id, world.math, [
        EntryRow(world.alice.id, paper_marks={1: 80, 2: 70}),
        EntryRow(world.brian.id, paper_marks={1: 20, 2: 20}),
        EntryRow(world.carol.id, is_absent=True),
    ])
    stats = asyncio.run(manager.statistics(world.admin, exam_id))
    assert set(stats) == {str(world.math), str(world.english)}

    math = stats[str(world.math)]
    assert math["students_attempted"] == 2
    assert math["absent"] == 1
    assert math["highest"] == 76.0
    assert math["pass_rate"] == 50.0
    assert stats[str(world.english)]["students_attempted"] == 0


def test_statistics_limited_to_teacher_subjects(world, make_exam, manager):
    exam_id = make_exam()
    stats = asyncio.run(manager.statistics(world.viewer, exam_id))
    assert set(stats) == {str(world.math)}
