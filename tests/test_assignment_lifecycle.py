from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import T0
from workflow_app.core.errors import AlreadySubmitted, MarksOutOfRange, NotSubmitted
from workflow_app.core.models import Assignment, EffectType, SubmissionStatus
from workflow_app.core.services import assignment_lifecycle

DUE = T0 + timedelta(hours=1)
ASSIGNMENT = Assignment(id="asg-1", class_id="cls-1", title="Essay", due_date=DUE, total_marks=100)


def _open():
    return assignment_lifecycle.open_submission(ASSIGNMENT, "stu-1")


def test_open_submission_is_pending_with_assignment_terms() -> None:
    submission = _open()
    assert submission.id == "asg-1:stu-1"
    assert submission.status == SubmissionStatus.PENDING
    assert submission.due_date == DUE
    assert submission.total_marks == 100
    assert submission.submitted_at is None


def test_submit_before_due_date_is_on_time() -> None:
    submitted = assignment_lifecycle.submit(_open(), "my essay", DUE - timedelta(seconds=1))
    assert submitted.status == SubmissionStatus.SUBMITTED
    assert submitted.submitted_at == DUE - timedelta(seconds=1)
    assert submitted.content == "my essay"


def test_submit_exactly_at_due_date_is_on_time() -> None:
    assert assignment_lifecycle.submit(_open(), "x", DUE).status == SubmissionStatus.SUBMITTED


def test_submit_after_due_date_is_late() -> None:
    late = assignment_lifecycle.submit(_open(), "x", DUE + timedelta(seconds=10))
    assert late.status == SubmissionStatus.LATE


def test_second_submit_is_rejected() -> None:
    submitted = assignment_lifecycle.submit(_open(), "x", T0)
    with pytest.raises(AlreadySubmitted):
        assignment_lifecycle.submit(submitted, "again", T0 + timedelta(minutes=1))


def test_grade_requires_a_handed_in_submission() -> None:
    with pytest.raises(NotSubmitted):
        assignment_lifecycle.grade(_open(), 50, None, T0)


@pytest.mark.parametrize("marks", [-1, 101])
def test_grade_rejects_marks_outside_range(marks: int) -> None:
    submitted = assignment_lifecycle.submit(_open(), "x", T0)
    with pytest.raises(MarksOutOfRange):
        assignment_lifecycle.grade(submitted, marks, None, T0)


@pytest.mark.parametrize("marks", [0, 100])
def test_grade_accepts_boundary_marks(marks: int) -> None:
    submitted = assignment_lifecycle.submit(_open(), "x", T0)
    graded, _ = assignment_lifecycle.grade(submitted, marks, None, T0)
    assert graded.marks == marks


def test_grade_rejects_non_integer_marks() -> None:
    submitted = assignment_lifecycle.submit(_open(), "x", T0)
    with pytest.raises(TypeError):
        assignment_lifecycle.grade(submitted, 9.5, None, T0)  # type: ignore[arg-type]


def test_grading_late_submission_notifies_student() -> None:
    late = assignment_lifecycle.submit(_open(), "x", DUE + timedelta(minutes=3))
    graded, effects = assignment_lifecycle.grade(late, 70, "Good, but late.", DUE + timedelta(days=1))

    assert graded.status == SubmissionStatus.GRADED
    assert graded.marks == 70
    assert graded.feedback == "Good, but late."
    assert effects[0].type == EffectType.SUBMISSION_GRADED
    assert effects[0].recipient_id == "stu-1"
    assert effects[0].payload["regrade"] is False


def test_regrade_overwrites_marks_but_keeps_submission_time() -> None:
    submitted_at = DUE - timedelta(minutes=1)
    submitted = assignment_lifecycle.submit(_open(), "x", submitted_at)
    graded, _ = assignment_lifecycle.grade(submitted, 60, "ok", DUE)
    regraded, effects = assignment_lifecycle.grade(graded, 92, "better", DUE + timedelta(hours=1))

    assert regraded.status == SubmissionStatus.GRADED
    assert regraded.marks == 92
    assert regraded.feedback == "better"
    assert regraded.submitted_at == submitted_at
    assert effects[0].payload["regrade"] is True


def test_graded_submission_cannot_be_resubmitted() -> None:
    submitted = assignment_lifecycle.submit(_open(), "x", T0)
    graded, _ = assignment_lifecycle.grade(submitted, 50, None, T0)
    with pytest.raises(AlreadySubmitted):
        assignment_lifecycle.submit(graded, "new", T0)


def test_overdue_is_derived_only_for_unsubmitted_work() -> None:
    pending = _open()
    assert assignment_lifecycle.effective_status(pending, DUE) == SubmissionStatus.PENDING
    assert (
        assignment_lifecycle.effective_status(pending, DUE + timedelta(seconds=1))
        == SubmissionStatus.OVERDUE
    )
    assert pending.status == SubmissionStatus.PENDING

    late = assignment_lifecycle.submit(pending, "x", DUE + timedelta(seconds=5))
    assert (
        assignment_lifecycle.effective_status(late, DUE + timedelta(days=2)) == SubmissionStatus.LATE
    )
