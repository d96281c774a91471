"""Submission lifecycle for a single assignment and student."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
import logging

from workflow_app.core.errors import AlreadySubmitted, MarksOutOfRange, NotSubmitted
from workflow_app.core.models import (
    Assignment,
    AssignmentSubmission,
    Effect,
    EffectType,
    SubmissionStatus,
)

logger = logging.getLogger(__name__)

_GRADABLE = (SubmissionStatus.SUBMITTED, SubmissionStatus.LATE, SubmissionStatus.GRADED)


def open_submission(
    assignment: Assignment,
    student_id: str,
    submission_id: str | None = None,
) -> AssignmentSubmission:
    """Materialise the PENDING submission every enrolled student implicitly has."""
    return AssignmentSubmission(
        id=submission_id or f"{assignment.id}:{student_id}",
        assignment_id=assignment.id,
        student_id=student_id,
        due_date=assignment.due_date,
        total_marks=assignment.total_marks,
    )


def submit(
    submission: AssignmentSubmission,
    content: str | None,
    now: datetime,
) -> AssignmentSubmission:
    """Hand in work. Submitting exactly at the due date counts as on time."""
    if submission.status != SubmissionStatus.PENDING:
        raise AlreadySubmitted(
            f"Submission {submission.id} is already {submission.status.value}."
        )

    status = SubmissionStatus.SUBMITTED if now <= submission.due_date else SubmissionStatus.LATE
    submitted = replace(submission, status=status, content=content, submitted_at=now)
    logger.info(
        "Submission %s for assignment %s recorded as %s",
        submission.id,
        submission.assignment_id,
        status.value,
    )
    return submitted


def grade(
    submission: AssignmentSubmission,
    marks: int,
    feedback: str | None,
    now: datetime,
) -> tuple[AssignmentSubmission, list[Effect]]:
    """Grade or regrade a handed-in submission."""
    if isinstance(marks, bool) or not isinstance(marks, int):
        raise TypeError("Marks must be an integer.")
    if submission.status not in _GRADABLE:
        raise NotSubmitted(f"Submission {submission.id} has not been handed in.")
    if marks < 0 or marks > submission.total_marks:
        raise MarksOutOfRange(f"Marks must be between 0 and {submission.total_marks}.")

    regrade = submission.status == SubmissionStatus.GRADED
    graded = replace(
        submission,
        status=SubmissionStatus.GRADED,
        marks=marks,
        feedback=feedback or None,
        graded_at=now,
    )
    effect = Effect(
        type=EffectType.SUBMISSION_GRADED,
        recipient_id=submission.student_id,
        payload={
            "submission_id": submission.id,
            "assignment_id": submission.assignment_id,
            "marks": marks,
            "total_marks": submission.total_marks,
            "regrade": regrade,
        },
    )
    logger.info(
        "Submission %s %s with %d/%d",
        submission.id,
        "regraded" if regrade else "graded",
        marks,
        submission.total_marks,
    )
    return graded, [effect]


def is_overdue(submission: AssignmentSubmission, now: datetime) -> bool:
    return submission.status == SubmissionStatus.PENDING and now > submission.due_date


def effective_status(submission: AssignmentSubmission, now: datetime) -> SubmissionStatus:
    """Status as shown on dashboards, with OVERDUE derived from the clock."""
    if is_overdue(submission, now):
        return SubmissionStatus.OVERDUE
    return submission.status
