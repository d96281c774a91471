"""Read-side summaries for assignment and exam dashboards."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from workflow_app.core.models import (
    AssignmentSubmission,
    Exam,
    ExamAttempt,
    SubmissionStatus,
)
from workflow_app.core.services.assignment_lifecycle import effective_status


@dataclass(slots=True)
class AssignmentSummary:
    """Counts per displayed status plus the average graded percentage."""

    total: int = 0
    pending: int = 0
    submitted: int = 0
    late: int = 0
    graded: int = 0
    overdue: int = 0
    average_percentage: int = 0


@dataclass(slots=True)
class ExamResult:
    """Immutable snapshot of a finished attempt returned to consumers."""

    attempt_id: str
    student_id: str
    obtained_marks: int | None
    total_marks: int
    percentage: float | None
    passed: bool | None
    pending_manual_marks: int
    visible: bool


def summarize_assignments(
    submissions: Iterable[AssignmentSubmission],
    now: datetime,
) -> AssignmentSummary:
    summary = AssignmentSummary()
    percentages: list[float] = []
    for submission in submissions:
        summary.total += 1
        status = effective_status(submission, now)
        if status == SubmissionStatus.PENDING:
            summary.pending += 1
        elif status == SubmissionStatus.SUBMITTED:
            summary.submitted += 1
        elif status == SubmissionStatus.LATE:
            summary.late += 1
        elif status == SubmissionStatus.GRADED:
            summary.graded += 1
        elif status == SubmissionStatus.OVERDUE:
            summary.overdue += 1

        if submission.marks is not None and submission.total_marks > 0:
            percentages.append(submission.marks / submission.total_marks * 100)

    if percentages:
        summary.average_percentage = round(sum(percentages) / len(percentages))
    return summary


def exam_result(attempt: ExamAttempt, exam: Exam) -> ExamResult:
    """Result card for one attempt. Marks are withheld when the exam hides results."""
    total = exam.total_marks
    obtained = attempt.obtained_marks
    visible = exam.show_results and attempt.is_terminal

    percentage = None
    passed = None
    if obtained is not None and total > 0:
        percentage = round(obtained / total * 100, 2)
    if obtained is not None and exam.passing_marks is not None:
        passed = obtained >= exam.passing_marks

    if not visible:
        return ExamResult(
            attempt_id=attempt.id,
            student_id=attempt.student_id,
            obtained_marks=None,
            total_marks=total,
            percentage=None,
            passed=None,
            pending_manual_marks=attempt.pending_manual_marks,
            visible=False,
        )
    return ExamResult(
        attempt_id=attempt.id,
        student_id=attempt.student_id,
        obtained_marks=obtained,
        total_marks=total,
        percentage=percentage,
        passed=passed,
        pending_manual_marks=attempt.pending_manual_marks,
        visible=True,
    )


def rank_attempts(attempts: Iterable[ExamAttempt], limit: int | None = None) -> list[ExamAttempt]:
    """Finished attempts sorted by marks, ties broken by who finished first."""
    finished = [a for a in attempts if a.is_terminal and a.obtained_marks is not None]
    ranked = sorted(
        finished,
        key=lambda a: (-(a.obtained_marks or 0), a.submitted_at),
    )
    return ranked if limit is None else ranked[:limit]
