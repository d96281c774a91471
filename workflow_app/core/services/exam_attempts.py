"""Timed exam attempts: start, answer recording, submission, expiry and scoring.

The engine owns no timers. Every operation compares the supplied ``now``
against the attempt's fixed deadline, and expiry only happens when the host
calls :func:`expire` (from a sweep, a heartbeat or a lazy read).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
import hashlib
import logging
import random
from uuid import uuid4

from workflow_app.constants.workflow_constants import SHUFFLE_DIGEST
from workflow_app.core.errors import (
    AttemptExists,
    AttemptNotActive,
    DeadlineExceeded,
    ExamNotOpen,
    NotYetExpired,
)
from workflow_app.core.models import (
    AttemptStatus,
    Effect,
    EffectType,
    Exam,
    ExamAttempt,
    Question,
    WorkflowPolicy,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScoreResult:
    """Outcome of auto-grading one set of answers."""

    obtained_marks: int
    objective_marks: int
    pending_manual_marks: int
    awarded: dict[str, int | None] = field(default_factory=dict)


def is_window_open(exam: Exam, now: datetime) -> bool:
    """Both window bounds are inclusive."""
    return exam.window_start <= now <= exam.window_end


def window_state(exam: Exam, now: datetime) -> str:
    if now < exam.window_start:
        return "upcoming"
    if now > exam.window_end:
        return "past"
    return "ongoing"


def start(
    exam: Exam,
    existing: Iterable[ExamAttempt],
    student_id: str,
    now: datetime,
    policy: WorkflowPolicy | None = None,
    attempt_id: str | None = None,
) -> ExamAttempt:
    """Open the single attempt ``student_id`` gets for ``exam``."""
    policy = policy or WorkflowPolicy()
    if exam.duration_seconds <= 0:
        raise ValueError("Exam duration must be a positive number of seconds.")
    if not is_window_open(exam, now):
        raise ExamNotOpen(f"Exam {exam.id} is {window_state(exam, now)}.")
    if any(a.exam_id == exam.id and a.student_id == student_id for a in existing):
        raise AttemptExists(f"Student {student_id} already has an attempt for exam {exam.id}.")

    attempt_id = attempt_id or uuid4().hex
    deadline = now + timedelta(seconds=exam.duration_seconds)
    if policy.cap_deadline_at_window_end and deadline > exam.window_end:
        deadline = exam.window_end

    order = [question.id for question in exam.questions]
    if exam.shuffle_questions:
        random.Random(order_seed(attempt_id)).shuffle(order)

    attempt = ExamAttempt(
        id=attempt_id,
        exam_id=exam.id,
        student_id=student_id,
        status=AttemptStatus.IN_PROGRESS,
        started_at=now,
        deadline=deadline,
        question_order=order,
    )
    logger.info(
        "Attempt %s started for exam %s by %s, deadline %s",
        attempt.id,
        exam.id,
        student_id,
        deadline.isoformat(),
    )
    return attempt


def answer(
    attempt: ExamAttempt,
    exam: Exam,
    question_id: str,
    value: str,
    now: datetime,
) -> ExamAttempt:
    """Record an answer. A repeated answer to the same question replaces the old one."""
    _check_exam(attempt, exam)
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise AttemptNotActive(f"Attempt {attempt.id} is {attempt.status.value}.")
    if attempt.deadline is not None and now >= attempt.deadline:
        raise DeadlineExceeded(f"Attempt {attempt.id} ran out of time.")
    if exam.find_question(question_id) is None:
        raise ValueError(f"Question {question_id} is not part of exam {exam.id}.")
    if not isinstance(value, str):
        raise TypeError("Answers must be strings.")

    answers = dict(attempt.answers)
    answers[question_id] = value
    logger.debug("Attempt %s answered %s", attempt.id, question_id)
    return replace(attempt, answers=answers)


def submit(attempt: ExamAttempt, exam: Exam, now: datetime) -> tuple[ExamAttempt, list[Effect]]:
    """Finish the attempt on the student's request. Allowed right up to and at expiry."""
    _check_exam(attempt, exam)
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise AttemptNotActive(f"Attempt {attempt.id} is {attempt.status.value}.")

    submitted_at = now
    if attempt.deadline is not None and attempt.deadline < now:
        submitted_at = attempt.deadline
    return _finalize(attempt, exam, AttemptStatus.SUBMITTED, submitted_at)


def expire(attempt: ExamAttempt, exam: Exam, now: datetime) -> tuple[ExamAttempt, list[Effect]]:
    """Auto-submit an attempt whose deadline has passed."""
    _check_exam(attempt, exam)
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise AttemptNotActive(f"Attempt {attempt.id} is {attempt.status.value}.")
    if attempt.deadline is None or now < attempt.deadline:
        raise NotYetExpired(f"Attempt {attempt.id} still has time left.")
    return _finalize(attempt, exam, AttemptStatus.EXPIRED_SUBMITTED, attempt.deadline)


def is_expired(attempt: ExamAttempt, now: datetime) -> bool:
    return (
        attempt.status == AttemptStatus.IN_PROGRESS
        and attempt.deadline is not None
        and now >= attempt.deadline
    )


def remaining_seconds(attempt: ExamAttempt, now: datetime) -> int:
    if attempt.status != AttemptStatus.IN_PROGRESS or attempt.deadline is None:
        return 0
    return max(0, int((attempt.deadline - now).total_seconds()))


def score(questions: Iterable[Question], answers: Mapping[str, str]) -> ScoreResult:
    """Auto-grade objective questions by exact string match.

    SHORT_ANSWER questions are left for manual grading and reported as pending.
    """
    obtained = 0
    objective = 0
    pending = 0
    awarded: dict[str, int | None] = {}
    for question in questions:
        if not question.is_objective:
            pending += question.marks
            awarded[question.id] = None
            continue
        objective += question.marks
        given = answers.get(question.id)
        marks = question.marks if given is not None and given == question.correct_answer else 0
        obtained += marks
        awarded[question.id] = marks
    return ScoreResult(
        obtained_marks=obtained,
        objective_marks=objective,
        pending_manual_marks=pending,
        awarded=awarded,
    )


def ordered_questions(attempt: ExamAttempt, exam: Exam) -> list[Question]:
    """Questions in the order this attempt presents them."""
    by_id = {question.id: question for question in exam.questions}
    if not attempt.question_order:
        return list(exam.questions)
    return [by_id[qid] for qid in attempt.question_order if qid in by_id]


def order_seed(attempt_id: str) -> int:
    # Python's str hash is salted per process, so use a stable digest.
    digest = hashlib.new(SHUFFLE_DIGEST, attempt_id.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def _finalize(
    attempt: ExamAttempt,
    exam: Exam,
    status: AttemptStatus,
    submitted_at: datetime,
) -> tuple[ExamAttempt, list[Effect]]:
    result = score(exam.questions, attempt.answers)
    finished = replace(
        attempt,
        status=status,
        submitted_at=submitted_at,
        obtained_marks=result.obtained_marks,
        pending_manual_marks=result.pending_manual_marks,
    )
    payload: dict[str, object] = {
        "attempt_id": attempt.id,
        "exam_id": exam.id,
        "status": status.value,
    }
    if exam.show_results:
        payload["obtained_marks"] = result.obtained_marks
        payload["total_marks"] = exam.total_marks
    effect = Effect(type=EffectType.EXAM_SCORED, recipient_id=attempt.student_id, payload=payload)
    logger.info(
        "Attempt %s %s with %d/%d auto-graded marks",
        attempt.id,
        status.value,
        result.obtained_marks,
        result.objective_marks,
    )
    return finished, [effect]


def _check_exam(attempt: ExamAttempt, exam: Exam) -> None:
    if attempt.exam_id != exam.id:
        raise ValueError(f"Attempt {attempt.id} does not belong to exam {exam.id}.")
