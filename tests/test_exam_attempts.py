from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import T0, make_exam, make_questions
from workflow_app.core.errors import (
    AttemptExists,
    AttemptNotActive,
    DeadlineExceeded,
    ExamNotOpen,
    NotYetExpired,
)
from workflow_app.core.models import AttemptStatus, EffectType, Question, QuestionType, WorkflowPolicy
from workflow_app.core.services import exam_attempts

EXAM = make_exam()


def _started(now=T0, exam=EXAM, attempt_id="att-1", policy=None):
    return exam_attempts.start(exam, [], "stu-1", now, policy=policy, attempt_id=attempt_id)


def test_start_fixes_deadline_from_duration() -> None:
    attempt = _started(T0 + timedelta(minutes=10))

    assert attempt.status == AttemptStatus.IN_PROGRESS
    assert attempt.started_at == T0 + timedelta(minutes=10)
    assert attempt.deadline == T0 + timedelta(minutes=40)
    assert attempt.question_order == ["q1", "q2", "q3"]
    assert attempt.answers == {}


def test_start_before_window_fails() -> None:
    with pytest.raises(ExamNotOpen):
        _started(T0 - timedelta(seconds=1))


def test_start_at_window_end_is_allowed() -> None:
    assert _started(EXAM.window_end).status == AttemptStatus.IN_PROGRESS


def test_start_after_window_end_fails() -> None:
    with pytest.raises(ExamNotOpen):
        _started(EXAM.window_end + timedelta(seconds=1))


@pytest.mark.parametrize(
    "status",
    [AttemptStatus.IN_PROGRESS, AttemptStatus.SUBMITTED, AttemptStatus.EXPIRED_SUBMITTED],
)
def test_one_attempt_per_student_and_exam(status: AttemptStatus) -> None:
    existing = _started()
    existing.status = status
    with pytest.raises(AttemptExists):
        exam_attempts.start(EXAM, [existing], "stu-1", T0, attempt_id="att-2")


def test_attempts_of_other_students_do_not_block() -> None:
    other = exam_attempts.start(EXAM, [], "stu-2", T0, attempt_id="att-2")
    attempt = exam_attempts.start(EXAM, [other], "stu-1", T0, attempt_id="att-1")
    assert attempt.student_id == "stu-1"


def test_late_starter_keeps_full_duration_by_default() -> None:
    late_start = EXAM.window_end - timedelta(minutes=5)
    attempt = _started(late_start)
    assert attempt.deadline == late_start + timedelta(seconds=1800)
    assert attempt.deadline > EXAM.window_end


def test_strict_policy_caps_deadline_at_window_end() -> None:
    late_start = EXAM.window_end - timedelta(minutes=5)
    attempt = _started(late_start, policy=WorkflowPolicy(cap_deadline_at_window_end=True))
    assert attempt.deadline == EXAM.window_end


def test_shuffled_order_is_a_reproducible_permutation() -> None:
    questions = [
        Question(id=f"q{i}", type=QuestionType.MCQ, prompt=str(i), correct_answer="A", marks=1,
                 options=["x", "y"])
        for i in range(1, 13)
    ]
    exam = make_exam(questions=questions, shuffle_questions=True)

    first = _started(exam=exam, attempt_id="att-a")
    again = _started(exam=exam, attempt_id="att-a")
    other = _started(exam=exam, attempt_id="att-b")

    assert sorted(first.question_order) == sorted(q.id for q in questions)
    assert first.question_order == again.question_order
    assert first.question_order != other.question_order
    assert [q.id for q in exam.questions] == [f"q{i}" for i in range(1, 13)]


def test_answer_upserts_last_write_wins() -> None:
    attempt = _started()
    attempt = exam_attempts.answer(attempt, EXAM, "q1", "A", T0 + timedelta(seconds=5))
    updated = exam_attempts.answer(attempt, EXAM, "q1", "B", T0 + timedelta(seconds=9))

    assert updated.answers == {"q1": "B"}
    assert attempt.answers == {"q1": "A"}


def test_answer_at_deadline_is_rejected() -> None:
    attempt = _started()
    with pytest.raises(DeadlineExceeded):
        exam_attempts.answer(attempt, EXAM, "q1", "B", attempt.deadline)


def test_answer_unknown_question_is_a_programming_error() -> None:
    with pytest.raises(ValueError):
        exam_attempts.answer(_started(), EXAM, "q99", "B", T0)


def test_answer_after_submit_is_rejected() -> None:
    finished, _ = exam_attempts.submit(_started(), EXAM, T0 + timedelta(seconds=30))
    with pytest.raises(AttemptNotActive):
        exam_attempts.answer(finished, EXAM, "q1", "B", T0 + timedelta(seconds=31))


def test_submit_scores_objective_questions() -> None:
    attempt = _started()
    attempt = exam_attempts.answer(attempt, EXAM, "q1", "B", T0 + timedelta(seconds=10))
    attempt = exam_attempts.answer(attempt, EXAM, "q2", "FALSE", T0 + timedelta(seconds=20))
    attempt = exam_attempts.answer(attempt, EXAM, "q3", "A limit is...", T0 + timedelta(seconds=30))

    finished, effects = exam_attempts.submit(attempt, EXAM, T0 + timedelta(seconds=100))

    assert finished.status == AttemptStatus.SUBMITTED
    assert finished.submitted_at == T0 + timedelta(seconds=100)
    assert finished.obtained_marks == 5
    assert finished.pending_manual_marks == 10
    assert effects[0].type == EffectType.EXAM_SCORED
    assert effects[0].payload["obtained_marks"] == 5
    assert effects[0].payload["total_marks"] == 18


def test_submit_exactly_at_deadline_is_allowed() -> None:
    attempt = _started()
    finished, _ = exam_attempts.submit(attempt, EXAM, attempt.deadline)
    assert finished.status == AttemptStatus.SUBMITTED
    assert finished.submitted_at == attempt.deadline


def test_late_manual_submit_is_clamped_to_deadline() -> None:
    attempt = _started()
    finished, _ = exam_attempts.submit(attempt, EXAM, attempt.deadline + timedelta(seconds=30))
    assert finished.submitted_at == attempt.deadline


def test_expire_before_deadline_fails() -> None:
    attempt = _started()
    with pytest.raises(NotYetExpired):
        exam_attempts.expire(attempt, EXAM, attempt.deadline - timedelta(seconds=1))


def test_expire_auto_submits_at_deadline_with_recorded_answers() -> None:
    attempt = _started()
    attempt = exam_attempts.answer(attempt, EXAM, "q2", "TRUE", T0 + timedelta(minutes=1))

    expired, _ = exam_attempts.expire(attempt, EXAM, T0 + timedelta(seconds=1801))

    assert expired.status == AttemptStatus.EXPIRED_SUBMITTED
    assert expired.submitted_at == T0 + timedelta(seconds=1800)
    assert expired.obtained_marks == 3


def test_terminal_attempts_cannot_be_finished_twice() -> None:
    attempt = _started()
    submitted, _ = exam_attempts.submit(attempt, EXAM, T0 + timedelta(seconds=10))
    with pytest.raises(AttemptNotActive):
        exam_attempts.submit(submitted, EXAM, T0 + timedelta(seconds=11))
    with pytest.raises(AttemptNotActive):
        exam_attempts.expire(submitted, EXAM, T0 + timedelta(hours=1))


def test_score_is_deterministic_and_ignores_unanswered() -> None:
    questions = make_questions()
    answers = {"q1": "B"}

    first = exam_attempts.score(questions, answers)
    second = exam_attempts.score(questions, answers)

    assert first == second
    assert first.obtained_marks == 5
    assert first.objective_marks == 8
    assert first.awarded == {"q1": 5, "q2": 0, "q3": None}


def test_score_uses_exact_string_match() -> None:
    assert exam_attempts.score(make_questions(), {"q1": "b", "q2": "TRUE "}).obtained_marks == 0


def test_hidden_results_leave_marks_out_of_the_notification() -> None:
    exam = make_exam(show_results=False)
    attempt = _started(exam=exam)
    finished, effects = exam_attempts.submit(attempt, exam, T0 + timedelta(seconds=5))
    assert finished.obtained_marks == 0
    assert "obtained_marks" not in effects[0].payload


def test_remaining_seconds_and_expiry_checks() -> None:
    attempt = _started()
    assert exam_attempts.remaining_seconds(attempt, T0 + timedelta(seconds=600)) == 1200
    assert not exam_attempts.is_expired(attempt, attempt.deadline - timedelta(seconds=1))
    assert exam_attempts.is_expired(attempt, attempt.deadline)
    assert exam_attempts.remaining_seconds(attempt, attempt.deadline + timedelta(hours=1)) == 0


def test_window_state() -> None:
    assert exam_attempts.window_state(EXAM, T0 - timedelta(minutes=1)) == "upcoming"
    assert exam_attempts.window_state(EXAM, T0) == "ongoing"
    assert exam_attempts.window_state(EXAM, EXAM.window_end + timedelta(seconds=1)) == "past"
