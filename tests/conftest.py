from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from workflow_app.core.clock import FixedClock
from workflow_app.core.models import (
    Assignment,
    ClassRoom,
    EnrollmentStatus,
    Exam,
    Question,
    QuestionType,
)
from workflow_app.core.services.notifier import RecordingNotifier
from workflow_app.core.services.workflow_repository import InMemoryRepository
from workflow_app.core.workflow_coordinator import WorkflowCoordinator

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
TEACHER = "teacher-1"
CLASS_CODE = "MAT3K9Q"


def make_questions() -> list[Question]:
    return [
        Question(id="q1", type=QuestionType.MCQ, prompt="Pick B", correct_answer="B", marks=5,
                 options=["one", "two", "three", "four"]),
        Question(id="q2", type=QuestionType.TRUE_FALSE, prompt="$1 + 1 = 2$", correct_answer="TRUE",
                 marks=3, options=["TRUE", "FALSE"]),
        Question(id="q3", type=QuestionType.SHORT_ANSWER, prompt="Explain limits.",
                 correct_answer=None, marks=10),
    ]


def make_exam(**overrides) -> Exam:
    values = dict(
        id="exam-1",
        class_id="cls-1",
        title="Limits quiz",
        window_start=T0,
        window_end=T0 + timedelta(hours=2),
        duration_seconds=1800,
        questions=make_questions(),
    )
    values.update(overrides)
    return Exam(**values)


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture()
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def coordinator(repository, clock, notifier) -> WorkflowCoordinator:
    return WorkflowCoordinator(repository, clock=clock, notifier=notifier)


@pytest.fixture()
def classroom(coordinator) -> ClassRoom:
    return coordinator.register_classroom(
        ClassRoom(id="cls-1", teacher_id=TEACHER, code=CLASS_CODE, name="Calculus")
    )


@pytest.fixture()
def assignment(coordinator, classroom) -> Assignment:
    return coordinator.register_assignment(
        Assignment(
            id="asg-1",
            class_id=classroom.id,
            title="Essay on limits",
            due_date=T0 + timedelta(hours=1),
            total_marks=100,
        )
    )


@pytest.fixture()
def exam(coordinator, classroom) -> Exam:
    return coordinator.register_exam(make_exam())


@pytest.fixture()
def enroll(coordinator, classroom) -> Callable[[str], None]:
    def _enroll(student_id: str) -> None:
        requested = coordinator.request_join(classroom.id, student_id, CLASS_CODE)
        assert requested.ok, requested.error
        decided = coordinator.decide_enrollment(
            requested.entity.id, EnrollmentStatus.APPROVED, TEACHER
        )
        assert decided.ok, decided.error

    return _enroll
