"""Command and result records exchanged with the workflow coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from workflow_app.core.errors import WorkflowError
from workflow_app.core.models import Effect, EnrollmentStatus


class WorkflowKind(str, Enum):
    ENROLLMENT = "enrollment"
    ASSIGNMENT = "assignment"
    EXAM = "exam"


@dataclass(frozen=True, slots=True)
class RequestJoin:
    class_id: str
    student_id: str
    code: str
    now: datetime | None = None
    kind = WorkflowKind.ENROLLMENT


@dataclass(frozen=True, slots=True)
class DecideEnrollment:
    enrollment_id: str
    decision: EnrollmentStatus
    decider_id: str
    now: datetime | None = None
    kind = WorkflowKind.ENROLLMENT


@dataclass(frozen=True, slots=True)
class WithdrawEnrollment:
    enrollment_id: str
    student_id: str
    now: datetime | None = None
    kind = WorkflowKind.ENROLLMENT


@dataclass(frozen=True, slots=True)
class SubmitAssignment:
    assignment_id: str
    student_id: str
    content: str | None = None
    now: datetime | None = None
    kind = WorkflowKind.ASSIGNMENT


@dataclass(frozen=True, slots=True)
class GradeSubmission:
    submission_id: str
    grader_id: str
    marks: int
    feedback: str | None = None
    now: datetime | None = None
    kind = WorkflowKind.ASSIGNMENT


@dataclass(frozen=True, slots=True)
class StartExam:
    exam_id: str
    student_id: str
    now: datetime | None = None
    kind = WorkflowKind.EXAM


@dataclass(frozen=True, slots=True)
class AnswerQuestion:
    attempt_id: str
    student_id: str
    question_id: str
    value: str
    now: datetime | None = None
    kind = WorkflowKind.EXAM


@dataclass(frozen=True, slots=True)
class SubmitExam:
    attempt_id: str
    student_id: str
    now: datetime | None = None
    kind = WorkflowKind.EXAM


@dataclass(frozen=True, slots=True)
class ExpireExam:
    attempt_id: str
    now: datetime | None = None
    kind = WorkflowKind.EXAM


Command = (
    RequestJoin
    | DecideEnrollment
    | WithdrawEnrollment
    | SubmitAssignment
    | GradeSubmission
    | StartExam
    | AnswerQuestion
    | SubmitExam
    | ExpireExam
)


@dataclass(slots=True)
class CommandResult:
    """Updated entity plus effects, or the rule the command broke."""

    entity: Any = None
    effects: list[Effect] = field(default_factory=list)
    error: WorkflowError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> str | None:
        return None if self.error is None else self.error.kind
