"""Domain models for the academic workflow engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from workflow_app.constants.workflow_constants import MAX_CAS_RETRIES


class EnrollmentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class SubmissionStatus(str, Enum):
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    LATE = "LATE"
    GRADED = "GRADED"
    OVERDUE = "OVERDUE"  # display-only, never stored


class AttemptStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    EXPIRED_SUBMITTED = "EXPIRED_SUBMITTED"


class QuestionType(str, Enum):
    MCQ = "MCQ"
    TRUE_FALSE = "TRUE_FALSE"
    SHORT_ANSWER = "SHORT_ANSWER"


class EffectType(str, Enum):
    """Side-effect instructions handed back to the caller."""

    ENROLLMENT_REQUESTED = "enrollment_requested"
    ENROLLMENT_DECIDED = "enrollment_decided"
    SUBMISSION_GRADED = "submission_graded"
    EXAM_SUBMITTED = "exam_submitted"
    EXAM_SCORED = "exam_scored"


class EntityKind(str, Enum):
    """Repository namespaces, one per stored record type."""

    CLASSROOM = "classroom"
    ENROLLMENT = "enrollment"
    ASSIGNMENT = "assignment"
    SUBMISSION = "submission"
    EXAM = "exam"
    ATTEMPT = "attempt"


@dataclass(slots=True)
class ClassRoom:
    """A class a student can ask to join with its code."""

    id: str
    teacher_id: str
    code: str
    name: str = ""
    is_active: bool = True
    version: int = 0


@dataclass(slots=True)
class Enrollment:
    """A student's request to join, and membership in, a class."""

    id: str
    class_id: str
    student_id: str
    status: EnrollmentStatus
    requested_at: datetime
    decided_at: datetime | None = None
    decided_by: str | None = None
    version: int = 0


@dataclass(slots=True)
class Assignment:
    id: str
    class_id: str
    title: str
    due_date: datetime
    total_marks: int
    version: int = 0


@dataclass(slots=True)
class AssignmentSubmission:
    """One student's work product and grading record for an assignment."""

    id: str
    assignment_id: str
    student_id: str
    due_date: datetime
    total_marks: int
    status: SubmissionStatus = SubmissionStatus.PENDING
    content: str | None = None
    submitted_at: datetime | None = None
    marks: int | None = None
    feedback: str | None = None
    graded_at: datetime | None = None
    version: int = 0


@dataclass(slots=True)
class Question:
    """Exam question. Options are only meaningful for MCQ and TRUE_FALSE."""

    id: str
    type: QuestionType
    prompt: str
    correct_answer: str | None
    marks: int
    options: list[str] = field(default_factory=list)

    @property
    def is_objective(self) -> bool:
        return self.type in (QuestionType.MCQ, QuestionType.TRUE_FALSE)


@dataclass(slots=True)
class Exam:
    """Timed assessment with an availability window."""

    id: str
    class_id: str
    title: str
    window_start: datetime
    window_end: datetime
    duration_seconds: int
    questions: list[Question] = field(default_factory=list)
    shuffle_questions: bool = False
    passing_marks: int | None = None
    show_results: bool = True
    version: int = 0

    @property
    def total_marks(self) -> int:
        return sum(question.marks for question in self.questions)

    def find_question(self, question_id: str) -> Question | None:
        return next((q for q in self.questions if q.id == question_id), None)


@dataclass(slots=True)
class ExamAttempt:
    """One student's timed session against an exam."""

    id: str
    exam_id: str
    student_id: str
    status: AttemptStatus = AttemptStatus.NOT_STARTED
    started_at: datetime | None = None
    deadline: datetime | None = None
    answers: dict[str, str] = field(default_factory=dict)
    question_order: list[str] = field(default_factory=list)
    obtained_marks: int | None = None
    pending_manual_marks: int = 0
    submitted_at: datetime | None = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in (AttemptStatus.SUBMITTED, AttemptStatus.EXPIRED_SUBMITTED)


@dataclass(frozen=True, slots=True)
class Effect:
    """Notification or audit instruction for the caller to execute."""

    type: EffectType
    recipient_id: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class WorkflowPolicy:
    """Switches for the behaviours the product has not settled on."""

    cap_deadline_at_window_end: bool = False
    expire_on_read: bool = True
    max_cas_retries: int = MAX_CAS_RETRIES
