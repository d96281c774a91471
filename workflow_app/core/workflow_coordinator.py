"""Command and query facade over the enrollment, assignment and exam engines."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
import logging
from threading import Lock
from typing import Any

from workflow_app.core.clock import Clock, SystemClock
from workflow_app.core.commands import (
    AnswerQuestion,
    Command,
    CommandResult,
    DecideEnrollment,
    ExpireExam,
    GradeSubmission,
    RequestJoin,
    StartExam,
    SubmitAssignment,
    SubmitExam,
    WithdrawEnrollment,
)
from workflow_app.core.errors import (
    AttemptNotActive,
    ConcurrentModification,
    NotAuthorized,
    WorkflowError,
)
from workflow_app.core.models import (
    Assignment,
    AssignmentSubmission,
    AttemptStatus,
    ClassRoom,
    Effect,
    EffectType,
    EntityKind,
    EnrollmentStatus,
    Exam,
    ExamAttempt,
    Question,
    SubmissionStatus,
    WorkflowPolicy,
)
from workflow_app.core.services import assignment_lifecycle, enrollment_machine, exam_attempts
from workflow_app.core.services.gradebook import (
    AssignmentSummary,
    ExamResult,
    exam_result,
    rank_attempts,
    summarize_assignments,
)
from workflow_app.core.services.notifier import Notifier
from workflow_app.core.services.workflow_repository import Repository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SubmissionView:
    submission: AssignmentSubmission
    status: SubmissionStatus


class WorkflowCoordinator:
    """Validates commands against stored state, applies one transition and saves it.

    The coordinator keeps no entity state of its own. Updates go through a
    compare-and-swap save; a lost race is re-evaluated against the fresh
    record so the loser sees the winner's terminal state as a rule violation.
    """

    def __init__(
        self,
        repository: Repository,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        policy: WorkflowPolicy | None = None,
    ) -> None:
        self._repository = repository
        self._clock = clock or SystemClock()
        self._notifier = notifier
        self._policy = policy or WorkflowPolicy()
        # Serialises creation commands so uniqueness checks see each other.
        self._create_lock = Lock()

    @property
    def policy(self) -> WorkflowPolicy:
        return self._policy

    def now(self) -> datetime:
        return self._clock.now()

    # --- Definitions owned by the host ---

    def register_classroom(self, classroom: ClassRoom) -> ClassRoom:
        if not classroom.code.strip():
            classroom = replace(classroom, code=enrollment_machine.generate_class_code())
        return self._repository.save(EntityKind.CLASSROOM, classroom)

    def register_assignment(
        self, assignment: Assignment, owner_id: str | None = None
    ) -> Assignment:
        """Store an assignment. With ``owner_id`` set, only the class teacher may add it."""
        if assignment.total_marks < 1:
            raise ValueError("Total marks must be at least 1.")
        self._require_class_owner(assignment.class_id, owner_id)
        return self._repository.save(EntityKind.ASSIGNMENT, assignment)

    def register_exam(self, exam: Exam, owner_id: str | None = None) -> Exam:
        if exam.duration_seconds <= 0:
            raise ValueError("Exam duration must be a positive number of seconds.")
        if exam.window_end < exam.window_start:
            raise ValueError("Exam window must not end before it starts.")
        if not exam.questions:
            raise ValueError("Exam must contain at least one question.")
        question_ids = [question.id for question in exam.questions]
        if len(set(question_ids)) != len(question_ids):
            raise ValueError("Question ids must be unique within an exam.")
        self._require_class_owner(exam.class_id, owner_id)
        return self._repository.save(EntityKind.EXAM, exam)

    def get_classroom(self, class_id: str) -> ClassRoom:
        return self._repository.get(EntityKind.CLASSROOM, class_id)

    def get_exam(self, exam_id: str) -> Exam:
        return self._repository.get(EntityKind.EXAM, exam_id)

    # --- Command dispatch ---

    def dispatch(self, command: Command) -> CommandResult:
        handlers: dict[type, Callable[[Any], CommandResult]] = {
            RequestJoin: lambda c: self.request_join(c.class_id, c.student_id, c.code, c.now),
            DecideEnrollment: lambda c: self.decide_enrollment(
                c.enrollment_id, c.decision, c.decider_id, c.now
            ),
            WithdrawEnrollment: lambda c: self.withdraw_enrollment(c.enrollment_id, c.student_id),
            SubmitAssignment: lambda c: self.submit_assignment(
                c.assignment_id, c.student_id, c.content, c.now
            ),
            GradeSubmission: lambda c: self.grade_submission(
                c.submission_id, c.grader_id, c.marks, c.feedback, c.now
            ),
            StartExam: lambda c: self.start_exam(c.exam_id, c.student_id, c.now),
            AnswerQuestion: lambda c: self.answer_question(
                c.attempt_id, c.student_id, c.question_id, c.value, c.now
            ),
            SubmitExam: lambda c: self.submit_exam(c.attempt_id, c.student_id, c.now),
            ExpireExam: lambda c: self.expire_exam(c.attempt_id, c.now),
        }
        handler = handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unsupported command {type(command).__name__}.")
        logger.debug("Dispatching %s command %s", command.kind.value, type(command).__name__)
        return handler(command)

    # --- Enrollment ---

    def request_join(
        self, class_id: str, student_id: str, code: str, now: datetime | None = None
    ) -> CommandResult:
        now = now or self._clock.now()

        def run() -> tuple[Any, list[Effect]]:
            classroom = self._repository.get(EntityKind.CLASSROOM, class_id)
            with self._create_lock:
                existing = self._enrollments_for(class_id, student_id)
                enrollment, effects = enrollment_machine.request_join(
                    classroom, existing, student_id, code, now
                )
                stored = self._repository.save(EntityKind.ENROLLMENT, enrollment)
                for previous in existing:
                    if previous.status == EnrollmentStatus.REJECTED:
                        self._repository.delete(EntityKind.ENROLLMENT, previous.id)
            return stored, effects

        return self._run("request_join", run)

    def decide_enrollment(
        self,
        enrollment_id: str,
        decision: EnrollmentStatus | str,
        decider_id: str,
        now: datetime | None = None,
    ) -> CommandResult:
        now = now or self._clock.now()

        def apply(enrollment: Any) -> tuple[Any, list[Effect]]:
            classroom = self._repository.get(EntityKind.CLASSROOM, enrollment.class_id)
            return enrollment_machine.decide(enrollment, classroom, decision, decider_id, now)

        return self._run(
            "decide_enrollment",
            lambda: self._transition(EntityKind.ENROLLMENT, enrollment_id, apply),
        )

    def withdraw_enrollment(self, enrollment_id: str, student_id: str) -> CommandResult:
        def run() -> tuple[Any, list[Effect]]:
            enrollment = self._repository.get(EntityKind.ENROLLMENT, enrollment_id)
            enrollment_machine.withdraw(enrollment, student_id)
            # Plain delete, not CAS. A decide racing with it fails its retry with NotFound.
            self._repository.delete(EntityKind.ENROLLMENT, enrollment_id)
            return enrollment, []

        return self._run("withdraw_enrollment", run)

    def is_enrolled(self, class_id: str, student_id: str) -> bool:
        return enrollment_machine.is_member(
            self._enrollments_for(class_id, student_id), class_id, student_id
        )

    def get_join_requests(
        self, class_id: str, status: EnrollmentStatus = EnrollmentStatus.PENDING
    ) -> list[Any]:
        requests = [
            e
            for e in self._repository.list(EntityKind.ENROLLMENT)
            if e.class_id == class_id and e.status == status
        ]
        return sorted(requests, key=lambda e: e.requested_at)

    # --- Assignments ---

    def submit_assignment(
        self,
        assignment_id: str,
        student_id: str,
        content: str | None = None,
        now: datetime | None = None,
    ) -> CommandResult:
        now = now or self._clock.now()

        def run() -> tuple[Any, list[Effect]]:
            assignment = self._repository.get(EntityKind.ASSIGNMENT, assignment_id)
            self._require_member(assignment.class_id, student_id)
            submission = self._ensure_submission(assignment, student_id)
            return self._transition(
                EntityKind.SUBMISSION,
                submission.id,
                lambda s: (assignment_lifecycle.submit(s, content, now), []),
            )

        return self._run("submit_assignment", run)

    def grade_submission(
        self,
        submission_id: str,
        grader_id: str,
        marks: int,
        feedback: str | None = None,
        now: datetime | None = None,
    ) -> CommandResult:
        now = now or self._clock.now()

        def apply(submission: Any) -> tuple[Any, list[Effect]]:
            assignment = self._repository.get(EntityKind.ASSIGNMENT, submission.assignment_id)
            classroom = self._repository.get(EntityKind.CLASSROOM, assignment.class_id)
            if grader_id != classroom.teacher_id:
                raise NotAuthorized("Only the class teacher can grade submissions.")
            return assignment_lifecycle.grade(submission, marks, feedback, now)

        return self._run(
            "grade_submission",
            lambda: self._transition(EntityKind.SUBMISSION, submission_id, apply),
        )

    def get_submission_view(
        self, submission_id: str, now: datetime | None = None
    ) -> SubmissionView:
        now = now or self._clock.now()
        submission = self._repository.get(EntityKind.SUBMISSION, submission_id)
        return SubmissionView(
            submission=submission,
            status=assignment_lifecycle.effective_status(submission, now),
        )

    def get_assignment_submissions(self, assignment_id: str) -> list[AssignmentSubmission]:
        """Stored submissions plus the implicit PENDING one of every other member."""
        assignment = self._repository.get(EntityKind.ASSIGNMENT, assignment_id)
        stored = [
            s
            for s in self._repository.list(EntityKind.SUBMISSION)
            if s.assignment_id == assignment_id
        ]
        handed_in = {s.student_id for s in stored}
        members = sorted(
            e.student_id
            for e in self._repository.list(EntityKind.ENROLLMENT)
            if e.class_id == assignment.class_id and e.status == EnrollmentStatus.APPROVED
        )
        virtual = [
            assignment_lifecycle.open_submission(assignment, student_id)
            for student_id in members
            if student_id not in handed_in
        ]
        return stored + virtual

    def assignment_summary(
        self, assignment_id: str, now: datetime | None = None
    ) -> AssignmentSummary:
        now = now or self._clock.now()
        return summarize_assignments(self.get_assignment_submissions(assignment_id), now)

    # --- Exams ---

    def start_exam(
        self, exam_id: str, student_id: str, now: datetime | None = None
    ) -> CommandResult:
        now = now or self._clock.now()

        def run() -> tuple[Any, list[Effect]]:
            exam = self._repository.get(EntityKind.EXAM, exam_id)
            self._require_member(exam.class_id, student_id)
            with self._create_lock:
                existing = [
                    a
                    for a in self._repository.list(EntityKind.ATTEMPT)
                    if a.exam_id == exam_id and a.student_id == student_id
                ]
                attempt = exam_attempts.start(exam, existing, student_id, now, self._policy)
                return self._repository.save(EntityKind.ATTEMPT, attempt), []

        return self._run("start_exam", run)

    def answer_question(
        self,
        attempt_id: str,
        student_id: str,
        question_id: str,
        value: str,
        now: datetime | None = None,
    ) -> CommandResult:
        now = now or self._clock.now()

        def apply(attempt: Any) -> tuple[Any, list[Effect]]:
            self._require_owner(attempt, student_id)
            exam = self._repository.get(EntityKind.EXAM, attempt.exam_id)
            return exam_attempts.answer(attempt, exam, question_id, value, now), []

        return self._run(
            "answer_question",
            lambda: self._transition(EntityKind.ATTEMPT, attempt_id, apply),
        )

    def submit_exam(
        self, attempt_id: str, student_id: str, now: datetime | None = None
    ) -> CommandResult:
        now = now or self._clock.now()

        def apply(attempt: Any) -> tuple[Any, list[Effect]]:
            self._require_owner(attempt, student_id)
            exam = self._repository.get(EntityKind.EXAM, attempt.exam_id)
            finished, effects = exam_attempts.submit(attempt, exam, now)
            return finished, effects + [self._exam_submitted_effect(finished, exam)]

        return self._run(
            "submit_exam",
            lambda: self._transition(EntityKind.ATTEMPT, attempt_id, apply),
        )

    def expire_exam(self, attempt_id: str, now: datetime | None = None) -> CommandResult:
        now = now or self._clock.now()

        def apply(attempt: Any) -> tuple[Any, list[Effect]]:
            exam = self._repository.get(EntityKind.EXAM, attempt.exam_id)
            finished, effects = exam_attempts.expire(attempt, exam, now)
            return finished, effects + [self._exam_submitted_effect(finished, exam)]

        return self._run(
            "expire_exam",
            lambda: self._transition(EntityKind.ATTEMPT, attempt_id, apply),
        )

    def get_attempt(self, attempt_id: str, now: datetime | None = None) -> ExamAttempt:
        """Fetch an attempt, auto-submitting it first if it timed out and the policy allows."""
        now = now or self._clock.now()
        attempt = self._repository.get(EntityKind.ATTEMPT, attempt_id)
        if self._policy.expire_on_read and exam_attempts.is_expired(attempt, now):
            result = self.expire_exam(attempt_id, now)
            if result.ok:
                return result.entity
            if not isinstance(result.error, AttemptNotActive):
                raise result.error
            attempt = self._repository.get(EntityKind.ATTEMPT, attempt_id)
        return attempt

    def get_exam_paper(
        self, attempt_id: str, now: datetime | None = None
    ) -> tuple[ExamAttempt, Exam, list[Question]]:
        attempt = self.get_attempt(attempt_id, now)
        exam = self._repository.get(EntityKind.EXAM, attempt.exam_id)
        return attempt, exam, exam_attempts.ordered_questions(attempt, exam)

    def sweep_expired_attempts(self, now: datetime | None = None) -> list[CommandResult]:
        """Expire every in-progress attempt past its deadline. Meant for a host scheduler."""
        now = now or self._clock.now()
        results: list[CommandResult] = []
        for attempt in self._repository.list(EntityKind.ATTEMPT):
            if exam_attempts.is_expired(attempt, now):
                results.append(self.expire_exam(attempt.id, now))
        if results:
            logger.info("Expiry sweep closed %d attempt(s)", sum(1 for r in results if r.ok))
        return results

    def exam_results(self, exam_id: str) -> list[ExamResult]:
        exam = self._repository.get(EntityKind.EXAM, exam_id)
        attempts = [a for a in self._repository.list(EntityKind.ATTEMPT) if a.exam_id == exam_id]
        return [exam_result(attempt, exam) for attempt in rank_attempts(attempts)]

    def get_exam_result(self, attempt_id: str, now: datetime | None = None) -> ExamResult:
        attempt = self.get_attempt(attempt_id, now)
        exam = self._repository.get(EntityKind.EXAM, attempt.exam_id)
        return exam_result(attempt, exam)

    # --- Internals ---

    def _run(self, name: str, body: Callable[[], tuple[Any, list[Effect]]]) -> CommandResult:
        try:
            entity, effects = body()
        except WorkflowError as exc:
            logger.warning("%s rejected: %s (%s)", name, exc.message, exc.kind)
            return CommandResult(error=exc)
        self._publish(effects)
        return CommandResult(entity=entity, effects=effects)

    def _transition(
        self,
        kind: EntityKind,
        entity_id: str,
        apply: Callable[[Any], tuple[Any, list[Effect]]],
    ) -> tuple[Any, list[Effect]]:
        retries = self._policy.max_cas_retries
        while True:
            current = self._repository.get(kind, entity_id)
            updated, effects = apply(current)
            try:
                return self._repository.save(kind, updated), effects
            except ConcurrentModification:
                if retries <= 0:
                    raise
                retries -= 1
                logger.debug("Retrying %s %s after a concurrent update", kind.value, entity_id)

    def _publish(self, effects: list[Effect]) -> None:
        if self._notifier is None:
            return
        for effect in effects:
            self._notifier.publish(effect)

    def _enrollments_for(self, class_id: str, student_id: str) -> list[Any]:
        return [
            e
            for e in self._repository.list(EntityKind.ENROLLMENT)
            if e.class_id == class_id and e.student_id == student_id
        ]

    def _require_class_owner(self, class_id: str, owner_id: str | None) -> None:
        classroom = self._repository.get(EntityKind.CLASSROOM, class_id)
        if owner_id is not None and owner_id != classroom.teacher_id:
            raise NotAuthorized(f"Class {class_id} belongs to another teacher.")

    def _require_member(self, class_id: str, student_id: str) -> None:
        if not self.is_enrolled(class_id, student_id):
            raise NotAuthorized(f"Student {student_id} is not enrolled in class {class_id}.")

    @staticmethod
    def _require_owner(attempt: ExamAttempt, student_id: str) -> None:
        if attempt.student_id != student_id:
            raise NotAuthorized(f"Attempt {attempt.id} belongs to another student.")

    def _ensure_submission(self, assignment: Assignment, student_id: str) -> AssignmentSubmission:
        with self._create_lock:
            for submission in self._repository.list(EntityKind.SUBMISSION):
                if submission.assignment_id == assignment.id and submission.student_id == student_id:
                    return submission
            opened = assignment_lifecycle.open_submission(assignment, student_id)
            return self._repository.save(EntityKind.SUBMISSION, opened)

    def _exam_submitted_effect(self, attempt: ExamAttempt, exam: Exam) -> Effect:
        classroom = self._repository.get(EntityKind.CLASSROOM, exam.class_id)
        return Effect(
            type=EffectType.EXAM_SUBMITTED,
            recipient_id=classroom.teacher_id,
            payload={
                "attempt_id": attempt.id,
                "exam_id": exam.id,
                "student_id": attempt.student_id,
                "auto_submitted": attempt.status == AttemptStatus.EXPIRED_SUBMITTED,
            },
        )
