"""FastAPI server that exposes the workflow commands to the dashboards."""

from __future__ import annotations

from dataclasses import asdict
import logging
from threading import Event, Thread
from typing import Any, NoReturn
from uuid import uuid4

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, PlainTextResponse
from pydantic import AwareDatetime, BaseModel, Field

from workflow_app.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from workflow_app.constants.network_constants import ACTOR_HEADER
from workflow_app.constants.workflow_constants import (
    DEFAULT_QUESTION_MARKS,
    EXPIRY_SWEEP_INTERVAL_SECONDS,
)
from workflow_app.core.commands import CommandResult
from workflow_app.core.errors import NotAuthorized, WorkflowError
from workflow_app.core.exam_exporter import serialize_questions
from workflow_app.core.exam_importer import TRUE_FALSE_OPTIONS, ExamImportError, parse_exam_text
from workflow_app.core.markdown_math_renderer import renderer
from workflow_app.core.models import (
    Assignment,
    ClassRoom,
    EnrollmentStatus,
    Exam,
    Question,
    QuestionType,
)
from workflow_app.core.services import exam_attempts
from workflow_app.core.workflow_coordinator import WorkflowCoordinator

logger = logging.getLogger(__name__)

_STATUS_BY_KIND: dict[str, int] = {
    "NotFound": 404,
    "NotAuthorized": 403,
    "InvalidCode": 422,
    "ClassInactive": 422,
    "MarksOutOfRange": 422,
    "ExamNotOpen": 422,
    "DeadlineExceeded": 422,
    "NotYetExpired": 422,
}
_CONFLICT = 409


class ClassPayload(BaseModel):
    """Payload schema for creating a class. A blank code is generated."""

    name: str = ""
    code: str = ""


class AssignmentPayload(BaseModel):
    title: str = Field(min_length=1)
    due_date: AwareDatetime
    total_marks: int


class QuestionPayload(BaseModel):
    id: str | None = None
    type: QuestionType = QuestionType.MCQ
    prompt: str = Field(min_length=1)
    correct_answer: str | None = None
    marks: int = Field(default=DEFAULT_QUESTION_MARKS, ge=1)
    options: list[str] = Field(default_factory=list)


class ExamPayload(BaseModel):
    """Payload schema for creating an exam.

    Questions come either as structured ``questions`` or as ``source_text`` in
    the Q:/TYPE:/A-F:/CORRECT:/MARKS: text format.
    """

    title: str = Field(min_length=1)
    window_start: AwareDatetime
    window_end: AwareDatetime
    duration_seconds: int
    questions: list[QuestionPayload] = Field(default_factory=list)
    source_text: str | None = None
    shuffle_questions: bool = False
    passing_marks: int | None = None
    show_results: bool = True


class JoinPayload(BaseModel):
    """Payload schema for a class join request."""

    code: str = Field(min_length=1)


class DecisionPayload(BaseModel):
    decision: EnrollmentStatus


class SubmissionPayload(BaseModel):
    content: str | None = None


class GradePayload(BaseModel):
    """Payload schema for grading a submission."""

    marks: int
    feedback: str | None = None


class AnswerPayload(BaseModel):
    value: str


def error_status(error: WorkflowError) -> int:
    return _STATUS_BY_KIND.get(error.kind, _CONFLICT)


def _raise_for_error(error: WorkflowError) -> NoReturn:
    raise HTTPException(
        status_code=error_status(error),
        detail={"kind": error.kind, "message": error.message},
    )


def _unwrap(result: CommandResult) -> dict[str, Any]:
    if result.error is not None:
        _raise_for_error(result.error)
    return {
        "entity": jsonable_encoder(asdict(result.entity)),
        "effects": [jsonable_encoder(asdict(effect)) for effect in result.effects],
    }


def _unprocessable(exc: Exception) -> NoReturn:
    raise HTTPException(status_code=422, detail=str(exc)) from exc


def _exam_questions(payload: ExamPayload) -> list[Question]:
    if payload.source_text is not None:
        if payload.questions:
            raise ValueError("Send either questions or source_text, not both.")
        return parse_exam_text(payload.source_text).questions
    questions: list[Question] = []
    for number, question in enumerate(payload.questions, start=1):
        options = list(question.options)
        if question.type == QuestionType.TRUE_FALSE and not options:
            options = list(TRUE_FALSE_OPTIONS)
        questions.append(
            Question(
                id=question.id or f"q{number}",
                type=question.type,
                prompt=question.prompt,
                correct_answer=question.correct_answer,
                marks=question.marks,
                options=options,
            )
        )
    return questions


def _get_coordinator_dependency(coordinator: WorkflowCoordinator):
    def dependency() -> WorkflowCoordinator:
        return coordinator

    return dependency


def create_api_app(coordinator: WorkflowCoordinator) -> FastAPI:
    """Create a FastAPI application wired to the provided coordinator."""
    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION)
    coordinator_dep = _get_coordinator_dependency(coordinator)

    @app.get("/")
    def get_about() -> dict[str, str]:
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "license": APP_LICENSE,
            "about": APP_ABOUT_TEXT,
        }

    # --- Definitions ---

    @app.post("/classes", status_code=201)
    def create_class(
        payload: ClassPayload,
        actor_id: str = Header(alias=ACTOR_HEADER),
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        classroom = manager.register_classroom(
            ClassRoom(id=uuid4().hex, teacher_id=actor_id, code=payload.code, name=payload.name)
        )
        return jsonable_encoder(asdict(classroom))

    @app.post("/classes/{class_id}/assignments", status_code=201)
    def create_assignment(
        class_id: str,
        payload: AssignmentPayload,
        actor_id: str = Header(alias=ACTOR_HEADER),
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        assignment = Assignment(
            id=uuid4().hex,
            class_id=class_id,
            title=payload.title,
            due_date=payload.due_date,
            total_marks=payload.total_marks,
        )
        try:
            stored = manager.register_assignment(assignment, owner_id=actor_id)
        except WorkflowError as exc:
            _raise_for_error(exc)
        except ValueError as exc:
            _unprocessable(exc)
        return jsonable_encoder(asdict(stored))

    @app.post("/classes/{class_id}/exams", status_code=201)
    def create_exam(
        class_id: str,
        payload: ExamPayload,
        actor_id: str = Header(alias=ACTOR_HEADER),
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        try:
            exam = Exam(
                id=uuid4().hex,
                class_id=class_id,
                title=payload.title,
                window_start=payload.window_start,
                window_end=payload.window_end,
                duration_seconds=payload.duration_seconds,
                questions=_exam_questions(payload),
                shuffle_questions=payload.shuffle_questions,
                passing_marks=payload.passing_marks,
                show_results=payload.show_results,
            )
            stored = manager.register_exam(exam, owner_id=actor_id)
        except WorkflowError as exc:
            _raise_for_error(exc)
        except (ValueError, ExamImportError) as exc:
            _unprocessable(exc)
        return jsonable_encoder(asdict(stored))

    @app.get("/exams/{exam_id}/export", response_class=PlainTextResponse)
    def export_exam(
        exam_id: str,
        actor_id: str = Header(alias=ACTOR_HEADER),
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> str:
        """The exam in the text import format. Includes answers, so teacher only."""
        try:
            exam = manager.get_exam(exam_id)
            if manager.get_classroom(exam.class_id).teacher_id != actor_id:
                raise NotAuthorized("Only the class teacher can export an exam.")
        except WorkflowError as exc:
            _raise_for_error(exc)
        return serialize_questions(exam.questions)

    # --- Enrollment ---

    @app.post("/classes/{class_id}/join", status_code=201)
    def request_join(
        class_id: str,
        payload: JoinPayload,
        actor_id: str = Header(alias=ACTOR_HEADER),
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        return _unwrap(manager.request_join(class_id, actor_id, payload.code))

    @app.get("/classes/{class_id}/requests")
    def get_join_requests(
        class_id: str,
        status: EnrollmentStatus = EnrollmentStatus.PENDING,
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> list[dict[str, Any]]:
        requests = manager.get_join_requests(class_id, status)
        return [jsonable_encoder(asdict(enrollment)) for enrollment in requests]

    @app.put("/enrollments/{enrollment_id}/decision")
    def decide_enrollment(
        enrollment_id: str,
        payload: DecisionPayload,
        actor_id: str = Header(alias=ACTOR_HEADER),
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        try:
            result = manager.decide_enrollment(enrollment_id, payload.decision, actor_id)
        except ValueError as exc:
            _unprocessable(exc)
        return _unwrap(result)

    @app.delete("/enrollments/{enrollment_id}")
    def withdraw_enrollment(
        enrollment_id: str,
        actor_id: str = Header(alias=ACTOR_HEADER),
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        return _unwrap(manager.withdraw_enrollment(enrollment_id, actor_id))

    # --- Assignments ---

    @app.post("/assignments/{assignment_id}/submissions", status_code=201)
    def submit_assignment(
        assignment_id: str,
        payload: SubmissionPayload,
        actor_id: str = Header(alias=ACTOR_HEADER),
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        return _unwrap(manager.submit_assignment(assignment_id, actor_id, payload.content))

    @app.get("/assignments/{assignment_id}/summary")
    def get_assignment_summary(
        assignment_id: str,
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        try:
            summary = manager.assignment_summary(assignment_id)
        except WorkflowError as exc:
            _raise_for_error(exc)
        return jsonable_encoder(asdict(summary))

    @app.get("/submissions/{submission_id}")
    def get_submission(
        submission_id: str,
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        try:
            view = manager.get_submission_view(submission_id)
        except WorkflowError as exc:
            _raise_for_error(exc)
        body = jsonable_encoder(asdict(view.submission))
        body["status"] = view.status.value
        return body

    @app.put("/submissions/{submission_id}/grade")
    def grade_submission(
        submission_id: str,
        payload: GradePayload,
        actor_id: str = Header(alias=ACTOR_HEADER),
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        return _unwrap(
            manager.grade_submission(submission_id, actor_id, payload.marks, payload.feedback)
        )

    # --- Exams ---

    @app.post("/exams/{exam_id}/attempts", status_code=201)
    def start_exam(
        exam_id: str,
        actor_id: str = Header(alias=ACTOR_HEADER),
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        return _unwrap(manager.start_exam(exam_id, actor_id))

    @app.get("/exams/{exam_id}/results")
    def get_exam_results(
        exam_id: str,
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> list[dict[str, Any]]:
        try:
            results = manager.exam_results(exam_id)
        except WorkflowError as exc:
            _raise_for_error(exc)
        return [jsonable_encoder(asdict(result)) for result in results]

    @app.get("/attempts/{attempt_id}")
    def get_attempt(
        attempt_id: str,
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        try:
            attempt = manager.get_attempt(attempt_id)
        except WorkflowError as exc:
            _raise_for_error(exc)
        body = jsonable_encoder(asdict(attempt))
        body["remaining_seconds"] = exam_attempts.remaining_seconds(attempt, manager.now())
        return body

    @app.get("/attempts/{attempt_id}/paper", response_class=HTMLResponse)
    def get_exam_paper(
        attempt_id: str,
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> str:
        try:
            _attempt, exam, questions = manager.get_exam_paper(attempt_id)
        except WorkflowError as exc:
            _raise_for_error(exc)
        return renderer.render_paper(questions, title=exam.title)

    @app.put("/attempts/{attempt_id}/answers/{question_id}")
    def answer_question(
        attempt_id: str,
        question_id: str,
        payload: AnswerPayload,
        actor_id: str = Header(alias=ACTOR_HEADER),
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        try:
            result = manager.answer_question(attempt_id, actor_id, question_id, payload.value)
        except ValueError as exc:
            _unprocessable(exc)
        return _unwrap(result)

    @app.post("/attempts/{attempt_id}/submit")
    def submit_exam(
        attempt_id: str,
        actor_id: str = Header(alias=ACTOR_HEADER),
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        return _unwrap(manager.submit_exam(attempt_id, actor_id))

    @app.post("/attempts/{attempt_id}/expire")
    def expire_exam(
        attempt_id: str,
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        return _unwrap(manager.expire_exam(attempt_id))

    @app.get("/attempts/{attempt_id}/result")
    def get_exam_result(
        attempt_id: str,
        manager: WorkflowCoordinator = Depends(coordinator_dep),
    ) -> dict[str, Any]:
        try:
            result = manager.get_exam_result(attempt_id)
        except WorkflowError as exc:
            _raise_for_error(exc)
        return jsonable_encoder(asdict(result))

    return app


def start_expiry_sweeper(
    coordinator: WorkflowCoordinator,
    interval_seconds: float = EXPIRY_SWEEP_INTERVAL_SECONDS,
) -> tuple[Thread, Event]:
    """Periodically auto-submit timed-out attempts until the returned event is set."""
    stop = Event()

    def run_sweeper() -> None:
        while not stop.wait(interval_seconds):
            try:
                coordinator.sweep_expired_attempts()
            except Exception:
                # Keep sweeping; one failed pass must not stop expiry for good.
                logger.exception("Expiry sweep failed")

    thread = Thread(target=run_sweeper, name="ExpirySweeper", daemon=True)
    thread.start()
    return thread, stop
