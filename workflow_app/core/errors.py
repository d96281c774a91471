"""Business-rule errors raised by the workflow engines.

Each error carries a stable ``kind`` string so callers can branch on it
without importing the classes, and so the HTTP layer can map it to a status
code. Malformed input is reported with ``ValueError`` instead and is never
caught by the coordinator.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for expected workflow rule violations."""

    kind: str = "WorkflowError"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind


class NotFound(WorkflowError):
    kind = "NotFound"


class NotAuthorized(WorkflowError):
    kind = "NotAuthorized"


class InvalidTransition(WorkflowError):
    """The entity is in the wrong state for the requested command."""

    kind = "InvalidTransition"


class AlreadySubmitted(InvalidTransition):
    kind = "AlreadySubmitted"


class NotSubmitted(InvalidTransition):
    kind = "NotSubmitted"


class AttemptNotActive(InvalidTransition):
    kind = "AttemptNotActive"


class DeadlineExceeded(WorkflowError):
    kind = "DeadlineExceeded"


class NotYetExpired(WorkflowError):
    kind = "NotYetExpired"


class ExamNotOpen(WorkflowError):
    kind = "ExamNotOpen"


class DuplicateRequest(WorkflowError):
    kind = "DuplicateRequest"


class AttemptExists(WorkflowError):
    kind = "AttemptExists"


class MarksOutOfRange(WorkflowError):
    kind = "MarksOutOfRange"


class InvalidCode(WorkflowError):
    kind = "InvalidCode"


class ClassInactive(WorkflowError):
    kind = "ClassInactive"


class ConcurrentModification(WorkflowError):
    """A compare-and-swap save found a newer version than the one it read."""

    kind = "ConcurrentModification"
