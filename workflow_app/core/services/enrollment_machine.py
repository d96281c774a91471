"""Transitions for class join requests: PENDING -> APPROVED | REJECTED."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
import logging
import secrets
import string
from uuid import uuid4

from workflow_app.constants.workflow_constants import CLASS_CODE_LENGTH
from workflow_app.core.errors import (
    ClassInactive,
    DuplicateRequest,
    InvalidCode,
    InvalidTransition,
    NotAuthorized,
)
from workflow_app.core.models import ClassRoom, Effect, EffectType, Enrollment, EnrollmentStatus

logger = logging.getLogger(__name__)

_DECISIONS = (EnrollmentStatus.APPROVED, EnrollmentStatus.REJECTED)
_CODE_ALPHABET = string.ascii_uppercase + string.digits


def normalize_code(code: str) -> str:
    return code.strip().upper()


def generate_class_code(length: int = CLASS_CODE_LENGTH) -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def request_join(
    classroom: ClassRoom,
    existing: Iterable[Enrollment],
    student_id: str,
    code: str,
    now: datetime,
    enrollment_id: str | None = None,
) -> tuple[Enrollment, list[Effect]]:
    """Create a PENDING enrollment for ``student_id`` if the code matches."""
    if not classroom.is_active:
        raise ClassInactive(f"Class {classroom.id} is no longer active.")
    if normalize_code(code) != normalize_code(classroom.code):
        raise InvalidCode("Invalid class code.")

    for enrollment in existing:
        if enrollment.class_id != classroom.id or enrollment.student_id != student_id:
            continue
        if enrollment.status == EnrollmentStatus.PENDING:
            raise DuplicateRequest("Join request already pending.")
        if enrollment.status == EnrollmentStatus.APPROVED:
            raise DuplicateRequest("Already enrolled in this class.")

    enrollment = Enrollment(
        id=enrollment_id or uuid4().hex,
        class_id=classroom.id,
        student_id=student_id,
        status=EnrollmentStatus.PENDING,
        requested_at=now,
    )
    effect = Effect(
        type=EffectType.ENROLLMENT_REQUESTED,
        recipient_id=classroom.teacher_id,
        payload={
            "enrollment_id": enrollment.id,
            "class_id": classroom.id,
            "student_id": student_id,
        },
    )
    logger.info("Student %s requested to join class %s", student_id, classroom.id)
    return enrollment, [effect]


def decide(
    enrollment: Enrollment,
    classroom: ClassRoom,
    decision: EnrollmentStatus | str,
    decider_id: str,
    now: datetime,
) -> tuple[Enrollment, list[Effect]]:
    """Approve or reject a pending request on behalf of the class teacher."""
    status = EnrollmentStatus(decision)
    if status not in _DECISIONS:
        raise ValueError(f"Decision must be APPROVED or REJECTED, got {status.value}.")
    if enrollment.class_id != classroom.id:
        raise ValueError("Enrollment does not belong to the supplied class.")
    if decider_id != classroom.teacher_id:
        raise NotAuthorized("Only the class teacher can decide join requests.")
    if enrollment.status != EnrollmentStatus.PENDING:
        raise InvalidTransition(
            f"Enrollment {enrollment.id} is already {enrollment.status.value}."
        )

    decided = replace(enrollment, status=status, decided_at=now, decided_by=decider_id)
    effect = Effect(
        type=EffectType.ENROLLMENT_DECIDED,
        recipient_id=enrollment.student_id,
        payload={
            "enrollment_id": enrollment.id,
            "class_id": classroom.id,
            "status": status.value,
        },
    )
    logger.info("Enrollment %s %s by %s", enrollment.id, status.value.lower(), decider_id)
    return decided, [effect]


def withdraw(enrollment: Enrollment, student_id: str) -> Enrollment:
    """Check that ``student_id`` may withdraw; the caller deletes the record."""
    if enrollment.student_id != student_id:
        raise NotAuthorized("Only the requesting student can withdraw an enrollment.")
    logger.info("Student %s withdrew enrollment %s", student_id, enrollment.id)
    return enrollment


def is_member(enrollments: Iterable[Enrollment], class_id: str, student_id: str) -> bool:
    return any(
        e.class_id == class_id
        and e.student_id == student_id
        and e.status == EnrollmentStatus.APPROVED
        for e in enrollments
    )
