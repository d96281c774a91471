"""Utilities for exporting exam questions to the plain-text import format."""

from __future__ import annotations

from workflow_app.constants.workflow_constants import DEFAULT_QUESTION_MARKS
from workflow_app.core.exam_importer import OPTION_LETTERS
from workflow_app.core.models import Question, QuestionType


def serialize_questions(questions: list[Question]) -> str:
    """Render questions in the text format the importer reads."""
    if not questions:
        raise ValueError("Cannot export an empty exam.")
    blocks = [_serialize_question(question) for question in questions]
    return "\n\n---\n\n".join(blocks) + "\n"


def _serialize_question(question: Question) -> str:
    lines: list[str] = []

    prompt_lines = question.prompt.splitlines() or [question.prompt]
    lines.append(f"Q: {prompt_lines[0]}")
    lines.extend(prompt_lines[1:])

    if question.type != QuestionType.MCQ:
        lines.append(f"TYPE: {question.type.value}")
    else:
        for letter, option_text in zip(OPTION_LETTERS, question.options):
            option_lines = option_text.splitlines() or [option_text]
            lines.append(f"{letter}: {option_lines[0]}")
            lines.extend(option_lines[1:])

    if question.correct_answer is not None:
        lines.append(f"CORRECT: {question.correct_answer}")

    if question.marks != DEFAULT_QUESTION_MARKS:
        lines.append(f"MARKS: {question.marks}")

    return "\n".join(lines)
