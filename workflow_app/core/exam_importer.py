"""Utilities for importing exam questions from human-friendly text.

File format (repeat blocks separated by blank lines or '---'):

    Q: Question text (supports markdown + LaTeX). Additional lines until the
       next marker are treated as part of the question.
    TYPE: MCQ|TRUE_FALSE|SHORT_ANSWER   (optional, defaults to MCQ)
    A: First option text                (MCQ only, two to six options A-F)
    B: Second option text
    CORRECT: B                          (option letter, TRUE/FALSE, or model answer)
    MARKS: 5                            (optional, defaults to 1)

Example:

    Q: What is $2 + 2$?
    A: 3
    B: 4
    CORRECT: B
    MARKS: 2

    ---

    Q: The sum of the angles in a triangle is $180^o$.
    TYPE: TRUE_FALSE
    CORRECT: TRUE

Answers to MCQ questions are the option letters, so the stored correct answer
is the letter rather than the option text.
"""

from __future__ import annotations

from dataclasses import dataclass

from workflow_app.constants.workflow_constants import DEFAULT_QUESTION_MARKS
from workflow_app.core.models import Question, QuestionType


class ExamImportError(Exception):
    """Raised when an exam definition cannot be parsed."""


@dataclass(slots=True)
class ImportedExam:
    """Questions parsed from one exam text."""

    questions: list[Question]


OPTION_LETTERS = ["A", "B", "C", "D", "E", "F"]
TRUE_FALSE_OPTIONS = ["TRUE", "FALSE"]


def parse_exam_text(text: str) -> ImportedExam:
    questions = [
        _parse_block(block, index) for index, block in enumerate(_split_blocks(text), start=1)
    ]
    if not questions:
        raise ExamImportError("Exam file did not contain any questions.")
    return ImportedExam(questions=questions)


def _split_blocks(text: str) -> list[str]:
    blocks: list[str] = []
    current_block: list[str] = []
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped == "---":
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        if stripped:
            current_block.append(raw_line)
        elif current_block:
            # Blank line after content closes the block
            blocks.append("\n".join(current_block).strip())
            current_block = []
    if current_block:
        blocks.append("\n".join(current_block).strip())
    return [block for block in blocks if block]


def _parse_block(block: str, index: int) -> Question:
    question_lines: list[str] = []
    options: dict[str, str] = {}
    question_type = QuestionType.MCQ
    correct: str | None = None
    marks = DEFAULT_QUESTION_MARKS
    current_section: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        upper = line.upper()
        if upper.startswith("Q:"):
            question_lines = [line[2:].strip()]
            current_section = "Q"
            continue

        if upper.startswith("TYPE:"):
            raw_type = line.split(":", 1)[1].strip().upper()
            try:
                question_type = QuestionType(raw_type)
            except ValueError as exc:
                raise ExamImportError(
                    "TYPE must be one of MCQ, TRUE_FALSE or SHORT_ANSWER."
                ) from exc
            current_section = None
            continue

        if upper.startswith("CORRECT:"):
            correct = line.split(":", 1)[1].strip()
            current_section = None
            continue

        if upper.startswith("MARKS:"):
            raw_value = line.split(":", 1)[1].strip()
            try:
                marks = int(raw_value)
            except ValueError as exc:
                raise ExamImportError("MARKS must be an integer.") from exc
            if marks <= 0:
                raise ExamImportError("MARKS must be a positive integer.")
            current_section = None
            continue

        if len(line) > 2 and line[0].upper() in OPTION_LETTERS and line[1] == ":":
            letter = line[0].upper()
            options[letter] = line[2:].strip()
            current_section = letter
            continue

        if current_section == "Q":
            question_lines.append(line)
        elif current_section in OPTION_LETTERS:
            options[current_section] = options[current_section] + f"\n{line}"
        else:
            raise ExamImportError(f"Encountered text outside of a known section: '{line}'.")

    prompt = "\n".join(question_lines).strip()
    if not prompt:
        raise ExamImportError("Question text missing (Q: ...)")

    question_id = f"q{index}"
    if question_type == QuestionType.MCQ:
        return _build_mcq(question_id, prompt, options, correct, marks)
    if options:
        raise ExamImportError(f"{question_type.value} questions cannot define lettered options.")
    if question_type == QuestionType.TRUE_FALSE:
        answer = correct.upper() if correct else None
        if answer is not None and answer not in TRUE_FALSE_OPTIONS:
            raise ExamImportError("CORRECT must be TRUE or FALSE for TRUE_FALSE questions.")
        return Question(
            id=question_id,
            type=question_type,
            prompt=prompt,
            correct_answer=answer,
            marks=marks,
            options=list(TRUE_FALSE_OPTIONS),
        )
    return Question(
        id=question_id,
        type=question_type,
        prompt=prompt,
        correct_answer=correct or None,
        marks=marks,
    )


def _build_mcq(
    question_id: str,
    prompt: str,
    options: dict[str, str],
    correct: str | None,
    marks: int,
) -> Question:
    letters = OPTION_LETTERS[: len(options)]
    if len(options) < 2 or sorted(options) != letters:
        raise ExamImportError("MCQ options must be consecutive letters starting at A (two to six).")
    option_list = [options[letter].strip() for letter in letters]
    if any(not option for option in option_list):
        raise ExamImportError("Option text cannot be empty.")

    answer = None
    if correct is not None:
        answer = correct.upper()
        if answer not in letters:
            raise ExamImportError(f"CORRECT must be one of {', '.join(letters)}.")

    return Question(
        id=question_id,
        type=QuestionType.MCQ,
        prompt=prompt,
        correct_answer=answer,
        marks=marks,
        options=option_list,
    )
