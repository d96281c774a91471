"""Markdown + LaTeX rendering for exam papers shown to students.

Question prompts are authored in markdown with inline `$...$` math. The
renderer turns them into HTML fragments and leaves the math to MathJax in the
browser, so the paper served by the API and any exported copy look the same.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from markdown_it import MarkdownIt

from workflow_app.constants.about import APP_NAME
from workflow_app.core.exam_importer import OPTION_LETTERS
from workflow_app.core.models import Question, QuestionType

_MATHJAX_SCRIPT = (
    "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"
)


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Converts markdown-with-math into HTML fragments or full documents."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str) -> str:
        """Render a markdown string into an HTML fragment."""

        sanitized = markdown_text.strip()
        if not sanitized:
            return "<p><em>No content provided.</em></p>"
        return self._markdown.render(sanitized)

    def render_question(self, question: Question, number: int | None = None) -> str:
        """Render a question prompt followed by its lettered options."""

        heading = f"**{number}.** " if number is not None else ""
        markdown_lines = [f"{heading}{question.prompt.strip() or '(No question text)'}"]
        if question.type == QuestionType.MCQ:
            for letter, option in zip(OPTION_LETTERS, question.options):
                markdown_lines.append(f"**{letter}.** {option or '(empty)'}")
        elif question.type == QuestionType.TRUE_FALSE:
            markdown_lines.append("**TRUE** / **FALSE**")
        markdown_lines.append(f"*({question.marks} mark{'s' if question.marks != 1 else ''})*")
        return self.render_fragment("\n\n".join(markdown_lines))

    def wrap_with_mathjax(self, body_html: str, title: str = APP_NAME) -> str:
        """Wrap a fragment inside a minimal HTML document that loads MathJax."""

        return f"""<!doctype html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\" />
    <title>{title}</title>
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
    <style>
      body {{ font-family: 'Segoe UI', system-ui, sans-serif; margin: 0; padding: 1rem; }}
      .question-html {{ font-size: 1.1rem; line-height: 1.5; margin-bottom: 1.5rem; }}
    </style>
    <script>
      window.MathJax = {{ tex: {{ inlineMath: [['$','$']], displayMath: [['$$','$$']] }}, svg: {{ fontCache: 'global' }} }};
    </script>
    <script defer src=\"{_MATHJAX_SCRIPT}\"></script>
  </head>
  <body>
    {body_html}
  </body>
</html>"""

    def render_paper(self, questions: list[Question], title: str = APP_NAME) -> str:
        """Render questions, in the given order, as one standalone HTML page."""

        sections = [
            f"<div class=\"question-html\" id=\"{question.id}\">"
            f"{self.render_question(question, number)}</div>"
            for number, question in enumerate(questions, start=1)
        ]
        return self.wrap_with_mathjax("\n".join(sections), title=title)


# Shared instance; MarkdownIt is safe to reuse for read-only renders.
renderer = MarkdownMathRenderer()
