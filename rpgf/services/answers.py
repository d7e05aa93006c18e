"""
Application Answer Validation

Checks a submission's answers against the category form it is filed
under. Every problem found is reported, not only the first.
"""

from typing import Any

import structlog

from rpgf.errors import InvalidAnswersError
from rpgf.models.form import AnswerValueError, ApplicationAnswer, ApplicationForm

logger = structlog.get_logger(__name__)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    return False


def validate_answers(answers: list[ApplicationAnswer], form: ApplicationForm) -> None:
    """
    Validate ``answers`` against ``form``.

    Raises:
        InvalidAnswersError: With one entry per offending field
    """
    fields = form.fillable_fields()
    problems: dict[str, str] = {}

    seen: set[str] = set()
    for answer in answers:
        if answer.field_id in seen:
            problems[answer.field_id] = "answered more than once"
        seen.add(answer.field_id)

    by_id = {a.field_id: a for a in answers}

    for field_id, field in fields.items():
        if field.required and _is_blank(by_id.get(field_id, ApplicationAnswer(field_id=field_id)).value):
            problems.setdefault(field_id, "required")

    for answer in answers:
        if answer.field_id in problems:
            continue
        field = fields.get(answer.field_id)
        if field is None:
            problems[answer.field_id] = "not a field of this form"
            continue
        if not field.required and _is_blank(answer.value):
            continue
        try:
            field.validate_answer(answer.value)
        except AnswerValueError as e:
            problems[answer.field_id] = str(e)

    if problems:
        logger.warning(
            "answer_validation_failed",
            form_id=form.id,
            field_ids=sorted(problems),
        )
        raise InvalidAnswersError("Application answers are invalid", problems=problems)
