"""
Answer Validation Tests

Tests for checking application answers against a category form.
"""

import pytest

from rpgf.errors import InvalidAnswersError
from rpgf.models.form import (
    ApplicationAnswer,
    ApplicationForm,
    DividerField,
    EmailField,
    ListField,
    SelectField,
    TextAreaField,
)
from rpgf.services.answers import validate_answers


def answers(**values):
    return [ApplicationAnswer(field_id=field_id, value=value) for field_id, value in values.items()]


def problems_of(exc_info) -> dict[str, str]:
    return exc_info.value.details["problems"]


@pytest.fixture
def rich_form():
    return ApplicationForm(
        id="form-2",
        round_id="round-1",
        name="Detailed form",
        fields=[
            DividerField(),
            TextAreaField(id="pitch", slug="pitch", label="Pitch", required=True),
            EmailField(id="email", slug="email", label="Email"),
            ListField(id="links", slug="links", label="Links", max_items=2),
            SelectField(
                id="tags",
                slug="tags",
                label="Tags",
                allow_multiple=True,
                options=[{"label": "A", "value": "a"}, {"label": "B", "value": "b"}],
            ),
        ],
    )


# =============================================================================
# Valid Answers
# =============================================================================


class TestValidAnswers:
    """Answers that pass validation."""

    def test_complete_answers(self, application_form):
        validate_answers(
            answers(summary="hello", website="https://example.org", stage=["live"], contact="x"),
            application_form,
        )

    def test_optional_fields_may_be_omitted(self, application_form):
        validate_answers(answers(summary="hello"), application_form)

    def test_optional_fields_may_be_blank(self, application_form):
        validate_answers(answers(summary="hello", website="", stage=[]), application_form)

    def test_rich_field_types(self, rich_form):
        validate_answers(
            answers(
                pitch="We build things",
                email="team@drips.network",
                links=[{"url": "https://example.org", "stars": 4}],
                tags=["a", "b"],
            ),
            rich_form,
        )


# =============================================================================
# Invalid Answers
# =============================================================================


class TestInvalidAnswers:
    """Answers that are rejected, with one problem per field."""

    @pytest.mark.parametrize("blank", [None, "", [], {}])
    def test_required_blank(self, application_form, blank):
        with pytest.raises(InvalidAnswersError) as exc_info:
            validate_answers(answers(summary=blank), application_form)
        assert problems_of(exc_info) == {"summary": "required"}

    def test_required_missing(self, application_form):
        with pytest.raises(InvalidAnswersError) as exc_info:
            validate_answers(answers(website="https://example.org"), application_form)
        assert "summary" in problems_of(exc_info)

    def test_unknown_field(self, application_form):
        with pytest.raises(InvalidAnswersError) as exc_info:
            validate_answers(answers(summary="hi", nickname="x"), application_form)
        assert problems_of(exc_info) == {"nickname": "not a field of this form"}

    def test_display_field_cannot_be_answered(self, application_form):
        with pytest.raises(InvalidAnswersError) as exc_info:
            validate_answers(answers(summary="hi", intro="x"), application_form)
        assert "intro" in problems_of(exc_info)

    def test_duplicate_answer(self, application_form):
        duplicated = answers(summary="hi") + answers(summary="again")
        with pytest.raises(InvalidAnswersError) as exc_info:
            validate_answers(duplicated, application_form)
        assert problems_of(exc_info) == {"summary": "answered more than once"}

    @pytest.mark.parametrize("value", ["not a url", "ftp://", 42])
    def test_invalid_url(self, application_form, value):
        with pytest.raises(InvalidAnswersError) as exc_info:
            validate_answers(answers(summary="hi", website=value), application_form)
        assert "website" in problems_of(exc_info)

    def test_text_must_be_string(self, application_form):
        with pytest.raises(InvalidAnswersError):
            validate_answers(answers(summary=123), application_form)

    def test_text_length_limit(self, application_form):
        with pytest.raises(InvalidAnswersError):
            validate_answers(answers(summary="x" * 5001), application_form)

    def test_unknown_select_option(self, application_form):
        with pytest.raises(InvalidAnswersError) as exc_info:
            validate_answers(answers(summary="hi", stage=["alpha"]), application_form)
        assert "alpha" in problems_of(exc_info)["stage"]

    def test_single_select_rejects_multiple(self, application_form):
        with pytest.raises(InvalidAnswersError):
            validate_answers(answers(summary="hi", stage=["live", "beta"]), application_form)

    def test_invalid_email(self, rich_form):
        with pytest.raises(InvalidAnswersError) as exc_info:
            validate_answers(answers(pitch="p", email="not-an-email"), rich_form)
        assert "email" in problems_of(exc_info)

    def test_list_item_limit(self, rich_form):
        links = [{"url": f"https://example.org/{i}"} for i in range(3)]
        with pytest.raises(InvalidAnswersError) as exc_info:
            validate_answers(answers(pitch="p", links=links), rich_form)
        assert "links" in problems_of(exc_info)

    def test_list_entries_must_be_flat(self, rich_form):
        with pytest.raises(InvalidAnswersError):
            validate_answers(answers(pitch="p", links=[{"nested": {"a": 1}}]), rich_form)

    def test_every_problem_reported(self, application_form):
        with pytest.raises(InvalidAnswersError) as exc_info:
            validate_answers(answers(website="nope", stage=["x"], nickname="n"), application_form)
        assert set(problems_of(exc_info)) == {"summary", "website", "stage", "nickname"}
