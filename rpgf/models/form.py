"""
Application Form Models

A form is an ordered list of fields drawn from a closed set of variants,
discriminated by ``type``. Each fillable variant owns the validation of
its own answer value; display-only variants cannot be answered.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Annotated, Any, ClassVar, Literal, Union
from uuid import uuid4

from pydantic import (
    EmailStr,
    Field,
    HttpUrl,
    StrictFloat,
    StrictInt,
    StrictStr,
    StringConstraints,
    TypeAdapter,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from rpgf.models.base import RPGFModel

MAX_FORM_FIELDS = 50

_TEXT_ANSWER = TypeAdapter(Annotated[StrictStr, StringConstraints(max_length=5000)])
_URL_ANSWER = TypeAdapter(Annotated[StrictStr, StringConstraints(max_length=2000)])
_HTTP_URL = TypeAdapter(HttpUrl)
_EMAIL_ANSWER = TypeAdapter(Annotated[StrictStr, StringConstraints(max_length=255)])
_EMAIL = TypeAdapter(EmailStr)
_LIST_ANSWER = TypeAdapter(
    Annotated[
        list[dict[str, Union[Annotated[StrictStr, StringConstraints(max_length=1000)], StrictInt, StrictFloat]]],
        Field(max_length=100),
    ]
)
_SELECT_ANSWER = TypeAdapter(
    Annotated[
        list[Annotated[StrictStr, StringConstraints(min_length=1, max_length=255)]],
        Field(max_length=100),
    ]
)


class AnswerValueError(ValueError):
    """An answer value does not fit its field."""


def _check(adapter: TypeAdapter, value: Any) -> Any:
    try:
        return adapter.validate_python(value)
    except PydanticValidationError as e:
        raise AnswerValueError(e.errors()[0]["msg"]) from e


# ═══════════════════════════════════════════════════════════════
# DISPLAY-ONLY FIELDS
# ═══════════════════════════════════════════════════════════════


class MarkdownField(RPGFModel):
    type: Literal["markdown"] = "markdown"
    id: str | None = None
    content: str = Field(min_length=1, max_length=50000)

    fillable: ClassVar[bool] = False


class DividerField(RPGFModel):
    type: Literal["divider"] = "divider"
    id: str | None = None

    fillable: ClassVar[bool] = False


# ═══════════════════════════════════════════════════════════════
# FILLABLE FIELDS
# ═══════════════════════════════════════════════════════════════


class FillableField(RPGFModel, ABC):
    """Common properties of every answerable field. New fields get a fresh id."""

    id: str = Field(default_factory=lambda: str(uuid4()), min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=255)
    label: str = Field(min_length=1, max_length=255)
    description_md: str | None = Field(default=None, max_length=10000)
    required: bool = False
    private: bool = False

    fillable: ClassVar[bool] = True

    @abstractmethod
    def validate_answer(self, value: Any) -> Any:
        """Return the normalized answer or raise AnswerValueError."""


class TextField(FillableField):
    type: Literal["text"] = "text"

    def validate_answer(self, value: Any) -> Any:
        return _check(_TEXT_ANSWER, value)


class TextAreaField(FillableField):
    type: Literal["textarea"] = "textarea"

    def validate_answer(self, value: Any) -> Any:
        return _check(_TEXT_ANSWER, value)


class UrlField(FillableField):
    type: Literal["url"] = "url"

    def validate_answer(self, value: Any) -> Any:
        value = _check(_URL_ANSWER, value)
        _check(_HTTP_URL, value)
        return value


class EmailField(FillableField):
    type: Literal["email"] = "email"

    def validate_answer(self, value: Any) -> Any:
        value = _check(_EMAIL_ANSWER, value)
        _check(_EMAIL, value)
        return value


class ListEntryField(RPGFModel):
    type: Literal["number", "text", "url"]
    label: str = Field(min_length=1, max_length=255)


class ListField(FillableField):
    type: Literal["list"] = "list"
    max_items: int = Field(gt=0)
    entry_fields: list[ListEntryField] = Field(default_factory=list)

    def validate_answer(self, value: Any) -> Any:
        value = _check(_LIST_ANSWER, value)
        if len(value) > self.max_items:
            raise AnswerValueError(f"At most {self.max_items} entries allowed")
        return value


class SelectOption(RPGFModel):
    label: str = Field(min_length=1, max_length=255)
    value: str = Field(min_length=1, max_length=255)


class SelectField(FillableField):
    type: Literal["select"] = "select"
    options: list[SelectOption] = Field(min_length=1)
    allow_multiple: bool = False

    def validate_answer(self, value: Any) -> Any:
        value = _check(_SELECT_ANSWER, value)
        allowed = {o.value for o in self.options}
        unknown = [v for v in value if v not in allowed]
        if unknown:
            raise AnswerValueError(f"Unknown option(s): {', '.join(unknown)}")
        if not self.allow_multiple and len(value) > 1:
            raise AnswerValueError("Only one option may be selected")
        return value


FormField = Annotated[
    Union[
        MarkdownField,
        DividerField,
        TextField,
        TextAreaField,
        UrlField,
        EmailField,
        ListField,
        SelectField,
    ],
    Field(discriminator="type"),
]


class ApplicationAnswer(RPGFModel):
    """A single answer; ``value``'s shape depends on the answered field's type."""

    field_id: str = Field(min_length=1, max_length=255)
    value: Any = None


class FormDefinition(RPGFModel):
    """A form as an admin writes it; fields without an id are new."""

    name: str = Field(min_length=1, max_length=255)
    fields: list[FormField] = Field(default_factory=list, max_length=MAX_FORM_FIELDS)

    @model_validator(mode="after")
    def check_unique_fields(self) -> "FormDefinition":
        fillable = [f for f in self.fields if f.fillable]
        ids = [f.id for f in fillable]
        slugs = [f.slug for f in fillable]
        if len(set(ids)) != len(ids):
            raise ValueError("Field ids must be unique")
        if len(set(slugs)) != len(slugs):
            raise ValueError("Field slugs must be unique")
        return self


class ApplicationForm(FormDefinition):
    id: str
    round_id: str
    deleted_at: datetime | None = None

    def fillable_fields(self) -> dict[str, FillableField]:
        return {f.id: f for f in self.fields if f.fillable}

    def visible_answers(
        self,
        answers: list[ApplicationAnswer],
        include_private: bool,
    ) -> list[ApplicationAnswer]:
        """Answers in form order, without private ones unless requested."""
        fields = self.fillable_fields()
        by_id = {a.field_id: a for a in answers}
        return [
            by_id[field_id]
            for field_id, field in fields.items()
            if field_id in by_id and (include_private or not field.private)
        ]


class CategoryDefinition(RPGFModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=10000)
    form_id: str = Field(min_length=1)


class ApplicationCategory(CategoryDefinition):
    id: str
    round_id: str
    deleted_at: datetime | None = None
