"""
Form Service

Round admins define the application forms of a round and the categories
applicants file under. Categories, and the removal of forms, are part of
a round's setup and only change while the round is a draft. Form fields
may still be edited until voting starts; answers to fields removed later
are ignored by validation, redaction and attestation checks.
"""

from datetime import datetime

import structlog

from rpgf.errors import AuthorizationError, NotFoundError, PhaseError, ValidationError
from rpgf.models.base import Actor, utcnow
from rpgf.models.events import AuditAction
from rpgf.models.form import (
    ApplicationCategory,
    ApplicationForm,
    CategoryDefinition,
    FormDefinition,
)
from rpgf.models.round import Round, RoundPhase
from rpgf.repositories.form_repository import FormRepository
from rpgf.services.audit import AuditService
from rpgf.services.caching import (
    CachingService,
    applications_pattern,
    forms_pattern,
    generate_key,
)
from rpgf.services.phase import round_phase
from rpgf.services.rounds import RoundService, is_round_admin, require_admin

logger = structlog.get_logger(__name__)

FORM_EDIT_PHASES = (RoundPhase.PENDING_INTAKE, RoundPhase.INTAKE, RoundPhase.PENDING_VOTING)


def require_draft(round_: Round, now: datetime, operation: str) -> None:
    """
    Raises:
        PhaseError: If the round has been published
    """
    if round_.published:
        phase = round_phase(round_, now)
        raise PhaseError(
            f"Cannot {operation} once the round is published",
            phase=phase.value if phase else None,
            allowed=[],
        )


def require_form_editable(round_: Round, now: datetime) -> None:
    """Drafts, and published rounds until voting starts."""
    if not round_.published:
        return
    phase = round_phase(round_, now)
    if phase not in FORM_EDIT_PHASES:
        raise PhaseError(
            f"Cannot edit forms while the round is {phase.value if phase else 'unpublished'}",
            phase=phase.value if phase else None,
            allowed=[p.value for p in FORM_EDIT_PHASES],
        )


class FormService:
    def __init__(
        self,
        forms: FormRepository,
        rounds: RoundService,
        audit: AuditService,
        cache: CachingService,
    ):
        self.forms = forms
        self.rounds = rounds
        self.audit = audit
        self.cache = cache

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_form(self, round_id: str, form_id: str) -> ApplicationForm:
        form = await self.forms.get_form(form_id)
        if form is None or form.deleted_at is not None or form.round_id != round_id:
            raise NotFoundError(f"Form {form_id} not found in this round", form_id=form_id)
        return form

    async def _get_category(self, round_id: str, category_id: str) -> ApplicationCategory:
        category = await self.forms.get_category(category_id)
        if category is None or category.deleted_at is not None or category.round_id != round_id:
            raise NotFoundError(
                f"Category {category_id} not found in this round",
                category_id=category_id,
            )
        return category

    async def _require_live_form(self, round_id: str, form_id: str) -> ApplicationForm:
        form = await self.forms.get_form(form_id)
        if form is None or form.deleted_at is not None or form.round_id != round_id:
            raise ValidationError(f"Form {form_id} is not a form of this round", field="form_id")
        return form

    async def _require_unique_name(self, round_id: str, name: str, form_id: str | None = None) -> None:
        existing = await self.forms.get_form_by_name(round_id, name)
        if existing is not None and existing.id != form_id:
            raise ValidationError(
                "A form with this name already exists in the round",
                field="name",
            )

    async def _invalidate(self, round_id: str, *extra: str) -> None:
        await self.cache.invalidate(forms_pattern(round_id), *extra)

    # =========================================================================
    # Forms
    # =========================================================================

    async def create_form(
        self,
        actor: Actor,
        round_id: str,
        definition: FormDefinition,
        now: datetime | None = None,
    ) -> ApplicationForm:
        now = now or utcnow()
        round_ = await self.rounds.get_round(round_id)
        require_admin(round_, actor)
        require_form_editable(round_, now)
        await self._require_unique_name(round_id, definition.name)

        form = await self.forms.create_form(round_id, definition)

        logger.info("application_form_created", round_id=round_id, form_id=form.id)
        await self._invalidate(round_id)
        await self.audit.record(
            AuditAction.APPLICATION_FORM_CREATED,
            round_id,
            actor,
            {"form_id": form.id, "name": form.name, "field_count": len(form.fields)},
        )
        return form

    async def update_form(
        self,
        actor: Actor,
        round_id: str,
        form_id: str,
        definition: FormDefinition,
        now: datetime | None = None,
    ) -> ApplicationForm:
        """
        Replace a form's name and fields.

        Fields keep their id across edits; fields sent without one are new,
        and fields left out are removed.
        """
        now = now or utcnow()
        round_ = await self.rounds.get_round(round_id)
        require_admin(round_, actor)
        require_form_editable(round_, now)
        await self._get_form(round_id, form_id)
        await self._require_unique_name(round_id, definition.name, form_id)

        form = await self.forms.update_form(form_id, definition)
        if form is None:
            raise NotFoundError(f"Form {form_id} not found in this round", form_id=form_id)

        # Field privacy drives answer redaction in cached application lists
        await self._invalidate(round_id, applications_pattern(round_id))
        await self.audit.record(
            AuditAction.APPLICATION_FORM_UPDATED,
            round_id,
            actor,
            {"form_id": form_id, "name": form.name, "field_count": len(form.fields)},
        )
        return form

    async def delete_form(
        self,
        actor: Actor,
        round_id: str,
        form_id: str,
        now: datetime | None = None,
    ) -> None:
        now = now or utcnow()
        round_ = await self.rounds.get_round(round_id)
        require_admin(round_, actor)
        require_draft(round_, now, "delete forms")
        form = await self._get_form(round_id, form_id)

        if await self.forms.count_categories_using(form_id):
            raise ValidationError("Forms assigned to a category cannot be deleted", form_id=form_id)
        if not await self.forms.delete_form(form_id):
            raise ValidationError("Form is in use or already deleted", form_id=form_id)

        await self._invalidate(round_id)
        await self.audit.record(
            AuditAction.APPLICATION_FORM_DELETED,
            round_id,
            actor,
            {"form_id": form_id, "previous_name": form.name},
        )

    async def list_forms(self, actor: Actor, round_id: str) -> list[ApplicationForm]:
        round_ = await self.rounds.get_round(round_id)
        require_admin(round_, actor)
        return await self.forms.list_forms(round_id)

    async def get_form_for_category(
        self,
        actor: Actor | None,
        round_id: str,
        category_id: str,
    ) -> ApplicationForm:
        """The form applicants fill for a category; drafts are admin-only."""
        round_ = await self.rounds.get_round(round_id)
        if not round_.published and (actor is None or not is_round_admin(round_, actor)):
            raise AuthorizationError("This round is not published", round_id=round_id)
        category = await self._get_category(round_id, category_id)
        return await self._get_form(round_id, category.form_id)

    # =========================================================================
    # Categories
    # =========================================================================

    async def create_category(
        self,
        actor: Actor,
        round_id: str,
        definition: CategoryDefinition,
        now: datetime | None = None,
    ) -> ApplicationCategory:
        now = now or utcnow()
        round_ = await self.rounds.get_round(round_id)
        require_admin(round_, actor)
        require_draft(round_, now, "create categories")
        await self._require_live_form(round_id, definition.form_id)

        category = await self.forms.create_category(round_id, definition)

        logger.info("application_category_created", round_id=round_id, category_id=category.id)
        await self._invalidate(round_id)
        await self.audit.record(
            AuditAction.APPLICATION_CATEGORY_CREATED,
            round_id,
            actor,
            {"category_id": category.id, "name": category.name, "form_id": category.form_id},
        )
        return category

    async def update_category(
        self,
        actor: Actor,
        round_id: str,
        category_id: str,
        definition: CategoryDefinition,
        now: datetime | None = None,
    ) -> ApplicationCategory:
        now = now or utcnow()
        round_ = await self.rounds.get_round(round_id)
        require_admin(round_, actor)
        require_draft(round_, now, "edit categories")
        await self._get_category(round_id, category_id)
        await self._require_live_form(round_id, definition.form_id)

        category = await self.forms.update_category(category_id, definition)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found in this round", category_id=category_id)

        await self._invalidate(round_id)
        await self.audit.record(
            AuditAction.APPLICATION_CATEGORY_UPDATED,
            round_id,
            actor,
            {"category_id": category_id, "name": category.name, "form_id": category.form_id},
        )
        return category

    async def delete_category(
        self,
        actor: Actor,
        round_id: str,
        category_id: str,
        now: datetime | None = None,
    ) -> None:
        now = now or utcnow()
        round_ = await self.rounds.get_round(round_id)
        require_admin(round_, actor)
        require_draft(round_, now, "delete categories")
        category = await self._get_category(round_id, category_id)

        if not await self.forms.delete_category(category_id):
            raise NotFoundError(f"Category {category_id} not found in this round", category_id=category_id)

        await self._invalidate(round_id)
        await self.audit.record(
            AuditAction.APPLICATION_CATEGORY_DELETED,
            round_id,
            actor,
            {"category_id": category_id, "previous_name": category.name},
        )

    async def list_categories(self, actor: Actor | None, round_id: str) -> list[ApplicationCategory]:
        """Live categories of a round; drafts are admin-only."""
        round_ = await self.rounds.get_round(round_id)
        if not round_.published and (actor is None or not is_round_admin(round_, actor)):
            raise AuthorizationError("This round is not published", round_id=round_id)

        cache_key = generate_key("forms", round_id, "categories")
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return [ApplicationCategory.model_validate(item) for item in cached]

        categories = await self.forms.list_categories(round_id)
        await self.cache.set(cache_key, [c.model_dump(mode="json") for c in categories])
        return categories
