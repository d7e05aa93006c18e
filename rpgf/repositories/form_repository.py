"""
Form Repository

Application forms and the categories that point applicants at them. Both
are soft-deleted: applications filed under a removed category still need
its form to validate and redact their answers, so lookups by id return
deleted entities while round listings skip them.

Form fields are stored on the form node as a JSON list in form order.
"""

from typing import Any

from neo4j import AsyncTransaction

from rpgf.models.form import (
    ApplicationCategory,
    ApplicationForm,
    CategoryDefinition,
    FormDefinition,
)
from rpgf.repositories.base import BaseRepository, from_json, to_json


class FormRepository(BaseRepository[ApplicationForm]):
    @property
    def node_label(self) -> str:
        return "ApplicationForm"

    @property
    def model_class(self) -> type[ApplicationForm]:
        return ApplicationForm

    def _decode(self, record: dict[str, Any]) -> dict[str, Any]:
        data = dict(record)
        data["fields"] = from_json(record.get("fields"), default=[])
        return data

    @staticmethod
    def _fields_json(definition: FormDefinition) -> str | None:
        return to_json(definition.model_dump(mode="json")["fields"])

    @staticmethod
    def _to_category(record: dict[str, Any] | None) -> ApplicationCategory | None:
        if not record:
            return None
        return ApplicationCategory.model_validate(record)

    # =========================================================================
    # Forms
    # =========================================================================

    async def get_form(self, form_id: str) -> ApplicationForm | None:
        return await self.get_by_id(form_id)

    async def list_forms(self, round_id: str) -> list[ApplicationForm]:
        query = """
        MATCH (f:ApplicationForm {round_id: $round_id})
        WHERE f.deleted_at IS NULL
        RETURN f {.*} AS entity
        ORDER BY f.created_at ASC
        """
        results = await self.client.execute(query, {"round_id": round_id})
        return self._to_models([r["entity"] for r in results if r.get("entity")])

    async def get_form_by_name(self, round_id: str, name: str) -> ApplicationForm | None:
        query = """
        MATCH (f:ApplicationForm {round_id: $round_id, name: $name})
        WHERE f.deleted_at IS NULL
        RETURN f {.*} AS entity
        LIMIT 1
        """
        result = await self.client.execute_single(query, {"round_id": round_id, "name": name})
        return self._to_model(result["entity"]) if result else None

    async def create_form(
        self,
        round_id: str,
        definition: FormDefinition,
        tx: AsyncTransaction | None = None,
    ) -> ApplicationForm:
        query = """
        CREATE (f:ApplicationForm {
            id: $id,
            round_id: $round_id,
            name: $name,
            fields: $fields,
            created_at: $now,
            updated_at: $now
        })
        RETURN f {.*} AS entity
        """
        result = await self._run_single(
            query,
            {
                "id": self._generate_id(),
                "round_id": round_id,
                "name": definition.name,
                "fields": self._fields_json(definition),
                "now": self._now().isoformat(),
            },
            tx,
        )
        form = self._to_model(result["entity"] if result else None)
        if form is None:
            raise RuntimeError("Form creation returned no record")
        return form

    async def update_form(
        self,
        form_id: str,
        definition: FormDefinition,
        tx: AsyncTransaction | None = None,
    ) -> ApplicationForm | None:
        """Replace name and fields of a live form; None if it is gone."""
        query = """
        MATCH (f:ApplicationForm {id: $id})
        WHERE f.deleted_at IS NULL
        SET f.name = $name, f.fields = $fields, f.updated_at = $now
        RETURN f {.*} AS entity
        """
        result = await self._run_single(
            query,
            {
                "id": form_id,
                "name": definition.name,
                "fields": self._fields_json(definition),
                "now": self._now().isoformat(),
            },
            tx,
        )
        return self._to_model(result["entity"]) if result else None

    async def delete_form(self, form_id: str, tx: AsyncTransaction | None = None) -> bool:
        """Soft-delete a form no live category uses."""
        query = """
        MATCH (f:ApplicationForm {id: $id})
        WHERE f.deleted_at IS NULL
          AND NOT EXISTS {
            MATCH (c:ApplicationCategory {form_id: f.id})
            WHERE c.deleted_at IS NULL
          }
        SET f.deleted_at = $now
        RETURN count(f) AS deleted
        """
        result = await self._run_single(query, {"id": form_id, "now": self._now().isoformat()}, tx)
        return bool(result and result["deleted"])

    async def count_categories_using(self, form_id: str) -> int:
        query = """
        MATCH (c:ApplicationCategory {form_id: $form_id})
        WHERE c.deleted_at IS NULL
        RETURN count(c) AS count
        """
        result = await self.client.execute_single(query, {"form_id": form_id})
        return result.get("count", 0) if result else 0

    # =========================================================================
    # Categories
    # =========================================================================

    async def get_category(self, category_id: str) -> ApplicationCategory | None:
        query = """
        MATCH (c:ApplicationCategory {id: $id})
        RETURN c {.*} AS entity
        """
        result = await self.client.execute_single(query, {"id": category_id})
        return self._to_category(result.get("entity") if result else None)

    async def list_categories(self, round_id: str) -> list[ApplicationCategory]:
        query = """
        MATCH (c:ApplicationCategory {round_id: $round_id})
        WHERE c.deleted_at IS NULL
        RETURN c {.*} AS entity
        ORDER BY c.created_at ASC
        """
        results = await self.client.execute(query, {"round_id": round_id})
        return [c for c in (self._to_category(r.get("entity")) for r in results) if c is not None]

    async def create_category(
        self,
        round_id: str,
        definition: CategoryDefinition,
        tx: AsyncTransaction | None = None,
    ) -> ApplicationCategory:
        query = """
        CREATE (c:ApplicationCategory {
            id: $id,
            round_id: $round_id,
            name: $name,
            description: $description,
            form_id: $form_id,
            created_at: $now
        })
        RETURN c {.*} AS entity
        """
        result = await self._run_single(
            query,
            {
                "id": self._generate_id(),
                "round_id": round_id,
                "now": self._now().isoformat(),
                **definition.model_dump(),
            },
            tx,
        )
        category = self._to_category(result["entity"] if result else None)
        if category is None:
            raise RuntimeError("Category creation returned no record")
        return category

    async def update_category(
        self,
        category_id: str,
        definition: CategoryDefinition,
        tx: AsyncTransaction | None = None,
    ) -> ApplicationCategory | None:
        query = """
        MATCH (c:ApplicationCategory {id: $id})
        WHERE c.deleted_at IS NULL
        SET c.name = $name, c.description = $description, c.form_id = $form_id
        RETURN c {.*} AS entity
        """
        result = await self._run_single(query, {"id": category_id, **definition.model_dump()}, tx)
        return self._to_category(result.get("entity") if result else None)

    async def delete_category(self, category_id: str, tx: AsyncTransaction | None = None) -> bool:
        query = """
        MATCH (c:ApplicationCategory {id: $id})
        WHERE c.deleted_at IS NULL
        SET c.deleted_at = $now
        RETURN count(c) AS deleted
        """
        result = await self._run_single(query, {"id": category_id, "now": self._now().isoformat()}, tx)
        return bool(result and result["deleted"])
