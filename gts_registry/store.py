"""
In-memory entity store.

The GtsStore is the registry every lookup-driven operation (compatibility,
cast, relationship graph, validation) receives explicitly. It provides:
- Registration of entities and raw schemas
- Lookup by identifier, falling back to the reader for lazy loading
- Listing for the front ends
- Optional existence checks for embedded references

Invariants:
    - Entities are keyed by their own GTS ID
    - Registering an existing ID replaces the previous entity
    - The store performs no locking; callers serialize concurrent writers
    - Operations never mutate registered content

How to change safely:
    - Keep get() side-effect free apart from caching reader results
    - Reference checks skip self references and JSON Schema meta-schema URLs
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .entity import JsonEntity
from .errors import RegistrationError, SchemaNotFoundError
from .ids import GtsID
from .reader import GtsReader

logger = logging.getLogger(__name__)

JSON_SCHEMA_URL_PREFIXES = ("http://json-schema.org", "https://json-schema.org")


def is_meta_schema_url(value: str) -> bool:
    """Whether value points at a JSON Schema meta-schema."""
    return value.startswith(JSON_SCHEMA_URL_PREFIXES)


@dataclass
class ListResult:
    """A page of entity summaries."""
    entities: List[Dict[str, Any]] = field(default_factory=list)
    count: int = 0
    total: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"entities": self.entities, "count": self.count, "total": self.total}


class GtsStore:
    """In-memory map of GTS ID to entity.

    Example:
        >>> store = GtsStore(GtsFileReader(["./schemas"]))
        >>> store.get("gts.x.core.events.type.v1~").is_schema
        True
    """

    def __init__(self, reader: Optional[GtsReader] = None, validate_refs: bool = False) -> None:
        self._by_id: Dict[str, JsonEntity] = {}
        self._reader = reader
        self.validate_refs = validate_refs

        if reader is not None:
            self._populate_from_reader()

        logger.info(f"Created GtsStore with {len(self._by_id)} entities (validate_refs={validate_refs})")

    def _populate_from_reader(self) -> None:
        while (entity := self._reader.next()) is not None:
            if entity.gts_id is not None:
                self._by_id[entity.gts_id.id] = entity

    def reload(self) -> int:
        """Drop everything and re-read from the reader.

        Returns:
            Number of entities loaded
        """
        self._by_id.clear()
        if self._reader is not None:
            self._reader.reset()
            self._populate_from_reader()
        logger.info(f"Reloaded GtsStore with {len(self._by_id)} entities")
        return len(self._by_id)

    def register(self, entity: JsonEntity, validate_refs: Optional[bool] = None) -> None:
        """Add or replace an entity.

        Args:
            entity: Entity to register
            validate_refs: Override the store-wide reference check

        Raises:
            RegistrationError: If the entity has no GTS ID or a reference
                check fails
        """
        if entity.gts_id is None:
            raise RegistrationError("entity must have a valid gts_id")

        gts_id = entity.gts_id.id
        check = self.validate_refs if validate_refs is None else validate_refs
        if check:
            errors = self.check_references(entity)
            if errors:
                raise RegistrationError(
                    f"GTS reference validation failed for entity {gts_id}: " + "; ".join(errors),
                    gts_id,
                )

        self._by_id[gts_id] = entity
        logger.debug(f"Registered entity: {gts_id} (schema: {entity.is_schema}, refs: {len(entity.gts_refs)})")

    def register_schema(self, type_id: str, schema: Dict[str, Any]) -> JsonEntity:
        """Register raw schema content under a type identifier.

        Raises:
            RegistrationError: If type_id is not a type identifier
            InvalidGtsIDError: If type_id is malformed
        """
        if not type_id.endswith("~"):
            raise RegistrationError("schema type_id must end with '~'", type_id)

        gts_id = GtsID.parse(type_id)
        entity = JsonEntity(content=schema, gts_id=gts_id, is_schema=True, label=gts_id.id)
        self._by_id[gts_id.id] = entity
        logger.debug(f"Registered schema: {gts_id.id}")
        return entity

    def get(self, entity_id: str) -> Optional[JsonEntity]:
        """Look up an entity, asking the reader on a miss."""
        entity = self._by_id.get(entity_id)
        if entity is not None:
            return entity

        if self._reader is not None:
            entity = self._reader.read_by_id(entity_id)
            if entity is not None:
                self._by_id[entity_id] = entity
        return entity

    def get_schema_content(self, type_id: str) -> Dict[str, Any]:
        """Content of a registered schema.

        Raises:
            SchemaNotFoundError: If no schema is registered under type_id
        """
        entity = self.get(type_id)
        if entity is None or not entity.is_schema:
            raise SchemaNotFoundError(type_id)
        return entity.content

    def items(self) -> Iterator[Tuple[str, JsonEntity]]:
        return iter(list(self._by_id.items()))

    def count(self) -> int:
        return len(self._by_id)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._by_id

    def list(self, limit: int = 100) -> ListResult:
        """Summaries of up to limit entities, in registration order."""
        entities = [entity.to_dict() for entity in list(self._by_id.values())[: max(limit, 0)]]
        return ListResult(entities=entities, count=len(entities), total=len(self._by_id))

    def check_references(self, entity: JsonEntity) -> List[str]:
        """Check that every reference in entity points at a registered entity.

        Returns:
            One message per broken reference, empty when all resolve
        """
        errors: List[str] = []
        own_id = entity.id

        for ref in entity.gts_refs:
            if ref.id == own_id or is_meta_schema_url(ref.id):
                continue

            target = self.get(ref.id)
            if target is None:
                errors.append(f"referenced entity not found: {ref.id} (at {ref.source_path})")
                continue

            if entity.is_schema and "$ref" in ref.source_path and not target.is_schema:
                errors.append(
                    f"schema reference points to non-schema entity: {ref.id} (at {ref.source_path})"
                )

        return errors
