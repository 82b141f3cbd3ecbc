"""
JSON Schema validation for GTS entities.

General JSON Schema conformance is delegated to a SchemaValidator. The
default JsonSchemaValidator wraps the jsonschema library and plugs a
reference-resolution hook into it, so '$ref' values naming registered
schemas ('gts://<id>' or a bare '<id>') resolve against the store. Local
'#...' refs are resolved by jsonschema itself.

On top of that this module provides:
- validate_instance: instance content against its governing schema, plus
  x-gts-ref constraints
- validate_schema: '$ref' forms, x-gts-ref patterns and the schema itself
- relax_gts_consts: the discriminator-tolerant copy of a schema used when
  re-validating cast output

Invariants:
    - Formats are not asserted
    - Results report failures, only SchemaValidator.validate raises
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError, best_match
from jsonschema.protocols import Validator
from jsonschema.validators import validator_for
from referencing import Registry, Resource
from referencing.exceptions import NoSuchResource, Unresolvable
from referencing.jsonschema import DRAFT202012

from .errors import (
    EntityNotFoundError,
    InvalidGtsIDError,
    ReferenceResolutionError,
    SchemaForInstanceNotFoundError,
    SchemaNotFoundError,
    ValidationFailedError,
)
from .ids import GTS_URI_PREFIX, GtsID
from .store import GtsStore
from .x_gts_ref import RefValidator, XGtsRefValidator

logger = logging.getLogger(__name__)


class SchemaValidator(ABC):
    """Capability the registry needs from a JSON Schema implementation."""

    @abstractmethod
    def resolve_reference(self, ref: str) -> Dict[str, Any]:
        """Return the schema content a GTS reference points at.

        Raises:
            ReferenceResolutionError: If ref is not a resolvable GTS reference
        """
        ...

    @abstractmethod
    def compile(self, schema: Dict[str, Any]) -> Any:
        """Prepare a schema for validation.

        Raises:
            ValidationFailedError: If the schema itself is invalid
        """
        ...

    @abstractmethod
    def validate(self, schema: Dict[str, Any], instance: Any) -> None:
        """Validate an instance.

        Raises:
            ValidationFailedError: On the most relevant failure
        """
        ...


class JsonSchemaValidator(SchemaValidator):
    """SchemaValidator backed by jsonschema and a store-aware registry.

    Example:
        >>> validator = JsonSchemaValidator(store)
        >>> validator.validate(store.get_schema_content(type_id), content)
    """

    def __init__(self, store: GtsStore) -> None:
        self.store = store
        self._registry: Registry = Registry(retrieve=self._retrieve)

    def resolve_reference(self, ref: str) -> Dict[str, Any]:
        target = ref.split("#", 1)[0]
        if target.startswith(GTS_URI_PREFIX):
            target = target[len(GTS_URI_PREFIX):]

        if not GtsID.is_valid(target):
            raise ReferenceResolutionError(ref, "not a GTS reference")

        entity = self.store.get(target)
        if entity is None:
            raise ReferenceResolutionError(ref, "schema not found in store")
        if not entity.is_schema:
            raise ReferenceResolutionError(ref, "GTS reference is not a schema")
        return entity.content

    def _retrieve(self, uri: str) -> Resource:
        try:
            content = self.resolve_reference(uri)
        except ReferenceResolutionError as e:
            raise NoSuchResource(ref=uri) from e
        return Resource.from_contents(content, default_specification=DRAFT202012)

    def compile(self, schema: Dict[str, Any]) -> Validator:
        cls = validator_for(schema, default=Draft202012Validator)
        try:
            cls.check_schema(schema)
        except SchemaError as e:
            raise ValidationFailedError(f"invalid schema: {e.message}") from e
        return cls(schema, registry=self._registry)

    def validate(self, schema: Dict[str, Any], instance: Any) -> None:
        compiled = self.compile(schema)
        try:
            error = best_match(compiled.iter_errors(instance))
        except Unresolvable as e:
            raise ValidationFailedError(f"Unresolvable reference: {e}") from e

        if error is not None:
            where = "/".join(str(p) for p in error.absolute_path)
            message = f"validation error: {error.message}"
            if where:
                message += f" at path: {where}"
            raise ValidationFailedError(message)


@dataclass
class ValidationResult:
    """Outcome of validating one entity."""
    id: str
    ok: bool
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def relax_gts_consts(schema: Any) -> Any:
    """Copy a schema, replacing identifier-valued consts with a string type.

    Discriminator fields pin a concrete type identifier; after a cast they
    legitimately differ, so only their string shape is checked.
    """
    if isinstance(schema, dict):
        relaxed: Dict[str, Any] = {}
        for key, value in schema.items():
            if key == "const" and isinstance(value, str) and GtsID.is_valid(value):
                relaxed["type"] = "string"
                continue
            relaxed[key] = relax_gts_consts(value)
        return relaxed
    if isinstance(schema, list):
        return [relax_gts_consts(item) for item in schema]
    return schema


def validate_instance(
    store: GtsStore, gts_id: str, validator: Optional[SchemaValidator] = None
) -> ValidationResult:
    """Validate a registered instance against its governing schema.

    Args:
        store: Store holding the instance and its schema
        gts_id: Instance identifier
        validator: Schema validator, JsonSchemaValidator by default

    Returns:
        ValidationResult
    """
    try:
        parsed = GtsID.parse(gts_id)
    except InvalidGtsIDError as e:
        return ValidationResult(gts_id, False, f"Invalid GTS ID: {e}")

    entity = store.get(parsed.id)
    if entity is None:
        return ValidationResult(gts_id, False, str(EntityNotFoundError(gts_id)))
    if not entity.schema_id:
        return ValidationResult(gts_id, False, str(SchemaForInstanceNotFoundError(gts_id)))

    schema_entity = store.get(entity.schema_id)
    if schema_entity is None:
        return ValidationResult(gts_id, False, str(SchemaNotFoundError(entity.schema_id)))
    if not schema_entity.is_schema:
        return ValidationResult(gts_id, False, f"entity '{entity.schema_id}' is not a schema")

    validator = validator or JsonSchemaValidator(store)
    try:
        validator.validate(schema_entity.content, entity.content)
    except ValidationFailedError as e:
        logger.debug(f"Instance {gts_id} failed validation: {e}")
        return ValidationResult(gts_id, False, str(e))

    issues = XGtsRefValidator(store).validate_instance(entity.content, schema_entity.content)
    if issues:
        return ValidationResult(gts_id, False, "; ".join(str(i) for i in issues))

    return ValidationResult(gts_id, True)


def validate_schema(
    store: GtsStore, gts_id: str, validator: Optional[SchemaValidator] = None
) -> ValidationResult:
    """Validate a registered schema.

    Checks '$ref' forms, x-gts-ref patterns and that the schema
    compiles.
    """
    if not gts_id.endswith("~"):
        return ValidationResult(gts_id, False, f"ID '{gts_id}' is not a schema (must end with '~')")

    entity = store.get(gts_id)
    if entity is None:
        return ValidationResult(gts_id, False, str(SchemaNotFoundError(gts_id)))
    if not entity.is_schema:
        return ValidationResult(gts_id, False, f"entity '{gts_id}' is not a schema")

    problems = [str(i) for i in RefValidator().validate_schema_refs(entity.content)]
    problems.extend(str(i) for i in XGtsRefValidator().validate_schema(entity.content))
    if problems:
        return ValidationResult(gts_id, False, "; ".join(problems))

    validator = validator or JsonSchemaValidator(store)
    try:
        validator.compile(entity.content)
    except ValidationFailedError as e:
        return ValidationResult(gts_id, False, str(e))

    logger.debug(f"Schema {gts_id} passed validation")
    return ValidationResult(gts_id, True)
