"""
Cast engine: migrate an instance's content to another schema version.

Given an instance and a target schema, the content is transformed against
the flattened target schema:
1. Missing required properties get the target default, or a diagnostic
2. Missing optional properties with a default get it
3. Identifier-valued consts overwrite differing identifier values
4. With additionalProperties false, unknown properties are dropped
5. Nested objects and arrays of objects are transformed the same way

The result is then validated against the full target schema with
identifier consts relaxed to plain strings.

Invariants:
    - Registered content is never mutated; the cast works on a deep copy
    - Structural problems become diagnostics, only missing entities and
      casting from a schema raise
    - The transformed content is returned even when it does not conform

Example:
    >>> result = cast(store, "gts.x.core.events.type.v1.0~x.app.ev.created.v1",
    ...               "gts.x.core.events.type.v1.1~")
    >>> result.casted_entity["priority"]
    'normal'
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .compat import CompatibilityReport, Direction, build_report, flatten_schema, infer_direction
from .errors import (
    CastFromSchemaNotAllowedError,
    EntityNotFoundError,
    SchemaForInstanceNotFoundError,
    SchemaNotFoundError,
    ValidationFailedError,
)
from .ids import GtsID
from .store import GtsStore
from .validate import JsonSchemaValidator, SchemaValidator, relax_gts_consts

logger = logging.getLogger(__name__)


@dataclass
class CastResult(CompatibilityReport):
    """Compatibility report for a cast plus the transformed content.

    Attributes:
        casted_entity: Transformed content, None if the instance was not
            an object
        conforms: Transformed content passed validation against the target
    """
    casted_entity: Optional[Dict[str, Any]] = None
    conforms: bool = False

    @property
    def is_fully_compatible(self) -> bool:
        return self.is_backward_compatible and self.is_forward_compatible and self.conforms

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["casted_entity"] = self.casted_entity
        return data


def cast(
    store: GtsStore,
    instance_id: str,
    to_schema_id: str,
    validator: Optional[SchemaValidator] = None,
) -> CastResult:
    """Cast a registered instance to a target schema.

    Args:
        store: Store holding the instance and both schemas
        instance_id: Instance to cast
        to_schema_id: Target schema
        validator: Schema validator, JsonSchemaValidator by default

    Returns:
        CastResult

    Raises:
        EntityNotFoundError: If the instance is not registered
        SchemaNotFoundError: If the target or source schema is not registered
        CastFromSchemaNotAllowedError: If instance_id names a schema
        SchemaForInstanceNotFoundError: If the instance has no schema id
    """
    instance = store.get(instance_id)
    if instance is None:
        raise EntityNotFoundError(instance_id)

    target = store.get(to_schema_id)
    if target is None:
        raise SchemaNotFoundError(to_schema_id)

    if instance.is_schema:
        raise CastFromSchemaNotAllowedError(instance_id)
    if not instance.schema_id:
        raise SchemaForInstanceNotFoundError(instance_id)

    source = store.get(instance.schema_id)
    if source is None:
        raise SchemaNotFoundError(instance.schema_id)

    direction = infer_direction(instance.schema_id, to_schema_id)
    if direction == Direction.DOWN:
        old_id, new_id = to_schema_id, instance.schema_id
        old_schema, new_schema = target.content, source.content
    else:
        old_id, new_id = instance.schema_id, to_schema_id
        old_schema, new_schema = source.content, target.content

    report = build_report(
        old_id, new_id, old_schema, new_schema,
        from_id=instance_id, to_id=to_schema_id, direction=direction,
    )

    content = copy.deepcopy(instance.content)
    if isinstance(content, dict):
        casted, added, removed, reasons = cast_object(content, flatten_schema(target.content), "")
    else:
        casted, added, removed = None, [], []
        reasons = ["Instance must be an object for casting"]

    conforms = False
    if casted is not None:
        validator = validator or JsonSchemaValidator(store)
        try:
            validator.validate(relax_gts_consts(target.content), casted)
            conforms = True
        except ValidationFailedError as e:
            reasons.append(str(e))

    for reason in reasons:
        if reason not in report.incompatibility_reasons:
            report.incompatibility_reasons.append(reason)

    logger.info(
        f"Cast {instance_id} -> {to_schema_id}: added={len(set(added))} "
        f"removed={len(set(removed))} conforms={conforms}"
    )

    return CastResult(
        from_id=report.from_id,
        to_id=report.to_id,
        old_id=report.old_id,
        new_id=report.new_id,
        direction=report.direction,
        added_properties=sorted(set(added)),
        removed_properties=sorted(set(removed)),
        changed_properties=report.changed_properties,
        is_backward_compatible=report.is_backward_compatible,
        is_forward_compatible=report.is_forward_compatible,
        incompatibility_reasons=report.incompatibility_reasons,
        backward_errors=report.backward_errors,
        forward_errors=report.forward_errors,
        casted_entity=casted,
        conforms=conforms,
    )


def _join(base_path: str, prop: str) -> str:
    return f"{base_path}.{prop}" if base_path else prop


def cast_object(
    instance: Dict[str, Any], schema: Dict[str, Any], base_path: str
) -> Tuple[Dict[str, Any], List[str], List[str], List[str]]:
    """Transform one object against a flattened object schema.

    Returns:
        (transformed object, added paths, removed paths, diagnostics)
    """
    added: List[str] = []
    removed: List[str] = []
    reasons: List[str] = []

    props: Dict[str, Any] = schema.get("properties") or {}
    required = [r for r in schema.get("required") or [] if isinstance(r, str)]
    additional = schema.get("additionalProperties", True)
    if not isinstance(additional, bool):
        additional = True

    result = dict(instance)

    for prop in dict.fromkeys(required):
        if prop in result:
            continue
        prop_schema = props.get(prop)
        if isinstance(prop_schema, dict) and "default" in prop_schema:
            result[prop] = copy.deepcopy(prop_schema["default"])
            added.append(_join(base_path, prop))
        else:
            reasons.append(
                f"Missing required property '{_join(base_path, prop)}' and no default is defined"
            )

    for prop, prop_schema in props.items():
        if prop in required or prop in result or not isinstance(prop_schema, dict):
            continue
        if "default" in prop_schema:
            result[prop] = copy.deepcopy(prop_schema["default"])
            added.append(_join(base_path, prop))

    for prop, prop_schema in props.items():
        if not isinstance(prop_schema, dict) or "const" not in prop_schema:
            continue
        const = prop_schema["const"]
        current = result.get(prop)
        if (
            isinstance(const, str)
            and isinstance(current, str)
            and current != const
            and GtsID.is_valid(const)
            and GtsID.is_valid(current)
        ):
            result[prop] = const

    if additional is False:
        for prop in list(result):
            if prop not in props:
                del result[prop]
                removed.append(_join(base_path, prop))

    for prop, prop_schema in props.items():
        if prop not in result or not isinstance(prop_schema, dict):
            continue
        value = result[prop]
        prop_type = prop_schema.get("type")

        if prop_type == "object" and isinstance(value, dict):
            nested, sub_added, sub_removed, sub_reasons = cast_object(
                value, flatten_schema(prop_schema), _join(base_path, prop)
            )
            result[prop] = nested
            added.extend(sub_added)
            removed.extend(sub_removed)
            reasons.extend(sub_reasons)

        elif prop_type == "array" and isinstance(value, list):
            items = prop_schema.get("items")
            if not isinstance(items, dict) or items.get("type") != "object":
                continue
            item_schema = flatten_schema(items)
            new_items: List[Any] = []
            for idx, item in enumerate(value):
                if not isinstance(item, dict):
                    new_items.append(item)
                    continue
                nested, sub_added, sub_removed, sub_reasons = cast_object(
                    item, item_schema, _join(base_path, f"{prop}[{idx}]")
                )
                new_items.append(nested)
                added.extend(sub_added)
                removed.extend(sub_removed)
                reasons.extend(sub_reasons)
            result[prop] = new_items

    return result, added, removed, reasons
