"""
Schema compatibility checking for GTS schemas.

Two JSON schemas are compared structurally in one of two modes:
- Backward: data written against the old schema must still be accepted by
  the new one. Adding required properties, growing enums and tightening
  bounds are violations.
- Forward: data written against the new schema must still be accepted by
  the old one. Removing required properties, shrinking enums and relaxing
  bounds are violations.

A changed property type is a violation in both modes. Both schemas are
flattened first (allOf merged into one object schema) and nested object
and array-item schemas are compared recursively.

Invariants:
    - Structural mismatches are reported, never raised
    - Violation messages are deterministic (sets are sorted)
    - Schemas are read-only here; flattening builds new dicts

How to change safely:
    - Keep violation message wording stable, API clients display them
    - New checks must go in both modes with opposite polarity

Example:
    >>> ok, violations = check_backward(old_schema, new_schema)
    >>> if not ok:
    ...     raise CompatibilityError(violations, "backward")
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from .errors import CompatibilityError, InvalidGtsIDError
from .ids import GtsID
from .store import GtsStore

logger = logging.getLogger(__name__)

# Bound keyword pairs, by declared primitive type
_BOUNDS: Dict[str, Tuple[str, str]] = {
    "number": ("minimum", "maximum"),
    "integer": ("minimum", "maximum"),
    "string": ("minLength", "maxLength"),
    "array": ("minItems", "maxItems"),
}


class CompatMode(Enum):
    """Which way data must flow between two schema versions."""
    BACKWARD = "backward"
    FORWARD = "forward"


class Direction(str, Enum):
    """Relation between two identifiers' minor versions."""
    UP = "up"
    DOWN = "down"
    NONE = "none"
    UNKNOWN = "unknown"


@dataclass
class CompatibilityReport:
    """Result of comparing two schema versions.

    Attributes:
        from_id: Identifier compared from
        to_id: Identifier compared to
        old_id: Identifier treated as the old version
        new_id: Identifier treated as the new version
        direction: Minor-version direction from from_id to to_id
        added_properties: Property paths present only in the new schema
        removed_properties: Property paths present only in the old schema
        changed_properties: Common properties whose sub-schema changed
        is_backward_compatible: No backward violations
        is_forward_compatible: No forward violations
        incompatibility_reasons: Every violation, both modes, deduplicated
        backward_errors: Backward violations, in detection order
        forward_errors: Forward violations, in detection order
    """
    from_id: str
    to_id: str
    old_id: str
    new_id: str
    direction: Direction = Direction.UNKNOWN
    added_properties: List[str] = field(default_factory=list)
    removed_properties: List[str] = field(default_factory=list)
    changed_properties: List[Dict[str, str]] = field(default_factory=list)
    is_backward_compatible: bool = False
    is_forward_compatible: bool = False
    incompatibility_reasons: List[str] = field(default_factory=list)
    backward_errors: List[str] = field(default_factory=list)
    forward_errors: List[str] = field(default_factory=list)

    @property
    def is_fully_compatible(self) -> bool:
        return self.is_backward_compatible and self.is_forward_compatible

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_id,
            "to": self.to_id,
            "old": self.old_id,
            "new": self.new_id,
            "direction": self.direction.value,
            "added_properties": self.added_properties,
            "removed_properties": self.removed_properties,
            "changed_properties": self.changed_properties,
            "is_fully_compatible": self.is_fully_compatible,
            "is_backward_compatible": self.is_backward_compatible,
            "is_forward_compatible": self.is_forward_compatible,
            "incompatibility_reasons": self.incompatibility_reasons,
            "backward_errors": self.backward_errors,
            "forward_errors": self.forward_errors,
        }


def infer_direction(from_id: str, to_id: str) -> Direction:
    """Compare the minor versions of the last segments of two identifiers.

    Returns:
        UP or DOWN when both minors are present and differ, NONE when they
        are equal, UNKNOWN when either identifier is invalid or lacks a minor
    """
    try:
        from_seg = GtsID.parse(from_id).last_segment
        to_seg = GtsID.parse(to_id).last_segment
    except InvalidGtsIDError:
        return Direction.UNKNOWN

    if from_seg.minor is None or to_seg.minor is None:
        return Direction.UNKNOWN
    if to_seg.minor > from_seg.minor:
        return Direction.UP
    if to_seg.minor < from_seg.minor:
        return Direction.DOWN
    return Direction.NONE


def flatten_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Merge an allOf composition into a single object schema.

    Properties of later entries overwrite earlier ones, required lists are
    concatenated, and the most specific additionalProperties wins (the
    schema's own value overrides anything inherited through allOf).

    Returns:
        A new dict with 'properties', 'required' and, when declared
        anywhere, 'additionalProperties'
    """
    result: Dict[str, Any] = {"properties": {}, "required": []}

    all_of = schema.get("allOf")
    if isinstance(all_of, list):
        for sub_schema in all_of:
            if isinstance(sub_schema, dict):
                _merge_flat(result, flatten_schema(sub_schema))

    _merge_flat(result, schema)
    return result


def _merge_flat(result: Dict[str, Any], schema: Dict[str, Any]) -> None:
    props = schema.get("properties")
    if isinstance(props, dict):
        result["properties"].update(props)
    required = schema.get("required")
    if isinstance(required, list):
        result["required"].extend(required)
    if "additionalProperties" in schema:
        result["additionalProperties"] = schema["additionalProperties"]


def check_schema_compatibility(
    old_schema: Dict[str, Any],
    new_schema: Dict[str, Any],
    mode: CompatMode,
) -> Tuple[bool, List[str]]:
    """Compare two schemas in one mode.

    Args:
        old_schema: Old schema version
        new_schema: New schema version
        mode: BACKWARD or FORWARD

    Returns:
        Tuple of (is_compatible, violations)
    """
    errors: List[str] = []
    backward = mode is CompatMode.BACKWARD

    old_flat = flatten_schema(old_schema)
    new_flat = flatten_schema(new_schema)
    old_props = old_flat["properties"]
    new_props = new_flat["properties"]
    old_required = _string_set(old_flat["required"])
    new_required = _string_set(new_flat["required"])

    if backward:
        added = sorted(new_required - old_required)
        if added:
            errors.append("Added required properties: " + ", ".join(added))
    else:
        removed = sorted(old_required - new_required)
        if removed:
            errors.append("Removed required properties: " + ", ".join(removed))

    for prop in sorted(set(old_props) & set(new_props)):
        old_prop = old_props[prop]
        new_prop = new_props[prop]
        if not isinstance(old_prop, dict) or not isinstance(new_prop, dict):
            continue

        old_type = _type_of(old_prop)
        new_type = _type_of(new_prop)
        if old_type and new_type and old_type != new_type:
            errors.append(f"Property '{prop}' type changed from {old_type} to {new_type}")

        errors.extend(_check_enum(prop, old_prop, new_prop, backward))

        bounds = _BOUNDS.get(old_type)
        if bounds:
            errors.extend(_check_bounds(prop, old_prop, new_prop, bounds, backward))

        if old_type == "object" and new_type == "object":
            ok, nested = check_schema_compatibility(old_prop, new_prop, mode)
            if not ok:
                errors.extend(f"Property '{prop}': {e}" for e in nested)

        if old_type == "array" and new_type == "array":
            old_items = old_prop.get("items")
            new_items = new_prop.get("items")
            if isinstance(old_items, dict) and isinstance(new_items, dict):
                ok, nested = check_schema_compatibility(old_items, new_items, mode)
                if not ok:
                    errors.extend(f"Property '{prop}' array items: {e}" for e in nested)

    return len(errors) == 0, errors


def check_backward(old_schema: Dict[str, Any], new_schema: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Can the new schema read data written for the old one?"""
    return check_schema_compatibility(old_schema, new_schema, CompatMode.BACKWARD)


def check_forward(old_schema: Dict[str, Any], new_schema: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Can the old schema read data written for the new one?"""
    return check_schema_compatibility(old_schema, new_schema, CompatMode.FORWARD)


def require_compatible(
    old_schema: Dict[str, Any],
    new_schema: Dict[str, Any],
    mode: CompatMode = CompatMode.BACKWARD,
) -> None:
    """Raise if the schemas are incompatible in the given mode.

    Raises:
        CompatibilityError: With every violation found
    """
    ok, violations = check_schema_compatibility(old_schema, new_schema, mode)
    if not ok:
        raise CompatibilityError(violations, mode.value)


def build_report(
    old_id: str,
    new_id: str,
    old_schema: Dict[str, Any],
    new_schema: Dict[str, Any],
    from_id: Optional[str] = None,
    to_id: Optional[str] = None,
    direction: Optional[Direction] = None,
) -> CompatibilityReport:
    """Compare two schemas in both modes and assemble a report."""
    from_id = from_id or old_id
    to_id = to_id or new_id

    is_backward, backward_errors = check_backward(old_schema, new_schema)
    is_forward, forward_errors = check_forward(old_schema, new_schema)

    added: Set[str] = set()
    removed: Set[str] = set()
    changed: List[Dict[str, str]] = []
    _diff_properties(flatten_schema(old_schema), flatten_schema(new_schema), "", added, removed, changed)

    reasons: List[str] = []
    for reason in backward_errors + forward_errors:
        if reason not in reasons:
            reasons.append(reason)

    return CompatibilityReport(
        from_id=from_id,
        to_id=to_id,
        old_id=old_id,
        new_id=new_id,
        direction=direction or infer_direction(from_id, to_id),
        added_properties=sorted(added),
        removed_properties=sorted(removed),
        changed_properties=changed,
        is_backward_compatible=is_backward,
        is_forward_compatible=is_forward,
        incompatibility_reasons=reasons,
        backward_errors=backward_errors,
        forward_errors=forward_errors,
    )


def check_compatibility(store: GtsStore, old_id: str, new_id: str) -> CompatibilityReport:
    """Compare two registered schemas.

    A missing schema yields a report with direction UNKNOWN and a
    'Schema not found' error in both modes.

    Args:
        store: Store holding both schemas
        old_id: Old schema identifier
        new_id: New schema identifier

    Returns:
        CompatibilityReport
    """
    old_entity = store.get(old_id)
    new_entity = store.get(new_id)

    if old_entity is None or new_entity is None:
        return CompatibilityReport(
            from_id=old_id,
            to_id=new_id,
            old_id=old_id,
            new_id=new_id,
            backward_errors=["Schema not found"],
            forward_errors=["Schema not found"],
        )

    report = build_report(old_id, new_id, old_entity.content, new_entity.content)
    logger.info(
        f"Compatibility {old_id} -> {new_id}: backward={report.is_backward_compatible} "
        f"forward={report.is_forward_compatible} direction={report.direction.value}"
    )
    return report


def _diff_properties(
    old_flat: Dict[str, Any],
    new_flat: Dict[str, Any],
    prefix: str,
    added: Set[str],
    removed: Set[str],
    changed: List[Dict[str, str]],
) -> None:
    old_props = old_flat["properties"]
    new_props = new_flat["properties"]

    added.update(prefix + p for p in set(new_props) - set(old_props))
    removed.update(prefix + p for p in set(old_props) - set(new_props))

    for prop in sorted(set(old_props) & set(new_props)):
        old_prop = old_props[prop]
        new_prop = new_props[prop]
        if old_prop == new_prop or not isinstance(old_prop, dict) or not isinstance(new_prop, dict):
            continue

        old_type = _type_of(old_prop)
        new_type = _type_of(new_prop)
        if old_type == "object" and new_type == "object":
            _diff_properties(
                flatten_schema(old_prop), flatten_schema(new_prop), f"{prefix}{prop}.", added, removed, changed
            )
        else:
            changed.append({"property": prefix + prop, "old_type": old_type, "new_type": new_type})


def _type_of(prop_schema: Dict[str, Any]) -> str:
    value = prop_schema.get("type")
    return value if isinstance(value, str) else ""


def _string_set(values: List[Any]) -> Set[str]:
    return {v for v in values if isinstance(v, str)}


def _enum_key(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, sort_keys=True)


def _check_enum(prop: str, old_prop: Dict[str, Any], new_prop: Dict[str, Any], backward: bool) -> List[str]:
    old_enum = old_prop.get("enum")
    new_enum = new_prop.get("enum")
    if not (isinstance(old_enum, list) and old_enum and isinstance(new_enum, list) and new_enum):
        return []

    old_values = {_enum_key(v) for v in old_enum}
    new_values = {_enum_key(v) for v in new_enum}
    if backward:
        grown = sorted(new_values - old_values)
        if grown:
            return [f"Property '{prop}' added enum values: " + ", ".join(grown)]
    else:
        shrunk = sorted(old_values - new_values)
        if shrunk:
            return [f"Property '{prop}' removed enum values: " + ", ".join(shrunk)]
    return []


def _number(schema: Dict[str, Any], key: str) -> Optional[float]:
    value = schema.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def format_number(value: float) -> str:
    """Render a bound without trailing zeros (3.0 -> '3', 2.50 -> '2.5')."""
    return f"{value:.10f}".rstrip("0").rstrip(".")


def _check_bounds(
    prop: str,
    old_prop: Dict[str, Any],
    new_prop: Dict[str, Any],
    keys: Tuple[str, str],
    backward: bool,
) -> List[str]:
    min_key, max_key = keys
    old_min, new_min = _number(old_prop, min_key), _number(new_prop, min_key)
    old_max, new_max = _number(old_prop, max_key), _number(new_prop, max_key)
    errors: List[str] = []

    if backward:
        # Tightening breaks old data
        if old_min is not None and new_min is not None and new_min > old_min:
            errors.append(
                f"Property '{prop}' {min_key} increased from {format_number(old_min)} to {format_number(new_min)}"
            )
        elif old_min is None and new_min is not None:
            errors.append(f"Property '{prop}' added {min_key} constraint: {format_number(new_min)}")

        if old_max is not None and new_max is not None and new_max < old_max:
            errors.append(
                f"Property '{prop}' {max_key} decreased from {format_number(old_max)} to {format_number(new_max)}"
            )
        elif old_max is None and new_max is not None:
            errors.append(f"Property '{prop}' added {max_key} constraint: {format_number(new_max)}")
    else:
        # Relaxing breaks old readers
        if old_min is not None and new_min is not None and new_min < old_min:
            errors.append(
                f"Property '{prop}' {min_key} decreased from {format_number(old_min)} to {format_number(new_min)}"
            )
        elif old_min is not None and new_min is None:
            errors.append(f"Property '{prop}' removed {min_key} constraint")

        if old_max is not None and new_max is not None and new_max > old_max:
            errors.append(
                f"Property '{prop}' {max_key} increased from {format_number(old_max)} to {format_number(new_max)}"
            )
        elif old_max is not None and new_max is None:
            errors.append(f"Property '{prop}' removed {max_key} constraint")

    return errors
