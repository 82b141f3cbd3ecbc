"""
GTS-specific schema keyword checks.

x-gts-ref
    Attached to a string property, names the identifiers the property may
    hold. The value is either an absolute identifier or pattern
    ('gts.x.core.events.type.v1~', 'gts.x.core.*', 'gts.*') or a pointer
    into the same schema ('/properties/kind/x-gts-ref', '/$id') that
    resolves to one, possibly through a chain of pointers.

$ref
    GTS schemas may reference local definitions ('#/$defs/x') or other
    registered schemas ('gts://gts.x.core.events.type.v1~', or the bare
    identifier). Anything else is rejected.

Invariants:
    - Checks collect issues, they never raise
    - Pointer chains are followed until they reach a string or loop
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from .compat import flatten_schema
from .ids import GTS_PREFIX, GTS_URI_PREFIX, GtsID
from .store import GtsStore

logger = logging.getLogger(__name__)

X_GTS_REF = "x-gts-ref"
REF_FORM_REASON = "must be a local ref (starting with '#') or a GTS URI (starting with 'gts://')"


@dataclass(frozen=True)
class XGtsRefIssue:
    """A single x-gts-ref violation.

    Attributes:
        field_path: Instance path ('a.b[0]') or schema path ('properties/a/x-gts-ref')
        value: Offending value
        ref_pattern: Pattern the value was checked against
        reason: Human-readable cause
    """
    field_path: str
    value: Any
    ref_pattern: str
    reason: str

    def __str__(self) -> str:
        return f"x-gts-ref validation failed for field '{self.field_path}': {self.reason}"


@dataclass(frozen=True)
class RefIssue:
    """A '$ref' value in an unsupported form."""
    field_path: str
    ref_value: str
    reason: str

    def __str__(self) -> str:
        return f"$ref validation failed for field '{self.field_path}': {self.reason}"


class XGtsRefValidator:
    """Validates x-gts-ref constraints.

    When a store is given, instance values must also name registered
    entities.

    Example:
        >>> issues = XGtsRefValidator(store).validate_instance(content, schema)
        >>> [str(i) for i in issues]
        []
    """

    def __init__(self, store: Optional[GtsStore] = None) -> None:
        self.store = store

    def validate_instance(
        self, instance: Any, schema: Dict[str, Any], path: str = ""
    ) -> List[XGtsRefIssue]:
        """Check every x-gts-ref constrained value in an instance."""
        issues: List[XGtsRefIssue] = []
        self._visit_instance(instance, schema, path, schema, issues)
        return issues

    def validate_schema(
        self, schema: Dict[str, Any], path: str = "", root: Optional[Dict[str, Any]] = None
    ) -> List[XGtsRefIssue]:
        """Check that every x-gts-ref value in a schema is well formed."""
        issues: List[XGtsRefIssue] = []
        self._visit_schema(schema, path, root if root is not None else schema, issues)
        return issues

    def _visit_instance(
        self,
        instance: Any,
        schema: Dict[str, Any],
        path: str,
        root: Dict[str, Any],
        issues: List[XGtsRefIssue],
    ) -> None:
        if X_GTS_REF in schema and isinstance(instance, str):
            issue = self._check_value(instance, schema[X_GTS_REF], path, root)
            if issue is not None:
                issues.append(issue)

        schema_type = schema.get("type")
        if schema_type == "object" and isinstance(instance, dict):
            for name, prop_schema in flatten_schema(schema)["properties"].items():
                if name in instance and isinstance(prop_schema, dict):
                    prop_path = f"{path}.{name}" if path else name
                    self._visit_instance(instance[name], prop_schema, prop_path, root, issues)
        elif schema_type == "array" and isinstance(instance, list):
            items = schema.get("items")
            if isinstance(items, dict):
                for idx, item in enumerate(instance):
                    self._visit_instance(item, items, f"{path}[{idx}]", root, issues)

    def _visit_schema(
        self, schema: Dict[str, Any], path: str, root: Dict[str, Any], issues: List[XGtsRefIssue]
    ) -> None:
        for key, value in schema.items():
            nested = f"{path}/{key}" if path else key
            if key == X_GTS_REF:
                issue = self._check_pattern(value, nested, root)
                if issue is not None:
                    issues.append(issue)
            elif isinstance(value, dict):
                self._visit_schema(value, nested, root, issues)
            elif isinstance(value, list):
                for idx, item in enumerate(value):
                    if isinstance(item, dict):
                        self._visit_schema(item, f"{nested}[{idx}]", root, issues)

    def _check_value(
        self, value: str, ref: Any, field_path: str, root: Dict[str, Any]
    ) -> Optional[XGtsRefIssue]:
        if not isinstance(ref, str):
            return XGtsRefIssue(
                field_path, value, str(ref), f"x-gts-ref value must be a string, got {type(ref).__name__}"
            )

        pattern = ref
        if ref.startswith("/"):
            resolved = resolve_pointer(root, ref)
            if resolved is None:
                return XGtsRefIssue(field_path, value, ref, f"Cannot resolve reference path '{ref}'")
            if not resolved.startswith(GTS_PREFIX):
                return XGtsRefIssue(
                    field_path, value, ref,
                    f"Resolved reference '{ref}' -> '{resolved}' is not a GTS pattern",
                )
            pattern = resolved

        return self._match_value(value, pattern, field_path)

    def _match_value(self, value: str, pattern: str, field_path: str) -> Optional[XGtsRefIssue]:
        if not GtsID.is_valid(value):
            return XGtsRefIssue(field_path, value, pattern, f"Value '{value}' is not a valid GTS identifier")

        if pattern != "gts.*":
            prefix = pattern[:-1] if pattern.endswith("*") else pattern
            if not value.startswith(prefix):
                return XGtsRefIssue(
                    field_path, value, pattern, f"Value '{value}' does not match pattern '{pattern}'"
                )

        if self.store is not None and self.store.get(value) is None:
            return XGtsRefIssue(
                field_path, value, pattern, f"Referenced entity '{value}' not found in registry"
            )
        return None

    def _check_pattern(self, ref: Any, field_path: str, root: Dict[str, Any]) -> Optional[XGtsRefIssue]:
        if not isinstance(ref, str):
            return XGtsRefIssue(
                field_path, ref, "", f"x-gts-ref value must be a string, got {type(ref).__name__}"
            )

        if ref.startswith(GTS_PREFIX):
            if ref == "gts.*":
                return None
            if "*" in ref:
                if not ref.endswith("*") or ref.count("*") > 1:
                    return XGtsRefIssue(field_path, ref, ref, f"Invalid GTS wildcard pattern: {ref}")
                return None
            if not GtsID.is_valid(ref):
                return XGtsRefIssue(field_path, ref, ref, f"Invalid GTS identifier: {ref}")
            return None

        if ref.startswith("/"):
            resolved = resolve_pointer(root, ref)
            if resolved is None:
                return XGtsRefIssue(field_path, ref, ref, f"Cannot resolve reference path '{ref}'")
            # A pointer may land on an identifier or on a wildcard pattern
            if resolved.startswith(GTS_PREFIX) and self._check_pattern(resolved, field_path, root) is None:
                return None
            return XGtsRefIssue(
                field_path, ref, ref,
                f"Resolved reference '{ref}' -> '{resolved}' is not a valid GTS identifier",
            )

        return XGtsRefIssue(
            field_path, ref, ref, f"Invalid x-gts-ref value: '{ref}' must start with 'gts.' or '/'"
        )


def resolve_pointer(schema: Dict[str, Any], pointer: str, _seen: Optional[Set[str]] = None) -> Optional[str]:
    """Resolve a '/a/b' pointer inside a schema to a string.

    A pointer landing on a sub-schema that carries its own x-gts-ref
    resolves to that value, following further pointers. A '$id' reached
    this way loses its 'gts://' prefix.

    Returns:
        The resolved string, or None if the pointer leads nowhere or loops
    """
    seen = _seen if _seen is not None else set()
    if pointer in seen:
        return None
    seen.add(pointer)

    path = pointer.lstrip("/")
    if not path:
        return None

    current: Any = schema
    for part in path.split("/"):
        if not isinstance(current, dict) or current.get(part) is None:
            return None
        current = current[part]

    if isinstance(current, str):
        if current.startswith(GTS_URI_PREFIX):
            return current[len(GTS_URI_PREFIX):]
        if current.startswith("/"):
            return resolve_pointer(schema, current, seen)
        return current

    if isinstance(current, dict):
        ref = current.get(X_GTS_REF)
        if isinstance(ref, str):
            return resolve_pointer(schema, ref, seen) if ref.startswith("/") else ref

    return None


class RefValidator:
    """Validates the form of '$ref' values in a schema."""

    def validate_schema_refs(self, schema: Dict[str, Any], path: str = "") -> List[RefIssue]:
        issues: List[RefIssue] = []
        self._visit(schema, path, issues)
        return issues

    def _visit(self, schema: Dict[str, Any], path: str, issues: List[RefIssue]) -> None:
        for key, value in schema.items():
            nested = f"{path}/{key}" if path else key
            if key == "$ref":
                issue = check_ref_form(value, nested)
                if issue is not None:
                    issues.append(issue)
            elif isinstance(value, dict):
                self._visit(value, nested, issues)
            elif isinstance(value, list):
                for idx, item in enumerate(value):
                    if isinstance(item, dict):
                        self._visit(item, f"{nested}[{idx}]", issues)


def check_ref_form(ref: Any, field_path: str = "$ref") -> Optional[RefIssue]:
    """Check one '$ref' value.

    Accepted: local refs ('#...'), 'gts://' followed by a valid identifier,
    and bare valid identifiers.
    """
    if not isinstance(ref, str):
        return RefIssue(field_path, str(ref), f"$ref value must be a string, got {type(ref).__name__}")

    ref = ref.strip()
    if not ref:
        return RefIssue(field_path, ref, "$ref value cannot be empty")
    if ref.startswith("#"):
        return None
    if ref.startswith(GTS_URI_PREFIX):
        gts_id = ref[len(GTS_URI_PREFIX):].split("#", 1)[0]
        if not GtsID.is_valid(gts_id):
            return RefIssue(field_path, ref, f"contains invalid GTS identifier '{gts_id}'")
        return None
    if GtsID.is_valid(ref.split("#", 1)[0]):
        return None
    return RefIssue(field_path, ref, REF_FORM_REASON)
