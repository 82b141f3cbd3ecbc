"""
Attribute selectors: read one value out of a registered entity.

A selector is '<gts id>@<path>'. Path segments are separated by '.' or
'/', and list elements are addressed with '[n]' ('items[0].name',
'items/0/name').
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .store import GtsStore

logger = logging.getLogger(__name__)


@dataclass
class AttributeResult:
    """Outcome of resolving an attribute selector.

    Attributes:
        gts_id: Identifier part of the selector
        path: Path part of the selector
        value: Resolved value, None unless resolved
        resolved: Whether the full path was walked
        error: Why resolution stopped
        available_fields: Paths reachable from the node where it stopped
    """
    gts_id: str
    path: str
    value: Any = None
    resolved: bool = False
    error: str = ""
    available_fields: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"gts_id": self.gts_id, "path": self.path, "resolved": self.resolved}
        if self.resolved:
            data["value"] = self.value
        if self.error:
            data["error"] = self.error
        if self.available_fields:
            data["available_fields"] = self.available_fields
        return data


def split_selector(selector: str) -> Tuple[str, str]:
    gts_id, _, path = selector.partition("@")
    return gts_id, path


def parse_path(path: str) -> List[str]:
    """Split a path into keys and '[n]' index parts."""
    parts: List[str] = []
    for segment in path.replace("/", ".").split("."):
        if not segment:
            continue
        buf = ""
        i = 0
        while i < len(segment):
            if segment[i] == "[":
                close = segment.find("]", i + 1)
                if close == -1:
                    buf += segment[i:]
                    break
                if buf:
                    parts.append(buf)
                    buf = ""
                parts.append(segment[i:close + 1])
                i = close + 1
            else:
                buf += segment[i]
                i += 1
        if buf:
            parts.append(buf)
    return parts


def get_attribute(store: GtsStore, selector: str) -> AttributeResult:
    """Resolve '<gts id>@<path>' against the store."""
    gts_id, path = split_selector(selector)
    if not path:
        return AttributeResult(gts_id, "", error="Attribute selector requires '@path' in the identifier")

    entity = store.get(gts_id)
    if entity is None:
        return AttributeResult(gts_id, path, error=f"Entity not found: {gts_id}")

    return resolve_path(gts_id, path, entity.content)


def resolve_path(gts_id: str, path: str, content: Any) -> AttributeResult:
    result = AttributeResult(gts_id, path)
    current = content

    for part in parse_path(path):
        is_index = part.startswith("[") and part.endswith("]")

        if isinstance(current, dict):
            if is_index or part not in current:
                result.error = f"Path not found at segment '{part}' in '{path}', see available fields"
                result.available_fields = _fields_of(current, "")
                return result
            current = current[part]

        elif isinstance(current, list):
            raw = part[1:-1] if is_index else part
            try:
                idx = int(raw)
            except ValueError:
                result.error = f"Expected list index at segment '{part}'"
                result.available_fields = _fields_of(current, "")
                return result
            if idx < 0 or idx >= len(current):
                result.error = f"Index out of range at segment '{part}'"
                result.available_fields = _fields_of(current, "")
                return result
            current = current[idx]

        else:
            result.error = f"Cannot descend into {type(current).__name__} at segment '{part}'"
            return result

    result.value = current
    result.resolved = True
    return result


def _fields_of(node: Any, prefix: str) -> List[str]:
    fields: List[str] = []
    if isinstance(node, dict):
        items = [(f"{prefix}.{key}" if prefix else key, value) for key, value in node.items()]
    else:
        items = [(f"{prefix}[{idx}]", value) for idx, value in enumerate(node)]

    for path, value in items:
        fields.append(path)
        if isinstance(value, (dict, list)):
            fields.extend(_fields_of(value, path))
    return fields
