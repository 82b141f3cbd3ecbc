"""
Entities: JSON documents with their extracted GTS identity.

An entity is built once from raw JSON content. Extraction decides:
- is_schema: the document declares '$schema' (or '$$schema')
- gts_id: the first configured identifier field holding a valid GTS ID
- schema_id: the governing schema, derived from the identifier chain when
  possible and from the configured schema fields otherwise
- gts_refs: every string anywhere in the document that is a GTS ID

Invariants:
    - Entities are immutable after construction
    - Only '$id' values may carry the 'gts://' URI prefix
    - References are unique per (id, path) pair
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Set, Tuple

from .config import DEFAULT_CONFIG, GtsConfig
from .ids import GTS_URI_PREFIX, GtsID, strip_uri_prefix


ROOT_PATH = "root"


@dataclass(frozen=True)
class JsonFile:
    """A JSON file holding one entity or a list of them."""
    path: str
    name: str
    content: Any = None


@dataclass(frozen=True)
class GtsReference:
    """A GTS identifier found inside an entity's content.

    Attributes:
        id: Referenced identifier
        source_path: Where it was found ('a.b', 'items[0]', or 'root')
    """
    id: str
    source_path: str


@dataclass(frozen=True)
class JsonEntity:
    """A JSON document plus its extracted identity.

    Attributes:
        content: Raw JSON object
        gts_id: Parsed identifier, None for anonymous instances
        schema_id: Identifier (or URL) of the governing schema
        selected_entity_field: Field the identifier was read from
        selected_schema_id_field: Field the schema identifier was read from
        is_schema: Document is a JSON Schema
        file: Source file, if loaded from disk
        list_sequence: Position in a file holding a list of entities
        label: Display label
        description: Content 'description', if any
        gts_refs: Embedded identifier references
    """
    content: Dict[str, Any]
    gts_id: Optional[GtsID] = None
    schema_id: Optional[str] = None
    selected_entity_field: Optional[str] = None
    selected_schema_id_field: Optional[str] = None
    is_schema: bool = False
    file: Optional[JsonFile] = None
    list_sequence: Optional[int] = None
    label: str = ""
    description: str = ""
    gts_refs: Tuple[GtsReference, ...] = field(default=())

    @classmethod
    def from_content(
        cls,
        content: Dict[str, Any],
        config: Optional[GtsConfig] = None,
        file: Optional[JsonFile] = None,
        list_sequence: Optional[int] = None,
    ) -> "JsonEntity":
        """Build an entity from a JSON object.

        Args:
            content: JSON object
            config: Identifier field configuration
            file: Source file, if any
            list_sequence: Index within a list-shaped file

        Returns:
            The extracted entity
        """
        config = config or DEFAULT_CONFIG
        content = content if isinstance(content, dict) else {}
        is_schema = _is_json_schema(content)

        entity_field, entity_value = _first_non_empty_field(content, config.entity_id_fields)
        schema_field, schema_id = _calc_schema_id(
            content, config, is_schema, entity_field, entity_value
        )

        gts_id = None
        if entity_value and GtsID.is_valid(entity_value):
            gts_id = GtsID.parse(entity_value)

        if file is not None and list_sequence is not None:
            label = f"{file.name}#{list_sequence}"
        elif file is not None:
            label = file.name
        elif gts_id is not None:
            label = gts_id.id
        else:
            label = ""

        description = content.get("description")

        return cls(
            content=content,
            gts_id=gts_id,
            schema_id=schema_id,
            selected_entity_field=entity_field,
            selected_schema_id_field=schema_field,
            is_schema=is_schema,
            file=file,
            list_sequence=list_sequence,
            label=label,
            description=description if isinstance(description, str) else "",
            gts_refs=tuple(extract_gts_references(content)),
        )

    @property
    def id(self) -> Optional[str]:
        return self.gts_id.id if self.gts_id else None

    def to_dict(self) -> Dict[str, Any]:
        """Summary used by list endpoints."""
        return {
            "id": self.id,
            "schema_id": self.schema_id,
            "is_schema": self.is_schema,
        }


@dataclass
class ExtractIDResult:
    """Identity information extracted from raw JSON content."""
    id: str
    schema_id: Optional[str]
    selected_entity_field: Optional[str]
    selected_schema_id_field: Optional[str]
    is_schema: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def extract_id(content: Dict[str, Any], config: Optional[GtsConfig] = None) -> ExtractIDResult:
    """Extract identity information from JSON content.

    Schemas and well-known instances report their GTS ID; anonymous
    instances report the raw value of whichever identifier field was
    selected (typically a UUID).
    """
    entity = JsonEntity.from_content(content, config)

    if entity.gts_id is not None:
        effective_id = entity.gts_id.id
    elif not entity.is_schema and entity.selected_entity_field:
        raw = entity.content.get(entity.selected_entity_field)
        effective_id = raw if isinstance(raw, str) else ""
    else:
        effective_id = ""

    return ExtractIDResult(
        id=effective_id,
        schema_id=entity.schema_id,
        selected_entity_field=entity.selected_entity_field,
        selected_schema_id_field=entity.selected_schema_id_field,
        is_schema=entity.is_schema,
    )


def extract_gts_references(content: Any) -> List[GtsReference]:
    """Collect every GTS ID string in a JSON document, keyed by path."""
    refs: List[GtsReference] = []
    _walk_refs(content, "", refs, set())
    return refs


def _walk_refs(node: Any, path: str, refs: List[GtsReference], seen: Set[Tuple[str, str]]) -> None:
    if isinstance(node, str):
        value = strip_uri_prefix(node)
        if GtsID.is_valid(value):
            key = (value, path or ROOT_PATH)
            if key not in seen:
                seen.add(key)
                refs.append(GtsReference(*key))
    elif isinstance(node, dict):
        for key, child in node.items():
            _walk_refs(child, f"{path}.{key}" if path else key, refs, seen)
    elif isinstance(node, list):
        for idx, child in enumerate(node):
            _walk_refs(child, f"{path}[{idx}]", refs, seen)


def _is_json_schema(content: Dict[str, Any]) -> bool:
    return "$schema" in content or "$$schema" in content


def _field_value(content: Dict[str, Any], name: str) -> Optional[str]:
    value = content.get(name)
    if not isinstance(value, str):
        return None
    value = value.strip()
    if name == "$id" and value.startswith(GTS_URI_PREFIX):
        value = value[len(GTS_URI_PREFIX):]
    return value or None


def _first_non_empty_field(
    content: Dict[str, Any], fields: Tuple[str, ...]
) -> Tuple[Optional[str], Optional[str]]:
    """Pick a field, preferring values that are valid GTS IDs."""
    for name in fields:
        value = _field_value(content, name)
        if value and GtsID.is_valid(value):
            return name, value
    for name in fields:
        value = _field_value(content, name)
        if value:
            return name, value
    return None, None


def _calc_schema_id(
    content: Dict[str, Any],
    config: GtsConfig,
    is_schema: bool,
    entity_field: Optional[str],
    entity_value: Optional[str],
) -> Tuple[Optional[str], Optional[str]]:
    valid_id = bool(entity_value) and GtsID.is_valid(entity_value)

    if is_schema:
        # Derived schema: the parent is the first segment of the chain
        if valid_id and entity_value.endswith("~") and entity_value.count("~") >= 2:
            return entity_field, entity_value[: entity_value.index("~") + 1]
        schema_value = _field_value(content, "$schema")
        if schema_value:
            return "$schema", schema_value
        return None, None

    if valid_id and not entity_value.endswith("~"):
        return entity_field, entity_value[: entity_value.rindex("~") + 1]

    return _first_non_empty_field(content, config.schema_id_fields)
