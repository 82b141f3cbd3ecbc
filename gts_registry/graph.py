"""
Relationship graph: which entities an entity references, transitively.

Each node lists the references found in the entity's content, keyed by the
JSON path they were found at, plus its governing schema as a separate
child. A single seen-set is shared by the whole build, so an identifier is
expanded at most once and cycles terminate: the second visit returns a
bare leaf.

Invariants:
    - Missing entities become node errors, the walk never aborts
    - Self references and JSON Schema meta-schema URLs are not followed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from .store import GtsStore, is_meta_schema_url

logger = logging.getLogger(__name__)


@dataclass
class GraphNode:
    """One entity in the relationship graph."""
    id: str
    refs: Dict[str, "GraphNode"] = field(default_factory=dict)
    schema_id: Optional["GraphNode"] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id}
        if self.refs:
            data["refs"] = {path: node.to_dict() for path, node in self.refs.items()}
        if self.schema_id is not None:
            data["schema_id"] = self.schema_id.to_dict()
        if self.errors:
            data["errors"] = list(self.errors)
        return data


def build_schema_graph(store: GtsStore, gts_id: str) -> GraphNode:
    """Build the relationship graph rooted at gts_id.

    Example:
        >>> graph = build_schema_graph(store, "gts.x.core.events.type.v1~x.app.ev.created.v1")
        >>> graph.schema_id.id
        'gts.x.core.events.type.v1~'
    """
    seen: Set[str] = set()
    node = _build_node(store, gts_id, seen)
    logger.debug(f"Built schema graph for {gts_id}: {len(seen)} entities visited")
    return node


def _build_node(store: GtsStore, gts_id: str, seen: Set[str]) -> GraphNode:
    node = GraphNode(id=gts_id)
    if gts_id in seen:
        return node
    seen.add(gts_id)

    entity = store.get(gts_id)
    if entity is None:
        node.errors.append("Entity not found")
        return node

    for ref in entity.gts_refs:
        if ref.id == gts_id or is_meta_schema_url(ref.id):
            continue
        node.refs[ref.source_path] = _build_node(store, ref.id, seen)

    if entity.schema_id:
        if not is_meta_schema_url(entity.schema_id):
            node.schema_id = _build_node(store, entity.schema_id, seen)
    elif not entity.is_schema:
        node.errors.append("Schema not recognized")

    return node
