"""
Shared test data and helpers for unit tests.

The event fixtures model one schema lineage in two minor versions:
- v1.0: id, type, name (all required), closed to extra properties
- v1.1: adds optional 'priority' (default 'normal') and required
  'source' (default 'unknown')
and one instance of v1.0.
"""

from gts_registry.entity import JsonEntity
from gts_registry.store import GtsStore

SCHEMA_V10_ID = "gts.x.core.events.type.v1.0~"
SCHEMA_V11_ID = "gts.x.core.events.type.v1.1~"
INSTANCE_ID = "gts.x.core.events.type.v1.0~x.app.ev.created.v1"
DRAFT7 = "http://json-schema.org/draft-07/schema#"


def make_schema_v10():
    return {
        "$schema": DRAFT7,
        "$id": f"gts://{SCHEMA_V10_ID}",
        "type": "object",
        "required": ["id", "type", "name"],
        "properties": {
            "id": {"type": "string"},
            "type": {"type": "string", "const": SCHEMA_V10_ID},
            "name": {"type": "string"},
        },
        "additionalProperties": False,
    }


def make_schema_v11():
    return {
        "$schema": DRAFT7,
        "$id": f"gts://{SCHEMA_V11_ID}",
        "type": "object",
        "required": ["id", "type", "name", "source"],
        "properties": {
            "id": {"type": "string"},
            "type": {"type": "string", "const": SCHEMA_V11_ID},
            "name": {"type": "string"},
            "source": {"type": "string", "default": "unknown"},
            "priority": {"type": "string", "default": "normal"},
        },
        "additionalProperties": False,
    }


def make_instance(**overrides):
    content = {"id": INSTANCE_ID, "type": SCHEMA_V10_ID, "name": "created"}
    content.update(overrides)
    return content


def make_store(*contents):
    """Helper to create a store holding the given JSON documents."""
    store = GtsStore()
    for content in contents:
        store.register(JsonEntity.from_content(content))
    return store
