"""
Unit tests for the cast engine.

Tests cover:
- Upcast with defaults and discriminator rewrite
- Downcast dropping properties unknown to the older version
- Nested objects and arrays of objects
- Missing required properties without defaults
- Preconditions that raise
"""

import pytest

from gts_registry.cast import CastResult, cast, cast_object
from gts_registry.compat import Direction
from gts_registry.errors import (
    CastFromSchemaNotAllowedError,
    EntityNotFoundError,
    SchemaNotFoundError,
)
from tests.unit.helpers import (
    DRAFT7,
    INSTANCE_ID,
    SCHEMA_V10_ID,
    SCHEMA_V11_ID,
    make_instance,
    make_schema_v10,
    make_schema_v11,
    make_store,
)

ORDER_V10_ID = "gts.x.test.cast.order.v1.0~"
ORDER_V11_ID = "gts.x.test.cast.order.v1.1~"
ORDER_ID = "gts.x.test.cast.order.v1.0~x.shop.orders.order.v1"


def make_order_store():
    """Store with a nested order schema in two versions and one v1.0 order."""
    v10 = {
        "$schema": DRAFT7,
        "$id": f"gts://{ORDER_V10_ID}",
        "type": "object",
        "properties": {
            "id": {"type": "string"},
            "meta": {"type": "object", "properties": {"region": {"type": "string"}}},
            "lines": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {"sku": {"type": "string"}, "note": {"type": "string"}},
                },
            },
        },
    }
    v11 = {
        "$schema": DRAFT7,
        "$id": f"gts://{ORDER_V11_ID}",
        "type": "object",
        "properties": {
            "id": {"type": "string"},
            "meta": {
                "type": "object",
                "properties": {
                    "region": {"type": "string"},
                    "currency": {"type": "string", "default": "EUR"},
                },
            },
            "lines": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {"sku": {"type": "string"}, "qty": {"type": "integer", "default": 1}},
                    "additionalProperties": False,
                },
            },
        },
    }
    order = {
        "id": ORDER_ID,
        "meta": {"region": "eu"},
        "lines": [{"sku": "a", "note": "gift"}, {"sku": "b"}],
    }
    return make_store(v10, v11, order)


class TestUpcast:
    """Tests for casting to a newer minor version."""

    def test_defaults_and_discriminator(self, event_store):
        """Upcasting fills defaults and rewrites the type field."""
        result = cast(event_store, INSTANCE_ID, SCHEMA_V11_ID)

        assert isinstance(result, CastResult)
        assert result.direction is Direction.UP
        assert result.from_id == INSTANCE_ID
        assert result.to_id == SCHEMA_V11_ID
        assert result.old_id == SCHEMA_V10_ID
        assert result.new_id == SCHEMA_V11_ID
        assert result.casted_entity == {
            "id": INSTANCE_ID,
            "type": SCHEMA_V11_ID,
            "name": "created",
            "source": "unknown",
            "priority": "normal",
        }
        assert result.added_properties == ["priority", "source"]
        assert result.removed_properties == []
        assert result.conforms is True

    def test_schema_level_incompatibility_is_reported(self, event_store):
        """The new required 'source' makes the versions backward incompatible."""
        result = cast(event_store, INSTANCE_ID, SCHEMA_V11_ID)

        assert result.is_backward_compatible is False
        assert result.is_forward_compatible is True
        assert result.is_fully_compatible is False
        assert result.incompatibility_reasons == ["Added required properties: source"]

    def test_registered_content_is_not_mutated(self, event_store):
        """Casting works on a copy of the stored instance."""
        cast(event_store, INSTANCE_ID, SCHEMA_V11_ID)
        assert event_store.get(INSTANCE_ID).content == make_instance()

    def test_to_dict_includes_casted_entity(self, event_store):
        """Serialized results include the cast content."""
        data = cast(event_store, INSTANCE_ID, SCHEMA_V11_ID).to_dict()

        assert data["direction"] == "up"
        assert data["casted_entity"]["source"] == "unknown"
        assert data["is_fully_compatible"] is False


class TestSameVersion:
    """Tests for casting to the instance's own schema."""

    def test_cast_is_identity(self, event_store):
        """Casting to the instance's own schema changes nothing."""
        result = cast(event_store, INSTANCE_ID, SCHEMA_V10_ID)

        assert result.direction is Direction.NONE
        assert result.casted_entity == make_instance()
        assert result.added_properties == []
        assert result.removed_properties == []
        assert result.is_fully_compatible is True


class TestDowncast:
    """Tests for casting to an older minor version."""

    def test_unknown_properties_are_dropped(self):
        """Downcasting drops properties the target disallows."""
        instance_id = "gts.x.core.events.type.v1.1~x.app.ev.updated.v1"
        store = make_store(
            make_schema_v10(),
            make_schema_v11(),
            {
                "id": instance_id,
                "type": SCHEMA_V11_ID,
                "name": "updated",
                "source": "api",
                "priority": "high",
            },
        )

        result = cast(store, instance_id, SCHEMA_V10_ID)

        assert result.direction is Direction.DOWN
        assert result.old_id == SCHEMA_V10_ID
        assert result.new_id == SCHEMA_V11_ID
        assert result.casted_entity == {"id": instance_id, "type": SCHEMA_V10_ID, "name": "updated"}
        assert result.removed_properties == ["priority", "source"]
        assert result.conforms is True


class TestNested:
    """Tests for nested objects and arrays of objects."""

    def test_nested_paths(self):
        """Added and removed paths are reported inside nested objects and arrays."""
        result = cast(make_order_store(), ORDER_ID, ORDER_V11_ID)

        assert result.casted_entity == {
            "id": ORDER_ID,
            "meta": {"region": "eu", "currency": "EUR"},
            "lines": [{"sku": "a", "qty": 1}, {"sku": "b", "qty": 1}],
        }
        assert result.added_properties == ["lines[0].qty", "lines[1].qty", "meta.currency"]
        assert result.removed_properties == ["lines[0].note"]
        assert result.is_fully_compatible is True


class TestMissingRequired:
    """Tests for required properties the cast cannot fill."""

    def test_reason_and_non_conformance(self):
        """A required property without default leaves the result non-conformant."""
        target_id = "gts.x.core.events.type.v1.2~"
        target = make_schema_v10()
        target["$id"] = f"gts://{target_id}"
        target["properties"]["owner"] = {"type": "string"}
        target["required"] = ["id", "type", "name", "owner"]
        store = make_store(make_schema_v10(), target, make_instance())

        result = cast(store, INSTANCE_ID, target_id)

        assert "owner" not in result.casted_entity
        assert result.conforms is False
        assert "Missing required property 'owner' and no default is defined" in result.incompatibility_reasons
        assert any(r.startswith("validation error:") for r in result.incompatibility_reasons)
        assert result.is_fully_compatible is False


class TestCastObject:
    """Tests for the per-object transform."""

    def test_required_without_property_schema(self):
        """Required names without a property schema are skipped."""
        schema = {"properties": {}, "required": ["ghost"]}

        casted, added, removed, reasons = cast_object({}, schema, "root")

        assert casted == {}
        assert added == []
        assert reasons == ["Missing required property 'root.ghost' and no default is defined"]

    def test_non_identifier_const_is_left_alone(self):
        """Only identifier constants are rewritten."""
        schema = {"properties": {"kind": {"type": "string", "const": "a"}}, "required": []}

        casted, _, _, _ = cast_object({"kind": "b"}, schema, "")
        assert casted == {"kind": "b"}

    def test_defaults_are_copied(self):
        """Filled defaults do not alias the schema."""
        default = {"nested": []}
        schema = {"properties": {"opts": {"type": "object", "default": default}}, "required": []}

        casted, added, _, _ = cast_object({}, schema, "")
        casted["opts"]["nested"].append(1)

        assert added == ["opts"]
        assert default == {"nested": []}


class TestPreconditions:
    """Tests for cast errors that raise."""

    def test_unknown_instance(self, event_store):
        """Casting an unknown instance raises."""
        with pytest.raises(EntityNotFoundError):
            cast(event_store, "gts.x.core.events.type.v1.0~x.app.ev.missing.v1", SCHEMA_V11_ID)

    def test_unknown_target(self, event_store):
        """Casting to an unknown schema raises."""
        with pytest.raises(SchemaNotFoundError, match="gts.x.core.events.type.v9.0~"):
            cast(event_store, INSTANCE_ID, "gts.x.core.events.type.v9.0~")

    def test_cast_from_schema(self, event_store):
        """Casting from a schema raises."""
        with pytest.raises(CastFromSchemaNotAllowedError, match="must be an instance"):
            cast(event_store, SCHEMA_V10_ID, SCHEMA_V11_ID)

    def test_unregistered_source_schema(self):
        """An instance whose schema is missing cannot be cast."""
        store = make_store(make_schema_v11(), make_instance())

        with pytest.raises(SchemaNotFoundError, match=SCHEMA_V10_ID.replace(".", r"\.")):
            cast(store, INSTANCE_ID, SCHEMA_V11_ID)
