"""
Unit tests for schema compatibility checking.

Tests cover:
- Backward and forward rules for required properties, enums and bounds
- Type changes and nested object/array comparison
- allOf flattening
- Minor-version direction
- Reports built from registered schemas
"""

import pytest

from gts_registry.compat import (
    CompatMode,
    Direction,
    build_report,
    check_backward,
    check_compatibility,
    check_forward,
    flatten_schema,
    format_number,
    infer_direction,
    require_compatible,
)
from gts_registry.errors import CompatibilityError
from tests.unit.helpers import SCHEMA_V10_ID, SCHEMA_V11_ID


def obj(properties, required=None, **extra):
    """Helper to build an object schema."""
    schema = {"type": "object", "properties": properties}
    if required is not None:
        schema["required"] = required
    schema.update(extra)
    return schema


class TestRequiredProperties:
    """Tests for required property changes."""

    def test_added_required_breaks_backward_only(self):
        """A new required field rejects old data but old readers accept new data."""
        old = obj({"eventId": {"type": "string"}}, ["eventId"])
        new = obj(
            {"eventId": {"type": "string"}, "newRequiredField": {"type": "string"}},
            ["eventId", "newRequiredField"],
        )

        ok_back, back_errors = check_backward(old, new)
        ok_fwd, fwd_errors = check_forward(old, new)

        assert not ok_back
        assert back_errors == ["Added required properties: newRequiredField"]
        assert ok_fwd
        assert fwd_errors == []

    def test_removed_required_breaks_forward_only(self):
        """Dropping a required property breaks forward compatibility only."""
        old = obj({"a": {"type": "string"}, "b": {"type": "string"}}, ["a", "b"])
        new = obj({"a": {"type": "string"}, "b": {"type": "string"}}, ["a"])

        assert check_backward(old, new) == (True, [])
        assert check_forward(old, new) == (False, ["Removed required properties: b"])

    def test_names_are_sorted(self):
        """Property names in messages are sorted."""
        old = obj({}, [])
        new = obj({}, ["zeta", "alpha"])

        _, errors = check_backward(old, new)
        assert errors == ["Added required properties: alpha, zeta"]

    def test_identical_schemas(self):
        """Identical schemas are fully compatible."""
        schema = obj({"a": {"type": "integer", "minimum": 0}}, ["a"])

        assert check_backward(schema, schema) == (True, [])
        assert check_forward(schema, schema) == (True, [])


class TestPropertyChanges:
    """Tests for per-property rules."""

    def test_type_change_breaks_both(self):
        """A type change breaks both directions."""
        old = obj({"count": {"type": "integer"}})
        new = obj({"count": {"type": "string"}})

        expected = ["Property 'count' type changed from integer to string"]
        assert check_backward(old, new) == (False, expected)
        assert check_forward(old, new) == (False, expected)

    def test_enum_growth_breaks_backward(self):
        """Adding enum values breaks backward compatibility."""
        old = obj({"s": {"type": "string", "enum": ["a", "b"]}})
        new = obj({"s": {"type": "string", "enum": ["a", "b", "c"]}})

        assert check_backward(old, new) == (False, ["Property 's' added enum values: c"])
        assert check_forward(old, new) == (True, [])

    def test_enum_shrink_breaks_forward(self):
        """Removing enum values breaks forward compatibility."""
        old = obj({"s": {"type": "string", "enum": ["a", "b"]}})
        new = obj({"s": {"type": "string", "enum": ["a"]}})

        assert check_backward(old, new) == (True, [])
        assert check_forward(old, new) == (False, ["Property 's' removed enum values: b"])

    def test_tightened_bounds_break_backward(self):
        """Tighter bounds break backward compatibility."""
        old = obj({"name": {"type": "string", "minLength": 1}})
        new = obj({"name": {"type": "string", "minLength": 2, "maxLength": 5}})

        ok, errors = check_backward(old, new)

        assert not ok
        assert errors == [
            "Property 'name' minLength increased from 1 to 2",
            "Property 'name' added maxLength constraint: 5",
        ]
        assert check_forward(old, new) == (True, [])

    def test_relaxed_bounds_break_forward(self):
        """Looser bounds break forward compatibility."""
        old = obj({"n": {"type": "number", "minimum": 0, "maximum": 10.5}})
        new = obj({"n": {"type": "number", "maximum": 20}})

        ok, errors = check_forward(old, new)

        assert not ok
        assert errors == [
            "Property 'n' removed minimum constraint",
            "Property 'n' maximum increased from 10.5 to 20",
        ]
        assert check_backward(old, new) == (True, [])

    def test_nested_object_violations_are_prefixed(self):
        """Nested object violations name the parent property."""
        old = obj({"meta": obj({"k": {"type": "string"}}, [])})
        new = obj({"meta": obj({"k": {"type": "string"}}, ["k"])})

        _, errors = check_backward(old, new)
        assert errors == ["Property 'meta': Added required properties: k"]

    def test_array_item_violations_are_prefixed(self):
        """Array item violations name the array property."""
        old = obj({"tags": {"type": "array", "items": obj({"v": {"type": "integer"}})}})
        new = obj({"tags": {"type": "array", "items": obj({"v": {"type": "string"}})}})

        _, errors = check_forward(old, new)
        assert errors == ["Property 'tags' array items: Property 'v' type changed from integer to string"]

    def test_optional_property_addition_is_compatible(self):
        """An optional property addition breaks nothing."""
        old = obj({"a": {"type": "string"}}, ["a"])
        new = obj({"a": {"type": "string"}, "b": {"type": "string"}}, ["a"])

        assert check_backward(old, new) == (True, [])
        assert check_forward(old, new) == (True, [])


class TestFlatten:
    """Tests for allOf flattening."""

    def test_all_of_is_merged(self):
        """allOf branches merge into one schema."""
        schema = {
            "allOf": [
                obj({"a": {"type": "string"}}, ["a"], additionalProperties=True),
                obj({"b": {"type": "integer"}}, ["b"]),
            ],
            "additionalProperties": False,
        }

        flat = flatten_schema(schema)

        assert set(flat["properties"]) == {"a", "b"}
        assert flat["required"] == ["a", "b"]
        assert flat["additionalProperties"] is False

    def test_flatten_does_not_mutate_input(self):
        """Flattening leaves the input untouched."""
        base = obj({"a": {"type": "string"}}, ["a"])
        schema = {"allOf": [base], "properties": {"b": {"type": "string"}}}

        flatten_schema(schema)

        assert base["required"] == ["a"]
        assert set(base["properties"]) == {"a"}

    def test_required_through_all_of_is_compared(self):
        """Required lists inside allOf are compared."""
        old = {"allOf": [obj({"a": {"type": "string"}}, ["a"])]}
        new = {"allOf": [obj({"a": {"type": "string"}}, [])]}

        assert check_forward(old, new) == (False, ["Removed required properties: a"])


class TestDirection:
    """Tests for minor-version direction."""

    @pytest.mark.parametrize(
        "from_id,to_id,expected",
        [
            ("gts.x.a.b.c.v1.0~", "gts.x.a.b.c.v1.1~", Direction.UP),
            ("gts.x.a.b.c.v1.2~", "gts.x.a.b.c.v1.1~", Direction.DOWN),
            ("gts.x.a.b.c.v1.1~", "gts.x.a.b.c.v1.1~", Direction.NONE),
            ("gts.x.a.b.c.v1~", "gts.x.a.b.c.v1.1~", Direction.UNKNOWN),
            ("not-an-id", "gts.x.a.b.c.v1.1~", Direction.UNKNOWN),
        ],
    )
    def test_infer_direction(self, from_id, to_id, expected):
        """Direction follows the version order."""
        assert infer_direction(from_id, to_id) is expected


class TestRequireCompatible:
    """Tests for the raising helper."""

    def test_raises_with_violations(self):
        """Violations are raised together."""
        old = obj({"a": {"type": "string"}})
        new = obj({"a": {"type": "string"}}, ["a"])

        with pytest.raises(CompatibilityError, match="backward compatibility check failed") as exc_info:
            require_compatible(old, new, CompatMode.BACKWARD)

        assert exc_info.value.violations == ["Added required properties: a"]

    def test_compatible_does_not_raise(self):
        """Compatible schemas pass silently."""
        schema = obj({"a": {"type": "string"}})
        require_compatible(schema, schema)


class TestReports:
    """Tests for full compatibility reports."""

    def test_report_from_store(self, event_store):
        """A report compares two registered schemas."""
        report = check_compatibility(event_store, SCHEMA_V10_ID, SCHEMA_V11_ID)

        assert report.direction is Direction.UP
        assert report.is_backward_compatible is False
        assert report.is_forward_compatible is True
        assert report.is_fully_compatible is False
        assert report.backward_errors == ["Added required properties: source"]
        assert report.added_properties == ["priority", "source"]
        assert report.removed_properties == []
        assert report.changed_properties == [
            {"property": "type", "old_type": "string", "new_type": "string"}
        ]

    def test_report_to_dict(self, event_store):
        """Serialized reports keep every field."""
        data = check_compatibility(event_store, SCHEMA_V10_ID, SCHEMA_V11_ID).to_dict()

        assert data["from"] == SCHEMA_V10_ID
        assert data["to"] == SCHEMA_V11_ID
        assert data["old"] == SCHEMA_V10_ID
        assert data["new"] == SCHEMA_V11_ID
        assert data["direction"] == "up"
        assert data["is_fully_compatible"] is False
        assert data["incompatibility_reasons"] == ["Added required properties: source"]

    def test_missing_schema(self, event_store):
        """A missing schema raises."""
        report = check_compatibility(event_store, SCHEMA_V10_ID, "gts.x.core.events.type.v9.0~")

        assert report.direction is Direction.UNKNOWN
        assert report.backward_errors == ["Schema not found"]
        assert report.forward_errors == ["Schema not found"]
        assert not report.is_fully_compatible

    def test_reasons_are_deduplicated(self):
        """Repeated reasons appear once."""
        old = obj({"a": {"type": "integer"}})
        new = obj({"a": {"type": "string"}})

        report = build_report("gts.x.a.b.c.v1.0~", "gts.x.a.b.c.v1.1~", old, new)

        assert report.incompatibility_reasons == ["Property 'a' type changed from integer to string"]
        assert report.changed_properties == [
            {"property": "a", "old_type": "integer", "new_type": "string"}
        ]

    def test_nested_added_properties_use_dotted_paths(self):
        """Nested additions use dotted paths."""
        old = obj({"meta": obj({"a": {"type": "string"}})})
        new = obj({"meta": obj({"a": {"type": "string"}, "b": {"type": "string"}})})

        report = build_report("gts.x.a.b.c.v1.0~", "gts.x.a.b.c.v1.1~", old, new)
        assert report.added_properties == ["meta.b"]


class TestFormatNumber:
    def test_format(self):
        """Integral floats print without a fraction."""
        assert format_number(3.0) == "3"
        assert format_number(2.5) == "2.5"
