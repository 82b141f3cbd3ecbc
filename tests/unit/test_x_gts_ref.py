"""
Unit tests for x-gts-ref and '$ref' form checks.

Tests cover:
- Instance values against absolute patterns and schema pointers
- Registry existence checks
- Schema-side x-gts-ref syntax
- Pointer resolution and loop detection
- '$ref' forms
"""

import pytest

from gts_registry.x_gts_ref import (
    REF_FORM_REASON,
    RefIssue,
    RefValidator,
    XGtsRefIssue,
    XGtsRefValidator,
    check_ref_form,
    resolve_pointer,
)
from tests.unit.helpers import SCHEMA_V10_ID

HOLDER_ID = "gts.x.test.refs.holder.v1~"


def make_holder_schema():
    """Helper schema exercising each x-gts-ref form."""
    return {
        "$id": f"gts://{HOLDER_ID}",
        "type": "object",
        "properties": {
            "kind": {"type": "string", "x-gts-ref": "gts.x.core.events.*"},
            "self_type": {"type": "string", "x-gts-ref": "/$id"},
            "any": {"type": "string", "x-gts-ref": "gts.*"},
            "kinds": {
                "type": "array",
                "items": {"type": "string", "x-gts-ref": "/properties/kind/x-gts-ref"},
            },
            "nested": {
                "type": "object",
                "properties": {"target": {"type": "string", "x-gts-ref": "/properties/kind"}},
            },
        },
    }


class TestValidateInstance:
    """Tests for instance values."""

    def test_all_forms_pass(self):
        """Every reference form accepts matching values."""
        instance = {
            "kind": "gts.x.core.events.type.v1~",
            "self_type": HOLDER_ID,
            "any": "gts.y.other.pkg.thing.v2~",
            "kinds": ["gts.x.core.events.type.v1~", "gts.x.core.events.audit.v1~"],
            "nested": {"target": "gts.x.core.events.type.v2~"},
        }

        assert XGtsRefValidator().validate_instance(instance, make_holder_schema()) == []

    def test_pattern_mismatch(self):
        """Values outside the pattern are reported."""
        issues = XGtsRefValidator().validate_instance(
            {"kind": "gts.x.other.events.type.v1~"}, make_holder_schema()
        )

        assert len(issues) == 1
        assert issues[0].field_path == "kind"
        assert issues[0].reason == (
            "Value 'gts.x.other.events.type.v1~' does not match pattern 'gts.x.core.events.*'"
        )

    def test_invalid_identifier_value(self):
        """Values must be valid identifiers."""
        issues = XGtsRefValidator().validate_instance({"any": "nope"}, make_holder_schema())
        assert issues[0].reason == "Value 'nope' is not a valid GTS identifier"

    def test_array_and_nested_paths(self):
        """Issues name array and nested paths."""
        instance = {
            "kinds": ["gts.x.core.events.type.v1~", "gts.x.core.audit.type.v1~"],
            "nested": {"target": "gts.x.core.audit.type.v1~"},
        }

        issues = XGtsRefValidator().validate_instance(instance, make_holder_schema())

        assert [i.field_path for i in issues] == ["kinds[1]", "nested.target"]

    def test_exact_pattern_without_wildcard(self):
        """A pattern without wildcard is a prefix check."""
        schema = {"type": "string", "x-gts-ref": "gts.x.core.events.type.v1~"}

        assert XGtsRefValidator().validate_instance("gts.x.core.events.type.v1~a.b.c.d.v1", schema) == []
        assert XGtsRefValidator().validate_instance("gts.x.core.events.type.v2~", schema)

    def test_registry_lookup(self, event_store):
        """With a store, referenced entities must exist."""
        schema = {"type": "object", "properties": {"kind": {"type": "string", "x-gts-ref": "gts.*"}}}
        validator = XGtsRefValidator(event_store)

        assert validator.validate_instance({"kind": SCHEMA_V10_ID}, schema) == []

        issues = validator.validate_instance({"kind": "gts.x.core.events.type.v9.0~"}, schema)
        assert issues[0].reason == "Referenced entity 'gts.x.core.events.type.v9.0~' not found in registry"

    def test_non_string_ref(self):
        """Non-string x-gts-ref values are reported."""
        issues = XGtsRefValidator().validate_instance("gts.x.a.b.c.v1~", {"type": "string", "x-gts-ref": 5})
        assert issues[0].reason == "x-gts-ref value must be a string, got int"

    def test_unresolvable_pointer(self):
        """Pointers leading nowhere are reported."""
        schema = {"type": "string", "x-gts-ref": "/properties/missing"}

        issues = XGtsRefValidator().validate_instance("gts.x.a.b.c.v1~", schema)
        assert issues[0].reason == "Cannot resolve reference path '/properties/missing'"

    def test_pointer_to_non_pattern(self):
        """Pointers must resolve to a pattern."""
        schema = make_holder_schema()
        schema["properties"]["kind"]["x-gts-ref"] = "/properties/kind/type"

        issues = XGtsRefValidator().validate_instance({"kind": "gts.x.a.b.c.v1~"}, schema)
        assert issues[0].reason == (
            "Resolved reference '/properties/kind/type' -> 'string' is not a GTS pattern"
        )

    def test_non_string_values_are_ignored(self):
        """Non-string values are not checked."""
        assert XGtsRefValidator().validate_instance({"kind": 5}, make_holder_schema()) == []

    def test_issue_str(self):
        """Issues render with field path and reason."""
        issue = XGtsRefIssue("a.b", "v", "gts.*", "bad")
        assert str(issue) == "x-gts-ref validation failed for field 'a.b': bad"


class TestValidateSchema:
    """Tests for schema-side syntax checks."""

    def test_valid_schema(self):
        """Every accepted form passes the syntax check."""
        assert XGtsRefValidator().validate_schema(make_holder_schema()) == []

    @pytest.mark.parametrize(
        "ref,reason",
        [
            ("core.events", "Invalid x-gts-ref value: 'core.events' must start with 'gts.' or '/'"),
            ("gts.x.*.y.*", "Invalid GTS wildcard pattern: gts.x.*.y.*"),
            ("gts.x.bad", "Invalid GTS identifier: gts.x.bad"),
            ("/properties/nowhere", "Cannot resolve reference path '/properties/nowhere'"),
            (
                "/properties/kind/type",
                "Resolved reference '/properties/kind/type' -> 'string' is not a valid GTS identifier",
            ),
            (["gts.*"], "x-gts-ref value must be a string, got list"),
        ],
    )
    def test_invalid_refs(self, ref, reason):
        schema = {"properties": {"kind": {"type": "string"}, "a": {"type": "string", "x-gts-ref": ref}}}

        issues = XGtsRefValidator().validate_schema(schema)

        assert len(issues) == 1
        assert issues[0].field_path == "properties/a/x-gts-ref"
        assert issues[0].reason == reason

    def test_pointer_to_wildcard_pattern(self):
        """A pointer resolving to a wildcard pattern is a valid reference."""
        schema = {
            "properties": {
                "kind": {"type": "string", "x-gts-ref": "gts.x.core.events.*"},
                "kinds": {"type": "array", "items": {"type": "string", "x-gts-ref": "/properties/kind/x-gts-ref"}},
                "other": {"type": "string", "x-gts-ref": "/properties/kind"},
            }
        }

        assert XGtsRefValidator().validate_schema(schema) == []

    def test_pointer_to_malformed_pattern(self):
        """A pointer resolving to a malformed pattern is still rejected."""
        schema = {
            "properties": {
                "kind": {"type": "string", "const": "gts.x.*.y.*"},
                "a": {"type": "string", "x-gts-ref": "/properties/kind/const"},
            }
        }

        issues = XGtsRefValidator().validate_schema(schema)

        assert [i.reason for i in issues] == [
            "Resolved reference '/properties/kind/const' -> 'gts.x.*.y.*' is not a valid GTS identifier"
        ]

    def test_pointer_to_id(self):
        """A pointer to $id is accepted."""
        schema = {"$id": "gts://gts.x.a.b.c.v1~", "properties": {"a": {"x-gts-ref": "/$id"}}}
        assert XGtsRefValidator().validate_schema(schema) == []

    def test_list_members_visited(self):
        """Schemas inside lists are checked."""
        schema = {"allOf": [{"properties": {"a": {"x-gts-ref": "bad"}}}]}

        issues = XGtsRefValidator().validate_schema(schema)
        assert issues[0].field_path == "allOf[0]/properties/a/x-gts-ref"


class TestResolvePointer:
    """Tests for resolve_pointer."""

    def test_id_drops_uri_prefix(self):
        """$id resolves without its gts:// prefix."""
        assert resolve_pointer({"$id": "gts://gts.x.a.b.c.v1~"}, "/$id") == "gts.x.a.b.c.v1~"

    def test_sub_schema_with_ref(self):
        """A sub-schema resolves to its own x-gts-ref."""
        assert resolve_pointer(make_holder_schema(), "/properties/kind") == "gts.x.core.events.*"

    def test_chain(self):
        """Pointer chains are followed."""
        schema = {"a": "/b", "b": {"x-gts-ref": "/c"}, "c": "gts.x.a.b.c.v1~"}
        assert resolve_pointer(schema, "/a") == "gts.x.a.b.c.v1~"

    def test_loop(self):
        """Pointer loops resolve to None."""
        assert resolve_pointer({"a": "/b", "b": "/a"}, "/a") is None

    def test_empty_and_missing(self):
        """Empty and missing pointers resolve to None."""
        assert resolve_pointer({"a": "x"}, "/") is None
        assert resolve_pointer({"a": "x"}, "/a/b") is None
        assert resolve_pointer({"a": {"b": 1}}, "/a/b") is None


class TestRefForm:
    """Tests for '$ref' form checks."""

    @pytest.mark.parametrize(
        "ref",
        ["#/$defs/item", "#", "gts://gts.x.a.b.c.v1~", "gts://gts.x.a.b.c.v1~#/$defs/x", "gts.x.a.b.c.v1~"],
    )
    def test_accepted(self, ref):
        assert check_ref_form(ref) is None

    @pytest.mark.parametrize(
        "ref,reason",
        [
            ("gts://gts.x.bad", "contains invalid GTS identifier 'gts.x.bad'"),
            ("", "$ref value cannot be empty"),
            ("  ", "$ref value cannot be empty"),
            (5, "$ref value must be a string, got int"),
            ("https://example.com/a.json", REF_FORM_REASON),
            ("other.json", REF_FORM_REASON),
        ],
    )
    def test_rejected(self, ref, reason):
        issue = check_ref_form(ref, "properties/a/$ref")

        assert isinstance(issue, RefIssue)
        assert issue.reason == reason
        assert str(issue) == f"$ref validation failed for field 'properties/a/$ref': {reason}"

    def test_validator_walks_schema(self):
        """Nested $ref values are checked with their path."""
        schema = {
            "$ref": "#/$defs/base",
            "$defs": {"base": {"properties": {"a": {"$ref": "a.json"}}}},
            "allOf": [{"$ref": "b.json"}],
        }

        issues = RefValidator().validate_schema_refs(schema)

        assert [i.field_path for i in issues] == ["$defs/base/properties/a/$ref", "allOf[0]/$ref"]
