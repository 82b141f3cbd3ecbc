"""
GTS Registry - identifiers, schemas and instances of the Global Type System.

This package provides:
- Identifier parsing, validation, UUID derivation and wildcard matching
- An in-memory entity store loaded from JSON files
- Query expressions over the store
- Schema compatibility checks and instance casting between versions
- JSON Schema validation with GTS references and x-gts-ref constraints
- Relationship graphs and attribute selectors
- CLI and HTTP front ends over one operation facade

Example:
    >>> from gts_registry import GtsID, GtsStore, GtsFileReader, cast
    >>>
    >>> gts_id = GtsID.parse("gts.x.core.events.type.v1~")
    >>> gts_id.is_type
    True
    >>> store = GtsStore(GtsFileReader(["./examples"]))
    >>> result = cast(store, "gts.x.core.events.type.v1.0~x.app.ev.created.v1",
    ...               "gts.x.core.events.type.v1.1~")

Invariants:
    - Registered content is never mutated by operations
    - Parse, match and query problems are reported in result values

Version: 0.1.0
"""

__version__ = "0.1.0"

from .attribute import AttributeResult, get_attribute
from .cast import CastResult, cast
from .compat import (
    CompatibilityReport,
    CompatMode,
    Direction,
    check_backward,
    check_compatibility,
    check_forward,
    check_schema_compatibility,
    infer_direction,
)
from .config import DEFAULT_CONFIG, GtsConfig, Settings, setup_logging
from .entity import ExtractIDResult, GtsReference, JsonEntity, JsonFile, extract_id
from .errors import (
    CastFromSchemaNotAllowedError,
    CompatibilityError,
    EntityNotFoundError,
    GtsError,
    InvalidGtsIDError,
    InvalidSegmentError,
    InvalidWildcardError,
    ReferenceResolutionError,
    RegistrationError,
    SchemaForInstanceNotFoundError,
    SchemaNotFoundError,
    ValidationFailedError,
)
from .graph import GraphNode, build_schema_graph
from .ids import ConcreteSegment, GtsID, WildcardSegment, is_valid_gts_id
from .match import GtsWildcard, MatchIDResult, match_id_pattern, wildcard_match
from .ops import GtsOps
from .query import QueryResult, query
from .reader import GtsFileReader, GtsMemoryReader, GtsReader
from .store import GtsStore, ListResult
from .validate import (
    JsonSchemaValidator,
    SchemaValidator,
    ValidationResult,
    validate_instance,
    validate_schema,
)

__all__ = [
    # Version
    "__version__",
    # Identifiers
    "GtsID",
    "ConcreteSegment",
    "WildcardSegment",
    "is_valid_gts_id",
    "GtsWildcard",
    "MatchIDResult",
    "match_id_pattern",
    "wildcard_match",
    # Entities and store
    "JsonEntity",
    "JsonFile",
    "GtsReference",
    "ExtractIDResult",
    "extract_id",
    "GtsReader",
    "GtsFileReader",
    "GtsMemoryReader",
    "GtsStore",
    "ListResult",
    # Operations
    "QueryResult",
    "query",
    "CompatibilityReport",
    "CompatMode",
    "Direction",
    "check_backward",
    "check_forward",
    "check_schema_compatibility",
    "check_compatibility",
    "infer_direction",
    "CastResult",
    "cast",
    "GraphNode",
    "build_schema_graph",
    "AttributeResult",
    "get_attribute",
    "SchemaValidator",
    "JsonSchemaValidator",
    "ValidationResult",
    "validate_instance",
    "validate_schema",
    "GtsOps",
    # Configuration
    "GtsConfig",
    "DEFAULT_CONFIG",
    "Settings",
    "setup_logging",
    # Errors
    "GtsError",
    "InvalidGtsIDError",
    "InvalidSegmentError",
    "InvalidWildcardError",
    "EntityNotFoundError",
    "SchemaNotFoundError",
    "SchemaForInstanceNotFoundError",
    "CastFromSchemaNotAllowedError",
    "CompatibilityError",
    "ReferenceResolutionError",
    "RegistrationError",
    "ValidationFailedError",
]
