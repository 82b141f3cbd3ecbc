"""
Operation facade shared by the CLI and the HTTP server.

GtsOps owns a store and exposes one method per front-end operation. Every
method returns a result dataclass with to_dict(); invalid user input is
reported inside the result, never raised.

Invariants:
    - Query limits are clamped to 1..settings.max_query_limit
    - Schemas are checked for x-gts-ref syntax before registration

How to change safely:
    - Keep result keys stable, both front ends serialize them verbatim
    - New operations need a CLI subcommand and an HTTP route

Example:
    >>> ops = GtsOps(Settings(paths=["./examples"]))
    >>> ops.validate_id("gts.x.core.events.type.v1~").valid
    True
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .attribute import AttributeResult, get_attribute
from .cast import CastResult, cast as cast_instance
from .compat import CompatibilityReport, check_compatibility
from .config import DEFAULT_CONFIG, GtsConfig, Settings
from .entity import ExtractIDResult, JsonEntity, extract_id
from .errors import GtsError, InvalidGtsIDError
from .graph import GraphNode, build_schema_graph
from .ids import GtsID
from .match import MatchIDResult, match_id_pattern
from .query import QueryResult, query as run_query
from .reader import GtsFileReader
from .store import GtsStore, ListResult
from .validate import ValidationResult, validate_instance as check_instance, validate_schema as check_schema
from .x_gts_ref import XGtsRefValidator

logger = logging.getLogger(__name__)


@dataclass
class IDValidationResult:
    id: str
    valid: bool
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "valid": self.valid, "error": self.error}


@dataclass
class ParseIDResult:
    """Decomposition of an identifier into its segments."""
    id: str
    ok: bool
    segments: List[Dict[str, Any]] = field(default_factory=list)
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "ok": self.ok, "segments": self.segments, "error": self.error}


@dataclass
class UUIDResult:
    id: str
    uuid: str = ""
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "uuid": self.uuid, "error": self.error}


@dataclass
class AddEntityResult:
    ok: bool
    gts_id: str = ""
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"ok": True, "gts_id": self.gts_id}
        return {"ok": False, "error": self.error}


@dataclass
class AddEntitiesResult:
    """Per-item outcome of a bulk registration."""
    results: List[AddEntityResult] = field(default_factory=list)

    @property
    def count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def ok(self) -> bool:
        return self.count == len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "count": self.count,
            "total": len(self.results),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class AddSchemaResult:
    ok: bool
    type_id: str
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ok": self.ok, "type_id": self.type_id}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class EntityResult:
    id: str
    content: Optional[Dict[str, Any]] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.content is not None

    def to_dict(self) -> Dict[str, Any]:
        if self.error:
            return {"error": self.error}
        return {"id": self.id, "content": self.content}


@dataclass
class OpError:
    """An operation rejected before producing its regular result."""
    error: str
    code: str = ""

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error}


@dataclass
class ReloadResult:
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": True, "count": self.count}


class GtsOps:
    """Front-end operations over one store.

    Args:
        settings: Runtime settings, loaded from the environment when omitted
        store: Store to operate on; when omitted one is built from
            settings.paths
        config: Identifier field configuration for new entities
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[GtsStore] = None,
        config: Optional[GtsConfig] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.config = config or DEFAULT_CONFIG
        if store is None:
            reader = GtsFileReader(self.settings.paths, self.config) if self.settings.paths else None
            store = GtsStore(reader, validate_refs=self.settings.validate_refs)
        self.store = store

    # -- identifiers -------------------------------------------------------

    def validate_id(self, gts_id: str) -> IDValidationResult:
        try:
            GtsID.parse(gts_id)
        except InvalidGtsIDError as e:
            return IDValidationResult(gts_id, False, str(e))
        return IDValidationResult(gts_id, True)

    def parse_id(self, gts_id: str) -> ParseIDResult:
        try:
            parsed = GtsID.parse(gts_id)
        except InvalidGtsIDError as e:
            return ParseIDResult(gts_id, False, error=str(e))
        return ParseIDResult(gts_id, True, [seg.to_dict() for seg in parsed.segments])

    def match_id_pattern(self, candidate: str, pattern: str) -> MatchIDResult:
        return match_id_pattern(candidate, pattern)

    def id_to_uuid(self, gts_id: str) -> UUIDResult:
        try:
            parsed = GtsID.parse(gts_id)
        except InvalidGtsIDError as e:
            return UUIDResult(gts_id, error=str(e))
        return UUIDResult(gts_id, str(parsed.to_uuid()))

    def extract_id(self, content: Dict[str, Any]) -> ExtractIDResult:
        return extract_id(content, self.config)

    # -- registration ------------------------------------------------------

    def add_entity(self, content: Dict[str, Any], validate_instance: bool = False) -> AddEntityResult:
        """Register one entity.

        Schemas must have well-formed x-gts-ref values. With
        validate_instance, an instance is validated right after it is
        registered.
        """
        if not isinstance(content, dict):
            return AddEntityResult(False, error="Entity content must be a JSON object")

        entity = JsonEntity.from_content(content, self.config)
        if entity.gts_id is None:
            return AddEntityResult(False, error="Unable to extract GTS ID from entity")

        if entity.is_schema:
            issues = XGtsRefValidator(self.store).validate_schema(entity.content)
            if issues:
                return AddEntityResult(
                    False, error="Validation failed: " + "; ".join(str(i) for i in issues)
                )

        try:
            self.store.register(entity)
        except GtsError as e:
            return AddEntityResult(False, error=str(e))

        if validate_instance and not entity.is_schema:
            result = check_instance(self.store, entity.gts_id.id)
            if not result.ok:
                return AddEntityResult(False, error=result.error)

        return AddEntityResult(True, entity.gts_id.id)

    def add_entities(self, contents: List[Dict[str, Any]]) -> AddEntitiesResult:
        result = AddEntitiesResult([self.add_entity(content) for content in contents])
        logger.info(f"Bulk registration: {result.count}/{len(result.results)} entities")
        return result

    def add_schema(self, type_id: str, schema: Dict[str, Any]) -> AddSchemaResult:
        try:
            self.store.register_schema(type_id, schema)
        except GtsError as e:
            return AddSchemaResult(False, type_id, str(e))
        return AddSchemaResult(True, type_id)

    def reload(self) -> ReloadResult:
        return ReloadResult(self.store.reload())

    # -- lookup ------------------------------------------------------------

    def get_entity(self, gts_id: str) -> EntityResult:
        entity = self.store.get(gts_id)
        if entity is None:
            return EntityResult(gts_id, error=f"Entity not found: {gts_id}")
        return EntityResult(entity.id or gts_id, entity.content)

    def list_entities(self, limit: Optional[int] = None) -> ListResult:
        return self.store.list(self._clamp_limit(limit))

    def query(self, expr: str, limit: Optional[int] = None) -> QueryResult:
        return run_query(
            self.store,
            expr,
            self._clamp_limit(limit),
            allow_type_filters=self.settings.allow_type_filters,
        )

    def attr(self, selector: str) -> AttributeResult:
        return get_attribute(self.store, selector)

    def schema_graph(self, gts_id: str) -> GraphNode:
        return build_schema_graph(self.store, gts_id)

    # -- validation and evolution -----------------------------------------

    def validate_instance(self, gts_id: str) -> ValidationResult:
        return check_instance(self.store, gts_id)

    def validate_schema(self, gts_id: str) -> ValidationResult:
        return check_schema(self.store, gts_id)

    def compatibility(self, old_schema_id: str, new_schema_id: str) -> CompatibilityReport:
        return check_compatibility(self.store, old_schema_id, new_schema_id)

    def cast(self, instance_id: str, to_schema_id: str) -> Union[CastResult, OpError]:
        try:
            return cast_instance(self.store, instance_id, to_schema_id)
        except GtsError as e:
            logger.debug(f"Cast {instance_id} -> {to_schema_id} rejected: {e}")
            return OpError(str(e), e.code)

    def _clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            limit = self.settings.default_query_limit
        return max(1, min(limit, self.settings.max_query_limit))
