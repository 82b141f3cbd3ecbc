"""
Query engine: select entities by identifier pattern and attribute filters.

Expression grammar:
    <pattern>                    e.g. gts.x.core.events.*
    <pattern>[<k>=<v>, ...]      e.g. gts.x.core.events.*[status=active, kind="a"]

A filter value may be quoted (quotes are stripped) or the literal '*',
which accepts any present, non-empty value. The pattern is either a full
identifier or a wildcard pattern ending in '.*' or '~*'.

Invariants:
    - Errors are reported in QueryResult.error, never raised
    - Results keep store iteration order and are cut at the limit
    - Entities without an identifier or with empty content never match
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvalidGtsIDError, InvalidWildcardError
from .ids import GtsID
from .match import GtsWildcard, wildcard_match
from .store import GtsStore

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100


class QueryError(ValueError):
    """Malformed query expression."""
    pass


@dataclass
class QueryResult:
    """Outcome of a query.

    Attributes:
        error: Empty on success, otherwise why the query was rejected
        count: Number of results returned
        limit: Effective limit applied
        results: Matching entity contents
    """
    error: str = ""
    count: int = 0
    limit: int = DEFAULT_LIMIT
    results: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error,
            "count": self.count,
            "limit": self.limit,
            "results": self.results,
        }


def parse_query(expr: str, allow_type_filters: bool = False) -> Tuple[str, Dict[str, str]]:
    """Split an expression into its base pattern and filters.

    Raises:
        QueryError: If the filter block is malformed or not allowed
    """
    base, sep, rest = expr.partition("[")
    base = base.strip()
    filters: Dict[str, str] = {}

    if sep:
        filter_str = rest.strip()
        if not filter_str.endswith("]"):
            raise QueryError("Invalid query: missing closing bracket ']'")
        filter_str = filter_str[:-1]

        if not allow_type_filters and (base.endswith("~") or base.endswith("~*")):
            raise QueryError(
                "Invalid query: filters cannot be used with type patterns (ending with ~ or ~*)"
            )

        for part in filter_str.split(","):
            key, eq, value = part.strip().partition("=")
            if eq:
                filters[key.strip()] = value.strip().strip("\"'")

    return base, filters


def compile_pattern(base: str) -> GtsWildcard:
    """Validate the base pattern of a query.

    Raises:
        QueryError: If the pattern is neither a valid identifier nor a
            valid wildcard pattern
    """
    if "*" in base:
        if not (base.endswith(".*") or base.endswith("~*")):
            raise QueryError("Invalid query: wildcard patterns must end with .* or ~*")
        try:
            return GtsWildcard.parse(base)
        except InvalidWildcardError as e:
            raise QueryError(f"Invalid query: {e}") from e

    try:
        GtsID.parse(base)
        return GtsWildcard.parse(base)
    except (InvalidGtsIDError, InvalidWildcardError) as e:
        raise QueryError(f"Invalid query: {e}") from e


def stringify(value: Any) -> Optional[str]:
    """Render a JSON value for comparison with a filter value."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), sort_keys=True)
    return str(value)


def matches_filters(content: Dict[str, Any], filters: Dict[str, str]) -> bool:
    for key, expected in filters.items():
        actual = stringify(content.get(key))
        if expected == "*":
            if not actual:
                return False
        elif actual != expected:
            return False
    return True


def query(
    store: GtsStore,
    expr: str,
    limit: int = DEFAULT_LIMIT,
    allow_type_filters: bool = False,
) -> QueryResult:
    """Run a query expression against a store.

    Args:
        store: Store to search
        expr: Query expression
        limit: Maximum results, DEFAULT_LIMIT when <= 0
        allow_type_filters: Accept filters on type patterns

    Returns:
        QueryResult with matching contents or an error
    """
    if limit <= 0:
        limit = DEFAULT_LIMIT
    result = QueryResult(limit=limit)

    try:
        base, filters = parse_query(expr, allow_type_filters)
        pattern = compile_pattern(base)
    except QueryError as e:
        result.error = str(e)
        return result

    for _, entity in store.items():
        if len(result.results) >= limit:
            break
        if entity.gts_id is None or not entity.content:
            continue
        if not wildcard_match(entity.gts_id, pattern):
            continue
        if not matches_filters(entity.content, filters):
            continue
        result.results.append(entity.content)

    result.count = len(result.results)
    logger.debug(f"Query {expr!r} matched {result.count} entities (limit {limit})")
    return result
