"""
Wildcard pattern matching for GTS identifiers.

A pattern is an identifier that may end in a single '*' token, either as
the final token of a segment ('gts.x.core.*') or as a segment of its own
after a type ('gts.x.core.events.type.v1~*'). Matching walks the pattern
and candidate segments positionally:
- A concrete pattern segment must equal the candidate segment. The minor
  version is compared only when the pattern writes one.
- A wildcard pattern segment checks only the fields written before the
  '*' and then accepts everything that follows in the candidate.
- A pattern without a wildcard needs the same number of segments as the
  candidate.

Invariants:
    - A pattern holds at most one '*', and only at its end
    - A pattern with more segments than the candidate never matches
    - Matching never raises; invalid input is reported in MatchIDResult
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Sequence, Union

from .errors import InvalidGtsIDError, InvalidWildcardError
from .ids import GTS_PREFIX, WILDCARD, ConcreteSegment, GtsID, Segment, WildcardSegment


@dataclass(frozen=True)
class GtsWildcard:
    """A validated wildcard pattern.

    Attributes:
        pattern: Normalized pattern text
        gts_id: Pattern parsed in relaxed mode
    """
    pattern: str
    gts_id: GtsID

    @classmethod
    def parse(cls, pattern: str) -> "GtsWildcard":
        """Validate and parse a pattern.

        Raises:
            InvalidWildcardError: If the '*' is repeated or misplaced, or
                the pattern is not a valid identifier otherwise
        """
        p = pattern.strip()

        if not p.startswith(GTS_PREFIX):
            raise InvalidWildcardError(pattern, f"Does not start with '{GTS_PREFIX}'")

        count = p.count(WILDCARD)
        if count > 1:
            raise InvalidWildcardError(pattern, "The wildcard '*' token is allowed only once")
        if count == 1 and not (p.endswith(".*") or p.endswith("~*")):
            raise InvalidWildcardError(
                pattern, "The wildcard '*' token is allowed only at the end of the pattern"
            )

        try:
            gts_id = GtsID.parse_pattern(p)
        except InvalidGtsIDError as e:
            raise InvalidWildcardError(pattern, str(e)) from e

        return cls(p, gts_id)

    @property
    def segments(self) -> Sequence[Segment]:
        return self.gts_id.segments

    @property
    def has_wildcard(self) -> bool:
        return WILDCARD in self.pattern

    def match(self, candidate: Union[str, GtsID, "GtsWildcard"]) -> bool:
        """Whether the candidate identifier matches this pattern."""
        return wildcard_match(candidate, self)

    def __str__(self) -> str:
        return self.pattern


@dataclass
class MatchIDResult:
    """Outcome of matching one candidate against one pattern."""
    candidate: str
    pattern: str
    match: bool
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def validate_wildcard(pattern: str) -> GtsWildcard:
    """Validate a wildcard pattern; see GtsWildcard.parse."""
    return GtsWildcard.parse(pattern)


def wildcard_match(
    candidate: Union[str, GtsID, GtsWildcard],
    pattern: Union[str, GtsWildcard],
) -> bool:
    """Match a candidate identifier against a pattern.

    String candidates are parsed strictly, string patterns are validated as
    wildcard patterns. Invalid input simply does not match.

    Args:
        candidate: Identifier text, a parsed GtsID or another pattern
        pattern: Pattern text or a parsed GtsWildcard

    Returns:
        True if the candidate matches
    """
    try:
        if isinstance(pattern, str):
            pattern = GtsWildcard.parse(pattern)
        if isinstance(candidate, str):
            candidate = GtsID.parse(candidate)
    except (InvalidGtsIDError, InvalidWildcardError):
        return False

    candidate_segments = (
        candidate.segments if isinstance(candidate, (GtsID, GtsWildcard)) else ()
    )
    return _match_segments(pattern.segments, candidate_segments)


def match_id_pattern(candidate: str, pattern: str) -> MatchIDResult:
    """Match with errors captured in the result instead of raised."""
    try:
        candidate_id = GtsID.parse(candidate)
    except InvalidGtsIDError as e:
        return MatchIDResult(candidate, pattern, False, str(e))

    try:
        wildcard = GtsWildcard.parse(pattern)
    except InvalidWildcardError as e:
        return MatchIDResult(candidate, pattern, False, str(e))

    return MatchIDResult(candidate, pattern, _match_segments(wildcard.segments, candidate_id.segments))


def _match_segments(pattern_segs: Sequence[Segment], candidate_segs: Sequence[Segment]) -> bool:
    if len(pattern_segs) > len(candidate_segs):
        return False

    for p_seg, c_seg in zip(pattern_segs, candidate_segs):
        if isinstance(p_seg, WildcardSegment):
            return _wildcard_segment_matches(p_seg, c_seg)
        if not _concrete_segment_matches(p_seg, c_seg):
            return False

    return len(pattern_segs) == len(candidate_segs)


def _wildcard_segment_matches(p_seg: WildcardSegment, c_seg: Segment) -> bool:
    for name in ("vendor", "package", "namespace", "type_name", "major", "minor"):
        expected = getattr(p_seg, name)
        if expected is not None and expected != getattr(c_seg, name):
            return False
    if p_seg.is_type and not c_seg.is_type:
        return False
    return True


def _concrete_segment_matches(p_seg: ConcreteSegment, c_seg: Segment) -> bool:
    if (
        p_seg.vendor != c_seg.vendor
        or p_seg.package != c_seg.package
        or p_seg.namespace != c_seg.namespace
        or p_seg.type_name != c_seg.type_name
        or p_seg.major != c_seg.major
    ):
        return False
    # An unspecified pattern minor accepts any candidate minor
    if p_seg.minor is not None and p_seg.minor != c_seg.minor:
        return False
    return p_seg.is_type == c_seg.is_type
