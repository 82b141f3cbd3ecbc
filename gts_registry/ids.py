"""
GTS identifier model.

A GTS identifier is a versioned, hierarchical name such as
``gts.x.core.events.type.v1~vendor.app._.custom_event.v1.2``. It is a
chain of '~' delimited segments; every segment carries
vendor/package/namespace/type tokens plus a major and optional minor
version. A chain ending in '~' names a type (schema), otherwise the
final segment names an instance of the preceding type lineage.

Two parse modes exist:
- GtsID.parse: strict, used for concrete identifiers. Wildcards are
  rejected and a single bare instance segment is not a valid identifier.
- GtsID.parse_pattern: relaxed, used for the pattern side of matching.
  A segment ending in '*' becomes a WildcardSegment holding only the
  fields written before the '*'.

Invariants:
    - GTS_PREFIX + concatenated segment texts == identifier text
    - A type identifier ends with '~'
    - Only the last segment may omit the trailing '~'
    - UUIDs are uuid5(uuid5(NAMESPACE_URL, "gts"), identifier), never change

How to change safely:
    - Never change GTS_NAMESPACE, downstream systems persist derived UUIDs
    - Keep error causes stable, API clients match on them
    - Add new segment fields as Optional with a None default

Example:
    >>> gid = GtsID.parse("gts.x.test5.events.type.v1~")
    >>> gid.is_type
    True
    >>> str(gid.to_uuid())
    'de567dcc-10ef-597d-8f82-3c999ed9b979'
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import InvalidGtsIDError, InvalidSegmentError

GTS_PREFIX = "gts."
GTS_URI_PREFIX = "gts://"
MAX_ID_LENGTH = 1024
WILDCARD = "*"

# uuid5(NAMESPACE_URL, "gts")
GTS_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "gts")

_TOKEN_RE = re.compile(r"^[a-z_][a-z0-9_]*$")
_VERSION_RE = re.compile(r"^(0|[1-9][0-9]*)$")

_NAME_FIELDS = ("vendor", "package", "namespace", "type_name")


@dataclass(frozen=True)
class ConcreteSegment:
    """A fully specified segment.

    Attributes:
        num: 1-based position in the chain
        offset: Character offset in the identifier text
        segment: Raw segment text, including a trailing '~' for types
        vendor: Vendor token
        package: Package token
        namespace: Namespace token ('_' is a valid placeholder)
        type_name: Type token
        major: Major version
        minor: Minor version, None when not written
        is_type: Segment ends with '~'
    """
    num: int
    offset: int
    segment: str
    vendor: str
    package: str
    namespace: str
    type_name: str
    major: int
    minor: Optional[int] = None
    is_type: bool = False

    @property
    def is_wildcard(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor": self.vendor,
            "package": self.package,
            "namespace": self.namespace,
            "type": self.type_name,
            "ver_major": self.major,
            "ver_minor": self.minor,
            "is_type": self.is_type,
            "is_wildcard": False,
        }


@dataclass(frozen=True)
class WildcardSegment:
    """A segment truncated by a '*' token.

    Only the fields written before the '*' are set; everything else is None.
    """
    num: int
    offset: int
    segment: str
    vendor: Optional[str] = None
    package: Optional[str] = None
    namespace: Optional[str] = None
    type_name: Optional[str] = None
    major: Optional[int] = None
    minor: Optional[int] = None
    is_type: bool = False

    @property
    def is_wildcard(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor": self.vendor,
            "package": self.package,
            "namespace": self.namespace,
            "type": self.type_name,
            "ver_major": self.major,
            "ver_minor": self.minor,
            "is_type": self.is_type,
            "is_wildcard": True,
        }


Segment = Union[ConcreteSegment, WildcardSegment]


def _split_segments(remainder: str) -> List[str]:
    """Split on '~', keeping the '~' on every piece but the last.

    A trailing empty piece after the next-to-last piece is dropped, so a
    type identifier yields no dangling empty segment.
    """
    pieces = remainder.split("~")
    parts: List[str] = []
    for i, piece in enumerate(pieces):
        if i < len(pieces) - 1:
            parts.append(piece + "~")
            if i == len(pieces) - 2 and pieces[i + 1] == "":
                break
        else:
            parts.append(piece)
    return parts


def _parse_version(token: str, num: int, offset: int, segment: str, label: str) -> int:
    if not _VERSION_RE.match(token):
        raise InvalidSegmentError(num, offset, segment, f"{label} version must be an integer")
    return int(token)


def _parse_segment(num: int, offset: int, segment: str, relaxed: bool) -> Segment:
    working = segment
    is_type = False

    tildes = working.count("~")
    if tildes > 1:
        raise InvalidSegmentError(num, offset, segment, "Too many '~' characters")
    if tildes == 1:
        if not working.endswith("~"):
            raise InvalidSegmentError(num, offset, segment, "'~' must be at the end")
        is_type = True
        working = working[:-1]

    tokens = working.split(".")
    if len(tokens) > 6:
        raise InvalidSegmentError(num, offset, segment, "Too many tokens")

    if WILDCARD in tokens and not relaxed:
        raise InvalidSegmentError(num, offset, segment, "Wildcard '*' is only allowed in patterns")
    if not (relaxed and working.endswith(WILDCARD)) and len(tokens) < 5:
        raise InvalidSegmentError(num, offset, segment, "Too few tokens")

    fields: Dict[str, Any] = {}
    for pos, token in enumerate(tokens):
        if token == WILDCARD:
            return WildcardSegment(num, offset, segment, is_type=is_type, **fields)
        if pos < 4:
            if not _TOKEN_RE.match(token):
                raise InvalidSegmentError(num, offset, segment, f"Invalid segment token: {token}")
            fields[_NAME_FIELDS[pos]] = token
        elif pos == 4:
            if not token.startswith("v"):
                raise InvalidSegmentError(num, offset, segment, "Major version must start with 'v'")
            fields["major"] = _parse_version(token[1:], num, offset, segment, "Major")
        else:
            fields["minor"] = _parse_version(token, num, offset, segment, "Minor")

    return ConcreteSegment(num, offset, segment, is_type=is_type, **fields)


@dataclass(frozen=True)
class GtsID:
    """A parsed GTS identifier.

    Attributes:
        id: Normalized identifier text
        segments: Parsed segments, in chain order
    """
    id: str
    segments: Tuple[Segment, ...]

    @classmethod
    def parse(cls, text: str) -> "GtsID":
        """Parse a concrete identifier.

        Raises:
            InvalidGtsIDError: If the text is not a valid identifier
        """
        return cls._parse(text, relaxed=False)

    @classmethod
    def parse_pattern(cls, text: str) -> "GtsID":
        """Parse the pattern side of a match, allowing a trailing wildcard.

        Raises:
            InvalidGtsIDError: If the text is not a valid pattern identifier
        """
        return cls._parse(text, relaxed=True)

    @classmethod
    def _parse(cls, text: str, relaxed: bool) -> "GtsID":
        raw = text.strip()

        if raw != raw.lower():
            raise InvalidGtsIDError(text, "Must be lower case")
        if "-" in raw:
            raise InvalidGtsIDError(text, "Must not contain '-'")
        if not raw.startswith(GTS_PREFIX):
            raise InvalidGtsIDError(text, f"Does not start with '{GTS_PREFIX}'")
        if len(raw) > MAX_ID_LENGTH:
            raise InvalidGtsIDError(text, "Too long")

        segments: List[Segment] = []
        offset = len(GTS_PREFIX)
        for num, part in enumerate(_split_segments(raw[len(GTS_PREFIX):]), start=1):
            if not part:
                raise InvalidGtsIDError(text, f"GTS segment #{num} @ offset {offset} is empty")
            segments.append(_parse_segment(num, offset, part, relaxed))
            offset += len(part)

        if not relaxed and len(segments) == 1 and not segments[0].is_type:
            raise InvalidGtsIDError(
                text, "Single-segment identifier must be a type (end with '~')"
            )

        return cls(raw, tuple(segments))

    @staticmethod
    def is_valid(text: Any) -> bool:
        """Whether text is a valid concrete identifier."""
        if not isinstance(text, str) or not text.startswith(GTS_PREFIX):
            return False
        try:
            GtsID.parse(text)
        except InvalidGtsIDError:
            return False
        return True

    @property
    def is_type(self) -> bool:
        return self.id.endswith("~")

    @property
    def is_wildcard(self) -> bool:
        return any(seg.is_wildcard for seg in self.segments)

    @property
    def last_segment(self) -> Segment:
        return self.segments[-1]

    @property
    def type_id(self) -> Optional[str]:
        """The type this identifier belongs to.

        A type is its own type; an instance chain belongs to everything up to
        and including its last '~'.
        """
        if self.is_type:
            return self.id
        cut = self.id.rfind("~")
        return self.id[: cut + 1] if cut >= 0 else None

    def to_uuid(self) -> uuid.UUID:
        return uuid.uuid5(GTS_NAMESPACE, self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "is_type": self.is_type,
            "segments": [seg.to_dict() for seg in self.segments],
        }

    def __str__(self) -> str:
        return self.id


def is_valid_gts_id(text: Any) -> bool:
    """Module-level alias of GtsID.is_valid."""
    return GtsID.is_valid(text)


def strip_uri_prefix(value: str) -> str:
    """Drop the 'gts://' prefix used in JSON Schema '$id' values."""
    if value.startswith(GTS_URI_PREFIX):
        return value[len(GTS_URI_PREFIX):]
    return value
