"""
Error types for the GTS registry.

This module defines every exception raised by the package:
- GtsError: Base exception
- InvalidGtsIDError / InvalidSegmentError: Malformed identifier grammar
- InvalidWildcardError: Malformed wildcard pattern
- EntityNotFoundError / SchemaNotFoundError: Registry lookups that came back empty
- SchemaForInstanceNotFoundError: Instance without a resolvable governing schema
- CastFromSchemaNotAllowedError: Cast attempted from a type identifier
- CompatibilityError: Aggregated compatibility violations
- ReferenceResolutionError: Unresolvable schema reference
- RegistrationError: Store registration preconditions
- ValidationFailedError: Instance or schema validation failure

Invariants:
    - All errors inherit from GtsError
    - str(error) is the human-readable message returned to API callers
    - Parse and match errors are captured into result values by callers,
      cast preconditions propagate as exceptions
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class GtsError(Exception):
    """Base exception for all GTS registry errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "GTS_ERROR"
        self.details = details or {}


class InvalidGtsIDError(GtsError):
    """Identifier text does not follow the GTS grammar.

    Raised when:
    - The identifier has uppercase characters or hyphens
    - The identifier does not start with 'gts.' or is too long
    - A segment is empty or malformed
    """

    def __init__(self, gts_id: str, cause: str = "", code: str = "INVALID_ID") -> None:
        msg = f"Invalid GTS identifier: {gts_id}"
        if cause:
            msg += f": {cause}"
        super().__init__(msg, code=code, details={"gts_id": gts_id, "cause": cause})
        self.gts_id = gts_id
        self.cause = cause


class InvalidSegmentError(InvalidGtsIDError):
    """A single '~' delimited segment is malformed.

    Attributes:
        segment_num: 1-based position of the segment
        offset: Character offset of the segment in the identifier
        segment: Raw segment text
        cause: Reason the segment was rejected
    """

    def __init__(self, segment_num: int, offset: int, segment: str, cause: str = "") -> None:
        msg = f"Invalid GTS segment #{segment_num} @ offset {offset}: '{segment}'"
        if cause:
            msg += f": {cause}"
        GtsError.__init__(
            self,
            msg,
            code="INVALID_SEGMENT",
            details={"segment_num": segment_num, "offset": offset, "segment": segment, "cause": cause},
        )
        self.gts_id = segment
        self.cause = cause
        self.segment_num = segment_num
        self.offset = offset
        self.segment = segment


class InvalidWildcardError(GtsError):
    """Wildcard pattern is misplaced, repeated or otherwise malformed."""

    def __init__(self, pattern: str, cause: str = "") -> None:
        msg = f"Invalid GTS wildcard pattern: {pattern}"
        if cause:
            msg += f": {cause}"
        super().__init__(msg, code="INVALID_WILDCARD", details={"pattern": pattern, "cause": cause})
        self.pattern = pattern
        self.cause = cause


class EntityNotFoundError(GtsError):
    """No JSON object with the given identifier is registered."""

    def __init__(self, gts_id: str) -> None:
        super().__init__(
            f"JSON object with GTS ID '{gts_id}' not found in store",
            code="ENTITY_NOT_FOUND",
            details={"gts_id": gts_id},
        )
        self.gts_id = gts_id


class SchemaNotFoundError(GtsError):
    """No JSON schema with the given identifier is registered."""

    def __init__(self, gts_id: str) -> None:
        super().__init__(
            f"JSON schema with GTS ID '{gts_id}' not found in store",
            code="SCHEMA_NOT_FOUND",
            details={"gts_id": gts_id},
        )
        self.gts_id = gts_id


class SchemaForInstanceNotFoundError(GtsError):
    """The governing schema of an instance cannot be determined."""

    def __init__(self, gts_id: str) -> None:
        super().__init__(
            f"Can't determine JSON schema ID for instance with GTS ID '{gts_id}'",
            code="SCHEMA_UNDETERMINABLE",
            details={"gts_id": gts_id},
        )
        self.gts_id = gts_id


class CastFromSchemaNotAllowedError(GtsError):
    """Cast source is a type identifier instead of an instance."""

    def __init__(self, from_id: str) -> None:
        super().__init__(
            f"Cannot cast from schema ID '{from_id}'. "
            "The from_id must be an instance (not ending with '~').",
            code="CAST_FROM_SCHEMA",
            details={"from_id": from_id},
        )
        self.from_id = from_id


class CompatibilityError(GtsError):
    """Raised when a caller requires compatibility and violations exist.

    Attributes:
        violations: Every violation message, in detection order
    """

    def __init__(self, violations: List[str], direction: str = "") -> None:
        self.violations = violations
        label = f"{direction} " if direction else ""
        super().__init__(
            f"Schema {label}compatibility check failed with {len(violations)} violation(s):\n"
            + "\n".join(f"  - {v}" for v in violations),
            code="INCOMPATIBLE",
            details={"violations": violations, "direction": direction},
        )


class ReferenceResolutionError(GtsError):
    """A schema reference cannot be resolved against the registry."""

    def __init__(self, ref: str, cause: str = "") -> None:
        msg = f"Unresolvable reference: {ref}"
        if cause:
            msg += f": {cause}"
        super().__init__(msg, code="REFERENCE_UNRESOLVED", details={"ref": ref})
        self.ref = ref


class RegistrationError(GtsError):
    """Entity cannot be added to the store."""

    def __init__(self, message: str, gts_id: Optional[str] = None) -> None:
        super().__init__(message, code="REGISTRATION_FAILED", details={"gts_id": gts_id})
        self.gts_id = gts_id


class ValidationFailedError(GtsError):
    """Instance or schema failed validation."""

    def __init__(self, message: str, gts_id: Optional[str] = None) -> None:
        super().__init__(message, code="VALIDATION_FAILED", details={"gts_id": gts_id})
        self.gts_id = gts_id
