"""
Configuration for the GTS registry.

Two layers:
- GtsConfig: which JSON fields carry an entity's identifier and its schema
  identifier. Pure data, passed explicitly to entity extraction.
- Settings: runtime options for the CLI and HTTP server, loaded from the
  environment with the GTS_ prefix (e.g. GTS_VALIDATE_REFS=true).

Invariants:
    - Field lists are ordered; earlier fields win
    - Settings defaults are safe for local development
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

import json_log_formatter
from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_ENTITY_ID_FIELDS: Tuple[str, ...] = (
    "$id",
    "$$id",
    "gtsId",
    "gtsIid",
    "gtsOid",
    "gtsI",
    "gts_id",
    "gts_oid",
    "gts_iid",
    "id",
)

DEFAULT_SCHEMA_ID_FIELDS: Tuple[str, ...] = (
    "$schema",
    "$$schema",
    "gtsTid",
    "gtsT",
    "gts_t",
    "gts_tid",
    "type",
    "schema",
)


@dataclass(frozen=True)
class GtsConfig:
    """Field names consulted when extracting identifiers from JSON content.

    Attributes:
        entity_id_fields: Candidate fields for the entity's own identifier
        schema_id_fields: Candidate fields for the governing schema identifier
    """
    entity_id_fields: Tuple[str, ...] = field(default=DEFAULT_ENTITY_ID_FIELDS)
    schema_id_fields: Tuple[str, ...] = field(default=DEFAULT_SCHEMA_ID_FIELDS)


DEFAULT_CONFIG = GtsConfig()


class Settings(BaseSettings):
    """Runtime configuration."""

    # Files or directories loaded into the store at startup
    paths: list[str] = Field(default_factory=list)

    # Registry behavior
    validate_refs: bool = Field(default=False, description="Check that references exist on registration")
    allow_type_filters: bool = Field(
        default=False,
        description="Allow attribute filters on type patterns (ending with ~ or ~*)",
    )
    default_query_limit: int = Field(default=100)
    max_query_limit: int = Field(default=1000)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text", description="text or json")

    # HTTP server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    cors_origins: list[str] = Field(default=["*"])

    model_config = {"env_prefix": "GTS_"}


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure logging based on settings.

    Args:
        settings: Runtime settings, defaults are loaded when omitted
    """
    settings = settings or Settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
