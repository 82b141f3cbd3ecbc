"""
HTTP API for the GTS registry.

Exposes the operation facade over REST:
- Entity registration and lookup (/entities, /schemas)
- Identifier operations (/validate-id, /parse-id, /match-id-pattern, /uuid, /extract-id)
- Store operations (/validate-instance, /resolve-relationships, /compatibility,
  /cast, /query, /attr)

Usage:
    uvicorn --factory gts_registry.server:create_app --port 8000

Invariants:
    - Operation failures are 200 responses with an error field
    - Malformed requests are 400 responses with an error field
    - Unknown entities on GET /entities/{id} are 404
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import Settings
from .ops import GtsOps

logger = logging.getLogger(__name__)

router = APIRouter(tags=["GTS"])


# =============================================================================
# Request Models
# =============================================================================


class AddSchemaRequest(BaseModel):
    """Register raw schema content under a type identifier."""
    type_id: str = Field(..., description="Type identifier, must end with '~'")
    schema_content: Dict[str, Any] = Field(..., alias="schema", description="JSON Schema document")


class ValidateInstanceRequest(BaseModel):
    instance_id: str = Field(..., description="Instance identifier")


class CastRequest(BaseModel):
    """Cast an instance to another schema version."""
    instance_id: str = Field(..., description="Instance identifier")
    to_schema_id: str = Field(..., description="Target schema identifier")


# =============================================================================
# Dependencies
# =============================================================================


def get_ops(request: Request) -> GtsOps:
    """Get the operation facade from app state."""
    return request.app.state.ops


# =============================================================================
# Entity Endpoints
# =============================================================================


@router.get("/entities")
async def list_entities(limit: Optional[int] = Query(None), ops: GtsOps = Depends(get_ops)):
    return ops.list_entities(limit).to_dict()


@router.get("/entities/{gts_id}")
async def get_entity(gts_id: str, ops: GtsOps = Depends(get_ops)):
    result = ops.get_entity(gts_id)
    if not result.ok:
        raise HTTPException(status_code=404, detail=result.error)
    return result.to_dict()


@router.post("/entities")
async def add_entity(
    content: Dict[str, Any] = Body(...),
    validate: bool = Query(False, description="Validate instances after registration"),
    ops: GtsOps = Depends(get_ops),
):
    """
    Register one entity.

    Schemas are always checked for x-gts-ref syntax. Instances are
    validated against their schema when validate=true.
    """
    return ops.add_entity(content, validate_instance=validate).to_dict()


@router.post("/entities/bulk")
async def add_entities(contents: List[Dict[str, Any]] = Body(...), ops: GtsOps = Depends(get_ops)):
    return ops.add_entities(contents).to_dict()


@router.post("/schemas")
async def add_schema(request: AddSchemaRequest, ops: GtsOps = Depends(get_ops)):
    return ops.add_schema(request.type_id, request.schema_content).to_dict()


# =============================================================================
# Identifier Endpoints
# =============================================================================


@router.get("/validate-id")
async def validate_id(gts_id: str = Query(...), ops: GtsOps = Depends(get_ops)):
    return ops.validate_id(gts_id).to_dict()


@router.post("/extract-id")
async def extract_id(content: Dict[str, Any] = Body(...), ops: GtsOps = Depends(get_ops)):
    return ops.extract_id(content).to_dict()


@router.get("/parse-id")
async def parse_id(gts_id: str = Query(...), ops: GtsOps = Depends(get_ops)):
    return ops.parse_id(gts_id).to_dict()


@router.get("/match-id-pattern")
async def match_id_pattern(
    candidate: str = Query(...),
    pattern: str = Query(...),
    ops: GtsOps = Depends(get_ops),
):
    return ops.match_id_pattern(candidate, pattern).to_dict()


@router.get("/uuid")
async def id_to_uuid(gts_id: str = Query(...), ops: GtsOps = Depends(get_ops)):
    return ops.id_to_uuid(gts_id).to_dict()


# =============================================================================
# Store Operation Endpoints
# =============================================================================


@router.post("/validate-instance")
async def validate_instance(request: ValidateInstanceRequest, ops: GtsOps = Depends(get_ops)):
    return ops.validate_instance(request.instance_id).to_dict()


@router.get("/resolve-relationships")
async def resolve_relationships(gts_id: str = Query(...), ops: GtsOps = Depends(get_ops)):
    return ops.schema_graph(gts_id).to_dict()


@router.get("/compatibility")
async def compatibility(
    old_schema_id: str = Query(...),
    new_schema_id: str = Query(...),
    ops: GtsOps = Depends(get_ops),
):
    return ops.compatibility(old_schema_id, new_schema_id).to_dict()


@router.post("/cast")
async def cast(request: CastRequest, ops: GtsOps = Depends(get_ops)):
    return ops.cast(request.instance_id, request.to_schema_id).to_dict()


@router.get("/query")
async def query(expr: str = Query(...), limit: Optional[int] = Query(None), ops: GtsOps = Depends(get_ops)):
    return ops.query(expr, limit).to_dict()


@router.get("/attr")
async def attr(gts_with_path: str = Query(...), ops: GtsOps = Depends(get_ops)):
    return ops.attr(gts_with_path).to_dict()


# =============================================================================
# App Factory
# =============================================================================


def create_app(settings: Optional[Settings] = None, ops: Optional[GtsOps] = None) -> FastAPI:
    """Create the GTS FastAPI app.

    Args:
        settings: Runtime settings, loaded from the environment when omitted
        ops: Operation facade; built from settings when omitted
    """
    settings = settings or (ops.settings if ops is not None else Settings())
    ops = ops or GtsOps(settings)

    app = FastAPI(
        title="GTS Registry",
        description="Identifier parsing, schema validation, compatibility and cast for GTS entities",
        version="0.1.0",
    )
    app.state.settings = settings
    app.state.ops = ops

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        logger.debug(f"Rejected request to {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    app.include_router(router)

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "gts-registry", "entities": ops.store.count()}

    return app
