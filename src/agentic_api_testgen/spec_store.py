"""Normalized API descriptions and the store the orchestrator reads them from.

Ingesting raw OpenAPI/Swagger documents is not done here; this module reads
a document that is already in normalized form (YAML or JSON), validates it
with jsonschema (Draft-07), and keeps it in memory by id.
"""

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

from agentic_api_testgen.models import FILTER_MODES, OperationFilter


class SpecNotFoundError(LookupError):
    """Raised when a spec id is not in the store."""
    pass


class SpecFormatError(ValueError):
    """Raised when a normalized spec document fails validation."""
    pass


NORMALIZED_SPEC_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["id", "info", "operations"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "info": {
            "type": "object",
            "required": ["title"],
            "properties": {
                "title": {"type": "string"},
                "version": {"type": "string"},
            },
        },
        "servers": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["url"],
                "properties": {"url": {"type": "string"}},
            },
        },
        "operations": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["operationId", "method", "path"],
                "properties": {
                    "operationId": {"type": "string", "minLength": 1},
                    "method": {
                        "type": "string",
                        "pattern": "(?i)^(get|post|put|patch|delete|head|options)$",
                    },
                    "path": {"type": "string", "pattern": "^/"},
                    "summary": {"type": "string"},
                    "tags": {"type": "array", "items": {"type": "string"}},
                    "parameters": {"type": "array", "items": {"type": "object"}},
                    "requestBody": {"type": ["object", "null"]},
                    "responses": {"type": "array"},
                },
            },
        },
        "schemas": {"type": "object"},
    },
}


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class OperationParameter:
    name: str
    location: str  # path | query | header | cookie
    required: bool = False
    schema: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Operation:
    """One API operation of a normalized spec."""
    operation_id: str
    method: str
    path: str
    summary: str = ""
    tags: List[str] = field(default_factory=list)
    parameters: List[OperationParameter] = field(default_factory=list)
    request_body_schema: Optional[Dict[str, Any]] = None
    response_codes: List[str] = field(default_factory=list)

    @property
    def has_path_param(self) -> bool:
        return "{" in self.path

    @property
    def has_body(self) -> bool:
        return self.method.upper() in ("POST", "PUT", "PATCH")


@dataclass
class NormalizedSpec:
    id: str
    title: str
    version: str = ""
    servers: List[str] = field(default_factory=list)
    operations: List[Operation] = field(default_factory=list)
    schemas: Dict[str, Any] = field(default_factory=dict)

    @property
    def default_server_url(self) -> str:
        return self.servers[0] if self.servers else ""


# =============================================================================
# PARSING
# =============================================================================

def _parse_operation(raw: Dict[str, Any]) -> Operation:
    parameters = [
        OperationParameter(
            name=str(p.get("name", "")),
            location=str(p.get("in", "query")),
            required=bool(p.get("required", False)),
            schema=p.get("schema") or {},
        )
        for p in raw.get("parameters") or []
    ]

    body_schema = None
    request_body = raw.get("requestBody")
    if isinstance(request_body, dict):
        content = request_body.get("content") or {}
        json_content = content.get("application/json") or {}
        body_schema = json_content.get("schema") or request_body.get("schema")

    response_codes = []
    for response in raw.get("responses") or []:
        if isinstance(response, dict):
            response_codes.append(str(response.get("statusCode", "")))
        else:
            response_codes.append(str(response))

    return Operation(
        operation_id=raw["operationId"],
        method=raw["method"].upper(),
        path=raw["path"],
        summary=raw.get("summary") or "",
        tags=list(raw.get("tags") or []),
        parameters=parameters,
        request_body_schema=body_schema,
        response_codes=[c for c in response_codes if c],
    )


def parse_normalized_spec(data: Dict[str, Any]) -> NormalizedSpec:
    """
    Validate and convert a normalized spec document.

    Raises:
        SpecFormatError: If the document does not match NORMALIZED_SPEC_SCHEMA
    """
    validator = jsonschema.Draft7Validator(NORMALIZED_SPEC_SCHEMA)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    if errors:
        details = "; ".join(
            f"{'/'.join(str(p) for p in e.path) or '<root>'}: {e.message}" for e in errors[:5]
        )
        raise SpecFormatError(f"Invalid normalized spec: {details}")

    return NormalizedSpec(
        id=data["id"],
        title=data["info"]["title"],
        version=data["info"].get("version", ""),
        servers=[s["url"] for s in data.get("servers") or []],
        operations=[_parse_operation(op) for op in data["operations"]],
        schemas=data.get("schemas") or {},
    )


def load_normalized_spec(spec_file: Path) -> NormalizedSpec:
    """Load a normalized spec from YAML (.yaml/.yml) or JSON (.json)."""
    content = spec_file.read_text(encoding="utf-8")

    if spec_file.suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise SpecFormatError(f"YAML parse error in {spec_file}: {str(e)[:200]}")
    elif spec_file.suffix == ".json":
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise SpecFormatError(f"JSON parse error in {spec_file}: {e}")
    else:
        raise SpecFormatError(f"Unsupported file type: {spec_file.suffix}. Use .yaml, .yml, or .json")

    if not isinstance(data, dict):
        raise SpecFormatError(f"Spec document must be a mapping: {spec_file}")

    return parse_normalized_spec(data)


# =============================================================================
# OPERATION FILTER
# =============================================================================

def select_operations(spec: NormalizedSpec, operation_filter: OperationFilter) -> List[Operation]:
    """
    Apply a run's operation filter.

    full   -> every operation
    tag    -> operations carrying at least one of the tags
    single -> operations whose id is listed, in spec order
    """
    mode = operation_filter.mode
    if mode not in FILTER_MODES:
        raise ValueError(f"Unknown operation filter mode: {mode!r}")

    if mode == "tag":
        wanted = {t.lower() for t in operation_filter.tags}
        return [op for op in spec.operations if wanted & {t.lower() for t in op.tags}]

    if mode == "single":
        wanted_ids = set(operation_filter.operation_ids)
        return [op for op in spec.operations if op.operation_id in wanted_ids]

    return list(spec.operations)


# =============================================================================
# STORE
# =============================================================================

class SpecStore:
    """In-memory spec store keyed by spec id."""

    def __init__(self):
        self._specs: Dict[str, NormalizedSpec] = {}
        self._lock = threading.Lock()

    def add(self, spec: NormalizedSpec) -> NormalizedSpec:
        with self._lock:
            self._specs[spec.id] = spec
        return spec

    def find_by_id(self, spec_id: str) -> Optional[NormalizedSpec]:
        with self._lock:
            return self._specs.get(spec_id)

    def load_file(self, spec_file: Path) -> NormalizedSpec:
        """Load a spec document from disk and register it."""
        return self.add(load_normalized_spec(spec_file))
