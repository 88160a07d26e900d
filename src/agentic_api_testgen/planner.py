"""Planner agent: turns a normalized API description into a TestPlan.

The model writes the positive scenarios, realistic request bodies and the
dependency edges between operations. Negative and edge-case scenarios are
generated here deterministically for every operation, so coverage does not
depend on what the model chose to write.
"""

import json
import logging
import re
from dataclasses import replace
from typing import Any, List, Optional

from agentic_api_testgen.constants import DEFAULT_BASE_URL
from agentic_api_testgen.json_repair import try_parse_model_json
from agentic_api_testgen.models import (
    TEST_CATEGORIES,
    OperationDependency,
    PlanItem,
    TestPlan,
)
from agentic_api_testgen.prompts import PLANNER_SYSTEM_PROMPT, build_planner_prompt
from agentic_api_testgen.spec_store import NormalizedSpec, Operation

logger = logging.getLogger(__name__)

_PATH_PARAM_RE = re.compile(r"\{[^}]+\}")


def _fill_path(path: str, value: str) -> str:
    return _PATH_PARAM_RE.sub(value, path)


# =============================================================================
# DETERMINISTIC SCENARIOS
# =============================================================================

def generate_negative_items(operations: List[Operation]) -> List[PlanItem]:
    """Negative scenarios: non-existent id, empty body, invalid types, invalid id format."""
    items: List[PlanItem] = []

    for op in operations:
        method = op.method.upper()
        has_path_param = op.has_path_param
        has_body = op.has_body
        body_path = _fill_path(op.path, "1") if has_path_param else op.path

        if has_path_param:
            items.append(PlanItem(
                operation_id=f"{op.operation_id}_nonExistentId",
                method=method,
                path=_fill_path(op.path, "99999"),
                description=f"{method} {op.path} with non-existent ID should return not found",
                category="negative",
                expected_status=404,
                assertions=("status 404",),
                needs_body=has_body,
                suggested_body='{"title":"test"}' if has_body else None,
            ))

        if has_body:
            items.append(PlanItem(
                operation_id=f"{op.operation_id}_emptyBody",
                method=method,
                path=body_path,
                description=f"{method} {op.path} with empty body should be rejected",
                category="negative",
                expected_status=400,
                assertions=("status 400",),
                needs_body=True,
                suggested_body="{}",
            ))
            items.append(PlanItem(
                operation_id=f"{op.operation_id}_invalidTypes",
                method=method,
                path=body_path,
                description=f"{method} {op.path} with invalid field types should be rejected",
                category="negative",
                expected_status=400,
                assertions=("status 400",),
                needs_body=True,
                suggested_body='{"title":12345,"price":"not-a-number","description":true}',
            ))

        if has_path_param:
            items.append(PlanItem(
                operation_id=f"{op.operation_id}_invalidIdFormat",
                method=method,
                path=_fill_path(op.path, "abc"),
                description=f"{method} {op.path} with string ID instead of number",
                category="negative",
                expected_status=400,
                assertions=("status 400 or 404",),
                needs_body=has_body,
                suggested_body='{"title":"test"}' if has_body else None,
            ))

    return items


def generate_edge_case_items(operations: List[Operation]) -> List[PlanItem]:
    """Edge-case scenarios: zero id, negative id, special characters on POST, limit=1 on lists."""
    items: List[PlanItem] = []

    for op in operations:
        method = op.method.upper()
        has_path_param = op.has_path_param
        has_body = op.has_body
        edge_body = '{"title":"edge test"}' if has_body else None

        if has_path_param:
            items.append(PlanItem(
                operation_id=f"{op.operation_id}_zeroId",
                method=method,
                path=_fill_path(op.path, "0"),
                description=f"{method} {op.path} with id=0 (boundary)",
                category="edge-case",
                expected_status=400,
                assertions=("status 400 or 404",),
                needs_body=has_body,
                suggested_body=edge_body,
            ))
            items.append(PlanItem(
                operation_id=f"{op.operation_id}_negativeId",
                method=method,
                path=_fill_path(op.path, "-1"),
                description=f"{method} {op.path} with negative id",
                category="edge-case",
                expected_status=400,
                assertions=("status 400 or 404",),
                needs_body=has_body,
                suggested_body=edge_body,
            ))

        if method == "POST":
            items.append(PlanItem(
                operation_id=f"{op.operation_id}_specialChars",
                method=method,
                path=op.path,
                description=f"{method} {op.path} with special characters in fields",
                category="edge-case",
                expected_status=200,
                assertions=("status 200 or 201", "response has id"),
                needs_body=True,
                suggested_body=(
                    '{"title":"Test <script>alert(1)</script>","price":0,'
                    '"description":"O\'Reilly & Sons \\"quoted\\""}'
                ),
            ))

        if method == "GET" and not has_path_param:
            items.append(PlanItem(
                operation_id=f"{op.operation_id}_limitParam",
                method=method,
                path=f"{op.path}?limit=1",
                description=f"{method} {op.path} with limit=1 should return at most one item",
                category="edge-case",
                expected_status=200,
                assertions=("status 200", "response array size <= 1"),
            ))

    return items


# =============================================================================
# PROMPT INPUT
# =============================================================================

def build_spec_summary(spec: NormalizedSpec, operations: List[Operation]) -> str:
    """Render the operations (and schemas) the model needs to plan against."""
    lines = [
        f"API: {spec.title or 'Unknown API'}",
        f"Base URL: {spec.default_server_url or 'unknown'}",
        "",
        "### Operations",
    ]
    for op in operations:
        lines.append(f"- {op.method} {op.path} (operationId: {op.operation_id})")
        if op.summary:
            lines.append(f"  Summary: {op.summary}")
        if op.tags:
            lines.append(f"  Tags: {', '.join(op.tags)}")
        if op.parameters:
            params = [
                f"{p.name} ({p.location}, {'required' if p.required else 'optional'})"
                for p in op.parameters
            ]
            lines.append(f"  Parameters: {', '.join(params)}")
        if op.request_body_schema:
            lines.append(f"  Request body schema: {json.dumps(op.request_body_schema, indent=2)[:500]}")
        if op.response_codes:
            lines.append(f"  Response codes: {', '.join(op.response_codes)}")
        lines.append("")

    if spec.schemas:
        lines.append("### Schemas")
        for name, schema in spec.schemas.items():
            lines.append(f"{name}: {json.dumps(schema, indent=2)[:400]}")

    return "\n".join(lines)


# =============================================================================
# AGENT
# =============================================================================

def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str_tuple(value: Any) -> tuple:
    if not isinstance(value, list):
        return ()
    return tuple(str(v) for v in value)


class PlannerAgent:
    """Produces one TestPlan per run."""

    def __init__(self, generator):
        self.generator = generator
        self.last_provider = ""

    def plan(self, spec: NormalizedSpec, operations: Optional[List[Operation]] = None) -> TestPlan:
        """
        Plan tests for a spec.

        Args:
            spec: Normalized API description
            operations: Subset of spec.operations to cover (default: all)

        Returns:
            TestPlan with positive items first, then negative, then edge-case,
            priorities renumbered 1..n

        Raises:
            GenerationError: If no generation provider could answer
        """
        operations = list(spec.operations if operations is None else operations)
        base_url = spec.default_server_url or DEFAULT_BASE_URL

        prompt = build_planner_prompt(build_spec_summary(spec, operations))
        result = self.generator.generate(
            prompt,
            system_prompt=PLANNER_SYSTEM_PROMPT,
            temperature=0.2,
            max_tokens=6000,
            stage="plan",
        )
        self.last_provider = result.provider_id

        model_plan = self._parse_response(result.content, operations, base_url)

        negative = generate_negative_items(operations)
        edge_cases = generate_edge_case_items(operations)
        merged = list(model_plan.items) + negative + edge_cases
        items = tuple(
            replace(item, priority=index + 1)
            for index, item in enumerate(merged)
        )

        reasoning = (
            f"{model_plan.reasoning} Additionally, {len(negative)} negative tests and "
            f"{len(edge_cases)} edge-case tests were auto-generated for coverage."
        ).strip()

        logger.info(
            "Planned %d tests (%d positive, %d negative, %d edge-case)",
            len(items), len(model_plan.items), len(negative), len(edge_cases),
        )
        return TestPlan(
            title=model_plan.title,
            base_url=base_url,
            items=items,
            dependencies=model_plan.dependencies,
            reasoning=reasoning,
        )

    def _parse_response(self, raw: str, operations: List[Operation], base_url: str) -> TestPlan:
        parsed = try_parse_model_json(raw)
        if not isinstance(parsed, dict):
            logger.warning("Failed to parse planner response, using fallback plan")
            return self.fallback_plan(operations, base_url)

        by_id = {op.operation_id: op for op in operations}
        items: List[PlanItem] = []
        raw_items = parsed.get("items")
        for raw_item in raw_items if isinstance(raw_items, list) else []:
            if not isinstance(raw_item, dict):
                continue
            operation_id = str(raw_item.get("operationId") or "")
            op = by_id.get(operation_id)
            if op is None:
                logger.debug("Dropping planned item for unknown operation %r", operation_id)
                continue
            category = raw_item.get("category") or "positive"
            if category not in TEST_CATEGORIES:
                category = "positive"
            expected = _as_int(raw_item.get("expectedStatus"), 200)
            suggested = raw_item.get("suggestedBody")
            if suggested is not None and not isinstance(suggested, str):
                suggested = json.dumps(suggested)
            items.append(PlanItem(
                operation_id=operation_id,
                method=str(raw_item.get("method") or op.method).upper(),
                path=str(raw_item.get("path") or op.path),
                description=str(raw_item.get("testDescription") or f"Test {op.method} {op.path}"),
                category=category,
                expected_status=expected,
                priority=_as_int(raw_item.get("priority"), 99),
                depends_on=_as_str_tuple(raw_item.get("dependsOn")),
                assertions=_as_str_tuple(raw_item.get("assertions")) or (f"status {expected}",),
                needs_body=bool(raw_item.get("needsBody", op.has_body)),
                suggested_body=suggested,
            ))

        # Every operation is covered at least once
        covered = {item.operation_id for item in items}
        for op in operations:
            if op.operation_id not in covered:
                logger.info("Model skipped %s, adding default positive test", op.operation_id)
                items.append(self._default_item(op))

        dependencies = []
        raw_deps = parsed.get("dependencies")
        for dep in raw_deps if isinstance(raw_deps, list) else []:
            if not isinstance(dep, dict):
                continue
            source = dep.get("sourceOperationId")
            target = dep.get("targetOperationId")
            if source and target:
                dependencies.append(OperationDependency(
                    source_operation_id=str(source),
                    target_operation_id=str(target),
                    data_flow=str(dep.get("dataFlow") or ""),
                ))

        return TestPlan(
            title=str(parsed.get("title") or "API Test Plan"),
            base_url=base_url,
            items=tuple(items),
            dependencies=tuple(dependencies),
            reasoning=str(parsed.get("reasoning") or ""),
        )

    @staticmethod
    def _default_item(op: Operation, priority: int = 99) -> PlanItem:
        return PlanItem(
            operation_id=op.operation_id,
            method=op.method.upper(),
            path=op.path,
            description=f"Test {op.method} {op.path} with valid data",
            category="positive",
            expected_status=200,
            priority=priority,
            assertions=("status 200",),
            needs_body=op.has_body,
        )

    def fallback_plan(self, operations: List[Operation], base_url: str) -> TestPlan:
        """Basic positive-only plan, one item per operation."""
        return TestPlan(
            title="API Test Plan (fallback)",
            base_url=base_url,
            items=tuple(self._default_item(op, i + 1) for i, op in enumerate(operations)),
            reasoning="The model response could not be parsed; this is a basic positive-only plan.",
        )
