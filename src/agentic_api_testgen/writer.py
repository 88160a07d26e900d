"""Test writer agent: turns a TestPlan into a complete Maven test project."""

import logging
import re
from collections import OrderedDict
from typing import Dict, List, Optional

from agentic_api_testgen.code_postprocess import post_process_code
from agentic_api_testgen.models import GeneratedFile, PlanItem, TestPlan, TestSuite
from agentic_api_testgen.prompts import (
    WRITE_TEST_CLASS_SYSTEM_PROMPT,
    build_write_test_class_prompt,
)
from agentic_api_testgen.scaffold import readme_md, scaffold_files

logger = logging.getLogger(__name__)


def sanitize_suite_name(name: Optional[str]) -> str:
    """'FakeStore API' -> 'fakestore-api'; empty -> 'api-tests'."""
    cleaned = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return cleaned or "api-tests"


def group_items(items: List[PlanItem]) -> Dict[str, List[PlanItem]]:
    """Group plan items by the first path segment, in first-seen order."""
    groups: Dict[str, List[PlanItem]] = OrderedDict()
    for item in items:
        path = item.path.split("?", 1)[0]
        segments = [s for s in path.split("/") if s]
        group = segments[0] if segments else "Api"
        groups.setdefault(group, []).append(item)
    return groups


def to_class_name(group: str) -> str:
    """'products' -> 'ProductsApiTest'."""
    cleaned = re.sub(r"[^A-Za-z0-9]", "", group)
    if not cleaned or cleaned[0].isdigit():
        cleaned = "Api" + cleaned
    return cleaned[0].upper() + cleaned[1:] + "ApiTest"


def describe_items(items: List[PlanItem]) -> str:
    blocks = []
    for item in items:
        desc = f"- {item.method} {item.path} ({item.operation_id})"
        desc += f"\n  Category: {item.category}"
        desc += f"\n  Expected status: {item.expected_status}"
        desc += f"\n  Description: {item.description}"
        desc += f"\n  Assertions: {', '.join(item.assertions)}"
        if item.needs_body and item.suggested_body:
            desc += f"\n  Request body: {item.suggested_body}"
        if item.depends_on:
            desc += f"\n  Depends on: {', '.join(item.depends_on)}"
        blocks.append(desc)
    return "\n\n".join(blocks)


def describe_dependencies(plan: TestPlan, items: List[PlanItem]) -> str:
    ids = {item.operation_id for item in items}
    return "\n".join(
        f"  - {d.source_operation_id} -> {d.target_operation_id}: {d.data_flow}"
        for d in plan.dependencies
        if d.source_operation_id in ids or d.target_operation_id in ids
    )


class TestWriterAgent:
    """Writes scaffolding deterministically and one model-written class per group."""

    __test__ = False

    def __init__(self, generator):
        self.generator = generator
        self.last_provider = ""

    def write(self, plan: TestPlan, namespace: str, spec_title: Optional[str] = None) -> TestSuite:
        """
        Write a complete test project for a plan.

        Args:
            plan: The run's test plan
            namespace: Java base package (e.g. com.api.tests)
            spec_title: Used for the suite name; falls back to plan.title

        Returns:
            TestSuite with scaffolding, test classes and README

        Raises:
            GenerationError: If no generation provider could answer
        """
        suite_name = sanitize_suite_name(spec_title or plan.title)
        package_path = namespace.replace(".", "/")

        files: List[GeneratedFile] = list(scaffold_files(suite_name, namespace, plan))

        groups = group_items(list(plan.items))
        for group, items in groups.items():
            class_name = to_class_name(group)
            logger.info("Writing %s (%d tests)", class_name, len(items))
            code = self.write_test_class(plan, items, namespace, class_name)
            files.append(GeneratedFile(f"src/test/java/{package_path}/{class_name}.java", code))

        files.append(GeneratedFile("README.md", readme_md(suite_name, plan)))

        return TestSuite(suite_name=suite_name, namespace=namespace, files=tuple(files))

    def write_test_class(
        self,
        plan: TestPlan,
        items: List[PlanItem],
        namespace: str,
        class_name: str,
    ) -> str:
        prompt = build_write_test_class_prompt(
            namespace=namespace,
            class_name=class_name,
            base_url=plan.base_url,
            items_description=describe_items(items),
            dependency_info=describe_dependencies(plan, items),
        )
        result = self.generator.generate(
            prompt,
            system_prompt=WRITE_TEST_CLASS_SYSTEM_PROMPT,
            temperature=0.15,
            max_tokens=6000,
            stage="write",
        )
        self.last_provider = result.provider_id
        return self.post_process_code(result.content)

    def post_process_code(self, code: str) -> str:
        return post_process_code(code)
