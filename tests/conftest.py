"""Shared fixtures: a scripted generation capability, a scripted executor, a sample spec."""

import json
from pathlib import Path
from typing import Dict, List

import pytest

from agentic_api_testgen.generation import GenerationResult
from agentic_api_testgen.models import ExecutionResult, TestCaseResult
from agentic_api_testgen.spec_store import SpecStore, parse_normalized_spec


# =============================================================================
# SAMPLE DATA
# =============================================================================

SAMPLE_SPEC_DOC = {
    "id": "things-api",
    "info": {"title": "Things API", "version": "1.0"},
    "servers": [{"url": "https://things.example.com"}],
    "operations": [
        {
            "operationId": "listThings",
            "method": "get",
            "path": "/things",
            "summary": "List things",
            "tags": ["things"],
            "responses": [{"statusCode": "200"}],
        },
        {
            "operationId": "createThing",
            "method": "post",
            "path": "/things",
            "summary": "Create a thing",
            "tags": ["things", "write"],
            "requestBody": {
                "content": {
                    "application/json": {
                        "schema": {"type": "object", "properties": {"title": {"type": "string"}}}
                    }
                }
            },
            "responses": [{"statusCode": "201"}],
        },
        {
            "operationId": "getThing",
            "method": "get",
            "path": "/things/{id}",
            "summary": "Get one thing",
            "tags": ["things"],
            "parameters": [{"name": "id", "in": "path", "required": True}],
            "responses": [{"statusCode": "200"}, {"statusCode": "404"}],
        },
    ],
}

PLANNER_RESPONSE = json.dumps({
    "title": "Things API Test Plan",
    "items": [
        {
            "operationId": "listThings",
            "method": "GET",
            "path": "/things",
            "testDescription": "List all things",
            "category": "positive",
            "expectedStatus": 200,
            "priority": 1,
            "assertions": ["status 200", "body is array"],
        },
        {
            "operationId": "createThing",
            "method": "POST",
            "path": "/things",
            "testDescription": "Create a thing",
            "category": "positive",
            "expectedStatus": 201,
            "priority": 2,
            "needsBody": True,
            "suggestedBody": {"title": "Widget"},
            "assertions": ["status 201", "response has id"],
        },
    ],
    "dependencies": [
        {
            "sourceOperationId": "createThing",
            "targetOperationId": "getThing",
            "dataFlow": "id from response -> path param {id}",
        }
    ],
    "reasoning": "Create before read.",
})

THINGS_TEST_PATH = "src/test/java/com/api/tests/ThingsApiTest.java"

THINGS_TEST_JAVA = """```java
package com.api.tests;

public class ThingsApiTest extends BaseTest {

    @Test
    void listThings() {
        given().when().get("/things").then().statusCode(200);
    }

    @Test
    void createThing_emptyBody() {
        given().body("{}").when().post("/things").then().statusCode(400);
    }

    @Test
    void getThing() {
        given().when().get("/things/1").then().statusCode(200);
    }
}
```"""


def passing_result(total: int = 5) -> ExecutionResult:
    return ExecutionResult(
        success=True,
        total=total,
        passed=total,
        test_results=[
            TestCaseResult(test_name=f"test_{n + 1}", class_name="ThingsApiTest", status="passed")
            for n in range(total)
        ],
        raw_output=f"Tests run: {total}, Failures: 0, Errors: 0, Skipped: 0",
    )


def failing_result(test_name: str, message: str, total: int = 5) -> ExecutionResult:
    return ExecutionResult(
        success=False,
        total=total,
        passed=total - 1,
        failed=1,
        test_results=[TestCaseResult(
            test_name=test_name,
            class_name="ThingsApiTest",
            status="failed",
            error_message=message,
        )],
        raw_output=f"Tests run: {total}, Failures: 1, Errors: 0, Skipped: 0",
    )


# =============================================================================
# FAKES
# =============================================================================

class FakeGenerator:
    """
    Scripted stand-in for GenerationRouter.

    responses maps a stage to a string, an exception, or a list of those
    (consumed in order; the last one repeats).
    """

    def __init__(self, responses: Dict[str, object], provider_id: str = "fake:model"):
        self.responses = {k: (list(v) if isinstance(v, list) else v) for k, v in responses.items()}
        self.provider_id = provider_id
        self.calls: List[dict] = []

    def generate(self, prompt, system_prompt=None, temperature=None, max_tokens=None, stage="generate"):
        self.calls.append({
            "prompt": prompt,
            "system_prompt": system_prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stage": stage,
        })
        response = self.responses.get(stage, "")
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, Exception):
            raise response
        return GenerationResult(content=response, provider_id=self.provider_id)

    def calls_for(self, stage: str) -> List[dict]:
        return [c for c in self.calls if c["stage"] == stage]


class FakeExecutor:
    """Returns scripted results and snapshots the test sources at every call."""

    def __init__(self, results: List[ExecutionResult]):
        self.results = list(results)
        self.calls: List[Path] = []
        self.snapshots: List[Dict[str, str]] = []

    def execute(self, suite_path) -> ExecutionResult:
        suite_path = Path(suite_path)
        self.calls.append(suite_path)
        self.snapshots.append({
            str(p.relative_to(suite_path)).replace("\\", "/"): p.read_text(encoding="utf-8")
            for p in sorted(suite_path.rglob("*.java"))
        })
        return self.results.pop(0) if len(self.results) > 1 else self.results[0]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def sample_spec():
    return parse_normalized_spec(SAMPLE_SPEC_DOC)


@pytest.fixture
def spec_store(sample_spec):
    store = SpecStore()
    store.add(sample_spec)
    return store


@pytest.fixture
def make_generator():
    def _make(responses: Dict[str, object], provider_id: str = "fake:model") -> FakeGenerator:
        return FakeGenerator(responses, provider_id)
    return _make


@pytest.fixture
def make_executor():
    def _make(*results: ExecutionResult) -> FakeExecutor:
        return FakeExecutor(list(results))
    return _make


@pytest.fixture(autouse=True)
def _no_langsmith_tracing(monkeypatch):
    for name in ("LANGSMITH_TRACING", "LANGCHAIN_TRACING_V2", "LANGSMITH_API_KEY", "LANGCHAIN_API_KEY"):
        monkeypatch.delenv(name, raising=False)
