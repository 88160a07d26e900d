"""Prompt templates for the planner, writer and reflector agents."""

# =============================================================================
# PLANNER
# =============================================================================

PLANNER_SYSTEM_PROMPT = (
    "You are an API testing expert. Return only valid JSON. No markdown fences."
)

_PLANNER_RESPONSE_SHAPE = """{
  "title": "Human-readable test plan title",
  "reasoning": "2-3 sentences explaining your test strategy",
  "dependencies": [
    {
      "sourceOperationId": "createProduct",
      "targetOperationId": "getProductById",
      "dataFlow": "id from POST response used as {id} path parameter"
    }
  ],
  "items": [
    {
      "operationId": "createProduct",
      "method": "POST",
      "path": "/products",
      "testDescription": "Create a new product with valid data",
      "category": "positive",
      "expectedStatus": 201,
      "dependsOn": [],
      "assertions": ["status 201", "response has id"],
      "needsBody": true,
      "suggestedBody": "{\\"title\\":\\"Wireless Mouse\\",\\"price\\":29.99}"
    }
  ]
}"""


def build_planner_prompt(spec_summary: str) -> str:
    return f"""You are an expert API test architect. Analyze this API description and produce a test plan for POSITIVE (happy path) scenarios.

## API Description

{spec_summary}

## Your Task

For EACH operation, create ONE positive test with:
- Realistic request body (for POST/PUT/PATCH) whose field types match the schema
- Meaningful assertions (check response fields, not just status)
- Correct dependencies (e.g., POST before GET-by-id)

Return a JSON object:
{_PLANNER_RESPONSE_SHAPE}

## Rules
1. One positive test per operation. Negative and edge-case tests are added separately.
2. For POST/PUT/PATCH, always include a realistic suggestedBody (valid JSON as an escaped string)
3. For POST, do NOT include "id" in suggestedBody (the API generates it)
4. Include meaningful assertions (check response fields, not only the status code)
5. Identify ALL dependencies (data flowing from one operation to another)
6. EVERY operation listed above MUST appear in items
7. Return ONLY valid JSON. No markdown, no explanation outside the JSON."""


# =============================================================================
# WRITER
# =============================================================================

WRITE_TEST_CLASS_SYSTEM_PROMPT = (
    "You are a senior Java test engineer. Return ONLY compilable Java code. "
    "No markdown. No explanations."
)


def build_write_test_class_prompt(
    namespace: str,
    class_name: str,
    base_url: str,
    items_description: str,
    dependency_info: str,
) -> str:
    return f"""Write a COMPLETE, compilable Java test class for REST Assured + JUnit 5.

## Requirements

Package: {namespace}
Class name: {class_name}
Extends: BaseTest (provides RequestSpecification spec)
Base URL: {base_url}

## Operations to test

{items_description}

## Dependencies
{dependency_info or "None. Operations are independent."}

## MANDATORY IMPORTS (copy exactly)

package {namespace};

import io.restassured.response.Response;
import org.junit.jupiter.api.DisplayName;
import org.junit.jupiter.api.MethodOrderer;
import org.junit.jupiter.api.Order;
import org.junit.jupiter.api.Test;
import org.junit.jupiter.api.TestMethodOrder;

import java.util.*;
import java.time.*;

import static io.restassured.RestAssured.given;
import static org.hamcrest.Matchers.*;

## CLASS STRUCTURE

@TestMethodOrder(MethodOrderer.OrderAnnotation.class)
public class {class_name} extends BaseTest {{
    // static fields for IDs and generated data
}}

## Dynamic Data Rules

- Build request bodies using Map<String, Object> and let REST Assured serialize them.
- Match the field type from the schema: integers get numbers, strings get strings.
- integer fields: new Random().nextInt(); number fields: new Random().nextDouble() * 100
- string fields: "test-" + UUID.randomUUID(); date-time fields: OffsetDateTime.now().toString()
- For POST requests, OMIT server-generated fields like "id".
- If you must send a raw JSON string body, keep it on ONE line.

## Positive Tests
- Use the expected status from the plan.
- Assert key response fields and that generated IDs are not null.
- Use dependency chaining when needed.

## Negative and Edge-Case Tests
- Send the invalid input the plan describes.
- Assert ONLY the status code, using the widest acceptable disjunction,
  e.g. .statusCode(anyOf(is(400), is(404), is(422))).
- Do NOT assert response body fields.
- Name each method <operationId>_<scenario>, e.g. createProduct_emptyBody.

## Critical Rules
1. Every request starts with given().spec(spec)
2. Do NOT call .baseUri()
3. Tests MUST FAIL if API behavior is incorrect. Do NOT mask failures.
4. Return ONLY Java code. No markdown."""


# =============================================================================
# REFLECTOR / SELF-HEAL
# =============================================================================

REFLECTOR_SYSTEM_PROMPT = (
    "You are a senior test engineer fixing compilation and test errors. "
    "Return ONLY a valid JSON object. No markdown fences."
)

COMPILATION_NOTE = """
IMPORTANT: This is a COMPILATION ERROR. The code did not compile, so no tests ran.
You MUST fix ALL compilation issues:
- Missing imports (org.junit.jupiter.api.DisplayName, static io.restassured.RestAssured.given)
- @TestMethodOrder(OrderAnnotation.class) must be @TestMethodOrder(MethodOrderer.OrderAnnotation.class)
- Syntax errors and wrong method signatures
Include a fix entry for EVERY affected file.
"""

_REFLECTOR_RESPONSE_SHAPE = """{
  "failureSource": "test-code" | "api-bug" | "environment" | "unknown",
  "summary": "Short explanation",
  "shouldRetry": true/false,
  "fixes": [
    {
      "filePath": "src/test/java/.../SomethingApiTest.java",
      "newContent": "COMPLETE FIXED JAVA FILE",
      "explanation": "What was fixed"
    }
  ]
}"""


def build_reflector_prompt(
    iteration: int,
    is_compilation_error: bool,
    failure_details: str,
    raw_output_tail: str,
    relevant_files_content: str,
) -> str:
    compilation_block = f"\n{COMPILATION_NOTE}\n" if is_compilation_error else ""

    return f"""You are debugging REST Assured test failures (iteration {iteration}).
{compilation_block}
## Test failures

{failure_details}

## Raw output (tail)

{raw_output_tail}

## Source files

{relevant_files_content}

## Core Principle

You MUST distinguish between:

### TEST CODE ISSUE
- syntax errors or missing imports
- incorrect REST Assured usage
- invalid Java code
- wrong assumptions in POSITIVE tests about response fields

FIX these.

### ACTUAL API FAILURE (DO NOT FIX)
- the API returns a success status for invalid input
- the API is missing validation
- the API returns an unexpected business result

Do NOT modify assertions or expected status codes. Mark as api-bug.

### ENVIRONMENT
- connection refused, timeouts, DNS failures

Mark as environment with shouldRetry false.

## Output Format (STRICT JSON)

{_REFLECTOR_RESPONSE_SHAPE}

## Fixing Rules

1. NEVER change negative or edge-case test expectations from an error status to a success status.
2. NEVER change an expected status just to make a test pass.
3. NEVER remove business assertions unless they are syntactically invalid.
4. Each fix.newContent must be the COMPLETE Java file (package, all imports, class, all methods).
5. Only use filePath values shown in the source files above.
6. Do NOT use .baseUri(). Request bodies must be single-line strings.
7. This is iteration {iteration}. If the same test failed before, the previous fix did not work. Try a different approach.
8. Return ONLY JSON."""
