"""Negative-test guardrail for the repair stage.

Negative and edge-case tests send invalid input and expect a 4xx. When
the API answers 2xx instead, the test is right and the API is missing
validation. This module recognises that situation in a failure message
and rejects any proposed fix that turns such a test's expected 4xx into
a 2xx.
"""

import logging
import re
from typing import Dict, List, Optional, Set, Tuple

from agentic_api_testgen.models import Fix

logger = logging.getLogger(__name__)

# Substrings of a method name that mark a negative / edge-case test
NEGATIVE_TEST_PATTERNS: Tuple[str, ...] = (
    "_emptyBody", "_invalidTypes", "_missingFields", "_nullValues",
    "_specialChars", "_sqlInjection", "_xss", "_unauthorized",
    "_notFound", "_nonExistent", "_invalidId", "_exceededLength", "_negative",
    "_boundary", "_zeroId", "_duplicate", "_malformed", "_empty", "_invalid",
    "_forbidden", "_noAuth", "_badRequest", "_wrongType",
    "Negative", "EdgeCase", "Invalid", "Empty", "Null",
    "Unauthorized", "Forbidden", "BadRequest", "Malformed",
)

# REST Assured: "Expected status code <400> but was <201>."
STATUS_MISMATCH_RE = re.compile(
    r"expected\s+(?:status\s+code\s+)?<?(\d{3})>?\s+but\s+(?:was|got)\s+<?(\d{3})>?",
    re.IGNORECASE,
)

_METHOD_RE = re.compile(r"void\s+(\w+)\s*\(\s*\)\s*(?:throws\s+[\w.,\s]+?)?\s*\{")
_STATUS_CALL = ".statusCode("
_CODE_RE = re.compile(r"(?<!\d)([1-5]\d{2})(?!\d)")


def _is_4xx(code: int) -> bool:
    return 400 <= code < 500


def _is_2xx(code: int) -> bool:
    return 200 <= code < 300


def is_negative_test(test_name: str) -> bool:
    return any(pattern in test_name for pattern in NEGATIVE_TEST_PATTERNS)


def is_api_bug_failure(test_name: str, error_message: Optional[str]) -> bool:
    """A negative-named test that expected a 4xx and got a 2xx."""
    if not is_negative_test(test_name):
        return False
    match = STATUS_MISMATCH_RE.search(error_message or "")
    if not match:
        return False
    expected, actual = int(match.group(1)), int(match.group(2))
    return _is_4xx(expected) and _is_2xx(actual)


# =============================================================================
# JAVA SCANNING
# =============================================================================

def _skip_literal(source: str, index: int) -> int:
    """Return the index just past the string or char literal starting at index."""
    quote = source[index]
    i = index + 1
    while i < len(source):
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote or ch == "\n":
            return i + 1
        i += 1
    return i


def _method_body(source: str, open_brace_end: int) -> str:
    """Body text of a method whose opening '{' ends at open_brace_end."""
    depth = 1
    i = open_brace_end
    while i < len(source):
        ch = source[i]
        if ch in "\"'":
            i = _skip_literal(source, i)
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return source[open_brace_end:i]
        i += 1
    return source[open_brace_end:]


def _status_codes(body: str) -> Optional[Set[int]]:
    """Codes named in the first .statusCode(...) argument, e.g. anyOf(is(400), is(404))."""
    start = body.find(_STATUS_CALL)
    if start == -1:
        return None
    i = start + len(_STATUS_CALL)
    depth = 1
    while i < len(body) and depth > 0:
        ch = body[i]
        if ch in "\"'":
            i = _skip_literal(body, i)
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        i += 1
    argument = body[start + len(_STATUS_CALL):i - 1]
    codes = {int(c) for c in _CODE_RE.findall(argument)}
    return codes or None


def extract_negative_status_codes(java_source: str) -> Dict[str, Set[int]]:
    """Map each negative-named test method to the status codes it asserts."""
    result: Dict[str, Set[int]] = {}
    for match in _METHOD_RE.finditer(java_source):
        name = match.group(1)
        if not is_negative_test(name):
            continue
        codes = _status_codes(_method_body(java_source, match.end()))
        if codes:
            result[name] = codes
    return result


def is_weakened(original: Set[int], proposed: Set[int]) -> bool:
    """Original asserts only error codes; the proposal accepts a success code."""
    originally_rejecting = any(_is_4xx(c) for c in original) and not any(_is_2xx(c) for c in original)
    return originally_rejecting and any(_is_2xx(c) for c in proposed)


def weakened_methods(original_source: str, proposed_source: str) -> List[str]:
    original = extract_negative_status_codes(original_source)
    if not original:
        return []
    proposed = extract_negative_status_codes(proposed_source)
    return [
        name for name, codes in original.items()
        if name in proposed and is_weakened(codes, proposed[name])
    ]


def scrub_fixes(fixes: List[Fix], test_files: Dict[str, str]) -> Tuple[List[Fix], List[str]]:
    """
    Reject every fix that weakens a negative test.

    Returns:
        (kept fixes, paths of rejected fixes)
    """
    kept: List[Fix] = []
    rejected: List[str] = []
    for fix in fixes:
        original = test_files.get(fix.file_path)
        if original is None:
            kept.append(fix)
            continue
        weakened = weakened_methods(original, fix.new_content)
        if weakened:
            for name in weakened:
                logger.warning(
                    "BLOCKED: fix for %s changes %s from an error status to a success status",
                    fix.file_path, name,
                )
            rejected.append(fix.file_path)
            continue
        kept.append(fix)
    return kept, rejected
