"""Resilient parsing of JSON returned by the generation capability.

Model output that should be JSON often arrives fenced, wrapped in prose,
or cut off at the token limit. parse_model_json() tries, in order:

    1. strip whitespace and a leading/trailing code fence
    2. parse as-is
    3. parse the substring from the first '{' to the last '}'
    4. repair truncation: close an open string, then the open '[' and '{'
    5. give up and return the fallback

It never raises.
"""

import copy
import json
import logging
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


# Returned when nothing parses: unknown cause, no fixes, keep going
FALLBACK_REFLECTION: Dict[str, Any] = {
    "failureSource": "unknown",
    "summary": "Failed to parse model reflection response. Will retry with existing code.",
    "fixes": [],
    "shouldRetry": True,
}

_LEADING_FENCE_RE = re.compile(r"^```[A-Za-z]*[ \t]*\n?")
_TRAILING_FENCE_RE = re.compile(r"\n?```\s*$")


def strip_code_fence(text: str) -> str:
    """Remove one enclosing ```lang ... ``` fence, if present."""
    content = text.strip()
    content = _LEADING_FENCE_RE.sub("", content, count=1)
    content = _TRAILING_FENCE_RE.sub("", content, count=1)
    return content.strip()


def _try_parse(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def close_truncated_json(fragment: str) -> str:
    """
    Append the closers a truncated JSON fragment is missing.

    Scans character by character, tracking whether we are inside a string
    (honoring backslash escapes) and the net count of open '{' and '['.
    An open string is closed first, then brackets, then braces.
    """
    brace_count = 0
    bracket_count = 0
    in_string = False
    escape = False

    for ch in fragment:
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            brace_count += 1
        elif ch == "}":
            brace_count -= 1
        elif ch == "[":
            bracket_count += 1
        elif ch == "]":
            bracket_count -= 1

    repaired = fragment
    if in_string:
        repaired += '"'
    repaired += "]" * max(bracket_count, 0)
    repaired += "}" * max(brace_count, 0)
    return repaired


def try_parse_model_json(raw: str) -> Optional[Any]:
    """
    Run the repair ladder and return the parsed value, or None.

    Args:
        raw: Free-form text from the generation capability

    Returns:
        Parsed JSON value, or None when every attempt fails
    """
    content = strip_code_fence(raw or "")

    parsed = _try_parse(content)
    if parsed is not None:
        return parsed

    first_brace = content.find("{")
    last_brace = content.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        parsed = _try_parse(content[first_brace:last_brace + 1])
        if parsed is not None:
            return parsed

    if first_brace != -1:
        parsed = _try_parse(close_truncated_json(content[first_brace:]))
        if parsed is not None:
            logger.info("Parsed truncated JSON response (response was cut off)")
            return parsed

    logger.warning(
        "Failed to parse model JSON response (%d chars). Preview: %s",
        len(content),
        content[:500],
    )
    return None


def parse_model_json(raw: str, fallback: Optional[Dict[str, Any]] = None) -> Any:
    """
    Parse model output as JSON, returning a fallback object on failure.

    Args:
        raw: Free-form text from the generation capability
        fallback: Object to return when nothing parses
                  (default: FALLBACK_REFLECTION)

    Returns:
        The parsed value, or a fresh copy of the fallback
    """
    parsed = try_parse_model_json(raw)
    if parsed is not None:
        return parsed
    return copy.deepcopy(FALLBACK_REFLECTION if fallback is None else fallback)
