"""Deterministic clean-up of model-written Java test classes.

Applied to every generated class and every reflector fix before it is
written to disk. post_process_code(post_process_code(x)) == post_process_code(x).

Passes, in order:
    1. drop markdown code-fence lines
    2. rewrite OrderAnnotation references to the MethodOrderer form
    3. strip .baseUri(...) calls (BaseTest's spec already carries the base URL)
    4. collapse a .body("...") argument split over several lines into one literal
    5. inject missing imports for known symbols

The annotation rewrite runs before import injection so the MethodOrderer
import it needs is added in the same pass.
"""

import re
from typing import List, Optional, Tuple

_FENCE_LINE_RE = re.compile(r"^[ \t]*```[\w+-]*[ \t]*(?:\n|$)", re.MULTILINE)

_ORDER_ANNOTATION_REWRITES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\bTestMethodOrder\.OrderAnnotation\b"), "MethodOrderer.OrderAnnotation"),
    (
        re.compile(r"@TestMethodOrder\(\s*OrderAnnotation\.class\s*\)"),
        "@TestMethodOrder(MethodOrderer.OrderAnnotation.class)",
    ),
]

_BASE_URI_RE = re.compile(r"\s*\.baseUri\(")

_HAMCREST_MATCHERS = (
    "notNullValue", "nullValue", "equalTo", "greaterThan", "greaterThanOrEqualTo",
    "lessThan", "lessThanOrEqualTo", "hasSize", "hasItem", "hasItems", "hasKey",
    "anyOf", "allOf", "is", "not", "containsString", "instanceOf", "everyItem",
    "empty", "emptyString", "oneOf",
)

# (usage pattern, required import)
IMPORT_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"@DisplayName\b"), "import org.junit.jupiter.api.DisplayName;"),
    (re.compile(r"@Test\b"), "import org.junit.jupiter.api.Test;"),
    (re.compile(r"@Order\b"), "import org.junit.jupiter.api.Order;"),
    (re.compile(r"@TestMethodOrder\b"), "import org.junit.jupiter.api.TestMethodOrder;"),
    (re.compile(r"(?<![\w.])MethodOrderer\b"), "import org.junit.jupiter.api.MethodOrderer;"),
    (re.compile(r"(?<![\w.])given\(\)"), "import static io.restassured.RestAssured.given;"),
    (
        re.compile(r"(?<![\w.])(?:" + "|".join(_HAMCREST_MATCHERS) + r")\("),
        "import static org.hamcrest.Matchers.*;",
    ),
    (re.compile(r"(?<![\w.])Response\s+\w"), "import io.restassured.response.Response;"),
]

MAX_BODY_LINES = 50
_BODY_CALL = ".body("


# =============================================================================
# PASSES
# =============================================================================

def strip_fences(code: str) -> str:
    return _FENCE_LINE_RE.sub("", code)


def fix_order_annotation(code: str) -> str:
    for pattern, replacement in _ORDER_ANNOTATION_REWRITES:
        code = pattern.sub(replacement, code)
    return code


def _call_end(code: str, index: int) -> int:
    """Index just past the ) closing the call whose ( ends right before index, or -1."""
    depth = 1
    i = index
    while i < len(code):
        ch = code[i]
        if ch in "\"'":
            # Skip string and char literals
            quote = ch
            i += 1
            while i < len(code) and code[i] not in (quote, "\n"):
                i += 2 if code[i] == "\\" else 1
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return -1


def strip_base_uri(code: str) -> str:
    pieces = []
    pos = 0
    for match in _BASE_URI_RE.finditer(code):
        if match.start() < pos:
            continue
        end = _call_end(code, match.end())
        if end == -1:
            break
        pieces.append(code[pos:match.start()])
        pos = end
    pieces.append(code[pos:])
    return "".join(pieces)


def _wildcard_for(import_line: str) -> str:
    """import a.b.C; -> import a.b.*;  (unchanged if already a wildcard)"""
    return re.sub(r"\.\w+;$", ".*;", import_line)


def _code_without_imports(lines: List[str]) -> str:
    return "\n".join(
        line for line in lines
        if not line.lstrip().startswith(("import ", "package "))
    )


def inject_missing_imports(code: str) -> str:
    """Add the import for every known symbol the class uses but does not import."""
    lines = code.split("\n")
    existing = {line.strip() for line in lines if line.strip().startswith("import ")}
    body = _code_without_imports(lines)

    missing: List[str] = []
    for pattern, import_line in IMPORT_RULES:
        if not pattern.search(body):
            continue
        if import_line in existing or _wildcard_for(import_line) in existing:
            continue
        if import_line not in missing:
            missing.append(import_line)

    if not missing:
        return code

    package_idx = next(
        (i for i, line in enumerate(lines) if line.lstrip().startswith("package ")),
        None,
    )
    if package_idx is None:
        lines[0:0] = missing + [""]
    else:
        lines[package_idx + 1:package_idx + 1] = [""] + missing
    return "\n".join(lines)


def _collapse_body_call(lines: List[str], first: int, start: int) -> Optional[Tuple[str, int]]:
    """
    Scan a .body( call that does not close on its own line.

    The argument may only consist of string literals, '+' and whitespace.
    A literal left open at the end of a line continues on the next line
    (leading indentation dropped). Returns (merged line, index of the last
    consumed line), or None to leave the code untouched.
    """
    head = lines[first][start + len(_BODY_CALL):]
    if head.lstrip().startswith('"""'):
        return None

    parts: List[str] = []
    current: Optional[List[str]] = None
    escape = False
    last = min(len(lines), first + MAX_BODY_LINES)

    for j in range(first, last):
        text = lines[j]
        if j == first:
            k = start + len(_BODY_CALL)
        else:
            stripped = text.lstrip()
            if current is None and stripped.startswith("."):
                # Next chained call begins before the argument closed
                return None
            k = len(text) - len(stripped)

        while k < len(text):
            ch = text[k]
            if current is not None:
                if escape:
                    current.append(ch)
                    escape = False
                elif ch == "\\":
                    current.append(ch)
                    escape = True
                elif ch == '"':
                    parts.append("".join(current))
                    current = None
                else:
                    current.append(ch)
            elif ch == '"':
                current = []
            elif ch == ")":
                if j == first:
                    return None
                merged = lines[first][:start] + '.body("' + "".join(parts) + '")' + text[k + 1:]
                return merged, j
            elif ch != "+" and not ch.isspace():
                return None
            k += 1

        escape = False

    return None


def merge_multiline_body(code: str) -> str:
    """Collapse multi-line or unterminated .body("...") literals into one literal."""
    lines = code.split("\n")
    result: List[str] = []
    i = 0
    while i < len(lines):
        start = lines[i].find(_BODY_CALL)
        collapsed = _collapse_body_call(lines, i, start) if start != -1 else None
        if collapsed is None:
            result.append(lines[i])
            i += 1
            continue
        merged, end = collapsed
        result.append(merged)
        i = end + 1
    return "\n".join(result)


# =============================================================================
# ENTRY POINT
# =============================================================================

def post_process_code(code: str) -> str:
    """Run every clean-up pass over one Java source file."""
    result = strip_fences(code)
    result = fix_order_annotation(result)
    result = strip_base_uri(result)
    result = merge_multiline_body(result)
    result = inject_missing_imports(result)
    return result.strip() + "\n"
