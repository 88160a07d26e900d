"""Parsers for Maven / Surefire console output.

Three independent pieces, each with a narrow grammar:

Compile failure:
    the text "COMPILATION ERROR", or any line like
    [ERROR] /path/Foo.java:[12,8] cannot find symbol

Failure summary blocks (after the run):
    [ERROR] Failures:
    [ERROR]   ThingsApiTest.createThing_emptyBody:42 1 expectation failed.
    Expected status code <400> but was <200>.
    [ERROR] Errors:
    [ERROR]   ThingsApiTest.getThing:30 » IllegalState boom

    Each entry is a qualified (or simple) class name, a method name, an
    optional line number and a message. Following lines that carry no
    [LEVEL] marker and are not blank belong to the entry.

Totals:
    Tests run: 5, Failures: 1, Errors: 0, Skipped: 0
    Surefire prints one per class and a final one; the last line wins.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from agentic_api_testgen.models import TestCaseResult

_COMPILE_LINE_RE = re.compile(r"\[ERROR\].*\.java:\[\d+,\d+\]")
_COMPILE_DETAIL_RE = re.compile(r"\[ERROR\].*(?:\.java:|cannot find symbol|error:)")

_SECTION_RE = re.compile(r"^\[ERROR\]\s+(Failures|Errors):\s*$")
_ENTRY_RE = re.compile(
    r"^\[ERROR\]\s{2,}((?:[\w$]+\.)*[\w$]+)\.([\w$]+)(?::(\d+))?(?:\s+(.*))?$"
)
_MARKER_RE = re.compile(r"^\[(?:ERROR|INFO|WARNING|WARN|DEBUG)\]")

_TOTALS_RE = re.compile(
    r"Tests run:\s*(\d+),\s*Failures:\s*(\d+),\s*Errors:\s*(\d+),\s*Skipped:\s*(\d+)"
)
_RUNNING_RE = re.compile(r"Running\s+([\w.$]+)")


@dataclass
class SurefireTotals:
    run: int = 0
    failures: int = 0
    errors: int = 0
    skipped: int = 0

    @property
    def passed(self) -> int:
        return max(self.run - self.failures - self.errors - self.skipped, 0)


# =============================================================================
# COMPILATION
# =============================================================================

def is_compilation_failure(output: str) -> bool:
    if "COMPILATION ERROR" in output:
        return True
    return any(_COMPILE_LINE_RE.search(line) for line in output.splitlines())


def extract_compilation_errors(output: str, limit: int = 20) -> str:
    """The compiler's [ERROR] lines, at most `limit` of them."""
    lines = [line for line in output.splitlines() if _COMPILE_DETAIL_RE.search(line)]
    return "\n".join(lines[:limit])


# =============================================================================
# FAILURE BLOCKS
# =============================================================================

def _simple_name(qualified: str) -> str:
    return qualified.rsplit(".", 1)[-1]


def _build_result(
    status: str,
    class_name: str,
    test_name: str,
    summary: str,
    details: List[str],
) -> TestCaseResult:
    summary = summary.strip()
    if summary.startswith("»"):
        summary = summary[1:].strip()
    message = " ".join([summary] + details).strip()
    return TestCaseResult(
        test_name=test_name,
        class_name=_simple_name(class_name),
        status=status,
        error_message=message or None,
        stack_trace="\n".join(details) or None,
    )


def parse_failure_blocks(output: str) -> List[TestCaseResult]:
    """Parse the Failures:/Errors: summary sections into failed/error results."""
    results: List[TestCaseResult] = []
    section: Optional[str] = None
    entry = None  # (class_name, test_name, summary, details)

    def flush():
        nonlocal entry
        if entry is not None:
            results.append(_build_result(section, *entry))
            entry = None

    for line in output.splitlines():
        line = line.rstrip()

        header = _SECTION_RE.match(line)
        if header:
            flush()
            section = "failed" if header.group(1) == "Failures" else "error"
            continue

        if section is None:
            continue

        match = _ENTRY_RE.match(line)
        if match:
            flush()
            class_name, test_name, _line_no, summary = match.groups()
            entry = (class_name, test_name, summary or "", [])
            continue

        stripped = line.strip()
        if not stripped:
            flush()
            continue

        if _MARKER_RE.match(stripped):
            # Any other marker line closes the section
            flush()
            section = None
            continue

        if entry is not None:
            entry[3].append(stripped)

    flush()
    return results


# =============================================================================
# TOTALS
# =============================================================================

def parse_totals(output: str) -> Optional[SurefireTotals]:
    """Return the counts from the last totals line, or None if there is none."""
    matches = _TOTALS_RE.findall(output)
    if not matches:
        return None
    run, failures, errors, skipped = (int(v) for v in matches[-1])
    return SurefireTotals(run=run, failures=failures, errors=errors, skipped=skipped)


def last_running_class(output: str) -> str:
    matches = _RUNNING_RE.findall(output)
    return _simple_name(matches[-1]) if matches else "Unknown"


def passed_placeholders(count: int, class_name: str) -> List[TestCaseResult]:
    """Surefire's summary does not list passing tests; stand in for them."""
    return [
        TestCaseResult(test_name=f"test_{n + 1}", class_name=class_name, status="passed")
        for n in range(max(count, 0))
    ]
