"""Tests for Maven/Surefire console output parsing (fixture-based, no Maven)."""

from agentic_api_testgen.surefire_parser import (
    extract_compilation_errors,
    is_compilation_failure,
    last_running_class,
    parse_failure_blocks,
    parse_totals,
    passed_placeholders,
)


# =============================================================================
# FIXTURES - Console output samples
# =============================================================================

FAILED_RUN_OUTPUT = """[INFO] -------------------------------------------------------
[INFO]  T E S T S
[INFO] -------------------------------------------------------
[INFO] Running com.api.tests.ThingsApiTest
[ERROR] Tests run: 5, Failures: 1, Errors: 1, Skipped: 0, Time elapsed: 2.1 s <<< FAILURE! - in com.api.tests.ThingsApiTest
[INFO]
[INFO] Results:
[INFO]
[ERROR] Failures:
[ERROR]   ThingsApiTest.createThing_emptyBody:42 1 expectation failed.
Expected status code <400> but was <200>.

[ERROR] Errors:
[ERROR]   com.api.tests.ThingsApiTest.getThing:30 » IllegalState connection reset
[INFO]
[ERROR] Tests run: 5, Failures: 1, Errors: 1, Skipped: 0
[INFO]
[INFO] BUILD FAILURE
"""

PASSING_RUN_OUTPUT = """[INFO] Running com.api.tests.ThingsApiTest
[INFO] Tests run: 4, Failures: 0, Errors: 0, Skipped: 0, Time elapsed: 1.2 s - in com.api.tests.ThingsApiTest
[INFO] Results:
[INFO] Tests run: 4, Failures: 0, Errors: 0, Skipped: 1
[INFO] BUILD SUCCESS
"""

COMPILE_FAILURE_OUTPUT = """[INFO] Compiling 3 source files
[ERROR] COMPILATION ERROR :
[ERROR] /work/things-api/src/test/java/com/api/tests/ThingsApiTest.java:[12,8] cannot find symbol
[ERROR]   symbol:   class Response
[INFO] BUILD FAILURE
"""


class TestCompilationDetection:
    """Tests for the compile-failure detector."""

    def test_detects_compilation_error_banner(self):
        assert is_compilation_failure(COMPILE_FAILURE_OUTPUT) is True

    def test_detects_java_location_line_without_banner(self):
        output = "[ERROR] /x/Foo.java:[3,1] ';' expected"
        assert is_compilation_failure(output) is True

    def test_test_failures_are_not_compile_failures(self):
        assert is_compilation_failure(FAILED_RUN_OUTPUT) is False

    def test_extracts_compiler_lines(self):
        details = extract_compilation_errors(COMPILE_FAILURE_OUTPUT)
        assert "ThingsApiTest.java:[12,8] cannot find symbol" in details
        assert "Compiling 3 source files" not in details


class TestFailureBlocks:
    """Tests for the Failures:/Errors: section parser."""

    def test_parses_failure_with_continuation_line(self):
        results = parse_failure_blocks(FAILED_RUN_OUTPUT)
        failure = results[0]
        assert failure.status == "failed"
        assert failure.class_name == "ThingsApiTest"
        assert failure.test_name == "createThing_emptyBody"
        assert "Expected status code <400> but was <200>." in failure.error_message

    def test_parses_error_with_qualified_class(self):
        results = parse_failure_blocks(FAILED_RUN_OUTPUT)
        error = results[1]
        assert error.status == "error"
        assert error.class_name == "ThingsApiTest"
        assert error.test_name == "getThing"
        assert error.error_message == "IllegalState connection reset"

    def test_only_section_entries_are_parsed(self):
        assert len(parse_failure_blocks(FAILED_RUN_OUTPUT)) == 2

    def test_no_sections_no_results(self):
        assert parse_failure_blocks(PASSING_RUN_OUTPUT) == []


class TestTotals:
    """Tests for the totals line parser."""

    def test_last_totals_line_wins(self):
        totals = parse_totals(PASSING_RUN_OUTPUT)
        assert (totals.run, totals.failures, totals.errors, totals.skipped) == (4, 0, 0, 1)
        assert totals.passed == 3

    def test_failed_run_totals(self):
        totals = parse_totals(FAILED_RUN_OUTPUT)
        assert totals.run == 5
        assert totals.passed == 3

    def test_no_totals(self):
        assert parse_totals("BUILD FAILURE") is None


class TestPlaceholders:
    """Tests for passed-test placeholders."""

    def test_last_running_class(self):
        assert last_running_class(FAILED_RUN_OUTPUT) == "ThingsApiTest"
        assert last_running_class("") == "Unknown"

    def test_placeholders(self):
        placeholders = passed_placeholders(2, "ThingsApiTest")
        assert [p.test_name for p in placeholders] == ["test_1", "test_2"]
        assert all(p.status == "passed" for p in placeholders)
