"""Executor agent: runs the build/test tool and parses its output.

No model calls here. A non-zero exit from the build tool is the normal
way test failures are reported, so it is never an error; only process
faults (timeout, oversized output, missing tool) raise ExecutorError.
"""

import logging
import os
import shlex
import subprocess
import time
from pathlib import Path
from typing import Optional

from agentic_api_testgen.constants import (
    DEFAULT_BUILD_COMMAND,
    DEFAULT_BUILD_TIMEOUT_S,
    DEFAULT_MAX_OUTPUT_BYTES,
    DEFAULT_REPORT_COMMAND,
    DEFAULT_REPORT_TIMEOUT_S,
    RAW_OUTPUT_TAIL_CHARS,
)
from agentic_api_testgen.models import (
    COMPILATION_CLASS_NAME,
    COMPILATION_TEST_NAME,
    ExecutionResult,
    TestCaseResult,
)
from agentic_api_testgen.surefire_parser import (
    extract_compilation_errors,
    is_compilation_failure,
    last_running_class,
    parse_failure_blocks,
    parse_totals,
    passed_placeholders,
)

logger = logging.getLogger(__name__)


class ExecutorError(Exception):
    """Raised when the build/test process itself fails to run."""
    pass


class ExecutorAgent:
    """Runs the test suite in a directory and returns an ExecutionResult."""

    def __init__(
        self,
        build_command: str = DEFAULT_BUILD_COMMAND,
        timeout_s: float = DEFAULT_BUILD_TIMEOUT_S,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        report_command: Optional[str] = DEFAULT_REPORT_COMMAND,
        report_timeout_s: float = DEFAULT_REPORT_TIMEOUT_S,
    ):
        self.build_command = build_command
        self.timeout_s = timeout_s
        self.max_output_bytes = max_output_bytes
        self.report_command = report_command
        self.report_timeout_s = report_timeout_s

    def _run_build(self, suite_path: Path) -> str:
        env = {**os.environ, "MAVEN_OPTS": "-Xmx512m"}
        try:
            result = subprocess.run(
                shlex.split(self.build_command),
                cwd=suite_path,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
                env=env,
            )
        except subprocess.TimeoutExpired:
            raise ExecutorError(
                f"'{self.build_command}' timed out after {self.timeout_s:g}s in {suite_path}"
            )
        except FileNotFoundError:
            raise ExecutorError(
                f"Build tool not found: '{shlex.split(self.build_command)[0]}'. Is it on PATH?"
            )

        stdout = result.stdout or ""
        stderr = result.stderr or ""
        size = len(stdout.encode("utf-8")) + len(stderr.encode("utf-8"))
        if size > self.max_output_bytes:
            raise ExecutorError(
                f"Build output exceeded {self.max_output_bytes} bytes ({size} bytes)"
            )

        logger.debug("'%s' exited with code %d", self.build_command, result.returncode)
        return stdout + "\n" + stderr

    def _generate_report(self, suite_path: Path) -> None:
        """Best-effort Allure report; failure is logged, never raised."""
        if not self.report_command:
            return
        try:
            result = subprocess.run(
                shlex.split(self.report_command),
                cwd=suite_path,
                capture_output=True,
                text=True,
                timeout=self.report_timeout_s,
            )
        except (subprocess.SubprocessError, OSError) as e:
            logger.warning("Report generation skipped: %s", e)
            return
        if result.returncode != 0:
            logger.warning("Report generation exited with code %d", result.returncode)
        else:
            logger.info("Allure report generated in %s", suite_path / "target" / "site")

    def execute(self, suite_path) -> ExecutionResult:
        """
        Run the build/test command in suite_path and parse the results.

        Raises:
            ExecutorError: On timeout, oversized output, missing tool or suite directory
        """
        suite_path = Path(suite_path)
        if not suite_path.is_dir():
            raise ExecutorError(f"Suite directory not found: {suite_path}")

        start = time.monotonic()
        output = self._run_build(suite_path)
        duration_ms = int((time.monotonic() - start) * 1000)
        raw_tail = output[-RAW_OUTPUT_TAIL_CHARS:]

        if is_compilation_failure(output):
            details = extract_compilation_errors(output)
            logger.info("Compilation failed in %s", suite_path)
            return ExecutionResult(
                success=False,
                duration_ms=duration_ms,
                test_results=[TestCaseResult(
                    test_name=COMPILATION_TEST_NAME,
                    class_name=COMPILATION_CLASS_NAME,
                    status="error",
                    error_message="Compilation failed; tests could not run",
                    stack_trace=details or output[-3000:],
                )],
                raw_output=raw_tail,
                compilation_failed=True,
            )

        failures = parse_failure_blocks(output)
        totals = parse_totals(output)

        if totals is not None:
            total = totals.run
            failed = totals.failures
            errors = totals.errors
            skipped = totals.skipped
            passed = totals.passed
        else:
            failed = sum(1 for t in failures if t.status == "failed")
            errors = sum(1 for t in failures if t.status == "error")
            total = failed + errors
            skipped = 0
            passed = 0

        test_results = failures + passed_placeholders(passed, last_running_class(output))

        if total > 0:
            self._generate_report(suite_path)

        success = total > 0 and failed == 0 and errors == 0
        logger.info(
            "Tests run: %d, passed: %d, failed: %d, errors: %d, skipped: %d (%dms)",
            total, passed, failed, errors, skipped, duration_ms,
        )
        return ExecutionResult(
            success=success,
            total=total,
            passed=passed,
            failed=failed,
            errors=errors,
            skipped=skipped,
            duration_ms=duration_ms,
            test_results=test_results,
            raw_output=raw_tail,
        )
