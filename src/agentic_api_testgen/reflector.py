"""Reflector agents: diagnose a failed execution and propose file fixes.

ReflectorAgent
    1. set aside negative tests that expected a 4xx and got a 2xx (API
       validation gaps); if nothing else failed, answer api-bug without
       calling the model
    2. pick the source files to show the model
    3. ask the model for a diagnosis and complete replacement files
    4. parse the answer with json_repair (never raises)
    5. drop fixes for paths that are not in the current suite
    6. normalize should_retry through RETRY_POLICY

SelfHealAgent adds the negative-test guardrail between 5 and 6, and
reclassifies the run as api-bug when the guardrail leaves no fixes.
"""

import logging
import re
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, List

from agentic_api_testgen.guardrail import is_api_bug_failure, scrub_fixes
from agentic_api_testgen.json_repair import FALLBACK_REFLECTION, parse_model_json
from agentic_api_testgen.models import (
    COMPILATION_CLASS_NAME,
    COMPILATION_TEST_NAME,
    FAILURE_SOURCES,
    ExecutionResult,
    Fix,
    Reflection,
    TestCaseResult,
)
from agentic_api_testgen.prompts import REFLECTOR_SYSTEM_PROMPT, build_reflector_prompt

logger = logging.getLogger(__name__)

# failure source -> should_retry, given the fixes that survived validation
RETRY_POLICY: Dict[str, Callable[[List[Fix]], bool]] = {
    "test-code": lambda fixes: len(fixes) > 0,
    "environment": lambda fixes: False,
    "api-bug": lambda fixes: len(fixes) > 0,
    "unknown": lambda fixes: True,
}

PROMPT_OUTPUT_TAIL_CHARS = 3000


def is_test_source(path: str) -> bool:
    return path.endswith("Test.java") or path.endswith("Tests.java")


def _format_failures(failures: List[TestCaseResult]) -> str:
    if not failures:
        return "No individual test failures were reported."
    return "\n\n".join(
        f"FAILED {t.class_name}.{t.test_name}\n"
        f"   Error: {t.error_message or 'unknown'}\n"
        f"   {t.stack_trace or ''}".rstrip()
        for t in failures
    )


def _format_files(files: Dict[str, str]) -> str:
    return "\n\n".join(f"--- {path} ---\n{content}" for path, content in files.items())


def select_relevant_files(
    result: ExecutionResult,
    test_files: Dict[str, str],
) -> Dict[str, str]:
    """
    Files to show the model.

    Compile failure: every test source. Otherwise: files whose path or
    declared class matches a failing class, or every test source if none match.
    """
    all_tests = {p: c for p, c in test_files.items() if is_test_source(p)}
    if result.compilation_failed:
        return all_tests

    failed_classes = {t.class_name.rsplit(".", 1)[-1] for t in result.failures}
    relevant = {
        path: content
        for path, content in test_files.items()
        if any(
            PurePosixPath(path).stem == cls or re.search(rf"\bclass\s+{re.escape(cls)}\b", content)
            for cls in failed_classes
        )
    }
    return relevant or all_tests


class ReflectorAgent:
    """Diagnoses failures and proposes fixes, without the negative-test guardrail."""

    def __init__(self, generator):
        self.generator = generator
        self.last_provider = ""

    def reflect(
        self,
        result: ExecutionResult,
        test_files: Dict[str, str],
        iteration: int = 1,
    ) -> Reflection:
        """
        Analyze a failed execution.

        Args:
            result: The iteration's execution result
            test_files: Current suite sources, relative path -> content
            iteration: 1-based iteration number (shown to the model)

        Returns:
            Reflection whose fixes only reference paths in test_files

        Raises:
            GenerationError: If no generation provider could answer
        """
        if result.success:
            return Reflection(
                failure_source="test-code",
                summary="All tests passed. No reflection needed.",
                should_retry=False,
            )

        failures = result.failures
        api_bugs: List[TestCaseResult] = []
        fixable: List[TestCaseResult] = []
        for t in failures:
            (api_bugs if is_api_bug_failure(t.test_name, t.error_message) else fixable).append(t)

        if api_bugs:
            logger.info(
                "Detected %d API validation gap(s): %s",
                len(api_bugs), ", ".join(f"{t.class_name}.{t.test_name}" for t in api_bugs),
            )

        if api_bugs and not fixable:
            names = ", ".join(t.test_name for t in api_bugs)
            return Reflection(
                failure_source="api-bug",
                summary=(
                    f"All {len(api_bugs)} failing test(s) are negative/edge-case tests where the "
                    f"API accepts invalid input (2xx instead of the expected 4xx): {names}. "
                    "These tests document API validation gaps and are left unchanged."
                ),
                should_retry=False,
            )

        relevant = select_relevant_files(result, test_files)
        is_compilation = result.compilation_failed or any(
            t.test_name == COMPILATION_TEST_NAME or t.class_name == COMPILATION_CLASS_NAME
            for t in failures
        )
        prompt = build_reflector_prompt(
            iteration=iteration,
            is_compilation_error=is_compilation,
            failure_details=_format_failures(fixable),
            raw_output_tail=result.raw_output[-PROMPT_OUTPUT_TAIL_CHARS:],
            relevant_files_content=_format_files(relevant),
        )
        response = self.generator.generate(
            prompt,
            system_prompt=REFLECTOR_SYSTEM_PROMPT,
            temperature=0.1,
            max_tokens=16000,
            stage="reflect",
        )
        self.last_provider = response.provider_id

        parsed = parse_model_json(response.content)
        reflection = self._to_reflection(parsed)
        reflection = self._validate_paths(reflection, test_files)
        reflection = self._screen(reflection, test_files, api_bugs)

        reflection.should_retry = RETRY_POLICY[reflection.failure_source](reflection.fixes)
        return reflection

    @staticmethod
    def _to_reflection(parsed: Any) -> Reflection:
        if not isinstance(parsed, dict):
            parsed = dict(FALLBACK_REFLECTION)

        source = parsed.get("failureSource")
        if source not in FAILURE_SOURCES:
            source = "unknown"

        fixes: List[Fix] = []
        rejected: List[str] = []
        raw_fixes = parsed.get("fixes")
        for raw_fix in raw_fixes if isinstance(raw_fixes, list) else []:
            if not isinstance(raw_fix, dict):
                continue
            path = raw_fix.get("filePath")
            content = raw_fix.get("newContent")
            if not isinstance(path, str) or not isinstance(content, str) or not content.strip():
                rejected.append(str(path))
                continue
            fixes.append(Fix(
                file_path=path,
                new_content=content,
                explanation=str(raw_fix.get("explanation") or ""),
            ))

        return Reflection(
            failure_source=source,
            summary=str(parsed.get("summary") or "Could not analyze failures."),
            should_retry=bool(parsed.get("shouldRetry", True)),
            fixes=fixes,
            rejected_fixes=rejected,
        )

    @staticmethod
    def _validate_paths(reflection: Reflection, test_files: Dict[str, str]) -> Reflection:
        kept = []
        for fix in reflection.fixes:
            if fix.file_path in test_files:
                kept.append(fix)
            else:
                logger.warning("Dropping fix for unknown file: %s", fix.file_path)
                reflection.rejected_fixes.append(fix.file_path)
        reflection.fixes = kept
        return reflection

    def _screen(
        self,
        reflection: Reflection,
        test_files: Dict[str, str],
        api_bugs: List[TestCaseResult],
    ) -> Reflection:
        return reflection


class SelfHealAgent(ReflectorAgent):
    """Reflector with the negative-test guardrail."""

    def _screen(
        self,
        reflection: Reflection,
        test_files: Dict[str, str],
        api_bugs: List[TestCaseResult],
    ) -> Reflection:
        kept, rejected = scrub_fixes(reflection.fixes, test_files)
        for path in rejected:
            logger.info("Rejecting fix for %s: it weakens negative test assertions", path)
        reflection.fixes = kept
        reflection.rejected_fixes.extend(rejected)

        if not reflection.fixes and api_bugs:
            reflection.failure_source = "api-bug"
            reflection.summary += (
                " Remaining failures are API validation gaps "
                "(negative tests where the API returns 2xx for invalid data)."
            )
        return reflection
