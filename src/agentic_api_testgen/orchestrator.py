"""Agent orchestrator: the stateful controller for test generation runs.

    planning -> writing -> persisting -> executing
        -> (reflecting -> fixing ->) executing ... -> completed | failed

start_run() validates its input synchronously, registers the run and
hands it to a worker thread; callers poll get_status() or block on wait().
Within a run every stage is sequential. Runs share nothing but the
registry.
"""

import logging
import re
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Optional

from agentic_api_testgen.code_postprocess import post_process_code
from agentic_api_testgen.config import Config
from agentic_api_testgen.executor import ExecutorAgent
from agentic_api_testgen.models import (
    FILTER_MODES,
    ExecutionResult,
    GeneratedFile,
    Iteration,
    Reflection,
    RunConfig,
    RunStatus,
)
from agentic_api_testgen.pipeline_graph import (
    OUTCOME_MAX_ITERATIONS,
    OUTCOME_NO_RETRY,
    OUTCOME_SUCCESS,
    run_healing_loop,
)
from agentic_api_testgen.planner import PlannerAgent
from agentic_api_testgen.reflector import ReflectorAgent, SelfHealAgent
from agentic_api_testgen.run_registry import RunRegistry
from agentic_api_testgen.spec_store import (
    NormalizedSpec,
    Operation,
    SpecNotFoundError,
    SpecStore,
    select_operations,
)
from agentic_api_testgen.writer import TestWriterAgent

logger = logging.getLogger(__name__)

_JAVA_PACKAGE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


class RunConfigError(ValueError):
    """Raised by start_run() for a malformed RunConfig."""
    pass


def validate_run_config(config: RunConfig) -> None:
    """
    Check a RunConfig before a run is started.

    Raises:
        RunConfigError: Describing the first problem found
    """
    if not config.spec_id:
        raise RunConfigError("spec_id is required")
    if not isinstance(config.max_iterations, int) or config.max_iterations < 1:
        raise RunConfigError(f"max_iterations must be a positive integer, got {config.max_iterations!r}")
    if not config.base_directory:
        raise RunConfigError("base_directory must not be empty")
    if not _JAVA_PACKAGE_RE.match(config.namespace or ""):
        raise RunConfigError(f"namespace is not a valid Java package name: {config.namespace!r}")

    op_filter = config.operation_filter
    if op_filter.mode not in FILTER_MODES:
        raise RunConfigError(
            f"operation_filter.mode must be one of {', '.join(FILTER_MODES)}, got {op_filter.mode!r}"
        )
    if op_filter.mode == "tag" and not op_filter.tags:
        raise RunConfigError("operation_filter mode 'tag' requires at least one tag")
    if op_filter.mode == "single" and not op_filter.operation_ids:
        raise RunConfigError("operation_filter mode 'single' requires at least one operation id")


def read_test_files(suite_path: Path, namespace: str) -> Dict[str, str]:
    """Java sources in the suite's base package, keyed by suite-relative path."""
    package_path = namespace.replace(".", "/")
    test_dir = suite_path / "src" / "test" / "java" / package_path
    if not test_dir.is_dir():
        return {}
    return {
        f"src/test/java/{package_path}/{entry.name}": entry.read_text(encoding="utf-8")
        for entry in sorted(test_dir.glob("*.java"))
    }


def persist_files(suite_path: Path, files: List[GeneratedFile]) -> None:
    for generated in files:
        target = suite_path / generated.path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(generated.content, encoding="utf-8")


# =============================================================================
# PER-RUN PIPELINE
# =============================================================================

class RunPipeline:
    """Everything one run needs. Only this object writes the run's status."""

    def __init__(
        self,
        run_id: str,
        config: RunConfig,
        spec: NormalizedSpec,
        operations: List[Operation],
        registry: RunRegistry,
        planner: PlannerAgent,
        writer: TestWriterAgent,
        executor: ExecutorAgent,
        reflector: ReflectorAgent,
    ):
        self.run_id = run_id
        self.config = config
        self.spec = spec
        self.operations = operations
        self.registry = registry
        self.planner = planner
        self.writer = writer
        self.executor = executor
        self.reflector = reflector
        self.suite_path: Optional[Path] = None

    # --- status helpers ---

    def log(self, phase: str, message: str) -> None:
        self.registry.append_log(self.run_id, phase, message)
        logger.info("[run:%s] [%s] %s", self.run_id[:8], phase, message)

    def set_phase(self, phase: str) -> None:
        def update(status: RunStatus) -> None:
            status.phase = phase
        self.registry.mutate(self.run_id, update)

    def complete(self, message: str, final_result: Optional[ExecutionResult] = None) -> None:
        now = self.registry.clock()

        def update(status: RunStatus) -> None:
            status.phase = "completed"
            status.final_result = final_result
            status.completed_at = now
        self.registry.mutate(self.run_id, update)
        self.log("completed", message)

    # --- stages ---

    def run(self) -> None:
        config = self.config
        spec = self.spec

        self.log("planning", f"Loaded spec: {spec.title} ({len(spec.operations)} operations)")
        if config.operation_filter.mode != "full":
            self.log(
                "planning",
                f"Operation filter ({config.operation_filter.mode}): "
                f"{len(self.operations)} of {len(spec.operations)} operations selected",
            )

        # Plan
        self.set_phase("planning")
        self.log("planning", "PlannerAgent: analyzing spec and building test strategy...")
        plan = self.planner.plan(spec, self.operations)
        self.registry.mutate(self.run_id, lambda s: setattr(s, "test_plan", plan))
        self.log("planning", f"Generation provider: {self.planner.last_provider}")
        self.log(
            "planning",
            f"Plan created: {len(plan.items)} tests ({plan.count('positive')} positive, "
            f"{plan.count('negative')} negative, {plan.count('edge-case')} edge-case), "
            f"{len(plan.dependencies)} dependencies",
        )
        self.log("planning", f"Strategy: {plan.reasoning}")

        # Write
        self.set_phase("writing")
        self.log("writing", "TestWriterAgent: writing test code...")
        suite = self.writer.write(plan, config.namespace, spec.title or None)
        self.log("writing", f"Generation provider: {self.writer.last_provider}")
        self.log("writing", f"Generated {len(suite.files)} files")

        # Persist
        self.set_phase("persisting")
        self.suite_path = Path(config.base_directory).resolve() / suite.suite_name
        persist_files(self.suite_path, list(suite.files))
        suite_path_str = str(self.suite_path)
        self.registry.mutate(self.run_id, lambda s: setattr(s, "test_suite_path", suite_path_str))
        self.log("persisting", f"Written to {self.suite_path}")

        if not config.auto_execute:
            self.complete("Auto-execute disabled. Tests are ready to run manually.")
            return

        final_state = run_healing_loop(self, config.max_iterations)
        result = final_state["execution_result"]
        outcome = final_state["outcome"]

        if outcome == OUTCOME_SUCCESS:
            message = f"All {result.total} tests passed on iteration {final_state['iteration']}"
        elif outcome == OUTCOME_MAX_ITERATIONS:
            message = (
                f"Completed after {config.max_iterations} iterations. "
                f"{result.passed}/{result.total} tests passing."
            )
        elif outcome == OUTCOME_NO_RETRY:
            message = "Reflector says: do not retry. Done."
        else:
            message = f"Loop ended without an outcome after iteration {final_state['iteration']}"
        self.complete(message, final_result=result)

    def execute(self, iteration: int) -> ExecutionResult:
        max_iterations = self.config.max_iterations

        def start(status: RunStatus) -> None:
            status.current_iteration = iteration
            status.phase = "executing"
        self.registry.mutate(self.run_id, start)
        self.log("executing", f"ExecutorAgent: running tests (iteration {iteration}/{max_iterations})...")

        result = self.executor.execute(self.suite_path)

        if result.compilation_failed:
            self.log("executing", f"Compilation failed; tests could not run ({result.duration_ms}ms)")
        else:
            self.log(
                "executing",
                f"Results: {result.passed}/{result.total} passed, {result.failed} failed, "
                f"{result.errors} errors ({result.duration_ms}ms)",
            )

        entry = Iteration(iteration=iteration, execution_result=result)
        self.registry.mutate(self.run_id, lambda s: s.iterations.append(entry))
        return result

    def reflect(self, iteration: int, result: ExecutionResult) -> Reflection:
        self.set_phase("reflecting")
        self.log("reflecting", "ReflectorAgent: analyzing failures...")

        test_files = read_test_files(self.suite_path, self.config.namespace)
        self.reflector.last_provider = ""
        reflection = self.reflector.reflect(result, test_files, iteration)

        def record(status: RunStatus) -> None:
            status.iterations[-1].reflection = reflection
        self.registry.mutate(self.run_id, record)

        if self.reflector.last_provider:
            self.log("reflecting", f"Generation provider: {self.reflector.last_provider}")
        self.log("reflecting", f"Diagnosis: {reflection.failure_source}: {reflection.summary}")
        for path in reflection.rejected_fixes:
            self.log("reflecting", f"Rejected fix for {path}")
        if reflection.should_retry and not reflection.fixes:
            self.log("reflecting", "No fixes extracted; re-running tests as-is...")
        return reflection

    def apply_fixes(self, iteration: int, reflection: Reflection) -> int:
        self.set_phase("fixing")
        suite_root = self.suite_path.resolve()
        applied = 0

        for fix in reflection.fixes:
            target = (suite_root / fix.file_path).resolve()
            try:
                target.relative_to(suite_root)
            except ValueError:
                self.log("fixing", f"Skipped fix outside the suite: {fix.file_path}")
                continue
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(post_process_code(fix.new_content), encoding="utf-8")
            except OSError as e:
                self.log("fixing", f"Could not write fix for {fix.file_path}: {e}")
                continue
            applied += 1
            self.log("fixing", f"Fixed: {fix.file_path}: {fix.explanation}")

        def record(status: RunStatus) -> None:
            status.iterations[-1].fixes_applied = applied
        self.registry.mutate(self.run_id, record)
        self.log("fixing", f"Applied {applied} fixes. Re-running tests...")
        return applied


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class AgentOrchestrator:
    """Starts runs on a worker pool and serves status snapshots."""

    def __init__(
        self,
        generator,
        spec_store: SpecStore,
        config: Optional[Config] = None,
        executor_factory: Optional[Callable[[], ExecutorAgent]] = None,
        reflector_factory: Optional[Callable[[object], ReflectorAgent]] = None,
        registry: Optional[RunRegistry] = None,
    ):
        self.generator = generator
        self.spec_store = spec_store
        self.config = config or Config()
        self.executor_factory = executor_factory or self._default_executor
        self.reflector_factory = reflector_factory or SelfHealAgent
        self.registry = registry or RunRegistry(
            max_retained=self.config.max_retained_runs,
            ttl_s=self.config.run_ttl_s,
        )
        self._pool = ThreadPoolExecutor(
            max_workers=self.config.max_concurrent_runs,
            thread_name_prefix="testgen-run",
        )
        self._futures: Dict[str, Future] = {}
        self._futures_lock = threading.Lock()

    def _default_executor(self) -> ExecutorAgent:
        return ExecutorAgent(
            build_command=self.config.build_command,
            timeout_s=self.config.build_timeout_s,
            max_output_bytes=self.config.max_output_bytes,
        )

    def start_run(self, config: RunConfig) -> str:
        """
        Validate a run and start it in the background.

        Returns:
            The new run's id

        Raises:
            RunConfigError: If the config is malformed or selects no operations
            SpecNotFoundError: If config.spec_id is not in the spec store
        """
        validate_run_config(config)

        spec = self.spec_store.find_by_id(config.spec_id)
        if spec is None:
            raise SpecNotFoundError(f"Spec not found: {config.spec_id}")

        operations = select_operations(spec, config.operation_filter)
        if not operations:
            raise RunConfigError(
                f"Operation filter ({config.operation_filter.mode}) matched no operations in {spec.id}"
            )

        run_id = str(uuid.uuid4())
        self.registry.create(run_id, config.max_iterations)

        pipeline = RunPipeline(
            run_id=run_id,
            config=config,
            spec=spec,
            operations=operations,
            registry=self.registry,
            planner=PlannerAgent(self.generator),
            writer=TestWriterAgent(self.generator),
            executor=self.executor_factory(),
            reflector=self.reflector_factory(self.generator),
        )

        future = self._pool.submit(self._run, pipeline)
        with self._futures_lock:
            self._futures[run_id] = future
        future.add_done_callback(lambda _f: self._forget(run_id))
        logger.info("Started run %s for spec %s", run_id, spec.id)
        return run_id

    def _forget(self, run_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(run_id, None)

    def _run(self, pipeline: RunPipeline) -> None:
        try:
            pipeline.run()
        except Exception as e:
            logger.exception("Run %s failed", pipeline.run_id)
            now = self.registry.clock()

            def fail(status: RunStatus) -> None:
                status.phase = "failed"
                status.error = str(e) or type(e).__name__
                status.completed_at = now
            self.registry.mutate(pipeline.run_id, fail)
            pipeline.log("failed", f"Unrecoverable error: {str(e) or type(e).__name__}")

    def get_status(self, run_id: str) -> Optional[RunStatus]:
        """Snapshot of a run's status, or None for an unknown run id."""
        return self.registry.get(run_id)

    def wait(self, run_id: str, timeout: Optional[float] = None) -> Optional[RunStatus]:
        """Block until the run finishes (or timeout elapses), then return its status."""
        with self._futures_lock:
            future = self._futures.get(run_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.get_status(run_id)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
