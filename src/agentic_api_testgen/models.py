"""Contracts passed between the pipeline stages.

Plan -> Write -> Persist -> Execute -> (Reflect -> Fix -> Execute)*

Everything here is a plain dataclass. RunConfig and the plan types are
frozen; RunStatus is the only mutable record and is owned by the
orchestrator task that created it.
"""

from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from agentic_api_testgen.constants import (
    DEFAULT_BASE_DIRECTORY,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_NAMESPACE,
)


TestCategory = Literal["positive", "negative", "edge-case", "destructive"]
TestStatus = Literal["passed", "failed", "error", "skipped"]
FailureSource = Literal["test-code", "api-bug", "environment", "unknown"]
AgentPhase = Literal[
    "planning",     # PlannerAgent is working
    "writing",      # TestWriterAgent is writing code
    "persisting",   # Writing files to disk
    "executing",    # Running the build/test tool
    "reflecting",   # Reflector analyzing failures
    "fixing",       # Applying fixes
    "completed",
    "failed",
]

TEST_CATEGORIES: Tuple[str, ...] = ("positive", "negative", "edge-case", "destructive")
FAILURE_SOURCES: Tuple[str, ...] = ("test-code", "api-bug", "environment", "unknown")
TERMINAL_PHASES: Tuple[str, ...] = ("completed", "failed")
FILTER_MODES: Tuple[str, ...] = ("full", "tag", "single")

# Synthetic result emitted when the project does not compile
COMPILATION_TEST_NAME = "COMPILATION"
COMPILATION_CLASS_NAME = "CompilationError"


# =============================================================================
# RUN CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class OperationFilter:
    """Which operations of the spec a run covers."""
    mode: str = "full"  # full | tag | single
    tags: Tuple[str, ...] = ()
    operation_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RunConfig:
    """Immutable input to one run."""
    spec_id: str
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    base_directory: str = DEFAULT_BASE_DIRECTORY
    namespace: str = DEFAULT_NAMESPACE
    auto_execute: bool = True
    operation_filter: OperationFilter = field(default_factory=OperationFilter)


# =============================================================================
# PLANNER
# =============================================================================

@dataclass(frozen=True)
class OperationDependency:
    """source_operation_id must run first; data_flow says what it hands over."""
    source_operation_id: str
    target_operation_id: str
    data_flow: str = ""


@dataclass(frozen=True)
class PlanItem:
    """One planned test scenario for one API operation."""
    operation_id: str
    method: str
    path: str
    description: str
    category: str = "positive"
    expected_status: int = 200
    priority: int = 99
    depends_on: Tuple[str, ...] = ()
    assertions: Tuple[str, ...] = ()
    needs_body: bool = False
    suggested_body: Optional[str] = None


@dataclass(frozen=True)
class TestPlan:
    __test__ = False

    title: str
    base_url: str
    items: Tuple[PlanItem, ...] = ()
    dependencies: Tuple[OperationDependency, ...] = ()
    reasoning: str = ""

    def count(self, category: str) -> int:
        return sum(1 for item in self.items if item.category == category)


# =============================================================================
# WRITER
# =============================================================================

@dataclass(frozen=True)
class GeneratedFile:
    path: str  # relative to the suite root
    content: str


@dataclass(frozen=True)
class TestSuite:
    __test__ = False

    suite_name: str
    namespace: str
    files: Tuple[GeneratedFile, ...] = ()


# =============================================================================
# EXECUTOR
# =============================================================================

@dataclass
class TestCaseResult:
    __test__ = False

    test_name: str
    class_name: str
    status: str  # passed | failed | error | skipped
    duration_ms: int = 0
    error_message: Optional[str] = None
    stack_trace: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        return self.status in ("failed", "error")


@dataclass
class ExecutionResult:
    """Result of one build/test invocation. Never merged across iterations."""
    success: bool
    total: int = 0
    passed: int = 0
    failed: int = 0
    errors: int = 0
    skipped: int = 0
    duration_ms: int = 0
    test_results: List[TestCaseResult] = field(default_factory=list)
    raw_output: str = ""
    compilation_failed: bool = False

    @property
    def failures(self) -> List[TestCaseResult]:
        return [t for t in self.test_results if t.is_failure]


# =============================================================================
# REFLECTOR
# =============================================================================

@dataclass
class Fix:
    """A proposed full replacement of one generated source file."""
    file_path: str
    new_content: str
    explanation: str = ""


@dataclass
class Reflection:
    failure_source: str  # test-code | api-bug | environment | unknown
    summary: str
    should_retry: bool
    fixes: List[Fix] = field(default_factory=list)
    rejected_fixes: List[str] = field(default_factory=list)


# =============================================================================
# ORCHESTRATOR
# =============================================================================

@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    phase: str
    message: str


@dataclass
class Iteration:
    iteration: int
    execution_result: ExecutionResult
    reflection: Optional[Reflection] = None
    fixes_applied: int = 0


@dataclass
class RunStatus:
    run_id: str
    phase: str
    current_iteration: int
    max_iterations: int
    started_at: datetime
    log: List[LogEntry] = field(default_factory=list)
    test_plan: Optional[TestPlan] = None
    test_suite_path: Optional[str] = None
    iterations: List[Iteration] = field(default_factory=list)
    final_result: Optional[ExecutionResult] = None
    error: Optional[str] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


# =============================================================================
# SERIALIZATION
# =============================================================================

def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def to_dict(obj: Any) -> Dict[str, Any]:
    """Convert any contract dataclass to a JSON-serializable dict."""
    if not is_dataclass(obj):
        raise TypeError(f"Expected a dataclass instance, got {type(obj).__name__}")
    return _jsonable(asdict(obj))
