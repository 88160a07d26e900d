"""LangGraph StateGraph for the execute -> reflect -> fix loop.

Flow:
    execute -> (success or last iteration?) -> end
            -> reflect -> (should_retry false?) -> end
                       -> (no fixes?)           -> execute
                       -> fix -> execute

The nodes only sequence calls on the run's pipeline object, which owns
the agents and writes to the run status. Each node records which way the
loop went in `outcome` so the caller can write the closing log entry.
"""

from typing import Any, Optional
from typing_extensions import TypedDict

from langgraph.graph import StateGraph, END

from agentic_api_testgen.models import ExecutionResult, Reflection

OUTCOME_SUCCESS = "success"
OUTCOME_MAX_ITERATIONS = "max-iterations"
OUTCOME_NO_RETRY = "no-retry"


class HealingLoopState(TypedDict):
    # The run's pipeline (agents + status writer), passed through state
    pipeline: Any
    iteration: int
    max_iterations: int
    execution_result: Optional[ExecutionResult]
    reflection: Optional[Reflection]
    outcome: str


# --- Graph Nodes ---

def node_execute(state: HealingLoopState) -> dict:
    """Run the suite once (the iteration counter advances here)."""
    iteration = state["iteration"] + 1
    result = state["pipeline"].execute(iteration)

    outcome = ""
    if result.success:
        outcome = OUTCOME_SUCCESS
    elif iteration >= state["max_iterations"]:
        outcome = OUTCOME_MAX_ITERATIONS

    return {
        "iteration": iteration,
        "execution_result": result,
        "reflection": None,
        "outcome": outcome,
    }


def node_reflect(state: HealingLoopState) -> dict:
    """Diagnose the failures of the current iteration."""
    reflection = state["pipeline"].reflect(state["iteration"], state["execution_result"])
    outcome = "" if reflection.should_retry else OUTCOME_NO_RETRY
    return {"reflection": reflection, "outcome": outcome}


def node_fix(state: HealingLoopState) -> dict:
    """Write the reflection's fixes to disk."""
    state["pipeline"].apply_fixes(state["iteration"], state["reflection"])
    return {}


# --- Conditional Edges ---

def route_after_execute(state: HealingLoopState) -> str:
    return "end" if state["outcome"] else "reflect"


def route_after_reflect(state: HealingLoopState) -> str:
    if state["outcome"]:
        return "end"
    if not state["reflection"].fixes:
        return "execute"
    return "fix"


# --- Graph Builder ---

def build_healing_graph() -> StateGraph:
    graph = StateGraph(HealingLoopState)

    graph.add_node("execute", node_execute)
    graph.add_node("reflect", node_reflect)
    graph.add_node("fix", node_fix)

    graph.set_entry_point("execute")

    graph.add_conditional_edges(
        "execute",
        route_after_execute,
        {
            "end": END,
            "reflect": "reflect",
        }
    )
    graph.add_conditional_edges(
        "reflect",
        route_after_reflect,
        {
            "end": END,
            "execute": "execute",
            "fix": "fix",
        }
    )
    graph.add_edge("fix", "execute")

    return graph


def run_healing_loop(pipeline: Any, max_iterations: int) -> HealingLoopState:
    """
    Run the loop until success, the last iteration, or a no-retry diagnosis.

    Returns:
        Final graph state; `outcome` says why the loop stopped
    """
    initial_state: HealingLoopState = {
        "pipeline": pipeline,
        "iteration": 0,
        "max_iterations": max_iterations,
        "execution_result": None,
        "reflection": None,
        "outcome": "",
    }
    # execute + reflect + fix per iteration, plus headroom
    config = {"recursion_limit": 3 * max_iterations + 5}
    return healing_graph.invoke(initial_state, config=config)


# Pre-compiled graph for Studio discovery
healing_graph = build_healing_graph().compile()
