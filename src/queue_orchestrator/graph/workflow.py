"""LangGraph workflow for the per-task stage loop."""

from langgraph.graph import END, StateGraph

from queue_orchestrator.graph.nodes import (
    begin_stage,
    exhausted,
    invoke_agent,
    merge_followup,
    parse_result,
    persist_result,
)
from queue_orchestrator.graph.state import StageState
from queue_orchestrator.workflow.status import is_actionable

NODES_PER_STAGE = 5


def build_stage_graph(*, max_stages: int = 10):
    def _after_parse(state: StageState) -> str:
        return "record" if state.get("result") is not None else "blocked"

    def _after_persist(state: StageState) -> str:
        if not is_actionable(state["task"].status):
            return "done"
        if state.get("stage_count", 0) >= max_stages:
            return "exhausted"
        return "next_stage"

    graph = StateGraph(StageState)

    graph.add_node("begin_stage", begin_stage.run)
    graph.add_node("invoke_agent", invoke_agent.run)
    graph.add_node("parse_result", parse_result.run)
    graph.add_node("merge_followup", merge_followup.run)
    graph.add_node("persist_result", persist_result.run)
    graph.add_node("exhausted", exhausted.run)

    graph.set_entry_point("begin_stage")
    graph.add_edge("begin_stage", "invoke_agent")
    graph.add_edge("invoke_agent", "parse_result")
    graph.add_conditional_edges(
        "parse_result", _after_parse, {"record": "merge_followup", "blocked": END}
    )
    graph.add_edge("merge_followup", "persist_result")
    graph.add_conditional_edges(
        "persist_result",
        _after_persist,
        {"next_stage": "begin_stage", "exhausted": "exhausted", "done": END},
    )
    graph.add_edge("exhausted", END)

    return graph.compile()


def recursion_limit(max_stages: int) -> int:
    """Graph step budget that lets every allowed stage run to completion."""
    return max_stages * NODES_PER_STAGE + 10
