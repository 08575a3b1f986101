"""
LangGraph StateGraph for classifier-first routing: classify -> (locate | extract | no_tool) -> END.
Compiled per turn with the turn's context bound into the nodes; no checkpointer, no memory.
"""
from functools import partial

from langgraph.graph import END, StateGraph

from graph.context import TurnContext
from graph.nodes import classify_node, extract_node, locate_node, no_tool_node
from graph.state import RouteKind, RouterState, RoutingDecision


def route_after_classify(state: RouterState) -> str:
    """
    Conditional edge on the classifier's intent.
    - weather: locate the place (second LLM call)
    - extract: hand the text to the extraction tool
    - anything else: no tool
    """
    intent = state.get("intent")
    if intent == RouteKind.WEATHER.value:
        return "locate"
    if intent == RouteKind.EXTRACT_USER.value:
        return "extract"
    return "no_tool"


def build_router_graph(ctx: TurnContext):
    """Build and compile the router graph for one turn."""
    builder = StateGraph(RouterState)

    builder.add_node("classify", partial(classify_node, ctx=ctx))
    builder.add_node("locate", partial(locate_node, ctx=ctx))
    builder.add_node("extract", extract_node)
    builder.add_node("no_tool", no_tool_node)

    builder.set_entry_point("classify")
    builder.add_conditional_edges(
        "classify",
        route_after_classify,
        {
            "locate": "locate",
            "extract": "extract",
            "no_tool": "no_tool",
        }
    )
    builder.add_edge("locate", END)
    builder.add_edge("extract", END)
    builder.add_edge("no_tool", END)

    return builder.compile()


def route_query(ctx: TurnContext, query: str) -> RoutingDecision:
    """Run the router graph once; the decision is not reconsidered later in the turn."""
    graph = build_router_graph(ctx)
    final = graph.invoke({"query": query, "intent": None, "decision": None})
    return final.get("decision") or RoutingDecision.none()
