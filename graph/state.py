"""
LangGraph router state, the routing decision it produces, and the per-turn state machine.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TypedDict


class RouteKind(str, Enum):
    WEATHER = "weather"
    EXTRACT_USER = "extract"
    NONE = "none"


@dataclass(frozen=True)
class RoutingDecision:
    """Which tool, if any, serves this turn. argument is the location or the text to extract from."""
    kind: RouteKind
    argument: str = ""

    @classmethod
    def weather(cls, location: str) -> "RoutingDecision":
        return cls(RouteKind.WEATHER, location)

    @classmethod
    def extract_user(cls, content: str) -> "RoutingDecision":
        return cls(RouteKind.EXTRACT_USER, content)

    @classmethod
    def none(cls) -> "RoutingDecision":
        return cls(RouteKind.NONE)


class RouterState(TypedDict):
    """State passed between router nodes. intent is set by classify; decision by the terminal node."""
    query: str
    intent: Optional[str]
    decision: Optional[RoutingDecision]


class TurnState(str, Enum):
    DISPATCHING = "dispatching"
    STREAMING = "streaming"
    TOOL_DETECTED = "tool_detected"
    TOOL_EXECUTING = "tool_executing"
    TOOL_FORMATTED = "tool_formatted"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({TurnState.DONE, TurnState.FAILED, TurnState.CANCELLED})
