"""
Stream events pushed to the caller, and the tool invocation result they carry.
Events are immutable and emitted in arrival order; a ToolCall is always followed by one Content.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from tools.base import ExtractedUser, WeatherRecord


class ToolName(str, Enum):
    WEATHER = "getWeather"
    EXTRACT_USER = "extractUserInfo"


TypedResult = Union[WeatherRecord, ExtractedUser]


@dataclass(frozen=True)
class ToolInvocationResult:
    """Outcome of one tool call. success=True carries payload, success=False carries error."""
    tool_name: ToolName
    success: bool
    payload: Optional[TypedResult] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.success and (self.payload is None or self.error is not None):
            raise ValueError("successful tool result needs a payload and no error")
        if not self.success and (self.error is None or self.payload is not None):
            raise ValueError("failed tool result needs an error and no payload")

    @classmethod
    def ok(cls, tool_name: ToolName, payload: TypedResult) -> "ToolInvocationResult":
        return cls(tool_name=tool_name, success=True, payload=payload)

    @classmethod
    def failed(cls, tool_name: ToolName, error: str) -> "ToolInvocationResult":
        return cls(tool_name=tool_name, success=False, error=error)


@dataclass(frozen=True)
class Thinking:
    text: str
    type = "thinking"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "content": self.text}


@dataclass(frozen=True)
class Content:
    text: str
    type = "content"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "content": self.text}


@dataclass(frozen=True)
class ToolCall:
    result: ToolInvocationResult
    type = "tool_call"

    def to_dict(self) -> dict[str, Any]:
        from graph.formatter import tool_payload
        return {"type": self.type, "content": "", "tool_call": tool_payload(self.result)}


StreamEvent = Union[Thinking, Content, ToolCall]
