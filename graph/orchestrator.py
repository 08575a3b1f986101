"""
Stream orchestrators. Each turn is a pull-based iterator of StreamEvents driving a small state machine:
DISPATCHING -> STREAMING -> [TOOL_DETECTED -> TOOL_EXECUTING -> TOOL_FORMATTED] -> DONE,
with FAILED (transport or any other error) and CANCELLED (cancel_event set) reachable from any state.

Variants:
- PlainChatTurn: stream the model, forward every decoded event.
- RoutedChatTurn: classifier-first routing; a selected tool runs before any content is emitted.
- SmartChatTurn: tools bound to the model; tool calls read from a second, non-streaming call.
- AgentExtractTurn: streamed extraction prompt, then JSON validation of the streamed content.
"""
import threading
import time
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from graph.context import TurnContext
from graph.decoder import content_text, decode_chunk
from graph.dispatch import TOOL_MARKERS, extract_result, resolve_tool_name, run_tool
from graph.events import Content, StreamEvent, ToolCall, ToolInvocationResult, ToolName
from graph.formatter import format_tool_result
from graph.graph import route_query
from graph.state import TERMINAL_STATES, RouteKind, TurnState
from tools.extract_user import AGENT_PROMPT, AGENT_THINKING_SUFFIX, get_extract_user_tool, validate_user_json
from tools.weather_api import get_weather_tool

log = structlog.get_logger()

DEFAULT_SYSTEM_PROMPT = "你是一个AI助手"

SMART_SYSTEM_PROMPT = """你是一个智能助手，可以根据用户的需求调用相应的工具来获取信息。

可用的工具：
1. getWeather: 查询城市天气
2. extractUserInfo: 提取用户信息

当用户询问天气或提供个人信息时，请主动调用对应的工具。
其他情况下，直接回答用户的问题。"""

SMART_TEMPERATURE = 0.1

EXTRACT_OK_MESSAGE = "已成功提取用户信息"
EXTRACT_FAILED_MESSAGE = "提取用户信息失败"


class TransportError(RuntimeError):
    """The model transport failed; the turn cannot complete."""


@dataclass(frozen=True)
class TurnSummary:
    """Terminal value of a turn."""
    tool_result: Optional[ToolInvocationResult] = None
    message: str = ""


@dataclass(frozen=True)
class ChatReply:
    thinking: Optional[str]
    content: str


class ChatTurn:
    """
    Base turn. Iterate it to pull events; state and transitions record the state machine.
    Subclasses implement _run() and call _enter() on every transition.
    """

    def __init__(self, ctx: TurnContext, query: str, cancel_event: Optional[threading.Event] = None):
        self.ctx = ctx
        self.query = query
        self.cancel_event = cancel_event
        self.state = TurnState.DISPATCHING
        self.transitions: list[TurnState] = [TurnState.DISPATCHING]
        self.tool_result: Optional[ToolInvocationResult] = None
        self.message = ""
        self._started = False

    def __iter__(self) -> Iterator[StreamEvent]:
        if self._started:
            raise RuntimeError("a turn can only be consumed once")
        self._started = True
        start = time.perf_counter()
        try:
            yield from self._run()
            if self.state not in TERMINAL_STATES:
                self._enter(TurnState.DONE)
        except GeneratorExit:
            self._enter(TurnState.CANCELLED)
            raise
        except Exception:
            self._enter(TurnState.FAILED)
            raise
        finally:
            log.info(
                "turn_end",
                turn=type(self).__name__,
                state=self.state.value,
                tool=self.tool_result.tool_name.value if self.tool_result else None,
                duration_sec=round(time.perf_counter() - start, 3),
            )

    def _run(self) -> Iterator[StreamEvent]:
        raise NotImplementedError

    def summary(self) -> TurnSummary:
        return TurnSummary(tool_result=self.tool_result, message=self.message)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _enter(self, state: TurnState) -> None:
        self.state = state
        self.transitions.append(state)

    def _chat_model(self, temperature: Optional[float] = None, tools: Optional[list] = None) -> Any:
        """Build the turn's model; a client that cannot be built is a transport failure."""
        try:
            llm = self.ctx.chat_model(temperature=temperature)
            return llm.bind_tools(tools) if tools else llm
        except Exception as e:
            raise TransportError(f"model client unavailable: {e}") from e

    def _stream_model(self, llm: Any, messages: Sequence[BaseMessage]) -> Iterator[StreamEvent]:
        """
        Forward decoded events from one model stream. The upstream iterator is closed when
        the cancel signal is set or the consumer stops pulling.
        """
        self._enter(TurnState.STREAMING)
        try:
            upstream = iter(llm.stream(list(messages)))
        except Exception as e:
            raise TransportError(f"model stream failed: {e}") from e
        try:
            while True:
                if self.cancelled:
                    self._enter(TurnState.CANCELLED)
                    return
                try:
                    chunk = next(upstream)
                except StopIteration:
                    return
                except Exception as e:
                    raise TransportError(f"model stream failed: {e}") from e
                yield from decode_chunk(chunk)
        finally:
            close = getattr(upstream, "close", None)
            if close is not None:
                close()

    def _invoke_model(self, llm: Any, messages: Sequence[BaseMessage]) -> Any:
        try:
            return llm.invoke(list(messages))
        except Exception as e:
            raise TransportError(f"model call failed: {e}") from e

    def _emit_tool_result(self, result: ToolInvocationResult) -> Iterator[StreamEvent]:
        """ToolCall followed by exactly one Content with the rendered result or the error."""
        self.tool_result = result
        self._enter(TurnState.TOOL_FORMATTED)
        yield ToolCall(result)
        yield Content(format_tool_result(result))


def _chat_messages(query: str, system_prompt: Optional[str], default: str) -> list[BaseMessage]:
    return [SystemMessage(content=system_prompt or default), HumanMessage(content=query)]


class PlainChatTurn(ChatTurn):
    def __init__(
        self,
        ctx: TurnContext,
        query: str,
        system_prompt: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        super().__init__(ctx, query, cancel_event)
        self.system_prompt = system_prompt

    def _run(self) -> Iterator[StreamEvent]:
        messages = _chat_messages(self.query, self.system_prompt, DEFAULT_SYSTEM_PROMPT)
        yield from self._stream_model(self._chat_model(), messages)


class RoutedChatTurn(PlainChatTurn):
    """Classifier-first: the routing decision is made before any model stream starts."""

    def _run(self) -> Iterator[StreamEvent]:
        decision = route_query(self.ctx, self.query)
        if decision.kind is RouteKind.NONE:
            yield from super()._run()
            return
        if self.cancelled:
            self._enter(TurnState.CANCELLED)
            return

        self._enter(TurnState.TOOL_DETECTED)
        if decision.kind is RouteKind.WEATHER:
            name, args = ToolName.WEATHER, {"location": decision.argument}
        else:
            name, args = ToolName.EXTRACT_USER, {"content": decision.argument}
        self._enter(TurnState.TOOL_EXECUTING)
        result = run_tool(self.ctx, name, args)
        yield from self._emit_tool_result(result)


class SmartChatTurn(PlainChatTurn):
    """
    Bound-tool chat. The stream is forwarded first; tool calls are then read from a
    separate non-streaming call over the same messages. Only the first tool call is honoured.
    """

    def _run(self) -> Iterator[StreamEvent]:
        tools = [get_weather_tool(self.ctx), get_extract_user_tool(self.ctx)]
        bound = self._chat_model(temperature=SMART_TEMPERATURE, tools=tools)
        messages = _chat_messages(self.query, self.system_prompt, SMART_SYSTEM_PROMPT)

        yield from self._stream_model(bound, messages)
        if self.state is TurnState.CANCELLED:
            return

        response = self._invoke_model(bound, messages)
        tool_calls = getattr(response, "tool_calls", None) or []
        if not tool_calls:
            log.info("tool_detection", detected=False)
            return

        first = tool_calls[0]
        name = resolve_tool_name(first.get("name", ""))
        if name is None:
            log.info("tool_detection", detected=False, ignored=first.get("name"))
            return
        log.info("tool_detection", detected=True, tool=name.value, total_calls=len(tool_calls))

        self._enter(TurnState.TOOL_DETECTED)
        yield Content(TOOL_MARKERS[name])
        self._enter(TurnState.TOOL_EXECUTING)
        result = run_tool(self.ctx, name, first.get("args") or {})
        yield from self._emit_tool_result(result)


class AgentExtractTurn(ChatTurn):
    """Structured-extraction agent: stream the extraction prompt, validate the streamed JSON."""

    def _run(self) -> Iterator[StreamEvent]:
        prompt = AGENT_PROMPT + (AGENT_THINKING_SUFFIX if self.ctx.config.show_thinking else "")
        messages = [SystemMessage(content=prompt), HumanMessage(content=self.query)]

        collected: list[str] = []
        for event in self._stream_model(self._chat_model(), messages):
            if isinstance(event, Content):
                collected.append(event.text)
            yield event
        if self.state is TurnState.CANCELLED:
            return

        self._enter(TurnState.TOOL_DETECTED)
        self._enter(TurnState.TOOL_EXECUTING)
        result = extract_result(validate_user_json("".join(collected)))
        self.message = EXTRACT_OK_MESSAGE if result.success else EXTRACT_FAILED_MESSAGE
        self.tool_result = result
        self._enter(TurnState.TOOL_FORMATTED)
        yield ToolCall(result)
        yield Content(format_tool_result(result) if result.success else EXTRACT_FAILED_MESSAGE)


TURN_MODES = {
    "plain": PlainChatTurn,
    "routed": RoutedChatTurn,
    "smart": SmartChatTurn,
}


def start_turn(
    mode: str,
    ctx: TurnContext,
    query: str,
    system_prompt: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ChatTurn:
    """Create the turn for a chat mode ('plain', 'routed', 'smart' or 'agent')."""
    if mode == "agent":
        return AgentExtractTurn(ctx, query, cancel_event=cancel_event)
    try:
        turn_cls = TURN_MODES[mode]
    except KeyError:
        raise ValueError(f"unknown chat mode: {mode}")
    return turn_cls(ctx, query, system_prompt=system_prompt, cancel_event=cancel_event)


def send_message(ctx: TurnContext, query: str, system_prompt: Optional[str] = None) -> ChatReply:
    """Non-streaming chat: one invoke, reasoning (if any) returned separately."""
    messages: list[BaseMessage] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))
    messages.append(HumanMessage(content=query))
    try:
        llm: BaseChatModel = ctx.chat_model()
        response = llm.invoke(messages)
    except Exception as e:
        raise TransportError(f"model call failed: {e}") from e
    kwargs = getattr(response, "additional_kwargs", None) or {}
    thinking = kwargs.get("reasoning_content") or None
    return ChatReply(thinking=thinking, content=content_text(response.content))
