"""
Chunk decoder: one model-stream fragment in, zero to three StreamEvents out.
Reasoning arrives on a side channel (additional_kwargs.reasoning_content) or inside the
Ollama native JSON envelope ({"message": {"thinking", "content"}}); plain text is content.
Pure, no I/O, never raises.
"""
import json
from dataclasses import dataclass
from typing import Any, Union

from graph.events import Content, StreamEvent, Thinking


@dataclass(frozen=True)
class TextContent:
    text: str


@dataclass(frozen=True)
class PartsContent:
    parts: tuple


FragmentContent = Union[TextContent, PartsContent]


@dataclass(frozen=True)
class Fragment:
    content: FragmentContent
    reasoning: str = ""


def _part_text(part: Any) -> str:
    if isinstance(part, str):
        return part
    if isinstance(part, dict) and "text" in part:
        return str(part["text"])
    return ""


def content_text(content: Union[FragmentContent, str, list, None]) -> str:
    """Flatten message content (string or list of parts) to plain text."""
    if isinstance(content, TextContent):
        return content.text
    if isinstance(content, PartsContent):
        return "".join(_part_text(p) for p in content.parts)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(_part_text(p) for p in content)
    return "" if content is None else str(content)


def fragment_from_chunk(chunk: Any) -> Fragment:
    """Normalize a LangChain message chunk into a Fragment."""
    raw = getattr(chunk, "content", None)
    if isinstance(raw, list):
        content: FragmentContent = PartsContent(tuple(raw))
    else:
        content = TextContent(content_text(raw))
    kwargs = getattr(chunk, "additional_kwargs", None) or {}
    reasoning = kwargs.get("reasoning_content") if isinstance(kwargs, dict) else None
    return Fragment(content=content, reasoning=reasoning if isinstance(reasoning, str) else "")


def _envelope_message(payload: str) -> Union[dict, None]:
    """The nested message object if payload is an Ollama JSON envelope, else None."""
    try:
        parsed = json.loads(payload)
    except (ValueError, RecursionError):
        return None
    if isinstance(parsed, dict) and isinstance(parsed.get("message"), dict):
        return parsed["message"]
    return None


def decode_fragment(fragment: Fragment) -> list[StreamEvent]:
    events: list[StreamEvent] = []
    if fragment.reasoning:
        events.append(Thinking(fragment.reasoning))

    payload = content_text(fragment.content)
    if not payload:
        return events

    message = _envelope_message(payload)
    if message is None:
        events.append(Content(payload))
        return events

    thinking = message.get("thinking")
    if thinking:
        events.append(Thinking(str(thinking)))
    text = message.get("content")
    if text:
        events.append(Content(str(text)))
    return events


def decode_chunk(chunk: Any) -> list[StreamEvent]:
    return decode_fragment(fragment_from_chunk(chunk))
