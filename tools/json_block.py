"""
Locate and parse the JSON object inside a model reply.
Two rules, in order: a fenced code block, else the longest balanced {...} span.
Failure is returned as Invalid, never raised.
"""
import json
import re
from typing import Any, Optional, Union

from tools.base import Invalid

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)```", re.IGNORECASE)


def _fenced_block(text: str) -> Optional[str]:
    match = _FENCE_RE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def _longest_brace_span(text: str) -> Optional[str]:
    """Longest top-level balanced {...} span. Braces inside JSON strings are ignored."""
    best: Optional[tuple[int, int]] = None
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and (best is None or i + 1 - start > best[1] - best[0]):
                best = (start, i + 1)
    if best is None:
        return None
    return text[best[0]:best[1]]


def find_json_text(text: str) -> Optional[str]:
    """Return the candidate JSON text, or None when neither rule matches."""
    if not text:
        return None
    return _fenced_block(text) or _longest_brace_span(text)


def parse_json_object(text: str) -> Union[dict[str, Any], Invalid]:
    """Parse the JSON object embedded in text. Non-object JSON is Invalid too."""
    candidate = find_json_text(text)
    if candidate is None:
        return Invalid("no JSON object found in model output")
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        return Invalid(f"malformed JSON: {e.msg}")
    if not isinstance(data, dict):
        return Invalid("model output is not a JSON object")
    return data
