"""
LangGraph router nodes: ClassifyNode, LocateNode, ExtractNode and NoToolNode.
Only an explicit weather word skips the classifier; every other query gets one closed-set LLM
classification call, and anything the classifier says outside the three tokens means "no tool".
"""
import re
import time
from typing import Any

import structlog
from langchain_core.messages import HumanMessage, SystemMessage

from graph.context import TurnContext
from graph.decoder import content_text
from graph.state import RouteKind, RouterState, RoutingDecision

log = structlog.get_logger()

CLASSIFIER_TEMPERATURE = 0.1

WEATHER_KEYWORDS = ("天气", "weather")

CLASSIFIER_PROMPT = """你是一个意图分类器。根据用户输入，只回复以下三个词之一，不要输出任何其他内容：
weather - 用户想查询某地的天气
extract - 用户在描述个人信息（姓名、年龄、邮箱、手机、地址等），需要提取结构化信息
none - 其他情况"""

LOCATION_PROMPT = """从用户输入中提取要查询天气的地点名称。只回复地点名称本身（例如：北京、上海浦东），
不要输出任何其他文字或标点。如果没有提到地点，回复 none。"""

_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_STRIP_CHARS = " \t\r\n\"'`“”‘’「」。.,，!！?？:：;；*"


def _last_query(state: RouterState) -> str:
    return (state.get("query") or "").strip()[:2000]


def normalize_reply(text: str) -> str:
    """Drop <think> blocks, surrounding quotes and punctuation."""
    return _THINK_RE.sub("", text or "").strip(_STRIP_CHARS)


def keyword_intent(query: str) -> str:
    """Fast path for explicit weather questions (no LLM). Returns 'weather' or ''."""
    lower = query.lower()
    if any(k in lower for k in WEATHER_KEYWORDS):
        return RouteKind.WEATHER.value
    return ""


def parse_intent(reply: str) -> str:
    """Map the classifier reply onto one of the three tokens; anything else is 'none'."""
    token = normalize_reply(reply).lower()
    if token in (RouteKind.WEATHER.value, RouteKind.EXTRACT_USER.value, RouteKind.NONE.value):
        return token
    return RouteKind.NONE.value


def classify_node(state: RouterState, ctx: TurnContext) -> dict[str, Any]:
    """
    ClassifyNode: decides the turn's intent. Keyword match first; otherwise one
    low-temperature LLM call. Classifier errors route to 'none' instead of failing the turn.
    """
    query = _last_query(state)
    if not query:
        return {"intent": RouteKind.NONE.value}

    intent = keyword_intent(query)
    if intent:
        log.info("classify_node", intent=intent, reason="keyword_match", duration_sec=0)
        return {"intent": intent}

    start = time.perf_counter()
    try:
        llm = ctx.chat_model(temperature=CLASSIFIER_TEMPERATURE)
        out = llm.invoke([SystemMessage(content=CLASSIFIER_PROMPT), HumanMessage(content=query)])
        intent = parse_intent(content_text(out.content))
    except Exception as e:
        log.warning("classify_node_error", error=str(e)[:200])
        intent = RouteKind.NONE.value
    duration = time.perf_counter() - start
    log.info("classify_node", intent=intent, reason="llm", duration_sec=round(duration, 3))
    return {"intent": intent}


def locate_node(state: RouterState, ctx: TurnContext) -> dict[str, Any]:
    """
    LocateNode: second LLM call extracting a bare location string for the weather tool.
    No location means the query was not a lookup after all; plain chat takes the turn.
    """
    query = _last_query(state)
    start = time.perf_counter()
    try:
        llm = ctx.chat_model(temperature=CLASSIFIER_TEMPERATURE)
        out = llm.invoke([SystemMessage(content=LOCATION_PROMPT), HumanMessage(content=query)])
        location = normalize_reply(content_text(out.content))
    except Exception as e:
        log.warning("locate_node_error", error=str(e)[:200])
        location = ""
    if location.lower() == "none":
        location = ""
    duration = time.perf_counter() - start
    log.info("locate_node", location=location, duration_sec=round(duration, 3))
    if not location:
        return {"decision": RoutingDecision.none()}
    return {"decision": RoutingDecision.weather(location)}


def extract_node(state: RouterState) -> dict[str, Any]:
    """ExtractNode: the full user text goes to the extraction tool verbatim."""
    return {"decision": RoutingDecision.extract_user(state.get("query") or "")}


def no_tool_node(state: RouterState) -> dict[str, Any]:
    """NoToolNode: plain chat handles the turn."""
    return {"decision": RoutingDecision.none()}
