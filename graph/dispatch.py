"""
Tool dispatch: run one tool by name and capture its outcome as a ToolInvocationResult.
Tool failures never raise past this module; they become result.error.
"""
import time
from typing import Any, Mapping, Union

import structlog

from graph.context import TurnContext
from graph.events import ToolInvocationResult, ToolName
from tools.base import Invalid, NotFound, WeatherRecord
from tools.extract_user import EXTRACTION_TEMPERATURE, ExtractionOutcome, extract_user_impl
from tools.weather_api import WeatherOutcome, get_weather_impl

log = structlog.get_logger()

EXTRACT_FAILED_MESSAGE = "提取用户信息失败，请提供更详细的信息"

TOOL_MARKERS = {
    ToolName.WEATHER: "\n\n🔍 正在查询天气...\n",
    ToolName.EXTRACT_USER: "\n\n🔍 正在提取用户信息...\n",
}


def weather_result(location: str, outcome: WeatherOutcome) -> ToolInvocationResult:
    if isinstance(outcome, WeatherRecord):
        return ToolInvocationResult.ok(ToolName.WEATHER, outcome)
    if isinstance(outcome, NotFound):
        return ToolInvocationResult.failed(
            ToolName.WEATHER, f"未找到城市“{location}”，请检查城市名称是否正确"
        )
    return ToolInvocationResult.failed(ToolName.WEATHER, f"查询天气失败，请稍后重试（{outcome.reason}）")


def extract_result(outcome: ExtractionOutcome) -> ToolInvocationResult:
    if isinstance(outcome, Invalid):
        return ToolInvocationResult.failed(ToolName.EXTRACT_USER, EXTRACT_FAILED_MESSAGE)
    return ToolInvocationResult.ok(ToolName.EXTRACT_USER, outcome)


def resolve_tool_name(name: str) -> Union[ToolName, None]:
    try:
        return ToolName(name)
    except ValueError:
        return None


def run_tool(ctx: TurnContext, name: ToolName, args: Mapping[str, Any]) -> ToolInvocationResult:
    """Execute one tool synchronously. The turn waits; nothing else runs for it meanwhile."""
    start = time.perf_counter()
    if name is ToolName.WEATHER:
        location = str(args.get("location") or "")
        result = weather_result(
            location,
            get_weather_impl(
                location,
                api_host=ctx.weather_api_host,
                api_key=ctx.weather_api_key or "",
                timeout=ctx.weather_timeout_sec,
            ),
        )
    else:
        content = str(args.get("content") or "")
        try:
            llm = ctx.chat_model(temperature=EXTRACTION_TEMPERATURE)
        except Exception as e:
            log.warning("tool_model_unavailable", tool=name.value, error=str(e)[:200])
            result = extract_result(Invalid("extraction model unavailable"))
        else:
            result = extract_result(extract_user_impl(content, llm))
    duration = time.perf_counter() - start
    log.info("tool_call", tool=name.value, success=result.success, duration_sec=round(duration, 3))
    return result
