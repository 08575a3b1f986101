"""
Weather tool: HTTP client for QWeather. Input: location text (sanitized).
Two phases: /geo/v2/city/lookup resolves the place, /v7/weather/now reads current conditions.
Any failure in either phase is reported once as NotFound or TransientError; no retries.
Failure reasons are user-facing (Chinese); request details stay in the logs.
"""
import logging
import re
from typing import TYPE_CHECKING, Any, Optional, Union

import httpx
from langchain_core.tools import ToolException, tool
from pydantic import BaseModel, Field

from tools.base import Conditions, Location, NotFound, TransientError, WeatherRecord

if TYPE_CHECKING:
    from graph.context import TurnContext

logger = logging.getLogger(__name__)

GEO_LOOKUP_PATH = "/geo/v2/city/lookup"
WEATHER_NOW_PATH = "/v7/weather/now"
DEFAULT_TIMEOUT_SEC = 10.0

WeatherOutcome = Union[WeatherRecord, NotFound, TransientError]


class UpstreamError(Exception):
    """Raised inside this module for any HTTP/body failure; never escapes get_weather_impl.
    The message is shown to the user."""


def _sanitize_location(text: Optional[str]) -> str:
    """Strip control and markup characters; max length 100. Apostrophes stay (Xi'an)."""
    if not text or not isinstance(text, str):
        return ""
    cleaned = re.sub(r"[<>{}\[\]\"`\\\x00-\x1f]", "", text.strip())[:100]
    return cleaned.strip()


def _to_float(value: Any, field: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Weather API non-numeric %s: %r", field, value)
        raise UpstreamError(f"天气数据字段 {field} 不是数字")


def _http_get(url: str, params: dict, api_key: str, timeout: float = DEFAULT_TIMEOUT_SEC) -> dict:
    """Single HTTP GET. Returns the parsed JSON object or raises UpstreamError."""
    headers = {"Accept": "application/json", "X-QW-Api-Key": api_key}
    try:
        with httpx.Client(timeout=timeout) as client:
            r = client.get(url, params=params, headers=headers)
    except httpx.TimeoutException as e:
        logger.warning("Weather API timeout: %s", e)
        raise UpstreamError("请求超时")
    except httpx.RequestError as e:
        logger.warning("Weather API request error: %s", e)
        raise UpstreamError("网络错误")
    if r.status_code != 200:
        logger.warning("Weather API %s returned HTTP %s", url, r.status_code)
        raise UpstreamError(f"天气服务返回 HTTP {r.status_code}")
    try:
        body = r.json()
    except ValueError:
        raise UpstreamError("天气服务响应不是有效的 JSON")
    if not isinstance(body, dict):
        raise UpstreamError("天气服务响应格式异常")
    return body


def _parse_location(match: dict) -> Location:
    try:
        return Location(
            name=str(match["name"]),
            id=str(match["id"]),
            lat=_to_float(match.get("lat"), "lat"),
            lon=_to_float(match.get("lon"), "lon"),
            adm1=match.get("adm1") or "",
            adm2=match.get("adm2") or "",
            country=match.get("country") or "",
        )
    except KeyError as e:
        raise UpstreamError(f"城市数据缺少字段 {e.args[0]}")


def _parse_conditions(body: dict) -> Conditions:
    now = body.get("now")
    if not isinstance(now, dict):
        raise UpstreamError("天气数据缺少 now 字段")
    return Conditions(
        temp=_to_float(now.get("temp"), "temp"),
        feels_like=_to_float(now.get("feelsLike"), "feelsLike"),
        text=now.get("text") or "",
        wind_dir=now.get("windDir") or "",
        wind_scale=now.get("windScale") or "",
        wind_speed=_to_float(now.get("windSpeed"), "windSpeed"),
        humidity=_to_float(now.get("humidity"), "humidity"),
        precip=_to_float(now.get("precip"), "precip"),
        pressure=_to_float(now.get("pressure"), "pressure"),
        vis=_to_float(now.get("vis"), "vis"),
        obs_time=now.get("obsTime") or "",
        fx_link=body.get("fxLink") or "",
    )


def lookup_location(
    location: str, api_host: str, api_key: str, timeout: float = DEFAULT_TIMEOUT_SEC
) -> Union[Location, NotFound]:
    """Resolve location text to the first geocoding match. Raises UpstreamError on failure."""
    body = _http_get(f"{api_host.rstrip('/')}{GEO_LOOKUP_PATH}", {"location": location}, api_key, timeout)
    code = str(body.get("code", ""))
    matches = body.get("location") or []
    if code == "404" or (code == "200" and not matches):
        logger.info("Location not found: %s (code %s)", location, code)
        return NotFound(location)
    if code != "200":
        raise UpstreamError(f"城市查询返回错误码 {code or '无'}")
    if not isinstance(matches, list) or not isinstance(matches[0], dict):
        raise UpstreamError("城市查询响应格式异常")
    return _parse_location(matches[0])


def current_conditions(
    location_id: str, api_host: str, api_key: str, timeout: float = DEFAULT_TIMEOUT_SEC
) -> Conditions:
    """Current conditions for a location id. Raises UpstreamError on failure."""
    body = _http_get(f"{api_host.rstrip('/')}{WEATHER_NOW_PATH}", {"location": location_id}, api_key, timeout)
    code = str(body.get("code", ""))
    if code != "200":
        raise UpstreamError(f"天气查询返回错误码 {code or '无'}")
    return _parse_conditions(body)


def get_weather_impl(
    location: str,
    api_host: str,
    api_key: Optional[str],
    timeout: float = DEFAULT_TIMEOUT_SEC,
) -> WeatherOutcome:
    """Resolve the location, then read its current conditions."""
    if not api_key:
        logger.warning("Weather lookup skipped: QWEATHER_API_KEY is not set")
        return TransientError("天气服务未配置")

    query = _sanitize_location(location)
    if not query:
        return NotFound(location or "")

    try:
        place = lookup_location(query, api_host, api_key, timeout)
        if isinstance(place, NotFound):
            return place
        now = current_conditions(place.id, api_host, api_key, timeout)
    except UpstreamError as e:
        logger.error("Weather lookup failed for %s: %s", query, e)
        return TransientError(str(e))

    logger.info("Weather lookup ok: %s -> %s (%s)", query, place.id, place.name)
    return WeatherRecord(location=place, now=now)


class WeatherInput(BaseModel):
    """Structured input for weather: a place name."""
    location: str = Field(description="城市名称，例如：北京、上海、广州等")


def get_weather_tool(ctx: "TurnContext"):
    """Build the getWeather tool bound to one turn's context (weather host, key and timeout)."""
    from graph.dispatch import run_tool
    from graph.events import ToolName
    from graph.formatter import format_tool_result

    @tool("getWeather", args_schema=WeatherInput)
    def get_weather(location: str) -> str:
        """查询指定城市的实时天气信息，包括温度、湿度、风向等"""
        result = run_tool(ctx, ToolName.WEATHER, {"location": location})
        if not result.success:
            raise ToolException(result.error)
        return format_tool_result(result)

    return get_weather
