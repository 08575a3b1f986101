"""
Render tool results: text for the chat stream, typed payload for the UI.
Pure functions; absent optional fields are left out, never printed as placeholders.
"""
from typing import Any

from graph.events import ToolInvocationResult
from tools.base import ExtractedUser, WeatherRecord


def _num(value: float) -> str:
    return f"{value:g}"


def format_weather(weather: WeatherRecord) -> str:
    loc, now = weather.location, weather.now
    region = "，".join(part for part in (loc.adm2, loc.adm1) if part)
    header = f"🌤️ {loc.name}（{region}）天气情况：" if region else f"🌤️ {loc.name}天气情况："
    lines = [
        header,
        f"温度：{_num(now.temp)}°C（体感 {_num(now.feels_like)}°C）",
        f"天气：{now.text}",
        f"湿度：{_num(now.humidity)}%",
        f"风向：{now.wind_dir}",
        f"风力：{now.wind_scale}",
        f"气压：{_num(now.pressure)}hPa",
        f"能见度：{_num(now.vis)}km",
        f"降水量：{_num(now.precip)}mm",
        f"观测时间：{now.obs_time}",
    ]
    return "\n".join(lines)


def format_user(user: ExtractedUser) -> str:
    lines = ["👤 用户信息："]
    if user.name:
        lines.append(f"姓名：{user.name}")
    if user.age is not None:
        lines.append(f"年龄：{user.age}岁")
    if user.email:
        lines.append(f"邮箱：{user.email}")
    if user.phone:
        lines.append(f"手机号：{user.phone}")
    if user.address:
        parts = [p for p in (user.address.city, user.address.district, user.address.street) if p]
        if parts:
            lines.append(f"地址：{' '.join(parts)}")
    if user.occupation:
        lines.append(f"职业：{user.occupation}")
    if user.hobbies:
        lines.append(f"兴趣爱好：{'、'.join(user.hobbies)}")
    return "\n".join(lines)


def format_tool_result(result: ToolInvocationResult) -> str:
    if not result.success:
        return result.error or "工具调用失败"
    if isinstance(result.payload, WeatherRecord):
        return format_weather(result.payload)
    if isinstance(result.payload, ExtractedUser):
        return format_user(result.payload)
    return str(result.payload)


def weather_payload(weather: WeatherRecord) -> dict[str, Any]:
    loc, now = weather.location, weather.now
    return {
        "location": {
            "name": loc.name,
            "id": loc.id,
            "lat": loc.lat,
            "lon": loc.lon,
            "adm1": loc.adm1,
            "adm2": loc.adm2,
            "country": loc.country,
        },
        "now": {
            "temp": now.temp,
            "feelsLike": now.feels_like,
            "text": now.text,
            "windDir": now.wind_dir,
            "windScale": now.wind_scale,
            "windSpeed": now.wind_speed,
            "humidity": now.humidity,
            "precip": now.precip,
            "pressure": now.pressure,
            "vis": now.vis,
            "obsTime": now.obs_time,
            "fxLink": now.fx_link,
        },
    }


def tool_payload(result: ToolInvocationResult) -> dict[str, Any]:
    """JSON-safe payload for UI consumers (camelCase keys, as the web client expects)."""
    payload: dict[str, Any] = {"toolName": result.tool_name.value, "success": result.success}
    if not result.success:
        payload["error"] = result.error
    elif isinstance(result.payload, WeatherRecord):
        payload["result"] = weather_payload(result.payload)
    elif isinstance(result.payload, ExtractedUser):
        payload["result"] = result.payload.model_dump(exclude_none=True)
    return payload
