"""
FastAPI backend: chat with streaming (NDJSON), runtime model config, health check.
Logs are structured (request_id, conversation_id, mode, duration); no secrets are logged.
"""
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Literal, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from app.config import ChatConfig, get_settings
from graph.context import TurnContext
from graph.formatter import tool_payload
from graph.orchestrator import TransportError, send_message, start_turn

log = logging.getLogger(__name__)
logging.basicConfig(level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed the runtime chat config from settings on startup."""
    app.state.chat_config = get_settings().chat_config()
    yield


app = FastAPI(title="ollama-chat-tools", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=8000)
    mode: Literal["plain", "routed", "smart", "agent"] = Field(default="smart", description="Turn strategy")
    system_prompt: Optional[str] = Field(default=None, max_length=4000)
    conversation_id: str | None = Field(default=None, description="Echoed back; no memory is kept")


class ChatChunk(BaseModel):
    type: str = "content"
    content: str = ""
    tool_call: Optional[dict[str, Any]] = None


def _current_config(request: Request) -> ChatConfig:
    config = getattr(request.app.state, "chat_config", None)
    if config is None:
        config = get_settings().chat_config()
        request.app.state.chat_config = config
    return config


def _turn_context(request: Request) -> TurnContext:
    """Snapshot of the config at turn start; a later PUT /config affects the next turn only."""
    return TurnContext.from_settings(get_settings(), config=_current_config(request))


def _stream_turn(req: ChatRequest, ctx: TurnContext):
    """Run one turn and serialize its events in order, ending with a done (or error) chunk."""
    turn = start_turn(req.mode, ctx, req.message, system_prompt=req.system_prompt)
    try:
        for event in turn:
            yield ChatChunk(**event.to_dict())
    except TransportError as e:
        log.error("chat_transport_error", extra={"error": str(e)[:200], "mode": req.mode})
        yield ChatChunk(type="error", content=f"❌ 流式响应失败：{str(e)[:100]}")
        return
    except Exception as e:
        log.error("chat_stream_error", extra={"error": str(e)[:200], "mode": req.mode})
        yield ChatChunk(type="error", content=f"❌ 处理消息时出错：{str(e)[:100]}")
        return
    summary = turn.summary()
    done = tool_payload(summary.tool_result) if summary.tool_result else None
    yield ChatChunk(type="done", content=summary.message, tool_call=done)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    response = await call_next(request)
    response.headers["x-request-id"] = rid
    return response


@app.post("/chat/stream")
async def chat_stream(req: ChatRequest, request: Request):
    """Stream chat events as NDJSON (one JSON object per line)."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    conv_id = req.conversation_id or str(uuid.uuid4())
    log.info("chat_stream_start", extra={"request_id": request_id, "conversation_id": conv_id, "mode": req.mode})
    ctx = _turn_context(request)

    def gen():
        for chunk in _stream_turn(req, ctx):
            yield chunk.model_dump_json() + "\n"

    return StreamingResponse(
        gen(),
        media_type="application/x-ndjson",
        headers={"x-request-id": request_id, "x-conversation-id": conv_id},
    )


@app.post("/chat")
def chat(req: ChatRequest, request: Request):
    """Non-streaming chat: returns the full response once done."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    conv_id = req.conversation_id or str(uuid.uuid4())
    start = time.perf_counter()
    log.info("chat_start", extra={"request_id": request_id, "conversation_id": conv_id})
    try:
        reply = send_message(_turn_context(request), req.message, system_prompt=req.system_prompt)
    except TransportError as e:
        log.error("chat_transport_error", extra={"error": str(e)[:200]})
        duration = time.perf_counter() - start
        log.info("chat_error", extra={"request_id": request_id, "duration_sec": round(duration, 3)})
        return {
            "response": f"❌ 请求模型失败：{str(e)[:100]}",
            "conversation_id": conv_id,
            "error": "transport_error",
        }
    except Exception as e:
        log.error("chat_error", extra={"error": str(e)[:200]})
        return {
            "response": f"❌ 处理消息时出错：{str(e)[:100]}",
            "conversation_id": conv_id,
            "error": "internal_error",
        }
    duration = time.perf_counter() - start
    log.info("chat_done", extra={"request_id": request_id, "duration_sec": round(duration, 3)})
    return {"response": reply.content, "thinking": reply.thinking, "conversation_id": conv_id}


@app.get("/config")
async def get_config(request: Request):
    return _current_config(request).model_dump()


@app.put("/config")
async def put_config(config: ChatConfig, request: Request):
    """Replace the chat config. Turns already running keep the snapshot they started with."""
    request.app.state.chat_config = config
    log.info("chat_config_updated", extra={"model": config.model, "base_url": config.base_url})
    return config.model_dump()


@app.get("/health")
async def health():
    """Basic health check."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.api_host, port=settings.api_port)
