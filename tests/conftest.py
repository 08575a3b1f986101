"""Pytest config: PYTHONPATH, env and shared fakes for tests."""
import os
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(root))
os.environ.setdefault("OLLAMA_BASE_URL", "http://localhost:11434")
os.environ.setdefault("QWEATHER_API_KEY", "qw-test-dummy")

from langchain_core.messages import AIMessage, AIMessageChunk  # noqa: E402

from app.config import ChatConfig  # noqa: E402
from graph.context import TurnContext  # noqa: E402


@pytest.fixture
def make_chunk():
    """AIMessageChunk factory, shaped as ChatOllama streams them (reasoning on the side channel)."""
    def _chunk(content="", reasoning=None):
        kwargs = {"reasoning_content": reasoning} if reasoning else {}
        return AIMessageChunk(content=content, additional_kwargs=kwargs)
    return _chunk


@pytest.fixture
def chat_config():
    return ChatConfig(base_url="http://localhost:11434", model="qwen3:8b", temperature=0.7, max_tokens=512)


@pytest.fixture
def fake_llm():
    """MagicMock chat model: set .stream.return_value / .invoke.return_value per test."""
    llm = MagicMock()
    llm.bind_tools.return_value = llm
    llm.stream.return_value = iter([])
    llm.invoke.return_value = AIMessage(content="")
    return llm


@pytest.fixture
def ctx(chat_config, fake_llm):
    return TurnContext(
        config=chat_config,
        weather_api_host="https://weather.test",
        weather_api_key="qw-test-dummy",
        llm=fake_llm,
    )
