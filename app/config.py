"""
Load settings from .env. Never log or expose secret values.
All values come from environment variables (populated via .env file).
ChatConfig is the runtime-settable model configuration; each turn takes a snapshot of it.
"""
from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChatConfig(BaseModel):
    """Model configuration a client may change at runtime. Takes effect on the next turn."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    base_url: str = Field(description="Model server endpoint")
    model: str = Field(min_length=1, description="Model id")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, gt=0)
    show_thinking: bool = Field(default=True, description="Ask the model for reasoning output")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    # Model provider: Ollama native, or any OpenAI-compatible endpoint
    llm_provider: Literal["ollama", "openai"] = Field(default="ollama", description="Chat model provider")
    ollama_base_url: str = Field(default="http://localhost:11434", description="Ollama / OpenAI-compatible base URL")
    chat_model: str = Field(default="qwen3:8b", description="Default chat model id")
    temperature: float = Field(default=0.7, description="Default sampling temperature")
    max_tokens: int = Field(default=2048, description="Default max tokens per response")
    show_thinking: bool = Field(default=True, description="Request reasoning output by default")
    openai_api_key: Optional[str] = Field(default=None, description="API key when llm_provider=openai")

    # Weather (QWeather)
    qweather_api_host: str = Field(default="https://devapi.qweather.com", description="QWeather API host")
    qweather_api_key: Optional[str] = Field(default=None, description="QWeather API key")
    http_timeout_sec: float = Field(default=10.0, description="Timeout for weather HTTP calls")

    # App
    log_level: str = Field(default="INFO", description="Log level")
    api_host: str = Field(default="0.0.0.0", description="FastAPI bind host")
    api_port: int = Field(default=8000, description="FastAPI port")

    def chat_config(self) -> ChatConfig:
        return ChatConfig(
            base_url=self.ollama_base_url,
            model=self.chat_model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            show_thinking=self.show_thinking,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
