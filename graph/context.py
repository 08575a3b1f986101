"""
Per-turn context: a frozen snapshot of the chat configuration plus the settings needed by tools.
Built once per turn by the caller; chat models are created from it on demand, never cached globally.
"""
from dataclasses import dataclass, field
from typing import Optional

from langchain_core.language_models import BaseChatModel

from app.config import ChatConfig, Settings


@dataclass(frozen=True)
class TurnContext:
    config: ChatConfig
    provider: str = "ollama"
    openai_api_key: Optional[str] = field(default=None, repr=False)
    weather_api_host: str = "https://devapi.qweather.com"
    weather_api_key: Optional[str] = field(default=None, repr=False)
    weather_timeout_sec: float = 10.0
    # Injected model (tests, custom clients); used as-is for every call in the turn.
    llm: Optional[BaseChatModel] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        config: Optional[ChatConfig] = None,
        llm: Optional[BaseChatModel] = None,
    ) -> "TurnContext":
        return cls(
            config=config or settings.chat_config(),
            provider=settings.llm_provider,
            openai_api_key=settings.openai_api_key,
            weather_api_host=settings.qweather_api_host,
            weather_api_key=settings.qweather_api_key,
            weather_timeout_sec=settings.http_timeout_sec,
            llm=llm,
        )

    def chat_model(self, temperature: Optional[float] = None) -> BaseChatModel:
        """Chat model for this turn (Ollama native or OpenAI-compatible)."""
        if self.llm is not None:
            return self.llm
        temp = self.config.temperature if temperature is None else temperature
        if self.provider == "openai":
            from langchain_openai import ChatOpenAI
            return ChatOpenAI(
                base_url=self.config.base_url,
                model=self.config.model,
                api_key=self.openai_api_key,
                temperature=temp,
                max_tokens=self.config.max_tokens,
            )
        from langchain_ollama import ChatOllama
        return ChatOllama(
            base_url=self.config.base_url,
            model=self.config.model,
            temperature=temp,
            num_predict=self.config.max_tokens,
            reasoning=self.config.show_thinking,
        )
