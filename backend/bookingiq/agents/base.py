"""
Base Agent Framework

Provides the text-generation service contract shared by all providers and
the base class for agents that call it:
- explicit service injection (no module-level clients)
- per-call timeout and a single retry on transient failures
- structured logging of every call
"""
from abc import ABC
from datetime import datetime
from typing import Optional, Protocol

import structlog

from bookingiq.config import Settings, get_settings
from bookingiq.errors import LLMServiceError
from bookingiq.retry import call_with_retry

logger = structlog.get_logger()


class TextGenerationService(Protocol):
    """Anything that turns a prompt into text."""

    async def generate(
        self,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        system_prompt: Optional[str] = None,
    ) -> str:
        ...


def is_transient_llm_error(exc: BaseException) -> bool:
    return isinstance(exc, LLMServiceError) and exc.transient


def build_text_service(settings: Settings = None) -> TextGenerationService:
    """Create the provider selected by ``LLM_PROVIDER``."""
    settings = settings or get_settings()
    provider = settings.llm_provider.lower()
    if provider == "gemini":
        from bookingiq.agents.gemini_provider import GeminiProvider
        return GeminiProvider(settings)
    if provider == "bedrock":
        from bookingiq.agents.bedrock_provider import BedrockProvider
        return BedrockProvider(settings)
    if provider == "openai":
        from bookingiq.agents.openai_provider import OpenAIProvider
        return OpenAIProvider(settings)
    raise ValueError(f"Unsupported LLM provider: {settings.llm_provider}")


class BaseAgent(ABC):
    """
    Base class for BookingIQ agents.

    Subclasses describe their role in ``get_system_prompt`` and call the
    injected service through ``_call_llm``.
    """

    def __init__(
        self,
        name: str,
        description: str,
        service: TextGenerationService,
        settings: Settings = None,
        temperature: float = 0.0,
        max_tokens: int = 1000,
    ):
        self.name = name
        self.description = description
        self.service = service
        self.settings = settings or get_settings()
        self.temperature = temperature
        self.max_tokens = max_tokens

        logger.debug(f"Initialized agent: {name}", provider=type(service).__name__)

    def get_system_prompt(self) -> Optional[str]:
        """System prompt sent with every call; ``None`` means none."""
        return None

    async def _call_llm(
        self,
        prompt: str,
        temperature: float = None,
        max_tokens: int = None,
    ) -> str:
        """Call the text-generation service with timeout, retry and logging."""
        start_time = datetime.utcnow()
        temperature = self.temperature if temperature is None else temperature
        max_tokens = self.max_tokens if max_tokens is None else max_tokens
        system_prompt = self.get_system_prompt()

        try:
            text = await call_with_retry(
                lambda: self.service.generate(
                    prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    system_prompt=system_prompt,
                ),
                timeout=self.settings.llm_timeout_seconds,
                attempts=self.settings.llm_retry_attempts,
                backoff=self.settings.llm_retry_backoff_seconds,
                is_transient=is_transient_llm_error,
                label=self.name,
            )
        except Exception as e:
            logger.error(f"LLM call failed: {e!r}", agent=self.name)
            raise

        duration_ms = int((datetime.utcnow() - start_time).total_seconds() * 1000)
        logger.info(
            "LLM call completed",
            agent=self.name,
            prompt_chars=len(prompt),
            response_chars=len(text or ""),
            duration_ms=duration_ms,
        )
        return text or ""
