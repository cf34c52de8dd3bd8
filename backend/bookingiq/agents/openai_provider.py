"""
OpenAI-compatible LLM Provider

Works against OpenAI or any server speaking the same chat-completions API
(Mistral among them) through ``OPENAI_BASE_URL``.
"""
from typing import Dict, List, Optional

import openai
import structlog
from openai import AsyncOpenAI

from bookingiq.config import Settings
from bookingiq.errors import LLMServiceError

logger = structlog.get_logger()

_TRANSIENT_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIProvider:
    """Chat-completions provider."""

    name = "openai"

    def __init__(self, settings: Settings, client: AsyncOpenAI = None):
        if client is None and not settings.openai_api_key:
            raise ValueError("OpenAI API key not configured. Set OPENAI_API_KEY in .env")
        self.model_name = settings.openai_model
        self.client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            max_retries=0,
        )
        logger.info("Initialized OpenAI-compatible provider", model=self.model_name,
                    base_url=settings.openai_base_url or "default")

    async def generate(
        self,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        system_prompt: Optional[str] = None,
    ) -> str:
        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=temperature,
                top_p=1 if temperature == 0 else 0.9,
                max_tokens=max_tokens,
            )
        except _TRANSIENT_ERRORS as e:
            raise LLMServiceError(f"OpenAI request failed: {e}", transient=True, provider=self.name) from e
        except openai.OpenAIError as e:
            raise LLMServiceError(f"OpenAI request rejected: {e}", transient=False, provider=self.name) from e

        if not response.choices or not response.choices[0].message.content:
            raise LLMServiceError("OpenAI returned an empty completion", transient=True, provider=self.name)
        return response.choices[0].message.content
