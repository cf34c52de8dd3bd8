"""
Gemini LLM Provider

Calls Google's Generative Language REST API directly with aiohttp.
"""
from typing import Optional

import aiohttp
import structlog

from bookingiq.config import Settings
from bookingiq.errors import LLMServiceError

logger = structlog.get_logger()

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


class GeminiProvider:
    """
    Gemini API provider.
    Handles all interactions with Google's Generative AI API via REST.
    """

    name = "gemini"

    def __init__(self, settings: Settings):
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY not configured in environment")
        self.model_name = settings.gemini_model
        self.api_key = settings.gemini_api_key
        logger.info(f"Initialized Gemini provider with model: {self.model_name} (REST API mode)")

    def _payload(self, prompt: str, system_prompt: Optional[str], temperature: float, max_tokens: int) -> dict:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "topP": 1 if temperature == 0 else 0.9,
                "maxOutputTokens": max_tokens,
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    async def generate(
        self,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        system_prompt: Optional[str] = None,
    ) -> str:
        """
        Generate a text response from the Gemini model.

        Raises:
            LLMServiceError: transient for network errors, 429 and 5xx;
                permanent for other non-200 statuses and malformed bodies.
        """
        url = GEMINI_URL.format(model=self.model_name)
        payload = self._payload(prompt, system_prompt, temperature, max_tokens)

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, params={"key": self.api_key}, json=payload) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"Gemini API error: {response.status}", body=error_text[:500])
                        raise LLMServiceError(
                            f"Gemini API returned {response.status}",
                            transient=response.status == 429 or response.status >= 500,
                            provider=self.name,
                        )
                    result = await response.json()
        except aiohttp.ClientError as e:
            raise LLMServiceError(f"Gemini request failed: {e}", transient=True, provider=self.name) from e

        try:
            text = result["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMServiceError("Gemini response had no text candidate", transient=False,
                                  provider=self.name) from e

        logger.info("Gemini text generation completed", model=self.model_name, output_length=len(text))
        return text
