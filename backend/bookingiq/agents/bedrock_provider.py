"""
AWS Bedrock LLM Provider

Invokes Anthropic models hosted on Bedrock. boto3 is synchronous, so each
call runs in a worker thread.
"""
import asyncio
import json
from typing import Optional

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from bookingiq.config import Settings
from bookingiq.errors import LLMServiceError

logger = structlog.get_logger()

_TRANSIENT_CODES = {
    "ThrottlingException",
    "ServiceUnavailableException",
    "InternalServerException",
    "ModelNotReadyException",
    "ModelTimeoutException",
}


class BedrockProvider:
    """
    AWS Bedrock API provider.
    Handles all interactions with the bedrock-runtime service.
    """

    name = "bedrock"

    def __init__(self, settings: Settings, client=None):
        self.model_id = settings.bedrock_model_id
        self.region = settings.aws_region

        if client is None:
            if not settings.aws_access_key_id or not settings.aws_secret_access_key:
                raise ValueError("AWS credentials not configured in environment")
            client_kwargs = {
                "service_name": "bedrock-runtime",
                "region_name": self.region,
                "aws_access_key_id": settings.aws_access_key_id,
                "aws_secret_access_key": settings.aws_secret_access_key,
            }
            # Add session token if provided (for temporary credentials)
            if settings.aws_session_token:
                client_kwargs["aws_session_token"] = settings.aws_session_token
            client = boto3.client(**client_kwargs)
        self.client = client

        logger.info("Initialized Bedrock provider", model=self.model_id, region=self.region)

    def _invoke(self, body: dict) -> dict:
        response = self.client.invoke_model(
            modelId=self.model_id,
            body=json.dumps(body),
            contentType="application/json",
            accept="application/json",
        )
        return json.loads(response["body"].read())

    async def generate(
        self,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        system_prompt: Optional[str] = None,
    ) -> str:
        body = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            body["system"] = system_prompt

        try:
            result = await asyncio.to_thread(self._invoke, body)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            raise LLMServiceError(f"Bedrock request failed: {code}", transient=code in _TRANSIENT_CODES,
                                  provider=self.name) from e
        except BotoCoreError as e:
            raise LLMServiceError(f"Bedrock request failed: {e}", transient=True, provider=self.name) from e

        parts = [block.get("text", "") for block in result.get("content", []) if block.get("type") == "text"]
        text = "".join(parts)
        if not text:
            raise LLMServiceError("Bedrock returned no text content", transient=False, provider=self.name)

        usage = result.get("usage", {})
        logger.info(
            "Bedrock text generation completed",
            model=self.model_id,
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
        )
        return text
