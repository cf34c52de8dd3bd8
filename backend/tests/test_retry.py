import asyncio

import pytest

from bookingiq.agents.base import BaseAgent, build_text_service, is_transient_llm_error
from bookingiq.errors import LLMServiceError
from bookingiq.retry import call_with_retry, describe

from conftest import FakeTextService


class Counter:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == "hang":
            await asyncio.sleep(10)
        return outcome


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    operation = Counter(LLMServiceError("busy", transient=True), "ok")
    result = await call_with_retry(operation, timeout=1, attempts=2, backoff=0,
                                   is_transient=is_transient_llm_error)
    assert result == "ok"
    assert operation.calls == 2


@pytest.mark.asyncio
async def test_permanent_failure_is_not_retried():
    operation = Counter(LLMServiceError("bad request", transient=False), "ok")
    with pytest.raises(LLMServiceError):
        await call_with_retry(operation, timeout=1, attempts=2, backoff=0,
                              is_transient=is_transient_llm_error)
    assert operation.calls == 1


@pytest.mark.asyncio
async def test_timeout_is_retried_then_raised():
    operation = Counter("hang", "hang")
    with pytest.raises(asyncio.TimeoutError):
        await call_with_retry(operation, timeout=0.01, attempts=2, backoff=0)
    assert operation.calls == 2


@pytest.mark.asyncio
async def test_attempts_bound_the_retries():
    operation = Counter(*[LLMServiceError("busy", transient=True) for _ in range(4)])
    with pytest.raises(LLMServiceError):
        await call_with_retry(operation, timeout=1, attempts=3, backoff=0,
                              is_transient=is_transient_llm_error)
    assert operation.calls == 3


@pytest.mark.asyncio
async def test_single_attempt_does_not_retry_timeouts():
    operation = Counter("hang", "ok")
    with pytest.raises(asyncio.TimeoutError):
        await call_with_retry(operation, timeout=0.01, attempts=1, backoff=0)
    assert operation.calls == 1


def test_describe():
    assert describe(asyncio.TimeoutError()) == "timed out"
    assert describe(ValueError("boom")) == "boom"
    assert describe(ValueError()) == "ValueError"


class EchoAgent(BaseAgent):
    def get_system_prompt(self):
        return "You echo."


@pytest.mark.asyncio
async def test_agent_passes_generation_parameters(settings):
    service = FakeTextService("hello")
    agent = EchoAgent("Echo", "test agent", service, settings, temperature=0.3, max_tokens=42)

    assert await agent._call_llm("prompt") == "hello"
    assert service.calls == [{"prompt": "prompt", "temperature": 0.3, "max_tokens": 42,
                              "system_prompt": "You echo."}]


def test_unknown_provider_is_rejected(settings):
    with pytest.raises(ValueError):
        build_text_service(settings.model_copy(update={"llm_provider": "carrier-pigeon"}))


def test_missing_api_key_is_rejected(settings):
    with pytest.raises(ValueError):
        build_text_service(settings.model_copy(update={"llm_provider": "openai", "openai_api_key": ""}))
