import asyncio
from typing import Any

import pytest

from mindtheatre.libs.llm_router.base import BaseProvider
from mindtheatre.libs.llm_router.router import CompletionRouter
from mindtheatre.libs.llm_router.stub import StubProvider
from mindtheatre.libs.llm_router.types import CompletionError, LLMResponse


class DummyProvider(BaseProvider):
    def __init__(self, name: str, text: str = "hello", *, error: Exception | None = None, delay: float = 0.0) -> None:
        super().__init__(name=name)
        self._text = text
        self._error = error
        self._delay = delay
        self.calls = 0

    async def chat(self, *, messages, model: str, temperature=None, max_tokens=None, **kwargs: Any) -> LLMResponse:
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return LLMResponse(model=model, text=self._text, provider=self.name, usage={"total_tokens": 3})


MESSAGES = [{"role": "user", "content": "Hi"}]


@pytest.mark.asyncio
async def test_router_returns_first_provider_text() -> None:
    router = CompletionRouter()
    router.register_provider("primary", DummyProvider("primary", "from primary"))
    router.set_policy(["primary"])

    assert await router.complete(MESSAGES, model="m") == "from primary"


@pytest.mark.asyncio
async def test_router_fails_over_on_error_and_empty_text() -> None:
    broken = DummyProvider("broken", error=RuntimeError("boom"))
    empty = DummyProvider("empty", "   ")
    healthy = DummyProvider("healthy", "recovered")
    router = CompletionRouter()
    for key, provider in (("broken", broken), ("empty", empty), ("healthy", healthy)):
        router.register_provider(key, provider)
    router.set_policy(["broken", "empty", "healthy"])

    assert await router.complete(MESSAGES, model="m") == "recovered"
    assert (broken.calls, empty.calls, healthy.calls) == (1, 1, 1)


@pytest.mark.asyncio
async def test_router_bounds_each_call_with_timeout() -> None:
    router = CompletionRouter(timeout=0.05)
    router.register_provider("slow", DummyProvider("slow", delay=1.0))
    router.set_policy(["slow"])

    with pytest.raises(CompletionError) as excinfo:
        await router.complete(MESSAGES, model="m")
    assert "timeout" in str(excinfo.value)


@pytest.mark.asyncio
async def test_router_requires_registered_provider() -> None:
    router = CompletionRouter()
    router.set_policy(["missing"])
    with pytest.raises(CompletionError):
        await router.complete(MESSAGES, model="m")


def test_set_policy_rejects_empty_and_dedupes() -> None:
    router = CompletionRouter()
    with pytest.raises(ValueError):
        router.set_policy([])
    router.set_policy(["a", "b", "a"])
    assert router.policy == ["a", "b"]


@pytest.mark.asyncio
async def test_stub_provider_echoes_user_and_answers_affect_requests() -> None:
    stub = StubProvider()
    echo = await stub.chat(
        messages=[{"role": "system", "content": "You are the Id."}, {"role": "user", "content": "I want cake"}],
        model="stub/echo",
    )
    assert echo.text == "(You are the Id.) I hear you saying: I want cake"

    affect = await stub.chat(
        messages=[{"role": "system", "content": "Rate valence and arousal"}, {"role": "user", "content": "x"}],
        model="stub/echo",
    )
    assert affect.text == '{"valence": 0.0, "arousal": 0.5}'
