"""Pytest fixtures for the Gravita AI router tests."""
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from gravita_ai.core.config import Settings
from gravita_ai.core.cost_tracker import (
    BudgetConfigStore,
    CostTracker,
    InMemoryUsageStore,
    Provider,
)
from gravita_ai.llm.base import LLMRequest, LLMResponse, ProviderClient
from gravita_ai.llm.registry import ProviderRegistry
from gravita_ai.llm.router import ModelRouter


def make_settings(**overrides) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    values = dict(
        google_gemini_api_key=None,
        deepseek_api_key=None,
        openai_api_key=None,
        chatllm_api_key=None,
        openai_base_url=None,
        usage_path=None,
        budget_path=None,
    )
    values.update(overrides)
    # Pass aliases so explicit values win over same-named environment variables
    by_alias = {Settings.model_fields[name].alias or name: value for name, value in values.items()}
    return Settings(_env_file=None, **by_alias)


class FakeProvider(ProviderClient):
    """Scripted provider client.

    Each call consumes the next outcome: an exception is raised, a string is
    returned as content. The last outcome repeats once the script runs out.
    """

    def __init__(self, provider: Provider, outcomes: Optional[list] = None, usage: Optional[dict] = None):
        self.provider = provider
        self.outcomes = list(outcomes or ["ok"])
        self.usage = {"input_tokens": 100, "output_tokens": 50} if usage is None else usage
        self.calls: list[tuple[LLMRequest, str, int]] = []

    async def complete(self, request: LLMRequest, *, model: str, max_tokens: int) -> LLMResponse:
        self.calls.append((request, model, max_tokens))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return LLMResponse(
            content=outcome,
            model=model,
            provider=self.provider.value,
            usage=dict(self.usage),
        )


# --- Settings and ledger fixtures ---

@pytest.fixture
def settings() -> Settings:
    """Settings with every provider configured."""
    return make_settings(
        google_gemini_api_key="gemini-test-key",
        deepseek_api_key="deepseek-test-key",
        openai_api_key="openai-test-key",
    )


@pytest.fixture
def usage_store() -> InMemoryUsageStore:
    return InMemoryUsageStore()


@pytest.fixture
def cost_tracker(usage_store) -> CostTracker:
    return CostTracker(store=usage_store, budget_store=BudgetConfigStore())


# --- Provider fixtures ---

@pytest.fixture
def gemini() -> FakeProvider:
    return FakeProvider(Provider.GEMINI, ["gemini says hi"])


@pytest.fixture
def deepseek() -> FakeProvider:
    return FakeProvider(Provider.DEEPSEEK, ["deepseek says hi"])


@pytest.fixture
def openai_fake() -> FakeProvider:
    return FakeProvider(Provider.OPENAI, ["openai says hi"])


@pytest.fixture
def registry(settings, gemini, deepseek) -> ProviderRegistry:
    """Gemini and DeepSeek configured with fakes, OpenAI left unconfigured."""
    reg = ProviderRegistry(settings)
    reg.register_client(Provider.GEMINI, gemini)
    reg.register_client(Provider.DEEPSEEK, deepseek)
    return reg


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def router(registry, cost_tracker, sleep) -> ModelRouter:
    return ModelRouter(registry, cost_tracker, sleep=sleep)
