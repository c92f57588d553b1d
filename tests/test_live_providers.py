"""
Live provider checks. These call the real APIs and cost a fraction of a cent.

Run with:
    python -m pytest tests/test_live_providers.py -v -m integration
"""
import os

import pytest
from dotenv import load_dotenv

from gravita_ai.core.config import Settings
from gravita_ai.core.cost_tracker import CostTracker, ModelTier
from gravita_ai.llm.registry import default_registry
from gravita_ai.llm.router import ModelRouter, TaskType

load_dotenv()

# Mark all tests in this module as integration tests
pytestmark = pytest.mark.integration


@pytest.fixture
def live_router():
    return ModelRouter(default_registry(Settings()), CostTracker())


@pytest.mark.asyncio
@pytest.mark.skipif(not os.environ.get("GOOGLE_GEMINI_API_KEY"), reason="GOOGLE_GEMINI_API_KEY not set")
async def test_gemini_simple_tier(live_router):
    result = await live_router.route_to_llm(
        "What is the capital of France? Answer in one word.",
        task_type=TaskType.QUICK_RESPONSE,
        temperature=0.1,
    )
    assert result.success, result.error
    assert result.tier == ModelTier.SIMPLE
    assert "paris" in result.content.lower()
    assert live_router.cost_tracker.get_usage_summary().call_count == 1


@pytest.mark.asyncio
@pytest.mark.skipif(not os.environ.get("DEEPSEEK_API_KEY"), reason="DEEPSEEK_API_KEY not set")
async def test_deepseek_advanced_tier(live_router):
    result = await live_router.route_to_llm(
        "Explain in one line what a CRM is.",
        task_type=TaskType.DEEP_ANALYSIS,
        max_tokens=100,
    )
    assert result.success, result.error
    assert result.model_used == "deepseek-chat"
    assert live_router.cost_tracker.get_usage_summary().total_cost_usd > 0
