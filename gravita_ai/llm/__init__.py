"""LLM provider clients and the multi-provider router."""
from .base import LLMRequest, LLMResponse, LLMResult, Message, ModelConfig, ProviderClient
from .errors import (
    BudgetExceeded,
    EmptyResponse,
    LLMRouterError,
    ProviderCallFailed,
    ProviderNotConfigured,
    RetriesExhausted,
)
from .registry import ProviderRegistry, default_registry
from .retry import MAX_ATTEMPTS, RetryDecision, RetryPolicy
from .router import FALLBACK_MESSAGE, ModelRouter, Route, TaskType

__all__ = [
    "LLMRequest",
    "LLMResponse",
    "LLMResult",
    "Message",
    "ModelConfig",
    "ProviderClient",
    "BudgetExceeded",
    "EmptyResponse",
    "LLMRouterError",
    "ProviderCallFailed",
    "ProviderNotConfigured",
    "RetriesExhausted",
    "ProviderRegistry",
    "default_registry",
    "MAX_ATTEMPTS",
    "RetryDecision",
    "RetryPolicy",
    "FALLBACK_MESSAGE",
    "ModelRouter",
    "Route",
    "TaskType",
]
