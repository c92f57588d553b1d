"""Errors raised by the LLM routing layer."""
from typing import Optional


class LLMRouterError(Exception):
    """Base class for routing errors."""


class ProviderNotConfigured(LLMRouterError):
    """Requested provider has no credentials. Raised before any network call."""

    def __init__(self, provider: str, message: Optional[str] = None):
        self.provider = provider
        super().__init__(message or f"Provider '{provider}' is not configured (missing API key)")


class ProviderCallFailed(LLMRouterError):
    """Network, timeout or HTTP error returned by a provider. Retryable."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        prefix = f"{provider} API error"
        if status_code is not None:
            prefix = f"{prefix}: {status_code}"
        super().__init__(f"{prefix} - {message}")


class EmptyResponse(LLMRouterError):
    """Provider replied without usable content. Retryable."""

    def __init__(self, provider: str, model: str):
        self.provider = provider
        self.model = model
        super().__init__(f"{provider} returned no content for model {model}")


class RetriesExhausted(LLMRouterError):
    """Every attempt failed. Carried in a failed result, never raised to callers."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        detail = str(last_error) if last_error else "unknown error"
        super().__init__(f"Failed after {attempts} attempts: {detail}")


class BudgetExceeded(LLMRouterError):
    """Monthly budget spent while the router enforces it. Raised before any attempt."""

    def __init__(self, spend_usd: float, limit_usd: float):
        self.spend_usd = spend_usd
        self.limit_usd = limit_usd
        super().__init__(f"Monthly budget exceeded: ${spend_usd:.2f}/${limit_usd:.2f}")
