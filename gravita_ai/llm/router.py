"""Multi-provider router: tier selection, bounded retry and usage recording."""
import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from .base import LLMRequest, LLMResult, Message, ModelConfig
from .errors import BudgetExceeded, ProviderNotConfigured, RetriesExhausted
from .registry import ProviderRegistry
from .retry import RetryDecision, RetryPolicy, backoff_delay, decide
from ..core.config import Settings
from ..core.cost_tracker import CostTracker, ModelTier, Provider, estimate_tokens

logger = logging.getLogger(__name__)


class TaskType(Enum):
    """Call-site intents. Only used to pick a default tier."""
    # Simple
    LEAD_SCORING = "lead-scoring"
    EMAIL_VALIDATION = "email-validation"
    BASIC_CLASSIFICATION = "basic-classification"
    QUICK_RESPONSE = "quick-response"
    # Standard
    CHAT_ASSISTANT = "chat-assistant"
    LEAD_ANALYSIS = "lead-analysis"
    EMAIL_DRAFT = "email-draft"
    QUOTE_EDIT = "quote-edit"
    FOLLOWUP_MESSAGE = "followup-message"
    # Advanced
    QUOTE_GENERATION = "quote-generation"
    PROPOSAL_WRITING = "proposal-writing"
    DEEP_ANALYSIS = "deep-analysis"
    TRANSCRIPT_ANALYSIS = "transcript-analysis"
    PSYCH_PROFILING = "psych-profiling"


TASK_TO_TIER: dict[TaskType, ModelTier] = {
    TaskType.LEAD_SCORING: ModelTier.SIMPLE,
    TaskType.EMAIL_VALIDATION: ModelTier.SIMPLE,
    TaskType.BASIC_CLASSIFICATION: ModelTier.SIMPLE,
    TaskType.QUICK_RESPONSE: ModelTier.SIMPLE,
    TaskType.CHAT_ASSISTANT: ModelTier.STANDARD,
    TaskType.LEAD_ANALYSIS: ModelTier.STANDARD,
    TaskType.EMAIL_DRAFT: ModelTier.STANDARD,
    TaskType.QUOTE_EDIT: ModelTier.STANDARD,
    TaskType.FOLLOWUP_MESSAGE: ModelTier.STANDARD,
    TaskType.QUOTE_GENERATION: ModelTier.ADVANCED,
    TaskType.PROPOSAL_WRITING: ModelTier.ADVANCED,
    TaskType.DEEP_ANALYSIS: ModelTier.ADVANCED,
    TaskType.TRANSCRIPT_ANALYSIS: ModelTier.ADVANCED,
    TaskType.PSYCH_PROFILING: ModelTier.ADVANCED,
}

# Tier for task types missing from TASK_TO_TIER
DEFAULT_TIER = ModelTier.STANDARD
UNSPECIFIED_TASK = "unspecified"

# Model each provider serves per tier when it is chosen by override
PROVIDER_TIER_MODELS: dict[Provider, dict[ModelTier, str]] = {
    Provider.GEMINI: {
        ModelTier.SIMPLE: "gemini-2.0-flash-lite",
        ModelTier.STANDARD: "gemini-2.0-flash",
        ModelTier.ADVANCED: "gemini-2.0-flash",
    },
    Provider.DEEPSEEK: {
        ModelTier.SIMPLE: "deepseek-chat",
        ModelTier.STANDARD: "deepseek-chat",
        ModelTier.ADVANCED: "deepseek-chat",
    },
    Provider.OPENAI: {
        ModelTier.SIMPLE: "gpt-4o-mini",
        ModelTier.STANDARD: "gpt-4o-mini",
        ModelTier.ADVANCED: "gpt-4o",
    },
}

FALLBACK_MESSAGE = (
    "⚠️ The assistant could not process this request right now. "
    "Please try again in a few minutes."
)

TaskTypeLike = Union[TaskType, str, None]
TierLike = Union[ModelTier, str, None]
ProviderLike = Union[Provider, str, None]
PromptLike = Union[str, list[Message], LLMRequest]


def build_tier_models(settings: Settings) -> dict[ModelTier, ModelConfig]:
    """Default model per tier, names overridable through settings."""
    return {
        ModelTier.SIMPLE: ModelConfig(
            name=settings.llm_model_simple,
            tier=ModelTier.SIMPLE,
            provider=Provider.GEMINI,
            cost_per_million_tokens=0.075,
            max_output_tokens=2048,
            description="Automatic tasks, validation, quick classification",
        ),
        ModelTier.STANDARD: ModelConfig(
            name=settings.llm_model_standard,
            tier=ModelTier.STANDARD,
            provider=Provider.GEMINI,
            cost_per_million_tokens=0.15,
            max_output_tokens=8192,
            description="General chat, lead analysis, email drafting",
        ),
        ModelTier.ADVANCED: ModelConfig(
            name=settings.llm_model_advanced,
            tier=ModelTier.ADVANCED,
            provider=Provider.DEEPSEEK,
            cost_per_million_tokens=0.14,
            max_output_tokens=8192,
            description="Complex proposals, deep analysis, advanced reasoning",
        ),
    }


def tier_for_task(task_type: TaskTypeLike) -> ModelTier:
    """Default tier for a task type. Unknown task types get DEFAULT_TIER."""
    if isinstance(task_type, str):
        try:
            task_type = TaskType(task_type)
        except ValueError:
            return DEFAULT_TIER
    if task_type is None:
        return DEFAULT_TIER
    return TASK_TO_TIER.get(task_type, DEFAULT_TIER)


def _task_label(task_type: TaskTypeLike) -> str:
    if task_type is None:
        return UNSPECIFIED_TASK
    if isinstance(task_type, TaskType):
        return task_type.value
    return str(task_type)


@dataclass(frozen=True)
class Route:
    """Concrete target for one request."""
    task_type: str
    tier: ModelTier
    provider: Provider
    model: str
    max_output_tokens: int


class ModelRouter:
    """
    Routes CRM prompts to a provider and model by task type.

    - Task type picks a tier; an explicit tier override always wins
    - A provider override must be configured, otherwise the call fails fast
    - Up to MAX_ATTEMPTS sequential attempts against a single provider
    - Exactly one usage record per executed request
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        cost_tracker: CostTracker,
        *,
        settings: Optional[Settings] = None,
        retry_policy: Optional[RetryPolicy] = None,
        enforce_budget: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the router.

        Args:
            registry: Provider clients and their configuration status
            cost_tracker: Usage ledger that receives one record per request
            settings: Model names and retry settings (defaults to registry's)
            retry_policy: Overrides the policy derived from settings
            enforce_budget: Refuse new requests once the monthly budget is exceeded
            sleep: Awaitable used between attempts
        """
        self.registry = registry
        self.cost_tracker = cost_tracker
        self.settings = settings or registry.settings
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)
        self.enforce_budget = enforce_budget
        self.tier_models = build_tier_models(self.settings)
        self._sleep = sleep

    def get_model_info(self, tier: TierLike) -> ModelConfig:
        return self.tier_models[ModelTier(tier) if isinstance(tier, str) else tier]

    def resolve(
        self,
        task_type: TaskTypeLike = None,
        override_tier: TierLike = None,
        override_provider: ProviderLike = None,
    ) -> Route:
        """
        Map a task type and optional overrides to a provider and model.

        Raises:
            ValueError: If a tier or provider name is not recognised
            ProviderNotConfigured: If the chosen provider lacks credentials
        """
        if isinstance(override_tier, str):
            override_tier = ModelTier(override_tier)
        if isinstance(override_provider, str):
            override_provider = Provider(override_provider)

        tier = override_tier or tier_for_task(task_type)
        model_config = self.tier_models[tier]

        if override_provider is not None and override_provider != model_config.provider:
            if not self.registry.is_configured(override_provider):
                raise ProviderNotConfigured(override_provider.value)
            provider = override_provider
            model = PROVIDER_TIER_MODELS[provider][tier]
        else:
            provider = model_config.provider
            model = model_config.name
            if not self.registry.is_configured(provider):
                raise ProviderNotConfigured(provider.value)

        return Route(
            task_type=_task_label(task_type),
            tier=tier,
            provider=provider,
            model=model,
            max_output_tokens=model_config.max_output_tokens,
        )

    async def route_to_llm(
        self,
        prompt: PromptLike,
        *,
        task_type: TaskTypeLike = None,
        override_tier: TierLike = None,
        override_provider: ProviderLike = None,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResult:
        """
        Route a prompt or message list and execute it with bounded retry.

        Args:
            prompt: Plain prompt, message list or prepared LLMRequest
            task_type: Call-site intent used to pick the tier
            override_tier: Tier that replaces the task default
            override_provider: Provider that replaces the tier default
            system_prompt: System prompt override
            temperature: Sampling temperature
            max_tokens: Output cap (defaults to the tier's cap)

        Returns:
            LLMResult. Provider failures are reported via `success`, not raised.

        Raises:
            ProviderNotConfigured: Before any attempt, for missing credentials
            BudgetExceeded: When enforce_budget is set and the budget is spent
        """
        request = self._build_request(prompt, system_prompt, temperature, max_tokens)
        route = self.resolve(task_type, override_tier, override_provider)

        if self.enforce_budget and self.cost_tracker.should_block_requests():
            status = self.cost_tracker.get_budget_status()
            raise BudgetExceeded(status.current_spend_usd, status.limit_usd)

        return await self.execute(route, request)

    async def route_to_llm_safe(self, prompt: PromptLike, **kwargs) -> str:
        """Content on success, FALLBACK_MESSAGE otherwise."""
        result = await self.route_to_llm(prompt, **kwargs)
        if not result.success:
            return FALLBACK_MESSAGE
        return result.content

    async def execute(self, route: Route, request: LLMRequest) -> LLMResult:
        """Run up to max_attempts sequential attempts against route.provider."""
        client = self.registry.get(route.provider)
        max_tokens = request.max_tokens or route.max_output_tokens

        logger.info(
            f"[LLM Router] Task: {route.task_type}, Tier: {route.tier.value}, "
            f"Provider: {route.provider.value}, Model: {route.model}"
        )

        attempts = 0
        last_error: Optional[BaseException] = None
        while True:
            attempts += 1
            try:
                response = await client.complete(request, model=route.model, max_tokens=max_tokens)
            except Exception as e:
                last_error = e
                logger.warning(
                    f"[LLM Router] Attempt {attempts}/{self.retry_policy.max_attempts} "
                    f"failed: {e}"
                )
                if decide(attempts, e, self.retry_policy) == RetryDecision.STOP:
                    break
                delay = backoff_delay(attempts, self.retry_policy)
                logger.info(f"[LLM Router] Waiting {delay:.1f}s before retry")
                await self._sleep(delay)
                continue

            await self.cost_tracker.record_usage(
                provider=route.provider,
                model=route.model,
                tier=route.tier,
                task_type=route.task_type,
                input_tokens=response.input_tokens or estimate_tokens(request.prompt_text()),
                output_tokens=response.output_tokens or estimate_tokens(response.content),
                attempts=attempts,
                success=True,
            )
            logger.info(f"[LLM Router] Success on attempt {attempts} via {route.provider.value}")
            return LLMResult(
                content=response.content,
                provider=route.provider,
                model_used=route.model,
                tier=route.tier,
                attempts=attempts,
                success=True,
            )

        error = RetriesExhausted(attempts, last_error)
        await self.cost_tracker.record_usage(
            provider=route.provider,
            model=route.model,
            tier=route.tier,
            task_type=route.task_type,
            attempts=attempts,
            success=False,
            error=str(error),
        )
        logger.error(f"[LLM Router] {error}")
        return LLMResult(
            content="",
            provider=route.provider,
            model_used=route.model,
            tier=route.tier,
            attempts=attempts,
            success=False,
            error=str(error),
        )

    @staticmethod
    def _build_request(
        prompt: PromptLike,
        system_prompt: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> LLMRequest:
        if isinstance(prompt, LLMRequest):
            request = prompt
        elif isinstance(prompt, str):
            request = LLMRequest.from_prompt(prompt)
        else:
            request = LLMRequest(messages=list(prompt))

        if not request.conversation():
            raise ValueError("prompt or at least one non-system message is required")
        overrides = {
            "system_prompt": system_prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        return replace(request, **{k: v for k, v in overrides.items() if v is not None})
