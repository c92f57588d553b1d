"""FastAPI server exposing the LLM router to the CRM."""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field, model_validator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from ..core.config import Settings, settings as default_settings
from ..core.cost_tracker import BudgetConfig, ModelTier, Provider, build_cost_tracker
from ..llm.base import Message
from ..llm.errors import BudgetExceeded, ProviderNotConfigured
from ..llm.registry import default_registry
from ..llm.router import ModelRouter, TaskType

logger = logging.getLogger(__name__)

# Rate limiter configuration
limiter = Limiter(key_func=get_remote_address)
routes = APIRouter()

# One short probe per tier for /ai/test
TEST_PROMPTS = {
    ModelTier.SIMPLE: 'Reply only with "OK"',
    ModelTier.STANDARD: "Say hello in one short sentence",
    ModelTier.ADVANCED: "Explain in one line what a CRM is",
}
TEST_TASKS = {
    ModelTier.SIMPLE: TaskType.LEAD_SCORING,
    ModelTier.STANDARD: TaskType.CHAT_ASSISTANT,
    ModelTier.ADVANCED: TaskType.DEEP_ANALYSIS,
}


def build_router(app_settings: Settings) -> ModelRouter:
    """Construct the ledger, registry and router once per process."""
    return ModelRouter(
        registry=default_registry(app_settings),
        cost_tracker=build_cost_tracker(app_settings),
        settings=app_settings,
    )


# --- Request/Response Models ---

class MessageIn(BaseModel):
    """A role-tagged chat message."""
    role: str = Field(..., pattern="^(system|user|assistant)$")
    content: str


class CompletionRequest(BaseModel):
    """Request model for a routed completion."""
    prompt: Optional[str] = None
    messages: Optional[list[MessageIn]] = None
    task_type: Optional[str] = None
    override_tier: Optional[ModelTier] = None
    override_provider: Optional[Provider] = None
    system_prompt: Optional[str] = None
    temperature: Optional[float] = Field(None, ge=0, le=2)
    max_tokens: Optional[int] = Field(None, ge=1, le=32768)
    safe: bool = False

    @model_validator(mode="after")
    def _require_input(self):
        if not self.prompt and not self.messages:
            raise ValueError("prompt or messages is required")
        return self


class BudgetUpdate(BaseModel):
    """Request model for updating the monthly budget."""
    monthly_limit_usd: float = Field(..., gt=0)
    warning_threshold_pct: float = Field(80.0, gt=0, le=100)
    critical_threshold_pct: float = Field(95.0, gt=0, le=100)


def create_app(router: Optional[ModelRouter] = None, app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        router: Pre-built router (tests inject one with fake providers)
        app_settings: Settings used when the router is built at startup
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize the router on startup."""
        if getattr(app.state, "router", None) is None:
            app.state.router = build_router(app_settings or default_settings)
        configured = [
            p["provider"] for p in app.state.router.registry.configured_providers()
            if p["configured"]
        ]
        logger.info(f"Gravita AI router ready. Configured providers: {configured or 'none'}")
        yield
        logger.info("Gravita AI router shutting down")

    app = FastAPI(
        title="Gravita AI Router",
        description="Multi-provider LLM routing with usage and budget tracking",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.router = router
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.include_router(routes)
    return app


def _get_router(request: Request) -> ModelRouter:
    router = getattr(request.app.state, "router", None)
    if router is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return router


@routes.get("/")
@routes.get("/health")
@limiter.limit("300/minute")
async def health_check(request: Request):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "gravita-ai",
        "version": "1.0.0",
    }


@routes.post("/ai/complete")
@limiter.limit("60/minute")
async def complete(request: Request, body: CompletionRequest):
    """Route a prompt or conversation to the best model for the task."""
    router = _get_router(request)
    if body.messages:
        prompt = [Message(role=m.role, content=m.content) for m in body.messages]
    else:
        prompt = body.prompt

    kwargs = dict(
        task_type=body.task_type,
        override_tier=body.override_tier,
        override_provider=body.override_provider,
        system_prompt=body.system_prompt,
        temperature=body.temperature,
        max_tokens=body.max_tokens,
    )
    try:
        if body.safe:
            return {"content": await router.route_to_llm_safe(prompt, **kwargs)}
        result = await router.route_to_llm(prompt, **kwargs)
    except ProviderNotConfigured as e:
        raise HTTPException(400, str(e))
    except BudgetExceeded as e:
        raise HTTPException(402, str(e))
    except ValueError as e:
        raise HTTPException(422, str(e))

    return result.to_dict()


@routes.get("/ai/usage")
@limiter.limit("100/minute")
async def usage(request: Request, days: Optional[int] = None):
    """Token usage for the current month, or the last `days` days."""
    router = _get_router(request)
    tracker = router.cost_tracker
    if days is not None:
        if days < 1:
            raise HTTPException(400, f"Invalid days: {days}")
        summary = tracker.get_recent_usage(days)
    else:
        summary = tracker.get_usage_summary()

    return {
        "timestamp": datetime.now().isoformat(),
        "summary": summary.to_dict(),
        "budget": tracker.get_budget_status().to_dict(),
        "providers": router.registry.configured_providers(),
        "models": {tier.value: cfg.to_dict() for tier, cfg in router.tier_models.items()},
        "max_attempts": router.retry_policy.max_attempts,
    }


@routes.get("/ai/budget")
@limiter.limit("100/minute")
async def get_budget(request: Request):
    """Current budget configuration and status."""
    tracker = _get_router(request).cost_tracker
    return {
        "config": tracker.get_budget_config().to_dict(),
        "status": tracker.get_budget_status().to_dict(),
    }


@routes.put("/ai/budget")
@limiter.limit("30/minute")
async def update_budget(request: Request, body: BudgetUpdate):
    """Replace the budget configuration."""
    tracker = _get_router(request).cost_tracker
    try:
        config = BudgetConfig(
            monthly_limit_usd=body.monthly_limit_usd,
            warning_threshold_pct=body.warning_threshold_pct,
            critical_threshold_pct=body.critical_threshold_pct,
        )
    except ValueError as e:
        raise HTTPException(422, str(e))

    tracker.set_budget_config(config)
    logger.info(f"Budget updated: ${config.monthly_limit_usd:.2f}/month")
    return {
        "config": config.to_dict(),
        "status": tracker.get_budget_status().to_dict(),
    }


@routes.get("/ai/test")
@limiter.limit("10/minute")
async def probe_providers(request: Request):
    """Probe each tier once. Tiers whose provider lacks a key are skipped."""
    router = _get_router(request)
    results = []
    for tier in ModelTier:
        model_config = router.tier_models[tier]
        entry = {
            "tier": tier.value,
            "provider": model_config.provider.value,
            "model": model_config.name,
        }
        if not router.registry.is_configured(model_config.provider):
            entry.update(
                status="skipped",
                error=f"{model_config.provider.value.upper()} API key not configured",
            )
            results.append(entry)
            continue

        result = await router.route_to_llm(
            TEST_PROMPTS[tier],
            task_type=TEST_TASKS[tier],
            override_tier=tier,
        )
        entry.update(
            status="success" if result.success else "error",
            model=result.model_used,
            attempts=result.attempts,
        )
        if result.success:
            entry["response"] = result.content[:200]
        else:
            entry["error"] = result.error
        results.append(entry)

    return {
        "timestamp": datetime.now().isoformat(),
        "results": results,
        "summary": router.cost_tracker.get_usage_summary().to_dict(),
    }


app = create_app()


# Run with: uvicorn gravita_ai.api.server:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=default_settings.api_host, port=default_settings.api_port)
