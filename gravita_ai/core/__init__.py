"""Core modules for the Gravita AI router."""
from .config import Settings, settings
from .cost_tracker import (
    BudgetConfig,
    BudgetConfigStore,
    BudgetLevel,
    BudgetStatus,
    CostTracker,
    InMemoryUsageStore,
    JsonUsageStore,
    ModelTier,
    Provider,
    UsageRecord,
    UsageStore,
    UsageSummary,
)

__all__ = [
    "Settings",
    "settings",
    "BudgetConfig",
    "BudgetConfigStore",
    "BudgetLevel",
    "BudgetStatus",
    "CostTracker",
    "InMemoryUsageStore",
    "JsonUsageStore",
    "ModelTier",
    "Provider",
    "UsageRecord",
    "UsageStore",
    "UsageSummary",
]
