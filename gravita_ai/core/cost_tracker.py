"""Token usage ledger, cost calculation and monthly budget gate."""
import asyncio
import json
import logging
import math
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class Provider(Enum):
    """Supported LLM providers."""
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    OPENAI = "openai"


class ModelTier(Enum):
    """Cost/quality class of a model, independent of the vendor serving it."""
    SIMPLE = "simple"
    STANDARD = "standard"
    ADVANCED = "advanced"


# Cost per 1M tokens in USD
TOKEN_COSTS = {
    # Gemini
    "gemini-2.0-flash-lite": {"input": 0.075, "output": 0.30},
    "gemini-2.0-flash": {"input": 0.15, "output": 0.60},
    "gemini-2.0-flash-exp": {"input": 0.15, "output": 0.60},
    # DeepSeek
    "deepseek-chat": {"input": 0.14, "output": 0.28},
    "deepseek-reasoner": {"input": 0.55, "output": 2.19},
    # OpenAI
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
}

# Projection reported when nothing has been spent yet this month
NO_PROJECTION_DAYS = 999

USD_TO_MXN_RATE = 20


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Calculate cost for token usage. Unknown models cost nothing."""
    costs = TOKEN_COSTS.get(model)
    if costs is None:
        return 0.0
    input_cost = (input_tokens / 1_000_000) * costs["input"]
    output_cost = (output_tokens / 1_000_000) * costs["output"]
    return input_cost + output_cost


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


@dataclass(frozen=True)
class UsageRecord:
    """Single routed request. Never mutated once appended."""
    provider: Provider
    model: str
    tier: ModelTier
    task_type: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    attempts: int = 1
    success: bool = True
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: f"usage_{uuid.uuid4().hex[:12]}")

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict:
        data = asdict(self)
        data["provider"] = self.provider.value
        data["tier"] = self.tier.value
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "UsageRecord":
        data = dict(data)
        data["provider"] = Provider(data["provider"])
        data["tier"] = ModelTier(data["tier"])
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return cls(**data)


@dataclass
class UsageBucket:
    """Aggregated usage for one provider, tier or day."""
    tokens: int = 0
    cost_usd: float = 0.0
    calls: int = 0

    def add(self, record: UsageRecord) -> None:
        self.tokens += record.total_tokens
        self.cost_usd += record.cost_usd
        self.calls += 1


@dataclass
class UsageSummary:
    """Aggregate of a set of usage records."""
    total_tokens: int = 0
    total_cost_usd: float = 0.0
    call_count: int = 0
    successful: int = 0
    failed: int = 0
    average_attempts: float = 0.0
    by_provider: dict[Provider, UsageBucket] = field(
        default_factory=lambda: {p: UsageBucket() for p in Provider}
    )
    by_tier: dict[ModelTier, UsageBucket] = field(
        default_factory=lambda: {t: UsageBucket() for t in ModelTier}
    )
    by_day: dict[str, UsageBucket] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_tokens": self.total_tokens,
            "total_cost_usd": round(self.total_cost_usd, 6),
            "call_count": self.call_count,
            "successful": self.successful,
            "failed": self.failed,
            "average_attempts": round(self.average_attempts, 2),
            "by_provider": {p.value: asdict(b) for p, b in self.by_provider.items()},
            "by_tier": {t.value: asdict(b) for t, b in self.by_tier.items()},
            "by_day": [
                {"date": day, **asdict(bucket)}
                for day, bucket in sorted(self.by_day.items())
            ],
        }


def summarize_records(records: list[UsageRecord]) -> UsageSummary:
    """Group records by provider, tier and day."""
    summary = UsageSummary()
    attempts = 0
    for record in records:
        summary.total_tokens += record.total_tokens
        summary.total_cost_usd += record.cost_usd
        summary.call_count += 1
        if record.success:
            summary.successful += 1
        else:
            summary.failed += 1
        attempts += record.attempts

        summary.by_provider[record.provider].add(record)
        summary.by_tier[record.tier].add(record)
        day = record.timestamp.date().isoformat()
        summary.by_day.setdefault(day, UsageBucket()).add(record)

    if summary.call_count:
        summary.average_attempts = attempts / summary.call_count
    return summary


class UsageStore(ABC):
    """Append-only storage for usage records."""

    @abstractmethod
    def append(self, record: UsageRecord) -> None:
        """Persist one record."""

    @abstractmethod
    def records(self) -> list[UsageRecord]:
        """Return a copy of every stored record, oldest first."""

    def summarize(self, year: int, month: int) -> UsageSummary:
        """Summarize the records of one calendar month."""
        return summarize_records([
            r for r in self.records()
            if r.timestamp.year == year and r.timestamp.month == month
        ])


class InMemoryUsageStore(UsageStore):
    """Ledger held for the lifetime of the process."""

    def __init__(self, records: Optional[list[UsageRecord]] = None):
        self._records: list[UsageRecord] = list(records or [])

    def append(self, record: UsageRecord) -> None:
        self._records.append(record)

    def records(self) -> list[UsageRecord]:
        return list(self._records)


class JsonUsageStore(UsageStore):
    """Ledger persisted to a JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._records: list[UsageRecord] = []
        self._load_state()

    def _load_state(self):
        """Load persisted usage data."""
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text())
            self._records = [UsageRecord.from_dict(r) for r in data]
        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            # Keep the unreadable file so the next save cannot overwrite its records
            backup = self.path.with_name(self.path.name + ".corrupt")
            self.path.replace(backup)
            logger.warning(f"Unreadable usage file moved to {backup}: {e}")
            self._records = []

    def _save_state(self):
        """Persist usage data."""
        data = [r.to_dict() for r in self._records]
        self.path.write_text(json.dumps(data, indent=2))

    def append(self, record: UsageRecord) -> None:
        self._records.append(record)
        self._save_state()

    def records(self) -> list[UsageRecord]:
        return list(self._records)


@dataclass
class BudgetConfig:
    """Monthly budget with alert thresholds in percent."""
    monthly_limit_usd: float = 25.0
    warning_threshold_pct: float = 80.0
    critical_threshold_pct: float = 95.0

    def __post_init__(self):
        if self.monthly_limit_usd <= 0:
            raise ValueError("monthly_limit_usd must be > 0")
        if not 0 < self.warning_threshold_pct <= self.critical_threshold_pct <= 100:
            raise ValueError(
                "thresholds must satisfy 0 < warning <= critical <= 100"
            )

    def to_dict(self) -> dict:
        return asdict(self)


class BudgetLevel(Enum):
    """Bands of current spend against the monthly limit."""
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"
    EXCEEDED = "exceeded"


@dataclass
class BudgetStatus:
    """Current month's spend classified against the budget."""
    current_spend_usd: float
    limit_usd: float
    percent_used: float
    status: BudgetLevel
    remaining_usd: float
    estimated_days_left: int

    def to_dict(self) -> dict:
        return {
            "current_spend_usd": round(self.current_spend_usd, 6),
            "limit_usd": self.limit_usd,
            "percent_used": round(self.percent_used, 2),
            "status": self.status.value,
            "remaining_usd": round(self.remaining_usd, 6),
            "estimated_days_left": self.estimated_days_left,
        }


def classify_spend(spend: float, config: BudgetConfig) -> BudgetLevel:
    """Place spend in its budget band. Lower edges are inclusive."""
    limit = config.monthly_limit_usd
    if spend >= limit:
        return BudgetLevel.EXCEEDED
    if spend >= limit * config.critical_threshold_pct / 100:
        return BudgetLevel.CRITICAL
    if spend >= limit * config.warning_threshold_pct / 100:
        return BudgetLevel.WARNING
    return BudgetLevel.OK


def project_days_left(spend: float, remaining: float, day_of_month: int) -> int:
    """Linear projection of days until the remaining budget is spent.

    Elapsed days are clamped to at least one so the first day of a month
    does not divide by a fraction of a day.
    """
    elapsed_days = max(1, day_of_month)
    avg_daily_spend = spend / elapsed_days
    if avg_daily_spend <= 0:
        return NO_PROJECTION_DAYS
    return math.floor(remaining / avg_daily_spend)


class BudgetConfigStore:
    """Single mutable slot for the budget configuration."""

    def __init__(self, path: Optional[Path] = None, default: Optional[BudgetConfig] = None):
        self.path = Path(path) if path else None
        self._config = default or BudgetConfig()
        if self.path and self.path.exists():
            try:
                self._config = BudgetConfig(**json.loads(self.path.read_text()))
            except (json.JSONDecodeError, TypeError, ValueError) as e:
                logger.warning(f"Ignoring unreadable budget file {self.path}: {e}")

    def get(self) -> BudgetConfig:
        return self._config

    def set(self, config: BudgetConfig) -> None:
        self._config = config
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(config.to_dict(), indent=2))


class CostTracker:
    """
    Usage ledger with monthly budget accounting.

    Features:
    - Append-only usage records per routed request
    - Monthly and rolling-window summaries
    - Budget status bands with a days-left projection
    """

    def __init__(
        self,
        store: Optional[UsageStore] = None,
        budget_store: Optional[BudgetConfigStore] = None,
    ):
        self.store = store if store is not None else InMemoryUsageStore()
        self.budget_store = budget_store or BudgetConfigStore()
        self._lock = asyncio.Lock()

    async def record_usage(
        self,
        provider: Provider,
        model: str,
        tier: ModelTier,
        task_type: str,
        input_tokens: int = 0,
        output_tokens: int = 0,
        attempts: int = 1,
        success: bool = True,
        error: Optional[str] = None,
    ) -> UsageRecord:
        """Price and append a usage record."""
        record = UsageRecord(
            provider=provider,
            model=model,
            tier=tier,
            task_type=task_type,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=calculate_cost(model, input_tokens, output_tokens),
            attempts=attempts,
            success=success,
            error=error,
        )
        async with self._lock:
            try:
                self.store.append(record)
            except OSError as e:
                logger.error(f"Error saving usage record {record.id}: {e}")

        status = self.get_budget_status()
        if status.status in (BudgetLevel.CRITICAL, BudgetLevel.EXCEEDED):
            logger.warning(
                f"Budget {status.status.value}: ${status.current_spend_usd:.2f}"
                f"/${status.limit_usd:.2f} this month"
            )
        return record

    def get_usage_summary(self, now: Optional[datetime] = None) -> UsageSummary:
        """Summary of the current calendar month."""
        now = now or datetime.now()
        return self.store.summarize(now.year, now.month)

    def get_recent_usage(self, days: int = 7, now: Optional[datetime] = None) -> UsageSummary:
        """Summary of the last `days` days."""
        cutoff = (now or datetime.now()) - timedelta(days=days)
        return summarize_records([r for r in self.store.records() if r.timestamp >= cutoff])

    def get_budget_config(self) -> BudgetConfig:
        return self.budget_store.get()

    def set_budget_config(self, config: BudgetConfig) -> None:
        self.budget_store.set(config)

    def get_budget_status(self, now: Optional[datetime] = None) -> BudgetStatus:
        """Classify this month's spend against the configured budget."""
        now = now or datetime.now()
        config = self.budget_store.get()
        spend = self.get_usage_summary(now).total_cost_usd

        remaining = max(0.0, config.monthly_limit_usd - spend)
        return BudgetStatus(
            current_spend_usd=spend,
            limit_usd=config.monthly_limit_usd,
            percent_used=spend / config.monthly_limit_usd * 100,
            status=classify_spend(spend, config),
            remaining_usd=remaining,
            estimated_days_left=project_days_left(spend, remaining, now.day),
        )

    def should_block_requests(self, now: Optional[datetime] = None) -> bool:
        """True once the monthly budget is exhausted."""
        return self.get_budget_status(now).status == BudgetLevel.EXCEEDED


def build_cost_tracker(settings) -> CostTracker:
    """Create the tracker described by settings."""
    store: UsageStore
    if settings.usage_path:
        store = JsonUsageStore(settings.usage_path)
    else:
        store = InMemoryUsageStore()
    return CostTracker(store=store, budget_store=BudgetConfigStore(settings.budget_path))


def format_cost(usd: float) -> str:
    if usd < 0.01:
        return "< $0.01"
    return f"${usd:.2f}"


def format_tokens(tokens: int) -> str:
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.2f}M"
    if tokens >= 1_000:
        return f"{tokens / 1_000:.1f}K"
    return str(tokens)


def usd_to_mxn(usd: float) -> float:
    return usd * USD_TO_MXN_RATE


def format_cost_mxn(usd: float) -> str:
    mxn = usd_to_mxn(usd)
    if mxn < 1:
        return "< $1 MXN"
    return f"${mxn:.0f} MXN"
