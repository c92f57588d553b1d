"""Tests for the usage ledger and budget gate."""
import asyncio
import json
from datetime import datetime, timedelta

import pytest

from gravita_ai.core.cost_tracker import (
    NO_PROJECTION_DAYS,
    BudgetConfig,
    BudgetConfigStore,
    BudgetLevel,
    CostTracker,
    InMemoryUsageStore,
    JsonUsageStore,
    ModelTier,
    Provider,
    UsageRecord,
    build_cost_tracker,
    calculate_cost,
    classify_spend,
    estimate_tokens,
    format_cost,
    format_cost_mxn,
    format_tokens,
    project_days_left,
    summarize_records,
)

from conftest import make_settings

NOW = datetime(2026, 10, 10, 12, 0)


def make_record(cost=0.0, provider=Provider.GEMINI, tier=ModelTier.STANDARD,
                timestamp=NOW, tokens=(100, 50), success=True, attempts=1):
    return UsageRecord(
        provider=provider,
        model="test-model",
        tier=tier,
        task_type="chat-assistant",
        input_tokens=tokens[0],
        output_tokens=tokens[1],
        cost_usd=cost,
        attempts=attempts,
        success=success,
        timestamp=timestamp,
    )


class TestPricing:
    """Cost and token estimates."""

    def test_calculate_cost_uses_input_and_output_rates(self):
        cost = calculate_cost("deepseek-chat", 1_000_000, 1_000_000)
        assert cost == pytest.approx(0.14 + 0.28)

    def test_calculate_cost_per_million(self):
        # gemini-2.0-flash: 0.15 in / 0.60 out per 1M
        cost = calculate_cost("gemini-2.0-flash", 2000, 1000)
        assert cost == pytest.approx(2000 / 1e6 * 0.15 + 1000 / 1e6 * 0.60)

    def test_unknown_model_costs_nothing(self):
        assert calculate_cost("mystery-model", 10_000, 10_000) == 0.0

    def test_estimate_tokens(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2


class TestBudgetBands:
    """Budget classification boundaries (lower edge inclusive)."""

    @pytest.fixture
    def config(self):
        return BudgetConfig(monthly_limit_usd=25.0, warning_threshold_pct=80, critical_threshold_pct=95)

    @pytest.mark.parametrize("spend,expected", [
        (0.0, BudgetLevel.OK),
        (19.99, BudgetLevel.OK),
        (20.0, BudgetLevel.WARNING),
        (23.74, BudgetLevel.WARNING),
        (23.75, BudgetLevel.CRITICAL),
        (24.99, BudgetLevel.CRITICAL),
        (25.0, BudgetLevel.EXCEEDED),
        (25.01, BudgetLevel.EXCEEDED),
    ])
    def test_classify_spend(self, config, spend, expected):
        assert classify_spend(spend, config) == expected

    def test_invalid_limit_rejected(self):
        with pytest.raises(ValueError, match="monthly_limit_usd"):
            BudgetConfig(monthly_limit_usd=0)

    def test_warning_above_critical_rejected(self):
        with pytest.raises(ValueError, match="thresholds"):
            BudgetConfig(warning_threshold_pct=96, critical_threshold_pct=95)


class TestProjection:
    """Days-left projection."""

    def test_no_spend_has_no_projection(self):
        assert project_days_left(0.0, 25.0, 10) == NO_PROJECTION_DAYS

    def test_linear_projection(self):
        # $10 over 10 days -> $1/day, $15 left -> 15 days
        assert project_days_left(10.0, 15.0, 10) == 15

    def test_elapsed_days_clamped_to_one(self):
        assert project_days_left(5.0, 20.0, 0) == 4


class TestSummaries:
    """Aggregation of usage records."""

    def test_summary_groups_by_provider_and_tier(self):
        records = [
            make_record(cost=0.5, provider=Provider.GEMINI, tier=ModelTier.SIMPLE),
            make_record(cost=1.0, provider=Provider.DEEPSEEK, tier=ModelTier.ADVANCED),
            make_record(cost=0.25, provider=Provider.GEMINI, tier=ModelTier.STANDARD,
                        success=False, attempts=5),
        ]
        summary = summarize_records(records)

        assert summary.call_count == 3
        assert summary.successful == 2
        assert summary.failed == 1
        assert summary.total_tokens == 450
        assert summary.total_cost_usd == pytest.approx(1.75)
        assert summary.by_provider[Provider.GEMINI].calls == 2
        assert summary.by_provider[Provider.GEMINI].cost_usd == pytest.approx(0.75)
        assert summary.by_provider[Provider.OPENAI].calls == 0
        assert summary.by_tier[ModelTier.ADVANCED].tokens == 150
        assert summary.average_attempts == pytest.approx(7 / 3)

    def test_provider_buckets_sum_to_total(self):
        records = [
            make_record(cost=c, provider=p)
            for c, p in [(0.1, Provider.GEMINI), (0.2, Provider.DEEPSEEK), (0.3, Provider.OPENAI)]
        ]
        summary = summarize_records(records)
        by_provider_total = sum(b.cost_usd for b in summary.by_provider.values())
        assert by_provider_total == pytest.approx(summary.total_cost_usd)

    def test_store_summarizes_single_month(self):
        store = InMemoryUsageStore([
            make_record(cost=1.0, timestamp=NOW),
            make_record(cost=2.0, timestamp=datetime(2026, 10, 1, 0, 0)),
            make_record(cost=4.0, timestamp=datetime(2026, 9, 30, 23, 59)),
        ])
        summary = store.summarize(2026, 10)
        assert summary.call_count == 2
        assert summary.total_cost_usd == pytest.approx(3.0)

    def test_summary_to_dict_lists_days_in_order(self):
        summary = summarize_records([
            make_record(cost=1.0, timestamp=NOW),
            make_record(cost=1.0, timestamp=NOW - timedelta(days=3)),
        ])
        data = summary.to_dict()
        assert [d["date"] for d in data["by_day"]] == ["2026-10-07", "2026-10-10"]
        assert set(data["by_provider"]) == {"gemini", "deepseek", "openai"}


class TestCostTracker:
    """CostTracker recording and budget status."""

    @pytest.mark.asyncio
    async def test_record_usage_prices_the_model_used(self, cost_tracker, usage_store):
        record = await cost_tracker.record_usage(
            provider=Provider.DEEPSEEK,
            model="deepseek-chat",
            tier=ModelTier.ADVANCED,
            task_type="deep-analysis",
            input_tokens=1_000_000,
            output_tokens=0,
        )
        assert record.cost_usd == pytest.approx(0.14)
        assert usage_store.records() == [record]

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_not_lost(self, cost_tracker, usage_store):
        await asyncio.gather(*[
            cost_tracker.record_usage(
                provider=Provider.GEMINI,
                model="gemini-2.0-flash",
                tier=ModelTier.STANDARD,
                task_type="chat-assistant",
                input_tokens=10,
                output_tokens=10,
            )
            for _ in range(25)
        ])
        assert len(usage_store.records()) == 25

    def test_budget_status_critical_scenario(self):
        tracker = CostTracker(store=InMemoryUsageStore([make_record(cost=23.75)]))
        status = tracker.get_budget_status(now=NOW)
        assert status.status == BudgetLevel.CRITICAL
        assert status.limit_usd == 25.0
        assert status.percent_used == pytest.approx(95.0)
        assert status.remaining_usd == pytest.approx(1.25)

    def test_budget_status_exceeded_scenario(self):
        tracker = CostTracker(store=InMemoryUsageStore([make_record(cost=25.01)]))
        status = tracker.get_budget_status(now=NOW)
        assert status.status == BudgetLevel.EXCEEDED
        assert status.remaining_usd == 0.0
        assert tracker.should_block_requests(now=NOW) is True

    def test_budget_status_ignores_previous_month(self):
        tracker = CostTracker(store=InMemoryUsageStore([
            make_record(cost=30.0, timestamp=datetime(2026, 9, 15)),
            make_record(cost=5.0, timestamp=NOW),
        ]))
        status = tracker.get_budget_status(now=NOW)
        assert status.current_spend_usd == pytest.approx(5.0)
        assert status.status == BudgetLevel.OK
        # $5 over 10 days -> $0.50/day, $20 left
        assert status.estimated_days_left == 40

    def test_first_day_of_month_projection(self):
        first = datetime(2026, 10, 1, 0, 5)
        tracker = CostTracker(store=InMemoryUsageStore([make_record(cost=2.0, timestamp=first)]))
        status = tracker.get_budget_status(now=first)
        assert status.estimated_days_left == 11

    def test_empty_ledger_has_no_projection(self, cost_tracker):
        status = cost_tracker.get_budget_status(now=NOW)
        assert status.status == BudgetLevel.OK
        assert status.estimated_days_left == NO_PROJECTION_DAYS

    def test_budget_config_update_changes_status(self):
        tracker = CostTracker(store=InMemoryUsageStore([make_record(cost=9.0)]))
        assert tracker.get_budget_status(now=NOW).status == BudgetLevel.OK

        tracker.set_budget_config(BudgetConfig(monthly_limit_usd=10.0))
        assert tracker.get_budget_config().monthly_limit_usd == 10.0
        assert tracker.get_budget_status(now=NOW).status == BudgetLevel.WARNING

    def test_recent_usage_window(self):
        tracker = CostTracker(store=InMemoryUsageStore([
            make_record(cost=1.0, timestamp=NOW - timedelta(days=2)),
            make_record(cost=1.0, timestamp=NOW - timedelta(days=20)),
        ]))
        assert tracker.get_recent_usage(days=7, now=NOW).call_count == 1


class TestPersistence:
    """JSON-backed ledger and budget slot."""

    def test_json_store_round_trip(self, tmp_path):
        path = tmp_path / "usage" / "usage.json"
        store = JsonUsageStore(path)
        record = make_record(cost=0.5, provider=Provider.OPENAI, tier=ModelTier.ADVANCED)
        store.append(record)

        reloaded = JsonUsageStore(path)
        assert reloaded.records() == [record]

    def test_json_store_sets_corrupt_file_aside(self, tmp_path):
        path = tmp_path / "usage.json"
        path.write_text("{not json")

        store = JsonUsageStore(path)
        assert store.records() == []
        store.append(make_record(cost=1.0))

        assert (tmp_path / "usage.json.corrupt").read_text() == "{not json"
        assert len(JsonUsageStore(path).records()) == 1

    def test_budget_store_persists(self, tmp_path):
        path = tmp_path / "budget.json"
        BudgetConfigStore(path).set(BudgetConfig(monthly_limit_usd=40.0, warning_threshold_pct=70))

        assert json.loads(path.read_text())["monthly_limit_usd"] == 40.0
        config = BudgetConfigStore(path).get()
        assert config.monthly_limit_usd == 40.0
        assert config.warning_threshold_pct == 70

    def test_budget_store_defaults(self):
        config = BudgetConfigStore().get()
        assert config.monthly_limit_usd == 25.0
        assert config.warning_threshold_pct == 80.0
        assert config.critical_threshold_pct == 95.0

    def test_build_cost_tracker_from_settings(self, tmp_path):
        app_settings = make_settings(
            usage_path=tmp_path / "usage.json",
            budget_path=tmp_path / "budget.json",
        )
        tracker = build_cost_tracker(app_settings)
        assert isinstance(tracker.store, JsonUsageStore)
        assert tracker.budget_store.path == tmp_path / "budget.json"


class TestFormatting:
    def test_format_cost(self):
        assert format_cost(0.001) == "< $0.01"
        assert format_cost(3.456) == "$3.46"

    def test_format_tokens(self):
        assert format_tokens(999) == "999"
        assert format_tokens(1500) == "1.5K"
        assert format_tokens(2_500_000) == "2.50M"

    def test_format_cost_mxn(self):
        assert format_cost_mxn(0.01) == "< $1 MXN"
        assert format_cost_mxn(25) == "$500 MXN"
