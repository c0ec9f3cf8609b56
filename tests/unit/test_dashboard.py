from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from discipline_journal.engine.discipline import TradeDirection
from discipline_journal.providers.market_data_provider import MarketDataProvider
from discipline_journal.services.dashboard_service import (
    DashboardProjector,
    RiskLevel,
    classify_risk,
    percent_of,
    realized_pnl_percent,
)
from tests.conftest import FakeQuoteBackend, NullCache


def make_plan(symbol="600519", avg="10.00", stop="9.00", current=1000, **overrides):
    fields = dict(
        id=1,
        symbol=symbol,
        direction=TradeDirection.LONG,
        entry_price=Decimal("10.00"),
        avg_entry_price=Decimal(avg) if avg is not None else None,
        stop_loss=Decimal(stop),
        take_profit=Decimal("12.00"),
        position_size=1000,
        total_quantity=current,
        current_quantity=current,
        realized_pnl=Decimal("0"),
        risk_reward_ratio=Decimal("2.0000"),
        entry_logic="突破平台",
        created_at=datetime(2024, 1, 2, 9, 30),
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def projector_with(prices):
    provider = MarketDataProvider(backends=[FakeQuoteBackend(prices=prices)], redis_cache=NullCache())
    return DashboardProjector(provider, stop_buffer_pct=Decimal("0.02"))


def test_percent_of_rounds_ratio_then_percent():
    assert percent_of(Decimal("0.5"), Decimal("10")) == Decimal("5.00")
    assert percent_of(Decimal("1"), Decimal("3")) == Decimal("33.33")
    assert percent_of(Decimal("1"), Decimal("0")) == Decimal("0.00")


@pytest.mark.parametrize(
    "distance, level",
    [
        ("-0.10", RiskLevel.DANGER),
        ("0", RiskLevel.DANGER),
        ("0.19", RiskLevel.DANGER),   # < 10 × 2%
        ("0.20", RiskLevel.SAFE),
        ("1.00", RiskLevel.SAFE),
    ],
)
def test_classify_risk(distance, level):
    assert classify_risk(Decimal(distance), Decimal("10"), Decimal("0.02")) == level


@pytest.mark.asyncio
async def test_project_with_live_price():
    projector = projector_with({"600519": "10.50"})
    view = await projector.project(make_plan(), stock_name="贵州茅台")

    assert view.price_available is True
    assert view.current_price == Decimal("10.50")
    assert view.unrealized_pnl == Decimal("500.00")
    assert view.unrealized_pnl_percent == Decimal("5.00")
    assert view.distance_to_stop == Decimal("1.50")
    assert view.risk_level == "SAFE"
    assert view.stock_name == "贵州茅台"


@pytest.mark.asyncio
async def test_project_below_stop_is_danger():
    projector = projector_with({"600519": "8.80"})
    view = await projector.project(make_plan())
    assert view.distance_to_stop == Decimal("-0.20")
    assert view.unrealized_pnl == Decimal("-1200.00")
    assert view.risk_level == "DANGER"


@pytest.mark.asyncio
async def test_project_falls_back_to_average_when_quote_missing():
    projector = projector_with({})
    view = await projector.project(make_plan(avg="10.0020"))

    assert view.price_available is False
    assert view.current_price == Decimal("10.0020")
    assert view.unrealized_pnl == Decimal("0.00")
    assert view.unrealized_pnl_percent == Decimal("0.00")


@pytest.mark.asyncio
async def test_project_falls_back_to_entry_price_without_average():
    projector = projector_with({})
    view = await projector.project(make_plan(avg=None, current=None, total_quantity=None))
    assert view.current_price == Decimal("10.00")
    assert view.current_quantity == 0


def test_realized_pnl_percent():
    assert realized_pnl_percent(Decimal("12629.80"), Decimal("10.0020"), 10100) == Decimal("12.50")
    assert realized_pnl_percent(None, Decimal("10"), 100) == Decimal("0.00")
    assert realized_pnl_percent(Decimal("10"), None, 100) == Decimal("0.00")


@pytest.mark.asyncio
async def test_history_view_includes_percent_and_review():
    projector = projector_with({})
    plan = make_plan(avg="10.00", current=0, total_quantity=1000)
    execution = SimpleNamespace(
        id=7,
        exit_price=Decimal("11.00"),
        realized_pnl=Decimal("1000.00"),
        exit_logic="到达目标",
        emotional_state="平静",
        ai_analysis_score=85,
        ai_analysis_comment="执行到位",
        created_at=datetime(2024, 1, 5, 14, 0),
    )
    [view] = await projector.history([(execution, plan)])
    assert view.execution_id == 7
    assert view.realized_pnl_percent == Decimal("10.00")
    assert view.ai_analysis_score == 85
    assert view.closed_at == datetime(2024, 1, 5, 14, 0)
