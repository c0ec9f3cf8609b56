"""持仓仪表盘 / 历史记录投影（只读）

- 浮动盈亏 = (现价 - 持仓均价) × 剩余持仓
- 距止损 = 现价 - 止损价
- 风险等级：距止损 ≤ 0 或小于均价的 STOP_BUFFER_PCT → DANGER，否则 SAFE
- 行情不可用时以持仓均价（或计划入场价）代替现价，并标记 price_available=False
"""
from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from discipline_journal.core.config import settings
from discipline_journal.models.trade_execution import TradeExecution
from discipline_journal.models.trade_plan import TradePlan
from discipline_journal.providers.market_data_provider import MarketDataProvider
from discipline_journal.schemas.dashboard import TradeDashboardView
from discipline_journal.schemas.trade_plan import TradeHistoryView, TradePlanView

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
RATIO = Decimal("0.0001")
HUNDRED = Decimal("100")


class RiskLevel(str, Enum):
    SAFE = "SAFE"       # 距止损较远
    DANGER = "DANGER"   # 已跌破或逼近止损


def _round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(diff: Decimal, base: Decimal) -> Decimal:
    """diff / base 先保留 4 位，再 ×100 保留 2 位"""
    if not base:
        return Decimal("0.00")
    ratio = (diff / base).quantize(RATIO, rounding=ROUND_HALF_UP)
    return _round2(ratio * HUNDRED)


def classify_risk(distance_to_stop: Decimal, avg_entry_price: Decimal,
                  buffer_pct: Optional[Decimal] = None) -> RiskLevel:
    buffer_pct = buffer_pct if buffer_pct is not None else settings.STOP_BUFFER_PCT
    if distance_to_stop <= 0:
        return RiskLevel.DANGER
    if distance_to_stop < avg_entry_price * buffer_pct:
        return RiskLevel.DANGER
    return RiskLevel.SAFE


def realized_pnl_percent(realized_pnl: Optional[Decimal], avg_entry_price: Optional[Decimal],
                         total_quantity: Optional[int]) -> Decimal:
    """已实现收益率 = 已实现盈亏 / (持仓均价 × 累计买入量) × 100"""
    if realized_pnl is None or not avg_entry_price or not total_quantity:
        return Decimal("0.00")
    return percent_of(realized_pnl, avg_entry_price * total_quantity)


class DashboardProjector:
    def __init__(self, market_data: Optional[MarketDataProvider] = None,
                 stop_buffer_pct: Optional[Decimal] = None):
        self.market_data = market_data or MarketDataProvider()
        self.stop_buffer_pct = stop_buffer_pct if stop_buffer_pct is not None else settings.STOP_BUFFER_PCT

    async def _stock_name(self, symbol: str, names: Dict[str, str]) -> str:
        if symbol not in names:
            try:
                names[symbol] = await self.market_data.get_stock_name(symbol)
            except Exception as e:
                logger.warning(f"Stock name lookup failed for {symbol}: {e}")
                names[symbol] = ""
        return names[symbol]

    async def _current_price(self, symbol: str) -> Optional[Decimal]:
        try:
            return await self.market_data.get_current_price(symbol)
        except Exception as e:
            logger.warning(f"Price lookup failed for {symbol}: {e}")
            return None

    async def project(self, plan: TradePlan, stock_name: str = "") -> TradeDashboardView:
        avg = plan.avg_entry_price if plan.avg_entry_price is not None else plan.entry_price
        current_qty = plan.current_quantity if plan.current_quantity is not None else (plan.total_quantity or 0)

        price = await self._current_price(plan.symbol)
        price_available = price is not None
        if not price_available:
            logger.warning(f"Quote unavailable for {plan.symbol}, falling back to average entry price")
            price = avg

        diff = price - avg
        distance = _round2(price - plan.stop_loss)
        return TradeDashboardView(
            plan_id=plan.id,
            symbol=plan.symbol,
            stock_name=stock_name,
            entry_price=plan.entry_price,
            avg_entry_price=avg,
            stop_loss=plan.stop_loss,
            take_profit=plan.take_profit,
            position_size=plan.position_size,
            total_quantity=plan.total_quantity or 0,
            current_quantity=current_qty,
            realized_pnl=plan.realized_pnl or Decimal("0"),
            current_price=price,
            price_available=price_available,
            unrealized_pnl=_round2(diff * current_qty),
            unrealized_pnl_percent=percent_of(diff, avg),
            distance_to_stop=distance,
            risk_level=classify_risk(distance, avg, self.stop_buffer_pct).value,
            entry_logic=plan.entry_logic or "",
            risk_reward_ratio=plan.risk_reward_ratio,
        )

    async def dashboard(self, plans: Iterable[TradePlan]) -> List[TradeDashboardView]:
        names: Dict[str, str] = {}
        views = []
        for plan in plans:
            views.append(await self.project(plan, await self._stock_name(plan.symbol, names)))
        return views

    async def plan_views(self, plans: Iterable[TradePlan]) -> List[TradePlanView]:
        names: Dict[str, str] = {}
        views = []
        for plan in plans:
            view = TradePlanView.model_validate(plan)
            view.stock_name = await self._stock_name(plan.symbol, names)
            views.append(view)
        return views

    async def history(self, rows: Iterable[Tuple[TradeExecution, TradePlan]]) -> List[TradeHistoryView]:
        names: Dict[str, str] = {}
        views = []
        for execution, plan in rows:
            avg = plan.avg_entry_price if plan.avg_entry_price is not None else plan.entry_price
            views.append(TradeHistoryView(
                execution_id=execution.id,
                plan_id=plan.id,
                symbol=plan.symbol,
                stock_name=await self._stock_name(plan.symbol, names),
                direction=plan.direction,
                entry_price=plan.entry_price,
                avg_entry_price=avg,
                exit_price=execution.exit_price,
                stop_loss=plan.stop_loss,
                take_profit=plan.take_profit,
                position_size=plan.position_size,
                total_quantity=plan.total_quantity or 0,
                realized_pnl=execution.realized_pnl,
                realized_pnl_percent=realized_pnl_percent(execution.realized_pnl, avg, plan.total_quantity),
                entry_logic=plan.entry_logic or "",
                exit_logic=execution.exit_logic,
                emotional_state=execution.emotional_state,
                ai_analysis_score=execution.ai_analysis_score,
                ai_analysis_comment=execution.ai_analysis_comment,
                plan_created_at=plan.created_at,
                closed_at=execution.created_at,
            ))
        return views
