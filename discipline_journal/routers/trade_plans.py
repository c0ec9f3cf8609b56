"""交易计划路由：计划创建 → 建仓 → 加仓/减仓 → 平仓 / 撤单，持仓仪表盘与历史复盘"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from discipline_journal.engine.state_machine import PlanStatus
from discipline_journal.jobs.review_worker import ReviewQueue, review_queue
from discipline_journal.models.db import get_session
from discipline_journal.providers.market_data_provider import MarketDataProvider
from discipline_journal.schemas.dashboard import StockPriceView, TradeDashboardView
from discipline_journal.schemas.trade_plan import (
    AddPositionRequest,
    CloseTradeRequest,
    CreateTradePlanRequest,
    ExecutePlanRequest,
    ReviewTriggerResponse,
    TradeExecutionView,
    TradeHistoryView,
    TradePlanView,
    TradeTransactionView,
    TrimPositionRequest,
)
from discipline_journal.services.dashboard_service import DashboardProjector
from discipline_journal.services.trade_service import TradeService

router = APIRouter(prefix="/plans", tags=["交易计划"])

_market_data: Optional[MarketDataProvider] = None


def get_market_data() -> MarketDataProvider:
    """进程内共享一个行情提供者（共享价格缓存）"""
    global _market_data
    if _market_data is None:
        _market_data = MarketDataProvider()
    return _market_data


def get_review_queue() -> ReviewQueue:
    return review_queue


def get_trade_service(
    session: AsyncSession = Depends(get_session),
    queue: ReviewQueue = Depends(get_review_queue),
) -> TradeService:
    return TradeService(session, review_queue=queue)


def get_projector(market_data: MarketDataProvider = Depends(get_market_data)) -> DashboardProjector:
    return DashboardProjector(market_data)


async def _plan_view(plan, projector: DashboardProjector) -> TradePlanView:
    return (await projector.plan_views([plan]))[0]


@router.post("", response_model=TradePlanView)
async def create_plan(
    payload: CreateTradePlanRequest,
    svc: TradeService = Depends(get_trade_service),
    projector: DashboardProjector = Depends(get_projector),
):
    """创建交易计划（盈亏比 < 1.5 拒绝；未填股数时按风险预算计算）"""
    plan = await svc.create_plan(
        symbol=payload.symbol,
        direction=payload.direction,
        entry_price=payload.entry_price,
        stop_loss=payload.stop_loss,
        take_profit=payload.take_profit,
        position_size=payload.position_size,
        entry_logic=payload.entry_logic,
    )
    return await _plan_view(plan, projector)


@router.get("/pending", response_model=List[TradePlanView])
async def list_pending(
    svc: TradeService = Depends(get_trade_service),
    projector: DashboardProjector = Depends(get_projector),
):
    """计划中（待成交）"""
    return await projector.plan_views(await svc.list_by_status(PlanStatus.PENDING))


@router.get("/active", response_model=List[TradePlanView])
async def list_active(
    svc: TradeService = Depends(get_trade_service),
    projector: DashboardProjector = Depends(get_projector),
):
    """持仓中"""
    return await projector.plan_views(await svc.list_by_status(PlanStatus.OPEN))


@router.get("/active/dashboard", response_model=List[TradeDashboardView])
async def active_dashboard(
    svc: TradeService = Depends(get_trade_service),
    projector: DashboardProjector = Depends(get_projector),
):
    """持仓仪表盘：现价、浮动盈亏、距止损、风险等级"""
    return await projector.dashboard(await svc.list_by_status(PlanStatus.OPEN))


@router.get("/closed", response_model=List[TradeHistoryView])
async def list_closed(
    limit: Optional[int] = Query(None, ge=1, le=500),
    svc: TradeService = Depends(get_trade_service),
    projector: DashboardProjector = Depends(get_projector),
):
    """历史已平仓记录（含 AI 复盘结果）"""
    return await projector.history(await svc.list_history(limit))


@router.post("/closed/{execution_id}/review", response_model=ReviewTriggerResponse)
async def trigger_review(execution_id: int, svc: TradeService = Depends(get_trade_service)):
    """手动重新投递复盘请求（已有复盘结果时 worker 直接跳过）"""
    queued = await svc.request_review(execution_id)
    return ReviewTriggerResponse(execution_id=execution_id, queued=queued)


@router.get("/stock/{code}/price", response_model=StockPriceView)
async def stock_price(code: str, market_data: MarketDataProvider = Depends(get_market_data)):
    """单只股票实时价格（行情不可用时 available=false）"""
    symbol = code.strip().upper()
    quote = await market_data.get_quote(symbol)
    if quote is None:
        return StockPriceView(symbol=symbol, available=False)
    return StockPriceView(
        symbol=symbol,
        stock_name=quote.name,
        price=quote.price,
        available=quote.price is not None,
        source=quote.source,
    )


@router.get("/{plan_id}", response_model=TradePlanView)
async def get_plan(
    plan_id: int,
    svc: TradeService = Depends(get_trade_service),
    projector: DashboardProjector = Depends(get_projector),
):
    return await _plan_view(await svc.get_plan(plan_id), projector)


@router.post("/{plan_id}/execute", response_model=TradePlanView)
async def execute_plan(
    plan_id: int,
    payload: ExecutePlanRequest,
    svc: TradeService = Depends(get_trade_service),
    projector: DashboardProjector = Depends(get_projector),
):
    """确认成交：PENDING → OPEN"""
    plan = await svc.execute_plan(plan_id, payload.fill_price, payload.fill_quantity)
    return await _plan_view(plan, projector)


@router.post("/{plan_id}/add", response_model=TradePlanView)
async def add_position(
    plan_id: int,
    payload: AddPositionRequest,
    svc: TradeService = Depends(get_trade_service),
    projector: DashboardProjector = Depends(get_projector),
):
    """加仓：重新计算持仓均价"""
    plan = await svc.add_position(plan_id, payload.add_price, payload.add_quantity, payload.add_logic)
    return await _plan_view(plan, projector)


@router.post("/{plan_id}/trim", response_model=TradePlanView)
async def trim_position(
    plan_id: int,
    payload: TrimPositionRequest,
    svc: TradeService = Depends(get_trade_service),
    projector: DashboardProjector = Depends(get_projector),
):
    """减仓：可同时调整剩余仓位的止损/止盈；减至 0 时自动平仓"""
    plan = await svc.trim_position(
        plan_id,
        payload.exit_price,
        payload.exit_quantity,
        payload.exit_logic,
        new_stop_loss=payload.new_stop_loss,
        new_take_profit=payload.new_take_profit,
    )
    return await _plan_view(plan, projector)


@router.post("/{plan_id}/close", response_model=TradeExecutionView)
async def close_plan(
    plan_id: int,
    payload: CloseTradeRequest,
    svc: TradeService = Depends(get_trade_service),
):
    """平仓：结算全部剩余仓位，触发 AI 复盘"""
    execution = await svc.close_plan(plan_id, payload.exit_price, payload.exit_logic, payload.emotional_state)
    return TradeExecutionView.model_validate(execution)


@router.post("/{plan_id}/cancel")
async def cancel_plan(plan_id: int, svc: TradeService = Depends(get_trade_service)):
    """撤单：仅 PENDING 可撤"""
    await svc.cancel_plan(plan_id)
    return {"status": "ok", "plan_id": plan_id}


@router.get("/{plan_id}/transactions", response_model=List[TradeTransactionView])
async def list_transactions(plan_id: int, svc: TradeService = Depends(get_trade_service)):
    """交易流水（按时间正序）"""
    return [TradeTransactionView.model_validate(tx) for tx in await svc.list_transactions(plan_id)]
