from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from discipline_journal.engine.accountant import TransactionType
from discipline_journal.engine.discipline import TradeDirection
from discipline_journal.engine.state_machine import PlanStatus


class CreateTradePlanRequest(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=32)
    direction: TradeDirection = TradeDirection.LONG
    entry_price: Decimal = Field(..., gt=0)
    stop_loss: Decimal = Field(..., gt=0)
    take_profit: Decimal = Field(..., gt=0)
    position_size: Optional[int] = Field(None, description="为空时按风险预算自动计算")
    entry_logic: str = Field(..., min_length=1)


class ExecutePlanRequest(BaseModel):
    fill_price: Decimal = Field(..., gt=0)
    fill_quantity: int


class AddPositionRequest(BaseModel):
    add_price: Decimal = Field(..., gt=0)
    add_quantity: int
    add_logic: Optional[str] = None


class TrimPositionRequest(BaseModel):
    exit_price: Decimal = Field(..., gt=0)
    exit_quantity: int
    exit_logic: str = Field(..., min_length=1)
    new_stop_loss: Optional[Decimal] = Field(None, gt=0)
    new_take_profit: Optional[Decimal] = Field(None, gt=0)


class CloseTradeRequest(BaseModel):
    exit_price: Decimal = Field(..., gt=0)
    exit_logic: str = Field(..., min_length=1)
    emotional_state: Optional[str] = Field(None, max_length=50)


class TradePlanView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    symbol: str
    stock_name: str = ""
    direction: TradeDirection
    entry_price: Decimal
    avg_entry_price: Optional[Decimal] = None
    position_size: int
    total_quantity: Optional[int] = None
    current_quantity: Optional[int] = None
    realized_pnl: Optional[Decimal] = None
    stop_loss: Decimal
    take_profit: Decimal
    risk_reward_ratio: Decimal
    entry_logic: str
    status: PlanStatus
    created_at: datetime


class TradeTransactionView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    price: Decimal
    quantity: int
    transaction_time: datetime
    logic_snapshot: Optional[str] = None


class TradeExecutionView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    plan_id: int
    exit_price: Decimal
    realized_pnl: Optional[Decimal] = None
    exit_logic: str
    emotional_state: Optional[str] = None
    ai_analysis_score: Optional[int] = None
    ai_analysis_comment: Optional[str] = None


class TradeHistoryView(BaseModel):
    execution_id: int
    plan_id: int
    symbol: str
    stock_name: str = ""
    direction: TradeDirection
    entry_price: Decimal
    avg_entry_price: Decimal
    exit_price: Decimal
    stop_loss: Decimal
    take_profit: Decimal
    position_size: int
    total_quantity: int
    realized_pnl: Optional[Decimal] = None
    realized_pnl_percent: Decimal = Decimal("0")
    entry_logic: str
    exit_logic: str
    emotional_state: Optional[str] = None
    ai_analysis_score: Optional[int] = None
    ai_analysis_comment: Optional[str] = None
    plan_created_at: datetime
    closed_at: datetime


class ReviewTriggerResponse(BaseModel):
    status: str = "ok"
    execution_id: int
    queued: bool
