from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class TradeDashboardView(BaseModel):
    """持仓仪表盘：实时价格 + 浮动盈亏 + 止损距离"""
    plan_id: int
    symbol: str
    stock_name: str = ""
    entry_price: Decimal
    avg_entry_price: Decimal
    stop_loss: Decimal
    take_profit: Decimal
    position_size: int
    total_quantity: int
    current_quantity: int
    realized_pnl: Decimal
    current_price: Decimal
    price_available: bool
    unrealized_pnl: Decimal
    unrealized_pnl_percent: Decimal
    distance_to_stop: Decimal
    risk_level: str
    entry_logic: str = ""
    risk_reward_ratio: Optional[Decimal] = None


class StockPriceView(BaseModel):
    status: str = "ok"
    symbol: str
    stock_name: str = ""
    price: Optional[Decimal] = None
    available: bool
    source: Optional[str] = None
