"""交易计划模型

记录开仓前的计划信息以及成交后的持仓会计字段。
状态生命周期: PENDING → OPEN → CLOSED / CANCELLED
"""
from sqlalchemy import Column, DateTime, Enum as SQLEnum, Index, Integer, Numeric, String, Text

from discipline_journal.engine.discipline import TradeDirection
from discipline_journal.engine.state_machine import PlanStatus
from discipline_journal.models.db import Base, utcnow


class TradePlan(Base):
    __tablename__ = "trade_plan"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(32), nullable=False)
    direction = Column(SQLEnum(TradeDirection, native_enum=False, length=8), nullable=False)

    # 计划价格（供复盘对比）
    entry_price = Column(Numeric(19, 4, asdecimal=True), nullable=False)
    stop_loss = Column(Numeric(19, 4, asdecimal=True), nullable=False)
    take_profit = Column(Numeric(19, 4, asdecimal=True), nullable=False)
    position_size = Column(Integer, nullable=False)
    risk_reward_ratio = Column(Numeric(10, 4, asdecimal=True), nullable=False)

    # 成交后的持仓会计，首次建仓前为空
    avg_entry_price = Column(Numeric(19, 4, asdecimal=True), nullable=True)
    total_quantity = Column(Integer, nullable=True)      # 历史总买入量，只增不减
    current_quantity = Column(Integer, nullable=True)    # 当前剩余持仓，清仓时为 0
    realized_pnl = Column(Numeric(19, 4, asdecimal=True), nullable=True)

    entry_logic = Column(Text, nullable=False)
    status = Column(SQLEnum(PlanStatus, native_enum=False, length=16), nullable=False, default=PlanStatus.PENDING)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_plan_status", "status"),
        Index("idx_plan_symbol", "symbol"),
    )
