"""交易流水模型：每次成交一行，只追加不修改"""
from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Index, Integer, Numeric, Text

from discipline_journal.engine.accountant import TransactionType
from discipline_journal.models.db import Base, utcnow


class TradeTransaction(Base):
    __tablename__ = "trade_transaction"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(Integer, ForeignKey("trade_plan.id"), nullable=False)
    type = Column(SQLEnum(TransactionType, native_enum=False, length=16), nullable=False)
    price = Column(Numeric(19, 4, asdecimal=True), nullable=False)
    quantity = Column(Integer, nullable=False)
    transaction_time = Column(DateTime, nullable=False, default=utcnow)
    logic_snapshot = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_txn_plan_time", "plan_id", "transaction_time"),
    )
