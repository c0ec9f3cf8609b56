"""交易执行记录：计划进入 CLOSED 时生成，每个计划恰好一条

除 AI 复盘字段（由复盘 worker 异步写入）外，创建后不再修改。
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text

from discipline_journal.models.db import Base, utcnow


class TradeExecution(Base):
    __tablename__ = "trade_execution"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(Integer, ForeignKey("trade_plan.id"), nullable=False, unique=True)

    exit_price = Column(Numeric(19, 4, asdecimal=True), nullable=False)
    realized_pnl = Column(Numeric(19, 4, asdecimal=True), nullable=True)
    exit_logic = Column(Text, nullable=False)
    emotional_state = Column(String(50), nullable=True)   # 例如 "恐惧"、"贪婪"

    # AI 复盘（0-100 评分 + 点评）
    ai_analysis_score = Column(Integer, nullable=True)
    ai_analysis_comment = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    @property
    def is_reviewed(self) -> bool:
        return self.ai_analysis_score is not None
