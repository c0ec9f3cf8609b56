"""交易流水账本：只追加，按时间顺序重放可重建持仓"""
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from discipline_journal.engine.accountant import PositionAccountant, PositionState, TransactionType
from discipline_journal.models.trade_transaction import TradeTransaction

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOTS = {
    TransactionType.INITIAL_ENTRY: "首次建仓",
    TransactionType.ADD_POSITION: "加仓",
}


class TransactionLedger:
    def __init__(self, session: AsyncSession):
        self.session = session

    def append(
        self,
        plan_id: int,
        tx_type: TransactionType,
        price: Decimal,
        quantity: int,
        logic_snapshot: Optional[str] = None,
    ) -> TradeTransaction:
        """加入当前会话，随计划变更在同一事务内提交"""
        snapshot = logic_snapshot if logic_snapshot and logic_snapshot.strip() else DEFAULT_SNAPSHOTS.get(tx_type)
        txn = TradeTransaction(
            plan_id=plan_id,
            type=tx_type,
            price=price,
            quantity=quantity,
            logic_snapshot=snapshot,
        )
        self.session.add(txn)
        return txn

    async def list_for_plan(self, plan_id: int) -> List[TradeTransaction]:
        stmt = (
            select(TradeTransaction)
            .where(TradeTransaction.plan_id == plan_id)
            .order_by(TradeTransaction.transaction_time.asc(), TradeTransaction.id.asc())
        )
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def replay(self, plan_id: int) -> PositionState:
        """从流水重建持仓状态，用于审计 / 对账"""
        return PositionAccountant.replay(await self.list_for_plan(plan_id))
