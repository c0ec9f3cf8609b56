"""交易服务核心业务逻辑

- 纪律守门员：盈亏比 < 1.5 直接拒绝，仅支持做多，股数必须整手
- 仓位计算器：风险预算 / 止损距离，向下取整到整手
- 持仓会计：加权平均成本，减仓/平仓落袋盈亏
- 状态机：PENDING → OPEN → CLOSED / CANCELLED

同一计划上的命令通过 PlanLockRegistry 串行执行；所有校验在修改之前完成，
计划变更、流水追加、执行记录在同一事务中提交。
平仓后向复盘队列投递执行 ID（不等待结果）。
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from discipline_journal.core.config import settings
from discipline_journal.core.exceptions import DisciplineViolation, InvalidState, NotFound
from discipline_journal.core.locks import PlanLockRegistry, plan_locks
from discipline_journal.engine.accountant import PositionAccountant, PositionState, TransactionType
from discipline_journal.engine.discipline import (
    TradeDirection,
    ensure_long,
    ensure_lot_multiple,
    evaluate_setup,
)
from discipline_journal.engine.position_sizer import calculate_position_size
from discipline_journal.engine.state_machine import (
    PlanCommand,
    PlanStatus,
    ensure_command_allowed,
    ensure_transition,
)
from discipline_journal.models.trade_execution import TradeExecution
from discipline_journal.models.trade_plan import TradePlan
from discipline_journal.models.trade_transaction import TradeTransaction
from discipline_journal.services.app_settings_service import AppSettingsService
from discipline_journal.services.ledger_service import TransactionLedger

logger = logging.getLogger(__name__)

TRIM_TO_FLAT_SUFFIX = "（减仓清仓）"


class TradeService:
    def __init__(
        self,
        session: AsyncSession,
        review_queue=None,
        locks: Optional[PlanLockRegistry] = None,
        lot_size: Optional[int] = None,
        min_risk_reward: Optional[Decimal] = None,
    ):
        self.session = session
        if review_queue is None:
            from discipline_journal.jobs.review_worker import review_queue as default_queue
            review_queue = default_queue
        self.review_queue = review_queue
        self.locks = locks or plan_locks
        self.lot_size = lot_size or settings.LOT_SIZE
        self.min_risk_reward = min_risk_reward if min_risk_reward is not None else settings.MIN_RISK_REWARD
        self.ledger = TransactionLedger(session)
        self.settings_service = AppSettingsService(session)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------
    async def get_plan(self, plan_id: int) -> TradePlan:
        return await self._load_plan(plan_id)

    async def list_by_status(self, status: PlanStatus) -> List[TradePlan]:
        stmt = (
            select(TradePlan)
            .where(TradePlan.status == PlanStatus(status))
            .order_by(TradePlan.created_at.desc(), TradePlan.id.desc())
        )
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def list_transactions(self, plan_id: int) -> List[TradeTransaction]:
        await self._load_plan(plan_id)
        return await self.ledger.list_for_plan(plan_id)

    async def list_history(self, limit: Optional[int] = None) -> List[Tuple[TradeExecution, TradePlan]]:
        """已平仓记录（执行记录 + 原计划），按平仓时间倒序"""
        stmt = (
            select(TradeExecution, TradePlan)
            .join(TradePlan, TradePlan.id == TradeExecution.plan_id)
            .order_by(TradeExecution.created_at.desc(), TradeExecution.id.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        res = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in res.all()]

    async def get_execution(self, execution_id: int) -> TradeExecution:
        stmt = select(TradeExecution).where(TradeExecution.id == execution_id)
        res = await self.session.execute(stmt)
        execution = res.scalars().first()
        if execution is None:
            raise NotFound(f"未找到执行记录: {execution_id}")
        return execution

    async def get_execution_for_plan(self, plan_id: int) -> Optional[TradeExecution]:
        stmt = select(TradeExecution).where(TradeExecution.plan_id == plan_id)
        res = await self.session.execute(stmt)
        return res.scalars().first()

    # ------------------------------------------------------------------
    # 生命周期命令
    # ------------------------------------------------------------------
    async def create_plan(
        self,
        symbol: str,
        direction: TradeDirection,
        entry_price: Decimal,
        stop_loss: Decimal,
        take_profit: Decimal,
        position_size: Optional[int] = None,
        entry_logic: str = "",
    ) -> TradePlan:
        """创建交易计划：做多校验 → 盈亏比校验 → 仓位解析 → 整手校验"""
        direction = TradeDirection(direction)
        ensure_long(direction)

        decision = evaluate_setup(entry_price, stop_loss, take_profit, self.min_risk_reward)
        if not decision.accepted:
            raise DisciplineViolation(
                f"盈亏比过低 ({decision.ratio} < {decision.min_ratio})，不符合交易纪律，拒绝开仓"
            )

        if position_size is None:
            budget = await self.settings_service.get_risk_budget()
            position_size = calculate_position_size(budget.amount, entry_price, stop_loss, self.lot_size)
        ensure_lot_multiple(position_size, self.lot_size)

        plan = TradePlan(
            symbol=symbol.strip().upper(),
            direction=direction,
            entry_price=entry_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            position_size=position_size,
            risk_reward_ratio=decision.ratio,
            entry_logic=entry_logic,
            status=PlanStatus.PENDING,
        )
        self.session.add(plan)
        await self._commit()

        logger.info(
            f"Plan created: planId={plan.id}, symbol={plan.symbol}, rr={decision.ratio}, size={position_size}"
        )
        return plan

    async def execute_plan(self, plan_id: int, fill_price: Decimal, fill_quantity: int) -> TradePlan:
        """首次建仓：PENDING → OPEN，记录 INITIAL_ENTRY"""
        async with self.locks.hold(plan_id):
            plan = await self._load_plan(plan_id)
            ensure_command_allowed(plan.status, PlanCommand.EXECUTE)
            ensure_lot_multiple(fill_quantity, self.lot_size)

            state = PositionAccountant.open(fill_price, fill_quantity)
            self._apply_state(plan, state)
            plan.status = ensure_transition(plan.status, PlanCommand.EXECUTE, PlanStatus.OPEN)
            self.ledger.append(plan.id, TransactionType.INITIAL_ENTRY, fill_price, fill_quantity)
            await self._commit()

        logger.info(f"Plan executed: planId={plan_id}, symbol={plan.symbol}, price={fill_price}, qty={fill_quantity}")
        return plan

    async def add_position(
        self,
        plan_id: int,
        fill_price: Decimal,
        fill_quantity: int,
        rationale: Optional[str] = None,
    ) -> TradePlan:
        """加仓：重新计算加权平均价，记录 ADD_POSITION"""
        async with self.locks.hold(plan_id):
            plan = await self._load_plan(plan_id)
            ensure_command_allowed(plan.status, PlanCommand.ADD_POSITION)
            ensure_lot_multiple(fill_quantity, self.lot_size, action="加仓")

            state = PositionAccountant.add(self._position_state(plan), fill_price, fill_quantity)
            self._apply_state(plan, state)
            plan.status = ensure_transition(plan.status, PlanCommand.ADD_POSITION, PlanStatus.OPEN)
            self.ledger.append(plan.id, TransactionType.ADD_POSITION, fill_price, fill_quantity, rationale)
            await self._commit()

        logger.info(
            f"Position added: planId={plan_id}, symbol={plan.symbol}, "
            f"newAvg={state.avg_entry_price}, totalQty={state.total_quantity}"
        )
        return plan

    async def trim_position(
        self,
        plan_id: int,
        exit_price: Decimal,
        exit_quantity: int,
        rationale: str,
        new_stop_loss: Optional[Decimal] = None,
        new_take_profit: Optional[Decimal] = None,
    ) -> TradePlan:
        """减仓：落袋本次盈亏；剩余为 0 时转为 CLOSED 并生成执行记录"""
        execution = None
        async with self.locks.hold(plan_id):
            plan = await self._load_plan(plan_id)
            ensure_command_allowed(plan.status, PlanCommand.TRIM)

            current = self._position_state(plan)
            if current.current_quantity <= 0:
                raise InvalidState("当前无剩余持仓，无法减仓")
            if exit_quantity > current.current_quantity:
                raise DisciplineViolation(
                    f"减仓数量不能大于当前持仓数量（当前 {current.current_quantity} 股）"
                )
            ensure_lot_multiple(exit_quantity, self.lot_size, action="卖出")

            disposal = PositionAccountant.dispose(current, exit_price, exit_quantity)
            target = PlanStatus.CLOSED if disposal.state.is_flat else PlanStatus.OPEN
            target = ensure_transition(plan.status, PlanCommand.TRIM, target)

            self._apply_state(plan, disposal.state)
            # 剩余仓位的止损/止盈可调整，不重新校验盈亏比
            if new_stop_loss is not None:
                plan.stop_loss = new_stop_loss
            if new_take_profit is not None:
                plan.take_profit = new_take_profit
            plan.status = target

            self.ledger.append(plan.id, TransactionType.PARTIAL_EXIT, exit_price, exit_quantity, rationale)
            if target == PlanStatus.CLOSED:
                execution = self._record_execution(
                    plan,
                    exit_price=exit_price,
                    exit_logic=f"{rationale}{TRIM_TO_FLAT_SUFFIX}",
                )
            await self._commit()

        logger.info(
            f"Position trimmed: planId={plan_id}, symbol={plan.symbol}, exitQty={exit_quantity}, "
            f"chunkPnL={disposal.chunk_pnl}, remaining={disposal.state.current_quantity}"
        )
        if execution is not None:
            self._schedule_review(execution)
        return plan

    async def close_plan(
        self,
        plan_id: int,
        exit_price: Decimal,
        exit_logic: str,
        emotional_state: Optional[str] = None,
    ) -> TradeExecution:
        """平仓：按持仓均价结算全部剩余仓位，记录 FULL_EXIT 并生成执行记录"""
        async with self.locks.hold(plan_id):
            plan = await self._load_plan(plan_id)
            ensure_command_allowed(plan.status, PlanCommand.CLOSE)

            current = self._position_state(plan)
            if current.avg_entry_price is None or current.current_quantity <= 0:
                raise InvalidState("持仓数据异常，无法平仓")

            closing_qty = current.current_quantity
            disposal = PositionAccountant.dispose(current, exit_price, closing_qty)
            plan.status = ensure_transition(plan.status, PlanCommand.CLOSE, PlanStatus.CLOSED)
            self._apply_state(plan, disposal.state)

            self.ledger.append(plan.id, TransactionType.FULL_EXIT, exit_price, closing_qty, exit_logic)
            execution = self._record_execution(
                plan,
                exit_price=exit_price,
                exit_logic=exit_logic,
                emotional_state=emotional_state,
            )
            await self._commit()

        logger.info(
            f"Plan closed: planId={plan_id}, symbol={plan.symbol}, exitPrice={exit_price}, "
            f"closePnL={disposal.chunk_pnl}, realizedPnL={plan.realized_pnl}"
        )
        self._schedule_review(execution)
        return execution

    async def cancel_plan(self, plan_id: int) -> None:
        """撤单：PENDING → CANCELLED，无会计副作用"""
        async with self.locks.hold(plan_id):
            plan = await self._load_plan(plan_id)
            ensure_command_allowed(plan.status, PlanCommand.CANCEL)
            plan.status = ensure_transition(plan.status, PlanCommand.CANCEL, PlanStatus.CANCELLED)
            await self._commit()

        logger.info(f"Plan cancelled: planId={plan_id}, symbol={plan.symbol}")

    async def request_review(self, execution_id: int) -> bool:
        """为历史执行记录重新投递复盘请求（已复盘的记录由 worker 跳过）"""
        execution = await self.get_execution(execution_id)
        queued = self._schedule_review(execution)
        logger.info(f"Review requested for execution {execution_id}, queued={queued}")
        return queued

    # ------------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------------
    async def _load_plan(self, plan_id: int) -> TradePlan:
        # populate_existing：锁内总是读取已提交的最新状态
        stmt = (
            select(TradePlan)
            .where(TradePlan.id == plan_id)
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(stmt)
        plan = res.scalars().first()
        if plan is None:
            raise NotFound(f"未找到交易计划: {plan_id}")
        return plan

    @staticmethod
    def _position_state(plan: TradePlan) -> PositionState:
        total = plan.total_quantity or 0
        current = plan.current_quantity if plan.current_quantity is not None else total
        return PositionState(
            avg_entry_price=plan.avg_entry_price,
            total_quantity=total,
            current_quantity=current,
            realized_pnl=plan.realized_pnl if plan.realized_pnl is not None else Decimal("0"),
        )

    @staticmethod
    def _apply_state(plan: TradePlan, state: PositionState) -> None:
        plan.avg_entry_price = state.avg_entry_price
        plan.total_quantity = state.total_quantity
        plan.current_quantity = state.current_quantity
        plan.realized_pnl = state.realized_pnl

    def _record_execution(
        self,
        plan: TradePlan,
        exit_price: Decimal,
        exit_logic: str,
        emotional_state: Optional[str] = None,
    ) -> TradeExecution:
        execution = TradeExecution(
            plan_id=plan.id,
            exit_price=exit_price,
            realized_pnl=plan.realized_pnl,
            exit_logic=exit_logic,
            emotional_state=emotional_state,
        )
        self.session.add(execution)
        return execution

    def _schedule_review(self, execution: TradeExecution) -> bool:
        try:
            return self.review_queue.publish(execution.id)
        except Exception:
            logger.exception(f"Failed to publish review request for execution {execution.id}")
            return False

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
