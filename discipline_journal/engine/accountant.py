"""持仓会计：加权平均成本 + 已实现盈亏

- 建仓：均价 = 成交价，总量 = 剩余量 = 成交量，已实现盈亏 = 0
- 加仓：NewAvg = (OldAvg * OldQty + AddPrice * AddQty) / (OldQty + AddQty)
- 减仓/平仓：ChunkPnL = (exitPrice - avgEntryPrice) * exitQty（仅做多）
- 均价只在建仓/加仓时变化，卖出不影响成本

所有金额保留 4 位小数，HALF_UP。
"""
from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Optional, Protocol

from discipline_journal.core.exceptions import DisciplineViolation, InvalidState

MONEY_SCALE = Decimal("0.0001")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_SCALE, rounding=ROUND_HALF_UP)


class TransactionType(str, Enum):
    """交易流水类型"""
    INITIAL_ENTRY = "INITIAL_ENTRY"   # 首次建仓
    ADD_POSITION = "ADD_POSITION"     # 加仓
    PARTIAL_EXIT = "PARTIAL_EXIT"     # 减仓
    FULL_EXIT = "FULL_EXIT"           # 清仓

    @property
    def is_disposal(self) -> bool:
        return self in (TransactionType.PARTIAL_EXIT, TransactionType.FULL_EXIT)


@dataclass(frozen=True)
class PositionState:
    avg_entry_price: Optional[Decimal] = None
    total_quantity: int = 0
    current_quantity: int = 0
    realized_pnl: Decimal = Decimal("0")

    @property
    def is_flat(self) -> bool:
        return self.total_quantity > 0 and self.current_quantity == 0


@dataclass(frozen=True)
class Disposal:
    state: PositionState
    chunk_pnl: Decimal


class LedgerEntry(Protocol):
    type: TransactionType
    price: Decimal
    quantity: int


def weighted_average(old_avg: Decimal, old_qty: int, fill_price: Decimal, fill_qty: int) -> Decimal:
    total_cost = old_avg * old_qty + fill_price * fill_qty
    return quantize_money(total_cost / (old_qty + fill_qty))


def chunk_pnl(exit_price: Decimal, avg_entry_price: Decimal, quantity: int) -> Decimal:
    return quantize_money((exit_price - avg_entry_price) * quantity)


class PositionAccountant:
    """纯函数式会计：输入旧状态，返回新状态，不修改入参"""

    @staticmethod
    def open(fill_price: Decimal, fill_qty: int) -> PositionState:
        return PositionState(
            avg_entry_price=fill_price,
            total_quantity=fill_qty,
            current_quantity=fill_qty,
            realized_pnl=Decimal("0"),
        )

    @staticmethod
    def add(state: PositionState, fill_price: Decimal, fill_qty: int) -> PositionState:
        if state.avg_entry_price is None or state.total_quantity <= 0:
            raise InvalidState("持仓尚未建立，无法加仓")
        # 加权基数为累计买入量：均价是全部建仓/加仓成交价的数量加权平均
        new_avg = weighted_average(state.avg_entry_price, state.total_quantity, fill_price, fill_qty)
        return replace(
            state,
            avg_entry_price=new_avg,
            total_quantity=state.total_quantity + fill_qty,
            current_quantity=state.current_quantity + fill_qty,
        )

    @staticmethod
    def dispose(state: PositionState, exit_price: Decimal, exit_qty: int) -> Disposal:
        if state.avg_entry_price is None:
            raise InvalidState("持仓均价缺失，无法计算盈亏")
        if exit_qty > state.current_quantity:
            raise DisciplineViolation(
                f"卖出数量不能大于当前持仓数量（当前 {state.current_quantity} 股）"
            )
        pnl = chunk_pnl(exit_price, state.avg_entry_price, exit_qty)
        new_state = replace(
            state,
            current_quantity=state.current_quantity - exit_qty,
            realized_pnl=state.realized_pnl + pnl,
        )
        return Disposal(state=new_state, chunk_pnl=pnl)

    @classmethod
    def replay(cls, entries: Iterable[LedgerEntry]) -> PositionState:
        """按时间顺序重放流水，重建持仓状态（审计 / 对账）"""
        state = PositionState()
        for entry in entries:
            tx_type = TransactionType(entry.type)
            if tx_type == TransactionType.INITIAL_ENTRY:
                state = cls.open(entry.price, entry.quantity)
            elif tx_type == TransactionType.ADD_POSITION:
                state = cls.add(state, entry.price, entry.quantity)
            elif tx_type.is_disposal:
                state = cls.dispose(state, entry.price, entry.quantity).state
        return state
