"""纪律守门员

- 盈亏比 RR = |TP - EP| / |EP - SL|，保留 4 位小数（HALF_UP）
- RR 低于阈值的计划直接拒绝
- 所有股数必须为一手（100 股）的正整数倍
- 市场仅支持做多
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from discipline_journal.core.exceptions import DisciplineViolation, InvalidSetup

RATIO_SCALE = Decimal("0.0001")
DEFAULT_MIN_RISK_REWARD = Decimal("1.5")
DEFAULT_LOT_SIZE = 100


class TradeDirection(str, Enum):
    """交易方向"""
    LONG = "LONG"     # 做多
    SHORT = "SHORT"   # 做空（仅记录，创建时拒绝）


@dataclass(frozen=True)
class RiskRewardDecision:
    ratio: Decimal
    min_ratio: Decimal

    @property
    def accepted(self) -> bool:
        return self.ratio >= self.min_ratio


def calculate_risk_reward_ratio(entry_price: Decimal, stop_loss: Decimal, take_profit: Decimal) -> Decimal:
    reward = abs(take_profit - entry_price)
    risk = abs(entry_price - stop_loss)
    if risk == 0:
        raise InvalidSetup("止损距离为 0（入场价等于止损价），无法计算盈亏比")
    return (reward / risk).quantize(RATIO_SCALE, rounding=ROUND_HALF_UP)


def evaluate_setup(
    entry_price: Decimal,
    stop_loss: Decimal,
    take_profit: Decimal,
    min_ratio: Decimal = DEFAULT_MIN_RISK_REWARD,
) -> RiskRewardDecision:
    ratio = calculate_risk_reward_ratio(entry_price, stop_loss, take_profit)
    return RiskRewardDecision(ratio=ratio, min_ratio=min_ratio)


def ensure_long(direction: TradeDirection) -> None:
    if direction != TradeDirection.LONG:
        raise DisciplineViolation("当前市场不支持做空，仅支持做多（买入）")


def is_lot_multiple(quantity: int, lot_size: int = DEFAULT_LOT_SIZE) -> bool:
    return quantity >= lot_size and quantity % lot_size == 0


def ensure_lot_multiple(quantity: int, lot_size: int = DEFAULT_LOT_SIZE, action: str = "买入") -> None:
    if not is_lot_multiple(quantity, lot_size):
        raise DisciplineViolation(
            f"{action}股数必须为正 {lot_size} 股（一手）的整数倍，当前为 {quantity} 股"
        )
