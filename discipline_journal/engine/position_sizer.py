"""仓位计算器

positionSize = (TotalCapital * RiskPercent) / |entryPrice - stopLoss|
结果向下取整到一手的整数倍，不足一手时按一手计（保证可交易）。
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN

from discipline_journal.core.exceptions import InvalidSetup
from discipline_journal.engine.discipline import DEFAULT_LOT_SIZE


@dataclass(frozen=True)
class RiskBudget:
    """单笔交易可承受的风险额度 = 总资金 × 风险比例"""
    total_capital: Decimal
    risk_fraction: Decimal

    @property
    def amount(self) -> Decimal:
        return self.total_capital * self.risk_fraction


def calculate_position_size(
    risk_amount: Decimal,
    entry_price: Decimal,
    stop_loss: Decimal,
    lot_size: int = DEFAULT_LOT_SIZE,
) -> int:
    diff = abs(entry_price - stop_loss)
    if diff == 0:
        raise InvalidSetup("入场价与止损价不能相同，否则风险无限大")

    raw_shares = int((risk_amount / diff).to_integral_value(rounding=ROUND_DOWN))
    lots = max(1, raw_shares // lot_size)
    return lots * lot_size
