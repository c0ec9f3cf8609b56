"""应用设置服务：管理总资金、单笔风险比例

TradeService 在创建计划时通过 get_risk_budget() 取得风险预算并显式传入仓位计算器。
"""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from discipline_journal.core.config import settings
from discipline_journal.engine.position_sizer import RiskBudget
from discipline_journal.models.app_settings import SETTINGS_ID, AppSettings

logger = logging.getLogger(__name__)


class AppSettingsService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _load(self) -> Optional[AppSettings]:
        stmt = select(AppSettings).where(AppSettings.id == SETTINGS_ID)
        res = await self.session.execute(stmt)
        return res.scalars().first()

    async def ensure_defaults(self) -> AppSettings:
        """首次启动时写入默认设置"""
        row = await self._load()
        if row is not None:
            return row
        row = AppSettings(
            id=SETTINGS_ID,
            total_capital=settings.DEFAULT_TOTAL_CAPITAL,
            risk_percent=settings.DEFAULT_RISK_PERCENT,
        )
        self.session.add(row)
        await self.session.commit()
        logger.info(
            f"Default app settings initialized: total_capital={row.total_capital}, "
            f"risk_percent={row.risk_percent * 100}%"
        )
        return row

    async def get_risk_budget(self) -> RiskBudget:
        row = await self._load()
        if row is None:
            return RiskBudget(
                total_capital=settings.DEFAULT_TOTAL_CAPITAL,
                risk_fraction=settings.DEFAULT_RISK_PERCENT,
            )
        return RiskBudget(total_capital=row.total_capital, risk_fraction=row.risk_percent)

    async def update_settings(self, total_capital: Decimal, risk_percent: Decimal) -> RiskBudget:
        row = await self._load()
        if row is None:
            row = AppSettings(id=SETTINGS_ID, total_capital=total_capital, risk_percent=risk_percent)
            self.session.add(row)
        else:
            row.total_capital = total_capital
            row.risk_percent = risk_percent
        await self.session.commit()
        logger.info(f"App settings updated: total_capital={total_capital}, risk_percent={risk_percent * 100}%")
        return RiskBudget(total_capital=total_capital, risk_fraction=risk_percent)
