"""应用设置路由：总资金与单笔风险比例（仓位计算器的输入）"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from discipline_journal.models.db import get_session
from discipline_journal.schemas.settings import AppSettingsView
from discipline_journal.services.app_settings_service import AppSettingsService

router = APIRouter(prefix="/settings", tags=["应用设置"])


@router.get("", response_model=AppSettingsView)
async def get_settings(session: AsyncSession = Depends(get_session)):
    budget = await AppSettingsService(session).get_risk_budget()
    return AppSettingsView(total_capital=budget.total_capital, risk_percent=budget.risk_fraction)


@router.put("", response_model=AppSettingsView)
async def update_settings(payload: AppSettingsView, session: AsyncSession = Depends(get_session)):
    budget = await AppSettingsService(session).update_settings(payload.total_capital, payload.risk_percent)
    return AppSettingsView(total_capital=budget.total_capital, risk_percent=budget.risk_fraction)
