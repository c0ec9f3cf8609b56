from decimal import Decimal

from pydantic import BaseModel, Field


class AppSettingsView(BaseModel):
    total_capital: Decimal = Field(..., gt=0)
    risk_percent: Decimal = Field(..., gt=0, le=1, description="单笔风险比例，例如 0.01 = 1%")
