from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class AIChallengeRequest(BaseModel):
    stock_symbol: str = Field(..., min_length=1)
    current_price: Optional[Decimal] = Field(None, gt=0)
    logic: str = Field(..., min_length=1, description="买入逻辑")
