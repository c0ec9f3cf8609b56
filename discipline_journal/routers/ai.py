"""AI 辅助路由：买入前的对手盘质询"""
from typing import List

from fastapi import APIRouter, Depends

from discipline_journal.schemas.ai_challenge import AIChallengeRequest
from discipline_journal.services.ai_challenge_service import AIChallengeService

router = APIRouter(prefix="/ai", tags=["AI 辅助"])


def get_challenge_service() -> AIChallengeService:
    return AIChallengeService()


@router.post("/challenge", response_model=List[str])
async def challenge(payload: AIChallengeRequest, service: AIChallengeService = Depends(get_challenge_service)):
    return await service.challenge(payload.stock_symbol, payload.current_price, payload.logic)
