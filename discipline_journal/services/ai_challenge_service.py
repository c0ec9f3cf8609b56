"""买入前的 AI 对手盘质询

模型扮演空头，针对用户的买入逻辑列出 3 个可能被忽略的风险点，只返回 JSON 数组。
模型不可用或输出无法解析时返回固定的通用提醒。
"""
import json
import logging
import re
from decimal import Decimal
from typing import List, Optional

from discipline_journal.services.ai_client_manager import call_ai_with_fallback, strip_code_fence

logger = logging.getLogger(__name__)

RISK_COUNT = 3

FALLBACK_RISKS = [
    "请再次审视你的买入逻辑是否充分考虑了风险",
    "市场情绪变化可能导致逻辑失效",
    "建议设置好止损并严格执行",
]


def build_challenge_prompt(symbol: str, current_price: Optional[Decimal], logic: str) -> str:
    price_info = f"，当前价格约 {current_price} 元" if current_price is not None else ""
    return (
        f"用户计划买入 [{symbol}]{price_info}，逻辑是: '{logic}'。\n"
        "请作为该用户的'对手盘' (Short Seller)，不仅不要附和，还要**无情地**指出该逻辑中"
        f"可能忽略的 {RISK_COUNT} 个风险点。必须简短、犀利。\n"
        "返回格式: 只返回一个 JSON 数组，例如 [\"风险点1\", \"风险点2\", \"风险点3\"]，不要有其他文字。"
    )


def parse_risks(content: Optional[str]) -> List[str]:
    """解析模型返回的风险点数组，格式不符时返回空列表"""
    if not content:
        return []
    content = strip_code_fence(content)
    if not (content.startswith("[") and content.endswith("]")):
        match = re.search(r"(\[.*\])", content, re.DOTALL)
        if not match:
            logger.warning("AI challenge reply contains no JSON array")
            return []
        content = match.group(1)
    try:
        data = json.loads(content)
    except ValueError as e:
        logger.warning(f"Unparseable AI challenge content: {e}")
        return []
    if not isinstance(data, list):
        return []
    risks = [str(item).strip() for item in data if item is not None and str(item).strip()]
    return risks[:RISK_COUNT]


class AIChallengeService:
    def __init__(self, ai_caller=None):
        self.ai_caller = ai_caller or call_ai_with_fallback

    async def challenge(self, symbol: str, current_price: Optional[Decimal], logic: str) -> List[str]:
        """返回针对买入逻辑的风险点；AI 不可用时返回固定提醒"""
        messages = [{"role": "user", "content": build_challenge_prompt(symbol, current_price, logic)}]
        content, provider = await self.ai_caller(messages, temperature=0.7)
        risks = parse_risks(content)
        if not risks:
            logger.warning(f"AI challenge unavailable for {symbol}, using fallback risks")
            return list(FALLBACK_RISKS)
        source = provider.value if provider else None
        logger.info(f"AI challenge done: symbol={symbol}, risks={len(risks)}, provider={source}")
        return risks
