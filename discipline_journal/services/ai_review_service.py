"""平仓后 AI 复盘

对比初始计划与最终执行，要求模型只返回 JSON：{"score": int, "comment": str}
- 在独立会话中重新加载执行记录与计划（请求会话早已关闭）
- 已复盘的记录直接跳过（重复投递幂等）
- 所有 AI 提供商不可用时写入规则复盘结果
"""
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select

from discipline_journal.models.db import SessionLocal, utcnow
from discipline_journal.models.trade_execution import TradeExecution
from discipline_journal.models.trade_plan import TradePlan
from discipline_journal.services.ai_client_manager import call_ai_with_fallback, clean_json_content

logger = logging.getLogger(__name__)

REVIEW_SYSTEM_PROMPT = """你是一个严厉的职业交易教练。对比用户的初始计划和最终执行。
分析：
1. 是否遵守了止损/止盈？
2. 是否有情绪化操作（恐惧/贪婪）？
3. 给出 0-100 的评分和简短的犀利点评。
只返回 JSON：
{ "score": int, "comment": string }"""

EMOTIONAL_KEYWORDS = ("恐惧", "贪婪", "恐慌", "冲动", "fear", "greed", "fomo", "panic")


@dataclass(frozen=True)
class ReviewResult:
    score: int
    comment: str
    source: str = "ai"


def build_review_prompt(plan: TradePlan, execution: TradeExecution) -> str:
    return (
        "初始计划：\n"
        f"- 标的：{plan.symbol}\n"
        f"- 方向：{plan.direction.value if plan.direction else 'LONG'}\n"
        f"- 买入价：{plan.entry_price}\n"
        f"- 持仓均价：{plan.avg_entry_price}\n"
        f"- 止损价：{plan.stop_loss}\n"
        f"- 止盈价：{plan.take_profit}\n"
        f"- 买入逻辑：{plan.entry_logic}\n"
        "实际执行：\n"
        f"- 平仓价：{execution.exit_price}\n"
        f"- 已实现盈亏：{execution.realized_pnl}\n"
        f"- 卖出逻辑/心态记录：{execution.exit_logic}\n"
        f"- 情绪标签：{execution.emotional_state or '未填写'}\n"
    )


def _clamp_score(value) -> int:
    return max(0, min(100, int(round(float(value)))))


def parse_review(content: Optional[str]) -> Optional[ReviewResult]:
    """解析模型输出，格式不符时返回 None"""
    if not content:
        return None
    try:
        data = json.loads(clean_json_content(content))
        score = _clamp_score(data["score"])
    except (ValueError, TypeError, KeyError, OverflowError) as e:
        logger.warning(f"Unparseable AI review content: {e}")
        return None
    comment = str(data.get("comment") or "").strip()
    return ReviewResult(score=score, comment=comment)


def rule_based_review(plan: TradePlan, execution: TradeExecution) -> ReviewResult:
    """无 AI 可用时的规则复盘：看离场价相对止损/止盈的位置与情绪标签"""
    exit_price: Decimal = execution.exit_price
    score = 60
    notes = []

    if exit_price >= plan.take_profit:
        score += 25
        notes.append("按计划在止盈位离场")
    elif exit_price <= plan.stop_loss:
        if exit_price < plan.stop_loss * Decimal("0.98"):
            score -= 10
            notes.append("跌破止损后才离场，止损执行拖延")
        else:
            score += 15
            notes.append("严格执行止损")
    elif execution.realized_pnl is not None and execution.realized_pnl > 0:
        notes.append("未到止盈位提前获利了结")
    else:
        score -= 5
        notes.append("未触及止损即亏损离场")

    emotion = (execution.emotional_state or "").lower()
    if emotion and any(k in emotion for k in EMOTIONAL_KEYWORDS):
        score -= 15
        notes.append(f"情绪标签为「{execution.emotional_state}」，存在情绪化操作")

    return ReviewResult(
        score=_clamp_score(score),
        comment="[规则复盘] " + "；".join(notes),
        source="rule",
    )


class AIReviewService:
    def __init__(self, session_factory=None, ai_caller=None):
        self.session_factory = session_factory or SessionLocal
        self.ai_caller = ai_caller or call_ai_with_fallback

    async def _ask_ai(self, plan: TradePlan, execution: TradeExecution) -> Optional[ReviewResult]:
        messages = [
            {"role": "system", "content": REVIEW_SYSTEM_PROMPT},
            {"role": "user", "content": build_review_prompt(plan, execution)},
        ]
        content, provider = await self.ai_caller(
            messages,
            temperature=0.3,
            response_format={"type": "json_object"},
        )
        if content is None:
            return None
        result = parse_review(content)
        if result is not None and provider is not None:
            result = ReviewResult(score=result.score, comment=result.comment, source=provider.value)
        return result

    async def review_execution(self, execution_id: int) -> Optional[ReviewResult]:
        """复盘指定执行记录，写回评分与点评；记录不存在或已复盘时返回 None"""
        async with self.session_factory() as session:
            stmt = (
                select(TradeExecution, TradePlan)
                .join(TradePlan, TradePlan.id == TradeExecution.plan_id)
                .where(TradeExecution.id == execution_id)
            )
            row = (await session.execute(stmt)).first()
            if row is None:
                logger.warning(f"Review skipped: execution {execution_id} not found")
                return None
            execution, plan = row[0], row[1]
            if execution.is_reviewed:
                logger.info(f"Review skipped: execution {execution_id} already reviewed")
                return None

            result = await self._ask_ai(plan, execution)
            if result is None:
                logger.warning(f"AI review unavailable for execution {execution_id}, using rule-based review")
                result = rule_based_review(plan, execution)

            execution.ai_analysis_score = result.score
            execution.ai_analysis_comment = result.comment
            execution.reviewed_at = utcnow()
            await session.commit()

        logger.info(f"Trade review done: executionId={execution_id}, score={result.score}, source={result.source}")
        return result
