"""买入前对手盘质询：提示词 / 解析 / 兜底"""
from decimal import Decimal

import pytest

from discipline_journal.services.ai_challenge_service import (
    FALLBACK_RISKS,
    AIChallengeService,
    build_challenge_prompt,
    parse_risks,
)
from discipline_journal.services.ai_client_manager import AIProvider


def test_prompt_includes_price_only_when_given():
    prompt = build_challenge_prompt("600519", Decimal("1700.00"), "业绩超预期")
    assert "[600519]，当前价格约 1700.00 元" in prompt
    assert "'业绩超预期'" in prompt
    assert "JSON 数组" in prompt

    assert "当前价格" not in build_challenge_prompt("600519", None, "业绩超预期")


@pytest.mark.parametrize(
    "content",
    [
        '["估值过高", "量能不足", "大盘走弱"]',
        '```json\n["估值过高", "量能不足", "大盘走弱"]\n```',
        '<think>先分析</think>["估值过高", "量能不足", "大盘走弱"]',
        '风险如下：["估值过高", "量能不足", "大盘走弱"]',
    ],
)
def test_parse_risks_strips_wrappers(content):
    assert parse_risks(content) == ["估值过高", "量能不足", "大盘走弱"]


def test_parse_risks_keeps_at_most_three():
    assert parse_risks('["a", "b", "c", "d"]') == ["a", "b", "c"]


@pytest.mark.parametrize("content", [None, "", "没有风险", '{"risk": "a"}', "[]", '["a", ', '["", null]'])
def test_parse_risks_rejects_bad_payloads(content):
    assert parse_risks(content) == []


@pytest.mark.asyncio
async def test_challenge_returns_ai_risks():
    async def fake_ai(messages, **kwargs):
        assert "600519" in messages[0]["content"]
        return '```json\n["追高风险", "题材退潮", "止损过宽"]\n```', AIProvider.DEEPSEEK

    risks = await AIChallengeService(ai_caller=fake_ai).challenge("600519", None, "题材热点")
    assert risks == ["追高风险", "题材退潮", "止损过宽"]


@pytest.mark.asyncio
async def test_challenge_falls_back_when_ai_unavailable():
    async def unavailable_ai(messages, **kwargs):
        return None, None

    risks = await AIChallengeService(ai_caller=unavailable_ai).challenge("600519", Decimal("10"), "x")
    assert risks == FALLBACK_RISKS
    risks.append("mutated")
    assert len(FALLBACK_RISKS) == 3


@pytest.mark.asyncio
async def test_challenge_falls_back_on_unparseable_reply():
    async def chatty_ai(messages, **kwargs):
        return "我觉得这笔交易还不错", AIProvider.OPENAI

    assert await AIChallengeService(ai_caller=chatty_ai).challenge("600519", None, "x") == FALLBACK_RISKS
